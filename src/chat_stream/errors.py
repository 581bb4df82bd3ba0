"""Error taxonomy shared by transports and the conversation orchestrator."""


class ChatStreamError(Exception):
    """Base class for chat_stream errors."""


class TransportError(ChatStreamError):
    """A provider request failed for a reason other than rate limiting."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(TransportError):
    """The provider refused the request because of rate limiting."""

    def __init__(self, message: str, status_code: int | None = 429):
        super().__init__(message, status_code=status_code)


class MissingCredentialError(TransportError):
    """The provider requires an API key and none was supplied."""


def is_rate_limited(error: BaseException) -> bool:
    """Return True when ``error`` represents a rate-limit condition."""
    if isinstance(error, RateLimitError):
        return True
    return getattr(error, "status_code", None) == 429


def describe_error(error: BaseException) -> str:
    """Best-effort human readable reason for ``error``."""
    message = str(error)
    if message:
        return message
    return repr(error)
