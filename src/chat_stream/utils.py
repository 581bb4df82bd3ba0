"""Utility functions for the chat_stream package."""

import json
import logging
import time
import uuid

TITLE_MAX_LENGTH = 65


def new_id() -> str:
    """Return a random UUID4 string used for messages, chats and templates."""
    return str(uuid.uuid4())


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def chat_title(prompt: str) -> str:
    """Derive a chat title from the first prompt of a conversation."""
    if len(prompt) > TITLE_MAX_LENGTH:
        return f"{prompt[:TITLE_MAX_LENGTH]} ..."
    return prompt


class StructuredFormatter(logging.Formatter):
    """Formatter that appends the ``structured`` payload of a record as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        structured = getattr(record, "structured", None)
        if structured:
            line = f"{line} {json.dumps(structured, ensure_ascii=False, default=str)}"
        return line


def configure_logging(level: str | int = logging.INFO) -> None:
    """Install a single root handler using :class:`StructuredFormatter`."""
    handler = logging.StreamHandler()
    handler.setFormatter(
        StructuredFormatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
