"""
Conversation orchestrator: the streaming, tool-calling turn loop.

``run_turn`` is an async generator of :class:`TurnSnapshot` values. It streams
one assistant reply, executes the tool calls the model requests, feeds their
results back and repeats until the model stops asking for tools, the abort
signal is set, a rate limit is hit or the iteration budget runs out. The last
snapshot is the only one with ``done=True``.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Sequence

from .errors import MissingCredentialError, describe_error, is_rate_limited
from .messages import (
    AssistantMessage,
    ChatSettings,
    ToolCallRequest,
    ToolMessage,
    TurnSnapshot,
    UserMessage,
    error_message,
    to_provider_messages,
    tool_result_content,
)
from .providers import LLMProvider, create_transport, resolve_api_key
from .tool_registry import ToolDescriptor, ToolRegistry, default_registry
from .transport import StreamDelta, ToolCallDelta, Transport

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 5
MAX_RETRY_DELAY = 8.0


class TurnLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that injects the turn id into structured logs."""

    def __init__(self, logger, turn_id):
        self.turn_id = turn_id
        super().__init__(logger, {})

    def process(self, msg, kwargs):
        if "extra" in kwargs and "structured" in kwargs["extra"]:
            kwargs["extra"]["structured"]["turn_id"] = self.turn_id
        return msg, kwargs

    def log_item(self, item_type: str, extra: dict, level: int = logging.INFO):
        structured = {"log_type": item_type, **extra}
        self.log(
            level,
            f"{item_type.replace('_', ' ').title()}",
            extra={"structured": structured},
        )


class TurnState:
    """Mutable state of one turn: working history, reply and pending error."""

    def __init__(
        self,
        user_message: UserMessage,
        previous_messages: Sequence[Any],
        abort_signal: asyncio.Event,
    ):
        self.user_message = user_message
        self.abort_signal = abort_signal
        self.assistant_message = AssistantMessage(
            content="", user_message_id=user_message.id, sources=[]
        )
        self.history: List[Any] = [*(previous_messages or []), user_message]
        self.error: Optional[BaseException] = None
        self.finished = False

    def finalize(self) -> None:
        """Append the reply (and an error message, if any). Runs at most once."""
        if self.finished:
            return
        self.finished = True

        if self.abort_signal.is_set():
            self.assistant_message.aborted = True

        self.history.append(self.assistant_message)

        if self.error is not None:
            self.history.append(
                error_message(describe_error(self.error), self.user_message.id)
            )

    def snapshot(self, finish: bool = False) -> TurnSnapshot:
        if finish:
            self.finalize()
        return TurnSnapshot(
            history=list(self.history),
            message=self.assistant_message.model_copy(),
            done=finish,
        )


def accumulate_tool_calls(
    queue: List[ToolCallRequest],
    by_index: Dict[int, ToolCallRequest],
    fragments: Iterable[ToolCallDelta],
) -> None:
    """Merge streamed tool-call fragments into ``queue``.

    Indexed fragments extend the entry created by the first fragment with the
    same index; fragments without an index always start a new entry.
    """
    for fragment in fragments:
        if fragment.index is None:
            queue.append(
                ToolCallRequest(
                    id=fragment.id or "",
                    name=fragment.name or "",
                    arguments=fragment.arguments or "",
                )
            )
            continue

        call = by_index.get(fragment.index)
        if call is None:
            call = ToolCallRequest()
            by_index[fragment.index] = call
            queue.append(call)

        if fragment.id:
            call.id = fragment.id
        if fragment.name:
            call.name += fragment.name
        if fragment.arguments:
            call.arguments += fragment.arguments


async def _next_delta(iterator: AsyncIterator[StreamDelta]) -> Optional[StreamDelta]:
    try:
        return await iterator.__anext__()
    except StopAsyncIteration:
        return None


async def iterate_until_aborted(
    stream: AsyncIterator[StreamDelta], abort_signal: asyncio.Event
) -> AsyncIterator[StreamDelta]:
    """Yield deltas from ``stream`` until it ends or ``abort_signal`` is set.

    Each read races against the abort signal so an abort terminates a pending
    network read instead of waiting for the next chunk.
    """
    iterator = stream.__aiter__()
    abort_task = asyncio.create_task(abort_signal.wait())
    read_task = None
    try:
        while not abort_signal.is_set():
            read_task = asyncio.create_task(_next_delta(iterator))
            await asyncio.wait(
                [read_task, abort_task], return_when=asyncio.FIRST_COMPLETED
            )

            if abort_signal.is_set():
                break

            delta = read_task.result()
            if delta is None:
                break
            yield delta
    finally:
        # The stream can only be closed once no read is in flight
        for task in (read_task, abort_task):
            if task is None:
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.debug(f"Stream read after abort failed: {e}")
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()


async def wait_before_retry(abort_signal: asyncio.Event, delay: float) -> None:
    """Sleep ``delay`` seconds, waking early when the turn is aborted."""
    try:
        await asyncio.wait_for(abort_signal.wait(), delay)
    except asyncio.TimeoutError:
        pass


async def run_turn(
    user_message: UserMessage,
    previous_messages: Sequence[Any],
    provider: LLMProvider,
    model: str,
    api_key: Optional[str],
    abort_signal: asyncio.Event,
    settings: Optional[ChatSettings] = None,
    tool_names: Iterable[str] = (),
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
    registry: Optional[ToolRegistry] = None,
    transport: Optional[Transport] = None,
    retry_delay: float = 0.0,
) -> AsyncIterator[TurnSnapshot]:
    """Run one conversation turn, yielding snapshots as the reply grows.

    Parameters
    ----------
    user_message : UserMessage
        The new message submitted by the user.
    previous_messages : Sequence
        History before ``user_message``; it is copied, never mutated.
    provider : LLMProvider
        Endpoint definition, used to build a transport and check credentials.
    model : str
        Model identifier sent with each request.
    api_key : str, optional
        Credential; falls back to the provider's environment variable.
    abort_signal : asyncio.Event
        Cooperative cancellation. Checked before each request and tool call,
        and raced against every stream read.
    settings : ChatSettings, optional
        Completion settings (temperature).
    tool_names : Iterable[str]
        Enabled tools; names unknown to ``registry`` are ignored.
    max_iterations : int
        Maximum number of provider requests in this turn.
    registry : ToolRegistry, optional
        Tool registry, the built-in tools by default.
    transport : Transport, optional
        Transport override, created from ``provider`` by default.
    retry_delay : float
        Base delay before retrying after a non rate-limit failure. Doubles on
        each consecutive failure, capped at 8 seconds. 0 retries immediately.

    Yields
    ------
    TurnSnapshot
        ``(history, message, done)``; exactly one snapshot has ``done=True``
        and it is always the last.
    """
    settings = settings or ChatSettings()
    registry = registry or default_registry()
    tools = registry.resolve(tool_names)
    tools_by_name: Dict[str, ToolDescriptor] = {tool.name: tool for tool in tools}
    declarations = registry.to_provider_declaration(tools)
    api_key = resolve_api_key(provider, api_key)
    transport = transport or create_transport(provider, api_key)

    turn = TurnState(user_message, previous_messages, abort_signal)
    log = TurnLoggerAdapter(logger, turn.assistant_message.id)
    log.log_item(
        "turn_start",
        {
            "provider": provider.id,
            "model": model,
            "tools": [tool.name for tool in tools],
            "max_iterations": max_iterations,
        },
    )

    yield turn.snapshot()

    consecutive_failures = 0
    for iteration in range(max_iterations):
        if abort_signal.is_set():
            break

        try:
            if provider.requires_api_key and not api_key:
                raise MissingCredentialError("Chat apiKey is empty")

            tool_queue: List[ToolCallRequest] = []
            tool_calls_by_index: Dict[int, ToolCallRequest] = {}

            stream = transport.create_streaming_completion(
                model=model,
                messages=to_provider_messages(turn.history),
                temperature=settings.temperature,
                tools=declarations,
                tool_choice="auto",
                parallel_tool_calls=False,
                abort_signal=abort_signal,
            )

            async for delta in iterate_until_aborted(stream, abort_signal):
                if delta.content:
                    turn.assistant_message.content += delta.content
                    yield turn.snapshot()

                if delta.tool_calls:
                    accumulate_tool_calls(tool_queue, tool_calls_by_index, delta.tool_calls)

            if abort_signal.is_set() or not any(not call.completed for call in tool_queue):
                turn.error = None
                break

            # Replay exactly what the model asked for before answering it
            turn.history.append(
                AssistantMessage(
                    content=turn.assistant_message.content or None,
                    tool_calls=[call.model_copy() for call in tool_queue],
                    user_message_id=user_message.id,
                )
            )

            for call in tool_queue:
                if abort_signal.is_set():
                    break
                if call.completed:
                    continue

                tool = tools_by_name.get(call.name)
                if tool is None:
                    log.log_item(
                        "tool_skipped",
                        {"tool_name": call.name, "call_id": call.id, "reason": "unknown tool"},
                    )
                    continue

                ok, params = tool.validate_arguments(call.arguments)
                if not ok:
                    log.log_item(
                        "tool_skipped",
                        {
                            "tool_name": call.name,
                            "call_id": call.id,
                            "arguments": call.arguments,
                            "reason": "invalid arguments",
                        },
                        level=logging.ERROR,
                    )
                    continue

                log.log_item(
                    "tool_call",
                    {"tool_name": call.name, "arguments": call.arguments, "call_id": call.id},
                )
                result = await tool.invoke(
                    params, turn.assistant_message, turn.history, abort_signal
                )

                if abort_signal.is_set():
                    break

                content = tool_result_content(result)
                turn.history.append(
                    ToolMessage(
                        tool_call_id=call.id,
                        content=content,
                        user_message_id=user_message.id,
                    )
                )
                call.completed = True
                log.log_item("tool_result", {"tool_name": call.name, "result": content})

                yield turn.snapshot()

            if abort_signal.is_set():
                break

            turn.error = None
            consecutive_failures = 0
        except asyncio.CancelledError:
            raise
        except Exception as e:
            turn.error = e
            log.exception(
                f"Chat completion attempt {iteration + 1} failed: {describe_error(e)}",
                extra={
                    "structured": {
                        "log_type": "request_error",
                        "iteration": iteration,
                        "rate_limited": is_rate_limited(e),
                    }
                },
            )
            if is_rate_limited(e):
                break

            consecutive_failures += 1
            if retry_delay and iteration + 1 < max_iterations:
                await wait_before_retry(
                    abort_signal,
                    min(retry_delay * 2 ** (consecutive_failures - 1), MAX_RETRY_DELAY),
                )

    final = turn.snapshot(finish=True)
    log.log_item(
        "turn_end",
        {
            "aborted": bool(final.message.aborted),
            "error": describe_error(turn.error) if turn.error is not None else None,
            "history_length": len(final.history),
        },
    )
    yield final


async def final_snapshot(stream: AsyncIterator[TurnSnapshot]) -> Optional[TurnSnapshot]:
    """Drain a turn stream and return its terminal (``done=True``) snapshot."""
    last = None
    async for snapshot in stream:
        last = snapshot
    return last
