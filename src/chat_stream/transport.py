"""Provider transport interface and the normalized stream delta types."""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Mapping, NamedTuple, Optional


class ToolCallDelta(NamedTuple):
    """One streamed fragment of a tool call."""

    index: Optional[int] = None
    id: Optional[str] = None
    name: Optional[str] = None
    arguments: Optional[str] = None


class StreamDelta(NamedTuple):
    """Normalized content of one chat-completion stream chunk."""

    content: Optional[str] = None
    tool_calls: List[ToolCallDelta] = []

    @classmethod
    def from_chunk(cls, chunk: Mapping[str, Any]) -> "StreamDelta":
        """Parse a ``chat.completion.chunk`` payload."""
        choices = chunk.get("choices") or []
        if not choices:
            return cls()

        delta = choices[0].get("delta") or {}
        tool_calls = []
        for call in delta.get("tool_calls") or []:
            function = call.get("function") or {}
            tool_calls.append(
                ToolCallDelta(
                    index=call.get("index"),
                    id=call.get("id"),
                    name=function.get("name"),
                    arguments=function.get("arguments"),
                )
            )
        return cls(content=delta.get("content") or None, tool_calls=tool_calls)


class Transport(ABC):
    """Request surface the orchestrator needs from a provider."""

    @abstractmethod
    async def list_models(self) -> List[Dict[str, Any]]:
        """Return the provider's raw model descriptors."""
        pass

    @abstractmethod
    def create_streaming_completion(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        temperature: Optional[float] = None,
        tools: Optional[List[Dict[str, Any]]] = None,
        tool_choice: str = "auto",
        parallel_tool_calls: bool = False,
        abort_signal: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[StreamDelta]:
        """Start a streaming completion.

        Parameters
        ----------
        model : str
            Model identifier.
        messages : List[Dict[str, Any]]
            History already stripped to provider protocol fields.
        temperature : float, optional
            Sampling temperature.
        tools : List[Dict[str, Any]], optional
            Tool declarations. ``tool_choice`` and ``parallel_tool_calls`` only
            apply when tools are present.
        abort_signal : asyncio.Event, optional
            Once set, the stream should stop producing deltas.

        Returns
        -------
        AsyncIterator[StreamDelta]
            Deltas in arrival order. Failures are raised while iterating.
        """
        pass
