"""
Core pytest configuration and fixtures for chat_stream testing.

Provides a scripted fake transport, providers, tool registries and stores
shared by the unit and integration suites.
"""

import asyncio
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
from pydantic import BaseModel

from chat_stream.messages import UserMessage
from chat_stream.providers import LLM_DEMO_PROVIDER, LLMProvider
from chat_stream.storage import InMemoryStore
from chat_stream.tool_registry import ToolDescriptor, ToolRegistry
from chat_stream.transport import StreamDelta, ToolCallDelta, Transport

# Marker inside a script: block until the read is cancelled.
HANG = object()


class ScriptedTransport(Transport):
    """Transport replaying one script per request.

    A script is a list of items: strings become content deltas, ``StreamDelta``
    values are emitted as-is, exceptions are raised and ``HANG`` blocks forever.
    A script that is itself an exception fails the whole request.
    """

    def __init__(self, scripts=None, models=None):
        self.scripts = list(scripts or [])
        self.models = models if models is not None else []
        self.requests: List[Dict[str, Any]] = []

    async def list_models(self):
        if isinstance(self.models, Exception):
            raise self.models
        return list(self.models)

    async def create_streaming_completion(
        self,
        model,
        messages,
        temperature=None,
        tools=None,
        tool_choice="auto",
        parallel_tool_calls=False,
        abort_signal=None,
    ):
        self.requests.append(
            {
                "model": model,
                "messages": messages,
                "temperature": temperature,
                "tools": tools,
                "tool_choice": tool_choice,
                "parallel_tool_calls": parallel_tool_calls,
            }
        )
        script = self.scripts.pop(0) if self.scripts else []
        if isinstance(script, Exception):
            raise script

        for item in script:
            if item is HANG:
                await asyncio.sleep(3600)
            elif isinstance(item, Exception):
                raise item
            elif isinstance(item, str):
                yield StreamDelta(content=item)
            else:
                yield item


def tool_delta(index=0, id=None, name=None, arguments=None) -> StreamDelta:
    return StreamDelta(
        tool_calls=[ToolCallDelta(index=index, id=id, name=name, arguments=arguments)]
    )


class EchoParameters(BaseModel):
    text: str


def _echo(params, assistant_message, history, abort_signal=None):
    return params.text.upper()


async def _lookup(params, assistant_message, history, abort_signal=None):
    return {"text": params.text, "length": len(params.text)}


# ===== FIXTURES =====


@pytest.fixture
def scripted_transport():
    """Factory for scripted transports."""
    return ScriptedTransport


@pytest.fixture
def hang():
    return HANG


@pytest.fixture
def make_tool_delta():
    return tool_delta


@pytest.fixture
def demo_provider() -> LLMProvider:
    return LLM_DEMO_PROVIDER


@pytest.fixture
def keyed_provider() -> LLMProvider:
    """Provider that requires a key and has no environment fallback."""
    return LLMProvider(id="test", label="Test", requires_api_key=True)


@pytest.fixture
def user_message() -> UserMessage:
    return UserMessage(content="Hello there")


@pytest.fixture
def echo_registry() -> ToolRegistry:
    """Registry with a sync ``echo`` tool and an async ``lookup`` tool."""
    return ToolRegistry(
        [
            ToolDescriptor(
                name="echo",
                description="Upper-cases text",
                parameters=EchoParameters,
                action=_echo,
            ),
            ToolDescriptor(
                name="lookup",
                description="Describes text",
                parameters=EchoParameters,
                action=_lookup,
            ),
        ]
    )


@pytest.fixture
def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def temp_dir():
    """Temporary directory for file-based tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def collect():
    """Run an async iterator to completion and return its items."""

    def _collect(stream, timeout: Optional[float] = 5.0):
        async def drain():
            return [item async for item in stream]

        return asyncio.run(asyncio.wait_for(drain(), timeout))

    return _collect


# ===== CONFIGURATION =====


def pytest_configure(config):
    """Pytest configuration."""
    config.addinivalue_line("markers", "integration: marks tests as integration tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on location."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
