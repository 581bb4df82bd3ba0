"""Tests for provider definitions and the OpenAI-compatible transport."""

import asyncio
from types import SimpleNamespace

import httpx
import openai
import pytest

from chat_stream.demo_transport import DemoTransport
from chat_stream.errors import RateLimitError, TransportError, is_rate_limited
from chat_stream.providers import (
    LLM_DEMO_PROVIDER,
    LLM_PROVIDERS,
    OpenAITransport,
    create_transport,
    get_models,
    get_provider,
    resolve_api_key,
    translate_error,
)


class FakeChunk:
    def __init__(self, payload):
        self.payload = payload

    def model_dump(self, exclude_none=False):
        return self.payload


class FakeStream:
    def __init__(self, chunks, error=None):
        self.chunks = chunks
        self.error = error
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for chunk in self.chunks:
            yield FakeChunk(chunk)
        if self.error is not None:
            raise self.error

    async def close(self):
        self.closed = True


class FakeCompletions:
    def __init__(self, stream=None, error=None):
        self.stream = stream
        self.error = error
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.stream


def fake_client(stream=None, error=None, models=()):
    completions = FakeCompletions(stream, error)

    async def list_models():
        return SimpleNamespace(data=[FakeChunk(m) for m in models])

    return SimpleNamespace(
        chat=SimpleNamespace(completions=completions),
        models=SimpleNamespace(list=list_models),
    )


def api_error(status_code, cls=openai.APIStatusError):
    request = httpx.Request("POST", "https://example.test/v1/chat/completions")
    response = httpx.Response(status_code, request=request)
    return cls("provider said no", response=response, body=None)


def content_chunk(text):
    return {"choices": [{"index": 0, "delta": {"content": text}}]}


def drain(stream):
    async def run():
        return [delta async for delta in stream]

    return asyncio.run(run())


class TestProviderDefinitions:
    def test_known_providers(self):
        ids = [p.id for p in LLM_PROVIDERS]
        assert ids == ["openai", "claude", "open_router", "groq", "perplexity", "demo"]
        assert get_provider("groq").base_url == "https://api.groq.com/openai/v1"

    def test_unknown_provider_falls_back_to_demo(self):
        assert get_provider("nope") is LLM_DEMO_PROVIDER
        assert get_provider(None).is_demo

    def test_resolve_api_key(self, monkeypatch):
        provider = get_provider("openai")
        monkeypatch.setenv("OPENAI_API_KEY", "from-env")
        assert resolve_api_key(provider, "explicit") == "explicit"
        assert resolve_api_key(provider) == "from-env"
        monkeypatch.delenv("OPENAI_API_KEY")
        assert resolve_api_key(provider) == ""
        assert resolve_api_key(LLM_DEMO_PROVIDER) == ""

    def test_create_transport(self):
        assert isinstance(create_transport(LLM_DEMO_PROVIDER), DemoTransport)
        transport = create_transport(get_provider("open_router"), "sk-test")
        assert isinstance(transport, OpenAITransport)
        assert str(transport.client.base_url).startswith("https://openrouter.ai/api/v1")


class TestTranslateError:
    def test_rate_limit(self):
        error = translate_error(api_error(429, openai.RateLimitError))
        assert isinstance(error, RateLimitError)
        assert is_rate_limited(error)

    def test_other_status(self):
        error = translate_error(api_error(500, openai.InternalServerError))
        assert type(error) is TransportError
        assert error.status_code == 500
        assert not is_rate_limited(error)

    def test_any_429_is_rate_limited(self):
        assert isinstance(translate_error(api_error(429)), RateLimitError)


class TestOpenAITransport:
    def test_streams_deltas_and_closes(self):
        stream = FakeStream(
            [
                content_chunk("Hel"),
                {
                    "choices": [
                        {
                            "index": 0,
                            "delta": {
                                "tool_calls": [
                                    {"index": 0, "id": "c1", "function": {"name": "f", "arguments": "{}"}}
                                ]
                            },
                        }
                    ]
                },
                {"choices": []},
            ]
        )
        client = fake_client(stream)
        transport = OpenAITransport(client=client)
        deltas = drain(transport.create_streaming_completion("m", [{"role": "user", "content": "hi"}]))

        assert deltas[0].content == "Hel"
        assert deltas[1].tool_calls[0].name == "f"
        assert deltas[2].content is None and deltas[2].tool_calls == []
        assert stream.closed

    def test_tool_options_only_with_tools(self):
        client = fake_client(FakeStream([]))
        transport = OpenAITransport(client=client)

        drain(transport.create_streaming_completion("m", [], temperature=0.2, tools=[]))
        drain(
            transport.create_streaming_completion(
                "m", [], tools=[{"type": "web_search"}], parallel_tool_calls=False
            )
        )

        without_tools, with_tools = client.chat.completions.calls
        assert without_tools == {"model": "m", "messages": [], "stream": True, "temperature": 0.2}
        assert with_tools["tools"] == [{"type": "web_search"}]
        assert with_tools["tool_choice"] == "auto"
        assert with_tools["parallel_tool_calls"] is False

    def test_request_errors_are_translated(self):
        client = fake_client(error=api_error(429, openai.RateLimitError))
        transport = OpenAITransport(client=client)
        with pytest.raises(RateLimitError):
            drain(transport.create_streaming_completion("m", []))

    def test_stream_errors_are_translated(self):
        stream = FakeStream([content_chunk("a")], error=api_error(502))
        transport = OpenAITransport(client=fake_client(stream))
        with pytest.raises(TransportError) as excinfo:
            drain(transport.create_streaming_completion("m", []))
        assert excinfo.value.status_code == 502
        assert stream.closed

    def test_abort_stops_reading(self):
        stream = FakeStream([content_chunk("a"), content_chunk("b")])
        transport = OpenAITransport(client=fake_client(stream))
        signal = asyncio.Event()
        signal.set()
        assert drain(transport.create_streaming_completion("m", [], abort_signal=signal)) == []
        assert stream.closed


def test_get_models_filters_listing():
    client = fake_client(models=[{"id": "gpt-4o", "owned_by": "openai"}, {"id": "text-embedding-3"}])
    transport = OpenAITransport(client=client)
    models = asyncio.run(get_models(get_provider("openai"), "k", transport=transport))
    assert [m.id for m in models] == ["gpt-4o"]


def test_get_models_demo():
    models = asyncio.run(get_models(LLM_DEMO_PROVIDER))
    assert [m.id for m in models] == ["demo_model"]
