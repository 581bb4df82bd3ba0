"""Concrete provider definitions and the OpenAI-compatible transport."""

import asyncio
import logging
import os
from typing import Any, AsyncIterator, Dict, List, Optional

import openai
from openai import AsyncOpenAI
from pydantic import BaseModel

from .demo_transport import DemoTransport
from .errors import RateLimitError, TransportError
from .model_catalog import ChatModel, filter_chat_models
from .transport import StreamDelta, Transport

logger = logging.getLogger(__name__)

DEMO_PROVIDER_ID = "demo"


class LLMProvider(BaseModel):
    """An OpenAI-compatible chat completions endpoint."""

    id: str
    label: str
    base_url: Optional[str] = None
    requires_api_key: bool = False
    api_key_env: Optional[str] = None

    @property
    def is_demo(self) -> bool:
        return self.id == DEMO_PROVIDER_ID


LLM_DEMO_PROVIDER = LLMProvider(id=DEMO_PROVIDER_ID, label="Demo")

LLM_PROVIDERS: List[LLMProvider] = [
    LLMProvider(
        id="openai",
        label="OpenAI",
        requires_api_key=True,
        api_key_env="OPENAI_API_KEY",
    ),
    LLMProvider(
        id="claude",
        label="Claude",
        base_url="https://api.anthropic.com/v1",
        requires_api_key=True,
        api_key_env="ANTHROPIC_API_KEY",
    ),
    LLMProvider(
        id="open_router",
        label="Open Router",
        base_url="https://openrouter.ai/api/v1",
        requires_api_key=True,
        api_key_env="OPENROUTER_API_KEY",
    ),
    LLMProvider(
        id="groq",
        label="Groq",
        base_url="https://api.groq.com/openai/v1",
        requires_api_key=True,
        api_key_env="GROQ_API_KEY",
    ),
    LLMProvider(
        id="perplexity",
        label="Perplexity",
        base_url="https://api.perplexity.ai",
        requires_api_key=True,
        api_key_env="PERPLEXITY_API_KEY",
    ),
    LLM_DEMO_PROVIDER,
]


def get_provider(provider_id: Optional[str]) -> LLMProvider:
    """Look up a provider, falling back to the demo provider."""
    for provider in LLM_PROVIDERS:
        if provider.id == provider_id:
            return provider
    return LLM_DEMO_PROVIDER


def resolve_api_key(provider: LLMProvider, api_key: Optional[str] = None) -> str:
    """Explicit key first, then the provider's environment variable."""
    if api_key:
        return api_key
    if provider.api_key_env:
        return os.getenv(provider.api_key_env, "")
    return ""


def translate_error(error: Exception) -> TransportError:
    """Classify an SDK error as rate-limited or other."""
    status_code = getattr(error, "status_code", None)
    message = getattr(error, "message", None) or str(error)
    if isinstance(error, openai.RateLimitError) or status_code == 429:
        return RateLimitError(message)
    return TransportError(message, status_code=status_code)


class OpenAITransport(Transport):
    """Transport for any OpenAI-compatible chat completions API."""

    def __init__(self, base_url: Optional[str] = None, api_key: str = "", client=None):
        self.client = client or AsyncOpenAI(base_url=base_url, api_key=api_key or "")

    async def list_models(self) -> List[Dict[str, Any]]:
        try:
            page = await self.client.models.list()
        except openai.APIError as e:
            raise translate_error(e) from e
        return [model.model_dump() for model in page.data]

    async def create_streaming_completion(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        temperature: Optional[float] = None,
        tools: Optional[List[Dict[str, Any]]] = None,
        tool_choice: str = "auto",
        parallel_tool_calls: bool = False,
        abort_signal: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[StreamDelta]:
        create_args: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "stream": True,
        }
        if temperature is not None:
            create_args["temperature"] = temperature
        # Providers reject an empty tools list and tool options without tools
        if tools:
            create_args["tools"] = tools
            create_args["tool_choice"] = tool_choice
            create_args["parallel_tool_calls"] = parallel_tool_calls

        try:
            stream = await self.client.chat.completions.create(**create_args)
        except openai.APIError as e:
            raise translate_error(e) from e

        try:
            async for chunk in stream:
                if abort_signal is not None and abort_signal.is_set():
                    break
                yield StreamDelta.from_chunk(chunk.model_dump(exclude_none=True))
        except openai.APIError as e:
            raise translate_error(e) from e
        finally:
            await stream.close()


def create_transport(provider: LLMProvider, api_key: Optional[str] = None) -> Transport:
    if provider.is_demo:
        return DemoTransport()
    return OpenAITransport(base_url=provider.base_url, api_key=resolve_api_key(provider, api_key))


async def get_models(
    provider: LLMProvider,
    api_key: Optional[str] = None,
    transport: Optional[Transport] = None,
) -> List[ChatModel]:
    """List the provider's chat-capable models in canonical form."""
    transport = transport or create_transport(provider, api_key)
    descriptors = await transport.list_models()
    models = filter_chat_models(descriptors)
    logger.info(f"Provider {provider.id}: {len(models)} of {len(descriptors)} models are chat-capable")
    return models
