import asyncio
import json
import logging
from typing import Any, Callable, Dict, List, Optional

from fastapi import FastAPI, Header, HTTPException, Query, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from . import __version__
from .config import AppConfig
from .demo_transport import DEMO_MOCK_PROMPT_INFO, random_demo_prompt
from .errors import MissingCredentialError, TransportError, is_rate_limited
from .messages import ChatSettings, TurnSnapshot, UserMessage
from .orchestrator import run_turn
from .providers import (
    LLM_PROVIDERS,
    LLMProvider,
    create_transport,
    get_models,
    get_provider,
    resolve_api_key,
)
from .session_manager import ChatSessionManager
from .storage import KeyValueStore
from .tool_registry import ToolRegistry, default_registry
from .transport import Transport

logger = logging.getLogger(__name__)

TransportFactory = Callable[[LLMProvider, Optional[str]], Transport]

CLOSE_GRACE_PERIOD = 5.0


class EnabledTools(BaseModel):
    tools: List[str]


def snapshot_payload(chat_id: str, snapshot: TurnSnapshot) -> Dict[str, Any]:
    return {
        "type": "snapshot",
        "chat_id": chat_id,
        "done": snapshot.done,
        "message": snapshot.message.model_dump(),
        "history": [message.model_dump() for message in snapshot.history],
    }


class ChatConnection:
    """One websocket client. Runs at most one turn at a time."""

    def __init__(
        self,
        websocket: WebSocket,
        config: AppConfig,
        sessions: ChatSessionManager,
        registry: ToolRegistry,
        transport_factory: TransportFactory,
    ):
        self.websocket = websocket
        self.config = config
        self.sessions = sessions
        self.registry = registry
        self.transport_factory = transport_factory
        self.abort_signal: Optional[asyncio.Event] = None
        self.turn_task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self.turn_task is not None and not self.turn_task.done()

    async def send(self, payload: Dict[str, Any]) -> None:
        await self.websocket.send_text(json.dumps(payload, ensure_ascii=False))

    async def send_error(self, content: str) -> None:
        await self.send({"type": "error", "content": content})

    async def handle(self, message_data: Dict[str, Any]) -> None:
        message_type = message_data.get("type")
        if message_type == "stop":
            if self.abort_signal is not None:
                self.abort_signal.set()
            return

        if message_type not in ("user_message", "regenerate"):
            await self.send_error(f"Unknown message type: {message_type}")
            return

        if self.is_running:
            await self.send_error("A response is already being generated")
            return

        if message_type == "user_message":
            await self._start_user_message(message_data)
        else:
            await self._start_regeneration(message_data)

    async def _start_user_message(self, message_data: Dict[str, Any]) -> None:
        content = message_data.get("content")
        if not content:
            await self.send_error("Message content must not be empty")
            return

        chat = None
        chat_id = message_data.get("chat_id")
        if chat_id:
            chat = self.sessions.get_chat(chat_id)
            if chat is None:
                await self.send_error(f"Chat '{chat_id}' not found")
                return

        if chat is None:
            prompt = content if isinstance(content, str) else "New chat"
            chat = self.sessions.create_chat(prompt, message_data.get("template_id"))
            await self.send({"type": "chat_created", "chat_id": chat.id})

        self._start_turn(
            chat.id, UserMessage(content=content), list(chat.messages), message_data
        )

    async def _start_regeneration(self, message_data: Dict[str, Any]) -> None:
        chat_id = message_data.get("chat_id", "")
        try:
            user_message, previous = self.sessions.regeneration_point(
                chat_id, message_data.get("user_message_id", "")
            )
        except KeyError as e:
            await self.send_error(str(e.args[0]) if e.args else "Message not found")
            return

        self._start_turn(chat_id, user_message, previous, message_data)

    def _start_turn(
        self,
        chat_id: str,
        user_message: UserMessage,
        previous: List[Any],
        message_data: Dict[str, Any],
    ) -> None:
        provider = get_provider(message_data.get("provider") or self.config.provider)
        model = message_data.get("model") or self.config.model
        api_key = resolve_api_key(provider, message_data.get("api_key"))
        tool_names = message_data.get("tools")
        if tool_names is None:
            tool_names = self.sessions.get_tools()

        self.abort_signal = asyncio.Event()
        self.turn_task = asyncio.create_task(
            self._run_turn(
                chat_id,
                run_turn(
                    user_message,
                    previous,
                    provider=provider,
                    model=model,
                    api_key=api_key,
                    abort_signal=self.abort_signal,
                    settings=self.sessions.get_settings(),
                    tool_names=tool_names,
                    max_iterations=self.config.max_iterations,
                    registry=self.registry,
                    transport=self.transport_factory(provider, api_key),
                    retry_delay=self.config.retry_delay,
                ),
            )
        )

    async def _run_turn(self, chat_id: str, stream) -> None:
        await self.send_quietly({"type": "state", "is_running": True})
        try:
            async for snapshot in stream:
                self._save_snapshot(chat_id, snapshot)
                await self.send_quietly(snapshot_payload(chat_id, snapshot))
        except Exception as e:
            logger.error(f"ERROR: Error streaming turn for chat {chat_id}: {e}")
            return
        finally:
            await stream.aclose()
        await self.send_quietly({"type": "state", "is_running": False})

    def _save_snapshot(self, chat_id: str, snapshot: TurnSnapshot) -> None:
        # In-flight snapshots store the partial reply after the history
        if snapshot.done:
            messages = snapshot.history
        else:
            messages = [*snapshot.history, snapshot.message]
        self.sessions.set_chat_messages(chat_id, messages)

    async def send_quietly(self, payload: Dict[str, Any]) -> None:
        """Send a turn update; a closed socket must not stop the turn from being saved."""
        try:
            await self.send(payload)
        except Exception as e:
            logger.warning(f"SYSTEM: Could not deliver {payload.get('type')} update: {e}")

    async def close(self) -> None:
        if self.abort_signal is not None:
            self.abort_signal.set()
        if self.turn_task is None or self.turn_task.done():
            return
        try:
            # wait_for cancels the turn when it outlives the grace period
            await asyncio.wait_for(self.turn_task, CLOSE_GRACE_PERIOD)
        except asyncio.TimeoutError:
            logger.warning("SYSTEM: Turn did not stop after disconnect, cancelled it")


def create_app(
    config: Optional[AppConfig] = None,
    store: Optional[KeyValueStore] = None,
    registry: Optional[ToolRegistry] = None,
    transport_factory: Optional[TransportFactory] = None,
) -> FastAPI:
    """Build the HTTP and websocket surface around the turn orchestrator."""
    config = config or AppConfig.from_env()
    sessions = ChatSessionManager(store or config.create_store())
    registry = registry or default_registry()
    transport_factory = transport_factory or create_transport

    app = FastAPI(title="Chat Stream", version=__version__)
    app.state.config = config
    app.state.sessions = sessions
    app.state.registry = registry

    @app.get("/health")
    async def health():
        return {"status": "ok", "version": __version__}

    @app.get("/api/providers")
    async def list_providers():
        return [provider.model_dump() for provider in LLM_PROVIDERS]

    @app.get("/api/models")
    async def list_models(
        provider: Optional[str] = Query(None),
        x_api_key: Optional[str] = Header(None),
    ):
        llm_provider = get_provider(provider or config.provider)
        api_key = resolve_api_key(llm_provider, x_api_key)
        if llm_provider.requires_api_key and not api_key:
            raise HTTPException(status_code=401, detail=str(MissingCredentialError("Chat apiKey is empty")))
        try:
            models = await get_models(
                llm_provider, api_key, transport=transport_factory(llm_provider, api_key)
            )
        except TransportError as e:
            logger.warning(f"Listing models for {llm_provider.id} failed: {e}")
            status_code = 429 if is_rate_limited(e) else 502
            raise HTTPException(status_code=status_code, detail=str(e))
        return [model.model_dump() for model in models]

    @app.get("/api/tools")
    async def list_tools():
        return registry.describe()

    @app.get("/api/tools/enabled")
    async def get_enabled_tools():
        return {"tools": sessions.get_tools()}

    @app.put("/api/tools/enabled")
    async def set_enabled_tools(body: EnabledTools):
        unknown = [name for name in body.tools if not registry.has_tool(name)]
        if unknown:
            raise HTTPException(status_code=400, detail=f"Unknown tools: {', '.join(unknown)}")
        return {"tools": sessions.save_tools(body.tools)}

    @app.get("/api/settings")
    async def get_settings():
        return sessions.get_settings().model_dump()

    @app.put("/api/settings")
    async def put_settings(settings: ChatSettings):
        return sessions.save_settings(settings).model_dump()

    @app.get("/api/chats")
    async def list_chats():
        return [
            chat.model_dump(include={"id", "title", "created", "updated", "template_id"})
            for chat in sessions.list_chats()
        ]

    @app.get("/api/chats/{chat_id}")
    async def get_chat(chat_id: str):
        chat = sessions.get_chat(chat_id)
        if chat is None:
            raise HTTPException(status_code=404, detail="Chat not found")
        return chat.model_dump()

    @app.delete("/api/chats/{chat_id}")
    async def delete_chat(chat_id: str):
        if not sessions.delete_chat(chat_id):
            raise HTTPException(status_code=404, detail="Chat not found")
        return {"deleted": chat_id}

    @app.get("/api/templates")
    async def list_templates():
        return [template.model_dump() for template in sessions.templates()]

    @app.get("/api/demo/prompt")
    async def demo_prompt():
        return {"prompt": random_demo_prompt(), "info": DEMO_MOCK_PROMPT_INFO}

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        await websocket.accept()
        connection = ChatConnection(websocket, config, sessions, registry, transport_factory)
        try:
            while True:
                data = await websocket.receive_text()
                try:
                    message_data = json.loads(data)
                except json.JSONDecodeError:
                    await connection.send_error("Invalid JSON message")
                    continue
                if not isinstance(message_data, dict):
                    await connection.send_error("Invalid message")
                    continue
                await connection.handle(message_data)
        except WebSocketDisconnect:
            logger.info("SYSTEM: Client disconnected")
        except Exception as e:
            logger.error(f"ERROR: WebSocket error: {e}")
        finally:
            await connection.close()

    return app


app = create_app()
