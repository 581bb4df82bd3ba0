import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field

from .messages import ChatMessage, ChatSettings, SystemMessage, UserMessage
from .storage import KeyValueStore
from .templates import PRESET_TEMPLATES, Template
from .utils import chat_title, new_id, now_ms

logger = logging.getLogger(__name__)

CHATS_KEY = "chats"
TEMPLATES_KEY = "templates"
SETTINGS_KEY = "settings"
TOOLS_KEY = "tools"


class AiChat(BaseModel):
    id: str = Field(default_factory=new_id)
    title: str
    created: int = Field(default_factory=now_ms)
    updated: int = Field(default_factory=now_ms)
    messages: List[ChatMessage] = Field(default_factory=list)
    template_id: Optional[str] = None


class ChatSessionManager:
    """Chats, templates, settings and enabled tools kept in a key-value store."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    # --- Chats ---
    def _load_chats(self) -> List[AiChat]:
        return [AiChat.model_validate(data) for data in self.store.get(CHATS_KEY, [])]

    def _save_chats(self, chats: List[AiChat]) -> None:
        chats = sorted(chats, key=lambda c: c.updated, reverse=True)
        self.store.set(CHATS_KEY, [chat.model_dump(mode="json") for chat in chats])

    def list_chats(self) -> List[AiChat]:
        """All chats, most recently updated first."""
        return sorted(self._load_chats(), key=lambda c: c.updated, reverse=True)

    def get_chat(self, chat_id: str) -> Optional[AiChat]:
        for chat in self._load_chats():
            if chat.id == chat_id:
                return chat
        return None

    def create_chat(self, prompt: str, template_id: Optional[str] = None) -> AiChat:
        """Create a chat titled after ``prompt``, seeded with the template's system prompt."""
        template = self.get_template(template_id) if template_id else None
        messages = []
        if template is not None:
            date = datetime.now(timezone.utc).isoformat()
            messages.append(SystemMessage(content=template.render(date)))

        chat = AiChat(
            title=chat_title(prompt),
            messages=messages,
            template_id=template_id if template is not None else None,
        )
        self._save_chats([*self._load_chats(), chat])
        logger.info(f"Created new chat: {chat.id}")
        return chat

    def update_chat(
        self,
        chat_id: str,
        value_or_fn: Union[Dict[str, Any], Callable[[AiChat], Dict[str, Any]]],
    ) -> Optional[AiChat]:
        """Apply partial updates to a chat; ``id`` is preserved and ``updated`` bumped."""
        if not chat_id:
            return None

        chats = self._load_chats()
        updated_chat = None
        for i, chat in enumerate(chats):
            if chat.id != chat_id:
                continue
            updates = value_or_fn(chat) if callable(value_or_fn) else value_or_fn
            data = {**chat.model_dump(), **updates, "id": chat.id, "updated": now_ms()}
            updated_chat = AiChat.model_validate(data)
            chats[i] = updated_chat

        if updated_chat is None:
            logger.warning(f"Chat {chat_id} not found, update ignored")
            return None

        self._save_chats(chats)
        return updated_chat

    def set_chat_messages(self, chat_id: str, messages: List[Any]) -> Optional[AiChat]:
        return self.update_chat(
            chat_id,
            {"messages": [message.model_dump() for message in messages or []]},
        )

    def delete_chat(self, chat_id: str) -> bool:
        chats = self._load_chats()
        remaining = [chat for chat in chats if chat.id != chat_id]
        if len(remaining) == len(chats):
            return False
        self._save_chats(remaining)
        logger.info(f"Deleted chat: {chat_id}")
        return True

    def regeneration_point(self, chat_id: str, user_message_id: str) -> Tuple[UserMessage, List[Any]]:
        """Return a copy of the user message and the history that preceded it.

        Raises:
            KeyError: If the chat or the user message does not exist
        """
        chat = self.get_chat(chat_id)
        if chat is None:
            raise KeyError(f"Chat '{chat_id}' not found")

        for index, message in enumerate(chat.messages):
            if message.id == user_message_id and isinstance(message, UserMessage):
                return message.model_copy(deep=True), list(chat.messages[:index])

        raise KeyError(f"User message '{user_message_id}' not found in chat '{chat_id}'")

    # --- Templates ---
    def custom_templates(self) -> List[Template]:
        return [Template.model_validate(data) for data in self.store.get(TEMPLATES_KEY, [])]

    def templates(self) -> List[Template]:
        return [*PRESET_TEMPLATES, *self.custom_templates()]

    def get_template(self, template_id: str) -> Optional[Template]:
        for template in self.templates():
            if template.id == template_id:
                return template
        return None

    def create_template(self, name: str, description: str, system: str) -> Template:
        template = Template(name=name, description=description, system=system)
        self.store.set(
            TEMPLATES_KEY,
            lambda previous: [*(previous or []), template.model_dump()],
        )
        return template

    def edit_template(self, template_id: str, updates: Dict[str, Any]) -> Optional[Template]:
        """Update a custom template. Presets are read-only."""
        templates = self.custom_templates()
        edited = None
        for i, template in enumerate(templates):
            if template.id == template_id:
                edited = Template.model_validate(
                    {**template.model_dump(), **updates, "id": template.id, "preset": False}
                )
                templates[i] = edited

        if edited is not None:
            self.store.set(TEMPLATES_KEY, [t.model_dump() for t in templates])
        return edited

    def delete_template(self, template_id: str) -> None:
        self.store.set(
            TEMPLATES_KEY,
            lambda previous: [t for t in previous or [] if t.get("id") != template_id],
        )

    # --- Settings and tools ---
    def get_settings(self) -> ChatSettings:
        data = self.store.get(SETTINGS_KEY)
        if not data:
            return ChatSettings()
        return ChatSettings.model_validate(data)

    def save_settings(self, settings: ChatSettings) -> ChatSettings:
        self.store.set(SETTINGS_KEY, settings.model_dump())
        return settings

    def get_tools(self) -> List[str]:
        return list(self.store.get(TOOLS_KEY, []))

    def save_tools(self, tool_names: List[str]) -> List[str]:
        self.store.set(TOOLS_KEY, list(tool_names))
        return list(tool_names)

    def clear_data(self) -> None:
        for key in (CHATS_KEY, SETTINGS_KEY, TEMPLATES_KEY, TOOLS_KEY):
            self.store.clear(key)
