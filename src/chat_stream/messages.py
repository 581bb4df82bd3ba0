"""
Defines the core Pydantic data models for conversations.

Messages are a closed tagged union over roles. Internal bookkeeping fields
(id, error, aborted, sources, user_message_id) live next to the provider fields
and are stripped by :func:`to_provider_message` before a history is sent out.
"""

import json
from typing import Annotated, Any, Dict, List, Literal, NamedTuple, Optional, Union

from pydantic import BaseModel, Field

from .utils import new_id

# --- Constants ---
SYSTEM_ROLE = "system"
USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"
TOOL_ROLE = "tool"
DEVELOPER_ROLE = "developer"

ERROR_MESSAGE_TEMPLATE = (
    "#### An error has occured during chat completions:\n```\n{reason}\n```"
)


# --- Models ---
class Source(BaseModel):
    """A citation attached to a message."""

    title: str
    url: str
    favicon: str = ""


class ToolCallRequest(BaseModel):
    """A tool call requested by the model, assembled from streamed fragments."""

    id: str = ""
    name: str = ""
    arguments: str = ""
    completed: bool = False

    def to_provider_tool_call(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


class BaseChatMessage(BaseModel):
    id: str = Field(default_factory=new_id)
    error: Optional[bool] = None
    aborted: Optional[bool] = None
    sources: Optional[List[Source]] = None


class SystemMessage(BaseChatMessage):
    role: Literal["system"] = SYSTEM_ROLE
    content: str


class UserMessage(BaseChatMessage):
    role: Literal["user"] = USER_ROLE
    content: Union[str, List[Dict[str, Any]]]


class AssistantMessage(BaseChatMessage):
    role: Literal["assistant"] = ASSISTANT_ROLE
    content: Optional[str] = None
    tool_calls: Optional[List[ToolCallRequest]] = None
    user_message_id: Optional[str] = None


class ToolMessage(BaseChatMessage):
    role: Literal["tool"] = TOOL_ROLE
    content: str
    tool_call_id: str
    user_message_id: Optional[str] = None


class DeveloperMessage(BaseChatMessage):
    role: Literal["developer"] = DEVELOPER_ROLE
    content: str
    user_message_id: Optional[str] = None


ChatMessage = Annotated[
    Union[SystemMessage, UserMessage, AssistantMessage, ToolMessage, DeveloperMessage],
    Field(discriminator="role"),
]


class Conversation(BaseModel):
    """Ordered message history, validated through the role discriminator."""

    messages: List[ChatMessage] = Field(default_factory=list)


class ChatSettings(BaseModel):
    """Per-request completion settings."""

    temperature: float = Field(default=0.5, ge=0.0, le=1.0)


class TurnSnapshot(NamedTuple):
    """Progress of one conversation turn as seen by the caller."""

    history: List[Any]
    message: AssistantMessage
    done: bool


def parse_messages(data: List[Dict[str, Any]]) -> List[Any]:
    """Validate raw dictionaries (e.g. loaded from storage) into message models."""
    return Conversation(messages=data).messages


def to_provider_message(message: BaseChatMessage) -> Dict[str, Any]:
    """Render one message with only the fields the provider protocol defines."""
    if isinstance(message, SystemMessage):
        return {"role": SYSTEM_ROLE, "content": message.content}
    if isinstance(message, UserMessage):
        return {"role": USER_ROLE, "content": message.content}
    if isinstance(message, DeveloperMessage):
        return {"role": DEVELOPER_ROLE, "content": message.content}
    if isinstance(message, ToolMessage):
        return {
            "role": TOOL_ROLE,
            "tool_call_id": message.tool_call_id,
            "content": message.content,
        }
    if isinstance(message, AssistantMessage):
        payload: Dict[str, Any] = {"role": ASSISTANT_ROLE, "content": message.content}
        if message.tool_calls:
            payload["tool_calls"] = [
                call.to_provider_tool_call() for call in message.tool_calls
            ]
        return payload
    raise TypeError(f"Unsupported message type: {type(message).__name__}")


def to_provider_messages(history: List[BaseChatMessage]) -> List[Dict[str, Any]]:
    return [to_provider_message(message) for message in history]


def tool_result_content(result: Any) -> str:
    """Tool results may be strings or JSON-serializable structures."""
    if isinstance(result, str):
        return result
    if result is None:
        return ""
    return json.dumps(result, ensure_ascii=False)


def error_message(reason: str, user_message_id: Optional[str]) -> AssistantMessage:
    return AssistantMessage(
        content=ERROR_MESSAGE_TEMPLATE.format(reason=reason),
        user_message_id=user_message_id,
        error=True,
    )
