"""
Tool registry for declarative tool descriptors and their provider declarations.

Each tool carries a pydantic model describing its input. The registry renders
descriptors as chat-completions function declarations, validates streamed
argument text without raising, and invokes sync or async actions.
"""

import inspect
import json
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

# Tool rendered as a provider-native capability rather than a function.
WEB_SEARCH_TOOL_NAME = "web_search"


class NoParameters(BaseModel):
    """Input schema for tools that take no arguments."""


class ToolDescriptor:
    """A tool the model may call.

    Args:
        name: Function name exposed to the model
        description: What the tool does, shown to the model
        action: Callable receiving (params, assistant_message, history, abort_signal).
            May be a coroutine function. Returns a string or a JSON-serializable value.
        parameters: Pydantic model validating the call arguments
        title: Optional human readable title
    """

    def __init__(
        self,
        name: str,
        description: str,
        action: Callable[..., Any],
        parameters: Optional[Type[BaseModel]] = None,
        title: Optional[str] = None,
    ):
        if not name:
            raise ValueError("Tool name must not be empty")
        if not callable(action):
            raise ValueError(f"Tool '{name}' action must be callable")
        self.name = name
        self.description = description
        self.action = action
        self.parameters = parameters or NoParameters
        self.title = title or name

    def __repr__(self):
        return f"ToolDescriptor(name={self.name!r})"

    @property
    def is_native(self) -> bool:
        return self.name == WEB_SEARCH_TOOL_NAME

    def json_schema(self) -> Dict[str, Any]:
        return self.parameters.model_json_schema()

    def to_provider_declaration(self) -> Dict[str, Any]:
        """Render this tool for the ``tools`` field of a completion request."""
        if self.is_native:
            return {"type": WEB_SEARCH_TOOL_NAME}
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.json_schema(),
            },
        }

    def validate_arguments(self, arguments: str) -> Tuple[bool, Optional[BaseModel]]:
        """Parse and validate argument text. Never raises.

        Returns:
            (True, params) on success, (False, None) on malformed JSON or schema mismatch
        """
        try:
            data = json.loads(arguments) if arguments and arguments.strip() else {}
        except (json.JSONDecodeError, TypeError) as e:
            logger.info(f"TOOL JSON ERROR: {self.name} - {str(e)}")
            return False, None

        try:
            return True, self.parameters.model_validate(data)
        except ValidationError as e:
            logger.info(f"TOOL VALIDATION ERROR: {self.name} - {e.error_count()} error(s)")
            return False, None

    async def invoke(self, params: BaseModel, assistant_message, history, abort_signal=None) -> Any:
        """Run the action, awaiting it when it is asynchronous."""
        if inspect.iscoroutinefunction(self.action):
            return await self.action(params, assistant_message, history, abort_signal)

        result = self.action(params, assistant_message, history, abort_signal)
        if inspect.isawaitable(result):
            result = await result
        return result


class ToolRegistry:
    """Registry for managing tool descriptors."""

    def __init__(self, tools: Optional[Iterable[ToolDescriptor]] = None):
        self.tools: Dict[str, ToolDescriptor] = {}
        for tool in tools or []:
            self.register(tool)

    @classmethod
    def from_plugins(cls, plugins: list) -> "ToolRegistry":
        """Collect the tools every plugin offers through ``hook_provide_tools``."""
        registry = cls()
        for plugin in plugins:
            if hasattr(plugin, "hook_provide_tools"):
                for tool in plugin.hook_provide_tools():
                    registry.register(tool)
        return registry

    def register(self, tool: ToolDescriptor) -> None:
        if tool.name in self.tools:
            logger.warning(f"Tool '{tool.name}' registered twice, replacing")
        self.tools[tool.name] = tool

    def get(self, name: str) -> Optional[ToolDescriptor]:
        return self.tools.get(name)

    def get_tool_names(self) -> List[str]:
        """Get list of registered tool names."""
        return list(self.tools.keys())

    def has_tool(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self.tools

    def resolve(self, names: Iterable[str]) -> List[ToolDescriptor]:
        """Look up enabled tool names, silently ignoring unknown ones."""
        resolved = []
        for name in names:
            tool = self.tools.get(name)
            if tool is not None and tool not in resolved:
                resolved.append(tool)
        return resolved

    def to_provider_declaration(
        self, tools: Optional[Iterable[ToolDescriptor]] = None
    ) -> List[Dict[str, Any]]:
        """Get provider declarations for ``tools`` (all registered tools by default)."""
        selected = self.tools.values() if tools is None else tools
        return [tool.to_provider_declaration() for tool in selected]

    def describe(self) -> List[Dict[str, Any]]:
        """Summaries for listing tools in a UI."""
        return [
            {"name": tool.name, "title": tool.title, "description": tool.description}
            for tool in self.tools.values()
        ]

    def clear(self) -> None:
        """Clear all registered tools."""
        self.tools.clear()

    def __len__(self) -> int:
        """Get number of registered tools."""
        return len(self.tools)


def default_registry() -> ToolRegistry:
    """Registry holding the built-in tools."""
    from .plugins.timestamp_plugin import TimestampPlugin
    from .plugins.web_plugin import WebPlugin

    return ToolRegistry.from_plugins([TimestampPlugin(), WebPlugin()])
