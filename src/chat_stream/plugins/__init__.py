"""Built-in tool plugins."""

from .timestamp_plugin import TimestampPlugin
from .web_plugin import WebPlugin

__all__ = ["TimestampPlugin", "WebPlugin"]
