"""
Chat Stream - streaming, tool-calling conversations over OpenAI-compatible APIs.

This package runs one conversation turn at a time as an async stream of
snapshots, executing the tools the model asks for between requests.
"""

__version__ = "0.1.0"

from .orchestrator import final_snapshot, run_turn
from .providers import LLM_PROVIDERS, LLMProvider, get_provider
from .tool_registry import ToolDescriptor, ToolRegistry

__all__ = [
    "run_turn",
    "final_snapshot",
    "LLMProvider",
    "LLM_PROVIDERS",
    "get_provider",
    "ToolDescriptor",
    "ToolRegistry",
]
