"""Playwright-backed browser and HTTP actions behind a single dispatcher."""

from .config import ServerConfig, load_config
from .dispatcher import ActionDispatcher
from .errors import ActionError
from .models import ActionKind, ExecutionResult, ToolCall

__all__ = [
    "ActionDispatcher",
    "ActionError",
    "ActionKind",
    "ExecutionResult",
    "ServerConfig",
    "ToolCall",
    "load_config",
]
