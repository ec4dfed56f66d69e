"""Shared models for the playwright action runtime."""

from __future__ import annotations

import asyncio
import enum
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple


class ActionKind(str, enum.Enum):
    """How the dispatcher prepares the runtime before a handler runs."""

    BROWSER = "browser"
    API = "api"
    STATE = "state"
    CODEGEN = "codegen"


@dataclass(frozen=True)
class ToolCall:
    """One inbound action invocation."""

    name: str
    arguments: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ExecutionResult:
    """Uniform response envelope returned by every dispatched action."""

    success: bool
    messages: Tuple[str, ...] = ()
    is_error: bool = False

    @classmethod
    def ok(cls, *messages: str) -> "ExecutionResult":
        return cls(success=True, messages=tuple(str(m) for m in messages), is_error=False)

    @classmethod
    def error(cls, *messages: str) -> "ExecutionResult":
        return cls(success=False, messages=tuple(str(m) for m in messages), is_error=True)

    @property
    def text(self) -> str:
        return "\n".join(self.messages)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "messages": list(self.messages),
            "isError": self.is_error,
        }


@dataclass(frozen=True)
class BrowserOptions:
    """Requested launch configuration. ``None`` fields are not compared."""

    browser_type: Optional[str] = None
    viewport_width: Optional[int] = None
    viewport_height: Optional[int] = None
    headless: Optional[bool] = None
    navigation_timeout_ms: Optional[int] = None
    user_agent: Optional[str] = None


@dataclass(frozen=True)
class ConsoleLogEntry:
    """One console message or uncaught exception observed on the page."""

    type: str
    text: str
    timestamp: float = field(default_factory=time.time)

    def render(self) -> str:
        return f"[{self.type}] {self.text}"


class WaitState(str, enum.Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    EXPIRED = "expired"


@dataclass(frozen=True)
class CapturedResponse:
    url: str
    status: int
    body: str
    truncated: bool = False


@dataclass
class PendingResponseWait:
    """An armed expectation for a network response, keyed by caller id."""

    id: str
    url_pattern: str
    deadline: float
    created_at: float = field(default_factory=time.monotonic)
    future: "asyncio.Future[CapturedResponse]" = field(default=None, repr=False)  # type: ignore[assignment]

    @property
    def state(self) -> WaitState:
        if self.future is not None and self.future.done():
            return WaitState.RESOLVED
        if time.monotonic() >= self.deadline:
            return WaitState.EXPIRED
        return WaitState.PENDING


class SessionState(str, enum.Enum):
    ACTIVE = "active"
    ENDED = "ended"
    CLEARED = "cleared"


@dataclass(frozen=True)
class CodegenOptions:
    output_path: str
    test_name_prefix: str = "GeneratedTest"
    include_comments: bool = False


@dataclass(frozen=True)
class RecordedAction:
    """A dispatched action captured for test generation."""

    tool_name: str
    arguments: Mapping[str, Any]
    timestamp: float
    outcome_summary: str = "ok"


@dataclass
class CodegenSession:
    """Mutable recording state for one codegen session."""

    id: str
    options: CodegenOptions
    created_at: float = field(default_factory=time.time)
    state: SessionState = SessionState.ACTIVE
    actions: list = field(default_factory=list)
    ended_at: Optional[float] = None
    output_file: Optional[str] = None


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of a codegen session returned by ``get``."""

    id: str
    state: SessionState
    output_path: str
    test_name_prefix: str
    include_comments: bool
    action_count: int
    created_at: float
    ended_at: Optional[float] = None
    output_file: Optional[str] = None
