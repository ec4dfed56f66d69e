"""Codegen session state machine."""

from __future__ import annotations

import logging
import re
import time
import uuid
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Union

from ..errors import InvalidArguments, InvalidSessionState, UnknownSessionId
from ..models import (
    CodegenOptions,
    CodegenSession,
    RecordedAction,
    SessionSnapshot,
    SessionState,
)


class CodegenBackend(Protocol):
    def render(self, actions: Sequence[RecordedAction], options: CodegenOptions, session_id: str) -> str:
        ...


def parse_options(raw: Union[CodegenOptions, Mapping[str, Any], None]) -> CodegenOptions:
    """Accept options as a dataclass or a camelCase/snake_case mapping."""
    if isinstance(raw, CodegenOptions):
        options = raw
    else:
        data = dict(raw or {})
        output_path = data.get("outputPath", data.get("output_path"))
        prefix = data.get("testNamePrefix", data.get("test_name_prefix"))
        comments = data.get("includeComments", data.get("include_comments"))
        options = CodegenOptions(
            output_path=str(output_path or "").strip(),
            test_name_prefix=str(prefix or "").strip() or "GeneratedTest",
            include_comments=bool(comments) if comments is not None else False,
        )
    if not options.output_path:
        raise InvalidArguments("outputPath is required to start a codegen session")
    return options


def snake_case(value: str) -> str:
    text = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", str(value or ""))
    text = re.sub(r"[^0-9A-Za-z]+", "_", text).strip("_").lower()
    return text or "generated_test"


class CodegenSessionManager:
    """
    Track codegen sessions keyed by id.

    ``Active --end--> Ended`` and ``Active --clear--> Cleared``; both targets
    are terminal. Terminal sessions stay registered so that ``get`` reports
    their final state and a repeated ``end``/``clear`` fails with
    ``InvalidSessionState`` instead of ``UnknownSessionId``.
    """

    def __init__(self, backend: CodegenBackend, logger: Optional[logging.Logger] = None):
        self.backend = backend
        self.logger = logger or logging.getLogger(__name__)
        self._sessions: Dict[str, CodegenSession] = {}
        self._started: List[str] = []

    @property
    def active_session_id(self) -> Optional[str]:
        """Most recently started session that is still active."""
        for sid in reversed(self._started):
            if self._sessions[sid].state == SessionState.ACTIVE:
                return sid
        return None

    def start(self, options: Union[CodegenOptions, Mapping[str, Any], None]) -> str:
        parsed = parse_options(options)
        session_id = uuid.uuid4().hex
        while session_id in self._sessions:
            session_id = uuid.uuid4().hex
        self._sessions[session_id] = CodegenSession(id=session_id, options=parsed)
        self._started.append(session_id)
        self.logger.info("Started codegen session %s (output: %s)", session_id, parsed.output_path)
        return session_id

    def record(self, session_id: Optional[str], recorded: RecordedAction) -> bool:
        """Append to an active session; silently ignore anything else."""
        session = self._sessions.get(str(session_id)) if session_id else None
        if session is None or session.state != SessionState.ACTIVE:
            return False
        session.actions.append(recorded)
        return True

    def get(self, session_id: str) -> SessionSnapshot:
        session = self._require(session_id)
        return SessionSnapshot(
            id=session.id,
            state=session.state,
            output_path=session.options.output_path,
            test_name_prefix=session.options.test_name_prefix,
            include_comments=session.options.include_comments,
            action_count=len(session.actions),
            created_at=session.created_at,
            ended_at=session.ended_at,
            output_file=session.output_file,
        )

    def end(self, session_id: str) -> str:
        """Render the recorded actions, write the test file and return its path."""
        session = self._require_active(session_id, "end")
        source = self.backend.render(tuple(session.actions), session.options, session.id)

        out_dir = Path(session.options.output_path).expanduser()
        out_dir.mkdir(parents=True, exist_ok=True)
        out_file = out_dir / f"test_{snake_case(session.options.test_name_prefix)}_{session.id[:8]}.py"
        out_file.write_text(source, encoding="utf-8")

        session.state = SessionState.ENDED
        session.ended_at = time.time()
        session.output_file = str(out_file)
        self.logger.info(
            "Ended codegen session %s with %d action(s): %s",
            session.id,
            len(session.actions),
            out_file,
        )
        return str(out_file)

    def clear(self, session_id: str) -> None:
        session = self._require_active(session_id, "clear")
        session.actions.clear()
        session.state = SessionState.CLEARED
        session.ended_at = time.time()
        self.logger.info("Cleared codegen session %s", session.id)

    def _require(self, session_id: str) -> CodegenSession:
        session = self._sessions.get(str(session_id or ""))
        if session is None:
            raise UnknownSessionId(f"Session {session_id} not found")
        return session

    def _require_active(self, session_id: str, operation: str) -> CodegenSession:
        session = self._require(session_id)
        if session.state != SessionState.ACTIVE:
            raise InvalidSessionState(
                f"Cannot {operation} session {session_id}: session is already {session.state.value}"
            )
        return session
