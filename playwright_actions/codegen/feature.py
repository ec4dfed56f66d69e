"""Codegen session management actions."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..actions import action
from ..models import ActionKind
from .manager import CodegenSessionManager


class CodegenFeature:
    """Start, inspect, finish and discard codegen recording sessions."""

    def __init__(self, manager: CodegenSessionManager, logger: Optional[logging.Logger] = None):
        self.manager = manager
        self.logger = logger or logging.getLogger(__name__)

    @action(
        "start_codegen_session",
        kind=ActionKind.CODEGEN,
        examples=["start_codegen_session(options={'outputPath': '/tmp/tests', 'testNamePrefix': 'Login'})"],
    )
    async def start_codegen_session(self, options: Dict[str, Any]) -> List[str]:
        """
        Start recording dispatched actions for test generation.

        Args:
            options: Mapping with `outputPath` (required, absolute directory for
                the generated test), `testNamePrefix` (default `GeneratedTest`)
                and `includeComments` (default `false`).
        """
        session_id = self.manager.start(options)
        snapshot = self.manager.get(session_id)
        return [
            f"Started codegen session: {session_id}",
            f"Output path: {snapshot.output_path}",
            f"Test name prefix: {snapshot.test_name_prefix}",
        ]

    @action("end_codegen_session", kind=ActionKind.CODEGEN)
    async def end_codegen_session(self, session_id: str) -> List[str]:
        """End a codegen session and write the generated test file."""
        path = self.manager.end(session_id)
        snapshot = self.manager.get(session_id)
        return [
            f"Ended codegen session: {session_id}",
            f"Recorded actions: {snapshot.action_count}",
            f"Generated test file: {path}",
        ]

    @action("get_codegen_session", kind=ActionKind.CODEGEN)
    async def get_codegen_session(self, session_id: str) -> List[str]:
        """Report a codegen session's state and recorded action count."""
        s = self.manager.get(session_id)
        lines = [
            f"Session: {s.id}",
            f"State: {s.state.value}",
            f"Actions recorded: {s.action_count}",
            f"Output path: {s.output_path}",
            f"Test name prefix: {s.test_name_prefix}",
            f"Include comments: {str(s.include_comments).lower()}",
        ]
        if s.output_file:
            lines.append(f"Generated test file: {s.output_file}")
        return lines

    @action("clear_codegen_session", kind=ActionKind.CODEGEN)
    async def clear_codegen_session(self, session_id: str) -> str:
        """Discard a codegen session's recorded actions without generating a test."""
        self.manager.clear(session_id)
        return f"Cleared codegen session: {session_id}"
