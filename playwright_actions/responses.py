"""Correlate armed response expectations with observed network responses."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from typing import Any, Dict, List, Optional, Pattern

from .errors import (
    InvalidArguments,
    ResponseAssertionMismatch,
    ResponseTimeout,
    UnknownWaitId,
)
from .models import CapturedResponse, PendingResponseWait, WaitState


def compile_url_pattern(pattern: str) -> Pattern[str]:
    """
    Compile a URL pattern into a regex.

    ``re:`` prefix means a raw regex searched anywhere in the URL. Otherwise
    glob rules apply: ``**`` matches anything, ``*`` anything except ``/``,
    ``?`` one character. A pattern without wildcards must equal the URL.
    """
    text = str(pattern or "")
    if text.startswith("re:"):
        return re.compile(text[3:])

    out: List[str] = ["^"]
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == "*":
            if text[i : i + 2] == "**":
                out.append(".*")
                i += 2
                continue
            out.append("[^/]*")
        elif ch == "?":
            out.append(".")
        else:
            out.append(re.escape(ch))
        i += 1
    out.append("$")
    return re.compile("".join(out))


def _pattern_hit(pattern: str, regex: Pattern[str], url: str) -> bool:
    if str(pattern or "").startswith("re:"):
        return regex.search(url) is not None
    return regex.match(url) is not None


def url_matches(pattern: str, url: str) -> bool:
    return _pattern_hit(pattern, compile_url_pattern(pattern), url)


class ResponseCorrelator:
    """Pair ``expect(id, pattern)`` registrations with later ``wait(id)`` calls."""

    def __init__(
        self,
        timeout_ms: int = 30000,
        max_body_chars: int = 65536,
        logger: Optional[logging.Logger] = None,
    ):
        self.timeout_ms = int(timeout_ms)
        self.max_body_chars = max(1, int(max_body_chars))
        self.logger = logger or logging.getLogger(__name__)
        self._waits: Dict[str, PendingResponseWait] = {}
        self._patterns: Dict[str, Pattern[str]] = {}

    def __contains__(self, wait_id: str) -> bool:
        return wait_id in self._waits

    def expect(self, wait_id: str, url_pattern: str, timeout_ms: Optional[int] = None) -> PendingResponseWait:
        """Arm a wait; never blocks."""
        wid = str(wait_id or "").strip()
        pattern = str(url_pattern or "").strip()
        if not wid:
            raise InvalidArguments("Response wait id is required")
        if not pattern:
            raise InvalidArguments("URL pattern is required")

        existing = self._waits.get(wid)
        if existing is not None and existing.state == WaitState.PENDING:
            raise InvalidArguments(f"A response wait with id '{wid}' is already pending")

        loop = asyncio.get_running_loop()
        budget = int(timeout_ms if timeout_ms is not None else self.timeout_ms)
        wait = PendingResponseWait(
            id=wid,
            url_pattern=pattern,
            deadline=time.monotonic() + budget / 1000.0,
            future=loop.create_future(),
        )
        self._waits[wid] = wait
        self._patterns[wid] = compile_url_pattern(pattern)
        self.logger.debug("Armed response wait id=%s pattern=%s", wid, pattern)
        return wait

    def matching_waits(self, url: str) -> List[PendingResponseWait]:
        """Pending waits whose pattern matches ``url``; expired waits never match."""
        now = time.monotonic()
        out: List[PendingResponseWait] = []
        for wid, wait in self._waits.items():
            if wait.future is None or wait.future.done() or now >= wait.deadline:
                continue
            if _pattern_hit(wait.url_pattern, self._patterns[wid], url):
                out.append(wait)
        return out

    async def on_response(self, response: Any) -> None:
        """Driver listener: resolve every pending wait whose pattern matches."""
        url = str(getattr(response, "url", "") or "")
        waits = self.matching_waits(url)
        if not waits:
            return
        try:
            body = await response.text()
        except Exception:
            body = ""
        truncated = len(body) > self.max_body_chars
        captured = CapturedResponse(
            url=url,
            status=int(getattr(response, "status", 0) or 0),
            body=body[: self.max_body_chars],
            truncated=truncated,
        )
        for wait in waits:
            if wait.future is not None and not wait.future.done():
                wait.future.set_result(captured)
                self.logger.debug("Resolved response wait id=%s url=%s", wait.id, url)

    async def wait(self, wait_id: str) -> CapturedResponse:
        """
        Consume the wait for ``wait_id``.

        Blocks until a matching response arrives or the wait's deadline passes.
        The wait stays registered while blocking so that responses can still
        resolve it, and is removed whatever the outcome; a second call for the
        same id raises ``UnknownWaitId``.
        """
        wid = str(wait_id or "").strip()
        wait = self._waits.get(wid)
        if wait is None:
            raise UnknownWaitId(f"No response expectation found with id: {wid}")

        future = wait.future
        try:
            if future.done():
                return future.result()

            remaining = wait.deadline - time.monotonic()
            if remaining > 0:
                try:
                    return await asyncio.wait_for(asyncio.shield(future), timeout=remaining)
                except asyncio.TimeoutError:
                    pass
                except asyncio.CancelledError:
                    if not future.cancelled():
                        raise
                    raise UnknownWaitId(f"Response expectation {wid} was discarded") from None
            future.cancel()
            budget_s = wait.deadline - wait.created_at
            raise ResponseTimeout(
                f"Timed out after {budget_s:.1f}s waiting for response matching "
                f"'{wait.url_pattern}' (id: {wid})"
            )
        finally:
            if self._waits.get(wid) is wait:
                self._waits.pop(wid, None)
                self._patterns.pop(wid, None)

    async def assert_response(self, wait_id: str, expected_body: Optional[str] = None) -> CapturedResponse:
        captured = await self.wait(wait_id)
        fragment = expected_body if expected_body is not None else ""
        if fragment and fragment not in captured.body:
            raise ResponseAssertionMismatch(
                f"Response body for id '{wait_id}' does not contain expected value: {fragment}\n"
                f"Actual body: {captured.body}"
            )
        return captured

    def clear(self) -> None:
        """Drop every wait, cancelling those still pending."""
        for wait in self._waits.values():
            if wait.future is not None and not wait.future.done():
                wait.future.cancel()
        self._waits.clear()
        self._patterns.clear()
