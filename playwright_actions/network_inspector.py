"""Console log and expected-response inspection actions."""

from __future__ import annotations

import logging
from typing import Any, List, Optional

from .actions import action
from .console_log import ConsoleLogStore
from .models import ActionKind
from .responses import ResponseCorrelator


class NetworkInspectorFeature:
    """Query captured console output and correlate expected responses."""

    def __init__(
        self,
        console_store: ConsoleLogStore,
        correlator: ResponseCorrelator,
        logger: Optional[logging.Logger] = None,
    ):
        self.console_store = console_store
        self.correlator = correlator
        self.logger = logger or logging.getLogger(__name__)

    @action(
        "playwright_console_logs",
        kind=ActionKind.STATE,
        examples=[
            "playwright_console_logs(type='error', limit=20)",
            "playwright_console_logs(search='[api]', clear=True)",
        ],
    )
    async def console_logs(
        self,
        type: str = "all",
        search: Optional[str] = None,
        limit: Optional[int] = None,
        clear: bool = False,
    ) -> List[str]:
        """
        Retrieve console logs captured from the browser.

        Args:
            type (optional): One of `all`, `error`, `warning`, `log`, `info`,
                `debug`, `exception`. Default: `all`.
            search (optional): Plain substring to match in log text; square
                brackets and other punctuation are matched literally.
            limit (optional): Return only the most recent N matching entries.
            clear (optional): Empty the log store after reading. Default: `false`.
        """
        entries = self.console_store.query(type_=type, search=search, limit=limit, clear=clear)
        if not entries:
            return ["No console logs matching the criteria"]
        return [f"Retrieved {len(entries)} console log(s):"] + [e.render() for e in entries]

    @action(
        "playwright_expect_response",
        examples=["playwright_expect_response(id='login', url='**/api/login')"],
    )
    async def expect_response(self, page: Any, id: str, url: str) -> str:
        """
        Start waiting for an HTTP response whose URL matches ``url``.

        Returns immediately; use `playwright_assert_response` with the same
        ``id`` to wait for and check the response later.
        """
        self.correlator.expect(id, url)
        return f"Started waiting for response with ID {id}"

    @action("playwright_assert_response", kind=ActionKind.STATE)
    async def assert_response(self, id: str, value: Optional[str] = None) -> List[str]:
        """
        Wait for a response armed with `playwright_expect_response` and
        optionally check that its body contains ``value``.
        """
        captured = await self.correlator.assert_response(id, value)
        messages = [
            f"Response assertion for ID {id} successful",
            f"URL: {captured.url}",
            f"Status: {captured.status}",
        ]
        body = captured.body
        if captured.truncated:
            body += "\n[Body truncated]"
        messages.append(f"Body: {body}")
        return messages
