"""HTTP request actions issued through the Playwright API request context."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from .actions import action
from .config import ServerConfig
from .models import ActionKind


class ApiRequestsFeature:
    """Issue GET/POST/PUT/PATCH/DELETE requests outside the page."""

    def __init__(self, config: Optional[ServerConfig] = None, logger: Optional[logging.Logger] = None):
        self.config = config or ServerConfig()
        self.logger = logger or logging.getLogger(__name__)

    @action("playwright_get", kind=ActionKind.API)
    async def get(self, api: Any, url: str) -> List[str]:
        """Perform an HTTP GET request."""
        response = await api.get(url)
        return await self._report("GET", url, response)

    @action(
        "playwright_post",
        kind=ActionKind.API,
        examples=["playwright_post(url='https://api.example.com/items', value='{\"name\": \"x\"}', token='abc')"],
    )
    async def post(
        self,
        api: Any,
        url: str,
        value: str,
        token: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> List[str]:
        """Perform an HTTP POST request with a JSON body."""
        response = await api.post(url, data=self._body(value), headers=self._headers(token, headers))
        return await self._report("POST", url, response)

    @action("playwright_put", kind=ActionKind.API)
    async def put(self, api: Any, url: str, value: str) -> List[str]:
        """Perform an HTTP PUT request with a JSON body."""
        response = await api.put(url, data=self._body(value), headers=self._headers())
        return await self._report("PUT", url, response)

    @action("playwright_patch", kind=ActionKind.API)
    async def patch(self, api: Any, url: str, value: str) -> List[str]:
        """Perform an HTTP PATCH request with a JSON body."""
        response = await api.patch(url, data=self._body(value), headers=self._headers())
        return await self._report("PATCH", url, response)

    @action("playwright_delete", kind=ActionKind.API)
    async def delete(self, api: Any, url: str) -> List[str]:
        """Perform an HTTP DELETE request."""
        response = await api.delete(url)
        return await self._report("DELETE", url, response)

    def _body(self, value: Any) -> str:
        if isinstance(value, (dict, list)):
            return json.dumps(value)
        return str(value if value is not None else "")

    def _headers(
        self,
        token: Optional[str] = None,
        extra: Optional[Dict[str, str]] = None,
    ) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        for key, val in (extra or {}).items():
            headers[str(key)] = str(val)
        return headers

    async def _report(self, method: str, url: str, response: Any) -> List[str]:
        status = int(getattr(response, "status", 0) or 0)
        try:
            text = await response.text()
        except Exception as e:
            self.logger.debug("Could not read %s %s response body: %s", method, url, e)
            text = ""
        try:
            body = json.dumps(json.loads(text), indent=2, ensure_ascii=False)
        except (TypeError, ValueError):
            body = text

        limit = self.config.response_body_limit
        if len(body) > limit:
            body = body[:limit] + "\n[Response truncated]"
        return [
            f"Performed {method} Operation {url}",
            f"Response: {body}",
            f"Response code {status}",
        ]
