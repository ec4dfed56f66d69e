"""Playwright browser/context/page lifecycle."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional, Set

from playwright.async_api import async_playwright

from .config import BROWSER_TYPES, ServerConfig
from .console_log import ConsoleLogStore
from .errors import LaunchFailure
from .models import BrowserOptions
from .responses import ResponseCorrelator

# Reports unhandled promise rejections through console.error so they land in
# the console log store like any other console message.
UNHANDLED_REJECTION_SCRIPT = """
window.addEventListener('unhandledrejection', (event) => {
  const reason = event.reason;
  const text = reason && reason.stack ? reason.stack : String(reason);
  console.error('[Unhandled Rejection In Promise] ' + text);
});
"""


class BrowserSessionManager:
    """
    Own the single active page and the browser resources behind it.

    The page handle is replaced, never mutated: ``ensure_page`` launches or
    relaunches, ``set_active_page`` swaps in a tab opened by a click, and
    ``close_all`` tears everything down along with the page-scoped console log
    and pending response waits.
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        console_store: Optional[ConsoleLogStore] = None,
        correlator: Optional[ResponseCorrelator] = None,
        driver_factory: Optional[Callable[[], Any]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or ServerConfig()
        if console_store is None:
            console_store = ConsoleLogStore(self.config.console_log_limit)
        if correlator is None:
            correlator = ResponseCorrelator(
                timeout_ms=self.config.response_timeout_ms,
                max_body_chars=self.config.response_body_limit,
            )
        self.console_store = console_store
        self.correlator = correlator
        self.logger = logger or logging.getLogger(__name__)
        self._driver_factory = driver_factory or async_playwright
        self._playwright: Any = None
        self._browser: Any = None
        self._context: Any = None
        self._page: Any = None
        self._api_context: Any = None
        self._launch_options: Optional[BrowserOptions] = None
        self._instrumented: Set[int] = set()
        self._tasks: Set["asyncio.Task[Any]"] = set()
        self.launch_count = 0

    @property
    def is_running(self) -> bool:
        return self._browser is not None

    @property
    def launch_options(self) -> Optional[BrowserOptions]:
        return self._launch_options

    def get_active_page(self) -> Any:
        """Return the live page, falling back to another open tab in the context."""
        page = self._page
        if page is not None:
            try:
                if not page.is_closed():
                    return page
            except Exception:
                pass

        if self._context is None:
            return None
        try:
            for candidate in self._context.pages:
                if not candidate.is_closed():
                    self.set_active_page(candidate)
                    return candidate
        except Exception:
            return None
        return None

    def set_active_page(self, page: Any) -> None:
        """Replace the active handle with a page opened in the current context."""
        if page is None:
            raise ValueError("Cannot activate a missing page")
        self._instrument(page)
        if page is not self._page:
            self.logger.info("Switching active page to %s", getattr(page, "url", ""))
        self._page = page

    async def ensure_page(self, options: Optional[BrowserOptions] = None) -> Any:
        """Return a ready page, launching or relaunching the browser as needed."""
        requested = options or BrowserOptions()

        if self._browser is not None:
            page = self.get_active_page() if self._browser_connected() else None
            if page is None:
                self.logger.warning("Browser disconnected or page closed; relaunching")
                await self.close_all()
            elif self._conflicts(requested):
                self.logger.info("Requested browser configuration changed; relaunching")
                await self.close_all()
            else:
                if requested.navigation_timeout_ms:
                    page.set_default_navigation_timeout(float(requested.navigation_timeout_ms))
                return page

        await self._launch(self._resolve(requested))
        return self._page

    async def ensure_api_context(self) -> Any:
        """Return the shared API request context, starting the driver if needed."""
        if self._api_context is not None:
            return self._api_context
        pw = await self._ensure_driver()
        try:
            self._api_context = await pw.request.new_context()
        except Exception as e:
            raise LaunchFailure(f"Failed to create API request context: {e}") from e
        return self._api_context

    async def close_all(self) -> bool:
        """
        Release every driver resource and page-scoped state.

        Returns ``False`` when nothing was running; that case is a no-op.
        """
        was_running = any(
            x is not None for x in (self._browser, self._context, self._api_context, self._playwright)
        )

        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        for label, resource, method in (
            ("api context", self._api_context, "dispose"),
            ("browser context", self._context, "close"),
            ("browser", self._browser, "close"),
            ("playwright driver", self._playwright, "stop"),
        ):
            if resource is None:
                continue
            try:
                await getattr(resource, method)()
            except Exception as e:
                self.logger.debug("Ignoring error while closing %s: %s", label, e)

        self._api_context = None
        self._context = None
        self._browser = None
        self._playwright = None
        self._page = None
        self._launch_options = None
        self._instrumented.clear()

        self.console_store.clear()
        self.correlator.clear()
        if was_running:
            self.logger.info("Browser closed")
        return was_running

    def _resolve(self, requested: BrowserOptions) -> BrowserOptions:
        cfg = self.config
        browser_type = str(requested.browser_type or cfg.browser_type).lower()
        if browser_type not in BROWSER_TYPES:
            raise LaunchFailure(
                f"Unsupported browser type: {browser_type}. Expected one of: {', '.join(BROWSER_TYPES)}"
            )
        return BrowserOptions(
            browser_type=browser_type,
            viewport_width=int(requested.viewport_width or cfg.viewport_width),
            viewport_height=int(requested.viewport_height or cfg.viewport_height),
            headless=cfg.headless if requested.headless is None else bool(requested.headless),
            navigation_timeout_ms=int(requested.navigation_timeout_ms or cfg.navigation_timeout_ms),
            user_agent=requested.user_agent,
        )

    def _conflicts(self, requested: BrowserOptions) -> bool:
        current = self._launch_options
        if current is None:
            return False
        for name in ("browser_type", "viewport_width", "viewport_height", "headless", "user_agent"):
            wanted = getattr(requested, name)
            if wanted is None:
                continue
            if name == "browser_type":
                wanted = str(wanted).lower()
            if wanted != getattr(current, name):
                return True
        return False

    def _browser_connected(self) -> bool:
        try:
            return bool(self._browser.is_connected())
        except Exception:
            return False

    async def _ensure_driver(self) -> Any:
        if self._playwright is None:
            try:
                self._playwright = await self._driver_factory().start()
            except Exception as e:
                raise LaunchFailure(f"Failed to start Playwright driver: {e}") from e
        return self._playwright

    async def _launch(self, options: BrowserOptions) -> None:
        driver_was_running = self._playwright is not None
        pw = await self._ensure_driver()
        engine = str(options.browser_type)
        self.logger.info(
            "Launching %s (headless=%s, viewport=%sx%s)",
            engine,
            options.headless,
            options.viewport_width,
            options.viewport_height,
        )
        browser = None
        try:
            browser = await getattr(pw, engine).launch(headless=bool(options.headless))
            context = await browser.new_context(
                viewport={"width": options.viewport_width, "height": options.viewport_height},
                user_agent=options.user_agent,
                device_scale_factor=1,
            )
            context.set_default_timeout(float(self.config.action_timeout_ms))
            context.set_default_navigation_timeout(float(options.navigation_timeout_ms))
            await context.add_init_script(UNHANDLED_REJECTION_SCRIPT)
            page = await context.new_page()
        except Exception as e:
            if browser is not None:
                try:
                    await browser.close()
                except Exception:
                    pass
            if not driver_was_running:
                try:
                    await pw.stop()
                except Exception:
                    pass
                self._playwright = None
            message = f"Failed to launch {engine}: {e}"
            if "Executable doesn't exist" in str(e):
                message += f"\nInstall the browser with: playwright install {engine}"
            self.logger.error("%s", message)
            raise LaunchFailure(message) from e

        self._browser = browser
        self._context = context
        self._launch_options = options
        self.launch_count += 1
        self.set_active_page(page)

    def _instrument(self, page: Any) -> None:
        key = id(page)
        if key in self._instrumented:
            return
        self._instrumented.add(key)

        def _on_console(msg: Any) -> None:
            self.console_store.record_message(getattr(msg, "type", "log"), getattr(msg, "text", ""))

        def _on_page_error(err: Any) -> None:
            text = str(getattr(err, "message", "") or err or "")
            stack = getattr(err, "stack", None)
            if stack:
                text = f"{text}\n{stack}"
            self.console_store.record_message("exception", text)

        def _on_response(response: Any) -> None:
            self._spawn(self.correlator.on_response(response))

        page.on("console", _on_console)
        page.on("pageerror", _on_page_error)
        page.on("response", _on_response)

    def _spawn(self, coro: Any) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
