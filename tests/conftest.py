"""
Pytest configuration and shared fixtures for playwright_actions tests.
"""

from typing import Any, List
from unittest.mock import AsyncMock, Mock

import pytest

from playwright_actions.config import ServerConfig
from playwright_actions.console_log import ConsoleLogStore
from playwright_actions.responses import ResponseCorrelator
from playwright_actions.session import BrowserSessionManager


# ==================== Mock Page Fixtures ====================

def make_locator() -> AsyncMock:
    """Create a mock Playwright locator."""
    locator = AsyncMock()
    locator.first = locator
    locator.locator = Mock(return_value=locator)
    locator.click = AsyncMock()
    locator.dblclick = AsyncMock()
    locator.fill = AsyncMock()
    locator.focus = AsyncMock()
    locator.hover = AsyncMock()
    locator.check = AsyncMock()
    locator.uncheck = AsyncMock()
    locator.wait_for = AsyncMock()
    locator.count = AsyncMock(return_value=1)
    locator.text_content = AsyncMock(return_value="Test Content")
    locator.input_value = AsyncMock(return_value="test value")
    locator.get_attribute = AsyncMock(return_value="attr-value")
    locator.is_checked = AsyncMock(return_value=True)
    locator.select_option = AsyncMock()
    locator.set_input_files = AsyncMock()
    locator.press_sequentially = AsyncMock()
    locator.scroll_into_view_if_needed = AsyncMock()
    locator.screenshot = AsyncMock(return_value=b"fake_png")
    locator.bounding_box = AsyncMock(return_value={"x": 0, "y": 0, "width": 10, "height": 10})
    return locator


def make_page(locator: Any = None) -> AsyncMock:
    """Create a mock Playwright page object."""
    locator = locator or make_locator()
    page = AsyncMock()
    page.url = "https://example.com/test"

    page.is_closed = Mock(return_value=False)
    page.on = Mock()
    page.set_default_navigation_timeout = Mock()

    page.goto = AsyncMock(return_value=Mock(status=200))
    page.go_back = AsyncMock(return_value=None)
    page.go_forward = AsyncMock(return_value=None)
    page.wait_for_url = AsyncMock()
    page.wait_for_load_state = AsyncMock()
    page.evaluate = AsyncMock(return_value={})
    page.screenshot = AsyncMock(return_value=b"fake_screenshot_data")
    page.pdf = AsyncMock()
    page.click = AsyncMock()

    page.locator = Mock(return_value=locator)
    page.frame_locator = Mock(return_value=locator)
    page.get_by_text = Mock(return_value=locator)
    page.get_by_label = Mock(return_value=locator)
    page.get_by_placeholder = Mock(return_value=locator)
    page.get_by_role = Mock(return_value=locator)
    page.get_by_test_id = Mock(return_value=locator)
    page.get_by_title = Mock(return_value=locator)
    page.get_by_alt_text = Mock(return_value=locator)

    page.keyboard = AsyncMock()
    page.mouse = AsyncMock()
    return page


@pytest.fixture
def mock_locator():
    return make_locator()


@pytest.fixture
def mock_page(mock_locator):
    return make_page(mock_locator)


# ==================== Fake Driver Fixtures ====================

class FakeDriver:
    """
    Stand-in for ``async_playwright()``.

    Each launch returns a fresh browser/context/page triple so tests can tell
    a relaunch apart from reuse.
    """

    def __init__(self, page_factory=make_page):
        self.page_factory = page_factory
        self.pages: List[Any] = []
        self.browsers: List[Any] = []
        self.contexts: List[Any] = []
        self.starts = 0
        self.launch_error: Any = None
        self.api_context = AsyncMock()
        self.api_context.dispose = AsyncMock()

        self.playwright = AsyncMock()
        self.playwright.stop = AsyncMock()
        self.playwright.request = Mock()
        self.playwright.request.new_context = AsyncMock(return_value=self.api_context)
        for engine in ("chromium", "firefox", "webkit"):
            browser_type = Mock()
            browser_type.launch = AsyncMock(side_effect=self._launch)
            setattr(self.playwright, engine, browser_type)

    def __call__(self):
        return self

    async def start(self):
        self.starts += 1
        return self.playwright

    async def _launch(self, headless: bool = False):
        if self.launch_error is not None:
            raise self.launch_error
        page = self.page_factory()
        context = AsyncMock()
        context.set_default_timeout = Mock()
        context.set_default_navigation_timeout = Mock()
        context.add_init_script = AsyncMock()
        context.new_page = AsyncMock(return_value=page)
        context.close = AsyncMock()
        context.pages = [page]
        page.context = context

        browser = AsyncMock()
        browser.headless = headless
        browser.is_connected = Mock(return_value=True)
        browser.new_context = AsyncMock(return_value=context)
        browser.close = AsyncMock()

        self.pages.append(page)
        self.contexts.append(context)
        self.browsers.append(browser)
        return browser


@pytest.fixture
def config():
    return ServerConfig(headless=True)


@pytest.fixture
def fake_driver():
    return FakeDriver()


@pytest.fixture
def console_store():
    return ConsoleLogStore(max_entries=100)


@pytest.fixture
def session_manager(config, fake_driver, console_store):
    correlator = ResponseCorrelator(timeout_ms=200, max_body_chars=1000)
    return BrowserSessionManager(
        config=config,
        console_store=console_store,
        correlator=correlator,
        driver_factory=fake_driver,
    )
