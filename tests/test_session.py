"""
Unit tests for BrowserSessionManager.

Launch, reuse, relaunch and teardown run against the FakeDriver from
conftest, which hands out a fresh browser/context/page on each launch.
"""

from unittest.mock import AsyncMock, Mock

import pytest

from playwright_actions.console_log import ConsoleLogStore
from playwright_actions.errors import LaunchFailure, UnknownWaitId
from playwright_actions.models import BrowserOptions
from playwright_actions.responses import ResponseCorrelator
from playwright_actions.session import UNHANDLED_REJECTION_SCRIPT, BrowserSessionManager


class TestEnsurePage:
    @pytest.mark.asyncio
    async def test_first_call_launches(self, session_manager, fake_driver):
        page = await session_manager.ensure_page()

        assert page is fake_driver.pages[0]
        assert session_manager.is_running
        assert session_manager.launch_count == 1
        fake_driver.playwright.chromium.launch.assert_awaited_once_with(headless=True)

    @pytest.mark.asyncio
    async def test_context_configured(self, session_manager, fake_driver):
        await session_manager.ensure_page(BrowserOptions(viewport_width=800, viewport_height=600))

        browser = fake_driver.browsers[0]
        kwargs = browser.new_context.call_args.kwargs
        assert kwargs["viewport"] == {"width": 800, "height": 600}
        fake_driver.contexts[0].add_init_script.assert_awaited_once_with(UNHANDLED_REJECTION_SCRIPT)

    @pytest.mark.asyncio
    async def test_repeated_calls_reuse_page(self, session_manager, fake_driver):
        first = await session_manager.ensure_page()
        second = await session_manager.ensure_page()

        assert first is second
        assert session_manager.launch_count == 1
        assert fake_driver.starts == 1

    @pytest.mark.asyncio
    async def test_unspecified_fields_do_not_relaunch(self, session_manager):
        await session_manager.ensure_page(BrowserOptions(browser_type="firefox", viewport_width=800))
        await session_manager.ensure_page(BrowserOptions())
        assert session_manager.launch_count == 1
        assert session_manager.launch_options.browser_type == "firefox"

    @pytest.mark.asyncio
    async def test_conflicting_options_relaunch(self, session_manager, fake_driver):
        first = await session_manager.ensure_page(BrowserOptions(browser_type="chromium"))
        second = await session_manager.ensure_page(BrowserOptions(browser_type="webkit"))

        assert first is not second
        assert session_manager.launch_count == 2
        fake_driver.browsers[0].close.assert_awaited()
        fake_driver.playwright.webkit.launch.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_user_agent_change_relaunches(self, session_manager, fake_driver):
        await session_manager.ensure_page()
        await session_manager.ensure_page(BrowserOptions(user_agent="Agent/1.0"))

        assert session_manager.launch_count == 2
        assert fake_driver.browsers[1].new_context.call_args.kwargs["user_agent"] == "Agent/1.0"

    @pytest.mark.asyncio
    async def test_closed_page_triggers_relaunch(self, session_manager, fake_driver):
        page = await session_manager.ensure_page()
        page.is_closed.return_value = True

        new_page = await session_manager.ensure_page()

        assert new_page is not page
        assert session_manager.launch_count == 2

    @pytest.mark.asyncio
    async def test_disconnected_browser_triggers_relaunch(self, session_manager, fake_driver):
        await session_manager.ensure_page()
        fake_driver.browsers[0].is_connected.return_value = False

        await session_manager.ensure_page()
        assert session_manager.launch_count == 2

    @pytest.mark.asyncio
    async def test_navigation_timeout_applied_on_reuse(self, session_manager):
        page = await session_manager.ensure_page()
        await session_manager.ensure_page(BrowserOptions(navigation_timeout_ms=5000))
        page.set_default_navigation_timeout.assert_called_with(5000.0)

    @pytest.mark.asyncio
    async def test_unsupported_browser_type(self, session_manager):
        with pytest.raises(LaunchFailure, match="Unsupported browser type"):
            await session_manager.ensure_page(BrowserOptions(browser_type="opera"))

    @pytest.mark.asyncio
    async def test_launch_failure_leaves_no_page(self, session_manager, fake_driver):
        fake_driver.launch_error = RuntimeError("Executable doesn't exist at /nowhere")

        with pytest.raises(LaunchFailure) as exc:
            await session_manager.ensure_page()

        assert "playwright install chromium" in str(exc.value)
        assert not session_manager.is_running
        assert session_manager.get_active_page() is None
        fake_driver.playwright.stop.assert_awaited()


class TestCloseAll:
    @pytest.mark.asyncio
    async def test_close_without_browser_is_noop(self, session_manager):
        assert await session_manager.close_all() is False

    @pytest.mark.asyncio
    async def test_close_releases_everything(self, session_manager, fake_driver, console_store):
        await session_manager.ensure_page()
        console_store.record_message("log", "hello")

        assert await session_manager.close_all() is True

        fake_driver.contexts[0].close.assert_awaited_once()
        fake_driver.browsers[0].close.assert_awaited_once()
        fake_driver.playwright.stop.assert_awaited_once()
        assert not session_manager.is_running
        assert len(console_store) == 0

    @pytest.mark.asyncio
    async def test_launch_after_close_is_fresh(self, session_manager, fake_driver):
        first = await session_manager.ensure_page()
        await session_manager.close_all()
        second = await session_manager.ensure_page()

        assert second is not first
        assert fake_driver.starts == 2

    @pytest.mark.asyncio
    async def test_close_errors_are_swallowed(self, session_manager, fake_driver):
        await session_manager.ensure_page()
        fake_driver.browsers[0].close = AsyncMock(side_effect=RuntimeError("already gone"))

        assert await session_manager.close_all() is True
        assert not session_manager.is_running

    @pytest.mark.asyncio
    async def test_close_disposes_api_context(self, session_manager, fake_driver):
        await session_manager.ensure_api_context()
        await session_manager.close_all()
        fake_driver.api_context.dispose.assert_awaited_once()


class TestActivePage:
    @pytest.mark.asyncio
    async def test_set_active_page_swaps_handle(self, session_manager):
        await session_manager.ensure_page()
        new_tab = Mock()
        new_tab.is_closed = Mock(return_value=False)
        new_tab.on = Mock()

        session_manager.set_active_page(new_tab)

        assert session_manager.get_active_page() is new_tab
        assert await session_manager.ensure_page() is new_tab

    def test_set_active_page_rejects_none(self, session_manager):
        with pytest.raises(ValueError):
            session_manager.set_active_page(None)

    @pytest.mark.asyncio
    async def test_page_listeners_installed_once(self, session_manager, fake_driver):
        page = await session_manager.ensure_page()
        session_manager.set_active_page(page)

        events = [c.args[0] for c in page.on.call_args_list]
        assert sorted(events) == ["console", "pageerror", "response"]

    @pytest.mark.asyncio
    async def test_console_and_pageerror_are_recorded(self, session_manager, console_store):
        page = await session_manager.ensure_page()
        handlers = {c.args[0]: c.args[1] for c in page.on.call_args_list}

        handlers["console"](Mock(type="warn", text="careful"))
        handlers["pageerror"](Mock(message="boom", stack=None))

        entries = console_store.query()
        assert [(e.type, e.text) for e in entries] == [("warning", "careful"), ("exception", "boom")]


class TestApiContext:
    @pytest.mark.asyncio
    async def test_api_context_is_shared(self, session_manager, fake_driver):
        first = await session_manager.ensure_api_context()
        second = await session_manager.ensure_api_context()

        assert first is second is fake_driver.api_context
        fake_driver.playwright.request.new_context.assert_awaited_once()
        assert not session_manager.is_running


class TestSharedState:
    def test_injected_empty_store_and_correlator_are_kept(self, config, fake_driver):
        store = ConsoleLogStore(max_entries=10)
        correlator = ResponseCorrelator()
        manager = BrowserSessionManager(
            config=config,
            console_store=store,
            correlator=correlator,
            driver_factory=fake_driver,
        )
        assert manager.console_store is store
        assert manager.correlator is correlator

    @pytest.mark.asyncio
    async def test_close_drops_pending_response_waits(self, session_manager):
        await session_manager.ensure_page()
        wait = session_manager.correlator.expect("pending", "**/api/*")

        await session_manager.close_all()

        assert "pending" not in session_manager.correlator
        assert wait.future.cancelled()
        with pytest.raises(UnknownWaitId):
            await session_manager.correlator.wait("pending")
