"""
Tests for ActionDispatcher: catalog, argument binding, launch policy,
error envelopes and codegen recording.
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from playwright_actions import ActionDispatcher, ActionKind, ToolCall
from playwright_actions.codegen import PlaywrightTestGenerator


@pytest.fixture
def dispatcher(config, fake_driver):
    return ActionDispatcher.create(config=config, driver_factory=fake_driver)


class TestCatalog:
    def test_names_cover_all_features(self, dispatcher):
        names = set(dispatcher.names())
        for expected in (
            "playwright_navigate",
            "playwright_click",
            "playwright_console_logs",
            "playwright_expect_response",
            "playwright_assert_response",
            "playwright_get",
            "playwright_post",
            "playwright_close",
            "start_codegen_session",
            "end_codegen_session",
            "get_codegen_session",
            "clear_codegen_session",
        ):
            assert expected in names

    def test_kinds(self, dispatcher):
        catalog = dispatcher.catalog
        assert catalog["playwright_click"].kind == ActionKind.BROWSER
        assert catalog["playwright_get"].kind == ActionKind.API
        assert catalog["playwright_close"].kind == ActionKind.STATE
        assert catalog["playwright_console_logs"].kind == ActionKind.STATE
        assert catalog["start_codegen_session"].kind == ActionKind.CODEGEN

    def test_schema_uses_camel_case(self, dispatcher):
        schema = dispatcher.catalog["playwright_iframe_fill"].json_schema()
        assert set(schema["properties"]) == {"iframeSelector", "selector", "value"}
        assert set(schema["required"]) == {"iframeSelector", "selector", "value"}

    def test_get_tools(self, dispatcher):
        tools = dispatcher.get_tools()
        assert sorted(t.name for t in tools) == dispatcher.names()
        assert dispatcher.get_tools() is tools


class TestDispatch:
    @pytest.mark.asyncio
    async def test_unknown_tool(self, dispatcher):
        result = await dispatcher.dispatch("playwright_teleport", {})
        assert result.is_error
        assert result.messages == ("Unknown tool: playwright_teleport",)

    @pytest.mark.asyncio
    async def test_missing_argument_does_not_launch(self, dispatcher, fake_driver):
        result = await dispatcher.dispatch("playwright_click", {})

        assert result.is_error
        assert "selector" in result.text
        assert fake_driver.starts == 0

    @pytest.mark.asyncio
    async def test_browser_action_launches_then_runs(self, dispatcher, fake_driver):
        result = await dispatcher.dispatch("playwright_navigate", {"url": "https://example.com"})

        assert result.success
        assert result.messages[0] == "Navigated to https://example.com"
        fake_driver.pages[0].goto.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_navigate_launch_options_from_arguments(self, dispatcher, fake_driver):
        await dispatcher.dispatch(
            "playwright_navigate",
            {"url": "https://example.com", "browserType": "firefox", "width": 640, "height": 480},
        )
        fake_driver.playwright.firefox.launch.assert_awaited_once()
        kwargs = fake_driver.browsers[0].new_context.call_args.kwargs
        assert kwargs["viewport"] == {"width": 640, "height": 480}

    @pytest.mark.asyncio
    async def test_launch_failure_skips_handler(self, dispatcher, fake_driver):
        fake_driver.launch_error = RuntimeError("no display")

        result = await dispatcher.dispatch("playwright_click", {"selector": "#go"})

        assert result.is_error
        assert "Failed to launch chromium" in result.text
        assert fake_driver.pages == []

    @pytest.mark.asyncio
    async def test_state_actions_never_launch(self, dispatcher, fake_driver):
        close = await dispatcher.dispatch("playwright_close", {})
        logs = await dispatcher.dispatch("playwright_console_logs", {})

        assert close.messages == ("No browser instance to close",)
        assert logs.messages == ("No console logs matching the criteria",)
        assert fake_driver.starts == 0

    @pytest.mark.asyncio
    async def test_api_action_uses_request_context(self, dispatcher, fake_driver):
        response = Mock(status=200)
        response.text = AsyncMock(return_value='{"ok": true}')
        fake_driver.api_context.get = AsyncMock(return_value=response)

        result = await dispatcher.dispatch("playwright_get", {"url": "https://api.test/x"})

        assert result.success
        assert result.messages[-1] == "Response code 200"
        assert fake_driver.pages == []

    @pytest.mark.asyncio
    async def test_handler_exception_becomes_error_envelope(self, dispatcher, fake_driver):
        await dispatcher.dispatch("playwright_navigate", {"url": "https://example.com"})
        fake_driver.pages[0].evaluate = AsyncMock(side_effect=RuntimeError("script crashed"))

        result = await dispatcher.dispatch("playwright_evaluate", {"script": "() => boom()"})

        assert result.is_error
        assert "script crashed" in result.text

    @pytest.mark.asyncio
    async def test_dispatch_call(self, dispatcher):
        result = await dispatcher.dispatch_call(ToolCall("playwright_console_logs", {"type": "error"}))
        assert result.success

    @pytest.mark.asyncio
    async def test_envelope_dict(self, dispatcher):
        result = await dispatcher.dispatch("playwright_teleport")
        assert result.to_dict() == {
            "success": False,
            "messages": ["Unknown tool: playwright_teleport"],
            "isError": True,
        }


class TestResponseFlow:
    @pytest.mark.asyncio
    async def test_expect_then_assert(self, dispatcher, fake_driver):
        started = await dispatcher.dispatch("playwright_expect_response", {"id": "api", "url": "**/api/*"})
        assert started.messages == ("Started waiting for response with ID api",)

        page = fake_driver.pages[0]
        on_response = {c.args[0]: c.args[1] for c in page.on.call_args_list}["response"]
        response = Mock(url="https://example.com/api/items", status=200)
        response.text = AsyncMock(return_value='{"items": []}')
        on_response(response)

        result = await dispatcher.dispatch("playwright_assert_response", {"id": "api", "value": "items"})

        assert result.success
        assert result.messages[0] == "Response assertion for ID api successful"
        assert "Status: 200" in result.messages

    @pytest.mark.asyncio
    async def test_assert_unknown_id(self, dispatcher):
        result = await dispatcher.dispatch("playwright_assert_response", {"id": "never"})
        assert result.is_error
        assert "never" in result.text


class TestCodegenRecording:
    @pytest.mark.asyncio
    async def test_actions_recorded_into_active_session(self, dispatcher, tmp_path):
        start = await dispatcher.dispatch("start_codegen_session", {"options": {"outputPath": str(tmp_path)}})
        session_id = start.messages[0].split(": ", 1)[1]

        await dispatcher.dispatch("playwright_navigate", {"url": "https://example.com"})
        await dispatcher.dispatch("playwright_fill", {"selector": "#q", "value": "shoes"})
        info = await dispatcher.dispatch("get_codegen_session", {"sessionId": session_id})
        assert "Actions recorded: 2" in info.messages

        end = await dispatcher.dispatch("end_codegen_session", {"sessionId": session_id})
        assert end.success
        path = end.messages[-1].split(": ", 1)[1]
        source = open(path, encoding="utf-8").read()
        assert "page.goto('https://example.com', wait_until='load')" in source
        assert "page.locator('#q').first.fill('shoes')" in source

    @pytest.mark.asyncio
    async def test_failed_actions_are_recorded_too(self, dispatcher, tmp_path):
        start = await dispatcher.dispatch("start_codegen_session", {"options": {"outputPath": str(tmp_path)}})
        session_id = start.messages[0].split(": ", 1)[1]

        await dispatcher.dispatch("playwright_assert_response", {"id": "missing"})

        snapshot = dispatcher.codegen.get(session_id)
        assert snapshot.action_count == 1

    @pytest.mark.asyncio
    async def test_codegen_actions_not_recorded(self, dispatcher, tmp_path):
        start = await dispatcher.dispatch("start_codegen_session", {"options": {"outputPath": str(tmp_path)}})
        session_id = start.messages[0].split(": ", 1)[1]
        await dispatcher.dispatch("get_codegen_session", {"sessionId": session_id})
        assert dispatcher.codegen.get(session_id).action_count == 0

    @pytest.mark.asyncio
    async def test_unknown_tool_not_recorded(self, dispatcher, tmp_path):
        start = await dispatcher.dispatch("start_codegen_session", {"options": {"outputPath": str(tmp_path)}})
        session_id = start.messages[0].split(": ", 1)[1]
        await dispatcher.dispatch("playwright_teleport", {})
        assert dispatcher.codegen.get(session_id).action_count == 0

    @pytest.mark.asyncio
    async def test_recording_failure_does_not_affect_result(self, dispatcher, tmp_path):
        await dispatcher.dispatch("start_codegen_session", {"options": {"outputPath": str(tmp_path)}})
        dispatcher.codegen.record = Mock(side_effect=RuntimeError("disk full"))

        result = await dispatcher.dispatch("playwright_console_logs", {})
        assert result.success

    @pytest.mark.asyncio
    async def test_start_requires_output_path(self, dispatcher):
        result = await dispatcher.dispatch("start_codegen_session", {"options": {}})
        assert result.is_error
        assert "outputPath" in result.text

    @pytest.mark.asyncio
    async def test_end_twice_is_error(self, dispatcher, tmp_path):
        start = await dispatcher.dispatch("start_codegen_session", {"options": {"outputPath": str(tmp_path)}})
        session_id = start.messages[0].split(": ", 1)[1]
        await dispatcher.dispatch("end_codegen_session", {"sessionId": session_id})

        again = await dispatcher.dispatch("end_codegen_session", {"sessionId": session_id})
        assert again.is_error
        assert "already ended" in again.text

    @pytest.mark.asyncio
    async def test_custom_backend(self, config, fake_driver, tmp_path):
        backend = Mock(spec=PlaywrightTestGenerator)
        backend.render = Mock(return_value="# custom\n")
        dispatcher = ActionDispatcher.create(config=config, driver_factory=fake_driver, backend=backend)

        start = await dispatcher.dispatch("start_codegen_session", {"options": {"outputPath": str(tmp_path)}})
        session_id = start.messages[0].split(": ", 1)[1]
        end = await dispatcher.dispatch("end_codegen_session", {"sessionId": session_id})

        path = end.messages[-1].split(": ", 1)[1]
        assert open(path, encoding="utf-8").read() == "# custom\n"


class TestConsoleFlow:
    @pytest.mark.asyncio
    async def test_page_console_messages_reach_console_logs(self, dispatcher, fake_driver):
        await dispatcher.dispatch("playwright_navigate", {"url": "https://example.com"})
        page = fake_driver.pages[0]
        on_console = {c.args[0]: c.args[1] for c in page.on.call_args_list}["console"]
        on_console(Mock(type="error", text="boom"))

        result = await dispatcher.dispatch("playwright_console_logs", {"type": "error"})

        assert result.messages == ("Retrieved 1 console log(s):", "[error] boom")

    @pytest.mark.asyncio
    async def test_close_empties_console_logs(self, dispatcher, fake_driver):
        await dispatcher.dispatch("playwright_navigate", {"url": "https://example.com"})
        on_console = {c.args[0]: c.args[1] for c in fake_driver.pages[0].on.call_args_list}["console"]
        on_console(Mock(type="log", text="hello"))

        await dispatcher.dispatch("playwright_close", {})
        result = await dispatcher.dispatch("playwright_console_logs", {})

        assert result.messages == ("No console logs matching the criteria",)


class TestConcurrentResponseAssert:
    @pytest.mark.asyncio
    async def test_assert_blocks_until_matching_response(self, dispatcher, fake_driver):
        await dispatcher.dispatch("playwright_expect_response", {"id": "api", "url": "**/api/*"})
        on_response = {c.args[0]: c.args[1] for c in fake_driver.pages[0].on.call_args_list}["response"]

        async def deliver():
            await asyncio.sleep(0.05)
            response = Mock(url="https://example.com/api/items", status=200)
            response.text = AsyncMock(return_value='{"items": []}')
            on_response(response)

        result, _ = await asyncio.gather(
            dispatcher.dispatch("playwright_assert_response", {"id": "api", "value": "items"}),
            deliver(),
        )

        assert result.success
        assert result.messages[0] == "Response assertion for ID api successful"


class TestActiveSessionFallback:
    @pytest.mark.asyncio
    async def test_older_active_session_records_after_newer_one_ends(self, dispatcher, tmp_path):
        first = await dispatcher.dispatch("start_codegen_session", {"options": {"outputPath": str(tmp_path)}})
        first_id = first.messages[0].split(": ", 1)[1]
        second = await dispatcher.dispatch("start_codegen_session", {"options": {"outputPath": str(tmp_path)}})
        second_id = second.messages[0].split(": ", 1)[1]
        await dispatcher.dispatch("end_codegen_session", {"sessionId": second_id})

        await dispatcher.dispatch("playwright_console_logs", {})

        assert dispatcher.codegen.get(first_id).action_count == 1
        assert dispatcher.codegen.get(second_id).action_count == 0
