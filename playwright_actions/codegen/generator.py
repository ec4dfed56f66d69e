"""Render recorded actions as a pytest-playwright test module."""

from __future__ import annotations

import datetime as dt
import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Sequence, Tuple

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from ..models import CodegenOptions, RecordedAction
from .manager import snake_case

TEMPLATES_DIR = Path(__file__).parent / "templates"

StepFn = Callable[[Mapping[str, Any]], List[str]]


def _q(value: Any) -> str:
    return repr("" if value is None else str(value))


def _timeout_kw(args: Mapping[str, Any]) -> str:
    timeout = args.get("timeout")
    return f", timeout={int(timeout)}" if timeout else ""


def _navigate(a: Mapping[str, Any]) -> List[str]:
    wait_until = a.get("wait_until") or "load"
    return [f"page.goto({_q(a.get('url'))}, wait_until={_q(wait_until)})"]


def _locator(a: Mapping[str, Any], key: str = "selector") -> str:
    return f"page.locator({_q(a.get(key))}).first"


def _press_key(a: Mapping[str, Any]) -> List[str]:
    lines = []
    if a.get("selector"):
        lines.append(f"{_locator(a)}.focus()")
    lines.append(f"page.keyboard.press({_q(a.get('key'))})")
    return lines


def _screenshot(a: Mapping[str, Any]) -> List[str]:
    if a.get("selector"):
        return [f"{_locator(a)}.screenshot(path={_q(str(a.get('name')) + '.png')})"]
    full_page = bool(a.get("full_page"))
    return [f"page.screenshot(path={_q(str(a.get('name')) + '.png')}, full_page={full_page})"]


def _api(method: str) -> StepFn:
    def _step(a: Mapping[str, Any]) -> List[str]:
        call = f"page.request.{method}({_q(a.get('url'))}"
        if a.get("value") is not None:
            call += f", data={_q(a.get('value'))}"
            headers: Dict[str, str] = {"Content-Type": "application/json"}
            if a.get("token"):
                headers["Authorization"] = f"Bearer {a.get('token')}"
            headers.update({str(k): str(v) for k, v in dict(a.get("headers") or {}).items()})
            call += f", headers={headers!r}"
        call += ")"
        return [f"response = {call}", "assert response.ok"]

    return _step


def _assert_response(a: Mapping[str, Any]) -> List[str]:
    lines = [f"# Response {_q(a.get('id'))} asserted without a recorded expectation"]
    if a.get("value"):
        lines.append(f"# expected body fragment: {a.get('value')!r}")
    return lines


STEP_RENDERERS: Dict[str, StepFn] = {
    "playwright_navigate": _navigate,
    "playwright_go_back": lambda a: ["page.go_back()"],
    "playwright_go_forward": lambda a: ["page.go_forward()"],
    "playwright_click": lambda a: [f"{_locator(a)}.click()"],
    "playwright_fill": lambda a: [f"{_locator(a)}.fill({_q(a.get('value'))})"],
    "playwright_select": lambda a: [f"{_locator(a)}.select_option({_q(a.get('value'))})"],
    "playwright_hover": lambda a: [f"{_locator(a)}.hover()"],
    "playwright_upload_file": lambda a: [f"{_locator(a)}.set_input_files({_q(a.get('file_path'))})"],
    "playwright_press_key": _press_key,
    "playwright_evaluate": lambda a: [f"page.evaluate({_q(a.get('script'))})"],
    "playwright_screenshot": _screenshot,
    "playwright_iframe_click": lambda a: [
        f"page.frame_locator({_q(a.get('iframe_selector'))}).locator({_q(a.get('selector'))}).click()"
    ],
    "playwright_iframe_fill": lambda a: [
        f"page.frame_locator({_q(a.get('iframe_selector'))}).locator({_q(a.get('selector'))})"
        f".fill({_q(a.get('value'))})"
    ],
    "playwright_drag": lambda a: [
        f"{_locator(a, 'source_selector')}.drag_to({_locator(a, 'target_selector')})"
    ],
    "playwright_click_by_test_id": lambda a: [
        f"page.get_by_test_id({_q(a.get('test_id'))}).click({_timeout_kw(a)[2:]})"
    ],
    "playwright_fill_by_test_id": lambda a: [
        f"page.get_by_test_id({_q(a.get('test_id'))}).fill({_q(a.get('text'))}{_timeout_kw(a)})"
    ],
    "playwright_click_by_role": lambda a: [
        f"page.get_by_role({_q(a.get('role'))}, name={_q(a.get('name'))}).click({_timeout_kw(a)[2:]})"
    ],
    "playwright_fill_by_role": lambda a: [
        f"page.get_by_role({_q(a.get('role'))}, name={_q(a.get('name'))})"
        f".fill({_q(a.get('text'))}{_timeout_kw(a)})"
    ],
    "playwright_click_by_text": lambda a: [
        f"page.get_by_text({_q(a.get('text'))}).click({_timeout_kw(a)[2:]})"
    ],
    "playwright_fill_by_text": lambda a: [
        f"page.get_by_text({_q(a.get('text'))}).fill({_q(a.get('input_text'))}{_timeout_kw(a)})"
    ],
    "playwright_click_by_label": lambda a: [
        f"page.get_by_label({_q(a.get('label'))}).click({_timeout_kw(a)[2:]})"
    ],
    "playwright_fill_by_label": lambda a: [
        f"page.get_by_label({_q(a.get('label'))}).fill({_q(a.get('text'))}{_timeout_kw(a)})"
    ],
    "playwright_click_by_placeholder": lambda a: [
        f"page.get_by_placeholder({_q(a.get('placeholder'))}).click({_timeout_kw(a)[2:]})"
    ],
    "playwright_fill_by_placeholder": lambda a: [
        f"page.get_by_placeholder({_q(a.get('placeholder'))}).fill({_q(a.get('text'))}{_timeout_kw(a)})"
    ],
    "playwright_click_by_title": lambda a: [
        f"page.get_by_title({_q(a.get('title'))}).click({_timeout_kw(a)[2:]})"
    ],
    "playwright_click_by_alt": lambda a: [
        f"page.get_by_alt_text({_q(a.get('alt'))}).click({_timeout_kw(a)[2:]})"
    ],
    "playwright_double_click": lambda a: [f"{_locator(a)}.dblclick()"],
    "playwright_right_click": lambda a: [f"{_locator(a)}.click(button='right')"],
    "playwright_select_option_by_value": lambda a: [
        f"{_locator(a)}.select_option(value={_q(a.get('value'))})"
    ],
    "playwright_select_option_by_label": lambda a: [
        f"{_locator(a)}.select_option(label={_q(a.get('label'))})"
    ],
    "playwright_select_multiple_options": lambda a: [
        f"{_locator(a)}.select_option(value={[str(v) for v in (a.get('values') or [])]!r})"
    ],
    "playwright_check_element": lambda a: [f"{_locator(a)}.check()"],
    "playwright_uncheck_element": lambda a: [f"{_locator(a)}.uncheck()"],
    "playwright_type_text": lambda a: [f"{_locator(a)}.press_sequentially({_q(a.get('text'))})"],
    "playwright_scroll_to_element": lambda a: [f"{_locator(a)}.scroll_into_view_if_needed()"],
    "playwright_wait_for_element_hidden": lambda a: [
        f"{_locator(a)}.wait_for(state='hidden'{_timeout_kw(a)})"
    ],
    "playwright_wait_for_url_change": lambda a: (
        [f"page.wait_for_url({_q(a.get('expected_url'))}{_timeout_kw(a)})"]
        if a.get("expected_url")
        else [f"page.wait_for_load_state('networkidle'{_timeout_kw(a)})"]
    ),
    "playwright_get_element_text": lambda a: [f"{_locator(a)}.text_content()"],
    "playwright_get_input_value": lambda a: [f"{_locator(a)}.input_value()"],
    "playwright_is_element_checked": lambda a: [f"{_locator(a)}.is_checked()"],
    "playwright_check_element_exists": lambda a: [f"{_locator(a)}.wait_for(state='visible'{_timeout_kw(a)})"],
    "playwright_get_element_attribute": lambda a: [
        f"{_locator(a)}.get_attribute({_q(a.get('attribute'))})"
    ],
    "playwright_take_element_screenshot": lambda a: [
        f"{_locator(a)}.screenshot(path={_q(a.get('path'))})"
    ],
    "playwright_assert_response": _assert_response,
    "playwright_get": _api("get"),
    "playwright_post": _api("post"),
    "playwright_put": _api("put"),
    "playwright_patch": _api("patch"),
    "playwright_delete": _api("delete"),
}


def _comment_for(action: RecordedAction) -> str:
    shown = ", ".join(f"{k}={v!r}" for k, v in action.arguments.items() if v is not None)
    text = f"{action.tool_name}({shown})"
    if action.outcome_summary and action.outcome_summary != "ok":
        text += f" -> {action.outcome_summary}"
    return "# " + re.sub(r"\s+", " ", text)


def _response_var(wait_id: Any) -> str:
    return f"response_{snake_case(str(wait_id or 'expected'))}"


def _url_matcher(pattern: Any) -> str:
    text = str(pattern or "")
    if text.startswith("re:"):
        return f"re.compile({text[3:]!r})"
    return repr(text)


def _is_code(line: str) -> bool:
    return not line.lstrip().startswith("#")


def _indent(lines: Sequence[str], depth: int) -> List[str]:
    pad = "    " * depth
    return [pad + line for line in lines]


class PlaywrightTestGenerator:
    """Default codegen backend: jinja2 template over pytest-playwright sync API."""

    def __init__(self, template_name: str = "pytest_playwright.py.j2"):
        self.template_name = template_name
        self.env = Environment(
            loader=FileSystemLoader(str(TEMPLATES_DIR)),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
            autoescape=False,
        )

    def steps_for(self, action: RecordedAction, include_comments: bool = False) -> List[str]:
        renderer = STEP_RENDERERS.get(action.tool_name)
        lines: List[str] = []
        if include_comments:
            lines.append(_comment_for(action))
        if renderer is None:
            if not include_comments:
                lines.append(_comment_for(action))
            return lines
        lines.extend(renderer(action.arguments))
        return lines

    def build_steps(self, actions: Sequence[RecordedAction], include_comments: bool = False) -> List[str]:
        """
        Render actions in order.

        An expected response opens a ``with page.expect_response(...)`` block
        around every following step until the assert carrying the same id,
        which reads the response and checks the expected body fragment. Blocks
        never asserted are closed at the end of the test.
        """
        steps: List[str] = []
        open_waits: List[Tuple[str, int]] = []

        for recorded in actions:
            args = recorded.arguments
            comments = [_comment_for(recorded)] if include_comments else []

            if recorded.tool_name == "playwright_expect_response":
                var = _response_var(args.get("id"))
                lines = comments + [f"with page.expect_response({_url_matcher(args.get('url'))}) as {var}_info:"]
                steps.extend(_indent(lines, len(open_waits)))
                open_waits.append((str(args.get("id")), len(steps)))
                continue

            wait_id = str(args.get("id"))
            if recorded.tool_name == "playwright_assert_response" and wait_id in [w for w, _ in open_waits]:
                while open_waits:
                    closed = self._close_block(steps, open_waits)
                    if closed == wait_id:
                        break
                var = _response_var(wait_id)
                lines = comments + [f"{var} = {var}_info.value"]
                if args.get("value"):
                    lines.append(f"assert {str(args.get('value'))!r} in {var}.text()")
                steps.extend(_indent(lines, len(open_waits)))
                continue

            steps.extend(_indent(self.steps_for(recorded, include_comments), len(open_waits)))

        while open_waits:
            self._close_block(steps, open_waits)
        return steps

    def _close_block(self, steps: List[str], open_waits: List[Tuple[str, int]]) -> str:
        wait_id, body_start = open_waits.pop()
        if not any(_is_code(line) for line in steps[body_start:]):
            steps.append("    " * (len(open_waits) + 1) + "pass")
        return wait_id

    def render(self, actions: Sequence[RecordedAction], options: CodegenOptions, session_id: str) -> str:
        steps = self.build_steps(actions, options.include_comments)
        uses_re = any(
            a.tool_name == "playwright_expect_response" and str(a.arguments.get("url") or "").startswith("re:")
            for a in actions
        )
        template = self.env.get_template(self.template_name)
        return template.render(
            test_name=f"test_{snake_case(options.test_name_prefix)}",
            prefix=options.test_name_prefix,
            session_id=session_id,
            generated_at=dt.datetime.now().isoformat(timespec="seconds"),
            include_comments=options.include_comments,
            action_count=len(actions),
            steps=steps,
            has_code=any(_is_code(s) for s in steps),
            uses_re=uses_re,
        )
