"""Browser page actions: navigation, interaction, extraction and capture."""

from __future__ import annotations

import base64
import json
import logging
import re
import time
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .actions import action
from .config import ServerConfig
from .errors import ElementNotFound, IframeNotFound, NavigationFailure
from .models import ActionKind, BrowserOptions, ExecutionResult
from .session import BrowserSessionManager

VALID_WAIT_UNTIL = {"load", "domcontentloaded", "networkidle", "commit"}

VISIBLE_TEXT_SCRIPT = """
() => {
  const walker = document.createTreeWalker(document.body, NodeFilter.SHOW_TEXT, {
    acceptNode: (node) => {
      const el = node.parentElement;
      if (!el) return NodeFilter.FILTER_REJECT;
      const style = window.getComputedStyle(el);
      if (style.display === 'none' || style.visibility === 'hidden') {
        return NodeFilter.FILTER_REJECT;
      }
      return node.textContent.trim() ? NodeFilter.FILTER_ACCEPT : NodeFilter.FILTER_REJECT;
    },
  });
  const parts = [];
  let node;
  while ((node = walker.nextNode())) parts.push(node.textContent.trim());
  return parts.join('\\n');
}
"""

CLEAN_HTML_SCRIPT = """
(opts) => {
  const root = opts.selector ? document.querySelector(opts.selector) : document.documentElement;
  if (!root) return null;
  const clone = root.cloneNode(true);
  const drop = (sel) => clone.querySelectorAll(sel).forEach((el) => el.remove());
  if (opts.removeScripts) drop('script');
  if (opts.removeStyles) { drop('style'); drop('link[rel="stylesheet"]'); }
  if (opts.removeMeta) drop('meta');
  if (opts.removeComments) {
    const walker = document.createTreeWalker(clone, NodeFilter.SHOW_COMMENT);
    const comments = [];
    while (walker.nextNode()) comments.push(walker.currentNode);
    comments.forEach((c) => c.remove());
  }
  return clone.outerHTML;
}
"""


def _navigate_launch_options(args: Mapping[str, Any]) -> BrowserOptions:
    return BrowserOptions(
        browser_type=args.get("browser_type"),
        viewport_width=args.get("width"),
        viewport_height=args.get("height"),
        headless=args.get("headless"),
        navigation_timeout_ms=args.get("timeout"),
    )


def _user_agent_launch_options(args: Mapping[str, Any]) -> BrowserOptions:
    return BrowserOptions(user_agent=args.get("user_agent"))


class PageActionsFeature:
    """Navigate and interact with the active page."""

    def __init__(
        self,
        session_manager: BrowserSessionManager,
        config: Optional[ServerConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.session_manager = session_manager
        self.config = config or session_manager.config
        self.logger = logger or logging.getLogger(__name__)
        self.screenshots: Dict[str, str] = {}

    def get_screenshot(self, name: str) -> Optional[str]:
        """Return a stored base64 PNG by screenshot name."""
        return self.screenshots.get(name)

    # -- navigation -----------------------------------------------------

    @action(
        "playwright_navigate",
        launch_options=_navigate_launch_options,
        examples=["playwright_navigate(url='https://example.com', browserType='firefox', headless=True)"],
    )
    async def navigate(
        self,
        page: Any,
        url: str,
        browser_type: Optional[str] = None,
        width: Optional[int] = None,
        height: Optional[int] = None,
        timeout: Optional[int] = None,
        wait_until: str = "load",
        headless: Optional[bool] = None,
    ) -> List[str]:
        """
        Navigate to a URL, launching the browser with the requested engine,
        viewport and headless mode when needed.
        """
        target = str(url or "").strip()
        wait_mode = wait_until if wait_until in VALID_WAIT_UNTIL else "load"
        nav_timeout = int(timeout or self.config.navigation_timeout_ms)
        try:
            response = await page.goto(target, wait_until=wait_mode, timeout=nav_timeout)
        except Exception as e:
            raise NavigationFailure(f"Navigation to {target} failed: {e}") from e

        messages = [f"Navigated to {target}"]
        status = getattr(response, "status", None) if response is not None else None
        if status is not None:
            messages.append(f"Status: {status}")
        return messages

    @action("playwright_go_back")
    async def go_back(self, page: Any) -> str:
        """Navigate back in browser history."""
        await page.go_back()
        return "Navigated back in browser history"

    @action("playwright_go_forward")
    async def go_forward(self, page: Any) -> str:
        """Navigate forward in browser history."""
        await page.go_forward()
        return "Navigated forward in browser history"

    @action("playwright_wait_for_url_change")
    async def wait_for_url_change(
        self,
        page: Any,
        expected_url: Optional[str] = None,
        timeout: Optional[int] = None,
    ) -> str:
        """Wait for the URL to match ``expectedUrl``, or for network idle when omitted."""
        wait_ms = self._timeout(timeout)
        if expected_url:
            await page.wait_for_url(expected_url, timeout=wait_ms)
            return f"URL changed to: {expected_url}"
        await page.wait_for_load_state("networkidle", timeout=wait_ms)
        return "Page load completed"

    @action("playwright_custom_user_agent", launch_options=_user_agent_launch_options)
    async def custom_user_agent(self, page: Any, user_agent: str) -> ExecutionResult:
        """Set a custom User Agent for the browser (relaunches the context)."""
        current = await page.evaluate("() => navigator.userAgent")
        if current != user_agent:
            return ExecutionResult.error(
                f"Page user agent did not update. Expected: {user_agent}, actual: {current}"
            )
        return ExecutionResult.ok(f"User agent set to: {user_agent}")

    # -- css selector interaction ----------------------------------------

    @action("playwright_click", examples=["playwright_click(selector='button[type=submit]')"])
    async def click(self, page: Any, selector: str) -> str:
        """Click an element on the page."""
        locator = await self._visible(page.locator(selector).first, selector)
        await locator.click()
        return f"Clicked element: {selector}"

    @action("playwright_fill")
    async def fill(self, page: Any, selector: str, value: str) -> str:
        """Fill out an input field."""
        locator = await self._visible(page.locator(selector).first, selector)
        await locator.fill(str(value))
        return f"Filled {selector} with: {value}"

    @action("playwright_select")
    async def select(self, page: Any, selector: str, value: str) -> str:
        """Select an option of a <select> element."""
        locator = await self._visible(page.locator(selector).first, selector)
        await locator.select_option(str(value))
        return f"Selected {selector} with: {value}"

    @action("playwright_hover")
    async def hover(self, page: Any, selector: str) -> str:
        """Hover an element on the page."""
        locator = await self._visible(page.locator(selector).first, selector)
        await locator.hover()
        return f"Hovered {selector}"

    @action("playwright_upload_file")
    async def upload_file(self, page: Any, selector: str, file_path: str) -> str:
        """Upload a file (absolute path) to an input[type='file'] element."""
        locator = await self._visible(page.locator(selector).first, selector, state="attached")
        await locator.set_input_files(file_path)
        return f"Uploaded file '{file_path}' to '{selector}'"

    @action("playwright_press_key")
    async def press_key(self, page: Any, key: str, selector: Optional[str] = None) -> str:
        """Press a keyboard key, focusing ``selector`` first when given."""
        if selector:
            locator = await self._visible(page.locator(selector).first, selector)
            await locator.focus()
        await page.keyboard.press(key)
        return f"Pressed key: {key}"

    @action("playwright_drag")
    async def drag(self, page: Any, source_selector: str, target_selector: str) -> Any:
        """Drag an element onto a target element."""
        source = await self._visible(page.locator(source_selector).first, source_selector)
        target = await self._visible(page.locator(target_selector).first, target_selector)
        source_box = await source.bounding_box()
        target_box = await target.bounding_box()
        if not source_box or not target_box:
            return ExecutionResult.error("Could not get element positions for drag operation")

        await page.mouse.move(
            source_box["x"] + source_box["width"] / 2,
            source_box["y"] + source_box["height"] / 2,
        )
        await page.mouse.down()
        await page.mouse.move(
            target_box["x"] + target_box["width"] / 2,
            target_box["y"] + target_box["height"] / 2,
        )
        await page.mouse.up()
        return f"Dragged element from {source_selector} to {target_selector}"

    @action("playwright_evaluate")
    async def evaluate(self, page: Any, script: str) -> List[str]:
        """Execute JavaScript in the page and return its JSON-serialized result."""
        result = await page.evaluate(script)
        try:
            rendered = json.dumps(result, indent=2, ensure_ascii=False)
        except (TypeError, ValueError):
            rendered = str(result)
        return ["Executed JavaScript:", script, "Result:", rendered]

    # -- iframes ---------------------------------------------------------

    @action("playwright_iframe_click")
    async def iframe_click(self, page: Any, iframe_selector: str, selector: str) -> str:
        """Click an element inside an iframe."""
        frame = await self._frame(page, iframe_selector)
        await frame.locator(selector).click()
        return f"Clicked element {selector} inside iframe {iframe_selector}"

    @action("playwright_iframe_fill")
    async def iframe_fill(self, page: Any, iframe_selector: str, selector: str, value: str) -> str:
        """Fill an element inside an iframe."""
        frame = await self._frame(page, iframe_selector)
        await frame.locator(selector).fill(str(value))
        return f"Filled element {selector} inside iframe {iframe_selector} with: {value}"

    # -- tabs ------------------------------------------------------------

    @action("playwright_click_and_switch_tab")
    async def click_and_switch_tab(self, page: Any, selector: str) -> str:
        """Click a link that opens a new tab and make that tab the active page."""
        async with page.context.expect_page() as page_info:
            await page.click(selector)
        new_page = await page_info.value
        await new_page.wait_for_load_state("domcontentloaded")
        self.session_manager.set_active_page(new_page)
        return f"Clicked link and switched to new tab: {new_page.url}"

    # -- locator strategies ----------------------------------------------

    @action("playwright_click_by_test_id")
    async def click_by_test_id(self, page: Any, test_id: str, timeout: Optional[int] = None) -> str:
        """Click an element by its test id attribute."""
        await self._click(page.get_by_test_id(test_id), f"test id {test_id}", timeout)
        return f"Clicked element with test ID: {test_id}"

    @action("playwright_fill_by_test_id")
    async def fill_by_test_id(self, page: Any, test_id: str, text: str, timeout: Optional[int] = None) -> str:
        """Fill an element by its test id attribute."""
        await self._fill(page.get_by_test_id(test_id), f"test id {test_id}", text, timeout)
        return f"Filled element with test ID: {test_id} with: {text}"

    @action("playwright_click_by_role")
    async def click_by_role(self, page: Any, role: str, name: str, timeout: Optional[int] = None) -> str:
        """Click an element by ARIA role and accessible name."""
        await self._click(page.get_by_role(role, name=name), f"role {role} named {name}", timeout)
        return f"Clicked element with role: {role} and name: {name}"

    @action("playwright_fill_by_role")
    async def fill_by_role(
        self,
        page: Any,
        role: str,
        name: str,
        text: str,
        timeout: Optional[int] = None,
    ) -> str:
        """Fill an element by ARIA role and accessible name."""
        await self._fill(page.get_by_role(role, name=name), f"role {role} named {name}", text, timeout)
        return f"Filled element with role: {role} and name: {name} with: {text}"

    @action("playwright_click_by_text")
    async def click_by_text(self, page: Any, text: str, timeout: Optional[int] = None) -> str:
        """Click an element by its text content."""
        await self._click(page.get_by_text(text), f"text {text}", timeout)
        return f"Clicked element with text: {text}"

    @action("playwright_fill_by_text")
    async def fill_by_text(self, page: Any, text: str, input_text: str, timeout: Optional[int] = None) -> str:
        """Fill an element located by its text content."""
        await self._fill(page.get_by_text(text), f"text {text}", input_text, timeout)
        return f"Filled element with text: {text} with: {input_text}"

    @action("playwright_click_by_label")
    async def click_by_label(self, page: Any, label: str, timeout: Optional[int] = None) -> str:
        """Click an element by its label text."""
        await self._click(page.get_by_label(label), f"label {label}", timeout)
        return f"Clicked element with label: {label}"

    @action("playwright_fill_by_label")
    async def fill_by_label(self, page: Any, label: str, text: str, timeout: Optional[int] = None) -> str:
        """Fill an element by its label text."""
        await self._fill(page.get_by_label(label), f"label {label}", text, timeout)
        return f"Filled element with label: {label} with: {text}"

    @action("playwright_click_by_placeholder")
    async def click_by_placeholder(self, page: Any, placeholder: str, timeout: Optional[int] = None) -> str:
        """Click an element by its placeholder text."""
        await self._click(page.get_by_placeholder(placeholder), f"placeholder {placeholder}", timeout)
        return f"Clicked element with placeholder: {placeholder}"

    @action("playwright_fill_by_placeholder")
    async def fill_by_placeholder(
        self,
        page: Any,
        placeholder: str,
        text: str,
        timeout: Optional[int] = None,
    ) -> str:
        """Fill an element by its placeholder text."""
        await self._fill(page.get_by_placeholder(placeholder), f"placeholder {placeholder}", text, timeout)
        return f"Filled element with placeholder: {placeholder} with: {text}"

    @action("playwright_click_by_title")
    async def click_by_title(self, page: Any, title: str, timeout: Optional[int] = None) -> str:
        """Click an element by its title attribute."""
        await self._click(page.get_by_title(title), f"title {title}", timeout)
        return f"Clicked element with title: {title}"

    @action("playwright_click_by_alt")
    async def click_by_alt(self, page: Any, alt: str, timeout: Optional[int] = None) -> str:
        """Click an element (usually an image) by its alt text."""
        await self._click(page.get_by_alt_text(alt), f"alt text {alt}", timeout)
        return f"Clicked element with alt text: {alt}"

    @action("playwright_double_click")
    async def double_click(self, page: Any, selector: str, timeout: Optional[int] = None) -> str:
        locator = await self._visible(page.locator(selector).first, selector, timeout=timeout)
        await locator.dblclick()
        return f"Double clicked element: {selector}"

    @action("playwright_right_click")
    async def right_click(self, page: Any, selector: str, timeout: Optional[int] = None) -> str:
        locator = await self._visible(page.locator(selector).first, selector, timeout=timeout)
        await locator.click(button="right")
        return f"Right clicked element: {selector}"

    @action("playwright_select_option_by_value")
    async def select_option_by_value(
        self,
        page: Any,
        selector: str,
        value: str,
        timeout: Optional[int] = None,
    ) -> str:
        locator = await self._visible(page.locator(selector).first, selector, timeout=timeout)
        await locator.select_option(value=value)
        return f"Selected option with value: {value} from: {selector}"

    @action("playwright_select_option_by_label")
    async def select_option_by_label(
        self,
        page: Any,
        selector: str,
        label: str,
        timeout: Optional[int] = None,
    ) -> str:
        locator = await self._visible(page.locator(selector).first, selector, timeout=timeout)
        await locator.select_option(label=label)
        return f"Selected option with label: {label} from: {selector}"

    @action("playwright_select_multiple_options")
    async def select_multiple_options(
        self,
        page: Any,
        selector: str,
        values: List[str],
        timeout: Optional[int] = None,
    ) -> str:
        locator = await self._visible(page.locator(selector).first, selector, timeout=timeout)
        picked = [str(v) for v in (values or [])]
        await locator.select_option(value=picked)
        return f"Selected multiple options: {', '.join(picked)} from: {selector}"

    @action("playwright_check_element")
    async def check_element(self, page: Any, selector: str, timeout: Optional[int] = None) -> str:
        """Check a checkbox or radio button."""
        locator = await self._visible(page.locator(selector).first, selector, timeout=timeout)
        await locator.check()
        return f"Checked element: {selector}"

    @action("playwright_uncheck_element")
    async def uncheck_element(self, page: Any, selector: str, timeout: Optional[int] = None) -> str:
        locator = await self._visible(page.locator(selector).first, selector, timeout=timeout)
        await locator.uncheck()
        return f"Unchecked element: {selector}"

    @action("playwright_type_text")
    async def type_text(self, page: Any, selector: str, text: str, timeout: Optional[int] = None) -> str:
        """Type text key by key into an element (fires keyboard events)."""
        locator = await self._visible(page.locator(selector).first, selector, timeout=timeout)
        await locator.press_sequentially(str(text))
        return f"Typed text: {text} into element: {selector}"

    @action("playwright_scroll_to_element")
    async def scroll_to_element(self, page: Any, selector: str, timeout: Optional[int] = None) -> str:
        locator = await self._visible(page.locator(selector).first, selector, timeout=timeout)
        await locator.scroll_into_view_if_needed()
        return f"Scrolled to element: {selector}"

    @action("playwright_wait_for_element_hidden")
    async def wait_for_element_hidden(self, page: Any, selector: str, timeout: Optional[int] = None) -> str:
        await self._visible(page.locator(selector).first, selector, timeout=timeout, state="hidden")
        return f"Element is now hidden: {selector}"

    # -- element queries -------------------------------------------------

    @action("playwright_get_element_text")
    async def get_element_text(self, page: Any, selector: str, timeout: Optional[int] = None) -> str:
        locator = await self._visible(page.locator(selector).first, selector, timeout=timeout)
        text = await locator.text_content()
        return f"Element text content: {text}"

    @action("playwright_get_element_attribute")
    async def get_element_attribute(
        self,
        page: Any,
        selector: str,
        attribute: str,
        timeout: Optional[int] = None,
    ) -> str:
        locator = await self._visible(page.locator(selector).first, selector, timeout=timeout)
        value = await locator.get_attribute(attribute)
        return f"Element attribute {attribute}: {value}"

    @action("playwright_check_element_exists")
    async def check_element_exists(self, page: Any, selector: str, timeout: Optional[int] = None) -> str:
        """Report whether an element becomes visible; absence is not an error."""
        try:
            await self._visible(page.locator(selector).first, selector, timeout=timeout)
        except ElementNotFound:
            return f"Element does not exist: {selector}"
        return f"Element exists: {selector}"

    @action("playwright_is_element_checked")
    async def is_element_checked(self, page: Any, selector: str, timeout: Optional[int] = None) -> str:
        locator = await self._visible(page.locator(selector).first, selector, timeout=timeout)
        checked = await locator.is_checked()
        return f"Element checked state: {str(bool(checked)).lower()}"

    @action("playwright_get_input_value")
    async def get_input_value(self, page: Any, selector: str, timeout: Optional[int] = None) -> str:
        locator = await self._visible(page.locator(selector).first, selector, timeout=timeout)
        value = await locator.input_value()
        return f"Input value: {value}"

    # -- content extraction ----------------------------------------------

    @action("playwright_get_visible_text")
    async def get_visible_text(self, page: Any) -> str:
        """Get the visible text content of the current page."""
        text = str(await page.evaluate(VISIBLE_TEXT_SCRIPT) or "")
        limit = self.config.max_html_length
        if len(text) > limit:
            text = text[:limit] + "\n[Output truncated due to size limits]"
        return f"Visible text content:\n{text}"

    @action("playwright_get_visible_html")
    async def get_visible_html(
        self,
        page: Any,
        selector: Optional[str] = None,
        remove_scripts: bool = True,
        remove_comments: bool = False,
        remove_styles: bool = False,
        remove_meta: bool = False,
        clean_html: bool = False,
        minify: bool = False,
        max_length: int = 20000,
    ) -> Any:
        """
        Get the HTML of the page or of the container matching ``selector``.

        Script tags are removed unless ``removeScripts`` is false. ``cleanHtml``
        turns on every removal option.
        """
        if clean_html:
            remove_scripts = remove_comments = remove_styles = remove_meta = True
        html = await page.evaluate(
            CLEAN_HTML_SCRIPT,
            {
                "selector": selector or None,
                "removeScripts": bool(remove_scripts),
                "removeComments": bool(remove_comments),
                "removeStyles": bool(remove_styles),
                "removeMeta": bool(remove_meta),
            },
        )
        if html is None:
            raise ElementNotFound(f"Element not found: {selector}")
        html = str(html)
        if minify:
            html = re.sub(r">\s+<", "><", html)
            html = re.sub(r"\s{2,}", " ", html).strip()

        limit = max(1, int(max_length or self.config.max_html_length))
        if len(html) > limit:
            html = html[:limit] + "\n<!-- Output truncated due to size limits -->"
        return f"HTML content:\n{html}"

    # -- capture ---------------------------------------------------------

    @action("playwright_screenshot")
    async def screenshot(
        self,
        page: Any,
        name: str,
        selector: Optional[str] = None,
        width: Optional[int] = None,
        height: Optional[int] = None,
        store_base64: bool = True,
        full_page: bool = False,
        save_png: bool = False,
        downloads_dir: Optional[str] = None,
    ) -> List[str]:
        """
        Take a screenshot of the current page or a specific element.

        ``width``/``height`` clip the page capture to that region from the top
        left corner; they are ignored for element screenshots.
        """
        if selector:
            target = await self._visible(page.locator(selector).first, selector)
            image = await target.screenshot(type="png")
        elif width and height and not full_page:
            clip = {"x": 0, "y": 0, "width": int(width), "height": int(height)}
            image = await page.screenshot(type="png", clip=clip)
        else:
            image = await page.screenshot(type="png", full_page=bool(full_page))

        messages: List[str] = []
        if save_png:
            root = Path(downloads_dir).expanduser() if downloads_dir else self.config.screenshots_path
            root.mkdir(parents=True, exist_ok=True)
            ts = time.strftime("%Y-%m-%dT%H-%M-%S")
            out_path = root / f"{name}-{ts}.png"
            out_path.write_bytes(bytes(image))
            messages.append(f"Screenshot saved to: {out_path}")

        if store_base64:
            self.screenshots[name] = base64.b64encode(bytes(image)).decode("ascii")
            messages.append(f"Screenshot stored in memory with name: '{name}'")

        if not messages:
            messages.append(f"Screenshot '{name}' taken")
        return messages

    @action("playwright_take_element_screenshot")
    async def take_element_screenshot(
        self,
        page: Any,
        selector: str,
        path: str,
        timeout: Optional[int] = None,
    ) -> str:
        locator = await self._visible(page.locator(selector).first, selector, timeout=timeout)
        await locator.screenshot(path=path)
        return f"Screenshot saved to: {path}"

    @action("playwright_save_as_pdf")
    async def save_as_pdf(
        self,
        page: Any,
        output_path: str,
        filename: str = "page.pdf",
        format: str = "A4",
        print_background: bool = True,
        margin: Optional[Dict[str, str]] = None,
    ) -> str:
        """Save the current page as PDF (Chromium only)."""
        out_dir = Path(output_path)
        out_dir.mkdir(parents=True, exist_ok=True)
        out_file = out_dir / (filename or "page.pdf")
        await page.pdf(
            path=str(out_file),
            format=format or "A4",
            print_background=bool(print_background),
            margin=margin or {"top": "1cm", "right": "1cm", "bottom": "1cm", "left": "1cm"},
        )
        return f"Saved page as PDF: {out_file}"

    @action("playwright_close", kind=ActionKind.STATE)
    async def close(self) -> str:
        """Close the browser and release all resources."""
        closed = await self.session_manager.close_all()
        self.screenshots.clear()
        if not closed:
            return "No browser instance to close"
        return "Browser closed successfully"

    # -- helpers ---------------------------------------------------------

    def _timeout(self, timeout: Optional[int]) -> int:
        try:
            return int(timeout or self.config.action_timeout_ms)
        except Exception:
            return self.config.action_timeout_ms

    async def _visible(
        self,
        locator: Any,
        description: str,
        *,
        timeout: Optional[int] = None,
        state: str = "visible",
    ) -> Any:
        """Wait for ``locator`` to reach ``state``; timeouts become ElementNotFound."""
        wait_ms = self._timeout(timeout)
        try:
            await locator.wait_for(state=state, timeout=wait_ms)
        except PlaywrightTimeoutError as e:
            if state == "hidden":
                raise ElementNotFound(
                    f"Element still visible after {wait_ms}ms: {description}"
                ) from e
            raise ElementNotFound(f"Element not found: {description} (waited {wait_ms}ms)") from e
        return locator

    async def _click(self, locator: Any, description: str, timeout: Optional[int]) -> None:
        await self._visible(locator, description, timeout=timeout)
        await locator.click()

    async def _fill(self, locator: Any, description: str, text: str, timeout: Optional[int]) -> None:
        await self._visible(locator, description, timeout=timeout)
        await locator.fill(str(text))

    async def _frame(self, page: Any, iframe_selector: str) -> Any:
        if await page.locator(iframe_selector).count() == 0:
            raise IframeNotFound(f"Iframe not found: {iframe_selector}")
        return page.frame_locator(iframe_selector)
