"""
Browser tool handlers exposed to the model.

Every handler takes the decoded argument dict and returns a ``ToolResult``.
Handlers that touch the page or the focused element run inside the browser
guard; failures are raised as ``WebPilotError`` subclasses and turned into
``{"error": ...}`` payloads by the session.
"""

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import aiohttp
import markdownify
from bs4 import BeautifulSoup, UnicodeDammit

from webpilot.agents.exceptions import (
    BrowserNotInitializedError,
    NoElementSelectedError,
    ToolArgumentError,
    ToolExecutionError,
)
from webpilot.config import SessionConfig

from .browser_state import BrowserState
from .network_log import (
    NetworkLogFilter,
    ensure_unique_filename,
    parse_resource_types,
    parse_status_codes,
    sanitize_filename,
    split_csv,
    suggest_filename,
)
from .registry import ToolRegistry
from .search_tools import DuckDuckGoSearchClient, format_results
from .tool_response import ToolResult

logger = logging.getLogger(__name__)

PROBE_MAX_BYTES = 32 * 1024
TYPE_TIMEOUT_MS = 2000
CLICK_TIMEOUT_MS = 5000
NETWORK_LIST_DEFAULT_LIMIT = 20
NETWORK_LIST_MAX_LIMIT = 1000
DUCK_DEFAULT_RESULTS = 20

NO_ELEMENT_MESSAGE = "no current element - call load_url/search first"
NO_ELEMENT_INTERACT_MESSAGE = "no current element - call load_url and navigation tools first"

_STRIPPED_TAGS = ("script", "style", "noscript", "template")

_COMPUTED_STYLES_SCRIPT = """el => {
    const style = window.getComputedStyle(el);
    const styleObject = {};
    for (let i = 0; i < style.length; i++) {
        const prop = style[i];
        const value = style.getPropertyValue(prop);
        if (value) {
            styleObject[prop] = value;
        }
    }
    return styleObject;
}"""

_DESCRIBE_SCRIPT = """el => {
    const attributes = {};
    for (const attr of Array.from(el.attributes || [])) {
        attributes[attr.name] = attr.value;
    }
    return {
        nodeName: el.nodeName,
        localName: el.localName,
        nodeType: el.nodeType,
        attributes: attributes,
        childElementCount: el.childElementCount,
        childNodeCount: el.childNodes.length,
        textLength: (el.textContent || '').length
    };
}"""

_XPATH_SCRIPT = """el => {
    const parts = [];
    let node = el;
    while (node && node.nodeType === Node.ELEMENT_NODE) {
        if (node.id) {
            parts.unshift(`//*[@id="${node.id}"]`);
            return parts.join('/');
        }
        let index = 1;
        let sibling = node.previousElementSibling;
        while (sibling) {
            if (sibling.nodeName === node.nodeName) index++;
            sibling = sibling.previousElementSibling;
        }
        let hasSameNamedSibling = index > 1;
        sibling = node.nextElementSibling;
        while (!hasSameNamedSibling && sibling) {
            if (sibling.nodeName === node.nodeName) hasSameNamedSibling = true;
            sibling = sibling.nextElementSibling;
        }
        const name = node.localName;
        parts.unshift(hasSameNamedSibling ? `${name}[${index}]` : name);
        node = node.parentElement;
    }
    return '/' + parts.join('/');
}"""

_HREF_SCRIPT = """el => {
    const anchor = el.closest ? el.closest('a[href]') : null;
    return anchor ? anchor.href : (el.href || '');
}"""

_SET_VALUE_SCRIPT = """(el, value) => {
    if (!('value' in el)) return false;
    el.focus();
    el.value = value;
    el.dispatchEvent(new Event('input', { bubbles: true }));
    el.dispatchEvent(new Event('change', { bubbles: true }));
    return true;
}"""


# --- Argument helpers ---


def _str_arg(args: Dict[str, Any], key: str) -> str:
    value = args.get(key)
    if value is None:
        return ""
    return str(value).strip()


def _bool_arg(args: Dict[str, Any], key: str) -> Optional[bool]:
    value = args.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes"):
            return True
        if lowered in ("false", "0", "no", ""):
            return False
    if isinstance(value, (int, float)):
        return bool(value)
    raise ToolArgumentError(f"{key} must be a boolean", argument=key)


def _int_arg(args: Dict[str, Any], key: str) -> Optional[int]:
    value = args.get(key)
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ToolArgumentError(f"{key} must be a number", argument=key)
    try:
        return int(float(value))
    except (TypeError, ValueError):
        raise ToolArgumentError(f"{key} must be a number", argument=key) from None


def _float_arg(args: Dict[str, Any], key: str) -> Optional[float]:
    value = args.get(key)
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ToolArgumentError(f"{key} must be a number", argument=key) from None


def _delivery_arg(args: Dict[str, Any], default: str) -> str:
    delivery = _str_arg(args, "return").lower() or default
    if delivery not in ("binary", "file"):
        raise ToolArgumentError(f"return must be binary or file, got {delivery!r}", argument="return")
    return delivery


# --- Content helpers ---


def decode_body(data: bytes, content_type: str = "") -> str:
    """Best-effort decode of a response body into text."""
    if not data:
        return ""
    hints = []
    if "charset=" in content_type.lower():
        hints.append(content_type.lower().split("charset=")[-1].split(";")[0].strip())
    dammit = UnicodeDammit(data, hints)
    if dammit.unicode_markup is not None:
        return dammit.unicode_markup
    return data.decode("utf-8", errors="replace")


def looks_like_html(sample: bytes, content_type: str) -> bool:
    return "html" in content_type.lower() or b"<html" in sample.lower()


async def probe_url(url: str, max_bytes: int = PROBE_MAX_BYTES) -> Tuple[bytes, str, bool]:
    """
    Fetch the start of ``url`` to decide whether it is an HTML page.

    Returns:
        (sample, content_type, looks_html)
    """
    async with aiohttp.ClientSession() as session:
        async with session.get(url, timeout=aiohttp.ClientTimeout(total=30)) as response:
            content_type = response.headers.get("Content-Type", "")
            sample = await response.content.read(max_bytes)
    return sample, content_type, looks_like_html(sample, content_type)


def html_to_markdown(html: str) -> str:
    """Convert an HTML fragment to Markdown, dropping scripts and styles."""
    soup = BeautifulSoup(html, "lxml")
    for tag in soup(_STRIPPED_TAGS):
        tag.decompose()
    markdown = markdownify.markdownify(str(soup), heading_style="ATX", bullets="-")
    lines = [line.rstrip() for line in markdown.splitlines()]
    collapsed = []
    for line in lines:
        if not line and collapsed and not collapsed[-1]:
            continue
        collapsed.append(line)
    return "\n".join(collapsed).strip()


def resolve_output_path(override: str, base_dir: Path, prefix: str, ext: str) -> Path:
    """Pick the file for a capture, creating parent directories."""
    if override:
        path = Path(os.path.normpath(override))
        if not path.suffix:
            path = path.with_name(f"{path.name}.{ext}")
        path.parent.mkdir(parents=True, exist_ok=True)
        return path
    base_dir = Path(base_dir)
    base_dir.mkdir(parents=True, exist_ok=True)
    return base_dir / f"{prefix}-{datetime.now().strftime('%Y%m%d-%H%M%S')}.{ext}"


class BrowserTools:
    """Handlers bound to one ``BrowserState`` and search client."""

    def __init__(
        self,
        state: BrowserState,
        search_client: Optional[DuckDuckGoSearchClient] = None,
        config: Optional[SessionConfig] = None,
    ):
        self.state = state
        self.search_client = search_client
        self.config = config or state.config

    def handlers(self) -> Dict[str, Callable[[Dict[str, Any]], Awaitable[ToolResult]]]:
        return {
            "load_url": self.load_url,
            "get_html": self.get_html,
            "text": self.text,
            "capture_screenshot": self.capture_screenshot,
            "capture_pdf": self.capture_pdf,
            "box": self.box,
            "computedstyles": self.computed_styles,
            "describe": self.describe,
            "xpath": self.xpath,
            "shutdown": self.shutdown,
            "duck": self.duck,
            "network_list": self.network_list,
            "network_save": self.network_save,
            "network_set_logging": self.network_set_logging,
            "to_markdown": self.to_markdown,
            "search": self.search,
            "head": self.head,
            "next": self.next,
            "prev": self.prev,
            "elem": self.elem,
            "child": self.child,
            "parent": self.parent,
            "html": self.html,
            "click": self.click,
            "type": self.type,
            "run_js": self.run_js,
        }

    async def _guarded(self, thunk: Callable[[], Awaitable[ToolResult]]) -> ToolResult:
        return await self.state.guard.run(thunk)

    def _element(self, message: str = NO_ELEMENT_MESSAGE):
        return self.state.require_element(message)

    # --- Navigation ---

    async def load_url(self, args: Dict[str, Any]) -> ToolResult:
        url = _str_arg(args, "url")
        if not url:
            raise ToolArgumentError("load_url: url argument is required", tool_name="load_url", argument="url")

        async def run() -> ToolResult:
            await self.state.load_url(url)
            return ToolResult(text=f"navigated to {self.state.page.url}")

        return await self._guarded(run)

    async def search(self, args: Dict[str, Any]) -> ToolResult:
        selector = _str_arg(args, "selector")
        if not selector:
            raise ToolArgumentError("search: selector is required", tool_name="search", argument="selector")

        async def run() -> ToolResult:
            elements = await self.state.query_all(selector)
            if not elements:
                self.state.clear_selection()
                return ToolResult(text=f"no elements found for selector {selector}")
            self.state.set_selection(elements, 0)
            header = f'found {len(elements)} elements for selector "{selector}".'
            return ToolResult(text=await self.state.describe_selection(header))

        return await self._guarded(run)

    async def head(self, args: Dict[str, Any]) -> ToolResult:
        level = _str_arg(args, "level")
        selector = f"h{level}" if level else "h1, h2, h3, h4, h5, h6"

        async def run() -> ToolResult:
            elements = await self.state.query_all(selector)
            if not elements:
                raise ToolExecutionError(f"no headings found for selector {selector}", tool_name="head")
            self.state.set_selection(elements, 0)
            header = f'found {len(elements)} headings for selector "{selector}".'
            return ToolResult(text=await self.state.describe_selection(header))

        return await self._guarded(run)

    async def _step(self, args: Dict[str, Any], delta: int) -> ToolResult:
        index = _int_arg(args, "index")

        async def run() -> ToolResult:
            state = self.state
            if not state.elements:
                raise ToolExecutionError("no search results - run search first")
            if index is not None:
                if index < 0 or index >= len(state.elements):
                    raise ToolArgumentError(
                        f"index {index} out of range (0-{len(state.elements) - 1})", argument="index"
                    )
                target = index
            else:
                target = state.index + delta
                if target >= len(state.elements):
                    raise ToolExecutionError(f"already at the last element (index {state.index})")
                if target < 0:
                    raise ToolExecutionError("already at the first element (index 0)")
            state.set_selection(state.elements, target)
            return ToolResult(text=await state.describe_focus())

        return await self._guarded(run)

    async def next(self, args: Dict[str, Any]) -> ToolResult:
        return await self._step(args, 1)

    async def prev(self, args: Dict[str, Any]) -> ToolResult:
        return await self._step(args, -1)

    async def elem(self, args: Dict[str, Any]) -> ToolResult:
        selector = _str_arg(args, "selector")
        if not selector:
            raise ToolArgumentError("selector cannot be empty", tool_name="elem", argument="selector")

        async def run() -> ToolResult:
            state = self.state
            matches = await state.query_all(selector)
            if not matches:
                state.clear_selection(keep_focus=True)
                return ToolResult(text=f'no elements matched selector "{selector}"')

            target = matches[0]
            if state.current_element is not None:
                scoped = await state.current_element.query_selector(selector)
                if scoped is not None:
                    target = scoped

            index = await state.index_of(matches, target)
            if index < 0:
                matches = [target] + list(matches)
                index = 0
            state.set_selection(matches, index)
            header = f'matched {len(matches)} elements for selector "{selector}".'
            return ToolResult(text=await state.describe_selection(header))

        return await self._guarded(run)

    async def child(self, args: Dict[str, Any]) -> ToolResult:
        async def run() -> ToolResult:
            element = self._element()
            child = await element.query_selector(":scope > *:first-child")
            if child is None:
                raise ToolExecutionError("child navigation failed: element has no children", tool_name="child")
            self.state.focus(child)
            return ToolResult(text=f"focused child element: {await self.state.summarize_element(child)}")

        return await self._guarded(run)

    async def parent(self, args: Dict[str, Any]) -> ToolResult:
        async def run() -> ToolResult:
            element = self._element()
            parent = await element.query_selector("xpath=..")
            if parent is None:
                raise ToolExecutionError("parent navigation failed: element has no parent", tool_name="parent")
            self.state.focus(parent)
            return ToolResult(text=f"focused parent element: {await self.state.summarize_element(parent)}")

        return await self._guarded(run)

    # --- Inspection ---

    async def text(self, args: Dict[str, Any]) -> ToolResult:
        length = _int_arg(args, "length")

        async def run() -> ToolResult:
            content = await self._element().inner_text()
            if length is not None:
                content = content[: max(0, length)]
            return ToolResult(text=content)

        return await self._guarded(run)

    async def html(self, args: Dict[str, Any]) -> ToolResult:
        async def run() -> ToolResult:
            return ToolResult(text=await self._element().evaluate("el => el.outerHTML"))

        return await self._guarded(run)

    async def _load_for_content(self, url: str, focus_selector: str) -> Optional[str]:
        """
        Load ``url`` for get_html/to_markdown.

        Returns the decoded text when the URL is not an HTML document, else
        navigates the page, focuses ``focus_selector`` and returns None.
        """
        try:
            sample, content_type, is_html = await probe_url(url)
        except aiohttp.ClientError as e:
            raise ToolExecutionError(f"probe error: {e}") from e
        if not is_html:
            logger.debug(f"Non-HTML content ({content_type}) at {url}: {len(sample)} bytes")
            return decode_body(sample, content_type)
        await self.state.load_url(url)
        self.state.focus(await self.state.require_page().query_selector(focus_selector))
        return None

    async def get_html(self, args: Dict[str, Any]) -> ToolResult:
        url = _str_arg(args, "url")

        async def run() -> ToolResult:
            if url:
                raw = await self._load_for_content(url, "html")
                if raw is not None:
                    return ToolResult(text=raw)
            if self.state.current_element is None:
                raise BrowserNotInitializedError()
            return ToolResult(text=await self.state.current_element.evaluate("el => el.outerHTML"))

        return await self._guarded(run)

    async def to_markdown(self, args: Dict[str, Any]) -> ToolResult:
        url = _str_arg(args, "url")

        async def run() -> ToolResult:
            if url:
                raw = await self._load_for_content(url, "body")
                if raw is not None:
                    return ToolResult(text=raw)
            if self.state.current_element is None:
                raise NoElementSelectedError()
            html = await self.state.current_element.evaluate("el => el.outerHTML")
            return ToolResult(text=html_to_markdown(html))

        return await self._guarded(run)

    async def box(self, args: Dict[str, Any]) -> ToolResult:
        async def run() -> ToolResult:
            rect = await self._element().bounding_box()
            if rect is None:
                raise ToolExecutionError("failed to get current element box: element is not visible", tool_name="box")
            return ToolResult(text=f"box: {json.dumps(rect, indent=2)}")

        return await self._guarded(run)

    async def computed_styles(self, args: Dict[str, Any]) -> ToolResult:
        async def run() -> ToolResult:
            styles = await self._element().evaluate(_COMPUTED_STYLES_SCRIPT)
            return ToolResult(text=json.dumps(styles, indent=2))

        return await self._guarded(run)

    async def describe(self, args: Dict[str, Any]) -> ToolResult:
        async def run() -> ToolResult:
            node = await self._element().evaluate(_DESCRIBE_SCRIPT)
            return ToolResult(text=json.dumps(node, indent=2))

        return await self._guarded(run)

    async def xpath(self, args: Dict[str, Any]) -> ToolResult:
        async def run() -> ToolResult:
            return ToolResult(text=await self._element().evaluate(_XPATH_SCRIPT))

        return await self._guarded(run)

    async def run_js(self, args: Dict[str, Any]) -> ToolResult:
        show_errors = bool(_bool_arg(args, "showErrors"))
        script = _str_arg(args, "script")

        async def run() -> ToolResult:
            element = self.state.current_element
            if element is None:
                message = "run_js error: no element selected - call load_url and navigation tools first"
                if show_errors:
                    return ToolResult(text=message)
                raise NoElementSelectedError(message)
            if not script:
                raise ToolArgumentError("run_js: script argument is required", tool_name="run_js", argument="script")

            wrapped = f"el => (function () {{ return ({script}); }}).call(el)"
            try:
                value = await element.evaluate(wrapped)
            except Exception as e:
                if show_errors:
                    return ToolResult(text=f"run_js execution error: {e}")
                raise ToolExecutionError(f"run_js execution error: {e}", tool_name="run_js") from e
            return ToolResult(text=json.dumps(value, ensure_ascii=False))

        return await self._guarded(run)

    # --- Interaction ---

    async def click(self, args: Dict[str, Any]) -> ToolResult:
        async def run() -> ToolResult:
            element = self._element(NO_ELEMENT_INTERACT_MESSAGE)
            try:
                await element.click(timeout=CLICK_TIMEOUT_MS)
            except Exception as e:
                logger.info(f"Click failed ({e}); trying fallbacks")
                if await self._click_fallback(element):
                    return ToolResult(text="click fallback executed")
                raise ToolExecutionError(f"click failed: {e}", tool_name="click") from e
            return ToolResult(text="clicked current element")

        return await self._guarded(run)

    async def _click_fallback(self, element) -> bool:
        try:
            href = await element.evaluate(_HREF_SCRIPT)
            if href:
                await self.state.load_url(href)
                return True
            await element.evaluate("el => el.click()")
            return True
        except Exception as e:
            logger.warning(f"Click fallback failed: {e}")
            return False

    async def type(self, args: Dict[str, Any]) -> ToolResult:
        text = str(args.get("text") or "").strip()
        if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
            text = text[1:-1].strip()
        if not text:
            raise ToolArgumentError("type requires non-empty text", tool_name="type", argument="text")

        async def run() -> ToolResult:
            element = self._element(NO_ELEMENT_INTERACT_MESSAGE)
            try:
                await element.fill(text, timeout=TYPE_TIMEOUT_MS)
            except Exception as e:
                logger.info(f"Typing failed ({e}); trying javascript fallback")
                try:
                    injected = await element.evaluate(_SET_VALUE_SCRIPT, text)
                except Exception:
                    injected = False
                if injected:
                    return ToolResult(text="typed text via javascript fallback")
                raise ToolExecutionError(f"type failed: {e}", tool_name="type") from e
            return ToolResult(text="typed text into current element")

        return await self._guarded(run)

    # --- Capture ---

    async def _load_optional(self, url: str, tool: str) -> None:
        if url:
            await self.state.load_url(url)
        if self.state.page is None:
            raise BrowserNotInitializedError(f"{tool}: no page loaded - call load_url first or provide url")

    def _deliver(
        self,
        data: bytes,
        mime: str,
        caption: str,
        delivery: str,
        output: str,
        prefix: str,
        ext: str,
        inline_uri: str = "",
    ) -> ToolResult:
        if delivery == "binary" and len(data) > self.config.inline_binary_limit:
            delivery = "file"
        if delivery == "file":
            path = resolve_output_path(output, self.config.output_dir, prefix, ext)
            path.write_bytes(data)
            logger.info(f"Saved {len(data)} bytes to {path}")
            return ToolResult(
                text=f"{caption} Saved to {path}.",
                binary=data,
                content_type=mime,
                file_path=str(path),
            )
        return ToolResult(text=caption, binary=data, content_type=mime, inline_uri=inline_uri)

    async def capture_screenshot(self, args: Dict[str, Any]) -> ToolResult:
        url = _str_arg(args, "url")
        selector = _str_arg(args, "selector")
        full_page = bool(_bool_arg(args, "full_page"))
        if selector and full_page:
            raise ToolArgumentError("capture_screenshot: selector capture cannot be combined with full_page")
        image_format = _str_arg(args, "format").lower() or "png"
        if image_format == "jpg":
            image_format = "jpeg"
        if image_format not in ("png", "jpeg"):
            raise ToolArgumentError(f"capture_screenshot: unsupported format {image_format!r}", argument="format")
        quality = _int_arg(args, "quality")
        delivery = _delivery_arg(args, "binary")
        output = _str_arg(args, "output")

        async def run() -> ToolResult:
            await self._load_optional(url, "capture_screenshot")
            options: Dict[str, Any] = {"type": image_format}
            if image_format == "jpeg" and quality is not None:
                options["quality"] = quality
            if selector:
                target = await self.state.page.query_selector(selector)
                if target is None:
                    raise ToolExecutionError(f'capture_screenshot: no element matches "{selector}"')
                data = await target.screenshot(**options)
            else:
                data = await self.state.page.screenshot(full_page=full_page, **options)

            mime = f"image/{image_format}"
            caption = f"Captured screenshot ({mime}, {len(data)} bytes)."
            if selector:
                caption = f'Captured screenshot of "{selector}" ({mime}, {len(data)} bytes).'
            elif url:
                caption = f"Captured screenshot of {url} ({mime}, {len(data)} bytes)."
            ext = "jpg" if image_format == "jpeg" else "png"
            return self._deliver(data, mime, caption, delivery, output, "screenshot", ext)

        return await self._guarded(run)

    async def capture_pdf(self, args: Dict[str, Any]) -> ToolResult:
        url = _str_arg(args, "url")
        options: Dict[str, Any] = {
            "landscape": bool(_bool_arg(args, "landscape")),
            "display_header_footer": bool(_bool_arg(args, "header_footer")),
            "print_background": bool(_bool_arg(args, "background")),
            "prefer_css_page_size": bool(_bool_arg(args, "prefer_css_page_size")),
            "tagged": bool(_bool_arg(args, "tagged")),
            "outline": bool(_bool_arg(args, "outline")),
        }
        for key in ("page_ranges", "header_template", "footer_template"):
            value = _str_arg(args, key)
            if value:
                options[key] = value
        scale = _float_arg(args, "scale")
        if scale is not None:
            options["scale"] = scale
        for arg, option in (("paper_width", "width"), ("paper_height", "height")):
            value = _float_arg(args, arg)
            if value is not None:
                options[option] = f"{value}in"
        margin = {}
        for side in ("top", "bottom", "left", "right"):
            value = _float_arg(args, f"margin_{side}")
            if value is not None:
                margin[side] = f"{value}in"
        if margin:
            options["margin"] = margin
        delivery = _delivery_arg(args, "binary")
        output = _str_arg(args, "output")

        async def run() -> ToolResult:
            await self._load_optional(url, "capture_pdf")
            try:
                data = await self.state.page.pdf(**options)
            except Exception as e:
                raise ToolExecutionError(f"capture_pdf: {e}", tool_name="capture_pdf") from e
            caption = f"Captured PDF ({len(data)} bytes)."
            if url:
                caption = f"Captured PDF of {url} ({len(data)} bytes)."
            return self._deliver(
                data, "application/pdf", caption, delivery, output, "document", "pdf", inline_uri="inline:pdf"
            )

        return await self._guarded(run)

    # --- Network ---

    async def network_list(self, args: Dict[str, Any]) -> ToolResult:
        filter_ = NetworkLogFilter(
            mime_substrings=split_csv(_str_arg(args, "mime")),
            suffixes=split_csv(_str_arg(args, "suffix")),
            status_codes=parse_status_codes(_str_arg(args, "status")),
            text_contains=split_csv(_str_arg(args, "contains")),
            methods=split_csv(_str_arg(args, "method")),
            domains=split_csv(_str_arg(args, "domain")),
            resource_types=parse_resource_types(split_csv(_str_arg(args, "type"))),
        )
        limit = _int_arg(args, "limit")
        if limit is None or limit <= 0:
            limit = NETWORK_LIST_DEFAULT_LIMIT
        limit = min(limit, NETWORK_LIST_MAX_LIMIT)
        offset = _int_arg(args, "offset") or 0
        if offset < 0:
            raise ToolArgumentError("offset must be non-negative", tool_name="network_list", argument="offset")
        tail = _bool_arg(args, "tail")
        tail = True if tail is None else tail

        entries = self.state.network_log.filter_entries(filter_)
        total = len(entries)
        if tail:
            end = max(0, total - offset)
            start = max(0, end - limit)
            has_more = start > 0
        else:
            start = min(offset, total)
            end = min(total, start + limit)
            has_more = end < total
        page = entries[start:end]

        payload = {
            "total": total,
            "offset": start,
            "returned": len(page),
            "has_more": has_more,
            "tail": tail,
            "entries": [entry.to_summary() for entry in page],
        }
        return ToolResult(text=json.dumps(payload, indent=2))

    async def network_save(self, args: Dict[str, Any]) -> ToolResult:
        request_id = _str_arg(args, "request_id")
        if not request_id:
            raise ToolArgumentError("network_save: request_id is required", tool_name="network_save", argument="request_id")
        delivery = _delivery_arg(args, "file")
        save_dir = _str_arg(args, "save_dir")
        filename = _str_arg(args, "filename")

        async def run() -> ToolResult:
            log = self.state.network_log
            data = await log.fetch_body(request_id)
            entry = log.entry_by_id(request_id)
            content_type = "application/octet-stream"
            if entry is not None and entry.response is not None and entry.response.mime_type:
                content_type = entry.response.mime_type

            if delivery == "binary":
                return ToolResult(
                    text=f"retrieved {len(data)} bytes for {request_id} ({content_type}).",
                    binary=data,
                    content_type=content_type,
                )

            directory = Path(save_dir) if save_dir else Path(self.config.output_dir) / "network"
            directory.mkdir(parents=True, exist_ok=True)
            base = sanitize_filename(filename) if filename else suggest_filename(entry)
            path = directory / ensure_unique_filename(directory, base)
            path.write_bytes(data)
            logger.info(f"Saved network body {request_id} ({len(data)} bytes) to {path}")
            return ToolResult(
                text=f"saved {len(data)} bytes for {request_id} to {path}",
                content_type=content_type,
                file_path=str(path),
            )

        return await self._guarded(run)

    async def network_set_logging(self, args: Dict[str, Any]) -> ToolResult:
        enabled = _bool_arg(args, "enabled")
        log = self.state.network_log
        if enabled is None:
            return ToolResult(text=f"network activity logging enabled: {str(log.enabled).lower()}")
        changed = log.set_enabled(enabled)
        word = "enabled" if enabled else "disabled"
        if changed:
            return ToolResult(text=f"network activity logging {word}")
        return ToolResult(text=f"network activity logging already {word}")

    # --- Search and lifecycle ---

    async def duck(self, args: Dict[str, Any]) -> ToolResult:
        query = _str_arg(args, "query")
        if not query:
            raise ToolArgumentError("duck: query is required", tool_name="duck", argument="query")
        num = _int_arg(args, "num") or DUCK_DEFAULT_RESULTS
        if self.search_client is None:
            raise ToolExecutionError("web search is not configured", tool_name="duck")
        results = await self.search_client.search(query, limit=num)
        if not results:
            return ToolResult(text=f"no results found for {query!r}")
        return ToolResult(text=format_results(results))

    async def shutdown(self, args: Dict[str, Any]) -> ToolResult:
        async def run() -> ToolResult:
            await self.state.close()
            return ToolResult(text="browser closed")

        return await self._guarded(run)


def register_browser_tools(
    registry: ToolRegistry,
    state: BrowserState,
    search_client: Optional[DuckDuckGoSearchClient] = None,
    config: Optional[SessionConfig] = None,
) -> BrowserTools:
    """Register every browser tool handler on ``registry``."""
    tools = BrowserTools(state, search_client=search_client, config=config)
    for name, handler in tools.handlers().items():
        registry.register(name, handler)
    logger.debug(f"Registered {len(tools.handlers())} browser tools")
    return tools
