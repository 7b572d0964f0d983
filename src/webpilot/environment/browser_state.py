import logging
from typing import List, Optional, Tuple

from playwright.async_api import Browser, BrowserContext, ElementHandle, Page, Playwright, async_playwright

from webpilot.agents.exceptions import BrowserNotInitializedError, NoElementSelectedError
from webpilot.config import SessionConfig

from .guard import ExclusiveGuard
from .network_log import NetworkEventLog

logger = logging.getLogger(__name__)

SUMMARY_TEXT_LIMIT = 60

_SUMMARY_SCRIPT = """el => ({
    tag: (el.tagName || '').toLowerCase(),
    id: el.id || '',
    className: typeof el.className === 'string' ? el.className : (el.getAttribute('class') || ''),
    text: el.innerText || el.textContent || ''
})"""


def format_summary(tag: str = "", id_: str = "", class_name: str = "", text: str = "") -> str:
    """Render ``tag #id .a.b text="..."`` for an element."""
    parts = []
    if tag:
        parts.append(tag)
    if id_:
        parts.append(f"#{id_}")
    classes = ".".join(class_name.split())
    if classes:
        parts.append(f".{classes}")
    text = " ".join(text.split())
    if text:
        if len(text) > SUMMARY_TEXT_LIMIT:
            text = text[: SUMMARY_TEXT_LIMIT - 3] + "..."
        parts.append(f'text="{text}"')
    return " ".join(parts) if parts else "(element)"


def format_element_list(header: str, summaries: List[str], focus: int) -> str:
    """Numbered listing of a selection with the focused entry starred."""
    lines = [header]
    if not summaries:
        lines.append("no elements available")
        return "\n".join(lines)
    if focus < 0 or focus >= len(summaries):
        focus = 0
    lines.append(f"focused index {focus} of {len(summaries)}: {summaries[focus]}")
    for i, summary in enumerate(summaries):
        marker = "*" if i == focus else " "
        lines.append(f"{i}{marker} {summary}")
    return "\n".join(lines)


class BrowserState:
    """
    The single Playwright browser, its page and the navigation cursor.

    ``current_element`` is the focused DOM element; ``elements`` and ``index``
    hold the numbered selection produced by ``search``, ``head`` and ``elem``.
    All access from tool handlers goes through ``guard``.
    """

    def __init__(
        self,
        playwright: Optional[Playwright],
        browser: Optional[Browser],
        context: Optional[BrowserContext],
        page: Optional[Page],
        config: Optional[SessionConfig] = None,
        network_log: Optional[NetworkEventLog] = None,
    ) -> None:
        self.playwright = playwright
        self.browser = browser
        self.context = context
        self.page = page
        self.config = config or SessionConfig()
        self.guard = ExclusiveGuard(timeout=self.config.guard_timeout)
        self.network_log = network_log or NetworkEventLog()
        self.current_element: Optional[ElementHandle] = None
        self.elements: List[ElementHandle] = []
        self.index = 0

        if self.page is not None:
            self.network_log.attach(self.page)

    @classmethod
    async def create(cls, config: Optional[SessionConfig] = None, viewport: Optional[dict] = None) -> "BrowserState":
        """
        Launch Chromium and open a blank page.

        Parameters:
            config: Session settings; ``headless`` controls the window.
            viewport: Optional viewport dimensions for the context.
        """
        config = config or SessionConfig()
        playwright = await async_playwright().start()
        browser = await playwright.chromium.launch(headless=config.headless)
        context_kwargs = {}
        if viewport:
            context_kwargs["viewport"] = viewport
        context: BrowserContext = await browser.new_context(**context_kwargs)
        page: Page = await context.new_page()
        logger.info(f"Browser launched (headless={config.headless})")
        return cls(playwright, browser, context, page, config=config)

    # --- Preconditions ---

    def require_page(self) -> Page:
        if self.page is None:
            raise BrowserNotInitializedError("no page loaded - call load_url first")
        return self.page

    def require_element(self, message: Optional[str] = None) -> ElementHandle:
        if self.current_element is None:
            if message:
                raise NoElementSelectedError(message)
            raise NoElementSelectedError()
        return self.current_element

    # --- Selection ---

    def set_selection(self, elements: List[ElementHandle], index: int = 0) -> None:
        self.elements = list(elements)
        self.index = index
        self.current_element = self.elements[index] if self.elements else None

    def clear_selection(self, keep_focus: bool = False) -> None:
        self.elements = []
        self.index = 0
        if not keep_focus:
            self.current_element = None

    def focus(self, element: Optional[ElementHandle]) -> None:
        self.current_element = element

    # --- Navigation ---

    async def load_url(self, url: str) -> None:
        """Navigate to ``url`` and focus its ``<body>``."""
        page = self.require_page()
        logger.info(f"Navigating to {url}")
        await page.goto(url, wait_until="load")
        self.clear_selection()
        self.current_element = await page.query_selector("body")

    async def query_all(self, selector: str) -> List[ElementHandle]:
        return await self.require_page().query_selector_all(selector)

    async def index_of(self, elements: List[ElementHandle], target: ElementHandle) -> int:
        """Position of ``target`` in ``elements`` by DOM identity, or -1."""
        if not elements:
            return -1
        return await self.require_page().evaluate(
            "([list, target]) => list.indexOf(target)",
            [elements, target],
        )

    async def info(self) -> Tuple[str, str]:
        """Return the page URL and title."""
        page = self.require_page()
        return page.url, await page.title()

    async def summarize_element(self, element: Optional[ElementHandle]) -> str:
        if element is None:
            return "(no element)"
        try:
            data = await element.evaluate(_SUMMARY_SCRIPT)
        except Exception as e:
            logger.debug(f"Element summary failed: {e}")
            return "(element)"
        return format_summary(
            tag=data.get("tag", ""),
            id_=data.get("id", ""),
            class_name=data.get("className", ""),
            text=data.get("text", ""),
        )

    async def describe_selection(self, header: str) -> str:
        summaries = [await self.summarize_element(el) for el in self.elements]
        return format_element_list(header, summaries, self.index)

    async def describe_focus(self) -> str:
        summary = await self.summarize_element(self.current_element)
        return f"focused index {self.index} of {len(self.elements)}: {summary}"

    # --- Session collaborator ---

    async def focus_summary(self) -> str:
        """Summary of the focused element, or an empty string."""

        async def read() -> str:
            if self.current_element is None:
                return ""
            return await self.summarize_element(self.current_element)

        return await self.guard.run(read)

    async def context_summary(self) -> str:
        """URL, title and selection state for the system prompt."""

        async def read() -> str:
            if self.page is None:
                return ""
            url, title = await self.info()
            lines = []
            if url.strip():
                lines.append(f"- URL: {url.strip()}")
            if title.strip():
                lines.append(f"- Title: {title.strip()}")
            if self.current_element is not None:
                lines.append("- A DOM element is currently selected.")
            return "\n".join(lines)

        return await self.guard.run(read)

    async def close(self) -> None:
        """
        Close the browser and stop the Playwright instance.
        """
        self.clear_selection()
        if self.browser is not None:
            await self.browser.close()
        if self.playwright is not None:
            await self.playwright.stop()
        self.browser = None
        self.context = None
        self.page = None
        self.playwright = None
        logger.info("Browser closed")

    @property
    def is_open(self) -> bool:
        return self.page is not None

    def __repr__(self) -> str:
        return f"BrowserState(open={self.is_open}, elements={len(self.elements)}, index={self.index})"
