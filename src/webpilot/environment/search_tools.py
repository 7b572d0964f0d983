"""
DuckDuckGo web search over the HTML-only endpoint.

Note:
    DuckDuckGo has aggressive bot detection. Challenge pages are reported as
    ``SearchChallengeError`` rather than being parsed as empty result sets.
"""

import asyncio
import logging
from typing import List, Optional

import aiohttp
from lxml.html import HTMLParser as LHTMLParser
from lxml.html import document_fromstring
from pydantic import BaseModel

from webpilot.agents.exceptions import SearchChallengeError, SearchError

logger = logging.getLogger(__name__)

DDG_HTML_URL = "https://html.duckduckgo.com/html/"

_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36"
)

_CHALLENGE_TEXT = "Unfortunately, bots use DuckDuckGo too."


def _class_xpath(name: str) -> str:
    return f"contains(concat(' ', normalize-space(@class), ' '), ' {name} ')"


_RESULT_XPATH = f"//*[{_class_xpath('results')}]//*[{_class_xpath('web-result')}]"


class SearchIcon(BaseModel):
    src: str = ""
    width: int = 0
    height: int = 0


class SearchResult(BaseModel):
    title: str = ""
    url: str = ""
    snippet: str = ""
    icon: SearchIcon = SearchIcon()


def _clean(text: str) -> str:
    return text.replace("\n", "").strip()


def _to_int(value: Optional[str]) -> int:
    try:
        return int(value or "")
    except ValueError:
        return 0


def _first_text(node, class_name: str) -> str:
    found = node.xpath(f".//*[{_class_xpath(class_name)}]")
    return _clean(found[0].text_content()) if found else ""


def _collect_result(node) -> SearchResult:
    icon = SearchIcon()
    icons = node.xpath(f".//*[{_class_xpath('result__icon__img')}]")
    if icons:
        icon = SearchIcon(
            src=icons[0].get("src", ""),
            width=_to_int(icons[0].get("width")),
            height=_to_int(icons[0].get("height")),
        )
    return SearchResult(
        title=_first_text(node, "result__a"),
        url=_first_text(node, "result__url"),
        snippet=_first_text(node, "result__snippet"),
        icon=icon,
    )


def is_challenge_page(tree) -> bool:
    """Detect DuckDuckGo's anomaly/bot challenge page."""
    if tree.xpath("//*[@id='challenge-form']"):
        return True
    if tree.xpath(f"//*[{_class_xpath('anomaly-modal__modal')}]"):
        return True
    if _CHALLENGE_TEXT in tree.text_content():
        return True
    return any("anomalyDetectionBlock" in (script.text or "") for script in tree.xpath("//script"))


def parse_results(html: bytes, limit: int = 0) -> List[SearchResult]:
    """
    Parse a DuckDuckGo HTML result page.

    Raises:
        SearchChallengeError: If the page is a bot challenge.
    """
    if not html or not html.strip():
        return []
    parser = LHTMLParser(remove_blank_text=True, remove_comments=True, remove_pis=True)
    tree = document_fromstring(html, parser=parser)
    if is_challenge_page(tree):
        raise SearchChallengeError()

    results = []
    for node in tree.xpath(_RESULT_XPATH):
        if limit > 0 and len(results) >= limit:
            break
        results.append(_collect_result(node))

    if limit > 0 and not results:
        # Simple pages without the result wrappers
        fallback = _collect_result(tree)
        if fallback.title or fallback.url:
            results.append(fallback)
    return results


class DuckDuckGoSearchClient:
    """
    Async client for DuckDuckGo's HTML endpoint.

    Args:
        max_retries: Extra attempts after a non-200 success status.
        initial_delay: Seconds to wait before the first request.
        backoff: Base delay; attempt ``n`` waits ``backoff * 2**n``.
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str = DDG_HTML_URL,
        max_retries: int = 3,
        initial_delay: float = 5.0,
        backoff: float = 4.0,
        timeout: float = 30.0,
        user_agent: str = _USER_AGENT,
    ):
        self.base_url = base_url
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.backoff = backoff
        self.timeout = timeout
        self.user_agent = user_agent
        self._session: Optional[aiohttp.ClientSession] = None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(cookie_jar=aiohttp.CookieJar())
        return self._session

    async def search(self, query: str, limit: int = 0) -> List[SearchResult]:
        """
        Search for ``query`` and return at most ``limit`` results (0 = all).

        A 200 response is parsed. Any other 2xx status is retried with
        exponential backoff and yields an empty list once retries run out.
        Every other status raises ``SearchError``.
        """
        if self.initial_delay > 0:
            await asyncio.sleep(self.initial_delay)

        session = await self._ensure_session()
        headers = {"User-Agent": self.user_agent}
        logger.info(f"DuckDuckGo search for: {query}")

        for attempt in range(self.max_retries + 1):
            try:
                async with session.get(
                    self.base_url,
                    params={"q": query},
                    headers=headers,
                    allow_redirects=False,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    status = response.status
                    if status == 200:
                        html = await response.read()
                        results = parse_results(html, limit)
                        logger.debug(f"DuckDuckGo returned {len(results)} result(s) for {query!r}")
                        return results
            except aiohttp.ClientError as e:
                raise SearchError(f"duckduckgo request failed: {e}") from e

            if 200 <= status < 300:
                if attempt == self.max_retries:
                    logger.warning(f"DuckDuckGo kept answering {status}; returning no results")
                    return []
                delay = self.backoff * (2 ** attempt)
                logger.warning(f"DuckDuckGo returned {status}. Retry {attempt + 1}/{self.max_retries} after {delay:.1f}s")
                await asyncio.sleep(delay)
                continue

            raise SearchError(f"unexpected status code {status}", status_code=status)

        return []

    async def aclose(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None


def format_results(results: List[SearchResult]) -> str:
    """Render results as the numbered text block returned to the model."""
    lines = []
    for i, result in enumerate(results, start=1):
        lines.append(f"## RESULT {i}")
        lines.append(f"url:     {result.url}")
        lines.append(f"title:   {result.title}")
        lines.append(f"snippet: {result.snippet}")
    return "\n".join(lines)
