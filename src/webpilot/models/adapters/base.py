"""Base adapter classes for API providers."""

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import aiohttp

from webpilot.agents.exceptions import ProviderError, ProviderTimeoutError
from webpilot.models.response_models import HarmonizedResponse

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = (500, 502, 503, 504, 529, 408)


class APIProviderAdapter(ABC):
    """Abstract base class for API provider adapters"""

    provider_name: str = "generic"

    def __init__(self, model_name: str, **provider_config):
        self.model_name = model_name

    @abstractmethod
    def get_headers(self) -> Dict[str, str]:
        pass

    @abstractmethod
    def format_request_payload(self, messages: List[Dict], **kwargs) -> Dict[str, Any]:
        pass

    @abstractmethod
    def get_endpoint_url(self) -> str:
        pass

    @abstractmethod
    def harmonize_response(self, raw_response: Dict[str, Any], request_start_time: float) -> HarmonizedResponse:
        pass

    def handle_api_error(self, status: int, body: str) -> ProviderError:
        """Turn a non-retryable HTTP failure into a classified ``ProviderError``."""
        message = body
        error_type = None
        try:
            data = json.loads(body)
        except (json.JSONDecodeError, TypeError):
            data = None
        if isinstance(data, dict) and isinstance(data.get("error"), dict):
            message = data["error"].get("message") or body
            error_type = data["error"].get("type") or data["error"].get("code")

        if status in (401, 403):
            suggestion = "Check the API key configured for this model profile."
        elif status == 404:
            suggestion = "Check the model name and base URL of the model profile."
        elif status == 429:
            suggestion = "Rate limit exceeded; wait before retrying."
        else:
            suggestion = None

        return ProviderError(
            f"{self.provider_name} API error {status}: {message}".strip(),
            provider=self.provider_name,
            status_code=status,
            api_error_type=error_type,
            suggestion=suggestion,
        )


class AsyncBaseAPIAdapter(APIProviderAdapter):
    """
    Async adapter using a persistent aiohttp session.

    Subclasses only describe the wire format; the request loop, retries and
    error classification live here.
    """

    max_retries = 3
    base_delay = 1.0

    def __init__(self, *args, request_timeout: float = 90.0, **kwargs):
        super().__init__(*args, **kwargs)
        self.request_timeout = request_timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Create the pooled session on first use."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(limit=100, limit_per_host=30, ttl_dns_cache=300)
            self._session = aiohttp.ClientSession(connector=connector)
        return self._session

    async def arun(self, messages: List[Dict], **kwargs) -> HarmonizedResponse:
        """
        Standard async orchestration flow with exponential backoff retry.

        Args:
            messages: List of message dictionaries
            **kwargs: Additional parameters for the API call

        Returns:
            HarmonizedResponse: Standardized response object

        Raises:
            ProviderTimeoutError: When the transport deadline is exceeded
            ProviderError: For any other API or network error
        """
        for attempt in range(self.max_retries + 1):
            request_start_time = time.time()
            headers = self.get_headers()
            payload = self.format_request_payload(messages, **kwargs)
            url = self.get_endpoint_url()
            session = await self._ensure_session()

            try:
                async with session.post(
                    url,
                    headers=headers,
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=self.request_timeout),
                ) as response:
                    status = response.status

                    if status in RETRYABLE_STATUSES and attempt < self.max_retries:
                        delay = self.base_delay * (2 ** attempt)
                        logger.warning(
                            f"Server error {status} from {self.model_name}. "
                            f"Retry {attempt + 1}/{self.max_retries} after {delay:.1f}s"
                        )
                        await asyncio.sleep(delay)
                        continue

                    if status == 429 and attempt < self.max_retries:
                        retry_after = response.headers.get("retry-after")
                        retry_after = response.headers.get("x-ratelimit-reset-after", retry_after)
                        try:
                            delay = float(retry_after) if retry_after else self.base_delay * (2 ** attempt)
                        except ValueError:
                            delay = self.base_delay * (2 ** attempt)
                        logger.warning(
                            f"Rate limit (429) from {self.model_name}. "
                            f"Retry {attempt + 1}/{self.max_retries} after {delay:.1f}s"
                        )
                        await asyncio.sleep(delay)
                        continue

                    if status != 200:
                        body = await response.text()
                        if status in RETRYABLE_STATUSES or status == 429:
                            logger.error(f"Max retries ({self.max_retries}) exhausted for status {status}")
                        raise self.handle_api_error(status, body)

                    raw_response = await response.json(content_type=None)

            except asyncio.TimeoutError as e:
                raise ProviderTimeoutError(timeout=self.request_timeout) from e
            except aiohttp.ClientError as e:
                raise ProviderError(
                    f"{self.provider_name} request failed: {e}",
                    provider=self.provider_name,
                ) from e

            return self.harmonize_response(raw_response, request_start_time)

        # Only reachable when max_retries is negative.
        raise ProviderError(f"{self.provider_name} request was never attempted", provider=self.provider_name)

    async def aclose(self) -> None:
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
