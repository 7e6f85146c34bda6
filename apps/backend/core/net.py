"""
HTTP client with retries for the fetch tiers, the renderer and the LLM endpoint.
"""
import time
import logging
from dataclasses import dataclass, field
from typing import Optional, Dict, Any
import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

logger = logging.getLogger(__name__)

DESKTOP_UA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
DEFAULT_TIMEOUT = 30.0
MAX_RETRIES = 2


@dataclass
class FetchResponse:
    """Status, final URL (after redirects) and decoded body of one request."""
    status: int
    final_url: str
    text: str
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 400


class HTTPClient:
    """Async HTTP client; error statuses are returned, transport errors raised after retries."""

    def __init__(
        self,
        user_agent: str = DESKTOP_UA,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = MAX_RETRIES,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.user_agent = user_agent
        self.timeout = httpx.Timeout(timeout)
        self.max_retries = max(0, max_retries)
        self.transport = transport

    def _get_headers(self, custom_headers: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "User-Agent": self.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/json;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
        }
        if custom_headers:
            headers.update(custom_headers)
        return headers

    async def _send(
        self,
        url: str,
        method: str,
        headers: Dict[str, str],
        params: Optional[Dict[str, Any]],
        json_data: Optional[Dict[str, Any]]
    ) -> httpx.Response:
        async with httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            transport=self.transport
        ) as client:
            return await client.request(method, url, headers=headers, params=params, json=json_data)

    async def fetch(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Dict[str, Any]] = None
    ) -> FetchResponse:
        """
        Fetch URL, retrying timeouts and connection errors.

        Raises:
            httpx.HTTPError: when the request could not be completed
        """
        request_headers = self._get_headers(headers)
        start_time = time.time()

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.ConnectError)),
            reraise=True
        )
        try:
            async for attempt in retrying:
                with attempt:
                    response = await self._send(url, method.upper(), request_headers, params, json_data)
        except httpx.TimeoutException as e:
            logger.error(f"[net] Timeout fetching {url}: {e}")
            raise
        except httpx.HTTPError as e:
            logger.error(f"[net] {method} failed for {url}: {e}")
            raise

        elapsed_ms = int((time.time() - start_time) * 1000)
        logger.info(f"[net] {method} {response.status_code} {url} ({len(response.content)} bytes, {elapsed_ms}ms)")

        return FetchResponse(
            status=response.status_code,
            final_url=str(response.url),
            text=response.text,
            headers=dict(response.headers)
        )

    async def get(self, url: str, **kwargs) -> FetchResponse:
        return await self.fetch(url, method="GET", **kwargs)

    async def post_json(self, url: str, json_data: Dict[str, Any], **kwargs) -> FetchResponse:
        return await self.fetch(url, method="POST", json_data=json_data, **kwargs)
