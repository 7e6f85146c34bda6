"""
Direct HTML fetch: plain GET with a desktop browser user agent.
"""
import logging

from core.net import HTTPClient
from .outcome import FetchOutcome, PROVIDER_DIRECT

logger = logging.getLogger(__name__)


class DirectFetcher:
    """Fetches a page the way a browser's first request would."""

    def __init__(self, http_client: HTTPClient):
        self.http_client = http_client

    async def fetch(self, url: str) -> FetchOutcome:
        """
        Raises:
            httpx.HTTPError: transport failure after retries
        """
        response = await self.http_client.get(url)
        return FetchOutcome(
            status=response.status,
            final_url=response.final_url or url,
            html=response.text or '',
            provider=PROVIDER_DIRECT,
        )
