"""
Client for the rendering service (see render_service.py).
"""
import json
import logging
from typing import Optional

from core.config import Settings
from core.net import HTTPClient
from .outcome import FetchOutcome, PROVIDER_RENDERER

logger = logging.getLogger(__name__)


class RendererClient:
    """Requests a browser-rendered snapshot of a page."""

    def __init__(self, settings: Settings, http_client: HTTPClient):
        self.settings = settings
        self.http_client = http_client

    @property
    def enabled(self) -> bool:
        return self.settings.renderer_enabled

    async def render(self, url: str) -> Optional[FetchOutcome]:
        """
        Returns:
            FetchOutcome tagged 'renderer', or None when the service is not
            configured or answered with an error status

        Raises:
            httpx.HTTPError: transport failure
            ValueError: malformed JSON
        """
        if not self.enabled:
            return None

        endpoint = self.settings.renderer_url.rstrip('/') + '/render'
        headers = {}
        if self.settings.renderer_key:
            headers['x-renderer-key'] = self.settings.renderer_key

        response = await self.http_client.get(
            endpoint,
            headers=headers,
            params={
                'url': url,
                'wait': self.settings.renderer_wait,
                'timeout': str(self.settings.renderer_timeout_ms),
            }
        )
        if not (200 <= response.status < 300):
            logger.info(f"[renderer] {response.status} rendering {url}")
            return None

        data = json.loads(response.text)
        if not isinstance(data, dict):
            raise ValueError("renderer returned non-object JSON")

        return FetchOutcome(
            status=int(data.get('status') or 0),
            final_url=data.get('finalUrl') or url,
            html=data.get('html') or '',
            provider=PROVIDER_RENDERER,
        )
