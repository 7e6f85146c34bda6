"""
Tiered fetch strategy for a job-posting URL.

Tiers, stopping at the first usable result:
1. ATS JSON API (authoritative, no HTML)
2. Direct GET (non-error status and a useful signal)
3. Rendered snapshot (useful signal)
4. Aggregator unwrap: follow the first ATS link through tiers 1-3
5. Whatever rendered/direct body exists, rendered preferred
"""
import logging
from typing import Optional

import httpx

from core.hosts import HostClassifier, host_from_url
from pipeline.heuristics import find_first_link, has_useful_signal
from .api_fetch import ATSAPIFetcher
from .html_fetch import DirectFetcher
from .outcome import FetchOutcome, PROVIDER_DIRECT
from .renderer_client import RendererClient

logger = logging.getLogger(__name__)

TIER_ERRORS = (httpx.HTTPError, ValueError)


class Resolver:
    """Resolves a URL to the best FetchOutcome the tiers can produce."""

    def __init__(self, classifier: HostClassifier, api_fetcher: ATSAPIFetcher,
                 direct_fetcher: DirectFetcher, renderer: RendererClient):
        self.classifier = classifier
        self.api_fetcher = api_fetcher
        self.direct_fetcher = direct_fetcher
        self.renderer = renderer

    async def _api(self, url: str) -> Optional[FetchOutcome]:
        if not self.api_fetcher.matches(url):
            return None
        try:
            return await self.api_fetcher.fetch(url)
        except TIER_ERRORS as e:
            logger.info(f"[resolver] API tier failed for {url}: {e}")
            return None

    async def _direct(self, url: str) -> Optional[FetchOutcome]:
        try:
            return await self.direct_fetcher.fetch(url)
        except TIER_ERRORS as e:
            logger.info(f"[resolver] Direct tier failed for {url}: {e}")
            return None

    async def render(self, url: str) -> Optional[FetchOutcome]:
        """Rendered snapshot of `url`, or None when unavailable."""
        try:
            return await self.renderer.render(url)
        except TIER_ERRORS as e:
            logger.info(f"[resolver] Renderer tier failed for {url}: {e}")
            return None

    @staticmethod
    def _direct_ok(outcome: Optional[FetchOutcome]) -> bool:
        return outcome is not None and outcome.status < 400 and has_useful_signal(outcome.html)

    @staticmethod
    def _rendered_ok(outcome: Optional[FetchOutcome]) -> bool:
        return outcome is not None and has_useful_signal(outcome.html)

    async def _resolve_direct_tiers(self, url: str) -> Optional[FetchOutcome]:
        """Tiers 1-3 for an unwrapped ATS target; None unless one qualifies."""
        via_api = await self._api(url)
        if via_api:
            return via_api

        direct = await self._direct(url)
        if self._direct_ok(direct):
            return direct

        rendered = await self.render(url)
        if self._rendered_ok(rendered):
            return rendered
        return None

    async def resolve(self, url: str) -> FetchOutcome:
        """
        Resolve a posting URL.

        Returns:
            FetchOutcome; a zero-status empty outcome when every tier failed
        """
        via_api = await self._api(url)
        if via_api:
            logger.info(f"[resolver] {url} resolved via {via_api.provider}")
            return via_api

        direct = await self._direct(url)
        if self._direct_ok(direct):
            logger.info(f"[resolver] {url} resolved via direct")
            return direct

        rendered = await self.render(url)
        if self._rendered_ok(rendered):
            logger.info(f"[resolver] {url} resolved via renderer")
            return rendered

        if self.classifier.is_aggregator_host(host_from_url(url)):
            unwrapped = await self._unwrap(url, direct, rendered)
            if unwrapped:
                return unwrapped

        fallback = rendered or direct
        if fallback is None:
            logger.warning(f"[resolver] All tiers failed for {url}")
            return FetchOutcome(status=0, final_url=url, html='', provider=PROVIDER_DIRECT)
        logger.info(f"[resolver] {url} falling back to signal-poor {fallback.provider} body")
        return fallback

    async def _unwrap(self, url: str, direct: Optional[FetchOutcome],
                      rendered: Optional[FetchOutcome]) -> Optional[FetchOutcome]:
        def is_ats_link(href: str) -> bool:
            return self.classifier.is_ats_host(host_from_url(href))

        body = (rendered.html if rendered and rendered.html else '') or (direct.html if direct else '')
        target = find_first_link(body, is_ats_link)
        if not target and rendered is None:
            retry = await self.render(url)
            if retry:
                target = find_first_link(retry.html, is_ats_link)

        if not target:
            logger.info(f"[resolver] No ATS link found on aggregator page {url}")
            return None

        logger.info(f"[resolver] Unwrapping {url} -> {target}")
        outcome = await self._resolve_direct_tiers(target)
        if outcome is None:
            return None
        return outcome.unwrapped()
