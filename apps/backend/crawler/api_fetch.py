"""
ATS read-only JSON APIs.

Supports:
- Greenhouse Boards API (boards.greenhouse.io / job-boards.greenhouse.io)
- Lever Postings API (jobs.lever.co)
"""
import re
import json
import logging
from typing import List, Optional, Tuple

from core.hosts import nice_case
from core.net import HTTPClient
from .outcome import FetchOutcome, PROVIDER_GREENHOUSE_API, PROVIDER_LEVER_API

logger = logging.getLogger(__name__)

GREENHOUSE_PATTERN = re.compile(
    r'^https?://(?:boards|job-boards)\.greenhouse\.io/([^/?#]+)/jobs/(\d+)', re.I
)
LEVER_PATTERN = re.compile(r'^https?://jobs\.lever\.co/([^/?#]+)/([^/?#]+)', re.I)


def _greenhouse_title(data: dict) -> str:
    return str(data.get('title') or '').strip()


def _lever_title(data: dict) -> str:
    return str(data.get('text') or data.get('title') or '').strip()


class ATSAPIFetcher:
    """Calls a known ATS's JSON API when the URL has its canonical shape."""

    def __init__(self, http_client: HTTPClient):
        self.http_client = http_client
        # (pattern, api url, canonical url, provider, title reader)
        self.providers: List[Tuple] = [
            (
                GREENHOUSE_PATTERN,
                "https://boards-api.greenhouse.io/v1/boards/{company}/jobs/{job_id}",
                "https://boards.greenhouse.io/{company}/jobs/{job_id}",
                PROVIDER_GREENHOUSE_API,
                _greenhouse_title,
            ),
            (
                LEVER_PATTERN,
                "https://api.lever.co/v0/postings/{company}/{job_id}?mode=json",
                "https://jobs.lever.co/{company}/{job_id}",
                PROVIDER_LEVER_API,
                _lever_title,
            ),
        ]

    def matches(self, url: str) -> bool:
        return any(pattern.search(url or '') for pattern, *_ in self.providers)

    async def fetch(self, url: str) -> Optional[FetchOutcome]:
        """
        Fetch posting metadata from the ATS API.

        Returns:
            FetchOutcome with empty html and api hints, or None when the URL has
            no API shape or the API gave nothing usable

        Raises:
            httpx.HTTPError: transport failure
            ValueError: malformed JSON
        """
        for pattern, api_template, canonical_template, provider, read_title in self.providers:
            match = pattern.search(url or '')
            if not match:
                continue

            company, job_id = match.group(1), match.group(2)
            api_url = api_template.format(company=company, job_id=job_id)
            response = await self.http_client.get(api_url, headers={"Accept": "application/json"})

            if not (200 <= response.status < 300):
                logger.info(f"[api_fetch] {provider} returned {response.status} for {url}")
                return None

            data = json.loads(response.text)
            if not isinstance(data, dict):
                raise ValueError(f"{provider} returned non-object JSON")

            title = read_title(data)
            if not title:
                logger.info(f"[api_fetch] {provider} had no title for {url}")
                return None

            return FetchOutcome(
                status=response.status,
                final_url=canonical_template.format(company=company, job_id=job_id),
                html='',
                provider=provider,
                api_company=nice_case(company),
                api_role=title,
            )

        return None
