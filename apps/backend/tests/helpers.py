"""
Builders shared by the tests: fake-network HTTP client and HTML pages.
"""

import json

import httpx

from core.net import HTTPClient


def make_http_client(handler) -> HTTPClient:
    """HTTPClient whose requests are answered by `handler(request) -> httpx.Response`."""
    return HTTPClient(transport=httpx.MockTransport(handler), max_retries=0, timeout=5.0)


def job_page(title: str = '', h1: str = '', og_title: str = '', og_site: str = '',
             jsonld=None, body: str = '') -> str:
    head = []
    if title:
        head.append(f"<title>{title}</title>")
    if og_title:
        head.append(f'<meta property="og:title" content="{og_title}">')
    if og_site:
        head.append(f'<meta property="og:site_name" content="{og_site}">')
    if jsonld is not None:
        head.append(f'<script type="application/ld+json">{json.dumps(jsonld)}</script>')
    heading = f"<h1>{h1}</h1>" if h1 else ''
    return f"<html><head>{''.join(head)}</head><body>{heading}{body}</body></html>"


GH_LINK = "https://boards.greenhouse.io/acme/jobs/12345?gh_src=li"


async def no_sleep(seconds):
    return None


def greenhouse_handler(request: httpx.Request) -> httpx.Response:
    """Answers the Greenhouse job API for acme/12345; any other request fails the test."""
    if request.url.host == "boards-api.greenhouse.io":
        return httpx.Response(200, json={"id": 12345, "title": "Senior Engineer"})
    raise AssertionError(f"unexpected request {request.url}")
