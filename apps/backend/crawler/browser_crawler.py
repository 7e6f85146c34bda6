"""
Headless browser rendering with Playwright, used by the render service.
"""
import time
import logging
from dataclasses import dataclass
from playwright.async_api import async_playwright, Route

logger = logging.getLogger(__name__)

RENDER_UA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 Chrome/120 Safari/537.36"
BLOCKED_RESOURCE_TYPES = {"image", "media", "font"}
MAX_TIMEOUT_MS = 20000
WAIT_STATES = {"load", "domcontentloaded", "networkidle", "commit"}


@dataclass
class RenderResult:
    status: int
    final_url: str
    html: str
    ms: int
    wait: str

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "finalUrl": self.final_url,
            "html": self.html,
            "ms": self.ms,
            "wait": self.wait,
        }


def clamp_timeout(timeout_ms: int) -> int:
    return max(1, min(int(timeout_ms), MAX_TIMEOUT_MS))


async def _block_heavy_assets(route: Route):
    if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
        await route.abort()
    else:
        await route.continue_()


class BrowserCrawler:
    """Renders a page in headless Chromium and returns the final DOM."""

    async def render(self, url: str, wait: str = "domcontentloaded", timeout: int = 12000) -> RenderResult:
        """
        Render URL in a fresh browser.

        Args:
            url: URL to render
            wait: Playwright wait_until state
            timeout: Navigation timeout in milliseconds (capped at 20000)

        Returns:
            RenderResult with HTTP status, final URL and rendered HTML
        """
        if wait not in WAIT_STATES:
            raise ValueError(f"Unsupported wait state: {wait}")
        timeout = clamp_timeout(timeout)
        start = time.time()

        async with async_playwright() as p:
            browser = await p.chromium.launch(
                headless=True,
                args=["--no-sandbox", "--disable-dev-shm-usage"]
            )
            try:
                context = await browser.new_context(user_agent=RENDER_UA)
                page = await context.new_page()
                await page.route("**/*", _block_heavy_assets)

                response = await page.goto(url, wait_until=wait, timeout=timeout)
                html = await page.content()
                final_url = page.url
            finally:
                await browser.close()

        ms = int((time.time() - start) * 1000)
        status = response.status if response else 0
        logger.info(f"[render] {status} {url} -> {final_url} ({ms}ms, wait={wait})")
        return RenderResult(status=status, final_url=final_url, html=html, ms=ms, wait=wait)
