"""
Rendering service: GET /render?url=...&wait=...&timeout=... returns the
browser-rendered HTML of a page as JSON.

Run with: uvicorn render_service:app --port 8080
"""
import os
import logging
from typing import Optional
from fastapi import FastAPI, Header, Query
from fastapi.responses import JSONResponse, PlainTextResponse
from dotenv import load_dotenv

from crawler.browser_crawler import BrowserCrawler, clamp_timeout

load_dotenv()

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="JobLink Renderer", version="0.1.0")
renderer = BrowserCrawler()


def renderer_key() -> str:
    # Optional shared secret; empty means open
    return os.getenv("RENDERER_KEY", "")


@app.get("/", response_class=PlainTextResponse)
async def health():
    return "ok"


@app.get("/render")
async def render(
    url: Optional[str] = Query(None),
    wait: str = Query("domcontentloaded"),
    timeout: int = Query(12000),
    x_renderer_key: Optional[str] = Header(None)
):
    expected = renderer_key()
    if expected and (x_renderer_key or "") != expected:
        return JSONResponse(status_code=401, content={"error": "bad key"})
    if not url:
        return JSONResponse(status_code=400, content={"error": "missing url"})

    try:
        result = await renderer.render(url, wait=wait, timeout=clamp_timeout(timeout))
    except Exception as e:
        logger.error(f"[render] Failed to render {url}: {e}")
        return JSONResponse(status_code=500, content={"error": str(e)})

    return result.to_dict()
