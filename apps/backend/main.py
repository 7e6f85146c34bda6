from fastapi import FastAPI
from dotenv import load_dotenv
from typing import Optional
from contextlib import asynccontextmanager
import logging

from core.config import Settings
from app.queue_api import router as queue_router
from app.service import QueueService

load_dotenv()

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, service: Optional[QueueService] = None) -> FastAPI:
    """Build the queue API; a prebuilt service (tests) skips store setup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Handle application lifecycle events."""
        if getattr(app.state, "queue_service", None) is None:
            app_settings = settings or Settings.from_env()
            logging.getLogger().setLevel(app_settings.log_level)
            app.state.queue_service = QueueService(app_settings)

        caps = app.state.queue_service.settings.capabilities()
        logger.info(f"[joblink] Queue service ready: {caps}")
        yield
        logger.info("[joblink] Shutting down")

    app = FastAPI(title="JobLink Queue API", version="0.1.0", lifespan=lifespan)
    if service is not None:
        app.state.queue_service = service

    @app.get("/")
    async def root():
        return {"status": "ok", "service": "joblink-etl"}

    @app.get("/api/capabilities")
    async def capabilities():
        svc = getattr(app.state, "queue_service", None)
        return svc.settings.capabilities() if svc else {}

    app.include_router(queue_router)
    return app


app = create_app()
