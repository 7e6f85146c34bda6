"""
Service wiring: builds stores, HTTP client, resolution engine, LLM client,
handlers and scheduler from one Settings object.
"""
import time
import asyncio
import logging
from typing import Callable, Dict, Optional

from core.config import Settings
from core.hosts import HostClassifier
from core.net import HTTPClient
from crawler.api_fetch import ATSAPIFetcher
from crawler.html_fetch import DirectFetcher
from crawler.renderer_client import RendererClient
from crawler.resolver import Resolver
from pipeline.ai_fallback import LLMClient
from pipeline.extractor import CompanyRoleExtractor
from pipeline.integration import ResolutionEngine
from .queue_store import (
    InMemoryQueueStore, LIVE_STATUSES, NOTES_QUEUE, PARSE_QUEUE, QUEUES, STATUS_PROCESSING,
    STATUS_QUEUED, ParseJob, PostgresQueueStore, QueueStore,
)
from .rows import InMemoryRowStore, PostgresRowStore, RowStore, STATUS_QUEUED as ROW_QUEUED
from .scheduler import DrainReport, QueueScheduler
from .workers import NotesJobHandler, ParseJobHandler

logger = logging.getLogger(__name__)


def build_engine(settings: Settings, http_client: HTTPClient,
                 classifier: Optional[HostClassifier] = None,
                 llm_client: Optional[LLMClient] = None) -> ResolutionEngine:
    """Resolver + extractor for the given settings."""
    classifier = classifier or HostClassifier.from_config(settings.hosts_config_path)
    resolver = Resolver(
        classifier=classifier,
        api_fetcher=ATSAPIFetcher(http_client),
        direct_fetcher=DirectFetcher(http_client),
        renderer=RendererClient(settings, http_client),
    )
    extractor = CompanyRoleExtractor(
        classifier,
        llm_client=llm_client,
        enable_llm=settings.llm_extract_enabled,
    )
    return ResolutionEngine(resolver, extractor)


class QueueService:
    """Everything the API, CLI and tests need to enqueue and drain links."""

    def __init__(
        self,
        settings: Settings,
        rows: Optional[RowStore] = None,
        queue_store: Optional[QueueStore] = None,
        http_client: Optional[HTTPClient] = None,
        classifier: Optional[HostClassifier] = None,
        profile_provider: Optional[Callable[[str], Dict[str, str]]] = None,
        sleep=asyncio.sleep,
        clock=time.monotonic
    ):
        self.settings = settings
        self.rows = rows or self._default_rows(settings)
        self.queue_store = queue_store or self._default_queue_store(settings)
        self.http_client = http_client or HTTPClient(
            timeout=settings.http_timeout_seconds,
            max_retries=settings.http_max_retries
        )
        self.llm_client = LLMClient(settings, self.http_client) if settings.llm_configured else None
        self.engine = build_engine(settings, self.http_client, classifier, self.llm_client)

        self.parse_handler = ParseJobHandler(self.rows, self.engine, self.queue_store)
        self.notes_handler = NotesJobHandler(
            self.rows, self.engine, settings,
            llm_client=self.llm_client,
            profile_provider=profile_provider
        )
        self.scheduler = QueueScheduler(
            self.queue_store,
            {PARSE_QUEUE: self.parse_handler, NOTES_QUEUE: self.notes_handler},
            settings,
            sleep=sleep,
            clock=clock
        )

    @staticmethod
    def _default_rows(settings: Settings) -> RowStore:
        if settings.database_url:
            store = PostgresRowStore(settings.database_url)
            store.ensure_schema()
            return store
        logger.info("[service] DATABASE_URL not set, using in-memory row store")
        return InMemoryRowStore()

    @staticmethod
    def _default_queue_store(settings: Settings) -> QueueStore:
        if settings.database_url:
            store = PostgresQueueStore(settings.database_url, settings.claim_timeout_seconds)
            store.ensure_schema()
            return store
        logger.info("[service] DATABASE_URL not set, using in-memory queue store")
        return InMemoryQueueStore(settings.claim_timeout_seconds)

    def enqueue_link(self, owner: str, row_id: str, url: str) -> bool:
        """
        Queue a row's link for parsing.

        Only http(s) links are queued. The link is stored on the row and its
        status set to 'queued' when a new item was created.

        Returns:
            True if a new parse item was created
        """
        url = (url or '').strip()
        if not url.lower().startswith(('http://', 'https://')):
            logger.info(f"[service] Ignoring non-http link for {owner}/{row_id}")
            return False

        self.rows.write(owner, row_id, 'link', url)
        inserted = self.scheduler.enqueue(ParseJob(owner=owner, row_id=str(row_id), payload=url))
        if inserted:
            self.rows.write(owner, row_id, 'status', ROW_QUEUED)
        return inserted

    async def drain(self, budget: Optional[float] = None) -> DrainReport:
        return await self.scheduler.drain_all(budget)

    def status(self) -> Dict:
        queues = {}
        for queue in QUEUES:
            queues[queue] = {
                STATUS_QUEUED: self.queue_store.count(queue, [STATUS_QUEUED]),
                STATUS_PROCESSING: self.queue_store.count(queue, [STATUS_PROCESSING]),
                "live": self.queue_store.count(queue, LIVE_STATUSES),
            }
        return {"queues": queues, "capabilities": self.settings.capabilities()}
