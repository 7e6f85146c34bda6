"""
Queue scheduler: idempotent enqueue, throttled batch drains under a
wall-clock budget, and per-item failure isolation.

Items in one pass are processed strictly one after another. A per-queue
asyncio.Lock serializes passes inside this process; the store's claim step
(claim-and-mark-processing) keeps other processes off the same items.
"""
import time
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional

from core.config import Settings
from .queue_store import NOTES_QUEUE, PARSE_QUEUE, QUEUES, QueueStore, WorkItem

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 300


class JobHandler:
    """Processes one item of a queue."""

    async def process(self, item: WorkItem) -> None:
        raise NotImplementedError

    async def fail(self, item: WorkItem, message: str) -> None:
        """Record a terminal error for `item` (default: log only)."""
        logger.error(f"[scheduler] {item.queue} item {item.owner}/{item.row_id} failed: {message}")


@dataclass
class BatchReport:
    queue: str
    processed: int = 0
    succeeded: int = 0
    failed: int = 0

    def to_dict(self) -> Dict:
        return {
            "queue": self.queue,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
        }


@dataclass
class DrainReport:
    passes: int = 0
    parse: BatchReport = field(default_factory=lambda: BatchReport(PARSE_QUEUE))
    notes: BatchReport = field(default_factory=lambda: BatchReport(NOTES_QUEUE))
    elapsed: float = 0.0
    budget_exhausted: bool = False

    def add(self, report: BatchReport) -> None:
        total = self.parse if report.queue == PARSE_QUEUE else self.notes
        total.processed += report.processed
        total.succeeded += report.succeeded
        total.failed += report.failed

    def to_dict(self) -> Dict:
        return {
            "passes": self.passes,
            "parse": self.parse.to_dict(),
            "notes": self.notes.to_dict(),
            "elapsed": round(self.elapsed, 3),
            "budget_exhausted": self.budget_exhausted,
        }


def truncate_error(exc: BaseException) -> str:
    message = str(exc).strip() or exc.__class__.__name__
    return message[:MAX_ERROR_LENGTH]


class QueueScheduler:
    """Drains the parse and notes queues."""

    def __init__(
        self,
        store: QueueStore,
        handlers: Dict[str, JobHandler],
        settings: Settings,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic
    ):
        self.store = store
        self.handlers = handlers
        self.settings = settings
        self.sleep = sleep
        self.clock = clock
        self._locks: Dict[str, asyncio.Lock] = {q: asyncio.Lock() for q in QUEUES}

    def enqueue(self, item: WorkItem) -> bool:
        """Queue `item` unless a live item with the same key exists."""
        inserted = self.store.enqueue_if_absent(item)
        if inserted:
            logger.info(f"[scheduler] Enqueued {item.queue} item for {item.owner}/{item.row_id}")
        else:
            logger.debug(f"[scheduler] {item.queue} item for {item.owner}/{item.row_id} already live")
        return inserted

    def _batch_defaults(self, queue: str):
        if queue == NOTES_QUEUE:
            return self.settings.notes_batch_size, self.settings.notes_gap_seconds
        return self.settings.batch_size, self.settings.parse_gap_seconds

    async def drain_batch(self, queue: str, max_items: Optional[int] = None,
                          min_gap: Optional[float] = None) -> BatchReport:
        """
        Process up to `max_items` queued items of `queue`, sleeping `min_gap`
        seconds between items (not after the last). Every processed item is
        removed afterwards, whether it succeeded or failed. Claimed items the
        pass never reached (cancellation) are released back to queued.
        """
        handler = self.handlers.get(queue)
        if handler is None:
            raise ValueError(f"No handler registered for queue {queue}")

        default_size, default_gap = self._batch_defaults(queue)
        max_items = default_size if max_items is None else max_items
        min_gap = default_gap if min_gap is None else min_gap
        report = BatchReport(queue=queue)

        async with self._locks[queue]:
            items = self.store.claim_batch(queue, max_items)
            if not items:
                return report

            logger.info(f"[scheduler] Draining {len(items)} {queue} item(s)")
            processed: List[WorkItem] = []
            try:
                for index, item in enumerate(items):
                    try:
                        await handler.process(item)
                        report.succeeded += 1
                    except Exception as e:
                        message = truncate_error(e)
                        item.last_error = message
                        report.failed += 1
                        logger.error(f"[scheduler] {queue} item {item.owner}/{item.row_id} failed: {message}",
                                     exc_info=True)
                        try:
                            await handler.fail(item, message)
                        except Exception as fail_error:
                            logger.error(f"[scheduler] Could not record failure for "
                                         f"{item.owner}/{item.row_id}: {fail_error}")
                    processed.append(item)
                    report.processed += 1

                    if index < len(items) - 1 and min_gap > 0:
                        await self.sleep(min_gap)
            finally:
                self.store.remove_processed(queue, processed)
                unprocessed = items[len(processed):]
                if unprocessed:
                    released = self.store.release(queue, unprocessed)
                    logger.warning(f"[scheduler] {queue} pass interrupted, {released} item(s) back to queued")

        logger.info(f"[scheduler] {queue} pass done: {report.succeeded} ok, {report.failed} failed")
        return report

    async def drain_all(self, budget: Optional[float] = None) -> DrainReport:
        """
        Alternate parse and notes passes until a pass does no work on either
        queue or the budget (minus the safety margin) is used up.
        """
        budget = self.settings.drain_budget_seconds if budget is None else budget
        deadline = budget - self.settings.drain_safety_margin_seconds
        start = self.clock()
        report = DrainReport()

        def out_of_time() -> bool:
            return self.clock() - start >= deadline

        while True:
            if out_of_time():
                report.budget_exhausted = True
                break

            parse_report = await self.drain_batch(PARSE_QUEUE)
            report.add(parse_report)

            notes_report = BatchReport(NOTES_QUEUE)
            if out_of_time():
                report.budget_exhausted = True
            else:
                notes_report = await self.drain_batch(NOTES_QUEUE)
                report.add(notes_report)
            report.passes += 1

            if report.budget_exhausted:
                break
            if parse_report.processed == 0 and notes_report.processed == 0:
                break

        report.elapsed = self.clock() - start
        logger.info(f"[scheduler] Drain finished after {report.passes} pass(es) in {report.elapsed:.1f}s"
                    f"{' (budget exhausted)' if report.budget_exhausted else ''}")
        return report
