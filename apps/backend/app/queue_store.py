"""
Durable work queues.

Two logical queues share one shape: `parse` (resolve a link) and `notes`
(draft outreach for a parsed row). A (queue, owner, row_id) key has at most
one live (queued/processing) item at a time.
"""
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Sequence

import psycopg2
from psycopg2.extras import RealDictCursor

logger = logging.getLogger(__name__)

PARSE_QUEUE = 'parse'
NOTES_QUEUE = 'notes'
QUEUES = (PARSE_QUEUE, NOTES_QUEUE)

STATUS_QUEUED = 'queued'
STATUS_PROCESSING = 'processing'
LIVE_STATUSES = (STATUS_QUEUED, STATUS_PROCESSING)

NOTES_PHASE = 'li-notes'

# A processing claim older than this is considered abandoned and re-queued
DEFAULT_CLAIM_TIMEOUT_SECONDS = 900.0


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class WorkItem:
    """One queued unit of work, keyed by (queue, owner, row_id)."""
    owner: str
    row_id: str
    queue: str = PARSE_QUEUE
    payload: str = ''
    status: str = STATUS_QUEUED
    attempts: int = 0
    enqueued_at: datetime = field(default_factory=_now)
    next_attempt_at: Optional[datetime] = None
    claimed_at: Optional[datetime] = None
    last_error: Optional[str] = None
    id: Optional[int] = None

    @property
    def key(self):
        return (self.queue, self.owner, str(self.row_id))

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "queue": self.queue,
            "owner": self.owner,
            "row_id": self.row_id,
            "payload": self.payload,
            "status": self.status,
            "attempts": self.attempts,
            "enqueued_at": self.enqueued_at.isoformat() if self.enqueued_at else None,
            "next_attempt_at": self.next_attempt_at.isoformat() if self.next_attempt_at else None,
            "claimed_at": self.claimed_at.isoformat() if self.claimed_at else None,
            "last_error": self.last_error,
        }


@dataclass
class ParseJob(WorkItem):
    """Resolve the link in `payload` and write company/role back to the row."""
    queue: str = PARSE_QUEUE

    @property
    def url(self) -> str:
        return self.payload


@dataclass
class NotesJob(WorkItem):
    """Draft outreach notes for an already parsed row."""
    queue: str = NOTES_QUEUE
    payload: str = NOTES_PHASE

    @property
    def phase(self) -> str:
        return self.payload


ITEM_TYPES = {PARSE_QUEUE: ParseJob, NOTES_QUEUE: NotesJob}


def make_item(queue: str, **kwargs) -> WorkItem:
    item_cls = ITEM_TYPES.get(queue)
    if item_cls is None:
        raise ValueError(f"Unknown queue: {queue}")
    kwargs.pop('queue', None)
    return item_cls(**kwargs)


class QueueStore(ABC):
    """Storage contract the scheduler drains."""

    @abstractmethod
    def enqueue_if_absent(self, item: WorkItem) -> bool:
        """Insert `item` unless its key already has a live item. Returns True if inserted."""
        ...

    @abstractmethod
    def claim_batch(self, queue: str, limit: int) -> List[WorkItem]:
        """
        Mark up to `limit` oldest queued items as processing and return them.

        Processing claims older than the store's claim timeout are put back
        to queued first.
        """
        ...

    @abstractmethod
    def release(self, queue: str, items: Sequence[WorkItem]) -> int:
        """Return claimed items that were never processed to queued. Returns the count released."""
        ...

    @abstractmethod
    def remove_processed(self, queue: str, items: Sequence[WorkItem]) -> int:
        ...

    @abstractmethod
    def count(self, queue: str, statuses: Optional[Iterable[str]] = None) -> int:
        ...

    @abstractmethod
    def list_items(self, queue: str) -> List[WorkItem]:
        ...


class InMemoryQueueStore(QueueStore):
    """Positional per-queue lists; processed items are removed from the end backward."""

    def __init__(self, claim_timeout_seconds: float = DEFAULT_CLAIM_TIMEOUT_SECONDS):
        self._queues: Dict[str, List[WorkItem]] = {q: [] for q in QUEUES}
        self._next_id = 1
        self._lock = threading.Lock()
        self.claim_timeout = timedelta(seconds=claim_timeout_seconds)

    def _queue(self, queue: str) -> List[WorkItem]:
        if queue not in self._queues:
            raise ValueError(f"Unknown queue: {queue}")
        return self._queues[queue]

    def enqueue_if_absent(self, item: WorkItem) -> bool:
        with self._lock:
            entries = self._queue(item.queue)
            for existing in entries:
                if existing.key == item.key and existing.status in LIVE_STATUSES:
                    return False
            item.id = self._next_id
            item.status = STATUS_QUEUED
            self._next_id += 1
            entries.append(item)
            return True

    def claim_batch(self, queue: str, limit: int) -> List[WorkItem]:
        now = _now()
        claimed: List[WorkItem] = []
        with self._lock:
            entries = self._queue(queue)
            for item in entries:
                if item.status == STATUS_PROCESSING and item.claimed_at is not None \
                        and now - item.claimed_at >= self.claim_timeout:
                    logger.warning(f"[queue] Reclaiming stale {queue} item {item.owner}/{item.row_id}")
                    item.status = STATUS_QUEUED
                    item.claimed_at = None

            for item in entries:
                if len(claimed) >= limit:
                    break
                if item.status != STATUS_QUEUED:
                    continue
                if item.next_attempt_at is not None and item.next_attempt_at > now:
                    continue
                item.status = STATUS_PROCESSING
                item.attempts += 1
                item.claimed_at = now
                claimed.append(item)
        return claimed

    def release(self, queue: str, items: Sequence[WorkItem]) -> int:
        ids = {item.id for item in items}
        released = 0
        with self._lock:
            for entry in self._queue(queue):
                if entry.id in ids and entry.status == STATUS_PROCESSING:
                    entry.status = STATUS_QUEUED
                    entry.claimed_at = None
                    released += 1
        return released

    def remove_processed(self, queue: str, items: Sequence[WorkItem]) -> int:
        ids = {item.id for item in items}
        with self._lock:
            entries = self._queue(queue)
            positions = [i for i, entry in enumerate(entries) if entry.id in ids]
            for position in sorted(positions, reverse=True):
                del entries[position]
        return len(positions)

    def count(self, queue: str, statuses: Optional[Iterable[str]] = None) -> int:
        wanted = set(statuses) if statuses is not None else None
        return sum(1 for item in self._queue(queue) if wanted is None or item.status in wanted)

    def list_items(self, queue: str) -> List[WorkItem]:
        return list(self._queue(queue))


class PostgresQueueStore(QueueStore):
    """Queue rows in the `work_queue` table."""

    DDL = [
        """
        CREATE TABLE IF NOT EXISTS work_queue (
            id              BIGSERIAL PRIMARY KEY,
            queue           TEXT NOT NULL,
            owner_key       TEXT NOT NULL,
            row_id          TEXT NOT NULL,
            payload         TEXT NOT NULL DEFAULT '',
            status          TEXT NOT NULL DEFAULT 'queued',
            attempts        INTEGER NOT NULL DEFAULT 0,
            enqueued_at     TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            next_attempt_at TIMESTAMPTZ,
            claimed_at      TIMESTAMPTZ,
            last_error      TEXT
        )
        """,
        """
        CREATE UNIQUE INDEX IF NOT EXISTS work_queue_live_key
            ON work_queue (queue, owner_key, row_id)
            WHERE status IN ('queued', 'processing')
        """,
        "ALTER TABLE work_queue ADD COLUMN IF NOT EXISTS claimed_at TIMESTAMPTZ",
    ]

    def __init__(self, db_url: str, claim_timeout_seconds: float = DEFAULT_CLAIM_TIMEOUT_SECONDS):
        self.db_url = db_url
        self.claim_timeout_seconds = claim_timeout_seconds

    def _get_db_conn(self):
        """Get database connection."""
        return psycopg2.connect(self.db_url, connect_timeout=5)

    def ensure_schema(self) -> None:
        conn = self._get_db_conn()
        try:
            with conn.cursor() as cur:
                for statement in self.DDL:
                    cur.execute(statement)
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _row_to_item(row: Dict) -> WorkItem:
        return make_item(
            row['queue'],
            id=row['id'],
            owner=row['owner_key'],
            row_id=row['row_id'],
            payload=row['payload'],
            status=row['status'],
            attempts=row['attempts'],
            enqueued_at=row['enqueued_at'],
            next_attempt_at=row['next_attempt_at'],
            claimed_at=row.get('claimed_at'),
            last_error=row['last_error'],
        )

    def enqueue_if_absent(self, item: WorkItem) -> bool:
        conn = self._get_db_conn()
        try:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO work_queue (queue, owner_key, row_id, payload, status, enqueued_at)
                    VALUES (%s, %s, %s, %s, 'queued', %s)
                    ON CONFLICT (queue, owner_key, row_id) WHERE status IN ('queued', 'processing')
                    DO NOTHING
                    RETURNING id
                    """,
                    (item.queue, item.owner, str(item.row_id), item.payload, item.enqueued_at)
                )
                row = cur.fetchone()
            conn.commit()
        except psycopg2.Error as e:
            conn.rollback()
            logger.error(f"[queue] Failed to enqueue {item.key}: {e}")
            raise
        finally:
            conn.close()

        if row is None:
            return False
        item.id = row[0]
        item.status = STATUS_QUEUED
        return True

    def claim_batch(self, queue: str, limit: int) -> List[WorkItem]:
        conn = self._get_db_conn()
        try:
            cur = conn.cursor(cursor_factory=RealDictCursor)
            cur.execute(
                """
                UPDATE work_queue
                SET status = 'queued', claimed_at = NULL
                WHERE queue = %s AND status = 'processing'
                  AND claimed_at < NOW() - make_interval(secs => %s)
                """,
                (queue, self.claim_timeout_seconds)
            )
            if cur.rowcount:
                logger.warning(f"[queue] Reclaimed {cur.rowcount} stale {queue} item(s)")
            cur.execute(
                """
                UPDATE work_queue
                SET status = 'processing', attempts = attempts + 1, claimed_at = NOW()
                WHERE id IN (
                    SELECT id FROM work_queue
                    WHERE queue = %s AND status = 'queued'
                      AND (next_attempt_at IS NULL OR next_attempt_at <= NOW())
                    ORDER BY id
                    LIMIT %s
                    FOR UPDATE SKIP LOCKED
                )
                RETURNING *
                """,
                (queue, limit)
            )
            rows = cur.fetchall()
            conn.commit()
        except psycopg2.Error as e:
            conn.rollback()
            logger.error(f"[queue] Failed to claim batch from {queue}: {e}")
            raise
        finally:
            conn.close()

        return sorted((self._row_to_item(r) for r in rows), key=lambda item: item.id)

    def release(self, queue: str, items: Sequence[WorkItem]) -> int:
        ids = [item.id for item in items if item.id is not None]
        if not ids:
            return 0
        conn = self._get_db_conn()
        try:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE work_queue SET status = 'queued', claimed_at = NULL
                    WHERE queue = %s AND status = 'processing' AND id = ANY(%s)
                    """,
                    (queue, ids)
                )
                released = cur.rowcount
            conn.commit()
            return released
        except psycopg2.Error as e:
            conn.rollback()
            logger.error(f"[queue] Failed to release items back to {queue}: {e}")
            raise
        finally:
            conn.close()

    def remove_processed(self, queue: str, items: Sequence[WorkItem]) -> int:
        ids = [item.id for item in items if item.id is not None]
        if not ids:
            return 0
        conn = self._get_db_conn()
        try:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM work_queue WHERE queue = %s AND id = ANY(%s)", (queue, ids))
                removed = cur.rowcount
            conn.commit()
            return removed
        except psycopg2.Error as e:
            conn.rollback()
            logger.error(f"[queue] Failed to remove processed items from {queue}: {e}")
            raise
        finally:
            conn.close()

    def count(self, queue: str, statuses: Optional[Iterable[str]] = None) -> int:
        conn = self._get_db_conn()
        try:
            with conn.cursor() as cur:
                if statuses is None:
                    cur.execute("SELECT COUNT(*) FROM work_queue WHERE queue = %s", (queue,))
                else:
                    cur.execute(
                        "SELECT COUNT(*) FROM work_queue WHERE queue = %s AND status = ANY(%s)",
                        (queue, list(statuses))
                    )
                return cur.fetchone()[0]
        finally:
            conn.close()

    def list_items(self, queue: str) -> List[WorkItem]:
        conn = self._get_db_conn()
        try:
            cur = conn.cursor(cursor_factory=RealDictCursor)
            cur.execute("SELECT * FROM work_queue WHERE queue = %s ORDER BY id", (queue,))
            return [self._row_to_item(r) for r in cur.fetchall()]
        finally:
            conn.close()
