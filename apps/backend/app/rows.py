"""
Row store: where resolved links, extracted fields, statuses and the audit
column live.

Rows are addressed by (owner, row_id) and read/written by logical field name.
"""
import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Mapping, Optional, Tuple

import psycopg2
from psycopg2.extras import RealDictCursor

from core.audit import AuditLedger

logger = logging.getLogger(__name__)

FIELDS = ['link', 'canonical', 'company', 'role', 'status', 'source', 'li_invite', 'li_followup']
AUDIT_FIELD = 'source'

STATUS_QUEUED = 'queued'
STATUS_OK = 'ok'
STATUS_ERROR = 'error'


class RowStoreError(Exception):
    """Raised when a row cannot be read or written."""
    pass


def _check_field(field: str) -> str:
    if field not in FIELDS:
        raise RowStoreError(f"Unknown row field: {field}")
    return field


class RowStore(ABC):
    """Read/write cells by logical field name and keep the audit column."""

    @abstractmethod
    def read(self, owner: str, row_id: str, field: str) -> str:
        ...

    @abstractmethod
    def write(self, owner: str, row_id: str, field: str, value: Optional[str]) -> None:
        ...

    @abstractmethod
    def get_row(self, owner: str, row_id: str) -> Optional[Dict[str, str]]:
        ...

    @abstractmethod
    def _update_audit(self, owner: str, row_id: str, mutate) -> str:
        """Apply `mutate(ledger)` to the row's audit column atomically; return the new text."""
        ...

    def write_fields(self, owner: str, row_id: str, values: Mapping[str, Optional[str]]) -> None:
        for field, value in values.items():
            self.write(owner, row_id, field, value)

    def append_audit_token(self, owner: str, row_id: str, kind: str,
                           fields: Mapping[str, object]) -> str:
        """Add or replace the `kind` token in the row's audit column."""
        return self._update_audit(owner, row_id, lambda ledger: ledger.append(kind, fields))

    def append_audit_note(self, owner: str, row_id: str, text: str) -> str:
        return self._update_audit(owner, row_id, lambda ledger: ledger.note(text))


class InMemoryRowStore(RowStore):
    """Dict-backed rows for tests and the CLI."""

    def __init__(self):
        self._rows: Dict[Tuple[str, str], Dict[str, str]] = {}
        self._lock = threading.Lock()

    def read(self, owner: str, row_id: str, field: str) -> str:
        _check_field(field)
        return self._rows.get((owner, str(row_id)), {}).get(field, '')

    def write(self, owner: str, row_id: str, field: str, value: Optional[str]) -> None:
        _check_field(field)
        with self._lock:
            row = self._rows.setdefault((owner, str(row_id)), {f: '' for f in FIELDS})
            row[field] = '' if value is None else str(value)

    def get_row(self, owner: str, row_id: str) -> Optional[Dict[str, str]]:
        row = self._rows.get((owner, str(row_id)))
        return dict(row) if row is not None else None

    def rows(self) -> List[Tuple[str, str]]:
        return list(self._rows.keys())

    def _update_audit(self, owner: str, row_id: str, mutate) -> str:
        with self._lock:
            row = self._rows.setdefault((owner, str(row_id)), {f: '' for f in FIELDS})
            ledger = AuditLedger.parse(row.get(AUDIT_FIELD))
            mutate(ledger)
            row[AUDIT_FIELD] = ledger.render()
            return row[AUDIT_FIELD]


class PostgresRowStore(RowStore):
    """Rows in the `job_links` table."""

    DDL = """
        CREATE TABLE IF NOT EXISTS job_links (
            owner_key   TEXT NOT NULL,
            row_id      TEXT NOT NULL,
            link        TEXT NOT NULL DEFAULT '',
            canonical   TEXT NOT NULL DEFAULT '',
            company     TEXT NOT NULL DEFAULT '',
            role        TEXT NOT NULL DEFAULT '',
            status      TEXT NOT NULL DEFAULT '',
            source      TEXT NOT NULL DEFAULT '',
            li_invite   TEXT NOT NULL DEFAULT '',
            li_followup TEXT NOT NULL DEFAULT '',
            updated_at  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            PRIMARY KEY (owner_key, row_id)
        )
    """

    def __init__(self, db_url: str):
        self.db_url = db_url

    def _get_db_conn(self):
        """Get database connection."""
        try:
            return psycopg2.connect(self.db_url, connect_timeout=5)
        except psycopg2.Error as e:
            logger.error(f"[rows] Failed to connect to database: {e}")
            raise RowStoreError(f"Database connection failed: {e}") from e

    def ensure_schema(self) -> None:
        conn = self._get_db_conn()
        try:
            with conn.cursor() as cur:
                cur.execute(self.DDL)
            conn.commit()
        finally:
            conn.close()

    def read(self, owner: str, row_id: str, field: str) -> str:
        column = _check_field(field)
        conn = self._get_db_conn()
        try:
            with conn.cursor() as cur:
                cur.execute(
                    f"SELECT {column} FROM job_links WHERE owner_key = %s AND row_id = %s",
                    (owner, str(row_id))
                )
                row = cur.fetchone()
            return row[0] if row else ''
        finally:
            conn.close()

    def write(self, owner: str, row_id: str, field: str, value: Optional[str]) -> None:
        column = _check_field(field)
        conn = self._get_db_conn()
        try:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    INSERT INTO job_links (owner_key, row_id, {column})
                    VALUES (%s, %s, %s)
                    ON CONFLICT (owner_key, row_id)
                    DO UPDATE SET {column} = EXCLUDED.{column}, updated_at = NOW()
                    """,
                    (owner, str(row_id), '' if value is None else str(value))
                )
            conn.commit()
        except psycopg2.Error as e:
            conn.rollback()
            logger.error(f"[rows] Failed to write {field} for {owner}/{row_id}: {e}")
            raise RowStoreError(f"Failed to write {field}: {e}") from e
        finally:
            conn.close()

    def get_row(self, owner: str, row_id: str) -> Optional[Dict[str, str]]:
        conn = self._get_db_conn()
        try:
            cur = conn.cursor(cursor_factory=RealDictCursor)
            cur.execute(
                f"SELECT {', '.join(FIELDS)} FROM job_links WHERE owner_key = %s AND row_id = %s",
                (owner, str(row_id))
            )
            row = cur.fetchone()
            return dict(row) if row else None
        finally:
            conn.close()

    def _update_audit(self, owner: str, row_id: str, mutate) -> str:
        conn = self._get_db_conn()
        try:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO job_links (owner_key, row_id) VALUES (%s, %s)
                    ON CONFLICT (owner_key, row_id) DO NOTHING
                    """,
                    (owner, str(row_id))
                )
                cur.execute(
                    "SELECT source FROM job_links WHERE owner_key = %s AND row_id = %s FOR UPDATE",
                    (owner, str(row_id))
                )
                current = cur.fetchone()
                ledger = AuditLedger.parse(current[0] if current else '')
                mutate(ledger)
                rendered = ledger.render()
                cur.execute(
                    "UPDATE job_links SET source = %s, updated_at = NOW() WHERE owner_key = %s AND row_id = %s",
                    (rendered, owner, str(row_id))
                )
            conn.commit()
            return rendered
        except psycopg2.Error as e:
            conn.rollback()
            logger.error(f"[rows] Failed to update audit for {owner}/{row_id}: {e}")
            raise RowStoreError(f"Failed to update audit column: {e}") from e
        finally:
            conn.close()
