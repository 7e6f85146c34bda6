"""
Queue job handlers: parse a link into company/role, and draft outreach notes.
"""
import logging
from typing import Callable, Dict, Optional

from core.config import Settings
from pipeline.ai_fallback import LLMClient, LLMError
from pipeline.integration import ResolutionEngine
from pipeline.notes import INVITE_MAX, build_note_snippet, render_template_notes
from .queue_store import NotesJob, QueueStore, WorkItem
from .rows import RowStore, STATUS_ERROR, STATUS_OK
from .scheduler import JobHandler

logger = logging.getLogger(__name__)


def _row_link(rows: RowStore, item: WorkItem) -> str:
    url = (rows.read(item.owner, item.row_id, 'link') or '').strip()
    if not url:
        url = (item.payload or '').strip()
    if not url.lower().startswith(('http://', 'https://')):
        raise ValueError(f"Row {item.owner}/{item.row_id} has no http(s) link")
    return url


class ParseJobHandler(JobHandler):
    """Resolves a row's link, writes canonical/company/role and the parse audit token."""

    def __init__(self, rows: RowStore, engine: ResolutionEngine, queue_store: QueueStore):
        self.rows = rows
        self.engine = engine
        self.queue_store = queue_store

    async def process(self, item: WorkItem) -> None:
        url = (item.payload or '').strip() or _row_link(self.rows, item)
        resolution = await self.engine.resolve_and_decide(url)
        decision = resolution.decision

        for token in resolution.tokens:
            self.rows.append_audit_token(item.owner, item.row_id, token.kind, token.fields)

        self.rows.write_fields(item.owner, item.row_id, {
            'canonical': decision.canonical_url,
            'company': decision.company,
            'role': decision.role,
        })
        self.rows.append_audit_token(item.owner, item.row_id, 'parse', {
            'provider': resolution.outcome.provider or 'direct',
            'signals': decision.decision,
            'conf': f"{decision.confidence:.2f}",
        })
        for token in decision.aux_audit_tokens:
            self.rows.append_audit_token(item.owner, item.row_id, token.kind, token.fields)

        self.maybe_enqueue_notes(item)
        self.rows.write(item.owner, item.row_id, 'status', STATUS_OK)

        logger.info(f"[parse] {item.owner}/{item.row_id}: {decision.company!r} / {decision.role!r} "
                    f"conf={decision.confidence:.2f} via {resolution.outcome.provider}")

    def maybe_enqueue_notes(self, item: WorkItem) -> bool:
        """Queue notes for the row unless both invite and follow-up already exist."""
        invite = (self.rows.read(item.owner, item.row_id, 'li_invite') or '').strip()
        followup = (self.rows.read(item.owner, item.row_id, 'li_followup') or '').strip()
        if invite and followup:
            return False
        return self.queue_store.enqueue_if_absent(NotesJob(owner=item.owner, row_id=item.row_id))

    async def fail(self, item: WorkItem, message: str) -> None:
        self.rows.write(item.owner, item.row_id, 'status', STATUS_ERROR)
        self.rows.append_audit_note(item.owner, item.row_id, message)


class NotesJobHandler(JobHandler):
    """Drafts the invite and follow-up for a parsed row (LLM, else template)."""

    def __init__(
        self,
        rows: RowStore,
        engine: ResolutionEngine,
        settings: Settings,
        llm_client: Optional[LLMClient] = None,
        profile_provider: Optional[Callable[[str], Dict[str, str]]] = None
    ):
        self.rows = rows
        self.engine = engine
        self.settings = settings
        self.llm_client = llm_client
        self.profile_provider = profile_provider or (lambda owner: {})

    async def process(self, item: WorkItem) -> None:
        invite = (self.rows.read(item.owner, item.row_id, 'li_invite') or '').strip()
        followup = (self.rows.read(item.owner, item.row_id, 'li_followup') or '').strip()
        if invite and followup:
            logger.info(f"[notes] {item.owner}/{item.row_id} already has notes, skipping")
            return

        url = _row_link(self.rows, item)
        outcome = await self.engine.resolver.resolve(url)

        # Existing company/role are used as-is, never overwritten here
        company = self.rows.read(item.owner, item.row_id, 'company')
        role = self.rows.read(item.owner, item.row_id, 'role')
        snippet = build_note_snippet(
            outcome.final_url or url, outcome.html, company, role,
            profile=self.profile_provider(item.owner)
        )

        note = None
        mode = 'template'
        if self.settings.llm_notes_enabled and self.llm_client is not None:
            try:
                note = await self.llm_client.generate_notes(snippet)
                mode = 'llm'
            except LLMError as e:
                item.last_error = str(e)[:300]
                logger.warning(f"[notes] LLM notes failed for {item.owner}/{item.row_id}, using template: {e}")
        if note is None:
            note = render_template_notes(snippet)

        self.rows.write_fields(item.owner, item.row_id, {
            'li_invite': (note.get('invite') or '')[:INVITE_MAX],
            'li_followup': note.get('followup') or '',
        })
        fields = {'mode': mode}
        if item.last_error and mode == 'template':
            fields['llm'] = 'error'
        self.rows.append_audit_token(item.owner, item.row_id, 'notes', fields)
        logger.info(f"[notes] {item.owner}/{item.row_id} notes written (mode={mode})")

    async def fail(self, item: WorkItem, message: str) -> None:
        self.rows.append_audit_note(item.owner, item.row_id, f"notes failed: {message}")
