"""
End-to-end queue tests: enqueue a link, drain, check the row.

Network calls are answered by httpx.MockTransport; stores are in memory.
"""

import json

import httpx
import pytest

from app.queue_store import InMemoryQueueStore, NOTES_QUEUE, PARSE_QUEUE, ParseJob
from app.rows import InMemoryRowStore
from app.service import QueueService
from core.config import Settings
from tests.helpers import GH_LINK, greenhouse_handler, make_http_client, no_sleep


def make_service(handler=greenhouse_handler, settings=None, **kwargs) -> QueueService:
    return QueueService(
        settings or Settings(),
        rows=InMemoryRowStore(),
        queue_store=InMemoryQueueStore(),
        http_client=make_http_client(handler),
        sleep=no_sleep,
        **kwargs
    )


class TestEnqueue:
    """Queueing links from row edits."""

    def test_only_http_links(self):
        """Only http(s) links are queued."""
        service = make_service()
        assert not service.enqueue_link("jobs", "1", "ftp://example.com/file")
        assert not service.enqueue_link("jobs", "2", "   ")
        assert service.rows.get_row("jobs", "1") is None
        assert service.queue_store.count(PARSE_QUEUE) == 0

    def test_duplicate_is_skipped(self):
        """Re-queueing a live row is a no-op."""
        service = make_service()
        assert service.enqueue_link("jobs", "1", GH_LINK)
        assert not service.enqueue_link("jobs", "1", GH_LINK)
        assert service.queue_store.count(PARSE_QUEUE) == 1
        assert service.rows.read("jobs", "1", "status") == "queued"
        assert service.rows.read("jobs", "1", "link") == GH_LINK

    def test_status(self):
        """Status reports per-queue counts and capabilities."""
        service = make_service()
        service.enqueue_link("jobs", "1", GH_LINK)
        status = service.status()
        assert status["queues"][PARSE_QUEUE] == {"queued": 1, "processing": 0, "live": 1}
        assert status["queues"][NOTES_QUEUE]["live"] == 0
        assert status["capabilities"]["llm_notes"] is False


class TestDrain:
    """Parse and notes processing written back to rows."""

    @pytest.mark.asyncio
    async def test_parse_then_template_notes(self):
        """A Greenhouse link ends with fields, audit tokens and template notes."""
        service = make_service(profile_provider=lambda owner: {"headline": "backend engineer"})
        service.enqueue_link("jobs", "1", GH_LINK)

        report = await service.drain()

        row = service.rows.get_row("jobs", "1")
        assert row["company"] == "Acme"
        assert row["role"] == "Senior Engineer"
        assert row["canonical"] == "https://boards.greenhouse.io/acme/jobs/12345"
        assert row["status"] == "ok"
        assert row["source"] == (
            "parse:{provider=gh-api, signals=api-company+api-title, conf=1.00} | notes:{mode=template}"
        )
        assert "Senior Engineer at Acme" in row["li_invite"]
        assert "backend engineer" in row["li_invite"]
        assert len(row["li_invite"]) <= 280
        assert row["li_followup"].startswith("Thanks for connecting!")

        assert report.parse.processed == 1
        assert report.notes.processed == 1
        assert service.queue_store.count(PARSE_QUEUE) == 0
        assert service.queue_store.count(NOTES_QUEUE) == 0

    @pytest.mark.asyncio
    async def test_existing_notes_are_not_redone(self):
        """Rows that already have notes get no notes job."""
        service = make_service()
        service.rows.write_fields("jobs", "1", {"li_invite": "hi", "li_followup": "thanks"})
        service.enqueue_link("jobs", "1", GH_LINK)

        report = await service.drain()

        assert report.notes.processed == 0
        assert service.rows.read("jobs", "1", "li_invite") == "hi"
        assert "notes:" not in service.rows.read("jobs", "1", "source")

    @pytest.mark.asyncio
    async def test_failed_item_marks_row_error(self):
        """A failing item marks the row as error with the message."""
        service = make_service()
        service.scheduler.enqueue(ParseJob(owner="jobs", row_id="9"))

        report = await service.drain()

        assert report.parse.failed == 1
        assert service.rows.read("jobs", "9", "status") == "error"
        assert "has no http(s) link" in service.rows.read("jobs", "9", "source")
        assert service.queue_store.count(PARSE_QUEUE) == 0

    @pytest.mark.asyncio
    async def test_unreachable_link_still_completes(self):
        """An unreachable link is recorded with zero confidence."""
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        service = make_service(handler)
        service.enqueue_link("jobs", "1", "https://example.com/jobs/1")
        await service.drain()

        row = service.rows.get_row("jobs", "1")
        assert row["status"] == "ok"
        assert row["company"] == ""
        assert "conf=0.00" in row["source"]


class TestLLMNotes:
    """Outreach notes through the LLM endpoint."""
    LLM_SETTINGS = Settings(llm_endpoint="https://llm.example/v1/chat/completions", llm_api_key="k")

    @pytest.mark.asyncio
    async def test_llm_notes(self):
        """LLM notes are written when the endpoint answers."""
        def handler(request):
            if request.url.host == "llm.example":
                content = json.dumps({"invite": "Hello Acme!", "followup": "Thanks!", "meta": "llm"})
                return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})
            return greenhouse_handler(request)

        service = make_service(handler, settings=self.LLM_SETTINGS)
        service.enqueue_link("jobs", "1", GH_LINK)
        await service.drain()

        row = service.rows.get_row("jobs", "1")
        assert row["li_invite"] == "Hello Acme!"
        assert row["li_followup"] == "Thanks!"
        assert row["source"].endswith("notes:{mode=llm}")

    @pytest.mark.asyncio
    async def test_llm_failure_falls_back_to_template(self):
        """An LLM failure falls back to the template and is recorded."""
        def handler(request):
            if request.url.host == "llm.example":
                return httpx.Response(500, text="down")
            return greenhouse_handler(request)

        service = make_service(handler, settings=self.LLM_SETTINGS)
        service.enqueue_link("jobs", "1", GH_LINK)
        await service.drain()

        row = service.rows.get_row("jobs", "1")
        assert row["li_invite"].startswith("Hi there")
        assert row["source"].endswith("notes:{mode=template, llm=error}")
        assert row["status"] == "ok"
