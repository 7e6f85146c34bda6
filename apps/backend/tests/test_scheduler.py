"""
Tests for the queue store and scheduler.
"""

import asyncio
from datetime import timedelta

import pytest

from app.queue_store import (
    InMemoryQueueStore, NOTES_QUEUE, NotesJob, PARSE_QUEUE, ParseJob, STATUS_PROCESSING, STATUS_QUEUED,
)
from app.scheduler import JobHandler, QueueScheduler
from core.config import Settings


class FakeClock:
    """Monotonic clock advanced by the fake sleep."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class RecordingHandler(JobHandler):

    def __init__(self, fail_rows=(), cost=0.0, clock=None):
        self.fail_rows = set(fail_rows)
        self.cost = cost
        self.clock = clock
        self.processed = []
        self.failures = []

    async def process(self, item):
        self.processed.append(item.row_id)
        if self.clock is not None:
            self.clock.now += self.cost
        if item.row_id in self.fail_rows:
            raise RuntimeError("boom " + "x" * 400)

    async def fail(self, item, message):
        self.failures.append((item.row_id, message))


def make_scheduler(store=None, parse=None, notes=None, clock=None, **settings):
    clock = clock or FakeClock()
    return QueueScheduler(
        store or InMemoryQueueStore(),
        {PARSE_QUEUE: parse or RecordingHandler(), NOTES_QUEUE: notes or RecordingHandler()},
        Settings(**settings),
        sleep=clock.sleep,
        clock=clock,
    )


class TestInMemoryQueueStore:
    """Idempotent enqueue, claim and removal."""

    def test_idempotent_enqueue(self):
        """A live key is enqueued only once."""
        store = InMemoryQueueStore()
        assert store.enqueue_if_absent(ParseJob(owner="jobs", row_id="7", payload="https://a.example/1"))
        assert not store.enqueue_if_absent(ParseJob(owner="jobs", row_id="7", payload="https://a.example/2"))
        assert store.count(PARSE_QUEUE) == 1

    def test_same_key_in_other_queue_is_independent(self):
        """Parse and notes keys do not collide."""
        store = InMemoryQueueStore()
        assert store.enqueue_if_absent(ParseJob(owner="jobs", row_id="7"))
        assert store.enqueue_if_absent(NotesJob(owner="jobs", row_id="7"))

    def test_processing_item_still_blocks(self):
        """A claimed item keeps its key live until removed."""
        store = InMemoryQueueStore()
        store.enqueue_if_absent(ParseJob(owner="jobs", row_id="1"))
        claimed = store.claim_batch(PARSE_QUEUE, 5)
        assert claimed[0].status == STATUS_PROCESSING
        assert claimed[0].attempts == 1
        assert not store.enqueue_if_absent(ParseJob(owner="jobs", row_id="1"))

        store.remove_processed(PARSE_QUEUE, claimed)
        assert store.enqueue_if_absent(ParseJob(owner="jobs", row_id="1"))

    def test_claim_oldest_first_and_bounded(self):
        """Claims take the oldest items up to the limit."""
        store = InMemoryQueueStore()
        for row in ["a", "b", "c"]:
            store.enqueue_if_absent(ParseJob(owner="jobs", row_id=row))
        assert [i.row_id for i in store.claim_batch(PARSE_QUEUE, 2)] == ["a", "b"]
        assert [i.row_id for i in store.claim_batch(PARSE_QUEUE, 2)] == ["c"]

    def test_remove_keeps_unprocessed_entries(self):
        """Removal leaves the other entries in order."""
        store = InMemoryQueueStore()
        for row in ["a", "b", "c", "d"]:
            store.enqueue_if_absent(ParseJob(owner="jobs", row_id=row))
        items = store.list_items(PARSE_QUEUE)
        assert store.remove_processed(PARSE_QUEUE, [items[0], items[2]]) == 2
        assert [i.row_id for i in store.list_items(PARSE_QUEUE)] == ["b", "d"]

    def test_notes_job_defaults(self):
        """Notes jobs default to the li-notes phase."""
        job = NotesJob(owner="jobs", row_id="3")
        assert job.queue == NOTES_QUEUE
        assert job.phase == "li-notes"
        assert job.status == STATUS_QUEUED


class TestDrainBatch:
    """One throttled pass over a queue."""

    @pytest.mark.asyncio
    async def test_processes_in_order_and_removes_everything(self):
        """Items run in order with gaps between them and are all removed."""
        clock = FakeClock()
        parse = RecordingHandler(fail_rows={"2"})
        scheduler = make_scheduler(parse=parse, clock=clock)
        for row in ["1", "2", "3"]:
            scheduler.enqueue(ParseJob(owner="jobs", row_id=row))

        report = await scheduler.drain_batch(PARSE_QUEUE, max_items=10, min_gap=1.5)

        assert parse.processed == ["1", "2", "3"]
        assert (report.processed, report.succeeded, report.failed) == (3, 2, 1)
        assert scheduler.store.count(PARSE_QUEUE) == 0
        assert clock.sleeps == [1.5, 1.5]

    @pytest.mark.asyncio
    async def test_failure_is_isolated_and_truncated(self):
        """A failing item does not stop the pass; its message is truncated."""
        parse = RecordingHandler(fail_rows={"1"})
        scheduler = make_scheduler(parse=parse)
        scheduler.enqueue(ParseJob(owner="jobs", row_id="1"))
        scheduler.enqueue(ParseJob(owner="jobs", row_id="2"))

        await scheduler.drain_batch(PARSE_QUEUE)

        assert parse.processed == ["1", "2"]
        row_id, message = parse.failures[0]
        assert row_id == "1"
        assert message.startswith("boom")
        assert len(message) == 300

    @pytest.mark.asyncio
    async def test_batch_size_and_default_gap(self):
        """Batch size and gap come from settings by default."""
        clock = FakeClock()
        scheduler = make_scheduler(clock=clock, batch_size=2, requests_per_minute=30)
        for row in ["1", "2", "3"]:
            scheduler.enqueue(ParseJob(owner="jobs", row_id=row))

        report = await scheduler.drain_batch(PARSE_QUEUE)

        assert report.processed == 2
        assert clock.sleeps == [2.0]
        assert scheduler.store.count(PARSE_QUEUE) == 1

    @pytest.mark.asyncio
    async def test_empty_queue(self):
        """An empty queue does no work and never sleeps."""
        clock = FakeClock()
        scheduler = make_scheduler(clock=clock)
        report = await scheduler.drain_batch(NOTES_QUEUE)
        assert report.processed == 0
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_concurrent_drains_do_not_share_items(self):
        """Overlapping passes never process an item twice."""
        parse = RecordingHandler()
        scheduler = make_scheduler(parse=parse, requests_per_minute=600)
        for row in ["1", "2", "3"]:
            scheduler.enqueue(ParseJob(owner="jobs", row_id=row))

        first, second = await asyncio.gather(
            scheduler.drain_batch(PARSE_QUEUE), scheduler.drain_batch(PARSE_QUEUE)
        )

        assert sorted(parse.processed) == ["1", "2", "3"]
        assert first.processed + second.processed == 3


class TestInterruptedDrain:
    """Claimed items are never stranded in processing."""

    @pytest.mark.asyncio
    async def test_cancelled_pass_releases_unreached_items(self):
        """Cancelling a pass during the throttle sleep puts the rest back to queued."""
        sleeping = asyncio.Event()

        async def blocking_sleep(seconds):
            sleeping.set()
            await asyncio.Event().wait()

        store = InMemoryQueueStore()
        parse = RecordingHandler()
        scheduler = QueueScheduler(store, {PARSE_QUEUE: parse, NOTES_QUEUE: RecordingHandler()},
                                   Settings(), sleep=blocking_sleep)
        for row in ["1", "2", "3"]:
            scheduler.enqueue(ParseJob(owner="jobs", row_id=row))

        task = asyncio.create_task(scheduler.drain_batch(PARSE_QUEUE, max_items=3, min_gap=1))
        await sleeping.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert parse.processed == ["1"]
        assert [(i.row_id, i.status) for i in store.list_items(PARSE_QUEUE)] == [
            ("2", STATUS_QUEUED), ("3", STATUS_QUEUED),
        ]
        assert [i.row_id for i in store.claim_batch(PARSE_QUEUE, 5)] == ["2", "3"]

    @pytest.mark.asyncio
    async def test_next_pass_picks_up_released_items(self):
        """A later drain processes what the interrupted pass left behind."""
        sleeping = asyncio.Event()

        async def blocking_sleep(seconds):
            sleeping.set()
            await asyncio.Event().wait()

        parse = RecordingHandler()
        store = InMemoryQueueStore()
        handlers = {PARSE_QUEUE: parse, NOTES_QUEUE: RecordingHandler()}
        first = QueueScheduler(store, handlers, Settings(), sleep=blocking_sleep)
        for row in ["1", "2"]:
            first.enqueue(ParseJob(owner="jobs", row_id=row))

        task = asyncio.create_task(first.drain_batch(PARSE_QUEUE, min_gap=1))
        await sleeping.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        clock = FakeClock()
        second = QueueScheduler(store, handlers, Settings(), sleep=clock.sleep, clock=clock)
        report = await second.drain_batch(PARSE_QUEUE)

        assert report.processed == 1
        assert parse.processed == ["1", "2"]
        assert store.count(PARSE_QUEUE) == 0

    def test_stale_claim_is_reclaimed(self):
        """A processing claim older than the timeout is queued again."""
        store = InMemoryQueueStore(claim_timeout_seconds=60)
        store.enqueue_if_absent(ParseJob(owner="jobs", row_id="1"))
        [abandoned] = store.claim_batch(PARSE_QUEUE, 1)
        assert store.claim_batch(PARSE_QUEUE, 1) == []

        abandoned.claimed_at -= timedelta(seconds=120)
        [reclaimed] = store.claim_batch(PARSE_QUEUE, 1)

        assert reclaimed.row_id == "1"
        assert reclaimed.attempts == 2
        assert reclaimed.status == STATUS_PROCESSING

    def test_fresh_claim_still_blocks(self):
        """A recent claim keeps its key live and unclaimable."""
        store = InMemoryQueueStore(claim_timeout_seconds=60)
        store.enqueue_if_absent(ParseJob(owner="jobs", row_id="1"))
        store.claim_batch(PARSE_QUEUE, 1)

        assert store.claim_batch(PARSE_QUEUE, 1) == []
        assert not store.enqueue_if_absent(ParseJob(owner="jobs", row_id="1"))


class TestDrainAll:
    """Alternating passes under the time budget."""

    @pytest.mark.asyncio
    async def test_zero_work_terminates_immediately(self):
        """A pass with no work ends the drain."""
        clock = FakeClock()
        parse = RecordingHandler()
        scheduler = make_scheduler(parse=parse, clock=clock)

        report = await scheduler.drain_all()

        assert report.passes == 1
        assert not report.budget_exhausted
        assert parse.processed == []
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_drains_both_queues_until_empty(self):
        """Parse and notes passes alternate until both are empty."""
        notes = RecordingHandler()
        scheduler = make_scheduler(notes=notes, batch_size=2, notes_batch_size=1)
        for row in ["1", "2", "3"]:
            scheduler.enqueue(ParseJob(owner="jobs", row_id=row))
        scheduler.enqueue(NotesJob(owner="jobs", row_id="9"))
        scheduler.enqueue(NotesJob(owner="jobs", row_id="8"))

        report = await scheduler.drain_all()

        assert report.parse.processed == 3
        assert report.notes.processed == 2
        assert notes.processed == ["9", "8"]
        assert report.passes == 3

    @pytest.mark.asyncio
    async def test_budget_stops_between_passes(self):
        """The drain stops once the budget minus margin is used."""
        clock = FakeClock()
        parse = RecordingHandler(cost=10.0, clock=clock)
        scheduler = make_scheduler(parse=parse, clock=clock, batch_size=1,
                                   drain_budget_seconds=40.0, drain_safety_margin_seconds=15.0)
        for row in range(10):
            scheduler.enqueue(ParseJob(owner="jobs", row_id=str(row)))

        report = await scheduler.drain_all()

        assert report.budget_exhausted
        assert len(parse.processed) == 3
        assert scheduler.store.count(PARSE_QUEUE) == 7
        assert report.elapsed == pytest.approx(30.0)
