import asyncio
from datetime import datetime

import pytest

from actiontap.config import ConfigError
from actiontap.models import ActionItem, Chunk, Config, ItemStatus, SessionState
from actiontap.session import MeetingSession
from actiontap.sources import QueueSource, ReplaySource, StreamError

NOTE = "Sarah will send the notes. "
# Long enough to land inside the first periodic scan band.
PADDED = NOTE + "x" * (205 - len(NOTE))


class HangingSource:
    """Never yields and never finishes closing."""

    def __init__(self) -> None:
        self.close_called = False

    async def close(self) -> None:
        self.close_called = True
        await asyncio.Event().wait()

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        await asyncio.Event().wait()
        yield Chunk("unreachable")


class FailingSource:
    def __init__(self) -> None:
        self.closed = False

    async def close(self) -> None:
        self.closed = True

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        yield Chunk(NOTE.strip())
        raise RuntimeError("connection dropped")


def test_periodic_pass_runs_when_length_enters_the_band():
    session = MeetingSession()

    session.ingest(Chunk(NOTE))
    assert session.items == []

    session.ingest(Chunk("x" * (205 - len(NOTE))))
    assert [item.text for item in session.items] == ["Sarah will send the notes."]
    assert session.items[0].assignee == "Sarah"


def test_ingest_reports_segments_and_items_to_listeners():
    segments, batches = [], []
    session = MeetingSession(on_segment=segments.append, on_items=batches.append)

    session.ingest(Chunk(PADDED))

    assert len(segments) == 1
    assert segments[0].text == PADDED.strip()
    assert [[item.text for item in batch] for batch in batches] == [["Sarah will send the notes."]]


@pytest.mark.asyncio
async def test_stream_end_runs_final_pass_and_summary():
    session = MeetingSession()
    await session.start(ReplaySource("Action item: John will prepare the report by Friday."))
    await session.wait_closed()

    assert session.state is SessionState.IDLE
    assert session.scheduler.final_done
    assert len(session.items) == 2
    assert session.segments[-1].text == "Action item: John will prepare the report by Friday."
    assert session.summary.startswith('Meeting summary for "Team Meeting":')
    assert "resulted in 2 action items" in session.summary


@pytest.mark.asyncio
async def test_stop_is_idempotent_and_final_pass_runs_once():
    session = MeetingSession()
    source = QueueSource()
    await session.start(source)
    source.push(NOTE)
    await source.join()
    assert session.buffering == NOTE

    results = await asyncio.gather(session.stop(), session.stop())
    assert results == [True, True]
    assert session.state is SessionState.IDLE
    assert source.closed
    assert [item.text for item in session.items] == ["Sarah will send the notes."]
    assert session.buffering == ""

    assert await session.stop() is True
    assert len(session.items) == 1


@pytest.mark.asyncio
async def test_hanging_close_can_be_force_stopped():
    notices = []
    session = MeetingSession(config=Config(stop_timeout=0.05), on_notice=notices.append)
    source = HangingSource()
    await session.start(source)
    session.ingest(Chunk(NOTE))

    assert await session.stop(timeout=0.2) is False
    assert session.state is SessionState.STOPPING
    assert session.stop_stalled
    assert source.close_called
    assert any("taking longer" in notice for notice in notices)

    assert session.force_stop() is True
    assert session.state is SessionState.IDLE
    assert not session.stop_stalled
    assert not session.scheduler.final_done
    assert session.items == []
    assert session.summary == ""
    assert session.force_stop() is False
    await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_stream_failure_returns_to_idle_with_error():
    notices = []
    session = MeetingSession(on_notice=notices.append)
    source = FailingSource()
    await session.start(source)
    await session.wait_closed()

    assert session.state is SessionState.IDLE
    assert isinstance(session.last_error, StreamError)
    assert "connection dropped" in str(session.last_error)
    assert source.closed
    assert [segment.text for segment in session.segments] == [NOTE.strip()]
    assert not session.scheduler.final_done
    assert notices


@pytest.mark.asyncio
async def test_start_replaces_active_stream_and_resets_state():
    session = MeetingSession()
    first = QueueSource()
    await session.start(first)
    first.push(PADDED)
    await first.join()
    assert session.items

    second = QueueSource()
    await session.start(second)
    assert first.closed
    assert session.state is SessionState.STREAMING
    assert session.items == []
    assert session.transcript == ""
    await session.aclose()


def test_clear_resets_transcript_ledger_items_and_summary():
    session = MeetingSession()
    session.ingest(Chunk(PADDED))
    session.summary = "old summary"
    assert session.items

    session.clear()
    assert session.transcript == ""
    assert session.segments == []
    assert session.items == []
    assert session.summary == ""
    assert len(session.ledger) == 0

    session.ingest(Chunk(PADDED))
    assert len(session.items) == 1


def test_failing_extraction_pass_is_skipped():
    class BrokenExtractor:
        def extract(self, text, now, ledger):
            raise RuntimeError("bad pattern")

    session = MeetingSession(extractor=BrokenExtractor())
    assert session.scan() == []
    session.ingest(Chunk(PADDED))
    assert session.items == []


def test_periodic_pass_only_reads_the_trailing_window():
    session = MeetingSession(config=Config(scan_window=50))
    session.aggregator.feed(Chunk(NOTE + "y" * 120 + ". Mike has to call the vendor."), datetime.now())

    assert [item.text for item in session.scan()] == ["Mike has to call the vendor."]
    assert [item.text for item in session.scan(final=True)] == ["Sarah will send the notes."]


@pytest.mark.asyncio
async def test_submit_pending_reports_each_item(make_sink):
    sink = make_sink(reject={"two."})
    session = MeetingSession(sink=sink)
    session.items = [ActionItem(id=str(index), text=text) for index, text in enumerate(("one.", "two.", "three."))]

    batch = await session.submit_pending()

    assert [item.status for item in batch] == [ItemStatus.SENT, ItemStatus.ERROR, ItemStatus.SENT]
    assert session.items[1].error_detail == "Validation failed"
    assert [task.source_label for task in sink.tasks] == ["Team Meeting"] * 3

    assert await session.submit_pending() == []
    sink.reject.clear()
    retried = await session.submit_pending(include_errors=True)
    assert [item.text for item in retried] == ["two."]
    assert session.items[1].status is ItemStatus.SENT
    assert session.items[1].error_detail is None
    await session.aclose()


@pytest.mark.asyncio
async def test_submit_without_credentials_raises_before_sending():
    session = MeetingSession(config=Config())
    session.items = [ActionItem(id="1", text="one.")]

    with pytest.raises(ConfigError, match="Notion API key"):
        await session.submit_pending()
    assert session.items[0].status is ItemStatus.PENDING

    with pytest.raises(ConfigError):
        session.submit_automatically()


@pytest.mark.asyncio
async def test_auto_submit_sends_new_items(make_sink):
    sink = make_sink()
    session = MeetingSession(config=Config(auto_submit=True), sink=sink)

    session.ingest(Chunk(PADDED))
    await session.submit_pending()

    assert [task.title for task in sink.tasks] == ["Sarah will send the notes."]
    assert session.items[0].status is ItemStatus.SENT
    await session.aclose()


@pytest.mark.asyncio
async def test_auto_submit_without_credentials_notifies():
    notices = []
    session = MeetingSession(config=Config(auto_submit=True), on_notice=notices.append)

    session.ingest(Chunk(PADDED))

    assert session.items[0].status is ItemStatus.PENDING
    assert any("credentials are missing" in notice for notice in notices)


@pytest.mark.asyncio
async def test_failing_listeners_do_not_end_the_stream():
    def broken(_payload):
        raise RuntimeError("display went away")

    session = MeetingSession(on_segment=broken, on_items=broken, on_notice=broken)
    source = QueueSource()
    await session.start(source)
    source.push(PADDED)
    await source.join()

    assert session.state is SessionState.STREAMING
    assert [item.text for item in session.items] == ["Sarah will send the notes."]

    source.push("Mike has to call the vendor.")
    await source.join()
    source.end()
    await session.wait_closed()

    assert session.last_error is None
    assert [item.text for item in session.items] == ["Sarah will send the notes.", "Mike has to call the vendor."]
    assert session.summary
