"""A recording session: one transcript stream and the action items found in it.

The session owns every piece of per-meeting state (the aggregator with its
running transcript and segments, the dedup ledger, the action items and the
summary) and drives the streaming lifecycle::

    idle -> streaming -> stopping -> idle

``stop()`` cancels consumption, closes the source, flushes the last buffer and
runs the single final extraction pass before building the summary. If closing
the source hangs, a watchdog marks the stop as stalled after
``Config.stop_timeout`` seconds and ``force_stop()`` becomes available to
abandon it.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, List, Optional

from .aggregator import ChunkAggregator
from .config import ConfigError, require_credentials
from .extractor import ActionExtractor, window_start
from .ledger import DedupLedger
from .models import ActionItem, Chunk, Config, ItemStatus, SessionState, TranscriptSegment
from .scheduler import ScanScheduler
from .sink import NotionSink, TaskSink
from .sources import ChunkSource, StreamError
from .submission import SubmissionQueue
from .summarizer import build_summary

SegmentListener = Callable[[TranscriptSegment], None]
ItemsListener = Callable[[List[ActionItem]], None]
NoticeListener = Callable[[str], None]


class MeetingSession:
    def __init__(
        self,
        config: Optional[Config] = None,
        sink: Optional[TaskSink] = None,
        extractor: Optional[ActionExtractor] = None,
        clock: Callable[[], datetime] = datetime.now,
        on_segment: Optional[SegmentListener] = None,
        on_items: Optional[ItemsListener] = None,
        on_notice: Optional[NoticeListener] = None,
    ) -> None:
        self.config = config or Config()
        self.extractor = extractor or ActionExtractor()
        self.aggregator = ChunkAggregator()
        self.ledger = DedupLedger()
        self.scheduler = ScanScheduler()
        self.items: List[ActionItem] = []
        self.summary = ""
        self.state = SessionState.IDLE
        self.stop_stalled = False
        self.last_error: Optional[Exception] = None
        self.on_segment = on_segment
        self.on_items = on_items
        self.on_notice = on_notice

        self._clock = clock
        self._sink = sink
        self._owns_sink = False
        self._source: Optional[ChunkSource] = None
        self._consumer: Optional[asyncio.Task] = None
        self._stop_task: Optional[asyncio.Task] = None
        self._watchdog: Optional[asyncio.TimerHandle] = None
        self._submissions = SubmissionQueue(self._get_sink, lambda: self.config.meeting_title)

    @property
    def transcript(self) -> str:
        return self.aggregator.transcript

    @property
    def segments(self) -> List[TranscriptSegment]:
        return list(self.aggregator.segments)

    @property
    def buffering(self) -> str:
        return self.aggregator.buffer

    # -- lifecycle ---------------------------------------------------------

    async def start(self, source: ChunkSource) -> asyncio.Task:
        """Begin consuming ``source``; any active stream is stopped first.

        Starting a session resets the transcript and action items.
        """

        if self.state is not SessionState.IDLE:
            stopped = await self.stop(timeout=self.config.stop_timeout)
            if not stopped:
                self.force_stop()

        self.clear()
        self.scheduler.reset()
        self.stop_stalled = False
        self.last_error = None
        self._source = source
        self.state = SessionState.STREAMING
        self._consumer = asyncio.create_task(self._consume(source))
        logging.debug("Transcription stream started")
        return self._consumer

    async def stop(self, timeout: Optional[float] = None) -> bool:
        """Stop streaming and run the final pass.

        Safe to call repeatedly or while a stop is already in flight; every
        caller waits on the same drain. Returns False if the session is still
        stopping after ``timeout`` seconds.
        """

        if self.state is SessionState.IDLE:
            return True
        if self.state is SessionState.STREAMING:
            self.state = SessionState.STOPPING
            self._stop_task = asyncio.create_task(self._drain())
            self._arm_watchdog()

        task = self._stop_task
        if task is not None and not task.done():
            await asyncio.wait({task}, timeout=timeout)
        return self.state is SessionState.IDLE

    def force_stop(self) -> bool:
        """Abandon a stop that has not completed; the final pass and summary are skipped."""

        if self.state is not SessionState.STOPPING:
            return False
        pending = [self._stop_task, self._consumer]
        self._source = None
        self._settle()
        current = asyncio.current_task()
        for task in pending:
            if task is not None and task is not current and not task.done():
                task.cancel()
        logging.warning("Stream stop forced; final extraction pass abandoned.")
        self._notify("Recording force-stopped. The final action item pass was skipped.")
        return True

    async def wait_closed(self) -> None:
        """Wait until the stream ends on its own and the session is idle again."""

        while self.state is not SessionState.IDLE:
            task = self._stop_task or self._consumer
            if task is None:
                return
            await asyncio.wait({task})

    async def aclose(self) -> None:
        if not await self.stop(timeout=self.config.stop_timeout):
            self.force_stop()
        await self._submissions.aclose()
        await self._drop_owned_sink()

    async def update_config(self, config: Config) -> None:
        """Switch to new settings; a Notion sink built from the old ones is closed."""

        self.config = config
        await self._drop_owned_sink()

    def clear(self) -> None:
        """Drop transcript, segments, ledger, action items and summary together."""

        self.aggregator.reset()
        self.ledger.clear()
        self.items = []
        self.summary = ""
        self._submissions.discard()

    # -- streaming ---------------------------------------------------------

    def ingest(self, chunk: Chunk) -> List[TranscriptSegment]:
        """Add one chunk; may flush segments and trigger a periodic pass."""

        flushed = self.aggregator.feed(chunk, self._clock())
        for segment in flushed:
            self._emit_segment(segment)
        if self.scheduler.observe(len(self.aggregator)):
            self.scan()
        return flushed

    async def _consume(self, source: ChunkSource) -> None:
        try:
            async for chunk in source:
                self.ingest(chunk)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001 - reported to the operator, session stays usable
            logging.exception("Error streaming transcriptions")
            await self._fail(exc)
            return

        if self.state is SessionState.STREAMING and self._consumer is asyncio.current_task():
            self.state = SessionState.STOPPING
            self._stop_task = self._consumer
            self._arm_watchdog()
            await self._close_source()
            self._finish()

    async def _drain(self) -> None:
        consumer = self._consumer
        if consumer is not None and not consumer.done():
            consumer.cancel()
            await asyncio.wait({consumer})
        await self._close_source()
        self._finish()

    async def _fail(self, exc: Exception) -> None:
        error = exc if isinstance(exc, StreamError) else StreamError(f"Transcription stream failed: {exc}")
        self.last_error = error
        await self._close_source()
        segment = self.aggregator.flush()
        if segment is not None:
            self._emit_segment(segment)
        self._settle()
        self._notify(str(error))

    async def _close_source(self) -> None:
        source, self._source = self._source, None
        if source is None:
            return
        try:
            await source.close()
        except Exception as exc:  # noqa: BLE001 - a failed close never blocks the stop
            logging.warning("Failed to close transcription stream: %s", exc)
            self.last_error = StreamError(f"Failed to close transcription stream: {exc}")

    def _finish(self) -> None:
        segment = self.aggregator.flush()
        if segment is not None:
            self._emit_segment(segment)
        if self.scheduler.claim_final():
            self.scan(final=True)
        if self.transcript.strip():
            self.summary = build_summary(
                self.config.meeting_title,
                self.transcript,
                len(self.items),
                self.aggregator.segments,
            )
        self._settle()
        logging.debug("Transcription stream stopped")

    def _settle(self) -> None:
        self.state = SessionState.IDLE
        self.stop_stalled = False
        if self._watchdog is not None:
            self._watchdog.cancel()
            self._watchdog = None
        self._stop_task = None
        self._consumer = None

    def _arm_watchdog(self) -> None:
        loop = asyncio.get_running_loop()
        self._watchdog = loop.call_later(self.config.stop_timeout, self._stop_timed_out)

    def _stop_timed_out(self) -> None:
        self._watchdog = None
        if self.state is not SessionState.STOPPING:
            return
        self.stop_stalled = True
        logging.warning("Stream did not stop within %.1fs", self.config.stop_timeout)
        self._notify("Stopping is taking longer than expected. Force stop to abandon it.")

    # -- extraction --------------------------------------------------------

    def scan(self, final: bool = False) -> List[ActionItem]:
        """Run one extraction pass and return the newly emitted items.

        Periodic passes only look at the trailing ``Config.scan_window``
        characters; the final pass reads the whole transcript. A failing
        pass is logged and skipped.
        """

        text = self.transcript
        if not final:
            text = text[window_start(text, self.config.scan_window) :]
        try:
            fresh = self.extractor.extract(text, self._clock(), self.ledger)
        except Exception:  # noqa: BLE001 - skip the pass, keep prior items
            logging.exception("Error extracting action items")
            return []

        if not fresh:
            return fresh
        self.items.extend(fresh)
        logging.debug("Extracted %d new action item(s)%s", len(fresh), " (final pass)" if final else "")
        self._call_listener(self.on_items, fresh)
        if self.config.auto_submit:
            self._auto_submit(fresh)
        return fresh

    # -- submission --------------------------------------------------------

    def pending_items(self) -> List[ActionItem]:
        return [item for item in self.items if item.status is ItemStatus.PENDING]

    async def submit_pending(self, include_errors: bool = False) -> List[ActionItem]:
        """Send pending items to the sink and wait for every result.

        Raises :class:`ConfigError` before anything is sent when credentials
        are missing. Items that previously failed are only resent when
        ``include_errors`` is set.
        """

        if self._needs_credentials:
            require_credentials(self.config)
        if include_errors:
            for item in self.items:
                if item.status is ItemStatus.ERROR:
                    item.status = ItemStatus.PENDING
                    item.error_detail = None
        batch = self.pending_items()
        futures = self._submissions.enqueue(batch)
        if futures:
            await asyncio.wait(futures)
        return batch

    def submit_automatically(self) -> List[asyncio.Future]:
        """Queue every pending item as automatic submission would.

        Raises :class:`ConfigError` when automatic submission is disabled or
        credentials are missing.
        """

        if not self.config.auto_submit:
            raise ConfigError("Automatic submission is disabled.")
        if self._needs_credentials:
            require_credentials(self.config)
        return self._submissions.enqueue(self.pending_items())

    def _auto_submit(self, items: List[ActionItem]) -> None:
        if self._needs_credentials and not self.config.has_credentials:
            self._notify("Auto-submit is enabled but Notion credentials are missing.")
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logging.debug("No running event loop; automatic submission skipped")
            return
        self._submissions.enqueue(items)

    @property
    def _needs_credentials(self) -> bool:
        return self._sink is None or self._owns_sink

    def _get_sink(self) -> TaskSink:
        if self._sink is None:
            require_credentials(self.config)
            self._sink = NotionSink(
                api_key=self.config.notion_api_key or "",
                database_id=self.config.notion_database_id or "",
                timeout=self.config.api_timeout,
            )
            self._owns_sink = True
        return self._sink

    async def _drop_owned_sink(self) -> None:
        sink, owned = self._sink, self._owns_sink
        if not owned:
            return
        self._sink = None
        self._owns_sink = False
        if isinstance(sink, NotionSink):
            await sink.aclose()

    # -- listeners ---------------------------------------------------------

    def _emit_segment(self, segment: TranscriptSegment) -> None:
        self._call_listener(self.on_segment, segment)

    def _notify(self, message: str) -> None:
        logging.info(message)
        self._call_listener(self.on_notice, message)

    @staticmethod
    def _call_listener(listener: Optional[Callable[[Any], None]], payload: Any) -> None:
        if listener is None:
            return
        try:
            listener(payload)
        except Exception:  # noqa: BLE001 - a broken listener must not end the stream
            logging.exception("Error in session listener")
