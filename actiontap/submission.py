"""Sequential submission of action items to a task sink."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .models import ActionItem, ItemStatus
from .sink import SubmissionError, TaskPayload, TaskSink


class SubmissionQueue:
    """Submits action items one at a time, in the order they were queued.

    Every queued item gets its own future, resolved with the item once its
    status has been updated. A rejected item is marked as an error and the
    queue moves on; nothing is retried.
    """

    def __init__(
        self,
        sink_provider: Callable[[], TaskSink],
        source_label: Callable[[], Optional[str]] = lambda: None,
    ) -> None:
        self._sink_provider = sink_provider
        self._source_label = source_label
        self._queue: Optional[asyncio.Queue[Tuple[ActionItem, asyncio.Future]]] = None
        self._futures: Dict[str, asyncio.Future] = {}
        self._worker: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._futures)

    def enqueue(self, items: Iterable[ActionItem]) -> List[asyncio.Future]:
        """Queue pending items; must be called from a running event loop."""

        loop = asyncio.get_running_loop()
        if self._queue is None:
            self._queue = asyncio.Queue()
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._run())

        futures: List[asyncio.Future] = []
        for item in items:
            existing = self._futures.get(item.id)
            if existing is not None:
                futures.append(existing)
                continue
            if item.status is not ItemStatus.PENDING:
                continue
            future = loop.create_future()
            self._futures[item.id] = future
            self._queue.put_nowait((item, future))
            futures.append(future)
        return futures

    async def join(self) -> None:
        if self._queue is not None:
            await self._queue.join()

    def discard(self) -> None:
        """Drop every item still waiting; an in-flight submission still completes."""

        if self._queue is None:
            return
        while not self._queue.empty():
            item, future = self._queue.get_nowait()
            self._queue.task_done()
            self._futures.pop(item.id, None)
            future.cancel()

    async def aclose(self) -> None:
        self.discard()
        worker, self._worker = self._worker, None
        if worker is not None and not worker.done():
            worker.cancel()
            await asyncio.wait({worker})

    async def _run(self) -> None:
        assert self._queue is not None
        while True:
            item, future = await self._queue.get()
            try:
                await self._submit(item)
            finally:
                self._queue.task_done()
                self._futures.pop(item.id, None)
                if not future.done():
                    future.set_result(item)

    async def _submit(self, item: ActionItem) -> None:
        task = TaskPayload(
            title=item.text,
            assignee=item.assignee or None,
            due_date=item.due_date,
            source_label=self._source_label(),
        )
        try:
            await self._sink_provider().submit(task)
        except SubmissionError as exc:
            logging.warning("Action item %s was rejected: %s", item.id, exc)
            item.status = ItemStatus.ERROR
            item.error_detail = str(exc)
        except Exception as exc:  # noqa: BLE001 - one bad item must not stop the queue
            logging.exception("Error sending action item %s", item.id)
            item.status = ItemStatus.ERROR
            item.error_detail = str(exc) or "Unknown error"
        else:
            logging.debug("Action item %s sent", item.id)
            item.status = ItemStatus.SENT
            item.error_detail = None
