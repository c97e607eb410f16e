import asyncio
from typing import List, Optional, Set

import pytest

from actiontap import config
from actiontap.sink import SubmissionError, TaskPayload


class RecordingSink:
    """In-memory sink that rejects chosen titles."""

    def __init__(self, reject: Optional[Set[str]] = None, message: str = "Validation failed") -> None:
        self.tasks: List[TaskPayload] = []
        self.reject = reject or set()
        self.message = message
        self.started = asyncio.Event()
        self.release: Optional[asyncio.Event] = None

    async def submit(self, task: TaskPayload) -> None:
        self.started.set()
        if self.release is not None:
            await self.release.wait()
        self.tasks.append(task)
        if task.title in self.reject:
            raise SubmissionError(self.message)


@pytest.fixture
def make_sink():
    return RecordingSink


@pytest.fixture
def config_path(tmp_path, monkeypatch):
    path = tmp_path / "config.json"
    monkeypatch.setattr(config, "CONFIG_PATH", path)
    monkeypatch.delenv("ACTIONTAP_NOTION_API_KEY", raising=False)
    monkeypatch.delenv("ACTIONTAP_NOTION_DATABASE_ID", raising=False)
    return path
