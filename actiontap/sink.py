"""Task sinks that receive extracted action items."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Optional, Protocol

import httpx

NOTION_API_URL = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"
DEFAULT_ERROR = "Failed to create task in Notion"


class SubmissionError(RuntimeError):
    """Raised when a sink rejects a task."""


@dataclass(slots=True)
class TaskPayload:
    title: str
    assignee: Optional[str] = None
    due_date: Optional[date] = None
    source_label: Optional[str] = None


class TaskSink(Protocol):
    """Common interface for task sinks."""

    async def submit(self, task: TaskPayload) -> None:
        """Create ``task``; raise :class:`SubmissionError` on rejection."""


def _rich_text(content: str) -> Dict[str, Any]:
    return {"rich_text": [{"text": {"content": content}}]}


def build_notion_page(database_id: str, task: TaskPayload) -> Dict[str, Any]:
    """Return the ``POST /v1/pages`` body for ``task``."""

    properties: Dict[str, Any] = {
        "Name": {"title": [{"text": {"content": task.title}}]},
        "Status": {"select": {"name": "To Do"}},
    }
    if task.assignee:
        properties["Assignee"] = _rich_text(task.assignee)
    if task.due_date:
        properties["Due Date"] = {"date": {"start": task.due_date.isoformat()}}
    if task.source_label:
        properties["Source"] = _rich_text(f"Meeting: {task.source_label}")
    return {"parent": {"database_id": database_id}, "properties": properties}


class NotionSink:
    """Creates pages in a Notion database through the public API."""

    def __init__(
        self,
        api_key: str,
        database_id: str,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = NOTION_API_URL,
        timeout: float = 30.0,
    ) -> None:
        self.database_id = database_id
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "Notion-Version": NOTION_VERSION,
        }

    async def submit(self, task: TaskPayload) -> None:
        try:
            response = await self._client.post(
                "/pages",
                json=build_notion_page(self.database_id, task),
                headers=self._headers,
            )
        except httpx.HTTPError as exc:
            raise SubmissionError(f"{DEFAULT_ERROR}: {exc}") from exc

        if response.is_success:
            return
        try:
            payload = response.json()
        except ValueError:
            payload = None
        detail = payload.get("message") if isinstance(payload, dict) else None
        raise SubmissionError(detail or DEFAULT_ERROR)

    async def aclose(self) -> None:
        await self._client.aclose()
