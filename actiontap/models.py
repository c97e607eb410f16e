"""Dataclasses describing the objects that flow through an actiontap session."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional


class ItemStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    ERROR = "error"


class SessionState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    STOPPING = "stopping"


@dataclass(slots=True)
class Chunk:
    """One fragment of text delivered by a transcription source."""

    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_input(self) -> bool:
        return bool(self.metadata.get("isInput", False))

    @property
    def device(self) -> str:
        return self.metadata.get("device") or "unknown"


@dataclass(frozen=True, slots=True)
class TranscriptSegment:
    """A flushed span of transcript text. Never modified after creation."""

    id: str
    text: str
    captured_at: datetime
    is_local_speaker: bool = False
    device_label: str = "unknown"


@dataclass(slots=True)
class ActionItem:
    """An extracted, deduplicated unit of work tracked through submission."""

    id: str
    text: str
    assignee: str = ""
    due_date: Optional[date] = None
    status: ItemStatus = ItemStatus.PENDING
    error_detail: Optional[str] = None


@dataclass(slots=True)
class Config:
    """User configuration stored on disk."""

    notion_api_key: Optional[str] = None
    notion_database_id: Optional[str] = None
    auto_submit: bool = False
    meeting_title: str = "Team Meeting"
    source_url: str = "http://localhost:3030/sse/transcriptions"
    stop_timeout: float = 5.0
    scan_window: int = 4000
    api_timeout: float = 30.0

    @property
    def has_credentials(self) -> bool:
        return bool(self.notion_api_key and self.notion_database_id)
