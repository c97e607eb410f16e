"""Buffering of streamed transcription chunks into transcript segments."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from .models import Chunk, TranscriptSegment

FLUSH_GAP_MS = 2000
FLUSH_LENGTH = 100


class ChunkAggregator:
    """Accumulates chunk text into a buffer and the running transcript.

    A buffer is flushed into a :class:`TranscriptSegment` when more than
    ``gap_ms`` milliseconds separate a new chunk from the buffer's first
    character (the old buffer is flushed before the new text is added), or
    when the buffer grows past ``max_length`` characters.
    """

    def __init__(self, gap_ms: int = FLUSH_GAP_MS, max_length: int = FLUSH_LENGTH) -> None:
        self.gap_ms = gap_ms
        self.max_length = max_length
        self._parts: List[str] = []
        self._length = 0
        self._buffer = ""
        self._started_at: Optional[datetime] = None
        self._metadata: Dict[str, Any] = {}
        self.segments: List[TranscriptSegment] = []

    @property
    def transcript(self) -> str:
        """Every chunk received so far, flushed or still buffering."""

        return "".join(self._parts)

    @property
    def buffer(self) -> str:
        return self._buffer

    def __len__(self) -> int:
        return self._length

    def feed(self, chunk: Chunk, at: datetime) -> List[TranscriptSegment]:
        """Add ``chunk`` received at ``at``; return the segments it caused to flush."""

        flushed: List[TranscriptSegment] = []
        if self._buffer and self._started_at is not None:
            elapsed_ms = (at - self._started_at).total_seconds() * 1000
            if elapsed_ms > self.gap_ms:
                segment = self.flush()
                if segment is not None:
                    flushed.append(segment)

        if not chunk.text:
            return flushed

        self._parts.append(chunk.text)
        self._length += len(chunk.text)
        if not self._buffer:
            self._started_at = at
        self._buffer += chunk.text
        self._metadata = chunk.metadata

        if len(self._buffer) > self.max_length:
            segment = self.flush()
            if segment is not None:
                flushed.append(segment)
        return flushed

    def flush(self) -> Optional[TranscriptSegment]:
        """Turn the current buffer into a segment; whitespace-only buffers are dropped."""

        text = self._buffer.strip()
        started_at = self._started_at
        metadata = self._metadata
        self._buffer = ""
        self._started_at = None
        self._metadata = {}
        if not text or started_at is None:
            return None

        segment = TranscriptSegment(
            id=uuid.uuid4().hex,
            text=text,
            captured_at=started_at,
            is_local_speaker=bool(metadata.get("isInput", False)),
            device_label=metadata.get("device") or "unknown",
        )
        self.segments.append(segment)
        return segment

    def reset(self) -> None:
        self._parts = []
        self._length = 0
        self._buffer = ""
        self._started_at = None
        self._metadata = {}
        self.segments = []
