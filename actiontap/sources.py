"""Transcription sources that feed chunks into a session."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, AsyncIterator, Dict, Optional, Protocol

import httpx

from .models import Chunk

_END = object()
_WORD_RE = re.compile(r"\S+\s*")


class StreamError(RuntimeError):
    """Raised when a transcription stream fails or cannot be closed."""


class ChunkSource(Protocol):
    """Common interface for transcription sources."""

    def __aiter__(self) -> AsyncIterator[Chunk]:
        """Yield chunks as they arrive."""

    async def close(self) -> None:
        """Stop producing chunks and release the underlying stream."""


class QueueSource:
    """A source fed by the caller, one chunk at a time."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, text: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        if self._closed:
            raise StreamError("The transcription stream is closed.")
        self._queue.put_nowait(Chunk(text=text, metadata=dict(metadata or {})))

    def end(self) -> None:
        """Signal that no more chunks will be pushed."""

        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_END)

    async def close(self) -> None:
        self.end()

    async def join(self) -> None:
        """Wait until the consumer has taken and processed every pushed chunk."""

        await self._queue.join()

    def __aiter__(self) -> AsyncIterator[Chunk]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Chunk]:
        while True:
            item = await self._queue.get()
            if item is _END:
                self._queue.task_done()
                return
            # The consumer handles a chunk before asking for the next one.
            yield item
            self._queue.task_done()


class ReplaySource:
    """Replays a finished transcript as word-sized chunks."""

    def __init__(
        self,
        text: str,
        delay: float = 0.0,
        words_per_chunk: int = 1,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._words = _WORD_RE.findall(text)
        self.delay = delay
        self.words_per_chunk = max(1, words_per_chunk)
        self.metadata = dict(metadata or {})
        self._closed = False

    async def close(self) -> None:
        self._closed = True

    def __aiter__(self) -> AsyncIterator[Chunk]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Chunk]:
        for start in range(0, len(self._words), self.words_per_chunk):
            if self._closed:
                return
            if self.delay:
                await asyncio.sleep(self.delay)
            text = "".join(self._words[start : start + self.words_per_chunk])
            yield Chunk(text=text, metadata=dict(self.metadata))


def parse_stream_line(line: str) -> Optional[Chunk]:
    """Parse one server-sent-event or JSON line into a chunk.

    Accepts ``{"choices": [{"text": ...}], "metadata": {...}}`` as well as a
    flat ``{"text": ...}`` payload. Returns None for keep-alives, event
    framing and anything without text.
    """

    line = line.strip()
    if not line or line.startswith(":"):
        return None
    if line.startswith("data:"):
        line = line[len("data:") :].strip()
    elif re.match(r"^(event|id|retry):", line):
        return None
    if not line or line == "[DONE]":
        return None

    try:
        payload = json.loads(line)
    except json.JSONDecodeError:
        logging.debug("Skipping non-JSON stream line: %s", line[:80])
        return None
    if not isinstance(payload, dict):
        return None

    choices = payload.get("choices") or []
    if choices and isinstance(choices[0], dict):
        text = choices[0].get("text", "")
    else:
        text = payload.get("text") or payload.get("transcription") or ""
    if not text:
        return None
    metadata = payload.get("metadata") or {}
    return Chunk(text=text, metadata=metadata if isinstance(metadata, dict) else {})


class HttpStreamSource:
    """Reads a live transcription stream over HTTP."""

    def __init__(
        self,
        url: str,
        client: Optional[httpx.AsyncClient] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.url = url
        self._client = client
        self._headers = {"Accept": "text/event-stream", **(headers or {})}
        self._response: Optional[httpx.Response] = None
        self._closed = False

    async def close(self) -> None:
        self._closed = True
        response, self._response = self._response, None
        if response is not None:
            await response.aclose()

    def __aiter__(self) -> AsyncIterator[Chunk]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Chunk]:
        owns_client = self._client is None
        client = self._client or httpx.AsyncClient(timeout=httpx.Timeout(10.0, read=None))
        try:
            async with client.stream("GET", self.url, headers=self._headers) as response:
                self._response = response
                response.raise_for_status()
                async for line in response.aiter_lines():
                    if self._closed:
                        return
                    chunk = parse_stream_line(line)
                    if chunk is not None:
                        yield chunk
        except httpx.HTTPError as exc:
            if self._closed:
                return
            raise StreamError(f"Transcription stream at {self.url} failed: {exc}") from exc
        finally:
            self._response = None
            if owns_client:
                await client.aclose()
