"""Record of action item texts already emitted during a session."""

from __future__ import annotations

from typing import Iterator, Set


class DedupLedger:
    """Case-insensitive set of emitted phrases.

    Matching is on the whole lower-cased phrase only, so two phrasings of the
    same task (even differing by punctuation) are both emitted. Entries are
    never evicted; the ledger is emptied only together with the transcript.
    """

    def __init__(self) -> None:
        self._keys: Set[str] = set()

    @staticmethod
    def _key(text: str) -> str:
        return text.lower()

    def seen(self, text: str) -> bool:
        return self._key(text) in self._keys

    def record(self, text: str) -> None:
        self._keys.add(self._key(text))

    def clear(self) -> None:
        self._keys.clear()

    def __len__(self) -> int:
        return len(self._keys)

    def __iter__(self) -> Iterator[str]:
        return iter(self._keys)
