"""Heuristic action item extraction from meeting transcripts.

Extraction is plain pattern matching. Three regular expression families pick
candidate phrases out of the transcript, a small controlled vocabulary turns
names and relative day words into an assignee and a concrete due date, and a
ledger of already emitted texts keeps repeated passes over a growing
transcript from emitting the same item twice.
"""

from __future__ import annotations

import re
import uuid
from datetime import date, datetime, timedelta
from typing import Iterator, List, Optional, Sequence, Tuple

from .ledger import DedupLedger
from .models import ActionItem

DEFAULT_ROSTER: Tuple[str, ...] = ("John", "Sarah", "Mike", "Emily", "Alex", "David")

# Sunday = 0 ... Saturday = 6
WEEKDAYS: Tuple[str, ...] = (
    "sunday",
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
)

_WEEKDAY_ALT = "|".join(WEEKDAYS)

CANDIDATE_PATTERNS: Tuple[re.Pattern[str], ...] = (
    # Explicit markers: "Action item: ...", "todo ...", "follow up for ..."
    re.compile(
        r"(?:action item|task|todo|to do|follow up|followup)(?:\s*:|\s+for\s+)?\s*([^.!?]+[.!?])",
        re.IGNORECASE,
    ),
    # Sentences carrying an obligation
    re.compile(
        r"([^.!?]*(?:will|should|needs to|has to|going to)\s+[^.!?]*[.!?])",
        re.IGNORECASE,
    ),
    # Sentences carrying a deadline
    re.compile(
        rf"([^.!?]*\b(?:by|before|due)\s+(?:{_WEEKDAY_ALT}|tomorrow|next week|end of day|eod)[^.!?]*[.!?])",
        re.IGNORECASE,
    ),
)

_DUE_RE = re.compile(rf"\b({_WEEKDAY_ALT}|tomorrow|next week)\b", re.IGNORECASE)
_SENTENCE_END_RE = re.compile(r"[.!?]")


class ExtractionError(RuntimeError):
    """Raised when an extraction pass cannot complete."""


def match_candidates(text: str) -> List[str]:
    """Return raw candidate phrases in pattern order, then match order.

    Candidates may overlap or repeat across the pattern families.
    """

    candidates: List[str] = []
    for pattern in CANDIDATE_PATTERNS:
        for match in pattern.finditer(text):
            phrase = (match.group(1) or match.group(0)).strip()
            if phrase:
                candidates.append(phrase)
    return candidates


def infer_assignee(candidate: str, roster: Sequence[str] = DEFAULT_ROSTER) -> str:
    """Return the first roster name mentioned in ``candidate``, or ``""``.

    Names match case-insensitively on word boundaries and come back spelled
    as in the roster, so "JOHN will" and "john will" both give "John".
    """

    if not roster:
        return ""
    pattern = re.compile(r"\b(" + "|".join(re.escape(name) for name in roster) + r")\b", re.IGNORECASE)
    match = pattern.search(candidate)
    if match is None:
        return ""
    found = match.group(1).lower()
    return next(name for name in roster if name.lower() == found)


def infer_due_date(candidate: str, now: datetime) -> Optional[date]:
    match = _DUE_RE.search(candidate)
    if match is None:
        return None

    today = now.date()
    term = match.group(1).lower()
    if term == "tomorrow":
        return today + timedelta(days=1)
    if term == "next week":
        return today + timedelta(days=7)

    target = WEEKDAYS.index(term)
    current = (today.weekday() + 1) % 7  # datetime counts from Monday
    return today + timedelta(days=(target - current + 7) % 7)


def infer_attributes(
    candidate: str,
    now: datetime,
    roster: Sequence[str] = DEFAULT_ROSTER,
) -> Tuple[str, Optional[date]]:
    """Return the ``(assignee, due_date)`` pair for a candidate phrase."""

    return infer_assignee(candidate, roster), infer_due_date(candidate, now)


def window_start(text: str, size: Optional[int]) -> int:
    """Offset where a bounded scan of the last ``size`` characters should begin.

    The window is moved forward to the next sentence boundary so a scan never
    starts halfway through a sentence.
    """

    if not size or len(text) <= size:
        return 0
    start = len(text) - size
    if start > 0 and _SENTENCE_END_RE.match(text, start - 1):
        return start
    boundary = _SENTENCE_END_RE.search(text, start)
    if boundary is None:
        return start
    return boundary.end()


class ActionExtractor:
    """Turns transcript text into new action items, consulting a ledger."""

    def __init__(self, roster: Sequence[str] = DEFAULT_ROSTER) -> None:
        self.roster = tuple(roster)

    def iter_items(self, text: str, now: datetime) -> Iterator[ActionItem]:
        for candidate in match_candidates(text):
            assignee, due_date = infer_attributes(candidate, now, self.roster)
            yield ActionItem(
                id=uuid.uuid4().hex,
                text=candidate,
                assignee=assignee,
                due_date=due_date,
            )

    def extract(
        self,
        text: str,
        now: datetime,
        ledger: DedupLedger,
    ) -> List[ActionItem]:
        """Return the items in ``text`` that the ledger has not seen yet.

        Emitted texts are recorded in the ledger as they are returned.
        """

        try:
            enriched = list(self.iter_items(text, now))
        except Exception as exc:
            raise ExtractionError(f"Action item extraction failed: {exc}") from exc

        fresh: List[ActionItem] = []
        for item in enriched:
            if ledger.seen(item.text):
                continue
            ledger.record(item.text)
            fresh.append(item)
        return fresh


def extract_action_items(
    transcript: str,
    now: Optional[datetime] = None,
    roster: Sequence[str] = DEFAULT_ROSTER,
) -> List[ActionItem]:
    """One-shot extraction over a complete transcript with a fresh ledger."""

    return ActionExtractor(roster).extract(transcript, now or datetime.now(), DedupLedger())
