"""Meeting summaries produced when a stream stops."""

from __future__ import annotations

import math
import re
from collections import Counter
from typing import Dict, List, Optional, Sequence

from .models import TranscriptSegment

_WORD_RE = re.compile(r"[\w']+")
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")


class Summarizer:
    """Picks the most informative sentences of a transcript.

    Sentences are scored by summing TF-IDF style weights of their words, where
    every sentence counts as a document. The best ``max_sentences`` are
    returned in transcript order.
    """

    def __init__(self, max_sentences: int = 3) -> None:
        self.max_sentences = max_sentences

    def highlights(self, transcript: str) -> List[str]:
        sentences = split_sentences(transcript)
        if len(sentences) <= self.max_sentences:
            return sentences

        tokens = [_tokenize(sentence) for sentence in sentences]
        idf = _inverse_document_frequency(tokens)
        scores = [_score(words, idf) for words in tokens]
        best = sorted(range(len(sentences)), key=scores.__getitem__, reverse=True)
        return [sentences[i] for i in sorted(best[: self.max_sentences])]


def split_sentences(text: str) -> List[str]:
    return [part.strip() for part in _SENTENCE_SPLIT_RE.split(text.strip()) if part.strip()]


def _tokenize(sentence: str) -> List[str]:
    return [word.lower() for word in _WORD_RE.findall(sentence)]


def _inverse_document_frequency(docs: List[List[str]]) -> Dict[str, float]:
    doc_freq: Counter[str] = Counter()
    for doc in docs:
        doc_freq.update(set(doc))
    total = len(docs)
    return {word: math.log(total / (1 + count)) + 1 for word, count in doc_freq.items()}


def _score(words: List[str], idf: Dict[str, float]) -> float:
    if not words:
        return 0.0
    counts = Counter(words)
    return sum(counts[word] / len(words) * idf.get(word, 0.0) for word in words)


def discussion_minutes(segments: Sequence[TranscriptSegment]) -> int:
    if len(segments) < 2:
        return 0
    span = segments[-1].captured_at - segments[0].captured_at
    return max(0, round(span.total_seconds() / 60))


def build_summary(
    title: str,
    transcript: str,
    item_count: int,
    segments: Sequence[TranscriptSegment],
    summarizer: Optional[Summarizer] = None,
) -> str:
    """Render the end-of-meeting summary text."""

    noun = "action item" if item_count == 1 else "action items"
    text = (
        f'Meeting summary for "{title}":\n\n'
        f"This meeting covered several topics and resulted in {item_count} {noun}. "
        f"The discussion lasted approximately {discussion_minutes(segments)} minutes."
    )
    highlights = (summarizer or Summarizer()).highlights(transcript)
    if highlights:
        text += "\n\nHighlights:\n" + "\n".join(f"- {sentence}" for sentence in highlights)
    return text
