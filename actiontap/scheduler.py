"""Decides when a growing transcript is scanned for action items."""

from __future__ import annotations

SCAN_FLOOR = 200
SCAN_PERIOD = 100
SCAN_BAND = 10


def should_scan(length: int) -> bool:
    """Return True when a transcript of ``length`` characters warrants a periodic pass.

    This is a coarse length-modulo heuristic: a burst that moves the length
    past the band in one step skips that window entirely.
    """

    return length > SCAN_FLOOR and length % SCAN_PERIOD < SCAN_BAND


class ScanScheduler:
    """Tracks the periodic trigger and the single final pass of a stream."""

    def __init__(self) -> None:
        self._final_done = False

    def observe(self, length: int) -> bool:
        if self._final_done:
            return False
        return should_scan(length)

    def claim_final(self) -> bool:
        """Return True exactly once per stream."""

        if self._final_done:
            return False
        self._final_done = True
        return True

    @property
    def final_done(self) -> bool:
        return self._final_done

    def reset(self) -> None:
        self._final_done = False
