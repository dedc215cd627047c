"""Free-time and overlap detection over a day's time blocks."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta
from typing import Protocol, TypeVar

from tempo.scheduling.models import Gap


class Span(Protocol):
    @property
    def start(self) -> datetime: ...

    @property
    def end(self) -> datetime: ...


S = TypeVar("S", bound=Span)


def merge_spans(
    spans: Iterable[Span],
    window_start: datetime,
    window_end: datetime,
) -> list[tuple[datetime, datetime]]:
    """Clip *spans* to the window and merge overlapping or touching ones."""
    clipped = sorted(
        (max(span.start, window_start), min(span.end, window_end))
        for span in spans
        if span.end > window_start and span.start < window_end
    )
    merged: list[tuple[datetime, datetime]] = []
    for start, end in clipped:
        if merged and start <= merged[-1][1]:
            if end > merged[-1][1]:
                merged[-1] = (merged[-1][0], end)
        else:
            merged.append((start, end))
    return merged


def find_gaps(
    blocks: Iterable[Span],
    work_start: datetime,
    work_end: datetime,
    min_gap_minutes: int = 15,
) -> list[Gap]:
    """Return the free intervals of ``[work_start, work_end)`` in order.

    Blocks may arrive unsorted and may overlap; they are clipped to the
    window and merged first.  The lead-in gap before the first block and the
    trailing gap after the last one are included.  Gaps shorter than
    *min_gap_minutes* are omitted.
    """
    if work_end <= work_start:
        return []

    threshold = timedelta(minutes=min_gap_minutes)
    gaps: list[Gap] = []
    cursor = work_start
    for start, end in merge_spans(blocks, work_start, work_end):
        if start - cursor >= threshold:
            gaps.append(Gap(start=cursor, end=start))
        cursor = max(cursor, end)
    if work_end - cursor >= threshold:
        gaps.append(Gap(start=cursor, end=work_end))
    return gaps


def find_overlaps(blocks: Sequence[S]) -> list[tuple[S, S]]:
    """Return every pair of blocks whose intervals intersect.

    Pairs are ordered by start time; within a pair the earlier-starting
    block comes first.
    """
    ordered = sorted(blocks, key=lambda b: (b.start, b.end))
    pairs: list[tuple[S, S]] = []
    for i, first in enumerate(ordered):
        for second in ordered[i + 1 :]:
            if second.start >= first.end:
                break
            pairs.append((first, second))
    return pairs


def is_free(blocks: Iterable[Span], start: datetime, end: datetime) -> bool:
    """True when ``[start, end)`` does not intersect any block."""
    return all(not (block.start < end and start < block.end) for block in blocks)
