"""Lay out a working day around the blocks already on the calendar.

``plan_day`` never touches the calendar; it returns the change descriptors
that would turn the current day into the proposed one:

1. Flexible blocks (not protected, not meetings) that overlap another block
   are moved into the first gap long enough to hold them, or deleted when no
   gap fits.
2. A lunch block is created at the preferred time when that slot is free.
3. Remaining gaps of at least 30 minutes are filled in order.  The first gap
   starting at or after 14:00 opens with a 30-minute email block.  Work
   blocks of up to two hours go into any stretch of at least an hour, each
   followed by a short break when there is room.
4. If no email block was placed, the last 30 minutes of the trailing gap
   become an end-of-day email wrap-up.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, date, datetime, time, timedelta, tzinfo

from tempo.proposals.models import ChangeDescriptor, ChangeTarget, ChangeType
from tempo.scheduling.gaps import Span, find_gaps, find_overlaps, is_free
from tempo.scheduling.models import DayPreferences, Gap
from tempo.services.models import BlockType, TimeBlock

MIN_FILL_GAP_MINUTES = 30
EMAIL_BLOCK_MINUTES = 30
EMAIL_EARLIEST = time(14, 0)
MIN_WORK_MINUTES = 60
MAX_WORK_MINUTES = 120

_WORK_TITLES = ("Deep Work Block", "Focus Block")
_DEFAULT_WORK_TITLE = "Work Block"


def _create(
    start: datetime, end: datetime, block_type: BlockType, title: str, reason: str
) -> ChangeDescriptor:
    return ChangeDescriptor(
        type=ChangeType.CREATE,
        target=ChangeTarget.TIME_BLOCK,
        fields={
            "start": start.isoformat(),
            "end": end.isoformat(),
            "type": block_type.value,
            "title": title,
        },
        reason=reason,
    )


class _DayLayout:
    """Mutable state while laying out one day."""

    def __init__(self, day: date, preferences: DayPreferences, tz: tzinfo) -> None:
        self.day = day
        self.prefs = preferences
        self.tz = tz
        self.window_start = self.at(preferences.work_start)
        self.window_end = self.at(preferences.work_end)
        self.occupied: list[Span] = []
        self.changes: list[ChangeDescriptor] = []
        self.work_blocks = 0
        self.email_placed = False

    def at(self, clock: time) -> datetime:
        return datetime.combine(self.day, clock, tzinfo=self.tz)

    def add(
        self, start: datetime, end: datetime, block_type: BlockType, title: str, reason: str
    ) -> None:
        self.changes.append(_create(start, end, block_type, title, reason))
        self.occupied.append(Gap(start=start, end=end))

    def resolve_overlaps(self, blocks: list[TimeBlock]) -> None:
        displaced: dict[str, TimeBlock] = {}
        collided_with: dict[str, TimeBlock] = {}
        for first, second in find_overlaps(blocks):
            if first.id in displaced or second.id in displaced:
                continue
            if second.is_flexible:
                displaced[second.id], collided_with[second.id] = second, first
            elif first.is_flexible:
                displaced[first.id], collided_with[first.id] = first, second

        self.occupied.extend(b for b in blocks if b.id not in displaced)

        for block in sorted(displaced.values(), key=lambda b: b.start):
            other = collided_with[block.id]
            length = block.end - block.start
            slot = next(
                iter(
                    find_gaps(
                        self.occupied,
                        self.window_start,
                        self.window_end,
                        min_gap_minutes=block.duration_minutes,
                    )
                ),
                None,
            )
            if slot is None:
                self.changes.append(
                    ChangeDescriptor(
                        type=ChangeType.DELETE,
                        target=ChangeTarget.TIME_BLOCK,
                        ref=block.id,
                        fields={"title": block.title},
                        reason=f"Overlaps {other.title or other.id} and no free slot fits it",
                    )
                )
                continue
            new_start, new_end = slot.start, slot.start + length
            self.changes.append(
                ChangeDescriptor(
                    type=ChangeType.MOVE,
                    target=ChangeTarget.TIME_BLOCK,
                    ref=block.id,
                    fields={"start": new_start.isoformat(), "end": new_end.isoformat()},
                    reason=f"Overlaps {other.title or other.id}; moved to the first free slot",
                )
            )
            self.occupied.append(Gap(start=new_start, end=new_end))

    def place_lunch(self) -> None:
        start = self.at(self.prefs.lunch_time)
        end = start + timedelta(minutes=self.prefs.lunch_minutes)
        if start < self.window_start or end > self.window_end:
            return
        if is_free(self.occupied, start, end):
            self.add(start, end, BlockType.break_, "Lunch Break", "Standard lunch break")

    def fill_work(self, cursor: datetime, limit: datetime) -> datetime:
        break_length = timedelta(minutes=self.prefs.break_minutes)
        while limit - cursor >= timedelta(minutes=MIN_WORK_MINUTES):
            length = min(limit - cursor, timedelta(minutes=MAX_WORK_MINUTES))
            if self.work_blocks < len(_WORK_TITLES):
                title = _WORK_TITLES[self.work_blocks]
            else:
                title = _DEFAULT_WORK_TITLE
            reason = (
                "Extended focus time available"
                if length >= timedelta(minutes=MAX_WORK_MINUTES)
                else "Productive work slot"
            )
            self.add(cursor, cursor + length, BlockType.work, title, reason)
            self.work_blocks += 1
            cursor += length
            if limit - cursor >= break_length:
                self.add(
                    cursor,
                    cursor + break_length,
                    BlockType.break_,
                    "Short Break",
                    "Recovery time between work blocks",
                )
                cursor += break_length
        return cursor

    def fill_gaps(self) -> None:
        email_length = timedelta(minutes=EMAIL_BLOCK_MINUTES)
        gaps = find_gaps(
            self.occupied,
            self.window_start,
            self.window_end,
            min_gap_minutes=MIN_FILL_GAP_MINUTES,
        )
        for gap in gaps:
            cursor, limit = gap.start, gap.end
            wrap_up = False
            if not self.email_placed and cursor.time() >= EMAIL_EARLIEST:
                self.add(
                    cursor,
                    cursor + email_length,
                    BlockType.email,
                    "Email Processing",
                    "Dedicated time for email management",
                )
                self.email_placed = True
                cursor += email_length
            elif not self.email_placed and gap.end == self.window_end:
                wrap_up = True
                limit -= email_length

            self.fill_work(cursor, limit)

            if wrap_up:
                self.add(
                    limit,
                    limit + email_length,
                    BlockType.email,
                    "Email Wrap-up",
                    "End-of-day email check",
                )
                self.email_placed = True


def plan_day(
    existing: Iterable[TimeBlock],
    day: date,
    preferences: DayPreferences | None = None,
    *,
    tz: tzinfo = UTC,
) -> list[ChangeDescriptor]:
    """Return the changes that lay out *day* around the *existing* blocks."""
    layout = _DayLayout(day, preferences or DayPreferences(), tz)
    blocks = sorted(existing, key=lambda b: (b.start, b.end))
    layout.resolve_overlaps(blocks)
    layout.place_lunch()
    layout.fill_gaps()
    return layout.changes


def summarize_plan(changes: Iterable[ChangeDescriptor]) -> str:
    """One-line human summary of a day plan."""
    counts = {"work": 0, "email": 0, "break": 0}
    moved = deleted = 0
    for change in changes:
        if change.type is ChangeType.CREATE:
            block_type = change.fields.get("type")
            if block_type in counts:
                counts[block_type] += 1
        elif change.type is ChangeType.MOVE:
            moved += 1
        elif change.type is ChangeType.DELETE:
            deleted += 1

    parts = [
        f"{counts['work']} work block{'s' if counts['work'] != 1 else ''}",
        f"{counts['email']} email block{'s' if counts['email'] != 1 else ''}",
        f"{counts['break']} break{'s' if counts['break'] != 1 else ''}",
    ]
    summary = f"Create {', '.join(parts[:-1])} and {parts[-1]}"
    if moved or deleted:
        summary += f"; move {moved} and remove {deleted} overlapping block(s)"
    return summary
