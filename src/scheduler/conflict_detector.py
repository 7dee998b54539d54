"""
Conflict detection between a candidate interval and existing events
"""
from datetime import datetime
from typing import Iterable, List, Optional, Set

from src.scheduler.models import (
    SEVERITY_HARD,
    SEVERITY_SOFT,
    ConflictInfo,
    ExistingEvent,
)


def times_overlap(start1: datetime, end1: datetime, start2: datetime, end2: datetime) -> bool:
    """Strict intersection: intervals that only touch do not overlap"""
    return start1 < end2 and end1 > start2


def classify_severity(start: datetime, end: datetime, event: ExistingEvent) -> str:
    """Hard when either interval fully contains the other, soft for a partial overlap"""
    slot_inside_event = start >= event.start and end <= event.end
    event_inside_slot = event.start >= start and event.end <= end
    return SEVERITY_HARD if slot_inside_event or event_inside_slot else SEVERITY_SOFT


def detect_conflicts(start: datetime, end: datetime, events: Iterable[ExistingEvent],
                     exclude_ids: Optional[Set[str]] = None) -> List[ConflictInfo]:
    """
    Conflicts of the interval with the given events, in event start order.

    Events appearing on several calendars (owner and attendees) are reported
    once. Movability and priority are attached so the resolution planner
    never has to look the event up again.
    """
    exclude_ids = exclude_ids or set()
    seen = set()
    conflicts = []

    for event in sorted(events, key=lambda e: (e.start, e.id)):
        if event.id in seen or event.id in exclude_ids:
            continue
        if not times_overlap(start, end, event.start, event.end):
            continue
        seen.add(event.id)
        conflicts.append(ConflictInfo(
            event_id=event.id,
            event_title=event.title,
            event_start=event.start,
            event_end=event.end,
            severity=classify_severity(start, end, event),
            movable=event.movable,
            priority=event.priority,
        ))

    return conflicts


def is_free(start: datetime, end: datetime, events: Iterable[ExistingEvent],
            exclude_ids: Optional[Set[str]] = None) -> bool:
    return not detect_conflicts(start, end, events, exclude_ids)


def has_blocking_conflict(conflicts: Iterable[ConflictInfo]) -> bool:
    """A hard conflict with an event that may not be moved"""
    return any(c.is_hard and not c.movable for c in conflicts)


def count_hard_conflicts(conflicts: Iterable[ConflictInfo]) -> int:
    return sum(1 for c in conflicts if c.is_hard)
