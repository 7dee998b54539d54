"""
Resolution Planner - proposes moves of existing events that clear a chosen slot

Moves are one level deep: a conflicting event may be relocated only to an
interval that is already free. If that is not possible the whole plan fails;
the planner never chains further moves and never returns a partial plan.
"""
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from src.scheduler.conflict_detector import times_overlap
from src.scheduler.models import (
    ConflictInfo,
    EventMove,
    ExistingEvent,
    ResolutionPlan,
    WorkingHours,
    sunday_based_weekday,
)

logger = logging.getLogger(__name__)

MOVE_REASON = "To accommodate new event"


def _day_positions(day, duration: timedelta, working_hours: WorkingHours,
                   granularity: int, aware: bool) -> List[datetime]:
    tz = ZoneInfo(working_hours.timezone) if aware else None
    current = datetime.combine(day, working_hours.start_time, tzinfo=tz)
    day_end = datetime.combine(day, working_hours.end_time, tzinfo=tz)
    positions = []
    while current + duration <= day_end:
        positions.append(current)
        current += timedelta(minutes=granularity)
    return positions


def _candidate_positions(event: ExistingEvent, working_hours: WorkingHours,
                         search_days: int, granularity: int) -> List[datetime]:
    """Start times on the event's own day, then on following working days, closest first"""
    local_start = working_hours.localize(event.start)
    aware = event.start.tzinfo is not None
    positions = []

    for offset in range(search_days + 1):
        day = local_start.date() + timedelta(days=offset)
        day_number = (sunday_based_weekday(local_start) + offset) % 7
        if offset > 0 and day_number not in working_hours.working_days:
            continue
        positions.extend(_day_positions(day, event.duration, working_hours, granularity, aware))

    return sorted(positions, key=lambda p: (abs((p - event.start).total_seconds()), p))


def find_alternative_interval(event: ExistingEvent, slot_start: datetime, slot_end: datetime,
                              events: Sequence[ExistingEvent], reserved: Sequence[Tuple[datetime, datetime]],
                              now: datetime, working_hours: WorkingHours,
                              search_days: int = 7, granularity: int = 30) -> Optional[Tuple[datetime, datetime]]:
    """First free interval for the event that touches neither the new slot nor any other event"""
    for start in _candidate_positions(event, working_hours, search_days, granularity):
        end = start + event.duration
        if start < now:
            continue
        if times_overlap(start, end, slot_start, slot_end):
            continue
        if any(times_overlap(start, end, r_start, r_end) for r_start, r_end in reserved):
            continue
        if any(other.id != event.id and times_overlap(start, end, other.start, other.end)
               for other in events):
            continue
        return start, end
    return None


def plan_resolution(slot_start: datetime, slot_end: datetime, conflicts: Sequence[ConflictInfo],
                    events: Sequence[ExistingEvent], now: datetime, working_hours: WorkingHours,
                    search_days: int = 7, granularity: int = 30) -> ResolutionPlan:
    """
    Compute the moves needed to clear the slot's conflicts.

    Args:
        slot_start, slot_end: the chosen slot
        conflicts: conflicts of that slot, as reported by the conflict detector
        events: every event of the request snapshot
        now: moves are never proposed into the past
        working_hours: alternatives are searched inside working hours

    Returns:
        A successful plan with one move per relocated event, or a failed plan
        with no moves and the reasons it failed.
    """
    by_id: Dict[str, ExistingEvent] = {e.id: e for e in events}
    moves: List[EventMove] = []
    failures: List[str] = []
    notes: List[str] = []
    reserved: List[Tuple[datetime, datetime]] = []

    for conflict in conflicts:
        if not conflict.movable:
            if conflict.is_hard:
                failures.append(f"'{conflict.event_title}' cannot be moved and fully overlaps the slot")
            else:
                notes.append(f"'{conflict.event_title}' cannot be moved; partial overlap remains")
            continue

        event = by_id.get(conflict.event_id)
        if event is None:
            failures.append(f"'{conflict.event_title}' is not in the current calendar data")
            continue

        alternative = find_alternative_interval(event, slot_start, slot_end, events, reserved,
                                                now, working_hours, search_days, granularity)
        if alternative is None:
            failures.append(f"No free time found to move '{event.title}'")
            continue

        reserved.append(alternative)
        moves.append(EventMove(
            event_id=event.id,
            event_title=event.title,
            current_start=event.start,
            current_end=event.end,
            proposed_start=alternative[0],
            proposed_end=alternative[1],
            reason=MOVE_REASON,
        ))
        logger.info(f"📅 Proposed moving '{event.title}' to {alternative[0].isoformat()}")

    if failures:
        logger.warning(f"❌ Resolution failed: {'; '.join(failures)}")
        return ResolutionPlan(success=False, failures=tuple(failures), notes=tuple(notes))

    return ResolutionPlan(success=True, moves=tuple(moves), notes=tuple(notes))


def validate_plan(plan: ResolutionPlan, slot_start: datetime, slot_end: datetime,
                  events: Sequence[ExistingEvent]) -> List[str]:
    """Check the plan invariants against current calendar data; returns a list of violations"""
    errors = []
    by_id = {e.id: e for e in events}

    for i, move in enumerate(plan.moves):
        event = by_id.get(move.event_id)
        if event is None:
            errors.append(f"Move targets unknown event {move.event_id}")
            continue
        if not event.movable:
            errors.append(f"Move targets immovable event '{event.title}'")
        if event.start != move.current_start or event.end != move.current_end:
            errors.append(f"'{event.title}' changed since the plan was made")
        if times_overlap(move.proposed_start, move.proposed_end, slot_start, slot_end):
            errors.append(f"Move of '{event.title}' overlaps the new event")
        for other in events:
            if other.id != event.id and times_overlap(move.proposed_start, move.proposed_end,
                                                      other.start, other.end):
                errors.append(f"Move of '{event.title}' conflicts with '{other.title}'")
        for other_move in plan.moves[i + 1:]:
            if times_overlap(move.proposed_start, move.proposed_end,
                             other_move.proposed_start, other_move.proposed_end):
                errors.append(f"Moves of '{move.event_title}' and '{other_move.event_title}' overlap")

    return errors
