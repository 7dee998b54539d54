"""
Candidate slot generation for a scheduling intent
"""
import logging
import math
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from src.scheduler.models import (
    CandidateSlot,
    Intent,
    RankingOptions,
    WorkingHours,
    parse_time_of_day,
    sunday_based_weekday,
)

logger = logging.getLogger(__name__)


def compute_search_window(intent: Intent, now: datetime,
                          search_window_days: int) -> Tuple[datetime, datetime]:
    """
    Window start is the intent's explicit start (never before now), pushed to
    must_be_after; the end is must_be_before, else start + search_window_days.
    """
    window_start = max(intent.start, now) if intent.start else now
    constraints = intent.constraints

    if constraints.must_be_after and constraints.must_be_after > window_start:
        window_start = constraints.must_be_after

    if constraints.must_be_before:
        window_end = constraints.must_be_before
    else:
        window_end = window_start + timedelta(days=search_window_days)

    return window_start, window_end


def _first_aligned_start(window_start: datetime, granularity: int) -> datetime:
    day_start = window_start.replace(hour=0, minute=0, second=0, microsecond=0)
    elapsed = (window_start - day_start).total_seconds() / 60
    steps = math.ceil(elapsed / granularity)
    return day_start + timedelta(minutes=steps * granularity)


def _violates_hard_constraints(start: datetime, end: datetime, intent: Intent,
                               now: datetime, working_hours: Optional[WorkingHours],
                               respect_working_hours: bool) -> bool:
    constraints = intent.constraints

    if start < now:
        return True
    if constraints.must_be_after and start < constraints.must_be_after:
        return True
    if constraints.must_be_before and end > constraints.must_be_before:
        return True

    local_start = working_hours.localize(start) if working_hours else start
    local_end = working_hours.localize(end) if working_hours else end

    if constraints.not_before and local_start.time() < parse_time_of_day(constraints.not_before):
        return True
    if constraints.not_after and local_start.time() > parse_time_of_day(constraints.not_after):
        return True

    if respect_working_hours and working_hours:
        if sunday_based_weekday(local_start) not in working_hours.working_days:
            return True
        if local_start.time() < working_hours.start_time:
            return True
        if local_end.date() != local_start.date() or local_end.time() > working_hours.end_time:
            return True

    return False


def _enumerate(intent: Intent, duration: timedelta, window_start: datetime, window_end: datetime,
               granularity: int, now: datetime, working_hours: Optional[WorkingHours],
               respect_working_hours: bool) -> List[CandidateSlot]:
    candidates = []
    step = timedelta(minutes=granularity)
    current = _first_aligned_start(window_start, granularity)

    while current < window_end:
        slot_end = current + duration
        if not _violates_hard_constraints(current, slot_end, intent, now,
                                          working_hours, respect_working_hours):
            candidates.append(CandidateSlot(start=current, end=slot_end))
        current += step

    return candidates


def generate_candidates(intent: Intent, now: datetime, options: RankingOptions,
                        working_hours: Optional[WorkingHours] = None,
                        default_duration: int = 60) -> List[CandidateSlot]:
    """
    Enumerate candidate slots at a fixed granularity across the search window.

    Hard constraints exclude a start time outright. When the result would
    exceed options.max_candidates the granularity is doubled and the window
    enumerated again, so the cap never truncates the window.
    """
    duration = timedelta(minutes=intent.resolved_duration(default_duration))
    window_start, window_end = compute_search_window(intent, now, options.search_window_days)

    if window_end <= window_start:
        logger.info(f"Empty search window: {window_start.isoformat()} to {window_end.isoformat()}")
        return []

    granularity = options.granularity_minutes
    while True:
        candidates = _enumerate(intent, duration, window_start, window_end, granularity,
                                now, working_hours, options.respect_working_hours)
        if len(candidates) <= options.max_candidates:
            break
        logger.info(f"⚠️  {len(candidates)} candidates exceed cap of {options.max_candidates}, "
                    f"widening granularity {granularity} -> {granularity * 2} minutes")
        granularity *= 2

    logger.debug(f"Generated {len(candidates)} candidates at {granularity}-minute granularity "
                 f"({window_start.isoformat()} to {window_end.isoformat()})")
    return candidates
