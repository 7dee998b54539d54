"""
Scoring functions for candidate time slots

Each function is pure: every input, including working hours and the buffer
size, is passed in explicitly. All sub-scores are on a 0-100 scale.
"""
import math
from datetime import datetime
from typing import Dict, Iterable, Optional, Sequence

from src.scheduler.models import (
    ExistingEvent,
    ScoreBreakdown,
    WorkingHours,
    minutes_between,
    sunday_based_weekday,
)

WEIGHTS = {
    "availability": 0.35,
    "preference": 0.25,
    "attendee": 0.20,
    "disruption": 0.10,
    "buffer": 0.10,
}

FULL_OVERLAP_WEIGHT = 2
PARTIAL_OVERLAP_WEIGHT = 0.5
MAX_WEIGHTED_CONFLICTS = 10


def _overlaps(start: datetime, end: datetime, event: ExistingEvent) -> bool:
    return start < event.end and end > event.start


def clamp(value: float, low: float = 0, high: float = 100) -> float:
    return max(low, min(high, value))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_availability_score(slot_start: datetime, slot_end: datetime,
                                 existing_events: Iterable[ExistingEvent]) -> float:
    """
    Higher score = fewer conflicts.

    A slot lying entirely inside an event counts 2, any other overlap 0.5;
    ten weighted conflicts bring the score to 0.
    """
    weighted = 0.0
    for event in existing_events:
        if not _overlaps(slot_start, slot_end, event):
            continue
        if slot_start >= event.start and slot_end <= event.end:
            weighted += FULL_OVERLAP_WEIGHT
        else:
            weighted += PARTIAL_OVERLAP_WEIGHT

    return max(0.0, 100 - (weighted / MAX_WEIGHTED_CONFLICTS) * 100)


def calculate_preference_score(slot_start: datetime,
                               working_hours: Optional[WorkingHours] = None,
                               preferred_days: Sequence[int] = (),
                               avoid_days: Sequence[int] = ()) -> float:
    """Higher score = better match with working hours and weekday preferences"""
    score = 50.0
    local_start = working_hours.localize(slot_start) if working_hours else slot_start
    slot_day = sunday_based_weekday(local_start)
    slot_hour = local_start.hour

    if working_hours:
        slot_minutes = local_start.hour * 60 + local_start.minute
        start = working_hours.start_time
        end = working_hours.end_time
        if start.hour * 60 + start.minute <= slot_minutes <= end.hour * 60 + end.minute:
            score += 30
        else:
            score -= 30

    if preferred_days:
        score += 20 if slot_day in preferred_days else -10

    if avoid_days and slot_day in avoid_days:
        score -= 30

    # Mid-morning and mid-afternoon
    if 10 <= slot_hour <= 11 or 14 <= slot_hour <= 15:
        score += 10

    if slot_hour < 8 or slot_hour >= 18:
        score -= 20

    return clamp(score)


def calculate_attendee_availability_score(slot_start: datetime, slot_end: datetime,
                                          attendee_events: Dict[str, Sequence[ExistingEvent]]) -> float:
    """Share of attendees with no known event overlapping the slot"""
    if not attendee_events:
        return 100.0

    available = 0
    for events in attendee_events.values():
        if not any(_overlaps(slot_start, slot_end, event) for event in events):
            available += 1

    return available / len(attendee_events) * 100


def calculate_disruption_score(required_moves: int, total_events: int) -> float:
    """Higher score = fewer existing events need to be moved"""
    if total_events == 0:
        return 100.0
    return max(0.0, 100 - (required_moves / total_events) * 100)


def calculate_buffer_score(slot_start: datetime, slot_end: datetime,
                           existing_events: Iterable[ExistingEvent],
                           min_buffer_minutes: int = 15) -> float:
    """Penalize gaps to neighbouring events that are positive but shorter than the buffer"""
    score = 100.0
    for event in existing_events:
        gap_before = minutes_between(event.end, slot_start)
        if 0 < gap_before < min_buffer_minutes:
            score -= (min_buffer_minutes - gap_before) * 2

        gap_after = minutes_between(slot_end, event.start)
        if 0 < gap_after < min_buffer_minutes:
            score -= (min_buffer_minutes - gap_after) * 2

    return max(0.0, score)


def calculate_composite_score(availability: float, preference: float, attendee: float,
                              disruption: float, buffer: float = 100) -> int:
    composite = (
        clamp(availability) * WEIGHTS["availability"]
        + clamp(preference) * WEIGHTS["preference"]
        + clamp(attendee) * WEIGHTS["attendee"]
        + clamp(disruption) * WEIGHTS["disruption"]
        + clamp(buffer) * WEIGHTS["buffer"]
    )
    return round_half_up(composite)


def build_score_breakdown(availability: float, preference: float, attendee: float,
                          disruption: float, buffer: float) -> ScoreBreakdown:
    """Clamp the five sub-scores and attach their composite"""
    values = [clamp(v) for v in (availability, preference, attendee, disruption, buffer)]
    return ScoreBreakdown(*values, composite=calculate_composite_score(*values))


def get_slot_quality_tier(score: float) -> str:
    if score >= 90:
        return "excellent"
    if score >= 75:
        return "good"
    if score >= 60:
        return "fair"
    return "poor"


def generate_score_reason(score: float, availability: float, preference: float,
                          attendee: float, conflicts: int) -> str:
    """Short human-readable explanation of a slot's score"""
    tier_phrases = {
        "excellent": "Excellent time slot",
        "good": "Good time slot",
        "fair": "Acceptable time slot",
        "poor": "Suboptimal time slot",
    }
    reasons = [tier_phrases[get_slot_quality_tier(score)]]

    if availability == 100:
        reasons.append("no conflicts")
    elif conflicts > 0:
        reasons.append(f"{conflicts} conflict{'s' if conflicts > 1 else ''}")

    if preference >= 80:
        reasons.append("matches your preferences")
    elif preference < 50:
        reasons.append("outside preferred hours")

    if 75 <= attendee < 100:
        reasons.append("most attendees available")
    elif attendee < 75:
        reasons.append("some attendees busy")

    return ", ".join(reasons)
