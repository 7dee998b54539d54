"""
Slot Ranker - scores, orders and filters candidate slots for an intent
"""
import logging
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from src.scheduler.candidate_generator import generate_candidates
from src.scheduler.conflict_detector import (
    count_hard_conflicts,
    detect_conflicts,
    has_blocking_conflict,
)
from src.scheduler.errors import InvalidIntent, NoAcceptableSlot, NoCandidatesInWindow
from src.scheduler.models import (
    CalendarSnapshot,
    CandidateSlot,
    ExistingEvent,
    Intent,
    RankingOptions,
    SuggestedSlot,
    WorkingHours,
)
from src.scheduler.resolution_planner import plan_resolution
from src.scheduler.scoring import (
    build_score_breakdown,
    calculate_attendee_availability_score,
    calculate_availability_score,
    calculate_buffer_score,
    calculate_disruption_score,
    calculate_preference_score,
    generate_score_reason,
    get_slot_quality_tier,
)

logger = logging.getLogger(__name__)


def _attendee_calendars(intent: Intent, snapshot: CalendarSnapshot) -> Dict[str, Sequence[ExistingEvent]]:
    # Attendees without a known calendar count as available
    return {attendee: snapshot.attendee_events.get(attendee, ()) for attendee in dict.fromkeys(intent.attendees)}


def score_candidate(candidate: CandidateSlot, intent: Intent, snapshot: CalendarSnapshot,
                    options: RankingOptions, working_hours: Optional[WorkingHours]) -> SuggestedSlot:
    """Detect conflicts for one candidate and compute its full score breakdown"""
    start, end = candidate.start, candidate.end
    owner_events = snapshot.owner_events
    conflicts = detect_conflicts(start, end, snapshot.all_events())

    owner_ids = {e.id for e in owner_events}
    required_moves = sum(1 for c in conflicts if c.event_id in owner_ids)
    attendee_events = _attendee_calendars(intent, snapshot)

    breakdown = build_score_breakdown(
        availability=calculate_availability_score(start, end, owner_events),
        preference=calculate_preference_score(start, working_hours,
                                              intent.constraints.preferred_days,
                                              intent.constraints.avoid_days),
        attendee=calculate_attendee_availability_score(start, end, attendee_events),
        disruption=calculate_disruption_score(required_moves, len(owner_events)),
        buffer=calculate_buffer_score(start, end, owner_events, options.min_buffer_minutes),
    )

    warnings = []
    if conflicts:
        warnings.append(f"{len(conflicts)} scheduling conflict{'s' if len(conflicts) > 1 else ''}")
    if breakdown.preference < 50:
        warnings.append("Outside preferred working hours")
    if attendee_events and breakdown.attendee < 75:
        warnings.append("Some attendees may be unavailable")

    return SuggestedSlot(
        id=str(uuid.uuid4()),
        start=start,
        end=end,
        score=breakdown.composite,
        tier=get_slot_quality_tier(breakdown.composite),
        breakdown=breakdown,
        conflicts=tuple(conflicts),
        warnings=tuple(warnings),
        reason=generate_score_reason(breakdown.composite, breakdown.availability,
                                     breakdown.preference, breakdown.attendee, len(conflicts)),
    )


def sort_slots(slots: List[SuggestedSlot]) -> List[SuggestedSlot]:
    """Highest score first, then fewer hard conflicts, then earlier start"""
    return sorted(slots, key=lambda s: (-s.score, count_hard_conflicts(s.conflicts), s.start))


def _resolvable_slots(slots: List[SuggestedSlot], snapshot: CalendarSnapshot, now: datetime,
                      working_hours: WorkingHours, options: RankingOptions,
                      search_days: int) -> List[SuggestedSlot]:
    """Slots whose conflicts can all be cleared, each with its moves attached"""
    events = snapshot.all_events()
    resolvable = []
    for slot in slots:
        if not slot.conflicts:
            resolvable.append(slot)
            continue
        plan = plan_resolution(slot.start, slot.end, slot.conflicts, events, now, working_hours,
                               search_days, options.granularity_minutes)
        if plan.success:
            resolvable.append(replace(slot, required_moves=plan.moves))
        else:
            logger.debug(f"Dropping {slot.start.isoformat()}: {'; '.join(plan.failures)}")
    return resolvable


def rank_slots(intent: Intent, snapshot: CalendarSnapshot, now: datetime, options: RankingOptions,
               working_hours: Optional[WorkingHours] = None, default_duration: int = 60,
               resolution_search_days: int = 7,
               candidates: Optional[List[CandidateSlot]] = None) -> List[SuggestedSlot]:
    """
    Rank candidate slots for an intent against one calendar snapshot.

    Slots with a hard conflict against an immovable event are never offered.
    With options.auto_resolve, slots whose conflicts cannot be cleared by
    moving events are dropped too, and the rest carry their required moves.

    Slots below options.min_score are filtered out unless that would leave
    nothing, in which case the best available slots are returned with a
    warning (unless options.strict_threshold is set). Candidates are generated
    here unless the caller passes them in.

    Raises:
        NoCandidatesInWindow: the window and hard constraints leave no candidate
        NoAcceptableSlot: every candidate is blocked, or nothing passes a strict threshold
    """
    if options.max_results < 1:
        raise InvalidIntent([f"maxResults must be at least 1, got {options.max_results}"])

    if candidates is None:
        candidates = generate_candidates(intent, now, options, working_hours, default_duration)
    if not candidates:
        raise NoCandidatesInWindow(
            "No candidate time slots in the search window",
            {"searchWindowDays": options.search_window_days},
        )

    scored = [score_candidate(c, intent, snapshot, options, working_hours) for c in candidates]
    qualified = [s for s in scored if not has_blocking_conflict(s.conflicts)]
    if options.auto_resolve and working_hours:
        qualified = _resolvable_slots(qualified, snapshot, now, working_hours,
                                      options, resolution_search_days)

    if not qualified:
        raise NoAcceptableSlot(
            f"All {len(candidates)} candidate slots overlap events that cannot be moved",
            {"candidates": len(candidates)},
        )

    ranked = sort_slots(qualified)
    passing = [s for s in ranked if s.score >= options.min_score]

    if passing:
        results = passing[:options.max_results]
    elif options.strict_threshold:
        raise NoAcceptableSlot(
            f"No time slot reaches the minimum score of {options.min_score}",
            {"bestScore": ranked[0].score, "minScore": options.min_score},
        )
    else:
        logger.info(f"⚠️  No slot reaches {options.min_score}; returning best available")
        note = f"Below minimum score of {options.min_score}; best available"
        results = [replace(s, warnings=s.warnings + (note,)) for s in ranked[:options.max_results]]

    logger.info(f"✅ Ranked {len(candidates)} candidates -> {len(results)} suggestions "
                f"(best score {results[0].score})")
    return results
