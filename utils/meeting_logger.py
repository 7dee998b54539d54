"""
Specialized logging for calendar snapshots, suggestions and resolution plans
"""
import logging
from typing import Sequence

from src.scheduler.models import (
    CalendarSnapshot,
    ResolutionPlan,
    SuggestedSlot,
    WorkingHours,
    sunday_based_weekday,
)

logger = logging.getLogger(__name__)


class MeetingLogger:
    """Specialized logger for scheduling requests"""

    @staticmethod
    def log_snapshot(user_id: str, snapshot: CalendarSnapshot, working_hours: WorkingHours):
        """Log the calendar data a request is working from"""
        business_hours = 0
        off_hours = 0
        for event in snapshot.owner_events:
            local_start = working_hours.localize(event.start)
            in_hours = (working_hours.start_time <= local_start.time() < working_hours.end_time
                        and sunday_based_weekday(local_start) in working_hours.working_days)
            if in_hours:
                business_hours += 1
            else:
                off_hours += 1

        logger.info(f"📋 CALENDAR SNAPSHOT - {user_id}")
        logger.info(f"   📊 Existing events: {len(snapshot.owner_events)} "
                    f"({business_hours} business hours, {off_hours} off hours)")
        for attendee, events in snapshot.attendee_events.items():
            logger.info(f"   👥 {attendee}: {len(events)} known events")

    @staticmethod
    def log_suggestions(slots: Sequence[SuggestedSlot], limit: int = 3):
        """Log the top ranked suggestions"""
        logger.info(f"🎯 TOP SUGGESTIONS ({min(limit, len(slots))} of {len(slots)}):")
        for i, slot in enumerate(slots[:limit], 1):
            logger.info(f"   {i}. {slot.start.isoformat()} - {slot.end.isoformat()} "
                        f"score={slot.score} ({slot.tier})")
            logger.info(f"      {slot.reason}")
            if slot.conflicts:
                logger.info(f"      ⚠️  Conflicts: {', '.join(c.event_title for c in slot.conflicts)}")

    @staticmethod
    def log_resolution_plan(plan: ResolutionPlan):
        """Log the moves (or failures) of a resolution plan"""
        if not plan.success:
            logger.warning(f"❌ RESOLUTION PLAN FAILED ({len(plan.failures)} blockers)")
            for failure in plan.failures:
                logger.warning(f"   - {failure}")
            return

        logger.info(f"🔄 RESOLUTION PLAN: {len(plan.moves)} moves")
        for move in plan.moves:
            logger.info(f"   📅 '{move.event_title}': {move.current_start.isoformat()} -> "
                        f"{move.proposed_start.isoformat()}")
        for note in plan.notes:
            logger.info(f"   ℹ️  {note}")
