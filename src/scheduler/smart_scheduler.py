"""
Smart Scheduler - Main orchestrator for the scheduling engine

Each request runs its own SchedulingSession: fetch one calendar snapshot,
generate and score candidates, then either hand the ranked list back for
selection or (in schedule()) auto-select the top slot, resolve its
conflicts and commit everything through the calendar store at once.
"""
import logging
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from config.settings import Config
from src.calendar.calendar_manager import CalendarStore, get_calendar_manager
from src.scheduler.candidate_generator import compute_search_window, generate_candidates
from src.scheduler.conflict_detector import detect_conflicts, has_blocking_conflict
from src.scheduler.errors import (
    CommitFailed,
    DataFetchTimeout,
    InvalidIntent,
    ResolutionFailed,
    SchedulingError,
)
from src.scheduler.models import (
    CalendarSnapshot,
    EventMove,
    ExistingEvent,
    Intent,
    RankingOptions,
    ScheduleResult,
    SuggestedSlot,
    WorkspaceScope,
    format_datetime,
)
from src.scheduler.resolution_planner import plan_resolution, validate_plan
from src.scheduler.slot_ranker import rank_slots
from utils.meeting_logger import MeetingLogger
from utils.validators import IntentValidator

logger = logging.getLogger(__name__)

# Ambiguities the engine answers itself by searching for a start time
SELF_RESOLVING_AMBIGUITIES = ("start_time",)


class SchedulingState(Enum):
    RECEIVED = "received"
    GENERATED = "generated"
    SCORED = "scored"
    AWAITING_SELECTION = "awaiting_selection"
    AUTO_SELECTED_TOP = "auto_selected_top"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    FAILED = "failed"
    COMMITTED = "committed"
    REJECTED = "rejected"


TRANSITIONS = {
    SchedulingState.RECEIVED: {SchedulingState.GENERATED, SchedulingState.RESOLVING,
                               SchedulingState.COMMITTED, SchedulingState.REJECTED},
    SchedulingState.GENERATED: {SchedulingState.SCORED, SchedulingState.REJECTED},
    SchedulingState.SCORED: {SchedulingState.AWAITING_SELECTION, SchedulingState.AUTO_SELECTED_TOP,
                             SchedulingState.REJECTED},
    SchedulingState.AWAITING_SELECTION: set(),
    SchedulingState.AUTO_SELECTED_TOP: {SchedulingState.RESOLVING, SchedulingState.COMMITTED,
                                        SchedulingState.REJECTED},
    SchedulingState.RESOLVING: {SchedulingState.RESOLVED, SchedulingState.FAILED},
    SchedulingState.RESOLVED: {SchedulingState.COMMITTED, SchedulingState.REJECTED},
    SchedulingState.FAILED: {SchedulingState.REJECTED},
    SchedulingState.COMMITTED: set(),
    SchedulingState.REJECTED: set(),
}


class SchedulingSession:
    """State of one scheduling request; never shared between requests"""

    def __init__(self, operation: str, request_id: str = None):
        self.operation = operation
        self.request_id = request_id or str(uuid.uuid4())
        self.state = SchedulingState.RECEIVED
        self.history: List[SchedulingState] = [SchedulingState.RECEIVED]

    def advance(self, state: SchedulingState, detail: str = ""):
        if state not in TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal transition {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)
        suffix = f" ({detail})" if detail else ""
        logger.info(f"🔁 [{self.request_id[:8]}] {self.operation}: {state.value}{suffix}")

    def reject(self, reason: str):
        if self.state in (SchedulingState.REJECTED, SchedulingState.COMMITTED,
                          SchedulingState.AWAITING_SELECTION):
            return
        if self.state == SchedulingState.RESOLVING:
            self.advance(SchedulingState.FAILED)
        self.advance(SchedulingState.REJECTED, reason)

    @property
    def is_terminal(self) -> bool:
        return not TRANSITIONS[self.state]


@dataclass
class SchedulingDecision:
    """Outcome of schedule(): terminal state, what was ranked and what was written"""
    request_id: str
    state: SchedulingState
    suggestions: List[SuggestedSlot] = field(default_factory=list)
    selected: Optional[SuggestedSlot] = None
    result: Optional[ScheduleResult] = None
    error: Optional[SchedulingError] = None
    history: List[SchedulingState] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.state == SchedulingState.COMMITTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "requestId": self.request_id,
            "state": self.state.value,
            "suggestions": [s.to_dict() for s in self.suggestions],
            "selectedSlot": self.selected.to_dict() if self.selected else None,
            "result": self.result.to_dict() if self.result else None,
            "error": self.error.to_dict() if self.error else None,
            "history": [s.value for s in self.history],
        }


def localize_naive(value: Optional[datetime], tz: ZoneInfo) -> Optional[datetime]:
    """Attach tz to naive datetimes; aware ones pass through"""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=tz)


def normalize_intent(intent: Intent, tz: ZoneInfo) -> Intent:
    constraints = replace(
        intent.constraints,
        must_be_after=localize_naive(intent.constraints.must_be_after, tz),
        must_be_before=localize_naive(intent.constraints.must_be_before, tz),
    )
    return replace(intent, start=localize_naive(intent.start, tz), end=localize_naive(intent.end, tz),
                   constraints=constraints)


def normalize_event(event: ExistingEvent, tz: ZoneInfo) -> ExistingEvent:
    if event.start.tzinfo is not None and event.end.tzinfo is not None:
        return event
    return event.with_interval(localize_naive(event.start, tz), localize_naive(event.end, tz))


def build_event_document(intent: Intent, slot: SuggestedSlot, scope: WorkspaceScope,
                         now: datetime) -> Dict[str, Any]:
    """Store document for the event being created"""
    return {
        "userId": scope.user_id,
        "workspaceId": scope.workspace_id,
        "title": intent.title,
        "description": intent.description,
        "startDate": format_datetime(slot.start),
        "endDate": format_datetime(slot.end),
        "priority": intent.priority,
        "isFlexible": intent.is_flexible,
        "isImmutable": intent.is_immutable,
        "location": intent.location,
        "recurrence": intent.recurrence.to_dict() if intent.recurrence else None,
        "attendees": list(intent.attendees),
        "createdBy": scope.user_id,
        "createdAt": format_datetime(now),
        "scoreAtSchedule": slot.score,
    }


class SmartScheduler:
    """
    Main scheduling coordinator that orchestrates the entire scheduling process
    """

    def __init__(self, calendar_store: CalendarStore = None, intent_source=None, config: Config = None,
                 clock: Callable[[], datetime] = None,
                 notifier: Callable[[str, Intent, Sequence[EventMove]], None] = None):
        self.config = config or Config()
        self.calendar_store = calendar_store or get_calendar_manager()
        self._intent_source = intent_source
        self.tz = ZoneInfo(self.config.TIMEZONE)
        self.clock = clock or (lambda: datetime.now(self.tz))
        self.notifier = notifier
        self.working_hours = self.config.working_hours()

        logger.info("SmartScheduler initialized")

    @property
    def intent_source(self):
        if self._intent_source is None:
            from src.ai_agent.llm_client import get_intent_source
            self._intent_source = get_intent_source(self.config.AI_PROVIDER)
        return self._intent_source

    def _now(self) -> datetime:
        return localize_naive(self.clock(), self.tz)

    def _prepare_intent(self, intent: Intent) -> Intent:
        errors = IntentValidator.validate_intent(intent, self.config)
        if errors:
            logger.warning(f"❌ Invalid intent: {errors}")
            raise InvalidIntent(errors)
        return normalize_intent(intent, self.tz)

    # ------------------------------------------------------------------
    # Calendar data
    # ------------------------------------------------------------------

    def _fetch_snapshot(self, intent: Intent, scope: WorkspaceScope,
                        start: datetime, end: datetime) -> CalendarSnapshot:
        """
        Read owner and attendee calendars in parallel, bounded by
        CALENDAR_FETCH_TIMEOUT. Any failure aborts the request.
        """
        attendees = [a for a in dict.fromkeys(intent.attendees) if a != scope.user_id]
        timeout = self.config.CALENDAR_FETCH_TIMEOUT
        deadline = time.monotonic() + timeout

        executor = ThreadPoolExecutor(max_workers=2)
        try:
            owner_future = executor.submit(self.calendar_store.get_user_events, scope.user_id,
                                           start, end, scope.workspace_id)
            attendee_future = executor.submit(self.calendar_store.get_attendee_events, attendees,
                                              start, end, scope.workspace_id) if attendees else None

            owner_events = owner_future.result(timeout=max(0.0, deadline - time.monotonic()))
            attendee_events = {}
            if attendee_future is not None:
                attendee_events = attendee_future.result(timeout=max(0.0, deadline - time.monotonic()))
        except FuturesTimeout:
            logger.error(f"⏱️  Calendar read exceeded {timeout}s for {scope.user_id}")
            raise DataFetchTimeout(f"Calendar data not available within {timeout} seconds",
                                   {"timeoutSeconds": timeout})
        except SchedulingError:
            raise
        except Exception as e:
            logger.error(f"❌ Calendar read failed for {scope.user_id}: {e}")
            raise DataFetchTimeout(f"Calendar data could not be read: {e}") from e
        finally:
            executor.shutdown(wait=False)

        return CalendarSnapshot(
            owner_events=tuple(normalize_event(e, self.tz) for e in owner_events),
            attendee_events={
                attendee: tuple(normalize_event(e, self.tz) for e in events)
                for attendee, events in attendee_events.items()
            },
        )

    def _fetch_range(self, start: datetime, end: datetime) -> Tuple[datetime, datetime]:
        # Room for buffer checks before the window and for moves after it
        return (start - timedelta(days=1),
                end + timedelta(days=self.config.RESOLUTION_SEARCH_DAYS + 1))

    # ------------------------------------------------------------------
    # Ranking
    # ------------------------------------------------------------------

    def _rank(self, session: SchedulingSession, intent: Intent, scope: WorkspaceScope,
              options: RankingOptions, now: datetime) -> List[SuggestedSlot]:
        window_start, window_end = compute_search_window(intent, now, options.search_window_days)
        snapshot = self._fetch_snapshot(intent, scope, *self._fetch_range(window_start, window_end))
        MeetingLogger.log_snapshot(scope.user_id, snapshot, self.working_hours)

        candidates = generate_candidates(intent, now, options, self.working_hours,
                                         self.config.DEFAULT_MEETING_DURATION)
        session.advance(SchedulingState.GENERATED, f"{len(candidates)} candidates")

        slots = rank_slots(intent, snapshot, now, options, self.working_hours,
                           self.config.DEFAULT_MEETING_DURATION, self.config.RESOLUTION_SEARCH_DAYS,
                           candidates=candidates)
        session.advance(SchedulingState.SCORED, f"{len(slots)} suggestions")
        MeetingLogger.log_suggestions(slots)
        return slots

    def rank(self, intent: Intent, scope: WorkspaceScope,
             options: RankingOptions = None) -> List[SuggestedSlot]:
        """Ranked suggestions for an intent; the caller selects one and calls commit()"""
        session = SchedulingSession("rank")
        options = options or self.config.default_ranking_options()
        logger.info(f"📅 Ranking slots for '{intent.title}' ({scope.user_id})")

        try:
            intent = self._prepare_intent(intent)
            slots = self._rank(session, intent, scope, options, self._now())
        except SchedulingError as e:
            session.reject(e.code)
            raise

        session.advance(SchedulingState.AWAITING_SELECTION)
        return slots

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------

    def _commit(self, session: SchedulingSession, slot: SuggestedSlot, intent: Intent,
                scope: WorkspaceScope, auto_resolve: bool, notify: bool, now: datetime) -> ScheduleResult:
        # Re-read: the ranked snapshot may be stale by the time a slot is chosen
        snapshot = self._fetch_snapshot(intent, scope, *self._fetch_range(slot.start, slot.end))
        events = snapshot.all_events()
        conflicts = detect_conflicts(slot.start, slot.end, events)

        if not auto_resolve and has_blocking_conflict(conflicts):
            blocking = [c.event_id for c in conflicts if c.is_hard and not c.movable]
            raise ResolutionFailed(
                "Slot lies inside events that cannot be moved",
                {"slotId": slot.id, "blockingEventIds": blocking},
            )

        moves: Tuple[EventMove, ...] = ()
        if auto_resolve and conflicts:
            session.advance(SchedulingState.RESOLVING, f"{len(conflicts)} conflicts")
            plan = plan_resolution(slot.start, slot.end, conflicts, events, now, self.working_hours,
                                   self.config.RESOLUTION_SEARCH_DAYS, self.config.SLOT_GRANULARITY_MINUTES)
            MeetingLogger.log_resolution_plan(plan)

            violations = validate_plan(plan, slot.start, slot.end, events) if plan.success else []
            if not plan.success or violations:
                failures = list(plan.failures) + violations
                raise ResolutionFailed(
                    f"Conflicts could not be resolved: {'; '.join(failures)}",
                    {"slotId": slot.id, "failures": failures},
                )
            session.advance(SchedulingState.RESOLVED, f"{len(plan.moves)} moves")
            moves = plan.moves

        document = build_event_document(intent, slot, scope, now)
        try:
            event_id = self.calendar_store.apply_changes(scope, document, moves)
        except SchedulingError:
            raise
        except Exception as e:
            logger.error(f"❌ Calendar write failed: {e}")
            raise CommitFailed(f"Failed to write calendar changes: {e}") from e

        session.advance(SchedulingState.COMMITTED, event_id)

        if notify and intent.attendees:
            self._notify(event_id, intent, moves)

        message = "Event scheduled successfully"
        if moves:
            message += f" and moved {len(moves)} event{'s' if len(moves) > 1 else ''}"
        if conflicts and not auto_resolve:
            message += f"; {len(conflicts)} conflict{'s' if len(conflicts) > 1 else ''} left unresolved"

        return ScheduleResult(success=True, event_id=event_id, moved_events=moves, message=message)

    def _notify(self, event_id: str, intent: Intent, moves: Sequence[EventMove]):
        if self.notifier is None:
            logger.info(f"📧 No notifier configured; {len(intent.attendees)} attendees not notified")
            return
        try:
            self.notifier(event_id, intent, moves)
        except Exception as e:
            # The event is already committed
            logger.warning(f"⚠️  Attendee notification failed for {event_id}: {e}")

    def commit(self, slot: SuggestedSlot, intent: Intent, scope: WorkspaceScope,
               auto_resolve: bool = False, notify: bool = False) -> ScheduleResult:
        """Write a selected slot (and, with auto_resolve, the moves clearing it) to the store"""
        session = SchedulingSession("commit")
        logger.info(f"📝 Committing '{intent.title}' at {slot.start.isoformat()} (auto_resolve={auto_resolve})")

        try:
            intent = self._prepare_intent(intent)
            slot = replace(slot, start=localize_naive(slot.start, self.tz), end=localize_naive(slot.end, self.tz))
            return self._commit(session, slot, intent, scope, auto_resolve, notify, self._now())
        except SchedulingError as e:
            session.reject(e.code)
            raise

    # ------------------------------------------------------------------
    # One-shot scheduling
    # ------------------------------------------------------------------

    def schedule(self, intent: Intent, scope: WorkspaceScope, options: RankingOptions = None,
                 auto_resolve: bool = False, notify: bool = False) -> SchedulingDecision:
        """
        Rank, take the top slot and commit it in one request.

        Scheduling failures are reported on the returned decision rather than
        raised; its state is COMMITTED or REJECTED.
        """
        session = SchedulingSession("schedule")
        options = replace(options or self.config.default_ranking_options(), auto_resolve=auto_resolve)
        decision = SchedulingDecision(request_id=session.request_id, state=session.state)
        start_time = time.monotonic()

        try:
            intent = self._prepare_intent(intent)
            now = self._now()
            decision.suggestions = self._rank(session, intent, scope, options, now)
            decision.selected = decision.suggestions[0]
            session.advance(SchedulingState.AUTO_SELECTED_TOP, f"score {decision.selected.score}")
            decision.result = self._commit(session, decision.selected, intent, scope,
                                           auto_resolve, notify, now)
        except SchedulingError as e:
            logger.warning(f"❌ Scheduling rejected: {e.message}")
            session.reject(e.code)
            decision.error = e

        decision.state = session.state
        decision.history = list(session.history)
        logger.info(f"Request {session.request_id} finished as {session.state.value} "
                    f"in {time.monotonic() - start_time:.2f} seconds")
        return decision

    def suggest_from_text(self, text: str, scope: WorkspaceScope,
                          options: RankingOptions = None) -> Dict[str, Any]:
        """Parse a natural-language request, then rank slots or ask a clarifying question"""
        intent = self.intent_source.parse_intent(text, {"userId": scope.user_id,
                                                        "timezone": self.config.TIMEZONE,
                                                        "currentTime": self._now().isoformat()})
        blocking = [a for a in intent.ambiguities if a not in SELF_RESOLVING_AMBIGUITIES]
        if blocking:
            question = self.intent_source.generate_clarification(text, blocking)
            return {
                "success": True,
                "parsedIntent": intent.to_dict(),
                "suggestions": [],
                "clarificationNeeded": True,
                "clarificationQuestion": question,
            }

        slots = self.rank(intent, scope, options)
        return {
            "success": True,
            "parsedIntent": intent.to_dict(),
            "suggestions": [s.to_dict() for s in slots],
            "clarificationNeeded": False,
        }
