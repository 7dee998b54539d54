"""
Value types shared by the scheduling engine

All request-scoped types are frozen dataclasses. Wire form (to_dict/from_dict)
uses camelCase keys and ISO-8601 datetimes. Weekdays use 0-6 with Sunday = 0.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime, time, timedelta
from typing import Any, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

PRIORITY_TIERS = ("low", "medium", "high")
RECURRENCE_FREQUENCIES = ("daily", "weekly", "monthly")
SEVERITY_HARD = "hard"
SEVERITY_SOFT = "soft"


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string (or pass through a datetime)"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def parse_time_of_day(value: str) -> time:
    """Parse "HH:MM" into a time"""
    hour, minute = value.strip().split(":")[:2]
    return time(int(hour), int(minute))


def sunday_based_weekday(value: datetime) -> int:
    """Weekday number with Sunday = 0"""
    return (value.weekday() + 1) % 7


def minutes_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 60


@dataclass(frozen=True)
class RecurrenceRule:
    frequency: str
    interval: int = 1
    days_of_week: Tuple[int, ...] = ()
    end_date: Optional[datetime] = None
    count: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecurrenceRule":
        return cls(
            frequency=data.get("frequency", "weekly"),
            interval=int(data.get("interval") or 1),
            days_of_week=tuple(data.get("daysOfWeek") or ()),
            end_date=parse_datetime(data.get("endDate")),
            count=data.get("count"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "frequency": self.frequency,
            "interval": self.interval,
            "daysOfWeek": list(self.days_of_week),
            "endDate": format_datetime(self.end_date),
            "count": self.count,
        }


@dataclass(frozen=True)
class IntentConstraints:
    """Hard bounds (not_before/not_after/must_be_*) and soft weekday preferences"""
    not_before: Optional[str] = None
    not_after: Optional[str] = None
    preferred_days: Tuple[int, ...] = ()
    avoid_days: Tuple[int, ...] = ()
    must_be_after: Optional[datetime] = None
    must_be_before: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "IntentConstraints":
        data = data or {}
        return cls(
            not_before=data.get("notBefore"),
            not_after=data.get("notAfter"),
            preferred_days=tuple(data.get("preferredDays") or ()),
            avoid_days=tuple(data.get("avoidDays") or ()),
            must_be_after=parse_datetime(data.get("mustBeAfter")),
            must_be_before=parse_datetime(data.get("mustBeBefore")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "notBefore": self.not_before,
            "notAfter": self.not_after,
            "preferredDays": list(self.preferred_days),
            "avoidDays": list(self.avoid_days),
            "mustBeAfter": format_datetime(self.must_be_after),
            "mustBeBefore": format_datetime(self.must_be_before),
        }


@dataclass(frozen=True)
class Intent:
    """Structured scheduling request produced by the intent source"""
    title: str = "New Event"
    description: Optional[str] = None
    duration_minutes: Optional[int] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    recurrence: Optional[RecurrenceRule] = None
    attendees: Tuple[str, ...] = ()
    location: Optional[str] = None
    priority: str = "medium"
    constraints: IntentConstraints = field(default_factory=IntentConstraints)
    is_flexible: bool = False
    is_immutable: bool = False
    confidence: float = 1.0
    ambiguities: Tuple[str, ...] = ()

    def resolved_duration(self, default_minutes: int) -> int:
        """Duration from the intent, else from explicit start/end, else the default"""
        if self.duration_minutes is not None:
            return int(self.duration_minutes)
        if self.start and self.end:
            return int(minutes_between(self.start, self.end))
        return default_minutes

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Intent":
        recurrence = data.get("recurrence")
        duration = data.get("duration")
        return cls(
            title=data.get("title") or "New Event",
            description=data.get("description"),
            duration_minutes=int(duration) if duration is not None else None,
            start=parse_datetime(data.get("startDate")),
            end=parse_datetime(data.get("endDate")),
            recurrence=RecurrenceRule.from_dict(recurrence) if recurrence else None,
            attendees=tuple(data.get("attendees") or ()),
            location=data.get("location"),
            priority=data.get("priority") or "medium",
            constraints=IntentConstraints.from_dict(data.get("constraints")),
            is_flexible=bool(data.get("isFlexible", False)),
            is_immutable=bool(data.get("isImmutable", False)),
            confidence=float(data.get("confidence", 1.0)),
            ambiguities=tuple(data.get("ambiguities") or ()),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "duration": self.duration_minutes,
            "startDate": format_datetime(self.start),
            "endDate": format_datetime(self.end),
            "recurrence": self.recurrence.to_dict() if self.recurrence else None,
            "attendees": list(self.attendees),
            "location": self.location,
            "priority": self.priority,
            "constraints": self.constraints.to_dict(),
            "isFlexible": self.is_flexible,
            "isImmutable": self.is_immutable,
            "confidence": self.confidence,
            "ambiguities": list(self.ambiguities),
        }


@dataclass(frozen=True)
class ExistingEvent:
    """Read-only snapshot of a stored calendar event"""
    id: str
    owner: str
    start: datetime
    end: datetime
    title: str = "Untitled Event"
    priority: str = "medium"
    is_flexible: bool = False
    is_immutable: bool = False
    attendees: Tuple[str, ...] = ()

    @property
    def movable(self) -> bool:
        return not self.is_immutable and (self.priority == "low" or self.is_flexible)

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def with_interval(self, start: datetime, end: datetime) -> "ExistingEvent":
        return replace(self, start=start, end=end)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExistingEvent":
        return cls(
            id=str(data.get("id") or data.get("_id")),
            owner=data.get("userId") or data.get("owner") or "",
            start=parse_datetime(data["startDate"]),
            end=parse_datetime(data["endDate"]),
            title=data.get("title") or "Untitled Event",
            priority=data.get("priority") or "medium",
            is_flexible=bool(data.get("isFlexible", False)),
            is_immutable=bool(data.get("isImmutable", False)),
            attendees=tuple(data.get("attendees") or ()),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.owner,
            "startDate": format_datetime(self.start),
            "endDate": format_datetime(self.end),
            "title": self.title,
            "priority": self.priority,
            "isFlexible": self.is_flexible,
            "isImmutable": self.is_immutable,
            "attendees": list(self.attendees),
        }


@dataclass(frozen=True)
class WorkspaceScope:
    user_id: str
    workspace_id: Optional[str] = None


@dataclass(frozen=True)
class CalendarSnapshot:
    """Events fetched once per request: the owner's plus best-effort attendee calendars"""
    owner_events: Tuple[ExistingEvent, ...] = ()
    attendee_events: Dict[str, Tuple[ExistingEvent, ...]] = field(default_factory=dict)

    def all_events(self) -> List[ExistingEvent]:
        seen = set()
        events = []
        for event in list(self.owner_events) + [e for evs in self.attendee_events.values() for e in evs]:
            if event.id in seen:
                continue
            seen.add(event.id)
            events.append(event)
        return events


@dataclass(frozen=True)
class WorkingHours:
    start: str = "09:00"
    end: str = "17:00"
    timezone: str = "UTC"
    working_days: Tuple[int, ...] = (1, 2, 3, 4, 5)

    @property
    def start_time(self) -> time:
        return parse_time_of_day(self.start)

    @property
    def end_time(self) -> time:
        return parse_time_of_day(self.end)

    def localize(self, value: datetime) -> datetime:
        """Wall-clock view of a datetime in the working-hours timezone"""
        if value.tzinfo is None:
            return value
        return value.astimezone(ZoneInfo(self.timezone))


@dataclass(frozen=True)
class RankingOptions:
    search_window_days: int = 7
    min_score: int = 50
    max_results: int = 10
    granularity_minutes: int = 30
    max_candidates: int = 300
    min_buffer_minutes: int = 15
    respect_working_hours: bool = True
    auto_resolve: bool = False
    strict_threshold: bool = False


@dataclass(frozen=True)
class CandidateSlot:
    start: datetime
    end: datetime

    @property
    def duration_minutes(self) -> int:
        return int(minutes_between(self.start, self.end))


@dataclass(frozen=True)
class ConflictInfo:
    event_id: str
    event_title: str
    event_start: datetime
    event_end: datetime
    severity: str
    movable: bool
    priority: str

    @property
    def is_hard(self) -> bool:
        return self.severity == SEVERITY_HARD

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConflictInfo":
        return cls(
            event_id=str(data["eventId"]),
            event_title=data.get("eventTitle", ""),
            event_start=parse_datetime(data["eventStart"]),
            event_end=parse_datetime(data["eventEnd"]),
            severity=data.get("severity", SEVERITY_SOFT),
            movable=bool(data.get("canMove", False)),
            priority=data.get("priority", "medium"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "eventId": self.event_id,
            "eventTitle": self.event_title,
            "eventStart": format_datetime(self.event_start),
            "eventEnd": format_datetime(self.event_end),
            "severity": self.severity,
            "canMove": self.movable,
            "priority": self.priority,
        }


@dataclass(frozen=True)
class ScoreBreakdown:
    availability: float
    preference: float
    attendee: float
    disruption: float
    buffer: float
    composite: int

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScoreBreakdown":
        return cls(
            availability=float(data.get("availability", 0)),
            preference=float(data.get("preferenceMatch", 0)),
            attendee=float(data.get("attendeeAvailability", 0)),
            disruption=float(data.get("minimalDisruption", 0)),
            buffer=float(data.get("buffer", 0)),
            composite=int(data.get("composite", 0)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "availability": round(self.availability, 2),
            "preferenceMatch": round(self.preference, 2),
            "attendeeAvailability": round(self.attendee, 2),
            "minimalDisruption": round(self.disruption, 2),
            "buffer": round(self.buffer, 2),
            "composite": self.composite,
        }


@dataclass(frozen=True)
class EventMove:
    event_id: str
    event_title: str
    current_start: datetime
    current_end: datetime
    proposed_start: datetime
    proposed_end: datetime
    reason: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EventMove":
        return cls(
            event_id=str(data["eventId"]),
            event_title=data.get("eventTitle", ""),
            current_start=parse_datetime(data["currentStart"]),
            current_end=parse_datetime(data["currentEnd"]),
            proposed_start=parse_datetime(data["proposedStart"]),
            proposed_end=parse_datetime(data["proposedEnd"]),
            reason=data.get("reason", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "eventId": self.event_id,
            "eventTitle": self.event_title,
            "currentStart": format_datetime(self.current_start),
            "currentEnd": format_datetime(self.current_end),
            "proposedStart": format_datetime(self.proposed_start),
            "proposedEnd": format_datetime(self.proposed_end),
            "reason": self.reason,
        }


@dataclass(frozen=True)
class SuggestedSlot:
    id: str
    start: datetime
    end: datetime
    score: int
    tier: str
    breakdown: ScoreBreakdown
    conflicts: Tuple[ConflictInfo, ...] = ()
    warnings: Tuple[str, ...] = ()
    reason: str = ""
    required_moves: Tuple[EventMove, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SuggestedSlot":
        return cls(
            id=str(data.get("id", "")),
            start=parse_datetime(data["startTime"]),
            end=parse_datetime(data["endTime"]),
            score=int(data.get("score", 0)),
            tier=data.get("tier", "poor"),
            breakdown=ScoreBreakdown.from_dict(data.get("scoreBreakdown") or {}),
            conflicts=tuple(ConflictInfo.from_dict(c) for c in data.get("conflicts") or ()),
            warnings=tuple(data.get("warnings") or ()),
            reason=data.get("reason", ""),
            required_moves=tuple(EventMove.from_dict(m) for m in data.get("requiredMoves") or ()),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "startTime": format_datetime(self.start),
            "endTime": format_datetime(self.end),
            "score": self.score,
            "tier": self.tier,
            "scoreBreakdown": self.breakdown.to_dict(),
            "conflicts": [c.to_dict() for c in self.conflicts],
            "warnings": list(self.warnings),
            "reason": self.reason,
            "requiredMoves": [m.to_dict() for m in self.required_moves],
        }


@dataclass(frozen=True)
class ResolutionPlan:
    success: bool
    moves: Tuple[EventMove, ...] = ()
    failures: Tuple[str, ...] = ()
    notes: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "moves": [m.to_dict() for m in self.moves],
            "failures": list(self.failures),
            "notes": list(self.notes),
        }


@dataclass(frozen=True)
class ScheduleResult:
    success: bool
    event_id: Optional[str] = None
    moved_events: Tuple[EventMove, ...] = ()
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "eventId": self.event_id,
            "movedEvents": [m.to_dict() for m in self.moved_events],
            "message": self.message,
        }
