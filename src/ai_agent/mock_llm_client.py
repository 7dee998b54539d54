"""
Mock LLM Client - deterministic rule-based intent parsing without external calls
"""
import logging
import re
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from config.settings import Config
from src.scheduler.models import (
    Intent,
    IntentConstraints,
    RecurrenceRule,
    parse_datetime,
    sunday_based_weekday,
)

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b')
TITLE_PATTERN = re.compile(
    r'^([^,]+?)(?:\s+(?:at|on|today|tomorrow|next|every|for|with|about|regarding|in)\b|\s*,|\s*$)',
    re.IGNORECASE)
TIME_PATTERN = r'(\d{1,2}(?::\d{2})?\s*(?:am|pm)?)'
LOCATION_PATTERN = re.compile(r'\b(?:in|at)\s+((?:[A-Z][\w-]*)(?:\s+[A-Z0-9][\w-]*)*)')
DESCRIPTION_PATTERN = re.compile(r'(?:about|regarding|re:)\s+(.+)', re.IGNORECASE)

WEEKDAYS = {
    "sunday": 0, "monday": 1, "tuesday": 2, "wednesday": 3,
    "thursday": 4, "friday": 5, "saturday": 6,
}

CLARIFICATION_QUESTIONS = {
    "title": "What would you like to call this event?",
    "start_time": "When would you like to schedule this event?",
    "duration": "How long should this event be?",
    "attendees": "Who should be invited to this event?",
}


def normalize_time(value: str) -> Optional[str]:
    """'3pm' -> '15:00', '10:30 am' -> '10:30', '14:00' -> '14:00'"""
    match = re.match(r'^(\d{1,2})(?::(\d{2}))?\s*(am|pm)?$', value.strip().lower())
    if not match:
        return None
    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    meridiem = match.group(3)
    if meridiem == "pm" and hour < 12:
        hour += 12
    elif meridiem == "am" and hour == 12:
        hour = 0
    if hour > 23 or minute > 59:
        return None
    return f"{hour:02d}:{minute:02d}"


def extract_duration(text: str) -> Optional[int]:
    lower = text.lower()
    hours = re.search(r'(\d+(?:\.\d+)?)\s*(?:hours?|hrs?|h)\b', lower)
    minutes = re.search(r'(\d+)\s*(?:minutes?|mins?|m)\b', lower)

    total = 0
    if hours:
        total += int(float(hours.group(1)) * 60)
    if minutes:
        total += int(minutes.group(1))
    if not total and re.search(r'\bhalf an hour\b', lower):
        total = 30
    if not total and re.search(r'\ban hour\b', lower):
        total = 60
    return total or None


def extract_weekdays(text: str) -> List[int]:
    lower = text.lower()
    return [number for name, number in WEEKDAYS.items() if re.search(rf'\b{name}s?\b', lower)]


def extract_recurrence(text: str) -> Optional[RecurrenceRule]:
    lower = text.lower()
    if re.search(r'\b(?:every day|daily)\b', lower):
        return RecurrenceRule(frequency="daily")
    if re.search(r'\b(?:every month|monthly)\b', lower):
        return RecurrenceRule(frequency="monthly")

    every_other = re.search(r'\bevery other week\b', lower)
    if every_other or re.search(r'\b(?:every week|weekly)\b', lower):
        return RecurrenceRule(frequency="weekly", interval=2 if every_other else 1,
                              days_of_week=tuple(extract_weekdays(text)))

    days = [WEEKDAYS[name] for name in re.findall(r'\bevery (' + '|'.join(WEEKDAYS) + r')\b', lower)]
    if days:
        return RecurrenceRule(frequency="weekly", days_of_week=tuple(days))
    return None


def extract_time_constraints(text: str) -> Dict[str, Any]:
    lower = text.lower()
    constraints: Dict[str, Any] = {}

    not_before = re.search(rf'\b(?:not before|(?<!not )after) {TIME_PATTERN}', lower)
    if not_before:
        constraints["not_before"] = normalize_time(not_before.group(1))
    not_after = re.search(rf'\b(?:not after|(?<!not )before) {TIME_PATTERN}', lower)
    if not_after:
        constraints["not_after"] = normalize_time(not_after.group(1))

    if "not_before" not in constraints and "not_after" not in constraints:
        if "morning" in lower:
            constraints["not_after"] = "12:00"
        elif "afternoon" in lower:
            constraints["not_before"] = "12:00"
        elif "evening" in lower:
            constraints["not_before"] = "17:00"

    days = extract_weekdays(text)
    if days and not re.search(r'\bevery\b', lower):
        constraints["preferred_days"] = tuple(days)

    avoid = re.findall(r'\bnot on (' + '|'.join(WEEKDAYS) + r')\b', lower)
    if avoid:
        avoid_days = tuple(WEEKDAYS[name] for name in avoid)
        constraints["avoid_days"] = avoid_days
        constraints["preferred_days"] = tuple(d for d in constraints.get("preferred_days", ()) if d not in avoid_days)

    return {k: v for k, v in constraints.items() if v}


def resolve_day(text: str, now: datetime) -> Optional[datetime]:
    """Midnight of the day named by 'today', 'tomorrow' or '(next|on) <weekday>'"""
    lower = text.lower()
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)

    if re.search(r'\btoday\b', lower):
        return midnight
    if re.search(r'\btomorrow\b', lower):
        return midnight + timedelta(days=1)

    match = re.search(r'\b(?:next|on|this) (' + '|'.join(WEEKDAYS) + r')\b', lower)
    if match:
        days_ahead = (WEEKDAYS[match.group(1)] - sunday_based_weekday(now)) % 7
        if days_ahead == 0 or match.group(0).startswith("next"):
            days_ahead = days_ahead or 7
        return midnight + timedelta(days=days_ahead)
    return None


def extract_start(text: str, now: datetime) -> Tuple[Optional[datetime], Optional[datetime]]:
    """
    Returns (start, day). start is set when a clock time was given;
    day is the resolved calendar day, if any.
    """
    day = resolve_day(text, now)
    match = re.search(rf'\bat {TIME_PATTERN}\b', text.lower())
    clock = normalize_time(match.group(1)) if match else None
    if not clock:
        return None, day

    hour, minute = (int(part) for part in clock.split(":"))
    base = day or now.replace(hour=0, minute=0, second=0, microsecond=0)
    start = base.replace(hour=hour, minute=minute)
    if day is None and start <= now:
        start += timedelta(days=1)
    return start, day


class MockLLMClient:
    """Mock LLM client for testing and offline use"""

    def __init__(self, model_name: str = None, config: Config = None):
        self.config = config or Config()
        self.model_name = model_name or "mock-llm"
        logger.info(f"Initialized Mock LLM client: {self.model_name}")

    def _reference_time(self, context: Optional[Dict[str, Any]]) -> datetime:
        context = context or {}
        tz = ZoneInfo(context.get("timezone") or self.config.TIMEZONE)
        current = parse_datetime(context.get("currentTime"))
        if current is None:
            return datetime.now(tz)
        return current if current.tzinfo else current.replace(tzinfo=tz)

    def parse_intent(self, prompt: str, context: Optional[Dict[str, Any]] = None) -> Intent:
        """Rule-based parse of a natural-language request"""
        logger.info(f"🤖 MOCK: Parsing intent")

        now = self._reference_time(context)
        lower = prompt.lower()
        ambiguities = []

        title_match = TITLE_PATTERN.match(prompt.strip())
        title = title_match.group(1).strip() if title_match else " ".join(prompt.split()[:5])
        if not title:
            title = "New Event"
            ambiguities.append("title")

        start, day = extract_start(prompt, now)
        duration = extract_duration(prompt)
        constraint_values = extract_time_constraints(prompt)

        if start is None:
            ambiguities.append("start_time")
            if day is not None:
                constraint_values.setdefault("must_be_after", max(day, now))
                constraint_values.setdefault("must_be_before", day + timedelta(days=1))

        if "urgent" in lower or "important" in lower:
            priority = "high"
        elif "low priority" in lower or "optional" in lower:
            priority = "low"
        else:
            priority = "medium"

        location = None
        for match in LOCATION_PATTERN.finditer(prompt):
            candidate = match.group(1).strip()
            if candidate.lower() not in WEEKDAYS:
                location = candidate
                break

        description_match = DESCRIPTION_PATTERN.search(prompt)

        intent = Intent(
            title=title,
            description=description_match.group(1).strip() if description_match else None,
            duration_minutes=duration,
            start=start,
            end=start + timedelta(minutes=duration) if start and duration else None,
            recurrence=extract_recurrence(prompt),
            attendees=tuple(dict.fromkeys(e.lower() for e in EMAIL_PATTERN.findall(prompt))),
            location=location,
            priority=priority,
            constraints=IntentConstraints(**constraint_values),
            is_flexible="flexible" in lower or "whenever" in lower,
            is_immutable="must be" in lower or "cannot move" in lower,
            confidence=0.8,
            ambiguities=tuple(ambiguities),
        )

        logger.info(f"✅ MOCK: Parsed '{intent.title}' (start={'yes' if start else 'no'}, "
                    f"duration={duration}, attendees={len(intent.attendees)})")
        return intent

    def generate_clarification(self, prompt: str, ambiguities: Sequence[str]) -> str:
        for ambiguity in ambiguities:
            if ambiguity in CLARIFICATION_QUESTIONS:
                return CLARIFICATION_QUESTIONS[ambiguity]
        return self.config.DEFAULT_CLARIFICATION
