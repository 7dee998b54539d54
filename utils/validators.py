"""
Validation utilities for scheduling intents and API payloads
"""
import re
from datetime import datetime
from typing import Any, Dict, List

from config.settings import Config
from src.scheduler.models import (
    PRIORITY_TIERS,
    RECURRENCE_FREQUENCIES,
    Intent,
    parse_datetime,
    parse_time_of_day,
)

TIME_OF_DAY_PATTERN = re.compile(r'^([01]?\d|2[0-3]):[0-5]\d$')


class IntentValidator:
    """Validator for intents handed to the engine"""

    @staticmethod
    def validate_time_of_day(value: str) -> bool:
        return isinstance(value, str) and bool(TIME_OF_DAY_PATTERN.match(value.strip()))

    @staticmethod
    def validate_datetime(value: Any) -> bool:
        try:
            return parse_datetime(value) is not None
        except (TypeError, ValueError):
            return False

    @staticmethod
    def validate_days(days: Any) -> bool:
        return isinstance(days, (list, tuple)) and all(isinstance(d, int) and 0 <= d <= 6 for d in days)

    @staticmethod
    def validate_payload(payload: Any) -> List[str]:
        """Structural checks on a wire-form intent before it is converted"""
        if not isinstance(payload, dict):
            return ["parsedIntent must be an object"]

        errors = []

        duration = payload.get("duration")
        if duration is not None and (isinstance(duration, bool) or not isinstance(duration, (int, float))):
            errors.append(f"duration must be a number of minutes, got {duration!r}")

        for field in ("startDate", "endDate"):
            if payload.get(field) is not None and not IntentValidator.validate_datetime(payload[field]):
                errors.append(f"Invalid {field}: {payload[field]!r}")

        attendees = payload.get("attendees")
        if attendees is not None and not (
                isinstance(attendees, list) and all(isinstance(a, str) for a in attendees)):
            errors.append("attendees must be a list of identifiers")

        confidence = payload.get("confidence")
        if confidence is not None and (isinstance(confidence, bool) or not isinstance(confidence, (int, float))):
            errors.append(f"confidence must be a number, got {confidence!r}")

        constraints = payload.get("constraints") or {}
        if not isinstance(constraints, dict):
            errors.append("constraints must be an object")
            constraints = {}

        for field in ("notBefore", "notAfter"):
            value = constraints.get(field)
            if value is not None and not IntentValidator.validate_time_of_day(value):
                errors.append(f"Invalid constraints.{field}: {value!r}. Expected HH:MM")

        for field in ("preferredDays", "avoidDays"):
            value = constraints.get(field)
            if value is not None and not IntentValidator.validate_days(value):
                errors.append(f"constraints.{field} must contain weekday numbers 0-6")

        for field in ("mustBeAfter", "mustBeBefore"):
            value = constraints.get(field)
            if value is not None and not IntentValidator.validate_datetime(value):
                errors.append(f"Invalid constraints.{field}: {value!r}")

        recurrence = payload.get("recurrence")
        if recurrence is not None:
            if not isinstance(recurrence, dict):
                errors.append("recurrence must be an object")
            else:
                if recurrence.get("frequency") not in RECURRENCE_FREQUENCIES:
                    errors.append(f"Invalid recurrence.frequency: {recurrence.get('frequency')!r}")
                if recurrence.get("daysOfWeek") is not None and not IntentValidator.validate_days(recurrence["daysOfWeek"]):
                    errors.append("recurrence.daysOfWeek must contain weekday numbers 0-6")

        return errors

    @staticmethod
    def validate_intent(intent: Intent, config: Config = None) -> List[str]:
        """Semantic checks on a converted intent; an empty list means valid"""
        config = config or Config()
        errors = []

        duration = intent.resolved_duration(config.DEFAULT_MEETING_DURATION)
        if duration < config.MIN_MEETING_DURATION:
            errors.append(f"Duration must be at least {config.MIN_MEETING_DURATION} minutes, got {duration}")
        elif duration > config.MAX_MEETING_DURATION:
            errors.append(f"Duration must be at most {config.MAX_MEETING_DURATION} minutes, got {duration}")

        if intent.start and intent.end and intent.end <= intent.start:
            errors.append("endDate must be after startDate")

        if intent.priority not in PRIORITY_TIERS:
            errors.append(f"Invalid priority: {intent.priority!r}. Expected one of {', '.join(PRIORITY_TIERS)}")

        if not 0 <= intent.confidence <= 1:
            errors.append(f"confidence must be between 0 and 1, got {intent.confidence}")

        constraints = intent.constraints
        for name in ("not_before", "not_after"):
            value = getattr(constraints, name)
            if value is not None and not IntentValidator.validate_time_of_day(value):
                errors.append(f"Invalid {name}: {value!r}. Expected HH:MM")

        if (constraints.not_before and constraints.not_after
                and IntentValidator.validate_time_of_day(constraints.not_before)
                and IntentValidator.validate_time_of_day(constraints.not_after)
                and parse_time_of_day(constraints.not_before) > parse_time_of_day(constraints.not_after)):
            errors.append("not_before must not be later than not_after")

        for name in ("preferred_days", "avoid_days"):
            if not IntentValidator.validate_days(getattr(constraints, name)):
                errors.append(f"{name} must contain weekday numbers 0-6")

        if (constraints.must_be_after and constraints.must_be_before
                and _comparable(constraints.must_be_after, constraints.must_be_before)
                and constraints.must_be_after >= constraints.must_be_before):
            errors.append("must_be_after must be earlier than must_be_before")

        return errors

    @staticmethod
    def validate_ranking_options(payload: Dict[str, Any], config: Config = None) -> List[str]:
        """Per-request ranking overrides (searchWindowDays, minScore, maxResults, autoResolve, strict)"""
        config = config or Config()
        errors = []

        def is_int(value):
            return isinstance(value, int) and not isinstance(value, bool)

        window = payload.get("searchWindowDays")
        if window is not None and not (is_int(window) and 1 <= window <= config.MAX_SEARCH_WINDOW_DAYS):
            errors.append(f"searchWindowDays must be a whole number from 1 to {config.MAX_SEARCH_WINDOW_DAYS}, "
                          f"got {window!r}")

        min_score = payload.get("minScore")
        if min_score is not None and not (
                isinstance(min_score, (int, float)) and not isinstance(min_score, bool) and 0 <= min_score <= 100):
            errors.append(f"minScore must be a number from 0 to 100, got {min_score!r}")

        max_results = payload.get("maxResults")
        if max_results is not None and not (is_int(max_results) and max_results >= 1):
            errors.append(f"maxResults must be a whole number of at least 1, got {max_results!r}")

        for field in ("autoResolve", "strict"):
            value = payload.get(field)
            if value is not None and not isinstance(value, bool):
                errors.append(f"{field} must be true or false, got {value!r}")

        return errors


def _comparable(a: datetime, b: datetime) -> bool:
    return (a.tzinfo is None) == (b.tzinfo is None)


class DataSanitizer:
    """Sanitize and clean input data"""

    @staticmethod
    def sanitize_identifier(value: str) -> str:
        return value.strip().lower()

    @staticmethod
    def sanitize_text(text: str) -> str:
        text = re.sub(r'\s+', ' ', text.strip())
        text = re.sub(r'[<>"\']', '', text)
        return text

    @staticmethod
    def sanitize_intent_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
        """Normalize free-text fields and attendee identifiers of a wire-form intent"""
        sanitized = dict(payload)

        if isinstance(sanitized.get("attendees"), list):
            sanitized["attendees"] = list(dict.fromkeys(
                DataSanitizer.sanitize_identifier(a) for a in sanitized["attendees"] if isinstance(a, str)
            ))

        for field in ("title", "description", "location"):
            if isinstance(sanitized.get(field), str):
                sanitized[field] = DataSanitizer.sanitize_text(sanitized[field])

        return sanitized
