"""
Error kinds surfaced by the scheduling engine

Every error carries a category telling the caller what to do next:
"input" (try different input), "retry" (try again later) or
"slot" (pick a different slot).
"""
from typing import Any, Dict, List, Optional

CATEGORY_INPUT = "input"
CATEGORY_RETRY = "retry"
CATEGORY_SLOT = "slot"


class SchedulingError(Exception):
    """Base class for all scheduling failures"""

    code = "scheduling_error"
    category = CATEGORY_RETRY
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "category": self.category,
            "details": self.details,
        }


class InvalidIntent(SchedulingError):
    code = "invalid_intent"
    category = CATEGORY_INPUT
    status_code = 400

    def __init__(self, errors: List[str]):
        super().__init__(f"Invalid intent: {'; '.join(errors)}", {"errors": list(errors)})
        self.errors = list(errors)


class NoCandidatesInWindow(SchedulingError):
    code = "no_candidates_in_window"
    category = CATEGORY_INPUT
    status_code = 422


class NoAcceptableSlot(SchedulingError):
    code = "no_acceptable_slot"
    category = CATEGORY_INPUT
    status_code = 422


class DataFetchTimeout(SchedulingError):
    code = "data_fetch_timeout"
    category = CATEGORY_RETRY
    status_code = 504


class ResolutionFailed(SchedulingError):
    code = "resolution_failed"
    category = CATEGORY_SLOT
    status_code = 409


class CommitFailed(SchedulingError):
    code = "commit_failed"
    category = CATEGORY_RETRY
    status_code = 503
