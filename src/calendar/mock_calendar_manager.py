"""
In-memory calendar store for development and testing
"""
import logging
import threading
import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from src.calendar.calendar_manager import CalendarStore
from src.scheduler.errors import CommitFailed
from src.scheduler.models import (
    EventMove,
    ExistingEvent,
    WorkspaceScope,
    format_datetime,
    parse_datetime,
)

logger = logging.getLogger(__name__)


class InMemoryCalendarManager(CalendarStore):
    """Event documents kept in a dict; commits swap in a fully updated copy under a lock"""

    def __init__(self, events: Iterable[ExistingEvent] = ()):
        self._lock = threading.Lock()
        self._documents: Dict[str, Dict[str, Any]] = {}
        for event in events:
            self.add_event(event)

    def add_event(self, event: ExistingEvent, workspace_id: Optional[str] = None) -> None:
        document = event.to_dict()
        document["workspaceId"] = workspace_id
        with self._lock:
            self._documents[event.id] = document

    def get_event(self, event_id: str) -> Optional[ExistingEvent]:
        document = self._documents.get(event_id)
        return ExistingEvent.from_dict(document) if document else None

    def get_document(self, event_id: str) -> Optional[Dict[str, Any]]:
        document = self._documents.get(event_id)
        return dict(document) if document else None

    def all_events(self) -> List[ExistingEvent]:
        return [ExistingEvent.from_dict(d) for d in self._documents.values()]

    def _query(self, matches, start: datetime, end: datetime,
               workspace_id: Optional[str]) -> List[ExistingEvent]:
        events = []
        for document in list(self._documents.values()):
            if workspace_id and document.get("workspaceId") != workspace_id:
                continue
            event = ExistingEvent.from_dict(document)
            if matches(event) and event.start < end and event.end > start:
                events.append(event)
        return sorted(events, key=lambda e: (e.start, e.id))

    def get_user_events(self, user_id: str, start: datetime, end: datetime,
                        workspace_id: Optional[str] = None) -> List[ExistingEvent]:
        events = self._query(lambda e: e.owner == user_id, start, end, workspace_id)
        logger.info(f"📋 MEMORY: {len(events)} events for {user_id}")
        return events

    def get_attendee_events(self, attendees: Sequence[str], start: datetime, end: datetime,
                            workspace_id: Optional[str] = None) -> Dict[str, List[ExistingEvent]]:
        return {
            attendee: self._query(lambda e, a=attendee: e.owner == a or a in e.attendees,
                                  start, end, workspace_id)
            for attendee in attendees
        }

    def apply_changes(self, scope: WorkspaceScope, new_event: Dict[str, Any],
                      moves: Sequence[EventMove]) -> str:
        with self._lock:
            updated = {event_id: dict(doc) for event_id, doc in self._documents.items()}

            for move in moves:
                document = updated.get(move.event_id)
                if document is None:
                    raise CommitFailed(f"Event {move.event_id} no longer exists", {"eventId": move.event_id})
                if (parse_datetime(document["startDate"]) != move.current_start
                        or parse_datetime(document["endDate"]) != move.current_end):
                    raise CommitFailed(f"'{move.event_title}' changed since the plan was made",
                                       {"eventId": move.event_id})
                document["startDate"] = format_datetime(move.proposed_start)
                document["endDate"] = format_datetime(move.proposed_end)
                document["updatedAt"] = datetime.now().isoformat()

            event_id = str(uuid.uuid4())
            updated[event_id] = dict(new_event, id=event_id)
            self._documents = updated

        logger.info(f"✅ MEMORY: created {event_id}, moved {len(moves)} events")
        return event_id
