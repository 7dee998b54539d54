"""
Calendar store integration for the scheduling engine

The engine reads event snapshots through a CalendarStore and writes the final
decision through apply_changes(), which must apply the new event and every
move together or not at all.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from config.settings import Config
from src.scheduler.errors import CommitFailed
from src.scheduler.models import (
    EventMove,
    ExistingEvent,
    WorkspaceScope,
    format_datetime,
    parse_datetime,
)

logger = logging.getLogger(__name__)


class CalendarStore:
    """Interface of the calendar persistence collaborator"""

    def get_user_events(self, user_id: str, start: datetime, end: datetime,
                        workspace_id: Optional[str] = None) -> List[ExistingEvent]:
        raise NotImplementedError

    def get_attendee_events(self, attendees: Sequence[str], start: datetime, end: datetime,
                            workspace_id: Optional[str] = None) -> Dict[str, List[ExistingEvent]]:
        raise NotImplementedError

    def apply_changes(self, scope: WorkspaceScope, new_event: Dict[str, Any],
                      moves: Sequence[EventMove]) -> str:
        """Create new_event and apply every move atomically; returns the new event id"""
        raise NotImplementedError


def _truthy(value: Any) -> bool:
    return str(value).lower() in ("true", "1", "yes")


class GoogleCalendarManager(CalendarStore):
    """
    Calendar store backed by the Google Calendar v3 API.

    Engine attributes (priority, flexibility, immutability) live in the
    event's private extended properties. Attendee calendars are read with a
    free/busy query; busy blocks are reported as immovable events.
    """

    def __init__(self, config: Config = None,
                 service_factory: Optional[Callable[[str], Any]] = None):
        self.config = config or Config()
        self._service_factory = service_factory or self._build_calendar_service

    def _get_credentials(self, user_id: str) -> Credentials:
        token_path = self.config.get_token_path(user_id)
        return Credentials.from_authorized_user_file(token_path)

    def _build_calendar_service(self, user_id: str):
        credentials = self._get_credentials(user_id)
        return build("calendar", "v3", credentials=credentials)

    def _to_existing_event(self, item: Dict[str, Any], owner: str) -> Optional[ExistingEvent]:
        start = item.get("start", {}).get("dateTime")
        end = item.get("end", {}).get("dateTime")
        if not start or not end:
            # All-day events carry only a date
            return None

        private = item.get("extendedProperties", {}).get("private", {})
        attendees = [a["email"] for a in item.get("attendees", []) if "email" in a]
        return ExistingEvent(
            id=item.get("id", ""),
            owner=owner,
            start=parse_datetime(start),
            end=parse_datetime(end),
            title=item.get("summary", "Untitled Event"),
            priority=private.get("priority", "medium"),
            is_flexible=_truthy(private.get("isFlexible", "false")),
            is_immutable=_truthy(private.get("isImmutable", "false")),
            attendees=tuple(sorted(set(attendees))),
        )

    def get_user_events(self, user_id: str, start: datetime, end: datetime,
                        workspace_id: Optional[str] = None) -> List[ExistingEvent]:
        """Events on the user's primary calendar; errors propagate so the request fails closed"""
        logger.info(f"📅 Fetching calendar events for {user_id}: {start.isoformat()} to {end.isoformat()}")
        service = self._service_factory(user_id)

        request = dict(
            calendarId="primary",
            timeMin=start.isoformat(),
            timeMax=end.isoformat(),
            singleEvents=True,
            orderBy="startTime",
            maxResults=self.config.CALENDAR_MAX_RESULTS,
        )
        if workspace_id:
            request["privateExtendedProperty"] = f"workspaceId={workspace_id}"

        items = []
        while True:
            page = service.events().list(**request).execute()
            items.extend(page.get("items", []))
            if not page.get("nextPageToken"):
                break
            request["pageToken"] = page["nextPageToken"]
        events = [e for e in (self._to_existing_event(item, user_id) for item in items) if e]

        logger.info(f"✅ Retrieved {len(events)} events for {user_id}")
        return events

    def get_attendee_events(self, attendees: Sequence[str], start: datetime, end: datetime,
                            workspace_id: Optional[str] = None) -> Dict[str, List[ExistingEvent]]:
        """Best-effort busy blocks for attendees; unreadable calendars are left out"""
        if not attendees:
            return {}

        try:
            service = self._service_factory(attendees[0])
            response = service.freebusy().query(body={
                "timeMin": start.isoformat(),
                "timeMax": end.isoformat(),
                "items": [{"id": email} for email in attendees],
            }).execute()
        except (HttpError, ValueError, FileNotFoundError) as e:
            logger.warning(f"⚠️  Attendee free/busy lookup failed: {e}")
            return {}

        results = {}
        for email, calendar in response.get("calendars", {}).items():
            if calendar.get("errors"):
                logger.warning(f"⚠️  Free/busy unavailable for {email}: {calendar['errors']}")
                continue
            results[email] = [
                ExistingEvent(
                    id=f"busy:{email}:{block['start']}",
                    owner=email,
                    start=parse_datetime(block["start"]),
                    end=parse_datetime(block["end"]),
                    title="Busy",
                    is_immutable=True,
                )
                for block in calendar.get("busy", [])
            ]
        return results

    def _event_body(self, new_event: Dict[str, Any]) -> Dict[str, Any]:
        body = {
            "summary": new_event.get("title", "New Event"),
            "description": new_event.get("description") or "",
            "start": {"dateTime": new_event["startDate"], "timeZone": self.config.TIMEZONE},
            "end": {"dateTime": new_event["endDate"], "timeZone": self.config.TIMEZONE},
            "attendees": [{"email": email} for email in new_event.get("attendees", [])],
            "extendedProperties": {"private": {
                "priority": new_event.get("priority", "medium"),
                "isFlexible": str(bool(new_event.get("isFlexible"))).lower(),
                "isImmutable": str(bool(new_event.get("isImmutable"))).lower(),
            }},
        }
        if new_event.get("workspaceId"):
            body["extendedProperties"]["private"]["workspaceId"] = new_event["workspaceId"]
        if new_event.get("location"):
            body["location"] = new_event["location"]
        return body

    def _patch_times(self, service, event_id: str, start: datetime, end: datetime):
        service.events().patch(calendarId="primary", eventId=event_id, body={
            "start": {"dateTime": format_datetime(start)},
            "end": {"dateTime": format_datetime(end)},
        }).execute()

    def apply_changes(self, scope: WorkspaceScope, new_event: Dict[str, Any],
                      moves: Sequence[EventMove]) -> str:
        """
        Apply moves then create the event. Google Calendar has no multi-event
        transaction, so on any failure every completed step is compensated.
        """
        service = self._service_factory(scope.user_id)
        applied: List[EventMove] = []
        created_id = None

        try:
            for move in moves:
                current = service.events().get(calendarId="primary", eventId=move.event_id).execute()
                current_start = parse_datetime(current.get("start", {}).get("dateTime"))
                if current_start != move.current_start:
                    raise CommitFailed(f"'{move.event_title}' changed since the plan was made",
                                       {"eventId": move.event_id})
                self._patch_times(service, move.event_id, move.proposed_start, move.proposed_end)
                applied.append(move)

            created = service.events().insert(calendarId="primary", body=self._event_body(new_event)).execute()
            created_id = created["id"]
        except Exception as e:
            logger.error(f"❌ Commit failed, rolling back {len(applied)} moves: {e}")
            self._rollback(service, applied)
            if isinstance(e, CommitFailed):
                raise
            raise CommitFailed(f"Failed to write calendar changes: {e}") from e

        logger.info(f"✅ Created event {created_id} and moved {len(applied)} events")
        return created_id

    def _rollback(self, service, applied: Iterable[EventMove]):
        for move in reversed(list(applied)):
            try:
                self._patch_times(service, move.event_id, move.current_start, move.current_end)
            except HttpError as e:
                logger.error(f"❌ Could not restore '{move.event_title}' ({move.event_id}): {e}")


def get_calendar_manager(backend: str = None) -> CalendarStore:
    """Calendar store selected by CALENDAR_BACKEND"""
    backend = (backend or Config.CALENDAR_BACKEND).lower()
    if backend == "google":
        logger.info("✅ Using Google Calendar store")
        return GoogleCalendarManager()

    from src.calendar.mock_calendar_manager import InMemoryCalendarManager
    logger.info("✅ Using in-memory calendar store")
    return InMemoryCalendarManager()
