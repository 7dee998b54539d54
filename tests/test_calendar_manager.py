"""
Tests for the calendar stores.
"""

from unittest.mock import MagicMock

import pytest

from src.calendar.calendar_manager import GoogleCalendarManager, get_calendar_manager
from src.calendar.mock_calendar_manager import InMemoryCalendarManager
from src.scheduler.errors import CommitFailed
from src.scheduler.models import EventMove, WorkspaceScope
from tests.conftest import OWNER, ConfigForTests, at


def _move(event_id, current, proposed, title="Event"):
    return EventMove(event_id=event_id, event_title=title,
                     current_start=current[0], current_end=current[1],
                     proposed_start=proposed[0], proposed_end=proposed[1],
                     reason="To accommodate new event")


NEW_EVENT = {
    "userId": OWNER,
    "title": "Design review",
    "startDate": at(10).isoformat(),
    "endDate": at(11).isoformat(),
    "priority": "medium",
    "attendees": ["a@example.com"],
}


# =============================================================================
# IN-MEMORY STORE
# =============================================================================

class TestInMemoryCalendarManager:
    def test_user_events_filtered_by_owner_and_range(self, make_event):
        store = InMemoryCalendarManager([
            make_event("mine", 10, 11),
            make_event("later", 10, 11, day=9),
            make_event("theirs", 10, 11, owner="other@example.com"),
        ])
        events = store.get_user_events(OWNER, at(0), at(0, day=7))
        assert [e.id for e in events] == ["mine"]

    def test_workspace_filter(self, make_event):
        store = InMemoryCalendarManager()
        store.add_event(make_event("a", 10, 11), workspace_id="ws-1")
        store.add_event(make_event("b", 12, 13), workspace_id="ws-2")
        assert [e.id for e in store.get_user_events(OWNER, at(0), at(23), "ws-1")] == ["a"]

    def test_attendee_events_include_invitations(self, make_event):
        store = InMemoryCalendarManager([
            make_event("own", 9, 10, owner="a@example.com"),
            make_event("invited", 14, 15, attendees=("a@example.com",)),
        ])
        calendars = store.get_attendee_events(["a@example.com", "b@example.com"], at(0), at(23))
        assert [e.id for e in calendars["a@example.com"]] == ["own", "invited"]
        assert calendars["b@example.com"] == []

    def test_apply_changes(self, make_event):
        store = InMemoryCalendarManager([make_event("e1", 10, 11, priority="low")])
        event_id = store.apply_changes(WorkspaceScope(OWNER), NEW_EVENT,
                                       [_move("e1", (at(10), at(11)), (at(9), at(10)))])

        assert store.get_document(event_id)["title"] == "Design review"
        assert store.get_event("e1").start == at(9)

    def test_apply_changes_is_all_or_nothing(self, make_event):
        """Should leave the store untouched when any move is stale."""
        store = InMemoryCalendarManager([
            make_event("e1", 10, 11, priority="low"),
            make_event("e2", 13, 14, priority="low"),
        ])
        moves = [
            _move("e1", (at(10), at(11)), (at(9), at(10))),
            _move("e2", (at(15), at(16)), (at(16), at(17))),
        ]

        with pytest.raises(CommitFailed):
            store.apply_changes(WorkspaceScope(OWNER), NEW_EVENT, moves)

        assert store.get_event("e1").start == at(10)
        assert len(store.all_events()) == 2

    def test_missing_event(self):
        store = InMemoryCalendarManager()
        with pytest.raises(CommitFailed):
            store.apply_changes(WorkspaceScope(OWNER), NEW_EVENT,
                                [_move("gone", (at(10), at(11)), (at(9), at(10)))])


# =============================================================================
# GOOGLE CALENDAR STORE
# =============================================================================

@pytest.fixture
def service():
    return MagicMock()


@pytest.fixture
def google(service):
    return GoogleCalendarManager(config=ConfigForTests(), service_factory=lambda user_id: service)


class TestGoogleCalendarManager:
    def test_converts_events(self, google, service):
        service.events.return_value.list.return_value.execute.return_value = {"items": [
            {
                "id": "g1",
                "summary": "Standup",
                "start": {"dateTime": "2026-03-02T10:00:00Z"},
                "end": {"dateTime": "2026-03-02T10:30:00Z"},
                "attendees": [{"email": "b@example.com"}, {"email": "a@example.com"}],
                "extendedProperties": {"private": {"priority": "low", "isFlexible": "true"}},
            },
            {"id": "allday", "start": {"date": "2026-03-02"}, "end": {"date": "2026-03-03"}},
        ]}

        events = google.get_user_events(OWNER, at(0), at(0, day=1), workspace_id="ws-1")

        assert len(events) == 1
        event = events[0]
        assert (event.id, event.title, event.priority) == ("g1", "Standup", "low")
        assert event.start == at(10)
        assert event.movable
        assert event.attendees == ("a@example.com", "b@example.com")
        kwargs = service.events.return_value.list.call_args.kwargs
        assert kwargs["privateExtendedProperty"] == "workspaceId=ws-1"

    def test_follows_result_pages(self, google, service):
        events_api = service.events.return_value
        events_api.list.return_value.execute.side_effect = [
            {"items": [{"id": "p1", "start": {"dateTime": "2026-03-02T10:00:00Z"},
                        "end": {"dateTime": "2026-03-02T11:00:00Z"}}], "nextPageToken": "page-2"},
            {"items": [{"id": "p2", "start": {"dateTime": "2026-03-02T13:00:00Z"},
                        "end": {"dateTime": "2026-03-02T14:00:00Z"}}]},
        ]

        events = google.get_user_events(OWNER, at(0), at(0, day=1))

        assert [e.id for e in events] == ["p1", "p2"]
        calls = events_api.list.call_args_list
        assert "pageToken" not in calls[0].kwargs
        assert calls[1].kwargs["pageToken"] == "page-2"

    def test_free_busy_blocks_are_immovable(self, google, service):
        service.freebusy.return_value.query.return_value.execute.return_value = {"calendars": {
            "a@example.com": {"busy": [{"start": "2026-03-02T14:00:00Z", "end": "2026-03-02T15:00:00Z"}]},
            "b@example.com": {"errors": [{"reason": "notFound"}]},
        }}

        calendars = google.get_attendee_events(["a@example.com", "b@example.com"], at(0), at(23))

        assert list(calendars) == ["a@example.com"]
        block = calendars["a@example.com"][0]
        assert block.is_immutable and block.title == "Busy"
        assert block.start == at(14)

    def test_apply_changes_patches_then_inserts(self, google, service):
        events_api = service.events.return_value
        events_api.get.return_value.execute.return_value = {"start": {"dateTime": "2026-03-02T10:00:00+00:00"}}
        events_api.insert.return_value.execute.return_value = {"id": "created"}

        event_id = google.apply_changes(WorkspaceScope(OWNER), NEW_EVENT,
                                        [_move("e1", (at(10), at(11)), (at(9), at(10)))])

        assert event_id == "created"
        patch_body = events_api.patch.call_args.kwargs["body"]
        assert patch_body["start"]["dateTime"] == at(9).isoformat()
        insert_body = events_api.insert.call_args.kwargs["body"]
        assert insert_body["summary"] == "Design review"
        assert insert_body["attendees"] == [{"email": "a@example.com"}]

    def test_failed_insert_rolls_back_moves(self, google, service):
        events_api = service.events.return_value
        events_api.get.return_value.execute.return_value = {"start": {"dateTime": "2026-03-02T10:00:00+00:00"}}
        events_api.insert.return_value.execute.side_effect = RuntimeError("quota exceeded")

        with pytest.raises(CommitFailed):
            google.apply_changes(WorkspaceScope(OWNER), NEW_EVENT,
                                 [_move("e1", (at(10), at(11)), (at(9), at(10)))])

        restored = events_api.patch.call_args_list[-1].kwargs["body"]
        assert restored["start"]["dateTime"] == at(10).isoformat()

    def test_stale_event_is_not_patched(self, google, service):
        events_api = service.events.return_value
        events_api.get.return_value.execute.return_value = {"start": {"dateTime": "2026-03-02T12:00:00+00:00"}}

        with pytest.raises(CommitFailed):
            google.apply_changes(WorkspaceScope(OWNER), NEW_EVENT,
                                 [_move("e1", (at(10), at(11)), (at(9), at(10)))])

        events_api.patch.assert_not_called()
        events_api.insert.assert_not_called()


def test_memory_backend_selected():
    assert isinstance(get_calendar_manager("memory"), InMemoryCalendarManager)
