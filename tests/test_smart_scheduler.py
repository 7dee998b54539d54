"""
Tests for the scheduling orchestrator.
"""

import time
from dataclasses import replace
from datetime import datetime
from unittest.mock import MagicMock

import pytest

from src.scheduler.errors import DataFetchTimeout, InvalidIntent, NoAcceptableSlot, ResolutionFailed
from src.scheduler.models import Intent, IntentConstraints, RankingOptions
from src.scheduler.smart_scheduler import (
    SchedulingSession,
    SchedulingState,
    SmartScheduler,
    build_event_document,
    normalize_intent,
)
from tests.conftest import OWNER, ConfigForTests, at

S = SchedulingState


def _window_intent(start, end, **kwargs):
    return Intent(title="Design review", duration_minutes=60,
                  constraints=IntentConstraints(must_be_after=start, must_be_before=end), **kwargs)


# =============================================================================
# SESSION STATE MACHINE
# =============================================================================

class TestSchedulingSession:
    def test_records_history(self):
        session = SchedulingSession("rank")
        session.advance(S.GENERATED)
        session.advance(S.SCORED)
        session.advance(S.AWAITING_SELECTION)
        assert session.history == [S.RECEIVED, S.GENERATED, S.SCORED, S.AWAITING_SELECTION]
        assert session.is_terminal

    def test_rejects_illegal_transition(self):
        session = SchedulingSession("rank")
        with pytest.raises(RuntimeError):
            session.advance(S.RESOLVED)

    def test_reject_from_resolving_passes_through_failed(self):
        session = SchedulingSession("commit")
        session.advance(S.RESOLVING)
        session.reject("resolution_failed")
        assert session.history[-2:] == [S.FAILED, S.REJECTED]


# =============================================================================
# RANK
# =============================================================================

class TestRank:
    def test_ranks_against_store(self, scheduler, store, scope, make_event):
        store.add_event(make_event("e1", 9, 17, is_immutable=True))
        slots = scheduler.rank(Intent(title="Sync", duration_minutes=60), scope)

        assert slots
        assert all(s.start.day != at(0).day for s in slots)

    def test_invalid_intent(self, scheduler, scope):
        with pytest.raises(InvalidIntent) as exc_info:
            scheduler.rank(Intent(title="Sync", duration_minutes=0), scope)
        assert exc_info.value.status_code == 400

    def test_naive_datetimes_use_configured_timezone(self, scheduler, scope):
        intent = Intent(title="Sync", duration_minutes=60,
                        constraints=IntentConstraints(must_be_after=datetime(2026, 3, 2, 13, 0)))
        slots = scheduler.rank(intent, scope)
        assert all(s.start >= at(13) for s in slots)
        assert all(s.start.tzinfo is not None for s in slots)

    def test_slow_store_times_out(self, store, now, scope):
        class SlowConfig(ConfigForTests):
            CALENDAR_FETCH_TIMEOUT = 0.05

        slow_store = MagicMock()
        slow_store.get_user_events.side_effect = lambda *args: time.sleep(0.5) or []
        scheduler = SmartScheduler(calendar_store=slow_store, intent_source=MagicMock(),
                                   config=SlowConfig(), clock=lambda: now)

        with pytest.raises(DataFetchTimeout) as exc_info:
            scheduler.rank(Intent(title="Sync", duration_minutes=60), scope)
        assert exc_info.value.category == "retry"

    def test_store_error_fails_closed(self, now, scope):
        broken_store = MagicMock()
        broken_store.get_user_events.side_effect = ConnectionError("database unavailable")
        scheduler = SmartScheduler(calendar_store=broken_store, intent_source=MagicMock(),
                                   config=ConfigForTests(), clock=lambda: now)

        with pytest.raises(DataFetchTimeout):
            scheduler.rank(Intent(title="Sync", duration_minutes=60), scope)


# =============================================================================
# COMMIT
# =============================================================================

class TestCommit:
    def test_commit_creates_event(self, scheduler, store, scope):
        intent = Intent(title="Sync", duration_minutes=60)
        slot = scheduler.rank(intent, scope)[0]
        result = scheduler.commit(slot, intent, scope)

        assert result.success
        document = store.get_document(result.event_id)
        assert document["title"] == "Sync"
        assert document["userId"] == OWNER
        assert document["startDate"] == slot.start.isoformat()

    def test_commit_reports_unresolved_conflicts(self, scheduler, store, scope, make_event):
        store.add_event(make_event("e1", 10, 11, priority="low"))
        intent = _window_intent(at(10), at(11))
        slot = scheduler.rank(intent, scope)[0]
        result = scheduler.commit(slot, intent, scope, auto_resolve=False)

        assert "1 conflict left unresolved" in result.message
        assert store.get_event("e1").start == at(10)

    def test_commit_with_auto_resolve_moves_events(self, scheduler, store, scope, make_event):
        store.add_event(make_event("e1", 10, 11, priority="low"))
        intent = _window_intent(at(10), at(11))
        slot = scheduler.rank(intent, scope)[0]
        result = scheduler.commit(slot, intent, scope, auto_resolve=True)

        assert [m.event_id for m in result.moved_events] == ["e1"]
        assert store.get_event("e1").start == at(9)
        assert "moved 1 event" in result.message

    def test_resolution_failure_writes_nothing(self, scheduler, store, scope, make_event):
        store.add_event(make_event("e1", 9, 12, is_immutable=True))
        intent = _window_intent(at(10), at(11))
        slot = scheduler.rank(Intent(title="Design review", duration_minutes=60), scope)[0]
        slot = replace(slot, start=at(10), end=at(11))

        with pytest.raises(ResolutionFailed) as exc_info:
            scheduler.commit(slot, intent, scope, auto_resolve=True)
        assert exc_info.value.status_code == 409
        assert len(store.all_events()) == 1

    def test_commit_refuses_slot_inside_immovable_event(self, scheduler, store, scope, make_event):
        store.add_event(make_event("offsite", 10, 17, is_immutable=True))
        intent = Intent(title="Design review", duration_minutes=60)
        slot = replace(scheduler.rank(intent, scope)[0], start=at(11), end=at(12))

        with pytest.raises(ResolutionFailed) as exc_info:
            scheduler.commit(slot, intent, scope, auto_resolve=False)

        assert exc_info.value.category == "slot"
        assert exc_info.value.details["blockingEventIds"] == ["offsite"]
        assert len(store.all_events()) == 1

    def test_notifier_failure_keeps_commit(self, store, now, scope):
        notifier = MagicMock(side_effect=RuntimeError("smtp down"))
        scheduler = SmartScheduler(calendar_store=store, intent_source=MagicMock(), config=ConfigForTests(),
                                   clock=lambda: now, notifier=notifier)
        intent = Intent(title="Sync", duration_minutes=60, attendees=("a@example.com",))
        slot = scheduler.rank(intent, scope)[0]
        result = scheduler.commit(slot, intent, scope, notify=True)

        assert result.success
        notifier.assert_called_once()
        assert store.get_document(result.event_id) is not None


# =============================================================================
# SCHEDULE (AUTO-SELECT)
# =============================================================================

class TestSchedule:
    def test_free_calendar_commits_top_slot(self, scheduler, scope):
        decision = scheduler.schedule(Intent(title="Sync", duration_minutes=60), scope)

        assert decision.success
        assert decision.selected == decision.suggestions[0]
        assert decision.history == [S.RECEIVED, S.GENERATED, S.SCORED, S.AUTO_SELECTED_TOP, S.COMMITTED]
        assert decision.to_dict()["state"] == "committed"

    def test_resolves_then_commits(self, scheduler, store, scope, make_event):
        store.add_event(make_event("e1", 10, 11, priority="low"))
        decision = scheduler.schedule(_window_intent(at(10), at(11)), scope, auto_resolve=True)

        assert decision.state == S.COMMITTED
        assert S.RESOLVING in decision.history and S.RESOLVED in decision.history
        assert store.get_event("e1").start == at(9)

    def test_blocked_without_auto_resolve(self, scheduler, store, scope, make_event):
        store.add_event(make_event("e1", 9, 12, is_immutable=True))
        decision = scheduler.schedule(_window_intent(at(10), at(11)), scope)

        assert decision.state == S.REJECTED
        assert isinstance(decision.error, NoAcceptableSlot)
        assert decision.result is None

    def test_unclearable_window_is_rejected(self, scheduler, store, scope, make_event):
        store.add_event(make_event("e1", 9, 12, is_immutable=True))
        decision = scheduler.schedule(_window_intent(at(10), at(11)), scope, auto_resolve=True)

        assert decision.history[-1] == S.REJECTED
        assert isinstance(decision.error, NoAcceptableSlot)
        assert len(store.all_events()) == 1

    def test_auto_resolve_skips_slots_inside_immovable_events(self, scheduler, store, scope, make_event):
        """Should commit the free slot rather than a higher-scoring one that cannot be cleared."""
        store.add_event(make_event("offsite", 10, 17, is_immutable=True))
        decision = scheduler.schedule(_window_intent(at(9), at(17)), scope,
                                      options=RankingOptions(granularity_minutes=60), auto_resolve=True)

        assert decision.state == S.COMMITTED
        assert decision.selected.start == at(9)
        assert len(store.all_events()) == 2


# =============================================================================
# TEXT REQUESTS AND HELPERS
# =============================================================================

class TestSuggestFromText:
    def test_missing_time_is_searched(self, scheduler, scope):
        response = scheduler.suggest_from_text("Budget review for 30 minutes", scope)
        assert response["clarificationNeeded"] is False
        assert response["suggestions"]
        assert response["parsedIntent"]["duration"] == 30

    def test_missing_title_asks_for_clarification(self, scheduler, scope):
        response = scheduler.suggest_from_text("", scope)
        assert response["clarificationNeeded"] is True
        assert response["clarificationQuestion"] == "What would you like to call this event?"
        assert response["suggestions"] == []


class TestHelpers:
    def test_normalize_intent_keeps_aware_values(self):
        from zoneinfo import ZoneInfo
        intent = Intent(start=at(10), constraints=IntentConstraints(must_be_before=datetime(2026, 3, 3)))
        normalized = normalize_intent(intent, ZoneInfo("UTC"))
        assert normalized.start == at(10)
        assert normalized.constraints.must_be_before == at(0, day=1)

    def test_event_document(self, scope, now, scheduler):
        intent = Intent(title="Sync", duration_minutes=60, priority="high", attendees=("a@example.com",))
        slot = scheduler.rank(intent, scope)[0]
        document = build_event_document(intent, slot, scope, now)
        assert document["priority"] == "high"
        assert document["attendees"] == ["a@example.com"]
        assert document["createdBy"] == OWNER
        assert document["scoreAtSchedule"] == slot.score
