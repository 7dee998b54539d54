"""
Tests for the intent sources (rule-based mock and OpenAI client).
"""

import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from openai import OpenAIError

from src.ai_agent.llm_client import LLMClient, get_intent_source
from src.ai_agent.mock_llm_client import MockLLMClient, extract_duration, normalize_time
from tests.conftest import ConfigForTests, at

CONTEXT = {"timezone": "UTC", "currentTime": "2026-03-02T08:00:00+00:00"}


def _completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


# =============================================================================
# RULE-BASED PARSER
# =============================================================================

class TestRuleHelpers:
    @pytest.mark.parametrize("text,expected", [
        ("3pm", "15:00"), ("10:30 am", "10:30"), ("12am", "00:00"), ("12pm", "12:00"),
        ("14:00", "14:00"), ("25:00", None),
    ])
    def test_normalize_time(self, text, expected):
        assert normalize_time(text) == expected

    @pytest.mark.parametrize("text,expected", [
        ("for 30 minutes", 30), ("1 hour", 60), ("1.5 hours", 90), ("2h 15m", 135),
        ("half an hour", 30), ("no length given", None),
    ])
    def test_extract_duration(self, text, expected):
        assert extract_duration(text) == expected


class TestMockLLMClient:
    @pytest.fixture
    def client(self):
        return MockLLMClient(config=ConfigForTests())

    def test_full_request(self, client):
        intent = client.parse_intent(
            "Team sync tomorrow at 3pm for 30 minutes with alice@example.com", CONTEXT)

        assert intent.title == "Team sync"
        assert intent.start == at(15, day=1)
        assert intent.end == at(15, 30, day=1)
        assert intent.duration_minutes == 30
        assert intent.attendees == ("alice@example.com",)
        assert intent.ambiguities == ()
        assert intent.confidence == 0.8

    def test_day_without_time(self, client):
        """Should bound the search to the named day and flag the missing time."""
        intent = client.parse_intent("Urgent review next Monday morning", CONTEXT)

        assert intent.title == "Urgent review"
        assert intent.priority == "high"
        assert intent.ambiguities == ("start_time",)
        assert intent.constraints.not_after == "12:00"
        assert intent.constraints.preferred_days == (1,)
        assert intent.constraints.must_be_after == at(0, day=7)
        assert intent.constraints.must_be_before == at(0, day=8)

    def test_recurrence(self, client):
        intent = client.parse_intent("Weekly standup every monday", CONTEXT)
        assert intent.title == "Weekly standup"
        assert intent.recurrence.frequency == "weekly"
        assert intent.recurrence.days_of_week == (1,)

    def test_priority_and_flexibility(self, client):
        intent = client.parse_intent("Optional coffee chat, flexible", CONTEXT)
        assert intent.title == "Optional coffee chat"
        assert intent.priority == "low"
        assert intent.is_flexible

    def test_location_and_description(self, client):
        intent = client.parse_intent("Planning in Room B about the Q3 roadmap", CONTEXT)
        assert intent.title == "Planning"
        assert intent.location == "Room B"
        assert intent.description == "the Q3 roadmap"

    def test_time_window_constraints(self, client):
        intent = client.parse_intent("Check-in not before 10am and before 4pm", CONTEXT)
        assert intent.constraints.not_before == "10:00"
        assert intent.constraints.not_after == "16:00"

    def test_clarification(self, client):
        assert client.generate_clarification("", ["title", "start_time"]) == \
            "What would you like to call this event?"
        assert client.generate_clarification("", ["budget"]) == ConfigForTests.DEFAULT_CLARIFICATION


# =============================================================================
# OPENAI CLIENT
# =============================================================================

class TestLLMClient:
    @pytest.fixture
    def openai_client(self):
        return MagicMock()

    @pytest.fixture
    def client(self, openai_client):
        return LLMClient(config=ConfigForTests(), client=openai_client)

    def test_parses_json_response(self, client, openai_client):
        openai_client.chat.completions.create.return_value = _completion(json.dumps({
            "title": "Design review",
            "startDate": "2026-03-03T14:00:00Z",
            "duration": 45,
            "priority": "high",
            "attendees": ["a@example.com"],
        }))

        intent = client.parse_intent("Design review tomorrow at 2pm", CONTEXT)

        assert intent.title == "Design review"
        assert intent.start == at(14, day=1)
        assert intent.duration_minutes == 45
        assert intent.ambiguities == ()
        assert intent.confidence == 0.9

        kwargs = openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["temperature"] == 0.3
        assert kwargs["model"] == "gpt-4o-mini"
        assert "2026-03-02T08:00:00+00:00" in kwargs["messages"][0]["content"]

    def test_flags_missing_fields(self, client, openai_client):
        openai_client.chat.completions.create.return_value = _completion(json.dumps({"duration": 30}))
        intent = client.parse_intent("something for 30 minutes", CONTEXT)
        assert set(intent.ambiguities) == {"start_time", "title"}
        assert intent.confidence == 0.6

    def test_api_failure_falls_back_to_rules(self, client, openai_client):
        openai_client.chat.completions.create.side_effect = OpenAIError("service unavailable")
        intent = client.parse_intent("Team sync tomorrow at 3pm", CONTEXT)
        assert intent.title == "Team sync"
        assert intent.confidence == 0.8

    def test_malformed_json_falls_back_to_rules(self, client, openai_client):
        openai_client.chat.completions.create.return_value = _completion("not json")
        intent = client.parse_intent("Team sync", CONTEXT)
        assert intent.title == "Team sync"

    def test_clarification(self, client, openai_client):
        openai_client.chat.completions.create.return_value = _completion("When should we meet?")
        assert client.generate_clarification("Team sync", ["start_time"]) == "When should we meet?"
        assert openai_client.chat.completions.create.call_args.kwargs["temperature"] == 0.7

    def test_clarification_failure_uses_default(self, client, openai_client):
        openai_client.chat.completions.create.side_effect = OpenAIError("timeout")
        assert client.generate_clarification("Team sync", ["start_time"]) == \
            ConfigForTests.DEFAULT_CLARIFICATION


def test_mock_provider_selected():
    assert isinstance(get_intent_source("mock"), MockLLMClient)
