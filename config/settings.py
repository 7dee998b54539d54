"""
Configuration settings for the Smart Calendar scheduling engine
"""
import os
from typing import Dict


class Config:
    # Intent source configuration
    AI_PROVIDER = os.getenv("AI_PROVIDER", "mock")  # "openai" | "mock"
    OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
    OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL") or None
    DEFAULT_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    LLM_TIMEOUT = 15
    LLM_MAX_RETRIES = 2
    MAX_TOKENS = 500
    TEMPERATURE = 0.3
    CLARIFICATION_TEMPERATURE = 0.7

    # Calendar store configuration
    CALENDAR_BACKEND = os.getenv("CALENDAR_BACKEND", "memory")  # "memory" | "google"
    CALENDAR_TOKENS_PATH = os.getenv("CALENDAR_TOKENS_PATH", "./tokens")
    CALENDAR_FETCH_TIMEOUT = float(os.getenv("CALENDAR_FETCH_TIMEOUT", "5"))  # seconds
    CALENDAR_MAX_RESULTS = 250
    TIMEZONE = os.getenv("TIMEZONE", "UTC")

    # API Configuration
    API_HOST = "0.0.0.0"
    API_PORT = int(os.getenv("API_PORT", "5000"))

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE = os.getenv("LOG_FILE") or None

    # Working hours and days (0-6, Sunday = 0)
    WORKING_HOURS_START = os.getenv("WORKING_HOURS_START", "09:00")
    WORKING_HOURS_END = os.getenv("WORKING_HOURS_END", "17:00")
    WORKING_DAYS = [1, 2, 3, 4, 5]

    # Scheduling Configuration
    MIN_MEETING_DURATION = 5  # minutes
    MAX_MEETING_DURATION = 480  # 8 hours
    DEFAULT_MEETING_DURATION = 60  # minutes
    MIN_EVENT_BUFFER_MINUTES = int(os.getenv("MIN_EVENT_BUFFER_MINUTES", "15"))
    SLOT_GRANULARITY_MINUTES = 30
    MAX_CANDIDATES = 300
    SEARCH_WINDOW_DAYS = 7
    MAX_SEARCH_WINDOW_DAYS = 60
    MIN_SCORE_THRESHOLD = 50
    MAX_SUGGESTIONS = 10
    RESOLUTION_SEARCH_DAYS = 7

    # Intent parsing prompt for the OpenAI intent source
    INTENT_PARSING_PROMPT = """You are a calendar scheduling assistant. Parse the user's natural language request into structured event data.

Extract the following information:
- title: Event title/summary
- description: Additional details (if any)
- startDate: ISO 8601 date-time string
- duration: Duration in minutes
- attendees: Array of email addresses or names
- location: Physical or virtual location
- priority: 'low', 'medium', or 'high'
- recurrence: For recurring events (frequency, interval, daysOfWeek with Sunday = 0)
- constraints: notBefore / notAfter ("HH:MM"), preferredDays / avoidDays (0-6, Sunday = 0), mustBeAfter / mustBeBefore (ISO 8601)
- isFlexible: Boolean - can this event be moved if needed?

Current context:
- Today is {current_time}
- Timezone: {timezone}

Respond with valid JSON only."""

    CLARIFICATION_PROMPT = """You are a helpful calendar assistant. The user's request is missing some information. Ask a clear, friendly question to get the missing details.

Missing information: {ambiguities}

Be conversational and helpful. Ask for only the most critical missing piece."""

    DEFAULT_CLARIFICATION = "Could you provide more details about when you want to schedule this event?"

    @classmethod
    def get_model_config(cls, model_name: str = None) -> Dict[str, str]:
        """Get the chat model configuration for the intent source"""
        return {
            "model": model_name or cls.DEFAULT_MODEL,
            "base_url": cls.OPENAI_BASE_URL,
            "max_tokens": cls.MAX_TOKENS,
            "temperature": cls.TEMPERATURE,
        }

    @classmethod
    def get_token_path(cls, user_id: str) -> str:
        """Get the Google Calendar token file path for a user"""
        username = user_id.split("@")[0]
        token_path = os.path.join(cls.CALENDAR_TOKENS_PATH, f"{username}.token")

        if not os.path.exists(token_path):
            raise FileNotFoundError(f"Token file not found: {token_path}")

        return token_path

    @classmethod
    def working_hours(cls):
        """Build the working hours struct passed to the scoring library"""
        from src.scheduler.models import WorkingHours

        return WorkingHours(
            start=cls.WORKING_HOURS_START,
            end=cls.WORKING_HOURS_END,
            timezone=cls.TIMEZONE,
            working_days=tuple(cls.WORKING_DAYS),
        )

    @classmethod
    def default_ranking_options(cls, **overrides):
        """Build ranking options from configuration, with per-request overrides"""
        from src.scheduler.models import RankingOptions

        values = {
            "search_window_days": cls.SEARCH_WINDOW_DAYS,
            "min_score": cls.MIN_SCORE_THRESHOLD,
            "max_results": cls.MAX_SUGGESTIONS,
            "granularity_minutes": cls.SLOT_GRANULARITY_MINUTES,
            "max_candidates": cls.MAX_CANDIDATES,
            "min_buffer_minutes": cls.MIN_EVENT_BUFFER_MINUTES,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return RankingOptions(**values)
