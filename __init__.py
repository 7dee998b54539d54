"""
Smart Calendar - slot suggestion and conflict-resolution engine

This package provides a scheduling engine that:
- Turns natural language requests into structured intents
- Ranks candidate time slots against existing calendars
- Plans moves of flexible events to clear a chosen slot
- Commits the new event and every move together
"""

__version__ = "1.0.0"
__author__ = "Smart Calendar Team"
