"""
Utility modules for the Smart Calendar scheduling engine
"""

from .logger import SmartCalendarLogger
from .validators import IntentValidator, DataSanitizer
from .meeting_logger import MeetingLogger

__all__ = ['SmartCalendarLogger', 'IntentValidator', 'DataSanitizer', 'MeetingLogger']
