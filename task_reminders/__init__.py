"""
Voice reminders for overdue tasks.

The package exposes `ReminderDispatcher` as the main orchestration class: it
selects overdue tasks by urgency and calls their owners through Twilio.
"""

from .reminder_service import ReminderDispatcher
from .scheduler import DailyTrigger, SingleFlightRunner

__all__ = ["DailyTrigger", "ReminderDispatcher", "SingleFlightRunner"]
