"""
HEARTH Agents - Reminder Services

Reminder derivation and the notifier contract it talks to.
"""

from .reminder_scheduler import (
    DEFAULT_LEAD_MINUTES,
    Notifier,
    ReminderRequest,
    ReminderScheduler,
    TimerNotifier,
    log_delivery,
)

__all__ = [
    'DEFAULT_LEAD_MINUTES',
    'Notifier',
    'ReminderRequest',
    'ReminderScheduler',
    'TimerNotifier',
    'log_delivery',
]
