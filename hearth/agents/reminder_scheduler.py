"""
HEARTH Reminder Scheduler - Event Reminder Derivation

Responsibilities:
- Derive a reminder from an event and its two people
- Register / cancel reminders with the notifier, keyed by event id
- NO persistence, NO knowledge of the remote store

This is NOT a coordinator - it only reads the people it is given.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional

from hearth.memory.household_models import Event, Person

logger = logging.getLogger(__name__)

DEFAULT_LEAD_MINUTES = 15


@dataclass(frozen=True)
class ReminderRequest:
    """A reminder handed to the notifier"""
    id: str
    title: str
    body: str
    fire_at: datetime


class Notifier(ABC):
    """OS-level reminder delivery: accepts schedule and cancel requests"""

    @abstractmethod
    def add(self, request: ReminderRequest):
        """Register a reminder, replacing any pending one with the same id"""
        pass

    @abstractmethod
    def remove_pending(self, ids: Iterable[str]):
        """Drop pending reminders; unknown ids are ignored"""
        pass


def log_delivery(request: ReminderRequest):
    """Default delivery: write the reminder to the log"""
    logger.info(f"REMINDER {request.title} - {request.body}")


class TimerNotifier(Notifier):
    """
    In-process notifier: one daemon timer per pending reminder.

    Calendar-trigger semantics: a fire time already in the past is
    accepted but never delivered.
    """

    def __init__(
        self,
        deliver: Callable[[ReminderRequest], None] = log_delivery,
        clock: Callable[[], datetime] = datetime.now
    ):
        """
        Args:
            deliver: Called with the request when a reminder fires
            clock: Current-time source, injected for testability
        """
        self._deliver = deliver
        self._clock = clock
        self._lock = threading.Lock()
        self._pending: Dict[str, ReminderRequest] = {}
        self._timers: Dict[str, threading.Timer] = {}
        logger.info("TimerNotifier initialized")

    def add(self, request: ReminderRequest):
        self.remove_pending([request.id])

        delay = (request.fire_at - self._clock()).total_seconds()
        if delay < 0:
            logger.info(f"Reminder {request.id} fire time {request.fire_at} already passed")
            return

        timer = threading.Timer(delay, self._fire, args=(request,))
        timer.daemon = True
        with self._lock:
            self._pending[request.id] = request
            self._timers[request.id] = timer
        timer.start()
        logger.debug(f"Reminder {request.id} armed for {request.fire_at}")

    def remove_pending(self, ids: Iterable[str]):
        for reminder_id in ids:
            with self._lock:
                timer = self._timers.pop(reminder_id, None)
                self._pending.pop(reminder_id, None)
            if timer:
                timer.cancel()
                logger.debug(f"Reminder {reminder_id} cancelled")

    def _fire(self, request: ReminderRequest):
        with self._lock:
            # Superseded timers must not deliver
            if self._pending.get(request.id) is not request:
                return
            self._pending.pop(request.id, None)
            self._timers.pop(request.id, None)
        try:
            self._deliver(request)
        except Exception as e:
            logger.error(f"Reminder delivery failed for {request.id}: {e}", exc_info=True)

    def pending(self) -> Dict[str, ReminderRequest]:
        """Snapshot of reminders that have not fired yet"""
        with self._lock:
            return dict(self._pending)

    def shutdown(self):
        """Cancel every pending timer"""
        with self._lock:
            ids = list(self._timers)
        self.remove_pending(ids)
        logger.info("TimerNotifier shutdown complete")


class ReminderScheduler:
    """
    Derives and registers event reminders.

    Design principles:
    - No reminder unless both the person and the responsible parent resolve
    - Keyed by event id so cancel/reschedule are unambiguous
    - Reschedule always cancels first
    """

    def __init__(
        self,
        notifier: Notifier,
        people: Callable[[], List[Person]],
        lead_minutes: int = DEFAULT_LEAD_MINUTES
    ):
        """
        Initialize reminder scheduler.

        Args:
            notifier: Reminder delivery backend
            people: Returns the current Person snapshot
            lead_minutes: How long before the event the reminder fires
        """
        if lead_minutes < 0:
            raise ValueError("lead_minutes cannot be negative")
        self.notifier = notifier
        self._people = people
        self.lead = timedelta(minutes=lead_minutes)
        logger.info(f"ReminderScheduler initialized (lead={lead_minutes} min)")

    def _find_person(self, person_id: str) -> Optional[Person]:
        for person in self._people():
            if person.id == person_id:
                return person
        return None

    def fire_time(self, event: Event) -> datetime:
        """Reminder instant: event date minus lead, truncated to the minute"""
        return (event.date - self.lead).replace(second=0, microsecond=0)

    def build_request(self, event: Event) -> Optional[ReminderRequest]:
        """
        Build the reminder for an event.

        Returns:
            ReminderRequest, or None if either person id is unresolved
        """
        person = self._find_person(event.person_id)
        responsible = self._find_person(event.responsible_person_id)
        if person is None or responsible is None:
            return None

        return ReminderRequest(
            id=event.id,
            title=f"Upcoming Event: {event.event_name}",
            body=f"{person.name}'s event - Responsible: {responsible.name}",
            fire_at=self.fire_time(event)
        )

    def schedule(self, event: Event) -> Optional[ReminderRequest]:
        """
        Register the reminder for an event.

        Args:
            event: Event to remind about

        Returns:
            The registered request, or None when skipped
        """
        request = self.build_request(event)
        if request is None:
            logger.info(f"No reminder for event {event.id}: person or parent unknown")
            return None

        self.notifier.add(request)
        logger.info(f"Scheduled reminder for {event.event_name} at {request.fire_at}")
        return request

    def cancel(self, event_id: str):
        """Remove any pending reminder for an event id (idempotent)"""
        self.notifier.remove_pending([event_id])
        logger.debug(f"Cancelled reminder for event {event_id}")

    def reschedule(self, event: Event) -> Optional[ReminderRequest]:
        """Cancel the previous reminder for this id, then schedule anew"""
        self.cancel(event.id)
        return self.schedule(event)
