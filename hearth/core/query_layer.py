"""
HEARTH Query Layer - Read-Only Views

Derived views over the coordinator's people/events snapshot.

Day and month views match on the weekly pattern (day_of_week) only:
recurrence end dates are not consulted and one-off events match every
week on their weekday.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date
from typing import Callable, Dict, List, Optional, Tuple

from hearth.memory.household_models import Event, Person
from hearth.memory.recurrence import month_days, week_of, weekday_of

logger = logging.getLogger(__name__)

Snapshot = Tuple[List[Person], List[Event]]


@dataclass
class EventCard:
    """
    An event with its people resolved for display.

    renderable is False when either reference dangles; the presentation
    layer should show such events as unrenderable instead of failing.
    """
    event: Event
    person: Optional[Person]
    responsible: Optional[Person]

    @property
    def renderable(self) -> bool:
        return self.person is not None and self.responsible is not None


class QueryLayer:
    """Read-only derivations; every call works on a fresh snapshot copy"""

    def __init__(self, snapshot: Callable[[], Snapshot]):
        """
        Args:
            snapshot: Returns (people, events) copies of the current state
        """
        self._snapshot = snapshot

    @property
    def people(self) -> List[Person]:
        return self._snapshot()[0]

    @property
    def events(self) -> List[Event]:
        return self._snapshot()[1]

    def get_person(self, person_id: str) -> Optional[Person]:
        for person in self.people:
            if person.id == person_id:
                return person
        return None

    def family_members(self) -> List[Person]:
        """People who are not parents"""
        return [p for p in self.people if not p.is_parent]

    def parents(self) -> List[Person]:
        return [p for p in self.people if p.is_parent]

    def by_person(self, person_id: str) -> List[Event]:
        """Events of a person, earliest first"""
        return sorted(
            (e for e in self.events if e.person_id == person_id),
            key=lambda e: e.date
        )

    def by_parent(self, parent_id: str) -> List[Event]:
        """Events a parent is responsible for, earliest first"""
        return sorted(
            (e for e in self.events if e.responsible_person_id == parent_id),
            key=lambda e: e.date
        )

    def by_day_of_week(self, day: date) -> List[Event]:
        """
        Events on the weekday of `day`, earliest first.

        Pattern match only: recurrence_end_date is ignored.
        """
        return self._for_weekday(self.events, weekday_of(day))

    def by_month(self, day: date) -> Dict[date, List[Event]]:
        """
        Weekday pattern for every day of the month containing `day`.

        Returns:
            Ordered mapping of each calendar day to its events
        """
        events = self.events
        view: Dict[date, List[Event]] = OrderedDict()
        for month_day in month_days(day):
            view[month_day] = self._for_weekday(events, weekday_of(month_day))
        return view

    @staticmethod
    def _for_weekday(events: List[Event], weekday: int) -> List[Event]:
        matches = sorted(
            (e for e in events if e.day_of_week == weekday),
            key=lambda e: e.date
        )
        logger.debug(f"Found {len(matches)} events for weekday {weekday}")
        return matches

    def event_card(self, event: Event) -> EventCard:
        """Resolve the event's person and responsible parent"""
        card = EventCard(
            event=event,
            person=self.get_person(event.person_id),
            responsible=self.get_person(event.responsible_person_id)
        )
        if not card.renderable:
            logger.debug(f"Event {event.id} has a dangling person reference")
        return card

    def week_dates(self, day: date) -> List[date]:
        """Sunday-first week containing `day`"""
        return week_of(day)
