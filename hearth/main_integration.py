"""
HEARTH - Main Integration

Wires the engine together:
- IdentitySession (auth signals)
- RemoteStore (HTTP service or embedded store)
- LocalCache over a FileBlobStore
- TimerNotifier (optionally spoken through pyttsx3)
- SyncCoordinator + QueryLayer behind one facade

Presentation code talks to HearthEngine only.
"""

import logging
from datetime import date, datetime
from typing import Callable, Dict, Iterable, List, Optional

from hearth.agents.reminder_scheduler import TimerNotifier, log_delivery
from hearth.config import HearthConfig, load_config
from hearth.core.mode_manager import SyncMode
from hearth.core.query_layer import EventCard, QueryLayer
from hearth.core.session import IdentitySession
from hearth.core.sync_coordinator import SyncCoordinator
from hearth.memory.household_models import Color, Event, Person, create_event, create_person
from hearth.memory.local_cache import FileBlobStore, LocalCache
from hearth.memory.recurrence import next_weekly_occurrence
from hearth.remote.http_store import HttpRemoteStore
from hearth.remote.remote_store import InMemoryRemoteStore, RemoteStore

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: str = "INFO"):
    """
    Configure logging for the engine.

    Root handlers are only installed if none exist yet; the `hearth`
    logger level is always applied.
    """
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=numeric, format=LOG_FORMAT)
    logging.getLogger("hearth").setLevel(numeric)


class HearthEngine:
    """
    Household schedule engine facade.

    Writes are intents: they return immediately and the coordinator
    decides where they land. Reads always reflect the latest in-memory
    state.
    """

    def __init__(
        self,
        session: IdentitySession,
        coordinator: SyncCoordinator,
        notifier: Optional[TimerNotifier] = None,
        remote_store: Optional[RemoteStore] = None,
        on_shutdown: Optional[Callable[[], None]] = None
    ):
        self.session = session
        self.coordinator = coordinator
        self.notifier = notifier
        self.remote_store = remote_store
        self.queries = QueryLayer(coordinator.snapshot)
        self._on_shutdown = on_shutdown
        self._running = False

    def start(self) -> 'HearthEngine':
        if not self._running:
            self.coordinator.start()
            self._running = True
        return self

    # Identity --------------------------------------------------------

    def sign_in(self, owner_id: str):
        self.session.sign_in(owner_id)

    def sign_out(self):
        self.session.sign_out()

    @property
    def mode(self) -> SyncMode:
        return self.coordinator.mode

    @property
    def last_error(self) -> Optional[str]:
        return self.coordinator.last_error

    def register_hook(self, event: str, callback: Callable):
        self.coordinator.register_hook(event, callback)

    # Writes ----------------------------------------------------------

    def add_person(
        self,
        name: str,
        is_parent: bool = False,
        color: Optional[Color] = None
    ) -> Person:
        return self.coordinator.add_person(create_person(name, is_parent, color))

    def update_person(self, person: Person):
        self.coordinator.update_person(person)

    def remove_person(self, person_id: str):
        """Remove a person and every event they attend"""
        self.coordinator.remove_person(person_id)

    def add_event(
        self,
        person_id: str,
        event_name: str,
        when: datetime,
        responsible_person_id: str,
        is_recurring: bool = True,
        recurrence_end_date: Optional[datetime] = None
    ) -> Event:
        event = create_event(
            person_id, event_name, when, responsible_person_id,
            is_recurring=is_recurring,
            recurrence_end_date=recurrence_end_date
        )
        return self.coordinator.add_event(event)

    def update_event(self, event: Event):
        self.coordinator.update_event(event)

    def remove_event(self, event_id: str):
        self.coordinator.remove_event(event_id)

    def create_weekly_events(
        self,
        person_id: str,
        event_name: str,
        responsible_person_id: str,
        weekdays: Iterable[int],
        hour: int,
        minute: int,
        now: Optional[datetime] = None
    ) -> List[Event]:
        """
        Create one recurring event per selected weekday.

        Each event starts at the next occurrence of its weekday at
        hour:minute strictly after `now`.

        Args:
            weekdays: Weekday numbers (1=Sunday .. 7=Saturday)

        Returns:
            The created events, in weekday order
        """
        created = []
        for weekday in sorted(set(weekdays)):
            start = next_weekly_occurrence(weekday, hour, minute, after=now)
            created.append(self.add_event(
                person_id, event_name, start, responsible_person_id
            ))
        logger.info(f"Created {len(created)} weekly '{event_name}' events")
        return created

    # Reads -----------------------------------------------------------

    @property
    def people(self) -> List[Person]:
        return self.queries.people

    @property
    def events(self) -> List[Event]:
        return self.queries.events

    def get_person(self, person_id: str) -> Optional[Person]:
        return self.queries.get_person(person_id)

    def family_members(self) -> List[Person]:
        return self.queries.family_members()

    def parents(self) -> List[Person]:
        return self.queries.parents()

    def events_for_person(self, person_id: str) -> List[Event]:
        return self.queries.by_person(person_id)

    def events_for_parent(self, parent_id: str) -> List[Event]:
        return self.queries.by_parent(parent_id)

    def events_for_day(self, day: date) -> List[Event]:
        return self.queries.by_day_of_week(day)

    def events_for_month(self, day: date) -> Dict[date, List[Event]]:
        return self.queries.by_month(day)

    def event_card(self, event: Event) -> EventCard:
        return self.queries.event_card(event)

    def week_dates(self, day: date) -> List[date]:
        return self.queries.week_dates(day)

    # Lifecycle -------------------------------------------------------

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        return self.coordinator.wait_until_idle(timeout)

    def shutdown(self):
        """Stop coordination, pending reminders and remote resources"""
        logger.info("Shutting down HEARTH")
        self.coordinator.shutdown()
        if self.notifier is not None:
            self.notifier.shutdown()
        if isinstance(self.remote_store, HttpRemoteStore):
            self.remote_store.close()
        if self._on_shutdown is not None:
            self._on_shutdown()
        self._running = False
        logger.info("HEARTH shutdown complete")


def create_engine(
    config: Optional[HearthConfig] = None,
    remote_store: Optional[RemoteStore] = None,
    start: bool = True
) -> HearthEngine:
    """
    Build an engine from configuration.

    Args:
        config: Settings (default: load_config())
        remote_store: Explicit store (default: from config)
        start: Start the coordination thread

    Returns:
        Wired HearthEngine
    """
    config = config or load_config()
    setup_logging(config.log_level)

    if remote_store is None:
        if config.uses_http_remote:
            remote_store = HttpRemoteStore(
                config.remote_url,
                token=config.remote_token,
                timeout=config.remote_timeout,
                poll_interval=config.poll_interval
            )
        else:
            remote_store = InMemoryRemoteStore()

    voice = None
    deliver = log_delivery
    if config.speak_reminders:
        from hearth.voice.voice_output import SpokenReminderOutput
        voice = SpokenReminderOutput()
        deliver = voice

    notifier = TimerNotifier(deliver=deliver)
    session = IdentitySession()
    coordinator = SyncCoordinator(
        session,
        remote_store,
        LocalCache(FileBlobStore(config.cache_dir)),
        notifier,
        lead_minutes=config.reminder_lead_minutes
    )

    engine = HearthEngine(
        session,
        coordinator,
        notifier=notifier,
        remote_store=remote_store,
        on_shutdown=voice.shutdown if voice else None
    )
    if start:
        engine.start()
    return engine

