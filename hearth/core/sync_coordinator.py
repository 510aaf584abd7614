"""
HEARTH Sync Coordinator - Authoritative In-Memory State

Responsibilities:
- Own the in-memory people/events working set
- Attach/detach remote subscriptions on auth transitions
- Fall back to the local cache when remote is unavailable
- Route writes to the remote store or straight to memory + cache
- Keep event reminders reconciled with targeted writes
- Emit hooks so the presentation layer can re-render

Concurrency:
- Auth signals, subscription pushes and write intents are queued onto
  ONE coordination thread; each item is processed fully before the next
- Remote writes run on a small thread pool; their outcomes are queued
  back onto the coordination thread
- Readers get deep copies taken under a lock
"""

import copy
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from queue import Queue
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from hearth.agents.reminder_scheduler import DEFAULT_LEAD_MINUTES, Notifier, ReminderScheduler
from hearth.memory.household_models import Event, Person
from hearth.memory.local_cache import EVENTS_COLLECTION, PEOPLE_COLLECTION, LocalCache
from hearth.remote.remote_store import COLLECTIONS, RemoteStore, RemoteStoreError, Subscription

from .mode_manager import ModeManager, SyncMode
from .session import IdentitySession

logger = logging.getLogger(__name__)


class SyncError(Exception):
    """Base exception for coordinator errors"""
    pass


class AuthRequiredError(SyncError):
    """Raised when a remote write is attempted with no signed-in identity"""
    pass


class SyncCoordinator:
    """
    Arbitrates between the remote store and the local cache.

    Modes (see ModeManager):
    - UNAUTHENTICATED: local cache only
    - SYNCING_FROM_REMOTE: live subscriptions; writes go remote
    - REMOTE_DEGRADED: a subscription failed; cached snapshot, local writes

    Writes never block on the network. In remote mode the in-memory
    state changes when the subscription echoes the write back; if the
    write fails, the mutation is applied locally instead.
    """

    HOOK_EVENTS = ('mode_changed', 'people_changed', 'events_changed', 'error')

    def __init__(
        self,
        session: IdentitySession,
        remote_store: RemoteStore,
        local_cache: LocalCache,
        notifier: Notifier,
        lead_minutes: int = DEFAULT_LEAD_MINUTES,
        max_write_workers: int = 2
    ):
        """
        Initialize coordinator (call start() to begin processing).

        Args:
            session: Identity session driving auth transitions
            remote_store: Authoritative store
            local_cache: Last-known-good snapshot storage
            notifier: Reminder delivery backend
            lead_minutes: Reminder lead time before each event
            max_write_workers: Parallel remote writes
        """
        self.session = session
        self.remote_store = remote_store
        self.local_cache = local_cache

        # In-memory working set
        self._state_lock = threading.RLock()
        self._people: List[Person] = []
        self._events: List[Event] = []

        self.reminders = ReminderScheduler(
            notifier, people=lambda: self._people, lead_minutes=lead_minutes
        )
        self._modes = ModeManager()
        self.last_error: Optional[str] = None

        # Subscription state (coordination thread only)
        self._owner_id: Optional[str] = None
        self._subscriptions: Dict[str, Subscription] = {}
        self._failed: Set[str] = set()
        self._generation = 0

        # Coordination context
        self._queue: Queue = Queue()
        self._worker = threading.Thread(
            target=self._run, daemon=True, name="HEARTH-Sync"
        )
        self._executor = ThreadPoolExecutor(
            max_workers=max_write_workers, thread_name_prefix="HEARTH-Write"
        )
        self._inflight: Set[object] = set()
        self._inflight_lock = threading.Lock()
        self._started = False
        self._stopping = False
        self._unsubscribe_auth: Optional[Callable[[], None]] = None

        self._hooks: Dict[str, List[Callable]] = {name: [] for name in self.HOOK_EVENTS}

        logger.info(f"SyncCoordinator initialized (max_write_workers={max_write_workers})")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self):
        """Start the coordination thread and listen for auth changes"""
        if self._started:
            return
        self._started = True
        self._worker.start()
        # subscribe() replays the current auth state immediately
        self._unsubscribe_auth = self.session.subscribe(self._on_auth_signal)
        logger.info("SyncCoordinator started")

    def shutdown(self, timeout: float = 5.0):
        """
        Stop listening, detach subscriptions and stop the worker.

        In-flight remote writes are allowed to finish first.
        """
        logger.info("Shutting down SyncCoordinator")
        if self._unsubscribe_auth:
            self._unsubscribe_auth()
            self._unsubscribe_auth = None

        self._executor.shutdown(wait=True)

        if self._started:
            self._post(self._detach)
            self._stopping = True
            self._queue.put(None)
            self._worker.join(timeout=timeout)
            if self._worker.is_alive():
                logger.warning("Coordination thread did not stop cleanly")
        else:
            self._stopping = True

        logger.info("SyncCoordinator shutdown complete")

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until queued work and in-flight remote writes are drained.

        Args:
            timeout: Maximum time to wait in seconds

        Returns:
            True if idle, False on timeout
        """
        start_time = time.time()

        while True:
            with self._inflight_lock:
                busy = bool(self._inflight)
            if not busy and self._queue.unfinished_tasks == 0:
                return True

            if timeout is not None and (time.time() - start_time) > timeout:
                return False

            time.sleep(0.01)

    def _post(self, handler: Callable, *args):
        """Queue work for the coordination thread"""
        if self._stopping:
            logger.debug(f"Dropping {handler.__name__}: coordinator stopping")
            return
        self._queue.put((handler, args))

    def _run(self):
        """Coordination thread: one item at a time, in arrival order"""
        while True:
            item = self._queue.get()
            try:
                if item is None:
                    break
                handler, args = item
                handler(*args)
            except AuthRequiredError as e:
                self._record_error(str(e))
            except Exception as e:
                logger.error(f"Coordination handler failed: {e}", exc_info=True)
            finally:
                self._queue.task_done()

        logger.info("Coordination thread stopped")

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def register_hook(self, event: str, callback: Callable):
        """
        Register a callback for a coordinator event.

        Raises:
            ValueError: If event name is invalid
        """
        if event not in self._hooks:
            raise ValueError(f"Invalid event: {event}")
        self._hooks[event].append(callback)
        logger.debug(f"Registered hook for event: {event}")

    def _emit_event(self, event: str, *args):
        for callback in self._hooks.get(event, []):
            try:
                callback(*args)
            except Exception as e:
                logger.error(f"Hook callback failed for {event}: {e}")

    def _record_error(self, message: str):
        self.last_error = message
        logger.warning(message)
        self._emit_event('error', message)

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    @property
    def mode(self) -> SyncMode:
        return self._modes.mode

    @property
    def owner_id(self) -> Optional[str]:
        return self._owner_id

    def snapshot(self) -> Tuple[List[Person], List[Event]]:
        """Deep copies of the current people and events"""
        with self._state_lock:
            return copy.deepcopy(self._people), copy.deepcopy(self._events)

    @property
    def people(self) -> List[Person]:
        return self.snapshot()[0]

    @property
    def events(self) -> List[Event]:
        return self.snapshot()[1]

    def get_person(self, person_id: str) -> Optional[Person]:
        with self._state_lock:
            for person in self._people:
                if person.id == person_id:
                    return copy.deepcopy(person)
        return None

    def get_stats(self) -> Dict[str, Any]:
        with self._state_lock:
            counts = {'people': len(self._people), 'events': len(self._events)}
        return {
            **self._modes.get_stats(),
            **counts,
            'owner_id': self._owner_id,
            'live_subscriptions': sorted(self._subscriptions),
            'last_error': self.last_error
        }

    # ------------------------------------------------------------------
    # Auth transitions and subscriptions
    # ------------------------------------------------------------------

    def _on_auth_signal(self, owner_id: Optional[str]):
        self._post(self._handle_auth_change, owner_id)

    def _set_mode(self, mode: SyncMode):
        previous = self._modes.transition(mode)
        if previous != mode:
            self._emit_event('mode_changed', previous, mode)

    def _handle_auth_change(self, owner_id: Optional[str]):
        if owner_id:
            self._attach(owner_id)
        else:
            logger.info("No user authenticated, using local storage")
            self._detach()
            self._owner_id = None
            self._set_mode(SyncMode.UNAUTHENTICATED)
            self._load_local()

    def _attach(self, owner_id: str):
        """Subscribe to both collections for owner_id"""
        self._detach()
        self._owner_id = owner_id
        self._failed.clear()
        self._set_mode(SyncMode.SYNCING_FROM_REMOTE)
        generation = self._generation

        logger.info(f"User authenticated: {owner_id}")
        for collection in COLLECTIONS:
            try:
                subscription = self.remote_store.subscribe(
                    collection,
                    owner_id,
                    on_snapshot=lambda records, c=collection, g=generation:
                        self._post(self._handle_snapshot, g, c, records),
                    on_error=lambda error, c=collection, g=generation:
                        self._post(self._handle_subscription_error, g, c, error),
                )
            except RemoteStoreError as e:
                self._handle_subscription_error(generation, collection, e)
                continue
            self._subscriptions[collection] = subscription

    def _detach(self):
        """Close live subscriptions; later callbacks from them are stale"""
        self._generation += 1
        for subscription in self._subscriptions.values():
            subscription.close()
        if self._subscriptions:
            logger.info(f"Detached subscriptions: {sorted(self._subscriptions)}")
        self._subscriptions.clear()

    def _is_stale(self, generation: int, collection: str) -> bool:
        if generation != self._generation:
            logger.debug(f"Ignoring stale {collection} callback (generation {generation})")
            return True
        return collection in self._failed

    def _handle_snapshot(self, generation: int, collection: str, records: List):
        if self._is_stale(generation, collection):
            return

        logger.info(f"Loaded {len(records)} {collection} from remote")
        self._replace_collection(collection, records)
        # Mirror as a local backup
        self._save_local()

    def _handle_subscription_error(self, generation: int, collection: str, error: Exception):
        if self._is_stale(generation, collection):
            return

        self._failed.add(collection)
        subscription = self._subscriptions.pop(collection, None)
        if subscription:
            subscription.close()

        self._record_error(f"Failed to load {collection}: {error}")
        if self.mode == SyncMode.SYNCING_FROM_REMOTE:
            self._set_mode(SyncMode.REMOTE_DEGRADED)
        self._load_local()

    # ------------------------------------------------------------------
    # Local cache
    # ------------------------------------------------------------------

    def _replace_collection(self, collection: str, records: List):
        with self._state_lock:
            if collection == PEOPLE_COLLECTION:
                self._people = list(records)
            else:
                self._events = list(records)
        self._emit_event(f"{collection}_changed")

    def _load_local(self):
        """Replace both collections with the cached snapshot, where one exists"""
        for collection in COLLECTIONS:
            records = self.local_cache.load(collection)
            if records is None:
                logger.info(f"No cached {collection}; keeping current data")
                continue
            self._replace_collection(collection, records)
        logger.info("Serving local snapshot")

    def _save_local(self):
        with self._state_lock:
            people = list(self._people)
            events = list(self._events)
        self.local_cache.save(PEOPLE_COLLECTION, people)
        self.local_cache.save(EVENTS_COLLECTION, events)

    # ------------------------------------------------------------------
    # Remote writes
    # ------------------------------------------------------------------

    def _require_owner(self) -> str:
        """
        Owner id stamped on remote writes.

        Raises:
            AuthRequiredError: If nobody is signed in
        """
        if not self.session.is_authenticated or not self._owner_id:
            raise AuthRequiredError("Not authenticated")
        return self._owner_id

    def _submit_remote(
        self,
        action: str,
        call: Callable[[], Any],
        on_success: Optional[Callable[[Any], None]] = None,
        compensate: Optional[Callable[[], None]] = None
    ):
        """
        Run a remote call off the coordination thread.

        Outcomes are queued back: on_success(result) or, on failure,
        the error is recorded and compensate() applies the change locally.
        """
        token = object()
        with self._inflight_lock:
            self._inflight.add(token)

        def job():
            try:
                result = call()
            except Exception as e:
                if not isinstance(e, RemoteStoreError):
                    logger.error(f"Unexpected remote failure ({action}): {e}", exc_info=True)
                self._post(self._remote_write_failed, action, e, compensate)
            else:
                logger.info(f"Remote {action} succeeded")
                if on_success:
                    self._post(on_success, result)
            finally:
                with self._inflight_lock:
                    self._inflight.discard(token)

        try:
            self._executor.submit(job)
        except RuntimeError as e:
            # Executor already shut down
            with self._inflight_lock:
                self._inflight.discard(token)
            self._remote_write_failed(action, e, compensate)

    def _remote_write_failed(self, action: str, error: Exception, compensate):
        self._record_error(f"Failed to {action}: {error}")
        if compensate:
            logger.info(f"Applying {action} locally instead")
            compensate()

    # ------------------------------------------------------------------
    # Local mutations (memory + cache + reminders)
    # ------------------------------------------------------------------

    @staticmethod
    def _index_of(records: List, record_id: str) -> Optional[int]:
        for i, record in enumerate(records):
            if record.id == record_id:
                return i
        return None

    def _apply_add_person(self, person: Person):
        with self._state_lock:
            index = self._index_of(self._people, person.id)
            if index is None:
                self._people.append(person)
            else:
                self._people[index] = person
        self._save_local()
        self._emit_event('people_changed')

    def _apply_update_person(self, person: Person):
        with self._state_lock:
            index = self._index_of(self._people, person.id)
            if index is None:
                logger.warning(f"Person {person.id} not found for update")
                return
            self._people[index] = person
        self._save_local()
        self._emit_event('people_changed')

    def _apply_remove_person(self, person_id: str):
        with self._state_lock:
            self._people = [p for p in self._people if p.id != person_id]
        self._save_local()
        self._emit_event('people_changed')

    def _apply_add_event(self, event: Event):
        with self._state_lock:
            index = self._index_of(self._events, event.id)
            if index is None:
                self._events.append(event)
            else:
                self._events[index] = event
        if index is None:
            self.reminders.schedule(event)
        else:
            self.reminders.reschedule(event)
        self._save_local()
        self._emit_event('events_changed')

    def _apply_update_event(self, event: Event):
        with self._state_lock:
            index = self._index_of(self._events, event.id)
            if index is None:
                logger.warning(f"Event {event.id} not found for update")
                return
            self._events[index] = event
        self.reminders.reschedule(event)
        self._save_local()
        self._emit_event('events_changed')

    def _apply_remove_event(self, event_id: str):
        with self._state_lock:
            self._events = [e for e in self._events if e.id != event_id]
        self.reminders.cancel(event_id)
        self._save_local()
        self._emit_event('events_changed')

    # ------------------------------------------------------------------
    # Write handlers (coordination thread)
    # ------------------------------------------------------------------

    def _add_person(self, person: Person):
        if self._modes.is_local_only():
            self._apply_add_person(person)
            return

        person.owner_id = self._require_owner()
        self._submit_remote(
            "add person",
            lambda: self.remote_store.insert(PEOPLE_COLLECTION, person),
            compensate=lambda: self._apply_add_person(person)
        )

    def _update_person(self, person: Person):
        if self._modes.is_local_only():
            self._apply_update_person(person)
            return

        person.owner_id = self._require_owner()
        self._submit_remote(
            "update person",
            lambda: self.remote_store.replace(PEOPLE_COLLECTION, person.id, person),
            compensate=lambda: self._apply_update_person(person)
        )

    def _remove_person(self, person_id: str):
        if self._modes.is_local_only():
            self._apply_remove_person(person_id)
        else:
            self._require_owner()
            self._submit_remote(
                "remove person",
                lambda: self.remote_store.delete(PEOPLE_COLLECTION, person_id),
                compensate=lambda: self._apply_remove_person(person_id)
            )

        with self._state_lock:
            cascaded = [e.id for e in self._events if e.person_id == person_id]
        if cascaded:
            logger.info(f"Removing {len(cascaded)} events of person {person_id}")
        for event_id in cascaded:
            self._remove_event(event_id)

    def _add_event(self, event: Event):
        if self._modes.is_local_only():
            self._apply_add_event(event)
            return

        event.owner_id = self._require_owner()
        self._submit_remote(
            "add event",
            lambda: self.remote_store.insert(EVENTS_COLLECTION, event),
            on_success=lambda new_id: self.reminders.schedule(replace(event, id=new_id)),
            compensate=lambda: self._apply_add_event(event)
        )

    def _update_event(self, event: Event):
        if self._modes.is_local_only():
            self._apply_update_event(event)
            return

        event.owner_id = self._require_owner()
        self._submit_remote(
            "update event",
            lambda: self.remote_store.replace(EVENTS_COLLECTION, event.id, event),
            on_success=lambda _: self.reminders.reschedule(event),
            compensate=lambda: self._apply_update_event(event)
        )

    def _remove_event(self, event_id: str):
        if self._modes.is_local_only():
            self._apply_remove_event(event_id)
            return

        self._require_owner()
        self._submit_remote(
            "remove event",
            lambda: self.remote_store.delete(EVENTS_COLLECTION, event_id),
            compensate=lambda: self._apply_remove_event(event_id)
        )
        self.reminders.cancel(event_id)

    # ------------------------------------------------------------------
    # Public write API (fire-and-forget)
    # ------------------------------------------------------------------

    def add_person(self, person: Person) -> Person:
        """Queue creation of a person; returns the queued copy"""
        self._post(self._add_person, copy.deepcopy(person))
        return copy.deepcopy(person)

    def update_person(self, person: Person):
        """Queue a full-record replacement of a person"""
        self._post(self._update_person, copy.deepcopy(person))

    def remove_person(self, person_id: str):
        """Queue deletion of a person and, in cascade, their events"""
        self._post(self._remove_person, person_id)

    def add_event(self, event: Event) -> Event:
        """Queue creation of an event; returns the queued copy"""
        self._post(self._add_event, copy.deepcopy(event))
        return copy.deepcopy(event)

    def update_event(self, event: Event):
        """Queue a full-record replacement of an event"""
        self._post(self._update_event, copy.deepcopy(event))

    def remove_event(self, event_id: str):
        """Queue deletion of an event and its reminder"""
        self._post(self._remove_event, event_id)
