"""
HEARTH Remote Store - Authoritative Document Collections

Responsibilities:
- Define the remote store contract (subscribe / insert / replace / delete)
- Provide a cancellable subscription handle
- Decode pushed documents, dropping malformed ones
- Embedded in-memory implementation

Semantics:
- Subscriptions push FULL snapshots of the owner-scoped collection
- A subscription error is delivered once, then the subscription is dead
- No retries here; reattachment is the caller's decision
"""

import copy
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from hearth.memory.household_models import Event, Person, decode_records
from hearth.memory.local_cache import EVENTS_COLLECTION, PEOPLE_COLLECTION

logger = logging.getLogger(__name__)

COLLECTIONS = (PEOPLE_COLLECTION, EVENTS_COLLECTION)

_DECODERS = {
    PEOPLE_COLLECTION: Person.from_dict,
    EVENTS_COLLECTION: Event.from_dict,
}

SnapshotCallback = Callable[[List[Any]], None]
ErrorCallback = Callable[[Exception], None]


class RemoteStoreError(Exception):
    """Base exception for all remote store errors"""
    pass


class RemoteUnavailableError(RemoteStoreError):
    """Raised when the remote store cannot be reached or rejects a call"""
    pass


def check_collection(collection: str):
    """Reject unknown collection names"""
    if collection not in COLLECTIONS:
        raise ValueError(f"Unknown collection: {collection}")


class Subscription:
    """
    Handle for a live collection subscription.

    Callbacks stop as soon as close() is called. An error delivery
    closes the subscription after invoking the error callback once.
    """

    def __init__(
        self,
        collection: str,
        owner_id: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
        on_close: Optional[Callable[['Subscription'], None]] = None
    ):
        self.collection = collection
        self.owner_id = owner_id
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._on_close = on_close
        self._closed = threading.Event()
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def close(self):
        """Stop the subscription (idempotent)"""
        with self._lock:
            if self._closed.is_set():
                return
            self._closed.set()

        logger.debug(f"Subscription closed: {self.collection} ({self.owner_id})")
        if self._on_close:
            self._on_close(self)

    def wait_closed(self, timeout: float) -> bool:
        """Sleep up to timeout seconds; True if closed meanwhile"""
        return self._closed.wait(timeout)

    def deliver_snapshot(self, records: List[Any]) -> bool:
        """
        Push a full snapshot to the subscriber.

        Returns:
            True if delivered, False if the subscription is closed
        """
        if self._closed.is_set():
            return False
        try:
            self._on_snapshot(records)
        except Exception as e:
            logger.error(f"Snapshot callback failed for {self.collection}: {e}", exc_info=True)
        return True

    def deliver_error(self, error: Exception) -> bool:
        """
        Report a terminal error once and close.

        Returns:
            True if delivered, False if already closed
        """
        with self._lock:
            if self._closed.is_set():
                return False
        self.close()

        logger.warning(f"Subscription error on {self.collection}: {error}")
        try:
            self._on_error(error)
        except Exception as e:
            logger.error(f"Error callback failed for {self.collection}: {e}", exc_info=True)
        return True


class RemoteStore(ABC):
    """
    Abstract queryable, subscribable document store.

    Records are Person / Event objects on the way in and out; documents
    on the wire are camelCase dicts carrying an `id`.
    """

    @abstractmethod
    def subscribe(
        self,
        collection: str,
        owner_id: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback
    ) -> Subscription:
        """
        Subscribe to every record of `collection` owned by `owner_id`.

        Raises:
            RemoteUnavailableError: If the subscription cannot be opened
        """
        pass

    @abstractmethod
    def insert(self, collection: str, record) -> str:
        """
        Create a document under the record's own id.

        Ids are minted client-side so the record handed to add_* is the
        record the subscription later echoes back.

        Returns:
            Document id

        Raises:
            RemoteUnavailableError: On transport failure
        """
        pass

    @abstractmethod
    def replace(self, collection: str, record_id: str, record):
        """
        Replace the full document (created if missing).

        Raises:
            RemoteUnavailableError: On transport failure
        """
        pass

    @abstractmethod
    def delete(self, collection: str, record_id: str):
        """
        Best-effort delete; unknown ids are ignored.

        Raises:
            RemoteUnavailableError: On transport failure
        """
        pass

    @staticmethod
    def decode_snapshot(collection: str, documents: List[Dict[str, Any]]) -> List[Any]:
        """
        Decode pushed documents, dropping malformed ones.

        Args:
            collection: Collection the documents belong to
            documents: Raw document dicts (each with an `id`)

        Returns:
            Decoded records
        """
        check_collection(collection)
        return decode_records(_DECODERS[collection], documents)

    @staticmethod
    def encode_fields(record) -> Dict[str, Any]:
        """Wire fields of a record, without its id"""
        fields = record.to_dict()
        fields.pop('id', None)
        return fields


class InMemoryRemoteStore(RemoteStore):
    """
    Thread-safe embedded remote store.

    Useful when no server is configured, and for exercising outage
    behaviour: set_available(False) fails writes and kills live
    subscriptions with a single error each.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._documents: Dict[str, Dict[str, Dict[str, Any]]] = {
            name: {} for name in COLLECTIONS
        }
        self._subscriptions: List[Subscription] = []
        self._available = True

        logger.info("InMemoryRemoteStore initialized")

    def _require_available(self):
        if not self._available:
            raise RemoteUnavailableError("Remote store is unavailable")

    def _matching_documents(self, collection: str, owner_id: str) -> List[Dict[str, Any]]:
        return [
            copy.deepcopy(doc)
            for doc in self._documents[collection].values()
            if doc.get('ownerId') == owner_id
        ]

    def _publish(self, collection: str):
        """Push a fresh snapshot to every live subscriber of collection"""
        with self._lock:
            targets = [
                (sub, self._matching_documents(collection, sub.owner_id))
                for sub in self._subscriptions
                if sub.collection == collection
            ]

        for subscription, documents in targets:
            subscription.deliver_snapshot(self.decode_snapshot(collection, documents))

    def _forget(self, subscription: Subscription):
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def subscribe(self, collection, owner_id, on_snapshot, on_error) -> Subscription:
        check_collection(collection)
        with self._lock:
            self._require_available()
            subscription = Subscription(
                collection, owner_id, on_snapshot, on_error, on_close=self._forget
            )
            self._subscriptions.append(subscription)
            documents = self._matching_documents(collection, owner_id)

        logger.info(f"Subscribed to {collection} for owner {owner_id}")
        subscription.deliver_snapshot(self.decode_snapshot(collection, documents))
        return subscription

    def insert(self, collection: str, record) -> str:
        check_collection(collection)
        with self._lock:
            self._require_available()
            record_id = record.id
            document = self.encode_fields(record)
            document['id'] = record_id
            self._documents[collection][record_id] = document

        logger.debug(f"Inserted {collection}/{record_id}")
        self._publish(collection)
        return record_id

    def replace(self, collection: str, record_id: str, record):
        check_collection(collection)
        with self._lock:
            self._require_available()
            document = self.encode_fields(record)
            document['id'] = record_id
            self._documents[collection][record_id] = document

        logger.debug(f"Replaced {collection}/{record_id}")
        self._publish(collection)

    def delete(self, collection: str, record_id: str):
        check_collection(collection)
        with self._lock:
            self._require_available()
            removed = self._documents[collection].pop(record_id, None)

        if removed is None:
            logger.debug(f"Delete ignored, no document {collection}/{record_id}")
            return
        logger.debug(f"Deleted {collection}/{record_id}")
        self._publish(collection)

    def load_documents(self, collection: str, documents: List[Dict[str, Any]]):
        """
        Seed raw documents (e.g. imported from another client).

        Documents are stored as given, so malformed ones reach
        subscribers and are dropped at decode time.
        """
        check_collection(collection)
        with self._lock:
            for document in documents:
                record_id = document.get('id') or str(uuid.uuid4())
                self._documents[collection][record_id] = {**document, 'id': record_id}

        logger.info(f"Loaded {len(documents)} raw documents into {collection}")
        self._publish(collection)

    def set_available(self, available: bool):
        """
        Simulate the store going offline or coming back.

        Going offline delivers one error to every live subscription.
        """
        with self._lock:
            self._available = available
            doomed = [] if available else list(self._subscriptions)

        logger.warning(f"InMemoryRemoteStore available={available}")
        for subscription in doomed:
            subscription.deliver_error(RemoteUnavailableError("Remote store went offline"))

    def document_count(self, collection: str) -> int:
        check_collection(collection)
        with self._lock:
            return len(self._documents[collection])
