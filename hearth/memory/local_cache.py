"""
HEARTH Local Cache - Last-Known-Good Snapshot Storage

Persists the people and events collections as JSON blobs in a generic
key-value byte store.

Design:
- One blob per collection (savedPeople, savedEvents)
- Synchronous and best effort
- Encode/decode/storage failures mean "no data", never an exception
- Only the coordination thread calls it, so no locking
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

from .household_models import Event, MalformedRecordError, Person

logger = logging.getLogger(__name__)

PEOPLE_COLLECTION = "people"
EVENTS_COLLECTION = "events"

CACHE_KEYS = {
    PEOPLE_COLLECTION: "savedPeople",
    EVENTS_COLLECTION: "savedEvents",
}

_DECODERS = {
    PEOPLE_COLLECTION: Person.from_dict,
    EVENTS_COLLECTION: Event.from_dict,
}


class BlobStoreError(Exception):
    """Base exception for blob storage errors"""
    pass


class BlobStore(ABC):
    """Generic get/set-by-key byte store"""

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        """Return the stored bytes, or None if the key is absent"""
        pass

    @abstractmethod
    def set(self, key: str, data: bytes):
        """Store bytes under key, replacing any previous value"""
        pass


class MemoryBlobStore(BlobStore):
    """Process-local blob store (tests, ephemeral sessions)"""

    def __init__(self):
        self._blobs: Dict[str, bytes] = {}

    def get(self, key: str) -> Optional[bytes]:
        return self._blobs.get(key)

    def set(self, key: str, data: bytes):
        self._blobs[key] = bytes(data)


class FileBlobStore(BlobStore):
    """
    File-based blob store: one file per key.

    Storage location: ~/.hearth/cache/<key>.blob
    """

    DEFAULT_STORAGE_DIR = Path.home() / ".hearth" / "cache"
    SUFFIX = ".blob"

    def __init__(self, storage_dir: Optional[Path] = None):
        """
        Initialize blob store.

        Args:
            storage_dir: Custom directory (default: ~/.hearth/cache)
        """
        self.storage_dir = Path(storage_dir) if storage_dir else self.DEFAULT_STORAGE_DIR

        # Ensure directory exists
        self.storage_dir.mkdir(parents=True, exist_ok=True)

        logger.info(f"FileBlobStore initialized: {self.storage_dir}")

    def _path_for(self, key: str) -> Path:
        if not key or os.sep in key or key.startswith('.'):
            raise BlobStoreError(f"Invalid blob key: {key!r}")
        return self.storage_dir / f"{key}{self.SUFFIX}"

    def get(self, key: str) -> Optional[bytes]:
        path = self._path_for(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise BlobStoreError(f"Cannot read blob {key}: {e}") from e

    def set(self, key: str, data: bytes):
        path = self._path_for(key)
        try:
            # Write atomically (write to temp, then rename)
            temp_path = path.with_suffix('.tmp')
            temp_path.write_bytes(data)
            temp_path.replace(path)
        except OSError as e:
            logger.error(f"Failed to write blob {key}: {e}", exc_info=True)
            raise BlobStoreError(f"Cannot write blob {key}: {e}") from e


class LocalCache:
    """
    Last-known-good snapshot of each collection.

    Philosophy:
    - save() and load() never raise
    - A blob that cannot be decoded is treated as absent
    - Whole-blob semantics: one bad record invalidates the blob
    """

    def __init__(self, blob_store: BlobStore):
        """
        Initialize local cache.

        Args:
            blob_store: Byte store used as the persistence medium
        """
        self.blob_store = blob_store
        logger.info(f"LocalCache initialized ({type(blob_store).__name__})")

    @staticmethod
    def _key_for(collection_name: str) -> str:
        try:
            return CACHE_KEYS[collection_name]
        except KeyError:
            raise ValueError(f"Unknown collection: {collection_name}") from None

    def save(self, collection_name: str, records: List) -> bool:
        """
        Save a collection snapshot.

        Args:
            collection_name: "people" or "events"
            records: Person or Event records

        Returns:
            True if stored, False if encoding or storage failed
        """
        key = self._key_for(collection_name)
        try:
            payload = json.dumps([r.to_dict() for r in records]).encode('utf-8')
            self.blob_store.set(key, payload)
        except (TypeError, ValueError, AttributeError, BlobStoreError) as e:
            logger.warning(f"Failed to cache {collection_name}: {e}")
            return False

        logger.debug(f"Cached {len(records)} {collection_name}")
        return True

    def load(self, collection_name: str) -> Optional[List]:
        """
        Load a collection snapshot.

        Args:
            collection_name: "people" or "events"

        Returns:
            List of records, or None if nothing usable is stored
        """
        key = self._key_for(collection_name)
        decoder = _DECODERS[collection_name]

        try:
            payload = self.blob_store.get(key)
        except BlobStoreError as e:
            logger.warning(f"Cannot read cached {collection_name}: {e}")
            return None

        if payload is None:
            logger.debug(f"No cached {collection_name}")
            return None

        try:
            data = json.loads(payload.decode('utf-8'))
            if not isinstance(data, list):
                raise ValueError("cached blob is not a list")
            records = [decoder(item) for item in data]
        except (UnicodeDecodeError, MalformedRecordError, ValueError, TypeError) as e:
            logger.warning(f"Discarding unreadable cached {collection_name}: {e}")
            return None

        logger.debug(f"Loaded {len(records)} cached {collection_name}")
        return records
