"""
HEARTH Memory - Household Records and Local Persistence

Plain data records, the weekly-recurrence model, and the local
last-known-good cache.
"""

from .household_models import (
    Color,
    DecodeResult,
    Event,
    MalformedRecordError,
    Person,
    create_event,
    create_person,
    decode_record,
    decode_records,
)
from .local_cache import (
    CACHE_KEYS,
    EVENTS_COLLECTION,
    PEOPLE_COLLECTION,
    BlobStore,
    BlobStoreError,
    FileBlobStore,
    LocalCache,
    MemoryBlobStore,
)
from . import recurrence

__all__ = [
    'Color',
    'DecodeResult',
    'Event',
    'MalformedRecordError',
    'Person',
    'create_event',
    'create_person',
    'decode_record',
    'decode_records',
    'CACHE_KEYS',
    'EVENTS_COLLECTION',
    'PEOPLE_COLLECTION',
    'BlobStore',
    'BlobStoreError',
    'FileBlobStore',
    'LocalCache',
    'MemoryBlobStore',
    'recurrence',
]
