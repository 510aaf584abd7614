"""
Tests for HEARTH Local Cache

Tests:
- Save/load of people and events (empty and populated)
- Absent blobs
- Corrupted blobs are treated as absent
- File-backed blob store on a temp directory
"""

import json
import logging
import tempfile
from datetime import datetime
from pathlib import Path
from unittest.mock import Mock

import pytest

from hearth.memory import (
    CACHE_KEYS,
    EVENTS_COLLECTION,
    PEOPLE_COLLECTION,
    BlobStoreError,
    FileBlobStore,
    LocalCache,
    MemoryBlobStore,
    create_event,
    create_person,
)

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


def _household():
    mom = create_person("Mom", is_parent=True, owner_id="owner-1")
    kid = create_person("Ava", owner_id="owner-1")
    dad = create_person("Dad", is_parent=True, owner_id="owner-1")
    events = [
        create_event(kid.id, "Swim", datetime(2024, 1, 2, 8, 0), mom.id, owner_id="owner-1"),
        create_event(kid.id, "Piano", datetime(2024, 1, 4, 16, 30), dad.id, owner_id="owner-1"),
        create_event(
            kid.id, "Dentist", datetime(2024, 1, 5, 9, 15), mom.id,
            is_recurring=False, owner_id="owner-1"
        ),
    ]
    return [mom, kid, dad], events


def test_cache_keys():
    assert CACHE_KEYS == {"people": "savedPeople", "events": "savedEvents"}


def test_save_and_load_collections():
    """Saved snapshots load back equal, for empty and populated lists"""
    print("\n" + "="*70)
    print("TEST 1: Save and load")
    print("="*70)

    cache = LocalCache(MemoryBlobStore())
    people, events = _household()

    print("\n[1.1] Testing empty collections...")
    assert cache.save(PEOPLE_COLLECTION, [])
    assert cache.save(EVENTS_COLLECTION, [])
    assert cache.load(PEOPLE_COLLECTION) == []
    assert cache.load(EVENTS_COLLECTION) == []
    print("✓ Empty lists stored as empty, not absent")

    print("\n[1.2] Testing three records...")
    assert cache.save(PEOPLE_COLLECTION, people)
    assert cache.save(EVENTS_COLLECTION, events)
    assert cache.load(PEOPLE_COLLECTION) == people
    assert cache.load(EVENTS_COLLECTION) == events
    print("✓ Records loaded back equal")


def test_absent_blob_loads_none():
    cache = LocalCache(MemoryBlobStore())
    assert cache.load(PEOPLE_COLLECTION) is None
    assert cache.load(EVENTS_COLLECTION) is None


def test_unknown_collection_rejected():
    cache = LocalCache(MemoryBlobStore())
    with pytest.raises(ValueError):
        cache.save("chores", [])
    with pytest.raises(ValueError):
        cache.load("chores")


def test_corrupted_blobs_treated_as_absent():
    """Undecodable data or a single bad record invalidates the blob"""
    print("\n" + "="*70)
    print("TEST 2: Corrupted blobs")
    print("="*70)

    blobs = MemoryBlobStore()
    cache = LocalCache(blobs)
    people, events = _household()

    print("\n[2.1] Testing garbage bytes...")
    blobs.set("savedPeople", b"\xff\xfe not json")
    assert cache.load(PEOPLE_COLLECTION) is None
    print("✓ Garbage treated as absent")

    print("\n[2.2] Testing non-list JSON...")
    blobs.set("savedPeople", json.dumps({"people": []}).encode('utf-8'))
    assert cache.load(PEOPLE_COLLECTION) is None
    print("✓ Wrong shape treated as absent")

    print("\n[2.3] Testing one malformed record...")
    docs = [e.to_dict() for e in events]
    del docs[1]['eventName']
    blobs.set("savedEvents", json.dumps(docs).encode('utf-8'))
    assert cache.load(EVENTS_COLLECTION) is None
    print("✓ Whole blob rejected")


def test_save_failure_returns_false():
    """Storage errors are reported, never raised"""
    store = Mock()
    store.set.side_effect = BlobStoreError("disk full")
    store.get.side_effect = BlobStoreError("disk gone")
    cache = LocalCache(store)

    people, _ = _household()
    assert cache.save(PEOPLE_COLLECTION, people) is False
    assert cache.load(PEOPLE_COLLECTION) is None


def test_file_blob_store():
    """File-backed store writes one file per key, atomically"""
    print("\n" + "="*70)
    print("TEST 3: File blob store")
    print("="*70)

    with tempfile.TemporaryDirectory() as tmpdir:
        storage_dir = Path(tmpdir) / "cache"
        store = FileBlobStore(storage_dir)
        assert storage_dir.exists()

        assert store.get("savedPeople") is None
        store.set("savedPeople", b"[]")
        assert store.get("savedPeople") == b"[]"
        assert (storage_dir / "savedPeople.blob").exists()
        assert not list(storage_dir.glob("*.tmp"))
        print("✓ Blob written without leftover temp file")

        with pytest.raises(BlobStoreError):
            store.get("../escape")

        print("\n[3.1] Testing persistence across instances...")
        people, events = _household()
        LocalCache(store).save(PEOPLE_COLLECTION, people)
        reopened = LocalCache(FileBlobStore(storage_dir))
        assert reopened.load(PEOPLE_COLLECTION) == people
        print("✓ Snapshot survives a restart")
