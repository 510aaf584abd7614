"""
Tests for HEARTH Engine wiring

Tests:
- create_engine with a temp data directory and the embedded store
- Weekly event creation
- Engine reads through the query layer
- Cache survives an engine restart
- Ids returned by writes stay valid when signed in
- Configured log level reaches the hearth logger
"""

import logging
import tempfile
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

from hearth.config import HearthConfig
from hearth.core import SyncMode
from hearth.main_integration import create_engine
from hearth.memory import recurrence
from hearth.remote import HttpRemoteStore, InMemoryRemoteStore

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


def test_engine_local_household():
    """Signed-out engine manages a household and persists it"""
    print("\n" + "="*70)
    print("TEST 1: Engine wiring")
    print("="*70)

    with tempfile.TemporaryDirectory() as tmpdir:
        config = HearthConfig(data_dir=Path(tmpdir))
        engine = create_engine(config)
        try:
            assert engine.mode == SyncMode.UNAUTHENTICATED
            assert isinstance(engine.remote_store, InMemoryRemoteStore)

            mom = engine.add_person("Mom", is_parent=True)
            ava = engine.add_person("Ava")
            assert engine.wait_until_idle(timeout=5.0)

            print("\n[1.1] Testing weekly events...")
            now = datetime(2024, 1, 1, 12, 0)  # Monday
            created = engine.create_weekly_events(
                ava.id, "Swim", mom.id,
                weekdays=[recurrence.THURSDAY, recurrence.TUESDAY, recurrence.TUESDAY],
                hour=8, minute=0, now=now
            )
            assert engine.wait_until_idle(timeout=5.0)

            assert [e.date for e in created] == [
                datetime(2024, 1, 2, 8, 0),
                datetime(2024, 1, 4, 8, 0),
            ]
            assert [e.day_of_week for e in created] == [3, 5]
            print("✓ One event per distinct weekday")

            print("\n[1.2] Testing reads...")
            assert [p.name for p in engine.parents()] == ["Mom"]
            assert [p.name for p in engine.family_members()] == ["Ava"]
            assert len(engine.events_for_person(ava.id)) == 2
            assert len(engine.events_for_parent(mom.id)) == 2
            assert [e.event_name for e in engine.events_for_day(datetime(2024, 5, 7).date())] == ["Swim"]
            card = engine.event_card(engine.events[0])
            assert card.renderable
            assert len(engine.week_dates(now.date())) == 7
            print("✓ Query layer wired through the engine")
        finally:
            engine.shutdown()

        print("\n[1.3] Testing restart...")
        restarted = create_engine(config)
        try:
            assert restarted.wait_until_idle(timeout=5.0)
            assert sorted(p.name for p in restarted.people) == ["Ava", "Mom"]
            assert len(restarted.events) == 2
            print("✓ Household restored from the local cache")
        finally:
            restarted.shutdown()


def test_engine_sign_in_syncs():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = InMemoryRemoteStore()
        engine = create_engine(HearthConfig(data_dir=Path(tmpdir)), remote_store=store)
        try:
            engine.sign_in("owner-1")
            engine.add_person("Dad", is_parent=True)
            assert engine.wait_until_idle(timeout=5.0)

            assert engine.mode == SyncMode.SYNCING_FROM_REMOTE
            assert store.document_count("people") == 1
            assert engine.people[0].owner_id == "owner-1"
            assert engine.last_error is None

            engine.sign_out()
            assert engine.wait_until_idle(timeout=5.0)
            assert engine.mode == SyncMode.UNAUTHENTICATED
        finally:
            engine.shutdown()


def test_signed_in_ids_stay_valid():
    """Records returned by add_* resolve after the remote echo"""
    print("\n" + "="*70)
    print("TEST 2: Signed-in ids")
    print("="*70)

    with tempfile.TemporaryDirectory() as tmpdir:
        engine = create_engine(HearthConfig(data_dir=Path(tmpdir)), remote_store=InMemoryRemoteStore())
        try:
            engine.sign_in("owner-1")
            mom = engine.add_person("Mom", is_parent=True)
            ava = engine.add_person("Ava")
            assert engine.wait_until_idle(timeout=5.0)

            swim = engine.add_event(ava.id, "Swim", datetime(2030, 1, 1, 8, 0), mom.id)
            assert engine.wait_until_idle(timeout=5.0)

            assert engine.get_person(mom.id) is not None
            assert engine.get_person(ava.id).name == "Ava"
            assert [e.id for e in engine.events] == [swim.id]
            assert [e.id for e in engine.events_for_person(ava.id)] == [swim.id]
            assert engine.event_card(engine.events[0]).renderable
            pending = engine.notifier.pending()
            assert pending[swim.id].fire_at == datetime(2030, 1, 1, 7, 45)
            print("✓ Returned ids match the synced records and reminder")
        finally:
            engine.shutdown()


def test_create_engine_applies_log_level():
    hearth_logger = logging.getLogger("hearth")
    previous = hearth_logger.level
    try:
        with tempfile.TemporaryDirectory() as tmpdir:
            engine = create_engine(HearthConfig(data_dir=Path(tmpdir), log_level="WARNING"), start=False)
            assert hearth_logger.level == logging.WARNING
            assert not hearth_logger.isEnabledFor(logging.INFO)
            engine.shutdown()
    finally:
        hearth_logger.setLevel(previous)


def test_create_engine_uses_http_store_when_configured():
    with tempfile.TemporaryDirectory() as tmpdir:
        config = HearthConfig(
            data_dir=Path(tmpdir),
            remote_url="https://example.test/api",
            remote_token="secret"
        )
        engine = create_engine(config, start=False)
        assert isinstance(engine.remote_store, HttpRemoteStore)
        assert engine.remote_store.session.headers["Authorization"] == "Bearer secret"

        with patch.object(engine.remote_store, "close") as close:
            engine.shutdown()
        close.assert_called_once()
