"""
Tests for HEARTH Remote Stores

Tests:
- In-memory store: owner scoping, full snapshots, malformed drops, outage
- Subscription close/error semantics
- HTTP store: request shapes, error mapping, polling subscription (mocked session)
"""

import logging
import threading
from datetime import datetime
from unittest.mock import MagicMock, Mock

import pytest
import requests

from hearth.memory import create_event, create_person
from hearth.remote import (
    HttpRemoteStore,
    InMemoryRemoteStore,
    RemoteUnavailableError,
    Subscription,
)

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


class Collector:
    """Records snapshots and errors pushed to a subscriber"""

    def __init__(self):
        self.snapshots = []
        self.errors = []
        self.changed = threading.Event()

    def on_snapshot(self, records):
        self.snapshots.append(records)
        self.changed.set()

    def on_error(self, error):
        self.errors.append(error)
        self.changed.set()


def test_in_memory_owner_scoped_snapshots():
    """Subscribers get full snapshots of their own documents only"""
    print("\n" + "="*70)
    print("TEST 1: In-memory snapshots")
    print("="*70)

    store = InMemoryRemoteStore()
    mine = Collector()
    theirs = Collector()

    store.subscribe("people", "owner-1", mine.on_snapshot, mine.on_error)
    store.subscribe("people", "owner-2", theirs.on_snapshot, theirs.on_error)
    assert mine.snapshots == [[]]
    print("✓ Initial empty snapshot pushed on subscribe")

    print("\n[1.1] Testing insert...")
    mom = create_person("Mom", is_parent=True, owner_id="owner-1")
    new_id = store.insert("people", mom)
    assert new_id == mom.id
    assert [p.id for p in mine.snapshots[-1]] == [new_id]
    assert mine.snapshots[-1][0].name == "Mom"
    assert theirs.snapshots[-1] == []
    print("✓ Document kept under the record id; other owners see nothing")

    print("\n[1.2] Testing replace and delete...")
    renamed = create_person("Mum", is_parent=True, owner_id="owner-1")
    store.replace("people", new_id, renamed)
    assert mine.snapshots[-1][0].name == "Mum"
    assert mine.snapshots[-1][0].id == new_id

    store.delete("people", new_id)
    assert mine.snapshots[-1] == []
    count = len(mine.snapshots)
    store.delete("people", new_id)
    assert len(mine.snapshots) == count
    print("✓ Unknown delete ignored without a push")


def test_in_memory_replace_upserts():
    store = InMemoryRemoteStore()
    person = create_person("Dad", owner_id="owner-1")
    store.replace("people", person.id, person)
    assert store.document_count("people") == 1


def test_malformed_documents_dropped():
    """A bad document is skipped; the rest of the snapshot arrives"""
    store = InMemoryRemoteStore()
    good = create_event(
        "kid", "Swim", datetime(2024, 1, 2, 8, 0), "mom", owner_id="owner-1"
    ).to_dict()
    bad = dict(good, id="broken", dayOfWeek=None)
    store.load_documents("events", [good, bad])

    collector = Collector()
    store.subscribe("events", "owner-1", collector.on_snapshot, collector.on_error)
    assert [e.id for e in collector.snapshots[-1]] == [good['id']]
    assert store.document_count("events") == 2


def test_outage_fails_writes_and_subscriptions():
    """Going offline errors each live subscription exactly once"""
    print("\n" + "="*70)
    print("TEST 2: Outage")
    print("="*70)

    store = InMemoryRemoteStore()
    collector = Collector()
    subscription = store.subscribe("people", "owner-1", collector.on_snapshot, collector.on_error)

    store.set_available(False)
    assert len(collector.errors) == 1
    assert isinstance(collector.errors[0], RemoteUnavailableError)
    assert subscription.closed
    print("✓ Subscription errored and closed")

    with pytest.raises(RemoteUnavailableError):
        store.insert("people", create_person("Mom", owner_id="owner-1"))
    with pytest.raises(RemoteUnavailableError):
        store.subscribe("events", "owner-1", collector.on_snapshot, collector.on_error)
    print("✓ Writes and new subscriptions refused")

    store.set_available(True)
    store.insert("people", create_person("Mom", owner_id="owner-1"))
    assert len(collector.snapshots) == 1
    print("✓ Closed subscription gets nothing after recovery")


def test_subscription_close_and_error_once():
    collector = Collector()
    closed = []
    subscription = Subscription("people", "o", collector.on_snapshot, collector.on_error,
                                on_close=closed.append)

    assert subscription.deliver_error(RemoteUnavailableError("boom"))
    assert not subscription.deliver_error(RemoteUnavailableError("again"))
    assert not subscription.deliver_snapshot([])
    subscription.close()
    assert len(collector.errors) == 1
    assert closed == [subscription]

    with pytest.raises(ValueError):
        InMemoryRemoteStore().insert("chores", create_person("x"))


def _response(body=None, status_error=None):
    response = Mock()
    response.content = b"{}" if body is not None else b""
    response.json.return_value = body
    response.raise_for_status.side_effect = status_error
    return response


def _http_store(**kwargs):
    session = MagicMock()
    session.headers = {}
    store = HttpRemoteStore("https://example.test/api/", token="secret",
                            session=session, **kwargs)
    return store, session


def test_http_store_writes():
    """Writes map to POST/PUT/DELETE with a fields envelope"""
    print("\n" + "="*70)
    print("TEST 3: HTTP writes")
    print("="*70)

    store, session = _http_store(timeout=3)
    assert session.headers["Authorization"] == "Bearer secret"

    person = create_person("Mom", is_parent=True, owner_id="owner-1")

    session.request.return_value = _response({"id": person.id})
    assert store.insert("people", person) == person.id
    method, url = session.request.call_args[0]
    kwargs = session.request.call_args[1]
    assert (method, url) == ("POST", "https://example.test/api/people")
    assert kwargs["timeout"] == 3
    assert kwargs["json"]["id"] == person.id
    assert "id" not in kwargs["json"]["fields"]
    assert kwargs["json"]["fields"]["isParent"] is True
    print("✓ POST carries the record id beside its fields")

    session.request.return_value = _response()
    store.replace("people", "srv-1", person)
    assert session.request.call_args[0] == ("PUT", "https://example.test/api/people/srv-1")

    store.delete("people", "srv-1")
    assert session.request.call_args[0] == ("DELETE", "https://example.test/api/people/srv-1")
    print("✓ PUT and DELETE address the document")

    print("\n[3.1] Testing insert acknowledgements...")
    session.request.return_value = _response({})
    assert store.insert("people", person) == person.id
    session.request.return_value = _response()
    assert store.insert("people", person) == person.id
    session.request.return_value = _response({"id": "srv-9"})
    assert store.insert("people", person) == "srv-9"
    print("✓ Record id kept unless the service reports another")


def test_http_store_error_mapping():
    store, session = _http_store()

    session.request.side_effect = requests.Timeout("slow")
    with pytest.raises(RemoteUnavailableError):
        store.delete("events", "e1")

    session.request.side_effect = requests.ConnectionError("down")
    with pytest.raises(RemoteUnavailableError):
        store.delete("events", "e1")

    session.request.side_effect = None
    session.request.return_value = _response(
        status_error=requests.HTTPError("500 Server Error")
    )
    with pytest.raises(RemoteUnavailableError):
        store.delete("events", "e1")


def test_http_fetch_and_poll_subscription():
    """Polling pushes decoded snapshots and stops on the first error"""
    print("\n" + "="*70)
    print("TEST 4: HTTP polling")
    print("="*70)

    store, session = _http_store(poll_interval=0.01)
    mom = create_person("Mom", is_parent=True, owner_id="owner-1")
    fields = mom.to_dict()
    del fields['id']
    listing = {"documents": [
        {"id": mom.id, "fields": fields},
        {"id": "bad", "fields": {"name": "no colour"}},
        {"id": "worse"},
    ]}

    session.request.side_effect = [
        _response(listing),
        _response(listing),
        requests.ConnectionError("down"),
    ]

    collector = Collector()
    subscription = store.subscribe("people", "owner-1", collector.on_snapshot, collector.on_error)

    assert subscription.wait_closed(5.0)
    assert len(collector.snapshots) == 1
    assert [p.id for p in collector.snapshots[0]] == [mom.id]
    assert len(collector.errors) == 1
    assert isinstance(collector.errors[0], RemoteUnavailableError)
    print("✓ One snapshot (unchanged poll skipped), then one error")

    params = session.request.call_args_list[0][1]["params"]
    assert params == {"ownerId": "owner-1"}

    store.close()
    session.close.assert_called_once()


def test_http_requires_base_url():
    with pytest.raises(ValueError):
        HttpRemoteStore("")


def test_http_close_stops_polling():
    """Closing the store ends live polls before the session goes away"""
    print("\n" + "="*70)
    print("TEST 5: HTTP close")
    print("="*70)

    store, session = _http_store(poll_interval=60)
    polled = threading.Event()

    def listing(*args, **kwargs):
        polled.set()
        return _response({"documents": []})

    session.request.side_effect = listing

    collector = Collector()
    subscription = store.subscribe("events", "owner-1", collector.on_snapshot, collector.on_error)
    assert polled.wait(timeout=5.0)
    threads = [thread for _, thread in store._polls.values()]
    assert len(threads) == 1

    store.close(timeout=5.0)

    assert subscription.closed
    assert not any(t.is_alive() for t in threads)
    assert store._polls == {}
    assert collector.errors == []
    session.close.assert_called_once()
    print("✓ Poll thread joined and session closed")
