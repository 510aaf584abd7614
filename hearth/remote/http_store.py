"""
HEARTH HTTP Remote Store - REST Document Collections over requests

Talks to a REST document service:

    GET    {base}/{collection}?ownerId=<owner>   -> {"documents": [{"id", "fields"}]}
    POST   {base}/{collection}   {"fields": ...} -> {"id": "<new id>"}
    PUT    {base}/{collection}/{id} {"fields": ...}
    DELETE {base}/{collection}/{id}

Subscriptions are polling threads: the first poll always pushes a
snapshot, later polls push only when the document set changed. Any
transport or HTTP failure ends the subscription with one error.
"""

import json
import logging
import threading
from typing import Any, Dict, List, Optional, Tuple

import requests

from .remote_store import (
    RemoteStore,
    RemoteUnavailableError,
    Subscription,
    check_collection,
)

logger = logging.getLogger(__name__)


class HttpRemoteStore(RemoteStore):
    """
    RemoteStore backed by an HTTP document API.

    Example:
        >>> store = HttpRemoteStore("https://example.test/api", token="secret")
        >>> sub = store.subscribe("people", "user-1", print, print)
        >>> sub.close()
    """

    DEFAULT_TIMEOUT = 10  # seconds
    DEFAULT_POLL_INTERVAL = 5.0  # seconds

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = DEFAULT_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize HTTP store.

        Args:
            base_url: Service root, e.g. https://host/api
            token: Bearer token (empty = no Authorization header)
            timeout: Per-request timeout in seconds
            poll_interval: Seconds between subscription polls
            session: Preconfigured requests.Session (default: new session)

        Note:
            Does not contact the server on initialization (lazy failure).
        """
        if not base_url:
            raise ValueError("base_url cannot be empty")

        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.session = session or requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
            "Content-Type": "application/json",
        })
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

        self._polls_lock = threading.Lock()
        self._polls: Dict[int, Tuple[Subscription, threading.Thread]] = {}

        logger.info(
            f"HttpRemoteStore initialized (base_url={self.base_url}, "
            f"timeout={timeout}s, poll_interval={poll_interval}s)"
        )

    def _request(self, method: str, path: str, **kwargs) -> Optional[Any]:
        """
        Perform one HTTP call.

        Returns:
            Decoded JSON body, or None for empty bodies

        Raises:
            RemoteUnavailableError: On any transport, HTTP or body error
        """
        url = f"{self.base_url}/{path}"
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
            resp.raise_for_status()
            if not resp.content:
                return None
            return resp.json()
        except requests.Timeout as e:
            raise RemoteUnavailableError(f"{method} {url} timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise RemoteUnavailableError(f"{method} {url} failed: {e}") from e
        except ValueError as e:
            raise RemoteUnavailableError(f"{method} {url} returned invalid JSON: {e}") from e

    def fetch_documents(self, collection: str, owner_id: str) -> List[Dict[str, Any]]:
        """
        Fetch the raw owner-scoped documents of a collection.

        Returns:
            Flat document dicts: fields merged with their `id`
        """
        check_collection(collection)
        body = self._request("GET", collection, params={"ownerId": owner_id})
        if not isinstance(body, dict) or not isinstance(body.get("documents"), list):
            raise RemoteUnavailableError(f"Unexpected listing shape for {collection}")

        documents = []
        for item in body["documents"]:
            if not isinstance(item, dict) or not isinstance(item.get("fields"), dict):
                logger.warning(f"Skipping malformed {collection} document envelope")
                continue
            documents.append({**item["fields"], "id": item.get("id")})
        return documents

    def subscribe(self, collection, owner_id, on_snapshot, on_error) -> Subscription:
        check_collection(collection)
        subscription = Subscription(
            collection, owner_id, on_snapshot, on_error, on_close=self._forget
        )
        thread = threading.Thread(
            target=self._poll_loop,
            args=(subscription,),
            daemon=True,
            name=f"HEARTH-Poll-{collection}"
        )
        with self._polls_lock:
            self._polls[id(subscription)] = (subscription, thread)
        thread.start()

        logger.info(f"Polling {collection} for owner {owner_id} every {self.poll_interval}s")
        return subscription

    def _forget(self, subscription: Subscription):
        with self._polls_lock:
            self._polls.pop(id(subscription), None)

    def _poll_loop(self, subscription: Subscription):
        """Poll until closed; push snapshots on change; stop on first error"""
        last_fingerprint = None

        while not subscription.closed:
            try:
                documents = self.fetch_documents(subscription.collection, subscription.owner_id)
            except RemoteUnavailableError as e:
                subscription.deliver_error(e)
                return

            fingerprint = json.dumps(documents, sort_keys=True, default=str)
            if fingerprint != last_fingerprint:
                last_fingerprint = fingerprint
                records = self.decode_snapshot(subscription.collection, documents)
                logger.debug(f"Pushing {len(records)} {subscription.collection} records")
                subscription.deliver_snapshot(records)

            if subscription.wait_closed(self.poll_interval):
                break

        logger.debug(f"Polling stopped for {subscription.collection}")

    def insert(self, collection: str, record) -> str:
        check_collection(collection)
        body = self._request(
            "POST", collection,
            json={"id": record.id, "fields": self.encode_fields(record)}
        )
        if isinstance(body, dict) and body.get("id") and str(body["id"]) != record.id:
            logger.warning(
                f"Service stored {collection} document as {body['id']}, not {record.id}"
            )
            return str(body["id"])
        return record.id

    def replace(self, collection: str, record_id: str, record):
        check_collection(collection)
        self._request(
            "PUT", f"{collection}/{record_id}", json={"fields": self.encode_fields(record)}
        )

    def delete(self, collection: str, record_id: str):
        check_collection(collection)
        self._request("DELETE", f"{collection}/{record_id}")

    def close(self, timeout: float = 2.0):
        """
        Stop every live poll thread, then close the HTTP session.

        Args:
            timeout: Seconds to wait for each poll thread to exit
        """
        with self._polls_lock:
            polls = list(self._polls.values())

        for subscription, _ in polls:
            subscription.close()
        for subscription, thread in polls:
            if thread is threading.current_thread():
                continue
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning(f"Poll thread for {subscription.collection} did not stop cleanly")

        self.session.close()
        logger.info("HttpRemoteStore session closed")
