"""
HEARTH Identity Session - Explicitly Owned Auth State

Responsibilities:
- Hold the current owner id (or None when signed out)
- Let interested parties subscribe to changes
- Replay the current state to every new subscriber

The identity provider itself (sign-in UI, tokens) lives outside; it
drives this object through sign_in() / sign_out().
"""

import logging
import threading
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

AuthListener = Callable[[Optional[str]], None]


class IdentitySession:
    """
    Thread-safe holder of "who is signed in".

    Listeners are called with the owner id, or None when signed out.
    subscribe() fires the listener immediately with the current state.
    """

    def __init__(self, owner_id: Optional[str] = None):
        """
        Args:
            owner_id: Already-authenticated owner at startup (None = signed out)
        """
        self._lock = threading.RLock()
        self._owner_id = owner_id or None
        self._listeners: List[AuthListener] = []
        logger.info(f"IdentitySession initialized (signed_in={self._owner_id is not None})")

    @property
    def owner_id(self) -> Optional[str]:
        with self._lock:
            return self._owner_id

    @property
    def is_authenticated(self) -> bool:
        return self.owner_id is not None

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        """
        Register a listener and replay the current state to it.

        Returns:
            Callable that removes the listener
        """
        with self._lock:
            self._listeners.append(listener)
            current = self._owner_id

        self._notify(listener, current)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def sign_in(self, owner_id: str):
        """Record an authenticated owner and notify listeners"""
        if not owner_id:
            raise ValueError("owner_id cannot be empty")
        self._set(owner_id)

    def sign_out(self):
        """Forget the owner and notify listeners"""
        self._set(None)

    def _set(self, owner_id: Optional[str]):
        with self._lock:
            self._owner_id = owner_id
            listeners = list(self._listeners)

        logger.info(f"Auth changed: {'user ' + owner_id if owner_id else 'signed out'}")
        for listener in listeners:
            self._notify(listener, owner_id)

    @staticmethod
    def _notify(listener: AuthListener, owner_id: Optional[str]):
        try:
            listener(owner_id)
        except Exception as e:
            logger.error(f"Auth listener failed: {e}", exc_info=True)
