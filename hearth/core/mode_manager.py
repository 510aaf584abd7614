"""
HEARTH Mode Manager - Sync Mode State Machine

Responsibilities:
- Track which backend serves reads and writes
- Enforce the legal mode transitions
- Answer "may this write go to the remote store?"
- NO I/O, NO subscriptions, NO data
"""

import logging
from enum import Enum
from typing import Any, Dict, Set

logger = logging.getLogger(__name__)


class SyncMode(Enum):
    """Coordinator modes"""
    UNAUTHENTICATED = "unauthenticated"            # local cache only
    SYNCING_FROM_REMOTE = "syncing_from_remote"    # live subscriptions
    REMOTE_DEGRADED = "remote_degraded"            # subscription failed, local snapshot


class TransitionError(Exception):
    """Raised when a mode change is not allowed"""
    pass


# Re-login is allowed from any mode; the only automatic edge is the
# degrade on subscription failure.
_TRANSITIONS: Dict[SyncMode, Set[SyncMode]] = {
    SyncMode.UNAUTHENTICATED: {
        SyncMode.UNAUTHENTICATED,
        SyncMode.SYNCING_FROM_REMOTE,
    },
    SyncMode.SYNCING_FROM_REMOTE: {
        SyncMode.UNAUTHENTICATED,
        SyncMode.SYNCING_FROM_REMOTE,
        SyncMode.REMOTE_DEGRADED,
    },
    SyncMode.REMOTE_DEGRADED: {
        SyncMode.UNAUTHENTICATED,
        SyncMode.SYNCING_FROM_REMOTE,
        SyncMode.REMOTE_DEGRADED,
    },
}

_REMOTE_WRITE_MODES = {SyncMode.SYNCING_FROM_REMOTE}


class ModeManager:
    """
    Deterministic mode tracking for the sync coordinator.

    Does NOT:
    - Attach or detach subscriptions
    - Load or save data
    """

    def __init__(self, initial: SyncMode = SyncMode.UNAUTHENTICATED):
        self._mode = initial
        self._transition_count = 0
        logger.info(f"ModeManager initialized (mode={initial.value})")

    @property
    def mode(self) -> SyncMode:
        return self._mode

    def can_transition(self, target: SyncMode) -> bool:
        """Check whether moving to target is legal from the current mode"""
        return target in _TRANSITIONS[self._mode]

    def transition(self, target: SyncMode) -> SyncMode:
        """
        Move to a new mode.

        Args:
            target: Mode to enter

        Returns:
            The previous mode

        Raises:
            TransitionError: If the transition is not allowed
        """
        if not isinstance(target, SyncMode):
            raise TransitionError(f"Invalid mode: {target!r}")
        if not self.can_transition(target):
            raise TransitionError(
                f"Cannot move from {self._mode.value} to {target.value}"
            )

        previous = self._mode
        self._mode = target
        self._transition_count += 1
        if previous != target:
            logger.info(f"Mode: {previous.value} -> {target.value}")
        return previous

    def writes_go_remote(self) -> bool:
        """True when writes should be issued against the remote store"""
        return self._mode in _REMOTE_WRITE_MODES

    def is_local_only(self) -> bool:
        return not self.writes_go_remote()

    def get_stats(self) -> Dict[str, Any]:
        return {
            'mode': self._mode.value,
            'writes_go_remote': self.writes_go_remote(),
            'transitions': self._transition_count
        }
