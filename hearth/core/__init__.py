"""
HEARTH Core Runtime

Sync coordination, mode state machine, identity session and the
read-only query layer.
"""

from .mode_manager import (
    ModeManager,
    SyncMode,
    TransitionError
)
from .query_layer import (
    EventCard,
    QueryLayer
)
from .session import IdentitySession
from .sync_coordinator import (
    AuthRequiredError,
    SyncCoordinator,
    SyncError
)

__all__ = [
    # Mode Manager
    'ModeManager',
    'SyncMode',
    'TransitionError',
    # Query Layer
    'EventCard',
    'QueryLayer',
    # Session
    'IdentitySession',
    # Sync Coordinator
    'AuthRequiredError',
    'SyncCoordinator',
    'SyncError',
]
