"""
Soft Delete Module - recoverable deletion for SQLAlchemy models.

Provides the capability mixins, per-type registry, visibility scopes, phase
hooks and the engine that soft deletes, destroys and restores records,
optionally cascading along dependent associations.
"""

from .callbacks import (
    CONTINUE,
    HALT,
    CallbackChain,
    ChainResult,
    HookKind,
    PhaseContext,
)
from .cascade import CascadeRestorer
from .engine import SoftDeleteEngine
from .exceptions import (
    ConfigurationError,
    HardDeleteBlocked,
    NotPersistedError,
    RecordNotDestroyed,
    RecordNotFound,
    SoftDeleteError,
    TransactionAborted,
)
from .markers import FlagMarker, MarkerPolicy, TimestampMarker, marker_policy_for
from .mixins import (
    FlagSoftDeleteMixin,
    SoftDeletable,
    TimestampSoftDeleteMixin,
    prevent_hard_delete,
    register_soft_delete_listeners,
)
from .models import (
    AssociationEdge,
    BulkRestoreReport,
    CascadeKind,
    ColumnType,
    ParanoidOptions,
    Visibility,
)
from .registry import ParanoiaRegistry, TypeConfig
from .scopes import SCOPE_OPTION, VisibilityScope

__all__ = [
    # Mixins
    "SoftDeletable",
    "TimestampSoftDeleteMixin",
    "FlagSoftDeleteMixin",
    "prevent_hard_delete",
    "register_soft_delete_listeners",
    # Engine
    "SoftDeleteEngine",
    "CascadeRestorer",
    "ParanoiaRegistry",
    "TypeConfig",
    "VisibilityScope",
    "SCOPE_OPTION",
    # Markers
    "MarkerPolicy",
    "TimestampMarker",
    "FlagMarker",
    "marker_policy_for",
    # Hooks
    "CallbackChain",
    "ChainResult",
    "HookKind",
    "PhaseContext",
    "HALT",
    "CONTINUE",
    # Models
    "ColumnType",
    "CascadeKind",
    "Visibility",
    "ParanoidOptions",
    "AssociationEdge",
    "BulkRestoreReport",
    # Exceptions
    "SoftDeleteError",
    "ConfigurationError",
    "NotPersistedError",
    "RecordNotFound",
    "TransactionAborted",
    "RecordNotDestroyed",
    "HardDeleteBlocked",
]
