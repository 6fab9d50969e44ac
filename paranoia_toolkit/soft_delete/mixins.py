"""
SQLAlchemy mixins for soft delete functionality.

Record types opt into soft delete by inheriting ``SoftDeletable`` (directly or
through one of the column mixins) and registering with a ParanoiaRegistry.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Any, ClassVar, Dict, Optional

from sqlalchemy import Boolean, DateTime, event
from sqlalchemy.orm import Mapped, mapped_column, object_session

from .exceptions import HardDeleteBlocked

if TYPE_CHECKING:
    from .registry import ParanoiaRegistry

# Session.info key set while hard_destroy flushes
HARD_DESTROY_FLAG = "paranoia.hard_destroy"


class SoftDeletable:
    """
    Capability interface for record types that support soft delete.

    Subclasses may declare ``__paranoia__`` with ``column`` and
    ``column_type`` keys; the registry uses them as defaults.

    Usage:
        class Post(Base, SoftDeletable):
            __tablename__ = "posts"
            __paranoia__ = {"column": "removed_at", "column_type": "timestamp"}
            id = Column(Integer, primary_key=True)
            removed_at = Column(DateTime, nullable=True)
    """

    __paranoia__: ClassVar[Dict[str, Any]] = {}

    @classmethod
    def paranoid(cls) -> bool:
        return True


class TimestampSoftDeleteMixin(SoftDeletable):
    """
    Adds a nullable ``deleted_at`` marker column.

    Usage:
        class Post(Base, TimestampSoftDeleteMixin):
            __tablename__ = "posts"
            id = Column(Integer, primary_key=True)
    """

    __paranoia__: ClassVar[Dict[str, Any]] = {
        "column": "deleted_at",
        "column_type": "timestamp",
    }

    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )


class FlagSoftDeleteMixin(SoftDeletable):
    """Adds a non-null ``is_deleted`` boolean marker column."""

    __paranoia__: ClassVar[Dict[str, Any]] = {
        "column": "is_deleted",
        "column_type": "boolean",
    }

    is_deleted: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False, index=True
    )


def prevent_hard_delete(mapper: Any, connection: Any, target: Any) -> None:
    """
    Prevent hard deletes on soft deletable records.

    This function is connected to SQLAlchemy's before_delete event. Deletes
    issued through ``SoftDeleteEngine.hard_destroy`` pass.
    """
    session = object_session(target)
    if session is not None and session.info.get(HARD_DESTROY_FLAG):
        return
    raise HardDeleteBlocked(target.__class__.__name__)


def register_soft_delete_listeners(registry: "ParanoiaRegistry") -> None:
    """
    Register the hard delete guard for every type in a registry.

    Args:
        registry: Registry whose record types should be guarded
    """
    for cls in registry.types():
        if not event.contains(cls, "before_delete", prevent_hard_delete):
            event.listen(cls, "before_delete", prevent_hard_delete, propagate=True)
