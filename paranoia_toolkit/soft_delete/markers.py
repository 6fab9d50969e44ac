"""
Marker policies for the two soft delete encodings.

A policy knows which value marks a record deleted, which value marks it live,
how to read a stored value back, and how to express both states as SQL
criteria. Policies are pure and hold no session state.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from sqlalchemy import or_
from sqlalchemy.sql.elements import ColumnElement

from .exceptions import ConfigurationError
from .models import ColumnType


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def local_now() -> datetime:
    return datetime.now()


class MarkerPolicy(ABC):
    """Encodes and decodes the soft delete marker for one scheme."""

    column_type: ColumnType

    @abstractmethod
    def deleted_value(self) -> Any:
        """Value written to the marker column on delete."""

    @abstractmethod
    def live_value(self) -> Any:
        """Value written to the marker column on restore."""

    @abstractmethod
    def is_deleted(self, value: Any) -> bool:
        """Whether a stored marker value denotes a deleted record."""

    @abstractmethod
    def deleted_criterion(self, column: Any) -> ColumnElement[bool]:
        """SQL criterion matching deleted rows."""

    @abstractmethod
    def live_criterion(self, column: Any) -> ColumnElement[bool]:
        """SQL criterion matching live rows."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.column_type.value}>"


class TimestampMarker(MarkerPolicy):
    """NULL means live; the deletion time means deleted."""

    column_type = ColumnType.TIMESTAMP

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self.clock = clock or utc_now

    def deleted_value(self) -> datetime:
        return self.clock()

    def live_value(self) -> None:
        return None

    def is_deleted(self, value: Any) -> bool:
        return value is not None

    def deleted_criterion(self, column: Any) -> ColumnElement[bool]:
        return column.is_not(None)

    def live_criterion(self, column: Any) -> ColumnElement[bool]:
        return column.is_(None)


class FlagMarker(MarkerPolicy):
    """False means live; True means deleted."""

    column_type = ColumnType.FLAG

    def deleted_value(self) -> bool:
        return True

    def live_value(self) -> bool:
        return False

    def is_deleted(self, value: Any) -> bool:
        return bool(value)

    def deleted_criterion(self, column: Any) -> ColumnElement[bool]:
        return column.is_(True)

    def live_criterion(self, column: Any) -> ColumnElement[bool]:
        # A NULL flag reads as live, so it must be visible as live too
        return or_(column.is_(False), column.is_(None))


def marker_policy_for(
    column_type: Any, clock: Optional[Callable[[], datetime]] = None
) -> MarkerPolicy:
    """
    Build the marker policy for a column type.

    Args:
        column_type: A ColumnType or one of its string values/aliases
        clock: Optional clock for the timestamp scheme

    Returns:
        The marker policy for the scheme

    Raises:
        ConfigurationError: If the scheme is not recognized
    """
    try:
        scheme = ColumnType(column_type)
    except ValueError:
        raise ConfigurationError(
            f"invalid paranoia column type: {column_type!r} "
            f"(expected one of: {', '.join(t.value for t in ColumnType)})"
        ) from None

    if scheme is ColumnType.TIMESTAMP:
        return TimestampMarker(clock=clock)
    return FlagMarker()
