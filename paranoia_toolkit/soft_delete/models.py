"""
Data models for soft delete configuration and reporting.

These models define per-type paranoid options, association edges used by the
cascade walker, and the outcome report of bulk restore operations.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Type

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..config import ColumnType


class CascadeKind(str, Enum):
    """How deletion of an owner propagates along an association."""

    NONE = "none"
    DESTROY = "destroy"


class Visibility(str, Enum):
    """Query visibility of soft deleted records."""

    DEFAULT = "default"
    WITH_DELETED = "with_deleted"
    ONLY_DELETED = "only_deleted"


class ParanoidOptions(BaseModel):
    """Soft delete options for one record type."""

    model_config = ConfigDict(frozen=True)

    column: str = Field(
        "deleted_at", description="Mapped attribute holding the marker", min_length=1
    )
    column_type: ColumnType = Field(
        ColumnType.TIMESTAMP, description="Encoding scheme of the marker column"
    )

    @field_validator("column")
    @classmethod
    def validate_column(cls, v: str) -> str:
        """Ensure the marker column is a usable attribute name."""
        if not v.strip().isidentifier():
            raise ValueError(f"Marker column must be an attribute name, got {v!r}")
        return v.strip()


@dataclass(frozen=True)
class AssociationEdge:
    """A relationship from an owner type to a dependent type."""

    owner_type: Type[Any]
    name: str
    dependent_type: Type[Any]
    cascade_kind: CascadeKind = CascadeKind.NONE
    uselist: bool = True

    @property
    def cascades(self) -> bool:
        return self.cascade_kind == CascadeKind.DESTROY


class BulkRestoreReport(BaseModel):
    """Outcome of restoring a batch of records by identity."""

    entity_type: str = Field(..., description="Type of the restored records")
    restored: List[Any] = Field(default_factory=list, description="Restored records")
    halted: List[Any] = Field(
        default_factory=list, description="Identities whose restore hooks halted"
    )
    missing: List[Any] = Field(
        default_factory=list, description="Identities not found among deleted records"
    )

    @property
    def total(self) -> int:
        return len(self.restored) + len(self.halted) + len(self.missing)

    @property
    def complete(self) -> bool:
        """True when every requested identity was restored."""
        return not self.halted and not self.missing
