"""Exceptions for soft delete operations."""

from typing import Any, Optional


class SoftDeleteError(Exception):
    """Base exception for soft delete operations."""

    def __init__(self, message: str, entity_id: Optional[str] = None):
        self.entity_id = entity_id
        super().__init__(message)


class ConfigurationError(SoftDeleteError):
    """Raised when a record type is configured for soft delete incorrectly."""

    def __init__(self, message: str):
        super().__init__(message)


class NotPersistedError(SoftDeleteError):
    """Raised when a soft delete operation targets a record that was never saved."""

    def __init__(self, entity_type: str):
        self.entity_type = entity_type
        super().__init__(
            f"{entity_type} has no identity yet and cannot be soft deleted or restored"
        )


class RecordNotFound(SoftDeleteError):
    """Raised when a restore target is not among the deleted records."""

    def __init__(self, entity_type: str, identity: Any):
        self.entity_type = entity_type
        super().__init__(
            f"Deleted {entity_type} with ID {identity} not found",
            entity_id=str(identity),
        )


class TransactionAborted(SoftDeleteError):
    """Raised after rollback when the store fails during a transactional operation."""

    def __init__(self, operation: str, entity_id: Optional[str] = None):
        self.operation = operation
        super().__init__(
            f"{operation} of entity {entity_id} aborted; all changes rolled back",
            entity_id=entity_id,
        )


class RecordNotDestroyed(SoftDeleteError):
    """Raised by a strict destroy when a hook halted and nothing was deleted."""

    def __init__(self, entity_id: str):
        super().__init__(
            f"Entity {entity_id} was not destroyed: a destroy hook halted the chain",
            entity_id=entity_id,
        )


class HardDeleteBlocked(SoftDeleteError):
    """Raised when a paranoid record is hard deleted outside ``hard_destroy``."""

    def __init__(self, entity_type: str):
        super().__init__(
            f"Hard delete attempted on {entity_type}. "
            "Use destroy() or hard_destroy() instead."
        )
