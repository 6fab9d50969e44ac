"""
Soft delete engine.

Provides the per-record lifecycle operations (delete, destroy, restore, hard
destroy) on top of a SQLAlchemy session, running phase hooks and keeping
restores and destroys atomic.
"""

import logging
from contextlib import contextmanager
from typing import Any, Iterator, List, Literal, Optional, Sequence, Tuple, Type, Union

from sqlalchemy import and_, inspect, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from ..config import ParanoiaConfig
from .callbacks import DESTROY, RESTORE, PhaseContext
from .cascade import CascadeRestorer
from .exceptions import (
    NotPersistedError,
    RecordNotDestroyed,
    RecordNotFound,
    TransactionAborted,
)
from .mixins import HARD_DESTROY_FLAG, register_soft_delete_listeners
from .models import BulkRestoreReport
from .registry import ParanoiaRegistry, TypeConfig
from .scopes import VisibilityScope

logger = logging.getLogger(__name__)


class _Halted(Exception):
    """Unwinds a transaction when a hook halted somewhere in the call tree."""

    def __init__(self, record: Any, phase: str):
        self.record = record
        self.phase = phase
        super().__init__(f"{phase} of {type(record).__name__} halted")


class SoftDeleteEngine:
    """
    Soft delete and restore operations for registered record types.

    The engine never commits the session's outer transaction; restores and
    destroys run in a savepoint and the caller decides when to commit.

    Usage:
        engine = SoftDeleteEngine(session, registry)
        engine.destroy(post)
        session.commit()

        engine.restore(post, cascade=True)
        session.commit()
    """

    def __init__(
        self,
        session: Session,
        registry: ParanoiaRegistry,
        config: Optional[ParanoiaConfig] = None,
    ):
        """
        Initialize the engine.

        Args:
            session: SQLAlchemy session used as the store
            registry: Registry of soft deletable types
            config: Optional configuration (defaults to the registry's)
        """
        self.session = session
        self.registry = registry
        self.config = config or registry.config
        self.scope = VisibilityScope(registry)
        self.cascade = CascadeRestorer(self)

        # (record, attribute) pairs written inside the open savepoints
        self._touched: List[Tuple[Any, str]] = []
        self._depth = 0

        self.scope.install(session)
        if self.config.guard_hard_delete:
            register_soft_delete_listeners(registry)

    # Queries

    def query(self, entity: Type[Any], *criteria: Any) -> Any:
        """Select live records (the default scope)."""
        return self.scope.default_scope(entity, *criteria)

    def with_deleted(self, entity: Type[Any], *criteria: Any) -> Any:
        return self.scope.with_deleted(entity, *criteria)

    def only_deleted(self, entity: Type[Any], *criteria: Any) -> Any:
        return self.scope.only_deleted(entity, *criteria)

    def is_paranoid(self, obj: Any) -> bool:
        return self.registry.is_paranoid(obj)

    def is_deleted(self, record: Any) -> bool:
        """Whether the record's marker currently denotes deletion."""
        type_config = self.registry.lookup(type(record))
        return type_config.policy.is_deleted(getattr(record, type_config.column))

    is_destroyed = is_deleted

    # Hook registration

    def before_restore(self, entity: Type[Any]) -> Any:
        return self.registry.before_restore(entity)

    def around_restore(self, entity: Type[Any]) -> Any:
        return self.registry.around_restore(entity)

    def after_restore(self, entity: Type[Any]) -> Any:
        return self.registry.after_restore(entity)

    def before_destroy(self, entity: Type[Any]) -> Any:
        return self.registry.before_destroy(entity)

    def around_destroy(self, entity: Type[Any]) -> Any:
        return self.registry.around_destroy(entity)

    def after_destroy(self, entity: Type[Any]) -> Any:
        return self.registry.after_destroy(entity)

    # Lifecycle

    def soft_delete(self, record: Any, use_transaction: bool = False) -> Any:
        """
        Write the deleted marker without running hooks.

        Args:
            record: Persisted record to mark deleted
            use_transaction: Run the write in its own savepoint

        Returns:
            The record

        Raises:
            NotPersistedError: If the record has never been saved
            TransactionAborted: If the transactional write failed
        """
        type_config = self._prepare(record)
        value = self._deleted_value(record, type_config)
        if use_transaction:
            with self._transaction("soft_delete", record):
                self._write_marker(record, type_config, value)
        else:
            self._write_marker(record, type_config, value)
        return record

    def delete(self, record: Any) -> Any:
        """Lightweight delete: a bare marker update, no hooks, no cascade."""
        return self.soft_delete(record, use_transaction=False)

    def destroy(self, record: Any, strict: bool = False) -> Union[Any, Literal[False]]:
        """
        Soft delete a record and its dependents, running destroy hooks.

        Args:
            record: Persisted record to destroy
            strict: Raise RecordNotDestroyed instead of returning False on halt

        Returns:
            The record, or False when a destroy hook halted

        Raises:
            NotPersistedError: If the record has never been saved
            RecordNotDestroyed: If strict and a hook halted
            TransactionAborted: If the store failed; nothing was changed
        """
        self._prepare(record)
        try:
            with self._transaction("destroy", record):
                self.destroy_within(record)
        except _Halted as halted:
            logger.info(
                f"Destroy of {type(record).__name__} {self.identity_of(record)} "
                f"halted by a {halted.phase} hook on {type(halted.record).__name__}"
            )
            if strict:
                raise RecordNotDestroyed(str(self.identity_of(record))) from None
            return False

        logger.info(f"Destroyed {type(record).__name__} {self.identity_of(record)}")
        return record

    def restore(
        self, record: Any, cascade: Optional[bool] = None
    ) -> Union[Any, Literal[False]]:
        """
        Clear the deleted marker, running restore hooks.

        Everything, including the cascade below the record, happens in one
        savepoint. A halt anywhere rolls all of it back.

        Args:
            record: Persisted record to restore
            cascade: Restore deleted dependents too (defaults to config)

        Returns:
            The record, or False when a restore hook halted

        Raises:
            NotPersistedError: If the record has never been saved
            TransactionAborted: If the store failed; nothing was changed
        """
        if cascade is None:
            cascade = self.config.cascade_restore

        self._prepare(record)
        try:
            with self._transaction("restore", record):
                self.restore_within(record, cascade=cascade)
        except _Halted as halted:
            logger.info(
                f"Restore of {type(record).__name__} {self.identity_of(record)} "
                f"halted by a {halted.phase} hook on {type(halted.record).__name__}"
            )
            return False

        logger.info(
            f"Restored {type(record).__name__} {self.identity_of(record)}"
            f"{' with dependents' if cascade else ''}"
        )
        return record

    def restore_by_id(
        self, entity: Type[Any], ident: Any, cascade: Optional[bool] = None
    ) -> Any:
        """
        Restore deleted records of ``entity`` by primary key.

        Args:
            entity: Soft deletable type
            ident: Primary key value (tuple for composite keys) or a list of them
            cascade: Restore deleted dependents too (defaults to config)

        Returns:
            The restored record (or False if halted); a list for a list of ids

        Raises:
            RecordNotFound: If an identity is not among the deleted records
        """
        if isinstance(ident, list):
            return [self.restore_by_id(entity, one_id, cascade) for one_id in ident]

        return self.restore(self._find_deleted(entity, ident), cascade=cascade)

    def restore_each_by_id(
        self,
        entity: Type[Any],
        idents: Sequence[Any],
        cascade: Optional[bool] = None,
    ) -> BulkRestoreReport:
        """
        Restore each identity independently and report per-item outcomes.

        Args:
            entity: Soft deletable type
            idents: Primary key values
            cascade: Restore deleted dependents too (defaults to config)

        Returns:
            Report of restored records, halted ids and missing ids
        """
        report = BulkRestoreReport(entity_type=entity.__name__)
        for ident in idents:
            try:
                record = self._find_deleted(entity, ident)
            except RecordNotFound:
                report.missing.append(ident)
                continue

            if self.restore(record, cascade=cascade) is False:
                report.halted.append(ident)
            else:
                report.restored.append(record)

        if report.missing:
            logger.warning(
                f"{len(report.missing)} of {report.total} {entity.__name__} "
                "identities were not found among deleted records"
            )
        return report

    def hard_destroy(self, record: Any) -> Any:
        """
        Permanently delete a record, bypassing hooks and markers.

        Args:
            record: Record to remove from the store

        Returns:
            The deleted record
        """
        self._prepare(record)
        self.session.info[HARD_DESTROY_FLAG] = True
        try:
            self.session.delete(record)
            self.session.flush()
        finally:
            self.session.info.pop(HARD_DESTROY_FLAG, None)

        logger.info(
            f"Hard destroyed {type(record).__name__} {self.identity_of(record)}"
        )
        return record

    # In-transaction steps, also used by the cascade

    def restore_within(self, record: Any, cascade: bool) -> Any:
        """Restore inside an open transaction; raises _Halted on halt."""
        type_config = self.registry.lookup(type(record))
        context = PhaseContext(
            record=record, phase=RESTORE, cascade=cascade, engine=self
        )

        def action() -> Any:
            self._write_marker(record, type_config, type_config.policy.live_value())
            if cascade:
                self.cascade.restore_dependents(record)
            return record

        result = type_config.chain(RESTORE).run(context, action)
        if result.halted:
            raise _Halted(record, RESTORE)
        return record

    def destroy_within(self, record: Any) -> Any:
        """Destroy inside an open transaction; raises _Halted on halt."""
        type_config = self.registry.lookup(type(record))
        context = PhaseContext(record=record, phase=DESTROY, cascade=True, engine=self)

        def action() -> Any:
            self.cascade.destroy_dependents(record)
            value = self._deleted_value(record, type_config)
            self._write_marker(record, type_config, value)
            return record

        result = type_config.chain(DESTROY).run(context, action)
        if result.halted:
            raise _Halted(record, DESTROY)
        return record

    # Helpers

    @staticmethod
    def identity_of(record: Any) -> Any:
        identity = inspect(record).identity
        if identity is None:
            return None
        return identity[0] if len(identity) == 1 else identity

    def _prepare(self, record: Any) -> TypeConfig:
        type_config = self.registry.lookup(type(record))
        state = inspect(record)
        if not state.has_identity:
            raise NotPersistedError(type(record).__name__)
        if state.detached:
            self.session.add(record)
        return type_config

    def _find_deleted(self, entity: Type[Any], ident: Any) -> Any:
        mapper = inspect(entity)
        values = ident if isinstance(ident, tuple) else (ident,)
        if len(values) != len(mapper.primary_key):
            raise RecordNotFound(entity.__name__, ident)

        criteria = [
            column == value for column, value in zip(mapper.primary_key, values)
        ]
        record = self.session.scalars(
            self.scope.only_deleted(entity, *criteria)
        ).one_or_none()
        if record is None:
            raise RecordNotFound(entity.__name__, ident)
        return record

    @staticmethod
    def _deleted_value(record: Any, type_config: TypeConfig) -> Any:
        # Re-deleting keeps the original deletion marker
        current = getattr(record, type_config.column)
        if type_config.policy.is_deleted(current):
            return current
        return type_config.policy.deleted_value()

    def _write_marker(self, record: Any, type_config: TypeConfig, value: Any) -> None:
        mapper = inspect(type_config.cls)
        identity = inspect(record).identity
        criteria = [
            column == key for column, key in zip(mapper.primary_key, identity)
        ]
        statement = (
            update(type_config.cls)
            .where(and_(*criteria))
            .values({type_config.attribute: value})
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(statement)
        if result.rowcount == 0:
            logger.warning(
                f"No row updated marking {type(record).__name__} {identity} "
                f"{type_config.column}={value!r}"
            )

        set_committed_value(record, type_config.column, value)
        if self._depth:
            self._touched.append((record, type_config.column))
        logger.debug(
            f"Set {type(record).__name__}.{type_config.column}={value!r} "
            f"for {self.identity_of(record)}"
        )

    @contextmanager
    def _transaction(self, operation: str, record: Any) -> Iterator[None]:
        mark = len(self._touched)
        self._depth += 1
        try:
            with self.session.begin_nested():
                yield
        except SQLAlchemyError as exc:
            self._forget(mark)
            logger.error(f"{operation} of {type(record).__name__} failed: {exc}")
            raise TransactionAborted(
                operation, str(self.identity_of(record))
            ) from exc
        except BaseException:
            self._forget(mark)
            raise
        finally:
            self._depth -= 1
            # Nothing is left to roll back once the outermost savepoint closed
            if not self._depth:
                del self._touched[mark:]

    def _forget(self, mark: int) -> None:
        # Rolled back rows no longer match the in-memory markers
        for record, key in self._touched[mark:]:
            if inspect(record).persistent:
                self.session.expire(record, [key])
        del self._touched[mark:]
