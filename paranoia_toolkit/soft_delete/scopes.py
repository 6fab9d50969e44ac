"""
Query visibility of soft deleted records.

``VisibilityScope`` builds ``select()`` statements that show live records,
deleted records, or both, and installs the default live-only filter on a
session so that ordinary ORM queries never see deleted rows.
"""

import logging
from typing import Any, List, Type, Union

from sqlalchemy import Select, event, select
from sqlalchemy.orm import ORMExecuteState, Session, sessionmaker, with_loader_criteria

from .mixins import HARD_DESTROY_FLAG
from .models import Visibility
from .registry import ParanoiaRegistry

logger = logging.getLogger(__name__)

# Execution option naming the visibility a statement was built with
SCOPE_OPTION = "paranoia_scope"


class VisibilityScope:
    """
    Builds scoped queries for the types of a registry.

    Usage:
        scope = VisibilityScope(registry)
        scope.install(session)

        session.scalars(select(Post)).all()  # live posts only
        session.scalars(scope.only_deleted(Post)).all()
        session.scalars(scope.with_deleted(Post, Post.author == "ada")).all()
    """

    def __init__(self, registry: ParanoiaRegistry):
        self.registry = registry
        # Kept as one object so event.contains() recognises it
        self._listener = self._apply_default_scope

    def default_scope(self, entity: Type[Any], *criteria: Any) -> Select[Any]:
        """Select live records of ``entity`` matching ``criteria``."""
        return self.scoped(select(entity), entity, Visibility.DEFAULT, *criteria)

    def with_deleted(self, entity: Type[Any], *criteria: Any) -> Select[Any]:
        """Select live and deleted records of ``entity`` matching ``criteria``."""
        return self.scoped(select(entity), entity, Visibility.WITH_DELETED, *criteria)

    def only_deleted(self, entity: Type[Any], *criteria: Any) -> Select[Any]:
        """Select deleted records of ``entity`` matching ``criteria``."""
        return self.scoped(select(entity), entity, Visibility.ONLY_DELETED, *criteria)

    deleted = only_deleted

    def scoped(
        self,
        statement: Select[Any],
        entity: Type[Any],
        visibility: Union[Visibility, str],
        *criteria: Any,
    ) -> Select[Any]:
        """
        Apply a visibility to an existing statement.

        Args:
            statement: Caller-built select
            entity: Soft deletable type the visibility applies to
            visibility: One of default, with_deleted, only_deleted
            *criteria: Extra criteria ANDed into the statement

        Returns:
            The scoped statement, marked so the default filter skips it
        """
        visibility = Visibility(visibility)
        type_config = self.registry.lookup(entity)

        if criteria:
            statement = statement.where(*criteria)
        if visibility is Visibility.DEFAULT:
            statement = statement.where(type_config.live_criterion())
        elif visibility is Visibility.ONLY_DELETED:
            statement = statement.where(type_config.deleted_criterion())

        return statement.execution_options(**{SCOPE_OPTION: visibility.value})

    def install(self, target: Union[Session, sessionmaker[Any], Type[Session]]) -> None:
        """
        Apply the live-only filter to every ORM SELECT run through ``target``.

        Top-level selects, ``Session.get()`` and relationship loads are
        filtered. The identity map is not: ``Session.get()`` returns a record
        already present in the session without emitting SQL, even if it was
        deleted since it was loaded.

        Args:
            target: A Session, a sessionmaker, or a Session class
        """
        if not event.contains(target, "do_orm_execute", self._listener):
            event.listen(target, "do_orm_execute", self._listener)

    def uninstall(
        self, target: Union[Session, sessionmaker[Any], Type[Session]]
    ) -> None:
        if event.contains(target, "do_orm_execute", self._listener):
            event.remove(target, "do_orm_execute", self._listener)

    def loader_criteria(self) -> List[Any]:
        """Loader options restricting every registered type to live rows."""
        return [
            with_loader_criteria(
                type_config.cls, type_config.live_criterion(), include_aliases=True
            )
            for type_config in self.registry
        ]

    def _apply_default_scope(self, execute_state: ORMExecuteState) -> None:
        # Lazy and eager loads are filtered too, however the owner was loaded
        if not execute_state.is_select or execute_state.is_column_load:
            return
        if SCOPE_OPTION in execute_state.execution_options:
            return
        # hard_destroy must reach deleted dependents through the ORM cascade
        if execute_state.session.info.get(HARD_DESTROY_FLAG):
            return

        options = self.loader_criteria()
        if options:
            execute_state.statement = execute_state.statement.options(*options)
