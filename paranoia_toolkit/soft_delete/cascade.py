"""
Cascading restore (and destroy) along dependent associations.

Only relationships whose cascade includes ``delete`` are followed. Cycles in
the association graph are not detected.
"""

import logging
from typing import TYPE_CHECKING, Any, List

from sqlalchemy.orm import with_parent

from .models import AssociationEdge

if TYPE_CHECKING:
    from .engine import SoftDeleteEngine

logger = logging.getLogger(__name__)


class CascadeRestorer:
    """Walks destroy edges of a record and applies the engine to its dependents."""

    def __init__(self, engine: "SoftDeleteEngine"):
        self.engine = engine

    @property
    def registry(self) -> Any:
        return self.engine.registry

    def dependent_edges(self, record: Any) -> List[AssociationEdge]:
        """Destroy edges of the record's type, in declared order."""
        return [
            edge for edge in self.registry.associations(type(record)) if edge.cascades
        ]

    def restore_dependents(self, record: Any) -> List[Any]:
        """
        Restore deleted, soft deletable dependents of ``record``.

        Runs inside the caller's transaction. Each dependent is restored with
        ``cascade=True`` so the walk continues below it.

        Args:
            record: Owner whose dependents should be restored

        Returns:
            The dependents restored directly under ``record``
        """
        restored: List[Any] = []
        for edge in self.dependent_edges(record):
            if not self.registry.is_paranoid(edge.dependent_type):
                logger.debug(
                    f"Skipping {edge.name}: {edge.dependent_type.__name__} "
                    "is not soft deletable"
                )
                continue

            dependents = self._scalars(
                self.engine.scope.only_deleted(
                    edge.dependent_type, self._relation(record, edge)
                )
            )
            logger.debug(
                f"Restoring {len(dependents)} {edge.name} of "
                f"{type(record).__name__} {self.engine.identity_of(record)}"
            )
            for dependent in dependents:
                self.engine.restore_within(dependent, cascade=True)
                restored.append(dependent)
        return restored

    def destroy_dependents(self, record: Any) -> List[Any]:
        """
        Destroy the live dependents of ``record``.

        Soft deletable dependents go through the engine's destroy; others are
        deleted from the session as the ORM delete cascade would.

        Args:
            record: Owner being destroyed

        Returns:
            The dependents destroyed directly under ``record``
        """
        destroyed: List[Any] = []
        for edge in self.dependent_edges(record):
            if self.registry.is_paranoid(edge.dependent_type):
                dependents = self._scalars(
                    self.engine.scope.default_scope(
                        edge.dependent_type, self._relation(record, edge)
                    )
                )
                for dependent in dependents:
                    self.engine.destroy_within(dependent)
                    destroyed.append(dependent)
                continue

            related = getattr(record, edge.name)
            if related is None:
                continue
            items = list(related) if edge.uselist else [related]
            for item in items:
                self.engine.session.delete(item)
                destroyed.append(item)

        logger.debug(
            f"Destroyed {len(destroyed)} dependents of "
            f"{type(record).__name__} {self.engine.identity_of(record)}"
        )
        return destroyed

    def _scalars(self, statement: Any) -> List[Any]:
        return list(self.engine.session.scalars(statement).all())

    @staticmethod
    def _relation(record: Any, edge: AssociationEdge) -> Any:
        return with_parent(record, getattr(type(record), edge.name))
