"""
Paranoia Python Toolkit - soft deletion with cascading restore for SQLAlchemy.

Records are never removed by ``destroy``; a marker column is set instead, and
ordinary queries stop seeing them. ``restore`` clears the marker again and can
follow dependent associations to bring back everything that was deleted along
with the owner.

Key Features
------------
* **Two marker schemes**: nullable timestamp or boolean flag, per record type
* **Default scope**: live-only ORM queries, with ``with_deleted``/``only_deleted``
* **Restore hooks**: before/around/after hooks for restore and destroy
* **Cascading restore**: dependents restored in the same transaction
* **Atomicity**: a failure or halted hook rolls the whole operation back

Quick Start
-----------
>>> from paranoia_toolkit import ParanoiaRegistry, SoftDeleteEngine
>>> from paranoia_toolkit.soft_delete import TimestampSoftDeleteMixin
>>>
>>> class Post(Base, TimestampSoftDeleteMixin):
...     __tablename__ = "posts"
...     id = Column(Integer, primary_key=True)
>>>
>>> registry = ParanoiaRegistry()
>>> registry.register(Post)
>>> engine = SoftDeleteEngine(session, registry)
>>> engine.destroy(post)
>>> engine.restore(post, cascade=True)
>>> session.commit()

License
-------
MIT License - See LICENSE file for details.
"""

__version__ = "1.0.0"

from .config import ColumnType, ParanoiaConfig, configure, get_config
from .soft_delete import (
    HALT,
    FlagSoftDeleteMixin,
    ParanoiaRegistry,
    SoftDeletable,
    SoftDeleteEngine,
    TimestampSoftDeleteMixin,
)

__all__ = [
    # Soft Delete
    "SoftDeleteEngine",
    "ParanoiaRegistry",
    "SoftDeletable",
    "TimestampSoftDeleteMixin",
    "FlagSoftDeleteMixin",
    "HALT",
    # Configuration
    "ParanoiaConfig",
    "ColumnType",
    "get_config",
    "configure",
]
