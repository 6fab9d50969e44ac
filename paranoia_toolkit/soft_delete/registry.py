"""
Per-type soft delete configuration.

The registry is populated once at application setup and passed to the engine.
It validates each record type up front so that misconfiguration surfaces
before any data is touched.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional, Type, Union

from sqlalchemy import Boolean, DateTime, Integer, inspect
from sqlalchemy.exc import NoInspectionAvailable
from sqlalchemy.orm import Mapper

from ..config import ParanoiaConfig, get_config
from .callbacks import DESTROY, PHASES, RESTORE, CallbackChain, HookKind
from .exceptions import ConfigurationError
from .markers import MarkerPolicy, local_now, marker_policy_for, utc_now
from .mixins import SoftDeletable
from .models import AssociationEdge, CascadeKind, ColumnType, ParanoidOptions

logger = logging.getLogger(__name__)

# SQL types accepted for each marker scheme
_COMPATIBLE_TYPES = {
    ColumnType.TIMESTAMP: (DateTime,),
    ColumnType.FLAG: (Boolean, Integer),
}


@dataclass
class TypeConfig:
    """Resolved soft delete configuration of one record type."""

    cls: Type[Any]
    options: ParanoidOptions
    policy: MarkerPolicy
    chains: Dict[str, CallbackChain] = field(default_factory=dict)

    @property
    def column(self) -> str:
        return self.options.column

    @property
    def column_type(self) -> ColumnType:
        return self.options.column_type

    @property
    def attribute(self) -> Any:
        """The instrumented marker attribute on the registered class."""
        return getattr(self.cls, self.options.column)

    def chain(self, phase: str) -> CallbackChain:
        return self.chains[phase]

    def live_criterion(self) -> Any:
        return self.policy.live_criterion(self.attribute)

    def deleted_criterion(self) -> Any:
        return self.policy.deleted_criterion(self.attribute)


class ParanoiaRegistry:
    """
    Registry of soft deletable record types.

    Usage:
        registry = ParanoiaRegistry()

        @registry.paranoid(column="deleted_at", column_type="timestamp")
        class Post(Base, SoftDeletable):
            ...

        registry.register(Comment)  # defaults from Comment.__paranoia__
    """

    def __init__(
        self,
        config: Optional[ParanoiaConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the registry.

        Args:
            config: Configuration supplying default column and column type
            clock: Optional clock for timestamp markers
        """
        self.config = config or get_config()
        self.clock = clock or (utc_now if self.config.use_utc else local_now)
        self._types: Dict[Type[Any], TypeConfig] = {}

    def __contains__(self, cls: object) -> bool:
        return isinstance(cls, type) and self._find(cls) is not None

    def __iter__(self) -> Iterator[TypeConfig]:
        return iter(list(self._types.values()))

    def __len__(self) -> int:
        return len(self._types)

    def types(self) -> List[Type[Any]]:
        return list(self._types)

    def register(
        self,
        cls: Type[Any],
        column: Optional[str] = None,
        column_type: Union[ColumnType, str, None] = None,
    ) -> TypeConfig:
        """
        Register a record type for soft delete.

        Args:
            cls: Mapped class implementing SoftDeletable
            column: Marker attribute name (defaults to ``__paranoia__`` or config)
            column_type: Marker scheme (defaults to ``__paranoia__`` or config)

        Returns:
            The resolved type configuration

        Raises:
            ConfigurationError: If the type cannot be soft deleted as configured
        """
        if not isinstance(cls, type) or not issubclass(cls, SoftDeletable):
            raise ConfigurationError(
                f"{getattr(cls, '__name__', cls)!s} does not implement SoftDeletable"
            )

        declared = getattr(cls, "__paranoia__", {}) or {}
        column = column or declared.get("column") or self.config.default_column
        raw_type = (
            column_type
            or declared.get("column_type")
            or self.config.default_column_type
        )

        policy = marker_policy_for(raw_type, clock=self.clock)
        options = ParanoidOptions(column=column, column_type=policy.column_type)

        existing = self._types.get(cls)
        if existing is not None:
            if existing.options != options:
                raise ConfigurationError(
                    f"{cls.__name__} is already paranoid on {existing.column} "
                    f"({existing.column_type.value}); cannot reconfigure it as "
                    f"{options.column} ({options.column_type.value})"
                )
            return existing

        self._check_column(cls, options)

        type_config = TypeConfig(
            cls=cls,
            options=options,
            policy=policy,
            chains={phase: CallbackChain(phase) for phase in PHASES},
        )
        self._types[cls] = type_config
        logger.debug(
            f"Registered {cls.__name__} as paranoid on "
            f"{options.column} ({options.column_type.value})"
        )
        return type_config

    def paranoid(
        self,
        column: Optional[str] = None,
        column_type: Union[ColumnType, str, None] = None,
    ) -> Callable[[Type[Any]], Type[Any]]:
        """Class decorator form of ``register``."""

        def decorator(cls: Type[Any]) -> Type[Any]:
            self.register(cls, column=column, column_type=column_type)
            return cls

        return decorator

    def lookup(self, cls: Type[Any]) -> TypeConfig:
        """
        Get the configuration for a record type or one of its subclasses.

        Raises:
            ConfigurationError: If the type is not registered
        """
        found = self._find(cls)
        if found is None:
            raise ConfigurationError(f"{cls.__name__} is not configured as paranoid")
        return found

    def is_paranoid(self, obj: Any) -> bool:
        """Capability probe for a record or record type."""
        cls = obj if isinstance(obj, type) else type(obj)
        return issubclass(cls, SoftDeletable) and cls in self

    def add_hook(
        self,
        cls: Type[Any],
        phase: str,
        kind: Union[HookKind, str],
        func: Callable[..., Any],
    ) -> Callable[..., Any]:
        """Register a hook for a phase of a record type."""
        if phase not in PHASES:
            raise ConfigurationError(
                f"Unknown phase {phase!r}; expected one of {', '.join(PHASES)}"
            )
        return self.lookup(cls).chain(phase).register(HookKind(kind), func)

    def before_restore(self, cls: Type[Any]) -> Callable[..., Any]:
        return self._hook_decorator(cls, RESTORE, HookKind.BEFORE)

    def around_restore(self, cls: Type[Any]) -> Callable[..., Any]:
        return self._hook_decorator(cls, RESTORE, HookKind.AROUND)

    def after_restore(self, cls: Type[Any]) -> Callable[..., Any]:
        return self._hook_decorator(cls, RESTORE, HookKind.AFTER)

    def before_destroy(self, cls: Type[Any]) -> Callable[..., Any]:
        return self._hook_decorator(cls, DESTROY, HookKind.BEFORE)

    def around_destroy(self, cls: Type[Any]) -> Callable[..., Any]:
        return self._hook_decorator(cls, DESTROY, HookKind.AROUND)

    def after_destroy(self, cls: Type[Any]) -> Callable[..., Any]:
        return self._hook_decorator(cls, DESTROY, HookKind.AFTER)

    def associations(self, cls: Type[Any]) -> List[AssociationEdge]:
        """
        List the association edges of a mapped type in declared order.

        A relationship whose cascade includes ``delete`` is a destroy edge.
        """
        mapper = self._mapper(cls)
        edges = []
        for rel in mapper.relationships:
            edges.append(
                AssociationEdge(
                    owner_type=cls,
                    name=rel.key,
                    dependent_type=rel.mapper.class_,
                    cascade_kind=(
                        CascadeKind.DESTROY if rel.cascade.delete else CascadeKind.NONE
                    ),
                    uselist=bool(rel.uselist),
                )
            )
        return edges

    def _hook_decorator(
        self, cls: Type[Any], phase: str, kind: HookKind
    ) -> Callable[..., Any]:
        chain = self.lookup(cls).chain(phase)

        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            return chain.register(kind, func)

        return decorator

    def _find(self, cls: Type[Any]) -> Optional[TypeConfig]:
        for base in cls.__mro__:
            if base in self._types:
                return self._types[base]
        return None

    @staticmethod
    def _mapper(cls: Type[Any]) -> Mapper[Any]:
        try:
            return inspect(cls)
        except NoInspectionAvailable:
            raise ConfigurationError(f"{cls.__name__} is not a mapped class") from None

    def _check_column(self, cls: Type[Any], options: ParanoidOptions) -> None:
        mapper = self._mapper(cls)
        if options.column not in mapper.column_attrs:
            raise ConfigurationError(
                f"{cls.__name__} has no mapped column {options.column!r}"
            )

        attr = mapper.column_attrs[options.column]
        sql_type = attr.columns[0].type
        accepted = _COMPATIBLE_TYPES[options.column_type]
        if not isinstance(sql_type, accepted):
            raise ConfigurationError(
                f"{cls.__name__}.{options.column} is {sql_type!r}; a "
                f"{options.column_type.value} marker needs "
                f"{' or '.join(t.__name__ for t in accepted)}"
            )
