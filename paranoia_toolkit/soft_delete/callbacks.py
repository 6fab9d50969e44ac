"""
Phase callback chains for soft delete lifecycle operations.

A chain holds the before, around and after hooks registered for one phase
(``restore`` or ``destroy``) of one record type and runs them around a core
action.

Usage:
    chain = CallbackChain("restore")

    @chain.before
    def check_parent(context):
        if context.record.parent_id is None:
            return HALT

    @chain.around
    def timed(context, proceed):
        started = time.monotonic()
        result = proceed()
        print(time.monotonic() - started)
        return result

    result = chain.run(context, action)
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

RESTORE = "restore"
DESTROY = "destroy"
PHASES = (RESTORE, DESTROY)


class HookKind(str, Enum):
    """Stages a hook can be registered for."""

    BEFORE = "before"
    AROUND = "around"
    AFTER = "after"


class HookSignal(Enum):
    """Values a before hook may return to steer the chain."""

    CONTINUE = "continue"
    HALT = "halt"


HALT = HookSignal.HALT
CONTINUE = HookSignal.CONTINUE


@dataclass
class PhaseContext:
    """Per-call value handed to every hook of a chain."""

    record: Any
    phase: str
    cascade: bool = False
    engine: Optional[Any] = None
    extras: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Hook:
    """A registered hook."""

    kind: HookKind
    func: Callable[..., Any]

    @property
    def name(self) -> str:
        return getattr(self.func, "__qualname__", repr(self.func))


@dataclass
class ChainResult:
    """Outcome of running a chain."""

    halted: bool
    value: Any = None
    halted_by: Optional[str] = None

    def __bool__(self) -> bool:
        return not self.halted


class CallbackChain:
    """Ordered before/around/after hooks for one phase."""

    def __init__(self, phase: str):
        self.phase = phase
        self._hooks: List[Hook] = []

    def __len__(self) -> int:
        return len(self._hooks)

    def __repr__(self) -> str:
        return f"<CallbackChain {self.phase} hooks={len(self._hooks)}>"

    def hooks(self, kind: HookKind) -> List[Hook]:
        return [hook for hook in self._hooks if hook.kind == kind]

    def register(self, kind: HookKind, func: Callable[..., Any]) -> Callable[..., Any]:
        """
        Register a hook.

        Args:
            kind: Stage of the hook
            func: Hook callable; returned unchanged so this works as a decorator

        Returns:
            The registered callable
        """
        if not callable(func):
            raise TypeError(f"{self.phase} hook must be callable, got {func!r}")
        self._hooks.append(Hook(HookKind(kind), func))
        return func

    def before(self, func: Callable[..., Any]) -> Callable[..., Any]:
        return self.register(HookKind.BEFORE, func)

    def around(self, func: Callable[..., Any]) -> Callable[..., Any]:
        return self.register(HookKind.AROUND, func)

    def after(self, func: Callable[..., Any]) -> Callable[..., Any]:
        return self.register(HookKind.AFTER, func)

    def run(self, context: Any, action: Callable[[], Any]) -> ChainResult:
        """
        Run the chain around ``action``.

        Before hooks run in registration order; any of them returning ``HALT``
        stops the chain. Around hooks wrap the action, the first registered
        being outermost; one that never calls ``proceed`` halts the chain.
        After hooks run in registration order once the action completed.

        Args:
            context: Value passed to every hook
            action: Core action of the phase

        Returns:
            ChainResult with the action's return value, or halted
        """
        for hook in self.hooks(HookKind.BEFORE):
            if hook.func(context) is HALT:
                logger.info(f"{self.phase} chain halted by before hook {hook.name}")
                return ChainResult(halted=True, halted_by=hook.name)

        completed: List[Any] = []

        def core() -> Any:
            value = action()
            completed.append(value)
            return value

        proceed: Callable[[], Any] = core
        for hook in reversed(self.hooks(HookKind.AROUND)):
            proceed = self._wrap(hook, context, proceed)

        proceed()

        if not completed:
            logger.info(f"{self.phase} chain halted by an around hook")
            return ChainResult(halted=True, halted_by=HookKind.AROUND.value)

        for hook in self.hooks(HookKind.AFTER):
            hook.func(context)

        return ChainResult(halted=False, value=completed[0])

    @staticmethod
    def _wrap(
        hook: Hook, context: Any, proceed: Callable[[], Any]
    ) -> Callable[[], Any]:
        def layer() -> Any:
            return hook.func(context, proceed)

        return layer
