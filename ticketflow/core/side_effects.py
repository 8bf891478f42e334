"""Post-commit side effects (push, outbound messages, kanban mirroring).

Effects are collected while a transaction is open and executed only after
it committed. Each effect runs at most once; a failing effect is logged and
never propagates to the operation that queued it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)


@dataclass
class _Effect:
    name: str
    fn: Callable[..., Any]
    args: tuple = ()
    kwargs: dict = field(default_factory=dict)


class SideEffectQueue:
    """Ordered, at-most-once queue of best-effort callables."""

    def __init__(self) -> None:
        self._effects: list[_Effect] = []
        self._ran = False

    def add(self, name: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        if self._ran:
            raise RuntimeError("side effect queue already ran")
        self._effects.append(_Effect(name=name, fn=fn, args=args, kwargs=kwargs))

    def extend(self, other: "SideEffectQueue") -> None:
        for effect in other._effects:
            self._effects.append(effect)
        other._effects = []

    def discard(self) -> None:
        self._effects = []

    @property
    def names(self) -> list[str]:
        return [effect.name for effect in self._effects]

    def __len__(self) -> int:
        return len(self._effects)

    def run(self) -> int:
        """Execute queued effects in order. Returns the number that failed."""
        if self._ran:
            return 0
        self._ran = True
        failures = 0
        effects, self._effects = self._effects, []
        for effect in effects:
            try:
                effect.fn(*effect.args, **effect.kwargs)
            except Exception:
                failures += 1
                logger.warning("side_effect_failed name=%s", effect.name, exc_info=True)
        return failures
