"""
Handler registry keyed by structured event paths.

Architecture:
- Stores handler callables under a (family, type, target) key
- Keeps insertion order per key, which is also invocation order
- Treats wildcard and literal targets as distinct keys
- Performs no reentrancy guarding; the transition lifecycle owns that

Dependencies:
- types.py: Event families and wildcard constant
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

from flowstate.core.types import WILDCARD, EventFamily, Handler


@dataclass(frozen=True)
class HandlerKey:
    """Structured address of a group of handlers.

    ``target`` is a state or action name (or ``"*"``) for the ``state`` and
    ``action`` families and ``None`` for ``system`` and ``transition``.
    """

    family: EventFamily
    type: str
    target: Optional[str] = None

    def __post_init__(self) -> None:
        if self.family.has_targets and self.target is None:
            raise ValueError(f"{self.family.value} handlers need a target")
        if not self.family.has_targets and self.target is not None:
            raise ValueError(f"{self.family.value} handlers take no target")

    @classmethod
    def system(cls, type: str) -> "HandlerKey":
        return cls(EventFamily.SYSTEM, type)

    @classmethod
    def lifecycle(cls, type: str) -> "HandlerKey":
        return cls(EventFamily.TRANSITION, type)

    @classmethod
    def state(cls, name: str, type: str) -> "HandlerKey":
        return cls(EventFamily.STATE, type, name)

    @classmethod
    def action(cls, name: str, type: str) -> "HandlerKey":
        return cls(EventFamily.ACTION, type, name)

    @property
    def is_wildcard(self) -> bool:
        return self.target == WILDCARD

    def as_wildcard(self) -> "HandlerKey":
        """Return the ``*`` key of the same family and type."""
        return HandlerKey(self.family, self.type, WILDCARD)

    @property
    def path(self) -> str:
        """Dotted representation, e.g. ``state.intro.leave``."""
        if self.target is None:
            return f"{self.family.value}.{self.type}"
        return f"{self.family.value}.{self.target}.{self.type}"

    def __str__(self) -> str:
        return self.path


class HandlerRegistry:
    """Ordered multimap from HandlerKey to handler callables.

    Class Invariants:
    1. Registering never overwrites existing handlers
    2. Invocation order equals registration order
    3. Dispatching to a key with no handlers is a no-op
    """

    def __init__(self) -> None:
        self._handlers: Dict[HandlerKey, List[Handler]] = {}

    def register(self, key: HandlerKey, handler: Handler) -> None:
        """Append a handler at ``key``.

        Args:
            key: Structured event path
            handler: Callable receiving the event payload
        """
        self._handlers.setdefault(key, []).append(handler)

    def unregister(self, key: HandlerKey, handler: Optional[Handler] = None) -> int:
        """Remove one handler, or every handler when ``handler`` is None.

        Returns:
            Number of handlers removed
        """
        handlers = self._handlers.get(key)
        if not handlers:
            return 0
        if handler is None:
            removed = len(handlers)
            del self._handlers[key]
            return removed
        kept = [h for h in handlers if h != handler]
        removed = len(handlers) - len(kept)
        if kept:
            self._handlers[key] = kept
        else:
            del self._handlers[key]
        return removed

    def handlers_for(self, key: HandlerKey) -> List[Handler]:
        """Get a snapshot of the handlers registered at ``key``."""
        return list(self._handlers.get(key, ()))

    def dispatch(self, key: HandlerKey, event: Any) -> None:
        """Invoke every handler at ``key`` with ``event``, in order."""
        for handler in self.handlers_for(key):
            handler(event)

    def clear(self) -> None:
        self._handlers.clear()

    def keys(self) -> Iterator[HandlerKey]:
        return iter(list(self._handlers))

    def __contains__(self, key: object) -> bool:
        return key in self._handlers

    def __len__(self) -> int:
        return sum(len(handlers) for handlers in self._handlers.values())
