"""
Type definitions and enums for the state machine.

This module contains shared type definitions and enums used across
the state machine implementation. It helps break circular dependencies
between modules and provides a central location for type information.

Design:
- No runtime dependencies on other modules
- Only contains type definitions and enums
- Used by event.py, config.py and transition.py
- Provides type hints for static analysis
"""

from enum import Enum, auto
from typing import Any, Callable


class EventFamily(Enum):
    """Top-level category of every event the machine emits.

    The value is the textual prefix used in event ids.
    """

    SYSTEM = "system"  # Machine-wide notifications
    ACTION = "action"  # Per-action start/end
    STATE = "state"  # Per-state leave/enter
    TRANSITION = "transition"  # Lifecycle of the in-flight transition

    @property
    def has_targets(self) -> bool:
        """Whether handlers of this family are keyed by a state/action name."""
        return self in (EventFamily.ACTION, EventFamily.STATE)


class TransitionPhase(Enum):
    """Defines the phases a single transition moves through.

    Used by the lifecycle driver to know which group of handlers is running.
    """

    PENDING = auto()  # Created, no handler run yet
    LEAVE = auto()  # state.<from>.leave handlers
    START = auto()  # action.<name>.start handlers
    APPLY = auto()  # Committing the new state
    ENTER = auto()  # state.<to>.enter handlers
    END = auto()  # action.<name>.end handlers
    COMPLETE = auto()  # Finished, naturally or forced
    CANCELLED = auto()  # Discarded

    @property
    def is_terminal(self) -> bool:
        return self in (TransitionPhase.COMPLETE, TransitionPhase.CANCELLED)


class RuleOperator(Enum):
    """Operators allowed between states in a shorthand rule."""

    FORWARD = ">"
    BACKWARD = "<"
    BOTH = "-"


class RuleKind(Enum):
    """Shape of a parsed shorthand rule."""

    DIRECTED = auto()  # a > b or a < b
    BIDIRECTIONAL = auto()  # a - b
    CHAINED = auto()  # a > b > c ...


WILDCARD = "*"

# Type aliases for common types
Handler = Callable[[Any], Any]
Resolver = Callable[..., str]
