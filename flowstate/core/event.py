"""
Event taxonomy, event id parsing and handler payloads.

Architecture:
- Defines the fixed taxonomy of families and event types
- Parses terse subscription ids into structured descriptors
- Infers the family from aliases or from known state/action names
- Provides the payload objects passed to handlers

Event id grammar:
    [family.]type[:target target ...]
    [family.]type[:(target target ...)]
    family.target.type               (state and action families only)
    @action                          (shorthand for action.start:action)

Resolution order for ids without an explicit family:
1. Alias table (``leave`` -> state, ``start`` -> action, ...)
2. A known state name -> ``state.leave:<name>``
3. A known action name -> ``action.end:<name>``
4. Otherwise the id cannot be resolved

Dependencies:
- registry.py: HandlerKey produced for each target
- errors.py: ConfigurationError for ungrammatical ids
"""

import re
from dataclasses import dataclass, field
from typing import Any, Collection, Dict, FrozenSet, List, Optional, Tuple

from flowstate.core.errors import ConfigurationError
from flowstate.core.registry import HandlerKey
from flowstate.core.types import WILDCARD, EventFamily

EVENT_TYPES: Dict[EventFamily, FrozenSet[str]] = {
    EventFamily.SYSTEM: frozenset({"initialize", "change", "update", "complete", "reset"}),
    EventFamily.ACTION: frozenset({"start", "end"}),
    EventFamily.STATE: frozenset({"leave", "enter", "add", "remove"}),
    EventFamily.TRANSITION: frozenset({"start", "pause", "resume", "cancel", "end"}),
}

# Event types are unique enough to be used without their family
EVENT_ALIASES: Dict[str, EventFamily] = {
    "start": EventFamily.ACTION,
    "end": EventFamily.ACTION,
    "leave": EventFamily.STATE,
    "enter": EventFamily.STATE,
    "add": EventFamily.STATE,
    "remove": EventFamily.STATE,
    "pause": EventFamily.TRANSITION,
    "resume": EventFamily.TRANSITION,
    "cancel": EventFamily.TRANSITION,
    "change": EventFamily.SYSTEM,
    "update": EventFamily.SYSTEM,
    "complete": EventFamily.SYSTEM,
    "reset": EventFamily.SYSTEM,
}

_NAME = r"[\w-]+"
_HEAD_PATTERN = re.compile(rf"^(?:({_NAME})\.(?:({_NAME}|\*)\.)?)?({_NAME})$")
_SHORTCUT_PATTERN = re.compile(rf"^@({_NAME})$")
_TARGET_PATTERN = re.compile(r"[^\s,()]+")


@dataclass(frozen=True)
class EventDescriptor:
    """Parsed form of an event id.

    ``targets`` is empty for the ``system`` and ``transition`` families and
    holds at least one name (possibly ``"*"``) for the other two.
    """

    family: EventFamily
    type: str
    targets: Tuple[str, ...] = ()

    def keys(self) -> List[HandlerKey]:
        """One registry key per target."""
        if not self.family.has_targets:
            return [HandlerKey(self.family, self.type)]
        return [HandlerKey(self.family, self.type, target) for target in self.targets]


@dataclass(frozen=True)
class _RawEventId:
    """Grammatical pieces of an id before any family inference."""

    family: Optional[str]
    type: str
    targets: Tuple[str, ...]
    dotted: bool = False


def _split_targets(event_id: str, text: str) -> Tuple[str, ...]:
    text = text.strip()
    if text.startswith("(") or text.endswith(")"):
        if not (text.startswith("(") and text.endswith(")")):
            raise ConfigurationError(f"Unbalanced target group in event id '{event_id}'")
        text = text[1:-1]
    # an empty list falls back to the wildcard, like an absent one
    return tuple(_TARGET_PATTERN.findall(text))


def _tokenize(event_id: str) -> _RawEventId:
    shortcut = _SHORTCUT_PATTERN.match(event_id.strip())
    if shortcut:
        return _RawEventId(EventFamily.ACTION.value, "start", (shortcut.group(1),))

    head, sep, tail = event_id.partition(":")
    match = _HEAD_PATTERN.match(head.strip())
    if not match:
        raise ConfigurationError(f"Invalid event id '{event_id}'")
    family, middle, type_ = match.groups()
    targets = _split_targets(event_id, tail) if sep else ()

    if middle is not None:
        # family.target.type, the dotted path form
        if targets:
            raise ConfigurationError(f"Event id '{event_id}' names its target twice")
        return _RawEventId(family, type_, (middle,), dotted=True)
    return _RawEventId(family, type_, targets)


def _family_for(event_id: str, name: str) -> EventFamily:
    try:
        return EventFamily(name)
    except ValueError:
        raise ConfigurationError(
            f"Unknown event family '{name}' in event id '{event_id}'"
        ) from None


def parse_event_id(
    event_id: str,
    states: Collection[str] = (),
    actions: Collection[str] = (),
) -> Optional[EventDescriptor]:
    """Parse an event id into an EventDescriptor.

    Args:
        event_id: Subscription id, e.g. ``"enter:intro summary"``
        states: Known state names, used to infer ``state.leave`` ids
        actions: Known action names, used to infer ``action.end`` ids

    Returns:
        The descriptor, or None when the id is grammatical but cannot be
        mapped to an event type or a known state/action

    Raises:
        ConfigurationError: If the id does not follow the grammar, names an
            unknown family, or pairs a family with a type it does not have
    """
    if not isinstance(event_id, str) or not event_id.strip():
        raise ConfigurationError(f"Invalid event id {event_id!r}")

    raw = _tokenize(event_id)
    targets = raw.targets

    if raw.family is not None:
        family = _family_for(event_id, raw.family)
        if raw.dotted and not family.has_targets:
            raise ConfigurationError(
                f"Event family '{family.value}' takes no target (id '{event_id}')"
            )
        type_ = raw.type
    elif raw.type in EVENT_ALIASES:
        family = EVENT_ALIASES[raw.type]
        type_ = raw.type
    elif raw.type in states:
        family, type_, targets = EventFamily.STATE, "leave", (raw.type,)
    elif raw.type in actions:
        family, type_, targets = EventFamily.ACTION, "end", (raw.type,)
    else:
        return None

    if type_ not in EVENT_TYPES[family]:
        raise ConfigurationError(
            f"Event family '{family.value}' has no event '{type_}' (id '{event_id}')"
        )

    if family.has_targets:
        return EventDescriptor(family, type_, targets or (WILDCARD,))
    return EventDescriptor(family, type_)


@dataclass(frozen=True)
class Event:
    """Payload handed to every handler.

    Attributes:
        family: Event family
        type: Event type within the family, e.g. ``enter``
        machine: The StateMachine that emitted the event
        target: State or action name for state/action events
    """

    family: EventFamily
    type: str
    machine: Any = field(default=None, repr=False, compare=False)
    target: Optional[str] = None

    @property
    def path(self) -> str:
        if self.target is None:
            return f"{self.family.value}.{self.type}"
        return f"{self.family.value}.{self.target}.{self.type}"


@dataclass(frozen=True)
class SystemEvent(Event):
    """Machine-wide notification (initialize, change, complete, reset)."""

    state: str = ""


@dataclass(frozen=True)
class TransitionEvent(Event):
    """Notification tied to a transition: its lifecycle, actions and states."""

    action: str = ""
    from_state: str = ""
    to_state: str = ""
    args: Tuple[Any, ...] = ()
