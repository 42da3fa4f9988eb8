"""
Workflow configuration and rule compilation.

Architecture:
- Defines the configuration record a machine is built from
- Parses shorthand rule strings into a small rule AST
- Expands chained and bidirectional rules into directed rules
- Compiles directed rules into the machine's lookup tables

Shorthand rule grammar:
    name (|:|=) from (>|<|-) to [(same operator) to ...]

    ``>`` is directed (from -> to), ``<`` reverses the operands and ``-``
    produces one rule in each direction. A chain applies the rule to every
    adjacent pair of states.

Compiled tables:
- states: ordered, duplicate-free list of state names
- actions: (action, from_state) -> Fixed(state) | Resolved(callback)
- transitions: state -> [action, ...] permitted from that state

Dependencies:
- types.py: Rule operators and kinds
- errors.py: ConfigurationError for malformed definitions
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from flowstate.core.errors import ConfigurationError
from flowstate.core.types import Handler, Resolver, RuleKind, RuleOperator

_RULE_PATTERN = re.compile(r"^\s*(\w+)\s*[|:=]\s*(\w+)\s*([<>-])\s*(\w.*?)\s*$")
_CHAIN_SPLIT = re.compile(r"\s*([<>-])\s*")
_STATE_TOKEN = re.compile(r"^\w+$")


@dataclass(frozen=True)
class Fixed:
    """Action target known at configuration time."""

    state: str


@dataclass(frozen=True)
class Resolved:
    """Action target computed by a callback when the transition starts.

    The callback receives the machine followed by the arguments passed to
    ``do()`` and must return a known state name.
    """

    resolver: Resolver


ActionTarget = Union[Fixed, Resolved]


def as_target(value: Union[str, Resolver, Fixed, Resolved]) -> ActionTarget:
    """Wrap a raw ``to`` value in its tagged variant."""
    if isinstance(value, (Fixed, Resolved)):
        return value
    if isinstance(value, str):
        return Fixed(value)
    if callable(value):
        return Resolved(value)
    raise ConfigurationError(f"Transition target must be a state name or a callable, got {value!r}")


@dataclass(frozen=True)
class TransitionRule:
    """A single directed rule: ``name`` moves ``from_state`` to ``to``."""

    name: str
    from_state: str
    to: Union[str, Resolver]

    @classmethod
    def from_mapping(cls, record: Mapping[str, Any]) -> "TransitionRule":
        """Build a rule from a ``{name, from, to}`` record.

        Raises:
            ConfigurationError: If a field is missing or has the wrong type
        """
        missing = [key for key in ("name", "from", "to") if key not in record]
        if missing:
            raise ConfigurationError(f"Transition rule {dict(record)!r} is missing {', '.join(missing)}")
        name, from_state, to = record["name"], record["from"], record["to"]
        if not isinstance(name, str) or not name:
            raise ConfigurationError(f"Transition rule name must be a non-empty string, got {name!r}")
        if not isinstance(from_state, str) or not from_state:
            raise ConfigurationError(f"Transition rule '{name}' needs a 'from' state name, got {from_state!r}")
        if not (isinstance(to, str) and to) and not callable(to):
            raise ConfigurationError(f"Transition rule '{name}' needs a 'to' state name or callable, got {to!r}")
        return cls(name, from_state, to)


@dataclass(frozen=True)
class ShorthandRule:
    """Parsed form of a shorthand rule string."""

    name: str
    operator: RuleOperator
    states: Tuple[str, ...]

    @property
    def kind(self) -> RuleKind:
        if len(self.states) > 2:
            return RuleKind.CHAINED
        if self.operator is RuleOperator.BOTH:
            return RuleKind.BIDIRECTIONAL
        return RuleKind.DIRECTED

    def expand(self) -> List[TransitionRule]:
        """Expand into directed rules, one per adjacent pair (two for ``-``)."""
        rules = []
        for left, right in zip(self.states, self.states[1:]):
            if self.operator is RuleOperator.FORWARD:
                rules.append(TransitionRule(self.name, left, right))
            elif self.operator is RuleOperator.BACKWARD:
                rules.append(TransitionRule(self.name, right, left))
            else:
                rules.append(TransitionRule(self.name, left, right))
                rules.append(TransitionRule(self.name, right, left))
        return rules


def parse_shorthand(text: str) -> ShorthandRule:
    """Parse a rule such as ``"next: intro > settings > summary"``.

    Raises:
        ConfigurationError: If the string does not match the grammar or
            mixes operators within one chain
    """
    match = _RULE_PATTERN.match(text)
    if not match:
        raise ConfigurationError(f"Invalid transition shorthand '{text}'")
    name, first, op, rest = match.groups()

    parts = _CHAIN_SPLIT.split(rest)
    states = [first] + parts[0::2]
    operators = {op} | set(parts[1::2])
    if len(operators) > 1:
        raise ConfigurationError(f"Transition shorthand '{text}' mixes operators {sorted(operators)}")
    bad = [state for state in states if not _STATE_TOKEN.match(state)]
    if bad:
        raise ConfigurationError(f"Invalid state name(s) {bad} in transition shorthand '{text}'")
    return ShorthandRule(name, RuleOperator(op), tuple(states))


def parse_rule(rule: Union[str, Mapping[str, Any], TransitionRule, ShorthandRule]) -> List[TransitionRule]:
    """Normalise any accepted rule form into directed rules."""
    if isinstance(rule, TransitionRule):
        return [rule]
    if isinstance(rule, ShorthandRule):
        return rule.expand()
    if isinstance(rule, str):
        return parse_shorthand(rule).expand()
    if isinstance(rule, Mapping):
        return [TransitionRule.from_mapping(rule)]
    raise ConfigurationError(f"Unsupported transition rule {rule!r}")


@dataclass
class MachineConfig:
    """Declarative definition of a workflow.

    Attributes:
        events: Ordered transition rules, structured or shorthand
        initial: Initial state; defaults to the first discovered state
        final: State that marks the workflow as complete
        defer: Leave the machine unstarted until reset() sets a state
        handlers: Event id -> handler or list of handlers
        debug: Report diagnostics through logging
    """

    events: List[Any] = field(default_factory=list)
    initial: Optional[str] = None
    final: Optional[str] = None
    defer: bool = False
    handlers: Dict[str, Union[Handler, Sequence[Handler]]] = field(default_factory=dict)
    debug: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MachineConfig":
        """Create a config from a plain mapping with the same keys.

        Raises:
            ConfigurationError: If the mapping has unknown keys or no events
        """
        known = {"events", "initial", "final", "defer", "handlers", "debug"}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
        if "events" not in data:
            raise ConfigurationError("Configuration requires an 'events' list")
        return cls(
            events=list(data["events"]),
            initial=data.get("initial"),
            final=data.get("final"),
            defer=bool(data.get("defer", False)),
            handlers=dict(data.get("handlers") or {}),
            debug=bool(data.get("debug", False)),
        )


@dataclass
class CompiledMachine:
    """Lookup tables produced from a list of rules."""

    states: List[str] = field(default_factory=list)
    actions: Dict[Tuple[str, str], ActionTarget] = field(default_factory=dict)
    transitions: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def action_names(self) -> List[str]:
        """Distinct action names in first-seen order."""
        return list(dict.fromkeys(name for name, _ in self.actions))

    def add_state(self, state: str) -> None:
        if state not in self.states:
            self.states.append(state)

    def add(self, action: str, from_state: str, to: Union[str, Resolver, ActionTarget]) -> None:
        """Record that ``action`` leads from ``from_state`` to ``to``.

        A later rule for the same (action, from_state) pair replaces the
        target, while the transitions table only ever grows.
        """
        target = as_target(to)
        self.add_state(from_state)
        if isinstance(target, Fixed):
            self.add_state(target.state)
        self.actions[(action, from_state)] = target
        self.transitions.setdefault(from_state, []).append(action)


def compile_rules(rules: Iterable[Any]) -> CompiledMachine:
    """Compile rules into states, actions and transitions tables.

    Raises:
        ConfigurationError: If any rule is malformed
    """
    compiled = CompiledMachine()
    for rule in rules:
        for directed in parse_rule(rule):
            compiled.add(directed.name, directed.from_state, directed.to)
    return compiled
