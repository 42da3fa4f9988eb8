"""
Core package providing the state machine runtime.

Architecture:
- Event taxonomy and id parsing
- Handler registry keyed by structured paths
- Configuration compiler for declarative rules
- Transition lifecycle and machine facade

Design Patterns:
- Observer Pattern for lifecycle notifications
- Command Pattern for transitions
- Builder Pattern for configuration
- Facade Pattern for the machine API
"""

# Import order matters to avoid circular dependencies
from .types import WILDCARD, EventFamily, RuleKind, RuleOperator, TransitionPhase
from .errors import ConfigurationError, InvalidHandlerError, MachineError, ResolverError
from .registry import HandlerKey, HandlerRegistry
from .event import Event, EventDescriptor, SystemEvent, TransitionEvent, parse_event_id
from .config import (
    CompiledMachine,
    Fixed,
    MachineConfig,
    Resolved,
    ShorthandRule,
    TransitionRule,
    compile_rules,
    parse_rule,
    parse_shorthand,
)
from .transition import Transition
from .machine.machine_status import MachineStatus
from .machine.state_machine import StateMachine
from .machine.machine_builder import MachineBuilder

__all__ = [
    # Taxonomy
    "WILDCARD",
    "EventFamily",
    "RuleKind",
    "RuleOperator",
    "TransitionPhase",
    # Errors
    "MachineError",
    "ConfigurationError",
    "InvalidHandlerError",
    "ResolverError",
    # Events and handlers
    "HandlerKey",
    "HandlerRegistry",
    "Event",
    "EventDescriptor",
    "SystemEvent",
    "TransitionEvent",
    "parse_event_id",
    # Configuration
    "CompiledMachine",
    "Fixed",
    "MachineConfig",
    "Resolved",
    "ShorthandRule",
    "TransitionRule",
    "compile_rules",
    "parse_rule",
    "parse_shorthand",
    # Machine
    "Transition",
    "MachineStatus",
    "StateMachine",
    "MachineBuilder",
]
