"""flowstate: finite state machine runtime for named, step-by-step workflows

This package drives linear or branching workflows (UI wizards, onboarding
flows, checkout steps) through declared states and named actions, and lets
observers subscribe to fine-grained lifecycle events with a compact id
syntax.

Responsibilities:
    - Compiling declarative rules, including shorthand strings
    - Running pausable, cancellable transitions
    - Dispatching state, action, transition and system events
    - Answering queries about available actions and states

Interactions:
    - Client code through the StateMachine facade
    - Handler callables supplied by the host application
    - Logging system for debug diagnostics

Cross-cutting Concerns:
    Threading:
        - Single-threaded and synchronous
        - Pause is a cooperative flag, not a concurrency primitive

    Error Handling:
        - Configuration and registration errors raise immediately
        - Rejected actions return False
        - Resolver failures propagate to the caller of do()

    Logging:
        - Standard library logging, one logger per module
        - Diagnostics only when a machine is built with debug=True
"""

from flowstate.core import (
    ConfigurationError,
    Event,
    EventFamily,
    InvalidHandlerError,
    MachineBuilder,
    MachineConfig,
    MachineError,
    MachineStatus,
    ResolverError,
    StateMachine,
    SystemEvent,
    Transition,
    TransitionEvent,
    TransitionPhase,
)

__version__ = "0.1.0"

__all__ = [
    "StateMachine",
    "MachineConfig",
    "MachineBuilder",
    "MachineStatus",
    "Transition",
    "TransitionPhase",
    "Event",
    "EventFamily",
    "SystemEvent",
    "TransitionEvent",
    "MachineError",
    "ConfigurationError",
    "InvalidHandlerError",
    "ResolverError",
]
