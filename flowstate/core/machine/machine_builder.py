from typing import Any, Dict, List, Optional, Type, Union

from flowstate.core.config import MachineConfig, parse_rule
from flowstate.core.errors import InvalidHandlerError
from flowstate.core.machine.state_machine import StateMachine
from flowstate.core.types import Handler, Resolver


class MachineBuilder:
    """Builds state machine configurations.

    MachineBuilder implements the Builder pattern to assemble a
    MachineConfig step by step and construct a machine from it.

    Class Invariants:
    1. Rules are validated as they are added
    2. Handlers are checked for callability as they are added
    3. Rule and handler order is preserved

    Design Patterns:
    - Builder: Constructs machines
    - Factory: Creates the machine instance
    """

    def __init__(self) -> None:
        """Initialize the machine builder."""
        self._machine_type: Type[StateMachine] = StateMachine
        self._events: List[Any] = []
        self._handlers: Dict[str, List[Handler]] = {}
        self._initial: Optional[str] = None
        self._final: Optional[str] = None
        self._defer = False
        self._debug = False

    @property
    def machine_type(self) -> type:
        """Get the machine type."""
        return self._machine_type

    @property
    def events(self) -> List[Any]:
        """Get a copy of the rules added so far."""
        return list(self._events)

    def set_machine_type(self, machine_type: Type[StateMachine]) -> "MachineBuilder":
        """Set the type of machine to build.

        Raises:
            ValueError: If machine_type is not a StateMachine subclass
        """
        if not isinstance(machine_type, type) or not issubclass(machine_type, StateMachine):
            raise ValueError("Machine type must be a StateMachine subclass")
        self._machine_type = machine_type
        return self

    def add_rule(self, rule: Any) -> "MachineBuilder":
        """Add a shorthand string or structured rule.

        Raises:
            ConfigurationError: If the rule is malformed
        """
        parse_rule(rule)
        self._events.append(rule)
        return self

    def add_event(self, name: str, from_state: str, to: Union[str, Resolver]) -> "MachineBuilder":
        """Add a structured ``{name, from, to}`` rule."""
        return self.add_rule({"name": name, "from": from_state, "to": to})

    def on(self, event_id: str, handler: Handler) -> "MachineBuilder":
        """Add a handler for an event id.

        Raises:
            InvalidHandlerError: If handler is not callable
        """
        if not callable(handler):
            raise InvalidHandlerError(f"Handler for '{event_id}' is not callable: {handler!r}")
        self._handlers.setdefault(event_id, []).append(handler)
        return self

    def set_initial(self, state: str) -> "MachineBuilder":
        self._initial = state
        return self

    def set_final(self, state: str) -> "MachineBuilder":
        self._final = state
        return self

    def set_defer(self, defer: bool = True) -> "MachineBuilder":
        self._defer = defer
        return self

    def set_debug(self, debug: bool = True) -> "MachineBuilder":
        self._debug = debug
        return self

    def build_config(self) -> MachineConfig:
        """Build the configuration record.

        Raises:
            ValueError: If no rules were added
        """
        if not self._events:
            raise ValueError("No rules added to machine")
        return MachineConfig(
            events=list(self._events),
            initial=self._initial,
            final=self._final,
            defer=self._defer,
            handlers={event_id: list(handlers) for event_id, handlers in self._handlers.items()},
            debug=self._debug,
        )

    def build(self) -> StateMachine:
        """Build a machine instance from the collected configuration."""
        return self._machine_type(self.build_config())
