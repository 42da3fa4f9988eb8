"""
State machine facade.

Architecture:
- Owns the current state, compiled tables and handler registry
- Compiles a MachineConfig on construction
- Starts and controls the single active Transition
- Routes system and lifecycle notifications through the registry

Responsibilities:
1. Queries
   - can/cannot, is_state/has
   - available actions and target states
   - status flags

2. Commands
   - do/go
   - pause/resume/cancel/end
   - reset

3. Extension
   - add rules after construction
   - on/off handlers

Cross-cutting:
- Diagnostics go to the module logger, only when config.debug is set
- Configuration and registration errors are raised to the caller
- Rejected actions are reported as False, never raised
"""

import logging
from dataclasses import replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from flowstate.core.config import (
    ActionTarget,
    CompiledMachine,
    Fixed,
    MachineConfig,
    compile_rules,
)
from flowstate.core.errors import InvalidHandlerError
from flowstate.core.event import Event, SystemEvent, parse_event_id
from flowstate.core.machine.machine_status import MachineStatus
from flowstate.core.registry import HandlerKey, HandlerRegistry
from flowstate.core.transition import Transition
from flowstate.core.types import WILDCARD, EventFamily, Handler, Resolver, TransitionPhase

logger = logging.getLogger(__name__)


def _unwrap(target: ActionTarget) -> Union[str, Resolver]:
    return target.state if isinstance(target, Fixed) else target.resolver


class StateMachine:
    """Finite state machine driving a named workflow.

    Example:
        >>> fsm = StateMachine({"events": ["next: intro > settings > summary"]})
        >>> fsm.do("next")
        True
        >>> fsm.state
        'settings'

    Class Invariants:
    1. ``state`` only changes through a Transition or reset()
    2. At most one transition is active at a time
    3. ``states`` holds no duplicates and keeps discovery order
    4. Handlers run synchronously on the calling thread
    """

    def __init__(self, config: Union[MachineConfig, Mapping[str, Any], None] = None) -> None:
        """Initialize the machine, compiling ``config`` when given.

        Args:
            config: A MachineConfig or a mapping accepted by
                MachineConfig.from_dict. Without one the machine starts empty
                and can be extended with add() and on().

        Raises:
            ConfigurationError: If the rules or handler ids are malformed
            InvalidHandlerError: If a configured handler is not callable
        """
        self._state = ""
        self._tables = CompiledMachine()
        self._handlers = HandlerRegistry()
        self._transition: Optional[Transition] = None
        self._config = MachineConfig()
        if config is not None:
            self._initialize(config)

    def _initialize(self, config: Union[MachineConfig, Mapping[str, Any]]) -> None:
        if not isinstance(config, MachineConfig):
            config = MachineConfig.from_dict(config)

        self._tables = compile_rules(config.events)
        initial = config.initial or (self._tables.states[0] if self._tables.states else None)
        self._config = replace(config, initial=initial)

        if initial is not None and not self.has(initial):
            self._diagnose(logging.WARNING, f"Initial state '{initial}' is not reachable by any rule")
        if config.final is not None and not self.has(config.final):
            self._diagnose(logging.WARNING, f"Final state '{config.final}' is not reachable by any rule")

        for event_id, handlers in config.handlers.items():
            self.on(event_id, handlers)

        if not config.defer:
            self._state = initial or ""
            self._emit_system("initialize")

    # ------------------------------------------------------------------
    # properties

    @property
    def state(self) -> str:
        """Get the current state, or ``""`` when not started."""
        return self._state

    @property
    def states(self) -> List[str]:
        """Get all known states in discovery order."""
        return list(self._tables.states)

    @property
    def actions(self) -> Dict[Any, ActionTarget]:
        """Get the (action, from_state) -> target table."""
        return dict(self._tables.actions)

    @property
    def transitions(self) -> Dict[str, List[str]]:
        """Get the state -> permitted actions table."""
        return {state: list(actions) for state, actions in self._tables.transitions.items()}

    @property
    def handlers(self) -> HandlerRegistry:
        return self._handlers

    @property
    def transition(self) -> Optional[Transition]:
        """Get the active transition, if any."""
        return self._transition

    @property
    def config(self) -> MachineConfig:
        return self._config

    @property
    def status(self) -> MachineStatus:
        if self._transition is not None:
            return MachineStatus.PAUSED if self._transition.paused else MachineStatus.TRANSITIONING
        if not self.is_started():
            return MachineStatus.NOT_STARTED
        if self.is_complete():
            return MachineStatus.COMPLETE
        return MachineStatus.IDLE

    # ------------------------------------------------------------------
    # internals

    def _diagnose(self, level: int, message: str) -> None:
        if self._config.debug:
            logger.log(level, message)

    def _emit_system(self, type: str) -> None:
        event = SystemEvent(family=EventFamily.SYSTEM, type=type, machine=self, state=self._state)
        self.dispatch(HandlerKey.system(type), event)

    def _emit_lifecycle(self, type: str, transition: Transition) -> None:
        self.dispatch(HandlerKey.lifecycle(type), transition.event(EventFamily.TRANSITION, type))

    def _emit_change(self) -> None:
        self._emit_system("change")
        if self.is_complete():
            self._emit_system("complete")

    def _commit_state(self, state: str) -> None:
        """Set the committed state; called by the active Transition only."""
        self._state = state

    def _complete_transition(self, transition: Transition) -> None:
        """Finish a transition whose steps all ran."""
        if self._transition is not transition:
            return
        self._transition = None
        self._emit_change()

    # ------------------------------------------------------------------
    # api

    def do(self, action: str, *args: Any) -> bool:
        """Attempt to run an action, transitioning to its target state.

        Args:
            action: Action name
            *args: Passed to a resolver and exposed on transition events

        Returns:
            True if the transition started, False if the action is not
            available from the current state or a transition is in flight

        Raises:
            ResolverError: If a dynamic target cannot be resolved
        """
        if self._transition is not None:
            self._diagnose(
                logging.INFO,
                f"Cannot do '{action}' while transition '{self._transition.action}' is in progress",
            )
            return False
        if not self.can(action):
            self._diagnose(logging.INFO, f"Action '{action}' is not available from state '{self._state}'")
            return False

        transition = Transition.create(self, action, args)
        self._diagnose(logging.INFO, f"Doing action '{action}'")
        self._transition = transition
        self._emit_lifecycle("start", transition)
        transition.run()
        return True

    def go(self, state: str) -> bool:
        """Attempt to go to a state via whichever action leads there.

        Returns:
            True if a transition started
        """
        if not self.has(state):
            self._diagnose(logging.WARNING, f"No such state '{state}'")
            return False
        action = self.get_action_for_state(state)
        if action is None:
            self._diagnose(logging.INFO, f"No transition exists from '{self._state}' to '{state}'")
            return False
        return self.do(action)

    def can(self, action: str) -> bool:
        """Test if ``action`` is permitted from the current state."""
        if action not in self._tables.action_names:
            self._diagnose(logging.WARNING, f"No such action '{action}'")
        return action in self._tables.transitions.get(self._state, ())

    def cannot(self, action: str) -> bool:
        return not self.can(action)

    def is_state(self, state: str) -> bool:
        """Test if ``state`` is the current state."""
        if not self.has(state):
            self._diagnose(logging.WARNING, f"No such state '{state}'")
        return state == self._state

    def has(self, state: str) -> bool:
        """Test if ``state`` exists."""
        return state in self._tables.states

    def get_states_for(self, state: Optional[str] = None) -> List[Union[str, Resolver]]:
        """Get the targets reachable from ``state`` (default: current state).

        Dynamic targets are returned as their resolver callables.
        """
        return list(self.get_actions_for(state, as_map=True).values())

    def get_actions_for(
        self, state: Optional[str] = None, as_map: bool = False
    ) -> Union[List[str], Dict[str, Union[str, Resolver]]]:
        """Get the actions available from ``state`` (default: current state).

        Args:
            state: State name
            as_map: Return an action -> target mapping instead of a list

        Returns:
            List of action names, or a dict of action name to target state
            (or resolver callable)
        """
        state = state or self._state
        actions = self._tables.transitions.get(state, [])
        if as_map:
            return {action: _unwrap(self._tables.actions[(action, state)]) for action in actions}
        return list(actions)

    def get_action_for_state(self, target: str) -> Optional[str]:
        """Find an action leading from the current state to ``target``."""
        if not self.has(target):
            return None
        for action, to in self.get_actions_for(as_map=True).items():
            if to == target:
                return action
        return None

    # ------------------------------------------------------------------
    # flags

    def is_started(self) -> bool:
        return self._state != ""

    def is_transitioning(self) -> bool:
        return self._transition is not None

    def is_paused(self) -> bool:
        return self._transition.paused if self._transition is not None else False

    def is_complete(self) -> bool:
        """Test if the machine rests in the configured final state."""
        return self._config.final is not None and self._state == self._config.final

    # ------------------------------------------------------------------
    # transition control

    def pause(self) -> "StateMachine":
        """Pause the active transition before its next handler."""
        if self._transition is not None and self._transition.pause():
            self._emit_lifecycle("pause", self._transition)
        return self

    def resume(self) -> "StateMachine":
        """Resume a paused transition from where it stopped."""
        transition = self._transition
        if transition is not None and transition.paused:
            self._emit_lifecycle("resume", transition)
            transition.resume()
        return self

    def cancel(self) -> "StateMachine":
        """Discard the active transition and restore its source state."""
        transition = self._transition
        if transition is not None:
            self._state = transition.from_state
            transition.clear(TransitionPhase.CANCELLED)
            self._transition = None
            self._emit_lifecycle("cancel", transition)
        return self

    def end(self) -> "StateMachine":
        """Finish the active transition now, skipping remaining handlers."""
        transition = self._transition
        if transition is not None:
            self._state = transition.to_state
            transition.clear(TransitionPhase.COMPLETE)
            self._transition = None
            self._emit_lifecycle("end", transition)
            self._emit_change()
        return self

    def reset(self, initial: Optional[str] = None) -> "StateMachine":
        """Hard-set the initial (or given) state, dropping any transition.

        No transition handlers run; only ``system.reset`` is emitted.
        """
        if self._transition is not None:
            self._transition.clear(TransitionPhase.CANCELLED)
            self._transition = None
        state = initial or self._config.initial or ""
        if state and not self.has(state):
            self._diagnose(logging.WARNING, f"Resetting to unknown state '{state}'")
        self._state = state
        self._emit_system("reset")
        return self

    # ------------------------------------------------------------------
    # extension

    def add(self, action: str, from_state: str, to: Union[str, Resolver]) -> "StateMachine":
        """Add a transition rule after construction."""
        self._tables.add(action, from_state, to)
        return self

    def on(self, event_id: str, handler: Union[Handler, Sequence[Handler]]) -> "StateMachine":
        """Subscribe one or more handlers to an event id.

        Ids that cannot be mapped to an event are rejected and reported in
        debug mode; no handler is attached.

        Raises:
            InvalidHandlerError: If a handler is not callable
            ConfigurationError: If the id does not follow the grammar
        """
        handlers = list(handler) if isinstance(handler, (list, tuple)) else [handler]
        for fn in handlers:
            if not callable(fn):
                raise InvalidHandlerError(f"Handler for '{event_id}' is not callable: {fn!r}")

        descriptor = parse_event_id(event_id, self._tables.states, self._tables.action_names)
        if descriptor is None:
            self._diagnose(
                logging.WARNING,
                f"Cannot map event id '{event_id}' to a valid event or existing entity",
            )
            return self

        for key in descriptor.keys():
            self._check_target(key)
            for fn in handlers:
                self._handlers.register(key, fn)
        return self

    def off(self, event_id: str, handler: Optional[Handler] = None) -> "StateMachine":
        """Unsubscribe ``handler`` (or every handler) from an event id."""
        descriptor = parse_event_id(event_id, self._tables.states, self._tables.action_names)
        if descriptor is None:
            self._diagnose(logging.WARNING, f"Cannot map event id '{event_id}' to a valid event")
            return self
        for key in descriptor.keys():
            self._handlers.unregister(key, handler)
        return self

    def _check_target(self, key: HandlerKey) -> None:
        if key.target is None or key.target == WILDCARD:
            return
        if key.family is EventFamily.STATE and not self.has(key.target):
            self._diagnose(
                logging.WARNING,
                f"Assigning state.{key.type} handler: no such state '{key.target}'",
            )
        elif key.family is EventFamily.ACTION and key.target not in self._tables.action_names:
            self._diagnose(
                logging.WARNING,
                f"Assigning action.{key.type} handler: no such action '{key.target}'",
            )

    def dispatch(self, key: HandlerKey, event: Event) -> None:
        """Invoke the handlers registered at exactly ``key``."""
        self._diagnose(logging.DEBUG, f"StateMachine update '{key.path}'")
        self._handlers.dispatch(key, event)

    def __repr__(self) -> str:
        return f"StateMachine(state={self._state!r}, status={self.status.name})"
