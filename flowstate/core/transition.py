"""
Transition lifecycle management.

Architecture:
- Implements the resumable lifecycle of a single in-flight transition
- Resolves dynamic targets when the transition starts
- Plans the phase sequence up front and reads each phase's handlers
  from the registry when that phase begins
- Commits the new state between the action start and state enter phases
- Supports cooperative pause/resume and discarding (cancel/end/reset)

Phase order:
    PENDING -> LEAVE -> START -> APPLY -> ENTER -> END -> COMPLETE
    Any non-terminal phase may be paused, or discarded into CANCELLED or
    COMPLETE by the owning machine.

Design Patterns:
- Command Pattern: Transition execution
- Template Method: Fixed phase sequence
- Memento: from_state kept for cancellation

Dependencies:
- registry.py: Handler snapshots per phase
- event.py: Payloads handed to handlers
- config.py: Fixed/Resolved action targets
- machine/state_machine.py: Owning machine
"""

from collections import deque
from typing import TYPE_CHECKING, Any, Deque, List, NamedTuple, Optional, Tuple

from flowstate.core.config import Fixed, Resolved
from flowstate.core.errors import ResolverError
from flowstate.core.event import TransitionEvent
from flowstate.core.registry import HandlerKey
from flowstate.core.types import EventFamily, Handler, TransitionPhase

if TYPE_CHECKING:
    from flowstate.core.machine.state_machine import StateMachine


class _Phase(NamedTuple):
    """One planned phase; ``key`` is None for the state commit."""

    phase: TransitionPhase
    key: Optional[HandlerKey]


class _Step(NamedTuple):
    """One handler invocation within the current phase."""

    phase: TransitionPhase
    key: HandlerKey
    handler: Handler


class Transition:
    """Drives one state change through its handler phases.

    Class Invariants:
    1. At most one Transition is active per machine
    2. from_state and to_state never change after creation
    3. The machine's state is committed exactly once, in the APPLY phase,
       unless the transition is discarded first
    4. No step runs after the transition reaches a terminal phase
    5. Pausing never interrupts a handler that is already running
    6. A phase calls the handlers registered when it begins, minus any
       removed before their turn

    Threading/Concurrency Guarantees:
    1. None; the machine is single-threaded and cooperative
    2. Re-entrant resume() calls from inside a handler do not start a
       second step loop
    """

    def __init__(
        self,
        machine: "StateMachine",
        action: str,
        from_state: str,
        to_state: str,
        args: Tuple[Any, ...] = (),
    ) -> None:
        """Initialize a Transition instance.

        Args:
            machine: Owning state machine
            action: Name of the action being performed
            from_state: Committed state when the action was requested
            to_state: Concrete target state
            args: Extra arguments passed to ``do()``

        Raises:
            ValueError: If any of the names are empty
        """
        if not action:
            raise ValueError("Transition requires an action name")
        if not from_state or not to_state:
            raise ValueError("Transition requires both a source and a target state")

        self._machine = machine
        self._action = action
        self._from_state = from_state
        self._to_state = to_state
        self._args = tuple(args)
        self._phase = TransitionPhase.PENDING
        self._paused = False
        self._running = False
        self._phases: Deque[_Phase] = deque(self._plan())
        self._pending: Deque[_Step] = deque()

    @classmethod
    def create(cls, machine: "StateMachine", action: str, args: Tuple[Any, ...] = ()) -> "Transition":
        """Create a transition for ``action`` from the machine's current state.

        Resolver targets are evaluated here, before any handler runs.

        Raises:
            KeyError: If the action is not defined for the current state
            ResolverError: If a resolver raises or returns an unknown state
        """
        from_state = machine.state
        target = machine.actions[(action, from_state)]

        if isinstance(target, Fixed):
            to_state = target.state
        elif isinstance(target, Resolved):
            try:
                to_state = target.resolver(machine, *args)
            except Exception as e:
                raise ResolverError(
                    f"Resolver for action '{action}' from '{from_state}' failed: {e}",
                    action,
                    from_state,
                ) from e
        else:
            raise TypeError(f"Unsupported action target {target!r}")

        if not isinstance(to_state, str) or not machine.has(to_state):
            raise ResolverError(
                f"Resolver for action '{action}' from '{from_state}' returned unknown state {to_state!r}",
                action,
                from_state,
            )
        return cls(machine, action, from_state, to_state, args)

    @property
    def action(self) -> str:
        """Get the action name."""
        return self._action

    @property
    def from_state(self) -> str:
        """Get the source state."""
        return self._from_state

    @property
    def to_state(self) -> str:
        """Get the target state."""
        return self._to_state

    @property
    def args(self) -> Tuple[Any, ...]:
        """Get the arguments passed to ``do()``."""
        return self._args

    @property
    def phase(self) -> TransitionPhase:
        return self._phase

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def is_active(self) -> bool:
        return not self._phase.is_terminal

    @property
    def remaining(self) -> int:
        """Number of phases not yet begun plus handlers pending in the current one."""
        return len(self._phases) + len(self._pending)

    def _plan(self) -> List[_Phase]:
        return [
            _Phase(TransitionPhase.LEAVE, HandlerKey.state(self._from_state, "leave")),
            _Phase(TransitionPhase.START, HandlerKey.action(self._action, "start")),
            _Phase(TransitionPhase.APPLY, None),
            _Phase(TransitionPhase.ENTER, HandlerKey.state(self._to_state, "enter")),
            _Phase(TransitionPhase.END, HandlerKey.action(self._action, "end")),
        ]

    def _begin(self, planned: _Phase) -> None:
        self._phase = planned.phase
        if planned.key is None:
            self._machine._commit_state(self._to_state)
            return
        handlers = self._machine.handlers
        for key in (planned.key, planned.key.as_wildcard()):
            self._pending.extend(_Step(planned.phase, key, fn) for fn in handlers.handlers_for(key))

    def _still_registered(self, step: _Step) -> bool:
        return any(fn is step.handler for fn in self._machine.handlers.handlers_for(step.key))

    def _event_for(self, step: _Step) -> TransitionEvent:
        if step.phase is TransitionPhase.LEAVE:
            target = self._from_state
        elif step.phase is TransitionPhase.ENTER:
            target = self._to_state
        else:
            target = self._action
        return self.event(step.key.family, step.key.type, target)

    def event(self, family: EventFamily, type: str, target: Optional[str] = None) -> TransitionEvent:
        """Build a payload describing this transition."""
        return TransitionEvent(
            family=family,
            type=type,
            machine=self._machine,
            target=target,
            action=self._action,
            from_state=self._from_state,
            to_state=self._to_state,
            args=self._args,
        )

    def run(self) -> None:
        """Run steps until done, paused or discarded.

        Calling run() while the step loop is already on the stack is a
        no-op; the running loop picks up any state change itself.
        """
        if self._running or not self.is_active:
            return
        self._running = True
        try:
            while not self._paused and self.is_active:
                if self._pending:
                    step = self._pending.popleft()
                    # off() may have dropped it while the transition was paused
                    if self._still_registered(step):
                        step.handler(self._event_for(step))
                elif self._phases:
                    self._begin(self._phases.popleft())
                else:
                    break
        finally:
            self._running = False

        if self.is_active and not self._paused and not self.remaining:
            self._phase = TransitionPhase.COMPLETE
            self._machine._complete_transition(self)

    def pause(self) -> bool:
        """Stop before the next step. Returns False if nothing changed."""
        if not self.is_active or self._paused:
            return False
        self._paused = True
        return True

    def resume(self) -> bool:
        """Continue from where the transition paused.

        Returns:
            False if the transition was not paused
        """
        if not self.is_active or not self._paused:
            return False
        self._paused = False
        self.run()
        return True

    def clear(self, phase: TransitionPhase = TransitionPhase.CANCELLED) -> None:
        """Drop all remaining steps and move to a terminal phase."""
        if not phase.is_terminal:
            raise ValueError(f"Cannot clear a transition into non-terminal phase {phase.name}")
        self._phases.clear()
        self._pending.clear()
        self._paused = False
        self._phase = phase

    def __repr__(self) -> str:
        return (
            f"Transition(action={self._action!r}, from_state={self._from_state!r}, "
            f"to_state={self._to_state!r}, phase={self._phase.name}, paused={self._paused})"
        )
