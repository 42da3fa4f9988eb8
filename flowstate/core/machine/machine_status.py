from enum import Enum, auto


class MachineStatus(Enum):
    """Defines the observable states of a state machine.

    Derived from the machine's current state and active transition.
    """

    NOT_STARTED = auto()  # No current state yet (deferred or empty)
    IDLE = auto()  # Resting in a state, waiting for an action
    TRANSITIONING = auto()  # A transition is running its handlers
    PAUSED = auto()  # A transition is waiting to be resumed
    COMPLETE = auto()  # Resting in the configured final state
