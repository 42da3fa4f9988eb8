class MachineError(Exception):
    """
    Base exception class for errors within the flowstate library.
    """


class ConfigurationError(MachineError):
    """
    Raised when a workflow definition cannot be compiled: a shorthand rule
    that does not parse, a structured rule with missing fields, or an event
    id that does not follow the event id grammar.
    """


class InvalidHandlerError(MachineError):
    """
    Raised when something that is not callable is registered as a handler.
    """


class ResolverError(MachineError):
    """
    Raised when a dynamic target resolver fails or returns a state the
    machine does not know. The machine's committed state is left untouched.
    """

    def __init__(self, message: str, action: str, from_state: str) -> None:
        super().__init__(message)
        self.action = action
        self.from_state = from_state
