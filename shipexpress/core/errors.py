# shipexpress/core/errors.py


class ShipExpressError(Exception):
    """Base class for every error raised by the tracking core."""
    pass


class NotFoundError(ShipExpressError):
    """Referenced shipment, notification, message, issue or profile does not exist."""

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} '{identifier}' not found")


class InvalidTransitionError(ShipExpressError):
    """Raised when an operation is invoked against the wrong lifecycle state."""

    def __init__(self, message: str, current_state: str = None, target_state: str = None):
        self.current_state = current_state
        self.target_state = target_state
        super().__init__(message)


class AuthorizationError(ShipExpressError):
    """Raised when a role attempts an unauthorized action."""
    pass


class ValidationError(ShipExpressError):
    """Caller-supplied data violates a required field constraint."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)


class TransportError(ShipExpressError):
    """
    A network or persistence call failed.

    When outcome_unknown is set, the write may or may not have been applied;
    callers must reconcile (refetch or wait for a realtime event) instead of
    assuming failure.
    """

    def __init__(self, message: str, retryable: bool = True, outcome_unknown: bool = False):
        self.retryable = retryable
        self.outcome_unknown = outcome_unknown
        super().__init__(message)
