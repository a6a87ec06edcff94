"""Exception types raised by the Pod Label Controller."""


class LabelControllerError(Exception):
    pass


class StoreError(LabelControllerError):
    """The object store failed for a reason other than a race: API down, timeout, 5xx."""

    def __init__(self, message: str, status: int = 0):
        super().__init__(message)
        self.status = status


class NotFoundError(StoreError):
    """The object no longer exists."""


class ConflictError(StoreError):
    """The object's resourceVersion changed since it was read."""


class InvariantViolation(LabelControllerError):
    """A delta referenced a label key the controller does not own."""


class ReconcileCancelled(LabelControllerError):
    """The pass was cancelled before its write was issued."""
