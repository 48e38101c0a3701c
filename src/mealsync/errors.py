"""
MealSync - Error kinds.

Every failure surfaced by the core is one of these. The core never
decides presentation; callers switch on the class (or `kind`) and
render whatever they like.
"""


class SyncError(Exception):
    """Base class for all errors raised by the sync core."""

    kind: str = "sync_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class NotAuthenticated(SyncError):
    """No resolved user session was supplied."""

    kind = "not_authenticated"

    def __init__(self, message: str = "User not authenticated"):
        super().__init__(message)


class NotFound(SyncError):
    """Operating on an id with no backing record."""

    kind = "not_found"


class ValidationFailed(SyncError):
    """A generated payload or user input failed schema/shape checks."""

    kind = "validation_failed"

    def __init__(self, message: str, fields: list[str] | None = None):
        super().__init__(message)
        self.fields = fields or []


class RemoteFailure(SyncError):
    """The backing store or the generator call itself failed."""

    kind = "remote_failure"


class ConflictingState(SyncError):
    """The operation conflicts with current state (e.g. already folded)."""

    kind = "conflicting_state"
