"""Engine error types for nowline.

Every failure the engine can report is an EngineError subclass; callers map
them to user-visible messages (the API maps them to HTTP status codes).
"""

from typing import Optional


class EngineError(Exception):
    """Base class for all engine-level failures."""

    def __init__(self, message: str, block_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.block_id = block_id


class InvalidState(EngineError):
    """Action against a block that is not in an actionable status."""


class InvalidDuration(EngineError):
    """Non-positive or out-of-range minute value."""


class InvalidReorder(EngineError):
    """Reordering that moves an immovable block or places a block ahead of now."""


class AlreadyResolved(EngineError):
    """The block was already disposed of by an earlier submission."""


class NotFound(EngineError):
    """Referenced task, block or workspace does not exist."""


class InvalidWindow(EngineError):
    """Unplugged window configuration that leaves no schedulable time."""


class LedgerInvariantError(EngineError):
    """A ledger mutation produced an inconsistent block sequence."""


class PersistenceFailure(EngineError):
    """The persistence collaborator failed; the ledger must be reloaded."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause
