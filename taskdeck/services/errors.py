"""
Error kinds raised by the TaskDeck service layer.

Every error carries a ``kind`` string so a routing layer can map it to a
response without inspecting the class hierarchy.
"""


class TaskDeckError(Exception):
    """Base exception for service errors."""

    kind = "Error"


class NotFoundError(TaskDeckError):
    """Raised when a list, task or anchor does not exist or is not owned by the caller."""

    kind = "NotFound"


class InvalidAnchorError(TaskDeckError):
    """Raised when an anchor ID is not a member of the expected scope."""

    kind = "InvalidAnchor"


class InvalidOrderError(TaskDeckError):
    """Raised when a reorder payload is not a valid permutation of the scope."""

    kind = "InvalidOrder"


class PrecisionExhaustedError(TaskDeckError):
    """
    Raised when no position fits strictly between two neighbours.

    Internal signal: the ordering service always resolves it by rebalancing
    the scope before it reaches a caller.
    """

    kind = "PrecisionExhausted"


class ConflictError(TaskDeckError):
    """Raised when a concurrent writer changed rows of the same scope."""

    kind = "Conflict"


class UnauthorizedError(TaskDeckError):
    """Raised by the authentication collaborator for unauthenticated requests."""

    kind = "Unauthorized"
