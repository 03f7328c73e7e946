"""Election engine exception classes.

Every error carries a ``reason`` string suitable for showing to the person who
attempted the action.
"""


class ElectionError(Exception):
    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class UnauthorizedError(ElectionError):
    """Raised when a non-admin attempts an admin action."""


class InvalidInputError(ElectionError):
    """Raised for a malformed name, address, id or candidate reference."""


class MalformedInputError(InvalidInputError):
    """Raised when an import payload cannot be parsed at all."""


class InvalidCredentialError(ElectionError):
    """Raised when the ledger rejects a voter's unique id."""


class NotVotingPhaseError(ElectionError):
    pass


class NotEligibleError(ElectionError):
    pass


class AlreadyVotedError(ElectionError):
    pass


class PipelineDisabledError(ElectionError):
    """Raised when voter onboarding or legacy registration is closed."""


class ActionPendingError(ElectionError):
    """Raised when the same action is still awaiting ledger confirmation."""


class WrongNetworkError(ElectionError):
    pass


class ElectionNotSyncedError(ElectionError):
    """Raised when an action needs ledger state that has not been fetched yet."""


__all__ = [
    "ElectionError",
    "UnauthorizedError",
    "InvalidInputError",
    "MalformedInputError",
    "InvalidCredentialError",
    "NotVotingPhaseError",
    "NotEligibleError",
    "AlreadyVotedError",
    "PipelineDisabledError",
    "ActionPendingError",
    "WrongNetworkError",
    "ElectionNotSyncedError",
]
