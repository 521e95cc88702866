"""Exception taxonomy for the arbitration core.

Precondition errors are raised before any state is touched and can be retried
once the caller fixes the input. Invariant violations signal a logic or
configuration fault and are not expected to be handled by callers.
"""
from __future__ import annotations


class ArbitrationError(Exception):
    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class PreconditionError(ArbitrationError):
    pass


class WrongPeriodError(PreconditionError):
    pass


class InsufficientFundsError(PreconditionError):
    pass


class NotOwnerError(PreconditionError):
    pass


class CommitMismatchError(NotOwnerError):
    pass


class NotAuthorizedError(PreconditionError):
    pass


class StakingError(PreconditionError):
    pass


class UnsupportedDisputeKitError(PreconditionError):
    pass


class AppealNotPossibleError(PreconditionError):
    pass


class UnknownEntityError(PreconditionError):
    pass


class InvariantViolationError(ArbitrationError):
    pass


class AlreadyRuledError(InvariantViolationError):
    pass


class TransferError(ArbitrationError):
    pass
