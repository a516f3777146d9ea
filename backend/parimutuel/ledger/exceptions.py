"""Wagering ledger exceptions."""

from enum import Enum


class ErrorCategory(str, Enum):
    """Coarse error classes used by the CLI and API to pick exit codes and statuses."""

    AUTHORIZATION = "authorization"
    TEMPORAL = "temporal"
    STATE_CONFLICT = "state_conflict"
    INPUT_VALIDATION = "input_validation"
    DOUBLE_ACTION = "double_action"
    ELIGIBILITY = "eligibility"
    EXTERNAL_FAILURE = "external_failure"


class LedgerError(Exception):
    """Base exception for wagering ledger errors."""

    category: ErrorCategory = ErrorCategory.STATE_CONFLICT

    def __init__(self, message: str, match_id: int | None = None):
        super().__init__(message)
        self.match_id = match_id

    @property
    def name(self) -> str:
        return type(self).__name__


# Authorization


class Unauthorized(LedgerError):
    """Caller lacks the admin capability."""

    category = ErrorCategory.AUTHORIZATION


class ReentrantCall(LedgerError):
    """A mutating operation was invoked while another one is still running."""

    category = ErrorCategory.AUTHORIZATION


# Temporal


class InvalidStartTime(LedgerError):
    """Start time is not strictly in the future."""

    category = ErrorCategory.TEMPORAL


class BettingClosed(LedgerError):
    """Match start time has passed."""

    category = ErrorCategory.TEMPORAL


class MatchNotStarted(LedgerError):
    """Settlement attempted before the match started."""

    category = ErrorCategory.TEMPORAL


# State conflict


class MatchNotExists(LedgerError):
    category = ErrorCategory.STATE_CONFLICT


class MatchNotActive(LedgerError):
    category = ErrorCategory.STATE_CONFLICT


class AlreadySettled(LedgerError):
    category = ErrorCategory.STATE_CONFLICT


class MatchWasCancelled(LedgerError):
    category = ErrorCategory.STATE_CONFLICT


class MatchAlreadySettled(LedgerError):
    """Cancellation attempted on a settled match."""

    category = ErrorCategory.STATE_CONFLICT


class NotSettled(LedgerError):
    category = ErrorCategory.STATE_CONFLICT


class RefundsNotActive(LedgerError):
    category = ErrorCategory.STATE_CONFLICT


class EmptyPool(LedgerError):
    """Settlement of a match nobody bet on (only when empty settlement is disabled)."""

    category = ErrorCategory.STATE_CONFLICT


# Input validation


class InvalidOutcome(LedgerError):
    category = ErrorCategory.INPUT_VALIDATION


class BetAmountZero(LedgerError):
    category = ErrorCategory.INPUT_VALIDATION


# Double action


class AlreadyClaimed(LedgerError):
    category = ErrorCategory.DOUBLE_ACTION


# Eligibility


class NoWinnersForOutcome(LedgerError):
    category = ErrorCategory.ELIGIBILITY


class NoWinningBet(LedgerError):
    category = ErrorCategory.ELIGIBILITY


class NoFundsToRefund(LedgerError):
    category = ErrorCategory.ELIGIBILITY


# External failure


class TransferFailed(LedgerError):
    """The transfer primitive reported failure.

    The ledger state that authorised the transfer (claimed flag, zeroed stakes or
    zeroed rake) stays committed; ``amount`` remains in the held balance.
    """

    category = ErrorCategory.EXTERNAL_FAILURE

    def __init__(
        self,
        message: str,
        match_id: int | None = None,
        recipient: str | None = None,
        amount: int = 0,
    ):
        super().__init__(message, match_id=match_id)
        self.recipient = recipient
        self.amount = amount
