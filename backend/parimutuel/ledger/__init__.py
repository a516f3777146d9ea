from .calculations import BPS_DENOMINATOR, DEFAULT_RAKE_BPS, calculate_payout, calculate_rake
from .collaborators import AdminCheck, PaperTransfer, StaticAdmin, Transfer, utc_now
from .engine import WageringLedger, create_ledger
from .exceptions import (
    AlreadyClaimed,
    AlreadySettled,
    BetAmountZero,
    BettingClosed,
    EmptyPool,
    ErrorCategory,
    InvalidOutcome,
    InvalidStartTime,
    LedgerError,
    MatchAlreadySettled,
    MatchNotActive,
    MatchNotExists,
    MatchNotStarted,
    MatchWasCancelled,
    NoFundsToRefund,
    NotSettled,
    NoWinnersForOutcome,
    NoWinningBet,
    ReentrantCall,
    RefundsNotActive,
    TransferFailed,
    Unauthorized,
)
from .models import (
    OUTCOMES,
    BetPlaced,
    FeesWithdrawn,
    LedgerEvent,
    LedgerSnapshot,
    Match,
    MatchCancelled,
    MatchCreated,
    MatchSettled,
    RefundClaimed,
    WinningsClaimed,
)

__all__ = [
    "WageringLedger",
    "create_ledger",
    "AdminCheck",
    "Transfer",
    "StaticAdmin",
    "PaperTransfer",
    "utc_now",
    "BPS_DENOMINATOR",
    "DEFAULT_RAKE_BPS",
    "calculate_rake",
    "calculate_payout",
    "OUTCOMES",
    "Match",
    "LedgerSnapshot",
    "LedgerEvent",
    "MatchCreated",
    "BetPlaced",
    "MatchSettled",
    "MatchCancelled",
    "WinningsClaimed",
    "RefundClaimed",
    "FeesWithdrawn",
    "ErrorCategory",
    "LedgerError",
    "Unauthorized",
    "ReentrantCall",
    "InvalidStartTime",
    "BettingClosed",
    "MatchNotStarted",
    "MatchNotExists",
    "MatchNotActive",
    "AlreadySettled",
    "MatchWasCancelled",
    "MatchAlreadySettled",
    "NotSettled",
    "RefundsNotActive",
    "EmptyPool",
    "InvalidOutcome",
    "BetAmountZero",
    "AlreadyClaimed",
    "NoWinnersForOutcome",
    "NoWinningBet",
    "NoFundsToRefund",
    "TransferFailed",
]
