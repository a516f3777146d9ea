"""Pydantic models for matches and ledger notifications."""

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field

# Outcome identifiers: 1 = team1 wins, 2 = team2 wins, 3 = draw. 0 means unset.
OUTCOMES: tuple[int, ...] = (1, 2, 3)
NO_OUTCOME = 0


def _empty_pools() -> dict[int, int]:
    return {outcome: 0 for outcome in OUTCOMES}


class Match(BaseModel):
    """One wagering instance. Amounts are integer minimal currency units."""

    id: int
    team1: str
    team2: str
    description: str = ""
    start_time: datetime
    total_pool: int = 0
    winning_outcome: int = NO_OUTCOME
    settled: bool = False
    cancelled: bool = False
    no_winners: bool = False
    rake_amount: int = 0
    outcome_pools: dict[int, int] = Field(default_factory=_empty_pools)

    @property
    def refunds_active(self) -> bool:
        """True when stakes may be reclaimed instead of paid out."""
        return (not self.settled and self.cancelled) or (
            self.settled and self.no_winners
        )

    @property
    def net_pool(self) -> int:
        return self.total_pool - self.rake_amount

    @property
    def status(self) -> Literal["open", "cancelled", "settled", "void"]:
        if self.cancelled:
            return "cancelled"
        if self.settled:
            return "void" if self.no_winners else "settled"
        return "open"


# ============================================================================
# Ledger Events
# ============================================================================


class LedgerEvent(BaseModel):
    """Notification emitted after a successful ledger mutation."""

    kind: str
    match_id: int
    emitted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class MatchCreated(LedgerEvent):
    kind: Literal["match_created"] = "match_created"
    description: str
    start_time: datetime


class BetPlaced(LedgerEvent):
    kind: Literal["bet_placed"] = "bet_placed"
    participant: str
    outcome: int
    amount: int


class MatchSettled(LedgerEvent):
    kind: Literal["match_settled"] = "match_settled"
    winning_outcome: int
    no_winners: bool
    rake_amount: int


class MatchCancelled(LedgerEvent):
    kind: Literal["match_cancelled"] = "match_cancelled"


class WinningsClaimed(LedgerEvent):
    kind: Literal["winnings_claimed"] = "winnings_claimed"
    participant: str
    amount: int


class RefundClaimed(LedgerEvent):
    kind: Literal["refund_claimed"] = "refund_claimed"
    participant: str
    amount: int


class FeesWithdrawn(LedgerEvent):
    kind: Literal["fees_withdrawn"] = "fees_withdrawn"
    recipient: str
    amount: int


# ============================================================================
# Snapshots
# ============================================================================


class StakeEntry(BaseModel):
    match_id: int
    participant: str
    outcome: int
    amount: int


class ClaimEntry(BaseModel):
    match_id: int
    participant: str


class LedgerSnapshot(BaseModel):
    """Complete ledger state in a serialisable form."""

    next_match_id: int = 1
    held_balance: int = 0
    matches: list[Match] = Field(default_factory=list)
    stakes: list[StakeEntry] = Field(default_factory=list)
    claims: list[ClaimEntry] = Field(default_factory=list)
