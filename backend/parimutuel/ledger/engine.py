from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import ExitStack, contextmanager
from datetime import datetime, timezone

from parimutuel.config import Settings

from .calculations import DEFAULT_RAKE_BPS, calculate_payout, calculate_rake
from .collaborators import AdminCheck, Clock, PaperTransfer, StaticAdmin, Transfer, utc_now
from .exceptions import (
    AlreadyClaimed,
    AlreadySettled,
    BetAmountZero,
    BettingClosed,
    EmptyPool,
    InvalidOutcome,
    InvalidStartTime,
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
    ClaimEntry,
    FeesWithdrawn,
    LedgerEvent,
    LedgerSnapshot,
    Match,
    MatchCancelled,
    MatchCreated,
    MatchSettled,
    RefundClaimed,
    StakeEntry,
    WinningsClaimed,
)

logger = logging.getLogger(__name__)

EventListener = Callable[[LedgerEvent], None]


class WageringLedger:
    """Parimutuel ledger: match registry, pools, settlement, claims and fees.

    Every mutating operation validates completely before it writes, runs under the
    match's lock, and refuses to be re-entered from inside an outbound transfer.
    State that authorises a payout is committed before the transfer is attempted.
    """

    def __init__(
        self,
        admin: AdminCheck,
        transfer: Transfer,
        clock: Clock = utc_now,
        rake_bps: int = DEFAULT_RAKE_BPS,
        allow_empty_settlement: bool = True,
    ):
        self.admin = admin
        self.transfer = transfer
        self.clock = clock
        self.rake_bps = rake_bps
        self.allow_empty_settlement = allow_empty_settlement

        self._matches: dict[int, Match] = {}
        self._stakes: dict[tuple[int, str, int], int] = {}
        self._claimed: set[tuple[int, str]] = set()
        self._next_match_id = 1
        self._held_balance = 0

        self._registry_lock = threading.Lock()
        self._balance_lock = threading.Lock()
        self._match_locks: dict[int, threading.Lock] = {}
        self._local = threading.local()
        self._listeners: list[EventListener] = []

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def subscribe(self, listener: EventListener) -> None:
        """Register a callback invoked with every event after the write commits."""
        self._listeners.append(listener)

    def _emit(self, event: LedgerEvent) -> None:
        # The write has committed by now, so a failing listener cannot undo it.
        for listener in self._listeners:
            try:
                listener(event)
            except Exception:
                logger.exception(
                    f"Listener failed on {event.kind} event for match {event.match_id}"
                )

    def _now(self) -> datetime:
        return _as_utc(self.clock())

    def _require_admin(self, caller: str) -> None:
        if not self.admin.is_admin(caller):
            raise Unauthorized(f"{caller} is not an admin")

    @contextmanager
    def _critical(self, match_id: int | None = None) -> Iterator[None]:
        if getattr(self._local, "active", False):
            raise ReentrantCall(
                "Ledger operation already in progress", match_id=match_id
            )

        self._local.active = True
        try:
            if match_id is None:
                with self._registry_lock:
                    yield
            else:
                with self._lock_for(match_id):
                    yield
        finally:
            self._local.active = False

    def _lock_for(self, match_id: int) -> threading.Lock:
        with self._registry_lock:
            lock = self._match_locks.get(match_id)
        if lock is None:
            raise MatchNotExists(f"Match {match_id} does not exist", match_id=match_id)
        return lock

    def _get(self, match_id: int) -> Match:
        match = self._matches.get(match_id)
        if match is None:
            raise MatchNotExists(f"Match {match_id} does not exist", match_id=match_id)
        return match

    def _adjust_balance(self, delta: int) -> None:
        with self._balance_lock:
            self._held_balance += delta

    def _pay(self, match_id: int, recipient: str, amount: int) -> None:
        """Send funds out of the ledger. Callers commit their state first."""
        if not self.transfer.transfer(recipient, amount):
            logger.error(
                f"Transfer of {amount} to {recipient} failed for match {match_id}"
            )
            raise TransferFailed(
                f"Transfer of {amount} to {recipient} failed",
                match_id=match_id,
                recipient=recipient,
                amount=amount,
            )
        self._adjust_balance(-amount)

    # ------------------------------------------------------------------
    # Match Registry
    # ------------------------------------------------------------------

    def create_match(
        self,
        caller: str,
        team1: str,
        team2: str,
        description: str,
        start_time: datetime,
    ) -> int:
        """Register a match whose betting window closes at ``start_time``."""
        self._require_admin(caller)
        start_time = _as_utc(start_time)

        with self._critical():
            if start_time <= self._now():
                raise InvalidStartTime(
                    f"Start time {start_time.isoformat()} is not in the future"
                )

            match_id = self._next_match_id
            self._next_match_id += 1
            self._matches[match_id] = Match(
                id=match_id,
                team1=team1,
                team2=team2,
                description=description,
                start_time=start_time,
            )
            self._match_locks[match_id] = threading.Lock()

        logger.info(f"Created match {match_id}: {team1} vs {team2} at {start_time.isoformat()}")
        self._emit(
            MatchCreated(match_id=match_id, description=description, start_time=start_time)
        )
        return match_id

    # ------------------------------------------------------------------
    # Pool Accountant
    # ------------------------------------------------------------------

    def place_bet(self, caller: str, match_id: int, outcome: int, amount: int) -> None:
        """Deposit ``amount`` on ``outcome``. The deposit arrives with the call."""
        with self._critical(match_id):
            match = self._get(match_id)
            if match.cancelled or match.settled:
                raise MatchNotActive(f"Match {match_id} is not active", match_id=match_id)
            if self._now() >= match.start_time:
                raise BettingClosed(
                    f"Betting closed for match {match_id}", match_id=match_id
                )
            if outcome not in OUTCOMES:
                raise InvalidOutcome(f"Invalid outcome {outcome}", match_id=match_id)
            if amount <= 0:
                raise BetAmountZero("Bet amount must be positive", match_id=match_id)

            match.total_pool += amount
            match.outcome_pools[outcome] += amount
            key = (match_id, caller, outcome)
            self._stakes[key] = self._stakes.get(key, 0) + amount
            self._adjust_balance(amount)

        logger.info(f"Bet on match {match_id}: {caller} staked {amount} on outcome {outcome}")
        self._emit(
            BetPlaced(match_id=match_id, participant=caller, outcome=outcome, amount=amount)
        )

    def get_outcome_pool(self, match_id: int, outcome: int) -> int:
        if outcome not in OUTCOMES:
            raise InvalidOutcome(f"Invalid outcome {outcome}", match_id=match_id)
        return self._get(match_id).outcome_pools[outcome]

    def get_total_pool(self, match_id: int) -> int:
        return self._get(match_id).total_pool

    # ------------------------------------------------------------------
    # Settlement Engine
    # ------------------------------------------------------------------

    def settle_match(self, caller: str, match_id: int, winning_outcome: int) -> None:
        """Freeze the result and reserve the rake.

        The rake is taken from the whole pool, so losing stakes fund the fee too.
        If nobody backed the winning outcome the match is void: no rake is charged
        and every stake becomes refundable.
        """
        self._require_admin(caller)

        with self._critical(match_id):
            match = self._get(match_id)
            if self._now() < match.start_time:
                raise MatchNotStarted(
                    f"Match {match_id} has not started yet", match_id=match_id
                )
            if match.settled:
                raise AlreadySettled(f"Match {match_id} already settled", match_id=match_id)
            if match.cancelled:
                raise MatchWasCancelled(
                    f"Match {match_id} was cancelled", match_id=match_id
                )
            if winning_outcome not in OUTCOMES:
                raise InvalidOutcome(
                    f"Invalid outcome {winning_outcome}", match_id=match_id
                )
            if match.total_pool == 0 and not self.allow_empty_settlement:
                raise EmptyPool(f"Match {match_id} has no stakes", match_id=match_id)

            match.winning_outcome = winning_outcome
            match.settled = True
            if match.outcome_pools[winning_outcome] == 0:
                match.no_winners = True
            else:
                match.rake_amount = calculate_rake(match.total_pool, self.rake_bps)

            event = MatchSettled(
                match_id=match_id,
                winning_outcome=winning_outcome,
                no_winners=match.no_winners,
                rake_amount=match.rake_amount,
            )

        if event.no_winners:
            logger.info(
                f"Settled match {match_id}: outcome {winning_outcome} has no backers, "
                "refunds open"
            )
        else:
            logger.info(
                f"Settled match {match_id}: outcome {winning_outcome}, "
                f"rake {event.rake_amount}"
            )
        self._emit(event)

    # ------------------------------------------------------------------
    # Claim Engine
    # ------------------------------------------------------------------

    def claim_winnings(self, caller: str, match_id: int) -> int:
        """Pay the caller's share of the net pool. Returns the amount paid."""
        with self._critical(match_id):
            match = self._get(match_id)
            if not match.settled:
                raise NotSettled(f"Match {match_id} is not settled", match_id=match_id)
            if match.no_winners:
                raise NoWinnersForOutcome(
                    f"No winners on match {match_id}, claim a refund instead",
                    match_id=match_id,
                )
            if (match_id, caller) in self._claimed:
                raise AlreadyClaimed(
                    f"{caller} already claimed on match {match_id}", match_id=match_id
                )
            user_stake = self._stakes.get((match_id, caller, match.winning_outcome), 0)
            if user_stake <= 0:
                raise NoWinningBet(
                    f"{caller} has no winning bet on match {match_id}", match_id=match_id
                )

            payout = calculate_payout(
                user_stake,
                match.net_pool,
                match.outcome_pools[match.winning_outcome],
            )

            self._claimed.add((match_id, caller))
            self._pay(match_id, caller, payout)

        logger.info(f"Paid {payout} to {caller} on match {match_id} (stake {user_stake})")
        self._emit(WinningsClaimed(match_id=match_id, participant=caller, amount=payout))
        return payout

    def claim_refund(self, caller: str, match_id: int) -> int:
        """Return every stake the caller placed on a cancelled or void match."""
        with self._critical(match_id):
            match = self._get(match_id)
            if not match.refunds_active:
                raise RefundsNotActive(
                    f"Refunds are not active for match {match_id}", match_id=match_id
                )
            if (match_id, caller) in self._claimed:
                raise AlreadyClaimed(
                    f"{caller} already claimed on match {match_id}", match_id=match_id
                )

            keys = [(match_id, caller, outcome) for outcome in OUTCOMES]
            refund = sum(self._stakes.get(key, 0) for key in keys)
            if refund == 0:
                raise NoFundsToRefund(
                    f"{caller} has nothing to refund on match {match_id}",
                    match_id=match_id,
                )

            self._claimed.add((match_id, caller))
            for key in keys:
                self._stakes.pop(key, None)
            self._pay(match_id, caller, refund)

        logger.info(f"Refunded {refund} to {caller} on match {match_id}")
        self._emit(RefundClaimed(match_id=match_id, participant=caller, amount=refund))
        return refund

    # ------------------------------------------------------------------
    # Fee Custodian & Cancellation
    # ------------------------------------------------------------------

    def withdraw_fees(self, caller: str, match_id: int) -> int:
        """Release the reserved rake to the calling admin. Returns the amount sent."""
        self._require_admin(caller)

        with self._critical(match_id):
            match = self._get(match_id)
            if not match.settled:
                raise NotSettled(f"Match {match_id} is not settled", match_id=match_id)

            amount = match.rake_amount
            if amount == 0:
                logger.info(f"No fees to withdraw on match {match_id}")
                return 0

            match.rake_amount = 0
            self._pay(match_id, caller, amount)

        logger.info(f"Withdrew fees of {amount} on match {match_id} to {caller}")
        self._emit(FeesWithdrawn(match_id=match_id, recipient=caller, amount=amount))
        return amount

    def cancel_match(self, caller: str, match_id: int) -> None:
        """Void an unsettled match; its stakes become refundable."""
        self._require_admin(caller)

        with self._critical(match_id):
            match = self._get(match_id)
            if match.settled:
                raise MatchAlreadySettled(
                    f"Match {match_id} already settled", match_id=match_id
                )
            if match.cancelled:
                logger.debug(f"Match {match_id} already cancelled")
                return
            match.cancelled = True

        logger.info(f"Cancelled match {match_id}")
        self._emit(MatchCancelled(match_id=match_id))

    # ------------------------------------------------------------------
    # Read-only projections
    # ------------------------------------------------------------------

    def get_match(self, match_id: int) -> Match:
        return self._get(match_id).model_copy(deep=True)

    def list_matches(self) -> list[Match]:
        with self._registry_lock:
            matches = list(self._matches.values())
        return [match.model_copy(deep=True) for match in matches]

    def get_stake(self, match_id: int, participant: str, outcome: int) -> int:
        self._get(match_id)
        return self._stakes.get((match_id, participant, outcome), 0)

    def get_total_stake(self, match_id: int, participant: str) -> int:
        self._get(match_id)
        return sum(self._stakes.get((match_id, participant, o), 0) for o in OUTCOMES)

    def has_claimed(self, match_id: int, participant: str) -> bool:
        self._get(match_id)
        return (match_id, participant) in self._claimed

    def calculate_potential_payout(
        self, match_id: int, participant: str, outcome: int
    ) -> int:
        """What ``participant`` would receive if ``outcome`` won with current pools."""
        if outcome not in OUTCOMES:
            raise InvalidOutcome(f"Invalid outcome {outcome}", match_id=match_id)
        match = self._get(match_id)
        stake = self._stakes.get((match_id, participant, outcome), 0)
        if stake == 0:
            return 0
        rake = calculate_rake(match.total_pool, self.rake_bps)
        return calculate_payout(
            stake, match.total_pool - rake, match.outcome_pools[outcome]
        )

    @property
    def held_balance(self) -> int:
        """Funds currently held: deposits minus everything paid out."""
        return self._held_balance

    @property
    def match_count(self) -> int:
        return self._next_match_id - 1

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self) -> LedgerSnapshot:
        """Copy the whole ledger while no operation is mid-write.

        Match locks are taken in ascending id order. New matches cannot be
        created meanwhile because the registry lock is held throughout.
        """
        if getattr(self._local, "active", False):
            raise ReentrantCall("Ledger operation already in progress")

        with ExitStack() as stack:
            stack.enter_context(self._registry_lock)
            locks = [lock for _, lock in sorted(self._match_locks.items())]
            for lock in locks:
                stack.enter_context(lock)

            with self._balance_lock:
                held_balance = self._held_balance

            return LedgerSnapshot(
                next_match_id=self._next_match_id,
                held_balance=held_balance,
                matches=[m.model_copy(deep=True) for m in self._matches.values()],
                stakes=[
                    StakeEntry(match_id=m, participant=p, outcome=o, amount=amount)
                    for (m, p, o), amount in self._stakes.items()
                    if amount > 0
                ],
                claims=[ClaimEntry(match_id=m, participant=p) for m, p in self._claimed],
            )

    @classmethod
    def from_snapshot(
        cls,
        snapshot: LedgerSnapshot,
        admin: AdminCheck,
        transfer: Transfer,
        clock: Clock = utc_now,
        rake_bps: int = DEFAULT_RAKE_BPS,
        allow_empty_settlement: bool = True,
    ) -> WageringLedger:
        ledger = cls(
            admin,
            transfer,
            clock=clock,
            rake_bps=rake_bps,
            allow_empty_settlement=allow_empty_settlement,
        )
        ledger._next_match_id = snapshot.next_match_id
        ledger._held_balance = snapshot.held_balance
        ledger._matches = {m.id: m.model_copy(deep=True) for m in snapshot.matches}
        ledger._match_locks = {match_id: threading.Lock() for match_id in ledger._matches}
        ledger._stakes = {
            (s.match_id, s.participant, s.outcome): s.amount for s in snapshot.stakes
        }
        ledger._claimed = {(c.match_id, c.participant) for c in snapshot.claims}
        logger.debug(
            f"Restored ledger with {len(ledger._matches)} matches, "
            f"held balance {ledger._held_balance}"
        )
        return ledger


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def create_ledger(
    settings: Settings,
    transfer: Transfer | None = None,
    clock: Clock = utc_now,
    snapshot: LedgerSnapshot | None = None,
) -> WageringLedger:
    """Build a ledger from settings, optionally restoring a saved snapshot."""
    admin = StaticAdmin(settings.ledger.admins)
    transfer = transfer or PaperTransfer()
    options = {
        "clock": clock,
        "rake_bps": settings.ledger.rake_bps,
        "allow_empty_settlement": settings.ledger.allow_empty_settlement,
    }
    if snapshot is not None:
        return WageringLedger.from_snapshot(snapshot, admin, transfer, **options)
    return WageringLedger(admin, transfer, **options)
