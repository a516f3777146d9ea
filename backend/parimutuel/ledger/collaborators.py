"""External collaborators consumed by the ledger: admin check, transfers, clock."""

import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from typing import Protocol

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AdminCheck(Protocol):
    """Capability check guarding admin-only operations."""

    def is_admin(self, principal: str) -> bool: ...


class Transfer(Protocol):
    """Outbound fund transfer. Returns False on failure; never raises for a refusal."""

    def transfer(self, to: str, amount: int) -> bool: ...


class StaticAdmin:
    """Admin capability backed by a fixed set of principals."""

    def __init__(self, admins: Iterable[str]):
        self.admins = frozenset(admins)

    def is_admin(self, principal: str) -> bool:
        return principal in self.admins


class PaperTransfer:
    """In-memory transfer primitive crediting paper wallets.

    Recipients listed in ``failing`` have their transfers refused, which lets
    callers exercise the failure path without a real payment rail.
    """

    def __init__(
        self,
        wallets: dict[str, int] | None = None,
        failing: Iterable[str] = (),
    ):
        self.wallets: dict[str, int] = dict(wallets or {})
        self.failing: set[str] = set(failing)
        self.transfers: list[tuple[str, int]] = []

    def transfer(self, to: str, amount: int) -> bool:
        if to in self.failing:
            logger.warning(f"Paper transfer of {amount} to {to} refused")
            return False

        self.wallets[to] = self.wallets.get(to, 0) + amount
        self.transfers.append((to, amount))
        logger.debug(f"Paper transfer of {amount} to {to} (wallet={self.wallets[to]})")
        return True

    def balance_of(self, principal: str) -> int:
        return self.wallets.get(principal, 0)

    @property
    def total_paid(self) -> int:
        return sum(amount for _, amount in self.transfers)
