"""Shared fixtures: a controllable clock, paper transfers and a fresh ledger."""

from datetime import datetime, timedelta, timezone

import pytest

from parimutuel.config import get_settings
from parimutuel.ledger import PaperTransfer, StaticAdmin, WageringLedger

KICKOFF = datetime(2030, 6, 1, 18, 0, tzinfo=timezone.utc)
ADMIN = "admin"


class FakeClock:
    """Clock returning a settable instant."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(KICKOFF - timedelta(days=1))


@pytest.fixture
def transfer() -> PaperTransfer:
    return PaperTransfer()


@pytest.fixture
def ledger(clock: FakeClock, transfer: PaperTransfer) -> WageringLedger:
    return WageringLedger(StaticAdmin([ADMIN]), transfer, clock=clock)


@pytest.fixture
def match_id(ledger: WageringLedger) -> int:
    return ledger.create_match(ADMIN, "Lions", "Tigers", "Cup final", KICKOFF)


@pytest.fixture
def kickoff(clock: FakeClock):
    """Move the clock to the match start so betting closes and settlement opens."""

    def _kickoff() -> None:
        clock.now = KICKOFF

    return _kickoff


@pytest.fixture
def clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
