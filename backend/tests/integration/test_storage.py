"""Integration tests for ledger persistence and the event log."""

import yaml

from conftest import ADMIN, KICKOFF
from parimutuel.ledger import PaperTransfer, StaticAdmin, WageringLedger
from parimutuel.storage import LedgerState, event_logger, load_state, read_events, save_state


def _played_ledger(clock, transfer) -> tuple[WageringLedger, int]:
    ledger = WageringLedger(StaticAdmin([ADMIN]), transfer, clock=clock)
    match_id = ledger.create_match(ADMIN, "Lions", "Tigers", "Final", KICKOFF)
    ledger.place_bet("alice", match_id, 1, 60)
    ledger.place_bet("bob", match_id, 2, 40)
    clock.now = KICKOFF
    ledger.settle_match(ADMIN, match_id, 1)
    return ledger, match_id


def test_missing_state_loads_empty(tmp_path) -> None:
    state = load_state(tmp_path)
    assert state.ledger.next_match_id == 1
    assert state.ledger.matches == []
    assert state.wallets == {}


def test_state_round_trip_restores_ledger(tmp_path, clock, transfer) -> None:
    ledger, match_id = _played_ledger(clock, transfer)
    ledger.claim_winnings("alice", match_id)

    save_state(LedgerState(ledger=ledger.snapshot(), wallets=transfer.wallets), tmp_path)
    state = load_state(tmp_path)
    assert state.last_updated is not None

    restored_transfer = PaperTransfer(wallets=state.wallets)
    restored = WageringLedger.from_snapshot(
        state.ledger, StaticAdmin([ADMIN]), restored_transfer, clock=clock
    )

    assert restored.get_match(match_id) == ledger.get_match(match_id)
    assert restored.held_balance == ledger.held_balance
    assert restored.has_claimed(match_id, "alice")
    assert restored.get_stake(match_id, "bob", 2) == 40
    assert restored_transfer.balance_of("alice") == 97

    # New matches continue the id sequence.
    assert restored.create_match(ADMIN, "A", "B", "", KICKOFF.replace(year=2031)) == 2
    assert restored.withdraw_fees(ADMIN, match_id) == 3


def test_state_file_is_plain_yaml(tmp_path, clock, transfer) -> None:
    ledger, match_id = _played_ledger(clock, transfer)
    save_state(LedgerState(ledger=ledger.snapshot()), tmp_path)

    raw = yaml.safe_load((tmp_path / "state.yaml").read_text(encoding="utf-8"))
    match = raw["ledger"]["matches"][0]
    assert match["id"] == match_id
    assert match["settled"] is True
    assert match["rake_amount"] == 3
    assert list(tmp_path.glob("*.yaml")) == [tmp_path / "state.yaml"]


def test_event_log_records_ledger_events(tmp_path, clock, transfer) -> None:
    ledger = WageringLedger(StaticAdmin([ADMIN]), transfer, clock=clock)
    ledger.subscribe(event_logger(tmp_path))

    first = ledger.create_match(ADMIN, "A", "B", "first", KICKOFF)
    second = ledger.create_match(ADMIN, "C", "D", "second", KICKOFF)
    ledger.place_bet("alice", first, 2, 10)
    ledger.cancel_match(ADMIN, first)
    ledger.claim_refund("alice", first)

    events = read_events(first, data_dir=tmp_path)
    assert [e["kind"] for e in events] == [
        "match_created",
        "bet_placed",
        "match_cancelled",
        "refund_claimed",
    ]
    assert events[-1]["amount"] == 10
    assert [e["match_id"] for e in read_events(second, data_dir=tmp_path)] == [second]
    assert len(read_events(data_dir=tmp_path)) == 5
