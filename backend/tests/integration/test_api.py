"""Integration tests for the FastAPI ledger server."""

import pytest
from fastapi.testclient import TestClient

from conftest import ADMIN, KICKOFF
from parimutuel.api.server import create_app
from parimutuel.config import Settings
from parimutuel.storage import load_state

AS_ADMIN = {"X-Principal": ADMIN}


def _as(principal: str) -> dict[str, str]:
    return {"X-Principal": principal}


@pytest.fixture
def client(ledger) -> TestClient:
    return TestClient(create_app(ledger=ledger, settings=Settings()))


def _create_match(client: TestClient) -> int:
    response = client.post(
        "/api/matches",
        json={
            "team1": "Lions",
            "team2": "Tigers",
            "description": "Cup final",
            "start_time": KICKOFF.isoformat(),
        },
        headers=AS_ADMIN,
    )
    assert response.status_code == 201
    return response.json()["id"]


def test_health(client) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_full_match_flow(client, transfer, kickoff) -> None:
    match_id = _create_match(client)

    response = client.post(
        f"/api/matches/{match_id}/bets", json={"outcome": 1, "amount": 10}, headers=_as("alice")
    )
    assert response.status_code == 201
    assert response.json()["stakes"]["1"] == 10

    client.post(f"/api/matches/{match_id}/bets", json={"outcome": 2, "amount": 20}, headers=_as("bob"))
    client.post(f"/api/matches/{match_id}/bets", json={"outcome": 3, "amount": 70}, headers=_as("carol"))

    pools = client.get(f"/api/matches/{match_id}/pools").json()
    assert pools["total_pool"] == 100
    assert pools["outcome_pools"] == {"1": 10, "2": 20, "3": 70}

    view = client.get(f"/api/matches/{match_id}/participants/alice").json()
    assert view["potential_payouts"]["1"] == 97

    kickoff()
    settled = client.post(
        f"/api/matches/{match_id}/settle", json={"winning_outcome": 1}, headers=AS_ADMIN
    ).json()
    assert settled["settled"] is True
    assert settled["rake_amount"] == 3

    claim = client.post(f"/api/matches/{match_id}/claim", headers=_as("alice"))
    assert claim.json() == {"match_id": match_id, "amount": 97}

    fees = client.post(f"/api/matches/{match_id}/fees/withdraw", headers=AS_ADMIN)
    assert fees.json()["amount"] == 3
    assert transfer.balance_of("alice") == 97


def test_errors_map_to_status_codes(client, kickoff) -> None:
    response = client.get("/api/matches/99")
    assert response.status_code == 404
    assert response.json()["error"] == "MatchNotExists"

    match_id = _create_match(client)

    response = client.post(f"/api/matches/{match_id}/cancel", headers=_as("mallory"))
    assert response.status_code == 403
    assert response.json()["category"] == "authorization"

    response = client.post(
        f"/api/matches/{match_id}/bets", json={"outcome": 7, "amount": 10}, headers=_as("alice")
    )
    assert response.status_code == 422
    assert response.json()["error"] == "InvalidOutcome"

    response = client.post(f"/api/matches/{match_id}/claim", headers=_as("alice"))
    assert response.status_code == 409
    assert response.json()["error"] == "NotSettled"

    kickoff()
    response = client.post(
        f"/api/matches/{match_id}/bets", json={"outcome": 1, "amount": 10}, headers=_as("alice")
    )
    assert response.status_code == 409
    assert response.json()["error"] == "BettingClosed"


def test_missing_principal_header_is_rejected(client) -> None:
    response = client.post(
        "/api/matches",
        json={"team1": "A", "team2": "B", "start_time": KICKOFF.isoformat()},
    )
    assert response.status_code == 422


def test_transfer_failure_returns_bad_gateway(client, transfer) -> None:
    match_id = _create_match(client)
    client.post(f"/api/matches/{match_id}/bets", json={"outcome": 1, "amount": 10}, headers=_as("alice"))
    client.post(f"/api/matches/{match_id}/cancel", headers=AS_ADMIN)
    transfer.failing.add("alice")

    response = client.post(f"/api/matches/{match_id}/refund", headers=_as("alice"))
    assert response.status_code == 502
    assert response.json()["error"] == "TransferFailed"

    response = client.post(f"/api/matches/{match_id}/refund", headers=_as("alice"))
    assert response.status_code == 409
    assert response.json()["error"] == "AlreadyClaimed"


def test_app_persists_state_to_data_dir(tmp_path) -> None:
    client = TestClient(create_app(settings=Settings(), data_dir=tmp_path))
    match_id = _create_match(client)
    client.post(f"/api/matches/{match_id}/bets", json={"outcome": 2, "amount": 25}, headers=_as("alice"))

    state = load_state(tmp_path)
    assert state.ledger.held_balance == 25
    assert state.ledger.matches[0].outcome_pools[2] == 25
    assert (tmp_path / "events").is_dir()

    reopened = TestClient(create_app(settings=Settings(), data_dir=tmp_path))
    assert reopened.get(f"/api/matches/{match_id}/pools").json()["total_pool"] == 25
