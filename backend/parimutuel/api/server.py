"""FastAPI server exposing the wagering ledger."""

import logging
from datetime import datetime
from pathlib import Path

from fastapi import FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from parimutuel import __version__
from parimutuel.config import Settings, get_settings
from parimutuel.ledger import (
    OUTCOMES,
    ErrorCategory,
    LedgerError,
    MatchNotExists,
    PaperTransfer,
    TransferFailed,
    WageringLedger,
    create_ledger,
)
from parimutuel.ledger.models import Match
from parimutuel.storage import LedgerState, event_logger, load_state, save_state

logger = logging.getLogger(__name__)

STATUS_BY_CATEGORY = {
    ErrorCategory.AUTHORIZATION: 403,
    ErrorCategory.TEMPORAL: 409,
    ErrorCategory.STATE_CONFLICT: 409,
    ErrorCategory.INPUT_VALIDATION: 422,
    ErrorCategory.DOUBLE_ACTION: 409,
    ErrorCategory.ELIGIBILITY: 409,
    ErrorCategory.EXTERNAL_FAILURE: 502,
}


# ============================================================================
# Request / Response Models
# ============================================================================


class CreateMatchRequest(BaseModel):
    team1: str
    team2: str
    description: str = ""
    start_time: datetime


class PlaceBetRequest(BaseModel):
    outcome: int
    amount: int


class SettleRequest(BaseModel):
    winning_outcome: int


class AmountResponse(BaseModel):
    match_id: int
    amount: int


class ParticipantView(BaseModel):
    match_id: int
    participant: str
    stakes: dict[int, int]
    total_stake: int
    claimed: bool
    potential_payouts: dict[int, int] = Field(default_factory=dict)


# ============================================================================
# App Factory
# ============================================================================


def create_app(
    ledger: WageringLedger | None = None,
    settings: Settings | None = None,
    data_dir: Path | None = None,
) -> FastAPI:
    """Build the API around ``ledger``.

    When ``data_dir`` is given, the ledger is restored from its state.yaml (unless
    one is passed in) and the state is saved after every committed mutation.
    """
    settings = settings or get_settings()
    wallets: dict[str, int] = {}

    if ledger is None:
        state = load_state(data_dir) if data_dir else LedgerState()
        wallets = state.wallets
        ledger = create_ledger(
            settings, transfer=PaperTransfer(wallets=wallets), snapshot=state.ledger
        )
        if data_dir:
            ledger.subscribe(event_logger(data_dir))

    app = FastAPI(title="Parimutuel Ledger API", version=__version__)
    app.state.ledger = ledger

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def persist() -> None:
        if data_dir is None:
            return
        transfer = ledger.transfer
        state = LedgerState(
            ledger=ledger.snapshot(),
            wallets=transfer.wallets if isinstance(transfer, PaperTransfer) else wallets,
        )
        save_state(state, data_dir)

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
        if isinstance(exc, TransferFailed):
            # The claim is consumed even though the funds did not move.
            persist()
        status = 404 if isinstance(exc, MatchNotExists) else STATUS_BY_CATEGORY[exc.category]
        logger.info(f"{request.method} {request.url.path} rejected: {exc.name}: {exc}")
        return JSONResponse(
            status_code=status,
            content={"error": exc.name, "category": exc.category.value, "detail": str(exc)},
        )

    @app.get("/health")
    async def health() -> dict[str, str | int]:
        return {"status": "healthy", "version": __version__, "matches": ledger.match_count}

    @app.get("/api/matches")
    async def list_matches() -> list[Match]:
        return ledger.list_matches()

    @app.post("/api/matches", status_code=201)
    async def create_match(
        body: CreateMatchRequest, x_principal: str = Header(...)
    ) -> Match:
        match_id = ledger.create_match(
            x_principal, body.team1, body.team2, body.description, body.start_time
        )
        persist()
        return ledger.get_match(match_id)

    @app.get("/api/matches/{match_id}")
    async def get_match(match_id: int) -> Match:
        return ledger.get_match(match_id)

    @app.get("/api/matches/{match_id}/pools")
    async def get_pools(match_id: int) -> dict[str, int | dict[int, int]]:
        return {
            "total_pool": ledger.get_total_pool(match_id),
            "outcome_pools": {o: ledger.get_outcome_pool(match_id, o) for o in OUTCOMES},
        }

    @app.get("/api/matches/{match_id}/participants/{participant}")
    async def get_participant(match_id: int, participant: str) -> ParticipantView:
        match = ledger.get_match(match_id)
        view = ParticipantView(
            match_id=match_id,
            participant=participant,
            stakes={o: ledger.get_stake(match_id, participant, o) for o in OUTCOMES},
            total_stake=ledger.get_total_stake(match_id, participant),
            claimed=ledger.has_claimed(match_id, participant),
        )
        if not match.settled and not match.cancelled:
            view.potential_payouts = {
                o: ledger.calculate_potential_payout(match_id, participant, o)
                for o in OUTCOMES
            }
        return view

    @app.post("/api/matches/{match_id}/bets", status_code=201)
    async def place_bet(
        match_id: int, body: PlaceBetRequest, x_principal: str = Header(...)
    ) -> ParticipantView:
        ledger.place_bet(x_principal, match_id, body.outcome, body.amount)
        persist()
        return await get_participant(match_id, x_principal)

    @app.post("/api/matches/{match_id}/settle")
    async def settle_match(
        match_id: int, body: SettleRequest, x_principal: str = Header(...)
    ) -> Match:
        ledger.settle_match(x_principal, match_id, body.winning_outcome)
        persist()
        return ledger.get_match(match_id)

    @app.post("/api/matches/{match_id}/cancel")
    async def cancel_match(match_id: int, x_principal: str = Header(...)) -> Match:
        ledger.cancel_match(x_principal, match_id)
        persist()
        return ledger.get_match(match_id)

    @app.post("/api/matches/{match_id}/claim")
    async def claim_winnings(
        match_id: int, x_principal: str = Header(...)
    ) -> AmountResponse:
        amount = ledger.claim_winnings(x_principal, match_id)
        persist()
        return AmountResponse(match_id=match_id, amount=amount)

    @app.post("/api/matches/{match_id}/refund")
    async def claim_refund(
        match_id: int, x_principal: str = Header(...)
    ) -> AmountResponse:
        amount = ledger.claim_refund(x_principal, match_id)
        persist()
        return AmountResponse(match_id=match_id, amount=amount)

    @app.post("/api/matches/{match_id}/fees/withdraw")
    async def withdraw_fees(
        match_id: int, x_principal: str = Header(...)
    ) -> AmountResponse:
        amount = ledger.withdraw_fees(x_principal, match_id)
        persist()
        return AmountResponse(match_id=match_id, amount=amount)

    return app
