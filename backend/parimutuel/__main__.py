"""Parimutuel CLI entry point."""

import argparse
import logging
import sys
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

env_file = Path(__file__).parent.parent / ".env"
load_dotenv(env_file)

from parimutuel import __version__
from parimutuel.config import get_settings
from parimutuel.ledger import (
    OUTCOMES,
    LedgerError,
    PaperTransfer,
    TransferFailed,
    WageringLedger,
    create_ledger,
)
from parimutuel.storage import LedgerState, event_logger, load_state, save_state

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)

CONFIG_TEMPLATE = """# Parimutuel Ledger Configuration
# Secrets (LOGFIRE_TOKEN) belong in .env, not here.

ledger:
  rake_bps: 300
  admins:
    - admin
  allow_empty_settlement: true

server:
  host: 127.0.0.1
  port: 8000
  allowed_origins:
    - http://localhost:3000
"""


def _init_logfire() -> None:
    """Initialize Logfire if available, without failing commands."""
    try:
        from parimutuel.observability import initialize_logfire

        initialize_logfire(get_settings())
    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")


def _open_ledger() -> tuple[WageringLedger, PaperTransfer]:
    settings = get_settings()
    state = load_state()
    transfer = PaperTransfer(wallets=state.wallets)
    ledger = create_ledger(settings, transfer=transfer, snapshot=state.ledger)
    ledger.subscribe(event_logger())
    return ledger, transfer


def _commit(ledger: WageringLedger, transfer: PaperTransfer) -> None:
    save_state(LedgerState(ledger=ledger.snapshot(), wallets=transfer.wallets))


def _run_operation(
    label: str, operation: Callable[[WageringLedger], str]
) -> int:
    """Load state, run one ledger operation, save state, report the outcome."""
    try:
        ledger, transfer = _open_ledger()
    except FileNotFoundError as e:
        print(f"\n❌ {e}\n")
        return 1

    try:
        message = operation(ledger)
    except TransferFailed as e:
        # The claim stays consumed, so the state must still be saved.
        _commit(ledger, transfer)
        print(f"\n❌ {label} failed: {e.name}: {e}\n")
        return 1
    except LedgerError as e:
        print(f"\n❌ {label} rejected: {e.name} ({e.category.value}): {e}\n")
        return 1

    _commit(ledger, transfer)
    print(f"\n✓ {message}\n")
    return 0


def cmd_init(args: argparse.Namespace) -> int:
    """Initialize data directory structure and configuration files."""
    data_dir = Path("data").resolve()

    try:
        (data_dir / "events").mkdir(parents=True, exist_ok=True)
        logger.info(f"Created data directory: {data_dir}")

        config_path = data_dir / "config.yaml"
        if not config_path.exists():
            config_path.write_text(CONFIG_TEMPLATE)
            logger.info(f"Created config template: {config_path}")
        else:
            logger.info(f"Config file already exists: {config_path}")

        state_path = data_dir / "state.yaml"
        if not state_path.exists():
            save_state(LedgerState(), data_dir)
            logger.info(f"Created empty state: {state_path}")
        else:
            logger.info(f"State file already exists: {state_path}")

        print(f"\n✓ Data directory initialized at {data_dir}")
        print("\nNext steps:")
        print("1. Review data/config.yaml (admins, rake)")
        print("2. Run 'python -m parimutuel config' to verify configuration")
        print("3. Run 'python -m parimutuel create --as admin ...' to open a match\n")
        return 0

    except OSError as e:
        logger.error(f"Failed to initialize: {e}")
        print(f"\n❌ Initialization failed: {e}\n")
        return 1


def cmd_config(args: argparse.Namespace) -> int:
    """Display merged configuration."""
    try:
        settings = get_settings()
    except ValidationError as e:
        print("\n❌ Configuration Error:\n")
        for error in e.errors():
            print(f"  • {'.'.join(str(x) for x in error['loc'])}: {error['msg']}")
        print()
        return 1

    print("\n=== Parimutuel Configuration ===\n")
    print(f"Data Directory: {settings.data_dir}")
    print(f"Environment: {settings.environment}\n")

    print("Ledger:")
    print(f"  Rake: {settings.ledger.rake_bps} bps ({settings.ledger.rake_bps / 100:.2f}%)")
    print(f"  Admins: {', '.join(settings.ledger.admins) or '(none)'}")
    print(f"  Allow Empty Settlement: {settings.ledger.allow_empty_settlement}\n")

    print("Server:")
    print(f"  Listen: {settings.server.host}:{settings.server.port}")
    print(f"  Allowed Origins: {', '.join(settings.server.allowed_origins)}\n")

    print(f"Logfire: {'✓ Set' if settings.logfire_token else '✗ Not set'}\n")
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    """Display matches, pools and held balance."""
    try:
        ledger, transfer = _open_ledger()
    except FileNotFoundError as e:
        print(f"\n❌ {e}\n")
        return 1

    print("\n=== Parimutuel Ledger Status ===\n")
    print(f"Held Balance: {ledger.held_balance:,}")
    print(f"Matches: {ledger.match_count}\n")

    for match in ledger.list_matches():
        pools = " / ".join(f"{match.outcome_pools[o]:,}" for o in OUTCOMES)
        print(f"  #{match.id} {match.team1} vs {match.team2} [{match.status}]")
        print(f"     starts {match.start_time.isoformat()}  pool {match.total_pool:,} ({pools})")
        if match.settled:
            print(f"     winner {match.winning_outcome}  rake held {match.rake_amount:,}")

    if transfer.wallets:
        print("\nPaper Wallets:")
        for principal, balance in sorted(transfer.wallets.items()):
            print(f"  {principal}: {balance:,}")
    print()
    return 0


def cmd_create(args: argparse.Namespace) -> int:
    try:
        start_time = datetime.fromisoformat(args.start_time)
    except ValueError:
        print(f"\n❌ Invalid start time {args.start_time!r}, expected ISO 8601\n")
        return 1

    def op(ledger: WageringLedger) -> str:
        match_id = ledger.create_match(
            args.principal, args.team1, args.team2, args.description, start_time
        )
        return f"Created match #{match_id}: {args.team1} vs {args.team2}"

    return _run_operation("Create match", op)


def cmd_bet(args: argparse.Namespace) -> int:
    def op(ledger: WageringLedger) -> str:
        ledger.place_bet(args.principal, args.match_id, args.outcome, args.amount)
        return f"{args.principal} staked {args.amount:,} on outcome {args.outcome}"

    return _run_operation("Bet", op)


def cmd_settle(args: argparse.Namespace) -> int:
    def op(ledger: WageringLedger) -> str:
        ledger.settle_match(args.principal, args.match_id, args.outcome)
        match = ledger.get_match(args.match_id)
        if match.no_winners:
            return f"Settled match #{match.id}: no winners, refunds open"
        return f"Settled match #{match.id}: outcome {args.outcome}, rake {match.rake_amount:,}"

    return _run_operation("Settle", op)


def cmd_cancel(args: argparse.Namespace) -> int:
    def op(ledger: WageringLedger) -> str:
        ledger.cancel_match(args.principal, args.match_id)
        return f"Cancelled match #{args.match_id}"

    return _run_operation("Cancel", op)


def cmd_claim(args: argparse.Namespace) -> int:
    def op(ledger: WageringLedger) -> str:
        payout = ledger.claim_winnings(args.principal, args.match_id)
        return f"Paid {payout:,} to {args.principal}"

    return _run_operation("Claim", op)


def cmd_refund(args: argparse.Namespace) -> int:
    def op(ledger: WageringLedger) -> str:
        refund = ledger.claim_refund(args.principal, args.match_id)
        return f"Refunded {refund:,} to {args.principal}"

    return _run_operation("Refund", op)


def cmd_withdraw_fees(args: argparse.Namespace) -> int:
    def op(ledger: WageringLedger) -> str:
        amount = ledger.withdraw_fees(args.principal, args.match_id)
        return f"Withdrew {amount:,} in fees to {args.principal}"

    return _run_operation("Withdraw fees", op)


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the HTTP API."""
    import uvicorn

    from parimutuel.api.server import create_app
    from parimutuel.observability import initialize_logfire
    from parimutuel.storage import get_data_dir

    settings = get_settings()
    try:
        app = create_app(settings=settings, data_dir=get_data_dir())
    except FileNotFoundError as e:
        print(f"\n❌ {e}\n")
        return 1

    try:
        initialize_logfire(settings, app)
    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")

    print(f"\n=== Parimutuel Ledger API v{__version__} ===\n")
    uvicorn.run(app, host=settings.server.host, port=settings.server.port)
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Parimutuel: pool-based wagering ledger",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"Parimutuel {__version__}",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    caller = argparse.ArgumentParser(add_help=False)
    caller.add_argument(
        "--as",
        dest="principal",
        required=True,
        help="Principal performing the operation",
    )
    match_arg = argparse.ArgumentParser(add_help=False)
    match_arg.add_argument("match_id", type=int, help="Match ID")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser(
        "init", help="Initialize data directory and configuration files"
    ).set_defaults(func=cmd_init)
    subparsers.add_parser(
        "config", help="Display merged configuration"
    ).set_defaults(func=cmd_config)
    subparsers.add_parser(
        "status", help="Display matches, pools and balances"
    ).set_defaults(func=cmd_status)

    parser_create = subparsers.add_parser(
        "create", parents=[caller], help="Create a match (admin)"
    )
    parser_create.add_argument("team1")
    parser_create.add_argument("team2")
    parser_create.add_argument("--description", default="")
    parser_create.add_argument(
        "--start-time",
        required=True,
        help="ISO 8601 start time; betting closes at this instant",
    )
    parser_create.set_defaults(func=cmd_create)

    parser_bet = subparsers.add_parser(
        "bet", parents=[caller, match_arg], help="Stake an amount on an outcome"
    )
    parser_bet.add_argument("outcome", type=int, help="1 = team1, 2 = team2, 3 = draw")
    parser_bet.add_argument("amount", type=int, help="Amount in minimal units")
    parser_bet.set_defaults(func=cmd_bet)

    parser_settle = subparsers.add_parser(
        "settle", parents=[caller, match_arg], help="Settle a match (admin)"
    )
    parser_settle.add_argument("outcome", type=int, help="Winning outcome")
    parser_settle.set_defaults(func=cmd_settle)

    subparsers.add_parser(
        "cancel", parents=[caller, match_arg], help="Cancel a match (admin)"
    ).set_defaults(func=cmd_cancel)
    subparsers.add_parser(
        "claim", parents=[caller, match_arg], help="Claim winnings"
    ).set_defaults(func=cmd_claim)
    subparsers.add_parser(
        "refund", parents=[caller, match_arg], help="Claim a refund"
    ).set_defaults(func=cmd_refund)
    subparsers.add_parser(
        "withdraw-fees", parents=[caller, match_arg], help="Withdraw the rake (admin)"
    ).set_defaults(func=cmd_withdraw_fees)

    subparsers.add_parser("serve", help="Start the HTTP API").set_defaults(func=cmd_serve)

    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.func not in (cmd_init, cmd_config, cmd_serve):
        _init_logfire()

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
