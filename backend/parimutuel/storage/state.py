"""Ledger state persistence with atomic writes to data/state.yaml."""

import logging
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from parimutuel.config import get_settings
from parimutuel.ledger.models import LedgerSnapshot

logger = logging.getLogger(__name__)


class LedgerState(BaseModel):
    """Complete persisted state - matches data/state.yaml schema."""

    last_updated: datetime | None = None
    ledger: LedgerSnapshot = Field(default_factory=LedgerSnapshot)
    # Paper wallets credited by PaperTransfer; empty for real payment rails.
    wallets: dict[str, int] = Field(default_factory=dict)


def get_data_dir() -> Path:
    """Get the data directory path from settings."""
    settings = get_settings()
    data_dir = settings.data_dir

    if not data_dir.exists():
        raise FileNotFoundError(
            f"Data directory not found: {data_dir}. "
            "Run 'python -m parimutuel init' to create it."
        )

    return data_dir


def _get_state_path(data_dir: Path | None = None) -> Path:
    return (data_dir or get_data_dir()) / "state.yaml"


def load_state(data_dir: Path | None = None) -> LedgerState:
    """Load ledger state from data/state.yaml, or an empty state if absent."""
    state_path = _get_state_path(data_dir)

    if not state_path.exists():
        logger.info(f"State file not found: {state_path}. Returning empty state.")
        return LedgerState()

    try:
        with open(state_path, "r", encoding="utf-8") as f:
            raw_data = yaml.safe_load(f)

        if not raw_data:
            logger.warning(f"Empty state file: {state_path}. Returning empty state.")
            return LedgerState()

        state = LedgerState(**raw_data)
        logger.debug(f"Loaded state from {state_path}")
        return state

    except yaml.YAMLError as e:
        logger.error(f"Corrupted YAML in state file: {e}")
        raise


def save_state(state: LedgerState, data_dir: Path | None = None) -> None:
    """Atomically save ledger state to data/state.yaml.

    Writes to a tempfile in the same directory and renames it over the old file,
    so a crash mid-write leaves the previous state.yaml intact.
    """
    state_path = _get_state_path(data_dir)
    state.last_updated = datetime.now(timezone.utc)
    state_dict = state.model_dump(mode="json")

    temp_path: Path | None = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            dir=state_path.parent,
            delete=False,
            suffix=".yaml",
            encoding="utf-8",
        ) as temp_file:
            yaml.dump(
                state_dict,
                temp_file,
                default_flow_style=False,
                allow_unicode=True,
                sort_keys=False,
            )
            temp_path = Path(temp_file.name)

        shutil.move(str(temp_path), str(state_path))
        logger.debug(f"Saved state to {state_path}")

    except Exception as e:
        if temp_path is not None:
            temp_path.unlink(missing_ok=True)
        logger.error(f"Failed to save state: {e}")
        raise
