"""Append-only JSONL log of ledger events in data/events/{date}.jsonl."""

import json
import logging
from pathlib import Path

from parimutuel.ledger.models import LedgerEvent
from parimutuel.storage.state import get_data_dir

logger = logging.getLogger(__name__)


def _get_events_dir(data_dir: Path | None = None) -> Path:
    events_dir = (data_dir or get_data_dir()) / "events"
    events_dir.mkdir(parents=True, exist_ok=True)
    return events_dir


def log_event(event: LedgerEvent, data_dir: Path | None = None) -> Path:
    """Append one event as a single JSON line. Returns the log file path."""
    date_str = event.emitted_at.strftime("%Y-%m-%d")
    log_path = _get_events_dir(data_dir) / f"{date_str}.jsonl"

    try:
        with open(log_path, "a", encoding="utf-8") as f:
            f.write(event.model_dump_json() + "\n")
    except OSError as e:
        logger.error(f"Failed to log {event.kind} for match {event.match_id}: {e}")
        raise

    logger.debug(f"Logged {event.kind} for match {event.match_id} to {log_path}")
    return log_path


def event_logger(data_dir: Path | None = None):
    """Return a ledger listener that writes every event under ``data_dir``."""

    def _listener(event: LedgerEvent) -> None:
        log_event(event, data_dir)

    return _listener


def read_events(match_id: int | None = None, data_dir: Path | None = None) -> list[dict]:
    """Read logged events in chronological order, optionally for one match."""
    events: list[dict] = []
    for log_path in sorted(_get_events_dir(data_dir).glob("*.jsonl")):
        for line in log_path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            record = json.loads(line)
            if match_id is None or record.get("match_id") == match_id:
                events.append(record)
    return events
