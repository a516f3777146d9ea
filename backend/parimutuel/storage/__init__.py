"""Storage layer for the ledger - file-based persistence.

This package provides:
- State management (load/save the ledger snapshot in data/state.yaml)
- Event log (append ledger events to data/events/{date}.jsonl)

Writes to state.yaml are atomic to prevent corruption.
"""

from .events import event_logger, log_event, read_events
from .state import LedgerState, get_data_dir, load_state, save_state

__all__ = [
    "LedgerState",
    "load_state",
    "save_state",
    "get_data_dir",
    "log_event",
    "event_logger",
    "read_events",
]
