"""Load and save the task ledger of a collection."""

from __future__ import annotations

import logging
from pathlib import Path

from utils import atomic_write, get_task_filename

from .codec import parse_ledger, serialize_ledger
from .model import DEFAULT_PREFIX, TaskLedger

logger = logging.getLogger(__name__)


def default_ledger_text() -> str:
    return f"---\nPREFIX: {DEFAULT_PREFIX}\n---\n\n---\n\n"


def ledger_path(collection: Path) -> Path:
    return collection / get_task_filename()


def load_ledger(path: Path) -> TaskLedger:
    """Parse the ledger at path; a missing or blank file yields the default ledger."""
    if not path.exists():
        logger.debug(f"No ledger at {path}, starting from the default template")
        return parse_ledger(default_ledger_text())
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return parse_ledger(default_ledger_text())
    return parse_ledger(text)


def save_ledger(ledger: TaskLedger, path: Path) -> None:
    atomic_write(path, serialize_ledger(ledger))
    logger.debug(f"Wrote {path}")
