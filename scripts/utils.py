#!/usr/bin/env python3
"""
Shared utilities for the note and task ledger scripts.

Configuration via environment variables:
- NOTES_HOME: Directory holding note collections
- NOTES_COLLECTION: Collection name under NOTES_HOME
- NOTES_TASK_FILE: Ledger filename inside a collection (default TASK.md)
- NOTES_TIMESTAMP: Frozen clock for reproducible runs
  ("YYYY-MM-DD HH:MM", "YYYY-MM-DD HH:MM:SS" or "YYYYMMDDHHmmSS")
- NOTES_AGENT_NAME: Agent identity recorded as task owner
- NOTES_LOG_LEVEL: Logging level for the CLI
"""

import hashlib
import logging
import os
import re
import tempfile
import unicodedata
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)

DAILY_SUBDIR = "#daily"
NOTE_SUBDIR = "note"
DAILY_INDEX_FILENAME = "#daily.md"
TAG_FILE_PREFIX = "#"
DEFAULT_TASK_FILENAME = "TASK.md"

# Preference order: the first existing extension wins for a given stem
NOTE_EXTENSIONS = (".md", ".txt")

HASH_ABBREVIATION_LENGTH = 12

TIMESTAMP_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y%m%d%H%M%S",
)


def _env_path(name: str) -> Path | None:
    """Path from env var name, or None when it is unset or blank."""
    value = (os.getenv(name) or "").strip()
    return Path(value).expanduser() if value else None


def get_notes_home() -> Path:
    """Return the directory holding note collections."""
    return _env_path("NOTES_HOME") or Path.home() / "Notes"


def get_collection_dir(collection: str | None = None) -> Path:
    """Resolve a collection directory.

    An explicit path (absolute, or containing a separator) is used as-is;
    a bare name is looked up under NOTES_HOME.
    """
    name = collection or os.getenv("NOTES_COLLECTION", "").strip() or "default"
    candidate = Path(name).expanduser()
    if candidate.is_absolute() or len(candidate.parts) > 1:
        return candidate
    return get_notes_home() / name


def get_task_filename() -> str:
    return os.getenv("NOTES_TASK_FILE", "").strip() or DEFAULT_TASK_FILENAME


def current_datetime() -> datetime:
    """Return the current local time, honoring NOTES_TIMESTAMP."""
    override = os.getenv("NOTES_TIMESTAMP", "").strip()
    if override:
        for fmt in TIMESTAMP_FORMATS:
            try:
                return datetime.strptime(override, fmt)
            except ValueError:
                continue
        logger.warning(f"Ignoring unparsable NOTES_TIMESTAMP: {override}")
    return datetime.now()


def current_agent() -> str | None:
    """Return the agent name from NOTES_AGENT_NAME as a single '@'-less token.

    Inner whitespace becomes '-', so "Claude Bot" is recorded as "Claude-Bot".
    """
    name = "-".join(os.getenv("NOTES_AGENT_NAME", "").lstrip().lstrip("@").split())
    return name or None


def slugify(text: str) -> str:
    """Convert text to a lowercase ASCII slug joined by dashes."""
    normalized = unicodedata.normalize("NFKD", text or "")
    ascii_text = normalized.encode("ascii", "ignore").decode("ascii").lower()
    slug = re.sub(r"[^a-z0-9]+", "-", ascii_text)
    return slug.strip("-")


def hash_source(source: str) -> str:
    """SHA-256 hex digest of a source string."""
    return hashlib.sha256(source.encode("utf-8")).hexdigest()


def abbreviate_hash(full_hash: str) -> str:
    return full_hash[:HASH_ABBREVIATION_LENGTH]


def sanitize_line(text: str) -> str:
    """Strip newlines and control chars to prevent markdown injection."""
    flattened = text.replace("\r", "").replace("\n", " ")
    return "".join(ch for ch in flattened if ch == "\t" or ch >= " ").strip()


def display_path(path: Path, base: Path | None = None) -> str:
    """Render a path with forward slashes, relative to base when possible."""
    if base is not None:
        try:
            path = path.relative_to(base)
        except ValueError:
            pass
    return str(path).replace("\\", "/")


def atomic_write(path: Path, content: str) -> None:
    """Write content atomically via tempfile + rename.

    The file is opened with newline="" so no newline translation happens:
    content reaches disk exactly as given, which keeps unchanged ledger
    lines byte-identical on every platform.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as tmp:
            tmp.write(content)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp_name, path)
    finally:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
