"""Read-only views over a note directory tree."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

# [display name](target), skipping images
MARKDOWN_LINK_RE = re.compile(r"(?<!!)\[([^\]]*)\]\(([^)\s]+)(?:\s+\"[^\"]*\")?\)")
HASH_DIR_RE = re.compile(r"^[0-9a-f]{12}$")


@dataclass(frozen=True)
class NoteEntry:
    stem: str
    path: Path


@dataclass(frozen=True)
class IndexLink:
    name: str
    target: str
    line_num: int


def list_entries(directory: Path, extensions: tuple[str, ...]) -> list[NoteEntry]:
    """List files directly under directory with a recognized extension.

    Entries are sorted by stem. When a stem exists with several extensions,
    the extension listed first in ``extensions`` wins.
    """
    if not directory.is_dir():
        return []

    by_stem: dict[str, tuple[int, Path]] = {}
    for path in directory.iterdir():
        if not path.is_file():
            continue
        name = path.name
        for rank, ext in enumerate(extensions):
            if name.endswith(ext) and len(name) > len(ext):
                stem = name[:-len(ext)]
                current = by_stem.get(stem)
                if current is None or rank < current[0]:
                    by_stem[stem] = (rank, path)
                break

    return [NoteEntry(stem=stem, path=by_stem[stem][1]) for stem in sorted(by_stem)]


def list_hash_dirs(directory: Path) -> list[Path]:
    """Subdirectories named after an abbreviated source hash, sorted."""
    if not directory.is_dir():
        return []
    return sorted(
        (p for p in directory.iterdir() if p.is_dir() and HASH_DIR_RE.match(p.name)),
        key=lambda p: p.name,
    )


def read_index_links(index_file: Path) -> list[IndexLink]:
    """Extract markdown links from an index file (tag file or daily index)."""
    try:
        content = index_file.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning(f"Skipping unreadable index file {index_file}: {exc}")
        return []

    links = []
    for line_num, line in enumerate(content.splitlines()):
        for match in MARKDOWN_LINK_RE.finditer(line):
            links.append(IndexLink(name=match.group(1).strip(), target=match.group(2), line_num=line_num))
    return links
