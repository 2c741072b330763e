"""
Resolve note references to files in a collection.

A collection looks like:

    <root>/#daily/YYYYMMDD/HHmmSS[-slug].md   dated notes
    <root>/note/<slug>.md                      permanent notes
    <root>/note/<hash12>/<slug>.md             permanent notes keyed by source
    <root>/note/#daily.md                      daily index
    <root>/#<tag>.md                           tag index files

Each query shape maps to an ordered list of search tiers. Tiers run in order
and the first one that yields any candidate wins; candidates from different
tiers are never merged.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Union
from urllib.parse import unquote

from utils import (
    DAILY_INDEX_FILENAME,
    DAILY_SUBDIR,
    NOTE_EXTENSIONS,
    NOTE_SUBDIR,
    TAG_FILE_PREFIX,
    abbreviate_hash,
    hash_source,
    slugify,
)

from .errors import AmbiguousReference, NoteNotFound
from .parser import (
    DatePrefix,
    FullTimestamp,
    HybridTimestamp,
    Literal,
    QueryShape,
    TimePrefix,
    TitlePrefix,
    parse_reference,
)
from .walker import list_entries, list_hash_dirs, read_index_links

logger = logging.getLogger(__name__)

DAILY_STEM_RE = re.compile(r"^[0-9]{6}-(.*)$")


@dataclass(frozen=True)
class ResolveContext:
    daily_root: Path
    today: str
    permanent_root: Path
    index_files: tuple[Path, ...] = ()
    root: Path | None = None
    extensions: tuple[str, ...] = NOTE_EXTENSIONS

    @classmethod
    def for_collection(cls, root: Path, now: datetime | None = None) -> "ResolveContext":
        """Build the context for a collection directory."""
        now = now or datetime.now()
        permanent_root = root / NOTE_SUBDIR
        index_files = []
        if root.is_dir():
            index_files = sorted(
                (
                    p for p in root.iterdir()
                    if p.is_file()
                    and p.name.startswith(TAG_FILE_PREFIX)
                    and p.name.endswith(NOTE_EXTENSIONS)
                ),
                key=lambda p: p.name,
            )
        daily_index = permanent_root / DAILY_INDEX_FILENAME
        if daily_index.is_file():
            index_files.append(daily_index)
        return cls(
            daily_root=root / DAILY_SUBDIR,
            today=now.strftime("%Y%m%d"),
            permanent_root=permanent_root,
            index_files=tuple(index_files),
            root=root,
        )


@dataclass(frozen=True)
class Candidate:
    path: Path
    rule: str


@dataclass(frozen=True)
class Unique:
    path: Path


@dataclass(frozen=True)
class NotFound:
    pass


@dataclass(frozen=True)
class Ambiguous:
    candidates: tuple[Candidate, ...] = field(default_factory=tuple)

    @property
    def paths(self) -> list[Path]:
        return [c.path for c in self.candidates]


AmbiguityOutcome = Union[Unique, NotFound, Ambiguous]

DayQuery = Union[TimePrefix, HybridTimestamp, TitlePrefix]
Tier = tuple[str, Callable[[], list[Candidate]]]


def _title_part(stem: str) -> str | None:
    """Title slug of a dated note stem (HHmmSS-title), if it has one."""
    match = DAILY_STEM_RE.match(stem)
    return match.group(1) if match else None


def _day_matches(stem: str, query: DayQuery) -> bool:
    if isinstance(query, TimePrefix):
        return stem.startswith(query.digits)
    if isinstance(query, HybridTimestamp):
        if not stem.startswith(f"{query.time}-"):
            return False
        return stem[len(query.time) + 1:].startswith(query.title_prefix)
    title = _title_part(stem)
    return stem.startswith(query.text) or (title is not None and title.startswith(query.text))


def _search_day(directory: Path, query: DayQuery, rule: str, ctx: ResolveContext) -> list[Candidate]:
    return [
        Candidate(entry.path, rule)
        for entry in list_entries(directory, ctx.extensions)
        if _day_matches(entry.stem, query)
    ]


def _search_stem_prefix(directories: list[Path], prefix: str, rule: str, ctx: ResolveContext) -> list[Candidate]:
    candidates = []
    for directory in directories:
        for entry in list_entries(directory, ctx.extensions):
            if entry.stem.startswith(prefix):
                candidates.append(Candidate(entry.path, rule))
    return candidates


def _link_target_path(index_file: Path, target: str, ctx: ResolveContext) -> Path | None:
    if "://" in target or target.startswith(("mailto:", "/")):
        return None
    decoded = unquote(target)
    if not decoded.endswith(ctx.extensions):
        return None
    bases = [index_file.parent]
    if ctx.root is not None and ctx.root != index_file.parent:
        bases.append(ctx.root)
    for base in bases:
        path = base / decoded
        if path.is_file():
            return path
    return None


def _search_index_files(text: str, ctx: ResolveContext) -> list[Candidate]:
    candidates: list[Candidate] = []
    seen: set[Path] = set()
    for index_file in ctx.index_files:
        for link in read_index_links(index_file):
            target_stem = Path(unquote(link.target)).stem
            target_title = _title_part(target_stem) or target_stem
            if not (slugify(link.name).startswith(text) or target_title.startswith(text)):
                continue
            path = _link_target_path(index_file, link.target, ctx)
            if path is None:
                continue
            key = path.resolve()
            if key in seen:
                continue
            seen.add(key)
            candidates.append(Candidate(path, f"index:{index_file.name}"))
    return candidates


def _tiers_for(shape: QueryShape, ctx: ResolveContext) -> list[Tier]:
    """Ordered search tiers for a query shape."""
    if isinstance(shape, DatePrefix):
        day_dir = ctx.daily_root / shape.date
        return [("date-prefix", lambda: _search_day(day_dir, shape.rest, "date-prefix", ctx))]

    if isinstance(shape, FullTimestamp):
        day_dir = ctx.daily_root / shape.date
        stamp = f"{shape.date}{shape.time}"
        return [
            ("timestamp-daily", lambda: _search_day(day_dir, TimePrefix(shape.time), "timestamp-daily", ctx)),
            (
                "timestamp-permanent",
                lambda: _search_stem_prefix(
                    [ctx.permanent_root, *list_hash_dirs(ctx.permanent_root)], stamp, "timestamp-permanent", ctx
                ),
            ),
        ]

    today_dir = ctx.daily_root / ctx.today

    if isinstance(shape, (TimePrefix, HybridTimestamp)):
        rule = "time-prefix" if isinstance(shape, TimePrefix) else "hybrid-timestamp"
        return [(rule, lambda: _search_day(today_dir, shape, rule, ctx))]

    if isinstance(shape, TitlePrefix):
        return [
            ("title-daily", lambda: _search_day(today_dir, shape, "title-daily", ctx)),
            ("title-permanent", lambda: _search_stem_prefix([ctx.permanent_root], shape.text, "title-permanent", ctx)),
            ("title-index", lambda: _search_index_files(shape.text, ctx)),
        ]

    if isinstance(shape, Literal):
        raise TypeError("Literal references are hashed by the caller, not resolved")

    raise TypeError(f"Unknown query shape: {shape!r}")


def collect_candidates(shape: QueryShape, ctx: ResolveContext) -> list[Candidate]:
    """Run the rule chain for a shape, stopping at the first non-empty tier."""
    for name, search in _tiers_for(shape, ctx):
        candidates = search()
        if candidates:
            logger.debug(f"Rule {name} matched {len(candidates)} candidate(s) for {shape}")
            return candidates
        logger.debug(f"Rule {name} matched nothing for {shape}")
    return []


def resolve_unique(candidates: list[Candidate]) -> AmbiguityOutcome:
    if not candidates:
        return NotFound()
    if len(candidates) == 1:
        return Unique(candidates[0].path)
    return Ambiguous(tuple(candidates))


def resolve_reference(raw: str, ctx: ResolveContext) -> AmbiguityOutcome:
    """Resolve a raw reference. Zero matches is an outcome, not an error.

    Raises InvalidReferenceSyntax when raw cannot be parsed.
    """
    shape = parse_reference(raw)
    return resolve_unique(collect_candidates(shape, ctx))


def resolve_paths(raw: str, ctx: ResolveContext, force: bool = False) -> list[Path]:
    """Resolve raw to the path(s) a command should act on.

    With force, an ambiguous reference yields every candidate; only
    operations that are safe to repeat per path should pass it.
    """
    outcome = resolve_reference(raw, ctx)
    if isinstance(outcome, Unique):
        return [outcome.path]
    if isinstance(outcome, Ambiguous):
        if force:
            return outcome.paths
        raise AmbiguousReference(raw, outcome.paths)
    raise NoteNotFound(raw)


def require_unique(raw: str, ctx: ResolveContext) -> Path:
    return resolve_paths(raw, ctx, force=False)[0]


def source_dir(source: Literal, ctx: ResolveContext) -> Path:
    """Directory for permanent notes derived from an opaque source string."""
    return ctx.permanent_root / abbreviate_hash(hash_source(source.text))
