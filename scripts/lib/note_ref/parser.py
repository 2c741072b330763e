"""
Classify a user-entered note reference into a query shape.

Rules, first match wins (backslashes are normalized to '/' beforehand):
1. YYYYMMDD/rest      -> DatePrefix (rest re-parsed with rules 3-4)
2. YYYYMMDDHHmmSS     -> FullTimestamp
3. 1-6 digits         -> TimePrefix
   HHmmSS-title       -> HybridTimestamp
4. anything else      -> TitlePrefix (slugified)

Source strings that are hashed into permanent-note directories never go
through this parser; callers wrap them in Literal themselves.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Union

from utils import slugify

from .errors import InvalidReferenceSyntax

DATE_PATH_RE = re.compile(r"^([0-9]{8})/(.*)$", re.DOTALL)
DIGITS_RE = re.compile(r"^[0-9]+$")
HYBRID_RE = re.compile(r"^([0-9]{6})-(.*)$", re.DOTALL)


@dataclass(frozen=True)
class FullTimestamp:
    date: str
    time: str


@dataclass(frozen=True)
class TimePrefix:
    digits: str


@dataclass(frozen=True)
class HybridTimestamp:
    time: str
    title_prefix: str


@dataclass(frozen=True)
class TitlePrefix:
    text: str


@dataclass(frozen=True)
class DatePrefix:
    date: str
    rest: Union[TimePrefix, HybridTimestamp, TitlePrefix]


@dataclass(frozen=True)
class Literal:
    text: str


QueryShape = Union[FullTimestamp, DatePrefix, TimePrefix, HybridTimestamp, TitlePrefix, Literal]


@dataclass(frozen=True)
class NoteReference:
    raw: str
    shape: QueryShape


def is_valid_date(value: str) -> bool:
    """True for a real calendar date in YYYYMMDD form."""
    if len(value) != 8 or not value.isdigit():
        return False
    try:
        datetime.strptime(value, "%Y%m%d")
    except ValueError:
        return False
    return True


def is_valid_time(value: str) -> bool:
    """True for a clock time in HHmmSS form."""
    if len(value) != 6 or not value.isdigit():
        return False
    hour, minute, second = int(value[0:2]), int(value[2:4]), int(value[4:6])
    return hour <= 23 and minute <= 59 and second <= 59


def normalize_reference(raw: str) -> str:
    return raw.strip().replace("\\", "/")


def _parse_day_relative(text: str, original: str) -> Union[TimePrefix, HybridTimestamp, TitlePrefix]:
    """Rules 3 and 4: shapes that are searched inside a single day directory."""
    if DIGITS_RE.match(text):
        if len(text) <= 6:
            return TimePrefix(text)
        raise InvalidReferenceSyntax(original, f"{len(text)}-digit number matches no time or timestamp form")

    hybrid = HYBRID_RE.match(text)
    if hybrid:
        time, title = hybrid.groups()
        if not is_valid_time(time):
            raise InvalidReferenceSyntax(original, f"'{time}' is not a valid HHmmSS time")
        title_slug = slugify(title)
        if not title_slug:
            raise InvalidReferenceSyntax(original, "empty title after time prefix")
        return HybridTimestamp(time, title_slug)

    slug = slugify(text)
    if not slug:
        raise InvalidReferenceSyntax(original, "nothing left to match after slugifying")
    return TitlePrefix(slug)


def parse_reference(raw: str) -> QueryShape:
    """Classify raw into exactly one query shape.

    Raises InvalidReferenceSyntax for malformed dates, times or digit runs.
    """
    reference = normalize_reference(raw)
    if not reference:
        raise InvalidReferenceSyntax(raw, "empty reference")

    date_path = DATE_PATH_RE.match(reference)
    if date_path:
        date, rest = date_path.groups()
        if not is_valid_date(date):
            raise InvalidReferenceSyntax(raw, f"'{date}' is not a valid YYYYMMDD date")
        rest = rest.strip("/").strip()
        if not rest:
            raise InvalidReferenceSyntax(raw, "missing note prefix after date")
        return DatePrefix(date, _parse_day_relative(rest, raw))

    if DIGITS_RE.match(reference) and len(reference) == 14:
        date, time = reference[:8], reference[8:]
        if not (is_valid_date(date) and is_valid_time(time)):
            raise InvalidReferenceSyntax(raw, f"'{reference}' is not a valid YYYYMMDDHHmmSS timestamp")
        return FullTimestamp(date, time)

    return _parse_day_relative(reference, raw)


def parse_note_reference(raw: str) -> NoteReference:
    return NoteReference(raw=raw, shape=parse_reference(raw))
