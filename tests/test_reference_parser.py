"""Tests for note reference classification."""

import sys
from pathlib import Path

import pytest

# Allow imports from scripts/ and scripts/lib/
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / 'scripts'))
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / 'scripts' / 'lib'))

from note_ref.errors import InvalidReferenceSyntax, NoteRefError
from note_ref.parser import (
    DatePrefix,
    FullTimestamp,
    HybridTimestamp,
    TimePrefix,
    TitlePrefix,
    is_valid_date,
    is_valid_time,
    parse_note_reference,
    parse_reference,
)


class TestShapes:
    """Each input lands in exactly one shape, first rule wins."""

    def test_short_digits_are_time_prefix(self):
        assert parse_reference("22") == TimePrefix("22")
        assert parse_reference("1") == TimePrefix("1")
        assert parse_reference("143022") == TimePrefix("143022")

    def test_full_timestamp(self):
        assert parse_reference("20260212143022") == FullTimestamp("20260212", "143022")

    def test_date_prefix_with_time(self):
        assert parse_reference("20260212/14") == DatePrefix("20260212", TimePrefix("14"))

    def test_date_prefix_with_title(self):
        shape = parse_reference("20260212/Some Title")
        assert shape == DatePrefix("20260212", TitlePrefix("some-title"))

    def test_date_prefix_with_hybrid(self):
        shape = parse_reference("20260212/143022-meet")
        assert shape == DatePrefix("20260212", HybridTimestamp("143022", "meet"))

    def test_backslash_is_normalized(self):
        assert parse_reference("20260212\\14") == DatePrefix("20260212", TimePrefix("14"))

    def test_hybrid_timestamp(self):
        assert parse_reference("143022-Team Sync") == HybridTimestamp("143022", "team-sync")

    def test_title_is_slugified(self):
        assert parse_reference("  Café Notes!  ") == TitlePrefix("cafe-notes")

    def test_colon_reference_is_title(self):
        assert parse_reference("book:xyz") == TitlePrefix("book-xyz")

    def test_digits_with_dash_but_not_six_digits_is_title(self):
        assert parse_reference("2026-plan") == TitlePrefix("2026-plan")

    def test_parse_note_reference_keeps_raw(self):
        ref = parse_note_reference("22")
        assert ref.raw == "22"
        assert ref.shape == TimePrefix("22")


class TestInvalid:

    @pytest.mark.parametrize("raw", ["20261312/1", "20260230/1", "20261301143022"])
    def test_bad_calendar_dates(self, raw):
        with pytest.raises(InvalidReferenceSyntax):
            parse_reference(raw)

    def test_bad_clock_time_in_timestamp(self):
        with pytest.raises(InvalidReferenceSyntax):
            parse_reference("20260212256000")

    @pytest.mark.parametrize("raw", ["1234567", "123456789", "1234567890123", "123456789012345"])
    def test_digit_runs_matching_no_rule(self, raw):
        with pytest.raises(InvalidReferenceSyntax) as exc:
            parse_reference(raw)
        assert "digit" in str(exc.value)

    def test_hybrid_with_bad_time(self):
        with pytest.raises(InvalidReferenceSyntax):
            parse_reference("996000-title")

    @pytest.mark.parametrize("raw", ["", "   ", "!!!", "20260212/", "143022-!!"])
    def test_nothing_to_match(self, raw):
        with pytest.raises(InvalidReferenceSyntax):
            parse_reference(raw)

    @pytest.mark.parametrize("raw", ["143022-", "20260212/143022-"])
    def test_hybrid_with_empty_title(self, raw):
        with pytest.raises(InvalidReferenceSyntax) as exc:
            parse_reference(raw)
        assert "empty title" in str(exc.value)

    def test_errors_are_value_errors(self):
        with pytest.raises(ValueError):
            parse_reference("1234567")
        assert issubclass(InvalidReferenceSyntax, NoteRefError)


def test_is_valid_date():
    assert is_valid_date("20240229")
    assert not is_valid_date("20230229")
    assert not is_valid_date("2024022")


def test_is_valid_time():
    assert is_valid_time("235959")
    assert not is_valid_time("240000")
    assert not is_valid_time("126000")
