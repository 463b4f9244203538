"""Tests for the sort rule string codec (reorder/sort_rules.py)."""

from __future__ import annotations

import pytest

from reorder.models import SortKey, SortOrder, SortRule
from reorder.sort_rules import (
    SORT_KEY_LABELS,
    format_sort_rules,
    get_sort_key_label,
    parse_sort_rules,
)


class TestParseSortRules:
    def test_order_defaults_to_asc(self):
        assert parse_sort_rules("artist") == [SortRule(key=SortKey.ARTIST, order=SortOrder.ASC)]

    def test_multiple_rules_keep_priority_order(self):
        rules = parse_sort_rules("album/desc track_number title")
        assert [r.key for r in rules] == [SortKey.ALBUM, SortKey.TRACK_NUMBER, SortKey.TITLE]
        assert [r.order for r in rules] == [SortOrder.DESC, SortOrder.ASC, SortOrder.ASC]

    def test_explicit_asc_is_accepted(self):
        assert parse_sort_rules("artist/asc") == parse_sort_rules("artist")

    def test_empty_string_raises(self):
        with pytest.raises(ValueError, match="Empty"):
            parse_sort_rules("")

    @pytest.mark.parametrize("raw", ["date", "artist popularity", "Artist", "artist  title"])
    def test_invalid_key_raises(self, raw):
        with pytest.raises(ValueError, match="Invalid sort key"):
            parse_sort_rules(raw)

    @pytest.mark.parametrize("raw", ["artist/up", "artist/", "artist/desc/asc"])
    def test_invalid_order_raises(self, raw):
        with pytest.raises(ValueError, match="Invalid sort order"):
            parse_sort_rules(raw)


class TestFormatSortRules:
    def test_asc_is_elided(self):
        rules = [SortRule(key=SortKey.ARTIST), SortRule(key=SortKey.RELEASE_DATE, order=SortOrder.DESC)]
        assert format_sort_rules(rules) == "artist release_date/desc"

    def test_empty_list(self):
        assert format_sort_rules([]) == ""

    @pytest.mark.parametrize(
        "raw",
        [
            "artist",
            "title/desc",
            "artist release_date album title",
            "disc_number/desc track_number album/desc",
        ],
    )
    def test_canonical_strings_round_trip(self, raw):
        assert format_sort_rules(parse_sort_rules(raw)) == raw

    def test_rules_round_trip(self):
        rules = [
            SortRule(key=SortKey.TRACK_NUMBER, order=SortOrder.DESC),
            SortRule(key=SortKey.TITLE),
        ]
        assert parse_sort_rules(format_sort_rules(rules)) == rules

    def test_explicit_asc_normalises(self):
        assert format_sort_rules(parse_sort_rules("artist/asc title/desc")) == "artist title/desc"


def test_every_key_has_a_label():
    assert set(SORT_KEY_LABELS) == set(SortKey)
    assert get_sort_key_label(SortKey.TITLE) == "Track title"
