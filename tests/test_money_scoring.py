"""Tests for money parsing and derived scores."""

from datetime import date

import pytest

from ftportal.config import DEFAULT_VALUE_BANDS, parse_value_bands
from ftportal.core.money import Money, parse_money
from ftportal.enhance.scoring import (
    deadline_info,
    keyword_score,
    merge_deadlines,
    next_deadline,
    priority_score,
    urgency_score,
    value_score,
)


class TestParseMoney:
    """Tests for parse_money."""

    @pytest.mark.parametrize("text,expected", [
        ("€ 1.500.000", Money("1500000", "EUR")),
        ("EUR 2,5 million", Money("2500000", "EUR")),
        ("Estimated value: EUR 2.5 million", Money("2500000", "EUR")),
        ("£600,000", Money("600000", "GBP")),
        ("1,250,000.50 EUR", Money("1250000", "EUR")),
        ("Value excluding VAT: 300000", Money("300000", "")),
        ("1500000EUR", Money("1500000", "EUR")),
        ("3m USD", Money("3000000", "USD")),
        ("EUR 5 more or less", Money("5", "EUR")),
    ])
    def test_amounts(self, text, expected):
        assert parse_money(text) == expected

    @pytest.mark.parametrize("text", ["", None, "not specified"])
    def test_no_number(self, text):
        assert parse_money(text) == Money("", "")


class TestDeadlines:
    """Tests for deadline merging and selection."""

    TODAY = date(2025, 3, 1)

    def test_merge_sorts_and_dedupes(self):
        assert merge_deadlines(["2025-05-01", "2025-04-01"], ["2025-05-01", ""]) == ["2025-04-01", "2025-05-01"]

    def test_next_is_earliest_future(self):
        assert next_deadline(["2025-01-10", "2025-03-20", "2025-06-01"], self.TODAY) == "2025-03-20"

    def test_today_counts_as_upcoming(self):
        assert next_deadline(["2025-03-01", "2025-04-01"], self.TODAY) == "2025-03-01"

    def test_all_past_falls_back_to_latest(self):
        assert next_deadline(["2024-12-01", "2025-01-10"], self.TODAY) == "2025-01-10"

    def test_none(self):
        info = deadline_info([], self.TODAY)
        assert info.next_deadline == ""
        assert info.days_to_deadline is None
        assert info.joined == ""
        assert info.days_text == ""

    def test_info(self):
        info = deadline_info(["2025-03-20", "2025-01-10"], self.TODAY)
        assert info.all_deadlines == ("2025-01-10", "2025-03-20")
        assert info.joined == "2025-01-10 | 2025-03-20"
        assert info.next_deadline == "2025-03-20"
        assert info.days_to_deadline == 19
        assert info.days_text == "19"


class TestScores:
    """Tests for urgency, keyword, value and priority scores."""

    @pytest.mark.parametrize("days,expected", [
        (None, 0),
        (-5, 3),
        (0, 3),
        (14, 3),
        (15, 2),
        (30, 2),
        (31, 1),
        (45, 1),
        (46, 0),
        (400, 0),
    ])
    def test_urgency(self, days, expected):
        assert urgency_score(days) == expected

    def test_keyword_case_insensitive(self):
        assert keyword_score(["Digital HEALTH"], ["digital", "health", "energy"]) == 2

    def test_keyword_capped(self):
        kws = ["a", "b", "c", "d"]
        assert keyword_score(["a b c d"], kws, cap=3) == 3

    def test_keyword_empty_text(self):
        assert keyword_score(["", ""], ["digital"]) == 0

    @pytest.mark.parametrize("amount,expected", [
        ("", 0),
        ("abc", 0),
        ("100000", 0),
        ("250000", 1),
        ("999999", 1),
        ("1000000", 2),
        ("45000000", 2),
    ])
    def test_value_default_bands(self, amount, expected):
        assert value_score(amount, DEFAULT_VALUE_BANDS) == expected

    def test_value_custom_bands(self):
        bands = parse_value_bands("100000:1, 5000000:3,1000000:2")
        assert bands == ((5000000, 3), (1000000, 2), (100000, 1))
        assert value_score("6000000", bands) == 3
        assert value_score("150000", bands) == 1

    def test_priority_is_sum(self):
        assert priority_score(3, 2) == 5
        assert priority_score(0, 0) == 0
