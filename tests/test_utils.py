"""Tests for shared utility functions."""

import logging
import math

import pytest

from sales_agent.logging_context import SessionIdFilter, get_session_id, get_turn_logger, set_session_id
from sales_agent.utils import (
    clamp01,
    extract_json_block,
    find_confidence_token,
    first_present,
    normalize_phone,
    round_money,
    to_number,
)


class TestNormalizePhone:
    def test_strips_spaces(self):
        assert normalize_phone("0412 345 678") == "0412345678"

    def test_preserves_leading_plus(self):
        assert normalize_phone("+61 412 345 678") == "+61412345678"

    def test_mixed_separators(self):
        assert normalize_phone("+1 (555) 010-2000") == "+15550102000"


class TestNumbers:
    def test_to_number_parses_strings(self):
        assert to_number("3.5") == 3.5

    def test_to_number_fallback_for_garbage(self):
        assert to_number("abc", 7) == 7

    def test_to_number_rejects_nan_and_inf(self):
        assert to_number(math.nan, 1) == 1
        assert to_number("inf", 2) == 2

    def test_to_number_rejects_none_and_bool(self):
        assert to_number(None, 4) == 4
        assert to_number(True, 4) == 4

    @pytest.mark.parametrize("value,expected", [
        (-0.3, 0.0), (0.4, 0.4), (1.7, 1.0), ("0.25", 0.25),
    ])
    def test_clamp01(self, value, expected):
        assert clamp01(value) == pytest.approx(expected)

    def test_clamp01_missing_uses_fallback(self):
        assert clamp01(None, 0.5) == 0.5
        assert clamp01(math.nan) == 0.0

    def test_round_money(self):
        assert round_money(2.004) == 2.0
        assert round_money("19.999") == 20.0


class TestJsonExtraction:
    def test_extracts_object_surrounded_by_text(self):
        text = 'Sure! Here it is: {"intent": "greeting", "confidence": 0.8} Hope that helps.'
        assert extract_json_block(text) == {"intent": "greeting", "confidence": 0.8}

    def test_spans_outermost_braces(self):
        text = '{"a": {"b": 1}}'
        assert extract_json_block(text) == {"a": {"b": 1}}

    def test_no_json_returns_none(self):
        assert extract_json_block("no braces here") is None

    def test_malformed_json_returns_none(self):
        assert extract_json_block("{intent: greeting}") is None

    def test_empty_returns_none(self):
        assert extract_json_block("") is None
        assert extract_json_block(None) is None


class TestConfidenceToken:
    def test_finds_decimal(self):
        assert find_confidence_token("I'd say 0.72 overall") == pytest.approx(0.72)

    def test_finds_one(self):
        assert find_confidence_token("score: 1") == 1.0

    def test_ignores_larger_numbers(self):
        assert find_confidence_token("total 25 dollars") == 0.5

    def test_default_when_absent(self):
        assert find_confidence_token("looks fine") == 0.5


class TestFirstPresent:
    def test_skips_empty_values(self):
        assert first_present(None, "", "x", "y") == "x"

    def test_all_empty(self):
        assert first_present(None, "") is None


class TestLoggingContext:
    def test_filter_injects_session_id(self):
        set_session_id("sess-42")
        try:
            record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
            assert SessionIdFilter().filter(record) is True
            assert record.session_id == "sess-42"
            assert get_session_id() == "sess-42"
        finally:
            set_session_id("NO_SESSION")

    def test_turn_logger_filter_added_once(self):
        logger = get_turn_logger("sales_agent.test_turn_logger")
        get_turn_logger("sales_agent.test_turn_logger")
        assert sum(isinstance(f, SessionIdFilter) for f in logger.filters) == 1
