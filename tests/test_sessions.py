"""Tests for marketlens.analysis.sessions — sessions, killzones and score modifiers."""

from datetime import datetime, timezone

import pytest

from marketlens.analysis.sessions import (
    active_killzone,
    active_sessions,
    analyze_session,
    is_optimal_trade_window,
    next_killzone,
    parse_timestamp,
    session_score_modifier,
)


def _utc(day, hour, minute=0):
    # January 2024: the 15th is a Monday, the 19th a Friday, the 20th a Saturday
    return datetime(2024, 1, day, hour, minute, tzinfo=timezone.utc)


class TestParseTimestamp:
    def test_zulu(self):
        dt = parse_timestamp("2024-01-15T08:30:00Z")
        assert dt == _utc(15, 8, 30)
        assert dt.tzinfo is not None

    def test_offset_converted_to_utc(self):
        assert parse_timestamp("2024-01-15T10:30:00+02:00") == _utc(15, 8, 30)

    def test_naive_assumed_utc(self):
        assert parse_timestamp("2024-01-15T08:30:00") == _utc(15, 8, 30)

    def test_invalid(self):
        with pytest.raises(ValueError):
            parse_timestamp("not a time")


class TestSessions:
    def test_london_open_overlaps_asia(self):
        names = [s.name for s in active_sessions(_utc(15, 8))]
        assert names == ["Tokyo/Asian", "London"]

    def test_sydney_wraps_midnight(self):
        assert [s.name for s in active_sessions(_utc(15, 22))] == ["Sydney"]
        assert "Sydney" in [s.name for s in active_sessions(_utc(15, 3))]

    def test_new_york_end_exclusive(self):
        assert "New York" not in [s.name for s in active_sessions(_utc(15, 21))]


class TestKillzones:
    def test_london_open(self):
        kz = active_killzone(_utc(15, 8))
        assert kz.name == "London Open Killzone"
        assert is_optimal_trade_window(_utc(15, 8)) is True

    def test_first_match_in_table_order(self):
        assert active_killzone(_utc(15, 13)).name == "New York Open Killzone"

    def test_wrapping_killzone(self):
        assert active_killzone(_utc(15, 23)).name == "Asian Sweep Setup"

    def test_no_killzone(self):
        assert active_killzone(_utc(15, 5)) is None
        assert is_optimal_trade_window(_utc(15, 5)) is False

    def test_next_killzone_same_day(self):
        kz, hours = next_killzone(_utc(15, 8))
        assert kz.name == "London Lunch"
        assert hours == 3

    def test_next_killzone_wraps(self):
        kz, hours = next_killzone(_utc(15, 23))
        assert kz.name == "Asian Range Formation"
        assert hours == 1


class TestScoreModifier:
    @pytest.mark.parametrize(
        "at,expected",
        [
            (_utc(15, 8), 15),    # high-probability killzone
            (_utc(15, 20), 5),    # Power Hour
            (_utc(15, 11), -10),  # London Lunch
            (_utc(15, 5), -5),    # no killzone
            (_utc(20, 8), -5),    # Saturday
            (_utc(19, 17), -15),  # late Friday, no killzone
            (_utc(19, 16), -5),   # Friday 16:00 is not late yet
        ],
    )
    def test_modifier(self, at, expected):
        assert session_score_modifier(at) == expected

    def test_analysis_summary(self):
        summary = analyze_session(_utc(15, 8))
        assert summary.current_session == "Tokyo/Asian + London"
        assert summary.active_killzone == "London Open Killzone"
        assert summary.next_killzone == "London Lunch"
        assert summary.hours_until_next_killzone == 3
        assert summary.optimal_trade_window is True
        assert summary.score_modifier == 15

    def test_single_session_label(self):
        # Sydney closes at 06:00, London opens at 07:00
        assert analyze_session(_utc(15, 6)).current_session == "Tokyo/Asian"
