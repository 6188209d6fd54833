"""Trading sessions and killzones.  Pure functions of an explicit UTC time.

Nothing here reads the wall clock: callers pass ``at`` (for backtests, the
candle's own timestamp), so results are reproducible.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal, Optional


@dataclass(frozen=True)
class TradingSession:
    name: str
    start: int  # UTC hour, inclusive
    end: int  # UTC hour, exclusive (may wrap past midnight)
    volatility: Literal["low", "medium", "high"]


@dataclass(frozen=True)
class Killzone:
    name: str
    start: int
    end: int
    trade_probability: Literal["low", "medium", "high"]
    expected_move: str


@dataclass(frozen=True)
class SessionAnalysis:
    current_session: str
    active_killzone: Optional[str]
    next_killzone: str
    hours_until_next_killzone: int
    optimal_trade_window: bool
    score_modifier: int


TRADING_SESSIONS: tuple[TradingSession, ...] = (
    TradingSession("Sydney", 21, 6, "low"),
    TradingSession("Tokyo/Asian", 0, 9, "medium"),
    TradingSession("London", 7, 16, "high"),
    TradingSession("New York", 12, 21, "high"),
)

KILLZONES: tuple[Killzone, ...] = (
    Killzone("Asian Range Formation", 0, 4, "low",
             "Range forms here, often swept during London/NY opens."),
    Killzone("London Open Killzone", 7, 10, "high",
             "Look for an Asian high/low sweep, then reversal."),
    Killzone("London Lunch", 11, 12, "low",
             "Low liquidity, choppy price action."),
    Killzone("New York Open Killzone", 12, 15, "high",
             "Look for a London high/low sweep."),
    Killzone("London-NY Overlap", 12, 16, "high",
             "Highest volume period, good for momentum strategies."),
    Killzone("NYSE Open", 13, 15, "medium",
             "Watch for correlation with equity indices."),
    Killzone("Power Hour", 19, 21, "medium",
             "Late-day positioning before the US close."),
    Killzone("Asian Sweep Setup", 23, 1, "medium",
             "Potential sweep of the New York range."),
)

# Session score modifiers
_HIGH_KILLZONE_BONUS = 15
_MEDIUM_KILLZONE_BONUS = 5
_LOW_KILLZONE_PENALTY = -10
_NO_KILLZONE_PENALTY = -5
_WEEKEND_PENALTY = -20
_LATE_FRIDAY_PENALTY = -10
_LATE_FRIDAY_HOUR = 16


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 candle timestamp into an aware UTC datetime."""
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _within(hour: int, start: int, end: int) -> bool:
    if start <= end:
        return start <= hour < end
    return hour >= start or hour < end


def active_sessions(at: datetime) -> list[TradingSession]:
    """Sessions open at *at*."""
    return [s for s in TRADING_SESSIONS if _within(at.hour, s.start, s.end)]


def active_killzone(at: datetime) -> Optional[Killzone]:
    """First killzone (table order) containing *at*, if any."""
    for kz in KILLZONES:
        if _within(at.hour, kz.start, kz.end):
            return kz
    return None


def next_killzone(at: datetime) -> tuple[Killzone, int]:
    """Next killzone to start after *at* and the whole hours until it starts."""
    ordered = sorted(KILLZONES, key=lambda kz: kz.start)
    for kz in ordered:
        if kz.start > at.hour:
            return kz, kz.start - at.hour
    first = ordered[0]
    return first, 24 - at.hour + first.start


def is_optimal_trade_window(at: datetime) -> bool:
    kz = active_killzone(at)
    return kz is not None and kz.trade_probability == "high"


def session_score_modifier(at: datetime) -> int:
    """Signal adjustment for the time of day and day of week at *at*."""
    kz = active_killzone(at)
    if kz is None:
        modifier = _NO_KILLZONE_PENALTY
    elif kz.trade_probability == "high":
        modifier = _HIGH_KILLZONE_BONUS
    elif kz.trade_probability == "medium":
        modifier = _MEDIUM_KILLZONE_BONUS
    else:
        modifier = _LOW_KILLZONE_PENALTY

    weekday = at.weekday()
    if weekday >= 5:
        modifier += _WEEKEND_PENALTY
    elif weekday == 4 and at.hour > _LATE_FRIDAY_HOUR:
        modifier += _LATE_FRIDAY_PENALTY

    return modifier


def analyze_session(at: datetime) -> SessionAnalysis:
    """Summarise the session picture at *at*."""
    kz = active_killzone(at)
    upcoming, hours = next_killzone(at)
    names = [s.name for s in active_sessions(at)]
    return SessionAnalysis(
        current_session=" + ".join(names) or "Between Sessions",
        active_killzone=kz.name if kz else None,
        next_killzone=upcoming.name,
        hours_until_next_killzone=hours,
        optimal_trade_window=is_optimal_trade_window(at),
        score_modifier=session_score_modifier(at),
    )
