"""Technical indicators: EMA, RSI, Bollinger Bands, volume, ATR.  Pure functions, no I/O.

Every function evaluates the window it is given and returns the value as of
the last element, so backtests can call them repeatedly on overlapping
sliding windows.
"""

import math
from typing import Literal, Optional, Sequence

from marketlens.analysis.models import BollingerBands, Candle, IndicatorSet, VolumeMetrics
from marketlens.analysis.settings import DEFAULT_SETTINGS, AnalysisSettings
from marketlens.errors import InsufficientDataError, require_length


# ── EMA ──────────────────────────────────────────────────────────────────


def ema_series(prices: Sequence[float], period: int) -> list[float]:
    """Return the EMA recurrence for every element of *prices*.

    Seeded with ``prices[0]``; each subsequent value is
    ``price × k + previous × (1 − k)`` with ``k = 2 / (period + 1)``.

    Requires at least *period* prices.
    """
    require_length(prices, period, f"EMA({period})")

    k = 2.0 / (period + 1)
    series: list[float] = [float(prices[0])]
    for price in prices[1:]:
        series.append(price * k + series[-1] * (1 - k))
    return series


def calculate_ema(prices: Sequence[float], period: int) -> float:
    """Calculate the Exponential Moving Average as of the last price.

    Callers pass exactly the sub-sequence they want evaluated through; the
    recurrence always starts from ``prices[0]``.

    Raises ``InsufficientDataError`` if fewer than *period* prices are given.
    """
    return ema_series(prices, period)[-1]


def detect_ema_crossover(
    current_fast: float,
    current_slow: float,
    previous_fast: float,
    previous_slow: float,
) -> Literal["bullish", "bearish", "none"]:
    """Classify the fast/slow EMA relationship change between two points.

    ``bullish`` when the fast EMA moved from at-or-below to above the slow
    EMA (golden cross), ``bearish`` for the opposite move, else ``none``.
    """
    current_above = current_fast > current_slow
    previous_above = previous_fast > previous_slow

    if current_above and not previous_above:
        return "bullish"
    if previous_above and not current_above:
        return "bearish"
    return "none"


def crossover_age(
    prices: Sequence[float],
    settings: AnalysisSettings = DEFAULT_SETTINGS,
) -> Optional[tuple[Literal["bullish", "bearish"], int]]:
    """Find the most recent fast/slow EMA cross within the recency lookback.

    Returns ``(direction, age)`` where *age* is the number of candles since
    the cross (``0`` means the last candle crossed), or ``None`` if no cross
    happened within ``settings.crossover_lookback`` candles.
    """
    fast = ema_series(prices, settings.ema_fast)
    slow = ema_series(prices, settings.ema_slow)

    last = len(prices) - 1
    earliest = max(1, last - settings.crossover_lookback + 1)
    for i in range(last, earliest - 1, -1):
        cross = detect_ema_crossover(fast[i], slow[i], fast[i - 1], slow[i - 1])
        if cross != "none":
            return cross, last - i
    return None


# ── RSI ──────────────────────────────────────────────────────────────────


def calculate_rsi(prices: Sequence[float], period: int = 14) -> float:
    """Calculate the Relative Strength Index as of the last price.

    Algorithm:
        1. delta = close[i] − close[i−1]
        2. Split into gains (positive deltas) and losses (|negative deltas|).
        3. Average each over the trailing *period* deltas (simple mean).
        4. RS = avg_gain / avg_loss, RSI = 100 − 100 / (1 + RS)

    ``avg_loss == 0`` yields ``100.0``.  This is the only special-cased
    arithmetic edge in the engine.

    Requires at least ``period + 1`` prices.
    """
    require_length(prices, period + 1, f"RSI({period})")

    recent = prices[-(period + 1):]
    deltas = [recent[i] - recent[i - 1] for i in range(1, len(recent))]

    avg_gain = sum(d for d in deltas if d > 0) / period
    avg_loss = sum(-d for d in deltas if d < 0) / period

    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


# ── Bollinger Bands ──────────────────────────────────────────────────────


def calculate_bollinger_bands(
    prices: Sequence[float],
    period: int = 20,
    std_dev_multiplier: float = 2.0,
) -> BollingerBands:
    """Calculate Bollinger Bands over the last *period* prices.

    Middle = SMA(*period*)
    Upper  = middle + *std_dev_multiplier* × σ
    Lower  = middle − *std_dev_multiplier* × σ

    σ is the population standard deviation of the same window.

    Requires at least *period* prices.
    """
    require_length(prices, period, f"Bollinger({period})")

    window = prices[-period:]
    sma = sum(window) / period
    variance = sum((p - sma) ** 2 for p in window) / period
    sigma = math.sqrt(variance)

    return BollingerBands(
        upper=sma + std_dev_multiplier * sigma,
        middle=sma,
        lower=sma - std_dev_multiplier * sigma,
    )


def check_bollinger_position(
    price: float,
    bands: BollingerBands,
    settings: AnalysisSettings = DEFAULT_SETTINGS,
) -> Literal["at_upper", "at_lower", "above_upper", "below_lower", "middle"]:
    """Locate *price* relative to the bands.

    A price within ``band_touch_tolerance`` of the band width (5% by
    default) from a band counts as touching it.
    """
    tolerance = (bands.upper - bands.lower) * settings.band_touch_tolerance

    if bands.upper - tolerance <= price <= bands.upper + tolerance:
        return "at_upper"
    if bands.lower - tolerance <= price <= bands.lower + tolerance:
        return "at_lower"
    if price > bands.upper:
        return "above_upper"
    if price < bands.lower:
        return "below_lower"
    return "middle"


# ── Volume ───────────────────────────────────────────────────────────────


def has_volume(volumes: Sequence[float], window: int = 20) -> bool:
    """Return True if the source reported volume over the trailing *window*.

    Some market-data sources return OHLC only and fill volume with ``0``;
    volume-based checks are skipped for those windows.
    """
    if len(volumes) < window:
        return False
    return any(v > 0 for v in volumes[-window:])


def analyze_volume(
    volumes: Sequence[float],
    settings: AnalysisSettings = DEFAULT_SETTINGS,
) -> VolumeMetrics:
    """Summarise recent volume.

    * ``average``: mean of the trailing ``volume_window`` values.
    * ``ratio``: current / average.
    * ``trend``: ``increasing`` if the trailing-5 mean exceeds the preceding
      trailing-5 mean by ``volume_increase_ratio``, ``decreasing`` if it is
      below ``volume_decrease_ratio`` of it, else ``stable``.

    Raises ``InsufficientDataError`` with fewer than ``volume_window`` values
    or when the whole window is zero (volume not reported).
    """
    window = settings.volume_window
    span = settings.volume_trend_window
    require_length(volumes, max(window, 2 * span), f"volume analysis({window})")

    current = float(volumes[-1])
    average = sum(volumes[-window:]) / window
    if average == 0:
        raise InsufficientDataError(
            f"No reported volume in the last {window} candles",
            required=window,
            actual=0,
        )

    recent = sum(volumes[-span:]) / span
    older = sum(volumes[-2 * span:-span]) / span

    if recent > older * settings.volume_increase_ratio:
        trend = "increasing"
    elif recent < older * settings.volume_decrease_ratio:
        trend = "decreasing"
    else:
        trend = "stable"

    return VolumeMetrics(
        current=current,
        average=average,
        ratio=current / average,
        trend=trend,
    )


# ── ATR ──────────────────────────────────────────────────────────────────


def calculate_atr(candles: Sequence[Candle], period: int = 14) -> float:
    """Calculate the Average True Range over *period* candles.

    Uses the standard True Range definition:
        TR = max(high − low, |high − prev_close|, |low − prev_close|)

    Requires at least ``period + 1`` candles (need a previous close for TR).
    Returns the simple average of the last *period* true ranges.
    """
    require_length(candles, period + 1, f"ATR({period})")

    recent = candles[-(period + 1):]
    true_ranges: list[float] = []
    for i in range(1, len(recent)):
        high = recent[i].high
        low = recent[i].low
        prev_close = recent[i - 1].close
        true_ranges.append(
            max(high - low, abs(high - prev_close), abs(low - prev_close))
        )
    return sum(true_ranges) / period


# ── Combined ─────────────────────────────────────────────────────────────


def calculate_all_indicators(
    prices: Sequence[float],
    settings: AnalysisSettings = DEFAULT_SETTINGS,
) -> IndicatorSet:
    """Calculate the full indicator set as of the last price.

    Requires ``settings.min_indicator_points`` prices (21 with defaults).
    """
    require_length(prices, settings.min_indicator_points, "full indicator analysis")

    return IndicatorSet(
        ema9=calculate_ema(prices, settings.ema_fast),
        ema21=calculate_ema(prices, settings.ema_slow),
        rsi=calculate_rsi(prices, settings.rsi_period),
        bollinger=calculate_bollinger_bands(
            prices, settings.bb_period, settings.bb_std_dev,
        ),
    )
