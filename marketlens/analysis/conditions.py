"""Market condition and regime classification.  Pure functions, no I/O.

Turns an ``IndicatorSet`` plus the candle window into qualitative
descriptors (trend, volatility, volume, momentum) and a five-way regime label
from the EMA spread.
"""

from typing import Sequence

from marketlens.analysis.indicators import analyze_volume, calculate_atr, has_volume
from marketlens.analysis.models import (
    Candle,
    IndicatorSet,
    MarketConditions,
    MarketRegime,
    RegimeLabel,
)
from marketlens.analysis.settings import DEFAULT_SETTINGS, AnalysisSettings
from marketlens.errors import require_length


def ema_spread_pct(ema_fast: float, ema_slow: float) -> float:
    """Percentage spread of the fast EMA over the slow EMA."""
    return (ema_fast - ema_slow) / ema_slow * 100.0


def analyze_market_conditions(
    candles: Sequence[Candle],
    indicators: IndicatorSet,
    settings: AnalysisSettings = DEFAULT_SETTINGS,
) -> MarketConditions:
    """Classify trend, volatility, volume trend and momentum.

    Rules:
        - **trend**: ``up`` when EMA9 exceeds EMA21 by more than
          ``trend_epsilon_pct``, ``down`` when it trails by more, else
          ``sideways``.
        - **volatility**: Bollinger width / middle against the low/high
          width thresholds.
        - **volume**: ``analyze_volume`` trend, ``stable`` when the source
          did not report volume.
        - **momentum**: ``bullish`` iff RSI in (50, 70] with an up trend,
          ``bearish`` iff RSI in [30, 50) with a down trend, else ``neutral``.
          Overbought/oversold RSI is reported separately in
          ``rsi_condition`` and never counts as momentum.
    """
    spread = ema_spread_pct(indicators.ema9, indicators.ema21)
    if spread > settings.trend_epsilon_pct:
        trend = "up"
    elif spread < -settings.trend_epsilon_pct:
        trend = "down"
    else:
        trend = "sideways"

    bands = indicators.bollinger
    width = (bands.upper - bands.lower) / bands.middle
    if width > settings.volatility_high_width:
        volatility = "high"
    elif width > settings.volatility_low_width:
        volatility = "medium"
    else:
        volatility = "low"

    volumes = [c.volume for c in candles]
    if has_volume(volumes, settings.volume_window):
        volume_trend = analyze_volume(volumes, settings).trend
    else:
        volume_trend = "stable"

    rsi = indicators.rsi
    if settings.rsi_midline < rsi <= settings.rsi_overbought and trend == "up":
        momentum = "bullish"
    elif settings.rsi_oversold <= rsi < settings.rsi_midline and trend == "down":
        momentum = "bearish"
    else:
        momentum = "neutral"

    if rsi > settings.rsi_overbought:
        rsi_condition = "overbought"
    elif rsi < settings.rsi_oversold:
        rsi_condition = "oversold"
    else:
        rsi_condition = "neutral"

    return MarketConditions(
        trend=trend,
        volatility=volatility,
        volume=volume_trend,
        momentum=momentum,
        rsi_condition=rsi_condition,
    )


def classify_regime(
    spread_pct: float,
    settings: AnalysisSettings = DEFAULT_SETTINGS,
) -> RegimeLabel:
    """Map an EMA spread (percent) to exactly one regime label.

    With default breakpoints the axis is partitioned as::

        (3, ∞)     strong_uptrend
        (1, 3]     weak_uptrend
        [-1, 1]    ranging
        [-3, -1)   weak_downtrend
        (-∞, -3)   strong_downtrend
    """
    strong = settings.regime_strong_pct
    weak = settings.regime_weak_pct

    if spread_pct > strong:
        return "strong_uptrend"
    if spread_pct > weak:
        return "weak_uptrend"
    if spread_pct < -strong:
        return "strong_downtrend"
    if spread_pct < -weak:
        return "weak_downtrend"
    return "ranging"


def detect_market_regime(
    candles: Sequence[Candle],
    ema9: float,
    ema21: float,
    settings: AnalysisSettings = DEFAULT_SETTINGS,
) -> MarketRegime:
    """Determine the market regime from the EMA spread.

    Also reports an ATR-based volatility label (ATR as a percent of the
    average close over the same window) and a confidence score: strong
    trends scale with the spread, weak trends score 70 and ranging 80.

    Requires ``atr_period + 1`` candles (20 with defaults).
    """
    require_length(candles, settings.atr_period + 1, "market regime")

    spread = ema_spread_pct(ema9, ema21)
    regime = classify_regime(spread, settings)

    window = candles[-(settings.atr_period + 1):]
    atr = calculate_atr(window, settings.atr_period)
    avg_price = sum(c.close for c in window) / len(window)
    atr_pct = atr / avg_price * 100.0

    if atr_pct < settings.regime_atr_low_pct:
        volatility = "low"
    elif atr_pct < settings.regime_atr_high_pct:
        volatility = "medium"
    else:
        volatility = "high"

    if regime in ("strong_uptrend", "strong_downtrend"):
        confidence = min(
            settings.regime_strong_max_confidence,
            settings.regime_strong_base_confidence
            + abs(spread) * settings.regime_confidence_per_spread_pct,
        )
    elif regime == "ranging":
        confidence = settings.regime_ranging_confidence
    else:
        confidence = settings.regime_weak_confidence

    return MarketRegime(
        regime=regime,
        spread_pct=spread,
        volatility=volatility,
        confidence=round(confidence),
    )
