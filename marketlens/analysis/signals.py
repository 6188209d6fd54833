"""Strategy signal scoring.  Pure functions, no I/O.

Two independent 0–100 confidence scores are produced for every window:

* **momentum**: high when an established uptrend is accelerating, low when
  a downtrend is.  Above ``signal_high`` reads BULLISH, below ``signal_low``
  reads BEARISH.
* **mean reversion**: high when price is stretched to the downside inside a
  range and likely to revert up (BUY_DIP), low when stretched to the upside
  (SELL_RALLY).

Regime, sweep and chart-pattern inputs are optional; anything not supplied
is computed from *candles*.
"""

from typing import Optional, Sequence

from marketlens.analysis.conditions import (
    analyze_market_conditions,
    detect_market_regime,
    ema_spread_pct,
)
from marketlens.analysis.indicators import (
    analyze_volume,
    check_bollinger_position,
    crossover_age,
    has_volume,
)
from marketlens.analysis.models import (
    Candle,
    IndicatorSet,
    MarketRegime,
    PatternResult,
    Recommendation,
    SignalSet,
)
from marketlens.analysis.patterns import detect_chart_pattern, detect_liquidity_sweep
from marketlens.analysis.settings import DEFAULT_SETTINGS, AnalysisSettings


def _clamp(score: float) -> int:
    return max(0, min(100, round(score)))


def _context(
    candles: Sequence[Candle],
    indicators: IndicatorSet,
    regime: Optional[MarketRegime],
    sweep: Optional[PatternResult],
    pattern: Optional[PatternResult],
    settings: AnalysisSettings,
) -> tuple[MarketRegime, PatternResult, PatternResult]:
    if regime is None:
        regime = detect_market_regime(
            candles, indicators.ema9, indicators.ema21, settings,
        )
    if sweep is None:
        sweep = detect_liquidity_sweep(candles, settings=settings)
    if pattern is None:
        pattern = detect_chart_pattern(candles, regime, settings)
    return regime, sweep, pattern


def generate_momentum_signal(
    candles: Sequence[Candle],
    indicators: IndicatorSet,
    *,
    regime: Optional[MarketRegime] = None,
    sweep: Optional[PatternResult] = None,
    pattern: Optional[PatternResult] = None,
    settings: AnalysisSettings = DEFAULT_SETTINGS,
) -> int:
    """Score the momentum strategy (0–100, 50 = neutral).

    Components:
        - Regime: +25 strong uptrend, +15 weak uptrend, −10 ranging,
          −15 weak downtrend, −25 strong downtrend.
        - EMA alignment ±10, trend/momentum alignment ±10.
        - Crossover recency: ±10 for a fast/slow cross within the lookback.
        - Sweep: ± confidence × 0.2 in the sweep direction.
        - Pattern: + confidence × 0.15 for higher lows / bull flag,
          −15 for lower highs.
        - RSI: +10 in the 45–65 band, −10 overbought, −5 below 40.
        - Volume: +10 on increasing volume with ratio > 1.2.
    """
    regime, sweep, pattern = _context(
        candles, indicators, regime, sweep, pattern, settings,
    )
    prices = [c.close for c in candles]
    conditions = analyze_market_conditions(candles, indicators, settings)
    score = 50.0

    label = regime.regime
    if label == "strong_uptrend":
        score += settings.momentum_strong_regime_bonus
    elif label == "weak_uptrend":
        score += settings.momentum_weak_regime_bonus
    elif label == "ranging":
        score -= settings.momentum_ranging_penalty
    elif label == "weak_downtrend":
        score -= settings.momentum_weak_regime_bonus
    else:
        score -= settings.momentum_strong_regime_bonus

    if indicators.ema9 > indicators.ema21:
        score += settings.momentum_ema_alignment
    else:
        score -= settings.momentum_ema_alignment

    if conditions.trend == "up" and conditions.momentum == "bullish":
        score += settings.momentum_trend_alignment
    elif conditions.trend == "down" and conditions.momentum == "bearish":
        score -= settings.momentum_trend_alignment

    cross = crossover_age(prices, settings)
    if cross is not None:
        direction, _age = cross
        if direction == "bullish":
            score += settings.momentum_crossover_bonus
        else:
            score -= settings.momentum_crossover_bonus

    if sweep.detected:
        weight = sweep.confidence * settings.momentum_sweep_weight
        score += weight if sweep.direction == "bullish" else -weight

    if pattern.detected:
        if pattern.pattern in ("higher_low", "bull_flag"):
            score += pattern.confidence * settings.momentum_pattern_weight
        elif pattern.pattern == "lower_high":
            score -= settings.momentum_lower_high_penalty

    rsi = indicators.rsi
    if settings.momentum_rsi_band_low < rsi < settings.momentum_rsi_band_high:
        score += settings.momentum_rsi_band_bonus
    elif rsi > settings.rsi_overbought:
        score -= settings.momentum_rsi_overbought_penalty
    elif rsi < settings.momentum_rsi_weak_level:
        score -= settings.momentum_rsi_weak_penalty

    volumes = [c.volume for c in candles]
    if has_volume(volumes, settings.volume_window):
        metrics = analyze_volume(volumes, settings)
        if metrics.trend == "increasing" and metrics.ratio > settings.volume_increase_ratio:
            score += settings.momentum_volume_bonus

    return _clamp(score)


def generate_mean_reversion_signal(
    candles: Sequence[Candle],
    indicators: IndicatorSet,
    *,
    regime: Optional[MarketRegime] = None,
    sweep: Optional[PatternResult] = None,
    pattern: Optional[PatternResult] = None,
    settings: AnalysisSettings = DEFAULT_SETTINGS,
) -> int:
    """Score the mean-reversion strategy (0–100, 50 = neutral).

    Strong trends are handled by ``settings.mr_strong_trend_policy``:
    ``block`` returns 0 outright, ``penalize`` subtracts
    ``mr_strong_trend_penalty`` and keeps scoring.  A penalty alone can
    still leave a high-base score above the entry threshold.

    Components:
        - Regime: +20 ranging, +5 weak trend, strong trend per policy.
        - Sweep: ± confidence × 0.25 in the reversal direction.
        - Pattern: + confidence × 0.2 double bottom, × 0.1 higher lows.
        - Bollinger: ±15 at or beyond the lower/upper band.
        - RSI: +15 oversold, −15 overbought, +5 in the 40–60 band.
        - Stretch: +10 when price is > 2% from the middle band in a range.
        - Higher lows over the last three candles: +10.
    """
    regime, sweep, pattern = _context(
        candles, indicators, regime, sweep, pattern, settings,
    )
    label = regime.regime
    strong_trend = label in ("strong_uptrend", "strong_downtrend")

    if strong_trend and settings.mr_strong_trend_policy == "block":
        return 0

    score = 50.0
    if strong_trend:
        score -= settings.mr_strong_trend_penalty
    elif label == "ranging":
        score += settings.mr_ranging_bonus
    else:
        score += settings.mr_weak_trend_bonus

    if sweep.detected:
        weight = sweep.confidence * settings.mr_sweep_weight
        score += weight if sweep.direction == "bullish" else -weight

    if pattern.detected:
        if pattern.pattern == "double_bottom":
            score += pattern.confidence * settings.mr_double_bottom_weight
        elif pattern.pattern == "higher_low":
            score += pattern.confidence * settings.mr_higher_low_weight

    price = candles[-1].close
    bands = indicators.bollinger
    position = check_bollinger_position(price, bands, settings)
    if position in ("at_lower", "below_lower"):
        score += settings.mr_band_weight
    elif position in ("at_upper", "above_upper"):
        score -= settings.mr_band_weight

    rsi = indicators.rsi
    if rsi < settings.rsi_oversold:
        score += settings.mr_rsi_extreme_weight
    elif rsi > settings.rsi_overbought:
        score -= settings.mr_rsi_extreme_weight
    elif settings.mr_rsi_neutral_low < rsi < settings.mr_rsi_neutral_high:
        score += settings.mr_rsi_neutral_bonus

    stretch_pct = abs(price - bands.middle) / bands.middle * 100.0
    spread = ema_spread_pct(indicators.ema9, indicators.ema21)
    if stretch_pct > settings.mr_stretch_pct and abs(spread) < settings.regime_weak_pct:
        score += settings.mr_stretch_bonus

    if len(candles) >= 3:
        low2, low1, low0 = (c.low for c in candles[-3:])
        if low2 < low1 < low0:
            score += settings.mr_higher_lows_bonus

    return _clamp(score)


def recommend(
    momentum: int,
    mean_reversion: int,
    settings: AnalysisSettings = DEFAULT_SETTINGS,
) -> Recommendation:
    """Combine both scores into one label.

    Momentum takes precedence: BULLISH above ``signal_high``, BEARISH below
    ``signal_low``; otherwise the mean-reversion score at the same
    thresholds gives BUY_DIP / SELL_RALLY; otherwise HOLD.
    """
    if momentum > settings.signal_high:
        return "BULLISH"
    if momentum < settings.signal_low:
        return "BEARISH"
    if mean_reversion > settings.signal_high:
        return "BUY_DIP"
    if mean_reversion < settings.signal_low:
        return "SELL_RALLY"
    return "HOLD"


def generate_signals(
    candles: Sequence[Candle],
    indicators: IndicatorSet,
    *,
    regime: Optional[MarketRegime] = None,
    sweep: Optional[PatternResult] = None,
    pattern: Optional[PatternResult] = None,
    settings: AnalysisSettings = DEFAULT_SETTINGS,
) -> SignalSet:
    """Compute both strategy scores and the recommendation together."""
    regime, sweep, pattern = _context(
        candles, indicators, regime, sweep, pattern, settings,
    )
    momentum = generate_momentum_signal(
        candles, indicators,
        regime=regime, sweep=sweep, pattern=pattern, settings=settings,
    )
    mean_reversion = generate_mean_reversion_signal(
        candles, indicators,
        regime=regime, sweep=sweep, pattern=pattern, settings=settings,
    )
    return SignalSet(
        momentum=momentum,
        mean_reversion=mean_reversion,
        recommendation=recommend(momentum, mean_reversion, settings),
    )
