"""Live analysis: one call from a candle window to a full trading read.

Flow:
    1. Indicators from closes (needs ``min_analysis_points`` candles).
    2. Market conditions and regime from indicators + candles.
    3. Liquidity sweep and chart pattern scan (regime-aware confidence).
    4. Momentum and mean-reversion scores + recommendation.
    5. Support/resistance from the trailing 14 candles.

Errors from any stage propagate; nothing is defaulted.
"""

from typing import Sequence

from marketlens.analysis.conditions import analyze_market_conditions, detect_market_regime
from marketlens.analysis.indicators import calculate_all_indicators
from marketlens.analysis.models import (
    AnalysisResult,
    Candle,
    PatternSummary,
    SupportResistance,
)
from marketlens.analysis.patterns import detect_chart_pattern, detect_liquidity_sweep
from marketlens.analysis.settings import DEFAULT_SETTINGS, AnalysisSettings
from marketlens.analysis.signals import generate_signals
from marketlens.errors import require_length


SUPPORT_RESISTANCE_LOOKBACK = 14


def calculate_support_resistance(
    candles: Sequence[Candle],
    lookback: int = SUPPORT_RESISTANCE_LOOKBACK,
) -> SupportResistance:
    """Lowest low and highest high over the trailing *lookback* candles."""
    require_length(candles, 1, "support/resistance")
    recent = candles[-lookback:]
    return SupportResistance(
        support=[min(c.low for c in recent)],
        resistance=[max(c.high for c in recent)],
    )


def analyze(
    candles: Sequence[Candle],
    settings: AnalysisSettings = DEFAULT_SETTINGS,
) -> AnalysisResult:
    """Run the full analysis pipeline on *candles* (oldest first)."""
    require_length(candles, settings.min_analysis_points, "analysis")

    prices = [c.close for c in candles]
    indicators = calculate_all_indicators(prices, settings)
    conditions = analyze_market_conditions(candles, indicators, settings)
    regime = detect_market_regime(candles, indicators.ema9, indicators.ema21, settings)
    sweep = detect_liquidity_sweep(candles, settings=settings)
    pattern = detect_chart_pattern(candles, regime, settings)
    signals = generate_signals(
        candles, indicators,
        regime=regime, sweep=sweep, pattern=pattern, settings=settings,
    )

    return AnalysisResult(
        indicators=indicators,
        patterns=PatternSummary(
            liquidity_sweep=sweep,
            chart_pattern=pattern,
            market_regime=regime,
        ),
        conditions=conditions,
        signals=signals,
        support_resistance=calculate_support_resistance(candles),
    )
