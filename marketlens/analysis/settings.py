"""Analysis settings: every tunable threshold of the engine in one place.

Defaults reproduce the documented backtest results.  Override individual
values with ``dataclasses.replace(DEFAULT_SETTINGS, ...)`` rather than
editing call sites.
"""

from dataclasses import dataclass
from typing import Literal


@dataclass(frozen=True)
class AnalysisSettings:
    """Indicator periods, classifier breakpoints, pattern and signal weights."""

    # ── Indicator periods ───────────────────────────────────────────────
    ema_fast: int = 9
    ema_slow: int = 21
    rsi_period: int = 14
    bb_period: int = 20
    bb_std_dev: float = 2.0
    atr_period: int = 19  # 20 candles → 19 true ranges

    # ── Volume ──────────────────────────────────────────────────────────
    volume_window: int = 20
    volume_trend_window: int = 5
    volume_increase_ratio: float = 1.2
    volume_decrease_ratio: float = 0.8

    # ── Market conditions ───────────────────────────────────────────────
    trend_epsilon_pct: float = 1.0
    volatility_low_width: float = 0.05  # band width / middle
    volatility_high_width: float = 0.10
    band_touch_tolerance: float = 0.05  # fraction of band width
    rsi_overbought: float = 70.0
    rsi_oversold: float = 30.0
    rsi_midline: float = 50.0

    # ── Regime breakpoints (EMA spread, percent) ────────────────────────
    regime_weak_pct: float = 1.0
    regime_strong_pct: float = 3.0
    regime_atr_low_pct: float = 1.0
    regime_atr_high_pct: float = 2.5
    regime_strong_base_confidence: float = 70.0
    regime_strong_max_confidence: float = 95.0
    regime_confidence_per_spread_pct: float = 10.0
    regime_weak_confidence: float = 70.0
    regime_ranging_confidence: float = 80.0

    # ── Liquidity sweep ─────────────────────────────────────────────────
    sweep_lookback: int = 10
    sweep_volume_ratio: float = 1.5
    sweep_close_position: float = 0.7  # close must sit in the top 30% of the range
    sweep_wick_ratio: float = 1.5
    sweep_confidence: int = 85

    # ── Chart patterns ──────────────────────────────────────────────────
    min_pattern_candles: int = 30
    pattern_lookback: int = 30
    extrema_window: int = 2
    double_bottom_tolerance_pct: float = 2.0
    pole_window: int = 10
    flag_window: int = 10
    pole_min_gain_pct: float = 5.0
    flag_max_pullback_pct: float = 3.0
    pattern_forming_confidence: int = 70
    pattern_confirmed_confidence: int = 90
    pattern_regime_bonus: int = 5
    structure_base_confidence: int = 70
    structure_max_confidence: int = 95
    structure_strength_weight: float = 50.0

    # ── Momentum signal weights ─────────────────────────────────────────
    momentum_strong_regime_bonus: int = 25
    momentum_weak_regime_bonus: int = 15
    momentum_ranging_penalty: int = 10
    momentum_ema_alignment: int = 10
    momentum_trend_alignment: int = 10
    momentum_crossover_bonus: int = 10
    crossover_lookback: int = 5
    momentum_sweep_weight: float = 0.2
    momentum_pattern_weight: float = 0.15
    momentum_lower_high_penalty: int = 15
    momentum_rsi_band_low: float = 45.0
    momentum_rsi_band_high: float = 65.0
    momentum_rsi_band_bonus: int = 10
    momentum_rsi_overbought_penalty: int = 10
    momentum_rsi_weak_level: float = 40.0
    momentum_rsi_weak_penalty: int = 5
    momentum_volume_bonus: int = 10

    # ── Mean-reversion signal weights ───────────────────────────────────
    mr_ranging_bonus: int = 20
    mr_weak_trend_bonus: int = 5
    mr_strong_trend_penalty: int = 25
    mr_strong_trend_policy: Literal["penalize", "block"] = "penalize"
    mr_sweep_weight: float = 0.25
    mr_double_bottom_weight: float = 0.2
    mr_higher_low_weight: float = 0.1
    mr_band_weight: int = 15
    mr_rsi_extreme_weight: int = 15
    mr_stretch_pct: float = 2.0
    mr_stretch_bonus: int = 10
    mr_higher_lows_bonus: int = 10
    mr_rsi_neutral_low: float = 40.0
    mr_rsi_neutral_high: float = 60.0
    mr_rsi_neutral_bonus: int = 5

    # ── Recommendation ──────────────────────────────────────────────────
    signal_high: int = 70
    signal_low: int = 30

    @property
    def min_indicator_points(self) -> int:
        """Points needed for a full ``IndicatorSet`` (21 with defaults)."""
        return max(self.ema_slow, self.bb_period, self.rsi_period + 1)

    @property
    def min_analysis_points(self) -> int:
        """Candles needed by ``analyze``: indicators plus the ATR regime window."""
        return max(self.min_indicator_points, self.atr_period + 1)

    @property
    def backtest_warmup(self) -> int:
        """Default warm-up, extended when indicator periods need more history."""
        return max(30, self.min_analysis_points - 1)


DEFAULT_SETTINGS = AnalysisSettings()

STRONG_TREND_POLICIES = ("penalize", "block")
