"""Tests for marketlens.analysis.patterns — liquidity sweeps and chart patterns."""

import pytest

from marketlens.analysis.models import Candle, MarketRegime
from marketlens.analysis.patterns import (
    detect_bull_flag,
    detect_chart_pattern,
    detect_double_bottom,
    detect_higher_lows,
    detect_liquidity_sweep,
    detect_lower_highs,
    find_local_maxima,
    find_local_minima,
)


# ── Helpers ──────────────────────────────────────────────────────────────


def _make_candle(o, h, l, c, vol=0.0):
    return Candle(timestamp="2024-01-01T00:00:00Z", open=o, high=h, low=l, close=c, volume=vol)


def _bar(c, spread=0.5, vol=0.0):
    return _make_candle(c, c + spread, c - spread, c, vol)


def _path(*anchors, spread=0.5):
    """Candles whose closes interpolate linearly between ``(index, close)`` anchors."""
    closes: list[float] = []
    for (i0, c0), (i1, c1) in zip(anchors, anchors[1:]):
        step = (c1 - c0) / (i1 - i0)
        start = 0 if not closes else 1
        for k in range(start, i1 - i0 + 1):
            closes.append(c0 + step * k)
    return [_bar(c, spread) for c in closes]


def _regime(label):
    return MarketRegime(regime=label, spread_pct=0.0, volatility="medium", confidence=80)


def _sweep_base(vol=1000.0):
    """29 flat candles: support 99, resistance 101."""
    return [_make_candle(100.0, 101.0, 99.0, 100.0, vol) for _ in range(29)]


def _double_bottom(last_close=107.7):
    return _path((0, 105.0), (8, 100.0), (14, 106.0), (20, 100.5), (29, last_close))


def _flag_candles(breakout=True, pole_vol=0.0, flag_vol=0.0, breakout_vol=0.0):
    """9 flat, 10-candle pole 100 → 109, 10-candle flag around 108.3, then a breakout."""
    candles = [_bar(100.0, 0.2, pole_vol) for _ in range(9)]
    candles += [_bar(100.0 + k, 0.2, pole_vol) for k in range(10)]
    candles += [_bar(108.5 if k % 2 == 0 else 108.2, 0.2, flag_vol) for k in range(10)]
    if breakout:
        candles.append(_bar(110.0, 0.2, breakout_vol))
    else:
        candles.append(_bar(108.5, 0.2, flag_vol))
    return candles


# ── Local extrema ────────────────────────────────────────────────────────


class TestLocalExtrema:
    def test_minima(self):
        lows = [5, 4, 3, 4, 5, 4, 2, 4, 5]
        candles = [_make_candle(l + 0.5, l + 1.0, l, l + 0.5) for l in lows]
        assert find_local_minima(candles) == [2, 6]

    def test_maxima(self):
        highs = [1, 2, 3, 2, 1, 2, 4, 2, 1]
        candles = [_make_candle(h - 0.5, h, h - 1.0, h - 0.5) for h in highs]
        assert find_local_maxima(candles) == [2, 6]

    def test_ties_are_not_extrema(self):
        candles = [_bar(c) for c in [5, 4, 3, 3, 4, 5]]
        assert find_local_minima(candles) == []

    def test_edges_excluded(self):
        candles = [_bar(c) for c in [1, 2, 3, 4, 5]]
        assert find_local_minima(candles) == []


# ── Liquidity sweep ──────────────────────────────────────────────────────


class TestLiquiditySweep:
    def test_bullish_sweep(self):
        candles = _sweep_base() + [_make_candle(99.6, 100.2, 98.0, 100.0, 3000.0)]
        result = detect_liquidity_sweep(candles)
        assert result.detected is True
        assert result.pattern == "liquidity_sweep"
        assert result.direction == "bullish"
        assert result.confidence == 85
        assert result.entry == 100.0
        assert result.target == 101.0
        assert result.stop_loss == 98.0

    def test_bearish_sweep(self):
        candles = _sweep_base() + [_make_candle(100.4, 102.0, 99.8, 100.0, 3000.0)]
        result = detect_liquidity_sweep(candles)
        assert result.detected is True
        assert result.direction == "bearish"
        assert result.confidence == 85
        assert result.target == 99.0
        assert result.stop_loss == 102.0

    def test_requires_volume_spike(self):
        candles = _sweep_base() + [_make_candle(99.6, 100.2, 98.0, 100.0, 1200.0)]
        assert detect_liquidity_sweep(candles).detected is False

    def test_no_volume_reported_means_no_sweep(self):
        candles = _sweep_base(vol=0.0) + [_make_candle(99.6, 100.2, 98.0, 100.0, 0.0)]
        assert detect_liquidity_sweep(candles).detected is False

    def test_close_must_recover_above_support(self):
        candles = _sweep_base() + [_make_candle(99.6, 99.6, 97.0, 98.8, 3000.0)]
        assert detect_liquidity_sweep(candles).detected is False

    def test_close_in_top_thirty_percent(self):
        # Range 98 → 102, close 99.5 sits at 37.5%
        candles = _sweep_base() + [_make_candle(99.4, 102.0, 98.0, 99.5, 3000.0)]
        assert detect_liquidity_sweep(candles).detected is False

    def test_insufficient_history(self):
        candles = _sweep_base()[:20] + [_make_candle(99.6, 100.2, 98.0, 100.0, 3000.0)]
        result = detect_liquidity_sweep(candles)
        assert result.detected is False
        assert result.description == "Insufficient data"


# ── Double bottom ────────────────────────────────────────────────────────


class TestDoubleBottom:
    def test_confirmed_breakout(self):
        result = detect_double_bottom(_double_bottom())
        assert result.detected is True
        assert result.pattern == "double_bottom"
        assert result.direction == "bullish"
        assert result.confidence == 90
        assert result.stop_loss == pytest.approx(99.5)
        assert result.target == pytest.approx(113.5)

    def test_forming(self):
        result = detect_double_bottom(_double_bottom(last_close=104.1))
        assert result.detected is True
        assert result.confidence == 70

    def test_supportive_regime_bonus(self):
        candles = _double_bottom(last_close=104.1)
        assert detect_double_bottom(candles, _regime("ranging")).confidence == 75
        assert detect_double_bottom(candles, _regime("strong_uptrend")).confidence == 70

    def test_invalidated_below_floor(self):
        candles = _path((0, 105.0), (8, 100.0), (14, 106.0), (20, 100.5), (27, 103.0))
        candles += [_bar(101.0), _bar(99.0)]
        result = detect_double_bottom(candles)
        assert result.detected is False
        assert result.description == "Double bottom invalidated"


# ── Bull flag ────────────────────────────────────────────────────────────


class TestBullFlag:
    def test_confirmed_without_volume(self):
        result = detect_bull_flag(_flag_candles())
        assert result.detected is True
        assert result.pattern == "bull_flag"
        assert result.confidence == 90
        assert result.stop_loss == pytest.approx(108.0)
        assert result.target == pytest.approx(110.0 + 9.2)

    def test_uptrend_bonus(self):
        result = detect_bull_flag(_flag_candles(), _regime("strong_uptrend"))
        assert result.confidence == 95

    def test_forming(self):
        result = detect_bull_flag(_flag_candles(breakout=False))
        assert result.detected is True
        assert result.confidence == 70

    def test_confirmed_with_volume(self):
        candles = _flag_candles(pole_vol=2000.0, flag_vol=1000.0, breakout_vol=1500.0)
        result = detect_bull_flag(candles)
        assert result.detected is True
        assert result.confidence == 90

    def test_heavy_flag_volume_rejected(self):
        candles = _flag_candles(pole_vol=2000.0, flag_vol=2500.0, breakout_vol=3000.0)
        assert detect_bull_flag(candles).detected is False

    def test_weak_pole_rejected(self):
        candles = [_bar(100.0, 0.2) for _ in range(30)]
        assert detect_bull_flag(candles).detected is False


# ── Market structure ─────────────────────────────────────────────────────


class TestStructure:
    def test_higher_lows(self):
        candles = _path((0, 106.0), (5, 100.5), (10, 110.0), (15, 104.5),
                        (20, 114.0), (25, 108.5), (29, 113.0))
        result = detect_higher_lows(candles)
        assert result.detected is True
        assert result.pattern == "higher_low"
        assert result.direction == "bullish"
        assert result.confidence == 95
        assert result.stop_loss == pytest.approx(108.0)

    def test_lower_highs(self):
        candles = _path((0, 104.0), (5, 109.5), (10, 100.0), (15, 105.5),
                        (20, 96.0), (25, 101.5), (29, 97.0))
        result = detect_lower_highs(candles)
        assert result.detected is True
        assert result.pattern == "lower_high"
        assert result.direction == "bearish"
        assert result.stop_loss == pytest.approx(102.0)

    def test_two_minima_not_enough(self):
        assert detect_higher_lows(_double_bottom()).detected is False


# ── Chart pattern dispatch ───────────────────────────────────────────────


class TestChartPattern:
    def test_insufficient_history_is_not_an_error(self):
        result = detect_chart_pattern(_double_bottom()[:29])
        assert result.detected is False
        assert result.description == "Insufficient data"

    def test_double_bottom_first(self):
        assert detect_chart_pattern(_double_bottom()).pattern == "double_bottom"

    def test_bull_flag(self):
        assert detect_chart_pattern(_flag_candles()).pattern == "bull_flag"

    def test_higher_lows(self):
        candles = _path((0, 106.0), (5, 100.5), (10, 110.0), (15, 104.5),
                        (20, 114.0), (25, 108.5), (29, 113.0))
        assert detect_chart_pattern(candles).pattern == "higher_low"

    def test_lower_highs(self):
        candles = _path((0, 104.0), (5, 109.5), (10, 100.0), (15, 105.5),
                        (20, 96.0), (25, 101.5), (29, 97.0))
        assert detect_chart_pattern(candles).pattern == "lower_high"

    def test_only_trailing_window_scanned(self):
        # A double bottom pushed out of the last 30 candles by a flat run
        candles = _double_bottom() + [_bar(107.7) for _ in range(30)]
        assert detect_chart_pattern(candles).detected is False

    def test_flat_market(self):
        candles = [_bar(100.0) for _ in range(40)]
        assert detect_chart_pattern(candles).detected is False
