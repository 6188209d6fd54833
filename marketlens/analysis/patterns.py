"""Liquidity-sweep and chart-pattern detection.  Pure functions, no I/O.

Pattern absence is a normal outcome: every detector returns
``PatternResult(detected=False)`` instead of raising, including when the
window is shorter than ``settings.min_pattern_candles``.

Local minima/maxima compare each candle against ``extrema_window`` candles
on each side (2 by default), so the last ``extrema_window`` candles of a
window can never be extrema.
"""

from typing import Optional, Sequence

from marketlens.analysis.models import Candle, MarketRegime, PatternResult
from marketlens.analysis.settings import DEFAULT_SETTINGS, AnalysisSettings


_BULLISH_REGIMES = ("strong_uptrend", "weak_uptrend")
_REVERSAL_REGIMES = ("ranging", "weak_downtrend", "strong_downtrend")


# ── Helpers ──────────────────────────────────────────────────────────────


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _volume_reported(candles: Sequence[Candle]) -> bool:
    return any(c.volume > 0 for c in candles)


def find_local_minima(candles: Sequence[Candle], window: int = 2) -> list[int]:
    """Return indices whose low is strictly below the lows of *window* candles on each side."""
    indices: list[int] = []
    for i in range(window, len(candles) - window):
        low = candles[i].low
        if all(
            candles[i - j].low > low and candles[i + j].low > low
            for j in range(1, window + 1)
        ):
            indices.append(i)
    return indices


def find_local_maxima(candles: Sequence[Candle], window: int = 2) -> list[int]:
    """Return indices whose high is strictly above the highs of *window* candles on each side."""
    indices: list[int] = []
    for i in range(window, len(candles) - window):
        high = candles[i].high
        if all(
            candles[i - j].high < high and candles[i + j].high < high
            for j in range(1, window + 1)
        ):
            indices.append(i)
    return indices


# ── Liquidity sweep ──────────────────────────────────────────────────────


def detect_liquidity_sweep(
    candles: Sequence[Candle],
    lookback: Optional[int] = None,
    settings: AnalysisSettings = DEFAULT_SETTINGS,
) -> PatternResult:
    """Check the most recent candle for a liquidity sweep.

    Support is the lowest low and resistance the highest high of the
    *lookback* candles before the current one.

    Bullish sweep (ALL required):
        1. Low breaks below support while the close recovers above it.
        2. Volume > ``sweep_volume_ratio`` × average volume of the
           *lookback* candles (current candle excluded).
        3. Close sits in the top 30% of the candle range.
        4. Lower wick ≥ ``sweep_wick_ratio`` × upper wick.

    Bearish sweep mirrors this against resistance.  At most one direction
    is reported; a detected sweep always carries ``sweep_confidence``.
    Without reported volume condition 2 cannot be confirmed, so no sweep
    is detected.
    """
    lookback = lookback or settings.sweep_lookback
    if len(candles) < max(settings.min_pattern_candles, lookback + 1):
        return PatternResult.not_found("Insufficient data")

    current = candles[-1]
    prior = candles[-(lookback + 1):-1]
    support = min(c.low for c in prior)
    resistance = max(c.high for c in prior)

    candle_range = current.high - current.low
    if candle_range <= 0:
        return PatternResult.not_found("No sweep detected")

    avg_volume = _mean([c.volume for c in prior])
    volume_spike = avg_volume > 0 and current.volume > settings.sweep_volume_ratio * avg_volume
    close_position = (current.close - current.low) / candle_range
    lower_wick = min(current.open, current.close) - current.low
    upper_wick = current.high - max(current.open, current.close)

    if (
        current.low < support < current.close
        and volume_spike
        and close_position >= settings.sweep_close_position
        and lower_wick >= settings.sweep_wick_ratio * upper_wick
    ):
        return PatternResult(
            detected=True,
            pattern="liquidity_sweep",
            direction="bullish",
            confidence=settings.sweep_confidence,
            entry=current.close,
            target=resistance,
            stop_loss=current.low,
            description=(
                f"Bullish sweep: broke support {support:.4f}, "
                f"closed {current.close:.4f}"
            ),
        )

    if (
        current.close < resistance < current.high
        and volume_spike
        and close_position <= 1.0 - settings.sweep_close_position
        and upper_wick >= settings.sweep_wick_ratio * lower_wick
    ):
        return PatternResult(
            detected=True,
            pattern="liquidity_sweep",
            direction="bearish",
            confidence=settings.sweep_confidence,
            entry=current.close,
            target=support,
            stop_loss=current.high,
            description=(
                f"Bearish sweep: broke resistance {resistance:.4f}, "
                f"closed {current.close:.4f}"
            ),
        )

    return PatternResult.not_found("No sweep detected")


# ── Chart patterns ───────────────────────────────────────────────────────


def _contextual_confidence(
    base: int,
    regime: Optional[MarketRegime],
    supportive: tuple[str, ...],
    settings: AnalysisSettings,
) -> int:
    if regime is not None and regime.regime in supportive:
        return base + settings.pattern_regime_bonus
    return base


def detect_double_bottom(
    candles: Sequence[Candle],
    regime: Optional[MarketRegime] = None,
    settings: AnalysisSettings = DEFAULT_SETTINGS,
) -> PatternResult:
    """Detect a double bottom (bullish reversal).

    Two local minima within ``double_bottom_tolerance_pct`` of each other,
    with at least one local maximum between them.  The highest intervening
    maximum is the neckline; a latest close above it confirms the breakout.
    A latest close below the lower bottom invalidates the pattern.

    Confidence: forming 70, confirmed 90, plus the regime bonus when the
    regime favours a reversal (ranging or downtrend).
    """
    window = settings.extrema_window
    minima = find_local_minima(candles, window)
    maxima = find_local_maxima(candles, window)
    last_close = candles[-1].close

    # Most recent qualifying pair wins
    for j in range(len(minima) - 1, 0, -1):
        for i in range(j - 1, -1, -1):
            first, second = minima[i], minima[j]
            low1 = candles[first].low
            low2 = candles[second].low
            diff_pct = abs(low2 - low1) / low1 * 100.0
            if diff_pct > settings.double_bottom_tolerance_pct:
                continue
            peaks = [k for k in maxima if first < k < second]
            if not peaks:
                continue

            neckline = max(candles[k].high for k in peaks)
            floor = min(low1, low2)
            if last_close < floor:
                return PatternResult.not_found("Double bottom invalidated")

            confirmed = last_close > neckline
            base = (
                settings.pattern_confirmed_confidence
                if confirmed
                else settings.pattern_forming_confidence
            )
            state = "breakout confirmed" if confirmed else "forming"
            return PatternResult(
                detected=True,
                pattern="double_bottom",
                direction="bullish",
                confidence=_contextual_confidence(
                    base, regime, _REVERSAL_REGIMES, settings,
                ),
                entry=last_close,
                target=neckline + (neckline - floor),
                stop_loss=floor,
                description=(
                    f"Double bottom {low1:.4f} ≈ {low2:.4f}, "
                    f"neckline {neckline:.4f} ({state})"
                ),
            )

    return PatternResult.not_found()


def _flag_layout(
    candles: Sequence[Candle],
    offset: int,
    settings: AnalysisSettings,
) -> Optional[tuple[Sequence[Candle], Sequence[Candle]]]:
    """Slice (pole, flag) ending *offset* candles before the last one."""
    pole_n = settings.pole_window
    flag_n = settings.flag_window
    end = len(candles) - offset
    start = end - pole_n - flag_n
    if start < 0:
        return None
    return candles[start:start + pole_n], candles[start + pole_n:end]


def detect_bull_flag(
    candles: Sequence[Candle],
    regime: Optional[MarketRegime] = None,
    settings: AnalysisSettings = DEFAULT_SETTINGS,
) -> PatternResult:
    """Detect a bull flag (continuation).

    Pole: ``pole_window`` candles gaining at least ``pole_min_gain_pct``
    from the first close to the highest high.  Flag: the next
    ``flag_window`` candles, staying under the pole top and pulling back at
    most ``flag_max_pullback_pct`` from it, on lower average volume than
    the pole.  Confirmed when the candle after the flag closes above the
    flag high on volume above the flag average.

    Volume comparisons are skipped when the source reports no volume.
    """
    for offset, confirmed in ((1, True), (0, False)):
        layout = _flag_layout(candles, offset, settings)
        if layout is None:
            continue
        pole, flag = layout

        pole_start = pole[0].close
        pole_top = max(c.high for c in pole)
        pole_gain_pct = (pole_top - pole_start) / pole_start * 100.0
        if pole_gain_pct < settings.pole_min_gain_pct:
            continue

        flag_high = max(c.high for c in flag)
        flag_low = min(c.low for c in flag)
        pullback_pct = (pole_top - flag_low) / pole_top * 100.0
        if flag_high > pole_top or pullback_pct > settings.flag_max_pullback_pct:
            continue

        with_volume = _volume_reported(list(pole) + list(flag))
        flag_volume = _mean([c.volume for c in flag])
        if with_volume and flag_volume >= _mean([c.volume for c in pole]):
            continue

        if confirmed:
            breakout = candles[-1]
            if breakout.close <= flag_high:
                continue
            if with_volume and breakout.volume <= flag_volume:
                continue

        base = (
            settings.pattern_confirmed_confidence
            if confirmed
            else settings.pattern_forming_confidence
        )
        last_close = candles[-1].close
        state = "breakout confirmed" if confirmed else "consolidating"
        return PatternResult(
            detected=True,
            pattern="bull_flag",
            direction="bullish",
            confidence=_contextual_confidence(
                base, regime, _BULLISH_REGIMES, settings,
            ),
            entry=last_close,
            target=last_close + (pole_top - pole_start),
            stop_loss=flag_low,
            description=(
                f"Bull flag: {pole_gain_pct:.1f}% pole, "
                f"{pullback_pct:.1f}% pullback ({state})"
            ),
        )

    return PatternResult.not_found()


def _structure_confidence(strength_pct: float, settings: AnalysisSettings) -> int:
    confidence = min(
        float(settings.structure_max_confidence),
        settings.structure_base_confidence
        + strength_pct * settings.structure_strength_weight,
    )
    return round(confidence)


def detect_higher_lows(
    candles: Sequence[Candle],
    settings: AnalysisSettings = DEFAULT_SETTINGS,
) -> PatternResult:
    """Detect three successively higher local minima (bullish structure)."""
    minima = find_local_minima(candles, settings.extrema_window)
    if len(minima) < 3:
        return PatternResult.not_found()

    low1, low2, low3 = (candles[i].low for i in minima[-3:])
    if not (low1 < low2 < low3):
        return PatternResult.not_found()

    strength_pct = (low3 - low1) / low1 * 100.0
    return PatternResult(
        detected=True,
        pattern="higher_low",
        direction="bullish",
        confidence=_structure_confidence(strength_pct, settings),
        entry=candles[-1].close,
        target=max(c.high for c in candles),
        stop_loss=low3,
        description=f"Higher lows: {low1:.4f} → {low2:.4f} → {low3:.4f}",
    )


def detect_lower_highs(
    candles: Sequence[Candle],
    settings: AnalysisSettings = DEFAULT_SETTINGS,
) -> PatternResult:
    """Detect three successively lower local maxima (bearish structure)."""
    maxima = find_local_maxima(candles, settings.extrema_window)
    if len(maxima) < 3:
        return PatternResult.not_found()

    high1, high2, high3 = (candles[i].high for i in maxima[-3:])
    if not (high1 > high2 > high3):
        return PatternResult.not_found()

    strength_pct = (high1 - high3) / high1 * 100.0
    return PatternResult(
        detected=True,
        pattern="lower_high",
        direction="bearish",
        confidence=_structure_confidence(strength_pct, settings),
        entry=candles[-1].close,
        target=min(c.low for c in candles),
        stop_loss=high3,
        description=f"Lower highs: {high1:.4f} → {high2:.4f} → {high3:.4f}",
    )


def detect_chart_pattern(
    candles: Sequence[Candle],
    regime: Optional[MarketRegime] = None,
    settings: AnalysisSettings = DEFAULT_SETTINGS,
) -> PatternResult:
    """Scan the trailing ``pattern_lookback`` candles for a chart pattern.

    Detectors run in priority order (double bottom, bull flag, higher lows,
    lower highs) and the first hit is returned.  *regime* only adjusts
    confidence; it never decides whether a pattern exists.
    """
    if len(candles) < settings.min_pattern_candles:
        return PatternResult.not_found("Insufficient data")

    window = candles[-settings.pattern_lookback:]

    for result in (
        detect_double_bottom(window, regime, settings),
        detect_bull_flag(window, regime, settings),
        detect_higher_lows(window, settings),
        detect_lower_highs(window, settings),
    ):
        if result.detected:
            return result

    return PatternResult.not_found()
