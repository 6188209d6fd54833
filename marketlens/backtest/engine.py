"""Backtest engine: replays historical candles through signal scoring and exit logic.

Per trade the lifecycle is Idle → Armed (setup recorded) → Open (forward
candles scanned) → Closed (exit reason assigned).  Only one trade is open at
a time; scanning resumes on the candle after the exit.  No randomness and no
wall-clock reads, so identical inputs give identical ledgers.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from marketlens.analysis.conditions import detect_market_regime
from marketlens.analysis.indicators import calculate_all_indicators
from marketlens.analysis.models import Candle
from marketlens.analysis.patterns import detect_chart_pattern, detect_liquidity_sweep
from marketlens.analysis.sessions import parse_timestamp, session_score_modifier
from marketlens.analysis.settings import DEFAULT_SETTINGS, AnalysisSettings
from marketlens.analysis.signals import (
    generate_mean_reversion_signal,
    generate_momentum_signal,
)
from marketlens.backtest.models import (
    STRATEGIES,
    BacktestConfig,
    BacktestReport,
    BacktestStats,
    TradeResult,
    TradeSetup,
)
from marketlens.backtest.stats import calculate_stats
from marketlens.errors import InsufficientDataError, require_length

logger = logging.getLogger("marketlens.backtest")


class BacktestEngine:
    """Simulates one strategy over a historical candle series.

    Args:
        config: Strategy, threshold, hold window and exit levels.
    """

    def __init__(self, config: Optional[BacktestConfig] = None) -> None:
        self._config = config or BacktestConfig()

    @property
    def config(self) -> BacktestConfig:
        return self._config

    # ── Public API ───────────────────────────────────────────────────────

    def run(self, candles: Sequence[Candle]) -> BacktestReport:
        """Execute a full backtest over *candles* (oldest first).

        Raises ``InsufficientDataError`` before scanning when the series is
        shorter than ``config.min_candles``.
        """
        cfg = self._config
        if len(candles) < cfg.min_candles:
            raise InsufficientDataError(
                f"Backtest needs at least {cfg.min_candles} candles "
                f"({cfg.warmup} warm-up + {cfg.max_hold} hold + 1), "
                f"got {len(candles)}",
                required=cfg.min_candles,
                actual=len(candles),
            )

        logger.info(
            "Backtest start: strategy=%s threshold=%d candles=%d (%s → %s)",
            cfg.strategy, cfg.signal_threshold, len(candles),
            candles[0].timestamp, candles[-1].timestamp,
        )

        results: list[TradeResult] = []
        last_entry = len(candles) - cfg.max_hold
        i = cfg.warmup
        while i < last_entry:
            setup = self.generate_trade_setup(candles, i)
            if setup is None:
                i += 1
                continue

            future = candles[i + 1:i + 1 + cfg.max_hold]
            result = self.execute_trade_setup(setup, future)
            results.append(result)
            logger.debug(
                "Trade %d: %s %s @ %.4f signal=%d → %s (%s) %.2f%% in %d candles",
                len(results), setup.direction, setup.strategy, setup.entry,
                setup.signal_strength, result.exit_reason, result.outcome,
                result.pnl_percent, result.duration,
            )
            i += result.duration + 1

        stats = calculate_stats(results)
        logger.info(
            "Backtest complete: %d trades, win rate %.1f%%, profit factor %s",
            stats.total_trades,
            stats.win_rate * 100,
            "n/a" if stats.profit_factor is None else f"{stats.profit_factor:.2f}",
        )

        return BacktestReport(
            strategy=cfg.strategy,
            signal_threshold=cfg.signal_threshold,
            candle_count=len(candles),
            trades=results,
            stats=stats,
        )

    def signal_at(self, candles: Sequence[Candle], index: int) -> int:
        """Strategy signal for the window ending at *index*."""
        cfg = self._config
        settings = cfg.settings
        window = candles[max(0, index - cfg.warmup):index + 1]
        prices = [c.close for c in window]

        indicators = calculate_all_indicators(prices, settings)
        regime = detect_market_regime(window, indicators.ema9, indicators.ema21, settings)
        sweep = detect_liquidity_sweep(window, settings=settings)
        pattern = detect_chart_pattern(window, regime, settings)

        scorer = (
            generate_momentum_signal
            if cfg.strategy == "momentum"
            else generate_mean_reversion_signal
        )
        signal = scorer(
            window, indicators,
            regime=regime, sweep=sweep, pattern=pattern, settings=settings,
        )

        if cfg.use_session_modifier:
            at = parse_timestamp(candles[index].timestamp)
            signal = max(0, min(100, signal + session_score_modifier(at)))
        return signal

    def generate_trade_setup(
        self, candles: Sequence[Candle], index: int,
    ) -> Optional[TradeSetup]:
        """Arm a trade at *index* if the strategy signal crosses the threshold.

        Long when the signal is at or above ``signal_threshold``; short (only
        with ``allow_short``) when it is at or below ``100 − threshold``.
        Returns ``None`` before the warm-up period or without a crossing.
        """
        cfg = self._config
        if index < cfg.warmup:
            return None

        signal = self.signal_at(candles, index)
        if signal >= cfg.signal_threshold:
            direction = "long"
            strength = signal
        elif cfg.allow_short and signal <= 100 - cfg.signal_threshold:
            direction = "short"
            strength = 100 - signal
        else:
            return None

        candle = candles[index]
        entry = candle.close
        levels = cfg.levels
        sign = 1.0 if direction == "long" else -1.0

        def _level(pct: float) -> float:
            return entry * (1.0 + sign * pct / 100.0)

        return TradeSetup(
            timestamp=candle.timestamp,
            index=index,
            entry=entry,
            direction=direction,
            strategy=cfg.strategy,
            signal_strength=strength,
            stop_loss=entry * (1.0 - sign * levels.stop_loss_pct / 100.0),
            take_profit_1=_level(levels.tp1_pct),
            take_profit_2=_level(levels.tp2_pct),
            take_profit_3=_level(levels.tp3_pct),
            reasoning=[
                f"{cfg.strategy} signal {signal}/100 vs threshold {cfg.signal_threshold}",
                f"{direction} entry {entry:.4f}, stop {levels.stop_loss_pct}%, "
                f"targets {levels.tp1_pct}/{levels.tp2_pct}/{levels.tp3_pct}%",
            ],
        )

    def execute_trade_setup(
        self, setup: TradeSetup, future: Sequence[Candle],
    ) -> TradeResult:
        """Scan *future* candles (up to ``max_hold``) for the first exit.

        Per candle, in priority order:
            1. Stop-loss touched → exit at the stop (``loss``).  It wins any
               same-candle tie with a take-profit.
            2. Take-profits are marked in ascending order; the lowest unhit
               level is always checked first.  TP3 → exit (``win``).
            3. After TP1/TP2, a close retracing ``pullback_pct`` past the
               highest hit level exits at that level (``win``).

        At the end of the hold window the trade exits at the highest hit
        take-profit (``win``) or, with none hit, at the last close
        (``timeout``, ``partial``).
        """
        window = future[:self._config.max_hold]
        require_length(window, 1, "trade simulation")

        targets = (
            (setup.take_profit_1, "tp1"),
            (setup.take_profit_2, "tp2"),
            (setup.take_profit_3, "tp3"),
        )
        hit = 0
        for held, candle in enumerate(window, start=1):
            if _adverse_touch(setup.direction, candle, setup.stop_loss):
                return _close(setup, setup.stop_loss, "stop_loss", "loss", held)

            while hit < len(targets) and _favourable_touch(
                setup.direction, candle, targets[hit][0],
            ):
                hit += 1

            if hit == len(targets):
                return _close(setup, setup.take_profit_3, "tp3", "win", held)

            if hit:
                level, reason = targets[hit - 1]
                if _retraced(setup.direction, candle.close, level, self._config.pullback_pct):
                    return _close(setup, level, reason, "win", held)

        if hit:
            level, reason = targets[hit - 1]
            return _close(setup, level, reason, "win", len(window))
        return _close(setup, window[-1].close, "timeout", "partial", len(window))


# ── Helpers ──────────────────────────────────────────────────────────────


def _adverse_touch(direction: str, candle: Candle, level: float) -> bool:
    if direction == "long":
        return candle.low <= level
    return candle.high >= level


def _favourable_touch(direction: str, candle: Candle, level: float) -> bool:
    if direction == "long":
        return candle.high >= level
    return candle.low <= level


def _retraced(direction: str, close: float, level: float, pullback_pct: float) -> bool:
    if direction == "long":
        return close < level * (1.0 - pullback_pct / 100.0)
    return close > level * (1.0 + pullback_pct / 100.0)


def _close(
    setup: TradeSetup,
    exit_price: float,
    reason: str,
    outcome: str,
    duration: int,
) -> TradeResult:
    move = (exit_price - setup.entry) / setup.entry * 100.0
    pnl_percent = move if setup.direction == "long" else -move
    return TradeResult(
        setup=setup,
        exit_price=exit_price,
        exit_reason=reason,
        outcome=outcome,
        pnl_percent=pnl_percent,
        duration=duration,
    )


# ── Strategy comparison ──────────────────────────────────────────────────


_PROFIT_FACTOR_CAP = 5.0


@dataclass(frozen=True)
class StrategyComparison:
    strategy: str
    stats: BacktestStats
    score: float


def _comparison_score(stats: BacktestStats) -> float:
    """Composite ranking score: win rate, capped profit factor, win share."""
    if stats.total_trades == 0:
        return 0.0
    if stats.profit_factor is None:
        pf = _PROFIT_FACTOR_CAP if stats.wins else 0.0
    else:
        pf = min(stats.profit_factor, _PROFIT_FACTOR_CAP)
    return round(stats.win_rate * 100 * 0.4 + pf * 30 + stats.win_rate * 30, 2)


def compare_strategies(
    candles: Sequence[Candle],
    signal_threshold: int = 70,
    settings: AnalysisSettings = DEFAULT_SETTINGS,
) -> list[StrategyComparison]:
    """Backtest every strategy on the same candles and rank them, best first."""
    comparisons: list[StrategyComparison] = []
    for strategy in STRATEGIES:
        engine = BacktestEngine(
            BacktestConfig(
                strategy=strategy,
                signal_threshold=signal_threshold,
                settings=settings,
            )
        )
        report = engine.run(candles)
        comparisons.append(
            StrategyComparison(
                strategy=strategy,
                stats=report.stats,
                score=_comparison_score(report.stats),
            )
        )
    comparisons.sort(key=lambda c: (-c.score, c.strategy))
    return comparisons
