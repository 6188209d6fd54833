"""Backtest data models: setups, per-trade results, run configuration."""

from dataclasses import dataclass, field
from typing import Literal, Optional

from marketlens.analysis.settings import DEFAULT_SETTINGS, AnalysisSettings


Strategy = Literal["momentum", "mean_reversion"]
TradeDirection = Literal["long", "short"]
ExitReason = Literal["tp1", "tp2", "tp3", "stop_loss", "timeout"]
Outcome = Literal["win", "loss", "partial"]

STRATEGIES: tuple[str, ...] = ("momentum", "mean_reversion")
EXIT_REASONS: tuple[str, ...] = ("tp1", "tp2", "tp3", "stop_loss", "timeout")


@dataclass(frozen=True)
class ExitLevels:
    """Stop-loss and take-profit distances from entry, in percent."""

    stop_loss_pct: float
    tp1_pct: float
    tp2_pct: float
    tp3_pct: float

    def __post_init__(self) -> None:
        if not 0 < self.tp1_pct < self.tp2_pct < self.tp3_pct:
            raise ValueError(
                "Take-profit distances must be positive and strictly ascending, "
                f"got {self.tp1_pct}/{self.tp2_pct}/{self.tp3_pct}"
            )
        if self.stop_loss_pct <= 0:
            raise ValueError(f"stop_loss_pct must be positive, got {self.stop_loss_pct}")


DEFAULT_EXIT_LEVELS: dict[str, ExitLevels] = {
    # Enter on strength, TPs sized for 4h candles
    "momentum": ExitLevels(stop_loss_pct=3.0, tp1_pct=1.0, tp2_pct=2.0, tp3_pct=3.5),
    # Enter at extremes, wider stop
    "mean_reversion": ExitLevels(stop_loss_pct=4.0, tp1_pct=1.5, tp2_pct=3.0, tp3_pct=4.5),
}


@dataclass(frozen=True)
class BacktestConfig:
    """Parameters for one backtest run.

    ``warmup`` is the number of candles that must precede the first
    evaluated index; the signal window at index *i* is
    ``candles[i - warmup : i + 1]``.  Left as ``None`` it resolves to
    ``settings.backtest_warmup`` (30, or more for long indicator periods).
    """

    strategy: Strategy = "momentum"
    signal_threshold: int = 70
    warmup: Optional[int] = None
    max_hold: int = 24
    pullback_pct: float = 0.5
    allow_short: bool = False
    use_session_modifier: bool = False
    exit_levels: Optional[ExitLevels] = None
    settings: AnalysisSettings = DEFAULT_SETTINGS

    def __post_init__(self) -> None:
        if self.warmup is None:
            object.__setattr__(self, "warmup", self.settings.backtest_warmup)
        if self.strategy not in STRATEGIES:
            raise ValueError(
                f"Unknown strategy '{self.strategy}'. "
                f"Available: {', '.join(STRATEGIES)}"
            )
        if not 0 <= self.signal_threshold <= 100:
            raise ValueError(
                f"signal_threshold must be 0–100, got {self.signal_threshold}"
            )
        if self.max_hold < 1:
            raise ValueError(f"max_hold must be at least 1, got {self.max_hold}")
        if self.warmup < self.settings.min_analysis_points - 1:
            raise ValueError(
                f"warmup must be at least {self.settings.min_analysis_points - 1} "
                f"candles for the configured indicators, got {self.warmup}"
            )

    @property
    def levels(self) -> ExitLevels:
        return self.exit_levels or DEFAULT_EXIT_LEVELS[self.strategy]

    @property
    def min_candles(self) -> int:
        """Shortest series that allows at least one full evaluation."""
        return self.warmup + self.max_hold + 1


@dataclass(frozen=True)
class TradeSetup:
    """A trade armed at ``index`` when the strategy signal crossed the threshold."""

    timestamp: str
    index: int
    entry: float
    direction: TradeDirection
    strategy: Strategy
    signal_strength: int
    stop_loss: float
    take_profit_1: float
    take_profit_2: float
    take_profit_3: float
    reasoning: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class TradeResult:
    setup: TradeSetup
    exit_price: float
    exit_reason: ExitReason
    outcome: Outcome
    pnl_percent: float
    duration: int  # candles held


@dataclass(frozen=True)
class BacktestStats:
    total_trades: int
    wins: int
    losses: int
    partials: int
    win_rate: float  # fraction 0–1
    profit_factor: Optional[float]
    total_pnl_pct: float
    avg_pnl_pct: float
    avg_win_pct: float
    avg_loss_pct: float
    max_drawdown_pct: float
    exit_reasons: dict[str, int]
    avg_signal_win: Optional[float]
    avg_signal_loss: Optional[float]
    avg_signal_partial: Optional[float]
    signal_edge: Optional[float]  # avg signal of wins − avg signal of losses


@dataclass(frozen=True)
class BacktestReport:
    strategy: Strategy
    signal_threshold: int
    candle_count: int
    trades: list[TradeResult]
    stats: BacktestStats
