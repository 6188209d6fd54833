"""Analysis data models: typed value objects passed between engine stages."""

from dataclasses import dataclass, field
from typing import Literal, Optional


Trend = Literal["up", "down", "sideways"]
Volatility = Literal["low", "medium", "high"]
VolumeTrend = Literal["increasing", "decreasing", "stable"]
Momentum = Literal["bullish", "bearish", "neutral"]
RsiCondition = Literal["overbought", "oversold", "neutral"]
RegimeLabel = Literal[
    "strong_uptrend", "weak_uptrend", "ranging", "weak_downtrend", "strong_downtrend",
]
Direction = Literal["bullish", "bearish"]
Recommendation = Literal["BULLISH", "BEARISH", "BUY_DIP", "SELL_RALLY", "HOLD"]


@dataclass(frozen=True)
class Candle:
    """A single OHLCV bar.  ``volume`` is ``0`` when the source omits it."""

    timestamp: str
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


@dataclass(frozen=True)
class BollingerBands:
    upper: float
    middle: float
    lower: float


@dataclass(frozen=True)
class IndicatorSet:
    """Indicator values as of the last candle of the evaluated window."""

    ema9: float
    ema21: float
    rsi: float
    bollinger: BollingerBands


@dataclass(frozen=True)
class VolumeMetrics:
    current: float
    average: float
    ratio: float
    trend: VolumeTrend


@dataclass(frozen=True)
class MarketConditions:
    """Qualitative descriptors derived from indicators and recent candles."""

    trend: Trend
    volatility: Volatility
    volume: VolumeTrend
    momentum: Momentum
    rsi_condition: RsiCondition


@dataclass(frozen=True)
class MarketRegime:
    """Coarse trend-strength label from the EMA spread."""

    regime: RegimeLabel
    spread_pct: float
    volatility: Volatility  # ATR-percent based
    confidence: int


@dataclass(frozen=True)
class PatternResult:
    """Outcome of a sweep or chart-pattern scan.

    A result with ``detected=False`` always has ``confidence == 0`` and no
    price levels.  Build those with :meth:`not_found`.
    """

    detected: bool
    pattern: Optional[str] = None
    direction: Optional[Direction] = None
    confidence: int = 0
    entry: Optional[float] = None
    target: Optional[float] = None
    stop_loss: Optional[float] = None
    description: str = ""

    @classmethod
    def not_found(cls, description: str = "No pattern detected") -> "PatternResult":
        return cls(detected=False, description=description)


@dataclass(frozen=True)
class SignalSet:
    """Both strategy scores plus the combined recommendation."""

    momentum: int
    mean_reversion: int
    recommendation: Recommendation


@dataclass(frozen=True)
class SupportResistance:
    support: list[float] = field(default_factory=list)
    resistance: list[float] = field(default_factory=list)


@dataclass(frozen=True)
class PatternSummary:
    liquidity_sweep: PatternResult
    chart_pattern: PatternResult
    market_regime: MarketRegime


@dataclass(frozen=True)
class AnalysisResult:
    """Everything the live path reports for one candle window."""

    indicators: IndicatorSet
    patterns: PatternSummary
    conditions: MarketConditions
    signals: SignalSet
    support_resistance: SupportResistance
