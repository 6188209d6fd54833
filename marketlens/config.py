"""MarketLens — application configuration.

Loads .env variables into a typed config object.
Validates values on startup; nothing is required, every variable has a
default.
"""

import os
from dataclasses import dataclass, replace

from dotenv import load_dotenv

from marketlens.analysis.settings import (
    DEFAULT_SETTINGS,
    STRONG_TREND_POLICIES,
    AnalysisSettings,
)
from marketlens.backtest.models import STRATEGIES, BacktestConfig


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    strategy: str
    signal_threshold: int
    ema_fast_period: int
    ema_slow_period: int
    rsi_period: int
    bb_period: int
    mr_strong_trend_policy: str  # "penalize" or "block"
    max_hold_candles: int
    db_path: str
    log_level: str
    api_port: int

    def analysis_settings(self) -> AnalysisSettings:
        """Engine settings with the indicator overrides applied."""
        return replace(
            DEFAULT_SETTINGS,
            ema_fast=self.ema_fast_period,
            ema_slow=self.ema_slow_period,
            rsi_period=self.rsi_period,
            bb_period=self.bb_period,
            mr_strong_trend_policy=self.mr_strong_trend_policy,
        )

    def backtest_config(self, strategy: str | None = None) -> BacktestConfig:
        settings = self.analysis_settings()
        return BacktestConfig(
            strategy=strategy or self.strategy,
            signal_threshold=self.signal_threshold,
            max_hold=self.max_hold_candles,
            settings=settings,
        )


def _int_var(name: str, default: str, low: int, high: int) -> int:
    raw = os.environ.get(name, default)
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if not low <= value <= high:
        raise ValueError(f"{name} must be {low}–{high}, got {value}")
    return value


def _choice_var(name: str, default: str, choices: tuple[str, ...]) -> str:
    value = os.environ.get(name, default)
    if value not in choices:
        raise ValueError(
            f"{name} must be one of {', '.join(choices)}, got {value!r}"
        )
    return value


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Raises ``ValueError`` with a message naming the offending variable when
    a value is malformed or out of range.
    """
    load_dotenv(dotenv_path=env_path)

    ema_fast = _int_var("EMA_FAST_PERIOD", "9", 2, 200)
    ema_slow = _int_var("EMA_SLOW_PERIOD", "21", 2, 400)
    if ema_fast >= ema_slow:
        raise ValueError(
            f"EMA_FAST_PERIOD ({ema_fast}) must be shorter than "
            f"EMA_SLOW_PERIOD ({ema_slow})"
        )

    return Config(
        strategy=_choice_var("STRATEGY", "momentum", STRATEGIES),
        signal_threshold=_int_var("SIGNAL_THRESHOLD", "70", 0, 100),
        ema_fast_period=ema_fast,
        ema_slow_period=ema_slow,
        rsi_period=_int_var("RSI_PERIOD", "14", 2, 100),
        bb_period=_int_var("BB_PERIOD", "20", 2, 200),
        mr_strong_trend_policy=_choice_var(
            "MR_STRONG_TREND_POLICY", "penalize", STRONG_TREND_POLICIES,
        ),
        max_hold_candles=_int_var("MAX_HOLD_CANDLES", "24", 1, 500),
        db_path=os.environ.get("DB_PATH", "data/marketlens.db"),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        api_port=_int_var("API_PORT", "8080", 1, 65535),
    )
