"""Internal API routers — /analyze, /backtest, /backtests, /session endpoints.

No business logic, no DB access. Delegates to the analysis engine, the
backtester and the repo.
"""

import logging
from dataclasses import asdict, replace
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Query

from marketlens.analysis.analyzer import analyze
from marketlens.analysis.sessions import analyze_session, parse_timestamp
from marketlens.analysis.settings import (
    DEFAULT_SETTINGS,
    STRONG_TREND_POLICIES,
    AnalysisSettings,
)
from marketlens.backtest.engine import BacktestEngine, compare_strategies
from marketlens.backtest.models import STRATEGIES, BacktestConfig
from marketlens.data.loader import candles_from_records

logger = logging.getLogger("marketlens")
router = APIRouter()

# ── Shared state (set during app startup) ────────────────────────────────

_backtest_repo = None  # Set via configure_routers()
_settings: AnalysisSettings = DEFAULT_SETTINGS


def configure_routers(
    backtest_repo=None,
    settings: Optional[AnalysisSettings] = None,
) -> None:
    """Inject dependencies from the application startup.

    Args:
        backtest_repo: A ``BacktestRepo`` instance (or duck-type for tests).
            Without one, backtests run but are not persisted.
        settings: Analysis settings for every request; defaults otherwise.
    """
    global _backtest_repo, _settings  # noqa: PLW0603
    _backtest_repo = backtest_repo
    _settings = settings or DEFAULT_SETTINGS


# ── Request parsing ──────────────────────────────────────────────────────


def _parse_candles(body: dict, errors: list[str]) -> list:
    records = body.get("candles")
    if not isinstance(records, list) or not records:
        errors.append("candles must be a non-empty list")
        return []
    try:
        return candles_from_records(records)
    except (ValueError, TypeError) as exc:
        errors.append(f"candles: {exc}")
        return []


def _parse_settings(body: dict, errors: list[str]) -> AnalysisSettings:
    policy = body.get("mr_strong_trend_policy")
    if policy is None:
        return _settings
    if policy not in STRONG_TREND_POLICIES:
        errors.append(
            f"mr_strong_trend_policy must be one of {', '.join(STRONG_TREND_POLICIES)}"
        )
        return _settings
    return replace(_settings, mr_strong_trend_policy=policy)


def _parse_threshold(body: dict, errors: list[str]) -> int:
    try:
        v = int(body.get("signal_threshold", 70))
    except (TypeError, ValueError):
        errors.append("signal_threshold must be an integer")
        return 70
    if not 0 <= v <= 100:
        errors.append("signal_threshold must be 0–100")
    return v


# ── Analysis ─────────────────────────────────────────────────────────────


@router.post("/analyze")
async def post_analyze(body: dict):
    """Run the full analysis pipeline on the posted candles."""
    errors: list[str] = []
    candles = _parse_candles(body, errors)
    settings = _parse_settings(body, errors)
    if errors:
        return {"status": "error", "errors": errors}

    try:
        result = analyze(candles, settings)
    except ValueError as exc:
        return {"status": "error", "errors": [str(exc)]}

    return {"status": "ok", "candles": len(candles), **asdict(result)}


@router.get("/session")
async def get_session(at: Optional[str] = Query(default=None)):
    """Session and killzone picture at *at* (ISO-8601), or now."""
    if at is None:
        moment = datetime.now(timezone.utc)
    else:
        try:
            moment = parse_timestamp(at)
        except ValueError:
            return {"status": "error", "errors": [f"Invalid timestamp: {at}"]}
    return {"at": moment.isoformat(), **asdict(analyze_session(moment))}


# ── Backtesting ──────────────────────────────────────────────────────────


@router.post("/backtest")
async def post_backtest(body: dict):
    """Backtest one strategy over the posted candles and persist the run.

    Body keys: ``candles`` (required), ``strategy``, ``signal_threshold``,
    ``max_hold``, ``allow_short``, ``use_session_modifier``,
    ``mr_strong_trend_policy``, ``label``, ``persist`` (default true).
    """
    errors: list[str] = []
    candles = _parse_candles(body, errors)
    settings = _parse_settings(body, errors)
    threshold = _parse_threshold(body, errors)

    strategy = body.get("strategy", "momentum")
    if strategy not in STRATEGIES:
        errors.append(f"strategy must be one of {', '.join(STRATEGIES)}")

    try:
        max_hold = int(body.get("max_hold", 24))
    except (TypeError, ValueError):
        max_hold = 0
    if not 1 <= max_hold <= 500:
        errors.append("max_hold must be 1–500")

    if errors:
        return {"status": "error", "errors": errors}

    try:
        engine = BacktestEngine(
            BacktestConfig(
                strategy=strategy,
                signal_threshold=threshold,
                max_hold=max_hold,
                allow_short=bool(body.get("allow_short", False)),
                use_session_modifier=bool(body.get("use_session_modifier", False)),
                settings=settings,
            )
        )
        report = engine.run(candles)
    except ValueError as exc:
        return {"status": "error", "errors": [str(exc)]}

    run_id = None
    if _backtest_repo is not None and body.get("persist", True):
        run_id = _backtest_repo.insert_run(report, label=body.get("label"))
        logger.info("Backtest run %s stored (%s, %d trades)",
                    run_id, strategy, report.stats.total_trades)

    return {
        "status": "ok",
        "run_id": run_id,
        "strategy": report.strategy,
        "signal_threshold": report.signal_threshold,
        "candle_count": report.candle_count,
        "stats": asdict(report.stats),
        "trades": [asdict(t) for t in report.trades],
    }


@router.post("/backtest/compare")
async def post_backtest_compare(body: dict):
    """Backtest both strategies on the same candles and rank them."""
    errors: list[str] = []
    candles = _parse_candles(body, errors)
    settings = _parse_settings(body, errors)
    threshold = _parse_threshold(body, errors)
    if errors:
        return {"status": "error", "errors": errors}

    try:
        ranking = compare_strategies(candles, threshold, settings)
    except ValueError as exc:
        return {"status": "error", "errors": [str(exc)]}

    return {
        "status": "ok",
        "best": ranking[0].strategy,
        "ranking": [asdict(c) for c in ranking],
    }


@router.get("/backtests")
async def get_backtests(
    limit: int = Query(default=10, ge=1, le=100),
    strategy: Optional[str] = Query(default=None),
):
    """Return recent stored backtest runs."""
    if _backtest_repo is None:
        return {"runs": []}
    return {"runs": _backtest_repo.get_runs(limit=limit, strategy=strategy)}


@router.get("/backtests/{run_id}/trades")
async def get_backtest_trades(run_id: int):
    """Return the trade ledger of one stored run."""
    if _backtest_repo is None:
        return {"status": "error", "errors": ["No backtest store configured"]}
    run = _backtest_repo.get_run(run_id)
    if run is None:
        return {"status": "error", "errors": [f"Unknown backtest run: {run_id}"]}
    return {"run": run, "trades": _backtest_repo.get_trades(run_id)}
