"""MarketLens — application entry point.

Boots the FastAPI internal server and provides the CLI entry point for
serve, analyze, backtest and compare modes.
"""

import json
import logging
from dataclasses import asdict

from fastapi import FastAPI

from marketlens.api.routers import router

app = FastAPI(title="MarketLens Internal API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("marketlens")


@app.get("/health")
async def health():
    """Liveness probe."""
    return {"status": "ok"}


# ── CLI ──────────────────────────────────────────────────────────────────


def _print_json(payload: dict) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _run_cli() -> None:
    """Parse CLI arguments and dispatch to the appropriate mode."""
    import argparse

    from marketlens.config import load_config
    from marketlens.repos.db import init_db

    parser = argparse.ArgumentParser(description="MarketLens technical analysis engine")
    parser.add_argument(
        "--mode",
        choices=["serve", "analyze", "backtest", "compare"],
        default="serve",
        help="Run mode (default: serve)",
    )
    parser.add_argument("--input", help="Candle file (.csv, .parquet or .json)")
    parser.add_argument(
        "--strategy",
        choices=["momentum", "mean_reversion"],
        help="Backtest strategy (default: STRATEGY from env)",
    )
    parser.add_argument("--threshold", type=int, help="Signal threshold 0–100")
    parser.add_argument("--label", help="Label stored with the backtest run")
    parser.add_argument(
        "--no-persist",
        action="store_true",
        help="Do not store the backtest run in the database",
    )
    parser.add_argument("--env", help="Path to a .env file")
    args = parser.parse_args()

    config = load_config(args.env)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if args.mode == "serve":
        import uvicorn

        from marketlens.api.routers import configure_routers
        from marketlens.repos.backtest_repo import BacktestRepo

        init_db(config.db_path)
        configure_routers(
            backtest_repo=BacktestRepo(config.db_path),
            settings=config.analysis_settings(),
        )
        logger.info("Serving MarketLens API on port %d", config.api_port)
        uvicorn.run(app, host="0.0.0.0", port=config.api_port)
        return

    if not args.input:
        parser.error(f"--input is required for --mode {args.mode}")

    from marketlens.data.loader import load_candles

    candles = load_candles(args.input)
    settings = config.analysis_settings()

    if args.mode == "analyze":
        from marketlens.analysis.analyzer import analyze

        result = analyze(candles, settings)
        logger.info(
            "Recommendation: %s (momentum %d, mean reversion %d)",
            result.signals.recommendation,
            result.signals.momentum,
            result.signals.mean_reversion,
        )
        _print_json(asdict(result))

    elif args.mode == "backtest":
        from dataclasses import replace

        from marketlens.backtest.engine import BacktestEngine
        from marketlens.repos.backtest_repo import BacktestRepo

        bt_config = config.backtest_config(args.strategy)
        if args.threshold is not None:
            bt_config = replace(bt_config, signal_threshold=args.threshold)
        report = BacktestEngine(bt_config).run(candles)

        if not args.no_persist:
            init_db(config.db_path)
            run_id = BacktestRepo(config.db_path).insert_run(report, label=args.label)
            logger.info("Stored backtest run %d in %s", run_id, config.db_path)
        _print_json(asdict(report.stats))

    elif args.mode == "compare":
        from marketlens.backtest.engine import compare_strategies

        threshold = args.threshold if args.threshold is not None else config.signal_threshold
        ranking = compare_strategies(candles, threshold, settings)
        for place, entry in enumerate(ranking, start=1):
            logger.info(
                "#%d %s: score %.2f, %d trades, win rate %.1f%%",
                place, entry.strategy, entry.score,
                entry.stats.total_trades, entry.stats.win_rate * 100,
            )
        _print_json({"ranking": [asdict(c) for c in ranking]})


if __name__ == "__main__":
    _run_cli()
