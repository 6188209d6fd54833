"""Backtest run repository — persists backtest summaries and ledgers to SQLite."""

from typing import Optional

from marketlens.backtest.models import BacktestReport
from marketlens.repos.db import get_connection


class BacktestRepo:
    """Data access layer for the ``backtest_runs`` and ``backtest_trades`` tables.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def insert_run(self, report: BacktestReport, label: Optional[str] = None) -> int:
        """Persist a backtest report with its full trade ledger.  Returns the run id."""
        stats = report.stats
        start_date = report.trades[0].setup.timestamp if report.trades else None
        end_date = report.trades[-1].setup.timestamp if report.trades else None

        conn = get_connection(self._db_path)
        try:
            cur = conn.execute(
                """
                INSERT INTO backtest_runs
                    (label, strategy, signal_threshold, candle_count,
                     start_date, end_date, total_trades, wins, losses,
                     partials, win_rate, profit_factor, total_pnl_pct,
                     avg_pnl_pct, max_drawdown_pct, signal_edge)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    label,
                    report.strategy,
                    report.signal_threshold,
                    report.candle_count,
                    start_date,
                    end_date,
                    stats.total_trades,
                    stats.wins,
                    stats.losses,
                    stats.partials,
                    stats.win_rate,
                    stats.profit_factor,
                    stats.total_pnl_pct,
                    stats.avg_pnl_pct,
                    stats.max_drawdown_pct,
                    stats.signal_edge,
                ),
            )
            run_id = cur.lastrowid
            conn.executemany(
                """
                INSERT INTO backtest_trades
                    (run_id, seq, entry_time, entry_index, direction,
                     entry_price, signal_strength, stop_loss, take_profit_1,
                     take_profit_2, take_profit_3, exit_price, exit_reason,
                     outcome, pnl_pct, duration)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        run_id,
                        seq,
                        t.setup.timestamp,
                        t.setup.index,
                        t.setup.direction,
                        t.setup.entry,
                        t.setup.signal_strength,
                        t.setup.stop_loss,
                        t.setup.take_profit_1,
                        t.setup.take_profit_2,
                        t.setup.take_profit_3,
                        t.exit_price,
                        t.exit_reason,
                        t.outcome,
                        round(t.pnl_percent, 4),
                        t.duration,
                    )
                    for seq, t in enumerate(report.trades, start=1)
                ],
            )
            conn.commit()
            return run_id
        finally:
            conn.close()

    def get_runs(self, limit: int = 10, strategy: Optional[str] = None) -> list[dict]:
        """Return recent backtest run summaries, newest first."""
        conn = get_connection(self._db_path)
        try:
            if strategy:
                rows = conn.execute(
                    "SELECT * FROM backtest_runs WHERE strategy = ? "
                    "ORDER BY id DESC LIMIT ?",
                    (strategy, limit),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM backtest_runs ORDER BY id DESC LIMIT ?",
                    (limit,),
                ).fetchall()
            return [dict(r) for r in rows]
        finally:
            conn.close()

    def get_run(self, run_id: int) -> Optional[dict]:
        conn = get_connection(self._db_path)
        try:
            row = conn.execute(
                "SELECT * FROM backtest_runs WHERE id = ?", (run_id,),
            ).fetchone()
            return dict(row) if row is not None else None
        finally:
            conn.close()

    def get_trades(self, run_id: int) -> list[dict]:
        """Return the trade ledger of one run in entry order."""
        conn = get_connection(self._db_path)
        try:
            rows = conn.execute(
                "SELECT * FROM backtest_trades WHERE run_id = ? ORDER BY seq",
                (run_id,),
            ).fetchall()
            return [dict(r) for r in rows]
        finally:
            conn.close()
