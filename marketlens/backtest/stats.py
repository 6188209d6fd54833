"""Backtest statistics — pure functions over a trade ledger."""

from typing import Optional

from marketlens.backtest.models import EXIT_REASONS, BacktestStats, TradeResult


def calculate_stats(results: list[TradeResult]) -> BacktestStats:
    """Summarise closed trades.

    ``win_rate`` is a fraction of all trades (partials count against it).
    ``profit_factor`` is gross positive P&L% over gross negative P&L%, or
    ``None`` when nothing lost money.  ``signal_edge`` is the average entry
    signal of wins minus that of losses; a positive edge means stronger
    signals produced better trades.
    """
    exit_reasons = {reason: 0 for reason in EXIT_REASONS}
    if not results:
        return BacktestStats(
            total_trades=0,
            wins=0,
            losses=0,
            partials=0,
            win_rate=0.0,
            profit_factor=None,
            total_pnl_pct=0.0,
            avg_pnl_pct=0.0,
            avg_win_pct=0.0,
            avg_loss_pct=0.0,
            max_drawdown_pct=0.0,
            exit_reasons=exit_reasons,
            avg_signal_win=None,
            avg_signal_loss=None,
            avg_signal_partial=None,
            signal_edge=None,
        )

    for r in results:
        exit_reasons[r.exit_reason] += 1

    wins = [r for r in results if r.outcome == "win"]
    losses = [r for r in results if r.outcome == "loss"]
    partials = [r for r in results if r.outcome == "partial"]

    pnls = [r.pnl_percent for r in results]
    total = len(pnls)
    gross_profit = sum(p for p in pnls if p > 0)
    gross_loss = abs(sum(p for p in pnls if p < 0))
    profit_factor: Optional[float] = (
        gross_profit / gross_loss if gross_loss > 0 else None
    )

    avg_signal_win = _mean([r.setup.signal_strength for r in wins])
    avg_signal_loss = _mean([r.setup.signal_strength for r in losses])
    signal_edge: Optional[float] = None
    if avg_signal_win is not None and avg_signal_loss is not None:
        signal_edge = round(avg_signal_win - avg_signal_loss, 2)

    return BacktestStats(
        total_trades=total,
        wins=len(wins),
        losses=len(losses),
        partials=len(partials),
        win_rate=round(len(wins) / total, 4),
        profit_factor=round(profit_factor, 4) if profit_factor is not None else None,
        total_pnl_pct=round(sum(pnls), 4),
        avg_pnl_pct=round(sum(pnls) / total, 4),
        avg_win_pct=round(_mean([r.pnl_percent for r in wins]) or 0.0, 4),
        avg_loss_pct=round(_mean([r.pnl_percent for r in losses]) or 0.0, 4),
        max_drawdown_pct=round(_max_drawdown(pnls), 4),
        exit_reasons=exit_reasons,
        avg_signal_win=avg_signal_win,
        avg_signal_loss=avg_signal_loss,
        avg_signal_partial=_mean([r.setup.signal_strength for r in partials]),
        signal_edge=signal_edge,
    )


# ── Helpers ──────────────────────────────────────────────────────────────


def _mean(values: list[float]) -> Optional[float]:
    if not values:
        return None
    return round(sum(values) / len(values), 2)


def _max_drawdown(pnls: list[float]) -> float:
    """Maximum drawdown from the cumulative P&L% curve.

    Returns the largest peak-to-trough decline as a positive number.
    """
    cumulative = 0.0
    peak = 0.0
    max_dd = 0.0
    for p in pnls:
        cumulative += p
        if cumulative > peak:
            peak = cumulative
        dd = peak - cumulative
        if dd > max_dd:
            max_dd = dd
    return max_dd
