"""
Human-readable snapshot output for the terminal.

Unknown values print as ``n/a``, never as zero.
"""

from __future__ import annotations

from pnl_core.contracts import ClosedTrade, WindowStats
from snapshot.service import Snapshot


def _num(value: float | None, fmt: str = ",.2f", suffix: str = "") -> str:
    if value is None:
        return "n/a"
    return f"{value:{fmt}}{suffix}"


def _usd(value: float | None) -> str:
    if value is None:
        return "n/a"
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"


def format_window(title: str, stats: WindowStats) -> str:
    lines = [
        f"--- {title} ---",
        f"Trades       : {stats.count}  (W {stats.wins} / L {stats.losses})",
        f"Win rate     : {_num(stats.win_rate, '.1f', '%')}",
        f"Avg win      : {_num(stats.avg_win_bps, '.1f', ' bps')}",
        f"Avg loss     : {_num(stats.avg_loss_bps, '.1f', ' bps')}",
        f"Net realized : {_usd(stats.net_pnl_usd)}",
        f"Fees paid    : {_usd(stats.fees_paid_usd)}",
    ]
    return "\n".join(lines)


def format_trade(t: ClosedTrade) -> str:
    return (
        f"  {t.closed_at.isoformat()}  {t.symbol}  qty {t.qty:.8f}  "
        f"{t.entry_price:,.2f} -> {t.exit_price:,.2f}  "
        f"pnl {_usd(t.pnl_usd)} ({_num(t.pnl_bps, '.1f', ' bps')})"
    )


def format_snapshot(snapshot: Snapshot, *, show_trades: int = 0) -> str:
    """Format a snapshot: header, all-time and 24h windows, position, equity, diagnostics."""
    req = snapshot.request
    pos = snapshot.position
    diag = snapshot.diagnostics
    lines = [
        f"=== PnL snapshot: {req.symbol} since {req.since.isoformat()} ===",
        f"Rows scanned : {snapshot.rows_scanned}  |  Fills used: {snapshot.fills_used}  |  Source: {diag.source_used}",
        "",
        format_window("All time", snapshot.all_time),
        "",
        format_window("Last 24h", snapshot.last_24h),
        "",
        "--- Open position ---",
        f"Base qty     : {pos.base_qty:.8f}",
        f"Cost basis   : {_usd(pos.cost_usd)}  (avg {_num(pos.avg_price)})",
        f"Spot         : {_num(pos.spot_price)}  [{diag.spot_source or 'none'}]",
        f"Unrealized   : {_usd(pos.unrealized_pnl_usd)}",
        "",
        "--- Equity (realized) ---",
        f"Running      : {_usd(snapshot.equity.running)}",
        f"Max drawdown : {snapshot.equity.max_drawdown_pct:.3f}%",
    ]

    if show_trades and snapshot.match.closed_trades:
        lines.append("")
        lines.append(f"--- Last {min(show_trades, len(snapshot.match.closed_trades))} closed trades ---")
        lines.extend(format_trade(t) for t in snapshot.match.closed_trades[-show_trades:])

    warnings = []
    if diag.dropped_records:
        warnings.append(f"Dropped {diag.dropped_records} malformed record(s): {diag.dropped_reasons}")
    if diag.oversold_qty:
        warnings.append(f"Oversold qty {diag.oversold_qty:.8f} (SELLs with no inventory)")
    if diag.exchange_error:
        warnings.append(f"Exchange unavailable (status {diag.exchange_error.get('status')}); ledger only")
    if diag.partial_failures:
        warnings.append(f"{len(diag.partial_failures)} exchange chunk(s) failed; partial reconciliation")
    if warnings:
        lines.append("")
        lines.append("--- Diagnostics ---")
        lines.extend(f"  ! {w}" for w in warnings)

    lines.append("===")
    return "\n".join(lines)
