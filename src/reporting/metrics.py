"""
Performance metrics calculations.

This module provides helpers to compute summary statistics for a
finished backtest from its portfolio and equity curve.  Values are
returned as plain floats and ints so they can be written to JSON.
"""

from __future__ import annotations

from typing import List
import math

from ..execution.models import EquityPoint, Side
from ..portfolio.portfolio import Portfolio


def compute_metrics(portfolio: Portfolio, equity_curve: List[EquityPoint]) -> dict:
    """Compute a set of summary statistics for the backtest.

    Parameters
    ----------
    portfolio : Portfolio
        The portfolio at the end of the run.
    equity_curve : list of EquityPoint
        Capital plus marked-to-close assets after every candle.

    Returns
    -------
    dict
        Dictionary of performance metrics.
    """
    trades = portfolio.executed_trades
    buys = [t for t in trades if t.side == Side.BUY]
    sells = [t for t in trades if t.side == Side.SELL]

    summary = {
        'total_return': 0.0,
        'max_drawdown': 0.0,
        'sharpe': 0.0,
        'num_trades': len(trades),
        'num_buys': len(buys),
        'num_sells': len(sells),
        'num_failed': len(portfolio.failed_trades),
        'open_positions': len(portfolio.positions),
        'open_quantity': float(portfolio.total_open_quantity),
        'final_capital': float(portfolio.get_capital()),
        'final_assets': float(portfolio.get_assets()),
        'final_equity': 0.0,
    }
    if not equity_curve:
        return summary

    equities = [float(point.equity) for point in equity_curve]
    starting_equity = equities[0]
    ending_equity = equities[-1]
    summary['final_equity'] = ending_equity
    summary['total_return'] = (ending_equity - starting_equity) / starting_equity if starting_equity else 0.0

    # Compute drawdown
    max_equity = starting_equity
    max_drawdown = 0.0
    for equity in equities:
        if equity > max_equity:
            max_equity = equity
        drawdown = (max_equity - equity) / max_equity if max_equity else 0.0
        if drawdown > max_drawdown:
            max_drawdown = drawdown
    summary['max_drawdown'] = max_drawdown

    # Sharpe ratio of per-candle equity returns
    returns: List[float] = []
    for previous, current in zip(equities, equities[1:]):
        if previous != 0:
            returns.append((current - previous) / previous)
    if len(returns) > 1:
        mean_ret = sum(returns) / len(returns)
        variance = sum((r - mean_ret) ** 2 for r in returns) / (len(returns) - 1)
        std_dev = math.sqrt(variance)
        summary['sharpe'] = mean_ret / std_dev if std_dev > 0 else 0.0

    return summary
