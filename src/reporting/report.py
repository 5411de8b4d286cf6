"""
Report generation utilities.

This module writes the artefacts of a finished backtest into one
directory: the executed and failed trades, the equity curve, a JSON
summary of the performance metrics and a chart of equity against
capital.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Union
import json
import logging
import pandas as pd
import matplotlib

# Use non‑interactive backend for environments without display
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from ..execution.models import EquityPoint
from ..portfolio.portfolio import Portfolio
from .metrics import compute_metrics


logger = logging.getLogger(__name__)

TRADE_COLUMNS = ['id', 'timestamp', 'side', 'price', 'quantity', 'cost']
FAILED_COLUMNS = ['timestamp', 'side', 'price', 'quantity', 'cost', 'reason']
EQUITY_COLUMNS = ['timestamp', 'price', 'capital', 'assets', 'equity']


def trades_frame(portfolio: Portfolio) -> pd.DataFrame:
    """Executed trades, one row per fill, decimals kept as text."""
    return pd.DataFrame(
        [
            [t.order_id, t.point.isoformat(), t.side.name.lower(), str(t.price), str(t.quantity), str(t.cost)]
            for t in portfolio.executed_trades
        ],
        columns=TRADE_COLUMNS,
    )


def failed_trades_frame(portfolio: Portfolio) -> pd.DataFrame:
    return pd.DataFrame(
        [
            [t.point.isoformat(), t.side.name.lower(), str(t.price), str(t.quantity), str(t.cost), t.reason.name.lower()]
            for t in portfolio.failed_trades
        ],
        columns=FAILED_COLUMNS,
    )


def equity_frame(equity_curve: List[EquityPoint]) -> pd.DataFrame:
    """Equity curve as floats indexed by candle time."""
    df = pd.DataFrame(
        [
            [
                pt.timestamp,
                float(pt.price) if pt.price is not None else float('nan'),
                float(pt.capital),
                float(pt.assets),
                float(pt.equity),
            ]
            for pt in equity_curve
        ],
        columns=EQUITY_COLUMNS,
    )
    return df.set_index('timestamp')


def plot_equity_curve(df_eq: pd.DataFrame, path: Union[str, Path]) -> None:
    """Save a line chart of equity and the cash part of it."""
    fig, ax = plt.subplots(figsize=(10, 4))
    if not df_eq.empty:
        ax.plot(df_eq.index, df_eq['equity'], linewidth=1.5, label='Equity')
        ax.plot(df_eq.index, df_eq['capital'], linewidth=1.0, linestyle='--', label='Capital')
        ax.set_title('Equity Curve')
        ax.set_xlabel('Time')
        ax.set_ylabel('Value')
        ax.legend(loc='best')
        fig.autofmt_xdate()
    fig.tight_layout()
    fig.savefig(path)
    plt.close(fig)


def generate_backtest_report(
    portfolio: Portfolio,
    equity_curve: List[EquityPoint],
    out_dir: Union[str, Path] = "results",
) -> dict:
    """Generate report files for a backtest run.

    Creates the output directory if it does not exist and writes:

    - `trades.csv` – every executed trade
    - `failed_trades.csv` – trades that were attempted but not filled
    - `equity_curve.csv` – price, capital, assets and equity per candle
    - `summary.json` – performance metrics
    - `equity_curve.png` – equity and capital over time

    Returns the metrics written to `summary.json`.
    """
    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)

    trades_frame(portfolio).to_csv(out / 'trades.csv', index=False)
    failed_trades_frame(portfolio).to_csv(out / 'failed_trades.csv', index=False)

    df_eq = equity_frame(equity_curve)
    df_eq.to_csv(out / 'equity_curve.csv', index_label='timestamp')

    metrics = compute_metrics(portfolio, equity_curve)
    with open(out / 'summary.json', 'w', encoding='utf-8') as fh:
        json.dump(metrics, fh, indent=2, ensure_ascii=False)

    plot_equity_curve(df_eq, out / 'equity_curve.png')
    logger.info("Report written to %s", out)
    return metrics
