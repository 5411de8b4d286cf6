"""
Portfolio persistence.

A portfolio is saved as five CSV tables inside a directory:

- `capital.csv`, `assets.csv` – ledger rows (``timestamp, value``)
- `executed_trades.csv` – ``id, side, price, quantity, cost, point``
- `failed_trades.csv` – ``side, price, quantity, cost, reason, point``
- `open_positions.csv` – ``timestamp, id, quantity``

Decimals are written with `str(Decimal)` and read back through
`Decimal(str)`, timestamps with millisecond precision, so a save
followed by a load reproduces the portfolio exactly.  Each table is
written to a temporary file and moved into place, so a failed save
never leaves a half-written table behind.

The directory itself is managed by the caller.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation as DecimalInvalidOperation
from pathlib import Path
from typing import Dict, List, Union
import os

import pandas as pd

from ..errors import InvalidOperation, PersistenceError
from ..execution.models import ExecutedTrade, FailedTrade, OpenPosition, ReasonCode, Side
from ..portfolio.portfolio import Portfolio
from ..portfolio.positions import PositionBook
from ..portfolio.tracked import TrackedLedger
from .timeutils import format_point, parse_point


EXECUTED_TRADES_FILENAME = "executed_trades.csv"
FAILED_TRADES_FILENAME = "failed_trades.csv"
OPEN_POSITIONS_FILENAME = "open_positions.csv"
CAPITAL_FILENAME = "capital.csv"
ASSETS_FILENAME = "assets.csv"

LEDGER_COLUMNS = ["timestamp", "value"]
EXECUTED_COLUMNS = ["id", "side", "price", "quantity", "cost", "point"]
FAILED_COLUMNS = ["side", "price", "quantity", "cost", "reason", "point"]
OPEN_POSITION_COLUMNS = ["timestamp", "id", "quantity"]


def _write_table(path: Path, rows: List[Dict[str, str]], columns: List[str]) -> None:
    df = pd.DataFrame(rows, columns=columns, dtype=object)
    tmp_path = path.with_name(path.name + ".tmp")
    try:
        df.to_csv(tmp_path, index=False)
        os.replace(tmp_path, path)
    except OSError as exc:
        if tmp_path.exists():
            tmp_path.unlink()
        raise PersistenceError(f"could not write {path}: {exc}") from exc


def _read_table(path: Path, columns: List[str]) -> pd.DataFrame:
    if not path.exists():
        raise PersistenceError(f"missing table {path}")
    try:
        df = pd.read_csv(path, dtype=str, keep_default_na=False)
    except (OSError, ValueError) as exc:
        raise PersistenceError(f"could not read {path}: {exc}") from exc
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise PersistenceError(f"{path} is missing columns {missing}")
    return df


def _ledger_rows(ledger: TrackedLedger) -> List[Dict[str, str]]:
    frame = ledger.to_frame()
    return [
        {"timestamp": "" if pd.isna(ts) else format_point(ts), "value": str(value)}
        for ts, value in zip(frame["timestamp"], frame["value"])
    ]


def save_portfolio(portfolio: Portfolio, path: Union[str, Path]) -> None:
    """Write `portfolio` into the directory `path`.

    Raises
    ------
    PersistenceError
        If `path` is not an existing directory or a table cannot be
        written.
    """
    directory = Path(path)
    if not directory.is_dir():
        raise PersistenceError(f"path must be a directory: {directory}")

    executed = [
        {
            "id": t.order_id,
            "side": str(int(t.side)),
            "price": str(t.price),
            "quantity": str(t.quantity),
            "cost": str(t.cost),
            "point": format_point(t.point),
        }
        for t in portfolio.executed_trades
    ]
    failed = [
        {
            "side": str(int(t.side)),
            "price": str(t.price),
            "quantity": str(t.quantity),
            "cost": str(t.cost),
            "reason": str(int(t.reason)),
            "point": format_point(t.point),
        }
        for t in portfolio.failed_trades
    ]
    open_positions = [
        {
            "timestamp": format_point(p.entry_time),
            "id": p.order_id,
            "quantity": str(p.quantity),
        }
        for p in portfolio.get_open_positions()
    ]

    _write_table(directory / EXECUTED_TRADES_FILENAME, executed, EXECUTED_COLUMNS)
    _write_table(directory / FAILED_TRADES_FILENAME, failed, FAILED_COLUMNS)
    _write_table(directory / OPEN_POSITIONS_FILENAME, open_positions, OPEN_POSITION_COLUMNS)
    _write_table(directory / CAPITAL_FILENAME, _ledger_rows(portfolio.capital_ts), LEDGER_COLUMNS)
    _write_table(directory / ASSETS_FILENAME, _ledger_rows(portfolio.assets_ts), LEDGER_COLUMNS)


def load_portfolio(path: Union[str, Path]) -> Portfolio:
    """Rebuild a portfolio saved by `save_portfolio`.

    Open positions take their entry price from the executed buy with
    the same order id.

    Raises
    ------
    PersistenceError
        If `path` is not a directory, a table is missing or malformed,
        or an open position has no matching executed buy.
    """
    directory = Path(path)
    if not directory.is_dir():
        raise PersistenceError(f"path must be a directory: {directory}")

    try:
        executed_df = _read_table(directory / EXECUTED_TRADES_FILENAME, EXECUTED_COLUMNS)
        executed = [
            ExecutedTrade(
                order_id=row.id,
                side=Side(int(row.side)),
                price=Decimal(row.price),
                quantity=Decimal(row.quantity),
                cost=Decimal(row.cost),
                point=parse_point(row.point),
            )
            for row in executed_df.itertuples(index=False)
        ]

        failed_df = _read_table(directory / FAILED_TRADES_FILENAME, FAILED_COLUMNS)
        failed = [
            FailedTrade(
                side=Side(int(row.side)),
                price=Decimal(row.price),
                quantity=Decimal(row.quantity),
                cost=Decimal(row.cost),
                reason=ReasonCode(int(row.reason)),
                point=parse_point(row.point),
            )
            for row in failed_df.itertuples(index=False)
        ]

        buys = {t.order_id: t for t in executed if t.side == Side.BUY}
        positions_df = _read_table(directory / OPEN_POSITIONS_FILENAME, OPEN_POSITION_COLUMNS)
        positions: List[OpenPosition] = []
        for row in positions_df.itertuples(index=False):
            buy = buys.get(row.id)
            if buy is None:
                raise PersistenceError(f"open position {row.id!r} has no executed buy")
            positions.append(
                OpenPosition(
                    entry_price=buy.price,
                    quantity=Decimal(row.quantity),
                    entry_time=parse_point(row.timestamp),
                    order_id=row.id,
                )
            )

        capital_ts = _load_ledger(directory / CAPITAL_FILENAME)
        assets_ts = _load_ledger(directory / ASSETS_FILENAME)
    except (DecimalInvalidOperation, ValueError) as exc:
        raise PersistenceError(f"could not parse portfolio in {directory}: {exc}") from exc

    try:
        book = PositionBook(positions)
    except InvalidOperation as exc:
        raise PersistenceError(f"open positions in {directory} are inconsistent: {exc}") from exc

    return Portfolio(
        capital_ts=capital_ts,
        assets_ts=assets_ts,
        positions=book,
        executed_trades=executed,
        failed_trades=failed,
    )


def _load_ledger(path: Path) -> TrackedLedger:
    df = _read_table(path, LEDGER_COLUMNS)
    if df.empty:
        raise PersistenceError(f"ledger {path} has no entries")
    frame = pd.DataFrame(
        {
            "timestamp": [parse_point(ts) if ts else None for ts in df["timestamp"]],
            "value": [Decimal(value) for value in df["value"]],
        },
        columns=LEDGER_COLUMNS,
    )
    return TrackedLedger.from_frame(frame)
