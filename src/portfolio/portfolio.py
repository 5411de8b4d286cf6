"""
Portfolio ledger.

A `Portfolio` manages everything owned while trading a single asset:
the capital and asset ledgers, the open positions, and the logs of
executed and failed trades.  Trades are the only way the portfolio
changes during a backtest; `add_executed_trade` updates both ledgers
and the position book from one fill.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple
import logging
import pandas as pd

from ..errors import InvalidOperation
from ..execution.models import ExecutedTrade, FailedTrade, OpenPosition, Side, as_money
from .positions import PositionBook
from .tracked import TrackedLedger


logger = logging.getLogger(__name__)


class Portfolio:
    """Capital, assets, open positions and trade history for one asset."""

    def __init__(
        self,
        capital_ts: TrackedLedger,
        assets_ts: TrackedLedger,
        positions: Optional[PositionBook] = None,
        executed_trades: Optional[Iterable[ExecutedTrade]] = None,
        failed_trades: Optional[Iterable[FailedTrade]] = None,
    ) -> None:
        self.capital_ts = capital_ts
        self.assets_ts = assets_ts
        self.positions = positions if positions is not None else PositionBook()
        self._executed_trades: List[ExecutedTrade] = list(executed_trades or [])
        self._failed_trades: List[FailedTrade] = list(failed_trades or [])

    @classmethod
    def new(
        cls,
        capital: Decimal,
        assets: Decimal,
        point: Optional[pd.Timestamp] = None,
    ) -> "Portfolio":
        """Create an empty portfolio seeded with starting capital and assets."""
        return cls(
            TrackedLedger.with_initial(as_money(capital), point),
            TrackedLedger.with_initial(as_money(assets), point),
        )

    # capital

    def increase_capital(self, amount: Decimal, point: Optional[pd.Timestamp] = None) -> None:
        self.capital_ts.increment(amount, point)

    def decrease_capital(self, amount: Decimal, point: Optional[pd.Timestamp] = None) -> None:
        self.capital_ts.decrement(amount, point)

    def get_capital(self) -> Decimal:
        return self.capital_ts.get_last_value()

    @property
    def available_capital(self) -> Decimal:
        return self.capital_ts.get_last_value()

    # assets

    def increase_assets(self, amount: Decimal, point: Optional[pd.Timestamp] = None) -> None:
        self.assets_ts.increment(amount, point)

    def decrease_assets(self, amount: Decimal, point: Optional[pd.Timestamp] = None) -> None:
        self.assets_ts.decrement(amount, point)

    def get_assets(self) -> Decimal:
        return self.assets_ts.get_last_value()

    # positions

    def get_open_positions(self) -> List[OpenPosition]:
        return self.positions.positions()

    @property
    def total_position_notional_value(self) -> Decimal:
        return self.positions.total_position_notional_value

    @property
    def average_entry_price(self) -> Decimal:
        return self.positions.average_entry_price

    @property
    def total_open_quantity(self) -> Decimal:
        return self.positions.total_open_quantity

    # trades

    @property
    def executed_trades(self) -> Tuple[ExecutedTrade, ...]:
        return tuple(self._executed_trades)

    @property
    def failed_trades(self) -> Tuple[FailedTrade, ...]:
        return tuple(self._failed_trades)

    def add_failed_trade(self, trade: FailedTrade) -> None:
        self._failed_trades.append(trade)

    def add_executed_trade(
        self,
        trade: ExecutedTrade,
        close_order_ids: Optional[Sequence[str]] = None,
    ) -> List[str]:
        """Apply a filled trade.

        A buy spends its cost from capital, adds its quantity to assets
        and opens a position.  A sell returns its cost to capital,
        removes its quantity from assets and closes positions: the ones
        named in `close_order_ids` when given, otherwise the trade's
        quantity through the profit-ranked walk.

        Returns
        -------
        list of str
            Order ids of positions fully closed by a sell (empty for buys).

        Raises
        ------
        InvalidOperation
            If a ranked sell exceeds the open quantity, or a targeted
            sell names a position that is not open.  The portfolio is
            left unchanged.
        """
        closed: List[str] = []
        if trade.side == Side.BUY:
            self.positions.add_open_position(trade)
            self.decrease_capital(trade.cost, trade.point)
            self.increase_assets(trade.quantity, trade.point)
        else:
            if close_order_ids is not None:
                closed = self.positions.close_order_ids(close_order_ids)
            else:
                if trade.quantity > self.positions.total_open_quantity:
                    raise InvalidOperation(
                        f"cannot sell {trade.quantity}, only {self.positions.total_open_quantity} open"
                    )
                closed = self.positions.close_positions(trade.quantity, trade.price)
            self.increase_capital(trade.cost, trade.point)
            self.decrease_assets(trade.quantity, trade.point)
        self._executed_trades.append(trade)
        logger.debug(
            "Applied %s %s @ %s (capital=%s, assets=%s, open=%d)",
            trade.side.name,
            trade.quantity,
            trade.price,
            self.get_capital(),
            self.get_assets(),
            len(self.positions),
        )
        return closed

    def equity(self, price: Decimal) -> Decimal:
        """Capital plus assets valued at `price`."""
        return self.get_capital() + self.get_assets() * price

    def __repr__(self) -> str:
        return (
            f"Portfolio(capital={self.get_capital()}, assets={self.get_assets()}, "
            f"open_positions={len(self.positions)}, executed={len(self._executed_trades)})"
        )
