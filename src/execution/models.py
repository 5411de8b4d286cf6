"""
Candle, trade, position and decision models.

These dataclasses are the values passed between the strategy, the risk
engine, the position manager and the portfolio.  Money and quantities
are `decimal.Decimal` so that ledgers do not drift by fractions of a
cent over thousands of ticks.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import IntEnum
from typing import Optional, Tuple, Union
import pandas as pd


ZERO = Decimal(0)


def as_money(value: Union[Decimal, float, int, str]) -> Decimal:
    """Convert a number to `Decimal` through its string form.

    Going through `str` keeps ``0.1`` as ``Decimal('0.1')`` instead of
    the binary expansion of the float.
    """
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class Signal(IntEnum):
    """Indicator output."""
    SELL = -1
    HOLD = 0
    BUY = 1


class Side(IntEnum):
    """Direction of a trade."""
    SELL = -1
    BUY = 1


class ReasonCode(IntEnum):
    """Why a trade was rejected or never filled."""
    UNKNOWN = 0
    NOT_PROFITABLE = 1
    MARKET_REJECTION = 2
    POST_ERROR = 3
    PARSE_ERROR = 4
    INSUFFICIENT_FUNDS = 5


@dataclass(frozen=True)
class Candle:
    """One OHLCV bar."""
    time: pd.Timestamp
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal = ZERO


@dataclass(frozen=True)
class ExecutedTrade:
    """A trade that was filled."""
    order_id: str
    side: Side
    price: Decimal
    quantity: Decimal
    cost: Decimal
    point: pd.Timestamp

    @classmethod
    def create(
        cls,
        order_id: str,
        side: Side,
        price: Decimal,
        quantity: Decimal,
        point: pd.Timestamp,
    ) -> "ExecutedTrade":
        """Build a trade whose cost is its notional value."""
        return cls(order_id, side, price, quantity, price * quantity, point)


@dataclass(frozen=True)
class FailedTrade:
    """A trade that was attempted but not filled."""
    side: Side
    price: Decimal
    quantity: Decimal
    cost: Decimal
    reason: ReasonCode
    point: pd.Timestamp

    @classmethod
    def create(
        cls,
        reason: ReasonCode,
        side: Side,
        price: Decimal,
        quantity: Decimal,
        point: pd.Timestamp,
    ) -> "FailedTrade":
        return cls(side, price, quantity, price * quantity, reason, point)


@dataclass
class OpenPosition:
    """An unliquidated buy lot.  Quantity shrinks on partial closes."""
    entry_price: Decimal
    quantity: Decimal
    entry_time: pd.Timestamp
    order_id: str

    @property
    def notional_value(self) -> Decimal:
        return self.entry_price * self.quantity


@dataclass(frozen=True)
class ExecuteBuy:
    quantity: Decimal


@dataclass(frozen=True)
class ExecuteSell:
    """Sell `quantity` and close the positions behind `order_ids`.

    When `ranked` is true the portfolio closes `quantity` through the
    profit-ranked walk, and `order_ids` lists the positions that walk
    fully closes.  Otherwise exactly the listed positions are closed.
    """
    quantity: Decimal
    order_ids: Tuple[str, ...] = ()
    ranked: bool = True


@dataclass(frozen=True)
class DoNothing:
    """Leave the portfolio untouched this tick."""


TradeDecision = Union[ExecuteBuy, ExecuteSell, DoNothing]


@dataclass(frozen=True)
class EquityPoint:
    """Account equity (capital plus marked-to-close assets) at a timestamp."""
    timestamp: pd.Timestamp
    equity: Decimal
    capital: Decimal = ZERO
    assets: Decimal = ZERO
    price: Optional[Decimal] = None
