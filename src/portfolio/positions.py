"""
Open position book.

The book holds every unliquidated buy lot of a portfolio, keyed by the
order id of the buy that opened it, together with cached aggregates
(total open quantity, notional value and average entry price) that
are recomputed after every change.

Closing a quantity walks the positions from the most profitable at the
close price to the least profitable; positions with the same profit
are closed in the order they were opened.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from ..errors import InvalidOperation
from ..execution.models import ZERO, ExecutedTrade, OpenPosition, Side


class PositionBook:
    """Ordered collection of open positions with aggregate metrics."""

    def __init__(self, positions: Optional[Iterable[OpenPosition]] = None) -> None:
        # insertion ordered; dict order is the FIFO tie-break
        self._positions: Dict[str, OpenPosition] = {}
        self._total_quantity = ZERO
        self._total_notional = ZERO
        self._average_entry_price = ZERO
        for position in positions or []:
            if position.order_id in self._positions:
                raise InvalidOperation(f"duplicate open position {position.order_id!r}")
            self._positions[position.order_id] = position
        self._recompute()

    def _recompute(self) -> None:
        quantity = ZERO
        notional = ZERO
        for position in self._positions.values():
            quantity += position.quantity
            notional += position.quantity * position.entry_price
        self._total_quantity = quantity
        self._total_notional = notional
        self._average_entry_price = notional / quantity if quantity else ZERO

    @property
    def total_open_quantity(self) -> Decimal:
        return self._total_quantity

    @property
    def total_position_notional_value(self) -> Decimal:
        return self._total_notional

    # alias used by the risk and reporting code
    total_position_value = total_position_notional_value

    @property
    def average_entry_price(self) -> Decimal:
        return self._average_entry_price

    def __len__(self) -> int:
        return len(self._positions)

    def __iter__(self) -> Iterator[OpenPosition]:
        return iter(list(self._positions.values()))

    def __contains__(self, order_id: object) -> bool:
        return order_id in self._positions

    def get(self, order_id: str) -> Optional[OpenPosition]:
        return self._positions.get(order_id)

    def positions(self) -> List[OpenPosition]:
        """Open positions in the order they were opened."""
        return list(self._positions.values())

    def add_open_position(self, trade: ExecutedTrade) -> OpenPosition:
        """Open a position from a filled buy.

        Raises
        ------
        InvalidOperation
            If `trade` is a sell, or a position with the same order id
            is already open.
        """
        if trade.side != Side.BUY:
            raise InvalidOperation("only buy trades can open a position")
        if trade.order_id in self._positions:
            raise InvalidOperation(f"position {trade.order_id!r} is already open")
        position = OpenPosition(
            entry_price=trade.price,
            quantity=trade.quantity,
            entry_time=trade.point,
            order_id=trade.order_id,
        )
        self._positions[trade.order_id] = position
        self._recompute()
        return position

    def _plan_close(self, quantity: Decimal, close_price: Decimal) -> Tuple[List[str], Optional[Tuple[str, Decimal]]]:
        """Work out which positions a close would touch.

        Returns the ids that would be fully closed, and the id and new
        quantity of the position that would be partially reduced (if
        any).
        """
        # sorted() is stable, so equal profits keep insertion order
        ranked = sorted(
            self._positions.values(),
            key=lambda p: close_price - p.entry_price,
            reverse=True,
        )
        closed: List[str] = []
        partial: Optional[Tuple[str, Decimal]] = None
        remaining = quantity
        for position in ranked:
            if remaining <= ZERO:
                break
            if position.quantity <= remaining:
                closed.append(position.order_id)
                remaining -= position.quantity
            else:
                partial = (position.order_id, position.quantity - remaining)
                remaining = ZERO
        return closed, partial

    def preview_close(self, quantity: Decimal, close_price: Decimal) -> List[str]:
        """Ids `close_positions` would fully close, without closing them."""
        closed, _ = self._plan_close(quantity, close_price)
        return closed

    def close_positions(self, quantity: Decimal, close_price: Decimal) -> List[str]:
        """Close `quantity` across open positions, most profitable first.

        Parameters
        ----------
        quantity : Decimal
            Total quantity to close.  Zero is a no-op.
        close_price : Decimal
            Price used to rank positions by unrealized profit.

        Returns
        -------
        list of str
            Order ids of the positions that were fully closed.  A
            partially reduced position is not listed.
        """
        if quantity <= ZERO or not self._positions:
            return []
        closed, partial = self._plan_close(quantity, close_price)
        for order_id in closed:
            del self._positions[order_id]
        if partial is not None:
            order_id, left = partial
            self._positions[order_id].quantity = left
        self._recompute()
        return closed

    def close_order_ids(self, order_ids: Iterable[str]) -> List[str]:
        """Fully close the named positions.

        Raises
        ------
        InvalidOperation
            If any id is not an open position.  Nothing is closed in
            that case.
        """
        ids = list(dict.fromkeys(order_ids))
        missing = [order_id for order_id in ids if order_id not in self._positions]
        if missing:
            raise InvalidOperation(f"positions not open: {missing}")
        for order_id in ids:
            del self._positions[order_id]
        self._recompute()
        return ids

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PositionBook):
            return NotImplemented
        return self.positions() == other.positions()

    def __repr__(self) -> str:
        return (
            f"PositionBook(positions={len(self._positions)}, "
            f"quantity={self._total_quantity}, average_entry_price={self._average_entry_price})"
        )
