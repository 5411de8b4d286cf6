"""
Append-only timestamped ledger.

`TrackedLedger` records a running total as a series of
``(timestamp, value)`` rows.  Every change appends a new row holding
the new total, so the history of capital and assets can be replayed
and persisted exactly.  Rows are never overwritten or deleted.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterator, List, Optional, Tuple
import pandas as pd

from ..errors import LedgerEmptyError
from ..execution.models import as_money
from ..utils.timeutils import resolve_point


Row = Tuple[Optional[pd.Timestamp], Decimal]


def _sort_key(item: Tuple[int, Row]) -> tuple:
    # ascending by timestamp with nulls last, insertion order breaks ties
    idx, (ts, _) = item
    if ts is None:
        return (1, 0, idx)
    return (0, ts.value if ts.tzinfo is None else ts.tz_convert("UTC").value, idx)


class TrackedLedger:
    """Track a value as it changes over time.

    The current value is the value of the row with the greatest
    timestamp.  Appending a row with an older timestamp is allowed but
    does not change the current value.
    """

    def __init__(self, rows: Optional[List[Row]] = None) -> None:
        self._rows: List[Row] = []
        self._last: Optional[int] = None
        for ts, value in rows or []:
            self._append(ts, as_money(value))

    @classmethod
    def with_initial(cls, amount: Decimal, timestamp: Optional[pd.Timestamp] = None) -> "TrackedLedger":
        """Create a ledger seeded with one entry."""
        ledger = cls()
        ledger._append(resolve_point(timestamp), as_money(amount))
        return ledger

    def _append(self, ts: Optional[pd.Timestamp], value: Decimal) -> None:
        self._rows.append((ts, value))
        idx = len(self._rows) - 1
        if self._last is None or _sort_key((idx, self._rows[idx])) > _sort_key((self._last, self._rows[self._last])):
            self._last = idx

    def get_last_value(self) -> Decimal:
        """Return the value of the most recent row."""
        if self._last is None:
            raise LedgerEmptyError("ledger has no entries")
        return self._rows[self._last][1]

    def increment(self, amount: Decimal, timestamp: Optional[pd.Timestamp] = None) -> None:
        """Append ``current + amount`` at `timestamp`."""
        self._append(resolve_point(timestamp), self.get_last_value() + as_money(amount))

    def decrement(self, amount: Decimal, timestamp: Optional[pd.Timestamp] = None) -> None:
        """Append ``current - amount`` at `timestamp`."""
        self._append(resolve_point(timestamp), self.get_last_value() - as_money(amount))

    @property
    def rows(self) -> List[Row]:
        return list(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[Row]:
        return iter(self._rows)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TrackedLedger):
            return NotImplemented
        return self._rows == other._rows

    def __repr__(self) -> str:
        if self._last is None:
            return "TrackedLedger(empty)"
        return f"TrackedLedger(last={self.get_last_value()}, rows={len(self._rows)})"

    def to_frame(self) -> pd.DataFrame:
        """Return the rows as a ``timestamp, value`` DataFrame in insertion order."""
        return pd.DataFrame(
            {
                "timestamp": [ts for ts, _ in self._rows],
                "value": [value for _, value in self._rows],
            },
            columns=["timestamp", "value"],
        )

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> "TrackedLedger":
        """Rebuild a ledger from a ``timestamp, value`` DataFrame."""
        rows = [
            (None if pd.isna(ts) else pd.Timestamp(ts), as_money(value))
            for ts, value in zip(df["timestamp"], df["value"])
        ]
        return cls(rows)
