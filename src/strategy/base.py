"""
Strategy interface.

A strategy reads a window of candles and emits one `Signal`.  The
backtest only depends on this protocol, so indicator sets are chosen
when the strategy is built rather than inspected at run time.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable
import pandas as pd

from ..execution.models import Signal


@runtime_checkable
class Strategy(Protocol):
    """Anything that turns a candle window into a signal."""

    def process(self, window: pd.DataFrame) -> Signal:
        """Return the signal for the latest candle of `window`.

        `window` is indexed by time, oldest first, with float columns
        ``open, high, low, close, volume``.  Implementations raise
        `SignalError` when no signal can be produced.
        """
        ...
