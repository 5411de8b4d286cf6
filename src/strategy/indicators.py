"""
Reference indicators.

Two small indicators computed with pandas over the candle window the
backtest hands them.  Each reads only the rows it needs and returns
`Signal.HOLD` until the window is long enough.
"""

from __future__ import annotations

import pandas as pd

from ..errors import SignalError
from ..execution.models import Signal


def _require_columns(window: pd.DataFrame, columns: list, name: str) -> None:
    missing = [c for c in columns if c not in window.columns]
    if missing:
        raise SignalError(f"{name} needs columns {missing}")


class BollingerBands:
    """Mean-reversion signal from Bollinger Bands on the close.

    Buy when the latest close is below the lower band, sell when it is
    above the upper band, hold otherwise.

    Parameters
    ----------
    period : int
        Number of closes in the moving average.
    multiplier : float
        Width of the bands in standard deviations.
    """

    name = "bbands"

    def __init__(self, period: int = 20, multiplier: float = 2.0) -> None:
        if period < 2:
            raise ValueError("period must be at least 2")
        self.period = int(period)
        self.multiplier = float(multiplier)

    def bands(self, window: pd.DataFrame) -> pd.DataFrame:
        """Return the ``lower, middle, upper`` bands for every row."""
        close = window["close"].astype(float)
        middle = close.rolling(self.period).mean()
        # population deviation, as the usual Bollinger definition uses
        std = close.rolling(self.period).std(ddof=0)
        return pd.DataFrame(
            {
                "lower": middle - self.multiplier * std,
                "middle": middle,
                "upper": middle + self.multiplier * std,
            },
            index=window.index,
        )

    def process(self, window: pd.DataFrame) -> Signal:
        _require_columns(window, ["close"], self.name)
        if len(window) < self.period:
            return Signal.HOLD
        last = self.bands(window).iloc[-1]
        close = float(window["close"].iloc[-1])
        if close < last["lower"]:
            return Signal.BUY
        if close > last["upper"]:
            return Signal.SELL
        return Signal.HOLD


class VWAP:
    """Trend signal from the volume weighted average price.

    The VWAP is taken over the last `window` candles using the typical
    price ``(high + low + close) / 3``.  Buy when the close is above
    it, sell when below, hold when the window has no volume.
    """

    name = "vwap"

    def __init__(self, window: int = 5) -> None:
        if window < 1:
            raise ValueError("window must be at least 1")
        self.window = int(window)

    def value(self, window: pd.DataFrame) -> float:
        tail = window.iloc[-self.window:]
        typical = (tail["high"] + tail["low"] + tail["close"]) / 3.0
        volume = tail["volume"].astype(float)
        total_volume = volume.sum()
        if total_volume == 0:
            raise SignalError("vwap is undefined for a window without volume")
        return float((typical * volume).sum() / total_volume)

    def process(self, window: pd.DataFrame) -> Signal:
        _require_columns(window, ["high", "low", "close", "volume"], self.name)
        if len(window) < self.window:
            return Signal.HOLD
        if window["volume"].iloc[-self.window:].astype(float).sum() == 0:
            # no traded volume, e.g. a CSV loaded without a volume column
            return Signal.HOLD
        vwap = self.value(window)
        close = float(window["close"].iloc[-1])
        if close > vwap:
            return Signal.BUY
        if close < vwap:
            return Signal.SELL
        return Signal.HOLD
