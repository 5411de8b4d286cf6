"""
CSV candle loader.

This module provides a class to load historical OHLCV candles from CSV
files.  The expected schema for each CSV is:

```
time,open,high,low,close,volume
```

`volume` is optional and defaults to zero; additional columns are
ignored.  The `time` column may hold ISO-formatted timestamps or UNIX
epochs in seconds.  Naive timestamps are localised to the configured
timezone.

It also provides the alignment check a backtest needs between the
traded asset and its market benchmark, and the conversion of candle
rows into `Candle` values for the risk engine.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Union
import logging
import pandas as pd

from ..errors import AlignmentError
from ..execution.models import Candle, as_money
from ..utils.timeutils import to_timezone


logger = logging.getLogger(__name__)

CANDLE_COLUMNS = ["open", "high", "low", "close", "volume"]


def _parse_times(values: pd.Series) -> pd.DatetimeIndex:
    """ISO strings or UNIX epochs in seconds."""
    if pd.api.types.is_numeric_dtype(values):
        times = pd.to_datetime(values, unit="s", utc=True)
    else:
        times = pd.to_datetime(values, errors="raise")
    return pd.DatetimeIndex(times, name="time")


def ensure_time_index(df: pd.DataFrame) -> pd.DataFrame:
    """Return candles indexed by time.

    A frame already on a `DatetimeIndex` is returned unchanged.
    Otherwise its ``time`` (or ``timestamp``) column becomes the index.

    Raises
    ------
    ValueError
        If the frame has neither a `DatetimeIndex` nor a time column.
    """
    if isinstance(df.index, pd.DatetimeIndex):
        return df
    for column in ("time", "timestamp"):
        if column in df.columns:
            out = df.drop(columns=[column])
            out.index = _parse_times(df[column])
            return out
    raise ValueError("candle frame needs a DatetimeIndex or a 'time' column")


class CSVDataLoader:
    """Load OHLCV candles from CSV files for backtesting.

    Parameters
    ----------
    timezone : str
        IANA timezone name used to localise naive timestamps.
    """

    def __init__(self, timezone: str = "UTC") -> None:
        self.timezone = timezone

    def load(self, path: Union[str, Path]) -> pd.DataFrame:
        """Read one candle file.

        Returns
        -------
        pandas.DataFrame
            Candles indexed by a timezone-aware ``time`` index, sorted
            ascending, with float columns ``open, high, low, close,
            volume``.

        Raises
        ------
        FileNotFoundError
            If `path` does not exist.
        ValueError
            If required columns are missing or timestamps repeat.
        """
        file_path = Path(path)
        if not file_path.exists():
            raise FileNotFoundError(f"Candle CSV not found: {file_path}")

        df = pd.read_csv(file_path)
        df.columns = [str(c).strip().lower() for c in df.columns]
        if "time" not in df.columns and "timestamp" in df.columns:
            df = df.rename(columns={"timestamp": "time"})

        required = ["time", "open", "high", "low", "close"]
        missing = [c for c in required if c not in df.columns]
        if missing:
            raise ValueError(
                f"Unrecognized candle CSV {file_path}. Missing columns: {missing}. "
                f"Found columns: {list(df.columns)}"
            )
        if "volume" not in df.columns:
            df["volume"] = 0.0

        out = pd.DataFrame(
            {col: df[col].astype(float).to_numpy() for col in CANDLE_COLUMNS},
            index=_parse_times(df["time"]),
        ).sort_index()
        out.index = to_timezone(out.index, self.timezone, assume_tz=self.timezone)

        if out.index.has_duplicates:
            dupes = out.index[out.index.duplicated()].unique()[:5].tolist()
            raise ValueError(f"Duplicate candle timestamps in {file_path}: {dupes}")

        logger.info("Loaded %d candles from %s", len(out), file_path)
        return out


def check_alignment(trading: pd.DataFrame, market: pd.DataFrame) -> None:
    """Ensure two candle frames share length and timestamps.

    Raises
    ------
    AlignmentError
        If the frames differ in length or in any timestamp.
    """
    if len(trading) != len(market):
        raise AlignmentError(
            f"candle data has different lengths: trading={len(trading)} market={len(market)}"
        )
    mismatched = trading.index != market.index
    if mismatched.any():
        first = trading.index[mismatched][0]
        raise AlignmentError(f"candle timestamps are not aligned, first mismatch at {first}")


def frame_to_candles(df: pd.DataFrame) -> List[Candle]:
    """Convert candle rows to `Candle` values with decimal prices."""
    candles: List[Candle] = []
    for ts, row in zip(df.index, df[CANDLE_COLUMNS].itertuples(index=False)):
        candles.append(
            Candle(
                time=ts,
                open=as_money(row.open),
                high=as_money(row.high),
                low=as_money(row.low),
                close=as_money(row.close),
                volume=as_money(row.volume),
            )
        )
    return candles
