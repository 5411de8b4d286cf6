"""
Timestamp utilities.

This module centralises timestamp handling: timezone conversion for
loaded candles, the millisecond-exact text format used by portfolio
persistence, and the wall-clock fallback for ledger entries recorded
outside a backtest.
"""

from __future__ import annotations

from typing import Optional, Union
import pandas as pd


POINT_FORMAT = "%Y-%m-%dT%H:%M:%S.%f"


def to_timezone(
    ts: Union[pd.Timestamp, pd.DatetimeIndex],
    tz_name: str,
    assume_tz: str = "UTC",
) -> Union[pd.Timestamp, pd.DatetimeIndex]:
    """Convert a timestamp or a `DatetimeIndex` to the specified timezone.

    Naive values are taken to be in `assume_tz` (UTC unless given)
    before conversion.  Aware values are converted.
    """
    if not isinstance(ts, (pd.Timestamp, pd.DatetimeIndex)):
        ts = pd.Timestamp(ts)
    if ts.tz is None:
        ts = ts.tz_localize(assume_tz)
    return ts.tz_convert(tz_name)


def utc_now() -> pd.Timestamp:
    """Current wall-clock time in UTC, truncated to milliseconds."""
    return pd.Timestamp.now(tz="UTC").floor("ms")


def resolve_point(ts: Optional[pd.Timestamp]) -> pd.Timestamp:
    """Return `ts`, or the wall clock when no timestamp was supplied."""
    if ts is None:
        return utc_now()
    if not isinstance(ts, pd.Timestamp):
        ts = pd.Timestamp(ts)
    return ts


def format_point(ts: pd.Timestamp) -> str:
    """Render a timestamp as ``YYYY-MM-DDTHH:MM:SS.mmm``.

    Timezone-aware timestamps are converted to UTC and suffixed with
    ``Z``; naive ones are written as-is.  Sub-millisecond precision is
    dropped.
    """
    if ts.tzinfo is not None:
        return ts.tz_convert("UTC").strftime(POINT_FORMAT)[:-3] + "Z"
    return ts.strftime(POINT_FORMAT)[:-3]


def parse_point(text: str) -> pd.Timestamp:
    """Parse a string written by `format_point`."""
    return pd.Timestamp(text)
