"""
Error taxonomy.

Every failure raised by the backtester derives from `TradingError` so
callers can catch the whole family in one place.  Nothing here is
retried: alignment, signal and risk failures abort a run, decision
errors abort the tick's decision and persistence errors surface to the
caller with no partial recovery.
"""

from __future__ import annotations

from typing import Optional


class TradingError(Exception):
    """Base class for all backtester errors."""


class ConfigError(TradingError):
    """The configuration document is missing keys or holds bad values."""


class InvalidOperation(TradingError):
    """An operation was applied to state that cannot accept it."""


class LedgerEmptyError(TradingError):
    """A tracked ledger was read before it held any entry."""


class PersistenceError(TradingError):
    """Saving or loading a portfolio failed."""


class SignalError(TradingError):
    """A strategy could not produce a signal for a candle window."""


class AlignmentError(TradingError):
    """Trading and market candle series differ in length or timestamps."""


class PositionManagerError(TradingError):
    """Base class for errors raised while making a trade decision."""


class InvalidPositionSize(PositionManagerError):
    pass


class PortfolioError(PositionManagerError):
    pass


class RiskCalculationError(TradingError):
    """Risk metrics could not be derived for a tick."""


class CandleDataNotAligned(RiskCalculationError):
    """Candle windows handed to the risk engine are not aligned."""


class BacktestError(TradingError):
    """A backtest run aborted.

    Attributes
    ----------
    stage : str
        Which stage of the tick failed: ``signal``, ``risk`` or
        ``decision``.
    cause : Exception or None
        The underlying error.
    """

    def __init__(self, stage: str, cause: Optional[Exception] = None) -> None:
        self.stage = stage
        self.cause = cause
        message = f"backtest aborted during {stage} stage"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
