"""
Backtest execution engine.

This module contains the `BacktestRunner` class which replays a candle
series through a strategy, the risk engine and the position manager,
and applies the resulting trades to a portfolio it owns.  Fills happen
at the candle's close with no slippage.

The replay is single threaded and deterministic: the same candles,
strategy and limits always produce the same trades.  Ledger entries
are stamped with candle timestamps, never the wall clock.  Any failure
in the signal, risk or decision stage aborts the run; the only candles
skipped are the warm-up candles that have no history before them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional
import logging
import time

import pandas as pd

from ..config.schema import Config, PositionManagerConfig
from ..data.csv_data import check_alignment, ensure_time_index, frame_to_candles
from ..errors import (
    BacktestError,
    InvalidOperation,
    PortfolioError,
    PositionManagerError,
    RiskCalculationError,
)
from ..portfolio.portfolio import Portfolio
from ..risk.engine import calculate_risk
from ..strategy.base import Strategy
from .models import (
    Candle,
    DoNothing,
    EquityPoint,
    ExecuteBuy,
    ExecutedTrade,
    Side,
    TradeDecision,
    as_money,
)
from .position_manager import PositionManager


logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SIZE = 100


@dataclass
class BacktestResult:
    """Outcome of one backtest run."""
    portfolio: Portfolio
    equity_curve: List[EquityPoint] = field(default_factory=list)
    rows: int = 0
    processed: int = 0
    skipped: int = 0
    elapsed: float = 0.0

    @property
    def rows_per_second(self) -> float:
        return self.rows / self.elapsed if self.elapsed > 0 else 0.0


class BacktestRunner:
    """Replay historical candles through a strategy and position manager.

    Parameters
    ----------
    strategy : Strategy
        Produces a signal from each candle window.
    manager_config : PositionManagerConfig
        Limits for the position manager.
    capital : Decimal
        Starting capital of the portfolio.
    assets : Decimal
        Starting asset quantity of the portfolio.
    window_size : int
        Number of candles before the current one given to the strategy
        and the risk engine.
    """

    def __init__(
        self,
        strategy: Strategy,
        manager_config: PositionManagerConfig,
        capital: Decimal,
        assets: Decimal = Decimal(0),
        window_size: int = DEFAULT_WINDOW_SIZE,
    ) -> None:
        if window_size < 1:
            raise ValueError("window_size must be at least 1")
        self.strategy = strategy
        self.manager = PositionManager(manager_config)
        self.capital = as_money(capital)
        self.assets = as_money(assets)
        self.window_size = window_size

    @classmethod
    def from_config(cls, config: Config, strategy: Strategy) -> "BacktestRunner":
        return cls(
            strategy,
            config.manager,
            capital=as_money(config.portfolio.capital),
            assets=as_money(config.portfolio.assets),
            window_size=config.backtest.window_size,
        )

    def run(self, candles: pd.DataFrame, market: pd.DataFrame) -> BacktestResult:
        """Execute the backtest.

        Parameters
        ----------
        candles : pandas.DataFrame
            Candles of the traded asset, indexed by time or carrying a
            ``time`` column.
        market : pandas.DataFrame
            Benchmark candles with exactly the same timestamps.

        Returns
        -------
        BacktestResult
            The final portfolio, the equity curve and run statistics.

        Raises
        ------
        AlignmentError
            If the two series differ in length or timestamps.
        ValueError
            If a frame has no timestamps or there are no candles.
        BacktestError
            If a tick fails; `stage` names the failing stage.
        """
        logger.info("Checking candle data and market data alignment")
        candles = ensure_time_index(candles)
        market = ensure_time_index(market)
        check_alignment(candles, market)
        if candles.empty:
            raise ValueError("no candles to replay")

        started = time.perf_counter()
        trading_rows = frame_to_candles(candles)
        market_rows = frame_to_candles(market)

        portfolio = Portfolio.new(self.capital, self.assets, trading_rows[0].time)
        result = BacktestResult(portfolio=portfolio, rows=len(trading_rows))

        for idx, candle in enumerate(trading_rows):
            # window of candles strictly before this one
            start = max(0, idx - self.window_size)
            if idx == start:
                logger.debug("Skipping %s: no history before this candle", candle.time)
                result.skipped += 1
                result.equity_curve.append(self._equity_point(portfolio, candle))
                continue

            decision = self._tick(
                portfolio,
                candle,
                candles.iloc[start:idx],
                trading_rows[start:idx],
                market_rows[start:idx],
            )
            self._execute(portfolio, decision, candle)
            result.processed += 1
            result.equity_curve.append(self._equity_point(portfolio, candle))

        result.elapsed = time.perf_counter() - started
        logger.info(
            "Processed %d rows in %.3fs (%.1f rows/s), %d trades executed",
            result.rows,
            result.elapsed,
            result.rows_per_second,
            len(portfolio.executed_trades),
        )
        return result

    def _tick(
        self,
        portfolio: Portfolio,
        candle: Candle,
        window: pd.DataFrame,
        trading_window: List[Candle],
        market_window: List[Candle],
    ) -> TradeDecision:
        try:
            signal = self.strategy.process(window)
        except Exception as exc:
            logger.error("Signal extraction failed at %s: %s", candle.time, exc)
            raise BacktestError("signal", exc) from exc

        try:
            risk = calculate_risk(portfolio, market_window, trading_window)
        except RiskCalculationError as exc:
            logger.error("Error calculating risk at %s: %s", candle.time, exc)
            raise BacktestError("risk", exc) from exc

        try:
            decision = self.manager.make_decision(portfolio, risk, signal, candle.close)
        except PositionManagerError as exc:
            logger.error("Error making decision at %s: %s", candle.time, exc)
            raise BacktestError("decision", exc) from exc

        if not isinstance(decision, DoNothing):
            logger.info("Portfolio risk metrics at %s: %s", candle.time, risk)
        return decision

    def _execute(self, portfolio: Portfolio, decision: TradeDecision, candle: Candle) -> Optional[ExecutedTrade]:
        """Fill a decision at the candle's close."""
        if isinstance(decision, DoNothing):
            return None

        side = Side.BUY if isinstance(decision, ExecuteBuy) else Side.SELL
        trade = ExecutedTrade.create(
            order_id=candle.time.isoformat(),
            side=side,
            price=candle.close,
            quantity=decision.quantity,
            point=candle.time,
        )
        close_ids = None
        if side == Side.SELL:
            logger.info("Closing positions: %s", list(decision.order_ids))
            if not decision.ranked:
                close_ids = decision.order_ids
        try:
            portfolio.add_executed_trade(trade, close_ids)
        except InvalidOperation as exc:
            raise BacktestError("decision", PortfolioError(str(exc))) from exc
        return trade

    @staticmethod
    def _equity_point(portfolio: Portfolio, candle: Candle) -> EquityPoint:
        capital = portfolio.get_capital()
        assets = portfolio.get_assets()
        return EquityPoint(
            timestamp=candle.time,
            equity=capital + assets * candle.close,
            capital=capital,
            assets=assets,
            price=candle.close,
        )
