"""
Position manager.

Turns a strategy signal and the tick's risk snapshot into a trade
decision.  The manager holds nothing but its limits; the portfolio it
reads is owned by the caller and is never mutated here.  Sell
decisions carry the order ids of the positions they will close, which
the portfolio reproduces when the resulting trade is applied.
"""

from __future__ import annotations

from decimal import Decimal
from typing import List
import logging

from ..config.schema import PositionManagerConfig
from ..errors import InvalidPositionSize, LedgerEmptyError, PortfolioError, InvalidOperation
from ..portfolio.portfolio import Portfolio
from ..risk.engine import RiskMetrics
from .models import ZERO, DoNothing, ExecuteBuy, ExecuteSell, Signal, TradeDecision


logger = logging.getLogger(__name__)


class PositionManager:
    """Decide what to trade on each tick."""

    def __init__(self, config: PositionManagerConfig) -> None:
        self.config = config

    def update_config(self, config: PositionManagerConfig) -> None:
        self.config = config
        logger.info("PositionManager configuration updated")

    def make_decision(
        self,
        portfolio: Portfolio,
        risk: RiskMetrics,
        signal: Signal,
        current_price: Decimal,
    ) -> TradeDecision:
        """Return the trade to execute for this tick.

        Nothing is traded while the risk snapshot is outside tolerance,
        whatever the signal.

        Raises
        ------
        InvalidPositionSize
            If `current_price` is not positive or a computed quantity is
            negative.
        PortfolioError
            If the portfolio state cannot be read.
        """
        if current_price <= ZERO:
            raise InvalidPositionSize(f"price must be positive, got {current_price}")

        if not self.is_within_risk_tolerance(risk):
            logger.debug("Risk outside tolerance, holding: %s", risk)
            return DoNothing()

        try:
            if signal == Signal.BUY:
                return self.process_buy_signal(portfolio, risk, current_price)
            if signal == Signal.SELL:
                return self.process_sell_signal(portfolio, risk, current_price)
        except (LedgerEmptyError, InvalidOperation) as exc:
            raise PortfolioError(str(exc)) from exc
        return DoNothing()

    def is_within_risk_tolerance(self, risk: RiskMetrics) -> bool:
        """Check every risk limit.  No exposure means nothing to limit."""
        if risk.total_position_value == ZERO:
            return True
        cfg = self.config
        return (
            risk.total_position_value <= cfg.max_position_size
            and abs(risk.value_at_risk) <= cfg.var_limit
            and risk.beta <= cfg.max_beta
            and risk.sharpe_ratio >= cfg.min_sharpe_ratio
        )

    def process_buy_signal(
        self,
        portfolio: Portfolio,
        risk: RiskMetrics,
        current_price: Decimal,
    ) -> TradeDecision:
        """Buy as much as capital, remaining VaR budget and position size allow."""
        available_capital = portfolio.available_capital
        if available_capital <= ZERO:
            logger.info("No capital available for buy signal")
            return DoNothing()

        available_risk = self.config.var_limit - abs(risk.value_at_risk)
        if available_risk <= ZERO:
            logger.info("No available risk capacity for buy signal")
            return DoNothing()

        quantity = min(
            available_risk / current_price,
            available_capital / current_price,
            self.config.max_position_size / current_price,
        )
        if quantity < ZERO:
            raise InvalidPositionSize(f"computed buy quantity {quantity} is negative")
        if quantity == ZERO:
            logger.warning("Calculated buy quantity is zero")
            return DoNothing()

        logger.info("Executing buy for quantity: %s", quantity)
        return ExecuteBuy(quantity)

    def process_sell_signal(
        self,
        portfolio: Portfolio,
        risk: RiskMetrics,
        current_price: Decimal,
    ) -> TradeDecision:
        """Pick the first sell trigger that applies.

        In order: take profit on everything once unrealized P&L reaches
        its limit; trim enough to bring VaR back under its limit; close
        individual positions that hit their stop-loss or take-profit.
        """
        book = portfolio.positions
        total_quantity = book.total_open_quantity
        if total_quantity <= ZERO:
            return DoNothing()

        if risk.unrealized_pnl >= self.config.unrealized_pnl_limit:
            logger.info("Taking profit, selling total quantity: %s", total_quantity)
            ids = book.preview_close(total_quantity, current_price)
            return ExecuteSell(total_quantity, tuple(ids))

        var_magnitude = abs(risk.value_at_risk)
        if var_magnitude > self.config.var_limit:
            excess = var_magnitude - self.config.var_limit
            quantity = min(excess / current_price, total_quantity)
            if quantity < ZERO:
                raise InvalidPositionSize(f"computed sell quantity {quantity} is negative")
            logger.info("Risk management sell, quantity: %s", quantity)
            ids = book.preview_close(quantity, current_price)
            return ExecuteSell(quantity, tuple(ids))

        return self.check_stop_loss_take_profit(portfolio, current_price)

    def check_stop_loss_take_profit(self, portfolio: Portfolio, current_price: Decimal) -> TradeDecision:
        """Close every position whose stop-loss or take-profit level was crossed."""
        stop_factor = Decimal(1) - self.config.stop_loss_percentage
        take_factor = Decimal(1) + self.config.take_profit_percentage
        quantity = ZERO
        ids: List[str] = []
        for position in portfolio.get_open_positions():
            if current_price <= position.entry_price * stop_factor:
                logger.info("Stop-loss triggered for position %s", position.order_id)
            elif current_price >= position.entry_price * take_factor:
                logger.info("Take-profit triggered for position %s", position.order_id)
            else:
                continue
            quantity += position.quantity
            ids.append(position.order_id)

        if not ids:
            return DoNothing()
        return ExecuteSell(quantity, tuple(ids), ranked=False)
