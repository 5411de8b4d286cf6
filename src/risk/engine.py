"""
Portfolio risk metrics.

`calculate_risk` derives a point-in-time `RiskMetrics` snapshot from a
portfolio's open positions and two aligned candle windows: one for the
traded asset and one for the market benchmark.

Value at Risk
    Historical, one-tailed, 95 % confidence: the 5th percentile of the
    asset's period returns scaled by the marked-to-market position
    value.  It is normally negative (a loss); callers compare its
    magnitude with their limit.

Beta
    Ordinary least squares slope of asset returns on market returns.
    1 moves with the market, above 1 is more volatile, 0 uncorrelated,
    negative moves against it.

Sharpe ratio
    Mean period return over the sample standard deviation of returns.
    The risk-free rate is ignored, which is negligible over the short
    horizons this is used for.

Undefined ratios (no returns, zero variance) are reported as zero.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Sequence

from ..errors import CandleDataNotAligned
from ..execution.models import ZERO, Candle
from ..portfolio.portfolio import Portfolio


VAR_CONFIDENCE_TAIL = 5  # percent


@dataclass(frozen=True)
class RiskMetrics:
    """Risk snapshot for one tick.  Never persisted."""
    total_position_value: Decimal = ZERO
    average_entry_price: Decimal = ZERO
    unrealized_pnl: Decimal = ZERO
    value_at_risk: Decimal = ZERO
    beta: Decimal = ZERO
    sharpe_ratio: Decimal = ZERO


def calculate_risk(
    portfolio: Portfolio,
    market_candles: Sequence[Candle],
    asset_candles: Sequence[Candle],
) -> RiskMetrics:
    """Calculate risk metrics for `portfolio`.

    Parameters
    ----------
    portfolio : Portfolio
        Portfolio whose open positions are measured.
    market_candles : sequence of Candle
        Benchmark candles, oldest first.
    asset_candles : sequence of Candle
        Candles of the traded asset, oldest first.

    Raises
    ------
    CandleDataNotAligned
        If the two windows do not share the same timestamps.
    """
    if [c.time for c in market_candles] != [c.time for c in asset_candles]:
        raise CandleDataNotAligned(
            f"market window ({len(market_candles)} rows) and asset window "
            f"({len(asset_candles)} rows) have different timestamps"
        )

    current_price = asset_candles[-1].close if asset_candles else ZERO
    total_position_value, average_entry_price, unrealized_pnl = position_metrics(portfolio, current_price)

    returns = calculate_returns(asset_candles)
    return RiskMetrics(
        total_position_value=total_position_value,
        average_entry_price=average_entry_price,
        unrealized_pnl=unrealized_pnl,
        value_at_risk=value_at_risk(returns, total_position_value),
        beta=beta(calculate_returns(market_candles), returns),
        sharpe_ratio=sharpe_ratio(returns),
    )


def position_metrics(portfolio: Portfolio, current_price: Decimal):
    """Return ``(total_position_value, average_entry_price, unrealized_pnl)``."""
    total_value = ZERO
    total_cost = ZERO
    total_quantity = ZERO
    for position in portfolio.get_open_positions():
        total_value += position.quantity * current_price
        total_cost += position.notional_value
        total_quantity += position.quantity
    average = total_cost / total_quantity if total_quantity else ZERO
    return total_value, average, total_value - total_cost


def calculate_returns(candles: Sequence[Candle]) -> List[Decimal]:
    """Simple returns between consecutive closes (``len - 1`` values)."""
    returns: List[Decimal] = []
    for previous, current in zip(candles, candles[1:]):
        if previous.close == ZERO:
            returns.append(ZERO)
        else:
            returns.append((current.close - previous.close) / previous.close)
    return returns


def value_at_risk(returns: Sequence[Decimal], total_position_value: Decimal) -> Decimal:
    if not returns:
        return ZERO
    ordered = sorted(returns)
    index = len(ordered) * VAR_CONFIDENCE_TAIL // 100
    return ordered[index] * total_position_value


def beta(market_returns: Sequence[Decimal], asset_returns: Sequence[Decimal]) -> Decimal:
    pairs = list(zip(market_returns, asset_returns))
    n = Decimal(len(pairs))
    sum_x = sum((x for x, _ in pairs), ZERO)
    sum_y = sum((y for _, y in pairs), ZERO)
    sum_xy = sum((x * y for x, y in pairs), ZERO)
    sum_x2 = sum((x * x for x, _ in pairs), ZERO)
    denominator = n * sum_x2 - sum_x * sum_x
    if denominator == ZERO:
        return ZERO
    return (n * sum_xy - sum_x * sum_y) / denominator


def sharpe_ratio(returns: Sequence[Decimal]) -> Decimal:
    if len(returns) < 2:
        return ZERO
    n = Decimal(len(returns))
    mean = sum(returns, ZERO) / n
    variance = sum(((r - mean) * (r - mean) for r in returns), ZERO) / (n - 1)
    std_dev = variance.sqrt()
    if std_dev == ZERO:
        return ZERO
    return mean / std_dev
