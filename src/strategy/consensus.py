"""
Consensus strategy.

Combines several indicators into one signal.  `Consensus.UNISON` only
acts when every indicator agrees; `Consensus.MAJORITY` acts on a strict
plurality.  Anything undecided is a hold.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Iterable, List, Sequence
import pandas as pd

from ..config.schema import StrategyConfig
from ..errors import ConfigError, SignalError
from ..execution.models import Signal
from .base import Strategy
from .indicators import VWAP, BollingerBands


INDICATORS: Dict[str, Any] = {
    BollingerBands.name: BollingerBands,
    VWAP.name: VWAP,
}


class Consensus(str, Enum):
    UNISON = "unison"
    MAJORITY = "majority"

    def reduce(self, signals: Iterable[Signal]) -> Signal:
        """Reduce indicator signals to one."""
        signals = list(signals)
        if not signals:
            return Signal.HOLD
        if self is Consensus.UNISON:
            first = signals[0]
            return first if all(s == first for s in signals) else Signal.HOLD

        buy = sum(1 for s in signals if s == Signal.BUY)
        sell = sum(1 for s in signals if s == Signal.SELL)
        hold = len(signals) - buy - sell
        if buy > sell and buy > hold:
            return Signal.BUY
        if sell > buy and sell > hold:
            return Signal.SELL
        return Signal.HOLD


class ConsensusStrategy:
    """Strategy that asks every indicator and reduces their answers."""

    def __init__(self, indicators: Sequence[Strategy], consensus: Consensus = Consensus.UNISON) -> None:
        if not indicators:
            raise ValueError("a strategy needs at least one indicator")
        self.indicators: List[Strategy] = list(indicators)
        self.consensus = consensus

    def process(self, window: pd.DataFrame) -> Signal:
        if window.empty:
            raise SignalError("cannot produce a signal from an empty window")
        return self.consensus.reduce(indicator.process(window) for indicator in self.indicators)


def build_strategy(config: StrategyConfig) -> ConsensusStrategy:
    """Construct the strategy described by the configuration.

    Raises
    ------
    ConfigError
        For an unknown consensus mode, an unknown indicator, or
        parameters the indicator does not accept.
    """
    try:
        consensus = Consensus(config.consensus)
    except ValueError as exc:
        raise ConfigError(f"unknown consensus {config.consensus!r}") from exc

    indicators: List[Strategy] = []
    for item in config.indicators:
        factory = INDICATORS.get(item.name.lower())
        if factory is None:
            raise ConfigError(f"unknown indicator {item.name!r}, expected one of {sorted(INDICATORS)}")
        try:
            indicators.append(factory(**item.params))
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"bad parameters for indicator {item.name!r}: {exc}") from exc
    if not indicators:
        raise ConfigError("strategy.indicators must name at least one indicator")
    return ConsensusStrategy(indicators, consensus)
