import os
import sys
import pandas as pd

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from src.config.schema import IndicatorConfig, StrategyConfig
from src.errors import ConfigError, SignalError
from src.execution.models import Signal
from src.strategy.base import Strategy
from src.strategy.consensus import Consensus, ConsensusStrategy, build_strategy
from src.strategy.indicators import VWAP, BollingerBands

import unittest


def make_window(closes, volumes=None) -> pd.DataFrame:
    index = pd.date_range("2024-01-01", periods=len(closes), freq="min", tz="UTC", name="time")
    closes = [float(c) for c in closes]
    return pd.DataFrame(
        {
            "open": closes,
            "high": [c + 1.0 for c in closes],
            "low": [c - 1.0 for c in closes],
            "close": closes,
            "volume": volumes if volumes is not None else [1.0] * len(closes),
        },
        index=index,
    )


class FixedSignal:
    def __init__(self, signal: Signal) -> None:
        self.signal = signal

    def process(self, window: pd.DataFrame) -> Signal:
        return self.signal


class TestConsensus(unittest.TestCase):
    def test_unison(self) -> None:
        self.assertEqual(Consensus.UNISON.reduce([Signal.BUY, Signal.BUY]), Signal.BUY)
        self.assertEqual(Consensus.UNISON.reduce([Signal.SELL, Signal.SELL, Signal.SELL]), Signal.SELL)
        self.assertEqual(Consensus.UNISON.reduce([Signal.BUY, Signal.SELL]), Signal.HOLD)
        self.assertEqual(Consensus.UNISON.reduce([Signal.BUY, Signal.HOLD]), Signal.HOLD)

    def test_majority(self) -> None:
        self.assertEqual(Consensus.MAJORITY.reduce([Signal.BUY, Signal.BUY, Signal.SELL]), Signal.BUY)
        self.assertEqual(Consensus.MAJORITY.reduce([Signal.SELL, Signal.HOLD, Signal.SELL]), Signal.SELL)
        self.assertEqual(Consensus.MAJORITY.reduce([Signal.BUY, Signal.SELL]), Signal.HOLD)
        self.assertEqual(Consensus.MAJORITY.reduce([Signal.BUY, Signal.SELL, Signal.HOLD]), Signal.HOLD)

    def test_no_signals_is_hold(self) -> None:
        self.assertEqual(Consensus.UNISON.reduce([]), Signal.HOLD)
        self.assertEqual(Consensus.MAJORITY.reduce([]), Signal.HOLD)

    def test_strategy_reduces_indicators(self) -> None:
        strategy = ConsensusStrategy([FixedSignal(Signal.BUY), FixedSignal(Signal.BUY)])
        self.assertIsInstance(strategy, Strategy)
        self.assertEqual(strategy.process(make_window([1, 2, 3])), Signal.BUY)

    def test_empty_window_raises(self) -> None:
        strategy = ConsensusStrategy([FixedSignal(Signal.BUY)])
        with self.assertRaises(SignalError):
            strategy.process(make_window([]))


class TestBollingerBands(unittest.TestCase):
    def test_close_above_upper_band_sells(self) -> None:
        window = make_window([100] * 19 + [120])
        self.assertEqual(BollingerBands(period=20).process(window), Signal.SELL)

    def test_close_below_lower_band_buys(self) -> None:
        window = make_window([100] * 19 + [80])
        self.assertEqual(BollingerBands(period=20).process(window), Signal.BUY)

    def test_inside_bands_holds(self) -> None:
        window = make_window([100, 101, 99, 100, 101, 99, 100])
        self.assertEqual(BollingerBands(period=5).process(window), Signal.HOLD)

    def test_short_window_holds(self) -> None:
        self.assertEqual(BollingerBands(period=20).process(make_window([100] * 5 + [200])), Signal.HOLD)

    def test_missing_column(self) -> None:
        with self.assertRaises(SignalError):
            BollingerBands(period=2).process(pd.DataFrame({"open": [1.0, 2.0]}))


class TestVWAP(unittest.TestCase):
    def test_close_above_vwap_buys(self) -> None:
        window = make_window([10, 10, 10, 10, 14], volumes=[1.0, 1.0, 1.0, 1.0, 1.0])
        self.assertEqual(VWAP(window=5).process(window), Signal.BUY)

    def test_close_below_vwap_sells(self) -> None:
        window = make_window([10, 10, 10, 10, 6])
        self.assertEqual(VWAP(window=5).process(window), Signal.SELL)

    def test_value_is_volume_weighted(self) -> None:
        window = make_window([10, 20], volumes=[3.0, 1.0])
        # typical price equals close because high and low are symmetric
        self.assertAlmostEqual(VWAP(window=2).value(window), 12.5)

    def test_zero_volume_holds(self) -> None:
        window = make_window([10, 11, 12], volumes=[0.0, 0.0, 0.0])
        self.assertEqual(VWAP(window=3).process(window), Signal.HOLD)

    def test_zero_volume_value_is_undefined(self) -> None:
        window = make_window([10, 11, 12], volumes=[0.0, 0.0, 0.0])
        with self.assertRaises(SignalError):
            VWAP(window=3).value(window)

    def test_only_recent_volume_counts(self) -> None:
        window = make_window([10, 10, 10, 14], volumes=[5.0, 0.0, 0.0, 0.0])
        self.assertEqual(VWAP(window=3).process(window), Signal.HOLD)


class TestBuildStrategy(unittest.TestCase):
    def test_default_indicators(self) -> None:
        strategy = build_strategy(StrategyConfig())
        self.assertEqual(strategy.consensus, Consensus.UNISON)
        self.assertEqual([type(i) for i in strategy.indicators], [BollingerBands, VWAP])

    def test_indicator_parameters(self) -> None:
        config = StrategyConfig(consensus="majority", indicators=[IndicatorConfig("bbands", {"period": 10})])
        strategy = build_strategy(config)
        self.assertEqual(strategy.consensus, Consensus.MAJORITY)
        self.assertEqual(strategy.indicators[0].period, 10)

    def test_unknown_indicator(self) -> None:
        with self.assertRaises(ConfigError):
            build_strategy(StrategyConfig(indicators=[IndicatorConfig("rsi")]))

    def test_bad_parameters(self) -> None:
        with self.assertRaises(ConfigError):
            build_strategy(StrategyConfig(indicators=[IndicatorConfig("vwap", {"length": 3})]))
        with self.assertRaises(ConfigError):
            build_strategy(StrategyConfig(indicators=[IndicatorConfig("bbands", {"period": 1})]))

    def test_unknown_consensus(self) -> None:
        with self.assertRaises(ConfigError):
            build_strategy(StrategyConfig(consensus="veto"))


if __name__ == '__main__':
    unittest.main()
