import os
import sys
import tempfile
from decimal import Decimal
import pandas as pd

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from src.config.schema import PositionManagerConfig, StrategyConfig
from src.data.csv_data import CSVDataLoader, check_alignment, ensure_time_index, frame_to_candles
from src.errors import AlignmentError
from src.execution.backtest_exec import BacktestRunner
from src.strategy.consensus import build_strategy
from src.utils.timeutils import to_timezone

import unittest


def write_csv(directory: str, name: str, frame: pd.DataFrame) -> str:
    path = os.path.join(directory, name)
    frame.to_csv(path, index=False)
    return path


class TestCSVDataLoader(unittest.TestCase):
    def test_naive_times_are_localised_to_configured_zone(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = write_csv(tmp, "c.csv", pd.DataFrame({
                "time": ["2024-01-01 10:00:00", "2024-01-01 09:00:00"],
                "open": [1.0, 2.0], "high": [1.0, 2.0], "low": [1.0, 2.0], "close": [1.0, 2.0],
                "volume": [3.0, 4.0],
            }))
            df = CSVDataLoader("Europe/Rome").load(path)
        self.assertEqual(str(df.index.tz), "Europe/Rome")
        self.assertEqual(df.index[0], pd.Timestamp("2024-01-01 09:00", tz="Europe/Rome"))
        self.assertEqual(list(df["close"]), [2.0, 1.0])

    def test_epoch_times_and_missing_volume(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = write_csv(tmp, "c.csv", pd.DataFrame({
                "Timestamp": [1704067200, 1704070800],
                "Open": [1.0, 2.0], "High": [1.0, 2.0], "Low": [1.0, 2.0], "Close": [1.0, 2.0],
            }))
            df = CSVDataLoader().load(path)
        self.assertEqual(df.index[0], pd.Timestamp("2024-01-01 00:00", tz="UTC"))
        self.assertEqual(list(df["volume"]), [0.0, 0.0])

    def test_duplicate_timestamps(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = write_csv(tmp, "c.csv", pd.DataFrame({
                "time": ["2024-01-01 00:00:00"] * 2,
                "open": [1.0, 1.0], "high": [1.0, 1.0], "low": [1.0, 1.0], "close": [1.0, 1.0],
            }))
            with self.assertRaises(ValueError):
                CSVDataLoader().load(path)

    def test_missing_file(self) -> None:
        with self.assertRaises(FileNotFoundError):
            CSVDataLoader().load("/nonexistent/candles.csv")

    def test_volume_less_csv_runs_with_default_strategy(self) -> None:
        closes = [100 + (i % 5) - (i % 3) for i in range(40)]
        frame = pd.DataFrame({
            "time": pd.date_range("2024-01-01", periods=40, freq="h").strftime("%Y-%m-%d %H:%M:%S"),
            "open": closes, "high": [c + 1 for c in closes], "low": [c - 1 for c in closes], "close": closes,
        })
        with tempfile.TemporaryDirectory() as tmp:
            loader = CSVDataLoader()
            candles = loader.load(write_csv(tmp, "trading.csv", frame))
            market = loader.load(write_csv(tmp, "market.csv", frame))
        config = PositionManagerConfig(
            max_position_size=Decimal(5000),
            stop_loss_percentage=Decimal("0.05"),
            take_profit_percentage=Decimal("0.1"),
            max_beta=Decimal(5),
            var_limit=Decimal(500),
            min_sharpe_ratio=Decimal(-5),
            unrealized_pnl_limit=Decimal(100),
        )
        runner = BacktestRunner(build_strategy(StrategyConfig()), config, capital=Decimal(1000), window_size=30)
        result = runner.run(candles, market)
        self.assertEqual(result.processed, 39)
        # vwap holds without volume, so the unison strategy never trades
        self.assertEqual(result.portfolio.executed_trades, ())


class TestFrameHelpers(unittest.TestCase):
    def test_time_column_becomes_index(self) -> None:
        frame = pd.DataFrame({
            "time": ["2024-01-01 00:00:00", "2024-01-01 01:00:00"],
            "open": [1.0, 2.0], "high": [1.0, 2.0], "low": [1.0, 2.0], "close": [1.0, 2.0], "volume": [0.0, 0.0],
        })
        out = ensure_time_index(frame)
        self.assertIsInstance(out.index, pd.DatetimeIndex)
        self.assertNotIn("time", out.columns)
        self.assertEqual(frame_to_candles(out)[1].time, pd.Timestamp("2024-01-01 01:00"))

    def test_frame_without_times_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            ensure_time_index(pd.DataFrame({"close": [1.0]}))

    def test_alignment(self) -> None:
        index = pd.date_range("2024-01-01", periods=3, freq="h", tz="UTC")
        a = pd.DataFrame({"close": [1.0, 2.0, 3.0]}, index=index)
        check_alignment(a, a.copy())
        with self.assertRaises(AlignmentError):
            check_alignment(a, a.iloc[:2])


class TestToTimezone(unittest.TestCase):
    def test_naive_timestamp_assumed_utc(self) -> None:
        ts = to_timezone(pd.Timestamp("2024-06-01 12:00"), "Europe/Rome")
        self.assertEqual(ts, pd.Timestamp("2024-06-01 14:00", tz="Europe/Rome"))

    def test_index_with_assumed_zone(self) -> None:
        index = pd.DatetimeIndex(["2024-06-01 12:00"])
        out = to_timezone(index, "UTC", assume_tz="Europe/Rome")
        self.assertEqual(out[0], pd.Timestamp("2024-06-01 10:00", tz="UTC"))


if __name__ == '__main__':
    unittest.main()
