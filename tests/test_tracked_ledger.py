import os
import sys
from decimal import Decimal
import pandas as pd

CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from src.errors import LedgerEmptyError
from src.portfolio.tracked import TrackedLedger

import unittest


START = pd.Timestamp("2024-01-01 00:00", tz="UTC")


class TestTrackedLedger(unittest.TestCase):
    def test_increment(self) -> None:
        ledger = TrackedLedger.with_initial(Decimal("1.0"), START)
        for i in range(10):
            ledger.increment(Decimal("0.1"), START + pd.Timedelta(seconds=i + 1))
        self.assertEqual(ledger.get_last_value(), Decimal("2.0"))
        self.assertEqual(len(ledger), 11)

    def test_decrement(self) -> None:
        ledger = TrackedLedger.with_initial(Decimal("1.0"), START)
        for i in range(9):
            ledger.decrement(Decimal("0.1"), START + pd.Timedelta(seconds=i + 1))
        self.assertEqual(ledger.get_last_value(), Decimal("0.1"))

    def test_last_value_is_sum_of_seed_and_deltas(self) -> None:
        deltas = [Decimal("12.5"), Decimal("-3.25"), Decimal("0.01"), Decimal("-100"), Decimal("7")]
        ledger = TrackedLedger.with_initial(Decimal("250"), START)
        for i, delta in enumerate(deltas):
            ts = START + pd.Timedelta(minutes=i + 1)
            if delta >= 0:
                ledger.increment(delta, ts)
            else:
                ledger.decrement(-delta, ts)
        self.assertEqual(ledger.get_last_value(), Decimal("250") + sum(deltas))

    def test_rows_are_never_overwritten(self) -> None:
        ledger = TrackedLedger.with_initial(Decimal("100"), START)
        ledger.increment(Decimal("5"), START + pd.Timedelta(seconds=1))
        ledger.decrement(Decimal("20"), START + pd.Timedelta(seconds=2))
        values = [value for _, value in ledger.rows]
        self.assertEqual(values, [Decimal("100"), Decimal("105"), Decimal("85")])

    def test_current_value_follows_latest_timestamp(self) -> None:
        ledger = TrackedLedger.with_initial(Decimal("100"), START)
        ledger.increment(Decimal("10"), START + pd.Timedelta(minutes=2))
        # an older entry is recorded but does not become the current value
        ledger.decrement(Decimal("5"), START + pd.Timedelta(minutes=1))
        self.assertEqual(len(ledger), 3)
        self.assertEqual(ledger.get_last_value(), Decimal("110"))

    def test_timestamp_tie_keeps_latest_append(self) -> None:
        ledger = TrackedLedger.with_initial(Decimal("100"), START)
        ts = START + pd.Timedelta(seconds=1)
        ledger.increment(Decimal("1"), ts)
        ledger.increment(Decimal("1"), ts)
        self.assertEqual(ledger.get_last_value(), Decimal("102"))

    def test_missing_timestamp_uses_wall_clock(self) -> None:
        ledger = TrackedLedger.with_initial(Decimal("1"), START)
        ledger.increment(Decimal("1"))
        ts, value = ledger.rows[-1]
        self.assertIsNotNone(ts)
        self.assertGreater(ts, START)
        self.assertEqual(value, Decimal("2"))

    def test_empty_ledger_raises(self) -> None:
        with self.assertRaises(LedgerEmptyError):
            TrackedLedger().get_last_value()

    def test_to_frame(self) -> None:
        ledger = TrackedLedger.with_initial(Decimal("3"), START)
        ledger.increment(Decimal("2"), START + pd.Timedelta(seconds=1))
        frame = ledger.to_frame()
        self.assertEqual(list(frame.columns), ["timestamp", "value"])
        self.assertEqual(len(frame), 2)
        self.assertEqual(frame["value"].iloc[-1], Decimal("5"))

    def test_from_frame(self) -> None:
        ledger = TrackedLedger.with_initial(Decimal("3"), START)
        ledger.increment(Decimal("2.5"), START + pd.Timedelta(seconds=1))
        rebuilt = TrackedLedger.from_frame(ledger.to_frame())
        self.assertEqual(rebuilt, ledger)
        self.assertEqual(rebuilt.get_last_value(), Decimal("5.5"))


if __name__ == '__main__':
    unittest.main()
