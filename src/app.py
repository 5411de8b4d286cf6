"""
Application entry point.

This module defines a simple command‑line interface for running a
backtest.  It leverages the modules under `src/` to load
configuration and candles, replay them through the strategy and
position manager, generate reports and optionally save the final
portfolio.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config.schema import load_config
from .data.csv_data import CSVDataLoader
from .errors import TradingError
from .execution.backtest_exec import BacktestRunner
from .reporting.report import generate_backtest_report
from .strategy.consensus import build_strategy
from .utils.persistence import save_portfolio


logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )


def run_backtest(config_path: str, save_dir: Optional[str] = None) -> dict:
    """Load everything named by the configuration and run one backtest.

    Returns the summary metrics of the run.
    """
    config = load_config(config_path)
    loader = CSVDataLoader(config.data.timezone)
    candles = loader.load(config.data.trading_csv)
    market = loader.load(config.data.market_csv)

    strategy = build_strategy(config.strategy)
    runner = BacktestRunner.from_config(config, strategy)
    result = runner.run(candles, market)

    metrics = generate_backtest_report(result.portfolio, result.equity_curve, out_dir=config.backtest.out_dir)
    if save_dir is not None:
        Path(save_dir).mkdir(parents=True, exist_ok=True)
        save_portfolio(result.portfolio, save_dir)
        logger.info("Portfolio saved to %s", save_dir)
    return metrics


def main(argv: Optional[List[str]] = None) -> int:
    """Parse command‑line arguments and dispatch to the appropriate mode."""
    parser = argparse.ArgumentParser(description="Candle replay backtester")
    parser.add_argument('mode', choices=['backtest'], help="Operating mode")
    parser.add_argument('--config', default='config.yaml', help="Path to configuration YAML file")
    parser.add_argument('--save-portfolio', metavar='DIR', default=None,
                        help="Directory to save the final portfolio into")
    parser.add_argument('-v', '--verbose', action='store_true', help="Enable debug logging")
    args = parser.parse_args(argv)

    _setup_logging(args.verbose)

    logger.info("Running backtest...")
    try:
        metrics = run_backtest(args.config, args.save_portfolio)
    except (TradingError, FileNotFoundError, ValueError) as exc:
        logger.error("Backtest failed: %s", exc)
        return 1
    logger.info("Backtest complete: %d trades, total return %.4f", metrics['num_trades'], metrics['total_return'])
    return 0


if __name__ == '__main__':
    sys.exit(main())
