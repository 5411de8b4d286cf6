"""
Configuration schema and loader.

This module defines dataclasses that mirror the expected structure of
the YAML configuration file (`config.yaml`).  A helper function
`load_config()` reads a YAML file from disk and returns an instance
of `Config`, filling optional sections with defaults.

The `manager` section is the exception: every position manager limit
must be given explicitly (only `max_drawdown` is optional), because a
silently defaulted risk limit changes every trade of a backtest.
Limits are converted to `Decimal` through their string form.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from decimal import Decimal, InvalidOperation as DecimalInvalidOperation
from typing import List, Dict, Any, Mapping
import yaml

from ..errors import ConfigError
from ..execution.models import ZERO, as_money


@dataclass(frozen=True)
class PositionManagerConfig:
    """Limits applied by the position manager.

    Attributes
    ----------
    max_position_size : Decimal
        Largest marked-to-market value the open positions may reach,
        and the largest notional a single buy may spend.
    stop_loss_percentage : Decimal
        Fractional loss from entry at which a position is closed
        (e.g. ``0.05`` for 5 %).
    take_profit_percentage : Decimal
        Fractional gain from entry at which a position is closed.
    max_beta : Decimal
        Highest tolerated beta against the market benchmark.
    var_limit : Decimal
        Largest tolerated Value at Risk magnitude, in quote currency.
    min_sharpe_ratio : Decimal
        Lowest tolerated Sharpe ratio.
    unrealized_pnl_limit : Decimal
        Unrealized profit at which every open position is liquidated
        on a sell signal.
    max_drawdown : Decimal
        Reserved; not used by the decision logic.
    """

    max_position_size: Decimal
    stop_loss_percentage: Decimal
    take_profit_percentage: Decimal
    max_beta: Decimal
    var_limit: Decimal
    min_sharpe_ratio: Decimal
    unrealized_pnl_limit: Decimal
    max_drawdown: Decimal = ZERO

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "PositionManagerConfig":
        """Build a config from a parsed YAML mapping.

        Raises
        ------
        ConfigError
            If a required key is missing, a key is unknown, or a value
            is not a number.
        """
        names = [f.name for f in fields(cls)]
        required = [name for name in names if name != "max_drawdown"]
        missing = [name for name in required if name not in raw]
        if missing:
            raise ConfigError(f"manager config is missing keys: {missing}")
        unknown = [key for key in raw if key not in names]
        if unknown:
            raise ConfigError(f"manager config has unknown keys: {unknown}")
        values: Dict[str, Decimal] = {}
        for name in names:
            if name not in raw:
                continue
            try:
                values[name] = as_money(raw[name])
            except (DecimalInvalidOperation, TypeError, ValueError) as exc:
                raise ConfigError(f"manager.{name} is not a number: {raw[name]!r}") from exc
        return cls(**values)


@dataclass
class PortfolioConfig:
    """Starting balances of the simulated portfolio.

    Attributes
    ----------
    capital : float
        Quote currency available to spend.
    assets : float
        Units of the traded asset already held.
    """

    capital: float = 10_000.0
    assets: float = 0.0


@dataclass
class DataConfig:
    """Data source configuration.

    Attributes
    ----------
    trading_csv : str
        Candle CSV of the traded asset.
    market_csv : str
        Candle CSV of the market benchmark.  Must share the traded
        asset's timestamps.
    timezone : str
        IANA timezone used to localise naive timestamps.
    """

    trading_csv: str = "data/trading.csv"
    market_csv: str = "data/market.csv"
    timezone: str = "UTC"


@dataclass
class IndicatorConfig:
    """One indicator of the strategy and its keyword parameters."""

    name: str
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass
class StrategyConfig:
    """Indicators combined into one signal.

    Attributes
    ----------
    consensus : str
        ``unison`` (all indicators must agree) or ``majority``.
    indicators : List[IndicatorConfig]
        Indicators in evaluation order.
    """

    consensus: str = "unison"
    indicators: List[IndicatorConfig] = field(
        default_factory=lambda: [IndicatorConfig("bbands"), IndicatorConfig("vwap")]
    )


@dataclass
class BacktestConfig:
    """Replay settings.

    Attributes
    ----------
    window_size : int
        Number of candles before the current one handed to the strategy
        and the risk engine.
    out_dir : str
        Directory for report artefacts.
    """

    window_size: int = 100
    out_dir: str = "results"


@dataclass
class Config:
    """Root configuration for the backtester."""

    manager: PositionManagerConfig
    portfolio: PortfolioConfig = field(default_factory=PortfolioConfig)
    data: DataConfig = field(default_factory=DataConfig)
    strategy: StrategyConfig = field(default_factory=StrategyConfig)
    backtest: BacktestConfig = field(default_factory=BacktestConfig)


def _merge_dict(defaults: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge two dictionaries.

    The values in `override` take precedence over those in `defaults`.
    This helper is used when loading YAML into nested dataclasses.
    """
    result: Dict[str, Any] = defaults.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _merge_dict(result[key], value)
        else:
            result[key] = value
    return result


def _indicator_configs(raw: List[Any]) -> List[IndicatorConfig]:
    indicators: List[IndicatorConfig] = []
    for item in raw:
        if isinstance(item, str):
            indicators.append(IndicatorConfig(item))
        elif isinstance(item, dict) and 'name' in item:
            params = {k: v for k, v in item.items() if k != 'name'}
            indicators.append(IndicatorConfig(str(item['name']), params))
        else:
            raise ConfigError(f"indicator entry must be a name or a mapping with 'name': {item!r}")
    return indicators


def config_from_dict(raw: Dict[str, Any]) -> Config:
    """Build a `Config` from an already parsed document."""
    if 'manager' not in raw or not isinstance(raw['manager'], dict):
        raise ConfigError("configuration requires a 'manager' section")

    # Build nested dictionaries representing the default dataclasses
    defaults: Dict[str, Any] = {
        'portfolio': {
            'capital': 10_000.0,
            'assets': 0.0,
        },
        'data': {
            'trading_csv': 'data/trading.csv',
            'market_csv': 'data/market.csv',
            'timezone': 'UTC',
        },
        'strategy': {
            'consensus': 'unison',
            'indicators': ['bbands', 'vwap'],
        },
        'backtest': {
            'window_size': 100,
            'out_dir': 'results',
        },
    }

    merged = _merge_dict(defaults, raw)

    try:
        portfolio_cfg = PortfolioConfig(**merged['portfolio'])
        data_cfg = DataConfig(**merged['data'])
        backtest_cfg = BacktestConfig(**merged['backtest'])
    except TypeError as exc:
        raise ConfigError(str(exc)) from exc

    if int(backtest_cfg.window_size) < 1:
        raise ConfigError("backtest.window_size must be at least 1")
    backtest_cfg.window_size = int(backtest_cfg.window_size)

    strategy_cfg = StrategyConfig(
        consensus=str(merged['strategy'].get('consensus', 'unison')).lower(),
        indicators=_indicator_configs(list(merged['strategy'].get('indicators', []))),
    )

    return Config(
        manager=PositionManagerConfig.from_mapping(merged['manager']),
        portfolio=portfolio_cfg,
        data=data_cfg,
        strategy=strategy_cfg,
        backtest=backtest_cfg,
    )


def load_config(path: str) -> Config:
    """Load a configuration file from the given YAML path.

    Parameters
    ----------
    path : str
        Path to the YAML file.

    Returns
    -------
    Config
        A populated configuration object.

    Raises
    ------
    ConfigError
        If the document is malformed or the manager limits are incomplete.
    """
    with open(path, "r", encoding="utf-8") as fh:
        try:
            raw = yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"could not parse {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")
    return config_from_dict(raw)
