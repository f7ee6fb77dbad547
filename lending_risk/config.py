"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .fixed_point import EXP_SCALE
from .models import Classification, Valuation
from .oracles.hermes import DEFAULT_HERMES_URL

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineConfig:
    admin: str = "admin"
    pause_guardian: str = ""
    borrow_cap_guardian: str = ""
    close_factor_mantissa: int = EXP_SCALE // 2
    liquidation_incentive_mantissa: int = 108 * EXP_SCALE // 100
    segregation_mode: bool = False


@dataclass(frozen=True)
class OracleConfig:
    admin: str = ""
    hermes_url: str = DEFAULT_HERMES_URL
    hermes_timeout: int = 30


@dataclass(frozen=True)
class PriceFeedConfig:
    base_unit: int = 10**18
    feed_decimals: int = 8
    answer: int = 0
    updated_at: int = 0
    pyth_feed_id: str = ""
    max_price_age: int = 3600
    valuation: Valuation = Valuation.COLLATERAL


@dataclass(frozen=True)
class MarketConfig:
    address: str = ""
    underlying: str = ""
    collateral_factor_mantissa: int = 0
    classification: Classification = Classification.UNCLASSIFIED
    borrow_cap: int = 0
    exchange_rate_mantissa: int = EXP_SCALE
    reserve_factor_mantissa: int = 0
    price: PriceFeedConfig = field(default_factory=PriceFeedConfig)


@dataclass(frozen=True)
class PositionConfig:
    tokens: int = 0
    borrows: int = 0


@dataclass(frozen=True)
class AccountConfig:
    label: str = ""
    address: str = ""
    positions: dict[str, PositionConfig] = field(default_factory=dict)


@dataclass(frozen=True)
class AppConfig:
    engine: EngineConfig = field(default_factory=EngineConfig)
    oracle: OracleConfig = field(default_factory=OracleConfig)
    markets: tuple[MarketConfig, ...] = ()
    accounts: tuple[AccountConfig, ...] = ()


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _mantissa(value: Any) -> int:
    """Turn a decimal fraction such as ``0.75`` into a 1e18 mantissa, exactly."""
    return int(Decimal(str(value)) * EXP_SCALE)


def _flag(value: Any) -> bool:
    """YAML booleans pass through; interpolated strings such as ``"false"`` are parsed."""
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _enum_by_name(enum_cls: type, raw: Any, default: Any) -> Any:
    if raw is None or raw == "":
        return default
    try:
        return enum_cls[str(raw).upper()]
    except KeyError:
        names = ", ".join(m.name.lower() for m in enum_cls)
        raise ValueError(f"Unknown {enum_cls.__name__} '{raw}' (expected one of: {names})") from None


def _build_engine(raw: dict[str, Any]) -> EngineConfig:
    return EngineConfig(
        admin=str(raw.get("admin", "admin")),
        pause_guardian=str(raw.get("pause_guardian", "")),
        borrow_cap_guardian=str(raw.get("borrow_cap_guardian", "")),
        close_factor_mantissa=_mantissa(raw.get("close_factor", "0.5")),
        liquidation_incentive_mantissa=_mantissa(raw.get("liquidation_incentive", "1.08")),
        segregation_mode=_flag(raw.get("segregation_mode", False)),
    )


def _build_oracle(raw: dict[str, Any], engine: EngineConfig) -> OracleConfig:
    return OracleConfig(
        admin=str(raw.get("admin") or engine.admin),
        hermes_url=raw.get("hermes_url", DEFAULT_HERMES_URL),
        hermes_timeout=int(raw.get("hermes_timeout", 30)),
    )


def _build_price(raw: dict[str, Any]) -> PriceFeedConfig:
    return PriceFeedConfig(
        base_unit=int(raw.get("base_unit", 10**18)),
        feed_decimals=int(raw.get("feed_decimals", 8)),
        answer=int(raw.get("answer", 0)),
        updated_at=int(raw.get("updated_at", 0)),
        pyth_feed_id=str(raw.get("pyth_feed_id", "")),
        max_price_age=int(raw.get("max_price_age", 3600)),
        valuation=_enum_by_name(Valuation, raw.get("valuation"), Valuation.COLLATERAL),
    )


def _build_markets(raw: list[dict[str, Any]]) -> tuple[MarketConfig, ...]:
    markets: list[MarketConfig] = []
    for m in raw:
        markets.append(
            MarketConfig(
                address=str(m.get("address", "")),
                underlying=str(m.get("underlying", "")),
                collateral_factor_mantissa=_mantissa(m.get("collateral_factor", 0)),
                classification=_enum_by_name(
                    Classification, m.get("classification"), Classification.UNCLASSIFIED
                ),
                borrow_cap=int(m.get("borrow_cap", 0)),
                exchange_rate_mantissa=_mantissa(m.get("exchange_rate", 1)),
                reserve_factor_mantissa=_mantissa(m.get("reserve_factor", 0)),
                price=_build_price(m.get("price", {})),
            )
        )
    return tuple(markets)


def _build_accounts(raw: list[dict[str, Any]]) -> tuple[AccountConfig, ...]:
    accounts: list[AccountConfig] = []
    for a in raw:
        positions = {
            market: PositionConfig(
                tokens=int(pos.get("tokens", 0)),
                borrows=int(pos.get("borrows", 0)),
            )
            for market, pos in (a.get("positions") or {}).items()
        }
        accounts.append(
            AccountConfig(
                label=str(a.get("label", "")),
                address=str(a.get("address", "")),
                positions=positions,
            )
        )
    return tuple(accounts)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from this package).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    engine = _build_engine(raw.get("engine", {}))
    cfg = AppConfig(
        engine=engine,
        oracle=_build_oracle(raw.get("oracle", {}), engine),
        markets=_build_markets(raw.get("markets", [])),
        accounts=_build_accounts(raw.get("accounts", [])),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.markets:
        raise ValueError("At least one market must be configured")

    seen: set[str] = set()
    for market in cfg.markets:
        if not market.address:
            raise ValueError(f"Market for '{market.underlying}' has no address")
        if market.address in seen:
            raise ValueError(f"Duplicate market '{market.address}'")
        seen.add(market.address)
        if market.price.base_unit <= 0:
            raise ValueError(f"Market '{market.address}' has a non-positive base unit")

    for account in cfg.accounts:
        if not account.address:
            raise ValueError(f"Account '{account.label}' has no address")
        for market in account.positions:
            if market not in seen:
                raise ValueError(
                    f"Account '{account.label}' references unknown market '{market}'"
                )
