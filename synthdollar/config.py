"""Configuration loader: reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RiskConfig:
    """Protocol constants. Percentages are expressed over ``liquidation_precision``."""

    liquidation_threshold: int = 50
    liquidation_bonus: int = 10
    liquidation_precision: int = 100
    min_health_factor: int = 10**18
    price_timeout_seconds: int = 3 * 60 * 60


@dataclass(frozen=True)
class AssetConfig:
    symbol: str = ""
    decimals: int = 18
    feed_id: str = ""


@dataclass(frozen=True)
class EngineConfig:
    address: str = "engine"


@dataclass(frozen=True)
class PythConfig:
    hermes_url: str = "https://hermes.pyth.network/v2/updates/price/latest"
    timeout: int = 30


@dataclass(frozen=True)
class PriceOracleConfig:
    provider: str = "pyth"
    pyth: PythConfig = field(default_factory=PythConfig)


@dataclass(frozen=True)
class AppConfig:
    engine: EngineConfig = field(default_factory=EngineConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)
    assets: tuple[AssetConfig, ...] = ()
    price_oracle: PriceOracleConfig = field(default_factory=PriceOracleConfig)

    def feeds(self) -> dict[str, str]:
        """Asset symbol -> oracle feed id."""
        return {a.symbol: a.feed_id for a in self.assets}


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


def _build_engine(raw: dict[str, Any]) -> EngineConfig:
    return EngineConfig(address=str(raw.get("address", "engine")))


def _build_risk(raw: dict[str, Any]) -> RiskConfig:
    defaults = RiskConfig()
    return RiskConfig(
        liquidation_threshold=int(
            raw.get("liquidation_threshold", defaults.liquidation_threshold)
        ),
        liquidation_bonus=int(raw.get("liquidation_bonus", defaults.liquidation_bonus)),
        liquidation_precision=int(
            raw.get("liquidation_precision", defaults.liquidation_precision)
        ),
        min_health_factor=int(raw.get("min_health_factor", defaults.min_health_factor)),
        price_timeout_seconds=int(
            raw.get("price_timeout_seconds", defaults.price_timeout_seconds)
        ),
    )


def _build_assets(raw: list[dict[str, Any]]) -> tuple[AssetConfig, ...]:
    assets: list[AssetConfig] = []
    for a in raw:
        assets.append(
            AssetConfig(
                symbol=str(a.get("symbol", "")),
                decimals=int(a.get("decimals", 18)),
                feed_id=str(a.get("feed_id", "")),
            )
        )
    return tuple(assets)


def _build_price_oracle(raw: dict[str, Any]) -> PriceOracleConfig:
    pyth_raw = raw.get("pyth", {}) or {}
    return PriceOracleConfig(
        provider=raw.get("provider", "pyth"),
        pyth=PythConfig(
            hermes_url=pyth_raw.get("hermes_url", PythConfig.hermes_url),
            timeout=int(pyth_raw.get("timeout", PythConfig.timeout)),
        ),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate engine configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from the package).
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

    cfg = AppConfig(
        engine=_build_engine(raw.get("engine", {}) or {}),
        risk=_build_risk(raw.get("risk", {}) or {}),
        assets=_build_assets(raw.get("assets", []) or []),
        price_oracle=_build_price_oracle(raw.get("price_oracle", {}) or {}),
    )

    validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.assets:
        raise ValueError("At least one collateral asset must be configured")

    seen: set[str] = set()
    for asset in cfg.assets:
        if not asset.symbol:
            raise ValueError("Collateral asset has no symbol")
        if asset.symbol in seen:
            raise ValueError(f"Duplicate collateral asset '{asset.symbol}'")
        seen.add(asset.symbol)
        if not asset.feed_id:
            raise ValueError(f"Asset '{asset.symbol}' has no price feed")
        if asset.decimals < 0:
            raise ValueError(f"Asset '{asset.symbol}' has negative decimals")

    validate_risk(cfg.risk)


def validate_risk(risk: RiskConfig) -> None:
    """Raise on protocol constants that would make the health factor meaningless."""
    if risk.liquidation_precision <= 0:
        raise ValueError("liquidation_precision must be positive")
    if not 0 < risk.liquidation_threshold <= risk.liquidation_precision:
        raise ValueError("liquidation_threshold must be in (0, liquidation_precision]")
    if risk.liquidation_bonus < 0:
        raise ValueError("liquidation_bonus must not be negative")
    if risk.min_health_factor <= 0:
        raise ValueError("min_health_factor must be positive")
    if risk.price_timeout_seconds <= 0:
        raise ValueError("price_timeout_seconds must be positive")
