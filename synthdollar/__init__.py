"""Collateral-backed synthetic dollar accounting engine."""
from .config import AppConfig, AssetConfig, RiskConfig, load_config
from .errors import (
    EngineError,
    HealthFactorBroken,
    HealthFactorNotImproved,
    HealthFactorOk,
    InsufficientBalance,
    InvalidAmount,
    InvalidPrice,
    MintFailed,
    NeedsMoreThanZero,
    NotAllowedToken,
    ReentrantCall,
    StalePrice,
    TransferFailed,
    UnsupportedAsset,
)
from .models import AccountInformation, LiquidationResult, PriceQuote
from .services import MAX_HEALTH_FACTOR, PRECISION, AccountingEngine

__all__ = [
    "AccountInformation",
    "AccountingEngine",
    "AppConfig",
    "AssetConfig",
    "EngineError",
    "HealthFactorBroken",
    "HealthFactorNotImproved",
    "HealthFactorOk",
    "InsufficientBalance",
    "InvalidAmount",
    "InvalidPrice",
    "LiquidationResult",
    "MAX_HEALTH_FACTOR",
    "MintFailed",
    "NeedsMoreThanZero",
    "NotAllowedToken",
    "PRECISION",
    "PriceQuote",
    "ReentrantCall",
    "RiskConfig",
    "StalePrice",
    "TransferFailed",
    "UnsupportedAsset",
    "load_config",
]
