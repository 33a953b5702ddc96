"""Protocol interfaces for the accounting engine's collaborators."""
from .price_oracle import PriceOracle
from .token import CollateralToken, DebtToken

__all__ = ["CollateralToken", "DebtToken", "PriceOracle"]
