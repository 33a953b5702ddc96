"""Price oracle implementations."""
from .manual import ManualPriceOracle
from .pyth import PythOracle

__all__ = ["ManualPriceOracle", "PythOracle"]
