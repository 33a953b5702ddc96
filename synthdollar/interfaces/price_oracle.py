"""Price oracle protocol."""
from typing import Protocol

from ..models import PriceQuote


class PriceOracle(Protocol):
    """Source of USD prices. The engine never trusts its freshness."""

    def latest_price(self, asset: str) -> PriceQuote: ...
