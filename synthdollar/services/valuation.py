"""USD valuation of collateral through staleness-checked oracle quotes."""
from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, Mapping

from ..config import AssetConfig
from ..errors import InvalidPrice, StalePrice, UnsupportedAsset
from ..interfaces.price_oracle import PriceOracle
from ..models import PriceQuote

logger = logging.getLogger(__name__)

# USD values and debt amounts are 18-decimal fixed point.
PRECISION = 10**18


class ValuationService:
    """Converts between asset quantities and USD.

    Holds one oracle per supported asset and refuses any quote that is older
    than ``timeout_seconds``, was never published, or is not positive. All
    arithmetic is integer, multiply-before-divide, rounding down.
    """

    def __init__(
        self,
        assets: Iterable[AssetConfig],
        oracles: Mapping[str, PriceOracle],
        timeout_seconds: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._assets: dict[str, AssetConfig] = {}
        for asset in assets:
            if asset.symbol in self._assets:
                raise ValueError(f"Duplicate collateral asset '{asset.symbol}'")
            self._assets[asset.symbol] = asset

        missing = [s for s in self._assets if s not in oracles]
        if missing:
            raise ValueError(f"No price oracle for assets: {', '.join(missing)}")
        unknown = [s for s in oracles if s not in self._assets]
        if unknown:
            raise ValueError(f"Price oracle for unsupported assets: {', '.join(unknown)}")

        self._oracles = dict(oracles)
        self._timeout = timeout_seconds
        self._clock = clock

    @property
    def assets(self) -> tuple[str, ...]:
        """Supported assets in construction order."""
        return tuple(self._assets)

    def is_supported(self, asset: str) -> bool:
        return asset in self._assets

    def decimals(self, asset: str) -> int:
        return self._asset(asset).decimals

    def _asset(self, asset: str) -> AssetConfig:
        try:
            return self._assets[asset]
        except KeyError:
            raise UnsupportedAsset(asset) from None

    def fresh_quote(self, asset: str) -> PriceQuote:
        """Return the oracle quote for ``asset`` or raise if it cannot be trusted."""
        self._asset(asset)
        quote = self._oracles[asset].latest_price(asset)

        now = self._clock()
        age = max(0.0, now - quote.updated_at)
        if quote.updated_at <= 0 or age > self._timeout:
            logger.warning("Rejecting stale %s quote (%.0fs old)", asset, age)
            raise StalePrice(asset, age)
        if quote.price <= 0:
            raise InvalidPrice(asset, quote.price)
        return quote

    def usd_value(self, asset: str, amount: int) -> int:
        """USD value (18 decimals) of ``amount`` smallest units of ``asset``."""
        quote = self.fresh_quote(asset)
        scale = 10 ** self._assets[asset].decimals * 10**quote.decimals
        return amount * quote.price * PRECISION // scale

    def asset_amount_for_usd(self, asset: str, usd: int) -> int:
        """Smallest units of ``asset`` worth ``usd`` (18 decimals) at the current price."""
        quote = self.fresh_quote(asset)
        scale = 10 ** self._assets[asset].decimals * 10**quote.decimals
        return usd * scale // (quote.price * PRECISION)

    def total_collateral_usd(self, balances: Mapping[str, int]) -> int:
        """Sum of USD values over supported assets, in construction order.

        Zero balances contribute zero without consulting their oracle.
        """
        total = 0
        for asset in self._assets:
            amount = balances.get(asset, 0)
            if amount:
                total += self.usd_value(asset, amount)
        return total
