"""In-process price feed for simulations and tests."""
from __future__ import annotations

import logging
import time
from typing import Callable

from ..models import PriceQuote

logger = logging.getLogger(__name__)


class ManualPriceOracle:
    """Price oracle whose quotes are pushed by the caller.

    Quotes are stamped with ``clock()`` unless an explicit ``updated_at`` is
    given. An asset that was never set reports a zero-timestamp quote, which
    the valuation layer treats as stale.
    """

    def __init__(
        self,
        prices: dict[str, int] | None = None,
        decimals: int = 8,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._clock = clock
        self._decimals = decimals
        self._quotes: dict[str, PriceQuote] = {}
        for asset, price in (prices or {}).items():
            self.set_price(asset, price)

    def set_price(
        self,
        asset: str,
        price: int,
        decimals: int | None = None,
        updated_at: float | None = None,
    ) -> PriceQuote:
        quote = PriceQuote(
            price=price,
            decimals=self._decimals if decimals is None else decimals,
            updated_at=self._clock() if updated_at is None else updated_at,
        )
        self._quotes[asset] = quote
        logger.debug("Price set: %s = %s (1e-%d)", asset, price, quote.decimals)
        return quote

    def latest_price(self, asset: str) -> PriceQuote:
        return self._quotes.get(asset, PriceQuote(price=0, decimals=self._decimals, updated_at=0))
