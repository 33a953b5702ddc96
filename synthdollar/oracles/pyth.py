"""Pyth Network price oracle service."""
from __future__ import annotations

import logging
import ssl

import aiohttp
import certifi

from ..config import PythConfig
from ..models import PriceQuote

logger = logging.getLogger(__name__)


def _normalize_feed_id(feed_id: str) -> str:
    return feed_id.lower().removeprefix("0x")


def parse_price(item: dict) -> PriceQuote:
    """Convert one Hermes ``parsed`` entry into an integer quote."""
    price_data = item.get("price", {})
    price_raw = int(price_data.get("price", 0))
    expo = int(price_data.get("expo", 0))
    publish_time = float(price_data.get("publish_time", 0))

    # Pyth exponents are normally negative: price = price_raw * 10**expo
    if expo <= 0:
        return PriceQuote(price=price_raw, decimals=-expo, updated_at=publish_time)
    return PriceQuote(price=price_raw * 10**expo, decimals=0, updated_at=publish_time)


class PythOracle:
    """Cache of Pyth Network quotes, refreshed over HTTP.

    ``refresh`` is the only network call; ``latest_price`` serves the cache so
    engine operations never block on I/O beyond a dictionary lookup. A failed
    refresh leaves old quotes in place and the staleness check takes over.
    """

    def __init__(self, config: PythConfig, feeds: dict[str, str]) -> None:
        self.hermes_url = config.hermes_url
        self.timeout = config.timeout
        self.price_feeds = dict(feeds)
        self._quotes: dict[str, PriceQuote] = {}

    def latest_price(self, asset: str) -> PriceQuote:
        return self._quotes.get(asset, PriceQuote(price=0, decimals=0, updated_at=0))

    async def refresh(self, symbols: list[str] | None = None) -> dict[str, PriceQuote]:
        """Fetch current prices from Pyth Network and update the cache.

        Args:
            symbols: Optional list of symbols to fetch. If None, fetches all
                     configured feeds.

        Returns:
            The quotes received by this call, keyed by asset symbol.
        """
        quotes: dict[str, PriceQuote] = {}

        feeds = self.price_feeds
        if symbols is not None:
            feeds = {k: v for k, v in self.price_feeds.items() if k in symbols}

        feed_ids = list({_normalize_feed_id(fid) for fid in feeds.values()})
        if not feed_ids:
            return quotes

        query_params = "&".join([f"ids[]={fid}" for fid in feed_ids])
        url = f"{self.hermes_url}?{query_params}"

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(
                    url, timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as response:
                    if response.status != 200:
                        logger.error(
                            "Error fetching prices from Pyth: HTTP %s", response.status
                        )
                        return quotes

                    data = await response.json()
                    parsed = data.get("parsed", [])

                    # Several assets may share one feed
                    id_to_assets: dict[str, list[str]] = {}
                    for asset, feed_id in feeds.items():
                        id_to_assets.setdefault(_normalize_feed_id(feed_id), []).append(asset)

                    for item in parsed:
                        feed_id = _normalize_feed_id(item.get("id", ""))
                        if feed_id not in id_to_assets:
                            continue
                        quote = parse_price(item)
                        for asset in id_to_assets[feed_id]:
                            quotes[asset] = quote

        except Exception as e:
            logger.error("Error fetching prices from Pyth: %s", e)
            return {}

        self._quotes.update(quotes)
        for asset, quote in sorted(quotes.items()):
            logger.info(
                "  %s: %s (1e-%d) published %.0f",
                asset, quote.price, quote.decimals, quote.updated_at,
            )
        return quotes
