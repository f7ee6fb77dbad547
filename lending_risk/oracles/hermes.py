"""Pyth Hermes price board — probabilistic feed refreshed over HTTP."""
from __future__ import annotations

import logging
import ssl
from typing import Iterable

import aiohttp
import certifi

from ..models import PythPrice

logger = logging.getLogger(__name__)

DEFAULT_HERMES_URL = "https://hermes.pyth.network/v2/updates/price/latest"


def _normalize_id(feed_id: str) -> str:
    return feed_id.lower().removeprefix("0x")


class HermesPriceBoard:
    """Hold the latest Pyth update per feed id.

    Reads are synchronous and return whatever was last pushed; the oracle
    judges staleness. ``refresh`` pulls new updates from Hermes.
    """

    def __init__(self, hermes_url: str = DEFAULT_HERMES_URL, timeout: int = 30) -> None:
        self.hermes_url = hermes_url
        self.timeout = timeout
        self._updates: dict[str, PythPrice] = {}

    def push(self, feed_id: str, update: PythPrice) -> None:
        self._updates[_normalize_id(feed_id)] = update

    def get_price_unsafe(self, feed_id: str) -> PythPrice:
        """Return the last update for ``feed_id``. Raises KeyError if none."""
        try:
            return self._updates[_normalize_id(feed_id)]
        except KeyError:
            raise KeyError(f"No update for price feed {feed_id}") from None

    async def refresh(self, feed_ids: Iterable[str]) -> int:
        """Fetch the latest updates for ``feed_ids``. Returns how many were stored."""
        ids = sorted({_normalize_id(fid) for fid in feed_ids if fid})
        if not ids:
            return 0

        query_params = "&".join([f"ids[]={fid}" for fid in ids])
        url = f"{self.hermes_url}?{query_params}"

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        stored = 0
        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(
                    url, timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as response:
                    if response.status != 200:
                        logger.error(
                            "Error fetching prices from Hermes: HTTP %s", response.status
                        )
                        return stored

                    data = await response.json()
                    for item in data.get("parsed", []):
                        feed_id = item.get("id")
                        price_data = item.get("price")
                        if not feed_id or not price_data:
                            continue
                        update = PythPrice.from_hermes(price_data)
                        self.push(feed_id, update)
                        stored += 1
                        logger.debug(
                            "Hermes %s: price=%d conf=%d expo=%d t=%d",
                            feed_id, update.price, update.conf,
                            update.expo, update.publish_time,
                        )
        except Exception as e:
            logger.error("Error fetching prices from Hermes: %s", e)

        logger.info("Stored %d of %d Pyth updates", stored, len(ids))
        return stored
