"""
Serum Price Source - Order book mid-price adapter.

Only tokens with a configured USDC-quoted market are supported.
"""

import logging
from decimal import Decimal
from typing import Any, Optional

import aiohttp

from price_sources.base import BasePriceSource, parse_price
from price_sources.exceptions import NormalizationError
from price_sources.models import Confidence, PriceQuote, SourceMetadata


logger = logging.getLogger(__name__)


class SerumPriceSource(BasePriceSource):
    """
    Serum/OpenBook order book.

    Endpoint used:
    - GET <base_url>/<market address>

    Response shape:
        {"bids": [[price, size], ...], "asks": [[price, size], ...]}

    Price is the mid of best bid and best ask. An empty side means no price.
    """

    BASE_URL = "https://openserum.io/api/serum/market"

    def __init__(
        self,
        markets: Optional[dict[str, str]] = None,
        base_url: str = BASE_URL,
        session: Optional[aiohttp.ClientSession] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(session=session, **kwargs)
        self._markets = dict(markets or {})
        self._base_url = base_url.rstrip("/")

    @property
    def name(self) -> str:
        return "serum"

    def metadata(self) -> SourceMetadata:
        return SourceMetadata(
            name=self.name,
            display_name="Serum",
            base_url=self._base_url,
            tags=["orderbook", "solana"],
        )

    def find_market_address(self, token: str) -> Optional[str]:
        return self._markets.get(token)

    async def supports(self, token: str) -> bool:
        return self.find_market_address(token) is not None

    async def fetch_raw(self, token: str) -> Optional[dict[str, Any]]:
        market = self.find_market_address(token)
        if market is None:
            return None

        data = await self._make_request("GET", f"{self._base_url}/{market}")
        if not isinstance(data, dict):
            raise NormalizationError(
                message="Unexpected response type",
                source_name=self.name,
                raw_data=data,
            )
        return data

    def normalize(self, raw_data: dict[str, Any], token: str) -> Optional[PriceQuote]:
        try:
            bids = [parse_price(level[0]) for level in raw_data.get("bids") or []]
            asks = [parse_price(level[0]) for level in raw_data.get("asks") or []]
        except (TypeError, IndexError, KeyError) as e:
            raise NormalizationError(
                message=f"Malformed order book: {e}",
                source_name=self.name,
                raw_data=raw_data,
                original_error=e,
            )

        bids = [p for p in bids if p is not None]
        asks = [p for p in asks if p is not None]
        if not bids or not asks:
            logger.info(f"[{self.name}] Empty order book side for {token}")
            return None

        mid_price = (max(bids) + min(asks)) / Decimal(2)
        return self._make_quote(
            token,
            mid_price,
            Confidence.MEDIUM,
            pair_address=self.find_market_address(token),
        )
