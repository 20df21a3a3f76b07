"""
Jupiter Price Source - Public price API adapter.

Jupiter aggregates liquidity across Solana DEXes and reports a
confidence level with each price. No authentication required.
"""

import logging
from typing import Any, Optional

import aiohttp

from price_sources.base import BasePriceSource, parse_price
from price_sources.exceptions import NormalizationError
from price_sources.models import Confidence, PriceQuote, SourceMetadata


logger = logging.getLogger(__name__)


class JupiterPriceSource(BasePriceSource):
    """
    Jupiter price API v2.

    Endpoint used:
    - GET /price/v2?ids=<mint>&showExtraInfo=true

    Response shape:
        {"data": {"<mint>": {"id": ..., "price": "1.23",
                             "extraInfo": {"confidenceLevel": "high"}}}}
    """

    BASE_URL = "https://api.jup.ag/price/v2"

    def __init__(
        self,
        base_url: str = BASE_URL,
        session: Optional[aiohttp.ClientSession] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(session=session, **kwargs)
        self._base_url = base_url

    @property
    def name(self) -> str:
        return "jupiter"

    def metadata(self) -> SourceMetadata:
        return SourceMetadata(
            name=self.name,
            display_name="Jupiter",
            base_url=self._base_url,
            documentation_url="https://station.jup.ag/docs/apis/price-api-v2",
            tags=["aggregator", "solana"],
        )

    async def fetch_raw(self, token: str) -> Optional[dict[str, Any]]:
        params = {"ids": token, "showExtraInfo": "true"}
        data = await self._make_request("GET", self._base_url, params=params)

        if not isinstance(data, dict):
            raise NormalizationError(
                message="Unexpected response type",
                source_name=self.name,
                raw_data=data,
            )

        token_data = (data.get("data") or {}).get(token)
        if not token_data:
            logger.debug(f"[{self.name}] No price data found for token: {token}")
            return None
        return token_data

    def normalize(self, raw_data: dict[str, Any], token: str) -> Optional[PriceQuote]:
        if not isinstance(raw_data, dict):
            raise NormalizationError(
                message="Token entry is not an object",
                source_name=self.name,
                raw_data=raw_data,
            )

        price = parse_price(raw_data.get("price"))
        if price is None:
            logger.info(f"[{self.name}] Invalid price format for token: {token}")
            return None

        extra_info = raw_data.get("extraInfo") or {}
        confidence = Confidence.parse(extra_info.get("confidenceLevel"))

        return self._make_quote(token, price, confidence)
