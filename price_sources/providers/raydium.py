"""
Raydium Price Source - AMM pool API adapter.

Prices a token from its deepest Raydium pool, preferring a USDC pair
and falling back to a wrapped-SOL pair.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import aiohttp

from price_sources.base import BasePriceSource, parse_price
from price_sources.constants import NATIVE_REFERENCE_MINT, STABLE_REFERENCE_MINT
from price_sources.exceptions import NormalizationError
from price_sources.models import Confidence, PriceQuote, SourceMetadata


logger = logging.getLogger(__name__)


def _tvl(pool: dict[str, Any]) -> Decimal:
    try:
        return Decimal(str(pool.get("tvl") or 0))
    except (InvalidOperation, ValueError):
        return Decimal("0")


class RaydiumPriceSource(BasePriceSource):
    """
    Raydium v3 pool info API.

    Endpoint used:
    - GET /pools/info/mint?mint1=<mint>&poolType=all&sortField=tvl&sortType=desc

    Pool price is quoted as mintB per mintA.

    Pair selection:
    1. Pools pairing the token with USDC
    2. Otherwise pools pairing it with wrapped SOL (converted with SOL's USDC price)
    3. Otherwise no price
    Among candidates the highest TVL wins.
    """

    BASE_URL = "https://api-v3.raydium.io/pools/info/mint"
    PAGE_SIZE = 10

    # TVL (USD) needed for each confidence level
    HIGH_CONFIDENCE_TVL = Decimal("1000000")
    MEDIUM_CONFIDENCE_TVL = Decimal("10000")

    def __init__(
        self,
        base_url: str = BASE_URL,
        stable_mint: str = STABLE_REFERENCE_MINT,
        native_mint: str = NATIVE_REFERENCE_MINT,
        session: Optional[aiohttp.ClientSession] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(session=session, **kwargs)
        self._base_url = base_url
        self._stable_mint = stable_mint
        self._native_mint = native_mint

    @property
    def name(self) -> str:
        return "raydium"

    def metadata(self) -> SourceMetadata:
        return SourceMetadata(
            name=self.name,
            display_name="Raydium",
            base_url=self._base_url,
            documentation_url="https://docs.raydium.io/raydium/traders/raydium-api",
            tags=["amm", "pools", "solana"],
        )

    async def fetch_raw(self, token: str) -> Optional[dict[str, Any]]:
        pools = await self._fetch_pools(token)
        if not pools:
            logger.debug(f"[{self.name}] No pools found for token: {token}")
            return None

        raw: dict[str, Any] = {"pools": pools, "native_pools": []}

        # SOL-quoted prices need SOL's own USD price
        needs_native = (
            token != self._native_mint
            and not self._candidates(pools, token, self._stable_mint)
            and self._candidates(pools, token, self._native_mint)
        )
        if needs_native:
            raw["native_pools"] = await self._fetch_pools(self._native_mint)

        return raw

    async def _fetch_pools(self, mint: str) -> list[dict[str, Any]]:
        params = {
            "mint1": mint,
            "poolType": "all",
            "sortField": "tvl",
            "sortType": "desc",
            "pageSize": self.PAGE_SIZE,
            "page": 1,
        }
        data = await self._make_request("GET", self._base_url, params=params)

        if not isinstance(data, dict):
            raise NormalizationError(
                message="Unexpected response type",
                source_name=self.name,
                raw_data=data,
            )

        pools = data.get("data")
        # v3 wraps the page: {"data": {"count": n, "data": [...]}}
        if isinstance(pools, dict):
            pools = pools.get("data")
        if pools is None:
            return []
        if not isinstance(pools, list):
            raise NormalizationError(
                message="Pool list is not an array",
                source_name=self.name,
                raw_data=pools,
                field_name="data",
            )
        return pools

    def normalize(self, raw_data: dict[str, Any], token: str) -> Optional[PriceQuote]:
        try:
            return self._normalize(raw_data, token)
        except NormalizationError:
            raise
        except (KeyError, TypeError, AttributeError) as e:
            raise NormalizationError(
                message=f"Failed to normalize pools: {e}",
                source_name=self.name,
                raw_data=raw_data,
                original_error=e,
            )

    def _normalize(self, raw_data: dict[str, Any], token: str) -> Optional[PriceQuote]:
        pools = raw_data.get("pools") or []

        pool = self.select_pool(pools, token, self._stable_mint)
        if pool is not None:
            price = self._oriented_price(pool, token)
            return self._build_quote(token, pool, price)

        pool = self.select_pool(pools, token, self._native_mint)
        if pool is None:
            logger.info(f"[{self.name}] No suitable pools found for token: {token}")
            return None

        price_in_native = self._oriented_price(pool, token)
        if price_in_native is None:
            return None

        native_pool = self.select_pool(
            raw_data.get("native_pools") or [],
            self._native_mint,
            self._stable_mint,
        )
        if native_pool is None:
            logger.info(f"[{self.name}] No USD reference for native pair of {token}")
            return None

        native_usd = self._oriented_price(native_pool, self._native_mint)
        if native_usd is None:
            return None

        return self._build_quote(token, pool, price_in_native * native_usd)

    def select_pool(
        self,
        pools: list[dict[str, Any]],
        token: str,
        reference: str,
    ) -> Optional[dict[str, Any]]:
        """Deepest pool pairing token with reference, or None."""
        candidates = self._candidates(pools, token, reference)
        if not candidates:
            return None
        return max(candidates, key=_tvl)

    @staticmethod
    def _candidates(
        pools: list[dict[str, Any]],
        token: str,
        reference: str,
    ) -> list[dict[str, Any]]:
        result = []
        for pool in pools:
            mint_a = pool["mintA"]["address"]
            mint_b = pool["mintB"]["address"]
            if (mint_a, mint_b) in ((token, reference), (reference, token)):
                result.append(pool)
        return result

    def _oriented_price(self, pool: dict[str, Any], token: str) -> Optional[Decimal]:
        """Price of token in the pool's other asset."""
        price = parse_price(pool.get("price"))
        if price is None:
            logger.info(f"[{self.name}] Invalid pool price in {pool.get('id')}")
            return None
        if pool["mintA"]["address"] == token:
            return price
        return Decimal(1) / price

    def _build_quote(
        self,
        token: str,
        pool: dict[str, Any],
        price: Optional[Decimal],
    ) -> Optional[PriceQuote]:
        if price is None:
            return None

        tvl = _tvl(pool)
        if tvl >= self.HIGH_CONFIDENCE_TVL:
            confidence = Confidence.HIGH
        elif tvl >= self.MEDIUM_CONFIDENCE_TVL:
            confidence = Confidence.MEDIUM
        else:
            confidence = Confidence.LOW

        logger.debug(
            f"[{self.name}] Best pool for {token}: id={pool.get('id')} "
            f"tvl={tvl} price={price} "
            f"base={pool['mintA'].get('symbol')} quote={pool['mintB'].get('symbol')}"
        )

        return self._make_quote(
            token,
            price,
            confidence,
            liquidity_usd=tvl,
            pair_address=pool.get("id"),
        )
