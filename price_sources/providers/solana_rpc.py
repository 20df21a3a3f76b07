"""
Solana RPC Source - Chain RPC adapter for token validation and metadata.

A plain RPC node cannot price tokens, so this venue never returns a
price. It answers supports() by checking that the mint account exists.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import aiohttp

from price_sources.base import BasePriceSource
from price_sources.constants import TOKEN_SYMBOLS
from price_sources.exceptions import PriceSourceError
from price_sources.models import PriceQuote, SourceMetadata, TokenInfo


logger = logging.getLogger(__name__)


class SolanaRpcSource(BasePriceSource):
    """
    Solana JSON-RPC node.

    Method used:
    - getAccountInfo(<mint>, {"encoding": "jsonParsed"})
    """

    RPC_URL = "https://api.mainnet-beta.solana.com"

    # Mint metadata changes rarely
    TOKEN_INFO_TTL = 3600.0
    MAX_TOKEN_INFO = 1000

    def __init__(
        self,
        rpc_url: str = RPC_URL,
        commitment: str = "confirmed",
        token_info_ttl: float = TOKEN_INFO_TTL,
        session: Optional[aiohttp.ClientSession] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(session=session, **kwargs)
        self._rpc_url = rpc_url
        self._commitment = commitment
        self._token_info_ttl = token_info_ttl
        # token -> (monotonic store time, info)
        self._token_info: dict[str, tuple[float, TokenInfo]] = {}
        self._request_id = 0

    @property
    def name(self) -> str:
        return "solana_rpc"

    def metadata(self) -> SourceMetadata:
        return SourceMetadata(
            name=self.name,
            display_name="Solana RPC",
            base_url=self._rpc_url,
            documentation_url="https://solana.com/docs/rpc/http/getaccountinfo",
            provides_prices=False,
            tags=["rpc", "metadata", "solana"],
        )

    async def fetch_raw(self, token: str) -> None:
        # Direct RPC calls can't get price data
        return None

    def normalize(self, raw_data: Any, token: str) -> Optional[PriceQuote]:
        return None

    async def supports(self, token: str) -> bool:
        return await self.get_token_info(token) is not None

    def clear_cache(self) -> None:
        self._token_info.clear()
        super().clear_cache()

    async def get_token_info(self, token: str) -> Optional[TokenInfo]:
        """Metadata for the mint account, or None if it does not exist."""
        if not token:
            return None

        cached = self._token_info.get(token)
        if cached is not None:
            stored_at, info = cached
            if self._clock() - stored_at < self._token_info_ttl:
                return info
            del self._token_info[token]

        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": "getAccountInfo",
            "params": [token, {"encoding": "jsonParsed", "commitment": self._commitment}],
        }

        try:
            data = await self._call_with_retry(
                lambda: self._make_request("POST", self._rpc_url, json_body=payload),
                token,
            )
        except PriceSourceError as e:
            self._on_error(e, token)
            return None

        self._on_success()

        info = self._parse_account_info(data, token)
        if info is not None:
            self._remember_token_info(token, info)
        return info

    def _remember_token_info(self, token: str, info: TokenInfo) -> None:
        now = self._clock()
        self._token_info[token] = (now, info)
        if len(self._token_info) <= self.MAX_TOKEN_INFO:
            return

        expired = [
            key for key, (stored_at, _) in self._token_info.items()
            if now - stored_at >= self._token_info_ttl
        ]
        for key in expired:
            del self._token_info[key]

        # Oldest first, by insertion order
        while len(self._token_info) > self.MAX_TOKEN_INFO:
            del self._token_info[next(iter(self._token_info))]

    def _parse_account_info(self, data: Any, token: str) -> Optional[TokenInfo]:
        if not isinstance(data, dict) or data.get("error"):
            logger.warning(f"[{self.name}] RPC error for {token}: {data.get('error') if isinstance(data, dict) else data}")
            return None

        value = (data.get("result") or {}).get("value")
        if not value:
            logger.info(f"[{self.name}] No account found for {token}")
            return None

        decimals: Optional[int] = None
        supply: Optional[Decimal] = None
        account_data = value.get("data")
        if isinstance(account_data, dict):
            parsed_info = (account_data.get("parsed") or {}).get("info") or {}
            if parsed_info.get("decimals") is not None:
                decimals = int(parsed_info["decimals"])
            if parsed_info.get("supply") is not None:
                try:
                    supply = Decimal(str(parsed_info["supply"]))
                except (InvalidOperation, ValueError):
                    supply = None

        return TokenInfo(
            address=token,
            symbol=TOKEN_SYMBOLS.get(token, ""),
            decimals=decimals,
            supply=supply,
        )
