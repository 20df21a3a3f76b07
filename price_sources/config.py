"""
Price Sources - Configuration.

============================================================
PURPOSE
============================================================
Timing, retry and endpoint settings shared by all venues.

Values can be overridden through environment variables
(a local .env file is honoured).

============================================================
"""

import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from dotenv import load_dotenv


def parse_mapping(raw: Optional[str]) -> Dict[str, str]:
    """Parse "key:value,key:value" into a dict, skipping malformed items."""
    result: Dict[str, str] = {}
    if not raw:
        return result
    for item in raw.split(","):
        key, sep, value = item.strip().partition(":")
        if sep and key.strip() and value.strip():
            result[key.strip()] = value.strip()
    return result


@dataclass
class PriceSourceConfig:
    """
    Configuration for venue adapters and the aggregator.
    """

    # Caching
    cache_ttl_seconds: float = 30.0
    """Freshness window for venue and aggregator caches."""

    # Rate limiting
    min_request_interval_seconds: float = 0.1
    """Minimum spacing between two requests of one venue."""

    # Retry
    max_retries: int = 3
    """Attempts per price lookup before giving up."""

    retry_delay_seconds: float = 1.0
    """Base delay; attempt N waits N x this value."""

    # Timeout
    request_timeout_seconds: float = 5.0
    """Timeout of a single venue call."""

    # Endpoints
    jupiter_api_url: str = "https://api.jup.ag/price/v2"
    raydium_api_url: str = "https://api-v3.raydium.io/pools/info/mint"
    serum_orderbook_url: str = "https://openserum.io/api/serum/market"
    solana_rpc_url: str = "https://api.mainnet-beta.solana.com"

    serum_markets: Dict[str, str] = field(default_factory=dict)
    """Token mint -> Serum market address."""

    enabled_sources: List[str] = field(default_factory=lambda: [
        "jupiter",
        "raydium",
        "serum",
        "solana_rpc",
    ])
    """Venue names in priority order, most reliable first."""

    @classmethod
    def from_env(cls) -> "PriceSourceConfig":
        """Load configuration from environment variables."""
        load_dotenv()
        defaults = cls()
        enabled = os.getenv("PRICE_SOURCES")
        return cls(
            cache_ttl_seconds=float(os.getenv("PRICE_CACHE_TTL_SECONDS", defaults.cache_ttl_seconds)),
            min_request_interval_seconds=float(
                os.getenv("PRICE_MIN_REQUEST_INTERVAL_SECONDS", defaults.min_request_interval_seconds)
            ),
            max_retries=int(os.getenv("PRICE_MAX_RETRIES", defaults.max_retries)),
            retry_delay_seconds=float(os.getenv("PRICE_RETRY_DELAY_SECONDS", defaults.retry_delay_seconds)),
            request_timeout_seconds=float(
                os.getenv("PRICE_REQUEST_TIMEOUT_SECONDS", defaults.request_timeout_seconds)
            ),
            jupiter_api_url=os.getenv("JUPITER_API_URL", defaults.jupiter_api_url),
            raydium_api_url=os.getenv("RAYDIUM_API_URL", defaults.raydium_api_url),
            serum_orderbook_url=os.getenv("SERUM_ORDERBOOK_URL", defaults.serum_orderbook_url),
            solana_rpc_url=os.getenv("SOLANA_RPC_URL", defaults.solana_rpc_url),
            serum_markets=parse_mapping(os.getenv("SERUM_MARKETS")),
            enabled_sources=(
                [name.strip() for name in enabled.split(",") if name.strip()]
                if enabled else defaults.enabled_sources
            ),
        )

    def validate(self) -> List[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if self.cache_ttl_seconds <= 0:
            errors.append("cache_ttl_seconds must be positive")

        if self.min_request_interval_seconds < 0:
            errors.append("min_request_interval_seconds must not be negative")

        if self.max_retries < 1:
            errors.append("max_retries must be at least 1")

        if self.retry_delay_seconds < 0:
            errors.append("retry_delay_seconds must not be negative")

        if self.request_timeout_seconds <= 0:
            errors.append("request_timeout_seconds must be positive")

        if not self.enabled_sources:
            errors.append("at least one price source must be enabled")

        return errors
