"""
Price Sources Package - Multi-venue USD price resolution for Solana tokens.

Features:
- Isolated, replaceable price venues (Jupiter, Raydium, Serum, Solana RPC)
- Normalized PriceQuote output across all venues
- Per-venue caching, rate limiting, timeout and retry
- Prioritized fallback with a top-level cache
- Venue failures never reach the caller

Quick Start:
    from price_sources import USDC_MINT, PriceSourceConfig, create_default_aggregator

    async def main():
        async with create_default_aggregator(PriceSourceConfig.from_env()) as aggregator:
            price = await aggregator.get_price(USDC_MINT)
            print(f"USDC: ${price}")

Adding New Venues:
    1. Create class extending BasePriceSource
    2. Implement: name, fetch_raw(), normalize(), metadata()
    3. Pass it to PriceAggregator in the desired priority position
"""

from price_sources.aggregator import (
    PriceAggregator,
    create_default_aggregator,
    create_default_sources,
)
from price_sources.base import BasePriceSource
from price_sources.cache import QuoteCache
from price_sources.config import PriceSourceConfig
from price_sources.constants import (
    SYMBOL_TO_MINT,
    TOKEN_SYMBOLS,
    USDC_MINT,
    USDT_MINT,
    WRAPPED_SOL_MINT,
)
from price_sources.exceptions import (
    ConfigurationError,
    FetchError,
    NormalizationError,
    PriceSourceError,
    RateLimitError,
    VenueTransientError,
)
from price_sources.models import (
    Confidence,
    PriceQuote,
    SourceHealth,
    SourceIncident,
    SourceMetadata,
    SourceStatus,
    TokenInfo,
)
from price_sources.providers import (
    JupiterPriceSource,
    RaydiumPriceSource,
    SerumPriceSource,
    SolanaRpcSource,
)


__version__ = "1.0.0"

__all__ = [
    # Base
    "BasePriceSource",
    "QuoteCache",

    # Models
    "PriceQuote",
    "Confidence",
    "TokenInfo",
    "SourceHealth",
    "SourceMetadata",
    "SourceIncident",
    "SourceStatus",

    # Exceptions
    "PriceSourceError",
    "VenueTransientError",
    "FetchError",
    "RateLimitError",
    "NormalizationError",
    "ConfigurationError",

    # Providers
    "JupiterPriceSource",
    "RaydiumPriceSource",
    "SerumPriceSource",
    "SolanaRpcSource",

    # Aggregator
    "PriceAggregator",
    "create_default_aggregator",
    "create_default_sources",

    # Config
    "PriceSourceConfig",

    # Tokens
    "WRAPPED_SOL_MINT",
    "USDC_MINT",
    "USDT_MINT",
    "TOKEN_SYMBOLS",
    "SYMBOL_TO_MINT",
]
