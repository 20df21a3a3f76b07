"""
Providers package - Price venue implementations.
"""

from price_sources.providers.jupiter import JupiterPriceSource
from price_sources.providers.raydium import RaydiumPriceSource
from price_sources.providers.serum import SerumPriceSource
from price_sources.providers.solana_rpc import SolanaRpcSource


__all__ = [
    "JupiterPriceSource",
    "RaydiumPriceSource",
    "SerumPriceSource",
    "SolanaRpcSource",
]
