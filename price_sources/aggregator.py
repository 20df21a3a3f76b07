"""
Price Aggregator - Prioritized multi-venue price resolution with fallback.

Provides:
- Fixed priority order of venues (most reliable first)
- Top-level quote cache independent of per-venue caches
- Fallback to the next venue on no-price or failure
- No downstream dependency on specific venues
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional, Sequence

import aiohttp

from price_sources.base import BasePriceSource
from price_sources.cache import Clock, QuoteCache
from price_sources.config import PriceSourceConfig
from price_sources.exceptions import ConfigurationError
from price_sources.models import PriceQuote, SourceHealth, SourceIncident


logger = logging.getLogger(__name__)


class PriceAggregator:
    """
    Resolves USD prices by asking venues in priority order.

    The first venue that yields a price wins and later venues are not
    queried. Venue failures are logged and never propagate.

    Usage:
        aggregator = PriceAggregator([JupiterPriceSource(), RaydiumPriceSource()])
        price = await aggregator.get_price(mint)
    """

    def __init__(
        self,
        sources: Sequence[BasePriceSource],
        cache_ttl: float = 30.0,
        clock: Optional[Clock] = None,
        max_incidents: int = 1000,
    ) -> None:
        self._sources: list[BasePriceSource] = list(sources)
        names = [source.name for source in self._sources]
        if len(set(names)) != len(names):
            raise ConfigurationError(
                message=f"Duplicate price source names: {names}",
                config_key="sources",
            )

        self._cache = QuoteCache(ttl_seconds=cache_ttl, clock=clock)

        # Incident tracking
        self._incidents: list[SourceIncident] = []
        self._max_incidents = max_incidents

        logger.info(f"Price aggregator initialized with sources: {names}")

    def list_sources(self) -> list[str]:
        """All venue names in priority order."""
        return [source.name for source in self._sources]

    def get_source(self, name: str) -> Optional[BasePriceSource]:
        for source in self._sources:
            if source.name == name:
                return source
        return None

    async def get_price(self, token: str) -> Optional[Decimal]:
        """USD price for token, or None when no venue has one."""
        quote = await self.get_quote(token)
        return quote.usd_price if quote else None

    async def get_quote(self, token: str) -> Optional[PriceQuote]:
        """
        Resolve a quote for token.

        Returns:
            The cached or first venue quote, None if every venue came up empty

        Note:
            Never raises for venue failures
        """
        cached = self._cache.get(token)
        if cached is not None:
            logger.debug(f"Using cached price for {token}: ${cached.usd_price} ({cached.source_name})")
            return cached

        attempted: list[str] = []

        for source in self._sources:
            attempted.append(source.name)

            try:
                quote = await source.get_quote(token)
            except Exception as e:
                logger.error(f"[{source.name}] Error fetching price for {token}: {e}")
                self._log_incident(source.name, "fetch_error", str(e), token)
                continue

            if quote is None:
                logger.debug(f"[{source.name}] No price available for {token}")
                continue

            if len(attempted) > 1:
                self._on_fallback(attempted[0], source.name, token)

            self._cache.put(quote)
            logger.info(f"Got price ${quote.usd_price} for {token} from {source.name}")
            return quote

        logger.warning(f"No price available for {token} from any source: {attempted}")
        self._log_incident("aggregator", "all_sources_failed", f"Attempted sources: {attempted}", token)
        return None

    async def get_price_from(self, token: str, source_name: str) -> Optional[Decimal]:
        """
        Ask one named venue directly, bypassing the aggregator cache.

        Raises:
            ConfigurationError: If no venue has that name
        """
        source = self.get_source(source_name)
        if source is None:
            raise ConfigurationError(
                message=f"Unknown price source '{source_name}'",
                config_key="source_name",
                context={"available": self.list_sources()},
            )

        try:
            return await source.get_price(token)
        except Exception as e:
            logger.error(f"[{source_name}] Error fetching price for {token}: {e}")
            self._log_incident(source_name, "fetch_error", str(e), token)
            return None

    async def is_supported(self, token: str) -> bool:
        """True on a live cache hit or when any venue supports token."""
        if token in self._cache:
            return True

        for source in self._sources:
            try:
                if await source.supports(token):
                    logger.info(f"Token {token} is supported by {source.name}")
                    return True
            except Exception as e:
                logger.warning(f"[{source.name}] Support check failed for {token}: {e}")
                continue

        logger.info(f"No sources support token {token}")
        return False

    def get_all_health(self) -> dict[str, SourceHealth]:
        """Get health status for all sources."""
        return {source.name: source.get_health() for source in self._sources}

    def _on_fallback(self, from_source: str, to_source: str, token: str) -> None:
        logger.warning(f"Fallback: {from_source} -> {to_source} for {token}")
        self._log_incident(from_source, "fallback", f"Switched to {to_source}", token)

    def _log_incident(
        self,
        source_name: str,
        incident_type: str,
        message: str,
        token: Optional[str] = None,
    ) -> None:
        incident = SourceIncident(
            source_name=source_name,
            incident_type=incident_type,
            timestamp=datetime.now(timezone.utc),
            error_message=message,
            token=token,
        )

        self._incidents.append(incident)

        # Trim to max size
        if len(self._incidents) > self._max_incidents:
            self._incidents = self._incidents[-self._max_incidents:]

    def get_incidents(self, limit: int = 100) -> list[SourceIncident]:
        """Get recent incidents."""
        return self._incidents[-limit:]

    def get_stats(self) -> dict[str, Any]:
        """Get aggregator statistics."""
        return {
            "source_order": self.list_sources(),
            "cache": self._cache.stats(),
            "total_incidents": len(self._incidents),
            "sources": {
                source.name: {
                    "status": source.get_health().status.value,
                    "is_usable": source.is_usable(),
                    "cache": source.get_cache_stats(),
                }
                for source in self._sources
            },
        }

    def clear_cache(self) -> None:
        """Clear the aggregator cache and every venue cache."""
        self._cache.clear()
        for source in self._sources:
            source.clear_cache()

    async def close(self) -> None:
        """Close all resources."""
        for source in self._sources:
            try:
                await source.close()
            except Exception as e:
                logger.error(f"Error closing source {source.name}: {e}")
        logger.info("Price aggregator closed")

    async def __aenter__(self) -> "PriceAggregator":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def create_default_sources(
    config: Optional[PriceSourceConfig] = None,
    session: Optional[aiohttp.ClientSession] = None,
) -> list[BasePriceSource]:
    """
    Build the enabled venues in configured priority order.

    Raises:
        ConfigurationError: If the configuration is invalid
    """
    from price_sources.providers import (
        JupiterPriceSource,
        RaydiumPriceSource,
        SerumPriceSource,
        SolanaRpcSource,
    )

    config = config or PriceSourceConfig()
    errors = config.validate()
    if errors:
        raise ConfigurationError(
            message=f"Invalid price source configuration: {'; '.join(errors)}",
            context={"errors": errors},
        )

    common = {
        "session": session,
        "timeout": config.request_timeout_seconds,
        "cache_ttl": config.cache_ttl_seconds,
        "min_request_interval": config.min_request_interval_seconds,
        "max_retries": config.max_retries,
        "retry_delay": config.retry_delay_seconds,
    }

    factories = {
        "jupiter": lambda: JupiterPriceSource(base_url=config.jupiter_api_url, **common),
        "raydium": lambda: RaydiumPriceSource(base_url=config.raydium_api_url, **common),
        "serum": lambda: SerumPriceSource(
            markets=config.serum_markets,
            base_url=config.serum_orderbook_url,
            **common,
        ),
        "solana_rpc": lambda: SolanaRpcSource(rpc_url=config.solana_rpc_url, **common),
    }

    sources = []
    for name in config.enabled_sources:
        factory = factories.get(name)
        if factory is None:
            raise ConfigurationError(
                message=f"Unknown price source '{name}'",
                config_key="enabled_sources",
                context={"available": list(factories)},
            )
        sources.append(factory())
    return sources


def create_default_aggregator(
    config: Optional[PriceSourceConfig] = None,
    session: Optional[aiohttp.ClientSession] = None,
) -> PriceAggregator:
    """Aggregator over the default venues: Jupiter, Raydium, Serum, Solana RPC."""
    config = config or PriceSourceConfig()
    return PriceAggregator(
        create_default_sources(config, session=session),
        cache_ttl=config.cache_ttl_seconds,
    )
