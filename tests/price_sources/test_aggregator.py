"""
Price Aggregator Tests.

============================================================
PURPOSE
============================================================
Priority fallback, the top-level cache and default wiring.

============================================================
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from conftest import StubPriceSource
from price_sources.aggregator import (
    PriceAggregator,
    create_default_aggregator,
    create_default_sources,
)
from price_sources.config import PriceSourceConfig
from price_sources.exceptions import ConfigurationError
from price_sources.models import Confidence
from price_sources.providers import (
    JupiterPriceSource,
    RaydiumPriceSource,
    SerumPriceSource,
    SolanaRpcSource,
)


TOKEN = "TokenMint1111111111111111111111111111111111"


def make_aggregator(clock, *sources):
    return PriceAggregator(list(sources), cache_ttl=30, clock=clock)


# ============================================================
# FALLBACK TESTS
# ============================================================

class TestFallback:
    """Tests for priority order resolution."""

    @pytest.mark.asyncio
    async def test_first_price_wins(self, clock):
        first = StubPriceSource("first", {}, clock=clock)
        second = StubPriceSource("second", {TOKEN: "5.0"}, clock=clock)
        third = StubPriceSource("third", {TOKEN: "6.0"}, clock=clock)
        aggregator = make_aggregator(clock, first, second, third)

        price = await aggregator.get_price(TOKEN)

        assert price == Decimal("5.0")
        assert first.fetch_calls == 1
        assert second.fetch_calls == 1
        assert third.fetch_calls == 0

    @pytest.mark.asyncio
    async def test_failing_venue_falls_through(self, clock):
        broken = StubPriceSource("broken", {TOKEN: "9"}, failures=3, clock=clock)
        healthy = StubPriceSource("healthy", {TOKEN: "4"}, clock=clock)
        aggregator = make_aggregator(clock, broken, healthy)

        quote = await aggregator.get_quote(TOKEN)

        assert quote.usd_price == Decimal("4")
        assert quote.source_name == "healthy"

    @pytest.mark.asyncio
    async def test_raising_venue_does_not_stop_chain(self, clock):
        raising = StubPriceSource("raising", clock=clock)
        raising.get_quote = AsyncMock(side_effect=RuntimeError("boom"))
        healthy = StubPriceSource("healthy", {TOKEN: "4"}, clock=clock)
        aggregator = make_aggregator(clock, raising, healthy)

        assert await aggregator.get_price(TOKEN) == Decimal("4")
        incident_types = [i.incident_type for i in aggregator.get_incidents()]
        assert "fetch_error" in incident_types
        assert "fallback" in incident_types

    @pytest.mark.asyncio
    async def test_all_venues_empty_returns_none(self, clock):
        aggregator = make_aggregator(
            clock,
            StubPriceSource("a", clock=clock),
            StubPriceSource("b", clock=clock),
        )

        assert await aggregator.get_price(TOKEN) is None
        assert aggregator.get_incidents()[-1].incident_type == "all_sources_failed"


# ============================================================
# CACHE TESTS
# ============================================================

class TestAggregatorCache:
    """Tests for the top-level quote cache."""

    @pytest.mark.asyncio
    async def test_repeat_lookup_served_from_cache(self, clock):
        first = StubPriceSource("first", {}, clock=clock)
        second = StubPriceSource("second", {TOKEN: "5.0"}, clock=clock)
        aggregator = make_aggregator(clock, first, second)

        await aggregator.get_price(TOKEN)
        clock.advance(10)
        price = await aggregator.get_price(TOKEN)

        assert price == Decimal("5.0")
        assert first.fetch_calls == 1
        assert second.fetch_calls == 1

    @pytest.mark.asyncio
    async def test_cache_expires(self, clock):
        source = StubPriceSource("only", {TOKEN: "5.0"}, clock=clock)
        aggregator = make_aggregator(clock, source)

        await aggregator.get_price(TOKEN)
        clock.advance(31)
        source.prices[TOKEN] = "5.5"

        assert await aggregator.get_price(TOKEN) == Decimal("5.5")
        assert source.fetch_calls == 2

    @pytest.mark.asyncio
    async def test_expiry_counts_from_venue_fetch(self, clock):
        source = StubPriceSource("only", {TOKEN: "5"}, Confidence.HIGH, clock=clock)
        aggregator = make_aggregator(clock, source)

        # Venue caches the quote at t=0; aggregator first stores it at t=29
        assert await aggregator.is_supported(TOKEN) is True
        clock.advance(29)
        assert await aggregator.get_price(TOKEN) == Decimal("5")

        source.prices[TOKEN] = "7"
        clock.advance(25)

        assert await aggregator.get_price(TOKEN) == Decimal("7")
        assert source.fetch_calls == 2

    @pytest.mark.asyncio
    async def test_clear_cache_clears_venues(self, clock):
        source = StubPriceSource("only", {TOKEN: "5.0"}, clock=clock)
        aggregator = make_aggregator(clock, source)

        await aggregator.get_price(TOKEN)
        aggregator.clear_cache()
        await aggregator.get_price(TOKEN)

        assert source.fetch_calls == 2


# ============================================================
# LOOKUP TESTS
# ============================================================

class TestLookups:
    """Tests for is_supported and get_price_from."""

    @pytest.mark.asyncio
    async def test_is_supported(self, clock):
        aggregator = make_aggregator(
            clock,
            StubPriceSource("a", clock=clock),
            StubPriceSource("b", {TOKEN: "1"}, clock=clock),
        )

        assert await aggregator.is_supported(TOKEN) is True
        assert await aggregator.is_supported("unknown") is False

    @pytest.mark.asyncio
    async def test_is_supported_ignores_raising_venue(self, clock):
        raising = StubPriceSource("raising", clock=clock)
        raising.supports = AsyncMock(side_effect=RuntimeError("boom"))
        aggregator = make_aggregator(
            clock, raising, StubPriceSource("b", {TOKEN: "1"}, clock=clock),
        )

        assert await aggregator.is_supported(TOKEN) is True

    @pytest.mark.asyncio
    async def test_is_supported_on_cache_hit(self, clock):
        source = StubPriceSource("a", {TOKEN: "1"}, clock=clock)
        aggregator = make_aggregator(clock, source)

        await aggregator.get_price(TOKEN)
        source.prices.clear()
        source.clear_cache()

        assert await aggregator.is_supported(TOKEN) is True

    @pytest.mark.asyncio
    async def test_get_price_from_named_venue(self, clock):
        aggregator = make_aggregator(
            clock,
            StubPriceSource("a", {TOKEN: "1"}, clock=clock),
            StubPriceSource("b", {TOKEN: "2"}, clock=clock),
        )

        assert await aggregator.get_price_from(TOKEN, "b") == Decimal("2")

    @pytest.mark.asyncio
    async def test_get_price_from_unknown_venue(self, clock):
        aggregator = make_aggregator(clock, StubPriceSource("a", clock=clock))

        with pytest.raises(ConfigurationError):
            await aggregator.get_price_from(TOKEN, "nope")

    def test_duplicate_names_rejected(self, clock):
        with pytest.raises(ConfigurationError):
            make_aggregator(
                clock,
                StubPriceSource("a", clock=clock),
                StubPriceSource("a", clock=clock),
            )

    def test_stats(self, clock):
        aggregator = make_aggregator(
            clock,
            StubPriceSource("a", clock=clock),
            StubPriceSource("b", clock=clock),
        )

        stats = aggregator.get_stats()

        assert stats["source_order"] == ["a", "b"]
        assert set(stats["sources"]) == {"a", "b"}
        assert set(aggregator.get_all_health()) == {"a", "b"}


# ============================================================
# DEFAULT WIRING TESTS
# ============================================================

class TestDefaultSources:
    """Tests for create_default_sources."""

    def test_default_priority_order(self):
        sources = create_default_sources(PriceSourceConfig())

        assert [type(s) for s in sources] == [
            JupiterPriceSource,
            RaydiumPriceSource,
            SerumPriceSource,
            SolanaRpcSource,
        ]

    def test_enabled_subset_keeps_order(self):
        config = PriceSourceConfig(enabled_sources=["raydium", "jupiter"])

        sources = create_default_sources(config)

        assert [s.name for s in sources] == ["raydium", "jupiter"]

    def test_unknown_source_rejected(self):
        config = PriceSourceConfig(enabled_sources=["jupiter", "coingecko"])

        with pytest.raises(ConfigurationError):
            create_default_sources(config)

    def test_invalid_config_rejected(self):
        with pytest.raises(ConfigurationError):
            create_default_sources(PriceSourceConfig(cache_ttl_seconds=-1))

    def test_default_aggregator(self):
        aggregator = create_default_aggregator()

        assert aggregator.list_sources() == ["jupiter", "raydium", "serum", "solana_rpc"]
