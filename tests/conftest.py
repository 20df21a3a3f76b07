"""
Shared test helpers for price sources and trading.
"""

from decimal import Decimal
from typing import Any, Optional

import pytest

from price_sources.base import BasePriceSource
from price_sources.exceptions import FetchError
from price_sources.models import Confidence, PriceQuote, SourceMetadata


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubPriceSource(BasePriceSource):
    """
    In-memory venue.

    prices maps token -> price (None = venue has no data).
    failures is how many leading fetches raise a transient FetchError.
    """

    def __init__(
        self,
        name: str,
        prices: Optional[dict[str, Any]] = None,
        confidence: Confidence = Confidence.HIGH,
        failures: int = 0,
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("min_request_interval", 0)
        kwargs.setdefault("retry_delay", 0)
        super().__init__(**kwargs)
        self._name = name
        self.prices = dict(prices or {})
        self.confidence = confidence
        self.failures = failures
        self.fetch_calls = 0

    @property
    def name(self) -> str:
        return self._name

    def metadata(self) -> SourceMetadata:
        return SourceMetadata(name=self._name, display_name=self._name.title())

    async def fetch_raw(self, token: str) -> Optional[dict[str, Any]]:
        # Stands in for one venue request
        await self._enforce_rate_limit()
        self.fetch_calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise FetchError("HTTP 503", source_name=self._name, status_code=503)
        if self.prices.get(token) is None:
            return None
        return {"price": self.prices[token]}

    def normalize(self, raw_data: dict[str, Any], token: str) -> Optional[PriceQuote]:
        # Invalid prices are passed through so the base class must reject them
        return self._make_quote(token, Decimal(str(raw_data["price"])), self.confidence)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def d(value: Any) -> Decimal:
    return Decimal(str(value))
