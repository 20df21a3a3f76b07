"""
Price Source Models - Normalized price quote structures.

Every venue normalizes its payload to a PriceQuote. Nothing downstream
depends on venue-specific fields.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional


class SourceStatus(Enum):
    """Health status of a price source."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


class Confidence(Enum):
    """Venue confidence in a quote."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Confidence":
        """Map a venue confidence label, defaulting to LOW."""
        if not value:
            return cls.LOW
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.LOW


def is_valid_price(price: Optional[Decimal]) -> bool:
    """A usable price is finite and strictly positive."""
    return price is not None and price.is_finite() and price > 0


@dataclass(frozen=True)
class PriceQuote:
    """
    Normalized USD quote for one token from one venue - STRICT schema.
    """
    token: str
    usd_price: Decimal
    source_name: str
    fetched_at: datetime
    confidence: Confidence = Confidence.LOW

    # Optional venue context
    liquidity_usd: Optional[Decimal] = None
    pair_address: Optional[str] = None

    # Monotonic clock reading at fetch time; cache expiry counts from here
    fetched_monotonic: Optional[float] = field(default=None, compare=False)

    def is_high_confidence(self) -> bool:
        return self.confidence == Confidence.HIGH

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "token": self.token,
            "usd_price": str(self.usd_price),
            "source_name": self.source_name,
            "fetched_at": self.fetched_at.isoformat(),
            "confidence": self.confidence.value,
            "liquidity_usd": str(self.liquidity_usd) if self.liquidity_usd is not None else None,
            "pair_address": self.pair_address,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PriceQuote":
        """Create from dictionary."""
        return cls(
            token=data["token"],
            usd_price=Decimal(data["usd_price"]),
            source_name=data["source_name"],
            fetched_at=datetime.fromisoformat(data["fetched_at"]),
            confidence=Confidence(data.get("confidence", "low")),
            liquidity_usd=Decimal(data["liquidity_usd"]) if data.get("liquidity_usd") else None,
            pair_address=data.get("pair_address"),
        )


@dataclass(frozen=True)
class TokenInfo:
    """Best-effort token metadata."""
    address: str
    symbol: str = ""
    decimals: Optional[int] = None
    supply: Optional[Decimal] = None


@dataclass
class CacheEntry:
    """Cached quote with the monotonic time it was fetched."""
    quote: PriceQuote
    fetched_at: float
    hits: int = 0

    def age_seconds(self, now: float) -> float:
        return now - self.fetched_at

    def is_expired(self, now: float, ttl_seconds: float) -> bool:
        return self.age_seconds(now) >= ttl_seconds


@dataclass
class SourceHealth:
    """Health status of a price source."""
    status: SourceStatus
    last_check: datetime
    latency_ms: Optional[float] = None
    error_count: int = 0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None
    consecutive_failures: int = 0
    uptime_percentage: float = 100.0

    def is_healthy(self) -> bool:
        """Check if source is operational."""
        return self.status == SourceStatus.HEALTHY

    def is_usable(self) -> bool:
        """Check if source can still be used (healthy, degraded or not yet probed)."""
        return self.status in (SourceStatus.HEALTHY, SourceStatus.DEGRADED, SourceStatus.UNKNOWN)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "status": self.status.value,
            "last_check": self.last_check.isoformat(),
            "latency_ms": self.latency_ms,
            "error_count": self.error_count,
            "last_error": self.last_error,
            "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
            "consecutive_failures": self.consecutive_failures,
            "uptime_percentage": self.uptime_percentage,
        }


@dataclass
class SourceMetadata:
    """Metadata about a price venue."""
    name: str
    display_name: str
    base_url: str = ""
    documentation_url: str = ""
    requires_auth: bool = False
    provides_prices: bool = True
    tags: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "display_name": self.display_name,
            "base_url": self.base_url,
            "documentation_url": self.documentation_url,
            "requires_auth": self.requires_auth,
            "provides_prices": self.provides_prices,
            "tags": self.tags,
        }


@dataclass
class SourceIncident:
    """Record of a price source incident."""
    source_name: str
    incident_type: str
    timestamp: datetime
    error_message: str
    token: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "source_name": self.source_name,
            "incident_type": self.incident_type,
            "timestamp": self.timestamp.isoformat(),
            "error_message": self.error_message,
            "token": self.token,
        }
