"""
Trading Module - Configuration.

============================================================
PURPOSE
============================================================
Starting balances and logging settings for the simulator.

Environment variables (a local .env file is honoured):
- INITIAL_BALANCES  "mint:amount,mint:amount"
- LOG_LEVEL         e.g. INFO
- LOG_FORMAT        json | text

============================================================
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List

from dotenv import load_dotenv

from price_sources.config import parse_mapping
from price_sources.constants import USDC_MINT, USDT_MINT, WRAPPED_SOL_MINT


def default_balances() -> Dict[str, Decimal]:
    """10 SOL, 1000 USDC, 1000 USDT."""
    return {
        WRAPPED_SOL_MINT: Decimal("10"),
        USDC_MINT: Decimal("1000"),
        USDT_MINT: Decimal("1000"),
    }


@dataclass
class TradingConfig:
    """
    Configuration for the trading simulator.
    """

    initial_balances: Dict[str, Any] = field(default_factory=default_balances)
    """Balances the ledger starts with (numbers or numeric strings)."""

    log_level: str = "INFO"
    """Logging level."""

    log_format: str = "text"
    """Log output format (json or text)."""

    @classmethod
    def from_env(cls) -> "TradingConfig":
        """Load configuration from environment variables."""
        load_dotenv()
        raw_balances = os.getenv("INITIAL_BALANCES")
        balances = (
            parse_mapping(raw_balances)
            if raw_balances else default_balances()
        )
        return cls(
            initial_balances=balances,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )

    def validate(self) -> List[str]:
        """Validate configuration, return list of errors."""
        errors = []

        for token, amount in self.initial_balances.items():
            try:
                value = Decimal(str(amount))
            except (InvalidOperation, ValueError):
                errors.append(f"initial balance for {token} is not a number")
                continue
            if not value.is_finite() or value < 0:
                errors.append(f"initial balance for {token} must be finite and non-negative")

        if self.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            errors.append(f"log_level must be a standard level name, got {self.log_level!r}")

        if self.log_format not in ("json", "text"):
            errors.append("log_format must be 'json' or 'text'")

        return errors
