"""
Trading Package - Simulated spot trading against a balance ledger.

Features:
- Non-negative, per-token locked balance ledger
- Trades valued at the ratio of two USD quotes
- Append-only trade history
- Explicitly wired service, no global registry

Quick Start:
    from trading import create_trading_service
    from price_sources import USDC_MINT, WRAPPED_SOL_MINT

    async def main():
        async with create_trading_service() as service:
            result = await service.execute_trade(USDC_MINT, WRAPPED_SOL_MINT, 100)
            if result.success:
                print(f"Received {result.trade.to_amount} SOL")
            else:
                print(f"Rejected ({result.error_code.value}): {result.error}")
"""

from trading.config import TradingConfig, default_balances
from trading.engine import TradeEngine
from trading.exceptions import (
    ConfigurationError,
    InsufficientBalanceError,
    InvalidAmountError,
    PriceUnavailableError,
    TradingError,
)
from trading.history import TradeHistory
from trading.ledger import BalanceLedger, BalanceStore, parse_amount
from trading.models import (
    AccountState,
    Balance,
    Trade,
    TradeErrorCode,
    TradeResult,
)
from trading.service import (
    TradingService,
    create_trading_service,
    setup_logging,
)


__version__ = "1.0.0"

__all__ = [
    # Models
    "Balance",
    "Trade",
    "TradeResult",
    "TradeErrorCode",
    "AccountState",

    # Exceptions
    "TradingError",
    "InvalidAmountError",
    "InsufficientBalanceError",
    "PriceUnavailableError",
    "ConfigurationError",

    # Components
    "BalanceLedger",
    "BalanceStore",
    "parse_amount",
    "TradeHistory",
    "TradeEngine",

    # Service
    "TradingService",
    "create_trading_service",
    "setup_logging",

    # Config
    "TradingConfig",
    "default_balances",
]
