"""
Trading Module - Service.

============================================================
RESPONSIBILITY
============================================================
Composition root of the simulator. Builds the price
aggregator, balance ledger and trade engine once and hands
out explicit references; there is no global service lookup.

============================================================
"""

import json
import logging
import sys
from decimal import Decimal
from typing import Any, List, Optional

import aiohttp

from price_sources.aggregator import PriceAggregator, create_default_aggregator
from price_sources.config import PriceSourceConfig
from price_sources.constants import SYMBOL_TO_MINT
from trading.config import TradingConfig
from trading.engine import TradeEngine
from trading.exceptions import ConfigurationError
from trading.history import TradeHistory
from trading.ledger import BalanceLedger, BalanceStore
from trading.models import AccountState, Balance, Trade, TradeResult


logger = logging.getLogger(__name__)

USD_DENOMINATION = "usd"


# ============================================================
# LOGGING SETUP
# ============================================================

def setup_logging(
    level: str = "INFO",
    log_format: str = "text",
) -> logging.Logger:
    """
    Set up process-wide logging.

    Args:
        level: Log level
        log_format: Output format (json or text)

    Returns:
        The simulator logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps({
                "timestamp": "%(asctime)s",
                "level": "%(levelname)s",
                "logger": "%(name)s",
                "message": "%(message)s",
            })
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    return logging.getLogger("trading")


# ============================================================
# SERVICE
# ============================================================

class TradingService:
    """
    Facade over aggregator, ledger and engine.

    Usage:
        async with create_trading_service() as service:
            result = await service.execute_trade(USDC_MINT, WRAPPED_SOL_MINT, 100)
    """

    def __init__(
        self,
        aggregator: PriceAggregator,
        ledger: BalanceLedger,
        engine: TradeEngine,
    ) -> None:
        self._aggregator = aggregator
        self._ledger = ledger
        self._engine = engine

    @property
    def aggregator(self) -> PriceAggregator:
        return self._aggregator

    @property
    def ledger(self) -> BalanceLedger:
        return self._ledger

    @property
    def engine(self) -> TradeEngine:
        return self._engine

    async def execute_trade(
        self,
        from_token: str,
        to_token: str,
        amount: Any,
    ) -> TradeResult:
        return await self._engine.execute_trade(from_token, to_token, amount)

    async def get_token_price(self, token: str) -> Optional[Decimal]:
        """USD price of token."""
        return await self._aggregator.get_price(token)

    async def get_token_price_in(
        self,
        token: str,
        denomination: str = USD_DENOMINATION,
    ) -> Optional[Decimal]:
        """
        Price of token expressed in denomination.

        Args:
            token: Token mint
            denomination: "usd", a known symbol ("sol", "usdc", "usdt") or a mint

        Returns:
            token_usd / denomination_usd, or None if either price is missing
        """
        token_price = await self._aggregator.get_price(token)
        if token_price is None:
            return None

        if denomination.lower() == USD_DENOMINATION:
            return token_price

        denomination_mint = SYMBOL_TO_MINT.get(denomination.upper(), denomination)
        if denomination_mint == token:
            return Decimal("1")

        denomination_price = await self._aggregator.get_price(denomination_mint)
        if denomination_price is None:
            logger.warning(f"No price for denomination {denomination}")
            return None

        return token_price / denomination_price

    def get_balance(self, token: str) -> Decimal:
        return self._ledger.get_balance(token)

    def get_all_balances(self) -> List[Balance]:
        return self._ledger.list_balances()

    def update_balance(self, token: str, amount: Any) -> None:
        self._ledger.set_balance(token, amount)

    def get_trades(self) -> List[Trade]:
        return self._engine.list_trades()

    async def is_token_supported(self, token: str) -> bool:
        return await self._aggregator.is_supported(token)

    def get_current_state(self) -> AccountState:
        """Snapshot of balances and trade history."""
        return AccountState(
            balances=self._ledger.snapshot(),
            trades=self.get_trades(),
        )

    async def close(self) -> None:
        await self._aggregator.close()

    async def __aenter__(self) -> "TradingService":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def create_trading_service(
    trading_config: Optional[TradingConfig] = None,
    price_config: Optional[PriceSourceConfig] = None,
    aggregator: Optional[PriceAggregator] = None,
    store: Optional[BalanceStore] = None,
    session: Optional[aiohttp.ClientSession] = None,
) -> TradingService:
    """
    Wire a TradingService.

    Args:
        trading_config: Starting balances (defaults: 10 SOL, 1000 USDC, 1000 USDT)
            and logging settings, applied to the root logger
        price_config: Venue settings, used when aggregator is not given
        aggregator: Pre-built aggregator
        store: Optional durable balance store
        session: Shared HTTP session for the default venues

    Raises:
        ConfigurationError: If trading_config is invalid
    """
    trading_config = trading_config or TradingConfig()
    errors = trading_config.validate()
    if errors:
        raise ConfigurationError(errors)

    setup_logging(
        level=trading_config.log_level,
        log_format=trading_config.log_format,
    )

    if aggregator is None:
        aggregator = create_default_aggregator(price_config, session=session)

    ledger = BalanceLedger(trading_config.initial_balances, store=store)
    engine = TradeEngine(ledger, aggregator, TradeHistory())

    logger.info("Trading service initialized")
    return TradingService(aggregator, ledger, engine)
