"""
Trading Module - Trade Engine.

============================================================
RESPONSIBILITY
============================================================
Settles a simulated spot trade against the balance ledger.

Order of operations for one trade:
1. Validate the amount and the source balance
2. Resolve both USD prices from the aggregator
3. to_amount = from_amount * from_price / to_price
4. Debit source, credit destination (one ledger step)
5. Append the Trade to history

Any failure before step 4 leaves balances and history
untouched. No slippage, fee or depth adjustment.

============================================================
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, List, Optional, Protocol

from price_sources.models import is_valid_price
from trading.exceptions import (
    InsufficientBalanceError,
    InvalidAmountError,
    PriceUnavailableError,
    TradingError,
)
from trading.history import TradeHistory
from trading.ledger import BalanceLedger, parse_amount
from trading.models import Trade, TradeResult


logger = logging.getLogger(__name__)


def _as_price(value: Any) -> Optional[Decimal]:
    """Decimal USD price, or None when absent or unusable."""
    if value is None:
        return None
    price = value if isinstance(value, Decimal) else Decimal(str(value))
    return price if is_valid_price(price) else None


class PriceProvider(Protocol):
    """What the engine needs from the price aggregator."""

    async def get_price(self, token: str) -> Optional[Decimal]:
        ...


class TradeEngine:
    """
    Executes trades at the ratio of two independently sourced USD prices.

    Same-token trades are settled (net no-op) and recorded.
    Zero-amount trades are rejected as INVALID_AMOUNT.
    """

    def __init__(
        self,
        ledger: BalanceLedger,
        prices: PriceProvider,
        history: Optional[TradeHistory] = None,
    ) -> None:
        self._ledger = ledger
        self._prices = prices
        self._history = history if history is not None else TradeHistory()

    @property
    def history(self) -> TradeHistory:
        return self._history

    async def execute_trade(
        self,
        from_token: str,
        to_token: str,
        from_amount: Any,
    ) -> TradeResult:
        """
        Convert from_amount of from_token into to_token.

        Returns:
            TradeResult; failures carry an error message and TradeErrorCode

        Note:
            Never raises for ledger or pricing failures
        """
        logger.info(f"Starting trade: {from_amount} {from_token} -> {to_token}")

        try:
            trade = await self._execute(from_token, to_token, from_amount)
        except TradingError as e:
            logger.warning(f"Trade {from_token} -> {to_token} rejected: {e.message}")
            return TradeResult.failed(e.error_code, e.message)

        logger.info(
            f"Trade executed: {trade.from_amount} {from_token} -> {trade.to_amount} {to_token} "
            f"(rate={trade.exchange_rate})"
        )
        return TradeResult.ok(trade)

    async def _execute(
        self,
        from_token: str,
        to_token: str,
        from_amount: Any,
    ) -> Trade:
        amount = parse_amount(from_amount, from_token)
        if amount == 0:
            raise InvalidAmountError(from_amount, "Trade amount must be positive", from_token)

        # Validate balance
        from_balance = self._ledger.get_balance(from_token)
        logger.debug(f"Current balance of {from_token}: {from_balance}")
        if amount > from_balance:
            raise InsufficientBalanceError(from_token, amount, from_balance)

        # Resolve prices
        from_price, to_price = await self._resolve_prices(from_token, to_token)
        missing = [
            token for token, price in ((from_token, from_price), (to_token, to_price))
            if price is None
        ]
        if missing:
            raise PriceUnavailableError(missing)

        from_value_usd = amount * from_price
        to_amount = from_value_usd / to_price
        exchange_rate = to_amount / amount

        logger.debug(
            f"Trade calculation: {amount} {from_token} @ ${from_price} = ${from_value_usd}; "
            f"{to_token} @ ${to_price} -> {to_amount}"
        )

        # Settle; re-validates the balance under the ledger locks
        self._ledger.transfer(from_token, amount, to_token, to_amount)

        trade = Trade(
            trade_id=str(uuid.uuid4()),
            timestamp=datetime.now(timezone.utc),
            from_token=from_token,
            to_token=to_token,
            from_amount=amount,
            to_amount=to_amount,
            from_price=from_price,
            to_price=to_price,
            exchange_rate=exchange_rate,
            success=True,
        )
        self._history.append(trade)
        return trade

    async def _resolve_prices(
        self,
        from_token: str,
        to_token: str,
    ) -> tuple[Optional[Decimal], Optional[Decimal]]:
        if from_token == to_token:
            price = _as_price(await self._prices.get_price(from_token))
            return price, price

        from_price, to_price = await asyncio.gather(
            self._prices.get_price(from_token),
            self._prices.get_price(to_token),
        )
        return _as_price(from_price), _as_price(to_price)

    def list_trades(self) -> List[Trade]:
        """Settled trades, oldest first."""
        return self._history.list_trades()
