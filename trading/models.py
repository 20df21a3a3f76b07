"""
Trading Module - Models.

============================================================
PURPOSE
============================================================
Immutable records exchanged between the ledger, the trade
engine and callers. Quantities and prices are Decimal.

============================================================
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional


class TradeErrorCode(Enum):
    """Why a trade was rejected."""

    INSUFFICIENT_BALANCE = "insufficient_balance"
    PRICE_UNAVAILABLE = "price_unavailable"
    INVALID_AMOUNT = "invalid_amount"


@dataclass(frozen=True)
class Balance:
    """Quantity held of one token."""

    token: str
    amount: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {"token": self.token, "amount": str(self.amount)}


@dataclass(frozen=True)
class Trade:
    """
    One settled conversion. Never mutated once appended to history.

    exchange_rate is to_token received per from_token spent.
    """

    trade_id: str
    timestamp: datetime
    from_token: str
    to_token: str
    from_amount: Decimal
    to_amount: Decimal
    from_price: Decimal
    to_price: Decimal
    exchange_rate: Decimal
    success: bool = True
    error: Optional[str] = None

    @property
    def value_usd(self) -> Decimal:
        """USD value of the source side."""
        return self.from_amount * self.from_price

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trade_id": self.trade_id,
            "timestamp": self.timestamp.isoformat(),
            "from_token": self.from_token,
            "to_token": self.to_token,
            "from_amount": str(self.from_amount),
            "to_amount": str(self.to_amount),
            "from_price": str(self.from_price),
            "to_price": str(self.to_price),
            "exchange_rate": str(self.exchange_rate),
            "success": self.success,
            "error": self.error,
        }


@dataclass(frozen=True)
class TradeResult:
    """Outcome of TradeEngine.execute_trade."""

    success: bool
    trade: Optional[Trade] = None
    error: Optional[str] = None
    error_code: Optional[TradeErrorCode] = None

    @classmethod
    def ok(cls, trade: Trade) -> "TradeResult":
        return cls(success=True, trade=trade)

    @classmethod
    def failed(cls, error_code: TradeErrorCode, error: str) -> "TradeResult":
        return cls(success=False, error=error, error_code=error_code)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "trade": self.trade.to_dict() if self.trade else None,
            "error": self.error,
            "error_code": self.error_code.value if self.error_code else None,
        }


@dataclass(frozen=True)
class AccountState:
    """Point-in-time view of balances and trade history."""

    balances: Dict[str, Decimal] = field(default_factory=dict)
    trades: List[Trade] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "balances": {token: str(amount) for token, amount in self.balances.items()},
            "trades": [trade.to_dict() for trade in self.trades],
        }
