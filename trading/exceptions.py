"""
Trading Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Errors raised by the balance ledger and trade engine.

- Ledger validation failures surface as exceptions
- The trade engine converts them into failed TradeResults
- Trade rejections carry a TradeErrorCode for callers

============================================================
EXCEPTION HIERARCHY
============================================================
TradingError (base)
├── InvalidAmountError
├── InsufficientBalanceError
├── PriceUnavailableError
└── ConfigurationError

============================================================
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from trading.models import TradeErrorCode


class TradingError(Exception):
    """
    Base exception for trading errors.

    All exceptions carry:
    - error_code: stable identifier for callers
    - context: for debugging
    - timestamp: when the error occurred
    """

    error_code: Optional[TradeErrorCode] = None

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging/storage."""
        return {
            "type": type(self).__name__,
            "error_code": self.error_code.value if self.error_code else None,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }


class InvalidAmountError(TradingError):
    """Negative, non-finite or non-numeric quantity."""

    error_code = TradeErrorCode.INVALID_AMOUNT

    def __init__(
        self,
        amount: Any,
        reason: str = "Amount must be a finite, non-negative number",
        token: Optional[str] = None,
    ):
        context = {"amount": str(amount)}
        if token:
            context["token"] = token
        super().__init__(f"{reason}: {amount}", context=context)
        self.amount = amount
        self.token = token


class InsufficientBalanceError(TradingError):
    """Debit exceeds the available balance."""

    error_code = TradeErrorCode.INSUFFICIENT_BALANCE

    def __init__(
        self,
        token: str,
        required: Decimal,
        available: Decimal,
    ):
        super().__init__(
            f"Insufficient balance: {available} < {required}",
            context={
                "token": token,
                "required": str(required),
                "available": str(available),
            },
        )
        self.token = token
        self.required = required
        self.available = available


class PriceUnavailableError(TradingError):
    """No venue produced a usable quote."""

    error_code = TradeErrorCode.PRICE_UNAVAILABLE

    def __init__(self, tokens: list[str]):
        super().__init__(
            f"Unable to determine price for tokens: {', '.join(tokens)}",
            context={"tokens": list(tokens)},
        )
        self.tokens = list(tokens)


class ConfigurationError(TradingError):
    """Invalid simulator configuration."""

    def __init__(self, errors: list[str]):
        super().__init__(
            f"Invalid trading configuration: {'; '.join(errors)}",
            context={"errors": list(errors)},
        )
        self.errors = list(errors)
