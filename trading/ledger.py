"""
Trading Module - Balance Ledger.

============================================================
RESPONSIBILITY
============================================================
Authoritative in-memory record of token balances.

- Balances never go negative
- A failed mutation leaves the ledger unchanged
- Mutations on one token are serialized by a per-token lock
- transfer() applies a debit and a credit as one step

Locks are plain threading locks and are never held across
an await, so the ledger is safe from both coroutines and
worker threads.

============================================================
"""

import logging
import threading
from contextlib import ExitStack, contextmanager
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterator, List, Mapping, Optional, Protocol

from trading.exceptions import InsufficientBalanceError, InvalidAmountError
from trading.models import Balance


logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def parse_amount(value: Any, token: Optional[str] = None) -> Decimal:
    """
    Convert value to a finite, non-negative Decimal.

    Raises:
        InvalidAmountError: On negative, non-finite or non-numeric input
    """
    if value is None or isinstance(value, bool):
        raise InvalidAmountError(value, "Amount must be numeric", token)
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidAmountError(value, "Amount must be numeric", token)
    if not amount.is_finite():
        raise InvalidAmountError(value, "Amount must be finite", token)
    if amount < 0:
        raise InvalidAmountError(value, "Amount cannot be negative", token)
    return amount


class BalanceStore(Protocol):
    """Durable storage behind the ledger."""

    def load(self, token: str) -> Optional[Decimal]:
        """Stored quantity for token, None if never saved."""
        ...

    def save(self, token: str, amount: Decimal) -> None:
        ...


class BalanceLedger:
    """
    Token -> non-negative quantity.

    Unknown tokens read as zero. When a BalanceStore is given, unknown
    tokens are loaded from it on first access and every mutation is
    saved back.
    """

    def __init__(
        self,
        initial_balances: Optional[Mapping[str, Any]] = None,
        store: Optional[BalanceStore] = None,
    ) -> None:
        self._balances: Dict[str, Decimal] = {}
        self._store = store
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

        for token, amount in (initial_balances or {}).items():
            self._balances[token] = parse_amount(amount, token)

    # ─────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────

    def get_balance(self, token: str) -> Decimal:
        """Current quantity of token; zero when unknown."""
        with self._locked(token):
            return self._current(token)

    def list_balances(self) -> List[Balance]:
        """All known balances, in no particular order."""
        return [Balance(token=token, amount=amount) for token, amount in self.snapshot().items()]

    def snapshot(self) -> Dict[str, Decimal]:
        """Copy of all known balances."""
        with self._locks_guard:
            return dict(self._balances)

    # ─────────────────────────────────────────────────────────────
    # Mutations
    # ─────────────────────────────────────────────────────────────

    def credit(self, token: str, amount: Any) -> Decimal:
        """Add amount to token. Returns the new balance."""
        value = parse_amount(amount, token)
        with self._locked(token):
            new_balance = self._current(token) + value
            self._write({token: new_balance})
        return new_balance

    def debit(self, token: str, amount: Any) -> Decimal:
        """
        Remove amount from token. Returns the new balance.

        Raises:
            InsufficientBalanceError: If amount exceeds the balance
        """
        value = parse_amount(amount, token)
        with self._locked(token):
            current = self._current(token)
            if value > current:
                raise InsufficientBalanceError(token, value, current)
            new_balance = current - value
            self._write({token: new_balance})
        return new_balance

    def set_balance(self, token: str, amount: Any) -> None:
        """Overwrite token's balance."""
        value = parse_amount(amount, token)
        with self._locked(token):
            self._write({token: value})
        logger.info(f"Balance of {token} set to {value}")

    def transfer(
        self,
        from_token: str,
        from_amount: Any,
        to_token: str,
        to_amount: Any,
    ) -> None:
        """
        Debit from_token then credit to_token atomically.

        Both tokens stay locked for the whole step, so a concurrent
        transfer cannot spend the same balance twice.

        Raises:
            InvalidAmountError: On invalid amounts (nothing applied)
            InsufficientBalanceError: If from_amount exceeds the balance (nothing applied)
        """
        debit_value = parse_amount(from_amount, from_token)
        credit_value = parse_amount(to_amount, to_token)

        with self._locked(from_token, to_token):
            from_balance = self._current(from_token)
            if debit_value > from_balance:
                raise InsufficientBalanceError(from_token, debit_value, from_balance)

            updates = {from_token: from_balance - debit_value}
            # Same-token transfers credit the already-debited balance
            to_balance = updates.get(to_token, self._current(to_token))
            updates[to_token] = to_balance + credit_value
            self._write(updates)

    # ─────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────

    def _lock_for(self, token: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(token)
            if lock is None:
                lock = threading.Lock()
                self._locks[token] = lock
            return lock

    @contextmanager
    def _locked(self, *tokens: str) -> Iterator[None]:
        """Hold the locks of tokens, acquired in sorted order."""
        with ExitStack() as stack:
            for token in sorted(set(tokens)):
                stack.enter_context(self._lock_for(token))
            yield

    def _current(self, token: str) -> Decimal:
        """Balance of token; caller holds the token's lock."""
        with self._locks_guard:
            balance = self._balances.get(token)
        if balance is not None:
            return balance

        if self._store is not None:
            stored = self._store.load(token)
            if stored is not None:
                balance = parse_amount(stored, token)
                with self._locks_guard:
                    self._balances[token] = balance
                return balance

        return ZERO

    def _write(self, updates: Dict[str, Decimal]) -> None:
        """Apply updates; caller holds the locks of every token in updates."""
        with self._locks_guard:
            self._balances.update(updates)

        if self._store is not None:
            for token, amount in updates.items():
                self._store.save(token, amount)

        for token, amount in updates.items():
            logger.debug(f"Balance of {token} is now {amount}")
