"""
Trading Module - Trade History.

Append-only log of settled trades, oldest first. Only the trade
engine appends; everything else reads copies.
"""

import threading
from typing import Iterator, List, Optional

from trading.models import Trade


class TradeHistory:
    """Ordered, append-only sequence of Trade records."""

    def __init__(self) -> None:
        self._trades: List[Trade] = []
        self._lock = threading.Lock()

    def append(self, trade: Trade) -> None:
        with self._lock:
            self._trades.append(trade)

    def list_trades(
        self,
        token: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Trade]:
        """
        Trades oldest-first.

        Args:
            token: Keep only trades with token on either side
            limit: Keep only the newest N (still oldest-first)
        """
        with self._lock:
            trades = list(self._trades)

        if token is not None:
            trades = [t for t in trades if token in (t.from_token, t.to_token)]

        if limit is not None:
            trades = trades[-limit:] if limit > 0 else []

        return trades

    def latest(self) -> Optional[Trade]:
        with self._lock:
            return self._trades[-1] if self._trades else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._trades)

    def __iter__(self) -> Iterator[Trade]:
        return iter(self.list_trades())
