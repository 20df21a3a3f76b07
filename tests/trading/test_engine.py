"""
Trade Engine Tests.

============================================================
PURPOSE
============================================================
Settlement arithmetic, rejection codes and concurrency.

TEST CATEGORIES:
- Happy path: USDC -> SOL at the ratio of USD prices
- Rejections: balance, price, amount
- Edge cases: same-token trades, round trips
- Concurrency: shared source balance

============================================================
"""

import asyncio
from decimal import Decimal

import pytest

from conftest import d
from trading.engine import TradeEngine
from trading.history import TradeHistory
from trading.ledger import BalanceLedger
from trading.models import TradeErrorCode


USDC = "USDC"
SOL = "SOL"


class FakePrices:
    """Price provider answering from a dict, yielding to the loop on each call."""

    def __init__(self, prices):
        self.prices = dict(prices)
        self.calls = []

    async def get_price(self, token):
        self.calls.append(token)
        await asyncio.sleep(0)
        return self.prices.get(token)


def make_engine(balances, prices):
    ledger = BalanceLedger(balances)
    provider = FakePrices(prices)
    return TradeEngine(ledger, provider, TradeHistory()), ledger, provider


# ============================================================
# SETTLEMENT TESTS
# ============================================================

class TestSettlement:
    """Tests for successful trades."""

    @pytest.mark.asyncio
    async def test_usdc_to_sol(self):
        engine, ledger, _ = make_engine({USDC: 1000, SOL: 0}, {USDC: d("1.0"), SOL: d("20.0")})

        result = await engine.execute_trade(USDC, SOL, 100)

        assert result.success is True
        assert result.error_code is None
        trade = result.trade
        assert trade.from_amount == d(100)
        assert trade.to_amount == d(5)
        assert trade.exchange_rate == d("0.05")
        assert trade.from_price == d(1)
        assert trade.to_price == d(20)
        assert trade.value_usd == d(100)
        assert ledger.get_balance(USDC) == d(900)
        assert ledger.get_balance(SOL) == d(5)
        assert engine.list_trades() == [trade]

    @pytest.mark.asyncio
    async def test_trade_ids_unique(self):
        engine, _, _ = make_engine({USDC: 1000}, {USDC: 1, SOL: 20})

        first = await engine.execute_trade(USDC, SOL, 10)
        second = await engine.execute_trade(USDC, SOL, 10)

        assert first.trade.trade_id != second.trade.trade_id
        assert [t.trade_id for t in engine.list_trades()] == [
            first.trade.trade_id,
            second.trade.trade_id,
        ]

    @pytest.mark.asyncio
    async def test_spend_entire_balance(self):
        engine, ledger, _ = make_engine({USDC: 100}, {USDC: 1, SOL: 20})

        result = await engine.execute_trade(USDC, SOL, "100")

        assert result.success
        assert ledger.get_balance(USDC) == d(0)

    @pytest.mark.asyncio
    async def test_round_trip_conserves_value(self):
        engine, ledger, _ = make_engine({USDC: 1000}, {USDC: d(1), SOL: d(20)})

        forward = await engine.execute_trade(USDC, SOL, 100)
        back = await engine.execute_trade(SOL, USDC, forward.trade.to_amount)

        assert back.success
        assert ledger.get_balance(USDC) == d(1000)
        assert ledger.get_balance(SOL) == d(0)

    @pytest.mark.asyncio
    async def test_same_token_trade_is_recorded_no_op(self):
        engine, ledger, prices = make_engine({USDC: 50}, {USDC: d(1)})

        result = await engine.execute_trade(USDC, USDC, 20)

        assert result.success
        assert result.trade.to_amount == d(20)
        assert result.trade.exchange_rate == d(1)
        assert ledger.get_balance(USDC) == d(50)
        assert len(engine.history) == 1
        assert prices.calls == [USDC]


# ============================================================
# REJECTION TESTS
# ============================================================

class TestRejections:
    """Tests for failed trades."""

    @pytest.mark.asyncio
    async def test_insufficient_balance(self):
        engine, ledger, prices = make_engine({"X": 10}, {"X": 1, "Y": 1})

        result = await engine.execute_trade("X", "Y", 15)

        assert result.success is False
        assert result.error_code == TradeErrorCode.INSUFFICIENT_BALANCE
        assert result.error.startswith("Insufficient balance")
        assert result.trade is None
        assert ledger.get_balance("X") == d(10)
        assert ledger.get_balance("Y") == d(0)
        assert engine.list_trades() == []
        assert prices.calls == []

    @pytest.mark.asyncio
    async def test_price_unavailable(self):
        engine, ledger, _ = make_engine({USDC: 1000}, {USDC: 1})

        result = await engine.execute_trade(USDC, "UNKNOWN", 10)

        assert result.success is False
        assert result.error_code == TradeErrorCode.PRICE_UNAVAILABLE
        assert "UNKNOWN" in result.error
        assert ledger.get_balance(USDC) == d(1000)
        assert engine.list_trades() == []

    @pytest.mark.asyncio
    async def test_zero_price_treated_as_unavailable(self):
        engine, _, _ = make_engine({USDC: 1000}, {USDC: 1, SOL: 0})

        result = await engine.execute_trade(USDC, SOL, 10)

        assert result.error_code == TradeErrorCode.PRICE_UNAVAILABLE

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, "0", -5, "abc", None, float("nan")])
    async def test_invalid_amount(self, amount):
        engine, ledger, prices = make_engine({USDC: 1000}, {USDC: 1, SOL: 20})

        result = await engine.execute_trade(USDC, SOL, amount)

        assert result.success is False
        assert result.error_code == TradeErrorCode.INVALID_AMOUNT
        assert ledger.get_balance(USDC) == d(1000)
        assert engine.list_trades() == []
        assert prices.calls == []


# ============================================================
# CONCURRENCY TESTS
# ============================================================

class TestConcurrency:
    """Tests for trades racing on one source balance."""

    @pytest.mark.asyncio
    async def test_concurrent_trades_never_overdraw(self):
        engine, ledger, _ = make_engine({"X": 10}, {"X": 1, "Y": 2})

        results = await asyncio.gather(
            engine.execute_trade("X", "Y", 7),
            engine.execute_trade("X", "Y", 7),
        )

        succeeded = [r for r in results if r.success]
        failed = [r for r in results if not r.success]
        assert len(succeeded) == 1
        assert failed[0].error_code == TradeErrorCode.INSUFFICIENT_BALANCE
        assert ledger.get_balance("X") == d(3)
        assert ledger.get_balance("Y") == Decimal("3.5")
        assert len(engine.history) == 1

    @pytest.mark.asyncio
    async def test_concurrent_trades_within_balance_all_settle(self):
        engine, ledger, _ = make_engine({"X": 10}, {"X": 1, "Y": 1})

        results = await asyncio.gather(*[
            engine.execute_trade("X", "Y", 2) for _ in range(5)
        ])

        assert all(r.success for r in results)
        assert ledger.get_balance("X") == d(0)
        assert ledger.get_balance("Y") == d(10)
