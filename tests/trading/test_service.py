"""
Trading Service Tests.

============================================================
PURPOSE
============================================================
Wiring, denominated prices, account state and configuration.

============================================================
"""

import json
import logging

import pytest

from conftest import StubPriceSource, d
from price_sources.aggregator import PriceAggregator
from price_sources.constants import USDC_MINT, USDT_MINT, WRAPPED_SOL_MINT
from trading.config import TradingConfig, default_balances
from trading.exceptions import ConfigurationError
from trading.models import TradeErrorCode
from trading.service import TradingService, create_trading_service, setup_logging


TOKEN = "TokenMint1111111111111111111111111111111111"


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


@pytest.fixture
def aggregator(clock):
    source = StubPriceSource(
        "stub",
        {USDC_MINT: "1", WRAPPED_SOL_MINT: "20", TOKEN: "5"},
        clock=clock,
    )
    return PriceAggregator([source], clock=clock)


@pytest.fixture
def service(aggregator):
    return create_trading_service(aggregator=aggregator)


# ============================================================
# WIRING TESTS
# ============================================================

class TestCreateTradingService:
    """Tests for create_trading_service."""

    def test_default_balances(self, service):
        assert isinstance(service, TradingService)
        assert service.get_balance(WRAPPED_SOL_MINT) == d(10)
        assert service.get_balance(USDC_MINT) == d(1000)
        assert service.get_balance(USDT_MINT) == d(1000)

    def test_custom_balances(self, aggregator):
        service = create_trading_service(
            TradingConfig(initial_balances={USDC_MINT: "250"}),
            aggregator=aggregator,
        )

        assert service.get_balance(USDC_MINT) == d(250)
        assert service.get_balance(WRAPPED_SOL_MINT) == d(0)

    def test_invalid_config_rejected(self, aggregator):
        config = TradingConfig(initial_balances={USDC_MINT: "-5"}, log_format="xml")

        with pytest.raises(ConfigurationError) as exc_info:
            create_trading_service(config, aggregator=aggregator)

        assert len(exc_info.value.errors) == 2

    def test_components_shared(self, service):
        assert service.engine.history is not None
        assert service.ledger.get_balance(USDC_MINT) == d(1000)
        assert service.aggregator.list_sources() == ["stub"]


# ============================================================
# OPERATION TESTS
# ============================================================

class TestTradingService:
    """Tests for TradingService operations."""

    @pytest.mark.asyncio
    async def test_execute_trade_updates_state(self, service):
        result = await service.execute_trade(USDC_MINT, WRAPPED_SOL_MINT, 100)

        assert result.success
        state = service.get_current_state()
        assert state.balances[USDC_MINT] == d(900)
        assert state.balances[WRAPPED_SOL_MINT] == d(15)
        assert state.trades == [result.trade]
        assert service.get_trades() == [result.trade]
        assert state.to_dict()["balances"][USDC_MINT] == "900"

    @pytest.mark.asyncio
    async def test_failed_trade_reports_code(self, service):
        result = await service.execute_trade(USDC_MINT, WRAPPED_SOL_MINT, 5000)

        assert result.error_code == TradeErrorCode.INSUFFICIENT_BALANCE
        assert result.to_dict()["error_code"] == "insufficient_balance"
        assert service.get_trades() == []

    @pytest.mark.asyncio
    async def test_price_in_usd(self, service):
        assert await service.get_token_price(TOKEN) == d(5)
        assert await service.get_token_price_in(TOKEN) == d(5)

    @pytest.mark.asyncio
    async def test_price_in_sol(self, service):
        assert await service.get_token_price_in(TOKEN, "sol") == d("0.25")

    @pytest.mark.asyncio
    async def test_price_in_own_denomination(self, service):
        assert await service.get_token_price_in(WRAPPED_SOL_MINT, "SOL") == d(1)

    @pytest.mark.asyncio
    async def test_price_in_unpriced_denomination(self, service):
        assert await service.get_token_price_in(TOKEN, "usdt") is None

    @pytest.mark.asyncio
    async def test_price_of_unknown_token(self, service):
        assert await service.get_token_price_in("unknown", "usdc") is None

    @pytest.mark.asyncio
    async def test_is_token_supported(self, service):
        assert await service.is_token_supported(TOKEN) is True
        assert await service.is_token_supported("unknown") is False

    def test_update_balance(self, service):
        service.update_balance(TOKEN, "42")

        assert service.get_balance(TOKEN) == d(42)
        assert TOKEN in {b.token for b in service.get_all_balances()}

    @pytest.mark.asyncio
    async def test_async_context_manager(self, aggregator):
        async with create_trading_service(aggregator=aggregator) as service:
            assert service.get_balance(USDC_MINT) == d(1000)


# ============================================================
# CONFIG & LOGGING TESTS
# ============================================================

class TestTradingConfig:
    """Tests for TradingConfig."""

    def test_defaults(self):
        config = TradingConfig()

        assert config.initial_balances == default_balances()
        assert config.validate() == []

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("INITIAL_BALANCES", f"{USDC_MINT}:50,{TOKEN}:1.5")
        monkeypatch.setenv("LOG_FORMAT", "json")

        config = TradingConfig.from_env()

        assert config.initial_balances == {USDC_MINT: "50", TOKEN: "1.5"}
        assert config.log_format == "json"
        assert config.validate() == []

    def test_non_numeric_balance(self):
        config = TradingConfig(initial_balances={TOKEN: "lots"})

        assert config.validate() == [f"initial balance for {TOKEN} is not a number"]

    def test_unknown_log_level(self):
        config = TradingConfig(log_level="chatty")

        assert config.validate() == ["log_level must be a standard level name, got 'chatty'"]


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_text_format(self):
        logger = setup_logging("debug")

        assert logger.name == "trading"
        assert logging.getLogger().level == logging.DEBUG

    def test_json_format(self):
        setup_logging("INFO", log_format="json")

        handler = logging.getLogger().handlers[0]
        record = logging.LogRecord("trading", logging.INFO, __file__, 1, "hello", None, None)
        payload = json.loads(handler.format(record))

        assert payload["message"] == "hello"
        assert payload["level"] == "INFO"

    def test_service_applies_configured_logging(self, aggregator):
        config = TradingConfig(log_level="WARNING", log_format="json")

        create_trading_service(config, aggregator=aggregator)

        root = logging.getLogger()
        assert root.level == logging.WARNING
        record = logging.LogRecord("trading", logging.WARNING, __file__, 1, "configured", None, None)
        assert json.loads(root.handlers[0].format(record))["message"] == "configured"
