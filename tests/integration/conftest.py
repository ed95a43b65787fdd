from typing import Callable, Optional
from unittest.mock import MagicMock

import pytest
from stellar_sdk import Keypair

from soroswap_mcp.cache import PriceCache
from soroswap_mcp.config import Settings
from soroswap_mcp.dispatcher import Dispatcher
from soroswap_mcp.models import StellarAccount, StellarBalance
from soroswap_mcp.prices import PriceService
from soroswap_mcp.soroswap import SoroswapClient, SoroswapPrice, SoroswapQuote
from soroswap_mcp.stellar import HorizonClient
from soroswap_mcp.swaps import SwapService
from soroswap_mcp.tokens import USDC_ISSUERS
from soroswap_mcp.validation import SwapLimits
from soroswap_mcp.wallets import WalletService

TESTNET_USDC_ISSUER = USDC_ISSUERS["testnet"]


# --- Settings and keys ---

@pytest.fixture
def default_keypair() -> Keypair:
    return Keypair.random()


@pytest.fixture
def settings(default_keypair: Keypair) -> Settings:
    return Settings(
        environment="test",
        log_dir=None,
        stellar_network="testnet",
        default_account_secret=default_keypair.secret,
    )


# --- Ledger fixtures ---

def xlm_balance(amount: str) -> StellarBalance:
    return StellarBalance(asset="XLM", asset_type="native", balance=amount)


def usdc_balance(amount: str) -> StellarBalance:
    return StellarBalance(
        asset="USDC",
        asset_type="credit_alphanum4",
        asset_code="USDC",
        asset_issuer=TESTNET_USDC_ISSUER,
        balance=amount,
        limit="922337203685.4775807",
    )


@pytest.fixture
def account_factory() -> Callable[..., StellarAccount]:
    """Builds a StellarAccount; pass usdc=None for an account without a USDC trustline."""

    def make(public_key: str, xlm: str = "1000.0000000", usdc: Optional[str] = "500.0000000",
             sequence: int = 123456789) -> StellarAccount:
        balances = [xlm_balance(xlm)]
        if usdc is not None:
            balances.append(usdc_balance(usdc))
        return StellarAccount(public_key=public_key, account_id=public_key, sequence=sequence, balances=balances)

    return make


@pytest.fixture
def mock_horizon(default_keypair: Keypair, account_factory) -> MagicMock:
    """HorizonClient mock; async methods become AsyncMocks via spec=HorizonClient."""
    horizon = MagicMock(spec=HorizonClient)
    horizon.horizon_url = "https://horizon-testnet.stellar.org"
    horizon.network = "testnet"
    horizon.network_passphrase = "Test SDF Network ; September 2015"

    account = account_factory(default_keypair.public_key)
    horizon.get_account.return_value = account
    horizon.get_balances.return_value = account.balances
    horizon.account_exists.return_value = True
    horizon.test_connection.return_value = True
    horizon.fetch_base_fee.return_value = 100
    horizon.submit_transaction.return_value = {"hash": "a" * 64, "ledger": 4242, "successful": True}
    horizon.get_transaction_history.return_value = []
    horizon.network_info.return_value = {
        "network": "testnet",
        "passphrase": horizon.network_passphrase,
        "horizonUrl": horizon.horizon_url,
    }
    return horizon


# --- Soroswap fixtures ---

def make_quote(to_amount: str = "20", minimum_received: str = "19.5", fee: str = "0.1",
               path=("XLM", "USDC")) -> SoroswapQuote:
    return SoroswapQuote(
        from_token=path[0],
        to_token=path[-1],
        from_amount="100",
        to_amount=to_amount,
        minimum_received=minimum_received,
        price_impact=0.12,
        fee=fee,
        path=list(path),
    )


def make_price(symbol: str, price_usd: float, change_24h: float = 0.0, volume_24h: float = 0.0,
               market_cap: Optional[float] = None) -> SoroswapPrice:
    return SoroswapPrice(
        symbol=symbol,
        price=price_usd,
        price_usd=price_usd,
        change_24h=change_24h,
        volume_24h=volume_24h,
        market_cap=market_cap,
        last_updated="2024-01-01T00:00:00Z",
    )


@pytest.fixture
def mock_soroswap() -> MagicMock:
    soroswap = MagicMock(spec=SoroswapClient)
    soroswap.base_url = "https://api.soroswap.finance"
    soroswap.has_api_key = False
    soroswap.get_quote.return_value = make_quote()
    soroswap.get_token_price.return_value = make_price("XLM", 0.2, change_24h=0.01, volume_24h=5000.0)
    soroswap.get_all_prices.return_value = [
        make_price("XLM", 0.2, change_24h=0.01, volume_24h=5000.0, market_cap=1000.0),
        make_price("USDC", 1.0, change_24h=0.0, volume_24h=9000.0, market_cap=2000.0),
    ]
    soroswap.get_pools.return_value = []
    soroswap.test_connection.return_value = True
    soroswap.get_config.return_value = {"apiUrl": soroswap.base_url, "hasApiKey": False}
    return soroswap


# --- Services ---

@pytest.fixture
def price_service(mock_soroswap: MagicMock, clock) -> PriceService:
    return PriceService(mock_soroswap, PriceCache(ttl=60, max_size=1000, clock=clock), "testnet")


@pytest.fixture
def wallet_service(mock_horizon: MagicMock, settings: Settings, clock) -> WalletService:
    return WalletService(
        mock_horizon,
        "testnet",
        default_public_key=settings.default_account_public,
        session_ttl=3600,
        max_sessions=3,
        clock=clock,
    )


@pytest.fixture
def swap_service(mock_horizon: MagicMock, mock_soroswap: MagicMock, settings: Settings) -> SwapService:
    return SwapService(
        mock_horizon,
        mock_soroswap,
        SwapLimits.from_settings(settings),
        "testnet",
        settings.network_passphrase,
        default_secret=settings.default_account_secret.get_secret_value(),
        execution_mode="ledger",
    )


@pytest.fixture
def dispatcher(settings, mock_horizon, mock_soroswap, swap_service, price_service, wallet_service) -> Dispatcher:
    return Dispatcher(settings, mock_horizon, mock_soroswap, swap_service, price_service, wallet_service)
