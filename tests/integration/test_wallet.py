"""
Integration Tests for wallet sessions

Test Coverage:
- connect: key format check, account lookup, availableXLM and trustline count
- refresh: unknown sessions, accounts that stop resolving
- disconnect: idempotence
- session expiry and the session cap
- balance, trustline and summary helpers
"""

from unittest.mock import MagicMock

import pytest
from stellar_sdk import Keypair

from soroswap_mcp.errors import AccountNotFoundError, InvalidKeypairError
from soroswap_mcp.wallets import WalletService

pytestmark = pytest.mark.asyncio


async def test_connect_wallet(wallet_service: WalletService, mock_horizon: MagicMock, account_factory):
    pk = Keypair.random().public_key
    mock_horizon.get_account.return_value = account_factory(pk, xlm="10.0000000")

    info = await wallet_service.connect(pk)

    assert info.public_key == pk
    assert info.is_connected is True
    assert info.trustline_count == 1
    # 10 - 0.5 base reserve - 0.5 for the USDC trustline
    assert info.available_xlm == "9.0000000"
    assert wallet_service.is_connected(pk)
    assert wallet_service.get_wallet_info(pk) == info


async def test_connect_wallet_available_xlm_never_negative(
    wallet_service: WalletService, mock_horizon: MagicMock, account_factory
):
    pk = Keypair.random().public_key
    mock_horizon.get_account.return_value = account_factory(pk, xlm="0.7000000")

    info = await wallet_service.connect(pk)

    assert info.available_xlm == "0"


async def test_connect_rejects_malformed_key(wallet_service: WalletService, mock_horizon: MagicMock):
    with pytest.raises(InvalidKeypairError):
        await wallet_service.connect("GNOTAKEY")
    mock_horizon.get_account.assert_not_awaited()


async def test_connect_unknown_account(wallet_service: WalletService, mock_horizon: MagicMock):
    pk = Keypair.random().public_key
    mock_horizon.get_account.side_effect = AccountNotFoundError(pk)

    with pytest.raises(AccountNotFoundError):
        await wallet_service.connect(pk)
    assert not wallet_service.is_connected(pk)


async def test_refresh_requires_connection(wallet_service: WalletService):
    with pytest.raises(AccountNotFoundError):
        await wallet_service.refresh(Keypair.random().public_key)


async def test_refresh_overwrites_snapshot(wallet_service: WalletService, mock_horizon: MagicMock, account_factory):
    pk = Keypair.random().public_key
    mock_horizon.get_account.return_value = account_factory(pk, xlm="10.0000000")
    await wallet_service.connect(pk)

    mock_horizon.get_account.return_value = account_factory(pk, xlm="20.0000000", usdc=None)
    info = await wallet_service.refresh(pk)

    assert info.trustline_count == 0
    assert info.available_xlm == "19.5000000"
    assert wallet_service.get_wallet_info(pk).available_xlm == "19.5000000"


async def test_refresh_drops_vanished_account(wallet_service: WalletService, mock_horizon: MagicMock):
    pk = Keypair.random().public_key
    await wallet_service.connect(pk)
    mock_horizon.get_account.side_effect = AccountNotFoundError(pk)

    with pytest.raises(AccountNotFoundError):
        await wallet_service.refresh(pk)
    assert not wallet_service.is_connected(pk)


async def test_disconnect_twice_is_harmless(wallet_service: WalletService):
    pk = Keypair.random().public_key
    await wallet_service.connect(pk)

    wallet_service.disconnect(pk)
    wallet_service.disconnect(pk)

    assert not wallet_service.is_connected(pk)


async def test_sessions_expire(wallet_service: WalletService, clock):
    pk = Keypair.random().public_key
    await wallet_service.connect(pk)

    clock.advance(3600.5)

    assert wallet_service.get_wallet_info(pk) is None
    with pytest.raises(AccountNotFoundError):
        await wallet_service.refresh(pk)


async def test_session_cap_evicts_oldest(wallet_service: WalletService):
    keys = [Keypair.random().public_key for _ in range(4)]
    for pk in keys:
        await wallet_service.connect(pk)

    connected = [w.public_key for w in wallet_service.connected_wallets()]
    assert connected == keys[1:]


async def test_disconnect_all(wallet_service: WalletService):
    await wallet_service.connect(Keypair.random().public_key)
    await wallet_service.connect(Keypair.random().public_key)

    wallet_service.disconnect_all()

    assert wallet_service.connected_wallets() == []


async def test_token_balance_lookups(wallet_service: WalletService, mock_horizon: MagicMock):
    pk = Keypair.random().public_key
    mock_horizon.get_token_balance.return_value = "500.0000000"

    assert await wallet_service.get_token_balance(pk, "usdc") == "500.0000000"
    assert await wallet_service.get_token_balance(pk, "BTC") == "0"
    token = mock_horizon.get_token_balance.await_args.args[1]
    assert token.symbol == "USDC"


async def test_trustline_and_holdings(wallet_service: WalletService, mock_horizon: MagicMock, account_factory):
    pk = Keypair.random().public_key
    mock_horizon.get_balances.return_value = account_factory(pk, usdc="5.0000000").balances

    assert await wallet_service.has_trustline(pk, "XLM") is True
    assert await wallet_service.has_trustline(pk, "USDC") is True
    assert await wallet_service.has_trustline(pk, "BTC") is False
    assert await wallet_service.has_token(pk, "USDC", "5") is True
    assert await wallet_service.has_token(pk, "USDC", "5.0000001") is False

    mock_horizon.get_balances.return_value = account_factory(pk, usdc=None).balances
    assert await wallet_service.has_trustline(pk, "USDC") is False


async def test_wallet_summary(wallet_service: WalletService, mock_horizon: MagicMock, account_factory):
    pk = Keypair.random().public_key
    mock_horizon.get_balances.return_value = account_factory(pk, xlm="3.0000000").balances

    summary = await wallet_service.get_wallet_summary(pk)

    assert summary["address"] == pk
    assert summary["shortAddress"] == f"{pk[:8]}...{pk[-8:]}"
    assert summary["totalBalances"] == 2
    assert summary["totalTrustlines"] == 1
    assert summary["xlmBalance"] == "3.0000000"
    assert summary["availableXLM"] == "2.0000000"
    assert summary["supportedTokens"] == ["USDC", "XLM"]


async def test_default_account_info(wallet_service: WalletService, settings):
    info = await wallet_service.get_default_account_info()

    assert info.public_key == settings.default_account_public


async def test_default_account_info_not_configured(mock_horizon: MagicMock):
    service = WalletService(mock_horizon, "testnet")

    assert await service.get_default_account_info() is None


async def test_health_check(wallet_service: WalletService):
    await wallet_service.connect(Keypair.random().public_key)

    health = await wallet_service.health_check()

    assert health == {"connectedWallets": 1, "defaultAccountStatus": "connected", "stellarNetworkStatus": True}
