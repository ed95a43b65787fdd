"""Stellar ledger access through the Horizon REST API, plus keypair and transaction helpers."""

from typing import Any, Dict, List, Optional

import httpx
from mcp.server.fastmcp.utilities.logging import get_logger
from stellar_sdk import Account, Keypair, StrKey, TransactionBuilder
from stellar_sdk import TransactionEnvelope

from .errors import (
    AccountNotFoundError,
    InvalidKeypairError,
    OracleConnectionError,
    TransactionFailedError,
)
from .models import StellarAccount, StellarBalance, StellarTransaction, TokenInfo
from .tokens import NATIVE_SYMBOL, find_balance, format_amount, to_asset

logger = get_logger(__name__)

DEFAULT_BASE_FEE = 100  # stroops
TRANSACTION_TIMEOUT = 30  # seconds the ledger will accept the envelope


def is_valid_public_key(public_key: str) -> bool:
    return isinstance(public_key, str) and StrKey.is_valid_ed25519_public_key(public_key)


def keypair_from_secret(secret: str) -> Keypair:
    try:
        return Keypair.from_secret(secret)
    except ValueError as e:
        # Never echo the secret back
        raise InvalidKeypairError("Invalid Stellar secret key") from e


def build_path_payment(
    keypair: Keypair,
    account: StellarAccount,
    send_token: TokenInfo,
    send_amount: object,
    dest_token: TokenInfo,
    dest_min: object,
    path: List[TokenInfo],
    network_passphrase: str,
    base_fee: int = DEFAULT_BASE_FEE,
) -> TransactionEnvelope:
    """Signed path-payment-strict-send from the account to itself."""
    source = Account(keypair.public_key, account.sequence)
    envelope = (
        TransactionBuilder(source_account=source, network_passphrase=network_passphrase, base_fee=base_fee)
        .append_path_payment_strict_send_op(
            destination=keypair.public_key,
            send_asset=to_asset(send_token),
            send_amount=format_amount(send_amount),
            dest_asset=to_asset(dest_token),
            dest_min=format_amount(dest_min),
            path=[to_asset(token) for token in path],
        )
        .set_timeout(TRANSACTION_TIMEOUT)
        .build()
    )
    envelope.sign(keypair)
    return envelope


def _map_balance(raw: Dict[str, Any]) -> StellarBalance:
    asset_type = raw.get("asset_type", "")
    if asset_type == "native":
        return StellarBalance(asset=NATIVE_SYMBOL, asset_type=asset_type, balance=raw["balance"])
    if asset_type == "liquidity_pool_shares":
        return StellarBalance(
            asset=raw.get("liquidity_pool_id", "pool"), asset_type=asset_type, balance=raw["balance"]
        )
    return StellarBalance(
        asset=raw.get("asset_code", ""),
        asset_type=asset_type,
        asset_code=raw.get("asset_code"),
        asset_issuer=raw.get("asset_issuer"),
        balance=raw["balance"],
        limit=raw.get("limit"),
        buying_liabilities=raw.get("buying_liabilities"),
        selling_liabilities=raw.get("selling_liabilities"),
    )


class HorizonClient:
    def __init__(
        self,
        horizon_url: str,
        network: str,
        network_passphrase: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.horizon_url = horizon_url
        self.network = network
        self.network_passphrase = network_passphrase
        self._client = httpx.AsyncClient(
            base_url=horizon_url, timeout=timeout, headers={"Accept": "application/json"}, transport=transport
        )
        logger.info(f"Stellar client initialized for {network} at {horizon_url}")

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise OracleConnectionError(f"Horizon timed out on {path}", {"path": path}) from e
        except httpx.TransportError as e:
            raise OracleConnectionError(f"Failed to connect to Stellar network: {e}", {"path": path}) from e

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        response = await self._request("GET", path, params=params)
        if response.is_error:
            raise OracleConnectionError(
                f"Horizon returned HTTP {response.status_code} for {path}",
                {"path": path, "status": response.status_code},
            )
        return response.json()

    async def test_connection(self) -> bool:
        try:
            data = await self._get_json("/ledgers", params={"order": "desc", "limit": 1})
        except OracleConnectionError as e:
            logger.error(f"Stellar network connection failed: {e}")
            return False
        records = data.get("_embedded", {}).get("records", [])
        if not records:
            logger.error("Stellar network connection failed: no ledger records found")
            return False
        logger.debug(f"Stellar network reachable, latest ledger {records[0].get('sequence')}")
        return True

    async def get_account(self, public_key: str) -> StellarAccount:
        logger.debug(f"Fetching account info for {public_key}")
        response = await self._request("GET", f"/accounts/{public_key}")
        # Horizon answers 400 for malformed ids and 404 for unfunded ones
        if response.status_code in (400, 404):
            raise AccountNotFoundError(public_key)
        if response.is_error:
            raise OracleConnectionError(
                f"Failed to load account: Horizon returned HTTP {response.status_code}",
                {"publicKey": public_key, "status": response.status_code},
            )
        data = response.json()
        return StellarAccount(
            public_key=data["account_id"],
            account_id=data["account_id"],
            sequence=int(data["sequence"]),
            balances=[_map_balance(b) for b in data.get("balances", [])],
        )

    async def account_exists(self, public_key: str) -> bool:
        try:
            await self.get_account(public_key)
        except AccountNotFoundError:
            return False
        return True

    async def get_balances(self, public_key: str) -> List[StellarBalance]:
        account = await self.get_account(public_key)
        return account.balances

    async def get_token_balance(self, public_key: str, token: TokenInfo) -> str:
        balance = find_balance(await self.get_balances(public_key), token)
        return balance.balance if balance else "0"

    async def get_transaction_history(self, public_key: str, limit: int = 10) -> List[StellarTransaction]:
        logger.debug(f"Fetching transaction history for {public_key} (limit={limit})")
        response = await self._request(
            "GET", f"/accounts/{public_key}/transactions", params={"order": "desc", "limit": limit}
        )
        if response.status_code in (400, 404):
            raise AccountNotFoundError(public_key)
        if response.is_error:
            raise OracleConnectionError(
                f"Failed to load transactions: Horizon returned HTTP {response.status_code}",
                {"publicKey": public_key, "status": response.status_code},
            )
        records = response.json().get("_embedded", {}).get("records", [])
        return [
            StellarTransaction(
                hash=tx["hash"],
                ledger=tx.get("ledger", 0),
                created_at=tx.get("created_at", ""),
                source_account=tx.get("source_account", ""),
                fee_paid=str(tx.get("fee_charged") or "0"),
                operation_count=tx.get("operation_count", 0),
                successful=tx.get("successful", True),
            )
            for tx in records
        ]

    async def fetch_base_fee(self) -> int:
        try:
            data = await self._get_json("/fee_stats")
            return int(data.get("last_ledger_base_fee", DEFAULT_BASE_FEE))
        except (OracleConnectionError, ValueError) as e:
            logger.warning(f"Could not fetch base fee, using {DEFAULT_BASE_FEE}: {e}")
            return DEFAULT_BASE_FEE

    async def submit_transaction(self, envelope: TransactionEnvelope) -> Dict[str, Any]:
        """Submits a signed envelope and waits for the ledger's verdict."""
        tx_hash = envelope.hash_hex()
        logger.info(f"Submitting transaction {tx_hash}")
        response = await self._request("POST", "/transactions", data={"tx": envelope.to_xdr()})
        if response.is_success:
            data = response.json()
            logger.info(f"Transaction {data.get('hash', tx_hash)} included in ledger {data.get('ledger')}")
            return data

        try:
            body = response.json()
        except ValueError:
            body = {}
        extras = body.get("extras") or {}
        if response.status_code == 504:
            raise TransactionFailedError("Transaction submission timed out; it may still be applied", tx_hash)
        if response.status_code == 400:
            raise TransactionFailedError(
                body.get("detail") or body.get("title") or "Transaction failed",
                extras.get("hash", tx_hash),
                extras.get("result_codes"),
            )
        raise OracleConnectionError(
            f"Transaction submission failed: Horizon returned HTTP {response.status_code}",
            {"status": response.status_code, "transactionHash": tx_hash},
        )

    def network_info(self) -> Dict[str, str]:
        return {
            "network": self.network,
            "passphrase": self.network_passphrase,
            "horizonUrl": self.horizon_url,
        }
