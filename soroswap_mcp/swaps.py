"""Swap estimation and execution against Soroswap quotes and the Stellar ledger."""

import asyncio
import contextlib
import uuid
from typing import Any, AsyncIterator, Dict, List, Optional

from mcp.server.fastmcp.utilities.logging import get_logger
from pydantic import ValidationError as PydanticValidationError
from stellar_sdk import Keypair

from .errors import (
    BridgeError,
    ErrorCode,
    InsufficientBalanceError,
    InvalidKeypairError,
    MissingTrustlineError,
    OracleConnectionError,
    QuoteAPIError,
    SwapValidationError,
)
from .log import shorten_address
from .models import StellarAccount, SwapEstimate, SwapRequest, SwapResult, TokenInfo, ValidationResult
from .soroswap import SoroswapClient
from .stellar import HorizonClient, build_path_payment, keypair_from_secret
from .tokens import compare_balances, find_balance, format_amount, known_tokens
from .validation import SwapLimits, validate_swap_request

logger = get_logger(__name__)

EXECUTION_MODES = ("ledger", "simulation")
SIMULATED_PREFIX = "simulated_"


class SwapService:
    def __init__(
        self,
        horizon: HorizonClient,
        soroswap: SoroswapClient,
        limits: SwapLimits,
        network: str,
        network_passphrase: str,
        default_secret: Optional[str] = None,
        execution_mode: str = "ledger",
    ):
        if execution_mode not in EXECUTION_MODES:
            raise ValueError(f"Unknown swap execution mode: {execution_mode}")
        self.horizon = horizon
        self.soroswap = soroswap
        self.limits = limits
        self.network_passphrase = network_passphrase
        self.tokens = known_tokens(network)
        self.execution_mode = execution_mode
        self._default_secret = default_secret
        # One lock per signing account; a sequence number can only be spent once
        self._account_locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    def validate(self, request: SwapRequest) -> ValidationResult:
        return validate_swap_request(request, self.limits, self.tokens)

    async def estimate_swap(self, request: SwapRequest) -> SwapEstimate:
        """
        Quotes a swap without touching any account.

        Raises:
            SwapValidationError: the request fails validation.
            QuoteAPIError / OracleConnectionError: the quote could not be obtained,
                with the message prefixed "Swap estimation failed:".
        """
        validation = self.validate(request)
        if not validation.valid:
            raise SwapValidationError(validation.errors, validation.warnings)

        from_token = request.from_token.upper()
        to_token = request.to_token.upper()
        logger.debug(f"Estimating swap {request.amount} {from_token} -> {to_token} (slippage {request.slippage}%)")
        try:
            quote = await self.soroswap.get_quote(
                from_token, to_token, format_amount(request.amount), request.slippage
            )
            estimate = SwapEstimate(
                from_token=quote.from_token or from_token,
                to_token=quote.to_token or to_token,
                from_amount=float(quote.from_amount),
                to_amount=float(quote.to_amount),
                minimum_received=float(quote.minimum_received),
                price_impact=quote.price_impact,
                fee=float(quote.fee),
                path=quote.path,
            )
        except QuoteAPIError as e:
            raise QuoteAPIError(f"Swap estimation failed: {e.message}", e.status, e.data) from e
        except OracleConnectionError as e:
            raise OracleConnectionError(f"Swap estimation failed: {e.message}", e.details) from e
        except (PydanticValidationError, ValueError) as e:
            raise QuoteAPIError(f"Swap estimation failed: invalid quote ({e})") from e

        logger.info(
            f"Swap estimate {from_token} -> {to_token}: {estimate.to_amount} "
            f"(min {estimate.minimum_received}, impact {estimate.price_impact}%)"
        )
        return estimate

    async def execute_swap(self, request: SwapRequest) -> SwapResult:
        """Runs a swap end to end. Never raises: every failure comes back as a failed SwapResult."""
        logger.info(f"Executing swap {request.amount} {request.from_token} -> {request.to_token}")

        validation = self.validate(request)
        if not validation.valid:
            error = SwapValidationError(validation.errors, validation.warnings)
            logger.warning(error.message)
            return SwapResult.failure(request, error.message, error.code.value, validation.warnings)
        for warning in validation.warnings:
            logger.warning(f"Swap warning: {warning}")

        try:
            estimate = await self.estimate_swap(request)
            keypair = self._resolve_keypair(request)
            async with self._account_lock(keypair.public_key):
                account = await self._pre_check(keypair.public_key, request)
                transaction_hash = await self._execute(keypair, account, request, estimate)
        except BridgeError as e:
            logger.error(f"Swap failed: {e.message}")
            return SwapResult.failure(request, e.message, e.code.value, validation.warnings)
        except Exception as e:
            logger.exception(f"Unexpected error while executing swap: {e}")
            return SwapResult.failure(request, str(e) or type(e).__name__, ErrorCode.SWAP_EXECUTION_ERROR.value,
                                      validation.warnings)

        result = SwapResult(
            success=True,
            transaction_hash=transaction_hash,
            from_token=request.from_token.upper(),
            to_token=request.to_token.upper(),
            from_amount=request.amount,
            to_amount=estimate.to_amount,
            actual_received=estimate.to_amount,
            fee=estimate.fee,
            warnings=validation.warnings,
            simulated=self.execution_mode == "simulation",
        )
        logger.info(f"Swap completed: {transaction_hash} ({result.from_amount} {result.from_token} -> "
                    f"{result.to_amount} {result.to_token})")
        return result

    @contextlib.asynccontextmanager
    async def _account_lock(self, public_key: str) -> AsyncIterator[None]:
        """Serializes swaps per account; the lock is dropped once nobody holds or awaits it."""
        lock = self._account_locks.setdefault(public_key, asyncio.Lock())
        self._lock_users[public_key] = self._lock_users.get(public_key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[public_key] -= 1
            if not self._lock_users[public_key]:
                del self._lock_users[public_key]
                del self._account_locks[public_key]

    def _resolve_keypair(self, request: SwapRequest) -> Keypair:
        secret = request.account_secret or self._default_secret
        if not secret:
            raise InvalidKeypairError("No account secret provided and no default account is configured")
        return keypair_from_secret(secret)

    async def _pre_check(self, public_key: str, request: SwapRequest) -> StellarAccount:
        account = await self.horizon.get_account(public_key)
        from_token = self.tokens[request.from_token.upper()]
        to_token = self.tokens[request.to_token.upper()]

        for token in (from_token, to_token):
            if not token.is_native and find_balance(account.balances, token) is None:
                raise MissingTrustlineError(token.symbol, public_key)

        balance = find_balance(account.balances, from_token)
        available = balance.balance if balance else "0"
        if not compare_balances(available, request.amount):
            raise InsufficientBalanceError(from_token.symbol, str(request.amount), available, public_key)
        logger.debug(f"Pre-check passed for {shorten_address(public_key)}: {available} {from_token.symbol} available")
        return account

    async def _execute(
        self, keypair: Keypair, account: StellarAccount, request: SwapRequest, estimate: SwapEstimate
    ) -> str:
        if self.execution_mode == "simulation":
            reference = f"{SIMULATED_PREFIX}{uuid.uuid4().hex}"
            logger.warning(f"Simulated swap, nothing submitted to the ledger: {reference}")
            return reference

        envelope = build_path_payment(
            keypair,
            account,
            send_token=self.tokens[request.from_token.upper()],
            send_amount=request.amount,
            dest_token=self.tokens[request.to_token.upper()],
            dest_min=estimate.minimum_received,
            path=self._intermediate_hops(estimate.path),
            network_passphrase=self.network_passphrase,
            base_fee=await self.horizon.fetch_base_fee(),
        )
        response = await self.horizon.submit_transaction(envelope)
        return response.get("hash") or envelope.hash_hex()

    def _intermediate_hops(self, path: List[str]) -> List[TokenInfo]:
        hops = []
        for symbol in path[1:-1]:
            token = self.tokens.get(symbol.upper())
            if token is None:
                logger.warning(f"Skipping unknown token {symbol} in quote path")
                continue
            hops.append(token)
        return hops

    async def get_best_route(self, from_token: str, to_token: str, amount: float) -> Dict[str, Any]:
        route = await self.soroswap.get_best_route(from_token.upper(), to_token.upper(), format_amount(amount))
        return {
            "path": route.path,
            "expectedOutput": float(route.expected_output),
            "priceImpact": route.price_impact,
            "estimatedFee": float(route.fee),
        }

    async def can_swap(self, public_key: str, from_token: str, to_token: str, amount: float) -> Dict[str, Any]:
        """Checks trustlines and balance for a prospective swap and explains any blocker."""
        from_info = self.tokens.get(from_token.upper())
        to_info = self.tokens.get(to_token.upper())
        if from_info is None or to_info is None:
            return {"canSwap": False, "reason": "Unsupported token pair"}

        try:
            balances = await self.horizon.get_balances(public_key)
        except BridgeError as e:
            logger.error(f"Failed to check swap possibility for {shorten_address(public_key)}: {e}")
            return {"canSwap": False, "reason": f"Error checking swap possibility: {e.message}"}

        missing = [
            token.symbol
            for token in (from_info, to_info)
            if not token.is_native and find_balance(balances, token) is None
        ]
        if missing:
            return {"canSwap": False, "reason": "Missing trustlines", "missingTrustlines": missing}

        balance = find_balance(balances, from_info)
        if not compare_balances(balance.balance if balance else "0", amount):
            return {"canSwap": False, "reason": "Insufficient balance", "insufficientBalance": True}
        return {"canSwap": True}

    async def health_check(self) -> Dict[str, Any]:
        default_status = "not_configured"
        if self._default_secret:
            public_key = keypair_from_secret(self._default_secret).public_key
            default_status = "active" if await self.horizon.account_exists(public_key) else "not_found"
        return {
            "stellarConnection": await self.horizon.test_connection(),
            "soroswapConnection": await self.soroswap.test_connection(),
            "defaultAccountStatus": default_status,
            "supportedTokens": sorted(self.tokens),
            "executionMode": self.execution_mode,
        }
