"""
Routes MCP tool calls and resource reads to the swap, price and wallet services.

Tool calls never raise: argument problems and unknown tools come back as an
error-flagged envelope, and service failures as a payload with an "error" field.
Resource reads are logged and re-raised.
"""

import asyncio
import json
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from mcp.server.fastmcp.utilities.logging import get_logger
from pydantic import Field, ValidationError as PydanticValidationError

from .config import Settings
from .errors import BridgeError, UnknownResourceError, UnknownToolError
from .log import generate_request_id, redact_arguments
from .models import CamelModel, SwapRequest, utc_now
from .prices import PriceService, summarize_market
from .soroswap import SoroswapClient
from .stellar import HorizonClient
from .swaps import SwapService
from .wallets import WalletService

logger = get_logger(__name__)

JSON_MIME_TYPE = "application/json"


class ToolName(str, Enum):
    SWAP_TOKENS = "swap_tokens"
    GET_PRICE = "get_price"
    GET_BALANCE = "get_balance"
    GET_HISTORY = "get_history"
    ESTIMATE_SWAP = "estimate_swap"


class ResourceUri(str, Enum):
    ACCOUNT_INFO = "soroswap://account/info"
    MARKET_PRICES = "soroswap://market/prices"
    POOLS_LIQUIDITY = "soroswap://pools/liquidity"
    NETWORK_STATUS = "soroswap://network/status"


# --- Tool arguments ---

class SwapTokensArgs(CamelModel):
    from_token: str = Field(description="Symbol of the token to swap from (e.g., XLM, USDC)")
    to_token: str = Field(description="Symbol of the token to swap to (e.g., XLM, USDC)")
    amount: float = Field(allow_inf_nan=False, description="Amount of tokens to swap")
    slippage: float = Field(1.0, allow_inf_nan=False, description="Maximum slippage tolerance in percentage (0.1-50)")
    account_secret: Optional[str] = Field(
        None, repr=False, description="Stellar account secret key (optional, uses the default account if omitted)"
    )


class GetPriceArgs(CamelModel):
    token_pair: str = Field(description="Token pair to get price for (e.g., XLM/USDC)")
    include_change: bool = Field(True, description="Include 24h price change data")


class GetBalanceArgs(CamelModel):
    account: str = Field(description="Stellar account public key")
    token: Optional[str] = Field(
        None, description="Token symbol to check balance for (optional, returns all if not specified)"
    )


class GetHistoryArgs(CamelModel):
    account: str = Field(description="Stellar account public key")
    limit: int = Field(10, ge=1, le=100, description="Number of transactions to return")


class EstimateSwapArgs(CamelModel):
    from_token: str = Field(description="Symbol of the token to swap from")
    to_token: str = Field(description="Symbol of the token to swap to")
    amount: float = Field(allow_inf_nan=False, description="Amount of tokens to swap")


TOOL_ARGUMENTS: Dict[ToolName, Type[CamelModel]] = {
    ToolName.SWAP_TOKENS: SwapTokensArgs,
    ToolName.GET_PRICE: GetPriceArgs,
    ToolName.GET_BALANCE: GetBalanceArgs,
    ToolName.GET_HISTORY: GetHistoryArgs,
    ToolName.ESTIMATE_SWAP: EstimateSwapArgs,
}

TOOL_DESCRIPTIONS = {
    ToolName.SWAP_TOKENS: "Execute a token swap on the Soroswap DEX",
    ToolName.GET_PRICE: "Get current token price and market data",
    ToolName.GET_BALANCE: "Check wallet balance for specific tokens",
    ToolName.GET_HISTORY: "Get transaction history for an account",
    ToolName.ESTIMATE_SWAP: "Estimate swap output and fees without executing",
}

RESOURCES = {
    ResourceUri.ACCOUNT_INFO: ("Account Information", "Current account information and balances"),
    ResourceUri.MARKET_PRICES: ("Market Prices", "Current market prices for all supported tokens"),
    ResourceUri.POOLS_LIQUIDITY: ("Liquidity Pools", "Information about available liquidity pools"),
    ResourceUri.NETWORK_STATUS: ("Network Status", "Stellar network and Soroswap service status"),
}


def text_envelope(payload: Any, is_error: bool = False) -> Dict[str, Any]:
    text = payload if isinstance(payload, str) else json.dumps(payload, indent=2, default=str)
    return {"content": [{"type": "text", "text": text}], "isError": is_error}


def _describe_validation_error(error: PydanticValidationError) -> str:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"])
        problems.append(f"{location}: {item['msg']}" if location else item["msg"])
    return "; ".join(problems)


class Dispatcher:
    def __init__(
        self,
        settings: Settings,
        horizon: HorizonClient,
        soroswap: SoroswapClient,
        swaps: SwapService,
        prices: PriceService,
        wallets: WalletService,
    ):
        self.settings = settings
        self.horizon = horizon
        self.soroswap = soroswap
        self.swaps = swaps
        self.prices = prices
        self.wallets = wallets
        self._tools: Dict[ToolName, Callable[[Any], Awaitable[Dict[str, Any]]]] = {
            ToolName.SWAP_TOKENS: self._swap_tokens,
            ToolName.GET_PRICE: self._get_price,
            ToolName.GET_BALANCE: self._get_balance,
            ToolName.GET_HISTORY: self._get_history,
            ToolName.ESTIMATE_SWAP: self._estimate_swap,
        }
        self._resources: Dict[ResourceUri, Callable[[], Awaitable[Dict[str, Any]]]] = {
            ResourceUri.ACCOUNT_INFO: self._account_info,
            ResourceUri.MARKET_PRICES: self._market_prices,
            ResourceUri.POOLS_LIQUIDITY: self._liquidity_pools,
            ResourceUri.NETWORK_STATUS: self._network_status,
        }

    # --- Listing ---

    def list_tools(self) -> List[Dict[str, Any]]:
        return [
            {
                "name": name.value,
                "description": TOOL_DESCRIPTIONS[name],
                "inputSchema": model.model_json_schema(by_alias=True),
            }
            for name, model in TOOL_ARGUMENTS.items()
        ]

    def list_resources(self) -> List[Dict[str, Any]]:
        return [
            {"uri": uri.value, "name": name, "description": description, "mimeType": JSON_MIME_TYPE}
            for uri, (name, description) in RESOURCES.items()
        ]

    # --- Tools ---

    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Returns an MCP tool-result envelope: {"content": [...], "isError": bool}."""
        request_id = generate_request_id()
        started = time.perf_counter()
        logger.info(
            f"Request started [{request_id}]: call_tool {name} "
            f"args={redact_arguments(arguments, self.settings.is_development)}"
        )

        try:
            tool = self._resolve_tool(name)
            args = TOOL_ARGUMENTS[tool].model_validate(arguments or {})
        except UnknownToolError as e:
            return self._failed(request_id, started, name, e.message)
        except PydanticValidationError as e:
            return self._failed(request_id, started, name, f"Invalid arguments for {name}: {_describe_validation_error(e)}")

        try:
            payload = await self._tools[tool](args)
        except BridgeError as e:
            logger.error(f"Tool {name} failed [{request_id}]: {e.message}")
            payload = {"error": e.message, "errorCode": e.code.value, "timestamp": utc_now()}
        except Exception as e:
            logger.exception(f"Unexpected error in tool {name} [{request_id}]: {e}")
            message = str(e) if self.settings.is_development else f"Internal error (request {request_id})"
            return self._failed(request_id, started, name, message, logged=True)

        # Error payloads still count as failed requests
        self._log_end(request_id, started, name, success="error" not in payload)
        return text_envelope(payload)

    def _resolve_tool(self, name: str) -> ToolName:
        try:
            return ToolName(name)
        except ValueError:
            raise UnknownToolError(name) from None

    def _failed(self, request_id: str, started: float, name: str, message: str, logged: bool = False) -> Dict[str, Any]:
        if not logged:
            logger.warning(f"Tool call rejected [{request_id}]: {message}")
        self._log_end(request_id, started, name, success=False)
        return text_envelope(f"Error: {message}", is_error=True)

    def _log_end(self, request_id: str, started: float, operation: str, success: bool) -> None:
        duration_ms = (time.perf_counter() - started) * 1000
        status = "completed" if success else "failed"
        logger.info(f"Request {status} [{request_id}]: {operation} in {duration_ms:.1f}ms")

    async def _swap_tokens(self, args: SwapTokensArgs) -> Dict[str, Any]:
        request = SwapRequest(
            from_token=args.from_token,
            to_token=args.to_token,
            amount=args.amount,
            slippage=args.slippage,
            account_secret=args.account_secret,
        )
        result = await self.swaps.execute_swap(request)
        payload = result.to_json_dict()
        if result.transaction_hash and not result.simulated:
            payload["explorerUrl"] = self.settings.explorer_url(result.transaction_hash)
        return payload

    async def _get_price(self, args: GetPriceArgs) -> Dict[str, Any]:
        try:
            price = await self.prices.get_token_pair_price(args.token_pair, args.include_change)
        except BridgeError as e:
            logger.error(f"Price lookup for {args.token_pair} failed: {e.message}")
            return {"error": e.message, "errorCode": e.code.value, "tokenPair": args.token_pair, "timestamp": utc_now()}
        return {**price.to_json_dict(), "timestamp": utc_now()}

    async def _get_balance(self, args: GetBalanceArgs) -> Dict[str, Any]:
        try:
            if args.token:
                balance = await self.wallets.get_token_balance(args.account, args.token)
                return {"account": args.account, "token": args.token.upper(), "balance": balance, "timestamp": utc_now()}
            balances = await self.wallets.get_balances(args.account)
        except BridgeError as e:
            logger.error(f"Balance lookup for {args.account} failed: {e.message}")
            return {"error": e.message, "errorCode": e.code.value, "account": args.account, "timestamp": utc_now()}
        return {
            "account": args.account,
            "balances": [b.to_json_dict() for b in balances],
            "timestamp": utc_now(),
        }

    async def _get_history(self, args: GetHistoryArgs) -> Dict[str, Any]:
        try:
            transactions = await self.wallets.get_transaction_history(args.account, args.limit)
        except BridgeError as e:
            logger.error(f"History lookup for {args.account} failed: {e.message}")
            return {"error": e.message, "errorCode": e.code.value, "account": args.account, "timestamp": utc_now()}
        return {
            "account": args.account,
            "transactions": [
                {**tx.to_json_dict(), "explorerUrl": self.settings.explorer_url(tx.hash)} for tx in transactions
            ],
            "count": len(transactions),
            "timestamp": utc_now(),
        }

    async def _estimate_swap(self, args: EstimateSwapArgs) -> Dict[str, Any]:
        request = SwapRequest(from_token=args.from_token, to_token=args.to_token, amount=args.amount)
        try:
            estimate = await self.swaps.estimate_swap(request)
        except BridgeError as e:
            logger.error(f"Swap estimate failed: {e.message}")
            return {
                "error": e.message,
                "errorCode": e.code.value,
                "fromToken": args.from_token,
                "toToken": args.to_token,
                "amount": args.amount,
                "timestamp": utc_now(),
            }
        return {**estimate.to_json_dict(), "timestamp": utc_now()}

    # --- Resources ---

    async def read_resource(self, uri: str) -> Dict[str, Any]:
        """Returns {"contents": [{uri, mimeType, text}]}; failures are logged and re-raised."""
        request_id = generate_request_id()
        started = time.perf_counter()
        logger.info(f"Request started [{request_id}]: read_resource {uri}")
        try:
            try:
                resource = ResourceUri(uri)
            except ValueError:
                raise UnknownResourceError(uri) from None
            content = await self._resources[resource]()
        except Exception as e:
            logger.error(f"Resource read failed [{request_id}]: {uri}: {e}")
            self._log_end(request_id, started, "read_resource", success=False)
            raise

        self._log_end(request_id, started, "read_resource", success=True)
        return {
            "contents": [
                {"uri": uri, "mimeType": JSON_MIME_TYPE, "text": json.dumps(content, indent=2, default=str)}
            ]
        }

    async def _account_info(self) -> Dict[str, Any]:
        info = await self.wallets.get_default_account_info()
        if info is None:
            return {"message": "No default account configured", "timestamp": utc_now()}
        return {
            "account": {
                "publicKey": info.public_key,
                "accountId": info.account_id,
                "isConnected": info.is_connected,
                "balanceCount": len(info.balances),
                "trustlineCount": info.trustline_count,
                "availableXLM": info.available_xlm,
                "balances": [b.to_json_dict() for b in info.balances],
            },
            "timestamp": utc_now(),
        }

    async def _market_prices(self) -> Dict[str, Any]:
        prices = await self.prices.get_all_prices()
        summary = summarize_market(prices)
        return {
            "summary": {
                "totalMarketCap": summary["totalMarketCap"],
                "totalVolume24h": summary["totalVolume24h"],
                "totalTokens": summary["totalTokens"],
            },
            "topGainers": summary["topGainers"],
            "topLosers": summary["topLosers"],
            "prices": [
                {
                    "symbol": p.symbol,
                    "price": p.price,
                    "priceUsd": p.price_usd,
                    "change24h": p.price_change_percentage_24h,
                    "volume24h": p.volume_24h,
                }
                for p in prices
            ],
            "timestamp": utc_now(),
        }

    async def _liquidity_pools(self) -> Dict[str, Any]:
        pools = await self.soroswap.get_pools()
        return {
            "pools": [pool.to_json_dict() for pool in pools],
            "count": len(pools),
            "timestamp": utc_now(),
        }

    async def _network_status(self) -> Dict[str, Any]:
        stellar_ok, soroswap_ok, wallet, price, swap = await asyncio.gather(
            self.horizon.test_connection(),
            self.soroswap.test_connection(),
            self.wallets.health_check(),
            self.prices.health_check(),
            self.swaps.health_check(),
        )
        return {
            "stellar": {**self.horizon.network_info(), "connected": stellar_ok},
            "soroswap": {**self.soroswap.get_config(), "connected": soroswap_ok},
            "services": {
                "wallet": wallet,
                "price": {**price, "cache": self.prices.cache_stats()},
                "swap": swap,
            },
            "config": self.settings.summary(),
            "timestamp": utc_now(),
        }
