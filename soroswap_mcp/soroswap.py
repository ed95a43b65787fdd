"""Soroswap API client: prices, quotes, routes and pools."""

from typing import Any, Dict, List, Optional

import httpx
from mcp.server.fastmcp.utilities.logging import get_logger
from pydantic import Field, ValidationError as PydanticValidationError

from . import __version__
from .errors import OracleConnectionError, QuoteAPIError
from .models import CamelModel

logger = get_logger(__name__)

USER_AGENT = f"soroswap-mcp/{__version__}"


# --- Wire types ---

class SoroswapTokenInfo(CamelModel):
    symbol: str
    name: str = ""
    decimals: int = 7
    contract: str = ""
    icon: Optional[str] = None


class SoroswapPair(CamelModel):
    id: str
    token0: SoroswapTokenInfo
    token1: SoroswapTokenInfo
    reserve0: str
    reserve1: str
    total_supply: str = "0"
    fee: float = 0.0


class SoroswapPrice(CamelModel):
    symbol: str
    price: float
    price_usd: float
    change_24h: float = Field(0.0, alias="change24h")
    volume_24h: float = Field(0.0, alias="volume24h")
    market_cap: Optional[float] = None
    last_updated: str


class SoroswapQuote(CamelModel):
    from_token: str
    to_token: str
    from_amount: str
    to_amount: str
    minimum_received: str
    price_impact: float = 0.0
    fee: str = "0"
    path: List[str]
    estimated_gas: Optional[str] = None


class SoroswapRoute(CamelModel):
    path: List[str]
    expected_output: str
    price_impact: float = 0.0
    fee: str = "0"


class SoroswapClient:
    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Content-Type": "application/json", "User-Agent": USER_AGENT}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self.base_url = base_url
        self.has_api_key = bool(api_key)
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, headers=headers, transport=transport)
        logger.info(f"Soroswap client initialized for {base_url}")

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        logger.debug(f"Soroswap API request GET {path} params={params}")
        try:
            response = await self._client.get(path, params=params)
        except httpx.TimeoutException as e:
            raise OracleConnectionError(f"Soroswap API timed out on {path}", {"path": path}) from e
        except httpx.TransportError as e:
            raise OracleConnectionError(f"Failed to reach Soroswap API: {e}", {"path": path}) from e

        if response.is_error:
            raise QuoteAPIError(_error_message(response), status=response.status_code, data=_safe_json(response))
        logger.debug(f"Soroswap API response {response.status_code} for {path}")
        return response.json()

    async def _get_optional(self, path: str) -> Any:
        try:
            return await self._get(path)
        except QuoteAPIError as e:
            if e.status == 404:
                return None
            raise

    async def test_connection(self) -> bool:
        try:
            await self._get("/health")
            return True
        except (OracleConnectionError, QuoteAPIError) as e:
            logger.error(f"Soroswap API connection failed: {e}")
            return False

    async def get_tokens(self) -> List[SoroswapTokenInfo]:
        return [_parse(SoroswapTokenInfo, t) for t in await self._get("/tokens")]

    async def get_token_info(self, symbol: str) -> Optional[SoroswapTokenInfo]:
        data = await self._get_optional(f"/tokens/{symbol}")
        return _parse(SoroswapTokenInfo, data) if data is not None else None

    async def get_token_price(self, symbol: str) -> Optional[SoroswapPrice]:
        data = await self._get_optional(f"/prices/{symbol}")
        return _parse(SoroswapPrice, data) if data is not None else None

    async def get_all_prices(self) -> List[SoroswapPrice]:
        return [_parse(SoroswapPrice, p) for p in await self._get("/prices")]

    async def get_pools(self) -> List[SoroswapPair]:
        return [_parse(SoroswapPair, p) for p in await self._get("/pools")]

    async def get_pool(self, token0: str, token1: str) -> Optional[SoroswapPair]:
        data = await self._get_optional(f"/pools/{token0}/{token1}")
        return _parse(SoroswapPair, data) if data is not None else None

    async def get_quote(
        self, from_token: str, to_token: str, amount: str, slippage: Optional[float] = None
    ) -> SoroswapQuote:
        params: Dict[str, Any] = {"fromToken": from_token, "toToken": to_token, "amount": amount}
        if slippage is not None:
            params["slippage"] = slippage
        return _parse(SoroswapQuote, await self._get("/quote", params=params))

    async def get_best_route(self, from_token: str, to_token: str, amount: str) -> SoroswapRoute:
        params = {"fromToken": from_token, "toToken": to_token, "amount": amount}
        return _parse(SoroswapRoute, await self._get("/route", params=params))

    async def get_status(self) -> Dict[str, Any]:
        return await self._get("/status")

    def get_config(self) -> Dict[str, Any]:
        return {"apiUrl": self.base_url, "hasApiKey": self.has_api_key}


def _parse(model, data: Any):
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise QuoteAPIError(f"Unexpected Soroswap API response for {model.__name__}: {e.error_count()} invalid fields") from e


def _safe_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _error_message(response: httpx.Response) -> str:
    data = _safe_json(response)
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return f"Soroswap API returned HTTP {response.status_code}"
