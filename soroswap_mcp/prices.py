"""Token and token-pair prices from the Soroswap API, behind a TTL cache."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp.utilities.logging import get_logger

from .cache import PriceCache
from .errors import QuoteAPIError, ValidationError
from .models import TokenPrice
from .soroswap import SoroswapClient, SoroswapPrice
from .tokens import USD_BASE_SYMBOL, format_token_pair, known_tokens, parse_token_pair

logger = get_logger(__name__)

MARKET_MOVERS = 5


def to_token_price(soroswap_price: SoroswapPrice) -> TokenPrice:
    change_percentage = 0.0
    if soroswap_price.price_usd:
        change_percentage = soroswap_price.change_24h / soroswap_price.price_usd * 100
    return TokenPrice(
        symbol=soroswap_price.symbol,
        price=soroswap_price.price,
        price_usd=soroswap_price.price_usd,
        price_change_24h=soroswap_price.change_24h,
        price_change_percentage_24h=change_percentage,
        volume_24h=soroswap_price.volume_24h,
        market_cap=soroswap_price.market_cap,
        last_updated=soroswap_price.last_updated,
    )


def summarize_market(prices: List[TokenPrice]) -> Dict[str, Any]:
    """Totals plus the top gainers and losers by 24h change percentage."""
    by_change = sorted(prices, key=lambda p: p.price_change_percentage_24h, reverse=True)

    def movers(selection: List[TokenPrice]) -> List[Dict[str, Any]]:
        return [{"symbol": p.symbol, "changePercent": p.price_change_percentage_24h} for p in selection]

    return {
        "totalMarketCap": sum(p.market_cap or 0 for p in prices),
        "totalVolume24h": sum(p.volume_24h for p in prices),
        "totalTokens": len(prices),
        "topGainers": movers(by_change[:MARKET_MOVERS]),
        "topLosers": movers(list(reversed(by_change[-MARKET_MOVERS:]))),
    }


def _without_change(price: TokenPrice) -> TokenPrice:
    return price.model_copy(update={"price_change_24h": 0.0, "price_change_percentage_24h": 0.0, "volume_24h": 0.0})


class PriceService:
    def __init__(self, soroswap: SoroswapClient, cache: PriceCache, network: str):
        self.soroswap = soroswap
        self.cache = cache
        self.supported_tokens = set(known_tokens(network))

    def is_supported(self, symbol: str) -> bool:
        return symbol.upper() in self.supported_tokens

    async def get_token_pair_price(self, token_pair: str, include_change: bool = True) -> TokenPrice:
        """
        Price of one unit of A expressed in B for a pair written "A/B".

        USDC is the USD base and is never fetched. The pair's priceUsd is the USD price
        of A; the 24h change and volume are A's, and are zeroed when include_change is off.

        Raises:
            ValidationError: malformed pair or unsupported token.
            QuoteAPIError / OracleConnectionError: the API could not price a token.
        """
        from_token, to_token = parse_token_pair(token_pair)
        logger.debug(f"Getting token pair price for {from_token}/{to_token} (includeChange={include_change})")
        if not self.is_supported(from_token) or not self.is_supported(to_token):
            raise ValidationError(f"Unsupported token pair: {token_pair}", {"tokenPair": token_pair})

        # The cache holds the full price; include_change only shapes the returned copy
        cache_key = f"{from_token}-{to_token}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug(f"Price for {cache_key} served from cache")
            return cached if include_change else _without_change(cached)

        from_price = await self._usd_price(from_token)
        to_price = await self._usd_price(to_token)
        from_usd = from_price.price_usd if from_price else 1.0
        to_usd = to_price.price_usd if to_price else 1.0
        if to_usd == 0:
            raise QuoteAPIError(f"No usable USD price for {to_token}")

        price = TokenPrice(
            symbol=format_token_pair(from_token, to_token),
            price=from_usd / to_usd,
            price_usd=from_usd,
        )
        if from_price is not None:
            price.price_change_24h = from_price.change_24h
            price.price_change_percentage_24h = to_token_price(from_price).price_change_percentage_24h
            price.volume_24h = from_price.volume_24h

        self.cache.put(cache_key, price)
        logger.info(f"Token pair price {price.symbol}: {price.price} (priceUsd={price.price_usd})")
        return price if include_change else _without_change(price)

    async def _usd_price(self, symbol: str) -> Optional[SoroswapPrice]:
        if symbol == USD_BASE_SYMBOL:
            return None
        return await self.soroswap.get_token_price(symbol)

    async def get_token_price(self, symbol: str) -> Optional[TokenPrice]:
        symbol = symbol.upper()
        if not self.is_supported(symbol):
            logger.warning(f"Unsupported token requested: {symbol}")
            return None

        cache_key = f"single-{symbol}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        try:
            soroswap_price = await self.soroswap.get_token_price(symbol)
        except QuoteAPIError as e:
            logger.error(f"Failed to get token price for {symbol}: {e}")
            return None
        if soroswap_price is None:
            logger.warning(f"Token price not found: {symbol}")
            return None

        price = to_token_price(soroswap_price)
        self.cache.put(cache_key, price)
        logger.info(f"Token price {symbol}: {price.price_usd} USD")
        return price

    async def get_all_prices(self) -> List[TokenPrice]:
        prices = [to_token_price(p) for p in await self.soroswap.get_all_prices()]
        for price in prices:
            self.cache.put(f"single-{price.symbol.upper()}", price)
        logger.info(f"Retrieved {len(prices)} token prices")
        return prices

    async def get_price_change(self, symbol: str) -> Optional[Dict[str, Any]]:
        """24h change only; the API exposes no other period."""
        price = await self.get_token_price(symbol)
        if price is None:
            return None
        return {
            "symbol": price.symbol,
            "currentPrice": price.price_usd,
            "previousPrice": price.price_usd - price.price_change_24h,
            "change": price.price_change_24h,
            "changePercent": price.price_change_percentage_24h,
            "period": "24h",
        }

    async def get_market_summary(self) -> Dict[str, Any]:
        return summarize_market(await self.get_all_prices())

    def cache_stats(self) -> Dict[str, object]:
        return self.cache.stats()

    def clear_cache(self) -> None:
        self.cache.invalidate_all()

    def sweep_expired_cache(self) -> int:
        return self.cache.sweep_expired()

    async def health_check(self) -> Dict[str, Any]:
        stats = self.cache.stats()
        last_insert = stats["lastInsert"]
        return {
            "soroswapApiStatus": await self.soroswap.test_connection(),
            "cacheSize": stats["size"],
            "lastPriceUpdate": (
                datetime.fromtimestamp(last_insert, timezone.utc).isoformat() if last_insert else None
            ),
        }
