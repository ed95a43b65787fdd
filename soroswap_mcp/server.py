import argparse
import asyncio
import contextlib
import signal
import sys
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import mcp.types as types
from mcp.server.fastmcp.utilities.logging import configure_logging, get_logger
from mcp.server.lowlevel import Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.server.stdio import stdio_server
from pydantic import AnyUrl

from . import __version__
from .cache import PriceCache
from .config import Settings, load_settings
from .dispatcher import Dispatcher
from .errors import ConfigError
from .log import close_logging, setup_logging
from .prices import PriceService
from .soroswap import SoroswapClient
from .stellar import HorizonClient
from .swaps import SwapService
from .validation import SwapLimits
from .wallets import WalletService

logger = get_logger(__name__)

SERVER_NAME = "soroswap-mcp"


class ToolCallError(Exception):
    """Raised inside the call_tool handler so the SDK answers with isError=True."""


@dataclass
class Components:
    settings: Settings
    horizon: HorizonClient
    soroswap: SoroswapClient
    prices: PriceService
    wallets: WalletService
    swaps: SwapService
    dispatcher: Dispatcher

    async def aclose(self) -> None:
        await self.horizon.aclose()
        await self.soroswap.aclose()
        logger.info("HTTP clients closed")


def build_components(settings: Settings) -> Components:
    """Constructs the clients and services for one server process."""
    horizon = HorizonClient(
        settings.stellar_horizon_url,
        settings.stellar_network,
        settings.network_passphrase,
        timeout=settings.request_timeout,
    )
    soroswap = SoroswapClient(
        settings.soroswap_api_url,
        api_key=settings.soroswap_api_key.get_secret_value() if settings.soroswap_api_key else None,
        timeout=settings.request_timeout,
    )
    prices = PriceService(
        soroswap,
        PriceCache(ttl=settings.price_cache_ttl, max_size=settings.price_cache_max_size),
        settings.stellar_network,
    )
    wallets = WalletService(
        horizon,
        settings.stellar_network,
        default_public_key=settings.default_account_public,
        session_ttl=settings.wallet_session_ttl,
        max_sessions=settings.wallet_max_sessions,
    )
    swaps = SwapService(
        horizon,
        soroswap,
        SwapLimits.from_settings(settings),
        settings.stellar_network,
        settings.network_passphrase,
        default_secret=(
            settings.default_account_secret.get_secret_value() if settings.default_account_secret else None
        ),
        execution_mode=settings.swap_execution_mode,
    )
    dispatcher = Dispatcher(settings, horizon, soroswap, swaps, prices, wallets)
    return Components(settings, horizon, soroswap, prices, wallets, swaps, dispatcher)


def create_server(dispatcher: Dispatcher) -> Server:
    """Binds the dispatcher to a low-level MCP server."""
    server = Server(SERVER_NAME, version=__version__)

    @server.list_tools()
    async def list_tools() -> List[types.Tool]:
        return [
            types.Tool(name=tool["name"], description=tool["description"], inputSchema=tool["inputSchema"])
            for tool in dispatcher.list_tools()
        ]

    @server.call_tool()
    async def call_tool(name: str, arguments: Optional[Dict[str, Any]]) -> List[types.TextContent]:
        envelope = await dispatcher.call_tool(name, arguments)
        text = envelope["content"][0]["text"]
        if envelope["isError"]:
            raise ToolCallError(text)
        return [types.TextContent(type="text", text=text)]

    @server.list_resources()
    async def list_resources() -> List[types.Resource]:
        return [
            types.Resource(
                uri=AnyUrl(resource["uri"]),
                name=resource["name"],
                description=resource["description"],
                mimeType=resource["mimeType"],
            )
            for resource in dispatcher.list_resources()
        ]

    @server.read_resource()
    async def read_resource(uri: AnyUrl) -> List[ReadResourceContents]:
        result = await dispatcher.read_resource(str(uri))
        return [ReadResourceContents(content=c["text"], mime_type=c["mimeType"]) for c in result["contents"]]

    return server


async def sweep_cache_periodically(prices: PriceService, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        removed = prices.sweep_expired_cache()
        if removed:
            logger.debug(f"Cache sweep removed {removed} expired prices")


async def check_connectivity(components: Components) -> None:
    """Logs whether the external services answer; an unreachable service does not stop startup."""
    stellar_ok, soroswap_ok = await asyncio.gather(
        components.horizon.test_connection(), components.soroswap.test_connection()
    )
    if stellar_ok:
        logger.info(f"Connected to Stellar {components.settings.stellar_network}")
    else:
        logger.warning("Stellar network is not reachable; ledger operations will fail until it is")
    if soroswap_ok:
        logger.info("Connected to Soroswap API")
    else:
        logger.warning("Soroswap API is not reachable; prices and quotes will fail until it is")


async def serve(settings: Settings) -> None:
    components = build_components(settings)
    server = create_server(components.dispatcher)

    main_task = asyncio.current_task()
    loop = asyncio.get_running_loop()
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGTERM, main_task.cancel)

    sweeper = asyncio.create_task(sweep_cache_periodically(components.prices, settings.cache_sweep_interval))
    try:
        await check_connectivity(components)
        logger.info(f"Starting {SERVER_NAME} {__version__} on stdio")
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())
    finally:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
        await components.aclose()
        logger.info("Server stopped")


def run(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog=SERVER_NAME, description="Soroswap DEX tools over MCP (stdio).")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.parse_args(argv)

    try:
        settings = load_settings()
    except ConfigError as e:
        configure_logging("ERROR")
        logger.error("Configuration validation failed:")
        for problem in e.problems:
            logger.error(f"  - {problem}")
        sys.exit(1)

    setup_logging(settings)
    for warning in settings.warnings():
        logger.warning(warning)
    logger.info(f"Configuration: {settings.summary()}")

    exit_code = 0
    try:
        asyncio.run(serve(settings))
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("Shutdown requested")
    except Exception as e:
        logger.exception(f"Server terminated with an error: {e}")
        exit_code = 1
    finally:
        close_logging()
    sys.exit(exit_code)


if __name__ == "__main__":
    run()
