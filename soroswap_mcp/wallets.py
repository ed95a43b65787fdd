"""Connected-wallet sessions and balance lookups."""

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from mcp.server.fastmcp.utilities.logging import get_logger

from .errors import AccountNotFoundError, InvalidKeypairError
from .log import shorten_address
from .models import StellarBalance, StellarTransaction, TokenInfo, WalletInfo
from .stellar import HorizonClient, is_valid_public_key
from .tokens import available_xlm, compare_balances, find_balance, known_tokens

logger = get_logger(__name__)

DEFAULT_SESSION_TTL = 3600.0
DEFAULT_MAX_SESSIONS = 1000


@dataclass
class WalletSession:
    info: WalletInfo
    connected_at: float
    expires_at: float


def build_wallet_info(public_key: str, balances: List[StellarBalance]) -> WalletInfo:
    return WalletInfo(
        public_key=public_key,
        account_id=public_key,
        is_connected=True,
        balances=balances,
        available_xlm=available_xlm(balances),
        trustline_count=sum(1 for b in balances if not b.is_native),
    )


class WalletService:
    """
    Tracks wallets that have been connected during this process's lifetime.

    Sessions expire after session_ttl seconds and the oldest one is evicted once
    max_sessions are held, so the map stays bounded however many accounts are queried.
    """

    def __init__(
        self,
        horizon: HorizonClient,
        network: str,
        default_public_key: Optional[str] = None,
        session_ttl: float = DEFAULT_SESSION_TTL,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.horizon = horizon
        self.tokens = known_tokens(network)
        self.default_public_key = default_public_key
        self.session_ttl = session_ttl
        self.max_sessions = max_sessions
        self._clock = clock
        self._sessions: Dict[str, WalletSession] = {}

    def _token(self, symbol: str) -> Optional[TokenInfo]:
        return self.tokens.get(symbol.upper())

    def _live_session(self, public_key: str) -> Optional[WalletSession]:
        session = self._sessions.get(public_key)
        if session is not None and self._clock() > session.expires_at:
            del self._sessions[public_key]
            logger.debug(f"Wallet session for {shorten_address(public_key)} expired")
            return None
        return session

    def _store(self, info: WalletInfo) -> None:
        self._sessions.pop(info.public_key, None)
        if len(self._sessions) >= self.max_sessions:
            oldest = next(iter(self._sessions))
            del self._sessions[oldest]
            logger.debug(f"Wallet session limit reached, evicted {shorten_address(oldest)}")
        now = self._clock()
        self._sessions[info.public_key] = WalletSession(info=info, connected_at=now, expires_at=now + self.session_ttl)

    async def connect(self, public_key: str) -> WalletInfo:
        if not is_valid_public_key(public_key):
            raise InvalidKeypairError(f"Invalid Stellar public key format: {public_key}")
        account = await self.horizon.get_account(public_key)
        info = build_wallet_info(public_key, account.balances)
        self._store(info)
        logger.info(
            f"Wallet connected: {shorten_address(public_key)} "
            f"({len(info.balances)} balances, {info.available_xlm} XLM available)"
        )
        return info

    async def refresh(self, public_key: str) -> WalletInfo:
        if self._live_session(public_key) is None:
            raise AccountNotFoundError(public_key)
        try:
            account = await self.horizon.get_account(public_key)
        except AccountNotFoundError:
            self._sessions.pop(public_key, None)
            logger.warning(f"Wallet {shorten_address(public_key)} no longer resolves, session dropped")
            raise
        info = build_wallet_info(public_key, account.balances)
        self._store(info)
        logger.debug(f"Wallet refreshed: {shorten_address(public_key)}")
        return info

    def disconnect(self, public_key: str) -> None:
        if self._sessions.pop(public_key, None) is not None:
            logger.info(f"Wallet disconnected: {shorten_address(public_key)}")

    def disconnect_all(self) -> None:
        self._sessions.clear()
        logger.info("All wallets disconnected")

    def get_wallet_info(self, public_key: str) -> Optional[WalletInfo]:
        session = self._live_session(public_key)
        return session.info if session else None

    def is_connected(self, public_key: str) -> bool:
        return self._live_session(public_key) is not None

    def connected_wallets(self) -> List[WalletInfo]:
        for public_key in list(self._sessions):
            self._live_session(public_key)
        return [session.info for session in self._sessions.values()]

    async def get_balances(self, public_key: str) -> List[StellarBalance]:
        return await self.horizon.get_balances(public_key)

    async def get_token_balance(self, public_key: str, symbol: str) -> str:
        token = self._token(symbol)
        if token is None:
            return "0"
        return await self.horizon.get_token_balance(public_key, token)

    async def get_transaction_history(self, public_key: str, limit: int = 10) -> List[StellarTransaction]:
        history = await self.horizon.get_transaction_history(public_key, limit)
        logger.debug(f"Fetched {len(history)} transactions for {shorten_address(public_key)}")
        return history

    async def has_trustline(self, public_key: str, symbol: str) -> bool:
        token = self._token(symbol)
        if token is None:
            return False
        if token.is_native:
            return True
        return find_balance(await self.horizon.get_balances(public_key), token) is not None

    async def has_token(self, public_key: str, symbol: str, min_amount: str = "0") -> bool:
        token = self._token(symbol)
        if token is None:
            return False
        balance = find_balance(await self.horizon.get_balances(public_key), token)
        if balance is None:
            return False
        return compare_balances(balance.balance, min_amount)

    async def get_wallet_summary(self, public_key: str) -> Dict[str, Any]:
        balances = await self.horizon.get_balances(public_key)
        native = next((b for b in balances if b.is_native), None)
        return {
            "address": public_key,
            "shortAddress": shorten_address(public_key),
            "totalBalances": len(balances),
            "totalTrustlines": sum(1 for b in balances if not b.is_native),
            "xlmBalance": native.balance if native else "0",
            "availableXLM": available_xlm(balances),
            "supportedTokens": sorted(self.tokens),
        }

    async def get_default_account_info(self) -> Optional[WalletInfo]:
        if not self.default_public_key:
            logger.warning("No default account configured")
            return None
        return await self.connect(self.default_public_key)

    async def health_check(self) -> Dict[str, Any]:
        default_status = "not_configured"
        if self.default_public_key:
            exists = await self.horizon.account_exists(self.default_public_key)
            default_status = "connected" if exists else "not_found"
        return {
            "connectedWallets": len(self.connected_wallets()),
            "defaultAccountStatus": default_status,
            "stellarNetworkStatus": await self.horizon.test_connection(),
        }
