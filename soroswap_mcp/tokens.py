"""Supported tokens and amount helpers."""

from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Dict, List, Optional, Tuple

from stellar_sdk import Asset

from .errors import ValidationError
from .models import StellarBalance, TokenInfo

NATIVE_SYMBOL = "XLM"
USD_BASE_SYMBOL = "USDC"

# Circle's USDC issuers on each network
USDC_ISSUERS = {
    "testnet": "GBBD47IF6LWK7P7MDEVSCWR7DPUWV3NY3DTQEVFL4NAT4AQH3ZLLFLA5",
    "mainnet": "GA5ZSEJYB37JRC5AVCIA5MOP4RHTM335X2KGX3IHOJAPP5RE34K4KZVN",
}

BASE_RESERVE = Decimal("0.5")
TRUSTLINE_RESERVE = Decimal("0.5")
STROOP = Decimal("0.0000001")


def known_tokens(network: str) -> Dict[str, TokenInfo]:
    return {
        NATIVE_SYMBOL: TokenInfo(symbol="XLM", name="Stellar Lumens", decimals=7, asset_code="XLM"),
        USD_BASE_SYMBOL: TokenInfo(
            symbol="USDC", name="USD Coin", decimals=7, asset_code="USDC", asset_issuer=USDC_ISSUERS[network]
        ),
    }


def parse_token_pair(pair: str) -> Tuple[str, str]:
    """Splits "XLM/usdc" into ("XLM", "USDC")."""
    parts = (pair or "").split("/")
    if len(parts) != 2 or not parts[0].strip() or not parts[1].strip():
        raise ValidationError(f"Invalid token pair format: {pair}", {"tokenPair": pair})
    return parts[0].strip().upper(), parts[1].strip().upper()


def format_token_pair(from_token: str, to_token: str) -> str:
    return f"{from_token.upper()}/{to_token.upper()}"


def to_decimal(value: object) -> Decimal:
    """Parses a ledger amount (decimal string or number) without going through binary floats."""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"Invalid amount: {value}") from e
    if not amount.is_finite() or amount < 0:
        raise ValidationError(f"Invalid amount: {value}")
    return amount


def compare_balances(available: object, required: object) -> bool:
    """True when available >= required."""
    return to_decimal(available) >= to_decimal(required)


def format_amount(value: object) -> str:
    """Ledger amounts carry at most seven decimal places; extra precision is truncated."""
    return str(to_decimal(value).quantize(STROOP, rounding=ROUND_DOWN))


def minimum_balance(trustlines: int = 0) -> Decimal:
    return BASE_RESERVE + trustlines * TRUSTLINE_RESERVE


def available_xlm(balances: List[StellarBalance]) -> str:
    native = next((b for b in balances if b.is_native), None)
    if native is None:
        return "0"
    trustlines = sum(1 for b in balances if not b.is_native)
    available = max(Decimal(0), to_decimal(native.balance) - minimum_balance(trustlines))
    return str(available)


def find_balance(balances: List[StellarBalance], token: TokenInfo) -> Optional[StellarBalance]:
    if token.is_native:
        return next((b for b in balances if b.is_native), None)
    return next(
        (b for b in balances if b.asset_code == token.asset_code and b.asset_issuer == token.asset_issuer),
        None,
    )


def to_asset(token: TokenInfo) -> Asset:
    if token.is_native:
        return Asset.native()
    return Asset(token.asset_code, token.asset_issuer)
