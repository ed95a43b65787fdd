from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# --- Tokens and ledger ---

class TokenInfo(CamelModel):
    symbol: str
    name: str
    decimals: int = 7
    asset_code: str
    asset_issuer: Optional[str] = None

    @property
    def is_native(self) -> bool:
        return self.asset_issuer is None


class StellarBalance(CamelModel):
    asset: str
    asset_type: str  # native, credit_alphanum4, credit_alphanum12, liquidity_pool_shares
    asset_code: Optional[str] = None
    asset_issuer: Optional[str] = None
    balance: str
    limit: Optional[str] = None
    buying_liabilities: Optional[str] = None
    selling_liabilities: Optional[str] = None

    @property
    def is_native(self) -> bool:
        return self.asset_type == "native"


class StellarAccount(CamelModel):
    public_key: str
    account_id: str
    sequence: int
    balances: List[StellarBalance] = Field(default_factory=list)


class StellarTransaction(CamelModel):
    hash: str
    ledger: int
    created_at: str
    source_account: str
    fee_paid: str = "0"
    operation_count: int = 0
    successful: bool = True


# --- Prices ---

class TokenPrice(CamelModel):
    symbol: str
    price: float
    price_usd: float = Field(ge=0)
    price_change_24h: float = Field(0.0, alias="priceChange24h")
    price_change_percentage_24h: float = Field(0.0, alias="priceChangePercentage24h")
    volume_24h: float = Field(0.0, alias="volume24h")
    market_cap: Optional[float] = None
    last_updated: str = Field(default_factory=utc_now)


# --- Swaps ---

class SwapRequest(CamelModel):
    from_token: str = ""
    to_token: str = ""
    amount: Optional[float] = Field(None, allow_inf_nan=False)
    slippage: float = Field(1.0, allow_inf_nan=False)
    account_secret: Optional[str] = Field(None, repr=False, exclude=True)


class ValidationResult(CamelModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class SwapEstimate(CamelModel):
    from_token: str
    to_token: str
    from_amount: float
    to_amount: float
    minimum_received: float
    price_impact: float = 0.0
    fee: float = 0.0
    path: List[str]

    @model_validator(mode="after")
    def _check_quote(self) -> "SwapEstimate":
        if self.minimum_received > self.to_amount:
            raise ValueError(
                f"minimumReceived ({self.minimum_received}) exceeds toAmount ({self.to_amount})"
            )
        if not self.path:
            raise ValueError("quote path is empty")
        return self


class SwapResult(CamelModel):
    success: bool
    transaction_hash: Optional[str] = None
    from_token: str
    to_token: str
    from_amount: float = 0.0
    to_amount: float = 0.0
    actual_received: Optional[float] = None
    fee: float = 0.0
    timestamp: str = Field(default_factory=utc_now)
    error: Optional[str] = None
    error_code: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)
    simulated: bool = False

    @model_validator(mode="after")
    def _check_failure_shape(self) -> "SwapResult":
        if not self.success:
            if self.to_amount != 0:
                raise ValueError("a failed swap cannot report a received amount")
            if not self.error:
                raise ValueError("a failed swap must carry an error message")
        return self

    @classmethod
    def failure(cls, request: SwapRequest, error: str, error_code: Optional[str] = None,
                warnings: Optional[List[str]] = None) -> "SwapResult":
        return cls(
            success=False,
            from_token=request.from_token or "",
            to_token=request.to_token or "",
            from_amount=request.amount or 0.0,
            to_amount=0.0,
            fee=0.0,
            error=error,
            error_code=error_code,
            warnings=warnings or [],
        )


# --- Wallets ---

class WalletInfo(CamelModel):
    public_key: str
    account_id: str
    is_connected: bool = True
    balances: List[StellarBalance] = Field(default_factory=list)
    available_xlm: str = Field("0", alias="availableXLM")
    trustline_count: int = 0

    @model_validator(mode="after")
    def _check_trustlines(self) -> "WalletInfo":
        expected = sum(1 for b in self.balances if not b.is_native)
        if self.trustline_count != expected:
            raise ValueError(f"trustlineCount {self.trustline_count} does not match {expected} non-native balances")
        return self
