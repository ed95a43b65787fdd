"""Error taxonomy shared by the clients, services and dispatcher."""

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(str, Enum):
    INTERNAL_ERROR = "INTERNAL_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    CONFIG_ERROR = "CONFIG_ERROR"

    STELLAR_CONNECTION_ERROR = "STELLAR_CONNECTION_ERROR"
    STELLAR_ACCOUNT_NOT_FOUND = "STELLAR_ACCOUNT_NOT_FOUND"
    STELLAR_INSUFFICIENT_BALANCE = "STELLAR_INSUFFICIENT_BALANCE"
    STELLAR_MISSING_TRUSTLINE = "STELLAR_MISSING_TRUSTLINE"
    STELLAR_TRANSACTION_FAILED = "STELLAR_TRANSACTION_FAILED"
    INVALID_KEYPAIR = "INVALID_KEYPAIR"

    SOROSWAP_API_ERROR = "SOROSWAP_API_ERROR"

    SWAP_VALIDATION_ERROR = "SWAP_VALIDATION_ERROR"
    SWAP_EXECUTION_ERROR = "SWAP_EXECUTION_ERROR"

    UNKNOWN_TOOL = "UNKNOWN_TOOL"
    UNKNOWN_RESOURCE = "UNKNOWN_RESOURCE"


class BridgeError(Exception):
    """Base class for every error this package raises on purpose."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code.value, "message": self.message, "details": self.details}


class ConfigError(BridgeError):
    """Raised when the environment does not describe a usable configuration."""

    code = ErrorCode.CONFIG_ERROR

    def __init__(self, problems: List[str]):
        super().__init__("Invalid configuration: " + "; ".join(problems), {"problems": problems})
        self.problems = problems


class ValidationError(BridgeError):
    code = ErrorCode.INVALID_INPUT


class SwapValidationError(ValidationError):
    code = ErrorCode.SWAP_VALIDATION_ERROR

    def __init__(self, errors: List[str], warnings: Optional[List[str]] = None):
        super().__init__(
            f"Swap validation failed: {', '.join(errors)}",
            {"errors": errors, "warnings": warnings or []},
        )
        self.errors = errors


class OracleConnectionError(BridgeError):
    """The ledger or quote endpoint could not be reached."""

    code = ErrorCode.STELLAR_CONNECTION_ERROR


class QuoteAPIError(BridgeError):
    """The Soroswap API answered with an error."""

    code = ErrorCode.SOROSWAP_API_ERROR

    def __init__(self, message: str, status: Optional[int] = None, data: Any = None):
        super().__init__(message, {"status": status})
        self.status = status
        self.data = data


class AccountNotFoundError(BridgeError):
    code = ErrorCode.STELLAR_ACCOUNT_NOT_FOUND

    def __init__(self, public_key: str):
        super().__init__(f"Stellar account not found: {public_key}", {"publicKey": public_key})
        self.public_key = public_key


class InsufficientBalanceError(BridgeError):
    code = ErrorCode.STELLAR_INSUFFICIENT_BALANCE

    def __init__(self, asset: str, required: str, available: str, public_key: str):
        super().__init__(
            f"Insufficient balance for {asset}. Required: {required}, Available: {available}",
            {"asset": asset, "required": required, "available": available, "publicKey": public_key},
        )


class MissingTrustlineError(BridgeError):
    code = ErrorCode.STELLAR_MISSING_TRUSTLINE

    def __init__(self, asset: str, public_key: str):
        super().__init__(f"Missing trustline for {asset}", {"asset": asset, "publicKey": public_key})
        self.asset = asset


class TransactionFailedError(BridgeError):
    """The ledger rejected a submitted transaction."""

    code = ErrorCode.STELLAR_TRANSACTION_FAILED

    def __init__(
        self,
        message: str,
        transaction_hash: Optional[str] = None,
        result_codes: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, {"transactionHash": transaction_hash, "resultCodes": result_codes})
        self.transaction_hash = transaction_hash
        self.result_codes = result_codes


class InvalidKeypairError(BridgeError):
    code = ErrorCode.INVALID_KEYPAIR

    def __init__(self, message: str = "Invalid Stellar keypair"):
        super().__init__(message)


class UnknownToolError(BridgeError):
    code = ErrorCode.UNKNOWN_TOOL

    def __init__(self, name: str):
        super().__init__(f"Unknown tool: {name}", {"name": name})


class UnknownResourceError(BridgeError):
    code = ErrorCode.UNKNOWN_RESOURCE

    def __init__(self, uri: str):
        super().__init__(f"Unknown resource: {uri}", {"uri": uri})
