from dataclasses import dataclass
from typing import Collection

from .config import Settings
from .models import SwapRequest, ValidationResult

MIN_SLIPPAGE = 0.1
HIGH_SLIPPAGE_WARNING = 5.0
LARGE_AMOUNT_FRACTION = 0.5


@dataclass(frozen=True)
class SwapLimits:
    min_amount: float
    max_amount: float
    max_slippage: float

    @classmethod
    def from_settings(cls, settings: Settings) -> "SwapLimits":
        return cls(settings.min_amount, settings.max_amount, settings.max_slippage)


def validate_swap_request(
    request: SwapRequest, limits: SwapLimits, supported_tokens: Collection[str]
) -> ValidationResult:
    """
    Checks a swap request against the configured bounds. Every check runs so the caller
    sees all problems at once; warnings never make a request invalid.
    """
    errors = []
    warnings = []
    from_token = (request.from_token or "").upper()
    to_token = (request.to_token or "").upper()
    amount = request.amount

    if not from_token or not to_token:
        errors.append("From token and to token are required")
    elif from_token == to_token:
        errors.append("Cannot swap the same token")

    # Bounds are written as "not inside" so NaN fails them
    if amount is None or not amount > 0:
        errors.append("Amount must be greater than 0")

    if amount is not None:
        if amount < limits.min_amount:
            errors.append(f"Amount must be at least {limits.min_amount}")
        elif not amount <= limits.max_amount:
            errors.append(f"Amount exceeds maximum limit of {limits.max_amount}")

    if not MIN_SLIPPAGE <= request.slippage <= limits.max_slippage:
        errors.append(f"Slippage must be between {MIN_SLIPPAGE}% and {limits.max_slippage}%")

    if from_token and from_token not in supported_tokens:
        errors.append(f"Unsupported from token: {request.from_token}")
    if to_token and to_token not in supported_tokens:
        errors.append(f"Unsupported to token: {request.to_token}")

    if request.slippage > HIGH_SLIPPAGE_WARNING:
        warnings.append(f"High slippage tolerance: {request.slippage}%")
    if amount is not None and amount > limits.max_amount * LARGE_AMOUNT_FRACTION:
        warnings.append("Large transaction amount detected")

    return ValidationResult(valid=not errors, errors=errors, warnings=warnings)
