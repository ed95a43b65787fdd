import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError
from stellar_sdk import Keypair, Network, StrKey

from .errors import ConfigError

# Environment variables can also come from a .env file next to the package
DOTENV_PATH = Path(__file__).parent.parent / ".env"

HORIZON_URLS = {
    "testnet": "https://horizon-testnet.stellar.org",
    "mainnet": "https://horizon.stellar.org",
}
EXPLORER_URLS = {
    "testnet": "https://stellar.expert/explorer/testnet",
    "mainnet": "https://stellar.expert/explorer/public",
}
DEFAULT_SOROSWAP_API_URL = "https://api.soroswap.finance"

MIN_SECRET_LENGTH = 32
MIN_PRODUCTION_SECRET_LENGTH = 64


class Settings(BaseModel):
    """Validated runtime configuration. Field names map to upper-cased environment variables."""

    environment: Literal["development", "production", "test"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_dir: Optional[Path] = Path("logs")

    stellar_network: Literal["testnet", "mainnet"] = "testnet"
    stellar_horizon_url: Optional[str] = None
    default_account_secret: Optional[SecretStr] = None
    default_account_public: Optional[str] = None

    soroswap_api_url: str = DEFAULT_SOROSWAP_API_URL
    soroswap_api_key: Optional[SecretStr] = None

    max_slippage: float = Field(5.0, ge=0.1, le=50)
    min_amount: float = Field(0.1, ge=0)
    max_amount: float = Field(10000.0, ge=1)
    jwt_secret: Optional[SecretStr] = None
    encryption_key: Optional[SecretStr] = None

    swap_execution_mode: Literal["ledger", "simulation"] = "ledger"
    request_timeout: float = Field(30.0, gt=0)

    price_cache_ttl: float = Field(60.0, gt=0)
    price_cache_max_size: int = Field(1000, gt=0)
    cache_sweep_interval: float = Field(30.0, gt=0)
    wallet_session_ttl: float = Field(3600.0, gt=0)
    wallet_max_sessions: int = Field(1000, gt=0)

    @field_validator("environment", "stellar_network", "swap_execution_mode", mode="before")
    @classmethod
    def _lower(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator("stellar_horizon_url", "soroswap_api_url")
    @classmethod
    def _check_url(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"must be an http(s) URL, got {value!r}")
        return value.rstrip("/")

    @field_validator("jwt_secret", "encryption_key")
    @classmethod
    def _check_secret_length(cls, value: Optional[SecretStr]) -> Optional[SecretStr]:
        if value is not None and len(value.get_secret_value()) < MIN_SECRET_LENGTH:
            raise ValueError(f"must be at least {MIN_SECRET_LENGTH} characters")
        return value

    @field_validator("default_account_secret")
    @classmethod
    def _check_account_secret(cls, value: Optional[SecretStr]) -> Optional[SecretStr]:
        if value is not None and not StrKey.is_valid_ed25519_secret_seed(value.get_secret_value()):
            raise ValueError("is not a valid Stellar secret seed")
        return value

    @field_validator("default_account_public")
    @classmethod
    def _check_account_public(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not StrKey.is_valid_ed25519_public_key(value):
            raise ValueError("is not a valid Stellar public key")
        return value

    @model_validator(mode="after")
    def _check_consistency(self) -> "Settings":
        if self.stellar_horizon_url is None:
            self.stellar_horizon_url = HORIZON_URLS[self.stellar_network]

        if self.min_amount > self.max_amount:
            raise ValueError(f"MIN_AMOUNT ({self.min_amount}) exceeds MAX_AMOUNT ({self.max_amount})")

        if self.default_account_secret is not None:
            derived = Keypair.from_secret(self.default_account_secret.get_secret_value()).public_key
            if self.default_account_public is None:
                self.default_account_public = derived
            elif self.default_account_public != derived:
                raise ValueError("DEFAULT_ACCOUNT_PUBLIC does not match DEFAULT_ACCOUNT_SECRET")

        if self.environment == "production":
            for name, secret in (("JWT_SECRET", self.jwt_secret), ("ENCRYPTION_KEY", self.encryption_key)):
                if secret is None or len(secret.get_secret_value()) < MIN_PRODUCTION_SECRET_LENGTH:
                    raise ValueError(
                        f"{name} must be set and at least {MIN_PRODUCTION_SECRET_LENGTH} characters in production"
                    )
        return self

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_testnet(self) -> bool:
        return self.stellar_network == "testnet"

    @property
    def network_passphrase(self) -> str:
        if self.is_testnet:
            return Network.TESTNET_NETWORK_PASSPHRASE
        return Network.PUBLIC_NETWORK_PASSPHRASE

    def explorer_url(self, transaction_hash: str) -> str:
        return f"{EXPLORER_URLS[self.stellar_network]}/tx/{transaction_hash}"

    def warnings(self) -> List[str]:
        """Non-fatal configuration problems worth logging at startup."""
        found = []
        if self.default_account_public is None:
            found.append("No default Stellar account configured; swaps need an explicit accountSecret.")
        if self.is_production and self.stellar_network == "mainnet" and self.default_account_secret is not None:
            found.append("Using a configured account secret on mainnet is not recommended.")
        if self.swap_execution_mode == "simulation":
            found.append("Swap execution is in SIMULATION mode; no transactions will reach the ledger.")
        return found

    def summary(self) -> Dict[str, Any]:
        """Configuration overview without secrets."""
        return {
            "environment": self.environment,
            "logLevel": self.log_level,
            "stellarNetwork": self.stellar_network,
            "horizonUrl": self.stellar_horizon_url,
            "soroswapApiUrl": self.soroswap_api_url,
            "hasSoroswapApiKey": self.soroswap_api_key is not None,
            "maxSlippage": self.max_slippage,
            "amountRange": [self.min_amount, self.max_amount],
            "swapExecutionMode": self.swap_execution_mode,
            "defaultAccount": self.default_account_public,
        }


def _raw_settings(environ: Mapping[str, str]) -> Dict[str, Any]:
    raw: Dict[str, Any] = {}
    for name in Settings.model_fields:
        value = environ.get(name.upper())
        if value is None:
            continue
        if value.strip() == "":
            if name == "log_dir":
                raw[name] = None
            continue
        raw[name] = value.strip()
    return raw


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Builds Settings from the environment (and .env), raising ConfigError with every problem found."""
    if environ is None:
        load_dotenv(dotenv_path=DOTENV_PATH)
        environ = os.environ
    try:
        return Settings(**_raw_settings(environ))
    except PydanticValidationError as e:
        problems = []
        for error in e.errors():
            location = ".".join(str(part) for part in error["loc"]).upper()
            message = error["msg"].removeprefix("Value error, ")
            problems.append(f"{location}: {message}" if location else message)
        raise ConfigError(problems) from e
