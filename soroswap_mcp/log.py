"""Logging setup and request-scoped helpers."""

import logging
import time
import uuid
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional

from mcp.server.fastmcp.utilities.logging import configure_logging, get_logger

from .config import Settings

logger = get_logger(__name__)

FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s [%(process)d] - %(message)s"
MAX_LOG_BYTES = 10 * 1024 * 1024
SENSITIVE_KEYS = {"accountSecret", "account_secret", "secret", "secretKey"}
NOISY_LIBRARIES = ("httpx", "httpcore", "asyncio", "stellar_sdk")


def setup_logging(settings: Settings) -> None:
    """Console logging goes to stderr (stdout carries the stdio transport); files are optional."""
    configure_logging(settings.log_level)
    root = logging.getLogger()
    root.setLevel(settings.log_level)

    for name in NOISY_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)

    if settings.log_dir is None:
        return
    settings.log_dir.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(FILE_FORMAT)

    combined = RotatingFileHandler(
        settings.log_dir / "combined.log", maxBytes=MAX_LOG_BYTES, backupCount=10, encoding="utf-8"
    )
    combined.setFormatter(formatter)
    root.addHandler(combined)

    errors = RotatingFileHandler(
        settings.log_dir / "error.log", maxBytes=MAX_LOG_BYTES, backupCount=5, encoding="utf-8"
    )
    errors.setLevel(logging.ERROR)
    errors.setFormatter(formatter)
    root.addHandler(errors)
    logger.debug(f"File logging enabled in {settings.log_dir}")


def close_logging() -> None:
    """Flushes and closes every handler attached to the root logger."""
    root = logging.getLogger()
    for handler in list(root.handlers):
        handler.flush()
        if isinstance(handler, RotatingFileHandler):
            handler.close()
            root.removeHandler(handler)


def generate_request_id() -> str:
    return f"req_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def redact_arguments(arguments: Optional[Dict[str, Any]], development: bool) -> Any:
    """Secrets are always masked; outside development the whole payload is hidden."""
    if not development:
        return "[REDACTED]"
    if not arguments:
        return {}
    if not isinstance(arguments, dict):
        return arguments
    return {key: ("***" if key in SENSITIVE_KEYS else value) for key, value in arguments.items()}


def shorten_address(address: str, length: int = 8) -> str:
    if len(address) <= length * 2:
        return address
    return f"{address[:length]}...{address[-length:]}"
