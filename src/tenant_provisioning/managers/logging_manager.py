"""
Logging manager for the tenant provisioning layer.

Every module obtains its logger through `get_logger()`, optionally with a bracketed
prefix such as `[DATABASE]` or `[TenantService]` so that log lines from the
different subsystems can be told apart in a shared stream.

Example:
    ```python
    from tenant_provisioning.managers.logging_manager import get_logger

    db_logger = get_logger(prefix="[DATABASE]")
    db_logger.info("Connected to %s", "tenant-management")
    # 2026-01-01 12:00:00 INFO tenant_provisioning [DATABASE] Connected to tenant-management
    ```
"""

import logging
import os
from typing import Any, Dict, MutableMapping, Optional, Tuple

DEFAULT_LOGGER_NAME = "tenant_provisioning"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

_configured = False
_adapters: Dict[Tuple[str, str], "PrefixedLoggerAdapter"] = {}


class PrefixedLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that prepends a fixed prefix to every message."""

    def __init__(self, logger: logging.Logger, prefix: str):
        super().__init__(logger, {})
        self.prefix = prefix

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        if self.prefix:
            return f"{self.prefix} {msg}", kwargs
        return msg, kwargs


def _configure_root(level: Optional[str] = None) -> None:
    global _configured
    if _configured:
        return

    base = logging.getLogger(DEFAULT_LOGGER_NAME)
    level_name = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    base.setLevel(getattr(logging, level_name, logging.INFO))

    if not base.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        base.addHandler(handler)

    _configured = True


def set_log_level(level: str) -> None:
    """Change the level of the package logger at runtime."""
    _configure_root()
    logging.getLogger(DEFAULT_LOGGER_NAME).setLevel(getattr(logging, level.upper(), logging.INFO))


def get_logger(name: str = DEFAULT_LOGGER_NAME, prefix: str = "") -> PrefixedLoggerAdapter:
    """
    Return a (cached) logger for the given name and prefix.

    Args:
        name: Logger name. Names outside the package namespace are nested under it.
        prefix: Optional text prepended to each message, e.g. `"[CLUSTER]"`.

    Returns:
        PrefixedLoggerAdapter: A logger adapter usable like a `logging.Logger`.
    """
    _configure_root()

    if name != DEFAULT_LOGGER_NAME and not name.startswith(DEFAULT_LOGGER_NAME + "."):
        name = f"{DEFAULT_LOGGER_NAME}.{name}"

    key = (name, prefix)
    if key not in _adapters:
        _adapters[key] = PrefixedLoggerAdapter(logging.getLogger(name), prefix)
    return _adapters[key]
