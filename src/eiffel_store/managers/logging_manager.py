"""
# Logging Manager

Central access point for loggers used across `eiffel_store`.

Every module obtains its logger through `get_logger()`, optionally passing a
`prefix` that is prepended to each record (e.g. `[DATABASE]`, `[DB_HEALTH]`).
Loggers are plain stdlib `logging` loggers under the `eiffel_store` namespace,
so applications embedding the package keep full control over handlers.

## Usage

```python
from eiffel_store.managers.logging_manager import get_logger

db_logger = get_logger(prefix="[DATABASE]")
db_logger.info("Connected to %s:%d", host, port)
```

The first call installs a single stream handler on the package root logger
(unless one is already configured) with the level taken from the `LOG_LEVEL`
environment variable. `build_handler()` later applies `Settings.LOG_LEVEL`
through `set_log_level()`.
"""

import logging
import os
import sys
from typing import Any, MutableMapping, Optional, Tuple

ROOT_LOGGER_NAME = "eiffel_store"
DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_configured = False


class PrefixedLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that prepends a fixed prefix to every message."""

    def __init__(self, logger: logging.Logger, prefix: str = ""):
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

    root = logging.getLogger(ROOT_LOGGER_NAME)
    resolved_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    root.setLevel(getattr(logging, resolved_level, logging.INFO))

    if not root.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
        root.addHandler(handler)

    _configured = True


def set_log_level(level: str) -> None:
    """Change the level of the package root logger at runtime."""
    _configure_root()
    logging.getLogger(ROOT_LOGGER_NAME).setLevel(getattr(logging, level.upper(), logging.INFO))


def get_logger(name: str = ROOT_LOGGER_NAME, prefix: str = "") -> PrefixedLoggerAdapter:
    """
    Return a prefixed logger for the given name.

    Args:
        name: Logger name. Names outside the package namespace are nested under it.
        prefix: Text prepended to each message, usually a bracketed tag.

    Returns:
        A `PrefixedLoggerAdapter` wrapping the stdlib logger.
    """
    _configure_root()
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return PrefixedLoggerAdapter(logging.getLogger(name), prefix)
