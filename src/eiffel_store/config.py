"""
# Configuration Management Module

Configuration for the `eiffel_store` document-store client, built on
**Pydantic Settings**.

## Loading Hierarchy

Higher layers override lower layers:

1. **Environment variables** (e.g. `export MONGODB_HOST=mongo`)
2. **`EIFFEL_STORE_CONFIG_PATH`**: explicit path to a dotenv-style file
3. **`.env`** in the project root
4. **Defaults** declared on `Settings`

If no configuration file is found the settings are read from the environment
only.

## Configuration Groups

| Group | Fields |
|-------|--------|
| **MongoDB** | `MONGODB_HOST`, `MONGODB_PORT`, `MONGODB_DATABASE`, timeouts |
| **Authentication** | `MONGODB_USERNAME`, `MONGODB_PASSWORD` (`SecretStr`) |
| **Collections** | `EVENT_OBJECT_MAP_COLLECTION`, `AGGREGATED_COLLECTION` |
| **TTL** | `TTL_FIELD_NAME`, `TTL_VALUE_SECONDS` |
| **Verification** | `VERIFY_TIMEOUT_MS`, `VERIFY_POLL_INTERVAL_MS` |
| **Logging** | `LOG_LEVEL` |

Components never read `settings` implicitly; they receive explicit values.
`eiffel_store.database.build_handler()` is the only place the global instance is
consulted by default.

The module does not log, so it can be imported before logging is configured.
"""

import os
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Constants ---
DEFAULT_ENV_FILENAME: str = ".env"
CONFIG_ENV_VAR: str = "EIFFEL_STORE_CONFIG_PATH"
PROJECT_ROOT: Path = Path(__file__).resolve().parents[2]


# --- Config file discovery (no logging) ---
def get_config_path() -> Optional[str]:
    """
    Determine the configuration file path.

    Order of precedence:
    1.  `EIFFEL_STORE_CONFIG_PATH` (if set and the file exists).
    2.  `.env` in the project root.
    3.  `None`, meaning environment-variable-only mode.

    Returns:
        Optional[str]: Path to the configuration file, or `None` if not found.
    """
    env_path: Optional[str] = os.environ.get(CONFIG_ENV_VAR)
    if env_path and os.path.exists(env_path):
        return env_path
    env_path_file: Path = PROJECT_ROOT / DEFAULT_ENV_FILENAME
    if env_path_file.exists():
        return str(env_path_file)
    return None


CONFIG_PATH: Optional[str] = get_config_path()
if CONFIG_PATH:
    load_dotenv(dotenv_path=CONFIG_PATH, override=False)


class Settings(BaseSettings):
    """
    Settings for the document-store client and the consistency verifier.

    **Configuration Groups:**
    *   **MongoDB**: host, port, database and driver timeouts (milliseconds).
    *   **Authentication**: optional username/password. A credentialed connection
        is only used when both are set and the password is non-empty.
    *   **Collections**: names of the collections the event pipeline writes to.
    *   **TTL**: field and expiry applied by `ensure_ttl_index`.
    *   **Verification**: deadline and polling interval of the consistency verifier.
    """

    model_config = SettingsConfigDict(
        env_file=CONFIG_PATH if CONFIG_PATH else None,
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="allow",
    )

    # MongoDB configuration
    MONGODB_HOST: str = "localhost"
    MONGODB_PORT: int = 27017
    MONGODB_DATABASE: str = "eiffel_intelligence"
    MONGODB_CONNECTION_TIMEOUT: int = 10000
    MONGODB_SERVER_SELECTION_TIMEOUT: int = 5000

    # Authentication (optional)
    MONGODB_USERNAME: Optional[str] = None
    MONGODB_PASSWORD: Optional[SecretStr] = None

    # Collections used by the event pipeline
    EVENT_OBJECT_MAP_COLLECTION: str = "event_object_map"
    AGGREGATED_COLLECTION: str = "aggregated_objects"

    # Time-to-live index
    TTL_FIELD_NAME: str = "Time"
    TTL_VALUE_SECONDS: int = 600

    # Consistency verification
    VERIFY_TIMEOUT_MS: int = 30000
    VERIFY_POLL_INTERVAL_MS: int = 1000

    # Logging
    LOG_LEVEL: str = "INFO"

    @field_validator("MONGODB_DATABASE", "MONGODB_HOST", mode="before")
    @classmethod
    def no_empty_names(cls, v: Any, info: Any) -> Any:
        """
        Validate that host and database name are not empty.

        Raises:
            ValueError: If the value is empty or whitespace.
        """
        if not v or not str(v).strip():
            raise ValueError(f"{info.field_name} must be set via environment or .env and not empty!")
        return str(v).strip()

    @field_validator("MONGODB_PORT", mode="before")
    @classmethod
    def validate_port(cls, v: Any) -> int:
        """Validate that the port is a valid TCP port number."""
        port = int(v)
        if port < 1 or port > 65535:
            raise ValueError("MONGODB_PORT must be between 1 and 65535")
        return port

    @field_validator(
        "MONGODB_CONNECTION_TIMEOUT",
        "MONGODB_SERVER_SELECTION_TIMEOUT",
        "VERIFY_TIMEOUT_MS",
        "VERIFY_POLL_INTERVAL_MS",
        mode="before",
    )
    @classmethod
    def validate_positive_milliseconds(cls, v: Any, info: Any) -> int:
        """
        Validate that millisecond durations are positive integers.

        Raises:
            ValueError: If the value is zero or negative.
        """
        value = int(v)
        if value <= 0:
            raise ValueError(f"{info.field_name} must be a positive number of milliseconds")
        return value

    @field_validator("TTL_VALUE_SECONDS", mode="before")
    @classmethod
    def validate_ttl(cls, v: Any) -> int:
        """TTL expiry must be zero or positive (0 expires at the field's timestamp)."""
        value = int(v)
        if value < 0:
            raise ValueError("TTL_VALUE_SECONDS must not be negative")
        return value

    @property
    def has_credentials(self) -> bool:
        """`True` when both a username and a non-empty password are configured."""
        if not self.MONGODB_USERNAME or not self.MONGODB_USERNAME.strip():
            return False
        if self.MONGODB_PASSWORD is None:
            return False
        return bool(self.MONGODB_PASSWORD.get_secret_value().strip())

    @property
    def mongodb_password(self) -> Optional[str]:
        """Unwrapped password, or `None` when not configured."""
        if self.MONGODB_PASSWORD is None:
            return None
        return self.MONGODB_PASSWORD.get_secret_value()


# Global settings instance
settings: Settings = Settings()
