"""
# Configuration Module

Settings for the tenant provisioning layer, built on **Pydantic Settings**.

## Loading Hierarchy

```
1. Environment variables                    (highest priority)
2. File named by TENANT_PROVISIONING_CONFIG_PATH
3. .env file in the project root
4. Defaults in the Settings class           (lowest priority)
```

## Settings Groups

| Group | Fields |
|-------|--------|
| **Environment** | `APP_ENV`, `LOG_LEVEL` |
| **Database** | `DATABASE_URL`, `DATABASE_NAME`, `MANAGEMENT_DATABASE_NAME`, timeouts |
| **Authentication** | `DATABASE_CERTIFICATE_BASE64`, `DATABASE_PRIVATE_KEY_BASE64` |
| **Sessions** | `DATABASE_ENABLE_OPTIMISTIC_CONCURRENCY`, `DATABASE_MAX_REQUESTS_PER_SESSION` |
| **Cluster** | `DATABASE_CLUSTER_IPS` (comma separated production hosts) |
| **Provisioning** | `DATABASE_ADMIN_ENABLED`, `DATABASE_ADMIN_URL`, `DATABASE_ADMIN_TIMEOUT`, `PROVISIONING_COMPENSATE_ON_FAILURE` |

## Usage

```python
from tenant_provisioning.config import get_database_config, settings

config = get_database_config(settings)
print(config.urls, config.database)
```

The certificate and private key are supplied base64-encoded (so that multi-line PEM
blocks survive environment variables) and are decoded to UTF-8 text by
`get_database_config()`.
"""

import base64
import binascii
import os
from pathlib import Path
from typing import Any, List, Optional

from dotenv import load_dotenv
from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tenant_provisioning.database.exceptions import ConfigurationError
from tenant_provisioning.models.database_models import AuthOptions, DatabaseConfig

# --- Constants ---
DEFAULT_ENV_FILENAME: str = ".env"
CONFIG_ENV_VAR: str = "TENANT_PROVISIONING_CONFIG_PATH"
PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent.parent
PRODUCTION_ENV: str = "production"


def get_config_path() -> Optional[str]:
    """
    Determine the configuration file path.

    Checks, in order, the file named by `TENANT_PROVISIONING_CONFIG_PATH` and the `.env`
    file in the project root. Returns `None` when neither exists, in which case only
    environment variables are used.
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
    Application configuration settings model.

    Values come from environment variables or the discovered config file. Every field
    has a development-friendly default so the package can be imported without any
    configuration; production deployments set `APP_ENV=production` together with
    `DATABASE_URL` and `DATABASE_CLUSTER_IPS`.
    """

    model_config = SettingsConfigDict(
        env_file=CONFIG_PATH if CONFIG_PATH else None,
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Environment
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Database connection
    DATABASE_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "tenant-dev"
    MANAGEMENT_DATABASE_NAME: str = "tenant-management"
    DATABASE_CONNECTION_TIMEOUT: int = 10000
    DATABASE_SERVER_SELECTION_TIMEOUT: int = 5000

    # Client certificate authentication (base64-encoded PEM)
    DATABASE_CERTIFICATE_BASE64: Optional[SecretStr] = None
    DATABASE_PRIVATE_KEY_BASE64: Optional[SecretStr] = None

    # Unit-of-work tuning
    DATABASE_ENABLE_OPTIMISTIC_CONCURRENCY: bool = True
    DATABASE_MAX_REQUESTS_PER_SESSION: int = 30

    # Production cluster hosts
    DATABASE_CLUSTER_IPS: Optional[str] = None

    # Remote provisioning endpoint
    DATABASE_ADMIN_ENABLED: bool = False
    DATABASE_ADMIN_URL: Optional[str] = None
    DATABASE_ADMIN_TIMEOUT: float = 30.0
    PROVISIONING_COMPENSATE_ON_FAILURE: bool = True

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def no_empty_urls(cls, v: Any, info: Any) -> Any:
        """Reject an empty or whitespace-only database URL."""
        if not v or not str(v).strip():
            raise ValueError(f"{info.field_name} must be set via environment or config file and not empty!")
        return v

    @field_validator(
        "DATABASE_MAX_REQUESTS_PER_SESSION",
        "DATABASE_CONNECTION_TIMEOUT",
        "DATABASE_SERVER_SELECTION_TIMEOUT",
        mode="before",
    )
    @classmethod
    def validate_positive_integers(cls, v: Any, info: Any) -> int:
        """Numeric tuning knobs must be positive integers."""
        value = int(v)
        if value <= 0:
            raise ValueError(f"{info.field_name} must be a positive integer")
        return value

    @property
    def is_production(self) -> bool:
        """True when the production environment marker is set."""
        return self.APP_ENV.strip().lower() == PRODUCTION_ENV

    @property
    def database_urls(self) -> List[str]:
        """`DATABASE_URL` split on commas, whitespace and empty entries removed."""
        return [url.strip() for url in self.DATABASE_URL.split(",") if url.strip()]

    @property
    def cluster_ips(self) -> List[str]:
        """Production host list from `DATABASE_CLUSTER_IPS`; empty when unset."""
        if not self.DATABASE_CLUSTER_IPS:
            return []
        return [ip.strip() for ip in self.DATABASE_CLUSTER_IPS.split(",") if ip.strip()]


def _decode_base64_secret(value: SecretStr, name: str) -> str:
    try:
        return base64.b64decode(value.get_secret_value(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ConfigurationError(f"{name} is not valid base64-encoded UTF-8 text") from e


def get_database_config(config: Optional[Settings] = None) -> DatabaseConfig:
    """
    Build the base `DatabaseConfig` from settings.

    Authentication is attached only when both the certificate and the private key are
    configured.

    Args:
        config: Settings to read; defaults to the module-level `settings`.

    Returns:
        DatabaseConfig: Config pointing at `DATABASE_NAME` on `DATABASE_URL`.

    Raises:
        ConfigurationError: If the certificate or key is not valid base64 text.
    """
    config = config or settings

    auth_options = None
    if config.DATABASE_CERTIFICATE_BASE64 and config.DATABASE_PRIVATE_KEY_BASE64:
        auth_options = AuthOptions(
            certificate=_decode_base64_secret(config.DATABASE_CERTIFICATE_BASE64, "DATABASE_CERTIFICATE_BASE64"),
            private_key=_decode_base64_secret(config.DATABASE_PRIVATE_KEY_BASE64, "DATABASE_PRIVATE_KEY_BASE64"),
        )

    return DatabaseConfig(
        urls=config.database_urls,
        database=config.DATABASE_NAME,
        auth_options=auth_options,
        enable_optimistic_concurrency=config.DATABASE_ENABLE_OPTIMISTIC_CONCURRENCY,
        max_requests_per_session=config.DATABASE_MAX_REQUESTS_PER_SESSION,
        server_selection_timeout_ms=config.DATABASE_SERVER_SELECTION_TIMEOUT,
        connect_timeout_ms=config.DATABASE_CONNECTION_TIMEOUT,
    )


def is_production(config: Optional[Settings] = None) -> bool:
    """Production marker set, or the database URL uses TLS (`https`/`mongodb+srv`/`tls=true`)."""
    config = config or settings
    url = config.DATABASE_URL.lower()
    return (
        config.is_production
        or url.startswith("https")
        or url.startswith("mongodb+srv")
        or "tls=true" in url
    )


def get_studio_url(config: Optional[Settings] = None) -> str:
    """Admin/studio URL of the database: the configured admin URL in production, localhost otherwise."""
    config = config or settings
    if is_production(config):
        return config.DATABASE_ADMIN_URL or "https://localhost:8080"
    return "http://localhost:8080"


# Global settings instance
settings: Settings = Settings()
