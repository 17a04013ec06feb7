"""Runtime configuration loaded from environment variables.

Environment Configuration:
    VERCEL / SERVERLESS: Deployment-mode flag; set when running as a serverless function
    APP_ENV / NODE_ENV: Runtime environment (development | production)
    PORT: Listener port for standalone mode (default 5000)
    RUN_STANDALONE: Force the standalone listener even when the serverless flag is set

Content Serving:
    SKIP_DEV_SERVER / SKIP_VITE: Skip the dev-server middleware in development
    DEV_SERVER_URL: Base URL of the frontend dev server (Vite)
    CLIENT_DIR: Frontend source directory holding the index.html template
    STATIC_DIR: Prebuilt asset directory served in production

Note: Settings are read once per process and treated as immutable.
The host bind address is not configurable (always the wildcard address).
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings

HOST = "0.0.0.0"


class Environment(str, Enum):
    """Valid runtime environments."""

    DEVELOPMENT = "development"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Bootstrap configuration.

    Settings are loaded from environment variables.
    Validation rules:
    - PORT must be a valid TCP port
    - API_PREFIX must start with "/" and must not end with "/"
    - LOG_BODY_MAX_BYTES must be >= 0
    """

    serverless: bool = Field(
        default=False, validation_alias=AliasChoices("VERCEL", "SERVERLESS")
    )
    app_env: Environment = Field(
        default=Environment.DEVELOPMENT, validation_alias=AliasChoices("APP_ENV", "NODE_ENV")
    )
    port: int = Field(default=5000, alias="PORT")
    run_standalone: bool = Field(default=False, alias="RUN_STANDALONE")

    # Content strategy
    skip_dev_server: bool = Field(
        default=False, validation_alias=AliasChoices("SKIP_DEV_SERVER", "SKIP_VITE")
    )
    dev_server_url: str = Field(default="http://localhost:5173", alias="DEV_SERVER_URL")
    dev_server_timeout_s: float = Field(default=10.0, alias="DEV_SERVER_TIMEOUT_S")
    client_dir: Path = Field(default=Path("frontend"), alias="CLIENT_DIR")
    client_entry: str = Field(default="/src/main.tsx", alias="CLIENT_ENTRY")
    static_dir: Path = Field(default=Path("public"), alias="STATIC_DIR")

    api_prefix: str = Field(default="/api", alias="API_PREFIX")
    eager_init: bool = Field(default=True, alias="EAGER_INIT")

    # Logging
    log_json: bool | None = Field(default=None, alias="LOG_JSON")
    log_body_max_bytes: int = Field(default=64 * 1024, alias="LOG_BODY_MAX_BYTES")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_ignore_empty": True,
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def validate_settings(self) -> "Settings":
        """Reject values the bootstrap cannot run with."""
        if not 1 <= self.port <= 65535:
            raise ValueError(f"PORT must be between 1 and 65535, got {self.port}")

        if not self.api_prefix.startswith("/") or self.api_prefix.endswith("/"):
            raise ValueError(
                f"API_PREFIX must start with '/' and must not end with '/', got {self.api_prefix!r}"
            )

        if self.log_body_max_bytes < 0:
            raise ValueError("LOG_BODY_MAX_BYTES must be >= 0")

        return self

    @property
    def is_production(self) -> bool:
        """Whether the process serves prebuilt assets."""
        return self.app_env == Environment.PRODUCTION

    @property
    def json_logs(self) -> bool:
        """Whether logs are rendered as JSON (defaults to production only)."""
        if self.log_json is not None:
            return self.log_json
        return self.is_production


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If settings are invalid.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    get_settings.cache_clear()
