"""Configuration management for the Wallet Ledger service.

Configuration is loaded from environment variables once at startup and
passed explicitly into the components that need it.
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Constants for database URL construction
POSTGRESQL_PREFIX = "postgresql://"
ASYNCPG_DRIVER = "+asyncpg"
PSYCOPG_DRIVER = "+psycopg"


class AppEnvironment(str, Enum):
    LOCAL = "local"
    TEST = "test"
    PROD = "prod"


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LedgerBackend(str, Enum):
    POSTGRES = "postgres"
    MEMORY = "memory"


class AppConfig(BaseSettings):
    name: str = Field(default="wallet-ledger")
    env: AppEnvironment = Field(default=AppEnvironment.LOCAL)
    version: str = Field(default="0.1.0")
    debug: bool = Field(default=False)
    log_level: LogLevel = Field(default=LogLevel.INFO)

    model_config = SettingsConfigDict(env_prefix="APP_")

    @field_validator("env", mode="before")
    @classmethod
    def validate_env(cls, v: str | AppEnvironment) -> AppEnvironment:
        if isinstance(v, AppEnvironment):
            return v
        return AppEnvironment(v)

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str | LogLevel) -> LogLevel:
        if isinstance(v, LogLevel):
            return v
        return LogLevel(v.upper())


class ServerConfig(BaseSettings):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080)
    workers: int = Field(default=4)

    model_config = SettingsConfigDict(env_prefix="SERVER_")


class DatabaseConfig(BaseSettings):
    # Primary: Full connection URL
    url_app: str = Field(default="", alias="database_url_app")

    # Admin URL for schema setup (optional)
    url_admin: str = Field(default="", alias="database_url_admin")

    # Fallback: Individual components
    host: str = Field(default="localhost")
    port: int = Field(default=5432)
    name: str = Field(default="wallet")
    user: str = Field(default="postgres")
    password: SecretStr = Field(default=SecretStr("postgres"))
    pool_size: int = Field(default=10)
    max_overflow: int = Field(default=20)
    pool_timeout: int = Field(default=30)
    pool_recycle: int = Field(default=1800)
    connect_timeout: int = Field(default=30)
    echo: bool = Field(default=False)

    model_config = SettingsConfigDict(
        env_prefix="DATABASE_",
        populate_by_name=True,  # Allow alias to work
    )

    @property
    def async_url(self) -> str:
        """Build async database URL."""
        if self.url_app:
            url = self.url_app
            if url.startswith(POSTGRESQL_PREFIX) and ASYNCPG_DRIVER not in url:
                new_prefix = POSTGRESQL_PREFIX.removesuffix("://") + ASYNCPG_DRIVER + "://"
                url = url.replace(POSTGRESQL_PREFIX, new_prefix, 1)
            return url
        password = self.password.get_secret_value()
        return f"postgresql{ASYNCPG_DRIVER}://{self.user}:{password}@{self.host}:{self.port}/{self.name}"

    @property
    def sync_url(self) -> str:
        """Build a plain libpq URL for psycopg (schema setup)."""
        url = self.url_admin or self.url_app
        if url:
            return url.replace(ASYNCPG_DRIVER, "", 1).replace(PSYCOPG_DRIVER, "", 1)
        password = self.password.get_secret_value()
        return f"postgresql://{self.user}:{password}@{self.host}:{self.port}/{self.name}"


class LedgerConfig(BaseSettings):
    backend: LedgerBackend = Field(default=LedgerBackend.POSTGRES)
    serialization_retries: int = Field(default=5, ge=0)
    # Upper bound of the first jittered retry delay; doubles on each attempt
    retry_backoff_ms: float = Field(default=10.0, ge=0)

    model_config = SettingsConfigDict(env_prefix="LEDGER_")


class FraudConfig(BaseSettings):
    """Fraud heuristic thresholds (FRAUD_HIGH_AMOUNT_CENTS, FRAUD_WINDOW_MIN)."""

    high_amount_cents: int = Field(default=10_000, gt=0)
    window_min: int = Field(default=10, gt=0)

    model_config = SettingsConfigDict(env_prefix="FRAUD_")


class ObservabilityConfig(BaseSettings):
    service_name: str = Field(default="wallet-ledger")
    otlp_endpoint: str | None = Field(default=None)
    otlp_insecure: bool = Field(default=True)
    log_record_format: str = Field(default="json")

    model_config = SettingsConfigDict(env_prefix="OTEL_")


class SecurityConfig(BaseSettings):
    cors_allowed_origins: str = Field(default="http://localhost:3000,http://localhost:8000")
    cors_allow_credentials: bool = Field(default=True)
    cors_allow_methods: list[str] = Field(default=["GET", "POST"])
    cors_allow_headers: list[str] = Field(default=["Content-Type", "X-Request-ID"])

    model_config = SettingsConfigDict(env_prefix="SECURITY_")

    @field_validator("cors_allowed_origins", mode="after")
    @classmethod
    def validate_cors_allowed_origins(cls, v: str | list[str]) -> list[str]:
        """Parse comma-separated string into list of origins."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v


class Settings(BaseSettings):
    app: AppConfig = Field(default_factory=AppConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    fraud: FraudConfig = Field(default_factory=FraudConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def reload_settings() -> Settings:
    """Reload settings (useful for testing)."""
    get_settings.cache_clear()
    return get_settings()
