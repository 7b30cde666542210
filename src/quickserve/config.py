"""Centralized application configuration via environment variables."""

from enum import StrEnum
from functools import lru_cache

from pydantic import SecretStr, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(StrEnum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    ``jwt_secret`` has no default: a process started without ``JWT_SECRET``
    fails while loading settings instead of verifying tokens against an
    undefined key. Database URL is assembled from individual components to
    match the official PostgreSQL Docker image environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- App ---
    environment: Environment = Environment.DEVELOPMENT
    log_level: str = "DEBUG"
    # --- CORS ---
    cors_allowed_origins: list[str] = []
    cors_allow_credentials: bool = False
    cors_allowed_methods: list[str] = ["GET", "POST", "PUT", "PATCH", "DELETE"]
    cors_allowed_headers: list[str] = [
        "Content-Type",
        "Authorization",
        "X-Restaurant-Slug",
    ]

    # --- PostgreSQL ---
    postgres_user: str = "quickserve"
    postgres_password: SecretStr = SecretStr("secret")
    postgres_db: str = "quickserve"
    postgres_host: str = "localhost"
    postgres_port: int = 5432

    @computed_field  # type: ignore[prop-decorator]
    @property
    def database_url(self) -> str:
        """Assemble database URL from components.

        Uses psycopg v3 driver which supports both sync (create_engine)
        and async (create_async_engine) modes natively.
        """
        password = self.postgres_password.get_secret_value()
        return (
            f"postgresql+psycopg://{self.postgres_user}:{password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # --- Credentials ---
    jwt_secret: SecretStr
    jwt_algorithm: str = "HS256"
    owner_token_ttl_hours: int = 24 * 30
    staff_token_ttl_hours: int = 24

    # --- Abuse guard ---
    rate_limit_window_seconds: int = 60
    rate_limit_max_requests: int = 100
    # Only honour X-Forwarded-For behind a trusted reverse proxy.
    trust_forwarded_for: bool = False

    # --- Tenant provisioning ---
    tenant_schema_prefix: str = "tenant_"
    tenant_seed_username: str = "kitchen1"
    tenant_seed_display_name: str = "Kitchen Admin"
    tenant_seed_password: SecretStr = SecretStr("kitchen123")

    # --- Convenience properties ---
    @property
    def is_dev(self) -> bool:
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_prod(self) -> bool:
        return self.environment == Environment.PRODUCTION

    @property
    def is_testing(self) -> bool:
        return self.environment == Environment.TESTING


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings singleton.

    Usage::

        from quickserve.config import get_settings
        settings = get_settings()

    Or for dependency injection in FastAPI::

        @app.get("/")
        def root(settings: Settings = Depends(get_settings)):
            ...
    """
    return Settings()  # type: ignore[call-arg]


settings = get_settings()
