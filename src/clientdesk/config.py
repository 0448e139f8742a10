"""ClientDesk application configuration via environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Global application settings loaded from environment / .env file."""

    # General
    clientdesk_env: str = "development"  # development | production | test
    clientdesk_debug: bool = True
    secret_key: str = "changeme-dev-secret"
    base_url: str = "http://localhost:8000"
    session_days: int = 30

    # Comma-separated list of addresses that are always promoted to CEO
    owner_emails: str = ""

    # Studio details used by the chat assistant
    studio_name: str = "ClientDesk Studio"
    studio_city: str = "Louisville, Kentucky"
    support_email: str = "hello@example.com"

    # PostgreSQL
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "clientdesk"
    postgres_password: str = "clientdesk_dev_password"
    postgres_db: str = "clientdesk"

    # Full URL override (e.g. sqlite+aiosqlite:// for local runs)
    database_url: str = ""

    @property
    def database_url_async(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def database_url_sync(self) -> str:
        if self.database_url:
            return self.database_url.replace("+asyncpg", "").replace("+aiosqlite", "")
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # Stripe
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_price_nonprofit_t1: str = ""
    stripe_price_nonprofit_t2: str = ""
    stripe_price_nonprofit_t3: str = ""

    # Google OAuth
    google_client_id: str = ""
    google_client_secret: str = ""

    # LLM
    llm_provider: str = "anthropic"  # openai | anthropic
    llm_model: str = "claude-3-5-haiku-20241022"
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    llm_timeout: float = 30.0
    llm_max_retries: int = 2

    # ── Derived helpers ───────────────────────────────────────────────────

    @property
    def is_development(self) -> bool:
        return self.clientdesk_env == "development"

    @property
    def is_production(self) -> bool:
        return self.clientdesk_env == "production"

    @property
    def owner_email_list(self) -> list[str]:
        return [e.strip().lower() for e in self.owner_emails.split(",") if e.strip()]

    @property
    def absolute_base_url(self) -> str:
        """Base URL with a scheme, as payment redirects require."""
        url = self.base_url.rstrip("/")
        if not url.startswith("http"):
            url = f"https://{url}"
        return url

    @property
    def llm_api_key(self) -> str:
        if self.llm_provider.lower() == "openai":
            return self.openai_api_key
        return self.anthropic_api_key

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()


# Secrets that must be present before the app serves production traffic.
REQUIRED_PRODUCTION_SETTINGS = (
    "secret_key",
    "google_client_id",
    "google_client_secret",
    "stripe_secret_key",
    "stripe_webhook_secret",
)


class ConfigurationError(RuntimeError):
    """Raised when required production settings are missing."""


def missing_production_settings(cfg: Settings | None = None) -> list[str]:
    """Return the names of required settings that are unset."""
    cfg = cfg or settings
    missing = [name for name in REQUIRED_PRODUCTION_SETTINGS if not getattr(cfg, name)]
    if cfg.secret_key == "changeme-dev-secret" and "secret_key" not in missing:
        missing.append("secret_key")
    if not cfg.database_url and not cfg.postgres_password:
        missing.append("postgres_password")
    return missing


def validate_production_settings(cfg: Settings | None = None) -> None:
    """Fail fast in production when secrets are absent. No-op elsewhere."""
    cfg = cfg or settings
    if not cfg.is_production:
        return
    missing = missing_production_settings(cfg)
    if missing:
        raise ConfigurationError(
            "Missing required production settings: " + ", ".join(sorted(missing))
        )
