"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    # Database
    DATABASE_URL: str

    # Session Token (supports key rotation)
    JWT_SECRET: str = "change-this-in-production"
    JWT_SECRET_PREVIOUS: str = ""  # Set during rotation, clear after
    JWT_EXPIRES_HOURS: int = 8

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Frontend (links in agent notifications)
    FRONTEND_URL: str = "http://localhost:3000"

    # Outbound messaging gateway (empty URL disables sends)
    MESSAGING_GATEWAY_URL: str = ""
    MESSAGING_GATEWAY_TOKEN: str = ""
    MESSAGING_TIMEOUT_SECONDS: float = 10.0
    MESSAGING_MAX_ATTEMPTS: int = 3

    # Completion message dedupe (per ticket)
    COMPLETION_DEDUP_WINDOW_MINUTES: int = 30
    COMPLETION_DEDUP_MAX_ENTRIES: int = 2500

    # Ticket lifecycle
    TICKET_REOPEN_WINDOW_HOURS: int = 2

    # Kanban backlog sweep default window
    KANBAN_IMPORT_WINDOW_HOURS: int = 24

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def jwt_secrets(self) -> list[str]:
        """Returns list of valid secrets (current first, then previous if set)."""
        secrets = [self.JWT_SECRET]
        if self.JWT_SECRET_PREVIOUS:
            secrets.append(self.JWT_SECRET_PREVIOUS)
        return secrets

    @property
    def cookie_secure(self) -> bool:
        """Secure cookies only in production."""
        return self.ENV != "dev"


settings = Settings()
