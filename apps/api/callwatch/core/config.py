"""Settings for the Call Watch API and reminder worker, read from env / .env."""

from pydantic_settings import BaseSettings, SettingsConfigDict


def _csv(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"  # dev, test, staging, production
    VERSION: str = "0.1.0"

    DATABASE_URL: str = "sqlite+pysqlite:///./callwatch.db"

    # Session JWT. During a rotation the old secret goes in JWT_SECRET_PREVIOUS
    JWT_SECRET: str = "change-this-in-production"
    JWT_SECRET_PREVIOUS: str = ""
    JWT_EXPIRES_HOURS: int = 4

    CORS_ORIGINS: str = "http://localhost:3000"

    SENTRY_DSN: str = ""  # Empty disables Sentry; never enabled in dev

    # Rate Limiting (requests per minute, 0 disables)
    RATE_LIMIT_API: int = 60
    RATE_LIMIT_STORAGE_URI: str = "memory://"  # redis://... when running several API workers
    TESTING: bool = False

    # Call reminders
    NOTIFICATION_OFFSETS_MINUTES: str = "15,10,5,1,0"  # "0" = starting now
    NOTIFICATION_POLL_INTERVAL_SECONDS: int = 60
    NOTIFICATION_SNOOZE_MINUTES: int = 5
    NOTIFICATION_INBOX_LIMIT: int = 50  # In-app events kept per viewer (memory only)
    NOTIFICATION_CHANNELS: str = "in_app,websocket"  # in_app, websocket, log

    @property
    def cors_origins_list(self) -> list[str]:
        return _csv(self.CORS_ORIGINS)

    @property
    def notification_offsets(self) -> list[int]:
        """Reminder offsets in minutes, deduplicated, largest first."""
        return sorted({int(o) for o in _csv(self.NOTIFICATION_OFFSETS_MINUTES)}, reverse=True)

    @property
    def notification_channels_list(self) -> list[str]:
        return [c.lower() for c in _csv(self.NOTIFICATION_CHANNELS)]

    @property
    def jwt_secrets(self) -> list[str]:
        """Secrets accepted when verifying a session, current one first."""
        return [s for s in (self.JWT_SECRET, self.JWT_SECRET_PREVIOUS) if s]


settings = Settings()
