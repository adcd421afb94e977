"""Settings read from the environment (and ``.env`` in development)."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

Environment = Literal["development", "production", "test"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
EmailBackendName = Literal["console", "smtp", "resend", "webhook"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    environment: Environment = "development"
    debug: bool | None = None
    log_level: LogLevel = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000
    app_url: str = Field(
        default="http://localhost:8000",
        description="Public origin that magic links point at",
    )
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:5173"]
    sentry_dsn: str = ""

    # Signing key for login tokens, also the pepper for password hashes
    secret_key: str = Field(default="change-this-to-a-secure-secret", min_length=16)
    token_ttl_hours: int = Field(default=24, ge=1)
    session_max_age_days: int = Field(default=7, ge=1)
    cookie_secure: bool | None = Field(
        default=None, description="Force the Secure cookie flag on or off"
    )
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)

    redirect_loop_threshold: int = Field(
        default=3, ge=1, description="Consecutive redirects tolerated before a forced logout"
    )
    redirect_counter_max_age: int = Field(default=60, ge=1)

    notion_api_key: str = ""
    notion_api_url: str = "https://api.notion.com/v1"
    notion_version: str = "2022-06-28"
    notion_timeout: float = 10.0
    students_database_id: str = ""
    tasks_database_id: str = ""
    submissions_database_id: str = ""
    schedules_database_id: str = ""

    email_backend: EmailBackendName = "console"
    email_from: str = "Study Portal <noreply@studyportal.app>"
    owner_email: str = Field(default="", description="Gets a copy of every consultation booking")
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    resend_api_key: str = ""
    email_webhook_url: str = ""

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_test(self) -> bool:
        return self.environment == "test"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def secure_cookies(self) -> bool:
        """Explicit ``COOKIE_SECURE`` wins, otherwise production only."""
        return self.is_production if self.cookie_secure is None else self.cookie_secure

    @computed_field  # type: ignore[prop-decorator]
    @property
    def debug_enabled(self) -> bool:
        """Explicit ``DEBUG`` wins, otherwise development only."""
        return self.is_development if self.debug is None else self.debug


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
