"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"
    VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str

    # Scheduler
    AUTOMATION_SCHEDULER_ENABLED: bool = True
    AUTOMATION_TICK_INTERVAL_SECONDS: int = 900  # 15 minutes, also the matching window width
    AUTOMATION_MAX_CONCURRENCY: int = 5
    NOTIFIER_TIMEOUT_SECONDS: float = 30.0

    # Business hours gate (studio local time)
    BUSINESS_TIMEZONE: str = "America/Los_Angeles"
    BUSINESS_HOURS_START: int = 9  # 9:00 AM
    BUSINESS_HOURS_END: int = 20  # 8:00 PM
    BUSINESS_HOURS_SKIP_HOLIDAYS: bool = False

    # Outbound email (Resend). Empty key = dry run.
    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = "noreply@example.com"

    # Frontend (for tracking links in emails)
    FRONTEND_URL: str = "http://localhost:3000"

    @property
    def is_dev(self) -> bool:
        return self.ENV == "dev"


settings = Settings()
