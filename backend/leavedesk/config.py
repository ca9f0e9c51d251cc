from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "LeaveDesk"
    app_version: str = "0.1.0"
    debug: bool = False
    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "postgresql+asyncpg://leavedesk:leavedesk@db:5432/leavedesk"
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:8000"]

    # Upper bound for a single engine operation (apply, edit, decide, per-employee job step).
    operation_timeout_seconds: float = 10.0
    # Postgres lock_timeout applied to every connection.
    lock_timeout_ms: int = 5000

    job_lease_seconds: int = 3600
    # A running job renews its lease at most this often, between per-employee steps.
    job_heartbeat_seconds: int = 300
    # Scheduled credits missed within this many days (worker down, failed step) are posted on a later run.
    accrual_catchup_days: int = 7
    # Joiners on or before this day of the month get the full month's credit; later joiners only sick leave.
    joining_credit_cutoff_day: int = 15
    worker_interval_seconds: int = 86400
    hr_digest_enabled: bool = True

    # Used when no policy row defines max_leave_per_month.
    default_monthly_cap_casual: int = 10
    default_monthly_cap_lop: int = 5


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return cached settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
