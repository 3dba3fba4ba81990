import os
import logging
from pydantic import BaseModel, Field
from typing import List
from dotenv import load_dotenv

load_dotenv()

_DEFAULT_DATABASE_URL = "sqlite:///./leave_engine.db"


def _parse_weekend_days(raw: str) -> List[int]:
    return [int(d.strip()) for d in raw.split(",") if d.strip()]


class LeaveSettings(BaseModel):
    # Deployment-time seeding is the norm; startup seeding is opt-in.
    seed_defaults_on_startup: bool = Field(
        default=os.getenv("SEED_LEAVE_DEFAULTS", "false").lower() == "true"
    )
    exclude_weekends_by_default: bool = Field(
        default=os.getenv("LEAVE_EXCLUDE_WEEKENDS", "false").lower() == "true"
    )
    # ISO weekday numbers (Monday=1 .. Sunday=7)
    weekend_days: List[int] = Field(
        default_factory=lambda: _parse_weekend_days(os.getenv("LEAVE_WEEKEND_DAYS", "6,7"))
    )


class Config(BaseModel):
    app_name: str = "Leave Entitlement & Approval Engine"
    environment: str = os.getenv("APP_ENV", "development")
    api_prefix: str = "/api"
    version: str = "1.0.0"

    # Database
    database_url: str = os.getenv("DATABASE_URL", _DEFAULT_DATABASE_URL)
    database_echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"

    # Observability
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    request_id_header: str = "X-Request-ID"

    leave: LeaveSettings = LeaveSettings()


settings = Config()

# --- Startup Validation for Production ---
_logger = logging.getLogger(__name__)
if settings.environment not in ("development", "testing"):
    if settings.database_url == _DEFAULT_DATABASE_URL:
        raise RuntimeError(
            "FATAL: DATABASE_URL must be set for non-development environments."
        )
elif settings.database_url == _DEFAULT_DATABASE_URL:
    _logger.warning("Using local SQLite database - only acceptable in development.")
