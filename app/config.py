"""
Application configuration. Loads from environment variables.
Secrets and sensitive config must never be hardcoded.

Scoring weights, penalty curves and the daily sweep time are not settings:
they live in versioned YAML under app/scoring_config/versions/.
"""

import os

from dotenv import load_dotenv

load_dotenv()
from functools import lru_cache


@lru_cache(maxsize=1)
def get_settings() -> "Settings":
    """Return cached settings instance."""
    return Settings()


class Settings:
    """Application settings loaded from environment."""

    # App
    app_name: str = "Dealscore"
    debug: bool = False

    # Database (postgresql+psycopg for psycopg3; sqlite:/// accepted for local dev)
    database_url: str = "postgresql+psycopg://localhost:5432/dealscore_dev"
    db_connect_timeout: int = 10  # seconds

    # Security
    internal_job_token: str = ""  # Required for /internal/* endpoints

    # Scoring config version (file stem under app/scoring_config/versions/)
    scoring_config_version: str = "v2"

    # Daily sweep: alert when failed/processed exceeds this ratio
    sweep_error_rate_alert_threshold: float = 0.5

    # Pipeline aggregate buckets
    closing_soon_min_score: int = 70
    closing_soon_min_age_days: int = 14
    at_risk_max_score: int = 30  # score < this is at risk

    def __init__(self) -> None:
        self.app_name = os.getenv("APP_NAME", self.app_name)
        self.debug = os.getenv("DEBUG", "false").lower() == "true"

        default_user = os.getenv("PGUSER") or os.getenv("USER") or "postgres"
        default_url = (
            f"postgresql+psycopg://{default_user}:"
            f"{os.getenv('PGPASSWORD', '')}@"
            f"{os.getenv('PGHOST', 'localhost')}:"
            f"{os.getenv('PGPORT', '5432')}/"
            f"{os.getenv('PGDATABASE', 'dealscore_dev')}"
        )
        raw_url = os.getenv("DATABASE_URL", default_url)
        # Ensure psycopg3 driver if URL uses generic postgresql:// (or Heroku-style postgres://)
        if raw_url.startswith("postgres://"):
            raw_url = raw_url.replace("postgres://", "postgresql://", 1)
        if raw_url.startswith("postgresql://") and not raw_url.startswith("postgresql+psycopg"):
            raw_url = raw_url.replace("postgresql://", "postgresql+psycopg://", 1)
        self.database_url = raw_url
        self.db_connect_timeout = int(os.getenv("DB_CONNECT_TIMEOUT", str(self.db_connect_timeout)))

        self.internal_job_token = os.getenv("INTERNAL_JOB_TOKEN", "")

        self.scoring_config_version = os.getenv(
            "SCORING_CONFIG_VERSION", self.scoring_config_version
        ).strip()

        self.sweep_error_rate_alert_threshold = float(
            os.getenv(
                "SWEEP_ERROR_RATE_ALERT_THRESHOLD",
                str(self.sweep_error_rate_alert_threshold),
            )
        )

        self.closing_soon_min_score = int(
            os.getenv("CLOSING_SOON_MIN_SCORE", str(self.closing_soon_min_score))
        )
        self.closing_soon_min_age_days = int(
            os.getenv("CLOSING_SOON_MIN_AGE_DAYS", str(self.closing_soon_min_age_days))
        )
        self.at_risk_max_score = int(os.getenv("AT_RISK_MAX_SCORE", str(self.at_risk_max_score)))
