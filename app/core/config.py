# app/core/config.py
from functools import lru_cache

from pydantic import AnyHttpUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Global application configuration.

    Values are loaded from environment variables at runtime.

    Used for:
    - DB connection
    - Attendance calculation policy (threshold, classifier strategy)
    - Internal API key
    - Real-time sync (Socket.IO origins, polling cadence, remote API)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    APP_NAME: str = "Zoom Attendance Tracker"
    APP_ENV: str = Field("local", description="Environment name: local/test/dev/stage/prod")
    LOG_LEVEL: str = Field("INFO", description="Root log level for the service.")

    DB_URL: str = Field(
        "sqlite+aiosqlite:///./attendance.db",
        description="SQLAlchemy-compatible database URL",
    )

    INTERNAL_API_KEY: str | None = Field(
        default=None,
        description="API key required for admin-only endpoints",
    )

    # --- Attendance policy ---
    ATTENDANCE_THRESHOLD: float = Field(
        default=85.0,
        ge=0,
        le=100,
        description="Percentage at or above which a participant counts as Present.",
    )
    CLASSIFIER_STRATEGY: str = Field(
        default="threshold",
        description="Attendance classifier: 'threshold' (single cutoff) or 'legacy' (bands).",
    )
    MERGE_OVERLAPPING_SESSIONS: bool = Field(
        default=False,
        description=(
            "When true, overlapping join/leave sessions of one participant "
            "(e.g. joined from two devices) are merged before summing."
        ),
    )

    JOIN_TRACKING_HISTORY_LIMIT: int = Field(
        default=10,
        ge=1,
        description="Number of join-tracking entries returned as recent history.",
    )

    # --- Real-time sync ---
    SOCKETIO_CORS_ORIGINS: str = Field(
        default="*",
        description="Comma-separated list of allowed Socket.IO origins, or '*'.",
    )
    ATTENDANCE_API_BASE_URL: AnyHttpUrl | None = Field(
        default=None,
        description="Base URL of a remote attendance backend used by the sync client.",
    )
    ATTENDANCE_API_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="HTTP timeout for the sync client.",
    )
    SYNC_POLL_INTERVAL_SECONDS: float = Field(
        default=15.0,
        gt=0,
        description="Polling interval of the sync client between socket events.",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Cached accessor for application settings.

    Using LRU cache ensures settings are read and validated only once,
    while still being easily importable across the app.
    """
    return Settings()
