"""Application settings and configuration.

This module defines all configuration options for the Quandary application.
Settings are loaded from environment variables with sensible defaults.
"""

from zoneinfo import ZoneInfo

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Quandary", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")

    # Security and authentication
    secret_key: str = Field(alias="SECRET_KEY")
    debug: bool = Field(default=False, alias="DEBUG")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60 * 24 * 7,
        alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )

    # Database configuration
    database_url: str = Field(default="sqlite:///./quandary.db", alias="DATABASE_URL")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")
    db_timeout_seconds: float = Field(default=10.0, alias="DB_TIMEOUT_SECONDS")

    # Retry policy applied at the storage boundary
    store_retry_attempts: int = Field(default=3, alias="STORE_RETRY_ATTEMPTS")
    store_retry_backoff_seconds: float = Field(
        default=0.1,
        alias="STORE_RETRY_BACKOFF_SECONDS",
    )

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Gamification
    vote_points: int = Field(default=10, alias="VOTE_POINTS")
    question_points: int = Field(default=50, alias="QUESTION_POINTS")
    ai_question_points: int = Field(default=25, alias="AI_QUESTION_POINTS")
    vote_edit_window_seconds: int = Field(default=300, alias="VOTE_EDIT_WINDOW_SECONDS")
    streak_timezone: str = Field(default="UTC", alias="STREAK_TIMEZONE")

    # Question moderation
    flag_review_threshold: int = Field(default=3, alias="FLAG_REVIEW_THRESHOLD")
    auto_approve_user_questions: bool = Field(
        default=True,
        alias="AUTO_APPROVE_USER_QUESTIONS",
    )

    # Realtime channel
    room_member_display_limit: int = Field(default=10, alias="ROOM_MEMBER_DISPLAY_LIMIT")
    broadcast_send_timeout_seconds: float = Field(
        default=5.0,
        alias="BROADCAST_SEND_TIMEOUT_SECONDS",
    )
    chat_message_max_length: int = Field(default=1000, alias="CHAT_MESSAGE_MAX_LENGTH")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def calendar_zone(self) -> ZoneInfo:
        """Return the timezone whose calendar days drive streaks and badge timeframes."""
        return ZoneInfo(self.streak_timezone)


settings = Settings()  # type: ignore[call-arg]
