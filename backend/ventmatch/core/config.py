# SPDX-FileCopyrightText: 2025 Weibo, Inc.
#
# SPDX-License-Identifier: Apache-2.0

from typing import Dict

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Project configuration
    PROJECT_NAME: str = "Ventmatch Backend"
    VERSION: str = "1.0.0"
    API_PREFIX: str = "/api"
    # API docs toggle (from env ENABLE_API_DOCS, default True)
    ENABLE_API_DOCS: bool = True

    # Environment configuration
    ENVIRONMENT: str = "development"  # development or production

    # Database configuration (reports, pattern records, restrictions)
    DATABASE_URL: str = "sqlite:///./ventmatch.db"

    # Redis configuration
    REDIS_URL: str = "redis://127.0.0.1:6379/0"
    # Pairing backend: "redis" (falls back to local on failure) or "local"
    PAIRING_BACKEND: str = "redis"
    REDIS_KEY_PREFIX: str = "ventmatch"

    # Matching queue configuration
    QUEUE_TIMEOUT_SECONDS: int = 300  # 5 minutes
    QUEUE_CLEANUP_INTERVAL_SECONDS: int = 60
    WAIT_ESTIMATE_FLOOR_SECONDS: int = 30
    WAIT_SECONDS_PER_ENTRY: int = 15

    # Chat session configuration
    SESSION_EXPIRE_SECONDS: int = 2 * 60 * 60  # Minimum Redis TTL for session keys
    SESSION_RETENTION_MINUTES: int = 30  # Ended sessions older than this are swept
    SESSION_MAX_AGE_MINUTES: int = 120  # Absolute cap on session lifetime
    SESSION_SWEEP_INTERVAL_SECONDS: int = 600
    CHAT_HISTORY_MAX_MESSAGES: int = 20  # Messages kept per session
    JOIN_DEBOUNCE_SECONDS: float = 0.05
    MAX_MESSAGE_LENGTH: int = 1000

    # Moderation policy constants (untuned; owned by moderation policy)
    RISK_VOLUME_WEIGHT: int = 10
    RISK_VOLUME_CAP: int = 50
    RISK_LAST_24H_WEIGHT: int = 20
    RISK_LAST_WEEK_WEIGHT: int = 5
    RISK_SERIOUS_WEIGHT: int = 15
    RISK_RAPID_INTERVAL_MINUTES: int = 60
    RISK_RAPID_INTERVAL_PENALTY: int = 25
    RISK_DAILY_INTERVAL_MINUTES: int = 24 * 60
    RISK_DAILY_INTERVAL_PENALTY: int = 10
    RISK_MEDIUM_THRESHOLD: int = 25
    RISK_HIGH_THRESHOLD: int = 50
    RISK_CRITICAL_THRESHOLD: int = 80
    # Temporary ban ladder: max report count -> ban minutes
    BAN_LADDER: Dict[int, int] = {3: 30, 5: 2 * 60, 8: 24 * 60}
    BAN_MAX_MINUTES: int = 7 * 24 * 60
    # Warnings block admission briefly instead of indefinitely
    WARNING_DURATION_MINUTES: int = 15
    RESTRICTION_CLEANUP_INTERVAL_SECONDS: int = 900

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


# Global configuration instance
settings = Settings()
