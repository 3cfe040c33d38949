"""
Configuration for the workflow API and analytics.

Values come from environment variables, falling back to the defaults below.
"""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache


@dataclass
class Config:
    """Settings for the app factory, analytics and logging."""

    # Flask settings
    FLASK_ENV: str = "development"
    FLASK_DEBUG: bool = True
    SECRET_KEY: str = "dev-secret-key-change-in-production"
    CORS_ORIGINS: str = "*"

    # Workflow engine settings
    LOAD_DEFAULT_DEFINITIONS: bool = True

    # Analytics settings
    ANALYTICS_STRICT: bool = False  # Fail on workflow types without an expected duration
    DEFAULT_EXPECTED_COMPLETION_DAYS: float = 7.0
    STUCK_THRESHOLD_HOURS: float = 24.0

    # Logging settings
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @classmethod
    def from_env(cls) -> "Config":
        """Create configuration from environment variables."""
        return cls(
            FLASK_ENV=os.getenv("FLASK_ENV", cls.FLASK_ENV),
            FLASK_DEBUG=os.getenv("FLASK_DEBUG", "true").lower() == "true",
            SECRET_KEY=os.getenv("SECRET_KEY", cls.SECRET_KEY),
            CORS_ORIGINS=os.getenv("CORS_ORIGINS", cls.CORS_ORIGINS),
            LOAD_DEFAULT_DEFINITIONS=os.getenv("LOAD_DEFAULT_DEFINITIONS", "true").lower() == "true",
            ANALYTICS_STRICT=os.getenv("ANALYTICS_STRICT", "false").lower() == "true",
            DEFAULT_EXPECTED_COMPLETION_DAYS=float(
                os.getenv("DEFAULT_EXPECTED_COMPLETION_DAYS", cls.DEFAULT_EXPECTED_COMPLETION_DAYS)
            ),
            STUCK_THRESHOLD_HOURS=float(os.getenv("STUCK_THRESHOLD_HOURS", cls.STUCK_THRESHOLD_HOURS)),
            LOG_LEVEL=os.getenv("LOG_LEVEL", cls.LOG_LEVEL),
            LOG_FORMAT=os.getenv("LOG_FORMAT", cls.LOG_FORMAT),
        )


@lru_cache(maxsize=1)
def get_config() -> Config:
    """Get cached configuration instance."""
    return Config.from_env()


def configure_logging(config: Config = None) -> None:
    """Configure root logging from the application config."""
    config = config or get_config()
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        format=config.LOG_FORMAT,
    )


@dataclass
class TestConfig(Config):
    """Test settings: no debug, strict analytics."""

    FLASK_ENV: str = "testing"
    FLASK_DEBUG: bool = False
    ANALYTICS_STRICT: bool = True
