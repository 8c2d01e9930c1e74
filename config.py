"""Application configuration.

This module provides environment-specific configuration settings for the OCR core.
"""

import os
from typing import Optional


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Config:
    """Base configuration with settings common to all environments."""

    # Flask settings
    DEBUG: bool = _env_bool("DEBUG", "false")
    TESTING: bool = False

    # Application settings
    APP_NAME: str = os.getenv("APP_NAME", "receipt-ocr-core")
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "dev")

    # OCR worker pool
    OCR_ENABLED: bool = _env_bool("OCR_ENABLED", "true")
    OCR_WORKER_COUNT: int = int(os.getenv("OCR_WORKER_COUNT", "2"))
    OCR_MAX_QUEUE: int = int(os.getenv("OCR_MAX_QUEUE", "80"))
    OCR_MAX_QUEUE_WAIT: float = float(os.getenv("OCR_MAX_QUEUE_WAIT", "30"))  # seconds

    # Tesseract engine
    TESSERACT_CMD: Optional[str] = os.getenv("TESSERACT_CMD")
    OCR_LANGUAGE: str = os.getenv("OCR_LANGUAGE", "eng")
    OCR_ENGINE_MODE: int = int(os.getenv("OCR_ENGINE_MODE", "1"))  # 1 = LSTM only
    OCR_PAGE_SEG_MODE: int = int(os.getenv("OCR_PAGE_SEG_MODE", "3"))

    # Scan service
    OCR_QUICK_PSM: int = int(os.getenv("OCR_QUICK_PSM", "3"))
    OCR_FULL_PSM: int = int(os.getenv("OCR_FULL_PSM", "6"))
    OCR_LOW_CONFIDENCE: float = float(os.getenv("OCR_LOW_CONFIDENCE", "70"))
    OCR_PREFER_INR: bool = _env_bool("OCR_PREFER_INR", "false")

    # Quality tracker
    OCR_RECENT_SAMPLES: int = int(os.getenv("OCR_RECENT_SAMPLES", "10"))

    def __init__(self) -> None:
        """Initialize configuration."""
        os.environ.setdefault("FLASK_ENV", "development")
        self._validate()

    def _validate(self) -> None:
        """Reject values the worker pool cannot run with."""
        if self.OCR_WORKER_COUNT < 1:
            raise ValueError("OCR_WORKER_COUNT must be at least 1")
        if self.OCR_MAX_QUEUE < 1:
            raise ValueError("OCR_MAX_QUEUE must be at least 1")
        if self.OCR_MAX_QUEUE_WAIT <= 0:
            raise ValueError("OCR_MAX_QUEUE_WAIT must be positive")


class DevelopmentConfig(Config):
    """Development configuration."""

    DEBUG: bool = True


class UnitTestConfig(Config):  # noqa: D101
    """Testing configuration."""

    TESTING: bool = True
    DEBUG: bool = True
    OCR_WORKER_COUNT: int = 2
    OCR_MAX_QUEUE: int = 4
    OCR_MAX_QUEUE_WAIT: float = 1.0


class ProductionConfig(Config):
    """Production configuration."""

    DEBUG: bool = False
    TESTING: bool = False


def get_config() -> Config:
    """Get the appropriate configuration based on environment."""
    env = os.getenv("FLASK_ENV", "development").lower()

    configs = {
        "development": DevelopmentConfig,
        "testing": UnitTestConfig,
        "production": ProductionConfig,
    }

    config_class = configs.get(env, DevelopmentConfig)
    return config_class()
