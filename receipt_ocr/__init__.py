import logging

from dotenv import load_dotenv
from flask import Flask

from config import get_config
from receipt_ocr.ocr.engine import EngineFactory

# Load environment variables from .env file
load_dotenv()

# Initialize logger
logger = logging.getLogger(__name__)

__all__ = ["create_app"]


def create_app(engine_factory: EngineFactory | None = None) -> Flask:
    """Create and configure the Flask application.

    The application is the process entry point that owns the OCR context: the worker
    pool is started here and shut down at interpreter exit.

    Args:
        engine_factory: Builds one engine handle per pool slot. Defaults to Tesseract.

    Returns:
        Flask: The configured Flask application instance.
    """
    # Get the appropriate configuration based on FLASK_ENV
    config = get_config()

    # Create the Flask application
    app = Flask(__name__)

    # Load configuration from config object
    app.config.from_object(config)

    # Configure app components
    _configure_logging(app)
    _initialize_components(app, engine_factory)
    _initialize_cli(app)

    return app


def _configure_logging(app: Flask) -> None:
    """Configure application logging."""
    log_level = logging.DEBUG if app.debug else logging.INFO
    logger.setLevel(log_level)

    # Log app configuration
    logger.debug("Application configuration:")
    logger.debug(f"- DEBUG: {app.debug}")
    logger.debug(f"- OCR_ENABLED: {app.config.get('OCR_ENABLED')}")
    logger.debug(f"- OCR_WORKER_COUNT: {app.config.get('OCR_WORKER_COUNT')}")


def _initialize_components(app: Flask, engine_factory: EngineFactory | None) -> None:
    """Initialize core application components."""
    from .extensions import init_app as init_extensions

    init_extensions(app, engine_factory=engine_factory)


def _initialize_cli(app: Flask) -> None:
    """Initialize CLI commands."""
    from .cli import register_commands

    register_commands(app)
    logger.debug("Initialized CLI commands")
