"""Application Flask extensions.

This module binds the OCR context to a Flask application.
"""

import atexit
import logging

from flask import Flask, current_app

from receipt_ocr.ocr.context import OcrContext
from receipt_ocr.ocr.engine import EngineFactory

logger = logging.getLogger(__name__)

EXTENSION_KEY = "receipt_ocr"


class OcrExtension:
    """Flask extension owning one OcrContext per application."""

    def __init__(self, app: Flask | None = None, engine_factory: EngineFactory | None = None):
        self.engine_factory = engine_factory
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask, engine_factory: EngineFactory | None = None) -> OcrContext:
        """Build and start the OCR context from ``app.config``.

        The worker pool is only started when ``OCR_ENABLED`` is true. Shutdown is
        registered with ``atexit`` so queued jobs are cancelled and engines terminated
        when the process exits.
        """
        context = OcrContext(app.config, engine_factory=engine_factory or self.engine_factory)
        context.init()
        app.extensions[EXTENSION_KEY] = context
        atexit.register(context.shutdown)
        logger.debug(
            f"OCR context ready (enabled={context.enabled}, workers={context.pool.size}, "
            f"max_queue={context.pool.max_queue_depth}, max_wait={context.pool.max_wait}s)"
        )
        return context

    @property
    def context(self) -> OcrContext:
        """OCR context of the current application."""
        return get_ocr_context()


def get_ocr_context(app: Flask | None = None) -> OcrContext:
    """Return the OCR context bound to ``app`` (or the current app)."""
    app = app or current_app
    try:
        return app.extensions[EXTENSION_KEY]
    except KeyError:
        raise RuntimeError("OCR extension is not initialized on this application") from None


# Initialize the OCR extension
ocr = OcrExtension()


def init_app(app: Flask, engine_factory: EngineFactory | None = None) -> None:
    """Initialize all extensions with the Flask app."""
    ocr.init_app(app, engine_factory=engine_factory)
