"""Injected OCR context: one owner for the worker pool, quality tracker and parser."""

from collections.abc import Mapping
import logging
from typing import Any

from receipt_ocr.ocr.engine import EngineConfig, EngineFactory, tesseract_engine_factory
from receipt_ocr.ocr.stats import OcrQualityTracker
from receipt_ocr.ocr.worker_pool import OcrWorkerPool
from receipt_ocr.parsing.receipt_parser import ReceiptParser

logger = logging.getLogger(__name__)


class OcrContext:
    """Lifecycle owner for the OCR components.

    Built from a configuration mapping (a Flask ``app.config`` or a plain dict), started
    with :meth:`init` and stopped with :meth:`shutdown` by the process entry point.
    Components receive the context explicitly instead of reaching for module globals.
    """

    def __init__(self, config: Mapping[str, Any] | None = None, engine_factory: EngineFactory | None = None):
        config = config or {}
        self.settings = dict(config)
        self.enabled = bool(config.get("OCR_ENABLED", True))
        self.base_config = EngineConfig(page_seg_mode=int(config.get("OCR_PAGE_SEG_MODE", 3)))

        if engine_factory is None:
            engine_factory = tesseract_engine_factory(
                language=config.get("OCR_LANGUAGE", "eng"),
                engine_mode=int(config.get("OCR_ENGINE_MODE", 1)),
                tesseract_cmd=config.get("TESSERACT_CMD"),
            )
        self.pool = OcrWorkerPool(
            engine_factory,
            size=int(config.get("OCR_WORKER_COUNT", 2)),
            max_queue_depth=int(config.get("OCR_MAX_QUEUE", 80)),
            max_wait=float(config.get("OCR_MAX_QUEUE_WAIT", 30.0)),
            base_config=self.base_config,
        )
        self.tracker = OcrQualityTracker(int(config.get("OCR_RECENT_SAMPLES", 10)))
        self.parser = ReceiptParser()
        self._started = False

    def init(self) -> None:
        if self._started:
            return
        if self.enabled:
            self.pool.init()
        else:
            logger.info("OCR disabled, worker pool not started")
        self._started = True

    def shutdown(self) -> None:
        if not self._started:
            return
        self.pool.shutdown()
        self._started = False

    def __enter__(self) -> "OcrContext":
        self.init()
        return self

    def __exit__(self, *exc: object) -> None:
        self.shutdown()
