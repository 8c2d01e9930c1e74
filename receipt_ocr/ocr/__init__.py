"""OCR scheduling: engine handles, jobs, the worker pool and quality statistics."""

from receipt_ocr.ocr.context import OcrContext
from receipt_ocr.ocr.engine import BASE_CONFIG, EngineConfig, TesseractEngine, compute_average_confidence
from receipt_ocr.ocr.jobs import JobState, OcrJob
from receipt_ocr.ocr.stats import OcrQualityTracker, quality_label
from receipt_ocr.ocr.worker_pool import OcrWorkerPool

__all__ = [
    "BASE_CONFIG",
    "EngineConfig",
    "JobState",
    "OcrContext",
    "OcrJob",
    "OcrQualityTracker",
    "OcrWorkerPool",
    "TesseractEngine",
    "compute_average_confidence",
    "quality_label",
]
