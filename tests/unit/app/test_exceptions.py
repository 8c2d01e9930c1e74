"""Tests for OCR exceptions."""

from receipt_ocr.exceptions import (
    EngineFailureError,
    InvalidJobTransitionError,
    JobCancelledError,
    JobTimedOutError,
    OcrError,
    QueueFullError,
)
from receipt_ocr.ocr.jobs import JobState


def test_queue_full_to_dict() -> None:
    """Queue-full errors are retryable with a 429 status."""
    error = QueueFullError(80, "receipt.png")
    assert isinstance(error, OcrError)
    assert error.to_dict() == {
        "code": "QUEUE_FULL",
        "message": "OCR queue full (80 jobs waiting), try again later",
        "status": 429,
        "retryable": True,
        "image_path": "receipt.png",
    }


def test_timed_out_message() -> None:
    """The wait is reported with two decimals."""
    error = JobTimedOutError(30, "receipt.png")
    assert error.message == "OCR job timed out in queue after 30.00s"
    assert error.status_code == 503
    assert error.retryable


def test_engine_failure_keeps_cause() -> None:
    """The engine's own error is surfaced verbatim and chained."""
    original = OSError("tesseract is not installed")
    error = EngineFailureError(original)
    assert str(error) == "tesseract is not installed"
    assert error.__cause__ is original
    assert error.code == "ENGINE_FAILURE"
    assert not error.retryable


def test_engine_failure_without_message() -> None:
    """An empty engine error falls back to its class name."""
    assert EngineFailureError(TimeoutError()).message == "TimeoutError"


def test_cancelled() -> None:
    """Shutdown cancellation is not retryable."""
    error = JobCancelledError("receipt.png")
    assert error.to_dict()["code"] == "CANCELLED"
    assert not error.retryable


def test_invalid_transition() -> None:
    """Transition errors name both states."""
    error = InvalidJobTransitionError(JobState.COMPLETED, JobState.STARTED)
    assert isinstance(error, RuntimeError)
    assert "JobState.COMPLETED -> JobState.STARTED" in str(error)
