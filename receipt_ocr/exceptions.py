"""Custom exceptions for OCR scheduling.

Only scheduler-level problems are raised as exceptions. Extraction never raises for
bad input; it reports missing values through ``None`` fields and reason enums instead.
"""


class OcrError(Exception):
    """Base exception for OCR job failures."""

    code = "OCR_ERROR"
    status_code = 500
    retryable = False

    def __init__(self, message: str, image_path: str | None = None):
        self.message = message
        self.image_path = image_path
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert exception to dictionary for API responses."""
        return {
            "code": self.code,
            "message": self.message,
            "status": self.status_code,
            "retryable": self.retryable,
            "image_path": self.image_path,
        }


class QueueFullError(OcrError):
    """Raised when the pending queue is at capacity. Callers should back off and retry."""

    code = "QUEUE_FULL"
    status_code = 429
    retryable = True

    def __init__(self, max_queue_depth: int, image_path: str | None = None):
        self.max_queue_depth = max_queue_depth
        super().__init__(f"OCR queue full ({max_queue_depth} jobs waiting), try again later", image_path)


class JobTimedOutError(OcrError):
    """Raised when a job waits longer than its deadline for a free engine."""

    code = "TIMED_OUT"
    status_code = 503
    retryable = True

    def __init__(self, max_wait: float, image_path: str | None = None):
        self.max_wait = max_wait
        super().__init__(f"OCR job timed out in queue after {max_wait:.2f}s", image_path)


class EngineFailureError(OcrError):
    """Raised when the OCR engine itself fails on a job.

    The original engine exception is kept as ``__cause__`` and its text is surfaced verbatim.
    """

    code = "ENGINE_FAILURE"
    status_code = 500
    retryable = False

    def __init__(self, original: BaseException, image_path: str | None = None):
        self.original = original
        super().__init__(str(original) or original.__class__.__name__, image_path)
        self.__cause__ = original


class JobCancelledError(OcrError):
    """Raised for jobs still queued when the pool shuts down."""

    code = "CANCELLED"
    status_code = 503
    retryable = False

    def __init__(self, image_path: str | None = None):
        super().__init__("Server shutting down - OCR cancelled", image_path)


class InvalidJobTransitionError(RuntimeError):
    """Raised when a job is moved to a state its current state cannot reach."""

    def __init__(self, current: object, target: object):
        self.current = current
        self.target = target
        super().__init__(f"Invalid OCR job transition: {current} -> {target}")
