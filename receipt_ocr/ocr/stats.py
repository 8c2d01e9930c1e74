"""Running quality statistics over OCR confidence scores."""

from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
import logging
import threading
from typing import Any

logger = logging.getLogger(__name__)

RECENT_SAMPLES_KEEP = 10


def quality_label(confidence: float | None) -> str:
    """Map a confidence (0-100) to Excellent, Good, Fair or Poor."""
    conf = float(confidence or 0)
    if conf >= 85:
        return "Excellent"
    if conf >= 70:
        return "Good"
    if conf >= 55:
        return "Fair"
    return "Poor"


@dataclass(frozen=True)
class MaxConfidenceRecord:
    """The highest-confidence recognition seen so far."""

    value: float = 0.0
    filename: str | None = None
    variant: str | None = None
    config: dict[str, Any] | None = None
    timestamp: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "value": self.value,
            "filename": self.filename,
            "variant": self.variant,
            "config": self.config,
            "timestamp": self.timestamp,
        }


class OcrQualityTracker:
    """Aggregates confidence over every recorded job.

    Keeps count, sum, min, max, average and the most recent samples (newest first).
    Thread safe; does not depend on the worker pool.
    """

    def __init__(self, recent_samples: int = RECENT_SAMPLES_KEEP):
        if recent_samples < 1:
            raise ValueError("recent_samples must be at least 1")
        self._lock = threading.Lock()
        self.count = 0
        self.sum = 0.0
        self.min: float | None = None
        self.max: float | None = None
        self._recent: deque[float] = deque(maxlen=recent_samples)
        self._max_record = MaxConfidenceRecord()

    @property
    def avg(self) -> float:
        return self.sum / self.count if self.count else 0.0

    @property
    def max_record(self) -> MaxConfidenceRecord:
        return self._max_record

    def record(self, confidence: float | None) -> None:
        """Add one confidence sample."""
        conf = float(confidence or 0)
        with self._lock:
            self.count += 1
            self.sum += conf
            self.min = conf if self.min is None else min(self.min, conf)
            self.max = conf if self.max is None else max(self.max, conf)
            self._recent.appendleft(conf)

    def record_max(
        self,
        confidence: float | None,
        filename: str | None = None,
        variant: str | None = None,
        config: dict[str, Any] | None = None,
    ) -> bool:
        """Remember this job if it beats the best confidence seen so far.

        Returns:
            True when a new maximum was recorded
        """
        conf = float(confidence or 0)
        with self._lock:
            if conf <= self._max_record.value:
                return False
            self._max_record = MaxConfidenceRecord(
                value=conf,
                filename=filename,
                variant=variant,
                config=dict(config) if config else None,
                timestamp=datetime.now(timezone.utc).isoformat(),
            )
        logger.info(f"New OCR max confidence recorded: {conf:.2f} ({filename}, variant={variant})")
        return True

    def snapshot(self) -> dict[str, Any]:
        """Return a JSON-friendly view of the statistics."""
        with self._lock:
            return {
                "count": self.count,
                "avg": round(self.avg, 2),
                "min": self.min,
                "max": self.max,
                "recent": list(self._recent),
                "max_record": self._max_record.to_dict(),
            }
