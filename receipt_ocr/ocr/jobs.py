"""OCR job state machine."""

from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
import threading

from receipt_ocr.exceptions import InvalidJobTransitionError
from receipt_ocr.ocr.engine import EngineConfig
from receipt_ocr.parsing.models import OcrResult


class JobState(Enum):
    """Lifecycle states of an OCR job."""

    QUEUED = "queued"
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    REJECTED = "rejected"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self not in (JobState.QUEUED, JobState.STARTED)


ALLOWED_TRANSITIONS: dict[JobState, frozenset[JobState]] = {
    JobState.QUEUED: frozenset(
        {JobState.STARTED, JobState.TIMED_OUT, JobState.REJECTED, JobState.CANCELLED}
    ),
    JobState.STARTED: frozenset({JobState.COMPLETED, JobState.FAILED}),
    JobState.COMPLETED: frozenset(),
    JobState.FAILED: frozenset(),
    JobState.TIMED_OUT: frozenset(),
    JobState.REJECTED: frozenset(),
    JobState.CANCELLED: frozenset(),
}


@dataclass(eq=False)
class OcrJob:
    """One image waiting for or undergoing recognition.

    Entering a terminal state resolves ``future`` exactly once. Callers hold the
    future; the job itself stays private to the pool.
    """

    image_path: str
    config: EngineConfig | None
    enqueued_at: float
    deadline: float
    state: JobState = JobState.QUEUED
    future: "Future[OcrResult]" = field(default_factory=Future)
    timer: threading.Timer | None = None

    def transition(self, target: JobState) -> None:
        """Move to ``target``, raising InvalidJobTransitionError when that is not allowed."""
        if target not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidJobTransitionError(self.state, target)
        self.state = target

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None

    def start(self) -> bool:
        """Mark the job started. Returns False when the caller already cancelled its future."""
        self.cancel_timer()
        if not self.future.set_running_or_notify_cancel():
            self.transition(JobState.CANCELLED)
            return False
        self.transition(JobState.STARTED)
        return True

    def complete(self, result: OcrResult) -> None:
        self.transition(JobState.COMPLETED)
        self.future.set_result(result)

    def fail(self, target: JobState, error: BaseException) -> None:
        """Move to a failing terminal state and reject the future with ``error``."""
        self.transition(target)
        self.cancel_timer()
        if not self.future.cancelled():
            self.future.set_exception(error)
