"""Bounded pool of OCR engine handles with a FIFO job queue.

The free-handle list and the pending queue are the only shared mutable state; both
are only touched while holding ``OcrWorkerPool._lock``. Dispatch runs on two events:
a job was enqueued, or a handle was freed. Futures are resolved outside the lock so
that done-callbacks may enqueue again.
"""

from collections import deque
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
import logging
import threading
import time
from typing import Any

from receipt_ocr.exceptions import EngineFailureError, JobCancelledError, JobTimedOutError, QueueFullError
from receipt_ocr.ocr.engine import BASE_CONFIG, EngineConfig, EngineFactory, EngineHandle, compute_average_confidence
from receipt_ocr.ocr.jobs import JobState, OcrJob
from receipt_ocr.parsing.models import OcrResult, Word

logger = logging.getLogger(__name__)

DEFAULT_WORKER_COUNT = 2
DEFAULT_MAX_QUEUE_DEPTH = 80
DEFAULT_MAX_WAIT = 30.0  # seconds


class OcrWorkerPool:
    """Serializes access to a fixed set of OCR engine handles.

    Each handle runs at most one job at a time. Jobs beyond the number of handles wait
    in a strict FIFO queue bounded by ``max_queue_depth``; a job still queued after
    ``max_wait`` seconds fails with JobTimedOutError. A started job always runs to
    completion or engine failure.
    """

    def __init__(
        self,
        engine_factory: EngineFactory,
        size: int = DEFAULT_WORKER_COUNT,
        max_queue_depth: int = DEFAULT_MAX_QUEUE_DEPTH,
        max_wait: float = DEFAULT_MAX_WAIT,
        base_config: EngineConfig = BASE_CONFIG,
        clock: Callable[[], float] = time.monotonic,
    ):
        if size < 1:
            raise ValueError("size must be at least 1")
        if max_queue_depth < 1:
            raise ValueError("max_queue_depth must be at least 1")
        if max_wait <= 0:
            raise ValueError("max_wait must be positive")
        self.engine_factory = engine_factory
        self.size = size
        self.max_queue_depth = max_queue_depth
        self.max_wait = max_wait
        self.base_config = base_config
        self._clock = clock

        self._lock = threading.Lock()
        self._handles: list[EngineHandle] = []
        self._free: deque[int] = deque()
        self._pending: deque[OcrJob] = deque()
        self._executor: ThreadPoolExecutor | None = None
        self._initialized = False
        self._shutting_down = False

    @property
    def queue_depth(self) -> int:
        with self._lock:
            return len(self._pending)

    @property
    def free_count(self) -> int:
        with self._lock:
            return len(self._free)

    @property
    def is_running(self) -> bool:
        return self._initialized and not self._shutting_down

    def init(self) -> None:
        """Create every engine handle and apply the baseline configuration.

        Raises:
            Exception: Whatever the engine factory raised; handles created so far are terminated
        """
        if self._initialized:
            return
        logger.info(f"Initializing {self.size} OCR engine handles...")
        handles: list[EngineHandle] = []
        try:
            for index in range(self.size):
                handle = self.engine_factory(index)
                handle.set_config(self.base_config)
                handles.append(handle)
        except Exception as e:
            logger.error(f"OCR engine initialization failed: {e}")
            for handle in handles:
                self._terminate_handle(handle)
            raise

        with self._lock:
            self._handles = handles
            self._free.extend(range(len(handles)))
            self._executor = ThreadPoolExecutor(max_workers=self.size, thread_name_prefix="ocr-worker")
            self._initialized = True
        logger.info("OCR worker pool ready")

    def enqueue(
        self,
        image_path: str,
        config: EngineConfig | None = None,
        *,
        max_queue_depth: int | None = None,
        max_wait: float | None = None,
    ) -> "Future[OcrResult]":
        """Submit an image for recognition.

        Args:
            image_path: Path of the image to recognize
            config: Engine parameters for this job; the baseline is restored afterwards
            max_queue_depth: Override of the pool's queue bound for this call
            max_wait: Override of the pool's queue wait for this call, in seconds

        Returns:
            Future resolving to an OcrResult, or failing with QueueFullError,
            JobTimedOutError, EngineFailureError or JobCancelledError

        Raises:
            RuntimeError: If the pool has not been initialized
        """
        depth = max_queue_depth if max_queue_depth is not None else self.max_queue_depth
        wait = max_wait if max_wait is not None else self.max_wait
        now = self._clock()
        job = OcrJob(image_path=image_path, config=config, enqueued_at=now, deadline=now + wait)

        with self._lock:
            if self._shutting_down:
                outcome: tuple[JobState, Exception] | None = (JobState.CANCELLED, JobCancelledError(image_path))
            elif not self._initialized:
                raise RuntimeError("OCR worker pool is not initialized")
            elif len(self._pending) >= depth:
                outcome = (JobState.REJECTED, QueueFullError(depth, image_path))
            else:
                outcome = None
                self._pending.append(job)
                job.timer = threading.Timer(wait, self._expire, args=(job,))
                job.timer.daemon = True
                job.timer.start()
                logger.debug(f"Queued OCR job for {image_path} (depth={len(self._pending)})")
                self._dispatch_locked()

        if outcome is not None:
            state, error = outcome
            logger.warning(f"OCR job for {image_path} not queued: {error}")
            job.fail(state, error)
        return job.future

    def recognize(self, image_path: str, config: EngineConfig | None = None, **opts: Any) -> OcrResult:
        """Enqueue and block until the job resolves, re-raising its error."""
        return self.enqueue(image_path, config, **opts).result()

    def _dispatch_locked(self) -> None:
        executor = self._executor
        if executor is None:
            raise RuntimeError("OCR worker pool is not initialized")
        while not self._shutting_down and self._free and self._pending:
            index = self._free.popleft()
            job = self._pending.popleft()
            if not job.start():
                # Caller cancelled the future while it was queued
                self._free.appendleft(index)
                continue
            logger.debug(f"Dispatching {job.image_path} to OCR engine #{index}")
            executor.submit(self._run, index, job)

    def _run(self, index: int, job: OcrJob) -> None:
        handle = self._handles[index]
        outcome: OcrResult | EngineFailureError
        try:
            if job.config is not None:
                handle.set_config(job.config)
            data = handle.recognize(job.image_path) or {}
            words = [Word.from_mapping(word) for word in data.get("words") or []]
            outcome = OcrResult(
                text=data.get("text") or "",
                confidence=compute_average_confidence(data),
                words=words,
                raw=data,
            )
        except Exception as e:
            logger.warning(f"OCR engine #{index} failed on {job.image_path}: {e}")
            outcome = EngineFailureError(e, job.image_path)
        finally:
            self._release(index, handle)

        if isinstance(outcome, EngineFailureError):
            job.fail(JobState.FAILED, outcome)
        else:
            logger.debug(f"OCR job for {job.image_path} completed (confidence={outcome.confidence:.2f})")
            job.complete(outcome)

    def _release(self, index: int, handle: EngineHandle) -> None:
        """Restore the baseline configuration, return the handle and dispatch again."""
        try:
            handle.set_config(self.base_config)
        except Exception as e:
            logger.warning(f"Failed to restore baseline config on OCR engine #{index}: {e}")
        with self._lock:
            self._free.append(index)
            self._dispatch_locked()

    def _expire(self, job: OcrJob) -> None:
        with self._lock:
            if job.state is not JobState.QUEUED or job not in self._pending:
                return
            self._pending.remove(job)
        waited = self._clock() - job.enqueued_at
        logger.warning(f"OCR job for {job.image_path} timed out after {waited:.2f}s in queue")
        job.fail(JobState.TIMED_OUT, JobTimedOutError(job.deadline - job.enqueued_at, job.image_path))

    def shutdown(self) -> None:
        """Cancel queued jobs, let in-flight jobs finish, then terminate every handle once."""
        with self._lock:
            if self._shutting_down:
                return
            self._shutting_down = True
            drained = list(self._pending)
            self._pending.clear()
            executor = self._executor

        logger.info(f"Shutting down OCR workers ({len(drained)} queued jobs cancelled)...")
        for job in drained:
            job.fail(JobState.CANCELLED, JobCancelledError(job.image_path))

        if executor is not None:
            executor.shutdown(wait=True)
        for handle in self._handles:
            self._terminate_handle(handle)
        logger.info("OCR worker pool terminated")

    @staticmethod
    def _terminate_handle(handle: EngineHandle) -> None:
        try:
            handle.terminate()
        except Exception as e:
            logger.warning(f"Failed to terminate OCR engine: {e}")
