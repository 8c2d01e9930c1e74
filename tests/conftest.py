"""Pytest configuration and fixtures for the test suite."""

from collections.abc import Generator
from datetime import date
import os
from pathlib import Path
import sys
import threading
from typing import Any

import pytest
from flask import Flask
from flask.testing import FlaskCliRunner

# Add the project root to the Python path first to avoid import issues
project_root = str(Path(__file__).parent.parent)
sys.path.insert(0, project_root)

# Set test environment variables before the configuration module is imported
os.environ.update(
    {
        "FLASK_ENV": "testing",
        "FLASK_APP": "receipt_ocr",
        "OCR_ENABLED": "true",
    }
)

from receipt_ocr import create_app  # noqa: E402
from receipt_ocr.extensions import get_ocr_context  # noqa: E402
from receipt_ocr.ocr.engine import EngineConfig  # noqa: E402

# Fixed reference day so date extraction is deterministic
TODAY = date(2026, 10, 19)

DEFAULT_ENGINE_DATA: dict[str, Any] = {"text": "TEST STORE\nTOTAL 28.25", "confidence": 91.0}


class FakeEngine:
    """Engine handle double that records every call.

    ``gate`` blocks recognition until it is set, so tests decide exactly when a job
    finishes. ``results`` and ``failures`` are keyed by image path.
    """

    def __init__(
        self,
        index: int,
        results: dict[str, dict[str, Any]] | None = None,
        failures: dict[str, Exception] | None = None,
        gate: threading.Event | None = None,
    ):
        self.index = index
        self.results = results if results is not None else {}
        self.failures = failures if failures is not None else {}
        self.gate = gate
        self.configs: list[EngineConfig] = []
        self.recognized: list[str] = []
        self.started = threading.Event()
        self.terminate_calls = 0

    def set_config(self, config: EngineConfig) -> None:
        self.configs.append(config)

    def recognize(self, image_path: str) -> dict[str, Any]:
        self.recognized.append(image_path)
        self.started.set()
        if self.gate is not None:
            assert self.gate.wait(5), "test gate was never released"
        if image_path in self.failures:
            raise self.failures[image_path]
        return dict(self.results.get(image_path, DEFAULT_ENGINE_DATA))

    def terminate(self) -> None:
        self.terminate_calls += 1


class FakeEngineFactory:
    """Creates FakeEngine handles that share results, failures and gate."""

    def __init__(
        self,
        results: dict[str, dict[str, Any]] | None = None,
        failures: dict[str, Exception] | None = None,
        gate: threading.Event | None = None,
    ):
        self.results = results if results is not None else {}
        self.failures = failures if failures is not None else {}
        self.gate = gate
        self.engines: list[FakeEngine] = []

    def __call__(self, index: int) -> FakeEngine:
        engine = FakeEngine(index, self.results, self.failures, self.gate)
        self.engines.append(engine)
        return engine

    @property
    def recognized(self) -> list[str]:
        return [path for engine in self.engines for path in engine.recognized]


@pytest.fixture
def today() -> date:
    """Reference day used for date extraction."""
    return TODAY


@pytest.fixture
def engine_factory() -> FakeEngineFactory:
    """Fake engine factory with no gate and default results."""
    return FakeEngineFactory()


@pytest.fixture
def app(engine_factory: FakeEngineFactory) -> Generator[Flask, None, None]:
    """Create and configure a new app instance for testing.

    The OCR worker pool runs on fake engine handles and is shut down after each test.
    """
    app = create_app(engine_factory=engine_factory)
    app.config.update(TESTING=True)

    # Push application context
    ctx = app.app_context()
    ctx.push()

    yield app

    get_ocr_context(app).shutdown()
    ctx.pop()


@pytest.fixture
def runner(app: Flask) -> FlaskCliRunner:
    """Create a CLI runner for testing Click commands.

    Args:
        app: The Flask application fixture.

    Returns:
        FlaskCliRunner: The CLI test runner.
    """
    return app.test_cli_runner()


@pytest.fixture
def gate() -> threading.Event:
    """Event that holds every fake recognition until set."""
    return threading.Event()


@pytest.fixture
def gated_factory(gate: threading.Event) -> FakeEngineFactory:
    """Fake engine factory whose handles block on ``gate``."""
    return FakeEngineFactory(gate=gate)


@pytest.fixture
def make_pool(gate: threading.Event) -> Generator[Any, None, None]:
    """Build initialized worker pools that are shut down after the test."""
    from receipt_ocr.ocr.worker_pool import OcrWorkerPool

    pools: list[OcrWorkerPool] = []

    def _make(factory: FakeEngineFactory, **kwargs: Any) -> OcrWorkerPool:
        pool = OcrWorkerPool(factory, **kwargs)
        pool.init()
        pools.append(pool)
        return pool

    yield _make

    # Release any job still held so shutdown can finish
    gate.set()
    for pool in pools:
        pool.shutdown()
