"""Pytest fixtures for audit service tests."""

import copy
from collections.abc import AsyncIterator, Generator, Sequence
from contextlib import asynccontextmanager
from typing import Any

import pytest

from app.config.settings import reset_config
from app.core.runner import AuditOutcome
from app.errors.exceptions import BackendAuditError
from app.schemas.common import AuditBackend, AuditMode

CONFIG_ENV_VARS = [
    "AUDIT_BACKEND",
    "GOOGLE_INSIGHTS_KEY",
    "GOOGLE_CLOUD_PROJECT",
    "CLOUD_TASKS_QUEUE",
    "CLOUD_TASKS_QUEUE_LOCATION",
    "SERVICE_URL",
    "BQ_DATASET",
    "BQ_TABLE",
    "BQ_LOCATION",
    "LIGHTHOUSE_TIMEOUT",
    "LIGHTHOUSE_CONFIG_PATH",
    "PSI_TIMEOUT",
    "CHROME_DEBUGGING_PORT",
    "BROWSER_LAUNCH_TIMEOUT",
    "TASK_CHUNK_SIZE",
    "TASK_SCHEDULE_STEP_SECONDS",
    "STORAGE_WRITE_ATTEMPTS",
]


@pytest.fixture(autouse=True, scope="function")
def reset_settings(monkeypatch: pytest.MonkeyPatch) -> Generator[None]:
    """Start every test from a clean environment and config singleton."""
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_config()

    yield

    reset_config()


@pytest.fixture
def sample_audits() -> dict[str, Any]:
    """Trimmed Lighthouse audits map, missing server-response-time on purpose."""
    return {
        "first-contentful-paint": {"id": "first-contentful-paint", "numericValue": 1200.5, "score": 0.93},
        "largest-contentful-paint": {"id": "largest-contentful-paint", "numericValue": 2500.0, "score": 0.8},
        "speed-index": {"id": "speed-index", "numericValue": 3100.2, "score": 0.75},
        "total-blocking-time": {"id": "total-blocking-time", "numericValue": 150.0, "score": 0.95},
        "cumulative-layout-shift": {"id": "cumulative-layout-shift", "numericValue": 0.05, "score": 0.99},
        "interactive": {"id": "interactive", "numericValue": 4200.0, "score": 0.7},
    }


class FakeRunner:
    """In-memory audit backend recording every call it receives."""

    def __init__(
        self,
        audits: dict[str, Any],
        performance: float = 0.87,
        fail_on: Sequence[str] = (),
        backend: AuditBackend = AuditBackend.LIGHTHOUSE,
    ):
        self.audits = audits
        self.performance = performance
        self.fail_on = set(fail_on)
        self.backend = backend
        self.calls: list[tuple[str, AuditMode, tuple[str, ...]]] = []
        self.sessions_opened = 0
        self.sessions_closed = 0

    @asynccontextmanager
    async def session(self) -> AsyncIterator[None]:
        self.sessions_opened += 1
        try:
            yield
        finally:
            self.sessions_closed += 1

    async def audit(
        self, url: str, mode: AuditMode, blocked_patterns: Sequence[str] = ()
    ) -> AuditOutcome:
        self.calls.append((url, mode, tuple(blocked_patterns)))
        if url in self.fail_on:
            raise BackendAuditError(url, "LH Audit error: navigation timed out")
        metrics = copy.deepcopy(self.audits)
        metrics["url"] = url
        return AuditOutcome(metrics=metrics, performance=self.performance)


@pytest.fixture
def fake_runner(sample_audits: dict[str, Any]):
    """Factory for FakeRunner instances preloaded with sample_audits."""

    def _make(**kwargs: Any) -> FakeRunner:
        return FakeRunner(sample_audits, **kwargs)

    return _make
