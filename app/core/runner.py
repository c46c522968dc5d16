"""Common contract for single-URL audit backends."""

from __future__ import annotations

from collections.abc import Sequence
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from app.schemas.common import AuditBackend, AuditMode

if TYPE_CHECKING:
    from app.config.settings import Config


@dataclass
class AuditOutcome:
    """Normalized result of one (URL, mode) audit."""

    metrics: dict[str, Any]  # Lighthouse audits keyed by audit id, tagged with "url"
    performance: float | None


class AuditRunner(Protocol):
    """
    A backend able to audit one URL at a time.

    session() holds whatever per-batch resources the backend needs (a browser,
    an HTTP client) and must be entered before audit() is called.
    """

    backend: AuditBackend

    def session(self) -> AbstractAsyncContextManager[None]: ...

    async def audit(
        self, url: str, mode: AuditMode, blocked_patterns: Sequence[str] = ()
    ) -> AuditOutcome: ...


def build_runner(config: Config) -> AuditRunner:
    """Create the runner for the configured backend."""
    from app.core.lighthouse import LighthouseRunner
    from app.core.psi import PageSpeedInsightsRunner

    if config.audit_backend is AuditBackend.PSI:
        return PageSpeedInsightsRunner(api_key=config.insights_api_key, timeout=config.psi_timeout)
    return LighthouseRunner(
        base_port=config.chrome_debugging_port,
        timeout=config.lighthouse_timeout,
        launch_timeout=config.browser_launch_timeout,
        config_path=config.lighthouse_config_path,
    )
