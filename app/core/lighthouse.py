"""Lighthouse runner - audits one URL at a time against a Playwright-managed Chromium."""

from __future__ import annotations

import asyncio
import json
import logging
import shutil
import subprocess
import tempfile
from collections.abc import AsyncIterator, Sequence
from contextlib import AsyncExitStack, asynccontextmanager
from pathlib import Path
from typing import Any

from app.core.runner import AuditOutcome
from app.errors.exceptions import (
    AuditError,
    BackendAuditError,
    LighthouseNotFoundError,
    PlaywrightBrowsersNotInstalledError,
)
from app.schemas.common import AuditBackend, AuditMode
from app.services.browser import BrowserSession, launch_browser

logger = logging.getLogger(__name__)


def _check_lighthouse_available() -> None:
    """
    Check if Lighthouse CLI is available in PATH.

    Raises:
        LighthouseNotFoundError: If lighthouse is not installed or not in PATH.
    """
    if shutil.which("lighthouse") is None:
        raise LighthouseNotFoundError(
            "Lighthouse CLI not found in PATH. Install it with: npm install -g lighthouse"
        )


# Lighthouse's own desktop and mobile (Moto G Power) screen emulation
DESKTOP_EMULATION = [
    "--form-factor=desktop",
    "--screenEmulation.mobile=false",
    "--screenEmulation.width=1350",
    "--screenEmulation.height=940",
    "--screenEmulation.deviceScaleFactor=1",
]
MOBILE_EMULATION = [
    "--form-factor=mobile",
    "--screenEmulation.mobile=true",
    "--screenEmulation.width=412",
    "--screenEmulation.height=823",
    "--screenEmulation.deviceScaleFactor=1.75",
]


def _profile_flags(mode: AuditMode, config_path: Path | None) -> list[str]:
    """Audit profile for a mode; mirrors what PageSpeed Insights runs."""
    if config_path is not None:
        # --preset is ignored next to --config-path, so the device is forced with flags
        emulation = DESKTOP_EMULATION if mode == AuditMode.DESKTOP else MOBILE_EMULATION
        return [f"--config-path={config_path}", *emulation]
    if mode == AuditMode.DESKTOP:
        return ["--preset=desktop", "--only-categories=performance"]
    return ["--form-factor=mobile", "--only-categories=performance"]


def _build_lighthouse_command(
    url: str,
    mode: AuditMode,
    output_path: Path,
    port: int,
    blocked_patterns: Sequence[str] = (),
    config_path: Path | None = None,
) -> list[str]:
    """Build the Lighthouse CLI command."""
    command = [
        "lighthouse",
        url,
        "--output=json",
        f"--output-path={output_path}",
        "--quiet",
        f"--port={port}",
        *_profile_flags(mode, config_path),
    ]
    command.extend(f"--blocked-url-patterns={pattern}" for pattern in blocked_patterns)
    return command


def _run_lighthouse_sync(command: list[str], timeout: float) -> None:
    """
    Run the Lighthouse CLI synchronously.

    Raises:
        subprocess.TimeoutExpired: If the audit times out.
        LighthouseNotFoundError: If the lighthouse executable cannot be started.
        RuntimeError: If lighthouse returns a non-zero exit code.
    """
    try:
        result = subprocess.run(
            command,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise LighthouseNotFoundError(f"Lighthouse CLI not found: {e.filename or command[0]}") from e

    if result.returncode != 0:
        raise RuntimeError(result.stderr.strip() or f"exit code {result.returncode}")


def _extract_outcome(url: str, lh_json: dict[str, Any]) -> AuditOutcome:
    """Pull the audits map and performance score out of a Lighthouse result."""
    audits = lh_json["audits"]
    performance = lh_json["categories"]["performance"]["score"]
    if not isinstance(audits, dict):
        raise KeyError("audits")

    audits["url"] = url
    return AuditOutcome(metrics=audits, performance=performance)


class LighthouseRunner:
    """
    Runs Lighthouse audits through the CLI, attached to one Chromium per batch.

    Every audit gets a fresh page so no state leaks between URLs.
    """

    backend = AuditBackend.LIGHTHOUSE

    def __init__(
        self,
        base_port: int = 9222,
        timeout: float = 300.0,
        launch_timeout: int = 30,
        config_path: Path | None = None,
    ):
        self.base_port = base_port
        self.timeout = timeout
        self.launch_timeout = launch_timeout
        self.config_path = config_path
        self._session: BrowserSession | None = None

    @asynccontextmanager
    async def session(self) -> AsyncIterator[None]:
        """Launch the browser the audits of one batch share."""
        async with AsyncExitStack() as stack:
            try:
                _check_lighthouse_available()
                self._session = await stack.enter_async_context(
                    launch_browser(self.base_port, self.launch_timeout)
                )
            except (LighthouseNotFoundError, PlaywrightBrowsersNotInstalledError) as e:
                raise AuditError(f"LH Audit error: {e}") from e
            except TimeoutError as e:
                raise AuditError(
                    f"LH Audit error: browser did not start within {self.launch_timeout}s"
                ) from e

            try:
                yield
            finally:
                self._session = None

    async def audit(
        self, url: str, mode: AuditMode, blocked_patterns: Sequence[str] = ()
    ) -> AuditOutcome:
        """
        Run a Lighthouse performance audit for a single URL.

        Raises:
            BackendAuditError: On timeout, process failure or unusable output.
        """
        if self._session is None:
            raise RuntimeError("LighthouseRunner.audit() called outside session()")

        async with self._session.fresh_page():
            port = self._session.port
            with tempfile.TemporaryDirectory() as tmpdir:
                output_path = Path(tmpdir) / f"lighthouse-{mode.value}.json"
                command = _build_lighthouse_command(
                    url, mode, output_path, port, blocked_patterns, self.config_path
                )
                try:
                    await asyncio.wait_for(
                        asyncio.to_thread(_run_lighthouse_sync, command, self.timeout),
                        timeout=self.timeout + 5,  # Extra buffer for thread overhead
                    )
                    with open(output_path) as f:
                        lh_json = json.load(f)
                    return _extract_outcome(url, lh_json)

                except TimeoutError:
                    raise BackendAuditError(url, f"LH Audit error: timed out after {self.timeout}s")
                except subprocess.TimeoutExpired as e:
                    raise BackendAuditError(url, f"LH Audit error: timed out after {e.timeout}s")
                except LighthouseNotFoundError as e:
                    raise BackendAuditError(url, f"LH Audit error: {e}") from e
                except RuntimeError as e:
                    raise BackendAuditError(url, f"LH Audit error: {e}") from e
                except json.JSONDecodeError as e:
                    raise BackendAuditError(url, f"LH Audit error: unreadable output: {e}") from e
                except FileNotFoundError:
                    raise BackendAuditError(url, "LH Audit error: output file not found")
                except (KeyError, TypeError) as e:
                    raise BackendAuditError(
                        url, f"LH Audit error: missing expected key in output: {e}"
                    ) from e
                except OSError as e:
                    raise BackendAuditError(url, f"LH Audit error: {e}") from e
