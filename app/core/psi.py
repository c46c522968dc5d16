"""PageSpeed Insights runner - audits one URL at a time through the hosted PSI API."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import httpx

from app.core.runner import AuditOutcome
from app.errors.exceptions import BackendAuditError
from app.schemas.common import AuditBackend, AuditMode

logger = logging.getLogger(__name__)

PSI_API_URL = "https://www.googleapis.com/pagespeedonline/v5/runPagespeed"


def _strategy(mode: AuditMode) -> str:
    """PSI only knows mobile and desktop; anything else audits as mobile."""
    return "desktop" if mode == AuditMode.DESKTOP else "mobile"


def _build_params(url: str, mode: AuditMode, api_key: Optional[str]) -> Dict[str, str]:
    params: Dict[str, str] = {
        "url": url,
        "strategy": _strategy(mode),
        "category": "performance",
    }
    # Without a key the API still answers, on the shared anonymous quota
    if api_key:
        params["key"] = api_key
    return params


def _extract_outcome(url: str, data: Dict[str, Any]) -> AuditOutcome:
    """Pull the audits map and performance score out of a PSI response envelope."""
    lighthouse_result = data["lighthouseResult"]
    audits = lighthouse_result["audits"]
    performance = lighthouse_result["categories"]["performance"]["score"]
    if not isinstance(audits, dict):
        raise KeyError("lighthouseResult.audits")

    audits["url"] = url
    return AuditOutcome(metrics=audits, performance=performance)


def _api_error_message(response: httpx.Response) -> str:
    """Status line plus the API's own error.message when the body carries one."""
    status = f"API returned error status {response.status_code}"
    try:
        message = response.json().get("error", {}).get("message")
    except (ValueError, AttributeError):
        message = None
    return f"{status}: {message}" if message else status


class PageSpeedInsightsRunner:
    """Runs audits remotely; the blocked-request patterns cannot be honoured here."""

    backend = AuditBackend.PSI

    def __init__(self, api_key: Optional[str] = None, timeout: float = 120.0):
        self.api_key = api_key
        self.timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    @asynccontextmanager
    async def session(self) -> AsyncIterator[None]:
        """Share one HTTP client across the audits of a batch."""
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            self._client = client
            try:
                yield
            finally:
                self._client = None

    async def audit(
        self, url: str, mode: AuditMode, blocked_patterns: Sequence[str] = ()
    ) -> AuditOutcome:
        """
        Fetch a PSI audit for a single URL.

        Raises:
            BackendAuditError: On transport errors, error statuses or a malformed envelope.
        """
        if self._client is None:
            raise RuntimeError("PageSpeedInsightsRunner.audit() called outside session()")
        if blocked_patterns:
            logger.warning("Blocked request patterns are ignored by the PSI backend")

        params = _build_params(url, mode, self.api_key)

        try:
            response = await self._client.get(PSI_API_URL, params=params)
            response.raise_for_status()
            data = response.json()
            return _extract_outcome(url, data)

        except httpx.TimeoutException as e:
            raise BackendAuditError(url, f"PSI Audit error: request timed out: {e}") from e
        except httpx.HTTPStatusError as e:
            raise BackendAuditError(url, f"PSI Audit error: {_api_error_message(e.response)}") from e
        except httpx.RequestError as e:
            raise BackendAuditError(url, f"PSI Audit error: failed to connect: {e}") from e
        except ValueError as e:
            raise BackendAuditError(url, f"PSI Audit error: unreadable response: {e}") from e
        except (KeyError, TypeError) as e:
            raise BackendAuditError(
                url, f"PSI Audit error: missing expected key in response: {e}"
            ) from e
