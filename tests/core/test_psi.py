"""Tests for the PageSpeed Insights runner."""

import httpx
import pytest

from app.core.psi import PSI_API_URL, PageSpeedInsightsRunner, _build_params  # type: ignore
from app.errors.exceptions import BackendAuditError
from app.schemas.common import AuditMode


def _envelope(audits: dict, score: float = 0.64) -> dict:
    return {
        "id": "https://a.com/",
        "lighthouseResult": {"audits": audits, "categories": {"performance": {"score": score}}},
    }


def _runner_with(handler, api_key: str | None = None) -> PageSpeedInsightsRunner:
    runner = PageSpeedInsightsRunner(api_key=api_key)
    runner._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))  # type: ignore
    return runner


class TestParams:
    """Test request parameters."""

    def test_desktop_strategy_with_key(self):
        params = _build_params("https://a.com", AuditMode.DESKTOP, "secret")
        assert params["strategy"] == "desktop"
        assert params["key"] == "secret"
        assert params["category"] == "performance"

    def test_mobile_without_key(self):
        params = _build_params("https://a.com", AuditMode.MOBILE, None)
        assert params["strategy"] == "mobile"
        assert "key" not in params


class TestAudit:
    """Test PSI responses end to end through a mock transport."""

    @pytest.mark.asyncio
    async def test_success(self, sample_audits):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=_envelope(sample_audits))

        runner = _runner_with(handler, api_key="secret")
        outcome = await runner.audit("https://a.com", AuditMode.DESKTOP)

        assert outcome.performance == 0.64
        assert outcome.metrics["url"] == "https://a.com"
        assert outcome.metrics["interactive"]["numericValue"] == 4200.0
        assert str(seen[0].url).startswith(PSI_API_URL)
        assert seen[0].url.params["strategy"] == "desktop"
        assert seen[0].url.params["key"] == "secret"

    @pytest.mark.asyncio
    async def test_error_status(self):
        runner = _runner_with(lambda request: httpx.Response(500, json={"error": {}}))
        with pytest.raises(BackendAuditError, match="error status 500") as exc_info:
            await runner.audit("https://a.com", AuditMode.MOBILE)
        assert exc_info.value.url == "https://a.com"

    @pytest.mark.asyncio
    async def test_malformed_envelope(self):
        runner = _runner_with(lambda request: httpx.Response(200, json={"id": "x"}))
        with pytest.raises(BackendAuditError, match="missing expected key"):
            await runner.audit("https://a.com", AuditMode.MOBILE)

    @pytest.mark.asyncio
    async def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        runner = _runner_with(handler)
        with pytest.raises(BackendAuditError, match="timed out"):
            await runner.audit("https://a.com", AuditMode.MOBILE)

    @pytest.mark.asyncio
    async def test_session_manages_client(self):
        runner = PageSpeedInsightsRunner()
        async with runner.session():
            assert runner._client is not None  # type: ignore
        assert runner._client is None  # type: ignore

    @pytest.mark.asyncio
    async def test_audit_outside_session(self):
        with pytest.raises(RuntimeError):
            await PageSpeedInsightsRunner().audit("https://a.com", AuditMode.MOBILE)

    @pytest.mark.asyncio
    async def test_error_status_carries_api_message(self):
        body = {"error": {"code": 500, "message": "Lighthouse returned error: FAILED_DOCUMENT_REQUEST"}}
        runner = _runner_with(lambda request: httpx.Response(500, json=body))

        with pytest.raises(BackendAuditError) as exc_info:
            await runner.audit("https://a.com", AuditMode.MOBILE)

        assert exc_info.value.message == (
            "PSI Audit error: API returned error status 500: "
            "Lighthouse returned error: FAILED_DOCUMENT_REQUEST"
        )

    @pytest.mark.asyncio
    async def test_error_status_with_non_json_body(self):
        runner = _runner_with(lambda request: httpx.Response(502, text="<html>Bad Gateway</html>"))

        with pytest.raises(BackendAuditError) as exc_info:
            await runner.audit("https://a.com", AuditMode.MOBILE)

        assert exc_info.value.message == "PSI Audit error: API returned error status 502"
