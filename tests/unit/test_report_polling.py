"""Unit tests for report status polling"""
import httpx
import pytest

from collection.clients.http import (
    ReportFailedError,
    ReportTimeoutError,
    is_retryable_response,
    is_unauthorized_error,
    poll_until_complete,
)


def _status_error(status, body=None):
    request = httpx.Request("GET", "https://advertising-api.amazon.com/reporting/reports/r1")
    response = httpx.Response(status, request=request, json=body or {})
    return httpx.HTTPStatusError(f"{status}", request=request, response=response)


def _sequence(*steps):
    steps = list(steps)
    calls = []

    async def check():
        calls.append(1)
        step = steps.pop(0)
        if isinstance(step, Exception):
            raise step
        return step

    return check, calls


class TestPollUntilComplete:
    """Test the polling loop"""

    @pytest.mark.asyncio
    async def test_returns_done_document(self):
        check, calls = _sequence({"status": "PENDING"}, {"status": "COMPLETED", "url": "u"})
        doc = await poll_until_complete(check, status_field="status", done_states=["COMPLETED"],
                                        failed_states=["FAILED"], delay_seconds=0)
        assert doc["url"] == "u"
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_failed_status_raises(self):
        check, _ = _sequence({"processingStatus": "FATAL"})
        with pytest.raises(ReportFailedError):
            await poll_until_complete(check, status_field="processingStatus", done_states=["DONE"],
                                      failed_states=["FATAL", "CANCELLED"], delay_seconds=0)

    @pytest.mark.asyncio
    async def test_attempt_budget(self):
        check, calls = _sequence(*[{"status": "PENDING"}] * 3)
        with pytest.raises(ReportTimeoutError):
            await poll_until_complete(check, status_field="status", done_states=["COMPLETED"],
                                      failed_states=[], max_attempts=3, delay_seconds=0)
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_unauthorized_refreshes_and_continues(self):
        """Test a 401 mid-loop refreshes the token and the same loop keeps polling"""
        refreshed = []

        async def on_unauthorized():
            refreshed.append(1)

        check, calls = _sequence({"status": "PENDING"}, _status_error(401), {"status": "COMPLETED"})
        doc = await poll_until_complete(check, status_field="status", done_states=["COMPLETED"],
                                        failed_states=[], on_unauthorized=on_unauthorized, delay_seconds=0)
        assert doc["status"] == "COMPLETED"
        assert refreshed == [1]
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_unauthorized_without_callback_raises(self):
        check, _ = _sequence(_status_error(401))
        with pytest.raises(httpx.HTTPStatusError):
            await poll_until_complete(check, status_field="status", done_states=["COMPLETED"],
                                      failed_states=[], delay_seconds=0)

    @pytest.mark.asyncio
    async def test_transport_error_consumes_attempt(self):
        request = httpx.Request("GET", "https://example.invalid")
        check, calls = _sequence(httpx.ConnectError("reset", request=request), {"status": "COMPLETED"})
        await poll_until_complete(check, status_field="status", done_states=["COMPLETED"],
                                  failed_states=[], delay_seconds=0)
        assert len(calls) == 2


class TestErrorClassification:
    """Test auth and retry detection"""

    def test_401_is_unauthorized(self):
        assert is_unauthorized_error(_status_error(401))

    def test_403_with_token_message_is_unauthorized(self):
        err = _status_error(403, {"errors": [{"code": "AccessDenied", "message": "Access to requested resource is denied."}]})
        assert is_unauthorized_error(err)

    def test_plain_403_is_not_unauthorized(self):
        assert not is_unauthorized_error(_status_error(403, {"errors": [{"code": "QuotaExceeded"}]}))

    def test_message_based_detection(self):
        assert is_unauthorized_error(RuntimeError("Invalid access token supplied"))
        assert not is_unauthorized_error(RuntimeError("report FATAL"))

    def test_retryable(self):
        assert is_retryable_response(_status_error(429))
        assert is_retryable_response(_status_error(503))
        assert not is_retryable_response(_status_error(400))
