"""Tests for the HTTP status client and the asyncio timer gateway.

``requests`` is replaced with a mocked session or a patched ``requests.get``;
no network access.
"""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock, patch

import pytest
import requests

from weblibri.conversion.adapters import AsyncioTimers, HttpStatusClient, parse_status
from weblibri.conversion.interfaces import StatusResult
from weblibri.errors import MalformedStatusError, StatusCheckError, StatusTransportError


def _response(status_code: int = 200, body: object = None, *, bad_json: bool = False) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status_code
    resp.text = str(body)
    if bad_json:
        resp.json.side_effect = ValueError("Expecting value")
    else:
        resp.json.return_value = body
    return resp


@pytest.fixture()
def http() -> MagicMock:
    return MagicMock(spec=requests.Session)


# ---------------------------------------------------------------------------
# HttpStatusClient
# ---------------------------------------------------------------------------


class TestHttpStatusClient:
    @pytest.mark.asyncio
    async def test_first_check_lets_server_enqueue(self, http: MagicMock) -> None:
        http.get.return_value = _response(body={"is_ready": False, "uri": "/reader/42"})
        client = HttpStatusClient("http://books.local/api/", session=http)

        result = await client.check_status("42", trigger_conversion=True)

        assert result == StatusResult(is_ready=False, uri="/reader/42")
        http.get.assert_called_once_with(
            "http://books.local/api/42/status.json", params=None, timeout=None
        )

    @pytest.mark.asyncio
    async def test_follow_up_check_disables_enqueue(self, http: MagicMock) -> None:
        http.get.return_value = _response(body={"is_ready": True})
        client = HttpStatusClient("http://books.local/api", timeout=5.0, session=http)

        result = await client.check_status("42", trigger_conversion=False)

        assert result.is_ready is True
        assert result.uri is None
        http.get.assert_called_once_with(
            "http://books.local/api/42/status.json", params={"enqueue": "0"}, timeout=5.0
        )

    @pytest.mark.asyncio
    async def test_connection_error_is_transport_failure(self, http: MagicMock) -> None:
        http.get.side_effect = requests.ConnectionError("refused")
        client = HttpStatusClient("http://books.local/api", session=http)

        with pytest.raises(StatusTransportError) as exc_info:
            await client.check_status("42", trigger_conversion=False)

        assert exc_info.value.item_id == "42"
        assert "refused" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_error_status_is_transport_failure(self, http: MagicMock) -> None:
        http.get.return_value = _response(500, "boom")
        client = HttpStatusClient("http://books.local/api", session=http)

        with pytest.raises(StatusTransportError, match="500"):
            await client.check_status("42", trigger_conversion=False)

    @pytest.mark.asyncio
    async def test_non_json_body_is_malformed(self, http: MagicMock) -> None:
        http.get.return_value = _response(bad_json=True)
        client = HttpStatusClient("http://books.local/api", session=http)

        with pytest.raises(MalformedStatusError):
            await client.check_status("42", trigger_conversion=False)

    @pytest.mark.asyncio
    async def test_without_session_each_call_uses_requests_get(self) -> None:
        client = HttpStatusClient("http://books.local/api")

        with patch("weblibri.conversion.adapters.requests.get") as get:
            get.return_value = _response(body={"is_ready": False})
            await asyncio.gather(
                client.check_status("42", trigger_conversion=False),
                client.check_status("43", trigger_conversion=False),
            )

        assert get.call_count == 2
        get.assert_any_call("http://books.local/api/42/status.json", params={"enqueue": "0"}, timeout=None)
        get.assert_any_call("http://books.local/api/43/status.json", params={"enqueue": "0"}, timeout=None)

    def test_status_url(self) -> None:
        client = HttpStatusClient("/api/", session=MagicMock())
        assert client.status_url("7") == "/api/7/status.json"


# ---------------------------------------------------------------------------
# parse_status
# ---------------------------------------------------------------------------


class TestParseStatus:
    def test_ready_with_uri(self) -> None:
        assert parse_status("1", {"is_ready": True, "uri": "/reader/1"}) == StatusResult(True, "/reader/1")

    @pytest.mark.parametrize(
        "body",
        [
            {},
            {"is_ready": "true"},
            {"is_ready": 1},
            {"is_ready": None},
            [{"is_ready": True}],
            "ready",
        ],
    )
    def test_rejects_missing_or_non_bool_flag(self, body: object) -> None:
        with pytest.raises(MalformedStatusError):
            parse_status("1", body)

    def test_malformed_is_a_status_check_error(self) -> None:
        with pytest.raises(StatusCheckError):
            parse_status("1", {})


# ---------------------------------------------------------------------------
# AsyncioTimers
# ---------------------------------------------------------------------------


class TestAsyncioTimers:
    @pytest.mark.asyncio
    async def test_fires_after_delay(self) -> None:
        fired = asyncio.Event()

        AsyncioTimers().call_later(1, fired.set)

        await asyncio.wait_for(fired.wait(), timeout=2)
        assert fired.is_set()

    @pytest.mark.asyncio
    async def test_cancelled_handle_never_fires(self) -> None:
        calls = []

        handle = AsyncioTimers().call_later(1, lambda: calls.append(1))
        handle.cancel()
        await asyncio.sleep(0.05)

        assert calls == []
