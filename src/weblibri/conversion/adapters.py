import asyncio
import logging
from typing import Callable

import requests

from ..errors import MalformedStatusError, StatusTransportError
from .interfaces import StatusGateway, StatusResult, TimerGateway, TimerHandle

logger = logging.getLogger("weblibri.conversion.adapters")


class HttpStatusClient(StatusGateway):
    """Readiness checks against ``{root}/{id}/status.json``.

    `requests` is blocking, so each call is offloaded to a worker thread and
    the event loop only sees the awaited result. No retries happen here.
    Without an injected session every call goes through `requests.get`, so
    overlapping checks never share a connection pool across threads; a
    caller that passes ``session`` owns its thread safety.
    """

    def __init__(
        self,
        api_root: str,
        *,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self._root = api_root.rstrip("/")
        self._timeout = timeout
        self._http = session

    def status_url(self, item_id: str) -> str:
        return f"{self._root}/{item_id}/status.json"

    async def check_status(self, item_id: str, *, trigger_conversion: bool) -> StatusResult:
        return await asyncio.to_thread(self._fetch, item_id, trigger_conversion)

    def _fetch(self, item_id: str, trigger_conversion: bool) -> StatusResult:
        # the server enqueues unless told otherwise
        params = None if trigger_conversion else {"enqueue": "0"}
        url = self.status_url(item_id)
        logger.debug("status request | item=%s | enqueue=%s", item_id, trigger_conversion)
        try:
            get = self._http.get if self._http is not None else requests.get
            resp = get(url, params=params, timeout=self._timeout)
        except requests.RequestException as e:
            raise StatusTransportError(item_id, f"status request failed: {e}") from e
        if resp.status_code != 200:
            raise StatusTransportError(item_id, f"status error: {resp.status_code} {resp.text}")
        try:
            data = resp.json()
        except ValueError as e:
            raise MalformedStatusError(item_id, "status body is not JSON") from e
        return parse_status(item_id, data)


def parse_status(item_id: str, data: object) -> StatusResult:
    if not isinstance(data, dict):
        raise MalformedStatusError(item_id, f"expected a JSON object, got {type(data).__name__}")
    is_ready = data.get("is_ready")
    if not isinstance(is_ready, bool):
        raise MalformedStatusError(item_id, f"is_ready missing or not a bool: {is_ready!r}")
    uri = data.get("uri")
    return StatusResult(is_ready=is_ready, uri=str(uri) if uri else None)


class AsyncioTimers(TimerGateway):
    """Timer gateway on top of ``loop.call_later``; delays are in milliseconds."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay_ms / 1000.0, callback)
