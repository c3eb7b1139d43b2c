"""Shared pytest fixtures and fakes for the weblibri test suite."""

from __future__ import annotations

import asyncio
from typing import Callable

import pytest

from weblibri.conversion.interfaces import StatusResult
from weblibri.conversion.service import SessionLifecycle

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class ManualTimer:
    def __init__(self, delay_ms: float, callback: Callable[[], None]) -> None:
        self.delay_ms = delay_ms
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualTimers:
    """Timer gateway that only fires when the test says so."""

    def __init__(self) -> None:
        self.timers: list[ManualTimer] = []

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(delay_ms, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[ManualTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    @property
    def delays(self) -> list[float]:
        return [t.delay_ms for t in self.timers]

    def fire_next(self) -> ManualTimer:
        timer = self.pending[0]
        timer.fired = True
        timer.callback()
        return timer


class ScriptedStatus:
    """Status gateway answering from a script of booleans or exceptions.

    Set ``gate`` to a future to hold every following check until the test
    resolves it.
    """

    def __init__(self, answers: list[object] | None = None) -> None:
        self.answers = list(answers or [])
        self.calls: list[tuple[str, bool]] = []
        self.gate: asyncio.Future | None = None

    async def check_status(self, item_id: str, *, trigger_conversion: bool) -> StatusResult:
        self.calls.append((item_id, trigger_conversion))
        if self.gate is not None:
            await self.gate
        answer = self.answers.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return StatusResult(is_ready=bool(answer), uri=f"/reader/{item_id}")


class RecordingDialog:
    def __init__(self, item_id: str) -> None:
        self.item_id = item_id
        self.shown = 0
        self.handlers: list[Callable[[], None]] = []

    def show(self) -> None:
        self.shown += 1

    def on_dismiss(self, callback: Callable[[], None]) -> None:
        self.handlers.append(callback)

    def dismiss(self) -> None:
        for cb in self.handlers:
            cb()


class RecordingNavigator:
    def __init__(self) -> None:
        self.urls: list[str] = []

    def navigate(self, url: str) -> None:
        self.urls.append(url)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def timers() -> ManualTimers:
    return ManualTimers()


@pytest.fixture()
def status() -> ScriptedStatus:
    return ScriptedStatus()


@pytest.fixture()
def navigator() -> RecordingNavigator:
    return RecordingNavigator()


@pytest.fixture()
def dialogs() -> list[RecordingDialog]:
    """Every dialog the lifecycle opened, in order."""
    return []


@pytest.fixture()
def make_lifecycle(
    status: ScriptedStatus,
    timers: ManualTimers,
    dialogs: list[RecordingDialog],
    navigator: RecordingNavigator,
) -> Callable[..., SessionLifecycle]:
    """Build a lifecycle over the shared fakes; keyword arguments override."""

    def make_dialog(item_id: str) -> RecordingDialog:
        dialog = RecordingDialog(item_id)
        dialogs.append(dialog)
        return dialog

    def factory(**kwargs: object) -> SessionLifecycle:
        kwargs.setdefault("app_prefix", "/lib")
        gateway = kwargs.pop("timers", timers)
        return SessionLifecycle(status, gateway, make_dialog, navigator, **kwargs)  # type: ignore[arg-type]

    return factory


@pytest.fixture()
def lifecycle(make_lifecycle: Callable[..., SessionLifecycle]) -> SessionLifecycle:
    return make_lifecycle()
