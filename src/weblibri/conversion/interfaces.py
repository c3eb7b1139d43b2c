from dataclasses import dataclass
from typing import Callable, Protocol


@dataclass(frozen=True)
class StatusResult:
    is_ready: bool
    uri: str | None = None


class StatusGateway(Protocol):
    async def check_status(self, item_id: str, *, trigger_conversion: bool) -> StatusResult:
        """Ask the server once whether the item is readable.

        `trigger_conversion` asks the server to enqueue the conversion job
        if it is not already running. Raises StatusCheckError on failure.
        """


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class TimerGateway(Protocol):
    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle:
        ...


class ProgressDialog(Protocol):
    def show(self) -> None:
        ...

    def on_dismiss(self, callback: Callable[[], None]) -> None:
        ...


class Navigator(Protocol):
    def navigate(self, url: str) -> None:
        ...
