import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable

from ..catalog import viewer_url
from ..errors import StatusCheckError
from .interfaces import Navigator, ProgressDialog, StatusGateway, TimerGateway, TimerHandle

logger = logging.getLogger("weblibri.conversion.service")

INITIAL_DELAY_MS = 1000.0
BACKOFF_FACTOR = 1.5


class SessionState:
    CHECKING = "checking"
    WAITING = "waiting"
    READY = "ready"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset({SessionState.READY, SessionState.CANCELLED})


class CancellationToken:
    """Set once when a session is cancelled; checked by every continuation."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


@dataclass
class ConversionSession:
    item_id: str
    next_delay: float = INITIAL_DELAY_MS
    state: str = SessionState.CHECKING
    pending_timer: TimerHandle | None = None
    token: CancellationToken = field(default_factory=CancellationToken)
    polls: int = 0
    delays: list[float] = field(default_factory=list)
    error: StatusCheckError | None = None
    _finished: asyncio.Event = field(default_factory=asyncio.Event, init=False, repr=False, compare=False)

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def finish(self, state: str) -> None:
        # pending_timer must already be cleared
        self.state = state
        self._finished.set()

    async def wait(self) -> str:
        """Block until the session is ready or cancelled and return that state.

        A stalled session (failed check, no timer) never finishes on its own;
        only cancellation releases it.
        """
        await self._finished.wait()
        return self.state


class PollScheduler:
    """Adaptive backoff loop for one ConversionSession.

    ``start`` arms the first wait. Every timer that fires issues one check
    with ``trigger_conversion=False``; a not-ready answer grows the delay by
    ``backoff_factor`` and re-arms, a ready answer finishes the session and
    calls ``on_ready``. There is no cap on the delay and no attempt limit.

    A failed check leaves the session in CHECKING with no timer armed. The
    error is kept on the session and handed to ``on_error``; nothing retries.
    """

    def __init__(
        self,
        session: ConversionSession,
        status: StatusGateway,
        timers: TimerGateway,
        *,
        backoff_factor: float = BACKOFF_FACTOR,
        on_ready: Callable[[ConversionSession], None] | None = None,
        on_error: Callable[[ConversionSession, StatusCheckError], None] | None = None,
    ) -> None:
        self._session = session
        self._status = status
        self._timers = timers
        self._factor = backoff_factor
        self._on_ready = on_ready
        self._on_error = on_error
        self._inflight: asyncio.Task | None = None

    @property
    def session(self) -> ConversionSession:
        return self._session

    @property
    def inflight(self) -> "asyncio.Task | None":
        """The task running the current check, if one has been issued."""
        return self._inflight

    def start(self) -> None:
        """Arm the first wait. Only a fresh session (CHECKING, no timer) starts."""
        s = self._session
        if s.state != SessionState.CHECKING or s.pending_timer is not None or self._inflight is not None:
            return
        self._arm()

    def cancel(self) -> bool:
        """Cancel the session. Returns False when it was already finished."""
        s = self._session
        if s.is_terminal:
            return False
        if s.pending_timer is not None:
            s.pending_timer.cancel()
            s.pending_timer = None
        s.token.cancel()
        s.finish(SessionState.CANCELLED)
        logger.info("poll cancelled | item=%s | polls=%d", s.item_id, s.polls)
        return True

    def _arm(self) -> None:
        s = self._session
        if s.pending_timer is not None:
            s.pending_timer.cancel()
        s.state = SessionState.WAITING
        s.delays.append(s.next_delay)
        s.pending_timer = self._timers.call_later(s.next_delay, self._fire)
        logger.debug("poll scheduled | item=%s | delay_ms=%.0f", s.item_id, s.next_delay)

    def _fire(self) -> None:
        s = self._session
        s.pending_timer = None
        if s.token.cancelled or s.state != SessionState.WAITING:
            return
        s.state = SessionState.CHECKING
        self._inflight = asyncio.ensure_future(self._check(s.token))
        self._inflight.add_done_callback(self._check_done)

    def _check_done(self, task: "asyncio.Task") -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "poll check crashed | item=%s | state=%s", self._session.item_id, self._session.state, exc_info=exc
            )

    async def _check(self, token: CancellationToken) -> None:
        s = self._session
        try:
            result = await self._status.check_status(s.item_id, trigger_conversion=False)
        except StatusCheckError as e:
            if token.cancelled:
                logger.debug("late failure discarded | item=%s | error=%s", s.item_id, e)
                return
            s.error = e
            logger.warning("poll stalled | item=%s | error=%s", s.item_id, e)
            if self._on_error is not None:
                self._on_error(s, e)
            return

        if token.cancelled:
            logger.debug("late status discarded | item=%s | is_ready=%s", s.item_id, result.is_ready)
            return

        s.polls += 1
        s.error = None
        if result.is_ready:
            s.finish(SessionState.READY)
            logger.info("conversion ready | item=%s | polls=%d", s.item_id, s.polls)
            if self._on_ready is not None:
                self._on_ready(s)
            return

        s.next_delay *= self._factor
        self._arm()


class SessionLifecycle:
    """Ties polling sessions to progress dialogs, one session per item.

    ``open_item`` runs the first check itself (asking the server to start
    converting), navigates straight to the reader when the book is already
    readable and otherwise opens a dialog and starts polling. Dismissing the
    dialog cancels that session; a session that becomes ready navigates once.
    """

    def __init__(
        self,
        status: StatusGateway,
        timers: TimerGateway,
        dialogs: Callable[[str], ProgressDialog],
        navigator: Navigator,
        *,
        app_prefix: str = "",
        initial_delay_ms: float = INITIAL_DELAY_MS,
        backoff_factor: float = BACKOFF_FACTOR,
        on_error: Callable[[ConversionSession, StatusCheckError], None] | None = None,
    ) -> None:
        self._status = status
        self._timers = timers
        self._dialogs = dialogs
        self._navigator = navigator
        self._app_prefix = app_prefix.rstrip("/")
        self._initial_delay = initial_delay_ms
        self._factor = backoff_factor
        self._on_error = on_error
        self._schedulers: dict[str, PollScheduler] = {}
        self._opening: dict[str, asyncio.Task] = {}

    async def open_item(self, item_id: str) -> ConversionSession | None:
        """Open the reader for an item, polling first if it is not converted yet.

        Returns the live session, or None when the item was ready and the
        navigation already happened. A failed first check raises
        StatusCheckError and leaves no session behind. Overlapping calls for
        the same item share one first check and get the same outcome.
        """
        item_id = str(item_id)
        current = self._schedulers.get(item_id)
        if current is not None and not current.session.is_terminal:
            return current.session

        opening = self._opening.get(item_id)
        if opening is None:
            opening = asyncio.ensure_future(self._open(item_id))
            self._opening[item_id] = opening
            opening.add_done_callback(lambda task: self._opened(item_id, task))
        return await asyncio.shield(opening)

    async def _open(self, item_id: str) -> ConversionSession | None:
        result = await self._status.check_status(item_id, trigger_conversion=True)
        if result.is_ready:
            self._navigate(item_id)
            return None

        session = ConversionSession(item_id, next_delay=self._initial_delay)
        scheduler = PollScheduler(
            session,
            self._status,
            self._timers,
            backoff_factor=self._factor,
            on_ready=self._finish,
            on_error=self._on_error,
        )
        self._schedulers[item_id] = scheduler

        dialog = self._dialogs(item_id)
        dialog.on_dismiss(lambda: self._dismiss(scheduler))
        dialog.show()
        scheduler.start()
        logger.info("conversion pending | item=%s | delay_ms=%.0f", item_id, session.next_delay)
        return session

    def _opened(self, item_id: str, task: "asyncio.Task") -> None:
        if self._opening.get(item_id) is task:
            del self._opening[item_id]

    def cancel(self, item_id: str) -> bool:
        scheduler = self._schedulers.pop(str(item_id), None)
        if scheduler is None:
            return False
        return scheduler.cancel()

    def cancel_all(self) -> None:
        for item_id in list(self._schedulers):
            self.cancel(item_id)

    def get(self, item_id: str) -> ConversionSession | None:
        scheduler = self._schedulers.get(str(item_id))
        return scheduler.session if scheduler is not None else None

    def scheduler(self, item_id: str) -> PollScheduler | None:
        return self._schedulers.get(str(item_id))

    def active(self) -> list[ConversionSession]:
        return [s.session for s in self._schedulers.values() if not s.session.is_terminal]

    def _dismiss(self, scheduler: PollScheduler) -> None:
        item_id = scheduler.session.item_id
        # a newer session for the same item is not ours to drop
        if self._schedulers.get(item_id) is scheduler:
            del self._schedulers[item_id]
        scheduler.cancel()

    def _finish(self, session: ConversionSession) -> None:
        scheduler = self._schedulers.get(session.item_id)
        if scheduler is not None and scheduler.session is session:
            del self._schedulers[session.item_id]
        self._navigate(session.item_id)

    def _navigate(self, item_id: str) -> None:
        url = viewer_url(self._app_prefix, item_id)
        logger.info("navigating to reader | item=%s | url=%s", item_id, url)
        self._navigator.navigate(url)
