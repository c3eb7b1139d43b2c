import asyncio
import json
import logging
from typing import Callable

import streamlit as st
import streamlit.components.v1 as components

from weblibri.catalog import BookRecord, CatalogClient, download_links
from weblibri.config import ClientConfig
from weblibri.conversion import ConversionSession, ProgressDialog, SessionLifecycle, SessionState
from weblibri.conversion.adapters import AsyncioTimers, HttpStatusClient
from weblibri.errors import CatalogError, StatusCheckError

CONFIG = ClientConfig.from_env()
logging.basicConfig(level=CONFIG.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("weblibri.streamlit_app")

# How often the progress box repaints while waiting; each repaint lets
# Streamlit interrupt the run when the user presses Cancel.
REFRESH_SEC = 0.5


class StatusBoxDialog(ProgressDialog):
    """Progress dialog backed by an ``st.status`` box.

    The dialog counts as dismissed once the box is left, whether the
    session finished, the user pressed Cancel, or Streamlit reran the page.
    """

    def __init__(self, item_id: str, title: str) -> None:
        self.item_id = item_id
        self.title = title
        self.box = None
        self.text_slot = None
        self._handlers: list[Callable[[], None]] = []
        self._dismissed = False

    def on_dismiss(self, callback: Callable[[], None]) -> None:
        self._handlers.append(callback)

    def show(self) -> None:
        self.box = st.status(f"Converting “{self.title}” for the reader...", expanded=True)
        with self.box:
            st.write("The book is being converted. This page opens the reader when it is done.")
            st.button("Cancel", key=f"cancel-{self.item_id}")
            self.text_slot = st.empty()

    def dismiss(self) -> None:
        if self._dismissed:
            return
        self._dismissed = True
        for cb in self._handlers:
            cb()


class BrowserNavigator:
    def __init__(self) -> None:
        self.target: str | None = None

    def navigate(self, url: str) -> None:
        self.target = url


def _redirect(url: str) -> None:
    components.html(f"<script>window.parent.location.href = {json.dumps(url)};</script>", height=0)
    st.link_button("Open reader", url, type="primary")


def _load_books() -> list[BookRecord] | None:
    client = CatalogClient(CONFIG.api_root, timeout=CONFIG.request_timeout_sec)
    try:
        return client.fetch_books()
    except CatalogError as e:
        st.session_state["error"] = str(e)
        return None


def _stall_notice(session: ConversionSession, error: StatusCheckError) -> None:
    st.session_state["stall"] = f"Status check failed: {error}. Conversion may still be running."


async def _open_reader(book: BookRecord, navigator: BrowserNavigator) -> None:
    dialogs: list[StatusBoxDialog] = []

    def make_dialog(item_id: str) -> StatusBoxDialog:
        dialog = StatusBoxDialog(item_id, book.title)
        dialogs.append(dialog)
        return dialog

    lifecycle = SessionLifecycle(
        HttpStatusClient(CONFIG.api_root, timeout=CONFIG.request_timeout_sec),
        AsyncioTimers(),
        make_dialog,
        navigator,
        app_prefix=CONFIG.app_prefix,
        initial_delay_ms=CONFIG.initial_delay_ms,
        backoff_factor=CONFIG.backoff_factor,
        on_error=_stall_notice,
    )
    try:
        session = await lifecycle.open_item(book.id)
        if session is None:
            return
        dialog = dialogs[0]
        while not session.is_terminal:
            try:
                await asyncio.wait_for(asyncio.shield(session.wait()), REFRESH_SEC)
            except asyncio.TimeoutError:
                pass
            if stall := st.session_state.get("stall"):
                dialog.text_slot.warning(stall)
            else:
                dialog.text_slot.caption(
                    f"Checks so far: {session.polls + 1} · next check in {session.next_delay / 1000:.1f}s"
                )
        if session.state == SessionState.READY:
            dialog.box.update(label="Conversion complete", state="complete")
    finally:
        for dialog in dialogs:
            dialog.dismiss()
        lifecycle.cancel_all()


def _render_book_row(book: BookRecord) -> None:
    col_open, col_title, col_author, col_data = st.columns([1, 5, 4, 3])
    with col_open:
        if st.button("📖", key=f"open-{book.id}", help="Open in reader"):
            st.session_state["open_id"] = book.id
    col_title.write(book.title)
    col_author.write(book.author_sort)
    links = " ".join(f"[{ext}]({url})" for ext, url in download_links(CONFIG.app_prefix, book))
    col_data.markdown(links)


def main() -> None:
    st.set_page_config(page_title="Library", page_icon="📚", layout="wide")
    st.title("📚 Library")
    st.caption(f"API root: {CONFIG.api_root}")

    if st.button("Reload list", type="secondary"):
        st.session_state.pop("books", None)
        st.session_state.pop("error", None)

    if "books" not in st.session_state:
        with st.spinner("Loading book list..."):
            books = _load_books()
        if books is not None:
            st.session_state["books"] = books

    books = st.session_state.get("books", [])
    header = st.columns([1, 5, 4, 3])
    for col, label in zip(header, ["", "Title", "Author(s)", "Data"]):
        col.markdown(f"**{label}**")
    for book in books:
        _render_book_row(book)

    # Reader requested: poll until ready, then redirect
    if open_id := st.session_state.pop("open_id", None):
        book = next((b for b in books if b.id == open_id), None)
        if book is not None:
            st.session_state.pop("stall", None)
            navigator = BrowserNavigator()
            try:
                asyncio.run(_open_reader(book, navigator))
            except StatusCheckError as e:
                logger.warning("reader open failed | item=%s | error=%s", book.id, e)
                st.session_state["error"] = f"Status check failed: {e}"
            if navigator.target:
                _redirect(navigator.target)

    if err := st.session_state.get("error"):
        st.error(err)


if __name__ == "__main__":
    main()
