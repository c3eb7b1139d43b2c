"""Book list client and link builders.

The list endpoint returns one record per book in the library; each record
names the formats the server can hand out directly. Reader and download
links are built from the application prefix and the book id.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import requests

from weblibri.errors import CatalogError

logger = logging.getLogger("weblibri.catalog")


@dataclass(frozen=True)
class BookRecord:
    id: str
    title: str
    author_sort: str
    available_data: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BookRecord:
        if "id" not in data:
            raise CatalogError(f"book record without id: {data!r}")
        formats = data.get("available_data") or []
        return cls(
            id=str(data["id"]),
            title=str(data.get("title", "")),
            author_sort=str(data.get("author_sort", "")),
            available_data=tuple(str(ext) for ext in formats),
        )


def viewer_url(app_prefix: str, item_id: str) -> str:
    return f"{app_prefix}/reader/{item_id}"


def download_url(app_prefix: str, item_id: str, extension: str) -> str:
    return f"{app_prefix}/data/{item_id}/{extension}"


def download_links(app_prefix: str, book: BookRecord) -> list[tuple[str, str]]:
    """Return ``(extension, url)`` pairs in the order the server listed them."""
    return [(ext, download_url(app_prefix, book.id, ext)) for ext in book.available_data]


def toggle_direction(metadata: dict[str, Any]) -> str | None:
    """Flip the reader's page progression between right-to-left and default.

    Returns the new value of ``metadata["direction"]``.
    """
    if metadata.get("direction") == "rtl":
        metadata["direction"] = None
    else:
        metadata["direction"] = "rtl"
    return metadata["direction"]


class CatalogClient:
    def __init__(
        self,
        api_root: str,
        *,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self._root = api_root.rstrip("/")
        self._timeout = timeout
        self._http = session or requests.Session()

    def fetch_books(self) -> list[BookRecord]:
        """Fetch ``{root}/list.json`` and parse it, keeping server order.

        Raises:
            CatalogError: On transport failure, non-200 status or a body
                that is not a list of book objects.
        """
        url = f"{self._root}/list.json"
        try:
            resp = self._http.get(url, timeout=self._timeout)
        except requests.RequestException as e:
            raise CatalogError(f"Failed to connect to API: {e}") from e
        if resp.status_code != 200:
            raise CatalogError(f"List error: {resp.status_code} {resp.text}")
        try:
            data = resp.json()
        except ValueError as e:
            raise CatalogError("book list is not JSON") from e
        if not isinstance(data, list):
            raise CatalogError(f"book list must be an array, got {type(data).__name__}")
        books = [BookRecord.from_dict(item) for item in data if isinstance(item, dict)]
        logger.info("book list fetched | count=%d", len(books))
        return books
