class WeblibriError(Exception):
    """Base class for errors raised by the reader client."""

    def __init__(self, message: str = "") -> None:
        self.message = message
        super().__init__(message)


class StatusCheckError(WeblibriError):
    """A readiness check for one item did not produce a usable answer."""

    def __init__(self, item_id: str, message: str) -> None:
        self.item_id = item_id
        super().__init__(message)

    def __str__(self) -> str:
        return f"[item {self.item_id}] {self.message}"


class StatusTransportError(StatusCheckError):
    """The status request failed or the server answered with an error code."""


class MalformedStatusError(StatusCheckError):
    """The server answered, but the body lacks a boolean ``is_ready``."""


class CatalogError(WeblibriError):
    """The book list could not be fetched or decoded."""
