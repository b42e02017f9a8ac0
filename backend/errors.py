"""Error kinds raised by the backend client and the dashboard state.

The classifier and collection views never raise; report lifecycles and crawl
sessions catch these and keep the message in their `failed` state.
"""


class DashboardError(Exception):
    """Base class for every error the dashboard core knows how to surface."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class TransportError(DashboardError):
    """Network failure, timeout, or a non-success response from the backend."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ValidationError(DashboardError):
    """Input rejected locally or by the backend (e.g. malformed domain)."""


class NotFoundError(DashboardError):
    """Project or link absent from the currently loaded collection."""


class DecodeError(DashboardError):
    """Payload or serialized-text field that does not have the expected shape."""
