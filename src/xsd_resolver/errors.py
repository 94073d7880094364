"""Exception hierarchy for schema resolution and collection storage.

Errors fall into two HTTP-shaped families so an outer layer can map them to a
response without inspecting messages:

- :class:`ClientError` (4xx) for problems with the submitted document or the
  requested collection.
- :class:`ServerError` (5xx) for storage, locking, and configuration faults.

The message of any :class:`HttpError` is written to be shown to a caller.
:class:`LocationError` and :class:`FetchError` sit outside that hierarchy: the catalog
absorbs them into failed schema records, and if one ever escapes it should be
logged with a traceback rather than echoed back.
"""

from __future__ import annotations

__all__ = [
    "HttpError",
    "ClientError",
    "ServerError",
    "EmptyDocumentError",
    "BadXmlDocumentError",
    "UnparseableDocumentError",
    "BadXmlVersionError",
    "TooManySchemasError",
    "BadCollectionIdError",
    "UnknownCollectionError",
    "LockTimeoutError",
    "ConfigurationError",
    "ResolverError",
    "LocationError",
    "FetchError",
]


class HttpError(Exception):
    """Base class for errors whose message is safe to return to a client."""

    status_code = 500
    status_text = "Internal Service Error"

    def client_message(self) -> str:
        return f"{self.status_code} {self.status_text} - {str(self).rstrip('.')}."


class ClientError(HttpError):
    """The caller supplied something we can't work with."""

    status_code = 400
    status_text = "Bad Request"


class ServerError(HttpError):
    """Something on our side is broken or misconfigured."""


class EmptyDocumentError(ClientError):
    """Raised when the submitted document has no content."""


class BadXmlDocumentError(ClientError):
    """Raised when the submitted document is not usable XML."""

    status_code = 415
    status_text = "Unsupported Media Type"


class UnparseableDocumentError(BadXmlDocumentError):
    """Raised when a document fails to parse and yields nothing useful."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = list(errors or [])


class BadXmlVersionError(BadXmlDocumentError):
    """Raised for any declared XML version other than 1.0."""


class TooManySchemasError(ClientError):
    """Raised when resolution exceeds the schema ceiling (possible denial of service)."""


class BadCollectionIdError(ClientError):
    """Raised when a collection name is not a single URL-safe path component."""


class UnknownCollectionError(ClientError):
    """Raised when a collection has not been created."""

    status_code = 404
    status_text = "Not Found"


class LockTimeoutError(ServerError):
    """Raised when a file lock can't be acquired within the lock timeout."""

    status_code = 503
    status_text = "Service Unavailable"


class ConfigurationError(ServerError):
    """Raised when storage directories or settings are unusable."""


class ResolverError(ServerError):
    """Raised on internal logic faults (e.g. processing a document twice)."""


class LocationError(Exception):
    """A schema location can't be fetched: unsupported scheme or too many redirects."""


class FetchError(Exception):
    """A schema request failed at the network or HTTP level."""
