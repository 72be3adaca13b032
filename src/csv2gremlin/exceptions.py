"""
csv2gremlin - Exception Classes

All custom exceptions raised by the importer. Record-level errors
(InvalidRecord, GraphConnectionError, RemoteRejection, UnresolvedEndpoint)
end up as failures in the ImportReport; ConfigError, InputError and
ImportAborted stop a whole run.
"""

from typing import Optional


class GraphImportError(Exception):
    """Base exception for csv2gremlin errors."""

    pass


class ConfigError(GraphImportError):
    """Connection descriptor or import settings could not be loaded."""

    pass


class InputError(GraphImportError):
    """An input file is missing or cannot be parsed."""

    pass


class InvalidRecord(GraphImportError):
    """A required field of an input row is missing or empty."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class GraphConnectionError(GraphImportError):
    """
    Transport-level failure talking to the graph service.

    Unreachable host, TLS negotiation failure, request timeout or a
    gateway error. Retryable unless ``retryable`` is False (for example
    rejected credentials while establishing the session).
    """

    def __init__(
        self, message: str, host: Optional[str] = None, retryable: bool = True
    ):
        super().__init__(message)
        self.host = host
        self.retryable = retryable


class RemoteRejection(GraphImportError):
    """The service accepted the request but rejected the operation."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class UnresolvedEndpoint(GraphImportError):
    """An edge endpoint key matched no vertex."""

    def __init__(self, key: str, side: str):
        super().__init__(f"No vertex found for {side} key {key!r}")
        self.key = key
        self.side = side


class ImportAborted(GraphImportError):
    """A run-level failure stopped the import before all records were seen."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause
