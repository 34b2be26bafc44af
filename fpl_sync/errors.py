"""Layered error taxonomy for the sync core.

Every layer raises its own envelope type:

- StoreError: relational store failures (raised by StoreGateway)
- CacheError: cache store failures (raised by CacheGateway)
- IntegrationError: upstream FPL API failures (raised by FPLClient)
- DomainError: failures of a synchronization operation
- ServiceError: failures of a sync service (fetch -> transform -> sync)
- APIError: failures surfaced to REST clients

Translators are pure functions: they never log and never drop the envelope they
receive. The input becomes the ``cause`` of the output (and its ``__cause__``,
so tracebacks show the full chain).

Example:
    try:
        rows = await store.find_all()
    except StoreError as e:
        raise store_to_domain(e) from e
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterator


class ErrorKind(str, Enum):
    """Coarse error kinds shared by every layer."""

    CONNECTION = "connection"
    QUERY = "query"
    CONSTRAINT = "constraint"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    OPERATION = "operation"
    CACHE_SERIALIZATION = "cache_serialization"
    CACHE_DESERIALIZATION = "cache_deserialization"
    INTEGRATION = "integration"
    TRANSFORMATION = "transformation"


class SyncError(Exception):
    """Base error envelope.

    Attributes:
        kind: Coarse error kind
        message: Human readable message
        details: Structured context (scope ids, status codes, ...)
        cause: Envelope or exception from the layer below
        timestamp: When the envelope was created
    """

    layer = "base"

    def __init__(
        self,
        kind: ErrorKind | str,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = ErrorKind(kind)
        self.message = message
        self.details = dict(details or {})
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)
        if cause is not None:
            self.__cause__ = cause

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value!r}, message={self.message!r})"

    def to_dict(self) -> dict[str, Any]:
        """Serialize the envelope and its cause chain for server-side diagnostics."""
        data: dict[str, Any] = {
            "layer": self.layer,
            "kind": self.kind.value,
            "message": self.message,
            "details": {k: str(v) for k, v in self.details.items()},
        }
        if isinstance(self.cause, SyncError):
            data["cause"] = self.cause.to_dict()
        elif self.cause is not None:
            data["cause"] = {"type": type(self.cause).__name__, "message": str(self.cause)}
        return data


class StoreError(SyncError):
    layer = "store"


class CacheError(SyncError):
    layer = "cache"


class IntegrationError(SyncError):
    layer = "integration"


class DomainError(SyncError):
    layer = "domain"


class ServiceError(SyncError):
    layer = "service"


class APIError(SyncError):
    """Client-facing error.

    Only ``code`` and ``message`` are ever rendered to clients; the cause chain
    stays on the server.
    """

    layer = "api"

    _CODES = {
        ErrorKind.NOT_FOUND: ("NOT_FOUND", 404),
        ErrorKind.VALIDATION: ("VALIDATION_ERROR", 400),
        ErrorKind.INTEGRATION: ("SERVICE_UNAVAILABLE", 503),
        ErrorKind.CONNECTION: ("SERVICE_UNAVAILABLE", 503),
    }

    @property
    def code(self) -> str:
        return self._CODES.get(self.kind, ("INTERNAL_SERVER_ERROR", 500))[0]

    @property
    def status_code(self) -> int:
        return self._CODES.get(self.kind, ("INTERNAL_SERVER_ERROR", 500))[1]

    def to_response(self) -> dict[str, Any]:
        return {"error": {"code": self.code, "message": self.message}}


def iter_chain(error: BaseException | None) -> Iterator[BaseException]:
    """Walk an error and all of its causes, outermost first."""
    seen: set[int] = set()
    while error is not None and id(error) not in seen:
        seen.add(id(error))
        yield error
        error = error.cause if isinstance(error, SyncError) else error.__cause__


def find_in_chain(error: BaseException, kind: ErrorKind) -> SyncError | None:
    """Return the first envelope of ``kind`` anywhere in the cause chain."""
    for link in iter_chain(error):
        if isinstance(link, SyncError) and link.kind is kind:
            return link
    return None


def root_cause(error: BaseException) -> str:
    """Describe the innermost exception of the chain, for server-side logs only."""
    *_, last = iter_chain(error)
    return f"{type(last).__name__}: {last}"


# Coarse-to-coarse kind tables, one per hop. Kinds not listed fall back to
# the table's default.
_STORE_TO_DOMAIN = {
    ErrorKind.CONNECTION: ErrorKind.CONNECTION,
    ErrorKind.QUERY: ErrorKind.OPERATION,
    ErrorKind.CONSTRAINT: ErrorKind.VALIDATION,
    ErrorKind.VALIDATION: ErrorKind.VALIDATION,
    ErrorKind.NOT_FOUND: ErrorKind.NOT_FOUND,
    ErrorKind.TRANSFORMATION: ErrorKind.TRANSFORMATION,
}

_CACHE_TO_DOMAIN = {
    ErrorKind.CONNECTION: ErrorKind.CONNECTION,
    ErrorKind.CACHE_SERIALIZATION: ErrorKind.CACHE_SERIALIZATION,
    ErrorKind.CACHE_DESERIALIZATION: ErrorKind.CACHE_DESERIALIZATION,
    ErrorKind.NOT_FOUND: ErrorKind.NOT_FOUND,
}

_TO_SERVICE = {
    ErrorKind.CONNECTION: ErrorKind.CONNECTION,
    ErrorKind.VALIDATION: ErrorKind.VALIDATION,
    ErrorKind.NOT_FOUND: ErrorKind.NOT_FOUND,
    ErrorKind.INTEGRATION: ErrorKind.INTEGRATION,
    ErrorKind.TRANSFORMATION: ErrorKind.TRANSFORMATION,
}

_SERVICE_TO_API = {
    ErrorKind.VALIDATION: ErrorKind.VALIDATION,
    ErrorKind.INTEGRATION: ErrorKind.INTEGRATION,
    ErrorKind.CONNECTION: ErrorKind.CONNECTION,
    ErrorKind.NOT_FOUND: ErrorKind.NOT_FOUND,
}


def _wrap(
    target: type[SyncError],
    error: BaseException,
    table: dict[ErrorKind, ErrorKind],
    default: ErrorKind,
) -> SyncError:
    if isinstance(error, SyncError):
        kind = table.get(error.kind, default)
        return target(kind, error.message, details=error.details, cause=error)
    return target(default, "Unexpected error", details={"error_type": type(error).__name__}, cause=error)


def store_to_domain(error: BaseException) -> DomainError:
    """Translate a store failure into a domain failure."""
    return _wrap(DomainError, error, _STORE_TO_DOMAIN, ErrorKind.OPERATION)


def cache_to_domain(error: BaseException) -> DomainError:
    """Translate a cache failure into a domain failure."""
    return _wrap(DomainError, error, _CACHE_TO_DOMAIN, ErrorKind.OPERATION)


def domain_to_service(error: BaseException) -> ServiceError:
    """Translate a domain (or upstream integration) failure into a service failure."""
    return _wrap(ServiceError, error, _TO_SERVICE, ErrorKind.OPERATION)


def service_to_api(error: BaseException) -> APIError:
    """Translate a service failure into a client-facing API failure.

    A ``not_found`` anywhere in the cause chain surfaces as a 404 even when
    the outer envelope has a different kind.
    """
    api_error = _wrap(APIError, error, _SERVICE_TO_API, ErrorKind.OPERATION)
    if api_error.kind is not ErrorKind.NOT_FOUND and find_in_chain(error, ErrorKind.NOT_FOUND):
        api_error.kind = ErrorKind.NOT_FOUND
    return api_error
