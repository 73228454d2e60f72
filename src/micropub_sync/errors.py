"""Error taxonomy shared by the codecs, the reconciler and the pipelines.

Every failure raised by this package carries an ``ErrorKind`` so callers
(and the MCP tool layer) can decide how to present it and whether a retry
makes sense.  Nothing in the package retries automatically.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Categories of failure surfaced to callers."""

    VALIDATION = "ValidationError"
    AUTH = "AuthError"
    RATE_LIMIT = "RateLimitError"
    SERVICE = "ServiceError"
    SCHEMA = "SchemaError"
    CONFLICT = "ConflictError"
    CONFIGURATION = "ConfigurationError"
    PARSE = "ParseError"


class MicropubSyncError(Exception):
    """Base class for all errors raised by micropub_sync.

    Attributes:
        kind: The ``ErrorKind`` of this failure.
        message: Human-readable description.
    """

    kind: ErrorKind = ErrorKind.SERVICE

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        """Whether a caller-driven retry could succeed without reconfiguration."""
        return self.kind in (ErrorKind.RATE_LIMIT, ErrorKind.SERVICE)


class ValidationError(MicropubSyncError):
    """Local, pre-network rejection of an entity or asset."""

    kind = ErrorKind.VALIDATION


class AuthError(MicropubSyncError):
    """Credentials were rejected (HTTP 401/403)."""

    kind = ErrorKind.AUTH


class RateLimitError(MicropubSyncError):
    """The service answered 429.

    Attributes:
        retry_after: Seconds the service asked us to wait, if it said.
    """

    kind = ErrorKind.RATE_LIMIT

    def __init__(self, message: str, retry_after: int | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class ServiceError(MicropubSyncError):
    """5xx, unexpected status or transport failure.

    Attributes:
        status: HTTP status code, or ``None`` for transport failures.
    """

    kind = ErrorKind.SERVICE

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class SchemaError(MicropubSyncError):
    """A payload did not have the structure we expected."""

    kind = ErrorKind.SCHEMA


class ConflictError(MicropubSyncError):
    """Concurrent operation on the same entity."""

    kind = ErrorKind.CONFLICT


class ConfigurationError(MicropubSyncError):
    """Missing endpoint or credentials."""

    kind = ErrorKind.CONFIGURATION


class ParseError(MicropubSyncError):
    """A local file's front-matter block could not be parsed.

    Attributes:
        path: Workspace-relative path of the offending file.
    """

    kind = ErrorKind.PARSE

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"{path}: {message}")
