"""Error kinds and exceptions for Feed Inbox."""

from enum import Enum


class ErrorKind(str, Enum):
    """Machine-readable error codes surfaced in the ``code`` field."""

    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    NETWORK_ERROR = "NETWORK_ERROR"
    PARSE_ERROR = "PARSE_ERROR"
    MIGRATION_ERROR = "MIGRATION_ERROR"
    RUNTIME_ERROR = "RUNTIME_ERROR"


class FeedInboxError(Exception):
    """Base exception for Feed Inbox domain errors."""

    code = ErrorKind.RUNTIME_ERROR


class NotFoundError(FeedInboxError):
    """Raised when a feed or entry reference cannot be resolved."""

    code = ErrorKind.NOT_FOUND


class AlreadyExistsError(FeedInboxError):
    """Raised when adding a feed whose URL is already registered."""

    code = ErrorKind.ALREADY_EXISTS


class NetworkError(FeedInboxError):
    """Raised on transport failure, timeout or non-2xx status."""

    code = ErrorKind.NETWORK_ERROR


class ParseError(FeedInboxError):
    """Raised when a document, entry or URL cannot be parsed."""

    code = ErrorKind.PARSE_ERROR


class MigrationError(FeedInboxError):
    """Raised when a database migration fails."""

    code = ErrorKind.MIGRATION_ERROR


class StorageError(FeedInboxError):
    """Raised on storage I/O failure."""

    code = ErrorKind.RUNTIME_ERROR
