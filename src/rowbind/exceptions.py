"""
Exception classes for connections, statements and row marshalling.
"""
import re

TRANSIENT_PATTERNS = [
    r'database is locked',
    r'database table is locked',
    r'database is busy',
    r'\bbusy\b',
    r'timeout',
    r'timed out',
]

_TRANSIENT_REGEX = re.compile('|'.join(TRANSIENT_PATTERNS), re.IGNORECASE)


def is_transient_error(exc: BaseException) -> bool:
    """Check if an exception represents lock contention worth retrying.

    Nothing in rowbind retries on its own. Callers that want to retry can use
    this to tell lock/busy failures apart from errors that will fail again:

    - Locked or busy database files
    - Busy timeouts

    Returns False for syntax errors, binding errors, missing rows and
    anything else that is not transient.

    :param exc: The exception to check.
    :returns: True if the error is likely transient.
    """
    if isinstance(exc, (NoRowError, BindError, TypeConversionError)):
        return False
    return bool(_TRANSIENT_REGEX.search(str(exc)))


class DatabaseError(Exception):
    """Base class for all rowbind errors.
    """


class EngineError(DatabaseError):
    """Failure reported by the engine capability layer.

    Carries the engine result code. The connection and statement layers
    translate these into the more specific classes below.
    """

    def __init__(self, code, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class ConnectionError(DatabaseError):
    """Error opening, closing or using a database connection.
    """


class QueryError(DatabaseError):
    """Statement was rejected by the engine during preparation.
    """


class BindError(DatabaseError):
    """Argument could not be bound to a statement placeholder.
    """


class RowFetchError(DatabaseError):
    """Engine failure while stepping through result rows.
    """


class NoRowError(DatabaseError):
    """A single row was expected but the statement produced none.
    """


class TypeConversionError(DatabaseError):
    """Error converting between record field types and engine values.
    """
