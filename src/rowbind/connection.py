"""
Database connection handling.

This module provides:
1. The `connect()` function for opening a connection from options
2. The `Connection` class that owns an engine database handle
3. Argument binding: each positional argument's runtime type selects the
   engine bind call (int32, int64, double, text, null)

The Connection is the only way to create statements:
- execute(sql, *args) - Prepare and bind, return a lazy Statement
- execute_record(sql, record, *names) - Bind record fields by their declared type
- run(sql, *args) - Execute to completion and return the changed-row count
"""
import logging
import time
import weakref
from dataclasses import fields
from enum import Enum
from functools import wraps
from typing import Any, Self

from rowbind.engine import Engine, OpenMode, get_engine
from rowbind.exceptions import BindError, ConnectionError, EngineError
from rowbind.exceptions import QueryError
from rowbind.options import ConnectionOptions
from rowbind.record import FieldDescriptor, ScalarType, find_field
from rowbind.record import record_fields
from rowbind.sql import standardize_placeholders
from rowbind.statement import Statement

from libb import load_options

__all__ = [
    'Connection',
    'ConnectionState',
    'connect',
    'bind_value',
    'bind_field',
]

logger = logging.getLogger(__name__)

INT32_MIN, INT32_MAX = -2**31, 2**31 - 1
INT64_MIN, INT64_MAX = -2**63, 2**63 - 1


class ConnectionState(Enum):
    """Lifecycle state of a connection."""
    UNOPENED = 'unopened'
    OPEN = 'open'
    CLOSED = 'closed'


def dumpsql(func):
    """Decorator for logging SQL statements and arguments."""
    @wraps(func)
    def wrapper(self, sql: str, *args: Any, **kwargs: Any):
        start = time.time()
        logger.debug(f'SQL:\n{sql}\nargs: {args}')
        try:
            return func(self, sql, *args, **kwargs)
        except Exception:
            logger.error(f'Error with query:\nSQL:\n{sql}\nargs: {args}')
            raise
        finally:
            elapsed = time.time() - start
            self.addcall(elapsed)
            logger.debug(f'Prepare time: {elapsed:.4f}s')
    return wrapper


def bind_value(engine: Engine, stmt: Any, position: int, value: Any) -> None:
    """Bind one positional argument, choosing the bind call from its runtime type.

    - None -> bind_null
    - int (bool included) in the 32-bit range -> bind_int
    - int in the 64-bit range -> bind_int64
    - float -> bind_double
    - str -> bind_text, UTF-8 with explicit length (embedded NUL preserved)

    Raises
        BindError: unsupported type, integer wider than 64 bits, or engine rejection
    """
    try:
        if value is None:
            engine.bind_null(stmt, position)
        elif isinstance(value, int):
            if INT32_MIN <= value <= INT32_MAX:
                engine.bind_int(stmt, position, int(value))
            elif INT64_MIN <= value <= INT64_MAX:
                engine.bind_int64(stmt, position, int(value))
            else:
                raise BindError(f'Integer {value} at position {position} does not fit 64 bits')
        elif isinstance(value, float):
            engine.bind_double(stmt, position, value)
        elif isinstance(value, str):
            data = value.encode('utf-8')
            engine.bind_text(stmt, position, data, len(data))
        else:
            raise BindError(f'Unsupported parameter type {type(value).__name__} '
                            f'at position {position}')
    except EngineError as err:
        raise BindError(f'Error during binding at position {position}: {err.message}') from err
    except UnicodeEncodeError as err:
        raise BindError(f'Text at position {position} is not encodable as UTF-8: {err}') from err


def bind_field(engine: Engine, stmt: Any, position: int,
               descriptor: FieldDescriptor, value: Any) -> None:
    """Bind a record field value using the field's declared scalar type."""
    try:
        if value is None:
            engine.bind_null(stmt, position)
        elif descriptor.scalar is ScalarType.INT32:
            engine.bind_int(stmt, position, int(value))
        elif descriptor.scalar is ScalarType.INT64:
            engine.bind_int64(stmt, position, int(value))
        elif descriptor.scalar is ScalarType.DOUBLE:
            engine.bind_double(stmt, position, float(value))
        else:
            data = str(value).encode('utf-8')
            engine.bind_text(stmt, position, data, len(data))
    except EngineError as err:
        raise BindError(f'Error binding field {descriptor.name} at position {position}: '
                        f'{err.message}') from err
    except (TypeError, ValueError) as err:
        raise BindError(f'Field {descriptor.name} value {value!r} is not a '
                        f'{descriptor.scalar.value}: {err}') from err


def _release(engine: Engine, handle: Any) -> None:
    engine.close(handle)


class Connection:
    """Owns one open engine database handle.

    This class:
    1. Opens the handle (`open`) and releases it exactly once (`close`,
       leaving a `with` block, or garbage collection)
    2. Prepares and binds statements (`execute`)
    3. Finalizes its still-open statements before the handle is closed
    4. Tracks statement counts and prepare time

    Connections are not thread-safe; use one per thread.
    """

    def __init__(self, options: ConnectionOptions | None = None) -> None:
        """Initialize an unopened connection

        Args:
            options: The ConnectionOptions for this connection (defaults apply if omitted)
        """
        self.options = options or ConnectionOptions()
        self.engine = get_engine(self.options.engine)
        self.state = ConnectionState.UNOPENED
        self.location: str | None = None
        self.calls = 0
        self.time = 0
        self._handle: Any = None
        self._finalizer: weakref.finalize | None = None
        self._statements: weakref.WeakSet[Statement] = weakref.WeakSet()

    def __enter__(self) -> Self:
        """Support for context manager protocol

        Returns
            Self reference for use in context manager
        """
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        """Close the connection when exiting the context manager

        A failure while closing is logged, not raised, so it never hides an
        exception from the body of the `with` block.
        """
        try:
            self.close()
            logger.debug('Closed connection via context manager')
        except ConnectionError as e:
            logger.debug(f'Error closing connection in __exit__: {e}')

    def __repr__(self) -> str:
        return f'<Connection {self.state.value} {self.location or self.options.database}>'

    @property
    def is_open(self) -> bool:
        return self.state is ConnectionState.OPEN

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics

        Args:
            elapsed: Time in seconds that preparing and binding took
        """
        self.time += elapsed
        self.calls += 1

    def open(self, location: str | None = None,
             mode: OpenMode | int | str | None = None) -> Self:
        """Open the database.

        Args:
            location: Database location (default: options.database)
            mode: OpenMode flags or `ro`/`rw`/`rwc`/`memory` (default: options.mode)

        Returns
            Self, now open

        Raises
            ConnectionError: The engine cannot open or create the database
            under the requested mode, or this connection was already used
        """
        if self.state is not ConnectionState.UNOPENED:
            raise ConnectionError(f'Connection is {self.state.value}; open a new Connection')

        location = location or self.options.database
        try:
            mode = OpenMode.parse(self.options.mode if mode is None else mode)
        except ValueError as err:
            raise ConnectionError(f'Invalid open mode: {err}') from err

        try:
            handle = self.engine.open(location, mode, self.options.timeout)
        except EngineError as err:
            logger.error(f'Cannot open database {location}: {err.message}')
            raise ConnectionError(err.message) from err

        self._handle = handle
        self._finalizer = weakref.finalize(self, _release, self.engine, handle)
        self.location = location
        self.state = ConnectionState.OPEN
        return self

    def close(self) -> None:
        """Finalize open statements and release the database handle.

        Idempotent. After closing, the connection cannot be reopened.
        """
        if self.state is not ConnectionState.OPEN:
            self.state = ConnectionState.CLOSED
            return

        for statement in list(self._statements):
            statement.close()

        try:
            self._finalizer()
        except EngineError as err:
            raise ConnectionError(f'Error closing database {self.location}: {err.message}') from err
        finally:
            self.state = ConnectionState.CLOSED
            self._handle = None

        logger.debug(f'Connection closed: {self.calls} statements prepared in {self.time:.2f}s '
                     f'(avg: {self.time/max(1,self.calls):.3f}s per statement)')

    def _require_open(self) -> None:
        if self.state is not ConnectionState.OPEN:
            raise ConnectionError(f'Connection is {self.state.value}')

    def _prepare(self, sql: str) -> Any:
        self._require_open()
        try:
            return self.engine.prepare(self._handle, sql)
        except EngineError as err:
            raise QueryError(f'Error during prepare: {err.message}') from err

    def _statement(self, handle: Any, sql: str) -> Statement:
        statement = Statement(self, self.engine, handle, sql,
                              strict_types=self.options.strict_types)
        self._statements.add(statement)
        return statement

    @dumpsql
    def execute(self, sql: str, *args: Any) -> Statement:
        """Prepare `sql` and bind `args` to its placeholders, left to right.

        `%s` placeholders are accepted and rewritten as `?`. No row is fetched
        until the returned statement is consumed.

        Raises
            ConnectionError: The connection is not open
            QueryError: The engine rejected the SQL
            BindError: An argument could not be bound
        """
        sql = standardize_placeholders(sql)
        handle = self._prepare(sql)
        try:
            for position, value in enumerate(args, start=1):
                bind_value(self.engine, handle, position, value)
        except BindError:
            self.engine.finalize(handle)
            raise
        return self._statement(handle, sql)

    @dumpsql
    def execute_record(self, sql: str, record: Any, *names: str) -> Statement:
        """Prepare `sql` and bind fields of `record` to its placeholders.

        Binds the named fields in the order given, or every field in
        declaration order when no names are given. Each value is bound with
        the call matching the field's declared type, so an `Int64` field is
        bound as a 64-bit integer even when its value is small.
        """
        descriptors = record_fields(type(record))
        if names:
            selected = []
            for name in names:
                descriptor = find_field(type(record), name)
                if descriptor is None:
                    raise BindError(f'{type(record).__name__} has no field {name}')
                selected.append(descriptor)
            descriptors = tuple(selected)

        sql = standardize_placeholders(sql)
        handle = self._prepare(sql)
        try:
            for position, descriptor in enumerate(descriptors, start=1):
                bind_field(self.engine, handle, position, descriptor, descriptor.read(record))
        except BindError:
            self.engine.finalize(handle)
            raise
        return self._statement(handle, sql)

    def run(self, sql: str, *args: Any) -> int:
        """Execute `sql` to completion and return the number of changed rows."""
        with self.execute(sql, *args) as statement:
            return statement.run()


@load_options(cls=ConnectionOptions)
def connect(options: ConnectionOptions | dict[str, Any] | str,
            config: Any | None = None, **kw: Any) -> Connection:
    """Open a database connection

    Args:
        options: Can be:
                - ConnectionOptions object
                - String path to configuration
                - Dictionary of options
                - Options specified as keyword arguments
        config: Configuration object (for loading from config files)
        **kw: Additional keyword arguments to override options

    Returns
        An open Connection

    Raises
        ConnectionError: The database cannot be opened
    """
    if isinstance(options, ConnectionOptions):
        for field in fields(options):
            kw.pop(field.name, None)
    else:
        options_func = load_options(cls=ConnectionOptions)(lambda o, c: o)
        options = options_func(options, config, **kw)

    return Connection(options).open()
