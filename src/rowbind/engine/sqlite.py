"""
SQLite engine implementation.

Implements the Engine capability surface on top of the standard library
`sqlite3` driver, with the database connection acquired through a SQLAlchemy
engine. It handles the places where the DB-API hides SQLite's native
statement lifecycle:

- Preparation compiles an EXPLAIN of the statement, so malformed SQL is
  rejected before anything is bound or executed and without side effects
- Bindings collect into a parameter slot list sized from the placeholder count
- The statement runs on the first step and fetches one row per step
- Typed column readers reproduce SQLite's own value coercions
"""
import logging
import math
import re
import sqlite3
from typing import Any
from urllib.parse import quote

import sqlalchemy as sa
from rowbind.engine.base import Engine, OpenMode, ResultCode, StepResult
from rowbind.engine.base import StorageClass, register_engine
from rowbind.exceptions import EngineError
from rowbind.sql import count_placeholders, is_explain, named_placeholders
from sqlalchemy.pool import NullPool

logger = logging.getLogger(__name__)

INT32_MIN, INT32_MAX = -2**31, 2**31 - 1
INT64_MIN, INT64_MAX = -2**63, 2**63 - 1

_INT_PREFIX = re.compile(r'\s*([+-]?\d+)')
_FLOAT_PREFIX = re.compile(r'\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)')

_DRIVER_ERRORS = (sqlite3.Error, sqlite3.Warning)


def _result_code(err: BaseException) -> ResultCode:
    """Extract the primary SQLite result code from a driver exception."""
    code = getattr(err, 'sqlite_errorcode', None)
    if code is None:
        return ResultCode.ERROR
    try:
        return ResultCode(code & 0xff)
    except ValueError:
        return ResultCode.ERROR


def _clamp_int64(value: int) -> int:
    return max(INT64_MIN, min(INT64_MAX, value))


def to_int64(value: Any) -> int:
    """Coerce a column value to a 64-bit integer the way SQLite does.

    NULL is 0, reals truncate toward zero (saturating), and text or blobs
    yield their leading integer prefix or 0.
    """
    if value is None:
        return 0
    if isinstance(value, int):
        return _clamp_int64(value)
    if isinstance(value, float):
        if math.isnan(value):
            return 0
        if value >= 2.0**63:
            return INT64_MAX
        if value <= -2.0**63:
            return INT64_MIN
        return int(value)
    if isinstance(value, bytes):
        value = value.decode('latin-1')
    match = _INT_PREFIX.match(value)
    return _clamp_int64(int(match.group(1))) if match else 0


def to_int32(value: Any) -> int:
    """Coerce a column value to a 32-bit integer (low 32 bits of the 64-bit value)."""
    low = to_int64(value) & 0xFFFFFFFF
    return low - 2**32 if low > INT32_MAX else low


def to_double(value: Any) -> float:
    """Coerce a column value to a double the way SQLite does."""
    if value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, bytes):
        value = value.decode('latin-1')
    match = _FLOAT_PREFIX.match(value)
    return float(match.group(1)) if match else 0.0


def format_real(value: float) -> str:
    """Render a double as text using SQLite's `%!.15g` conventions."""
    if math.isinf(value):
        return 'Inf' if value > 0 else '-Inf'
    text = f'{value:.15g}'
    if 'e' in text:
        mantissa, exponent = text.split('e')
        if '.' not in mantissa:
            mantissa += '.0'
        return f'{mantissa}e{exponent}'
    if '.' not in text and 'n' not in text:
        text += '.0'
    return text


def to_text(value: Any) -> str:
    """Coerce a column value to text the way SQLite does. NULL is empty."""
    if value is None:
        return ''
    if isinstance(value, str):
        return value
    if isinstance(value, float):
        return format_real(value)
    if isinstance(value, bytes):
        return value.decode('utf-8', errors='replace')
    return str(value)


def storage_class(value: Any) -> StorageClass:
    """Storage class of a value returned by the driver."""
    if value is None:
        return StorageClass.NULL
    if isinstance(value, int):
        return StorageClass.INTEGER
    if isinstance(value, float):
        return StorageClass.FLOAT
    if isinstance(value, str):
        return StorageClass.TEXT
    return StorageClass.BLOB


class SqliteHandle:
    """Open database handle: the SQLAlchemy engine and the driver connection it handed out."""

    __slots__ = ('location', 'sa_engine', 'raw_connection', 'connection')

    def __init__(self, location: str, sa_engine: Any, raw_connection: Any) -> None:
        self.location = location
        self.sa_engine = sa_engine
        self.raw_connection = raw_connection
        self.connection = raw_connection.driver_connection


class SqliteStatement:
    """Prepared statement handle: SQL text, parameter slots and the driver cursor."""

    __slots__ = ('sql', 'cursor', 'params', 'executed', 'row', 'finalized')

    def __init__(self, sql: str, cursor: sqlite3.Cursor, slots: int) -> None:
        self.sql = sql
        self.cursor = cursor
        self.params: list[Any] = [None] * slots
        self.executed = False
        self.row: tuple | None = None
        self.finalized = False


@register_engine('sqlite')
class SqliteEngine(Engine):
    """SQLite through `sqlite3`, connections acquired from SQLAlchemy.
    """

    def __init__(self, url_creator=sa.URL.create, engine_factory=sa.create_engine) -> None:
        """Initialize the engine.

        Args:
            url_creator: Function used to create URL objects (default: sqlalchemy.URL.create)
            engine_factory: Function to create engines (default: sqlalchemy.create_engine)
        """
        self.url_creator = url_creator
        self.engine_factory = engine_factory

    @property
    def name(self) -> str:
        return 'sqlite'

    def build_url(self, location: str, mode: OpenMode) -> sa.URL:
        """Build the SQLAlchemy URL for a location and access mode.

        A plain `:memory:` location opens a private in-memory database; any
        other location is opened as a `file:` URI carrying the access mode, with
        the path percent-encoded so `#`, `?` and `%` stay part of the file name.
        """
        if location == ':memory:' and not mode & OpenMode.MEMORY:
            return self.url_creator(drivername='sqlite', database=':memory:')
        return self.url_creator(
            drivername='sqlite',
            database=f'file:{quote(location)}',
            query={'mode': mode.uri_mode, 'uri': 'true'}
        )

    def open(self, location: str, mode: OpenMode, timeout: float) -> SqliteHandle:
        url = self.build_url(location, mode)
        sa_engine = self.engine_factory(
            url,
            poolclass=NullPool,
            connect_args={'timeout': timeout, 'check_same_thread': False},
        )
        try:
            raw_connection = sa_engine.raw_connection()
        except sa.exc.DBAPIError as err:
            sa_engine.dispose()
            raise EngineError(_result_code(err.orig),
                              f'Cannot open database {location}: {err.orig}') from err

        handle = SqliteHandle(location, sa_engine, raw_connection)
        # The layer runs every statement in autocommit; no implicit BEGIN.
        handle.connection.isolation_level = None
        logger.debug(f'Opened SQLite database {location} (mode={mode.uri_mode})')
        return handle

    def close(self, handle: SqliteHandle) -> None:
        try:
            handle.raw_connection.close()
        except _DRIVER_ERRORS as err:
            raise EngineError(_result_code(err), str(err)) from err
        finally:
            handle.sa_engine.dispose()
        logger.debug(f'Closed SQLite database {handle.location}')

    def prepare(self, handle: SqliteHandle, sql: str) -> SqliteStatement:
        if not sql.strip():
            raise EngineError(ResultCode.MISUSE, 'empty statement')
        named = named_placeholders(sql)
        if named:
            raise EngineError(ResultCode.MISUSE,
                              f'named placeholders are not supported, use ? or ?NNN: {named}')

        slots = count_placeholders(sql)
        probe = sql if is_explain(sql) else f'EXPLAIN {sql}'
        cursor = handle.connection.cursor()
        try:
            cursor.execute(probe, (None,) * slots)
        except _DRIVER_ERRORS as err:
            cursor.close()
            raise EngineError(_result_code(err), str(err)) from err
        return SqliteStatement(sql, cursor, slots)

    def finalize(self, stmt: SqliteStatement) -> None:
        if stmt.finalized:
            return
        stmt.finalized = True
        stmt.row = None
        try:
            stmt.cursor.close()
        except sqlite3.ProgrammingError:
            # connection already closed, which closed the cursor with it
            pass

    def _slot(self, stmt: SqliteStatement, position: int) -> None:
        if stmt.finalized:
            raise EngineError(ResultCode.MISUSE, 'statement has been finalized')
        if stmt.executed:
            raise EngineError(ResultCode.MISUSE, 'cannot bind a statement that has started')
        self.check_position(position, len(stmt.params))

    def bind_int(self, stmt: SqliteStatement, position: int, value: int) -> None:
        self._slot(stmt, position)
        if not INT32_MIN <= value <= INT32_MAX:
            raise EngineError(ResultCode.MISMATCH, f'{value} does not fit a 32-bit integer')
        stmt.params[position - 1] = int(value)

    def bind_int64(self, stmt: SqliteStatement, position: int, value: int) -> None:
        self._slot(stmt, position)
        if not INT64_MIN <= value <= INT64_MAX:
            raise EngineError(ResultCode.TOOBIG, f'{value} does not fit a 64-bit integer')
        stmt.params[position - 1] = int(value)

    def bind_double(self, stmt: SqliteStatement, position: int, value: float) -> None:
        self._slot(stmt, position)
        stmt.params[position - 1] = float(value)

    def bind_text(self, stmt: SqliteStatement, position: int, data: bytes, length: int) -> None:
        self._slot(stmt, position)
        try:
            stmt.params[position - 1] = bytes(data[:length]).decode('utf-8')
        except UnicodeDecodeError as err:
            raise EngineError(ResultCode.MISMATCH, f'text is not valid UTF-8: {err}') from err

    def bind_null(self, stmt: SqliteStatement, position: int) -> None:
        self._slot(stmt, position)
        stmt.params[position - 1] = None

    def step(self, stmt: SqliteStatement) -> StepResult:
        if stmt.finalized:
            raise EngineError(ResultCode.MISUSE, 'statement has been finalized')
        try:
            if not stmt.executed:
                stmt.executed = True
                stmt.cursor.execute(stmt.sql, stmt.params)
            stmt.row = stmt.cursor.fetchone()
        except _DRIVER_ERRORS as err:
            stmt.row = None
            raise EngineError(_result_code(err), str(err)) from err
        return StepResult.DONE if stmt.row is None else StepResult.ROW

    def column_count(self, stmt: SqliteStatement) -> int:
        if not stmt.executed or stmt.cursor.description is None:
            return 0
        return len(stmt.cursor.description)

    def column_name(self, stmt: SqliteStatement, index: int) -> str:
        if not 0 <= index < self.column_count(stmt):
            raise EngineError(ResultCode.RANGE, f'column index {index} out of range')
        return stmt.cursor.description[index][0]

    def _value(self, stmt: SqliteStatement, index: int) -> Any:
        if stmt.row is None:
            raise EngineError(ResultCode.MISUSE, 'no current row')
        if not 0 <= index < len(stmt.row):
            raise EngineError(ResultCode.RANGE, f'column index {index} out of range')
        return stmt.row[index]

    def column_type(self, stmt: SqliteStatement, index: int) -> StorageClass:
        return storage_class(self._value(stmt, index))

    def column_int(self, stmt: SqliteStatement, index: int) -> int:
        return to_int32(self._value(stmt, index))

    def column_int64(self, stmt: SqliteStatement, index: int) -> int:
        return to_int64(self._value(stmt, index))

    def column_double(self, stmt: SqliteStatement, index: int) -> float:
        return to_double(self._value(stmt, index))

    def column_text(self, stmt: SqliteStatement, index: int) -> str:
        return to_text(self._value(stmt, index))

    def changes(self, stmt: SqliteStatement) -> int:
        return max(stmt.cursor.rowcount, 0)
