"""
Base interface for embedded SQL engines.

Defines the abstract base class that every engine implementation must
inherit from. The connection and statement layers talk to the embedded SQL
library only through this narrow capability surface:

    open / close                      database handle lifecycle
    prepare / finalize                statement handle lifecycle
    bind_int / bind_int64 / bind_double / bind_text / bind_null
    step                              advance the result cursor
    column_count / column_name / column_type
    column_int / column_int64 / column_double / column_text
    changes                           rows modified by a finished statement

Handles are opaque to callers. Failures are raised as `EngineError` carrying
a `ResultCode`; the callers map them onto the public error taxonomy.
"""
from abc import ABC, abstractmethod
from enum import IntEnum, IntFlag
from typing import Any

from rowbind.exceptions import EngineError

__all__ = [
    'Engine',
    'OpenMode',
    'ResultCode',
    'StepResult',
    'StorageClass',
    'register_engine',
]

# Registry of engine name -> engine class
_ENGINE_REGISTRY: dict[str, type['Engine']] = {}


class ResultCode(IntEnum):
    """Engine result codes (values follow SQLite's primary result codes)."""
    OK = 0
    ERROR = 1
    BUSY = 5
    LOCKED = 6
    MISUSE = 21
    RANGE = 25
    CANTOPEN = 14
    TOOBIG = 18
    MISMATCH = 20


class StepResult(IntEnum):
    """Outcome of a successful step."""
    ROW = 100
    DONE = 101


class StorageClass(IntEnum):
    """Storage class of a column value in the current row."""
    INTEGER = 1
    FLOAT = 2
    TEXT = 3
    BLOB = 4
    NULL = 5


class OpenMode(IntFlag):
    """Access mode flags for opening a database (SQLite open flag values)."""
    READONLY = 0x01
    READWRITE = 0x02
    CREATE = 0x04
    MEMORY = 0x80

    @classmethod
    def parse(cls, value: 'OpenMode | int | str') -> 'OpenMode':
        """Normalize a mode given as flags or as a URI mode name.

        Accepted names: `ro`, `rw`, `rwc`, `memory`.
        """
        if isinstance(value, str):
            try:
                return _MODE_NAMES[value.lower()]
            except KeyError:
                raise ValueError(f'mode must be one of: {sorted(_MODE_NAMES)}') from None
        mode = cls(value)
        if (mode & cls.READONLY) and (mode & (cls.READWRITE | cls.CREATE)):
            raise ValueError('READONLY cannot be combined with READWRITE or CREATE')
        if mode & cls.CREATE and not mode & cls.READWRITE:
            raise ValueError('CREATE requires READWRITE')
        if not mode & (cls.READONLY | cls.READWRITE | cls.MEMORY):
            raise ValueError('mode needs READONLY, READWRITE or MEMORY')
        return mode

    @property
    def uri_mode(self) -> str:
        """Mode name used in a `file:` URI."""
        if self & OpenMode.MEMORY:
            return 'memory'
        if self & OpenMode.READONLY:
            return 'ro'
        if self & OpenMode.CREATE:
            return 'rwc'
        return 'rw'


_MODE_NAMES = {
    'ro': OpenMode.READONLY,
    'rw': OpenMode.READWRITE,
    'rwc': OpenMode.READWRITE | OpenMode.CREATE,
    'memory': OpenMode.MEMORY,
}


def register_engine(name: str):
    """Decorator to register an engine class under a name.

    Usage:
        @register_engine('sqlite')
        class SqliteEngine(Engine):
            ...
    """
    def decorator(cls: type['Engine']) -> type['Engine']:
        _ENGINE_REGISTRY[name] = cls
        return cls
    return decorator


class Engine(ABC):
    """Capability surface of an embedded SQL engine.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the registry name of this engine."""

    @abstractmethod
    def open(self, location: str, mode: OpenMode, timeout: float) -> Any:
        """Open or create the database at `location`, return its handle."""

    @abstractmethod
    def close(self, handle: Any) -> None:
        """Release a database handle."""

    @abstractmethod
    def prepare(self, handle: Any, sql: str) -> Any:
        """Compile `sql` against an open handle, return a statement handle."""

    @abstractmethod
    def finalize(self, stmt: Any) -> None:
        """Release a statement handle. Must be safe after any failure."""

    @abstractmethod
    def bind_int(self, stmt: Any, position: int, value: int) -> None:
        """Bind a 32-bit integer to a 1-indexed placeholder."""

    @abstractmethod
    def bind_int64(self, stmt: Any, position: int, value: int) -> None:
        """Bind a 64-bit integer to a 1-indexed placeholder."""

    @abstractmethod
    def bind_double(self, stmt: Any, position: int, value: float) -> None:
        """Bind a double to a 1-indexed placeholder."""

    @abstractmethod
    def bind_text(self, stmt: Any, position: int, data: bytes, length: int) -> None:
        """Bind `length` bytes of UTF-8 text to a 1-indexed placeholder."""

    @abstractmethod
    def bind_null(self, stmt: Any, position: int) -> None:
        """Bind NULL to a 1-indexed placeholder."""

    @abstractmethod
    def step(self, stmt: Any) -> StepResult:
        """Advance the statement one row."""

    @abstractmethod
    def column_count(self, stmt: Any) -> int:
        """Number of result columns."""

    @abstractmethod
    def column_name(self, stmt: Any, index: int) -> str:
        """Declared name of a 0-indexed result column."""

    @abstractmethod
    def column_type(self, stmt: Any, index: int) -> StorageClass:
        """Storage class of a column value in the current row."""

    @abstractmethod
    def column_int(self, stmt: Any, index: int) -> int:
        """Column value of the current row as a 32-bit integer."""

    @abstractmethod
    def column_int64(self, stmt: Any, index: int) -> int:
        """Column value of the current row as a 64-bit integer."""

    @abstractmethod
    def column_double(self, stmt: Any, index: int) -> float:
        """Column value of the current row as a double."""

    @abstractmethod
    def column_text(self, stmt: Any, index: int) -> str:
        """Column value of the current row as text, length preserved."""

    @abstractmethod
    def changes(self, stmt: Any) -> int:
        """Rows inserted, updated or deleted by a finished statement."""

    def check_position(self, position: int, slots: int) -> None:
        """Raise a RANGE error for a placeholder index outside 1..slots."""
        if not 1 <= position <= slots:
            raise EngineError(ResultCode.RANGE,
                              f'bind position {position} out of range (statement has {slots} parameters)')
