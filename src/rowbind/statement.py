"""
Prepared statements and the row iteration protocol.

A Statement owns one prepared, parameter-bound engine handle and the cursor
over its results. Rows are pulled lazily, one engine step at a time, and each
row is marshalled into a record by matching result column names against the
record's field table (see `rowbind.record`).

Consumption styles:
- `fetch_one(record)` - exactly one row into a given record, NoRowError if none
- `rows(record_type)` - lazy, single-pass generator of fresh records
- `for_each(visitor)` - call `visitor` with a fresh record per row
- `collect_into(sequence)` - append a fresh record per row to `sequence`
- `typed(...)` - the same, for an ad hoc record shape given as (name, type) pairs
- `run()` - step to completion, ignoring rows, return the changed-row count

Cursor states:

    NOT_STARTED -> ROW_AVAILABLE -> ... -> EXHAUSTED
                         \\-> ERRORED (engine failure while stepping)

Once EXHAUSTED the engine is never stepped again; re-running the query takes
a fresh `Connection.execute`.
"""
import inspect
import logging
import weakref
from collections.abc import Callable, Iterator, MutableSequence
from enum import Enum
from typing import TYPE_CHECKING, Any, Self

from rowbind.engine.base import Engine, StepResult, StorageClass
from rowbind.exceptions import EngineError, NoRowError, RowFetchError
from rowbind.exceptions import TypeConversionError
from rowbind.record import FieldDescriptor, ScalarType, make_record_type
from rowbind.record import new_record, record_fields

if TYPE_CHECKING:
    from rowbind.connection import Connection

__all__ = [
    'CursorState',
    'Statement',
    'TypedView',
    'visitor_record_type',
]

logger = logging.getLogger(__name__)

INT32_MIN, INT32_MAX = -2**31, 2**31 - 1

_READERS = {
    ScalarType.INT32: 'column_int',
    ScalarType.INT64: 'column_int64',
    ScalarType.DOUBLE: 'column_double',
    ScalarType.TEXT: 'column_text',
}

# Storage classes accepted per field type when strict_types is on
_COMPATIBLE = {
    ScalarType.INT32: {StorageClass.INTEGER, StorageClass.NULL},
    ScalarType.INT64: {StorageClass.INTEGER, StorageClass.NULL},
    ScalarType.DOUBLE: {StorageClass.FLOAT, StorageClass.INTEGER, StorageClass.NULL},
    ScalarType.TEXT: {StorageClass.TEXT, StorageClass.NULL},
}


class CursorState(Enum):
    """Iteration state of a statement's result cursor."""
    NOT_STARTED = 'not-started'
    ROW_AVAILABLE = 'row-available'
    EXHAUSTED = 'exhausted'
    ERRORED = 'errored'


def _release(engine: Engine, handle: Any, sql: str) -> None:
    engine.finalize(handle)
    logger.debug(f'Finalized statement: {sql}')


def visitor_record_type(visitor: Callable[..., Any]) -> type:
    """Record type a visitor expects, read from its first parameter's annotation.

    Raises TypeError when the visitor has no usable annotation; pass
    `record_type=` explicitly in that case.
    """
    try:
        signature = inspect.signature(visitor, eval_str=True)
    except (TypeError, ValueError, NameError) as err:
        raise TypeError(f'Cannot inspect visitor {visitor!r}: {err}') from err

    positional = [p for p in signature.parameters.values()
                  if p.kind in {inspect.Parameter.POSITIONAL_ONLY,
                                inspect.Parameter.POSITIONAL_OR_KEYWORD}]
    if not positional:
        raise TypeError(f'Visitor {visitor!r} takes no positional parameter')

    annotation = positional[0].annotation
    if annotation is inspect.Parameter.empty or not isinstance(annotation, type):
        raise TypeError(f'Visitor {visitor!r} does not annotate its record parameter; '
                        'pass record_type= explicitly')
    return annotation


class Statement:
    """Prepared, bound statement together with its result cursor.

    Only `Connection.execute` creates statements. The engine handle is
    released exactly once: on `close()`, when leaving a `with` block, when the
    owning connection closes, or when the statement is garbage collected.
    """

    def __init__(self, connection: 'Connection', engine: Engine, handle: Any,
                 sql: str, strict_types: bool = False) -> None:
        """Initialize a statement around a prepared engine handle.

        Args:
            connection: The connection that prepared this statement
            engine: Engine capability the handle belongs to
            handle: Prepared and bound statement handle
            sql: SQL text, kept for logging and error messages
            strict_types: Reject columns whose storage class does not fit the field
        """
        self.connection = connection
        self.sql = sql
        self.strict_types = strict_types
        self.state = CursorState.NOT_STARTED
        self.rows_fetched = 0
        self._engine = engine
        self._handle = handle
        self._columns: list[str] | None = None
        self._finalizer = weakref.finalize(self, _release, engine, handle, sql)

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    def __repr__(self) -> str:
        return f'<Statement {self.state.value} rows={self.rows_fetched} sql={self.sql!r}>'

    @property
    def finalized(self) -> bool:
        """True once the engine handle has been released."""
        return not self._finalizer.alive

    def close(self) -> None:
        """Release the engine handle. Safe to call any number of times."""
        self._finalizer()

    @property
    def columns(self) -> list[str]:
        """Result column names, known once the statement has been stepped."""
        if self.state is CursorState.NOT_STARTED or self.finalized:
            return list(self._columns or [])
        return list(self._column_names())

    def _column_names(self) -> list[str]:
        if self._columns is None:
            try:
                count = self._engine.column_count(self._handle)
                self._columns = [self._engine.column_name(self._handle, i) for i in range(count)]
            except EngineError as err:
                raise RowFetchError(f'Error reading column names: {err.message}') from err
        return self._columns

    def _step(self) -> bool:
        """Advance the cursor one row. Returns False once exhausted."""
        if self.finalized:
            raise RowFetchError(f'Statement has been finalized: {self.sql}')
        if self.state is CursorState.EXHAUSTED:
            return False
        if self.state is CursorState.ERRORED:
            raise RowFetchError(f'Statement failed earlier and cannot continue: {self.sql}')

        try:
            result = self._engine.step(self._handle)
        except EngineError as err:
            self.state = CursorState.ERRORED
            logger.error(f'Error fetching row:\nSQL:\n{self.sql}\nerror: {err.message}')
            raise RowFetchError(f'Error fetching row: {err.message}') from err

        if result is StepResult.ROW:
            self.state = CursorState.ROW_AVAILABLE
            self.rows_fetched += 1
            return True

        self.state = CursorState.EXHAUSTED
        logger.debug(f'Statement exhausted after {self.rows_fetched} rows')
        return False

    def _check_storage(self, index: int, column: str, descriptor: FieldDescriptor) -> None:
        storage = self._engine.column_type(self._handle, index)
        if storage not in _COMPATIBLE[descriptor.scalar]:
            raise TypeConversionError(
                f'Column {column} holds {storage.name} which does not fit '
                f'{descriptor.scalar.value} field {descriptor.name}')
        if descriptor.scalar is ScalarType.INT32 and storage is StorageClass.INTEGER:
            value = self._engine.column_int64(self._handle, index)
            if not INT32_MIN <= value <= INT32_MAX:
                raise TypeConversionError(
                    f'Column {column} value {value} does not fit int32 field {descriptor.name}')

    def _read_column(self, index: int, column: str, descriptor: FieldDescriptor) -> Any:
        try:
            if self.strict_types:
                self._check_storage(index, column, descriptor)
            reader = getattr(self._engine, _READERS[descriptor.scalar])
            return reader(self._handle, index)
        except EngineError as err:
            raise RowFetchError(f'Error reading column {column}: {err.message}') from err

    def _populate(self, record: Any, descriptors: tuple[FieldDescriptor, ...]) -> None:
        """Copy the current row into `record`, matching columns to fields by name.

        Each column goes to the first field with the same name that this row
        has not filled yet. Unmatched columns are skipped and unmatched fields
        keep their value.
        """
        filled = [False] * len(descriptors)
        for index, column in enumerate(self._column_names()):
            for position, descriptor in enumerate(descriptors):
                if not filled[position] and descriptor.name == column:
                    descriptor.write(record, self._read_column(index, column, descriptor))
                    filled[position] = True
                    break

    def fetch_one(self, record: Any) -> Any:
        """Step exactly once and populate `record` from the row.

        Args:
            record: Record instance to fill in place, or a record class to
                    construct a fresh instance of

        Returns
            The populated record

        Raises
            NoRowError: The step did not produce a row
            RowFetchError: The engine failed while stepping

        The cursor is left on the fetched row.
        """
        if isinstance(record, type):
            record = new_record(record)
        descriptors = record_fields(type(record))

        if not self._step():
            raise NoRowError(f'Query returned no row: {self.sql}')

        self._populate(record, descriptors)
        return record

    def rows(self, record_type: type) -> Iterator[Any]:
        """Lazily yield a fresh `record_type` instance per remaining row.

        Single pass: a second call after exhaustion yields nothing.
        """
        descriptors = record_fields(record_type)
        return self._iter_rows(record_type, descriptors)

    def _iter_rows(self, record_type: type,
                   descriptors: tuple[FieldDescriptor, ...]) -> Iterator[Any]:
        while self._step():
            record = new_record(record_type)
            self._populate(record, descriptors)
            yield record

    def for_each(self, visitor: Callable[[Any], Any], record_type: type | None = None) -> None:
        """Call `visitor` with a freshly built record for every remaining row.

        The record type is `record_type`, or else the annotation of the
        visitor's first parameter. Runs until the cursor is exhausted; the
        visitor's return value is ignored.
        """
        if record_type is None:
            record_type = visitor_record_type(visitor)
        for record in self.rows(record_type):
            visitor(record)

    def collect_into(self, sequence: MutableSequence[Any],
                     record_type: type | None = None) -> MutableSequence[Any]:
        """Append a record per remaining row to the end of `sequence`.

        Existing elements are kept. The record type is `record_type`, or the
        type of the elements already in `sequence`.
        """
        if record_type is None:
            if not sequence:
                raise TypeError('Cannot infer the record type from an empty sequence; '
                                'pass record_type= explicitly')
            record_type = type(sequence[-1])
        for record in self.rows(record_type):
            sequence.append(record)
        return sequence

    def typed(self, *field_specs: tuple[str, Any], **named_specs: Any) -> 'TypedView':
        """View this statement's rows as records of an ad hoc shape.

        Args:
            *field_specs: (name, type) pairs
            **named_specs: name=type pairs, after the positional ones

        Example:
            for row in cn.execute('SELECT id, name FROM t').typed(id=int, name=str):
                print(row.id, row.name)
        """
        specs = []
        for spec in field_specs:
            try:
                name, annotation = spec
            except (TypeError, ValueError):
                raise TypeError(f'Field spec must be a (name, type) pair, got {spec!r}') from None
            specs.append((name, annotation))
        specs.extend(named_specs.items())
        return TypedView(self, make_record_type(tuple(specs)))

    def run(self) -> int:
        """Step to completion discarding rows; return the engine's changed-row count."""
        while self._step():
            pass
        try:
            return self._engine.changes(self._handle)
        except EngineError as err:
            raise RowFetchError(f'Error reading change count: {err.message}') from err


class TypedView:
    """Rows of a statement as records of a synthesized shape."""

    def __init__(self, statement: Statement, record_type: type) -> None:
        self.statement = statement
        self.record_type = record_type

    def __iter__(self) -> Iterator[Any]:
        return self.rows()

    def rows(self) -> Iterator[Any]:
        return self.statement.rows(self.record_type)

    def for_each(self, visitor: Callable[[Any], Any]) -> None:
        self.statement.for_each(visitor, self.record_type)

    def collect_into(self, sequence: MutableSequence[Any]) -> MutableSequence[Any]:
        return self.statement.collect_into(sequence, self.record_type)

    def fetch_one(self) -> Any:
        return self.statement.fetch_one(self.record_type)
