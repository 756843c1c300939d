"""
Row-to-record marshalling over an embedded SQL engine.

Execute parameterized SQL and read each result row into your own record
classes, matched by column name:

    @dataclass
    class Person:
        id: int = 0
        name: str = ''

    with rowbind.connect({'database': 'people.db'}) as cn:
        ada = cn.execute('SELECT id, name FROM person WHERE id = ?', 42).fetch_one(Person)
        everyone = cn.execute('SELECT * FROM person').collect_into([], Person)
"""
__version__ = '0.1.0'

from rowbind.connection import Connection, ConnectionState, connect
from rowbind.engine import OpenMode
from rowbind.exceptions import BindError, ConnectionError, DatabaseError
from rowbind.exceptions import EngineError, NoRowError, QueryError
from rowbind.exceptions import RowFetchError, TypeConversionError
from rowbind.exceptions import is_transient_error
from rowbind.options import ConnectionOptions
from rowbind.record import FieldDescriptor, FieldEnumerable, Int32, Int64
from rowbind.record import ScalarType, make_record_type, new_record
from rowbind.record import record_fields
from rowbind.statement import CursorState, Statement, TypedView

__all__ = [
    'connect',
    'Connection',
    'ConnectionState',
    'ConnectionOptions',
    'OpenMode',
    'Statement',
    'CursorState',
    'TypedView',
    'Int32',
    'Int64',
    'ScalarType',
    'FieldDescriptor',
    'FieldEnumerable',
    'record_fields',
    'new_record',
    'make_record_type',
    'DatabaseError',
    'EngineError',
    'ConnectionError',
    'QueryError',
    'BindError',
    'RowFetchError',
    'NoRowError',
    'TypeConversionError',
    'is_transient_error',
]
