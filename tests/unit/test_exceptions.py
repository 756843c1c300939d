import sqlite3

import pytest
from rowbind.engine.base import ResultCode
from rowbind.exceptions import BindError, ConnectionError, DatabaseError
from rowbind.exceptions import EngineError, NoRowError, QueryError
from rowbind.exceptions import RowFetchError, TypeConversionError
from rowbind.exceptions import is_transient_error


@pytest.mark.parametrize('message', [
    'database is locked',
    'database table is locked',
    'Error fetching row: database is busy',
    'busy timeout expired',
    'operation timed out',
])
def test_transient_errors(message):
    """Test lock and busy failures are reported as transient"""
    assert is_transient_error(RowFetchError(message))
    assert is_transient_error(sqlite3.OperationalError(message))


@pytest.mark.parametrize('exc', [
    QueryError('near "SELEC": syntax error'),
    RowFetchError('UNIQUE constraint failed: t.id'),
    ConnectionError('unable to open database file'),
    ValueError('bad value'),
])
def test_permanent_errors(exc):
    """Test errors that would fail again are not transient"""
    assert not is_transient_error(exc)


@pytest.mark.parametrize('cls', [NoRowError, BindError, TypeConversionError])
def test_never_transient_classes(cls):
    """Test caller-side errors are never transient whatever the message"""
    assert not is_transient_error(cls('database is locked'))


def test_engine_error_carries_code():
    """Test EngineError keeps its result code and message"""
    err = EngineError(ResultCode.BUSY, 'database is busy')
    assert err.code is ResultCode.BUSY
    assert err.message == 'database is busy'
    assert str(err) == 'database is busy'


def test_hierarchy():
    """Test every public error derives from DatabaseError"""
    for cls in (EngineError, ConnectionError, QueryError, BindError,
                RowFetchError, NoRowError, TypeConversionError):
        assert issubclass(cls, DatabaseError)


if __name__ == '__main__':
    __import__('pytest').main([__file__])
