"""
Fixtures for SQLite-specific integration tests.
"""
import pytest
import rowbind


@pytest.fixture
def typed_conn(sl_conn):
    """In-memory connection with a table holding one column per scalar type."""
    sl_conn.run("""
    CREATE TABLE sample (
        id INTEGER PRIMARY KEY,
        total INTEGER,
        score REAL,
        label TEXT
    )
    """)
    return sl_conn


@pytest.fixture
def strict_conn():
    """In-memory connection that rejects storage class mismatches."""
    with rowbind.connect({'database': ':memory:', 'strict_types': True}) as conn:
        conn.run('CREATE TABLE t (id INTEGER, name TEXT)')
        yield conn
