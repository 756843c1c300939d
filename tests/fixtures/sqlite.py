import pathlib

import pytest
import rowbind


@pytest.fixture
def sl_conn():
    """Create an in-memory SQLite database for testing"""
    conn = rowbind.connect({'database': ':memory:'})

    conn.run("""
    CREATE TABLE t (
        id INTEGER PRIMARY KEY,
        name TEXT NOT NULL
    )
    """)
    conn.run("INSERT INTO t (id, name) VALUES (1, 'A'), (2, 'B')")

    yield conn
    conn.close()


@pytest.fixture
def people_conn(sl_conn):
    """In-memory database whose table t also holds (42, 'Ada')"""
    sl_conn.run('INSERT INTO t (id, name) VALUES (?, ?)', 42, 'Ada')
    return sl_conn


@pytest.fixture
def sqlite_file(tmp_path):
    """Path of a file database with table t, created and closed again."""
    db_file = tmp_path / 'rowbind_test.db'

    with rowbind.connect({'database': str(db_file), 'mode': 'rwc'}) as conn:
        conn.run('CREATE TABLE t (id INTEGER PRIMARY KEY, name TEXT NOT NULL)')
        conn.run("INSERT INTO t (id, name) VALUES (1, 'A'), (2, 'B')")

    yield db_file

    if pathlib.Path(db_file).exists():
        pathlib.Path(db_file).unlink()
