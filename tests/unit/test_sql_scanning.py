"""
Tests for placeholder counting and rewriting.
"""
import pytest
from rowbind.sql import TokenType, count_placeholders, is_explain
from rowbind.sql import named_placeholders, standardize_placeholders, tokenize_sql


@pytest.mark.parametrize(('sql', 'expected'), [
    ('SELECT 1', 0),
    ('SELECT id, name FROM t WHERE id = ?', 1),
    ('INSERT INTO t (id, name) VALUES (?, ?)', 2),
    ('SELECT ?, %s', 2),
    ("SELECT '?' AS q, ? AS v", 1),
    ("SELECT 'it''s ?' , ?", 1),
    ('SELECT "odd?name" FROM t WHERE id = ?', 1),
    ('SELECT [a?] FROM t', 0),
    ('SELECT 1 -- what?\n, ?', 1),
    ('SELECT /* ? ? */ ?', 1),
    ('SELECT ?3', 3),
    ('SELECT ?2, ?', 3),
    ('SELECT :a, :b, :a', 2),
    ('SELECT @x, $y', 2),
])
def test_count_placeholders(sql, expected):
    """Test slot counting follows SQLite numbering and skips literals and comments"""
    assert count_placeholders(sql) == expected


def test_tokenize_preserves_text():
    """Test that joining token text reproduces the input"""
    sql = "SELECT 'a?', \"b\" FROM t -- c\nWHERE x = ? /* d */"
    tokens = tokenize_sql(sql)
    assert ''.join(t.text for t in tokens) == sql
    assert [t.type for t in tokens if t.type == TokenType.POSITIONAL_PH] == [TokenType.POSITIONAL_PH]


def test_named_placeholders():
    """Test named placeholders are listed once each, skipping literals"""
    assert named_placeholders('SELECT :a, @b, $c, :a') == [':a', '@b', '$c']
    assert named_placeholders("SELECT ':a', ? -- :b") == []
    assert named_placeholders('SELECT ?1, ?') == []


def test_standardize_placeholders():
    """Test %s placeholders become ? outside literals only"""
    assert standardize_placeholders('SELECT %s, %s') == 'SELECT ?, ?'
    assert standardize_placeholders("SELECT '%s', %s") == "SELECT '%s', ?"
    sql = 'SELECT ? FROM t'
    assert standardize_placeholders(sql) is sql


def test_is_explain():
    """Test EXPLAIN detection"""
    assert is_explain('EXPLAIN SELECT 1')
    assert is_explain('  explain query plan SELECT 1')
    assert not is_explain('SELECT explain FROM t')
    assert not is_explain('EXPLAINED')
    assert is_explain('/* plan */ EXPLAIN SELECT 1')
    assert is_explain('-- plan\n  EXPLAIN QUERY PLAN SELECT 1')
    assert not is_explain('/* EXPLAIN */ SELECT 1')
    assert not is_explain('')


if __name__ == '__main__':
    __import__('pytest').main([__file__])
