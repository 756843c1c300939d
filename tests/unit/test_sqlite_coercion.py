"""
Tests for the SQLite column value coercions used by the typed readers.
"""
import math

import pytest
from rowbind.engine.base import StorageClass
from rowbind.engine.sqlite import format_real, storage_class, to_double
from rowbind.engine.sqlite import to_int32, to_int64, to_text


@pytest.mark.parametrize(('value', 'expected'), [
    (None, 0),
    (42, 42),
    (-7, -7),
    (3.9, 3),
    (-3.9, -3),
    (1e30, 2**63 - 1),
    (-1e30, -2**63),
    (math.nan, 0),
    ('123abc', 123),
    ('  -45', -45),
    ('abc', 0),
    ('', 0),
    (b'77', 77),
])
def test_to_int64(value, expected):
    """Test integer coercion from every storage class"""
    assert to_int64(value) == expected


@pytest.mark.parametrize(('value', 'expected'), [
    (5, 5),
    (2**31 - 1, 2**31 - 1),
    (2**31, -2**31),
    (2**32 + 5, 5),
    (-2**31 - 1, 2**31 - 1),
    (None, 0),
])
def test_to_int32_keeps_low_bits(value, expected):
    """Test 32-bit reads keep the low 32 bits of the 64-bit value"""
    assert to_int32(value) == expected


@pytest.mark.parametrize(('value', 'expected'), [
    (None, 0.0),
    (2, 2.0),
    (2.5, 2.5),
    ('1.5e3xyz', 1500.0),
    ('.25', 0.25),
    ('x', 0.0),
])
def test_to_double(value, expected):
    """Test double coercion"""
    assert to_double(value) == expected


@pytest.mark.parametrize(('value', 'expected'), [
    (1.0, '1.0'),
    (2.5, '2.5'),
    (0.1, '0.1'),
    (1e20, '1.0e+20'),
    (1.5e-7, '1.5e-07'),
    (math.inf, 'Inf'),
    (-math.inf, '-Inf'),
])
def test_format_real(value, expected):
    """Test doubles render as text the way SQLite prints them"""
    assert format_real(value) == expected


def test_to_text():
    """Test text coercion"""
    assert to_text(None) == ''
    assert to_text('Ada') == 'Ada'
    assert to_text(42) == '42'
    assert to_text(3.0) == '3.0'
    assert to_text(b'raw') == 'raw'
    assert to_text('a\x00b') == 'a\x00b'


def test_storage_class():
    """Test storage classes of driver values"""
    assert storage_class(None) is StorageClass.NULL
    assert storage_class(1) is StorageClass.INTEGER
    assert storage_class(1.0) is StorageClass.FLOAT
    assert storage_class('x') is StorageClass.TEXT
    assert storage_class(b'x') is StorageClass.BLOB


if __name__ == '__main__':
    __import__('pytest').main([__file__])
