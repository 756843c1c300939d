"""
Tests for record field tables, record construction and synthesized shapes.
"""
from dataclasses import dataclass, field
from typing import ClassVar

import pytest
from rowbind.exceptions import TypeConversionError
from rowbind.record import FieldDescriptor, FieldEnumerable, Int32, Int64
from rowbind.record import ScalarType, find_field, make_record_type
from rowbind.record import new_record, record_fields, scalar_type


@dataclass
class Person:
    id: int = 0
    name: str = ''


@dataclass
class Measurement:
    sensor: Int32
    reading: float
    ticks: Int64 = 7
    label: str = 'n/a'
    tags: list = field(default_factory=list, init=False, repr=False)
    unit: ClassVar[str] = 'mm'


class Plain:
    code: str
    count: Int32 = 3
    registry: ClassVar[dict] = {}


class Declared:
    __record_fields__ = (
        FieldDescriptor('class', ScalarType.TEXT, attr='class_'),
        FieldDescriptor.of('id', Int32),
    )

    def __init__(self):
        self.class_ = 'none'


def test_scalar_type_mapping():
    """Test supported annotations resolve to scalar types"""
    assert scalar_type(int) is ScalarType.INT64
    assert scalar_type(Int64) is ScalarType.INT64
    assert scalar_type(Int32) is ScalarType.INT32
    assert scalar_type(float) is ScalarType.DOUBLE
    assert scalar_type(str) is ScalarType.TEXT
    assert scalar_type(ScalarType.TEXT) is ScalarType.TEXT


@pytest.mark.parametrize('annotation', [bool, bytes, list[int], int | None, 'int'])
def test_scalar_type_rejects_unsupported(annotation):
    """Test anything outside the four scalar types is rejected"""
    with pytest.raises(TypeConversionError):
        scalar_type(annotation)


def test_dataclass_fields_in_declaration_order():
    """Test a dataclass yields one descriptor per field, in order"""
    descriptors = record_fields(Person)
    assert [(d.name, d.scalar) for d in descriptors] == [
        ('id', ScalarType.INT64),
        ('name', ScalarType.TEXT),
    ]


def test_dataclass_with_unsupported_field_rejected():
    """Test a dataclass holding a list field cannot be used as a record"""
    with pytest.raises(TypeConversionError):
        record_fields(Measurement)


def test_plain_class_annotations_skip_classvar():
    """Test annotated plain classes are usable and ClassVar is ignored"""
    assert [(d.name, d.scalar) for d in record_fields(Plain)] == [
        ('code', ScalarType.TEXT),
        ('count', ScalarType.INT32),
    ]


def test_declared_field_table():
    """Test an explicit __record_fields__ table is used as is"""
    descriptors = record_fields(Declared)
    assert descriptors[0].name == 'class'
    assert descriptors[0].attribute == 'class_'
    assert descriptors[1].attribute == 'id'
    assert isinstance(Declared(), FieldEnumerable)
    assert not isinstance(Person(), FieldEnumerable)


def test_declared_table_must_hold_descriptors():
    """Test a malformed declared table is rejected"""
    class Broken:
        __record_fields__ = (('id', int),)

    with pytest.raises(TypeConversionError):
        record_fields(Broken)


def test_record_fields_requires_a_class():
    """Test passing an instance is rejected"""
    with pytest.raises(TypeConversionError):
        record_fields(Person())


def test_record_without_fields_rejected():
    """Test a class with no fields cannot be a record"""
    class Empty:
        pass

    with pytest.raises(TypeConversionError):
        record_fields(Empty)


def test_descriptor_read_write():
    """Test descriptors read and write through the attribute"""
    record = Declared()
    descriptor = find_field(Declared, 'class')
    descriptor.write(record, 'first')
    assert record.class_ == 'first'
    assert descriptor.read(record) == 'first'
    assert find_field(Declared, 'missing') is None


def test_new_record_keeps_defaults():
    """Test fresh records start from declared defaults"""
    assert new_record(Person) == Person(0, '')


def test_new_record_fills_required_fields_with_zero():
    """Test dataclass fields without defaults start at their zero value"""
    @dataclass
    class Reading:
        sensor: Int32
        value: float
        label: str
        ticks: Int64 = 7

    record = new_record(Reading)
    assert record == Reading(sensor=0, value=0.0, label='', ticks=7)


def test_new_record_plain_class():
    """Test plain classes get zero values for unset annotated fields"""
    record = new_record(Plain)
    assert record.code == ''
    assert record.count == 3


def test_new_record_returns_distinct_instances():
    """Test every call builds a new instance"""
    assert new_record(Person) is not new_record(Person)


def test_make_record_type():
    """Test synthesized shapes default to zero values and are cached"""
    Row = make_record_type((('id', int), ('name', str), ('score', float), ('rank', Int32)))
    row = Row()
    assert (row.id, row.name, row.score, row.rank) == (0, '', 0.0, 0)
    assert [(d.name, d.scalar) for d in record_fields(Row)] == [
        ('id', ScalarType.INT64),
        ('name', ScalarType.TEXT),
        ('score', ScalarType.DOUBLE),
        ('rank', ScalarType.INT32),
    ]
    assert make_record_type((('id', int), ('name', str), ('score', float), ('rank', Int32))) is Row


@pytest.mark.parametrize('specs', [
    (),
    (('id', int), ('id', str)),
    (('count(*)', int),),
    (('id', bool),),
])
def test_make_record_type_rejects_bad_shapes(specs):
    """Test empty, duplicated, non-identifier and unsupported specs are rejected"""
    with pytest.raises(TypeConversionError):
        make_record_type(specs)


if __name__ == '__main__':
    __import__('pytest').main([__file__])
