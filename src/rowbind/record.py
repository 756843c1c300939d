"""
Record reflection for row marshalling.

A record is any caller-defined class whose fields can be listed as a table of
`FieldDescriptor`s: column-facing name, scalar type, and the attribute that
holds the value. The statement layer matches result columns against this
table and never looks at the record class itself.

The table for a class comes from, in order of preference:
1. an explicit `__record_fields__` sequence of `FieldDescriptor`s
2. dataclass fields
3. class annotations (ClassVar excluded)

Supported field types:
- `Int32` - 32-bit integer
- `Int64` or `int` - 64-bit integer
- `float` - double
- `str` - UTF-8 text
"""
import dataclasses
import logging
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Any, ClassVar, NewType, Protocol, get_origin
from typing import get_type_hints, runtime_checkable

from rowbind.exceptions import TypeConversionError

__all__ = [
    'Int32',
    'Int64',
    'ScalarType',
    'FieldDescriptor',
    'FieldEnumerable',
    'scalar_type',
    'record_fields',
    'new_record',
    'make_record_type',
    'find_field',
]

logger = logging.getLogger(__name__)

Int32 = NewType('Int32', int)
Int64 = NewType('Int64', int)


class ScalarType(Enum):
    """Scalar types a record field may hold."""
    INT32 = 'int32'
    INT64 = 'int64'
    DOUBLE = 'double'
    TEXT = 'text'

    @property
    def zero(self) -> Any:
        """Initial value for a field of this type."""
        return _ZEROS[self]

    @property
    def annotation(self) -> Any:
        """Type annotation that declares a field of this type."""
        return _ANNOTATIONS[self]


_ZEROS = {
    ScalarType.INT32: 0,
    ScalarType.INT64: 0,
    ScalarType.DOUBLE: 0.0,
    ScalarType.TEXT: '',
}

_ANNOTATIONS = {
    ScalarType.INT32: Int32,
    ScalarType.INT64: Int64,
    ScalarType.DOUBLE: float,
    ScalarType.TEXT: str,
}

_SCALAR_TYPES = {
    Int32: ScalarType.INT32,
    Int64: ScalarType.INT64,
    int: ScalarType.INT64,
    float: ScalarType.DOUBLE,
    str: ScalarType.TEXT,
}


def scalar_type(annotation: Any) -> ScalarType:
    """Resolve a field annotation to its scalar type.

    Raises TypeConversionError for anything outside the supported set.
    """
    if isinstance(annotation, ScalarType):
        return annotation
    try:
        return _SCALAR_TYPES[annotation]
    except (KeyError, TypeError):
        raise TypeConversionError(
            f'Unsupported field type {annotation!r}; '
            'use Int32, Int64, int, float or str') from None


@dataclass(frozen=True, slots=True)
class FieldDescriptor:
    """One entry of a record's field table.

    Attributes:
        name: Name matched against result column names (case-sensitive)
        scalar: Scalar type, selects the column reader and the bind call
        attr: Attribute holding the value (defaults to `name`)
    """
    name: str
    scalar: ScalarType
    attr: str | None = None

    @classmethod
    def of(cls, name: str, annotation: Any, attr: str | None = None) -> 'FieldDescriptor':
        """Build a descriptor from a type annotation such as `int` or `Int32`."""
        return cls(name, scalar_type(annotation), attr)

    @property
    def attribute(self) -> str:
        return self.attr or self.name

    def read(self, record: Any) -> Any:
        """Current value of this field on `record`."""
        return getattr(record, self.attribute)

    def write(self, record: Any, value: Any) -> None:
        """Store `value` into this field on `record`."""
        setattr(record, self.attribute, value)


@runtime_checkable
class FieldEnumerable(Protocol):
    """Record type that declares its own field table."""
    __record_fields__: ClassVar[tuple[FieldDescriptor, ...]]


def _is_classvar(hint: Any) -> bool:
    return hint is ClassVar or get_origin(hint) is ClassVar


def _derive_fields(record_type: type) -> tuple[FieldDescriptor, ...]:
    hints = get_type_hints(record_type)
    if dataclasses.is_dataclass(record_type):
        return tuple(FieldDescriptor.of(f.name, hints[f.name])
                     for f in dataclasses.fields(record_type))
    return tuple(FieldDescriptor.of(name, hint)
                 for name, hint in hints.items()
                 if not _is_classvar(hint))


def record_fields(record_type: type) -> tuple[FieldDescriptor, ...]:
    """Return the field table of a record type, in declaration order.

    Parameters
        record_type: Record class

    Returns
        Tuple of FieldDescriptor

    Raises
        TypeConversionError: if a field has an unsupported type or the class
        declares no fields at all
    """
    if not isinstance(record_type, type):
        raise TypeConversionError(f'Expected a record class, got {record_type!r}')
    return _record_fields(record_type)


@lru_cache(maxsize=None)
def _record_fields(record_type: type) -> tuple[FieldDescriptor, ...]:
    declared = getattr(record_type, '__record_fields__', None)
    if declared is not None:
        descriptors = tuple(declared)
        for descriptor in descriptors:
            if not isinstance(descriptor, FieldDescriptor):
                raise TypeConversionError(
                    f'{record_type.__name__}.__record_fields__ must hold FieldDescriptor '
                    f'entries, got {descriptor!r}')
    else:
        descriptors = _derive_fields(record_type)

    if not descriptors:
        raise TypeConversionError(f'{record_type.__name__} declares no fields')

    logger.debug(f'Field table for {record_type.__name__}: '
                 f'{[(d.name, d.scalar.value) for d in descriptors]}')
    return descriptors


def find_field(record_type: type, name: str) -> FieldDescriptor | None:
    """First field of `record_type` whose name equals `name`, or None."""
    for descriptor in record_fields(record_type):
        if descriptor.name == name:
            return descriptor
    return None


def new_record(record_type: type) -> Any:
    """Construct a fresh record with every field at its initial value.

    Fields with a declared default keep it; fields without one start at the
    zero value of their scalar type (0, 0.0 or '').
    """
    descriptors = record_fields(record_type)
    zeros = {d.attribute: d.scalar.zero for d in descriptors}

    if dataclasses.is_dataclass(record_type):
        kwargs = {}
        for f in dataclasses.fields(record_type):
            if not f.init:
                continue
            if f.default is not dataclasses.MISSING or f.default_factory is not dataclasses.MISSING:
                continue
            if f.name not in zeros:
                raise TypeConversionError(
                    f'Cannot construct {record_type.__name__}: '
                    f'field {f.name} has no default and no field descriptor')
            kwargs[f.name] = zeros[f.name]
        record = record_type(**kwargs)
    else:
        record = record_type()

    for attribute, zero in zeros.items():
        if not hasattr(record, attribute):
            setattr(record, attribute, zero)
    return record


@lru_cache(maxsize=128)
def make_record_type(field_specs: tuple[tuple[str, Any], ...], name: str = 'Row') -> type:
    """Synthesize a record dataclass from (name, type) pairs.

    Identical specs return the same class.

    Parameters
        field_specs: Tuple of (field name, type) pairs, type as accepted by scalar_type()
        name: Class name of the synthesized record

    Returns
        A dataclass whose fields all default to their zero value
    """
    if not field_specs:
        raise TypeConversionError('A record shape needs at least one field')
    fields = []
    for field_name, annotation in field_specs:
        scalar = scalar_type(annotation)
        fields.append((field_name, scalar.annotation, dataclasses.field(default=scalar.zero)))
    try:
        return dataclasses.make_dataclass(name, fields)
    except TypeError as err:
        raise TypeConversionError(f'Invalid record shape {field_specs!r}: {err}') from err
