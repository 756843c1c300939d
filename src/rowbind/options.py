from dataclasses import dataclass

from rowbind.engine import get_available_engines, is_supported_engine
from rowbind.engine.base import OpenMode

from libb import ConfigOptions

__all__ = [
    'ConnectionOptions',
]


@dataclass
class ConnectionOptions(ConfigOptions):
    """Options

    supported engine names: `sqlite`

    - database: Location of the database (file path or `:memory:`)
    - mode: OpenMode flags, or one of `ro`, `rw`, `rwc`, `memory` (default: rwc)
    - timeout: Seconds to wait on a locked database before failing (default: 5.0)
    - strict_types: Raise on a column whose storage class does not fit the
      record field, instead of applying the engine's coercion (default: False)
    """
    engine: str = 'sqlite'
    database: str = ':memory:'
    mode: OpenMode | str = OpenMode.READWRITE | OpenMode.CREATE
    timeout: float = 5.0
    strict_types: bool = False

    def __post_init__(self):
        if not is_supported_engine(self.engine):
            available = get_available_engines()
            raise ValueError(f'engine must be one of: {available}')
        if not self.database:
            raise ValueError('database location is required')
        self.mode = OpenMode.parse(self.mode)
        if self.timeout < 0:
            raise ValueError('timeout must not be negative')
