"""
Engine registry for the embedded SQL libraries rowbind can drive.
"""
from rowbind.engine.base import _ENGINE_REGISTRY
from rowbind.engine.base import Engine as Engine
from rowbind.engine.base import OpenMode as OpenMode
from rowbind.engine.base import ResultCode as ResultCode
from rowbind.engine.base import StepResult as StepResult
from rowbind.engine.base import StorageClass as StorageClass
from rowbind.engine.base import register_engine as register_engine
from rowbind.engine.sqlite import SqliteEngine as SqliteEngine


def _validate_engine(name: str) -> None:
    """Raise ValueError if engine is not registered."""
    if name not in _ENGINE_REGISTRY:
        available = list(_ENGINE_REGISTRY.keys())
        raise ValueError(f'Unsupported engine: {name}. Available: {available}')


def get_engine(name: str) -> Engine:
    """Get a new engine instance for an engine name.

    Each connection gets its own instance; engines keep no state between
    handles, but the instance is what a connection holds on to.
    """
    _validate_engine(name)
    return _ENGINE_REGISTRY[name]()


def get_available_engines() -> list[str]:
    """Return list of registered engine names."""
    return list(_ENGINE_REGISTRY.keys())


def is_supported_engine(name: str) -> bool:
    """Check if an engine is supported."""
    return name in _ENGINE_REGISTRY


def get_engine_class(name: str) -> type[Engine]:
    """Get the engine class for a name without instantiating."""
    _validate_engine(name)
    return _ENGINE_REGISTRY[name]
