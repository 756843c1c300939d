import logging
import pathlib
import site

import pytest

HERE = pathlib.Path(pathlib.Path(__file__).resolve()).parent
site.addsitedir(HERE)


@pytest.fixture(autouse=True)
def debug_logging(caplog):
    """Capture rowbind debug logs so SQL logging runs in every test."""
    caplog.set_level(logging.DEBUG, logger='rowbind')
    yield


pytest_plugins = [
    'tests.fixtures.fake',
    'tests.fixtures.sqlite',
]
