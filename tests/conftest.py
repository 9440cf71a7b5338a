"""Shared test fixtures."""

import pytest

from capturedemo import owned
from capturedemo.log import set_level, set_sink


@pytest.fixture(autouse=True)
def fresh_registry():
    """every test starts with no loans and the default log level."""
    owned.clear_loans()
    yield
    owned.clear_loans()
    set_level("info")
    set_sink(None)


@pytest.fixture
def captured_logs():
    """record every log line, whatever the level."""
    lines = []
    set_sink(lambda subsystem, level, message, attrs: lines.append((subsystem, level, message)))
    yield lines
    set_sink(None)
