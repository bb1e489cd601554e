"""
Shared pytest configuration.

Every test runs with the testing configuration and a fixed clock.
"""

import pytest

from core.clock import use_mock_clock
from core.config import EngineConfig, set_config

from tests.fixtures import NOW


@pytest.fixture(autouse=True)
def engine_config():
    """Install the testing configuration for the duration of a test."""
    config = EngineConfig.for_testing()
    set_config(config)
    yield config
    set_config(None)


@pytest.fixture(autouse=True)
def clock():
    """Freeze engine time at NOW."""
    with use_mock_clock(NOW) as mock:
        yield mock
