"""
Shared fixtures.
"""

import pytest

from core.config import Settings
from core.hosts import HostClassifier


@pytest.fixture
def classifier():
    return HostClassifier.from_config()


@pytest.fixture
def settings():
    return Settings()
