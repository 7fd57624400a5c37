# tests/conftest.py

"""Shared pytest fixtures for all supplier tests."""

from collections.abc import Generator
from unittest.mock import patch

import pytest

from chempal.config.settings import Settings


@pytest.fixture(autouse=True)
def no_delays() -> Generator[None, None, None]:
    """Zero retry backoff and detail throttling so pipelines run instantly."""
    with patch.object(Settings, "REQUEST_DELAY", 0.0), patch.object(
        Settings, "MIN_REQUEST_INTERVAL", 0.0
    ):
        yield
