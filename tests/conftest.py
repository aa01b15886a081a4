"""Shared fixtures for memopad tests."""
import uuid

import pytest

from memopad.cache import Memoizer, reset_memoizer


@pytest.fixture(autouse=True)
def fresh_global_memoizer():
    """Keep the process-wide memoizer from leaking state between tests."""
    reset_memoizer()
    yield
    reset_memoizer()


@pytest.fixture
def memo():
    """A private memoizer per test."""
    return Memoizer()


@pytest.fixture
def key():
    """A unique key per test."""
    return uuid.uuid4().hex
