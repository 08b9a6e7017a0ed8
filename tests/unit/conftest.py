"""
Unit test conftest - lightweight stand-ins that need no database.
"""

import pytest
from types import SimpleNamespace


@pytest.fixture
def user_stub():
    """A user-shaped object for token issuance tests."""
    return SimpleNamespace(
        user_id="user-123",
        email="demo@example.com",
        name="John Doe",
        role="user",
    )
