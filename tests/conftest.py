"""Root conftest for all tests."""

from typing import Awaitable, Callable

from aiohttp.test_utils import TestClient
from aiohttp.web import Application

from tests.plugins.db_fixtures import session_manager  # noqa: F401

# Shared test constants
TEST_USER = "user1"
OTHER_USER = "user2"

# Type alias for the aiohttp_client fixture - shared across all tests
AiohttpClient = Callable[[Application], Awaitable[TestClient]]
