"""Shared fixtures: manual timers, a controllable clock and gateways."""

import os
import tempfile
from datetime import datetime

import pytest
import pytest_asyncio

from assessment_app.persistence.gateway import InMemoryGateway
from assessment_app.persistence.sql_gateway import SqlGateway
from support import FakeClock, FlakyGateway, ManualScheduler


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 5, 14, 10, 30, 0))


@pytest.fixture
def gateway():
    return InMemoryGateway()


@pytest.fixture
def flaky_gateway(gateway):
    return FlakyGateway(gateway)


@pytest_asyncio.fixture
async def sql_gateway():
    """Create a temporary sqlite database and return a gateway bound to it."""
    temp_db = tempfile.NamedTemporaryFile(delete=False, suffix=".db")
    temp_db.close()
    gateway = SqlGateway(f"sqlite+aiosqlite:///{temp_db.name}")
    await gateway.init_schema()

    yield gateway

    await gateway.dispose()
    os.unlink(temp_db.name)
