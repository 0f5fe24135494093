"""Shared test fixtures for all test groups."""

import pytest
from fakeredis import FakeAsyncRedis

from activation_gate.domain.routes import load_route_table
from activation_gate.domain.steps import StepPolicy
from tests.factories import make_questions


@pytest.fixture
async def redis():
    """Create a fake Redis instance for testing."""
    fake_redis = FakeAsyncRedis(decode_responses=True)
    yield fake_redis
    await fake_redis.flushall()
    await fake_redis.aclose()


@pytest.fixture
def step_policy():
    return StepPolicy()


@pytest.fixture
def route_table():
    return load_route_table()


@pytest.fixture
def questions():
    return make_questions()
