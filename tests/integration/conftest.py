"""Shared fixtures for tests that run against a real Redis container."""

import pytest
import pytest_asyncio
import redis.asyncio as redis
from testcontainers.redis import RedisContainer

from segclaim.claims import SegmentClaimManager
from segclaim.contracts import SegmentIdentity


@pytest.fixture(scope="session")
def redis_container():
    container = RedisContainer("redis:7-alpine")
    try:
        container.start()
    except Exception as e:
        pytest.skip(f"Redis container unavailable (is Docker running?): {e}")
    yield container
    container.stop()


@pytest.fixture(scope="session")
def redis_url(redis_container) -> str:
    return f"redis://{redis_container.get_container_host_ip()}:{redis_container.get_exposed_port(6379)}/0"


@pytest_asyncio.fixture
async def redis_client(redis_url):
    client = await redis.from_url(redis_url, decode_responses=False)
    await client.flushdb()
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def manager(redis_client):
    manager = SegmentClaimManager(redis_client)
    yield manager
    await manager.dispose()


@pytest_asyncio.fixture
async def short_lease_manager(redis_client):
    manager = SegmentClaimManager(redis_client, lease_duration_ms=300)
    yield manager
    await manager.dispose()


@pytest.fixture
def identity() -> SegmentIdentity:
    return SegmentIdentity(job_id="42", stream_type="video", quality="1080p", stream_index=0, segment_index=3)
