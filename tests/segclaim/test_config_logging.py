"""Tests for settings loading and loguru interception."""

import logging

import pytest
from loguru import logger
from pydantic import ValidationError

from segclaim.config import Settings
from segclaim.exceptions import PoolDisposedError, SegmentClaimError
from segclaim.logging_config import configure_logging


def test_settings_defaults():
    settings = Settings()

    assert settings.key_prefix == "transcoder:segment"
    assert settings.lease_duration_ms == 60_000
    assert settings.completed_segment_ttl_ms == 7 * 24 * 60 * 60 * 1000
    assert settings.subscriber_pool_size == 5
    assert settings.log_dir is None


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("SEGCLAIM_REDIS_URL", "redis://cache:6380/2")
    monkeypatch.setenv("SEGCLAIM_LEASE_DURATION_MS", "15000")
    monkeypatch.setenv("SEGCLAIM_SUBSCRIBER_POOL_SIZE", "3")

    settings = Settings()

    assert settings.redis_url == "redis://cache:6380/2"
    assert settings.lease_duration_ms == 15_000
    assert settings.subscriber_pool_size == 3


@pytest.mark.parametrize("field", ["lease_duration_ms", "completed_segment_ttl_ms", "subscriber_pool_size"])
def test_settings_reject_non_positive(field):
    with pytest.raises(ValidationError):
        Settings(**{field: 0})


def test_configure_logging_routes_stdlib_to_loguru(tmp_path):
    configure_logging("DEBUG", log_dir=tmp_path)
    messages = []
    sink_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    try:
        logging.getLogger("redis.asyncio").warning("connection reset")
    finally:
        logger.remove(sink_id)

    assert "connection reset" in messages
    assert (tmp_path / "segclaim.jsonl").exists()


def test_pool_disposed_error_message():
    error = PoolDisposedError()

    assert isinstance(error, SegmentClaimError)
    assert str(error) == "Subscriber pool has been disposed"
