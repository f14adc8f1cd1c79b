import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from segclaim.contracts import DEFAULT_KEY_PREFIX


class Settings(BaseSettings):
    redis_url: str = "redis://localhost:6379/0"
    key_prefix: str = DEFAULT_KEY_PREFIX

    lease_duration_ms: int = Field(default=60_000, gt=0)
    completed_segment_ttl_ms: int = Field(default=7 * 24 * 60 * 60 * 1000, gt=0)  # 7 days
    subscriber_pool_size: int = Field(default=5, gt=0)  # idle pubsub connections kept around

    log_level: str = "INFO"
    log_dir: Path | None = None  # JSONL file sink is skipped when unset

    model_config = SettingsConfigDict(
        env_prefix="SEGCLAIM_",
        env_file=[os.getenv("ENV_FILE", ""), ".env"],
        extra="ignore",
        env_nested_delimiter="__",
    )
