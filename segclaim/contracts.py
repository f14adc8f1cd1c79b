"""Contracts for segment Redis keys, channels, and stored records."""

import os
import socket
import uuid
from typing import Final, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_KEY_PREFIX: Final[str] = "transcoder:segment"

SEGMENT_LOCK: Final[str] = "{prefix}:lock:{segment_key}"
SEGMENT_STATUS: Final[str] = "{prefix}:status:{segment_key}"
SEGMENT_COMPLETED: Final[str] = "{prefix}:completed:{segment_key}"
SEGMENT_COMPLETE_CHANNEL: Final[str] = "{prefix}:complete:{segment_key}"

KEY_DELIMITER: Final[str] = ":"

COMPLETED_MARKER: Final[str] = "true"  # value of the completion record
COMPLETED_MESSAGE: Final[str] = "completed"  # pubsub payload

SegmentStatus = Literal["processing", "completed"]


class SegmentIdentity(BaseModel):
    """Logical coordinates of one segment of a job."""

    job_id: str
    stream_type: str  # video, audio, ...
    quality: str  # 1080p, 720p, original, ...
    stream_index: int = Field(ge=0)
    segment_index: int = Field(ge=0)

    model_config = ConfigDict(frozen=True)

    @field_validator("job_id", "stream_type", "quality")
    @classmethod
    def _no_delimiter(cls, value: str) -> str:
        # segment keys must stay injective over identities
        if not value:
            raise ValueError("must not be empty")
        if KEY_DELIMITER in value:
            raise ValueError(f"must not contain {KEY_DELIMITER!r}")
        return value

    @property
    def segment_key(self) -> str:
        return KEY_DELIMITER.join(
            [self.job_id, self.stream_type, self.quality, str(self.stream_index), str(self.segment_index)]
        )


class SegmentKeys(BaseModel):
    """All store keys derived from one segment key."""

    segment_key: str
    lock: str
    status: str
    completed: str
    channel: str

    model_config = ConfigDict(frozen=True)


def get_segment_keys(identity: SegmentIdentity, prefix: str = DEFAULT_KEY_PREFIX) -> SegmentKeys:
    segment_key = identity.segment_key
    return SegmentKeys(
        segment_key=segment_key,
        lock=SEGMENT_LOCK.format(prefix=prefix, segment_key=segment_key),
        status=SEGMENT_STATUS.format(prefix=prefix, segment_key=segment_key),
        completed=SEGMENT_COMPLETED.format(prefix=prefix, segment_key=segment_key),
        channel=SEGMENT_COMPLETE_CHANNEL.format(prefix=prefix, segment_key=segment_key),
    )


class LockRecord(BaseModel):
    """JSON stored under the lock key. Field names are read by the Lua scripts."""

    worker_id: str
    expires_at: int  # epoch millis


def default_worker_id() -> str:
    """Unique-enough owner identity for this process."""
    return f"{socket.gethostname()}-{os.getpid()}-{uuid.uuid4().hex[:8]}"
