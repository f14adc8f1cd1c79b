from segclaim.claims import SegmentClaim, SegmentClaimManager
from segclaim.config import Settings
from segclaim.contracts import (
    COMPLETED_MARKER,
    COMPLETED_MESSAGE,
    DEFAULT_KEY_PREFIX,
    LockRecord,
    SegmentIdentity,
    SegmentKeys,
    SegmentStatus,
    default_worker_id,
    get_segment_keys,
)
from segclaim.exceptions import PoolDisposedError, SegmentClaimError
from segclaim.logging_config import configure_logging
from segclaim.redis_client import create_redis_client
from segclaim.subscriber_pool import Subscriber, SubscriberPool

__all__ = [
    "COMPLETED_MARKER",
    "COMPLETED_MESSAGE",
    "DEFAULT_KEY_PREFIX",
    "LockRecord",
    "PoolDisposedError",
    "SegmentClaim",
    "SegmentClaimError",
    "SegmentClaimManager",
    "SegmentIdentity",
    "SegmentKeys",
    "SegmentStatus",
    "Settings",
    "Subscriber",
    "SubscriberPool",
    "configure_logging",
    "create_redis_client",
    "default_worker_id",
    "get_segment_keys",
]
