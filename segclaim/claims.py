"""Distributed segment claims.

Guarantees that at most one worker processes a segment at a time. A claim is a lease:
a Redis key written with SET NX and a PX expiry, so a crashed worker's claim simply
expires. Extending and releasing check the stored owner inside a Lua script.

Completion is tracked separately from the lock and is never cleared here. Marking a
segment completed does not require holding its claim.
"""

import asyncio
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from loguru import logger
from redis.asyncio import Redis

from segclaim.config import Settings
from segclaim.contracts import (
    COMPLETED_MARKER,
    COMPLETED_MESSAGE,
    DEFAULT_KEY_PREFIX,
    LockRecord,
    SegmentIdentity,
    SegmentKeys,
    get_segment_keys,
)
from segclaim.lease_store import LeaseStore
from segclaim.subscriber_pool import Callback, SubscriberPool, Unsubscribe

DEFAULT_LEASE_DURATION_MS = 60_000
DEFAULT_COMPLETED_SEGMENT_TTL_MS = 7 * 24 * 60 * 60 * 1000  # 7 days
DEFAULT_SUBSCRIBER_POOL_SIZE = 5


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class SegmentClaim:
    """Result of a claim attempt.

    Only an acquired claim carries a store handle; extend/release on a failed
    claim do nothing, so callers can use the same code path either way.
    """

    acquired: bool
    segment_key: str
    worker_id: str
    expires_at: int  # epoch millis, 0 when not acquired
    lock_key: str | None = field(default=None, repr=False)
    _store: LeaseStore | None = field(default=None, repr=False, compare=False)

    async def extend(self) -> bool:
        """Push the lease out by a full lease duration if we still own it."""
        if self._store is None or self.lock_key is None:
            return False
        expires_at = _now_ms() + self._store.lease_duration_ms
        extended = await self._store.extend_lock(self.lock_key, self.worker_id, expires_at)
        if extended:
            self.expires_at = expires_at
        return extended

    async def release(self) -> bool:
        """Delete the lock if we still own it. Status and completion are left alone."""
        if self._store is None or self.lock_key is None:
            return False
        return await self._store.delete_lock(self.lock_key, self.worker_id) == 1


class SegmentClaimManager:
    def __init__(
        self,
        redis: Redis,
        *,
        lease_duration_ms: int = DEFAULT_LEASE_DURATION_MS,
        completed_segment_ttl_ms: int = DEFAULT_COMPLETED_SEGMENT_TTL_MS,
        subscriber_pool_size: int = DEFAULT_SUBSCRIBER_POOL_SIZE,
        key_prefix: str = DEFAULT_KEY_PREFIX,
    ):
        self.lease_duration_ms = lease_duration_ms
        self.completed_segment_ttl_ms = completed_segment_ttl_ms
        self.key_prefix = key_prefix
        self._store = LeaseStore(redis, lease_duration_ms)
        self._subscribers = SubscriberPool(redis, capacity=subscriber_pool_size)

    @classmethod
    def from_settings(cls, redis: Redis, settings: Settings) -> "SegmentClaimManager":
        return cls(
            redis,
            lease_duration_ms=settings.lease_duration_ms,
            completed_segment_ttl_ms=settings.completed_segment_ttl_ms,
            subscriber_pool_size=settings.subscriber_pool_size,
            key_prefix=settings.key_prefix,
        )

    @property
    def subscriber_pool(self) -> SubscriberPool:
        return self._subscribers

    def keys(self, identity: SegmentIdentity) -> SegmentKeys:
        return get_segment_keys(identity, self.key_prefix)

    async def claim(self, identity: SegmentIdentity, worker_id: str) -> SegmentClaim:
        """Try to claim a segment for processing."""
        keys = self.keys(identity)
        expires_at = _now_ms() + self.lease_duration_ms

        acquired = await self._store.create_lock(keys.lock, LockRecord(worker_id=worker_id, expires_at=expires_at))
        if not acquired:
            logger.debug(f"Segment {keys.segment_key} already claimed, worker={worker_id}")
            return SegmentClaim(acquired=False, segment_key=keys.segment_key, worker_id=worker_id, expires_at=0)

        # status outlives the lock so late readers see "processing" instead of a gap
        await self._store.set(keys.status, "processing", ttl_ms=self.lease_duration_ms * 2)
        logger.debug(f"Claimed segment {keys.segment_key}, worker={worker_id}")

        return SegmentClaim(
            acquired=True,
            segment_key=keys.segment_key,
            worker_id=worker_id,
            expires_at=expires_at,
            lock_key=keys.lock,
            _store=self._store,
        )

    async def get_lock_holder(self, identity: SegmentIdentity) -> LockRecord | None:
        """Current lease owner, for diagnostics only. Never use it to decide ownership."""
        return await self._store.get_lock(self.keys(identity).lock)

    async def is_segment_completed(self, identity: SegmentIdentity) -> bool:
        return await self._store.get(self.keys(identity).completed) == COMPLETED_MARKER

    async def mark_segment_completed(self, identity: SegmentIdentity) -> None:
        """Record completion. Does not check who holds the claim."""
        keys = self.keys(identity)
        await self._store.set(keys.completed, COMPLETED_MARKER, ttl_ms=self.completed_segment_ttl_ms)
        await self._store.set(keys.status, "completed", ttl_ms=self.completed_segment_ttl_ms)

    async def get_segment_status(self, identity: SegmentIdentity) -> str | None:
        return await self._store.get(self.keys(identity).status)

    async def publish_segment_complete(self, identity: SegmentIdentity) -> int:
        """Fire-and-forget. Returns how many subscribers Redis delivered to."""
        return await self._store.publish(self.keys(identity).channel, COMPLETED_MESSAGE)

    async def subscribe_to_segment_complete(self, identity: SegmentIdentity, callback: Callback) -> Unsubscribe:
        return await self._subscribers.subscribe(self.keys(identity).channel, callback)

    async def wait_for_segment_complete(self, identity: SegmentIdentity, timeout_s: float) -> bool:
        """Block until the segment is completed or `timeout_s` passes.

        Subscribes before checking the completion record, so a completion that
        lands in between is seen by one or the other.
        """
        done = asyncio.Event()
        unsubscribe = await self.subscribe_to_segment_complete(identity, done.set)
        try:
            if await self.is_segment_completed(identity):
                return True
            try:
                await asyncio.wait_for(done.wait(), timeout=timeout_s)
            except asyncio.TimeoutError:
                return False
            return True
        finally:
            await unsubscribe()

    @asynccontextmanager
    async def hold(
        self,
        identity: SegmentIdentity,
        worker_id: str,
        renew_interval_s: float | None = None,
    ) -> AsyncIterator[SegmentClaim]:
        """Claim a segment and keep the lease alive for the duration of the block.

        Yields the claim even when it was not acquired; check `claim.acquired`.
        """
        claim = await self.claim(identity, worker_id)
        if not claim.acquired:
            yield claim
            return

        interval = renew_interval_s if renew_interval_s is not None else self.lease_duration_ms / 3000
        renewer = asyncio.create_task(self._renew(claim, interval), name=f"renew:{claim.segment_key}")
        try:
            yield claim
        finally:
            renewer.cancel()
            await asyncio.gather(renewer, return_exceptions=True)
            await claim.release()

    async def _renew(self, claim: SegmentClaim, interval_s: float) -> None:
        log = logger.bind(segment=claim.segment_key, worker_id=claim.worker_id)
        while True:
            await asyncio.sleep(interval_s)
            try:
                if not await claim.extend():
                    log.warning("Lease lost before work finished, stopping renewal")
                    return
            except Exception as e:
                # next tick retries; the lease still has time left
                log.warning(f"Lease renewal failed: {e}")

    async def dispose(self) -> None:
        await self._subscribers.dispose()
