"""Pooled pubsub connections for segment completion notifications.

Each subscription needs its own connection in subscribed mode, so handles are
expensive to open. Idle handles are kept in a small pool (bounded by `capacity`);
handles in use are never counted against it, so acquiring never waits.

Delivery is at-most-once: a publish that happens before the subscription is active
is lost. Callers that must not miss completion should check the completion record
after subscribing (see SegmentClaimManager.wait_for_segment_complete).
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger
from redis.asyncio import Redis
from redis.asyncio.client import PubSub
from redis.exceptions import TimeoutError as RedisTimeoutError

from segclaim.contracts import COMPLETED_MESSAGE
from segclaim.exceptions import PoolDisposedError

Callback = Callable[[], Any]
MessageHandler = Callable[[str], Awaitable[None]]
Unsubscribe = Callable[[], Awaitable[None]]

POLL_TIMEOUT_S = 1.0
SUBSCRIBE_TIMEOUT_S = 5.0
READER_STOP_TIMEOUT_S = 5.0


class Subscriber:
    """One dedicated pubsub connection, listening to one channel at a time."""

    def __init__(self, redis: Redis):
        self._pubsub: PubSub = redis.pubsub()
        self._reader: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def is_connected(self) -> bool:
        connection = self._pubsub.connection
        return not self._closed and connection is not None and connection.is_connected

    async def connect(self) -> None:
        await self._pubsub.connect()

    async def subscribe(self, channel: str, handler: MessageHandler) -> None:
        await self._pubsub.subscribe(channel)
        # publishes are only seen once the server has confirmed the subscription
        confirmation = await self._pubsub.get_message(timeout=SUBSCRIBE_TIMEOUT_S)
        if confirmation is None or confirmation["type"] != "subscribe":
            await self.disconnect()
            raise RedisTimeoutError(f"No subscribe confirmation for {channel}")
        self._reader = asyncio.create_task(self._read(channel, handler), name=f"subscriber:{channel}")

    async def unsubscribe(self, channel: str) -> None:
        await self._pubsub.unsubscribe(channel)
        reader, self._reader = self._reader, None
        if reader is None:
            return
        # the reader exits once the unsubscribe confirmation arrives
        try:
            await asyncio.wait_for(reader, timeout=READER_STOP_TIMEOUT_S)
        except asyncio.TimeoutError:
            logger.warning(f"Reader for {channel} did not stop after unsubscribe")

    async def disconnect(self) -> None:
        if self._closed:
            return
        self._closed = True
        reader, self._reader = self._reader, None
        if reader is not None and not reader.done():
            reader.cancel()
            await asyncio.gather(reader, return_exceptions=True)
        await self._pubsub.aclose()

    async def _read(self, channel: str, handler: MessageHandler) -> None:
        try:
            while self._pubsub.subscribed:
                message = await self._pubsub.get_message(ignore_subscribe_messages=True, timeout=POLL_TIMEOUT_S)
                if message is None or message["type"] != "message":
                    continue
                data = message["data"]
                await handler(data.decode() if isinstance(data, bytes) else data)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.bind(channel=channel).warning(f"Subscriber reader stopped: {e}")


async def _disconnect_quietly(subscriber: Subscriber) -> None:
    try:
        await subscriber.disconnect()
    except Exception as e:
        logger.warning(f"Ignoring subscriber disconnect error: {e}")


class SubscriberPool:
    def __init__(self, redis: Redis, capacity: int = 5):
        self._redis = redis
        self.capacity = capacity
        self._idle: list[Subscriber] = []
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def idle_count(self) -> int:
        return len(self._idle)

    async def _create(self) -> Subscriber:
        subscriber = Subscriber(self._redis)
        await subscriber.connect()
        return subscriber

    async def acquire(self) -> Subscriber:
        """Reuse an idle connected handle, or open a new one."""
        if self._disposed:
            raise PoolDisposedError()

        while self._idle:
            subscriber = self._idle.pop()
            if subscriber.is_connected:
                return subscriber
            await _disconnect_quietly(subscriber)

        return await self._create()

    async def release(self, subscriber: Subscriber) -> None:
        """Return a handle to the pool, or disconnect it if it can't be kept."""
        if self._disposed or not subscriber.is_connected:
            await _disconnect_quietly(subscriber)
            return

        if len(self._idle) < self.capacity:
            self._idle.append(subscriber)
        else:
            await _disconnect_quietly(subscriber)

    async def subscribe(self, channel: str, callback: Callback, *, message: str = COMPLETED_MESSAGE) -> Unsubscribe:
        """Invoke `callback` for every `message` published on `channel`.

        Returns a single-shot coroutine function that unsubscribes and hands the
        connection back to the pool. It never raises.
        """
        subscriber = await self.acquire()

        async def on_message(data: str) -> None:
            if data != message:
                return
            try:
                result = callback()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.bind(channel=channel).exception("Subscription callback failed")

        try:
            await subscriber.subscribe(channel, on_message)
        except Exception:
            await self.release(subscriber)
            raise

        released = False

        async def unsubscribe() -> None:
            nonlocal released
            if released:
                return
            released = True
            try:
                if subscriber.is_connected:
                    await subscriber.unsubscribe(channel)
            except Exception as e:
                logger.bind(channel=channel).warning(f"Error during Redis unsubscribe: {e}")
            finally:
                await self.release(subscriber)

        return unsubscribe

    async def dispose(self) -> None:
        """Disconnect every idle handle; later releases disconnect instead of pooling."""
        self._disposed = True
        subscribers, self._idle = self._idle, []
        await asyncio.gather(*(_disconnect_quietly(s) for s in subscribers))
        if subscribers:
            logger.info(f"Disposed subscriber pool ({len(subscribers)} idle connections closed)")
