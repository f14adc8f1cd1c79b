#!/usr/bin/env python3
"""Inspect or complete a single segment in Redis.

Examples:
    python scripts/segment_status.py status 42 video 1080p 0 3
    python scripts/segment_status.py complete 42 video 1080p 0 3
    python scripts/segment_status.py wait 42 video 1080p 0 3 --timeout 30
"""

import argparse
import asyncio
import sys

from segclaim import SegmentClaimManager, SegmentIdentity, Settings, configure_logging, create_redis_client


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Inspect or complete a segment")
    parser.add_argument("command", choices=["status", "complete", "wait"])
    parser.add_argument("job_id")
    parser.add_argument("stream_type")
    parser.add_argument("quality")
    parser.add_argument("stream_index", type=int)
    parser.add_argument("segment_index", type=int)
    parser.add_argument("--timeout", type=float, default=60.0, help="Seconds to wait (wait only, default: 60)")
    parser.add_argument("--redis-url", help="Overrides SEGCLAIM_REDIS_URL")
    return parser.parse_args()


async def main() -> int:
    args = parse_args()
    settings = Settings() if args.redis_url is None else Settings(redis_url=args.redis_url)
    configure_logging(settings.log_level, settings.log_dir)

    identity = SegmentIdentity(
        job_id=args.job_id,
        stream_type=args.stream_type,
        quality=args.quality,
        stream_index=args.stream_index,
        segment_index=args.segment_index,
    )

    redis_client = await create_redis_client(settings)
    manager = SegmentClaimManager.from_settings(redis_client, settings)
    try:
        if args.command == "status":
            lock = await manager.get_lock_holder(identity)
            print(f"segment:   {identity.segment_key}")
            print(f"status:    {await manager.get_segment_status(identity) or '-'}")
            print(f"completed: {await manager.is_segment_completed(identity)}")
            print(f"lock:      {lock.worker_id + ' until ' + str(lock.expires_at) if lock else '-'}")
            return 0

        if args.command == "complete":
            await manager.mark_segment_completed(identity)
            receivers = await manager.publish_segment_complete(identity)
            print(f"Marked {identity.segment_key} completed, notified {receivers} subscriber(s)")
            return 0

        print(f"Waiting up to {args.timeout:.0f}s for {identity.segment_key}...")
        if await manager.wait_for_segment_complete(identity, timeout_s=args.timeout):
            print("Completed")
            return 0
        print("Timed out")
        return 1
    finally:
        await manager.dispose()
        await redis_client.aclose()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
