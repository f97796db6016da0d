"""Redis client for the notification hand-off.

The pool is optional: when ``init_redis`` has not been called, engines are
built without a client and notifications are only logged.
"""

import redis.asyncio as redis

from hhg.config import get_settings

NOTIFICATION_MAX_CONNECTIONS = 10

_client: redis.Redis | None = None


async def init_redis(url: str | None = None) -> redis.Redis:
    """Connect the notification client (``HHG_REDIS_URL`` by default)."""
    global _client  # noqa: PLW0603
    if _client is None:
        _client = redis.from_url(  # type: ignore[no-untyped-call]
            url or get_settings().redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=NOTIFICATION_MAX_CONNECTIONS,
        )
    return _client


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
        _client = None


def get_redis() -> redis.Redis | None:
    """The shared notification client, or None when it was never initialized."""
    return _client
