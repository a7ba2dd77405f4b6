"""
Redis fast path for webhook deduplication.

DEDUPE STRATEGY
===============

What we remember:
  - Provider event ids that were fully processed
  - Key pattern: "webhooks:processed:{provider}:{event_id}"

Why:
  - Providers redeliver aggressively (Stripe retries for up to three days)
  - A Redis hit answers the redelivery without opening a database transaction

What stays authoritative:
  - The processed_webhook_events table. Redis is advisory: a miss, an expired
    key, or Redis being down just means the database ledger decides.
  - Every call here fails open (logs and returns as if the key were absent).
"""

from typing import Optional

import redis.asyncio as redis

from dancelink.core.config import get_settings
from dancelink.core.logging import get_logger

logger = get_logger(__name__)

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled."""
    global _redis_client

    settings = get_settings()
    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        try:
            _redis_client = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
            await _redis_client.ping()
            logger.info("redis_connected", url=settings.REDIS_URL)
        except Exception as e:
            logger.error("redis_connection_failed", error=str(e))
            _redis_client = None
            return None

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.close()
        _redis_client = None


def _make_webhook_key(provider: str, event_id: str) -> str:
    return f"webhooks:processed:{provider}:{event_id}"


class WebhookDedupeCache:
    """Remembers processed provider events. Every method fails open."""

    def __init__(self, ttl_seconds: int):
        self.ttl_seconds = ttl_seconds

    async def seen(self, provider: str, event_id: str) -> bool:
        client = await get_redis()
        if not client:
            return False

        key = _make_webhook_key(provider, event_id)
        try:
            if await client.exists(key):
                logger.debug("webhook_dedupe_hit", key=key)
                return True
        except Exception as e:
            logger.error("webhook_dedupe_get_error", key=key, error=str(e))
        return False

    async def remember(self, provider: str, event_id: str) -> None:
        client = await get_redis()
        if not client:
            return

        key = _make_webhook_key(provider, event_id)
        try:
            await client.setex(key, self.ttl_seconds, "1")
        except Exception as e:
            logger.error("webhook_dedupe_set_error", key=key, error=str(e))


async def get_redis_status() -> dict:
    """Redis status for the health endpoint."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        await client.ping()
        return {"status": "connected"}
    except Exception as e:
        return {"status": "error", "error": str(e)}
