"""
Shared Redis connection for rate limiting and live stock events.
"""
import logging

import redis
from django.conf import settings

logger = logging.getLogger(__name__)

_client = None
_unavailable = False


def get_redis_client():
    """
    Connect lazily and cache the client; return None while Redis is unreachable.
    """
    global _client, _unavailable
    if _client is not None or _unavailable:
        return _client

    try:
        client = redis.Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=5
        )
        client.ping()
        _client = client
    except (redis.ConnectionError, redis.TimeoutError) as e:
        logger.warning(f"Redis connection failed: {e}. Rate limiting and live events are disabled.")
        _unavailable = True
    return _client


def reset_redis_client():
    """Forget the cached connection state (used after configuration changes)."""
    global _client, _unavailable
    _client = None
    _unavailable = False
