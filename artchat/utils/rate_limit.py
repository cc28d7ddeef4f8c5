"""
Per-user rate limiting for message sends and searches.

Uses Redis when REDIS_ENABLED is set and a limit is configured.
If Redis is not configured or unavailable, no limit is applied.
"""

from __future__ import annotations

import logging
from typing import Optional

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60


def check_rate_limit(
    scope: str,
    user_id: object,
    redis_client: Optional[object],
    limit_per_minute: Optional[int],
) -> bool:
    """
    Check if the user is within the per-minute limit for the given scope.
    Returns True if allowed, False if rate limited.
    If redis_client or limit_per_minute is None, always returns True.
    """
    if redis_client is None or limit_per_minute is None or limit_per_minute <= 0:
        return True
    key = f"artchat:ratelimit:{scope}:{user_id}"
    try:
        pipe = redis_client.pipeline()
        pipe.incr(key)
        pipe.expire(key, WINDOW_SECONDS)
        results = pipe.execute()
        count = results[0] if results else 0
        allowed = count <= limit_per_minute
        if not allowed:
            logger.warning("Rate limit exceeded for %s on %s", user_id, scope)
        return allowed
    except Exception as e:
        logger.warning("Rate limit check failed, allowing request: %s", e)
        return True


def check_message_rate_limit(
    user_id: object,
    redis_client: Optional[object],
    limit_per_minute: Optional[int],
) -> bool:
    return check_rate_limit("messages", user_id, redis_client, limit_per_minute)


def check_search_rate_limit(
    user_id: object,
    redis_client: Optional[object],
    limit_per_minute: Optional[int],
) -> bool:
    return check_rate_limit("search", user_id, redis_client, limit_per_minute)
