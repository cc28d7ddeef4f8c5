"""Shared Redis client, created lazily when REDIS_ENABLED is set."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

import redis

from artchat.config import get_settings

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_redis_client() -> Optional[redis.Redis]:
    settings = get_settings()
    if not settings.redis_enabled:
        return None
    logger.info("Using Redis at %s:%s", settings.redis_host, settings.redis_port)
    return redis.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        decode_responses=True,
        socket_timeout=1.0,
    )
