from __future__ import annotations

import logging
import os
from functools import lru_cache

import redis

logger = logging.getLogger(__name__)

_built_clients: list[redis.Redis] = []


def _redis_url() -> str:
    url = os.getenv("REDIS_URL")
    if not url:
        raise RuntimeError("REDIS_URL is not set")
    return url


@lru_cache(maxsize=8)
def _build_client(redis_url: str, timeout_seconds: float) -> redis.Redis:
    client = redis.Redis.from_url(
        redis_url,
        socket_connect_timeout=timeout_seconds,
        socket_timeout=timeout_seconds,
        health_check_interval=30,
    )
    _built_clients.append(client)
    return client


def get_redis_client(timeout_seconds: float = 1.0) -> redis.Redis:
    return _build_client(_redis_url(), timeout_seconds)


def redis_configured() -> bool:
    """Events are published only when a Redis URL is configured."""
    return bool(os.getenv("REDIS_URL"))


def close_redis_clients() -> None:
    while _built_clients:
        _built_clients.pop().close()
    _build_client.cache_clear()


def ping_redis(timeout_seconds: float = 1.0) -> bool:
    try:
        return bool(get_redis_client(timeout_seconds).ping())
    except Exception:
        logger.warning("redis_ping_failed")
        return False
