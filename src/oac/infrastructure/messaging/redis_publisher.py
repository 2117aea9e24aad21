from __future__ import annotations

from oac.application.ports.publisher import EventPublisher
from oac.infrastructure.cache.redis_client import get_redis_client


class RedisEventPublisher(EventPublisher):
    """Publishes order and assignment events on per-restaurant channels."""

    def __init__(self, timeout_seconds: float = 1.0) -> None:
        self._timeout_seconds = timeout_seconds

    def publish(self, channel: str, message: str) -> None:
        get_redis_client(timeout_seconds=self._timeout_seconds).publish(channel, message)


class NullEventPublisher(EventPublisher):
    """Used when REDIS_URL is unset; events are dropped."""

    def publish(self, channel: str, message: str) -> None:
        return None
