from __future__ import annotations

from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError

from identity_lifecycle.configs.logging_config import get_logger
from identity_lifecycle.domain.entities.provisioning import Outcome, OutcomeKind

log = get_logger(__name__)

USER_CREATED = "USER_CREATED"
USER_UPDATED = "USER_UPDATED"
USER_DELETED = "USER_DELETED"
RECONCILIATION_COMPLETED = "RECONCILIATION_COMPLETED"


class LifecycleEventPublisher:
    """Appends lifecycle events to a Redis stream. Never raises."""

    def __init__(self, redis_client: redis.Redis | None, stream: str):
        self._redis = redis_client
        self._stream = stream

    async def publish(self, event: str, **fields: Any) -> Outcome:
        if self._redis is None:
            return Outcome.skipped("event stream not configured")
        # Stream field values must be flat strings.
        payload = {"event": event}
        payload.update({k: "" if v is None else str(v) for k, v in fields.items()})
        try:
            await self._redis.xadd(self._stream, payload)
        except RedisError as e:
            log.warning("events.publish_failed stream=%s event=%s error=%s", self._stream, event, str(e))
            return Outcome.failed(str(e))
        log.info("events.published stream=%s event=%s", self._stream, event)
        return Outcome.of(OutcomeKind.PUBLISHED)
