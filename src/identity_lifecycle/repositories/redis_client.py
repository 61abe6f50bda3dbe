import redis.asyncio as redis
from redis.exceptions import RedisError

from identity_lifecycle.configs.settings import get_settings
from identity_lifecycle.configs.logging_config import get_logger

log = get_logger(__name__)


class RedisClient:
    """
    Process-wide connection backing the lifecycle event stream.

    Connecting is best-effort: on failure `client` stays None and lifecycle
    events are reported as skipped.
    """

    def __init__(self) -> None:
        self.client: redis.Redis | None = None

    async def connect(self, url: str | None = None) -> bool:
        url = url or get_settings().redis_url
        candidate = redis.from_url(url, decode_responses=True)
        try:
            await candidate.ping()
        except RedisError as e:
            log.warning("redis.connect_failed url=%s error=%s; lifecycle events disabled", url, str(e))
            await candidate.aclose()
            return False
        self.client = candidate
        log.info("redis.connected url=%s", url)
        return True

    async def is_healthy(self) -> bool:
        if self.client is None:
            return False
        try:
            return bool(await self.client.ping())
        except RedisError:
            return False

    async def close(self) -> None:
        if self.client is not None:
            await self.client.aclose()
            self.client = None


redis_client = RedisClient()
