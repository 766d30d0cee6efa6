# ============================================================================
# Redis Connection
# ============================================================================
import redis.asyncio as redis
from quiz_engine.config import get_settings

settings = get_settings()

redis_client = redis.from_url(
    settings.REDIS_URL,
    encoding="utf-8",
    decode_responses=True
)
