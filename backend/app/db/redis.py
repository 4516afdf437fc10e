"""Redis client for session lookup and rate limiting"""
import redis
import logging
from typing import Optional
from app.core.config import settings

logger = logging.getLogger(__name__)

# Lazy initialization - no connection at import time
_client = None

def get_redis_client():
    """Get or create Redis client (lazy initialization)

    This prevents connection attempts during import, allowing mocks to be applied first.
    """
    global _client
    if _client is None:
        _client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _client


def set_session(session_id: str, user_id: str, ttl: int = 30 * 24 * 60 * 60) -> None:
    """Store session in Redis"""
    key = f"session:{session_id}"
    get_redis_client().setex(key, ttl, user_id)


def get_session(session_id: str) -> Optional[str]:
    """Get user_id from session"""
    key = f"session:{session_id}"
    return get_redis_client().get(key)


def increment_rate_limit(identifier: str, window: int) -> int:
    """Increment rate limit counter and return current count.
    Uses Lua script to atomically increment and set TTL only for new keys (fixed window rate limiting)."""
    key = f"ratelimit:{identifier}"

    # Lua script: increment counter, set TTL if key is new (count == 1), return count
    lua_script = """
    local count = redis.call('INCR', KEYS[1])
    if count == 1 then
        redis.call('EXPIRE', KEYS[1], ARGV[1])
    end
    return count
    """

    count = get_redis_client().eval(lua_script, 1, key, window)
    return int(count)


def check_rate_limit(identifier: str, window: int, max_requests: int) -> bool:
    """Check if request is within a fixed-window rate limit. Returns True if allowed, False if rate limited."""
    current_count = increment_rate_limit(identifier, window)
    return current_count <= max_requests

