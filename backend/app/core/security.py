"""Security dependencies and rate limiting"""
import logging
from fastapi import HTTPException, Request

from app.core.config import settings
from app.core.metrics import rate_limited_counter
from app.db.redis import get_session, check_rate_limit as redis_check_rate_limit

security_logger = logging.getLogger("security")


def require_auth(request: Request) -> str:
    """Dependency: Require authentication, return user_id"""
    session_id = request.cookies.get("session_id")

    if not session_id:
        raise HTTPException(401, "Not authenticated. Please log in.")

    user_id = get_session(session_id)
    if not user_id:
        raise HTTPException(401, "Session expired. Please log in again.")

    return user_id


def get_client_identifier(user_id: str, action: str) -> str:
    """Rate limit key for a user and action (the user id is the fingerprint)"""
    return f"{action}:user:{user_id}"


def check_checkout_rate_limit(user_id: str, action: str = "checkout") -> bool:
    """Fixed-window rate limit applied before any checkout call to the gateway.

    Returns True if the request is allowed, False if the user is blocked.
    """
    identifier = get_client_identifier(user_id, action)
    allowed = redis_check_rate_limit(
        identifier,
        window=settings.CHECKOUT_RATE_LIMIT_WINDOW,
        max_requests=settings.CHECKOUT_RATE_LIMIT_MAX,
    )
    if not allowed:
        rate_limited_counter.labels(action=action).inc()
        security_logger.warning(f"Rate limit exceeded - Identifier: {identifier}")
    return allowed
