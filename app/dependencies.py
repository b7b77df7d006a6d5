import logging
from typing import Optional

from fastapi import Depends, Request
from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions import AuthenticationError
from app.core.security import SessionUser, decode_session_token

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


def _extract_token(request: Request) -> Optional[str]:
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if token:
        return token
    header = request.headers.get("Authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return None


async def get_current_user(request: Request) -> SessionUser:
    """Resolve the acting user from the session cookie or bearer token."""
    token = _extract_token(request)
    if not token:
        raise AuthenticationError()
    return decode_session_token(token)


# ---------------------------------------------------------------------------
# Redis client factory
# ---------------------------------------------------------------------------


async def create_redis_client() -> Optional[Redis]:
    """Open the shared Redis client, or return ``None`` when Redis is unreachable.

    Called once from the application lifespan; the caller owns the
    client and must ``aclose()`` it on shutdown.
    """
    client = Redis.from_url(settings.REDIS_URL, decode_responses=True)
    try:
        await client.ping()
    except (RedisError, OSError):
        logger.warning("Redis unavailable, buyer caching disabled")
        await client.aclose()
        return None
    return client


async def get_redis_client(request: Request) -> Optional[Redis]:
    """Return the application-wide Redis client (``None`` if unavailable)."""
    return getattr(request.app.state, "redis", None)


async def get_cache_service(
    redis_client: Optional[Redis] = Depends(get_redis_client),
):
    """Build a :class:`CacheService` backed by the shared Redis client."""
    from app.core.cache import CacheService

    return CacheService(redis_client=redis_client, ttl=settings.REDIS_CACHE_TTL)


# ---------------------------------------------------------------------------
# Repository factory
# ---------------------------------------------------------------------------


async def get_buyer_repo(
    db: AsyncSession = Depends(get_db),
):
    from app.repositories.buyer_repository import BuyerRepository

    return BuyerRepository(db)


# ---------------------------------------------------------------------------
# Service factory
# ---------------------------------------------------------------------------


async def get_buyer_service(
    cache=Depends(get_cache_service),
):
    """Build a :class:`BuyerService` configured from settings."""
    from app.services.buyer_service import BuyerService

    return BuyerService(
        cache=cache,
        lenient=settings.LENIENT_NORMALIZATION,
        require_observed_updated_at=settings.REQUIRE_OBSERVED_UPDATED_AT,
    )
