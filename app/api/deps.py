"""API-layer dependency functions.

Re-exports all dependency factories from ``app.dependencies`` so that
endpoint modules only need to import from ``app.api.deps``.
"""

from app.dependencies import (
    # Session
    get_current_user,
    # Repository factories
    get_buyer_repo,
    # Service factories
    get_buyer_service,
    get_cache_service,
    # Redis
    get_redis_client,
)

__all__ = [
    "get_current_user",
    "get_buyer_repo",
    "get_buyer_service",
    "get_cache_service",
    "get_redis_client",
]
