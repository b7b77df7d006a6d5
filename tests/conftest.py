from datetime import datetime, timedelta, timezone
from typing import Any, AsyncGenerator, Dict, List, Optional, Tuple
from unittest.mock import AsyncMock
from uuid import UUID

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.core.cache import CacheService
from app.core.rate_limit import limiter
from app.core.security import SessionUser, create_session_token
from app.dependencies import get_buyer_repo, get_cache_service
from app.main import app
from app.models.buyer import Buyer
from app.models.buyer_history import BuyerHistory
from app.schemas.buyer import BuyerFilters
from app.schemas.common import SortOrder

T0 = datetime(2025, 1, 15, 9, 30, tzinfo=timezone.utc)

VALID_BUYER: Dict[str, Any] = {
    "full_name": "Priya Sharma",
    "email": "priya@example.com",
    "phone": "9876543210",
    "city": "Chandigarh",
    "property_type": "Apartment",
    "bhk": "3",
    "purpose": "Buy",
    "budget_min": 1_500_000,
    "budget_max": 2_500_000,
    "timeline": "3-6m",
    "source": "Website",
    "notes": "Prefers a high floor",
    "tags": ["urgent", "family"],
}


def buyer_input(**overrides: Any) -> Dict[str, Any]:
    """Return a valid raw buyer payload with *overrides* applied."""
    return {**VALID_BUYER, **overrides}


class FakeBuyerRepository:
    """In-memory stand-in for :class:`BuyerRepository`.

    Stores real (transient) ``Buyer``/``BuyerHistory`` instances and
    records the name of every contract method called, in order.
    """

    def __init__(self) -> None:
        self.buyers: Dict[UUID, Buyer] = {}
        self.history: List[BuyerHistory] = []
        self.calls: List[str] = []
        self._uncommitted_history: List[BuyerHistory] = []

    async def get_by_id(self, buyer_id: UUID) -> Optional[Buyer]:
        self.calls.append("get_by_id")
        return self.buyers.get(buyer_id)

    async def insert(self, **fields: Any) -> Buyer:
        self.calls.append("insert")
        buyer = Buyer(**fields)
        self.buyers[buyer.id] = buyer
        return buyer

    async def update(
        self,
        buyer_id: UUID,
        fields: Dict[str, Any],
        expected_updated_at: Optional[datetime] = None,
    ) -> Optional[Buyer]:
        self.calls.append("update")
        buyer = self.buyers.get(buyer_id)
        if buyer is None:
            return None
        if expected_updated_at is not None and buyer.updated_at != expected_updated_at:
            return None
        for name, value in fields.items():
            setattr(buyer, name, value)
        return buyer

    async def delete(self, buyer_id: UUID) -> bool:
        self.calls.append("delete")
        removed = self.buyers.pop(buyer_id, None) is not None
        if not removed:
            # no row: the history removal rolls back with it
            self.history.extend(self._uncommitted_history)
        self._uncommitted_history = []
        return removed

    async def append_audit(self, **kwargs: Any) -> BuyerHistory:
        self.calls.append("append_audit")
        entry = BuyerHistory(id=kwargs.pop("id", None) or _next_uuid(), **kwargs)
        self.history.append(entry)
        return entry

    async def list_audit(
        self, buyer_id: UUID, limit: Optional[int] = None
    ) -> List[BuyerHistory]:
        self.calls.append("list_audit")
        entries = [e for e in reversed(self.history) if e.buyer_id == buyer_id]
        entries.sort(key=lambda e: e.changed_at, reverse=True)
        return entries[:limit] if limit is not None else entries

    async def delete_audit(self, buyer_id: UUID) -> int:
        self.calls.append("delete_audit")
        self._uncommitted_history = [e for e in self.history if e.buyer_id == buyer_id]
        self.history = [e for e in self.history if e.buyer_id != buyer_id]
        return len(self._uncommitted_history)

    async def search(self, filters: BuyerFilters) -> Tuple[List[Buyer], int]:
        self.calls.append("search")
        rows = list(self.buyers.values())
        if filters.search:
            term = filters.search.lower()
            rows = [
                b
                for b in rows
                if term in b.full_name.lower()
                or term in b.phone
                or term in (b.email or "").lower()
            ]
        for name in ("city", "property_type", "status", "timeline", "purpose", "bhk"):
            value = getattr(filters, name)
            if value is not None:
                rows = [b for b in rows if getattr(b, name) == value.value]
        rows.sort(
            key=lambda b: getattr(b, filters.sort_by.value),
            reverse=filters.sort_order == SortOrder.desc,
        )
        page = rows[filters.offset : filters.offset + filters.page_size]
        return page, len(rows)


_uuid_counter = 0


def _next_uuid() -> UUID:
    global _uuid_counter
    _uuid_counter += 1
    return UUID(int=_uuid_counter)


class SteppingClock:
    """Deterministic clock that advances one second per call."""

    def __init__(self, start: datetime = T0) -> None:
        self.current = start

    def __call__(self) -> datetime:
        value = self.current
        self.current += timedelta(seconds=1)
        return value


@pytest.fixture
def owner() -> SessionUser:
    return SessionUser(id="user-owner", email="owner@example.com", name="owner")


@pytest.fixture
def other_user() -> SessionUser:
    return SessionUser(id="user-other", email="other@example.com", name="other")


@pytest.fixture
def admin() -> SessionUser:
    return SessionUser(
        id="user-admin", email="admin@example.com", name="admin", is_admin=True
    )


@pytest.fixture
def fake_repo() -> FakeBuyerRepository:
    return FakeBuyerRepository()


@pytest.fixture
def clock() -> SteppingClock:
    return SteppingClock()


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Return an ``AsyncMock`` that behaves like ``redis.asyncio.Redis``."""
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.setex = AsyncMock()
    redis.delete = AsyncMock()
    redis.ping = AsyncMock()
    redis.aclose = AsyncMock()
    return redis


@pytest.fixture
def mock_cache(mock_redis) -> CacheService:
    """Return a ``CacheService`` backed by the mock Redis client."""
    return CacheService(redis_client=mock_redis)


@pytest_asyncio.fixture
async def async_client(
    fake_repo: FakeBuyerRepository,
) -> AsyncGenerator[AsyncClient, None]:
    """Yield an ``httpx.AsyncClient`` wired to the app with in-memory storage."""

    async def _override_repo():
        return fake_repo

    async def _override_cache():
        return CacheService()

    app.dependency_overrides[get_buyer_repo] = _override_repo
    app.dependency_overrides[get_cache_service] = _override_cache
    limiter.reset()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


def auth_headers(user: SessionUser) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_session_token(user)}"}
