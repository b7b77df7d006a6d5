from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from app.core.cache import CacheService
from app.core.exceptions import (
    BuyerNotFoundError,
    BuyerValidationError,
    ConflictError,
    ForbiddenError,
    StorageError,
)
from app.repositories.buyer_repository import BuyerRepository
from app.schemas.buyer import BuyerFilters
from app.services.buyer_service import BuyerService
from app.services.change_set import buyer_snapshot
from tests.conftest import buyer_input


@pytest.fixture
def service(clock, mock_cache) -> BuyerService:
    return BuyerService(cache=mock_cache, clock=clock)


async def _create(service, fake_repo, owner, **overrides):
    return await service.create_buyer(buyer_input(**overrides), owner, fake_repo)


class TestCreateBuyer:
    @pytest.mark.asyncio
    async def test_create_normalizes_and_persists(self, service, fake_repo, owner):
        buyer = await _create(
            service, fake_repo, owner, budget_min="₹15,00,000", city="chandigarh"
        )

        assert buyer.owner_id == owner.id
        assert buyer.status == "New"
        assert buyer.city == "Chandigarh"
        assert buyer.budget_min == 1_500_000
        assert buyer.created_at == buyer.updated_at
        assert fake_repo.calls == ["insert", "append_audit"]

    @pytest.mark.asyncio
    async def test_create_writes_created_audit_entry(self, service, fake_repo, owner):
        buyer = await _create(service, fake_repo, owner)

        [entry] = fake_repo.history
        assert entry.buyer_id == buyer.id
        assert entry.changed_by == owner.id
        assert entry.diff["created"]["old"] is None
        assert entry.diff["created"]["new"]["full_name"] == "Priya Sharma"

    @pytest.mark.asyncio
    async def test_invalid_input_is_not_persisted(self, service, fake_repo, owner):
        with pytest.raises(BuyerValidationError) as exc_info:
            await _create(service, fake_repo, owner, full_name="J", phone="123")

        assert set(exc_info.value.fields) == {"full_name", "phone"}
        assert fake_repo.calls == []

    @pytest.mark.asyncio
    async def test_plot_with_bhk_fails(self, service, fake_repo, owner):
        with pytest.raises(BuyerValidationError) as exc_info:
            await _create(service, fake_repo, owner, property_type="Plot", bhk="2")
        assert exc_info.value.fields == ["bhk"]

    @pytest.mark.asyncio
    async def test_lenient_mode_accepts_unknown_enum(self, clock, fake_repo, owner):
        lenient = BuyerService(lenient=True, clock=clock)
        buyer = await lenient.create_buyer(
            buyer_input(city="Delhi"), owner, fake_repo
        )
        assert buyer.city == "Other"

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_block_create(
        self, service, fake_repo, owner, monkeypatch
    ):
        monkeypatch.setattr(
            fake_repo, "append_audit", AsyncMock(side_effect=StorageError())
        )
        buyer = await _create(service, fake_repo, owner)
        assert buyer.id in fake_repo.buyers

    @pytest.mark.asyncio
    async def test_storage_error_propagates(self, service, owner):
        repo = AsyncMock(spec=BuyerRepository)
        repo.insert.side_effect = StorageError()
        with pytest.raises(StorageError):
            await service.create_buyer(buyer_input(), owner, repo)
        repo.append_audit.assert_not_called()


class TestUpdateBuyer:
    @pytest.mark.asyncio
    async def test_status_change_produces_single_field_diff(
        self, service, fake_repo, owner
    ):
        buyer = await _create(service, fake_repo, owner)
        observed = buyer.updated_at

        updated = await service.update_buyer(
            buyer.id, {"status": "Converted"}, observed, owner, fake_repo
        )

        assert updated.status == "Converted"
        assert updated.updated_at > observed
        latest = fake_repo.history[-1]
        assert latest.diff == {"status": {"old": "New", "new": "Converted"}}
        assert latest.changed_at == updated.updated_at

    @pytest.mark.asyncio
    async def test_update_invalidates_cache(
        self, service, fake_repo, owner, mock_redis
    ):
        buyer = await _create(service, fake_repo, owner)
        await service.update_buyer(
            buyer.id, {"notes": "Call after 6pm"}, buyer.updated_at, owner, fake_repo
        )
        mock_redis.delete.assert_awaited_once_with(f"buyer:{buyer.id}")

    @pytest.mark.asyncio
    async def test_noop_update_writes_nothing(self, service, fake_repo, owner):
        buyer = await _create(service, fake_repo, owner, tags=["a", "b"])
        before = buyer.updated_at
        fake_repo.calls.clear()

        result = await service.update_buyer(
            buyer.id,
            {"status": "new", "tags": "b, a"},
            before,
            owner,
            fake_repo,
        )

        assert result.updated_at == before
        assert fake_repo.calls == ["get_by_id"]
        assert len(fake_repo.history) == 1

    @pytest.mark.asyncio
    async def test_stale_update_conflicts_and_leaves_record(
        self, service, fake_repo, owner
    ):
        buyer = await _create(service, fake_repo, owner)
        stale = buyer.updated_at
        await service.update_buyer(buyer.id, {"status": "Contacted"}, stale, owner, fake_repo)

        with pytest.raises(ConflictError):
            await service.update_buyer(
                buyer.id, {"status": "Dropped"}, stale, owner, fake_repo
            )

        assert fake_repo.buyers[buyer.id].status == "Contacted"
        assert len(fake_repo.history) == 2

    @pytest.mark.asyncio
    async def test_missing_observed_timestamp_is_last_write_wins(
        self, service, fake_repo, owner
    ):
        buyer = await _create(service, fake_repo, owner)
        updated = await service.update_buyer(
            buyer.id, {"status": "Qualified"}, None, owner, fake_repo
        )
        assert updated.status == "Qualified"

    @pytest.mark.asyncio
    async def test_missing_observed_timestamp_rejected_when_required(
        self, clock, fake_repo, owner
    ):
        strict = BuyerService(require_observed_updated_at=True, clock=clock)
        buyer = await strict.create_buyer(buyer_input(), owner, fake_repo)
        with pytest.raises(ConflictError):
            await strict.update_buyer(
                buyer.id, {"status": "Qualified"}, None, owner, fake_repo
            )

    @pytest.mark.asyncio
    async def test_concurrent_write_between_read_and_update_conflicts(
        self, service, fake_repo, owner
    ):
        buyer = await _create(service, fake_repo, owner)
        observed = buyer.updated_at

        async def _read_then_race(buyer_id):
            stored = fake_repo.buyers[buyer_id]
            seen = SimpleNamespace(
                id=stored.id, updated_at=stored.updated_at, **buyer_snapshot(stored)
            )
            # Another writer commits after our read
            stored.updated_at = observed + timedelta(seconds=1)
            return seen

        fake_repo.get_by_id = _read_then_race
        with pytest.raises(ConflictError):
            await service.update_buyer(
                buyer.id, {"status": "Visited"}, observed, owner, fake_repo
            )
        assert fake_repo.buyers[buyer.id].status == "New"

    @pytest.mark.asyncio
    async def test_update_revalidates_merged_record(self, service, fake_repo, owner):
        buyer = await _create(service, fake_repo, owner)
        with pytest.raises(BuyerValidationError) as exc_info:
            await service.update_buyer(
                buyer.id, {"property_type": "Office"}, buyer.updated_at, owner, fake_repo
            )
        assert exc_info.value.fields == ["bhk"]
        assert "update" not in fake_repo.calls

    @pytest.mark.asyncio
    async def test_non_owner_is_forbidden(self, service, fake_repo, owner, other_user):
        buyer = await _create(service, fake_repo, owner)
        with pytest.raises(ForbiddenError):
            await service.update_buyer(
                buyer.id, {"status": "Dropped"}, None, other_user, fake_repo
            )

    @pytest.mark.asyncio
    async def test_admin_may_update_and_reassign(self, service, fake_repo, owner, admin):
        buyer = await _create(service, fake_repo, owner)
        updated = await service.update_buyer(
            buyer.id, {}, None, admin, fake_repo, owner_id="user-other"
        )
        assert updated.owner_id == "user-other"
        assert fake_repo.history[-1].diff == {
            "owner_id": {"old": owner.id, "new": "user-other"}
        }

    @pytest.mark.asyncio
    async def test_owner_cannot_reassign(self, service, fake_repo, owner):
        buyer = await _create(service, fake_repo, owner)
        with pytest.raises(ForbiddenError):
            await service.update_buyer(
                buyer.id, {}, None, owner, fake_repo, owner_id="user-other"
            )

    @pytest.mark.asyncio
    async def test_unknown_buyer(self, service, fake_repo, owner):
        with pytest.raises(BuyerNotFoundError):
            await service.update_buyer(uuid4(), {"status": "New"}, None, owner, fake_repo)

    @pytest.mark.asyncio
    async def test_audit_failure_keeps_update(
        self, service, fake_repo, owner, monkeypatch
    ):
        buyer = await _create(service, fake_repo, owner)
        monkeypatch.setattr(
            fake_repo, "append_audit", AsyncMock(side_effect=RuntimeError("down"))
        )
        updated = await service.update_buyer(
            buyer.id, {"status": "Visited"}, buyer.updated_at, owner, fake_repo
        )
        assert fake_repo.buyers[buyer.id].status == "Visited"
        assert updated.status == "Visited"


class TestDeleteBuyer:
    @pytest.mark.asyncio
    async def test_deletes_history_then_record(self, service, fake_repo, owner):
        buyer = await _create(service, fake_repo, owner)
        await service.update_buyer(buyer.id, {"status": "Visited"}, None, owner, fake_repo)
        fake_repo.calls.clear()

        await service.delete_buyer(buyer.id, owner, fake_repo)

        assert fake_repo.calls == ["get_by_id", "delete_audit", "delete"]
        assert fake_repo.buyers == {}
        assert fake_repo.history == []

    @pytest.mark.asyncio
    async def test_call_order_against_repository_contract(self, service, owner):
        buyer = MagicMock(id=uuid4(), owner_id=owner.id)
        repo = AsyncMock(spec=BuyerRepository)
        repo.get_by_id.return_value = buyer
        repo.delete_audit.return_value = 3
        repo.delete.return_value = True

        await service.delete_buyer(buyer.id, owner, repo)

        names = [c[0] for c in repo.method_calls]
        assert names == ["get_by_id", "delete_audit", "delete"]

    @pytest.mark.asyncio
    async def test_storage_failure_is_reported(self, service, owner):
        buyer = MagicMock(id=uuid4(), owner_id=owner.id)
        repo = AsyncMock(spec=BuyerRepository)
        repo.get_by_id.return_value = buyer
        repo.delete_audit.return_value = 1
        repo.delete.side_effect = StorageError()

        with pytest.raises(StorageError):
            await service.delete_buyer(buyer.id, owner, repo)

    @pytest.mark.asyncio
    async def test_non_owner_cannot_delete(self, service, fake_repo, owner, other_user):
        buyer = await _create(service, fake_repo, owner)
        with pytest.raises(ForbiddenError):
            await service.delete_buyer(buyer.id, other_user, fake_repo)
        assert buyer.id in fake_repo.buyers

    @pytest.mark.asyncio
    async def test_missing_buyer(self, service, fake_repo, owner):
        with pytest.raises(BuyerNotFoundError):
            await service.delete_buyer(uuid4(), owner, fake_repo)

    @pytest.mark.asyncio
    async def test_buyer_removed_concurrently_keeps_history(
        self, service, fake_repo, owner, monkeypatch
    ):
        buyer = await _create(service, fake_repo, owner)
        read = fake_repo.get_by_id

        async def read_then_lose_race(buyer_id):
            found = await read(buyer_id)
            fake_repo.buyers.pop(buyer_id)
            return found

        monkeypatch.setattr(fake_repo, "get_by_id", read_then_lose_race)

        with pytest.raises(BuyerNotFoundError):
            await service.delete_buyer(buyer.id, owner, fake_repo)
        assert [e.buyer_id for e in fake_repo.history] == [buyer.id]


class TestReads:
    @pytest.mark.asyncio
    async def test_get_buyer_populates_cache(
        self, service, fake_repo, owner, mock_redis
    ):
        buyer = await _create(service, fake_repo, owner)
        data = await service.get_buyer(buyer.id, fake_repo)

        assert data["id"] == str(buyer.id)
        mock_redis.setex.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_get_buyer_served_from_cache(self, clock, owner, mock_redis):
        mock_redis.get.return_value = '{"id": "cached"}'
        repo = AsyncMock(spec=BuyerRepository)
        service = BuyerService(cache=CacheService(mock_redis), clock=clock)

        assert await service.get_buyer(uuid4(), repo) == {"id": "cached"}
        repo.get_by_id.assert_not_called()

    @pytest.mark.asyncio
    async def test_history_is_newest_first(self, service, fake_repo, owner):
        buyer = await _create(service, fake_repo, owner)
        await service.update_buyer(buyer.id, {"status": "Contacted"}, None, owner, fake_repo)
        await service.update_buyer(buyer.id, {"status": "Visited"}, None, owner, fake_repo)

        entries = await service.get_history(buyer.id, fake_repo, limit=2)

        assert [e.diff["status"]["new"] for e in entries] == ["Visited", "Contacted"]

    @pytest.mark.asyncio
    async def test_history_of_unknown_buyer(self, service, fake_repo):
        with pytest.raises(BuyerNotFoundError):
            await service.get_history(uuid4(), fake_repo)

    @pytest.mark.asyncio
    async def test_list_buyers_paginates(self, service, fake_repo, owner):
        for i in range(3):
            await _create(service, fake_repo, owner, full_name=f"Buyer {i}")

        result = await service.list_buyers(BuyerFilters(page=2, page_size=2), fake_repo)

        assert result["total_count"] == 3
        assert result["total_pages"] == 2
        assert result["current_page"] == 2
        assert len(result["buyers"]) == 1
