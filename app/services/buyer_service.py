import logging
import math
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional
from uuid import UUID, uuid4

from app.core.cache import CacheService
from app.core.exceptions import BuyerNotFoundError, ConflictError, ForbiddenError
from app.core.security import SessionUser
from app.models.buyer import Buyer
from app.models.buyer_history import BuyerHistory
from app.repositories.buyer_repository import BuyerRepository
from app.schemas.buyer import BuyerFilters, BuyerOut
from app.services.change_set import AUDITED_FIELDS, buyer_snapshot, compute_change_set
from app.services.concurrency import Timestamp, ensure_not_stale, next_updated_at
from app.services.normalizer import BuyerNormalizer, NormalizedBuyer
from app.services.validator import BuyerValidator

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BuyerService:
    """Orchestrates buyer create, update, delete and read workflows.

    Every write goes through the same pipeline: normalize, validate,
    (for updates) check for a stale read and diff, persist, then append
    an audit entry.  Audit entries are best-effort: a failure to write
    one is logged and never undoes the mutation it describes.

    Repositories are passed per call so the service itself holds no
    request state.
    """

    def __init__(
        self,
        cache: Optional[CacheService] = None,
        lenient: bool = False,
        require_observed_updated_at: bool = False,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._cache: CacheService = cache or CacheService()
        self._normalizer = BuyerNormalizer(lenient=lenient)
        self._require_observed = require_observed_updated_at
        self._clock = clock

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def create_buyer(
        self,
        raw: Mapping[str, Any],
        actor: SessionUser,
        buyer_repo: BuyerRepository,
    ) -> Buyer:
        """Create a buyer owned by *actor*.

        Raises:
            BuyerValidationError: If the normalized input breaks any rule.
            StorageError: If the insert fails.
        """
        normalized = self._normalize(raw, partial=False)
        BuyerValidator.validate(normalized.values)

        now = self._clock()
        buyer = await buyer_repo.insert(
            id=uuid4(),
            owner_id=actor.id,
            created_at=now,
            updated_at=now,
            **normalized.values,
        )
        logger.info("Buyer %s created by %s", buyer.id, actor.id)

        await self._record_audit(
            buyer_repo,
            buyer_id=buyer.id,
            changed_by=actor.id,
            changed_at=now,
            diff={"created": {"old": None, "new": dict(normalized.values)}},
        )
        return buyer

    async def update_buyer(
        self,
        buyer_id: UUID,
        raw: Mapping[str, Any],
        observed_updated_at: Optional[Timestamp],
        actor: SessionUser,
        buyer_repo: BuyerRepository,
        owner_id: Optional[str] = None,
    ) -> Buyer:
        """Apply a partial update to a buyer.

        Fields missing from *raw* are left alone; the merged record is
        re-validated as a whole.  An update that changes nothing is not
        written and leaves ``updated_at`` untouched.

        Raises:
            BuyerNotFoundError: If the buyer does not exist.
            ForbiddenError: If *actor* may not modify the buyer, or a
                non-admin tries to reassign its owner.
            BuyerValidationError: If the merged record breaks any rule.
            ConflictError: If the record changed after the caller read it.
            StorageError: If the database read or write fails.
        """
        normalized = self._normalize(raw, partial=True)

        buyer = await self._get_or_404(buyer_id, buyer_repo)
        self._ensure_can_modify(buyer, actor)

        proposed: Dict[str, Any] = dict(normalized.values)
        if owner_id is not None and owner_id != buyer.owner_id:
            if not actor.is_admin:
                logger.warning(
                    "User %s tried to reassign owner of buyer %s", actor.id, buyer_id
                )
                raise ForbiddenError("Only administrators can change a buyer's owner")
            proposed["owner_id"] = owner_id

        existing = buyer_snapshot(buyer)
        BuyerValidator.validate({**existing, **proposed})

        ensure_not_stale(buyer.updated_at, observed_updated_at, self._require_observed)

        changes = compute_change_set(existing, proposed, AUDITED_FIELDS)
        if not changes:
            logger.info("Update of buyer %s changed nothing; skipping write", buyer_id)
            return buyer

        fields = {name: proposed[name] for name in changes}
        fields["updated_at"] = next_updated_at(buyer.updated_at, self._clock())
        updated = await buyer_repo.update(
            buyer_id, fields, expected_updated_at=buyer.updated_at
        )
        if updated is None:
            # The row moved between our read and the conditional write
            raise ConflictError()

        await self._cache.invalidate_buyer(buyer_id)
        logger.info(
            "Buyer %s updated by %s: %s", buyer_id, actor.id, ", ".join(sorted(changes))
        )

        await self._record_audit(
            buyer_repo,
            buyer_id=buyer_id,
            changed_by=actor.id,
            changed_at=fields["updated_at"],
            diff=changes,
        )
        return updated

    async def delete_buyer(
        self,
        buyer_id: UUID,
        actor: SessionUser,
        buyer_repo: BuyerRepository,
    ) -> None:
        """Delete a buyer and its audit trail (history first, then the record).

        Raises:
            BuyerNotFoundError: If the buyer does not exist.
            ForbiddenError: If *actor* may not modify the buyer.
            StorageError: If either deletion fails; neither is kept.
        """
        buyer = await self._get_or_404(buyer_id, buyer_repo)
        self._ensure_can_modify(buyer, actor)

        removed_entries = await buyer_repo.delete_audit(buyer_id)
        if not await buyer_repo.delete(buyer_id):
            raise BuyerNotFoundError()

        await self._cache.invalidate_buyer(buyer_id)
        logger.info(
            "Buyer %s deleted by %s (%d history entries removed)",
            buyer_id,
            actor.id,
            removed_entries,
        )

    async def get_buyer(
        self, buyer_id: UUID, buyer_repo: BuyerRepository
    ) -> Dict[str, Any]:
        """Return a buyer as a JSON-ready dict, served from cache when possible."""
        cached = await self._cache.get_buyer(buyer_id)
        if cached is not None:
            return cached

        buyer = await self._get_or_404(buyer_id, buyer_repo)
        data = BuyerOut.model_validate(buyer).model_dump(mode="json")
        await self._cache.set_buyer(buyer_id, data)
        return data

    async def get_history(
        self,
        buyer_id: UUID,
        buyer_repo: BuyerRepository,
        limit: Optional[int] = None,
    ) -> List[BuyerHistory]:
        """Return a buyer's audit entries, most recent first."""
        await self._get_or_404(buyer_id, buyer_repo)
        return await buyer_repo.list_audit(buyer_id, limit=limit)

    async def list_buyers(
        self, filters: BuyerFilters, buyer_repo: BuyerRepository
    ) -> Dict[str, Any]:
        """Return one page of buyers plus pagination metadata."""
        buyers, total = await buyer_repo.search(filters)
        return {
            "buyers": buyers,
            "total_count": total,
            "current_page": filters.page,
            "total_pages": math.ceil(total / filters.page_size),
        }

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _normalize(self, raw: Mapping[str, Any], partial: bool) -> NormalizedBuyer:
        normalized = self._normalizer.normalize(raw, partial=partial)
        if normalized.unrecognized:
            logger.info(
                "Unrecognized values for %s (lenient=%s)",
                ", ".join(sorted(normalized.unrecognized)),
                self._normalizer.lenient,
            )
        return normalized

    @staticmethod
    async def _get_or_404(buyer_id: UUID, buyer_repo: BuyerRepository) -> Buyer:
        buyer = await buyer_repo.get_by_id(buyer_id)
        if buyer is None:
            raise BuyerNotFoundError()
        return buyer

    @staticmethod
    def _ensure_can_modify(buyer: Buyer, actor: SessionUser) -> None:
        if not actor.can_modify(buyer.owner_id):
            logger.warning(
                "User %s denied write access to buyer %s owned by %s",
                actor.id,
                buyer.id,
                buyer.owner_id,
            )
            raise ForbiddenError()

    async def _record_audit(self, buyer_repo: BuyerRepository, **entry: Any) -> None:
        """Append an audit entry; failures are logged and swallowed."""
        try:
            await buyer_repo.append_audit(**entry)
        except Exception:
            logger.warning(
                "Audit entry for buyer %s could not be written",
                entry.get("buyer_id"),
                exc_info=True,
            )
