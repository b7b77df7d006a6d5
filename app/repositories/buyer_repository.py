import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import and_, asc, delete, desc, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import StorageError
from app.models.buyer import Buyer
from app.models.buyer_history import BuyerHistory
from app.repositories.base import BaseRepository, translate_storage_errors
from app.schemas.buyer import BuyerFilters
from app.schemas.common import SortField, SortOrder

logger = logging.getLogger(__name__)

_SORT_COLUMNS = {
    SortField.updated_at: Buyer.updated_at,
    SortField.created_at: Buyer.created_at,
    SortField.full_name: Buyer.full_name,
}


class BuyerRepository(BaseRepository):
    """Encapsulates every SQL query that touches ``buyers`` and ``buyer_history``.

    Mutating methods commit their own transaction, except
    :meth:`delete_audit`, which is always followed by :meth:`delete` so
    that both deletions land (or roll back) together.
    """

    @translate_storage_errors
    async def get_by_id(self, buyer_id: UUID) -> Optional[Buyer]:
        """Return a single buyer by primary key, or ``None``."""
        result = await self._db.execute(select(Buyer).where(Buyer.id == buyer_id))
        return result.scalar_one_or_none()

    @translate_storage_errors
    async def insert(self, **fields: Any) -> Buyer:
        """Insert a new buyer and return the model instance."""
        buyer = Buyer(**fields)
        self._db.add(buyer)
        await self._db.commit()
        return buyer

    @translate_storage_errors
    async def update(
        self,
        buyer_id: UUID,
        fields: Dict[str, Any],
        expected_updated_at: Optional[datetime] = None,
    ) -> Optional[Buyer]:
        """Apply *fields* to a buyer and return the updated row.

        When *expected_updated_at* is given the write only happens if
        the row still carries that timestamp, closing the window between
        the service's read and this write.  Returns ``None`` when no row
        matched.
        """
        stmt = update(Buyer).where(Buyer.id == buyer_id)
        if expected_updated_at is not None:
            stmt = stmt.where(Buyer.updated_at == expected_updated_at)
        result = await self._db.execute(stmt.values(**fields).returning(Buyer))
        buyer = result.scalar_one_or_none()
        await self._db.commit()
        return buyer

    @translate_storage_errors
    async def delete(self, buyer_id: UUID) -> bool:
        """Delete a buyer row and commit; return whether a row was removed.

        When no row matched (someone else deleted it first) the
        transaction is rolled back instead, so a preceding
        :meth:`delete_audit` is undone too.
        """
        result = await self._db.execute(delete(Buyer).where(Buyer.id == buyer_id))
        if result.rowcount == 0:
            await self.rollback()
            return False
        await self._db.commit()
        return True

    async def append_audit(self, **kwargs: Any) -> BuyerHistory:
        """Insert a new audit-trail entry inside a savepoint.

        A failed insert only rolls back the savepoint.  The session-wide
        rollback used by the other methods would expire the buyer the
        caller just committed and is still about to serialise.

        Raises:
            StorageError: If the entry could not be written.
        """
        entry = BuyerHistory(**kwargs)
        try:
            async with self._db.begin_nested():
                self._db.add(entry)
            await self._db.commit()
        except SQLAlchemyError as exc:
            logger.error("Storage failure in append_audit: %s", exc)
            raise StorageError("Storage operation failed: append_audit") from exc
        return entry

    @translate_storage_errors
    async def list_audit(
        self, buyer_id: UUID, limit: Optional[int] = None
    ) -> List[BuyerHistory]:
        """Return audit entries for a buyer, most recent first."""
        query = (
            select(BuyerHistory)
            .where(BuyerHistory.buyer_id == buyer_id)
            .order_by(BuyerHistory.changed_at.desc(), BuyerHistory.id.desc())
        )
        if limit is not None:
            query = query.limit(limit)
        result = await self._db.execute(query)
        return list(result.scalars().all())

    @translate_storage_errors
    async def delete_audit(self, buyer_id: UUID) -> int:
        """Delete every audit entry of a buyer without committing."""
        result = await self._db.execute(
            delete(BuyerHistory).where(BuyerHistory.buyer_id == buyer_id)
        )
        return result.rowcount

    @translate_storage_errors
    async def search(self, filters: BuyerFilters) -> Tuple[List[Buyer], int]:
        """Return one page of buyers matching *filters* and the total count.

        ``budget_min``/``budget_max`` filters match overlapping ranges:
        a buyer with no upper bound satisfies any minimum, and one with
        no lower bound satisfies any maximum.
        """
        conditions = []
        if filters.search:
            # autoescape keeps % and _ in the term literal
            term = filters.search.strip()
            conditions.append(
                or_(
                    Buyer.full_name.icontains(term, autoescape=True),
                    Buyer.phone.icontains(term, autoescape=True),
                    Buyer.email.icontains(term, autoescape=True),
                )
            )
        for name in ("city", "property_type", "status", "timeline", "purpose", "bhk"):
            value = getattr(filters, name)
            if value is not None:
                conditions.append(getattr(Buyer, name) == value.value)
        if filters.budget_min is not None:
            conditions.append(
                or_(Buyer.budget_max.is_(None), Buyer.budget_max >= filters.budget_min)
            )
        if filters.budget_max is not None:
            conditions.append(
                or_(Buyer.budget_min.is_(None), Buyer.budget_min <= filters.budget_max)
            )

        count_query = select(func.count()).select_from(Buyer)
        page_query = select(Buyer)
        if conditions:
            count_query = count_query.where(and_(*conditions))
            page_query = page_query.where(and_(*conditions))

        total = (await self._db.execute(count_query)).scalar() or 0

        direction = asc if filters.sort_order == SortOrder.asc else desc
        result = await self._db.execute(
            page_query.order_by(
                direction(_SORT_COLUMNS[filters.sort_by]), direction(Buyer.id)
            )
            .offset(filters.offset)
            .limit(filters.page_size)
        )
        return list(result.scalars().all()), total
