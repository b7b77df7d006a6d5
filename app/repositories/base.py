import functools
import logging
from typing import Any, Awaitable, Callable, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import StorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def translate_storage_errors(
    func: Callable[..., Awaitable[T]],
) -> Callable[..., Awaitable[T]]:
    """Roll back and re-raise database failures as :class:`StorageError`."""

    @functools.wraps(func)
    async def wrapper(self: "BaseRepository", *args: Any, **kwargs: Any) -> T:
        try:
            return await func(self, *args, **kwargs)
        except SQLAlchemyError as exc:
            logger.error("Storage failure in %s: %s", func.__qualname__, exc)
            await self._safe_rollback()
            raise StorageError(f"Storage operation failed: {func.__name__}") from exc

    return wrapper


class BaseRepository:
    """Thin base class that holds the database session.

    Every concrete repository receives an ``AsyncSession`` at
    construction time so that multiple repositories can share the same
    unit-of-work within a single request.
    """

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    @translate_storage_errors
    async def rollback(self) -> None:
        """Roll back the current transaction, discarding uncommitted writes."""
        await self._db.rollback()

    async def _safe_rollback(self) -> None:
        try:
            await self._db.rollback()
        except SQLAlchemyError:
            logger.warning("Rollback failed after storage error", exc_info=True)
