import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from app.core.exceptions import ConflictError

logger = logging.getLogger(__name__)

Timestamp = Union[datetime, int, float]


def as_utc(value: Optional[Timestamp]) -> Optional[datetime]:
    """Coerce a datetime or epoch-seconds value to an aware UTC datetime.

    Naive datetimes are taken to be UTC already.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    return datetime.fromtimestamp(float(value), tz=timezone.utc)


def ensure_not_stale(
    stored_updated_at: Timestamp,
    observed_updated_at: Optional[Timestamp],
    require_observed: bool = False,
) -> None:
    """Reject an update whose caller saw an older version of the record.

    Comparison happens at the precision of the observed value: a
    caller that only kept whole seconds (an integer epoch, or an ISO
    timestamp without a fraction) is compared against the stored value
    truncated to the second.

    Raises:
        ConflictError: If the stored ``updated_at`` is strictly newer
            than the one the caller observed, or if no observed value
            was supplied while *require_observed* is set.
    """
    if observed_updated_at is None:
        if require_observed:
            raise ConflictError("updated_at is required to update a buyer")
        return

    stored = as_utc(stored_updated_at)
    observed = as_utc(observed_updated_at)
    if observed.microsecond == 0:
        stored = stored.replace(microsecond=0)
    if stored > observed:
        logger.warning(
            "Stale update rejected: stored updated_at %s is newer than observed %s",
            stored.isoformat(),
            observed.isoformat(),
        )
        raise ConflictError()


def next_updated_at(previous: Optional[Timestamp], now: Optional[datetime] = None) -> datetime:
    """Return a timestamp strictly later than *previous*.

    Normally this is just the current time; the bump only matters when
    the clock has not advanced since the last write.
    """
    now = as_utc(now or datetime.now(timezone.utc))
    previous = as_utc(previous)
    if previous is not None and now <= previous:
        return previous + timedelta(microseconds=1)
    return now
