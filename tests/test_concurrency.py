from datetime import datetime, timedelta, timezone

import pytest

from app.core.exceptions import ConflictError
from app.schemas.buyer import BuyerUpdate
from app.services.concurrency import as_utc, ensure_not_stale, next_updated_at
from tests.conftest import T0


class TestEnsureNotStale:
    """Stale-read detection on update."""

    def test_same_timestamp_passes(self):
        ensure_not_stale(T0, T0)

    def test_observed_newer_passes(self):
        ensure_not_stale(T0, T0 + timedelta(seconds=5))

    def test_stored_newer_conflicts(self):
        observed = T0 + timedelta(microseconds=10)
        with pytest.raises(ConflictError):
            ensure_not_stale(observed + timedelta(microseconds=1), observed)

    def test_whole_second_epoch_of_current_version_passes(self):
        stored = T0 + timedelta(microseconds=482113)
        ensure_not_stale(stored, int(stored.timestamp()))

    def test_whole_second_epoch_of_older_version_conflicts(self):
        stored = T0 + timedelta(seconds=1, microseconds=482113)
        with pytest.raises(ConflictError):
            ensure_not_stale(stored, int(T0.timestamp()))

    def test_epoch_parsed_by_update_schema_passes(self):
        """Clients may send the epoch they read through the update body."""
        stored = T0 + timedelta(microseconds=482113)
        payload = BuyerUpdate(updated_at=int(stored.timestamp()))
        ensure_not_stale(stored, payload.updated_at)

    def test_missing_observed_is_last_write_wins(self):
        ensure_not_stale(T0, None)

    def test_missing_observed_rejected_when_required(self):
        with pytest.raises(ConflictError):
            ensure_not_stale(T0, None, require_observed=True)

    def test_epoch_seconds_are_accepted(self):
        ensure_not_stale(T0, T0.timestamp())
        with pytest.raises(ConflictError):
            ensure_not_stale(T0, T0.timestamp() - 1)

    def test_naive_datetimes_are_utc(self):
        naive = T0.replace(tzinfo=None)
        ensure_not_stale(T0, naive)


class TestTimestamps:
    def test_as_utc_converts_offsets(self):
        ist = timezone(timedelta(hours=5, minutes=30))
        local = T0.astimezone(ist)
        assert as_utc(local) == T0
        assert as_utc(local).tzinfo == timezone.utc

    def test_as_utc_none(self):
        assert as_utc(None) is None

    def test_next_updated_at_uses_clock(self):
        later = T0 + timedelta(seconds=3)
        assert next_updated_at(T0, later) == later

    def test_next_updated_at_is_strictly_later(self):
        assert next_updated_at(T0, T0) == T0 + timedelta(microseconds=1)
        assert next_updated_at(T0, T0 - timedelta(seconds=1)) > T0

    def test_next_updated_at_defaults_to_now(self):
        assert next_updated_at(None) <= datetime.now(timezone.utc)
