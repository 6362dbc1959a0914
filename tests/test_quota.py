#!/usr/bin/env python3
"""
Tests for the daily upload quota and the midnight reset scheduler.

Run with: pytest tests/test_quota.py -v
"""

import time
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock
from zoneinfo import ZoneInfo

import pytest

from fraudboard.exceptions import QuotaExceededError
from fraudboard.quota import DailyResetScheduler, QuotaTracker
from fraudboard.store import QuotaLimitReached


class TestQuotaTracker:

    def test_fresh_owner_has_full_allowance(self, tracker, noon):
        status = tracker.check_and_reserve("alice", noon)
        assert status.used == 0
        assert status.remaining == 3
        assert not status.at_limit

    def test_reserve_does_not_consume(self, tracker, noon):
        tracker.check_and_reserve("alice", noon)
        tracker.check_and_reserve("alice", noon)
        assert tracker.uploads_today("alice", noon) == 0

    def test_commit_counts_up_to_limit(self, tracker, noon):
        assert [tracker.commit("alice", noon) for _ in range(3)] == [1, 2, 3]

        with pytest.raises(QuotaExceededError) as exc_info:
            tracker.check_and_reserve("alice", noon)
        err = exc_info.value
        assert err.limit == 3
        assert err.next_reset == datetime(2024, 3, 14, 23, 59, 59, 999000, tzinfo=timezone.utc)

    def test_owners_are_independent(self, tracker, noon):
        for _ in range(3):
            tracker.commit("alice", noon)
        assert tracker.check_and_reserve("bob", noon).used == 0

    def test_commit_past_limit_raises(self, tracker, noon):
        for _ in range(3):
            tracker.commit("alice", noon)
        with pytest.raises(QuotaExceededError):
            tracker.commit("alice", noon)
        assert tracker.uploads_today("alice", noon) == 3

    def test_stale_counter_counts_as_zero(self, tracker, noon):
        """A counter from yesterday is treated as 0 even if no reset ran."""
        for _ in range(3):
            tracker.commit("alice", noon)
        tomorrow = noon + timedelta(days=1)
        assert tracker.uploads_today("alice", tomorrow) == 0
        assert tracker.check_and_reserve("alice", tomorrow).remaining == 3
        assert tracker.commit("alice", tomorrow) == 1

    def test_just_before_and_after_midnight(self, tracker):
        late = datetime(2024, 3, 14, 23, 59, 59, tzinfo=timezone.utc)
        early = datetime(2024, 3, 15, 0, 0, 1, tzinfo=timezone.utc)
        for _ in range(3):
            tracker.commit("alice", late)
        with pytest.raises(QuotaExceededError):
            tracker.check_and_reserve("alice", late)
        assert tracker.check_and_reserve("alice", early).used == 0

    def test_reset_all(self, tracker, store, noon):
        tracker.commit("alice", noon)
        tracker.commit("bob", noon)
        assert tracker.reset_all(noon) == 2
        assert tracker.uploads_today("alice", noon) == 0
        assert store.get_quota("bob").count == 0
        assert tracker.commit("bob", noon) == 1

    def test_store_limit_race_becomes_quota_error(self, noon):
        store = MagicMock()
        store.increment_quota.side_effect = QuotaLimitReached(3)
        tracker = QuotaTracker(store, max_uploads=3, tz=timezone.utc)
        with pytest.raises(QuotaExceededError):
            tracker.commit("alice", noon)

    def test_rejects_nonpositive_limit(self, store):
        with pytest.raises(ValueError):
            QuotaTracker(store, max_uploads=0)

    def test_local_day_follows_timezone(self, store):
        """11pm UTC on the 14th is already the 15th in Tokyo."""
        tracker = QuotaTracker(store, max_uploads=3, tz=ZoneInfo("Asia/Tokyo"))
        now = datetime(2024, 3, 14, 23, 0, tzinfo=timezone.utc)
        start = tracker.day_start(now)
        assert (start.year, start.month, start.day, start.hour) == (2024, 3, 15, 0)

    def test_seconds_until_midnight(self, tracker):
        now = datetime(2024, 3, 14, 22, 30, tzinfo=timezone.utc)
        assert tracker.seconds_until_midnight(now) == 5400

    def test_seconds_until_midnight_across_dst(self, store):
        """The spring-forward day in New York is 23 hours long."""
        tracker = QuotaTracker(store, tz=ZoneInfo("America/New_York"))
        one_am = datetime(2024, 3, 10, 1, 0, tzinfo=ZoneInfo("America/New_York"))
        assert tracker.seconds_until_midnight(one_am) == 22 * 3600


class TestDailyResetScheduler:

    def test_next_delay_targets_midnight(self, tracker):
        clock = lambda: datetime(2024, 3, 14, 23, 0, tzinfo=timezone.utc)  # noqa: E731
        scheduler = DailyResetScheduler(tracker, clock=clock)
        assert scheduler.next_delay() == 3600

    def test_next_delay_has_floor(self, tracker):
        clock = lambda: datetime(2024, 3, 14, 23, 59, 59, 999999, tzinfo=timezone.utc)  # noqa: E731
        scheduler = DailyResetScheduler(tracker, clock=clock, min_delay=1.0)
        assert scheduler.next_delay() == 1.0

    def test_fire_resets_counts(self, tracker, noon):
        tracker.commit("alice", noon)
        scheduler = DailyResetScheduler(tracker, clock=lambda: noon)
        scheduler.fire()
        assert tracker.uploads_today("alice", noon) == 0
        assert scheduler.last_reset == noon

    def test_fire_survives_store_errors(self, noon):
        tracker = MagicMock()
        tracker.reset_all.side_effect = RuntimeError("table gone")
        scheduler = DailyResetScheduler(tracker, clock=lambda: noon)
        scheduler.fire()
        assert scheduler.last_reset is None

    def test_thread_fires_and_stops(self, tracker, noon):
        tracker.commit("alice", noon)
        clock = lambda: datetime(2024, 3, 14, 23, 59, 59, 999000, tzinfo=timezone.utc)  # noqa: E731
        scheduler = DailyResetScheduler(tracker, clock=clock, min_delay=0.01)

        scheduler.start()
        assert scheduler.running
        deadline = time.time() + 5
        while scheduler.last_reset is None and time.time() < deadline:
            time.sleep(0.01)
        scheduler.stop()

        assert scheduler.last_reset is not None
        assert not scheduler.running
        assert tracker.store.get_quota("alice").count == 0

    def test_stop_wakes_sleeping_thread(self, tracker):
        scheduler = DailyResetScheduler(tracker)
        scheduler.start()
        started = time.time()
        scheduler.stop(timeout=5)
        assert time.time() - started < 5
        assert not scheduler.running


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
