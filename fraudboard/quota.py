"""
Per-owner daily upload allowance.

An owner is under the limit while today's count is below ``max_uploads``.
"Today" is the current local calendar day in the configured timezone; a
counter last touched before today's midnight counts as zero even if the
scheduled reset has not run yet.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Callable, Optional

from .exceptions import QuotaExceededError
from .store import QuotaLimitReached, ScoreStore

logger = logging.getLogger("fraudboard.quota")

DEFAULT_MAX_UPLOADS = 5


@dataclass(frozen=True)
class QuotaStatus:
    used: int
    limit: int
    next_reset: datetime

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)

    @property
    def at_limit(self) -> bool:
        return self.used >= self.limit


class QuotaTracker:
    """
    Reads and advances daily upload counters kept in a ScoreStore.

    Args:
        store: Backing store holding one QuotaRecord per owner
        max_uploads: Uploads allowed per owner per local day
        tz: Timezone defining "local day"; system local time when None
    """

    def __init__(self, store: ScoreStore, max_uploads: int = DEFAULT_MAX_UPLOADS,
                 tz: Optional[tzinfo] = None):
        if max_uploads < 1:
            raise ValueError("max_uploads must be at least 1")
        self.store = store
        self.max_uploads = max_uploads
        self.tz = tz

    # ------------------------------------------------------------------
    # Calendar helpers
    # ------------------------------------------------------------------

    def now(self) -> datetime:
        return datetime.now(self.tz) if self.tz else datetime.now().astimezone()

    def _local(self, now: Optional[datetime]) -> datetime:
        if now is None:
            return self.now()
        return now.astimezone(self.tz) if self.tz else now.astimezone()

    def day_start(self, now: Optional[datetime] = None) -> datetime:
        return self._local(now).replace(hour=0, minute=0, second=0, microsecond=0)

    def next_reset(self, now: Optional[datetime] = None) -> datetime:
        """End of the current local day (23:59:59.999)."""
        return self._local(now).replace(hour=23, minute=59, second=59, microsecond=999000)

    def next_midnight(self, now: Optional[datetime] = None) -> datetime:
        start = self.day_start(now)
        return (start + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)

    def seconds_until_midnight(self, now: Optional[datetime] = None) -> float:
        local = self._local(now)
        target = self.next_midnight(local)
        return (target.astimezone(timezone.utc) - local.astimezone(timezone.utc)).total_seconds()

    # ------------------------------------------------------------------
    # Quota operations
    # ------------------------------------------------------------------

    def uploads_today(self, owner: str, now: Optional[datetime] = None) -> int:
        record = self.store.get_quota(owner)
        if record is None or record.date < self.day_start(now):
            return 0
        return record.count

    def status(self, owner: str, now: Optional[datetime] = None) -> QuotaStatus:
        return QuotaStatus(
            used=self.uploads_today(owner, now),
            limit=self.max_uploads,
            next_reset=self.next_reset(now),
        )

    def check_and_reserve(self, owner: str, now: Optional[datetime] = None) -> QuotaStatus:
        """
        Confirm ``owner`` may upload now.

        This is a read; the counter only moves in commit().

        Raises:
            QuotaExceededError: If today's count has reached the limit
        """
        status = self.status(owner, now)
        if status.at_limit:
            logger.info(f"Upload refused for {owner}: {status.used}/{self.max_uploads} used today")
            raise QuotaExceededError(self.max_uploads, status.next_reset)
        return status

    def commit(self, owner: str, now: Optional[datetime] = None) -> int:
        """
        Count one more upload for ``owner`` today.

        Returns:
            Today's count after the increment

        Raises:
            QuotaExceededError: If a concurrent upload used the last slot
        """
        local = self._local(now)
        try:
            return self.store.increment_quota(owner, self.day_start(local), local, self.max_uploads)
        except QuotaLimitReached:
            raise QuotaExceededError(self.max_uploads, self.next_reset(local))

    def reset_all(self, now: Optional[datetime] = None) -> int:
        count = self.store.reset_quotas(self._local(now))
        logger.info(f"Daily upload counts reset ({count} records)")
        return count


class DailyResetScheduler:
    """
    Background thread that zeroes every upload counter at local midnight and
    then schedules itself for the following midnight.

    stop() wakes the thread immediately and joins it.
    """

    def __init__(self, tracker: QuotaTracker, clock: Optional[Callable[[], datetime]] = None,
                 min_delay: float = 1.0):
        self.tracker = tracker
        self._clock = clock or tracker.now
        self._min_delay = min_delay
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.last_reset: Optional[datetime] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="fraudboard-daily-reset", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def next_delay(self) -> float:
        return max(self.tracker.seconds_until_midnight(self._clock()), self._min_delay)

    def fire(self) -> None:
        now = self._clock()
        try:
            self.tracker.reset_all(now)
        except Exception as e:
            logger.error(f"Error resetting counts: {e}")
            return
        self.last_reset = now

    def _run(self) -> None:
        while not self._stop_event.is_set():
            delay = self.next_delay()
            logger.debug(f"Next upload count reset in {delay:.0f}s")
            if self._stop_event.wait(delay):
                break
            self.fire()
