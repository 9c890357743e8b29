"""Daily usage quota for unauthenticated interpretations.

The governor is the only component that reads or writes the persisted
``QuotaRecord``. A record whose date is not today is simply read as a zero
count; the next ``record_use`` overwrites it with a fresh record.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, time, timedelta

from pydantic import ValidationError

from emojilens.models import QuotaCheck, QuotaRecord, QuotaSnapshot
from emojilens.store import KeyValueStore

logger = logging.getLogger(__name__)

STORAGE_KEY = "emojilens_quota"
DEFAULT_MAX_USES = 3


class QuotaGovernor:
    """Tracks how many interpretations were used today (client local time)."""

    def __init__(
        self,
        store: KeyValueStore,
        max_uses: int = DEFAULT_MAX_USES,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._store = store
        self._max_uses = max(0, max_uses)
        self._clock = clock

    # ── public ──────────────────────────────────────────────────────────

    @property
    def max_uses(self) -> int:
        return self._max_uses

    @property
    def used(self) -> int:
        return self._current_count()

    @property
    def remaining(self) -> int:
        return max(0, self._max_uses - self._current_count())

    def reset_at(self) -> datetime:
        """Start of the next calendar day."""
        tomorrow = self._clock().date() + timedelta(days=1)
        return datetime.combine(tomorrow, time.min)

    def reset_in(self) -> str:
        """Human countdown until the quota resets."""
        return format_reset_time(self.reset_at(), self._clock())

    def check(self) -> QuotaCheck:
        """Report whether another use is allowed. Does not consume a slot."""
        count = self._current_count()
        if count >= self._max_uses:
            return QuotaCheck(allowed=False, remaining=0, reset_at=self.reset_at())
        return QuotaCheck(
            allowed=True, remaining=self._max_uses - count, reset_at=self.reset_at()
        )

    def record_use(self) -> int:
        """Consume one slot for today and return the new remaining count."""
        count = self._current_count()
        if count >= self._max_uses:
            return 0
        count += 1
        self._save(count)
        logger.info("Quota slot used (%d/%d today)", count, self._max_uses)
        return self._max_uses - count

    def refund(self) -> int:
        """Give back one slot consumed today; a no-op for stale or empty records."""
        count = self._current_count()
        if count > 0:
            count -= 1
            self._save(count)
            logger.info("Quota slot refunded (%d/%d today)", count, self._max_uses)
        return max(0, self._max_uses - count)

    def snapshot(self) -> QuotaSnapshot:
        return QuotaSnapshot(
            remaining=self.remaining, max_uses=self._max_uses, reset_at=self.reset_at()
        )

    def clear(self) -> None:
        """Forget today's usage entirely."""
        self._store.delete(STORAGE_KEY)

    # ── private ─────────────────────────────────────────────────────────

    def _today(self) -> str:
        return self._clock().date().isoformat()

    def _load(self) -> QuotaRecord | None:
        raw = self._store.get(STORAGE_KEY)
        if not raw:
            return None
        try:
            return QuotaRecord.model_validate_json(raw)
        except ValidationError:
            # Unreadable records fail open: treated as no usage at all.
            logger.warning("Discarding unreadable quota record: %r", raw[:100])
            return None

    def _current_count(self) -> int:
        record = self._load()
        if record is None or record.date != self._today():
            return 0
        return record.count

    def _save(self, count: int) -> None:
        record = QuotaRecord(count=count, date=self._today())
        self._store.set(STORAGE_KEY, record.model_dump_json())


def _plural(n: int, unit: str) -> str:
    return f"{n} {unit}" if n == 1 else f"{n} {unit}s"


def format_reset_time(reset_at: datetime, now: datetime) -> str:
    """Render the time left until *reset_at* as a short phrase."""
    diff_minutes = int((reset_at - now).total_seconds() // 60)
    if diff_minutes < 1:
        return "less than a minute"
    if diff_minutes < 60:
        return _plural(diff_minutes, "minute")
    hours, minutes = divmod(diff_minutes, 60)
    if minutes == 0:
        return _plural(hours, "hour")
    return f"{_plural(hours, 'hour')} and {_plural(minutes, 'minute')}"


def format_elapsed(seconds: float) -> str:
    """Compact elapsed-time label, e.g. ``42s`` or ``1m 5s``."""
    total = max(0, int(seconds))
    if total < 60:
        return f"{total}s"
    mins, secs = divmod(total, 60)
    return f"{mins}m {secs}s"
