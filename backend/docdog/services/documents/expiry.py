"""Retention windows and expiry arithmetic.

All timestamps are epoch milliseconds. Expiry is always recomputed from
(created_at, option) against the caller's clock; nothing here caches it.
"""
import time
from datetime import timedelta
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from docdog.services.documents.models import HistoryRecord


class ExpireOption(str, Enum):
    """Retention window. Serialized by member name so reordering is safe."""

    ONE_HOUR = "ONE_HOUR"
    SEVEN_DAYS = "SEVEN_DAYS"
    THIRTY_DAYS = "THIRTY_DAYS"
    PERMANENT = "PERMANENT"

    @property
    def label(self) -> str:
        return _OPTION_LABELS[self]

    @property
    def duration(self) -> timedelta:
        """Zero means the window never closes."""
        return _OPTION_DURATIONS[self]

    @property
    def duration_ms(self) -> int:
        return int(self.duration.total_seconds() * 1000)

    @property
    def is_permanent(self) -> bool:
        return self.duration == timedelta(0)


_OPTION_LABELS = {
    ExpireOption.ONE_HOUR: "1 hour",
    ExpireOption.SEVEN_DAYS: "7 days",
    ExpireOption.THIRTY_DAYS: "30 days",
    ExpireOption.PERMANENT: "Permanent",
}

_OPTION_DURATIONS = {
    ExpireOption.ONE_HOUR: timedelta(hours=1),
    ExpireOption.SEVEN_DAYS: timedelta(days=7),
    ExpireOption.THIRTY_DAYS: timedelta(days=30),
    ExpireOption.PERMANENT: timedelta(0),
}


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def available_options(allow_permanent: bool = False) -> list[ExpireOption]:
    """Options offered to users, shortest first."""
    options = [ExpireOption.ONE_HOUR, ExpireOption.SEVEN_DAYS, ExpireOption.THIRTY_DAYS]
    if allow_permanent:
        options.append(ExpireOption.PERMANENT)
    return options


def longest_finite_option() -> ExpireOption:
    return max(
        (o for o in ExpireOption if not o.is_permanent),
        key=lambda o: o.duration,
    )


def expires_at(created_at: int, option: ExpireOption) -> Optional[int]:
    """Expiry timestamp, or None when the option never expires.

    None is distinct from 0: a record created at epoch 0 with a one-hour
    window expires at 3_600_000, a permanent one never does.
    """
    if option.is_permanent:
        return None
    return created_at + option.duration_ms


def is_expired(record: "HistoryRecord", now: int) -> bool:
    deadline = expires_at(record.created_at, record.expire_option)
    if deadline is None:
        return False
    return now >= deadline
