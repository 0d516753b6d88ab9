"""Virtual clock for the mock billing engine.

Responsibilities:
- Maintain virtual current time
- Advance time (days, hours, minutes) or jump to a timestamp
- Reset back to wall-clock time

Processing of renewals and expirations that become due is done by the
engine that owns the clock; the clock only keeps time.
"""

import time
from datetime import datetime, timezone
from typing import Optional

from entitlement_engine.logging_config import get_logger
from entitlement_engine.utils.billing_period import MILLIS_PER_DAY, MILLIS_PER_HOUR, MILLIS_PER_MINUTE

logger = get_logger(__name__)


def _wall_clock_millis() -> int:
    return int(time.time() * 1000)


class VirtualClock:
    """Virtual clock that can be fast-forwarded.

    Args:
        start_millis: Initial virtual time; defaults to the wall clock
    """

    def __init__(self, start_millis: Optional[int] = None) -> None:
        self._virtual_time_millis = start_millis if start_millis is not None else _wall_clock_millis()
        self._time_offset_millis = 0

        logger.debug("virtual_clock_initialized", virtual_time_millis=self._virtual_time_millis)

    def now_millis(self) -> int:
        """Current virtual time as a Unix timestamp in milliseconds."""
        return self._virtual_time_millis

    def now(self) -> datetime:
        """Current virtual time as an aware UTC datetime."""
        return datetime.fromtimestamp(self._virtual_time_millis / 1000, tz=timezone.utc)

    @property
    def offset_millis(self) -> int:
        """How far the clock has been moved ahead of where it started."""
        return self._time_offset_millis

    def advance(self, days: int = 0, hours: int = 0, minutes: int = 0) -> tuple[int, int]:
        """Advance virtual time.

        Returns:
            ``(old_time_millis, new_time_millis)``

        Raises:
            ValueError: If any value is negative
        """
        if days < 0 or hours < 0 or minutes < 0:
            raise ValueError("Cannot advance time backwards; negative values are not allowed")

        millis = days * MILLIS_PER_DAY + hours * MILLIS_PER_HOUR + minutes * MILLIS_PER_MINUTE
        old_time = self._virtual_time_millis
        if millis == 0:
            return old_time, old_time

        self._virtual_time_millis += millis
        self._time_offset_millis += millis

        logger.info(
            "time_advanced",
            old_time_millis=old_time,
            new_time_millis=self._virtual_time_millis,
            days=days,
            hours=hours,
            minutes=minutes,
        )
        return old_time, self._virtual_time_millis

    def set_time(self, timestamp_millis: int) -> tuple[int, int]:
        """Jump to a specific timestamp.

        Raises:
            ValueError: If the timestamp is before the current virtual time
        """
        old_time = self._virtual_time_millis
        if timestamp_millis < old_time:
            raise ValueError(
                f"Cannot set time backwards, current: {old_time}, requested: {timestamp_millis}"
            )

        self._time_offset_millis += timestamp_millis - old_time
        self._virtual_time_millis = timestamp_millis

        logger.info("time_set", old_time_millis=old_time, new_time_millis=timestamp_millis)
        return old_time, timestamp_millis

    def reset(self) -> None:
        """Reset virtual time back to the wall clock."""
        old_time = self._virtual_time_millis
        self._virtual_time_millis = _wall_clock_millis()
        self._time_offset_millis = 0
        logger.info("time_reset", old_time_millis=old_time, new_time_millis=self._virtual_time_millis)

    def __repr__(self) -> str:
        return f"VirtualClock(now={self.now().isoformat()}, offset_millis={self._time_offset_millis})"
