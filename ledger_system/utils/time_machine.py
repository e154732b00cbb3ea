# ledger_system/utils/time_machine.py
"""
Time machine - single clock for the ledger.

All timestamps are naive UTC. Tests and admin tooling can pin a virtual
time with setTime() and return to the wall clock with resetToRealTime().
"""
import logging
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)


def toNaiveUtc(value: datetime) -> datetime:
    """Convert aware datetime to naive UTC, leave naive values as they are."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class TimeMachine:
    """Virtual clock with real-time fallback."""

    def __init__(self):
        self._virtualTime: Optional[datetime] = None
        self._isTestMode = False

    @property
    def now(self) -> datetime:
        """Current time (virtual when test mode is on), naive UTC."""
        if self._isTestMode and self._virtualTime is not None:
            return self._virtualTime
        return datetime.now(timezone.utc).replace(tzinfo=None)

    @property
    def currentMonth(self) -> str:
        """Current month as YYYY-MM."""
        return self.now.strftime("%Y-%m")

    @property
    def isTestMode(self) -> bool:
        return self._isTestMode

    def setTime(self, value: datetime) -> None:
        """Pin the clock to given moment."""
        self._virtualTime = toNaiveUtc(value)
        self._isTestMode = True
        logger.warning(f"Time machine set to {self._virtualTime}")

    def resetToRealTime(self) -> None:
        """Return to wall clock."""
        if self._isTestMode:
            logger.info("Time machine reset to real time")
        self._virtualTime = None
        self._isTestMode = False


timeMachine = TimeMachine()
