# ledger_system/services/revenue_poller.py
"""
Periodic push of monthly revenue to a dashboard callback.

The aggregation itself is pure; this poller only owns the timer. Results
may lag concurrent writers by up to one interval.
"""
import asyncio
import inspect
import logging
from typing import Callable, List, Optional, Union

from config import Config
from core.db import get_session
from ledger_system.services.monthly_revenue_service import (
    MonthlyRevenue,
    MonthlyRevenueService,
    RevenueRole,
)

logger = logging.getLogger(__name__)


class RevenuePoller:
    """
    Recompute monthly revenue of one actor every interval.

    Usage:
        poller = RevenuePoller(adminId, "admin", onRevenue)
        poller.start()
        ...
        await poller.stop()
    """

    def __init__(
            self,
            userId: Optional[int],
            role: Union[str, RevenueRole],
            callback: Callable[[List[MonthlyRevenue]], None],
            intervalSeconds: Optional[float] = None,
            limitMonths: Optional[int] = 12
    ):
        self.userId = userId
        self.role = role
        self.callback = callback
        self.intervalSeconds = intervalSeconds or Config.get(Config.REVENUE_POLL_INTERVAL_SECONDS)
        self.limitMonths = limitMonths
        self._task: Optional[asyncio.Task] = None

        self.stats = {
            "polls": 0,
            "errors": 0,
            "lastError": None
        }

    @property
    def isRunning(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start polling on the running event loop."""
        if self.isRunning:
            logger.warning(f"Revenue poller for {self.role}:{self.userId} already running")
            return
        self._task = asyncio.create_task(self._run())
        logger.info(f"Revenue poller started: {self.role}:{self.userId} every {self.intervalSeconds}s")

    async def stop(self) -> None:
        """Cancel polling. Safe to call more than once."""
        task, self._task = self._task, None
        if task is None:
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info(f"Revenue poller stopped: {self.role}:{self.userId}")

    async def pollOnce(self) -> List[MonthlyRevenue]:
        """Aggregate with a fresh session and push the result."""
        session = get_session()
        try:
            revenues = await MonthlyRevenueService(session).getMonthlyRevenue(
                self.userId, self.role, self.limitMonths
            )
        finally:
            session.close()

        result = self.callback(revenues)
        if inspect.isawaitable(result):
            await result

        self.stats["polls"] += 1
        return revenues

    async def _run(self) -> None:
        while True:
            try:
                await self.pollOnce()
            except Exception as e:
                logger.error(f"Revenue poll failed for {self.role}:{self.userId}: {e}", exc_info=True)
                self.stats["errors"] += 1
                self.stats["lastError"] = str(e)

            await asyncio.sleep(self.intervalSeconds)
