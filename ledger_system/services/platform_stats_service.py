# ledger_system/services/platform_stats_service.py
"""
Current-month platform statistics for the superadmin dashboard.

Never raises: a failed read yields zeroed stats flagged isDegraded.
"""
import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models.receipt import Receipt
from models.withdrawal import WithdrawalRequest
from ledger_system.config.constants import ReceiptStatus, WithdrawalStatus, ZERO, toMoney
from ledger_system.services.monthly_revenue_service import monthBounds
from ledger_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)


@dataclass
class PlatformStats:
    totalMonthlyRevenue: Decimal = ZERO
    depositsAccepted: Decimal = ZERO
    withdrawalsProcessed: Decimal = ZERO
    totalTransactions: int = 0
    averagePerTransaction: Decimal = ZERO
    lastUpdated: Optional[datetime] = None
    isDegraded: bool = False

    def toDict(self) -> Dict:
        return asdict(self)


class PlatformStatsService:
    """Platform revenue for the current month (per timeMachine)."""

    def __init__(self, session: Session):
        self.session = session

    async def getMonthlyPlatformStats(self) -> PlatformStats:
        """
        Approved receipts created this month minus approved withdrawals
        processed this month.
        """
        now = timeMachine.now
        start, end = monthBounds(now.year, now.month)

        try:
            depositsTotal, depositsCount = self.session.query(
                func.coalesce(func.sum(Receipt.amount), 0),
                func.count(Receipt.receiptID)
            ).filter(
                Receipt.status == ReceiptStatus.APPROVED.value,
                Receipt.excludeFromRevenue.is_(False),
                Receipt.createdAt >= start,
                Receipt.createdAt < end
            ).one()

            withdrawalsTotal, withdrawalsCount = self.session.query(
                func.coalesce(func.sum(WithdrawalRequest.amount), 0),
                func.count(WithdrawalRequest.withdrawalID)
            ).filter(
                WithdrawalRequest.status == WithdrawalStatus.APPROVED.value,
                WithdrawalRequest.excludeFromRevenue.is_(False),
                WithdrawalRequest.processedDate >= start,
                WithdrawalRequest.processedDate < end
            ).one()
        except SQLAlchemyError as e:
            logger.error(f"Error getting platform stats: {e}", exc_info=True)
            return PlatformStats(lastUpdated=now, isDegraded=True)

        deposits = toMoney(depositsTotal)
        withdrawals = toMoney(withdrawalsTotal)
        total = deposits - withdrawals
        count = depositsCount + withdrawalsCount

        stats = PlatformStats(
            totalMonthlyRevenue=total,
            depositsAccepted=deposits,
            withdrawalsProcessed=withdrawals,
            totalTransactions=count,
            averagePerTransaction=toMoney(total / count) if count else ZERO,
            lastUpdated=now
        )
        logger.debug(f"Platform stats for {timeMachine.currentMonth}: {stats}")
        return stats
