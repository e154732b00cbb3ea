# ledger_system/services/monthly_revenue_service.py
"""
Monthly revenue aggregation.

Revenue views are never stored: every call replays the raw event tables
for the requested actor and groups them by calendar month (UTC).

    admin      - commission_transactions of the admin, by createdAt
    seller     - profit transfers of the seller's deposits, by profitTransferredDate
    superadmin - approved receipts (+) and approved withdrawals (-), platform wide

Rows flagged excludeFromRevenue never count. Read failures return empty results.
"""
import calendar
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Union

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from models.commission import CommissionTransaction
from models.pending_deposit import PendingDeposit
from models.receipt import Receipt
from models.withdrawal import WithdrawalRequest
from ledger_system.config.constants import ReceiptStatus, WithdrawalStatus, ZERO, toMoney
from ledger_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)


class RevenueRole(Enum):
    ADMIN = "admin"
    SELLER = "seller"
    SUPERADMIN = "superadmin"


@dataclass
class RevenueTransaction:
    """One raw revenue event (signed amount)."""
    id: int
    date: datetime
    amount: Decimal
    type: str  # commission, profit, deposit, withdrawal
    description: str
    source: str


@dataclass
class MonthlyRevenue:
    """Revenue of one calendar month, derived on demand."""
    month: str  # YYYY-MM
    year: int
    monthName: str
    totalRevenue: Decimal = ZERO
    profitRevenue: Decimal = ZERO
    commissionRevenue: Decimal = ZERO
    transactionCount: int = 0
    lastUpdated: Optional[datetime] = None

    @classmethod
    def empty(cls, year: int, month: int) -> "MonthlyRevenue":
        return cls(month=f"{year:04d}-{month:02d}", year=year, monthName=calendar.month_name[month])

    def toDict(self) -> Dict:
        return {
            "month": self.month,
            "year": self.year,
            "monthName": self.monthName,
            "totalRevenue": self.totalRevenue,
            "profitRevenue": self.profitRevenue,
            "commissionRevenue": self.commissionRevenue,
            "transactionCount": self.transactionCount,
            "lastUpdated": self.lastUpdated,
        }


def monthBounds(year: int, month: int):
    """[start, end) of a calendar month as naive UTC datetimes."""
    start = datetime(year, month, 1)
    end = datetime(year + 1, 1, 1) if month == 12 else datetime(year, month + 1, 1)
    return start, end


# ═══════════════════════════════════════════════════════════════════════════
# STRATEGIES
# ═══════════════════════════════════════════════════════════════════════════

class RevenueStrategy:
    """Event source and bucket formula for one role."""

    role: RevenueRole

    def events(self, session: Session, userId: int,
               start: Optional[datetime] = None, end: Optional[datetime] = None) -> List[RevenueTransaction]:
        raise NotImplementedError

    def apply(self, bucket: MonthlyRevenue, event: RevenueTransaction) -> None:
        raise NotImplementedError

    @staticmethod
    def _window(query, column, start, end):
        if start is not None:
            query = query.filter(column >= start)
        if end is not None:
            query = query.filter(column < end)
        return query


class AdminRevenueStrategy(RevenueStrategy):
    role = RevenueRole.ADMIN

    def events(self, session, userId, start=None, end=None):
        query = session.query(CommissionTransaction).filter(
            CommissionTransaction.adminID == userId,
            CommissionTransaction.excludeFromRevenue.is_(False)
        )
        query = self._window(query, CommissionTransaction.createdAt, start, end)

        return [
            RevenueTransaction(
                id=tx.transactionID,
                date=tx.createdAt,
                amount=toMoney(tx.commissionAmount),
                type="commission",
                description=tx.description or "Commission earnings",
                source=tx.type
            )
            for tx in query.all()
        ]

    def apply(self, bucket, event):
        bucket.commissionRevenue += event.amount
        bucket.totalRevenue += event.amount


class SellerRevenueStrategy(RevenueStrategy):
    role = RevenueRole.SELLER

    def events(self, session, userId, start=None, end=None):
        query = session.query(PendingDeposit).filter(
            PendingDeposit.sellerID == userId,
            PendingDeposit.profitTransferredAmount > 0,
            PendingDeposit.profitTransferredDate.isnot(None),
            PendingDeposit.excludeFromRevenue.is_(False)
        )
        query = self._window(query, PendingDeposit.profitTransferredDate, start, end)

        return [
            RevenueTransaction(
                id=d.depositID,
                date=d.profitTransferredDate,
                amount=toMoney(d.profitTransferredAmount),
                type="profit",
                description=f"Profit from {d.productName or 'product sale'}",
                source="product_sale"
            )
            for d in query.all()
        ]

    def apply(self, bucket, event):
        bucket.profitRevenue += event.amount
        bucket.totalRevenue += event.amount


class SuperadminRevenueStrategy(RevenueStrategy):
    """Platform net: deposits accepted minus withdrawals paid out."""

    role = RevenueRole.SUPERADMIN

    def events(self, session, userId, start=None, end=None):
        receipts = session.query(Receipt).filter(
            Receipt.status == ReceiptStatus.APPROVED.value,
            Receipt.excludeFromRevenue.is_(False)
        )
        receipts = self._window(receipts, Receipt.createdAt, start, end)

        withdrawalDate = func.coalesce(WithdrawalRequest.processedDate, WithdrawalRequest.createdAt)
        withdrawals = session.query(WithdrawalRequest).filter(
            WithdrawalRequest.status == WithdrawalStatus.APPROVED.value,
            WithdrawalRequest.excludeFromRevenue.is_(False)
        )
        withdrawals = self._window(withdrawals, withdrawalDate, start, end)

        events = [
            RevenueTransaction(
                id=r.receiptID,
                date=r.createdAt,
                amount=toMoney(r.amount),
                type="deposit",
                description=f"Deposit from {r.userName or 'user'}",
                source="receipt_approval"
            )
            for r in receipts.all()
        ]
        events.extend(
            RevenueTransaction(
                id=w.withdrawalID,
                date=w.processedDate or w.createdAt,
                amount=-toMoney(w.amount),
                type="withdrawal",
                description=f"Withdrawal by {w.sellerName or 'seller'}",
                source="withdrawal"
            )
            for w in withdrawals.all()
        )
        return events

    def apply(self, bucket, event):
        bucket.commissionRevenue += event.amount
        bucket.totalRevenue += event.amount


REVENUE_STRATEGIES: Dict[RevenueRole, RevenueStrategy] = {
    strategy.role: strategy
    for strategy in (AdminRevenueStrategy(), SellerRevenueStrategy(), SuperadminRevenueStrategy())
}


def aggregateByMonth(strategy: RevenueStrategy, events: List[RevenueTransaction]) -> List[MonthlyRevenue]:
    """Group events into months, newest month first."""
    buckets: Dict[str, MonthlyRevenue] = {}

    for event in events:
        key = f"{event.date.year:04d}-{event.date.month:02d}"
        bucket = buckets.get(key)
        if bucket is None:
            bucket = buckets[key] = MonthlyRevenue.empty(event.date.year, event.date.month)

        strategy.apply(bucket, event)
        bucket.transactionCount += 1
        if bucket.lastUpdated is None or event.date > bucket.lastUpdated:
            bucket.lastUpdated = event.date

    return [buckets[key] for key in sorted(buckets, reverse=True)]


# ═══════════════════════════════════════════════════════════════════════════
# SERVICE
# ═══════════════════════════════════════════════════════════════════════════

class MonthlyRevenueService:
    """Read-only revenue views per role."""

    def __init__(self, session: Session):
        self.session = session

    @staticmethod
    def strategyFor(role: Union[str, RevenueRole]) -> Optional[RevenueStrategy]:
        try:
            return REVENUE_STRATEGIES[RevenueRole(role)]
        except ValueError:
            logger.warning(f"No revenue strategy for role {role!r}")
            return None

    async def getMonthlyRevenue(
            self,
            userId: Optional[int],
            role: Union[str, RevenueRole],
            limitMonths: Optional[int] = 12
    ) -> List[MonthlyRevenue]:
        """
        Monthly revenue of a user, newest month first.

        Args:
            userId: Admin or seller id (ignored for superadmin)
            role: admin, seller or superadmin
            limitMonths: Number of months to return (None for all)
        """
        strategy = self.strategyFor(role)
        if strategy is None:
            return []

        try:
            events = strategy.events(self.session, userId)
        except SQLAlchemyError as e:
            logger.error(f"Error getting monthly revenue ({role}, user={userId}): {e}", exc_info=True)
            return []

        revenues = aggregateByMonth(strategy, events)
        if limitMonths is not None:
            revenues = revenues[:max(limitMonths, 0)]
        return revenues

    async def getMonthlyTransactions(
            self,
            userId: Optional[int],
            role: Union[str, RevenueRole],
            year: int,
            month: int
    ) -> List[RevenueTransaction]:
        """
        Raw events behind one month bucket, newest first.

        Args:
            month: 1-12
        """
        strategy = self.strategyFor(role)
        if strategy is None or not 1 <= month <= 12:
            return []

        start, end = monthBounds(year, month)
        try:
            events = strategy.events(self.session, userId, start, end)
        except SQLAlchemyError as e:
            logger.error(f"Error getting monthly transactions ({role}, user={userId}): {e}", exc_info=True)
            return []

        return sorted(events, key=lambda e: (e.date, e.id), reverse=True)

    async def getYearlyRevenueSummary(
            self,
            userId: Optional[int],
            role: Union[str, RevenueRole],
            year: Optional[int] = None
    ) -> Dict:
        """Total, monthly breakdown, best month and average for one year."""
        targetYear = year or timeMachine.now.year
        revenues = await self.getMonthlyRevenue(userId, role, limitMonths=None)
        yearly = [r for r in revenues if r.year == targetYear]

        totalRevenue = sum((r.totalRevenue for r in yearly), ZERO)
        bestMonth = None
        for revenue in yearly:
            if bestMonth is None or revenue.totalRevenue > bestMonth.totalRevenue:
                bestMonth = revenue

        return {
            "year": targetYear,
            "totalRevenue": totalRevenue,
            "monthlyBreakdown": yearly,
            "bestMonth": bestMonth,
            "averageMonthlyRevenue": toMoney(totalRevenue / len(yearly)) if yearly else ZERO,
        }
