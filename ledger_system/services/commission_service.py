# ledger_system/services/commission_service.py
"""
Commission accrual engine.

Every commission is written once into the append-only
commission_transactions log; the per-admin cached total in
commission_balances is updated in the same transaction.
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import Config
from core.db import get_session
from core.transactions import executeWithRetry, failureMessage
from models.user import User
from models.receipt import Receipt
from models.commission import CommissionBalance, CommissionTransaction
from ledger_system.config.constants import (
    CommissionType,
    ExclusionSource,
    ReceiptStatus,
    Role,
    ZERO,
    toMoney,
    COMMISSION_STATUS_COMPLETED,
)
from ledger_system.errors import ConflictError, NotFoundError, ValidationError
from ledger_system.events.event_bus import eventBus, LedgerEvents
from ledger_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)


def parseAmount(value, field: str = "Amount") -> Decimal:
    """Validate a positive money amount, return it quantized to cents."""
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{field} must be a number")

    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number")

    amount = toMoney(amount)
    if amount <= 0:
        raise ValidationError(f"{field} must be greater than zero")

    return amount


def _transactionToDict(tx: CommissionTransaction) -> Dict:
    return {
        "id": tx.transactionID,
        "adminId": tx.adminID,
        "sellerId": tx.sellerID,
        "sellerName": tx.sellerName,
        "type": tx.type,
        "originalAmount": tx.originalAmount,
        "commissionRate": tx.commissionRate,
        "commissionAmount": tx.commissionAmount,
        "receiptId": tx.receiptID,
        "depositedBy": tx.depositedBy,
        "description": tx.description,
        "status": tx.status,
        "excludeFromRevenue": tx.excludeFromRevenue,
        "createdAt": tx.createdAt,
    }


class CommissionService:
    """Service for admin commission accrual and queries."""

    def __init__(self, session: Session):
        self.session = session

    # ═══════════════════════════════════════════════════════════════════════
    # ACCRUAL
    # ═══════════════════════════════════════════════════════════════════════

    @staticmethod
    def accrueCommission(
            session: Session,
            admin: User,
            seller: User,
            amount: Decimal,
            commissionType: CommissionType,
            description: str,
            depositedBy: Optional[str] = None,
            receipt: Optional[Receipt] = None
    ) -> CommissionTransaction:
        """
        Write one commission transaction and move the admin's cached balance.

        Runs inside the caller's transaction. Events of a dummy seller are
        logged with zero commission and excluded from revenue.
        """
        rate = Config.get(Config.COMMISSION_RATE)
        now = timeMachine.now

        if seller.isDummyAccount:
            commissionAmount = ZERO
        else:
            commissionAmount = toMoney(amount * rate)

        transaction = CommissionTransaction(
            adminID=admin.userID,
            sellerID=seller.userID,
            adminName=admin.name,
            sellerName=seller.name,
            type=commissionType.value,
            originalAmount=amount,
            commissionRate=rate,
            commissionAmount=commissionAmount,
            depositedBy=depositedBy,
            receiptID=receipt.receiptID if receipt is not None else None,
            description=description,
            status=COMMISSION_STATUS_COMPLETED,
            createdAt=now
        )
        if seller.isDummyAccount:
            transaction.excludeFromRevenue = True
            transaction.exclusionSource = ExclusionSource.DUMMY_AT_CREATION.value
            transaction.excludedAt = now
        session.add(transaction)

        balance = session.get(CommissionBalance, admin.userID)
        if balance is None:
            # First commission for this admin
            balance = CommissionBalance(
                adminID=admin.userID,
                totalCommissionBalance=commissionAmount,
                lastUpdated=now,
                createdAt=now
            )
            session.add(balance)
        else:
            balance.totalCommissionBalance = toMoney(balance.totalCommissionBalance) + commissionAmount
            balance.lastUpdated = now

        logger.info(
            f"Commission {commissionType.value}: admin={admin.userID}, seller={seller.userID}, "
            f"amount={amount}, commission={commissionAmount}"
            + (" (dummy seller, excluded)" if seller.isDummyAccount else "")
        )
        return transaction

    def _loadParties(self, session: Session, adminId: int, sellerId: int):
        admin = session.get(User, adminId)
        seller = session.get(User, sellerId)
        if admin is None or seller is None:
            raise NotFoundError("Admin or seller not found")
        return admin, seller

    async def recordSuperadminDeposit(
            self,
            adminId: int,
            sellerId: int,
            depositAmount,
            depositedBy: str,
            description: str = "Superadmin deposit commission"
    ) -> Dict:
        """
        Record commission for a deposit made by a superadmin on a seller's behalf.

        Returns:
            {"success", "message", "commissionAmount"}
        """
        try:
            amount = parseAmount(depositAmount, "Deposit amount")
        except ValidationError as e:
            return {"success": False, "message": e.message}

        def _work(session: Session) -> CommissionTransaction:
            admin, seller = self._loadParties(session, adminId, sellerId)
            return self.accrueCommission(
                session, admin, seller, amount,
                CommissionType.SUPERADMIN_DEPOSIT,
                description,
                depositedBy=depositedBy
            )

        txn = await executeWithRetry(self.session, _work, operation="record superadmin deposit commission")
        if not txn.success:
            return {"success": False, "message": failureMessage(txn.error, "record commission")}

        commissionAmount = txn.result.commissionAmount
        return {
            "success": True,
            "message": f"Commission of ${commissionAmount:.2f} recorded for admin",
            "commissionAmount": commissionAmount
        }

    async def recordReceiptApprovalCommission(
            self,
            adminId: int,
            sellerId: int,
            receiptAmount,
            receiptId: int,
            description: str = "Receipt approval commission"
    ) -> Dict:
        """
        Record commission for an approved receipt.

        The receipt must exist and be approved; a second commission for
        the same receipt is refused.
        """
        try:
            amount = parseAmount(receiptAmount, "Receipt amount")
        except ValidationError as e:
            return {"success": False, "message": e.message}

        def _work(session: Session) -> CommissionTransaction:
            admin, seller = self._loadParties(session, adminId, sellerId)

            receipt = session.get(Receipt, receiptId)
            if receipt is None:
                raise NotFoundError("Receipt not found")
            if receipt.status != ReceiptStatus.APPROVED.value:
                raise ConflictError(f"Receipt is {receipt.status}, commission requires an approved receipt")

            existing = session.query(CommissionTransaction.transactionID).filter(
                CommissionTransaction.receiptID == receiptId
            ).first()
            if existing:
                raise ConflictError("Commission already recorded for this receipt")

            return self.accrueCommission(
                session, admin, seller, amount,
                CommissionType.RECEIPT_APPROVAL,
                description,
                receipt=receipt
            )

        txn = await executeWithRetry(self.session, _work, operation="record receipt approval commission")
        if not txn.success:
            return {"success": False, "message": failureMessage(txn.error, "record commission")}

        commissionAmount = txn.result.commissionAmount
        return {
            "success": True,
            "message": f"Commission of ${commissionAmount:.2f} recorded for admin",
            "commissionAmount": commissionAmount
        }

    # ═══════════════════════════════════════════════════════════════════════
    # QUERIES
    # ═══════════════════════════════════════════════════════════════════════

    async def getAdminCommissionBalance(self, adminId: int) -> Decimal:
        """Cached commission balance of an admin, 0 when none."""
        return self._readBalance(self.session, adminId)

    @staticmethod
    def _readBalance(session: Session, adminId: int) -> Decimal:
        try:
            balance = session.get(CommissionBalance, adminId)
        except SQLAlchemyError as e:
            logger.error(f"Error reading commission balance of admin {adminId}: {e}", exc_info=True)
            return ZERO
        if balance is None:
            return ZERO
        return toMoney(balance.totalCommissionBalance)

    async def getAdminCommissionSummary(self, adminId: int) -> Dict:
        """
        Commission summary recomputed from the log (not from the cache).
        """
        summary = {
            "totalCommissionBalance": ZERO,
            "totalFromSuperadminDeposits": ZERO,
            "totalFromReceiptApprovals": ZERO,
            "transactionCount": 0,
            "lastTransaction": None
        }

        try:
            rows = self.session.query(
                CommissionTransaction.type,
                func.count(CommissionTransaction.transactionID),
                func.coalesce(func.sum(CommissionTransaction.commissionAmount), 0)
            ).filter(
                CommissionTransaction.adminID == adminId,
                CommissionTransaction.status == COMMISSION_STATUS_COMPLETED
            ).group_by(CommissionTransaction.type).all()

            last = self.session.query(CommissionTransaction).filter(
                CommissionTransaction.adminID == adminId
            ).order_by(
                CommissionTransaction.createdAt.desc(),
                CommissionTransaction.transactionID.desc()
            ).first()
        except SQLAlchemyError as e:
            logger.error(f"Error building commission summary for admin {adminId}: {e}", exc_info=True)
            return summary

        for txType, count, total in rows:
            total = toMoney(total)
            summary["transactionCount"] += count
            summary["totalCommissionBalance"] += total
            if txType == CommissionType.SUPERADMIN_DEPOSIT.value:
                summary["totalFromSuperadminDeposits"] += total
            elif txType == CommissionType.RECEIPT_APPROVAL.value:
                summary["totalFromReceiptApprovals"] += total

        if last is not None:
            summary["lastTransaction"] = _transactionToDict(last)

        return summary

    async def getAdminCommissionTransactions(self, adminId: int, limit: int = 50) -> List[Dict]:
        """Commission transactions of an admin, newest first."""
        try:
            return self._readTransactions(self.session, adminId, limit)
        except SQLAlchemyError as e:
            logger.error(f"Error loading commission transactions of admin {adminId}: {e}", exc_info=True)
            return []

    @staticmethod
    def _readTransactions(session: Session, adminId: int, limit: int) -> List[Dict]:
        transactions = session.query(CommissionTransaction).filter(
            CommissionTransaction.adminID == adminId
        ).order_by(
            CommissionTransaction.createdAt.desc(),
            CommissionTransaction.transactionID.desc()
        ).limit(limit).all()
        return [_transactionToDict(tx) for tx in transactions]

    async def getTotalCommissionBalance(self) -> Dict:
        """Platform-wide commission totals."""
        result = {
            "totalBalance": ZERO,
            "adminsCount": 0,
            "totalFromSuperadminDeposits": ZERO,
            "totalFromReceiptApprovals": ZERO
        }

        try:
            totalBalance, adminsCount = self.session.query(
                func.coalesce(func.sum(CommissionBalance.totalCommissionBalance), 0),
                func.count(CommissionBalance.adminID)
            ).one()

            byType = self.session.query(
                CommissionTransaction.type,
                func.coalesce(func.sum(CommissionTransaction.commissionAmount), 0)
            ).group_by(CommissionTransaction.type).all()
        except SQLAlchemyError as e:
            logger.error(f"Error getting total commission balance: {e}", exc_info=True)
            return result

        result["totalBalance"] = toMoney(totalBalance)
        result["adminsCount"] = adminsCount

        for txType, total in byType:
            if txType == CommissionType.SUPERADMIN_DEPOSIT.value:
                result["totalFromSuperadminDeposits"] = toMoney(total)
            elif txType == CommissionType.RECEIPT_APPROVAL.value:
                result["totalFromReceiptApprovals"] = toMoney(total)

        return result

    # ═══════════════════════════════════════════════════════════════════════
    # SUBSCRIPTIONS
    # ═══════════════════════════════════════════════════════════════════════

    def subscribeToAdminCommissionBalance(
            self,
            adminId: int,
            callback: Callable[[Decimal], None]
    ) -> Callable[[], None]:
        """
        Push the admin's balance now and after every committed change.

        Returns:
            unsubscribe function (safe to call more than once)
        """

        def _push(data: Optional[Dict] = None):
            if data is not None and data.get("adminId") != adminId:
                return
            session = get_session()
            try:
                callback(self._readBalance(session, adminId))
            finally:
                session.close()

        return self._subscribe(LedgerEvents.COMMISSION_BALANCE_CHANGED, _push)

    def subscribeToAdminCommissionTransactions(
            self,
            adminId: int,
            callback: Callable[[List[Dict]], None],
            limit: int = 20
    ) -> Callable[[], None]:
        """
        Push the admin's latest transactions now and after every new one.

        Returns:
            unsubscribe function (safe to call more than once)
        """

        def _push(data: Optional[Dict] = None):
            if data is not None and data.get("adminId") != adminId:
                return
            session = get_session()
            try:
                try:
                    transactions = self._readTransactions(session, adminId, limit)
                except SQLAlchemyError as e:
                    logger.error(f"Error reloading commission transactions of admin {adminId}: {e}")
                    return
                callback(transactions)
            finally:
                session.close()

        return self._subscribe(LedgerEvents.COMMISSION_TRANSACTION_ADDED, _push)

    @staticmethod
    def _subscribe(eventName: str, push: Callable) -> Callable[[], None]:
        eventBus.subscribe(eventName, push)

        try:
            push()
        except Exception as e:
            logger.error(f"Initial push for {eventName} subscriber failed: {e}", exc_info=True)

        active = True

        def unsubscribe():
            nonlocal active
            if active:
                eventBus.unsubscribe(eventName, push)
                active = False

        return unsubscribe

    # ═══════════════════════════════════════════════════════════════════════
    # RECONCILIATION
    # ═══════════════════════════════════════════════════════════════════════

    async def reconcileCommissionBalances(self, fix: bool = False) -> Dict:
        """
        Compare every cached balance with the sum of its log.

        Args:
            fix: Rewrite mismatching caches (and create missing ones) from the log

        Returns:
            {"success", "checked", "discrepancies": [...], "fixed"}
        """

        def _work(session: Session) -> Dict:
            logTotals = dict(
                session.query(
                    CommissionTransaction.adminID,
                    func.coalesce(func.sum(CommissionTransaction.commissionAmount), 0)
                ).filter(
                    CommissionTransaction.status == COMMISSION_STATUS_COMPLETED
                ).group_by(CommissionTransaction.adminID).all()
            )
            caches = {b.adminID: b for b in session.query(CommissionBalance).all()}

            discrepancies = []
            fixed = 0
            now = timeMachine.now

            for adminId in sorted(set(logTotals) | set(caches)):
                expected = toMoney(logTotals.get(adminId, 0))
                cache = caches.get(adminId)
                cached = toMoney(cache.totalCommissionBalance) if cache is not None else None

                if cached == expected:
                    continue

                discrepancies.append({
                    "adminId": adminId,
                    "cachedBalance": cached,
                    "logBalance": expected,
                    "difference": expected - (cached or ZERO)
                })
                logger.warning(
                    f"Commission balance mismatch: admin={adminId}, cache={cached}, log={expected}"
                )

                if fix:
                    if cache is None:
                        session.add(CommissionBalance(
                            adminID=adminId,
                            totalCommissionBalance=expected,
                            lastUpdated=now,
                            createdAt=now
                        ))
                    else:
                        cache.totalCommissionBalance = expected
                        cache.lastUpdated = now
                    fixed += 1

            return {
                "checked": len(set(logTotals) | set(caches)),
                "discrepancies": discrepancies,
                "fixed": fixed
            }

        txn = await executeWithRetry(self.session, _work, operation="reconcile commission balances")
        if not txn.success:
            return {"success": False, "message": failureMessage(txn.error, "reconcile commission balances")}

        result = txn.result
        result["success"] = True
        result["message"] = (
            f"Checked {result['checked']} admins, "
            f"{len(result['discrepancies'])} discrepancies, {result['fixed']} fixed"
        )
        return result

    @staticmethod
    def _attributedAdmin(receipt: Receipt, seller: User) -> Optional[int]:
        """Admin owed the commission of an approved receipt, None when nobody is."""
        if receipt.commissionDue:
            return receipt.commissionAdminID

        if seller.referredBy is None:
            return None

        # Ownership changed after the approval: the current referrer is not owed it
        if seller.migratedAt is not None and (
                receipt.approvedAt is None or receipt.approvedAt < seller.migratedAt
        ):
            logger.warning(
                f"Sweep skips receipt {receipt.receiptID}: seller {seller.userID} "
                f"was migrated after its approval"
            )
            return None

        return seller.referredBy

    async def sweepMissingReceiptCommissions(self) -> Dict:
        """
        Accrue commission for approved seller receipts that have none.

        Idempotent: a receipt can carry at most one commission.
        The admin is the one fixed on the receipt at approval. Receipts
        approved outside the workflow fall back to the seller's referrer
        only while the seller has not been migrated since the approval.
        """
        try:
            candidates = self.session.query(Receipt.receiptID).join(
                User, User.userID == Receipt.userID
            ).outerjoin(
                CommissionTransaction, CommissionTransaction.receiptID == Receipt.receiptID
            ).filter(
                Receipt.status == ReceiptStatus.APPROVED.value,
                User.role == Role.SELLER.value,
                or_(Receipt.commissionDue.is_(None), Receipt.commissionDue.is_(True)),
                CommissionTransaction.transactionID.is_(None)
            ).order_by(Receipt.receiptID).all()
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Error scanning receipts without commission: {e}", exc_info=True)
            return {"success": False, "message": "Failed to scan receipts", "recorded": 0, "failed": 0}

        recorded = 0
        failed = 0

        for (receiptId,) in candidates:
            receipt = self.session.get(Receipt, receiptId)
            seller = self.session.get(User, receipt.userID)
            adminId = self._attributedAdmin(receipt, seller)
            if adminId is None:
                continue

            result = await self.recordReceiptApprovalCommission(
                adminId=adminId,
                sellerId=seller.userID,
                receiptAmount=receipt.amount,
                receiptId=receiptId,
                description="Receipt approval commission (reconciliation)"
            )
            if result["success"]:
                recorded += 1
            else:
                failed += 1
                logger.warning(f"Sweep could not record commission for receipt {receiptId}: {result['message']}")

        if candidates:
            logger.info(f"Receipt commission sweep: {recorded} recorded, {failed} failed")

        return {
            "success": failed == 0,
            "message": f"{recorded} commissions recorded, {failed} failed",
            "recorded": recorded,
            "failed": failed
        }
