# ledger_system/services/seller_management_service.py
"""
Seller ownership management.

migrateSeller       - move a seller to another admin; only future-facing
                      records follow, the commission log is never rewritten
toggleDummyAccount  - mark or unmark a seller whose activity must not count
                      in revenue views
"""
import logging
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.transactions import executeWithRetry, failureMessage
from models.user import User
from models.commission import CommissionTransaction
from models.pending_deposit import PendingDeposit, CommissionHistory
from models.seller_migration import SellerMigration, DummyAccountChange
from ledger_system.config.constants import (
    CommissionHistoryStatus,
    DepositStatus,
    ExclusionSource,
    Role,
    toMoney,
)
from ledger_system.errors import ConflictError, NotFoundError, ValidationError
from ledger_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)

# Deposits that are not paid yet follow the seller to the new admin
IN_FLIGHT_DEPOSIT_STATUSES = [DepositStatus.PENDING.value, DepositStatus.SOLD.value]

MIGRATION_SCOPE = "future_only"


class SellerManagementService:
    """Service for seller migration and dummy-account handling."""

    def __init__(self, session: Session):
        self.session = session

    # ═══════════════════════════════════════════════════════════════════════
    # MIGRATION
    # ═══════════════════════════════════════════════════════════════════════

    async def migrateSeller(
            self,
            sellerId: int,
            newAdminId: int,
            reason: str,
            performedBy: str = "superadmin"
    ) -> Dict:
        """
        Reassign a seller to another admin.

        Updates adminID and referredBy, sets originalReferredBy once,
        moves in-flight pending deposits and pending commission history
        and writes the migration audit row. Past commission transactions
        stay with the admin that earned them.

        Returns:
            {"success", "message", "sellerId", "oldAdminId", "newAdminId", "migratedData"}
        """
        if not reason or not reason.strip():
            return {"success": False, "message": "Migration reason is required"}
        reason = reason.strip()

        def _work(session: Session) -> Dict:
            seller = session.get(User, sellerId)
            if seller is None or seller.role != Role.SELLER.value:
                raise NotFoundError("Seller not found")

            newAdmin = session.get(User, newAdminId)
            if newAdmin is None or newAdmin.role != Role.ADMIN.value:
                raise NotFoundError("Target admin not found or invalid")

            oldAdminId = seller.adminID
            oldReferredBy = seller.referredBy
            if oldAdminId == newAdminId:
                raise ConflictError("Seller is already under this admin")

            now = timeMachine.now

            if seller.originalReferredBy is None:
                seller.originalReferredBy = oldReferredBy if oldReferredBy is not None else oldAdminId
            seller.adminID = newAdminId
            seller.referredBy = newAdminId
            seller.migratedAt = now

            deposits = session.query(PendingDeposit).filter(
                PendingDeposit.sellerID == sellerId,
                PendingDeposit.status.in_(IN_FLIGHT_DEPOSIT_STATUSES)
            ).all()
            for deposit in deposits:
                deposit.adminID = newAdminId
                deposit.migratedAt = now
                deposit.migratedReason = reason

            histories = session.query(CommissionHistory).filter(
                CommissionHistory.sellerID == sellerId,
                CommissionHistory.status == CommissionHistoryStatus.PENDING.value
            ).all()
            for history in histories:
                history.adminID = newAdminId
                history.migratedAt = now
                history.migratedReason = reason

            migratedData = {
                "pendingDeposits": len(deposits),
                "commissionHistory": len(histories)
            }

            seller.migrationHistory.append(SellerMigration(
                sellerName=seller.name,
                oldAdminID=oldAdminId,
                newAdminID=newAdminId,
                newAdminName=newAdmin.name,
                referredByBefore=oldReferredBy,
                referredByAfter=newAdminId,
                originalReferredBy=seller.originalReferredBy,
                reason=reason,
                performedBy=performedBy,
                migratedData=migratedData,
                migrationScope=MIGRATION_SCOPE,
                createdAt=now
            ))

            return {"oldAdminId": oldAdminId, "migratedData": migratedData}

        txn = await executeWithRetry(self.session, _work, operation="migrate seller")
        if not txn.success:
            return {"success": False, "message": failureMessage(txn.error, "migrate seller")}

        logger.info(
            f"Seller {sellerId} migrated {txn.result['oldAdminId']} -> {newAdminId} "
            f"by {performedBy}: {txn.result['migratedData']}"
        )
        return {
            "success": True,
            "message": (
                "Seller successfully migrated to new admin. "
                "All future commissions and referral credits will go to the new admin."
            ),
            "sellerId": sellerId,
            "oldAdminId": txn.result["oldAdminId"],
            "newAdminId": newAdminId,
            "migratedData": txn.result["migratedData"]
        }

    # ═══════════════════════════════════════════════════════════════════════
    # DUMMY ACCOUNTS
    # ═══════════════════════════════════════════════════════════════════════

    async def toggleDummyAccount(
            self,
            sellerId: int,
            isDummyAccount: bool,
            reason: str,
            performedBy: str = "superadmin"
    ) -> Dict:
        """
        Mark or unmark a seller as dummy account.

        On: every pending deposit and commission history row of the seller
        is excluded from revenue (source 'dummy_toggle').
        Off: only rows excluded by this toggle are restored; rows written
        while the seller was a dummy stay excluded.
        """
        if not reason or not reason.strip():
            return {"success": False, "message": "Reason is required"}
        reason = reason.strip()
        isDummyAccount = bool(isDummyAccount)

        def _work(session: Session) -> Dict:
            seller = session.get(User, sellerId)
            if seller is None:
                raise NotFoundError("Seller not found")
            if seller.role != Role.SELLER.value:
                raise ValidationError("User is not a seller")

            now = timeMachine.now
            previousStatus = bool(seller.isDummyAccount)

            seller.isDummyAccount = isDummyAccount
            seller.dummyAccountChangedAt = now
            seller.dummyAccountChangedBy = performedBy
            seller.dummyAccountReason = reason

            marked = {
                "pendingDeposits": self._applyExclusion(session, PendingDeposit, sellerId, isDummyAccount, now),
                "commissionHistory": self._applyExclusion(session, CommissionHistory, sellerId, isDummyAccount, now)
            }

            seller.dummyAccountHistory.append(DummyAccountChange(
                sellerName=seller.name,
                isDummyAccount=isDummyAccount,
                previousStatus=previousStatus,
                reason=reason,
                performedBy=performedBy,
                markedRecords=marked,
                createdAt=now
            ))

            return marked

        txn = await executeWithRetry(self.session, _work, operation="toggle dummy account")
        if not txn.success:
            return {"success": False, "message": failureMessage(txn.error, "toggle dummy account")}

        logger.info(
            f"Seller {sellerId} dummy={isDummyAccount} by {performedBy}, records changed: {txn.result}"
        )
        return {
            "success": True,
            "message": f"Seller {'marked as' if isDummyAccount else 'removed from'} dummy account successfully",
            "sellerId": sellerId,
            "isDummyAccount": isDummyAccount,
            "markedRecords": txn.result
        }

    @staticmethod
    def _applyExclusion(session: Session, model, sellerId: int, exclude: bool, now) -> int:
        """Set or clear toggle-owned exclusion on rows of model. Returns rows changed."""
        if exclude:
            rows = session.query(model).filter(
                model.sellerID == sellerId,
                model.excludeFromRevenue.is_(False)
            ).all()
            for row in rows:
                row.excludeFromRevenue = True
                row.exclusionSource = ExclusionSource.DUMMY_TOGGLE.value
                row.excludedAt = now
        else:
            rows = session.query(model).filter(
                model.sellerID == sellerId,
                model.exclusionSource == ExclusionSource.DUMMY_TOGGLE.value
            ).all()
            for row in rows:
                row.excludeFromRevenue = False
                row.exclusionSource = None
                row.excludedAt = None
        return len(rows)

    # ═══════════════════════════════════════════════════════════════════════
    # READS
    # ═══════════════════════════════════════════════════════════════════════

    def _sellerInfo(self, seller: User, admins: Dict[int, User], commissions: Dict[int, object],
                    sales: Dict[int, int]) -> Dict:
        admin = admins.get(seller.adminID)
        return {
            "id": seller.userID,
            "email": seller.email,
            "displayName": seller.name,
            "currentAdminId": seller.adminID,
            "currentAdminName": admin.name if admin else None,
            "currentAdminEmail": admin.email if admin else None,
            "referralCode": seller.referralCode,
            "isDummyAccount": bool(seller.isDummyAccount),
            "balance": toMoney(seller.balance),
            "totalSales": sales.get(seller.userID, 0),
            "totalCommissions": toMoney(commissions.get(seller.userID, 0)),
            "referredByAdminId": seller.referredBy,
            "originalReferredBy": seller.originalReferredBy,
            "createdAt": seller.createdAt,
            "updatedAt": seller.updatedAt,
        }

    def _loadSellerInfos(self, criterion=None) -> List[Dict]:
        query = self.session.query(User).filter(User.role == Role.SELLER.value)
        if criterion is not None:
            query = query.filter(criterion)
        sellers = query.order_by(User.userID).all()
        if not sellers:
            return []

        ids = [s.userID for s in sellers]
        admins = {
            a.userID: a for a in self.session.query(User).filter(
                User.userID.in_(list({s.adminID for s in sellers if s.adminID is not None}))
            ).all()
        }
        commissions = dict(
            self.session.query(
                CommissionTransaction.sellerID,
                func.coalesce(func.sum(CommissionTransaction.commissionAmount), 0)
            ).filter(CommissionTransaction.sellerID.in_(ids)).group_by(CommissionTransaction.sellerID).all()
        )
        sales = dict(
            self.session.query(PendingDeposit.sellerID, func.count(PendingDeposit.depositID)).filter(
                PendingDeposit.sellerID.in_(ids),
                PendingDeposit.status.in_([DepositStatus.SOLD.value, DepositStatus.DEPOSIT_PAID.value])
            ).group_by(PendingDeposit.sellerID).all()
        )
        return [self._sellerInfo(s, admins, commissions, sales) for s in sellers]

    async def getAllSellers(self) -> List[Dict]:
        try:
            return self._loadSellerInfos()
        except SQLAlchemyError as e:
            logger.error(f"Error loading sellers: {e}", exc_info=True)
            return []

    async def getSellerDetails(self, sellerId: int) -> Optional[Dict]:
        try:
            infos = self._loadSellerInfos(User.userID == sellerId)
        except SQLAlchemyError as e:
            logger.error(f"Error loading seller {sellerId}: {e}", exc_info=True)
            return None
        return infos[0] if infos else None

    async def getAllAdmins(self) -> List[Dict]:
        """Admins with their seller count and commission total."""
        try:
            admins = self.session.query(User).filter(
                User.role == Role.ADMIN.value
            ).order_by(User.userID).all()

            sellerCounts = dict(
                self.session.query(User.adminID, func.count(User.userID)).filter(
                    User.role == Role.SELLER.value,
                    User.adminID.isnot(None)
                ).group_by(User.adminID).all()
            )
            commissions = dict(
                self.session.query(
                    CommissionTransaction.adminID,
                    func.coalesce(func.sum(CommissionTransaction.commissionAmount), 0)
                ).group_by(CommissionTransaction.adminID).all()
            )
        except SQLAlchemyError as e:
            logger.error(f"Error loading admins: {e}", exc_info=True)
            return []

        return [
            {
                "id": admin.userID,
                "email": admin.email,
                "displayName": admin.name,
                "referralCode": admin.referralCode,
                "totalSellers": sellerCounts.get(admin.userID, 0),
                "totalCommissions": toMoney(commissions.get(admin.userID, 0)),
            }
            for admin in admins
        ]

    async def getSellerMigrationHistory(self, sellerId: int) -> List[Dict]:
        """Migrations of a seller, newest first."""
        try:
            migrations = self.session.query(SellerMigration).filter(
                SellerMigration.sellerID == sellerId
            ).order_by(
                SellerMigration.createdAt.desc(),
                SellerMigration.migrationID.desc()
            ).all()
            names = {
                u.userID: u.name for u in self.session.query(User).filter(
                    User.userID.in_(list({m.oldAdminID for m in migrations if m.oldAdminID is not None}))
                ).all()
            }
        except SQLAlchemyError as e:
            logger.error(f"Error loading migration history of seller {sellerId}: {e}", exc_info=True)
            return []

        return [
            {
                "id": m.migrationID,
                "sellerId": m.sellerID,
                "sellerName": m.sellerName,
                "oldAdminId": m.oldAdminID,
                "oldAdminName": names.get(m.oldAdminID),
                "newAdminId": m.newAdminID,
                "newAdminName": m.newAdminName,
                "oldReferredBy": m.referredByBefore,
                "newReferredBy": m.referredByAfter,
                "originalReferredBy": m.originalReferredBy,
                "reason": m.reason,
                "performedBy": m.performedBy,
                "migratedData": m.migratedData or {},
                "migrationScope": m.migrationScope,
                "timestamp": m.createdAt,
            }
            for m in migrations
        ]

    async def getDummyAccountHistory(self, sellerId: Optional[int] = None) -> List[Dict]:
        """Dummy-account changes (of one seller or all), newest first."""
        try:
            query = self.session.query(DummyAccountChange)
            if sellerId is not None:
                query = query.filter(DummyAccountChange.sellerID == sellerId)
            changes = query.order_by(
                DummyAccountChange.createdAt.desc(),
                DummyAccountChange.changeID.desc()
            ).all()
        except SQLAlchemyError as e:
            logger.error(f"Error loading dummy account history: {e}", exc_info=True)
            return []

        return [
            {
                "id": c.changeID,
                "sellerId": c.sellerID,
                "sellerName": c.sellerName,
                "isDummyAccount": c.isDummyAccount,
                "previousStatus": c.previousStatus,
                "reason": c.reason,
                "performedBy": c.performedBy,
                "markedRecords": c.markedRecords or {},
                "timestamp": c.createdAt,
            }
            for c in changes
        ]
