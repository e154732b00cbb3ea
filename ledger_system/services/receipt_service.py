# ledger_system/services/receipt_service.py
"""
Receipt approval workflow.

pending → approved (user credited, admin commission accrued)
pending → rejected
Terminal states are final.
"""
import logging
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.transactions import executeWithRetry, failureMessage
from models.user import User
from models.receipt import Receipt
from ledger_system.config.constants import (
    ActivityStatus,
    ActivityType,
    CommissionType,
    ExclusionSource,
    ReceiptStatus,
    Role,
    toMoney,
)
from ledger_system.errors import ConflictError, NotFoundError, StorageError, ValidationError
from ledger_system.services.activity_service import ActivityService
from ledger_system.services.commission_service import CommissionService, parseAmount
from ledger_system.services.storage_service import (
    LocalReceiptStorage,
    ReceiptStorage,
    receiptObjectKey,
    validateReceiptImage,
)
from ledger_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)


def _receiptToDict(receipt: Receipt) -> Dict:
    return {
        "id": receipt.receiptID,
        "userId": receipt.userID,
        "userName": receipt.userName,
        "userEmail": receipt.userEmail,
        "amount": receipt.amount,
        "referenceNumber": receipt.referenceNumber,
        "imageUrl": receipt.imageUrl,
        "status": receipt.status,
        "approvedBy": receipt.approvedBy,
        "approvedAt": receipt.approvedAt,
        "notes": receipt.notes,
        "commissionDue": receipt.commissionDue,
        "commissionAdminId": receipt.commissionAdminID,
        "excludeFromRevenue": receipt.excludeFromRevenue,
        "createdAt": receipt.createdAt,
    }


class ReceiptService:
    """Service for receipt submission and review."""

    def __init__(self, session: Session, storage: Optional[ReceiptStorage] = None):
        self.session = session
        self.storage = storage or LocalReceiptStorage()

    # ═══════════════════════════════════════════════════════════════════════
    # SUBMISSION
    # ═══════════════════════════════════════════════════════════════════════

    async def submitReceipt(
            self,
            userId: int,
            amount,
            referenceNumber: Optional[str],
            fileData: bytes,
            fileName: str
    ) -> Dict:
        """
        Upload the receipt image and create a pending receipt.

        Input and user are checked before storage is touched; if the
        receipt row cannot be written the uploaded image is removed.
        """
        try:
            receiptAmount = parseAmount(amount, "Receipt amount")
            validateReceiptImage(fileData, fileName)
        except (ValidationError, StorageError) as e:
            return {"success": False, "message": e.message}

        try:
            user = self.session.get(User, userId)
        except SQLAlchemyError as e:
            logger.error(f"Error loading user {userId} for receipt: {e}", exc_info=True)
            return {"success": False, "message": "An error occurred while submitting the receipt. Please try again."}

        if user is None:
            return {"success": False, "message": "User not found. Please try again or contact support."}

        key = receiptObjectKey(userId, fileName)
        try:
            imageUrl = await self.storage.upload(key, fileData)
        except StorageError as e:
            logger.warning(f"Receipt image upload failed for user {userId} ({e.kind}): {e.message}")
            return {"success": False, "message": e.message}

        def _work(session: Session) -> int:
            submitter = session.get(User, userId)
            if submitter is None:
                raise NotFoundError("User not found. Please try again or contact support.")

            receipt = Receipt(
                userID=submitter.userID,
                userName=submitter.name,
                userEmail=submitter.email,
                amount=receiptAmount,
                referenceNumber=referenceNumber,
                imageUrl=imageUrl,
                imageKey=key,
                fileName=fileName,
                status=ReceiptStatus.PENDING.value
            )
            session.add(receipt)

            ActivityService.recordActivity(
                session, submitter, ActivityType.FUND_DEPOSIT,
                {"amount": receiptAmount, "referenceNumber": referenceNumber},
                status=ActivityStatus.PENDING
            )
            session.flush()
            return receipt.receiptID

        txn = await executeWithRetry(self.session, _work, operation="submit receipt")
        if not txn.success:
            await self._discardImage(key)
            return {"success": False, "message": failureMessage(txn.error, "submit receipt")}

        logger.info(f"Receipt {txn.result} submitted by user {userId}: ${receiptAmount}")
        return {
            "success": True,
            "message": "Receipt submitted successfully. It will be reviewed soon.",
            "receiptId": txn.result
        }

    async def _discardImage(self, key: str) -> None:
        try:
            await self.storage.delete(key)
            logger.info(f"Removed orphaned receipt image {key}")
        except StorageError as e:
            logger.error(f"Orphaned receipt image {key} could not be removed: {e.message}")

    # ═══════════════════════════════════════════════════════════════════════
    # REVIEW
    # ═══════════════════════════════════════════════════════════════════════

    async def approveReceipt(self, receiptId: int, approverId: int, notes: Optional[str] = None) -> Dict:
        """
        Approve a pending receipt.

        One transaction: credit the submitter, mark the receipt approved,
        write the activity and, when the submitter is a seller with a
        referring admin, accrue that admin's commission.

        Returns:
            {"success", "message", "newBalance", "commissionAmount"}
        """

        def _work(session: Session) -> Dict:
            receipt = session.get(Receipt, receiptId)
            if receipt is None:
                raise NotFoundError("Receipt not found")
            if receipt.status != ReceiptStatus.PENDING.value:
                raise ConflictError(f"Receipt is already {receipt.status}")

            user = session.get(User, receipt.userID)
            if user is None:
                raise NotFoundError("User not found")

            now = timeMachine.now
            previousBalance = toMoney(user.balance)
            newBalance = previousBalance + toMoney(receipt.amount)
            user.balance = newBalance

            receipt.status = ReceiptStatus.APPROVED.value
            receipt.approvedBy = approverId
            receipt.approvedAt = now
            receipt.notes = notes or "Receipt approved"
            if user.isDummyAccount:
                receipt.excludeFromRevenue = True
                receipt.exclusionSource = ExclusionSource.DUMMY_AT_CREATION.value
                receipt.excludedAt = now

            ActivityService.recordActivity(
                session, user, ActivityType.WITHDRAWAL_APPROVED,
                {
                    "amount": receipt.amount,
                    "previousBalance": previousBalance,
                    "newBalance": newBalance,
                    "receiptId": receipt.receiptID,
                    "referenceNumber": receipt.referenceNumber,
                    "adminId": approverId,
                    "reason": receipt.notes
                }
            )

            commissionAmount = None
            receipt.commissionDue = False
            if user.role == Role.SELLER.value and user.referredBy:
                admin = session.get(User, user.referredBy)
                if admin is None:
                    logger.warning(
                        f"Receipt {receiptId}: referring admin {user.referredBy} of seller "
                        f"{user.userID} not found, no commission"
                    )
                else:
                    receipt.commissionDue = True
                    receipt.commissionAdminID = admin.userID
                    commission = CommissionService.accrueCommission(
                        session, admin, user, toMoney(receipt.amount),
                        CommissionType.RECEIPT_APPROVAL,
                        "Receipt approval commission",
                        receipt=receipt
                    )
                    commissionAmount = commission.commissionAmount

            return {"newBalance": newBalance, "commissionAmount": commissionAmount}

        txn = await executeWithRetry(self.session, _work, operation="approve receipt")
        if not txn.success:
            return {"success": False, "message": failureMessage(txn.error, "approve receipt")}

        logger.info(
            f"Receipt {receiptId} approved by {approverId}: newBalance={txn.result['newBalance']}, "
            f"commission={txn.result['commissionAmount']}"
        )
        return {
            "success": True,
            "message": "Receipt approved and funds added to user's account",
            "newBalance": txn.result["newBalance"],
            "commissionAmount": txn.result["commissionAmount"]
        }

    async def rejectReceipt(self, receiptId: int, approverId: int, reason: str) -> Dict:
        """Reject a pending receipt with a mandatory reason."""
        if not reason or not reason.strip():
            return {"success": False, "message": "Rejection reason is required"}

        def _work(session: Session) -> None:
            receipt = session.get(Receipt, receiptId)
            if receipt is None:
                raise NotFoundError("Receipt not found")
            if receipt.status != ReceiptStatus.PENDING.value:
                raise ConflictError(f"Receipt is already {receipt.status}")

            receipt.status = ReceiptStatus.REJECTED.value
            receipt.approvedBy = approverId
            receipt.approvedAt = timeMachine.now
            receipt.notes = reason.strip()

            user = session.get(User, receipt.userID)
            if user is not None:
                ActivityService.recordActivity(
                    session, user, ActivityType.WITHDRAWAL_REJECTED,
                    {"amount": receipt.amount, "reason": receipt.notes, "adminId": approverId}
                )

        txn = await executeWithRetry(self.session, _work, operation="reject receipt")
        if not txn.success:
            return {"success": False, "message": failureMessage(txn.error, "reject receipt")}

        logger.info(f"Receipt {receiptId} rejected by {approverId}")
        return {"success": True, "message": "Receipt rejected"}

    # ═══════════════════════════════════════════════════════════════════════
    # READS
    # ═══════════════════════════════════════════════════════════════════════

    async def getReceiptById(self, receiptId: int) -> Optional[Dict]:
        try:
            receipt = self.session.get(Receipt, receiptId)
        except SQLAlchemyError as e:
            logger.error(f"Error loading receipt {receiptId}: {e}", exc_info=True)
            return None
        return _receiptToDict(receipt) if receipt else None

    async def getUserReceipts(self, userId: int) -> List[Dict]:
        """Receipts submitted by a user, newest first."""
        return self._listReceipts(Receipt.userID == userId)

    async def getPendingReceipts(self) -> List[Dict]:
        """Receipts waiting for review, newest first."""
        return self._listReceipts(Receipt.status == ReceiptStatus.PENDING.value)

    def _listReceipts(self, criterion) -> List[Dict]:
        try:
            receipts = self.session.query(Receipt).filter(criterion).order_by(
                Receipt.createdAt.desc(),
                Receipt.receiptID.desc()
            ).all()
        except SQLAlchemyError as e:
            logger.error(f"Error listing receipts: {e}", exc_info=True)
            return []
        return [_receiptToDict(r) for r in receipts]
