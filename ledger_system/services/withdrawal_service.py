# ledger_system/services/withdrawal_service.py
"""
Seller withdrawal requests.

A seller may hold one pending request at a time. Approval deducts the
seller's balance; rejection leaves it untouched. Processed requests are final.
"""
import logging
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.transactions import executeWithRetry, failureMessage
from models.user import User
from models.withdrawal import WithdrawalRequest
from ledger_system.config.constants import (
    ActivityStatus,
    ActivityType,
    ExclusionSource,
    WithdrawalStatus,
    ZERO,
    toMoney,
)
from ledger_system.errors import ConflictError, NotFoundError, ValidationError
from ledger_system.services.activity_service import ActivityService
from ledger_system.services.commission_service import parseAmount
from ledger_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)

ACTIONS = {
    "approve": WithdrawalStatus.APPROVED,
    "reject": WithdrawalStatus.REJECTED,
}


def _withdrawalToDict(w: WithdrawalRequest) -> Dict:
    return {
        "id": w.withdrawalID,
        "sellerId": w.sellerID,
        "sellerName": w.sellerName,
        "amount": w.amount,
        "usdtId": w.usdtId,
        "status": w.status,
        "processedDate": w.processedDate,
        "processedBy": w.processedBy,
        "adminNotes": w.adminNotes,
        "createdAt": w.createdAt,
    }


class WithdrawalService:
    """Service for seller payout requests."""

    def __init__(self, session: Session):
        self.session = session

    async def createWithdrawalRequest(self, sellerId: int, amount, usdtId: Optional[str] = None) -> Dict:
        """Create a pending withdrawal request for a seller."""
        try:
            requested = parseAmount(amount, "Withdrawal amount")
        except ValidationError as e:
            return {"success": False, "message": e.message}

        def _work(session: Session) -> int:
            seller = session.get(User, sellerId)
            if seller is None:
                raise NotFoundError("Seller not found")

            available = toMoney(seller.balance)
            if requested > available:
                raise ConflictError(f"Insufficient balance. Available: ${available:.2f}")

            pending = session.query(WithdrawalRequest.withdrawalID).filter(
                WithdrawalRequest.sellerID == sellerId,
                WithdrawalRequest.status == WithdrawalStatus.PENDING.value
            ).first()
            if pending:
                raise ConflictError("You already have a pending withdrawal request")

            request = WithdrawalRequest(
                sellerID=seller.userID,
                sellerName=seller.name,
                amount=requested,
                usdtId=usdtId,
                status=WithdrawalStatus.PENDING.value
            )
            session.add(request)

            ActivityService.recordActivity(
                session, seller, ActivityType.WITHDRAWAL_REQUEST,
                {"amount": requested},
                status=ActivityStatus.PENDING
            )
            session.flush()
            return request.withdrawalID

        txn = await executeWithRetry(self.session, _work, operation="create withdrawal request")
        if not txn.success:
            return {"success": False, "message": failureMessage(txn.error, "create withdrawal request")}

        logger.info(f"Withdrawal request {txn.result} created: seller={sellerId}, amount={requested}")
        return {
            "success": True,
            "message": "Withdrawal request submitted successfully",
            "withdrawalId": txn.result
        }

    async def processWithdrawalRequest(
            self,
            withdrawalId: int,
            adminId: int,
            action: str,
            adminNotes: Optional[str] = None
    ) -> Dict:
        """
        Approve or reject a pending withdrawal request.

        Args:
            action: 'approve' or 'reject'
        """
        status = ACTIONS.get(action)
        if status is None:
            return {"success": False, "message": f"Unknown action: {action}"}

        def _work(session: Session) -> Optional[Decimal]:
            request = session.get(WithdrawalRequest, withdrawalId)
            if request is None:
                raise NotFoundError("Withdrawal request not found")
            if request.status != WithdrawalStatus.PENDING.value:
                raise ConflictError("Withdrawal request already processed")

            now = timeMachine.now
            newBalance = None
            seller = session.get(User, request.sellerID)

            if status == WithdrawalStatus.APPROVED:
                if seller is None:
                    raise NotFoundError("Seller not found")

                currentBalance = toMoney(seller.balance)
                if currentBalance < toMoney(request.amount):
                    raise ConflictError("Insufficient seller balance")

                newBalance = currentBalance - toMoney(request.amount)
                seller.balance = newBalance

                if seller.isDummyAccount:
                    request.excludeFromRevenue = True
                    request.exclusionSource = ExclusionSource.DUMMY_AT_CREATION.value
                    request.excludedAt = now

            request.status = status.value
            request.processedDate = now
            request.processedBy = adminId
            request.adminNotes = adminNotes

            if seller is not None:
                ActivityService.recordActivity(
                    session, seller,
                    ActivityType.FUND_WITHDRAWAL if status == WithdrawalStatus.APPROVED
                    else ActivityType.WITHDRAWAL_REQUEST,
                    {"amount": request.amount, "adminId": adminId, "reason": adminNotes, "newBalance": newBalance},
                    status=ActivityStatus.COMPLETED if status == WithdrawalStatus.APPROVED
                    else ActivityStatus.FAILED
                )

            return newBalance

        txn = await executeWithRetry(self.session, _work, operation=f"{action} withdrawal request")
        if not txn.success:
            return {"success": False, "message": failureMessage(txn.error, f"{action} withdrawal request")}

        logger.info(f"Withdrawal request {withdrawalId} {status.value} by admin {adminId}")
        result = {"success": True, "message": f"Withdrawal request {action}d successfully"}
        if txn.result is not None:
            result["newBalance"] = txn.result
        return result

    async def getSellerWithdrawalRequests(self, sellerId: int) -> List[Dict]:
        """Withdrawal requests of a seller, newest first."""
        return self._list(WithdrawalRequest.sellerID == sellerId)

    async def getAllWithdrawalRequests(self) -> List[Dict]:
        return self._list(None)

    def _list(self, criterion) -> List[Dict]:
        try:
            query = self.session.query(WithdrawalRequest)
            if criterion is not None:
                query = query.filter(criterion)
            requests = query.order_by(
                WithdrawalRequest.createdAt.desc(),
                WithdrawalRequest.withdrawalID.desc()
            ).all()
        except SQLAlchemyError as e:
            logger.error(f"Error listing withdrawal requests: {e}", exc_info=True)
            return []
        return [_withdrawalToDict(w) for w in requests]

    async def getWithdrawalStats(self) -> Dict:
        """Counts and amounts per status."""
        stats = {
            "totalPending": 0,
            "totalApproved": 0,
            "totalRejected": 0,
            "pendingAmount": ZERO,
            "approvedAmount": ZERO
        }
        try:
            requests = self.session.query(WithdrawalRequest.status, WithdrawalRequest.amount).all()
        except SQLAlchemyError as e:
            logger.error(f"Error getting withdrawal stats: {e}", exc_info=True)
            return stats

        for status, amount in requests:
            if status == WithdrawalStatus.PENDING.value:
                stats["totalPending"] += 1
                stats["pendingAmount"] += toMoney(amount)
            elif status == WithdrawalStatus.APPROVED.value:
                stats["totalApproved"] += 1
                stats["approvedAmount"] += toMoney(amount)
            elif status == WithdrawalStatus.REJECTED.value:
                stats["totalRejected"] += 1

        return stats
