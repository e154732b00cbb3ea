# ledger_system/services/pending_deposit_service.py
"""
Consignment deposits.

pending → sold (profit held as pendingProfitAmount)
        → deposit_paid (profit released to seller balance)

Each deposit carries a pending CommissionHistory row attributed to the
seller's admin at listing time; migration reassigns it while pending.
"""
import logging
from decimal import Decimal
from typing import Dict, List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import Config
from core.transactions import executeWithRetry, failureMessage
from models.user import User
from models.pending_deposit import PendingDeposit, CommissionHistory
from ledger_system.config.constants import (
    ActivityType,
    CommissionHistoryStatus,
    DepositStatus,
    ExclusionSource,
    Role,
    ZERO,
    toMoney,
)
from ledger_system.errors import ConflictError, NotFoundError, ValidationError
from ledger_system.services.activity_service import ActivityService
from ledger_system.services.commission_service import parseAmount
from ledger_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)


def _parseQuantity(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive whole number")
    return value


def _depositToDict(d: PendingDeposit) -> Dict:
    return {
        "id": d.depositID,
        "sellerId": d.sellerID,
        "adminId": d.adminID,
        "productId": d.productID,
        "productName": d.productName,
        "quantityListed": d.quantityListed,
        "originalCostPerUnit": d.originalCostPerUnit,
        "listingPrice": d.listingPrice,
        "profitPerUnit": d.profitPerUnit,
        "totalDepositRequired": d.totalDepositRequired,
        "status": d.status,
        "salePrice": d.salePrice,
        "actualQuantitySold": d.actualQuantitySold,
        "pendingProfitAmount": d.pendingProfitAmount,
        "profitTransferredAmount": d.profitTransferredAmount,
        "profitTransferredDate": d.profitTransferredDate,
        "excludeFromRevenue": d.excludeFromRevenue,
        "createdAt": d.createdAt,
    }


class PendingDepositService:
    """Service for seller consignment deposits and profit release."""

    def __init__(self, session: Session):
        self.session = session

    @staticmethod
    def _stampDummy(row, seller: User, now) -> None:
        if seller.isDummyAccount:
            row.excludeFromRevenue = True
            row.exclusionSource = ExclusionSource.DUMMY_AT_CREATION.value
            row.excludedAt = now

    async def createPendingDeposit(
            self,
            sellerId: int,
            productId: str,
            productName: str,
            quantityListed: int,
            originalCostPerUnit,
            listingPrice
    ) -> Dict:
        """Record a listing whose stock deposit is still owed."""
        try:
            quantity = _parseQuantity(quantityListed, "Quantity listed")
            cost = parseAmount(originalCostPerUnit, "Original cost per unit")
            price = parseAmount(listingPrice, "Listing price")
            if not productId or not productName:
                raise ValidationError("Product id and name are required")
        except ValidationError as e:
            return {"success": False, "message": e.message}

        def _work(session: Session) -> int:
            seller = session.get(User, sellerId)
            if seller is None or seller.role != Role.SELLER.value:
                raise NotFoundError("Seller not found")

            now = timeMachine.now
            totalDeposit = cost * quantity

            deposit = PendingDeposit(
                sellerID=seller.userID,
                adminID=seller.adminID,
                productID=productId,
                productName=productName,
                quantityListed=quantity,
                originalCostPerUnit=cost,
                listingPrice=price,
                profitPerUnit=price - cost,
                totalDepositRequired=totalDeposit,
                status=DepositStatus.PENDING.value
            )
            self._stampDummy(deposit, seller, now)
            session.add(deposit)
            session.flush()

            if seller.adminID is not None:
                history = CommissionHistory(
                    adminID=seller.adminID,
                    sellerID=seller.userID,
                    depositID=deposit.depositID,
                    amount=toMoney(totalDeposit * Config.get(Config.COMMISSION_RATE)),
                    status=CommissionHistoryStatus.PENDING.value
                )
                self._stampDummy(history, seller, now)
                session.add(history)

            return deposit.depositID

        txn = await executeWithRetry(self.session, _work, operation="create pending deposit")
        if not txn.success:
            return {"success": False, "message": failureMessage(txn.error, "create pending deposit")}

        logger.info(f"Pending deposit {txn.result} created: seller={sellerId}, product={productId}")
        return {
            "success": True,
            "message": "Pending deposit created successfully",
            "depositId": txn.result
        }

    def _loadOwnedDeposit(self, session: Session, depositId: int, sellerId: int) -> PendingDeposit:
        deposit = session.get(PendingDeposit, depositId)
        if deposit is None:
            raise NotFoundError("Pending deposit not found")
        if deposit.sellerID != sellerId:
            raise ConflictError("Unauthorized access")
        return deposit

    async def markProductSold(self, depositId: int, sellerId: int, salePrice, actualQuantitySold: int) -> Dict:
        """Mark the listing sold; profit waits until the deposit is paid."""
        try:
            price = parseAmount(salePrice, "Sale price")
            quantity = _parseQuantity(actualQuantitySold, "Quantity sold")
        except ValidationError as e:
            return {"success": False, "message": e.message}

        def _work(session: Session) -> Dict:
            deposit = self._loadOwnedDeposit(session, depositId, sellerId)
            if deposit.status != DepositStatus.PENDING.value:
                raise ConflictError(f"Deposit is already {deposit.status}")
            if quantity > deposit.quantityListed:
                raise ValidationError("Quantity sold exceeds quantity listed")

            profit = (price - toMoney(deposit.originalCostPerUnit)) * quantity

            deposit.status = DepositStatus.SOLD.value
            deposit.salePrice = price
            deposit.saleDate = timeMachine.now
            deposit.actualQuantitySold = quantity
            deposit.pendingProfitAmount = profit

            seller = session.get(User, sellerId)
            if seller is not None:
                ActivityService.recordActivity(
                    session, seller, ActivityType.PRODUCT_SOLD,
                    {"quantity": quantity, "productName": deposit.productName, "amount": profit}
                )

            return {"profit": profit, "deposit": toMoney(deposit.totalDepositRequired)}

        txn = await executeWithRetry(self.session, _work, operation="mark product sold")
        if not txn.success:
            return {"success": False, "message": failureMessage(txn.error, "process sale")}

        return {
            "success": True,
            "message": (
                f"Product sold! Profit of ${txn.result['profit']:.2f} will be added to your wallet "
                f"after you pay the deposit of ${txn.result['deposit']:.2f}."
            ),
            "pendingProfitAmount": txn.result["profit"]
        }

    async def markDepositPaid(self, depositId: int, sellerId: int) -> Dict:
        """
        Release the held profit to the seller's balance.

        Records profitTransferredAmount/Date (the seller's revenue events)
        and completes the pending commission history of the deposit.
        """

        def _work(session: Session) -> Dict:
            deposit = self._loadOwnedDeposit(session, depositId, sellerId)
            if deposit.status == DepositStatus.DEPOSIT_PAID.value:
                raise ConflictError("Deposit is already paid")
            if deposit.status != DepositStatus.SOLD.value:
                raise ConflictError("Product must be sold before the deposit can be paid")

            seller = session.get(User, sellerId)
            if seller is None:
                raise NotFoundError("Seller not found")

            now = timeMachine.now
            profit = toMoney(deposit.pendingProfitAmount)
            transferred = profit if profit > 0 else ZERO

            previousBalance = toMoney(seller.balance)
            newBalance = previousBalance + transferred
            if transferred > 0:
                seller.balance = newBalance

            deposit.status = DepositStatus.DEPOSIT_PAID.value
            deposit.depositPaidDate = now
            deposit.profitTransferredAmount = transferred
            deposit.profitTransferredDate = now
            deposit.pendingProfitAmount = ZERO

            completed = session.query(CommissionHistory).filter(
                CommissionHistory.depositID == depositId,
                CommissionHistory.status == CommissionHistoryStatus.PENDING.value
            ).all()
            for history in completed:
                history.status = CommissionHistoryStatus.COMPLETED.value
                history.completedAt = now

            ActivityService.recordActivity(
                session, seller, ActivityType.BALANCE_UPDATED,
                {
                    "amount": transferred,
                    "productName": deposit.productName,
                    "previousBalance": previousBalance,
                    "newBalance": newBalance
                }
            )

            return {"transferred": transferred, "newBalance": newBalance}

        txn = await executeWithRetry(self.session, _work, operation="mark deposit paid")
        if not txn.success:
            return {"success": False, "message": failureMessage(txn.error, "update deposit status")}

        transferred = txn.result["transferred"]
        logger.info(f"Deposit {depositId} paid: ${transferred} profit released to seller {sellerId}")
        return {
            "success": True,
            "message": (
                f"Deposit approved! ${transferred:.2f} profit added to your wallet."
                if transferred > 0 else "Deposit confirmed!"
            ),
            "profitTransferredAmount": transferred,
            "newBalance": txn.result["newBalance"]
        }

    async def getSellerPendingDeposits(self, sellerId: int) -> List[Dict]:
        """Deposits of a seller that are not paid yet, newest first."""
        try:
            deposits = self.session.query(PendingDeposit).filter(
                PendingDeposit.sellerID == sellerId,
                PendingDeposit.status != DepositStatus.DEPOSIT_PAID.value
            ).order_by(
                PendingDeposit.createdAt.desc(),
                PendingDeposit.depositID.desc()
            ).all()
        except SQLAlchemyError as e:
            logger.error(f"Error loading pending deposits of seller {sellerId}: {e}", exc_info=True)
            return []
        return [_depositToDict(d) for d in deposits]

    async def getSellerWalletSummary(self, sellerId: int) -> Dict:
        """Available balance, deposits still owed and profit waiting for them."""
        summary = {
            "availableBalance": ZERO,
            "totalPendingDeposits": ZERO,
            "withdrawableAmount": ZERO,
            "totalProfit": ZERO
        }
        try:
            seller = self.session.get(User, sellerId)
            deposits = self.session.query(PendingDeposit).filter(
                PendingDeposit.sellerID == sellerId,
                PendingDeposit.status.in_([DepositStatus.PENDING.value, DepositStatus.SOLD.value])
            ).all()
        except SQLAlchemyError as e:
            logger.error(f"Error building wallet summary of seller {sellerId}: {e}", exc_info=True)
            return summary

        available = toMoney(seller.balance) if seller is not None else ZERO
        pendingDeposits = sum((toMoney(d.totalDepositRequired) for d in deposits), Decimal("0"))
        pendingProfit = sum(
            (toMoney(d.pendingProfitAmount) for d in deposits if d.status == DepositStatus.SOLD.value),
            Decimal("0")
        )

        summary["availableBalance"] = available
        summary["totalPendingDeposits"] = toMoney(pendingDeposits)
        summary["withdrawableAmount"] = available
        summary["totalProfit"] = toMoney(pendingProfit)
        return summary
