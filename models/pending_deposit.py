"""
Consignment models.

PendingDeposit - a seller listing whose stock deposit has not been paid yet.
CommissionHistory - projected admin commission tied to a pending deposit.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from models.base import Base, AuditMixin, RevenueExclusionMixin


class PendingDeposit(Base, AuditMixin, RevenueExclusionMixin):
    __tablename__ = 'pending_deposits'

    depositID = Column(Integer, primary_key=True, autoincrement=True)

    sellerID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)
    adminID = Column(Integer, ForeignKey('users.userID'), nullable=True, index=True)

    # Listing
    productID = Column(String, nullable=False)
    productName = Column(String, nullable=False)
    quantityListed = Column(Integer, nullable=False)
    originalCostPerUnit = Column(DECIMAL(18, 2), nullable=False)
    listingPrice = Column(DECIMAL(18, 2), nullable=False)
    profitPerUnit = Column(DECIMAL(18, 2), nullable=False)
    totalDepositRequired = Column(DECIMAL(18, 2), nullable=False)

    status = Column(String, nullable=False, default="pending", index=True)  # pending, sold, deposit_paid

    # Sale
    salePrice = Column(DECIMAL(18, 2), nullable=True)
    saleDate = Column(DateTime, nullable=True)
    actualQuantitySold = Column(Integer, nullable=True)
    pendingProfitAmount = Column(DECIMAL(18, 2), nullable=True)

    # Deposit payment / profit release
    depositPaidDate = Column(DateTime, nullable=True)
    profitTransferredAmount = Column(DECIMAL(18, 2), nullable=True)
    profitTransferredDate = Column(DateTime, nullable=True)

    # Migration
    migratedAt = Column(DateTime, nullable=True)
    migratedReason = Column(String, nullable=True)

    seller = relationship('User', foreign_keys=[sellerID])

    def __repr__(self):
        return f"<PendingDeposit(depositID={self.depositID}, status={self.status}, seller={self.sellerID})>"


class CommissionHistory(Base, AuditMixin, RevenueExclusionMixin):
    __tablename__ = 'commission_history'

    historyID = Column(Integer, primary_key=True, autoincrement=True)

    adminID = Column(Integer, ForeignKey('users.userID'), nullable=True, index=True)
    sellerID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)
    depositID = Column(Integer, ForeignKey('pending_deposits.depositID'), nullable=False, index=True)

    amount = Column(DECIMAL(18, 2), nullable=False)
    status = Column(String, nullable=False, default="pending", index=True)  # pending, completed, cancelled
    completedAt = Column(DateTime, nullable=True)

    # Migration
    migratedAt = Column(DateTime, nullable=True)
    migratedReason = Column(String, nullable=True)

    deposit = relationship('PendingDeposit', backref='commissionHistory')

    def __repr__(self):
        return f"<CommissionHistory(historyID={self.historyID}, admin={self.adminID}, status={self.status})>"
