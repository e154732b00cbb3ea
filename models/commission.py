"""
Commission models.

CommissionTransaction is the append-only commission log (source of truth).
CommissionBalance is the per-admin cached total of that log.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from models.base import Base, AuditMixin, RevenueExclusionMixin, _get_current_time


class CommissionBalance(Base):
    __tablename__ = 'commission_balances'

    adminID = Column(Integer, ForeignKey('users.userID'), primary_key=True)

    totalCommissionBalance = Column(DECIMAL(18, 2), nullable=False, default=0)
    lastUpdated = Column(DateTime, default=_get_current_time)
    createdAt = Column(DateTime, default=_get_current_time)

    # Optimistic lock
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    admin = relationship('User', foreign_keys=[adminID])

    def __repr__(self):
        return f"<CommissionBalance(adminID={self.adminID}, total={self.totalCommissionBalance})>"


class CommissionTransaction(Base, AuditMixin, RevenueExclusionMixin):
    __tablename__ = 'commission_transactions'

    transactionID = Column(Integer, primary_key=True, autoincrement=True)

    # Relations
    adminID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)
    sellerID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)
    receiptID = Column(Integer, ForeignKey('receipts.receiptID'), nullable=True, unique=True)  # One commission per receipt

    # Denormalized names for display
    adminName = Column(String, nullable=True)
    sellerName = Column(String, nullable=True)

    type = Column(String, nullable=False)  # superadmin_deposit, receipt_approval
    originalAmount = Column(DECIMAL(18, 2), nullable=False)
    commissionRate = Column(DECIMAL(5, 4), nullable=False)
    commissionAmount = Column(DECIMAL(18, 2), nullable=False)

    depositedBy = Column(String, nullable=True)  # Superadmin deposits only
    description = Column(String, nullable=True)
    status = Column(String, nullable=False, default="completed")

    admin = relationship('User', foreign_keys=[adminID])
    seller = relationship('User', foreign_keys=[sellerID])

    def __repr__(self):
        return (
            f"<CommissionTransaction(transactionID={self.transactionID}, type={self.type}, "
            f"commission={self.commissionAmount})>"
        )
