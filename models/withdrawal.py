"""
WithdrawalRequest model - seller payout requests.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from models.base import Base, AuditMixin, RevenueExclusionMixin


class WithdrawalRequest(Base, AuditMixin, RevenueExclusionMixin):
    __tablename__ = 'withdrawal_requests'

    withdrawalID = Column(Integer, primary_key=True, autoincrement=True)

    sellerID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)
    sellerName = Column(String, nullable=True)

    amount = Column(DECIMAL(18, 2), nullable=False)
    usdtId = Column(String, nullable=True)  # Payout wallet
    status = Column(String, nullable=False, default="pending", index=True)  # pending, approved, rejected

    processedDate = Column(DateTime, nullable=True)
    processedBy = Column(Integer, ForeignKey('users.userID'), nullable=True)
    adminNotes = Column(String, nullable=True)

    # Optimistic lock
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    seller = relationship('User', foreign_keys=[sellerID])

    def __repr__(self):
        return f"<WithdrawalRequest(withdrawalID={self.withdrawalID}, amount={self.amount}, status={self.status})>"
