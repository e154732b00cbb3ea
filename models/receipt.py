"""
Receipt model - payment proofs submitted by users, approved or rejected by admins.
"""
from sqlalchemy import Boolean, Column, Integer, String, DECIMAL, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from models.base import Base, AuditMixin, RevenueExclusionMixin


class Receipt(Base, AuditMixin, RevenueExclusionMixin):
    __tablename__ = 'receipts'

    receiptID = Column(Integer, primary_key=True, autoincrement=True)

    # Relations
    userID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)

    # Denormalized submitter info
    userName = Column(String, nullable=True)
    userEmail = Column(String, nullable=True)

    amount = Column(DECIMAL(18, 2), nullable=False)
    referenceNumber = Column(String, nullable=True)

    # Stored image
    imageUrl = Column(String, nullable=False)
    imageKey = Column(String, nullable=True)  # Storage object key, used for cleanup
    fileName = Column(String, nullable=True)

    status = Column(String, nullable=False, default="pending", index=True)  # pending, approved, rejected

    # Processing
    approvedBy = Column(Integer, ForeignKey('users.userID'), nullable=True)
    approvedAt = Column(DateTime, nullable=True)
    notes = Column(String, nullable=True)

    # Commission attribution fixed at approval: True → due to commissionAdminID,
    # False → none due, NULL → approved outside the workflow
    commissionDue = Column(Boolean, nullable=True)
    commissionAdminID = Column(Integer, ForeignKey('users.userID'), nullable=True)

    # Optimistic lock
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    user = relationship('User', foreign_keys=[userID])

    def __repr__(self):
        return f"<Receipt(receiptID={self.receiptID}, amount={self.amount}, status={self.status})>"
