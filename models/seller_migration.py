"""
Seller ownership audit tables (append-only).

SellerMigration - one row per admin reassignment of a seller.
DummyAccountChange - one row per dummy-account flag change.
"""
from sqlalchemy import Column, Integer, String, Boolean, JSON, ForeignKey
from sqlalchemy.orm import relationship

from models.base import Base, AuditMixin


class SellerMigration(Base, AuditMixin):
    __tablename__ = 'seller_migrations'

    migrationID = Column(Integer, primary_key=True, autoincrement=True)

    sellerID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)
    sellerName = Column(String, nullable=True)

    oldAdminID = Column(Integer, ForeignKey('users.userID'), nullable=True)
    newAdminID = Column(Integer, ForeignKey('users.userID'), nullable=False)
    newAdminName = Column(String, nullable=True)

    # Seller attribution before and after
    referredByBefore = Column(Integer, nullable=True)
    referredByAfter = Column(Integer, nullable=True)
    originalReferredBy = Column(Integer, nullable=True)

    reason = Column(String, nullable=False)
    performedBy = Column(String, nullable=False, default="superadmin")

    migratedData = Column(JSON, nullable=True)
    # Structure: {"pendingDeposits": 2, "commissionHistory": 1}
    migrationScope = Column(String, nullable=False, default="future_only")

    seller = relationship('User', foreign_keys=[sellerID], back_populates='migrationHistory')

    def __repr__(self):
        return (
            f"<SellerMigration(migrationID={self.migrationID}, seller={self.sellerID}, "
            f"{self.oldAdminID} -> {self.newAdminID})>"
        )


class DummyAccountChange(Base, AuditMixin):
    __tablename__ = 'dummy_account_changes'

    changeID = Column(Integer, primary_key=True, autoincrement=True)

    sellerID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)
    sellerName = Column(String, nullable=True)

    isDummyAccount = Column(Boolean, nullable=False)
    previousStatus = Column(Boolean, nullable=False)
    reason = Column(String, nullable=False)
    performedBy = Column(String, nullable=False, default="superadmin")

    markedRecords = Column(JSON, nullable=True)
    # Structure: {"pendingDeposits": 3, "commissionHistory": 2}

    seller = relationship('User', foreign_keys=[sellerID], back_populates='dummyAccountHistory')

    def __repr__(self):
        return f"<DummyAccountChange(changeID={self.changeID}, seller={self.sellerID}, dummy={self.isDummyAccount})>"
