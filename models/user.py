"""
User model - buyers, sellers, admins and superadmins.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import relationship

from models.base import Base, AuditMixin


class User(Base, AuditMixin):
    __tablename__ = 'users'

    # Primary key
    userID = Column(Integer, primary_key=True, autoincrement=True)

    # Identity
    email = Column(String, nullable=True, index=True)
    displayName = Column(String, nullable=True)
    role = Column(String, nullable=False, default="user", index=True)  # user, seller, admin, superadmin
    referralCode = Column(String, nullable=True, unique=True)

    # Wallet
    balance = Column(DECIMAL(18, 2), nullable=False, default=0)

    # Seller ownership
    adminID = Column(Integer, ForeignKey('users.userID'), nullable=True, index=True)
    referredBy = Column(Integer, ForeignKey('users.userID'), nullable=True, index=True)
    originalReferredBy = Column(Integer, ForeignKey('users.userID'), nullable=True)  # Written once on first migration
    migratedAt = Column(DateTime, nullable=True)

    # Dummy account
    isDummyAccount = Column(Boolean, nullable=False, default=False)
    dummyAccountChangedAt = Column(DateTime, nullable=True)
    dummyAccountChangedBy = Column(String, nullable=True)
    dummyAccountReason = Column(String, nullable=True)

    # Optimistic lock
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    migrationHistory = relationship(
        'SellerMigration',
        foreign_keys='SellerMigration.sellerID',
        order_by='SellerMigration.migrationID',
        back_populates='seller'
    )
    dummyAccountHistory = relationship(
        'DummyAccountChange',
        foreign_keys='DummyAccountChange.sellerID',
        order_by='DummyAccountChange.changeID',
        back_populates='seller'
    )

    @property
    def name(self) -> str:
        if self.displayName:
            return self.displayName
        if self.email:
            return self.email.split("@")[0]
        return "Unknown"

    def __repr__(self):
        return f"<User(userID={self.userID}, role={self.role}, balance={self.balance})>"
