"""
Database models for the marketplace ledger.
Import all models here for easy access.
"""

# Base and mixins
from models.base import Base, AuditMixin, RevenueExclusionMixin

# Core models
from models.user import User
from models.receipt import Receipt
from models.withdrawal import WithdrawalRequest
from models.activity import Activity

# Commission ledger
from models.commission import CommissionBalance, CommissionTransaction
from models.pending_deposit import PendingDeposit, CommissionHistory

# Seller ownership audit
from models.seller_migration import SellerMigration, DummyAccountChange

# Event listeners
from models.listeners import register_all_listeners

__all__ = [
    # Base
    'Base',
    'AuditMixin',
    'RevenueExclusionMixin',

    # Core
    'User',
    'Receipt',
    'WithdrawalRequest',
    'Activity',

    # Commission ledger
    'CommissionBalance',
    'CommissionTransaction',
    'PendingDeposit',
    'CommissionHistory',

    # Seller ownership audit
    'SellerMigration',
    'DummyAccountChange',

    # Listeners
    'register_all_listeners',
]
