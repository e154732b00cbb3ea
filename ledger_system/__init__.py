# ledger_system/__init__.py
"""
Ledger System - marketplace commission, revenue and seller management.
"""

# Services
from ledger_system.services.commission_service import CommissionService
from ledger_system.services.monthly_revenue_service import MonthlyRevenueService, RevenueRole
from ledger_system.services.platform_stats_service import PlatformStatsService
from ledger_system.services.receipt_service import ReceiptService
from ledger_system.services.seller_management_service import SellerManagementService
from ledger_system.services.withdrawal_service import WithdrawalService
from ledger_system.services.pending_deposit_service import PendingDepositService
from ledger_system.services.revenue_poller import RevenuePoller

# Errors
from ledger_system.errors import (
    LedgerError,
    NotFoundError,
    ConflictError,
    ValidationError,
    TransientError,
    StorageError,
)

# Utilities
from ledger_system.utils.time_machine import timeMachine

# Events
from ledger_system.events.event_bus import eventBus, LedgerEvents

__all__ = [
    # Services
    'CommissionService',
    'MonthlyRevenueService',
    'RevenueRole',
    'PlatformStatsService',
    'ReceiptService',
    'SellerManagementService',
    'WithdrawalService',
    'PendingDepositService',
    'RevenuePoller',

    # Errors
    'LedgerError',
    'NotFoundError',
    'ConflictError',
    'ValidationError',
    'TransientError',
    'StorageError',

    # Utils
    'timeMachine',

    # Events
    'eventBus',
    'LedgerEvents',
]
