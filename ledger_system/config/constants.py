"""
Ledger enumerations and constants.
"""
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum


TWOPLACES = Decimal("0.01")
ZERO = Decimal("0.00")


def toMoney(value) -> Decimal:
    """Convert value to Decimal quantized to cents."""
    if value is None:
        return ZERO
    d = value if isinstance(value, Decimal) else Decimal(str(value))
    return d.quantize(TWOPLACES, rounding=ROUND_HALF_UP)


class Role(Enum):
    """Identity role claim stored on User.role."""
    USER = "user"
    SELLER = "seller"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


class CommissionType(Enum):
    """Source of a commission transaction."""
    SUPERADMIN_DEPOSIT = "superadmin_deposit"
    RECEIPT_APPROVAL = "receipt_approval"


class ReceiptStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class WithdrawalStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class DepositStatus(Enum):
    """Pending deposit lifecycle: pending -> sold -> deposit_paid."""
    PENDING = "pending"
    SOLD = "sold"
    DEPOSIT_PAID = "deposit_paid"


class CommissionHistoryStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ExclusionSource(Enum):
    """Why a row is excluded from revenue views."""
    DUMMY_TOGGLE = "dummy_toggle"
    DUMMY_AT_CREATION = "dummy_at_creation"


class ActivityType(Enum):
    """Audit feed activity types."""
    FUND_DEPOSIT = "fund_deposit"
    WITHDRAWAL_APPROVED = "withdrawal_approved"
    WITHDRAWAL_REJECTED = "withdrawal_rejected"
    WITHDRAWAL_REQUEST = "withdrawal_request"
    FUND_WITHDRAWAL = "fund_withdrawal"
    PRODUCT_SOLD = "product_sold"
    BALANCE_UPDATED = "balance_updated"
    COMMISSION_EARNED = "commission_earned"


class ActivityStatus(Enum):
    COMPLETED = "completed"
    PENDING = "pending"
    FAILED = "failed"


COMMISSION_STATUS_COMPLETED = "completed"
