# models/base.py
"""
Base model and mixins for all database tables.
"""
from sqlalchemy import Boolean, Column, DateTime, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _get_current_time():
    """Lazy import to avoid circular dependency."""
    from ledger_system.utils.time_machine import timeMachine
    return timeMachine.now


class AuditMixin:
    createdAt = Column(DateTime, default=_get_current_time, index=True)
    updatedAt = Column(DateTime, default=_get_current_time, onupdate=_get_current_time)


class RevenueExclusionMixin:
    """
    Dummy-account exclusion flags.

    exclusionSource: None, 'dummy_toggle' (set/cleared by the toggle)
    or 'dummy_at_creation' (written while seller was a dummy, never cleared).
    """
    excludeFromRevenue = Column(Boolean, default=False, nullable=False)
    exclusionSource = Column(String, nullable=True)
    excludedAt = Column(DateTime, nullable=True)
