# tests/conftest.py
"""
Pytest configuration and shared fixtures for ledger tests.

Every test gets its own SQLite database file, a clean event bus,
the real clock and default configuration.

Run:
    pytest tests/ -v
    pytest tests/test_commission_service.py -v
"""
import asyncio
import uuid
from decimal import Decimal

import pytest
from sqlalchemy import func

from config import Config
from core.db import init_engine, setup_database, get_session, dispose_engine
from models import User, CommissionTransaction, register_all_listeners
from ledger_system.events.event_bus import eventBus
from ledger_system.utils.time_machine import timeMachine

# =============================================================================
# CONSTANTS
# =============================================================================

TEST_COMMISSION_RATE = Decimal("0.10")


# =============================================================================
# RESET FIXTURES
# =============================================================================

@pytest.fixture(scope="session", autouse=True)
def setup_listeners():
    """Register listeners once at test session start."""
    register_all_listeners()


@pytest.fixture(autouse=True)
def clean_state():
    """Default config with fast retries, no subscribers, real clock."""
    Config.reset()
    Config.set(Config.COMMISSION_RATE, TEST_COMMISSION_RATE)
    Config.set(Config.TRANSACTION_BASE_DELAY_MS, 0)
    Config.set(Config.TRANSACTION_MAX_DELAY_MS, 0)
    eventBus.clear()
    timeMachine.resetToRealTime()
    yield
    eventBus.clear()
    timeMachine.resetToRealTime()
    Config.reset()


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture
def database(tmp_path):
    """Fresh SQLite database file for one test."""
    url = f"sqlite:///{tmp_path / 'ledger.db'}"
    Config.set(Config.DATABASE_URL, url)
    Config.set(Config.RECEIPT_STORAGE_PATH, str(tmp_path / "storage"))
    engine = init_engine(url)
    setup_database()
    yield engine
    dispose_engine()


@pytest.fixture
def session(database):
    """Create database session for each test."""
    session = get_session()
    yield session
    session.close()


# =============================================================================
# USER FIXTURES
# =============================================================================

@pytest.fixture
def make_user(session):
    """
    Factory for users.

    Usage:
        seller = make_user("seller", adminID=admin.userID, referredBy=admin.userID)
    """

    def _make(role="user", **fields):
        suffix = uuid.uuid4().hex[:8]
        fields.setdefault("email", f"{role}_{suffix}@example.com")
        fields.setdefault("displayName", f"{role.title()} {suffix}")
        fields.setdefault("balance", Decimal("0"))
        user = User(role=role, **fields)
        session.add(user)
        session.commit()
        return user

    return _make


@pytest.fixture
def superadmin(make_user):
    return make_user("superadmin")


@pytest.fixture
def admin(make_user):
    return make_user("admin")


@pytest.fixture
def other_admin(make_user):
    return make_user("admin")


@pytest.fixture
def seller(make_user, admin):
    """Seller referred by and assigned to admin."""
    return make_user("seller", adminID=admin.userID, referredBy=admin.userID)


# =============================================================================
# HELPER FIXTURES
# =============================================================================

@pytest.fixture
def run():
    """Run a coroutine to completion."""

    def _run(coro):
        return asyncio.run(coro)

    return _run


@pytest.fixture
def calc_commission_log_sum(session):
    """
    Calculator for the real commission log sum of an admin.

    Usage:
        expected = calc_commission_log_sum(admin.userID)
    """

    def _calc(admin_id):
        total = session.query(
            func.coalesce(func.sum(CommissionTransaction.commissionAmount), 0)
        ).filter(
            CommissionTransaction.adminID == admin_id
        ).scalar()
        return Decimal(str(total)).quantize(Decimal("0.01"))

    return _calc


@pytest.fixture
def image_bytes():
    """A tiny payload accepted as receipt image."""
    return b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
