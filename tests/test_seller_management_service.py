# tests/test_seller_management_service.py
"""
Tests for seller migration and dummy-account toggling.

Key principle: migration redirects FUTURE attribution only. Past
CommissionTransaction rows stay with the admin that earned them.

Run:
    pytest tests/test_seller_management_service.py -v
"""
from decimal import Decimal

import pytest

from models import (
    CommissionHistory,
    CommissionTransaction,
    DummyAccountChange,
    PendingDeposit,
    SellerMigration,
    User,
)
from ledger_system.config.constants import CommissionHistoryStatus, DepositStatus, ExclusionSource
from ledger_system.services.commission_service import CommissionService
from ledger_system.services.pending_deposit_service import PendingDepositService
from ledger_system.services.receipt_service import ReceiptService
from ledger_system.services.seller_management_service import SellerManagementService


@pytest.fixture
def list_product(run, session):
    """Create a pending deposit for seller, return depositId."""

    def _list(seller, cost="10.00", price="15.00", quantity=2):
        result = run(PendingDepositService(session).createPendingDeposit(
            seller.userID, "SKU-1", "Widget", quantity, cost, price
        ))
        assert result["success"], result["message"]
        return result["depositId"]

    return _list


# =============================================================================
# TEST CLASS: Migration
# =============================================================================

class TestMigrateSeller:
    """Tests for migrateSeller."""

    def test_history_stays_future_follows(
            self, run, session, admin, other_admin, seller, image_bytes
    ):
        """
        TEST: 3 historical commissions under A, migrate to B.

        Verify: historical rows keep adminId=A, a new receipt commission goes
        to B, originalReferredBy stays A.
        """
        commissions = CommissionService(session)
        for amount in (10, 20, 30):
            run(commissions.recordSuperadminDeposit(admin.userID, seller.userID, amount, "root"))

        result = run(SellerManagementService(session).migrateSeller(
            seller.userID, other_admin.userID, "Admin left the team"
        ))
        assert result["success"] is True
        assert result["oldAdminId"] == admin.userID
        assert result["newAdminId"] == other_admin.userID

        history = session.query(CommissionTransaction).order_by(CommissionTransaction.transactionID).all()
        assert [tx.adminID for tx in history] == [admin.userID] * 3

        receipts = ReceiptService(session)
        submitted = run(receipts.submitReceipt(seller.userID, 40, "REF", image_bytes, "r.png"))
        run(receipts.approveReceipt(submitted["receiptId"], other_admin.userID))

        newest = session.query(CommissionTransaction).order_by(CommissionTransaction.transactionID.desc()).first()
        assert newest.adminID == other_admin.userID

        migrated = session.get(User, seller.userID)
        assert migrated.adminID == other_admin.userID
        assert migrated.referredBy == other_admin.userID
        assert migrated.originalReferredBy == admin.userID
        assert migrated.migratedAt is not None

        assert run(commissions.getAdminCommissionBalance(admin.userID)) == Decimal("6.00")
        assert run(commissions.getAdminCommissionBalance(other_admin.userID)) == Decimal("4.00")

    def test_original_referrer_written_once(self, run, session, make_user, admin, other_admin, seller):
        third = make_user("admin")
        service = SellerManagementService(session)

        run(service.migrateSeller(seller.userID, other_admin.userID, "first"))
        run(service.migrateSeller(seller.userID, third.userID, "second"))

        migrated = session.get(User, seller.userID)
        assert migrated.originalReferredBy == admin.userID
        assert [m.newAdminID for m in migrated.migrationHistory] == [other_admin.userID, third.userID]

        history = run(service.getSellerMigrationHistory(seller.userID))
        assert [h["reason"] for h in history] == ["second", "first"]
        assert history[0]["oldAdminId"] == other_admin.userID
        assert history[0]["originalReferredBy"] == admin.userID
        assert history[0]["migrationScope"] == "future_only"

    def test_in_flight_records_follow_seller(self, run, session, admin, other_admin, seller, list_product):
        """
        TEST: unpaid deposits and pending commission history move to B,
        paid deposits and completed history stay with A.
        """
        pendingId = list_product(seller)
        soldId = list_product(seller)
        paidId = list_product(seller)
        deposits = PendingDepositService(session)
        run(deposits.markProductSold(soldId, seller.userID, "20.00", 2))
        run(deposits.markProductSold(paidId, seller.userID, "20.00", 2))
        run(deposits.markDepositPaid(paidId, seller.userID))

        result = run(SellerManagementService(session).migrateSeller(
            seller.userID, other_admin.userID, "rebalancing"
        ))

        assert result["migratedData"] == {"pendingDeposits": 2, "commissionHistory": 2}
        assert session.get(PendingDeposit, pendingId).adminID == other_admin.userID
        assert session.get(PendingDeposit, soldId).adminID == other_admin.userID
        assert session.get(PendingDeposit, soldId).migratedReason == "rebalancing"
        assert session.get(PendingDeposit, paidId).adminID == admin.userID

        completed = session.query(CommissionHistory).filter_by(depositID=paidId).one()
        assert completed.status == CommissionHistoryStatus.COMPLETED.value
        assert completed.adminID == admin.userID

        audit = session.query(SellerMigration).one()
        assert audit.migratedData == {"pendingDeposits": 2, "commissionHistory": 2}

    def test_no_op_migration_rejected(self, run, session, admin, seller):
        """
        TEST: migrating to the current admin fails without any write.
        """
        before = session.get(User, seller.userID)
        updatedAt, version = before.updatedAt, before.version

        result = run(SellerManagementService(session).migrateSeller(seller.userID, admin.userID, "noop"))

        assert result == {"success": False, "message": "Seller is already under this admin"}
        session.expire_all()
        after = session.get(User, seller.userID)
        assert after.updatedAt == updatedAt
        assert after.version == version
        assert session.query(SellerMigration).count() == 0

    @pytest.mark.parametrize("reason", ["", "  "])
    def test_reason_required(self, run, session, other_admin, seller, reason):
        result = run(SellerManagementService(session).migrateSeller(seller.userID, other_admin.userID, reason))
        assert result == {"success": False, "message": "Migration reason is required"}

    def test_target_must_be_admin(self, run, session, make_user, seller):
        notAdmin = make_user("seller")
        result = run(SellerManagementService(session).migrateSeller(seller.userID, notAdmin.userID, "x"))
        assert result == {"success": False, "message": "Target admin not found or invalid"}

    def test_unknown_seller(self, run, session, other_admin):
        result = run(SellerManagementService(session).migrateSeller(5555, other_admin.userID, "x"))
        assert result == {"success": False, "message": "Seller not found"}


# =============================================================================
# TEST CLASS: Dummy accounts
# =============================================================================

class TestToggleDummyAccount:
    """Tests for toggleDummyAccount."""

    def test_toggle_on_marks_rows(self, run, session, seller, list_product):
        first = list_product(seller)
        second = list_product(seller)

        result = run(SellerManagementService(session).toggleDummyAccount(seller.userID, True, "test account"))

        assert result["success"] is True
        assert result["markedRecords"] == {"pendingDeposits": 2, "commissionHistory": 2}
        for depositId in (first, second):
            deposit = session.get(PendingDeposit, depositId)
            assert deposit.excludeFromRevenue is True
            assert deposit.exclusionSource == ExclusionSource.DUMMY_TOGGLE.value
        assert session.get(User, seller.userID).isDummyAccount is True

    def test_toggle_off_keeps_rows_created_while_dummy(self, run, session, seller, list_product):
        """
        TEST: on → new deposit (dummy_at_creation) → off.

        Verify: toggle-marked row restored, row created while dummy stays excluded.
        """
        service = SellerManagementService(session)
        before = list_product(seller)
        run(service.toggleDummyAccount(seller.userID, True, "on"))
        during = list_product(seller)
        run(service.toggleDummyAccount(seller.userID, False, "off"))
        after = list_product(seller)

        assert session.get(PendingDeposit, before).excludeFromRevenue is False
        assert session.get(PendingDeposit, before).exclusionSource is None
        assert session.get(PendingDeposit, during).excludeFromRevenue is True
        assert session.get(PendingDeposit, during).exclusionSource == ExclusionSource.DUMMY_AT_CREATION.value
        assert session.get(PendingDeposit, after).excludeFromRevenue is False

        changes = run(service.getDummyAccountHistory(seller.userID))
        assert [c["isDummyAccount"] for c in changes] == [False, True]
        assert changes[0]["previousStatus"] is True

    def test_non_seller_rejected(self, run, session, admin):
        result = run(SellerManagementService(session).toggleDummyAccount(admin.userID, True, "x"))
        assert result == {"success": False, "message": "User is not a seller"}
        assert session.query(DummyAccountChange).count() == 0

    def test_reason_required(self, run, session, seller):
        result = run(SellerManagementService(session).toggleDummyAccount(seller.userID, True, ""))
        assert result["success"] is False
        assert session.get(User, seller.userID).isDummyAccount is False


# =============================================================================
# TEST CLASS: Reads
# =============================================================================

class TestSellerReads:

    def test_sellers_and_admins(self, run, session, admin, seller, make_user, list_product):
        make_user("seller")
        run(CommissionService(session).recordSuperadminDeposit(admin.userID, seller.userID, 100, "root"))
        depositId = list_product(seller)
        run(PendingDepositService(session).markProductSold(depositId, seller.userID, "12.00", 1))
        service = SellerManagementService(session)

        sellers = run(service.getAllSellers())
        details = run(service.getSellerDetails(seller.userID))
        admins = run(service.getAllAdmins())

        assert len(sellers) == 2
        assert details["currentAdminId"] == admin.userID
        assert details["currentAdminName"] == admin.displayName
        assert details["totalCommissions"] == Decimal("10.00")
        assert details["totalSales"] == 1
        assert run(service.getSellerDetails(admin.userID)) is None

        mine = next(a for a in admins if a["id"] == admin.userID)
        assert mine["totalSellers"] == 1
        assert mine["totalCommissions"] == Decimal("10.00")

    def test_sold_status_counts(self, run, session, seller, list_product):
        depositId = list_product(seller)
        run(PendingDepositService(session).markProductSold(depositId, seller.userID, "12.00", 1))
        assert session.get(PendingDeposit, depositId).status == DepositStatus.SOLD.value
