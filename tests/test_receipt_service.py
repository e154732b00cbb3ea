# tests/test_receipt_service.py
"""
Tests for the receipt approval workflow.

Run:
    pytest tests/test_receipt_service.py -v
"""
from datetime import datetime
from decimal import Decimal

import pytest

from models import Activity, CommissionTransaction, Receipt, User
from ledger_system.config.constants import ActivityType, ExclusionSource, ReceiptStatus
from ledger_system.errors import ConflictError, StorageError
from ledger_system.services import receipt_service
from ledger_system.services.receipt_service import ReceiptService
from ledger_system.services.storage_service import ReceiptStorage
from ledger_system.utils.time_machine import timeMachine


class RecordingStorage(ReceiptStorage):
    """In-memory storage that can be told to fail."""

    def __init__(self, failWith=None):
        self.objects = {}
        self.deleted = []
        self.failWith = failWith

    async def upload(self, key, data):
        if self.failWith is not None:
            raise StorageError(self.failWith, "Failed to upload receipt image. Please try again.")
        self.objects[key] = data
        return f"memory://{key}"

    async def delete(self, key):
        self.deleted.append(key)
        self.objects.pop(key, None)


@pytest.fixture
def storage():
    return RecordingStorage()


@pytest.fixture
def submit(run, session, storage, image_bytes):
    """Submit a receipt for user, return receiptId."""

    def _submit(user, amount=Decimal("50.00")):
        result = run(ReceiptService(session, storage).submitReceipt(
            user.userID, amount, "TRX-1", image_bytes, "proof.png"
        ))
        assert result["success"], result["message"]
        return result["receiptId"]

    return _submit


# =============================================================================
# TEST CLASS: Submission
# =============================================================================

class TestSubmitReceipt:
    """Tests for submitReceipt."""

    def test_creates_pending_receipt(self, run, session, make_user, storage, image_bytes):
        user = make_user("user")
        result = run(ReceiptService(session, storage).submitReceipt(
            user.userID, "50", "TRX-1", image_bytes, "my proof.png"
        ))

        assert result["success"] is True
        receipt = session.get(Receipt, result["receiptId"])
        assert receipt.status == ReceiptStatus.PENDING.value
        assert receipt.amount == Decimal("50.00")
        assert receipt.imageUrl == f"memory://{receipt.imageKey}"
        assert receipt.imageKey.startswith(f"receipts/{user.userID}/")
        assert receipt.imageKey.endswith("-my_proof.png")
        assert list(storage.objects) == [receipt.imageKey]

        activity = session.query(Activity).filter_by(userID=user.userID).one()
        assert activity.type == ActivityType.FUND_DEPOSIT.value
        assert activity.status == "pending"

    def test_unknown_user_never_touches_storage(self, run, session, storage, image_bytes):
        result = run(ReceiptService(session, storage).submitReceipt(
            4242, 50, None, image_bytes, "proof.png"
        ))

        assert result["success"] is False
        assert storage.objects == {}

    def test_invalid_image_rejected(self, run, session, make_user, storage):
        user = make_user("user")
        result = run(ReceiptService(session, storage).submitReceipt(
            user.userID, 50, None, b"text", "notes.txt"
        ))

        assert result == {"success": False, "message": "Please select a valid image file"}
        assert session.query(Receipt).count() == 0

    def test_storage_failure_creates_no_receipt(self, run, session, make_user, image_bytes):
        """
        TEST: upload failure returns success false, nothing is written.
        """
        user = make_user("user")
        failing = RecordingStorage(failWith=StorageError.TRANSIENT)

        result = run(ReceiptService(session, failing).submitReceipt(
            user.userID, 50, None, image_bytes, "proof.png"
        ))

        assert result["success"] is False
        assert session.query(Receipt).count() == 0

    def test_same_file_name_keeps_both_images(self, run, session, make_user, storage, image_bytes):
        """
        TEST: clock pinned, same file name submitted twice.

        Verify: two stored objects, each receipt keeps its own URL.
        """
        timeMachine.setTime(datetime(2025, 3, 1, 12, 0))
        user = make_user("user")
        service = ReceiptService(session, storage)

        first = run(service.submitReceipt(user.userID, 10, None, image_bytes, "r.png"))
        second = run(service.submitReceipt(user.userID, 20, None, image_bytes, "r.png"))

        urls = {session.get(Receipt, r["receiptId"]).imageUrl for r in (first, second)}
        assert len(urls) == 2
        assert len(storage.objects) == 2

    def test_failed_insert_removes_uploaded_image(
            self, run, session, make_user, storage, image_bytes, monkeypatch
    ):
        """
        TEST: image uploaded, then receipt row cannot be written.

        Verify: uploaded object is deleted again.
        """
        user = make_user("user")

        def _fail(*args, **kwargs):
            raise ConflictError("Activity feed unavailable")

        monkeypatch.setattr(receipt_service.ActivityService, "recordActivity", staticmethod(_fail))

        result = run(ReceiptService(session, storage).submitReceipt(
            user.userID, 50, None, image_bytes, "proof.png"
        ))

        assert result == {"success": False, "message": "Activity feed unavailable"}
        assert len(storage.deleted) == 1
        assert storage.objects == {}
        assert session.query(Receipt).count() == 0


# =============================================================================
# TEST CLASS: Approval
# =============================================================================

class TestApproveReceipt:
    """Tests for approveReceipt."""

    def test_approval_credits_user_and_accrues_commission(self, run, session, admin, seller, submit):
        """
        TEST: approval is one transaction with the commission.

        Verify: balance +amount, receipt approved, commission = amount × rate.
        """
        receiptId = submit(seller)

        result = run(ReceiptService(session).approveReceipt(receiptId, admin.userID, "ok"))

        assert result["success"] is True
        assert result["message"] == "Receipt approved and funds added to user's account"
        assert result["newBalance"] == Decimal("50.00")
        assert result["commissionAmount"] == Decimal("5.00")

        receipt = session.get(Receipt, receiptId)
        assert receipt.status == ReceiptStatus.APPROVED.value
        assert receipt.approvedBy == admin.userID
        assert receipt.approvedAt is not None
        assert receipt.commissionDue is True
        assert receipt.commissionAdminID == admin.userID

        activity = session.query(Activity).filter_by(type=ActivityType.WITHDRAWAL_APPROVED.value).one()
        assert activity.details["amount"] == "50.00"
        assert activity.details["receiptId"] == receiptId
        assert activity.details["referenceNumber"] == "TRX-1"
        assert activity.details["adminId"] == admin.userID

        tx = session.query(CommissionTransaction).one()
        assert tx.adminID == admin.userID
        assert tx.receiptID == receiptId

    def test_plain_user_earns_no_commission(self, run, session, make_user, submit):
        user = make_user("user")
        receiptId = submit(user)

        result = run(ReceiptService(session).approveReceipt(receiptId, 1))

        assert result["success"] is True
        assert result["commissionAmount"] is None
        assert session.query(CommissionTransaction).count() == 0

    def test_missing_referring_admin_skips_commission(self, run, session, make_user, submit):
        orphan = make_user("seller", referredBy=987654)
        receiptId = submit(orphan)

        result = run(ReceiptService(session).approveReceipt(receiptId, 1))

        assert result["success"] is True
        assert result["commissionAmount"] is None
        assert session.get(User, orphan.userID).balance == Decimal("50.00")
        assert session.get(Receipt, receiptId).commissionDue is False

    def test_second_approval_is_conflict(self, run, session, admin, seller, submit):
        """
        TEST: approve → approve again.

        Verify: second call fails, balance credited once, one approval activity.
        """
        receiptId = submit(seller)
        service = ReceiptService(session)

        first = run(service.approveReceipt(receiptId, admin.userID))
        second = run(service.approveReceipt(receiptId, admin.userID))

        assert first["success"] is True
        assert second == {"success": False, "message": "Receipt is already approved"}
        assert session.get(User, seller.userID).balance == Decimal("50.00")
        assert session.query(Activity).filter_by(
            userID=seller.userID, type=ActivityType.WITHDRAWAL_APPROVED.value
        ).count() == 1
        assert session.query(CommissionTransaction).count() == 1

    def test_dummy_user_receipt_excluded(self, run, session, make_user, admin, submit):
        dummy = make_user("seller", adminID=admin.userID, referredBy=admin.userID, isDummyAccount=True)
        receiptId = submit(dummy)

        run(ReceiptService(session).approveReceipt(receiptId, admin.userID))

        receipt = session.get(Receipt, receiptId)
        assert receipt.excludeFromRevenue is True
        assert receipt.exclusionSource == ExclusionSource.DUMMY_AT_CREATION.value

    def test_unknown_receipt(self, run, session):
        assert run(ReceiptService(session).approveReceipt(31337, 1)) == {
            "success": False, "message": "Receipt not found"
        }


# =============================================================================
# TEST CLASS: Rejection
# =============================================================================

class TestRejectReceipt:
    """Tests for rejectReceipt."""

    @pytest.mark.parametrize("reason", ["", "   ", None])
    def test_reason_required(self, run, session, seller, submit, reason):
        """TEST: empty reason fails before any write; receipt stays pending."""
        receiptId = submit(seller)

        result = run(ReceiptService(session).rejectReceipt(receiptId, 1, reason))

        assert result == {"success": False, "message": "Rejection reason is required"}
        assert session.get(Receipt, receiptId).status == ReceiptStatus.PENDING.value

    def test_rejection_is_final(self, run, session, admin, seller, submit):
        receiptId = submit(seller)
        service = ReceiptService(session)

        rejected = run(service.rejectReceipt(receiptId, admin.userID, "  blurry image "))
        approved = run(service.approveReceipt(receiptId, admin.userID))
        rejectedAgain = run(service.rejectReceipt(receiptId, admin.userID, "again"))

        assert rejected == {"success": True, "message": "Receipt rejected"}
        assert approved == {"success": False, "message": "Receipt is already rejected"}
        assert rejectedAgain["success"] is False

        receipt = session.get(Receipt, receiptId)
        assert receipt.notes == "blurry image"
        assert session.get(User, seller.userID).balance == Decimal("0.00")
        assert session.query(Activity).filter_by(
            userID=seller.userID, type=ActivityType.WITHDRAWAL_REJECTED.value
        ).count() == 1


# =============================================================================
# TEST CLASS: Reads
# =============================================================================

class TestReceiptReads:

    def test_pending_and_user_lists(self, run, session, admin, seller, make_user, submit):
        other = make_user("user")
        first = submit(seller)
        second = submit(seller)
        third = submit(other)
        service = ReceiptService(session)
        run(service.approveReceipt(first, admin.userID))

        pending = run(service.getPendingReceipts())
        mine = run(service.getUserReceipts(seller.userID))

        assert {r["id"] for r in pending} == {second, third}
        assert [r["id"] for r in mine] == [second, first]
        assert run(service.getReceiptById(first))["status"] == ReceiptStatus.APPROVED.value
        assert run(service.getReceiptById(999)) is None
