# models/listeners/change_feed_listeners.py
"""
Change Feed Listeners - publish committed ledger changes on the event bus.

Architecture:
    after_flush    → collect changed CommissionBalance / CommissionTransaction / Receipt
                     ids into session.info
    after_commit   → emit collected events (LedgerEvents.*)
    after_rollback → discard collected events

Subscribers therefore only ever see committed state.
"""
import logging

from sqlalchemy import event
from sqlalchemy.orm import Session

from ledger_system.events.event_bus import eventBus, LedgerEvents

logger = logging.getLogger(__name__)

PENDING_KEY = "ledger_pending_events"


def _collect(session, obj, is_new: bool):
    from models.commission import CommissionBalance, CommissionTransaction
    from models.receipt import Receipt

    pending = session.info.setdefault(PENDING_KEY, {})

    if isinstance(obj, CommissionBalance):
        pending[(LedgerEvents.COMMISSION_BALANCE_CHANGED, obj.adminID)] = {
            "adminId": obj.adminID
        }
    elif isinstance(obj, CommissionTransaction) and is_new:
        pending[(LedgerEvents.COMMISSION_TRANSACTION_ADDED, obj.transactionID)] = {
            "adminId": obj.adminID,
            "transactionId": obj.transactionID
        }
    elif isinstance(obj, Receipt):
        pending[(LedgerEvents.RECEIPT_CHANGED, obj.receiptID)] = {
            "receiptId": obj.receiptID,
            "userId": obj.userID,
            "status": obj.status
        }


def collect_changes(session, flush_context):
    """after_flush: remember what changed (new/dirty still hold pre-flush state)."""
    for obj in session.new:
        _collect(session, obj, is_new=True)
    for obj in session.dirty:
        if session.is_modified(obj, include_collections=False):
            _collect(session, obj, is_new=False)


def publish_changes(session):
    """after_commit: emit every collected change once."""
    pending = session.info.pop(PENDING_KEY, None)
    if not pending:
        return

    for (event_name, _key), data in pending.items():
        logger.debug(f"Publishing {event_name}: {data}")
        eventBus.emitNow(event_name, data)


def discard_changes(session):
    """after_rollback: nothing was committed, nothing is published."""
    session.info.pop(PENDING_KEY, None)


def register_change_feed_listeners():
    """
    Register session-level change feed.

    Called once during application startup from models/listeners/__init__.py
    """
    event.listen(Session, 'after_flush', collect_changes)
    event.listen(Session, 'after_commit', publish_changes)
    event.listen(Session, 'after_rollback', discard_changes)
