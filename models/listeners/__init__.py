"""
SQLAlchemy Event Listeners Package.

Registers all event listeners for the application.
Import this module once during app startup to activate listeners.

Listeners:
    - canonical_listeners: Normalize money, strings, datetimes and JSON on write
    - change_feed_listeners: Publish committed ledger changes on the event bus
"""
import logging

logger = logging.getLogger(__name__)

_listeners_registered = False


def register_all_listeners():
    """
    Register all event listeners.

    Safe to call multiple times - listeners are registered only once.

    Call this from application startup, e.g.:
        from models.listeners import register_all_listeners
        register_all_listeners()
    """
    global _listeners_registered

    if _listeners_registered:
        logger.debug("Listeners already registered, skipping")
        return

    from models.listeners.canonical_listeners import register_canonical_listeners
    from models.listeners.change_feed_listeners import register_change_feed_listeners

    register_canonical_listeners()
    logger.info("Canonicalization listeners registered (all models)")

    register_change_feed_listeners()
    logger.info("Change feed listeners registered (CommissionBalance, CommissionTransaction, Receipt)")

    _listeners_registered = True
    logger.info("All event listeners registered successfully")
