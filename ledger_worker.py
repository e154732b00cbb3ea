# marketplace-ledger/ledger_worker.py
"""
Ledger Worker - Main entry point.
Runs the background consistency jobs of the marketplace ledger.
"""
import asyncio
import logging
import signal
import sys

from config import Config
from core.db import setup_database, dispose_engine
from models import register_all_listeners
from background.ledger_scheduler import LedgerScheduler

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler('ledger.log')
    ]
)

logger = logging.getLogger(__name__)


async def initialize_worker() -> LedgerScheduler:
    """
    Initialize configuration, database and scheduler.

    Returns:
        LedgerScheduler: started scheduler
    """
    try:
        logger.info("=" * 60)
        logger.info("LEDGER WORKER INITIALIZATION")
        logger.info("=" * 60)

        # ═══════════════════════════════════════════════════════════════════════
        # STEP 1: Load configuration from .env
        # ═══════════════════════════════════════════════════════════════════════
        logger.info("📋 Loading configuration from .env...")
        Config.initialize_from_env()
        await Config.validate_critical_keys()
        logger.info("✓ Configuration loaded")

        # ═══════════════════════════════════════════════════════════════════════
        # STEP 2: Setup database and model listeners
        # ═══════════════════════════════════════════════════════════════════════
        logger.info("💾 Setting up database...")
        setup_database()
        register_all_listeners()
        logger.info("✓ Database ready")

        # ═══════════════════════════════════════════════════════════════════════
        # STEP 3: Start background jobs
        # ═══════════════════════════════════════════════════════════════════════
        logger.info("🚀 Starting ledger scheduler...")
        scheduler = LedgerScheduler()
        await scheduler.start()

        Config.set(Config.SYSTEM_READY, True)

        logger.info("=" * 60)
        logger.info("✅ INITIALIZATION COMPLETE")
        logger.info("=" * 60)

        return scheduler

    except Exception as e:
        logger.critical(f"❌ Initialization failed: {e}", exc_info=True)
        raise


def setup_signal_handlers(loop: asyncio.AbstractEventLoop, stopEvent: asyncio.Event) -> None:
    """Set stopEvent on SIGINT/SIGTERM."""
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stopEvent.set)
        except NotImplementedError:
            # Signal handlers not available on Windows
            logger.warning(f"Signal handler for {sig} not available on this platform")


async def main():
    """Main entry point."""
    scheduler = None
    try:
        scheduler = await initialize_worker()

        stopEvent = asyncio.Event()
        setup_signal_handlers(asyncio.get_running_loop(), stopEvent)

        logger.info("🔄 Ledger worker running")
        await stopEvent.wait()
        logger.info("⚠️ Shutdown signal received")

    except Exception as e:
        logger.critical(f"❌ Fatal error: {e}", exc_info=True)
        sys.exit(1)
    finally:
        if scheduler is not None:
            await scheduler.stop()
        dispose_engine()
        logger.info("👋 Ledger worker shutdown complete")


if __name__ == '__main__':
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Worker stopped")
