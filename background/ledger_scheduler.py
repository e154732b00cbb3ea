# background/ledger_scheduler.py
"""
Ledger Scheduler - periodic consistency jobs for the commission ledger.
Uses APScheduler for task scheduling.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import Config
from core.db import get_session
from ledger_system.services.commission_service import CommissionService

logger = logging.getLogger(__name__)


class LedgerScheduler:
    """
    Background scheduler for ledger maintenance.

    Jobs:
    - Missing receipt commission sweep
    - Commission balance reconciliation (cache vs log)
    """

    def __init__(self, intervalMinutes: Optional[int] = None, autoFix: bool = False):
        """
        Initialize scheduler.

        Args:
            intervalMinutes: Job interval, defaults to RECONCILIATION_INTERVAL_MINUTES
            autoFix: Rewrite mismatching balance caches from the log
        """
        self.intervalMinutes = intervalMinutes or Config.get(Config.RECONCILIATION_INTERVAL_MINUTES)
        self.autoFix = autoFix
        self.isRunning = False

        self.scheduler = AsyncIOScheduler(
            timezone='UTC',
            job_defaults={
                'coalesce': True,
                'max_instances': 1,
                'misfire_grace_time': 300
            }
        )

        # Statistics
        self.stats = {
            "tasksExecuted": 0,
            "errors": 0,
            "lastError": None,
            "startedAt": None,
            "lastExecutedAt": None,
            "commissionsSwept": 0,
            "discrepanciesFound": 0,
            "balancesFixed": 0
        }

    async def start(self):
        """Start scheduler with all jobs."""
        if self.isRunning:
            logger.warning("Ledger Scheduler already running")
            return

        logger.info("=" * 60)
        logger.info("Starting Ledger Scheduler with APScheduler")
        logger.info("=" * 60)

        self.isRunning = True
        self.stats["startedAt"] = datetime.now(timezone.utc)

        # ═══════════════════════════════════════════════════════════════
        # JOB 1: Missing receipt commissions
        # ═══════════════════════════════════════════════════════════════
        self.scheduler.add_job(
            func=self._safe_sweep_wrapper,
            trigger=IntervalTrigger(minutes=self.intervalMinutes),
            id='receipt_commission_sweep',
            name='Receipt Commission Sweep',
            replace_existing=True
        )
        logger.info(f"✓ Job registered: Receipt Commission Sweep (every {self.intervalMinutes} minutes)")

        # ═══════════════════════════════════════════════════════════════
        # JOB 2: Balance reconciliation
        # ═══════════════════════════════════════════════════════════════
        self.scheduler.add_job(
            func=self._safe_reconciliation_wrapper,
            trigger=IntervalTrigger(minutes=self.intervalMinutes),
            id='commission_reconciliation',
            name='Commission Balance Reconciliation',
            replace_existing=True
        )
        logger.info(f"✓ Job registered: Commission Reconciliation (every {self.intervalMinutes} minutes)")

        self.scheduler.start()

        logger.info("=" * 60)
        logger.info("✅ Ledger Scheduler started successfully")
        logger.info(f"Active jobs: {len(self.scheduler.get_jobs())}")
        logger.info("=" * 60)

    async def stop(self):
        """Stop scheduler gracefully."""
        if not self.isRunning:
            return

        logger.info("Stopping Ledger Scheduler...")
        self.isRunning = False

        if self.scheduler.running:
            self.scheduler.shutdown(wait=True)

        logger.info("✓ Ledger Scheduler stopped")

    # ═══════════════════════════════════════════════════════════════════
    # SAFE WRAPPERS (error handling for APScheduler jobs)
    # ═══════════════════════════════════════════════════════════════════

    async def _safe_sweep_wrapper(self):
        """Safe wrapper for the commission sweep."""
        try:
            await self.sweepReceiptCommissions()
        except Exception as e:
            logger.error(f"Error in receipt commission sweep job: {e}", exc_info=True)
            self.stats["errors"] += 1
            self.stats["lastError"] = str(e)

    async def _safe_reconciliation_wrapper(self):
        """Safe wrapper for balance reconciliation."""
        try:
            await self.reconcileBalances()
        except Exception as e:
            logger.error(f"Error in reconciliation job: {e}", exc_info=True)
            self.stats["errors"] += 1
            self.stats["lastError"] = str(e)

    # ═══════════════════════════════════════════════════════════════════
    # JOBS
    # ═══════════════════════════════════════════════════════════════════

    async def sweepReceiptCommissions(self) -> dict:
        """Record commissions missing for approved seller receipts."""
        session = get_session()
        try:
            result = await CommissionService(session).sweepMissingReceiptCommissions()
        finally:
            session.close()

        self._recordRun()
        self.stats["commissionsSwept"] += result.get("recorded", 0)
        if result.get("recorded") or result.get("failed"):
            logger.info(f"Commission sweep: {result.get('message')}")
        return result

    async def reconcileBalances(self) -> dict:
        """Compare commission caches with the log."""
        session = get_session()
        try:
            result = await CommissionService(session).reconcileCommissionBalances(fix=self.autoFix)
        finally:
            session.close()

        self._recordRun()
        if result["success"]:
            self.stats["discrepanciesFound"] += len(result["discrepancies"])
            self.stats["balancesFixed"] += result["fixed"]
            if result["discrepancies"]:
                logger.warning(f"Reconciliation: {result['message']}")
        else:
            logger.error(f"Reconciliation failed: {result['message']}")
        return result

    def _recordRun(self):
        self.stats["tasksExecuted"] += 1
        self.stats["lastExecutedAt"] = datetime.now(timezone.utc)
