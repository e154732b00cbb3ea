#!/usr/bin/env python3
"""
Check commission balances against the commission log.

Displays cached balance vs log sum per admin, optionally repairs caches.

Usage:
    python scripts/check_commissions.py              # All admins
    python scripts/check_commissions.py --admin-id 7 # One admin, with transactions
    python scripts/check_commissions.py --fix        # Rewrite wrong caches
"""

import sys
import os
import argparse
import asyncio

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Config
from core.db import get_session
from models import register_all_listeners
from models.user import User
from ledger_system.services.commission_service import CommissionService

import logging

logging.basicConfig(level=logging.WARNING)


async def show_admin(service: CommissionService, session, admin_id: int):
    admin = session.get(User, admin_id)
    if not admin:
        print("❌ Admin not found")
        return

    summary = await service.getAdminCommissionSummary(admin_id)
    balance = await service.getAdminCommissionBalance(admin_id)

    print("\n" + "=" * 80)
    print(f"ADMIN: {admin.name} (ID: {admin.userID})")
    print("=" * 80)
    print(f"Cached balance:             ${float(balance):.2f}")
    print(f"Log balance:                ${float(summary['totalCommissionBalance']):.2f}")
    print(f"From superadmin deposits:   ${float(summary['totalFromSuperadminDeposits']):.2f}")
    print(f"From receipt approvals:     ${float(summary['totalFromReceiptApprovals']):.2f}")
    print(f"Transactions:               {summary['transactionCount']}")

    transactions = await service.getAdminCommissionTransactions(admin_id, limit=20)
    if transactions:
        print("-" * 80)
        for tx in transactions:
            excluded = " [EXCLUDED]" if tx["excludeFromRevenue"] else ""
            print(
                f"#{tx['id']:5} {str(tx['createdAt'])[:19]} "
                f"{tx['type']:20} {tx['sellerName'] or '':15} "
                f"${float(tx['commissionAmount']):10.2f}{excluded}"
            )


async def run(args):
    session = get_session()
    try:
        service = CommissionService(session)

        if args.admin_id:
            await show_admin(service, session, args.admin_id)

        result = await service.reconcileCommissionBalances(fix=args.fix)
        if not result["success"]:
            print(f"❌ {result['message']}")
            return 1

        print("\n" + "=" * 80)
        print("RECONCILIATION")
        print("=" * 80)
        print(result["message"])

        for item in result["discrepancies"]:
            cached = "missing" if item["cachedBalance"] is None else f"${float(item['cachedBalance']):.2f}"
            print(
                f"Admin {item['adminId']:6}: cache {cached:>12}  "
                f"log ${float(item['logBalance']):10.2f}  "
                f"diff ${float(item['difference']):10.2f}"
            )

        if not result["discrepancies"]:
            print("\n✅ ALL COMMISSION BALANCES MATCH THE LOG!")
        elif args.fix:
            print(f"\n🔧 {result['fixed']} balance(s) rewritten from the log")
        else:
            print("\n⚠️ Run with --fix to rewrite wrong balances")
        return 0
    finally:
        session.close()


def main():
    """Check commission balances."""
    parser = argparse.ArgumentParser(description='Check commission balances against the log')
    parser.add_argument('--admin-id', type=int, help='Show details for one admin')
    parser.add_argument('--fix', action='store_true', help='Rewrite wrong caches from the log')
    args = parser.parse_args()

    Config.initialize_from_env()
    register_all_listeners()
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
