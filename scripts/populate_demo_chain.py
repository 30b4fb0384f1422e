#!/usr/bin/env python3
"""
Demo chain population script.

Creates a linear 10-user chain (root + 9 levels) and a confirmed 300.00
deposit by the bottom user, so distributions can be inspected with
scripts/check_distributions.py.

Chain structure:
ROOT -> L8 -> ... -> L1 (inactive at level 4) -> Depositor

Usage:
    python scripts/populate_demo_chain.py
"""

import sys
import os

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Config
from core.db import get_session, setup_database, drop_all_tables
from models import User, CommissionRate
from models.listeners import register_all_listeners
from commission_system.config.rates import reload_rate_table
from commission_system.services.deposit_service import DepositService

import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Distance from depositor -> activation (level 4 left inactive on purpose)
CHAIN_LEVELS = {level: level != 4 for level in range(1, 10)}


def main():
    """Main population script."""
    print("\n" + "=" * 80)
    print("🧪 COMMISSION DEMO - DATABASE POPULATION")
    print("=" * 80)
    print("⚠️  WARNING: This will DROP and recreate the entire database!\n")

    confirm = input("Type 'YES' to continue: ")
    if confirm != "YES":
        print("❌ Aborted.")
        return

    Config.initialize_from_env()
    drop_all_tables()
    setup_database()
    register_all_listeners()

    session = get_session()
    try:
        seed_rates(session)
        depositor = create_chain(session)

        service = DepositService(session)
        deposit = service.submitDeposit(depositor.userID, "300.00", txHash="demo-tx-1")
        result = service.confirmDeposit(deposit.depositID, notes="demo")

        print("\n" + "=" * 80)
        print("✅ DEMO DATABASE READY")
        print("=" * 80)
        for entry in result.entries:
            print(f"  Level {entry.level}: user {entry.beneficiaryId} +${entry.amount}")
        print(f"  Total credited: ${result.totalCredited}")
        print(f"\nInspect: python scripts/check_distributions.py --deposit-id {deposit.depositID}\n")

    finally:
        session.close()


def seed_rates(session):
    """Store configured rates in the commission_rates table and reload them."""
    table = reload_rate_table()
    for level, percentage in table.asDict().items():
        session.add(CommissionRate(level=level, percentage=percentage))
    session.commit()
    reload_rate_table(session)
    logger.info(f"✓ Seeded rate table: {table}")


def create_chain(session):
    """Create ROOT + 9 levels + depositor, return depositor."""
    root = User(firstname="Root", isActive=True)
    session.add(root)
    session.flush()

    previous = root
    for level in sorted(CHAIN_LEVELS, reverse=True):
        user = User(
            firstname=f"Level{level}",
            referrerID=previous.userID,
            isActive=CHAIN_LEVELS[level]
        )
        session.add(user)
        session.flush()
        logger.info(f"✓ Created: {user.firstname} (ID: {user.userID}, active: {user.isActive})")
        previous = user

    depositor = User(firstname="Depositor", referrerID=previous.userID, isActive=False)
    session.add(depositor)
    session.commit()

    logger.info(f"✓ Created chain of {len(CHAIN_LEVELS) + 2} users")
    return depositor


if __name__ == "__main__":
    main()
