#!/usr/bin/env python3
"""
Check commission distributions.

Displays commission breakdown for a deposit, or all credits of a user.

Usage:
    python scripts/check_distributions.py --deposit-id 123
    python scripts/check_distributions.py --last      # Check last confirmed deposit
    python scripts/check_distributions.py --user-id 7 # Credits received by user
    python scripts/check_distributions.py --clear-failure 123  # Release parked deposit
"""

import sys
import os
import argparse
from decimal import Decimal

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Config
from core.db import get_session
from models.user import User
from models.deposit import Deposit
from models.asset import Asset
from commission_system.config.rates import get_rate_table
from commission_system.services.commission_engine import calculate_credit
from commission_system.services.deposit_service import DepositService
from commission_system.services.distribution_ledger import DistributionLedger

import logging

logging.basicConfig(level=logging.WARNING)


def show_deposit(session, deposit):
    """Print distributions of one deposit and compare with recomputed expectation."""
    ledger = DistributionLedger(session)
    depositor = session.query(User).filter_by(userID=deposit.userID).first()

    print("\n" + "=" * 80)
    print("DISTRIBUTION CHECK")
    print("=" * 80)
    print(f"\nDeposit ID: {deposit.depositID}")
    print(f"Depositor: {depositor.firstname if depositor else '?'} (ID: {deposit.userID})")
    print(f"Amount: ${deposit.amount}")
    print(f"Status: {deposit.status}")
    print(f"Confirmed: {deposit.confirmedAt}")

    batch = ledger.batchForDeposit(deposit.depositID)
    if batch is None:
        print("\n❌ Deposit has not been distributed")
        if deposit.commissionFailedAt:
            print(f"⚠️  Parked since {deposit.commissionFailedAt}: {deposit.commissionError}")
            print(f"   Fix the cause, then run with --clear-failure {deposit.depositID}")
        return

    records = sorted(ledger.recordsForDeposit(deposit.depositID), key=lambda d: d.level)
    print(f"\nAncestors considered: {batch.ancestorsConsidered}")
    print(f"{len(records)} distribution(s) found:")
    print("-" * 80)

    rates = get_rate_table()
    total_paid = Decimal("0")
    expected_total = Decimal("0")

    for record in records:
        user = session.query(User).filter_by(userID=record.beneficiaryID).first()
        active_marker = "✅" if user and user.isActive else "❌"
        expected = calculate_credit(deposit.amount, rates.rateForLevel(record.level))

        print(
            f"Level {record.level}: "
            f"{(user.firstname or '-') if user else '?':15} {active_marker} "
            f"{float(record.rate):5.2f}% = ${float(record.amount):8.2f} "
            f"(current table: ${float(expected):.2f})"
        )

        total_paid += record.amount
        expected_total += expected

    print("-" * 80)
    print(f"\nTotal paid (rows):   ${float(total_paid):.2f}")
    print(f"Total paid (batch):  ${float(batch.totalCredited):.2f}")

    if abs(total_paid - batch.totalCredited) < Decimal("0.01"):
        print("\n✅ BATCH TOTAL MATCHES ROWS")
    else:
        print("\n⚠️  WARNING: Batch total does not match distribution rows!")

    if expected_total != total_paid:
        print("ℹ️  Current rate table differs from the one used for this deposit")

    print("\n" + "=" * 80 + "\n")


def show_user(session, user_id):
    """Print all credits received by a user."""
    ledger = DistributionLedger(session)
    user = session.query(User).filter_by(userID=user_id).first()
    if not user:
        print("❌ User not found")
        return

    asset = session.query(Asset).filter_by(userID=user_id).first()
    records = ledger.recordsForBeneficiary(user_id)

    print("\n" + "=" * 80)
    print(f"COMMISSIONS OF {user.firstname or '-'} (ID: {user.userID})")
    print("=" * 80)

    for record in records:
        print(
            f"{record.createdAt:%Y-%m-%d %H:%M} UTC  deposit {record.depositID:6}  "
            f"level {record.level}  ${float(record.amount):8.2f}"
        )

    print("-" * 80)
    print(f"Total commission (rows):  ${float(ledger.totalForBeneficiary(user_id)):.2f}")
    if asset:
        print(f"Total commission (asset): ${float(asset.totalCommission):.2f}")
        print(f"Available balance:        ${float(asset.availableBalance):.2f}")
    print("\n")


def main():
    """Check distributions."""
    parser = argparse.ArgumentParser(description='Check commission distributions')
    parser.add_argument('--deposit-id', type=int, help='Deposit ID to check')
    parser.add_argument('--last', action='store_true', help='Check last confirmed deposit')
    parser.add_argument('--user-id', type=int, help='Show credits received by user')
    parser.add_argument('--clear-failure', type=int, metavar='DEPOSIT_ID',
                        help='Release a parked deposit for the next processor pass')
    args = parser.parse_args()

    Config.initialize_from_env()
    session = get_session()

    try:
        if args.clear_failure:
            DepositService(session).clearCommissionFailure(args.clear_failure)
            print(f"✅ Deposit {args.clear_failure} released for distribution")
            return

        if args.user_id:
            show_user(session, args.user_id)
            return

        if args.last:
            deposit = session.query(Deposit).filter_by(
                status=Deposit.STATUS_CONFIRMED
            ).order_by(Deposit.confirmedAt.desc()).first()
        elif args.deposit_id:
            deposit = session.query(Deposit).filter_by(
                depositID=args.deposit_id
            ).first()
        else:
            print("❌ Specify --deposit-id, --last or --user-id")
            return

        if not deposit:
            print("❌ Deposit not found")
            return

        show_deposit(session, deposit)

    finally:
        session.close()


if __name__ == "__main__":
    main()
