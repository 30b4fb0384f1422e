# commission_system/services/deposit_service.py
"""
Deposit lifecycle: submit, confirm (-> commission distribution), reject,
and release of deposits parked after a fatal distribution failure.
"""
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy.orm import Session
import logging

from models.deposit import Deposit
from models.user import User
from commission_system.errors import ConcurrentDistributionError, InvalidDepositError
from commission_system.schemas import DepositEvent, DistributionResult, parse_amount
from commission_system.services.commission_engine import CommissionEngine

logger = logging.getLogger(__name__)


class DepositService:
    """Service for deposit status transitions."""

    def __init__(self, session: Session, engine: Optional[CommissionEngine] = None):
        self.session = session
        self.engine = engine or CommissionEngine(session)

    def submitDeposit(self, userId: int, amount, txHash: Optional[str] = None) -> Deposit:
        """
        Create a pending deposit.

        Raises:
            InvalidDepositError: unknown user, bad amount or duplicate txHash
        """
        amount = parse_amount(amount)

        user = self.session.query(User).filter_by(userID=userId).first()
        if not user:
            raise InvalidDepositError(f"User {userId} not found")

        if txHash and self.session.query(Deposit).filter_by(txHash=txHash).first():
            raise InvalidDepositError(f"Deposit with transaction hash {txHash} already exists")

        deposit = Deposit(
            userID=userId,
            amount=amount,
            txHash=txHash,
            status=Deposit.STATUS_PENDING
        )
        self.session.add(deposit)
        self.session.commit()

        logger.info(f"Deposit {deposit.depositID} submitted: user {userId}, amount {amount}")
        return deposit

    def confirmDeposit(self, depositId: int, notes: Optional[str] = None) -> DistributionResult:
        """
        Confirm a pending deposit, activate the depositor and distribute commissions.

        The status change is committed before distribution, so a failed
        distribution can be retried by DepositCommissionProcessor.
        """
        deposit = self._getPending(depositId)

        deposit.status = Deposit.STATUS_CONFIRMED
        deposit.confirmedAt = datetime.now(timezone.utc)
        if notes:
            deposit.notes = notes

        depositor = deposit.user
        if depositor and not depositor.isActive:
            depositor.isActive = True
            depositor.activatedAt = deposit.confirmedAt
            logger.info(f"User {depositor.userID} activated by deposit {depositId}")

        event = DepositEvent.fromDeposit(deposit)
        self.session.commit()

        logger.info(f"Deposit {depositId} confirmed, distributing commissions")

        try:
            return self.engine.distribute(event)
        except ConcurrentDistributionError:
            logger.info(f"Deposit {depositId} distributed by another worker, re-reading result")
            return self.engine.ledger.resultForDeposit(depositId)

    def rejectDeposit(self, depositId: int, notes: Optional[str] = None) -> Deposit:
        """Reject a pending deposit. No commission is ever paid for it."""
        deposit = self._getPending(depositId)

        deposit.status = Deposit.STATUS_REJECTED
        if notes:
            deposit.notes = notes
        self.session.commit()

        logger.info(f"Deposit {depositId} rejected")
        return deposit

    def clearCommissionFailure(self, depositId: int) -> Deposit:
        """
        Release a parked deposit back to DepositCommissionProcessor
        once the referral data or rate table has been fixed.
        """
        deposit = self.session.query(Deposit).filter_by(depositID=depositId).first()
        if not deposit:
            raise InvalidDepositError(f"Deposit {depositId} not found", depositId=depositId)

        if deposit.commissionFailedAt is None:
            logger.info(f"Deposit {depositId} is not parked, nothing to clear")
            return deposit

        logger.info(f"Clearing commission failure of deposit {depositId}: {deposit.commissionError}")
        deposit.commissionFailedAt = None
        deposit.commissionError = None
        self.session.commit()
        return deposit

    def _getPending(self, depositId: int) -> Deposit:
        deposit = self.session.query(Deposit).filter_by(depositID=depositId).first()
        if not deposit:
            raise InvalidDepositError(f"Deposit {depositId} not found", depositId=depositId)

        if deposit.status != Deposit.STATUS_PENDING:
            raise InvalidDepositError(
                f"Deposit {depositId} is '{deposit.status}', not pending",
                depositId=depositId
            )
        return deposit
