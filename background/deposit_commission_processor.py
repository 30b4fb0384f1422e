# commission-engine/background/deposit_commission_processor.py
"""
Deposit Commission Processor - distributes confirmed deposits that have
no distribution batch yet (missed notifications, retries after transient errors).
Deposits that fail fatally are parked (commissionFailedAt) and skipped until cleared.
"""
import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import List

from sqlalchemy.exc import SQLAlchemyError

from models.deposit import Deposit
from models.distribution import DistributionBatch
from core.db import get_session
from commission_system.errors import (
    CommissionError,
    ConcurrentDistributionError,
    ConfigurationError,
    DataIntegrityError,
    PersistenceError,
)
from commission_system.schemas import DepositEvent
from commission_system.services.commission_engine import CommissionEngine

logger = logging.getLogger(__name__)


class DepositCommissionProcessor:
    """
    Poller for undistributed confirmed deposits.
    Each deposit runs in its own session, one failure never blocks the rest.
    """

    def __init__(self, polling_interval: int = 10, batch_size: int = 50):
        """
        Initialize processor.

        Args:
            polling_interval: Interval in seconds between passes (default: 10)
            batch_size: Max deposits per pass
        """
        self.polling_interval = polling_interval
        self.batch_size = batch_size
        self._running = False
        self.stats = {
            "processed": 0,
            "skipped": 0,
            "errors": 0,
            "parked": 0,
            "totalAmount": Decimal("0")
        }

    def find_pending_deposit_ids(self) -> List[int]:
        """Confirmed, not parked deposits without a DistributionBatch, oldest first."""
        session = get_session()
        try:
            rows = (
                session.query(Deposit.depositID)
                .outerjoin(DistributionBatch, DistributionBatch.depositID == Deposit.depositID)
                .filter(
                    Deposit.status == Deposit.STATUS_CONFIRMED,
                    Deposit.commissionFailedAt.is_(None),
                    DistributionBatch.batchID.is_(None)
                )
                .order_by(Deposit.confirmedAt.asc(), Deposit.depositID.asc())
                .limit(self.batch_size)
                .all()
            )
            return [row.depositID for row in rows]
        finally:
            session.close()

    def process_deposit(self, deposit_id: int) -> None:
        """Distribute a single deposit in its own session."""
        session = get_session()
        try:
            deposit = session.query(Deposit).filter_by(depositID=deposit_id).first()
            if deposit is None or deposit.status != Deposit.STATUS_CONFIRMED:
                self.stats["skipped"] += 1
                return

            event = DepositEvent.fromDeposit(deposit)
            engine = CommissionEngine(session)

            try:
                result = engine.distribute(event)
            except ConcurrentDistributionError:
                logger.info(f"Deposit {deposit_id} distributed by another worker")
                self.stats["skipped"] += 1
                return

            self.stats["processed"] += 1
            self.stats["totalAmount"] += result.totalCredited

        except (ConfigurationError, DataIntegrityError) as e:
            logger.critical(f"Deposit {deposit_id} needs manual investigation: {e}")
            self.stats["errors"] += 1
            self.mark_failed(session, deposit_id, e)

        except PersistenceError as e:
            logger.error(f"Deposit {deposit_id} failed, will retry next pass: {e}")
            self.stats["errors"] += 1

        except CommissionError as e:
            logger.error(f"Deposit {deposit_id} rejected by engine: {e}")
            self.stats["errors"] += 1
            self.mark_failed(session, deposit_id, e)

        finally:
            session.close()

    def mark_failed(self, session, deposit_id: int, error: Exception) -> None:
        """
        Park a deposit whose distribution can not succeed without an operator.
        Cleared with DepositService.clearCommissionFailure().
        """
        try:
            session.rollback()
            session.query(Deposit).filter_by(depositID=deposit_id).update({
                Deposit.commissionFailedAt: datetime.now(timezone.utc),
                Deposit.commissionError: f"{type(error).__name__}: {error}"[:500]
            })
            session.commit()
            self.stats["parked"] += 1
            logger.warning(f"Deposit {deposit_id} parked until cleared by an operator")
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Could not park deposit {deposit_id}, will retry next pass: {e}")

    def process_pending_deposits(self) -> int:
        """
        One pass over undistributed confirmed deposits.

        Returns:
            Number of deposits attempted
        """
        deposit_ids = self.find_pending_deposit_ids()
        if not deposit_ids:
            return 0

        logger.info(f"Found {len(deposit_ids)} confirmed deposits awaiting distribution")

        for deposit_id in deposit_ids:
            self.process_deposit(deposit_id)

        logger.info(
            f"Deposit commission pass complete: "
            f"processed={self.stats['processed']}, errors={self.stats['errors']}"
        )
        return len(deposit_ids)

    async def run(self) -> None:
        """
        Main processing loop.
        Runs continuously checking for undistributed deposits.
        """
        logger.info("Starting Deposit Commission Processor")
        self._running = True

        try:
            while self._running:
                try:
                    self.process_pending_deposits()
                except Exception as e:
                    logger.error(f"Error in deposit commission processor: {e}", exc_info=True)

                await asyncio.sleep(self.polling_interval)
        finally:
            self._running = False
            logger.info("Deposit Commission Processor stopped")

    async def stop(self):
        """Stop the processor gracefully."""
        self._running = False
        await asyncio.sleep(0)

    def get_stats(self) -> dict:
        """Get processor statistics."""
        return {
            "running": self._running,
            "processed": self.stats["processed"],
            "skipped": self.stats["skipped"],
            "errors": self.stats["errors"],
            "parked": self.stats["parked"],
            "totalAmount": str(self.stats["totalAmount"])
        }
