# commission_system/services/distribution_ledger.py
"""
Read-only access to recorded commission distributions (audit/reporting).
Rows are written only by CommissionEngine.
"""
from decimal import Decimal
from typing import Dict, List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session
import logging

from models.distribution import Distribution, DistributionBatch
from commission_system.schemas import DistributionEntry, DistributionResult

logger = logging.getLogger(__name__)


class DistributionLedger:
    """Queries over Distribution / DistributionBatch."""

    def __init__(self, session: Session):
        self.session = session

    def recordsForDeposit(self, depositId: int) -> List[Distribution]:
        """All distributions of a deposit, oldest first."""
        return (
            self.session.query(Distribution)
            .filter(Distribution.depositID == depositId)
            .order_by(Distribution.createdAt.asc(), Distribution.distributionID.asc())
            .all()
        )

    def recordsForBeneficiary(self, userId: int) -> List[Distribution]:
        """All distributions credited to a user, oldest first."""
        return (
            self.session.query(Distribution)
            .filter(Distribution.beneficiaryID == userId)
            .order_by(Distribution.createdAt.asc(), Distribution.distributionID.asc())
            .all()
        )

    def batchForDeposit(self, depositId: int) -> Optional[DistributionBatch]:
        return self.session.query(DistributionBatch).filter_by(depositID=depositId).first()

    def resultForDeposit(self, depositId: int) -> Optional[DistributionResult]:
        """
        Rebuild the DistributionResult stored for a deposit.

        Returns:
            DistributionResult, or None if the deposit was never distributed
        """
        batch = self.batchForDeposit(depositId)
        if batch is None:
            return None

        records = sorted(self.recordsForDeposit(depositId), key=lambda d: d.level)

        return DistributionResult(
            depositId=depositId,
            ancestorsConsidered=batch.ancestorsConsidered,
            totalCredited=Decimal(str(batch.totalCredited)).quantize(Decimal("0.01")),
            entries=[
                DistributionEntry(
                    beneficiaryId=record.beneficiaryID,
                    level=record.level,
                    amount=Decimal(str(record.amount)).quantize(Decimal("0.01"))
                )
                for record in records
            ]
        )

    def beneficiaryPage(self, userId: int, page: int = 1, pageSize: int = 10) -> Dict:
        """
        Paginated distributions of a user.

        Returns:
            Dict with list, total, page, pageSize
        """
        page = max(page, 1)
        query = self.session.query(Distribution).filter(Distribution.beneficiaryID == userId)

        records = (
            query.order_by(Distribution.createdAt.asc(), Distribution.distributionID.asc())
            .offset((page - 1) * pageSize)
            .limit(pageSize)
            .all()
        )

        return {
            "list": records,
            "total": query.count(),
            "page": page,
            "pageSize": pageSize,
        }

    def totalForBeneficiary(self, userId: int) -> Decimal:
        """Sum of all commission credited to a user."""
        result = self.session.query(
            func.coalesce(func.sum(Distribution.amount), 0)
        ).filter(
            Distribution.beneficiaryID == userId
        ).scalar()
        return Decimal(str(result)).quantize(Decimal("0.01"))
