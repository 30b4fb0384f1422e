"""
Distribution models - append-only commission records.

DistributionBatch: one row per distributed deposit (UNIQUE depositID).
    Guards against double processing of the same deposit.
Distribution: one credited (beneficiary, level) pair of a batch.
"""
from sqlalchemy import Column, Integer, DECIMAL, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from models.base import Base, AuditMixin


class DistributionBatch(Base, AuditMixin):
    __tablename__ = 'distribution_batches'

    batchID = Column(Integer, primary_key=True, autoincrement=True)
    depositID = Column(Integer, ForeignKey('deposits.depositID'), nullable=False, unique=True)

    ancestorsConsidered = Column(Integer, nullable=False, default=0)
    totalCredited = Column(DECIMAL(18, 2), nullable=False, default=0)

    distributions = relationship(
        'Distribution',
        back_populates='batch',
        order_by='Distribution.level'
    )

    def __repr__(self):
        return f"<DistributionBatch(depositID={self.depositID}, totalCredited={self.totalCredited})>"


class Distribution(Base, AuditMixin):
    __tablename__ = 'distributions'
    __table_args__ = (
        UniqueConstraint('depositID', 'beneficiaryID', 'level', name='uq_distribution_deposit_beneficiary_level'),
    )

    distributionID = Column(Integer, primary_key=True, autoincrement=True)
    batchID = Column(Integer, ForeignKey('distribution_batches.batchID'), nullable=False, index=True)

    depositID = Column(Integer, ForeignKey('deposits.depositID'), nullable=False, index=True)
    beneficiaryID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)

    level = Column(Integer, nullable=False)  # 1 = direct referrer
    rate = Column(DECIMAL(5, 2), nullable=False)  # percentage applied
    amount = Column(DECIMAL(18, 2), nullable=False)

    # Relationships
    batch = relationship('DistributionBatch', back_populates='distributions')
    beneficiary = relationship('User')

    def __repr__(self):
        return (
            f"<Distribution(depositID={self.depositID}, beneficiaryID={self.beneficiaryID}, "
            f"level={self.level}, amount={self.amount})>"
        )
