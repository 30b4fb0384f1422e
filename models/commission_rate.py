"""
CommissionRate model - per-level percentage, one row per level 1..9.
"""
from sqlalchemy import Column, Integer, DECIMAL, CheckConstraint
from models.base import Base, AuditMixin


class CommissionRate(Base, AuditMixin):
    __tablename__ = 'commission_rates'
    __table_args__ = (
        CheckConstraint('level >= 1 AND level <= 9', name='ck_commission_rate_level'),
        CheckConstraint('percentage >= 0 AND percentage <= 100', name='ck_commission_rate_percentage'),
    )

    rateID = Column(Integer, primary_key=True, autoincrement=True)
    level = Column(Integer, nullable=False, unique=True)
    percentage = Column(DECIMAL(5, 2), nullable=False)  # 20 = 20%

    def __repr__(self):
        return f"<CommissionRate(level={self.level}, percentage={self.percentage})>"
