"""
FundFlow model - platform-level money movements (commission pool per deposit).
"""
from sqlalchemy import Column, Integer, String, DECIMAL
from models.base import Base, AuditMixin


class FundFlow(Base, AuditMixin):
    __tablename__ = 'fund_flows'

    flowID = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(String, nullable=False)  # commission
    direction = Column(String, nullable=False)  # income, expense
    amount = Column(DECIMAL(18, 2), nullable=False)
    source = Column(String, nullable=False)  # deposit_split
    relatedID = Column(Integer, nullable=True, index=True)
    remark = Column(String, nullable=True)

    def __repr__(self):
        return f"<FundFlow(type={self.type}, amount={self.amount}, relatedID={self.relatedID})>"
