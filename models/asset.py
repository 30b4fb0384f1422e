"""
Asset model - per-user balances.

Never written directly: values are recalculated from BalanceJournal
by models/listeners/balance_listeners.py.
"""
from sqlalchemy import Column, Integer, DECIMAL, ForeignKey
from sqlalchemy.orm import relationship
from models.base import Base, AuditMixin


class Asset(Base, AuditMixin):
    __tablename__ = 'assets'

    assetID = Column(Integer, primary_key=True, autoincrement=True)
    userID = Column(Integer, ForeignKey('users.userID'), nullable=False, unique=True)

    availableBalance = Column(DECIMAL(18, 2), nullable=False, default=0)
    totalCommission = Column(DECIMAL(18, 2), nullable=False, default=0)

    user = relationship('User', back_populates='asset')

    def __repr__(self):
        return (
            f"<Asset(userID={self.userID}, availableBalance={self.availableBalance}, "
            f"totalCommission={self.totalCommission})>"
        )
