"""
BalanceJournal - append-only credit/debit lines per user.

Asset.availableBalance = SUM(amount) WHERE status='done'
Asset.totalCommission  = SUM(amount) WHERE status='done' AND kind='commission'
"""
from sqlalchemy import Column, Integer, String, DECIMAL, ForeignKey
from models.base import Base, AuditMixin


class BalanceJournal(Base, AuditMixin):
    __tablename__ = 'balance_journal'

    KIND_COMMISSION = "commission"
    KIND_ADJUSTMENT = "adjustment"

    journalID = Column(Integer, primary_key=True, autoincrement=True)
    userID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)

    amount = Column(DECIMAL(18, 2), nullable=False)  # positive = credit, negative = debit
    kind = Column(String, nullable=False, default=KIND_COMMISSION)
    status = Column(String, nullable=False, default='done')  # done, pending, cancelled

    reason = Column(String, nullable=True)  # distribution=<id>, manual=<ref>
    notes = Column(String, nullable=True)

    def __repr__(self):
        return f"<BalanceJournal(userID={self.userID}, amount={self.amount}, kind={self.kind}, status={self.status})>"
