"""
Deposit model - member deposits awaiting or past confirmation.
"""
from sqlalchemy import Column, Integer, String, DECIMAL, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from models.base import Base, AuditMixin


class Deposit(Base, AuditMixin):
    __tablename__ = 'deposits'

    STATUS_PENDING = "pending"
    STATUS_CONFIRMED = "confirmed"
    STATUS_REJECTED = "rejected"

    # Primary key
    depositID = Column(Integer, primary_key=True, autoincrement=True)

    # Depositor
    userID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)

    amount = Column(DECIMAL(18, 2), nullable=False)

    txHash = Column(String, nullable=True, unique=True)
    status = Column(String, default=STATUS_PENDING, nullable=False, index=True)  # pending, confirmed, rejected

    confirmedAt = Column(DateTime, nullable=True)
    notes = Column(String, nullable=True)

    # Set when distribution failed fatally; the processor skips the deposit until cleared
    commissionFailedAt = Column(DateTime, nullable=True, index=True)
    commissionError = Column(String, nullable=True)

    # Relationships
    user = relationship('User', backref='deposits')

    def __repr__(self):
        return f"<Deposit(depositID={self.depositID}, userID={self.userID}, amount={self.amount}, status={self.status})>"
