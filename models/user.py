"""
User model - members of the referral forest.
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from models.base import Base, AuditMixin


class User(Base, AuditMixin):
    __tablename__ = 'users'

    userID = Column(Integer, primary_key=True, autoincrement=True)

    # Direct referrer (level 1 upline). NULL = root of a referral tree
    referrerID = Column(Integer, ForeignKey('users.userID'), nullable=True, index=True)

    firstname = Column(String, nullable=True)

    # Activation: unactivated accounts never receive commission
    isActive = Column(Boolean, default=False, nullable=False)
    activatedAt = Column(DateTime, nullable=True)

    # Relationships
    referrer = relationship('User', remote_side=[userID], backref='referrals')
    asset = relationship('Asset', uselist=False, back_populates='user')

    def __repr__(self):
        return f"<User(userID={self.userID}, referrerID={self.referrerID}, isActive={self.isActive})>"
