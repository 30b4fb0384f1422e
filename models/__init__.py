"""
Database models for the commission engine.
Import all models here for easy access.
"""

# Base and mixins
from models.base import Base, AuditMixin

# Core models
from models.user import User
from models.deposit import Deposit
from models.asset import Asset
from models.balance_journal import BalanceJournal
from models.fund_flow import FundFlow

# Commission models
from models.commission_rate import CommissionRate
from models.distribution import DistributionBatch, Distribution

# Event listeners
from models.listeners import register_all_listeners

__all__ = [
    # Base
    'Base',
    'AuditMixin',

    # Core
    'User',
    'Deposit',
    'Asset',
    'BalanceJournal',
    'FundFlow',

    # Commission
    'CommissionRate',
    'DistributionBatch',
    'Distribution',

    # Listeners
    'register_all_listeners',
]
