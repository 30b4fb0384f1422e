"""
Commission system - multi-level (9 levels) deposit commission engine.
"""

# Services
from commission_system.services.commission_engine import CommissionEngine
from commission_system.services.distribution_ledger import DistributionLedger
from commission_system.services.eligibility_service import EligibilityEvaluator
from commission_system.services.deposit_service import DepositService

# Configuration
from commission_system.config.rates import RateTable, get_rate_table, reload_rate_table

# Utilities
from commission_system.utils.upline_resolver import UplineResolver

# Value objects and errors
from commission_system.schemas import DepositEvent, DistributionEntry, DistributionResult
from commission_system.errors import (
    CommissionError,
    ConfigurationError,
    CycleDetectedError,
    DataIntegrityError,
    ConcurrentDistributionError,
    PersistenceError,
    ResolutionTimeoutError,
    InvalidDepositError,
)

__all__ = [
    # Services
    'CommissionEngine',
    'DistributionLedger',
    'EligibilityEvaluator',
    'DepositService',

    # Config
    'RateTable',
    'get_rate_table',
    'reload_rate_table',

    # Utils
    'UplineResolver',

    # Value objects
    'DepositEvent',
    'DistributionEntry',
    'DistributionResult',

    # Errors
    'CommissionError',
    'ConfigurationError',
    'CycleDetectedError',
    'DataIntegrityError',
    'ConcurrentDistributionError',
    'PersistenceError',
    'ResolutionTimeoutError',
    'InvalidDepositError',
]
