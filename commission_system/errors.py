# commission_system/errors.py
"""
Commission engine error taxonomy.

    ConfigurationError          - fatal, operator must fix rate table
    CycleDetectedError          - corrupt referral chain (raised by resolver)
    DataIntegrityError          - fatal for this deposit, no automatic retry
    ConcurrentDistributionError - benign race, re-read existing records
    PersistenceError            - transient, whole distribute() may be retried
    ResolutionTimeoutError      - upline lookup timed out (transient)
    InvalidDepositError         - caller passed a non-confirmed/invalid deposit
"""
from config import ConfigurationError


class CommissionError(Exception):
    """Base class for commission engine errors."""

    def __init__(self, message: str, depositId: int = None):
        super().__init__(message)
        self.depositId = depositId


class CycleDetectedError(CommissionError):
    """Referral chain revisits a user."""

    def __init__(self, message: str, userId: int = None, chain=None):
        super().__init__(message)
        self.userId = userId
        self.chain = list(chain or [])


class DataIntegrityError(CommissionError):
    """Stored data makes distribution impossible (cycles, unknown depositor)."""
    pass


class ConcurrentDistributionError(CommissionError):
    """Another worker distributed the same deposit first."""
    pass


class PersistenceError(CommissionError):
    """Database write/read failed; nothing was persisted for the deposit."""
    pass


class ResolutionTimeoutError(PersistenceError):
    """Upline lookup failed or timed out."""
    pass


class InvalidDepositError(CommissionError):
    """Deposit event violates engine preconditions."""
    pass


__all__ = [
    'ConfigurationError',
    'CommissionError',
    'CycleDetectedError',
    'DataIntegrityError',
    'ConcurrentDistributionError',
    'PersistenceError',
    'ResolutionTimeoutError',
    'InvalidDepositError',
]
