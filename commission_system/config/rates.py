"""
Commission rate table configuration.
Loads from Config (env) or the commission_rates table.
"""
import logging
import threading
from decimal import Decimal, InvalidOperation
from typing import Dict, Mapping, Optional, Tuple

from sqlalchemy.orm import Session

from config import Config, ConfigurationError

logger = logging.getLogger(__name__)

MIN_LEVEL = 1
MAX_LEVEL = 9


class RateTable:
    """
    Immutable snapshot of per-level commission percentages.

    Percentages are independent per level (20 = 20% of the deposit);
    they do not have to sum to 100.
    """

    def __init__(self, rates: Mapping[int, object]):
        parsed = {}

        for level, percentage in rates.items():
            try:
                level = int(level)
                value = Decimal(str(percentage))
            except (TypeError, ValueError, InvalidOperation):
                raise ConfigurationError(
                    f"Invalid commission rate entry {level!r}: {percentage!r}"
                )

            if not MIN_LEVEL <= level <= MAX_LEVEL:
                raise ConfigurationError(
                    f"Commission rate level {level} outside {MIN_LEVEL}..{MAX_LEVEL}"
                )
            if not Decimal("0") <= value <= Decimal("100"):
                raise ConfigurationError(
                    f"Commission rate for level {level} must be 0..100, got {value}"
                )

            parsed[level] = value

        self._rates: Dict[int, Decimal] = parsed

    def rateForLevel(self, level: int) -> Decimal:
        """
        Get percentage for ancestor level.

        Raises:
            ValueError: level outside 1..9
            ConfigurationError: level in range but not configured
        """
        if not MIN_LEVEL <= level <= MAX_LEVEL:
            raise ValueError(f"Level {level} outside {MIN_LEVEL}..{MAX_LEVEL}")

        try:
            return self._rates[level]
        except KeyError:
            logger.error(f"No commission rate configured for level {level}")
            raise ConfigurationError(f"No commission rate configured for level {level}")

    def levels(self) -> Tuple[int, ...]:
        return tuple(sorted(self._rates))

    def isComplete(self) -> bool:
        """True when every level 1..9 has a rate."""
        return all(level in self._rates for level in range(MIN_LEVEL, MAX_LEVEL + 1))

    def asDict(self) -> Dict[int, Decimal]:
        return dict(self._rates)

    def __eq__(self, other):
        return isinstance(other, RateTable) and self._rates == other._rates

    def __repr__(self):
        body = ", ".join(f"{level}: {self._rates[level]}%" for level in self.levels())
        return f"<RateTable({body})>"

    @classmethod
    def fromConfig(cls) -> "RateTable":
        """Build from Config.COMMISSION_RATES."""
        raw = Config.get(Config.COMMISSION_RATES)
        if not raw:
            raise ConfigurationError("COMMISSION_RATES not loaded")
        return cls(raw)

    @classmethod
    def fromSession(cls, session: Session) -> "RateTable":
        """Build from the commission_rates table."""
        from models.commission_rate import CommissionRate

        rows = session.query(CommissionRate).order_by(CommissionRate.level).all()
        if not rows:
            raise ConfigurationError("commission_rates table is empty")
        return cls({row.level: row.percentage for row in rows})


# Lazy-loaded snapshot, swapped atomically on reload
_RATE_TABLE: Optional[RateTable] = None
_RATE_TABLE_LOCK = threading.Lock()


def get_rate_table() -> RateTable:
    """
    Get current rate table snapshot.
    Loads from Config on first access, then returns cached version.
    """
    global _RATE_TABLE

    with _RATE_TABLE_LOCK:
        if _RATE_TABLE is None:
            _RATE_TABLE = RateTable.fromConfig()
            logger.info(f"Loaded rate table: {_RATE_TABLE}")
        return _RATE_TABLE


def reload_rate_table(session: Optional[Session] = None) -> RateTable:
    """
    Hot-reload the rate table.

    Distributions already running keep the snapshot they started with.

    Args:
        session: Load from commission_rates table when given, Config otherwise
    """
    global _RATE_TABLE

    table = RateTable.fromSession(session) if session is not None else RateTable.fromConfig()

    if not table.isComplete():
        logger.warning(f"Reloaded rate table does not cover all levels: {table}")

    with _RATE_TABLE_LOCK:
        _RATE_TABLE = table

    logger.info(f"Rate table reloaded: {table}")
    return table


def set_rate_table(table: Optional[RateTable]) -> None:
    """Install a snapshot directly (None drops the cache)."""
    global _RATE_TABLE

    with _RATE_TABLE_LOCK:
        _RATE_TABLE = table
