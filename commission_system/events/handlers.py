# commission_system/events/handlers.py
"""
Event handlers for the commission system.
Entry point for confirmed-deposit notifications from external collaborators.
"""
import logging
from decimal import Decimal
from typing import Any, Dict

from core.db import get_session
from models.deposit import Deposit
from commission_system.errors import (
    ConcurrentDistributionError,
    ConfigurationError,
    DataIntegrityError,
    InvalidDepositError,
    PersistenceError,
)
from commission_system.schemas import DepositEvent, DistributionResult
from commission_system.services.commission_engine import CommissionEngine

logger = logging.getLogger(__name__)


def handle_deposit_confirmed(data: Dict[str, Any]) -> DistributionResult:
    """
    Handle DEPOSIT_CONFIRMED notification.

    Args:
        data: {depositId, depositorId, amount (decimal string), confirmedAt}

    Returns:
        DistributionResult for the deposit (stored one on re-delivery)

    Raises:
        InvalidDepositError: malformed, or not matching the stored confirmed deposit
        ConfigurationError, DataIntegrityError: fatal, needs an operator
        PersistenceError: transient, safe to redeliver
    """
    event = DepositEvent.fromDict(data)

    logger.info(f"Processing commissions for deposit {event.depositId}")

    session = get_session()

    try:
        _check_against_stored(session, event)

        engine = CommissionEngine(session)

        try:
            result = engine.distribute(event)
        except ConcurrentDistributionError:
            logger.info(
                f"Deposit {event.depositId} was distributed concurrently, "
                f"returning stored result"
            )
            result = engine.ledger.resultForDeposit(event.depositId)

        logger.info(
            f"✓ Deposit {event.depositId}: {len(result.entries)} commissions, "
            f"total {result.totalCredited}"
        )
        return result

    except (ConfigurationError, DataIntegrityError) as e:
        logger.critical(f"Commission distribution for deposit {event.depositId} needs manual action: {e}")
        raise

    except PersistenceError as e:
        logger.error(f"Commission distribution for deposit {event.depositId} failed, retry later: {e}")
        raise

    finally:
        session.close()


def _check_against_stored(session, event: DepositEvent) -> None:
    """The notification must describe the stored, confirmed deposit."""
    deposit = session.query(Deposit).filter_by(depositID=event.depositId).first()
    if deposit is None:
        raise InvalidDepositError(f"Deposit {event.depositId} not found", depositId=event.depositId)

    mismatches = []
    if deposit.status != Deposit.STATUS_CONFIRMED:
        mismatches.append(f"status '{deposit.status}'")
    if deposit.userID != event.depositorId:
        mismatches.append(f"depositor {event.depositorId} != stored {deposit.userID}")
    if Decimal(str(deposit.amount)) != event.amount:
        mismatches.append(f"amount {event.amount} != stored {deposit.amount}")

    if mismatches:
        logger.error(f"Rejected notification for deposit {event.depositId}: {', '.join(mismatches)}")
        raise InvalidDepositError(
            f"Notification does not match deposit {event.depositId}: {', '.join(mismatches)}",
            depositId=event.depositId
        )
