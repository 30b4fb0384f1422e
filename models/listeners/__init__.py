"""
SQLAlchemy Event Listeners Package.

Registers all event listeners for the application.
Import this module once during app startup to activate listeners.

Listeners:
    - balance_listeners: Sync Asset balances on BalanceJournal changes
"""
import logging

logger = logging.getLogger(__name__)

_listeners_registered = False


def register_all_listeners():
    """
    Register all event listeners.

    Safe to call multiple times - listeners are registered only once.
    """
    global _listeners_registered

    if _listeners_registered:
        logger.debug("Listeners already registered, skipping")
        return

    from models.listeners.balance_listeners import (
        register_balance_listeners,
        register_balance_protection
    )

    register_balance_listeners()
    logger.info("Balance sync listeners registered (BalanceJournal -> Asset)")

    register_balance_protection()
    logger.info("Balance protection listeners registered (direct modification warnings)")

    _listeners_registered = True
    logger.info("All event listeners registered successfully")
