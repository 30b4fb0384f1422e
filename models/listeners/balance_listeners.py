# commission-engine/models/listeners/balance_listeners.py
"""
Balance Event Listeners - Auto-sync Asset balances on journal changes.

Architecture:
    BalanceJournal (INSERT/UPDATE/DELETE) -> Asset.availableBalance = SUM(journal)
                                          -> Asset.totalCommission = SUM(commission lines)

Recalculation runs on the flushing connection, i.e. inside the same
transaction as the journal write: a rollback discards both.

NOTE: All balance operations MUST go through the journal.
      Direct Asset.availableBalance = X is FORBIDDEN.
"""
import logging

from sqlalchemy import event, func, select

logger = logging.getLogger(__name__)


def register_balance_listeners():
    """
    Register event listeners for balance synchronization.

    Called once during application startup from models/listeners/__init__.py
    """
    from models.asset import Asset
    from models.balance_journal import BalanceJournal

    journal = BalanceJournal.__table__
    assets = Asset.__table__

    def recalc_asset(mapper, connection, target):
        """
        Full recalculation of the user's Asset row from the journal.

        Formula: availableBalance = SUM(amount) WHERE userID=X AND status='done'
                 totalCommission  = same, AND kind='commission'
        """
        available = connection.execute(
            select(func.coalesce(func.sum(journal.c.amount), 0))
            .where(journal.c.userID == target.userID)
            .where(journal.c.status == 'done')
        ).scalar()

        commission = connection.execute(
            select(func.coalesce(func.sum(journal.c.amount), 0))
            .where(journal.c.userID == target.userID)
            .where(journal.c.status == 'done')
            .where(journal.c.kind == BalanceJournal.KIND_COMMISSION)
        ).scalar()

        # Overwrite (NOT increment!)
        result = connection.execute(
            assets.update()
            .where(assets.c.userID == target.userID)
            .values(availableBalance=available, totalCommission=commission)
        )

        if result.rowcount == 0:
            connection.execute(
                assets.insert().values(
                    userID=target.userID,
                    availableBalance=available,
                    totalCommission=commission
                )
            )

        logger.info(
            f"Asset RECALC: user={target.userID}, "
            f"available={available}, commission={commission}, trigger={target.reason}"
        )

    event.listen(BalanceJournal, 'after_insert', recalc_asset)
    event.listen(BalanceJournal, 'after_update', recalc_asset)
    event.listen(BalanceJournal, 'after_delete', recalc_asset)


# =========================================================================
# SAFETY: Prevent direct balance modification
# =========================================================================

def register_balance_protection():
    """
    Log warnings when Asset balances are modified directly through the ORM.
    """
    from models.asset import Asset

    @event.listens_for(Asset.availableBalance, 'set')
    def warn_direct_available_set(target, value, oldvalue, initiator):
        """Warn when availableBalance is set directly (not via listener)."""
        if oldvalue is not None and value != oldvalue:
            logger.warning(
                f"DIRECT availableBalance modification detected! "
                f"user={target.userID}, {oldvalue} -> {value}"
            )

    @event.listens_for(Asset.totalCommission, 'set')
    def warn_direct_commission_set(target, value, oldvalue, initiator):
        """Warn when totalCommission is set directly (not via listener)."""
        if oldvalue is not None and value != oldvalue:
            logger.warning(
                f"DIRECT totalCommission modification detected! "
                f"user={target.userID}, {oldvalue} -> {value}"
            )
