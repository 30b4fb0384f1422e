# commission-engine/commission_worker.py
"""
Commission worker - main entry point.
Loads configuration, prepares the database and runs the deposit commission processor.
"""
import asyncio
import logging
import sys

from config import Config, ConfigurationError
from core.db import setup_database, get_db_session_ctx
from models.commission_rate import CommissionRate
from models.listeners import register_all_listeners
from commission_system.config.rates import get_rate_table, reload_rate_table
from background.deposit_commission_processor import DepositCommissionProcessor

logger = logging.getLogger(__name__)


def setup_logging():
    """Configure root logging from Config."""
    handlers = [logging.StreamHandler(sys.stdout)]
    log_file = Config.get(Config.LOG_FILE)
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=Config.get(Config.LOG_LEVEL, "INFO"),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )

    # Suppress noisy loggers
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)


def load_rates():
    """Prefer rates stored in the database, fall back to COMMISSION_RATES."""
    with get_db_session_ctx() as session:
        if session.query(CommissionRate).count():
            table = reload_rate_table(session)
            logger.info("✓ Rate table loaded from database")
        else:
            table = get_rate_table()
            logger.info("✓ Rate table loaded from environment")

    if not table.isComplete():
        raise ConfigurationError(f"Rate table must cover levels 1..9: {table}")
    return table


async def main():
    Config.initialize_from_env()
    setup_logging()

    logger.info("=" * 60)
    logger.info("COMMISSION WORKER INITIALIZATION")
    logger.info("=" * 60)

    Config.validate_critical_keys()

    setup_database()
    register_all_listeners()
    load_rates()

    processor = DepositCommissionProcessor(
        polling_interval=Config.get(Config.PROCESSOR_INTERVAL, 10)
    )

    try:
        await processor.run()
    finally:
        logger.info(f"Processor stats: {processor.get_stats()}")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except ConfigurationError as e:
        logging.getLogger(__name__).critical(f"Configuration error: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        pass
