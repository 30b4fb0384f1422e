# commission-engine/config.py
"""
Configuration management for the commission engine.
Loads from .env, validates critical keys.
"""
import os
import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Configuration error exception."""
    pass


DEFAULT_COMMISSION_RATES = {
    1: "20",
    2: "10",
    3: "5",
    4: "5",
    5: "5",
    6: "5",
    7: "5",
    8: "5",
    9: "5",
}


class Config:
    """
    Configuration manager with static and dynamic values.

    Usage:
        # Load from .env
        Config.initialize_from_env()

        # Get value
        url = Config.get(Config.DATABASE_URL)

        # Set dynamic value
        Config.set(Config.MIN_COMMISSION_DEPOSIT, Decimal("100"))
    """

    # ═══════════════════════════════════════════════════════════════════════
    # CONFIGURATION KEYS
    # ═══════════════════════════════════════════════════════════════════════

    # Database
    DATABASE_URL = "DATABASE_URL"
    DB_TIMEOUT = "DB_TIMEOUT"

    # Commission engine
    COMMISSION_RATES = "COMMISSION_RATES"
    MAX_UPLINE_DEPTH = "MAX_UPLINE_DEPTH"
    MIN_COMMISSION_DEPOSIT = "MIN_COMMISSION_DEPOSIT"

    # Background processor
    PROCESSOR_INTERVAL = "PROCESSOR_INTERVAL"

    # Logging
    LOG_LEVEL = "LOG_LEVEL"
    LOG_FILE = "LOG_FILE"

    # ═══════════════════════════════════════════════════════════════════════
    # CRITICAL KEYS (must be present)
    # ═══════════════════════════════════════════════════════════════════════

    CRITICAL_KEYS = [
        DATABASE_URL,
        COMMISSION_RATES,
    ]

    # ═══════════════════════════════════════════════════════════════════════
    # STORAGE
    # ═══════════════════════════════════════════════════════════════════════

    _config: Dict[str, Any] = {}
    _initialized: bool = False

    # ═══════════════════════════════════════════════════════════════════════
    # METHODS
    # ═══════════════════════════════════════════════════════════════════════

    @classmethod
    def initialize_from_env(cls) -> None:
        """
        Load configuration from .env file and process environment.

        Raises:
            ConfigurationError: If a value cannot be parsed
        """
        load_dotenv()

        logger.info("Loading configuration from environment...")

        try:
            # Database
            cls._config[cls.DATABASE_URL] = os.getenv(
                "DATABASE_URL",
                "sqlite:///commissions.db"
            )
            cls._config[cls.DB_TIMEOUT] = int(os.getenv("DB_TIMEOUT", "30"))

            # Commission engine
            cls._config[cls.COMMISSION_RATES] = cls._parse_rates(
                os.getenv("COMMISSION_RATES")
            )
            cls._config[cls.MAX_UPLINE_DEPTH] = 9
            cls._config[cls.MIN_COMMISSION_DEPOSIT] = Decimal(
                os.getenv("MIN_COMMISSION_DEPOSIT", "0")
            )

            # Background processor
            cls._config[cls.PROCESSOR_INTERVAL] = int(os.getenv("PROCESSOR_INTERVAL", "10"))

            # Logging
            cls._config[cls.LOG_LEVEL] = os.getenv("LOG_LEVEL", "INFO").upper()
            cls._config[cls.LOG_FILE] = os.getenv("LOG_FILE")

            cls._initialized = True
            logger.info("Configuration loaded from environment successfully")

        except (ValueError, InvalidOperation, json.JSONDecodeError) as e:
            logger.error(f"Failed to load configuration: {e}")
            raise ConfigurationError(f"Configuration loading failed: {e}")

    @staticmethod
    def _parse_rates(raw: str) -> Dict[int, str]:
        """
        Parse COMMISSION_RATES JSON object ({"1": 20, "2": 10, ...}).

        Returns default table when variable is not set.
        """
        if not raw:
            return dict(DEFAULT_COMMISSION_RATES)

        parsed = json.loads(raw)
        if not isinstance(parsed, dict):
            raise ValueError("COMMISSION_RATES must be a JSON object keyed by level")

        return {int(level): str(percentage) for level, percentage in parsed.items()}

    @classmethod
    def validate_critical_keys(cls) -> None:
        """
        Validate that all critical configuration keys are present.

        Raises:
            ConfigurationError: If any critical key is missing
        """
        missing = []
        for key in cls.CRITICAL_KEYS:
            if not cls.get(key):
                missing.append(key)

        if missing:
            error_msg = f"Missing critical configuration keys: {', '.join(missing)}"
            logger.critical(error_msg)
            raise ConfigurationError(error_msg)

        logger.info("All critical configuration keys validated ✓")

    @classmethod
    def is_initialized(cls) -> bool:
        return cls._initialized

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """
        Get configuration value.

        Args:
            key: Configuration key
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        return cls._config.get(key, default)

    @classmethod
    def set(cls, key: str, value: Any, source: str = "runtime") -> None:
        """
        Set configuration value (for dynamic updates).

        Args:
            key: Configuration key
            value: New value
            source: Source of the update (for logging)
        """
        cls._config[key] = value
        logger.debug(f"Config updated: {key} = {value} (source: {source})")

    @classmethod
    def get_all(cls) -> Dict[str, Any]:
        """
        Get all configuration values.

        Returns:
            Copy of configuration dictionary
        """
        return cls._config.copy()
