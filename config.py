# marketplace-ledger/config.py
"""
Configuration management for the marketplace ledger.
Loads from .env, validates critical keys.
"""
import os
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Configuration error exception."""
    pass


class Config:
    """
    Configuration manager with static and dynamic values.

    Usage:
        # Load from .env
        Config.initialize_from_env()

        # Get value
        rate = Config.get(Config.COMMISSION_RATE)

        # Set dynamic value
        Config.set(Config.SYSTEM_READY, True)
    """

    # ═══════════════════════════════════════════════════════════════════════
    # CONFIGURATION KEYS
    # ═══════════════════════════════════════════════════════════════════════

    # Database
    DATABASE_URL = "DATABASE_URL"

    # Commission engine
    COMMISSION_RATE = "COMMISSION_RATE"

    # Transaction retry policy
    TRANSACTION_MAX_ATTEMPTS = "TRANSACTION_MAX_ATTEMPTS"
    TRANSACTION_BASE_DELAY_MS = "TRANSACTION_BASE_DELAY_MS"
    TRANSACTION_MAX_DELAY_MS = "TRANSACTION_MAX_DELAY_MS"

    # Receipt image storage
    RECEIPT_STORAGE_PATH = "RECEIPT_STORAGE_PATH"
    RECEIPT_PUBLIC_BASE_URL = "RECEIPT_PUBLIC_BASE_URL"

    # Background jobs
    RECONCILIATION_INTERVAL_MINUTES = "RECONCILIATION_INTERVAL_MINUTES"
    REVENUE_POLL_INTERVAL_SECONDS = "REVENUE_POLL_INTERVAL_SECONDS"

    # System
    SYSTEM_READY = "SYSTEM_READY"

    # ═══════════════════════════════════════════════════════════════════════
    # CRITICAL KEYS (must be present)
    # ═══════════════════════════════════════════════════════════════════════

    CRITICAL_KEYS = [
        DATABASE_URL,
        COMMISSION_RATE,
    ]

    # ═══════════════════════════════════════════════════════════════════════
    # DEFAULTS (used when initialize_from_env() was not called)
    # ═══════════════════════════════════════════════════════════════════════

    DEFAULTS: Dict[str, Any] = {
        DATABASE_URL: "sqlite:///ledger.db",
        COMMISSION_RATE: Decimal("1.0"),
        TRANSACTION_MAX_ATTEMPTS: 3,
        TRANSACTION_BASE_DELAY_MS: 100,
        TRANSACTION_MAX_DELAY_MS: 5000,
        RECEIPT_STORAGE_PATH: "storage",
        RECEIPT_PUBLIC_BASE_URL: "file://storage",
        RECONCILIATION_INTERVAL_MINUTES: 15,
        REVENUE_POLL_INTERVAL_SECONDS: 30,
        SYSTEM_READY: False,
    }

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
        Load configuration from .env file.

        Raises:
            ConfigurationError: If a value cannot be parsed
        """
        load_dotenv()

        logger.info("Loading configuration from environment...")

        try:
            # Database
            cls._config[cls.DATABASE_URL] = os.getenv(
                "DATABASE_URL",
                cls.DEFAULTS[cls.DATABASE_URL]
            )

            # Commission engine
            cls._config[cls.COMMISSION_RATE] = cls._parse_rate(
                os.getenv("COMMISSION_RATE", "1.0")
            )

            # Transaction retry policy
            cls._config[cls.TRANSACTION_MAX_ATTEMPTS] = int(
                os.getenv("TRANSACTION_MAX_ATTEMPTS", "3")
            )
            cls._config[cls.TRANSACTION_BASE_DELAY_MS] = int(
                os.getenv("TRANSACTION_BASE_DELAY_MS", "100")
            )
            cls._config[cls.TRANSACTION_MAX_DELAY_MS] = int(
                os.getenv("TRANSACTION_MAX_DELAY_MS", "5000")
            )

            if cls._config[cls.TRANSACTION_MAX_ATTEMPTS] < 1:
                raise ValueError("TRANSACTION_MAX_ATTEMPTS must be at least 1")

            # Receipt storage
            cls._config[cls.RECEIPT_STORAGE_PATH] = os.getenv(
                "RECEIPT_STORAGE_PATH",
                cls.DEFAULTS[cls.RECEIPT_STORAGE_PATH]
            )
            cls._config[cls.RECEIPT_PUBLIC_BASE_URL] = os.getenv(
                "RECEIPT_PUBLIC_BASE_URL",
                cls.DEFAULTS[cls.RECEIPT_PUBLIC_BASE_URL]
            )

            # Background jobs
            cls._config[cls.RECONCILIATION_INTERVAL_MINUTES] = int(
                os.getenv("RECONCILIATION_INTERVAL_MINUTES", "15")
            )
            cls._config[cls.REVENUE_POLL_INTERVAL_SECONDS] = int(
                os.getenv("REVENUE_POLL_INTERVAL_SECONDS", "30")
            )

            # System
            cls._config[cls.SYSTEM_READY] = False

            cls._initialized = True
            logger.info("Configuration loaded from environment successfully")

        except Exception as e:
            logger.error(f"Failed to load configuration: {e}")
            raise ConfigurationError(f"Configuration loading failed: {e}")

    @staticmethod
    def _parse_rate(raw: str) -> Decimal:
        """Parse commission rate, must be within [0, 1]."""
        try:
            rate = Decimal(str(raw).strip())
        except InvalidOperation:
            raise ValueError(f"COMMISSION_RATE is not a number: {raw!r}")

        if rate < 0 or rate > 1:
            raise ValueError(f"COMMISSION_RATE must be between 0 and 1, got {rate}")

        return rate

    @classmethod
    async def validate_critical_keys(cls) -> None:
        """
        Validate that all critical configuration keys are present.

        Raises:
            ConfigurationError: If any critical key is missing
        """
        missing = []
        for key in cls.CRITICAL_KEYS:
            if cls.get(key) is None:
                missing.append(key)

        if missing:
            error_msg = f"Missing critical configuration keys: {', '.join(missing)}"
            logger.critical(error_msg)
            raise ConfigurationError(error_msg)

        logger.info("All critical configuration keys validated ✓")

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """
        Get configuration value.

        Falls back to DEFAULTS, then to the given default.
        """
        if key in cls._config:
            return cls._config[key]
        if key in cls.DEFAULTS:
            return cls.DEFAULTS[key]
        return default

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
    def reset(cls) -> None:
        """Drop all loaded values (tests)."""
        cls._config = {}
        cls._initialized = False

    @classmethod
    def get_all(cls) -> Dict[str, Any]:
        """
        Get all configuration values.

        Returns:
            Copy of configuration dictionary (defaults merged)
        """
        merged = dict(cls.DEFAULTS)
        merged.update(cls._config)
        return merged

