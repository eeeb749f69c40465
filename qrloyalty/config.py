"""
Configuration management for the QR loyalty service.
"""
import os
from dotenv import load_dotenv

load_dotenv()


class BaseConfig:
    """Base configuration."""
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Shopify app credentials (session token verification)
    SHOPIFY_API_KEY = os.getenv('SHOPIFY_CLIENT_ID', os.getenv('SHOPIFY_API_KEY', ''))
    SHOPIFY_API_SECRET = os.getenv('SHOPIFY_CLIENT_SECRET', os.getenv('SHOPIFY_API_SECRET', ''))
    SHOPIFY_AUTH_DEV_MODE = os.getenv('SHOPIFY_AUTH_DEV_MODE') == 'true'

    # Shopify defaults (store credentials are per-merchant)
    SHOPIFY_API_VERSION = os.getenv('SHOPIFY_API_VERSION', '2024-10')
    SHOPIFY_TIMEOUT_SECONDS = float(os.getenv('SHOPIFY_TIMEOUT_SECONDS', '5'))
    SHOPIFY_MAX_RETRIES = int(os.getenv('SHOPIFY_MAX_RETRIES', '1'))

    # Loyalty defaults - used when a merchant has no program configuration
    DEFAULT_POINTS_PER_SCAN = int(os.getenv('DEFAULT_POINTS_PER_SCAN', '10'))
    DEFAULT_TIER_THRESHOLDS = [
        {'name': 'Bronze', 'min_points': 0},
        {'name': 'Silver', 'min_points': 100},
        {'name': 'Gold', 'min_points': 300},
        {'name': 'Platinum', 'min_points': 600},
    ]

    # Tier reward bundle display window (days), independent of code expiry
    REWARD_STATE_TTL_DAYS = int(os.getenv('REWARD_STATE_TTL_DAYS', '30'))

    # Seconds before an abandoned provisioning lease can be taken over
    PROVISIONING_LOCK_TTL = int(os.getenv('PROVISIONING_LOCK_TTL', '60'))

    # Threshold table cache
    THRESHOLD_CACHE_TIMEOUT = int(os.getenv('THRESHOLD_CACHE_TIMEOUT', '300'))

    # Scan pipeline stage policy: 'log' swallows stage failures, 'raise' escalates
    SCAN_STAGE_POLICY = {
        'analytics': 'log',
        'loyalty': 'log',
        'rewards': 'log',
    }


class DevelopmentConfig(BaseConfig):
    """Development configuration."""
    DEBUG = True
    SHOPIFY_AUTH_DEV_MODE = os.getenv('SHOPIFY_AUTH_DEV_MODE', 'true') == 'true'
    SQLALCHEMY_DATABASE_URI = os.getenv(
        'DATABASE_URL',
        'sqlite:///qrloyalty_dev.db'  # SQLite fallback for local dev
    )


class ProductionConfig(BaseConfig):
    """Production configuration."""
    DEBUG = False

    _db_url = os.getenv('DATABASE_URL', '')
    if _db_url.startswith('postgres://'):
        # SQLAlchemy requires postgresql:// not postgres://
        _db_url = _db_url.replace('postgres://', 'postgresql://', 1)

    SQLALCHEMY_DATABASE_URI = _db_url

    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_size': 5,
        'pool_recycle': 300,
        'pool_pre_ping': True,  # Verify connections before using
    }

    _secret_key = os.getenv('SECRET_KEY', '')

    @classmethod
    def validate_secret_key(cls) -> str:
        """
        Validate SECRET_KEY in production environment.

        Raises:
            ConfigurationError: If SECRET_KEY is missing, short, or looks like a placeholder
        """
        from .utils.exceptions import ConfigurationError

        if not cls._secret_key:
            raise ConfigurationError(
                "SECRET_KEY environment variable is not set. "
                "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
            )

        lower_key = cls._secret_key.lower()
        for pattern in ('dev', 'change', 'default', 'test', 'password'):
            if pattern in lower_key:
                raise ConfigurationError(
                    f"SECRET_KEY contains '{pattern}' which suggests it's not secure."
                )

        if len(cls._secret_key) < 32:
            raise ConfigurationError("SECRET_KEY is too short (minimum 32 characters required).")

        return cls._secret_key

    SECRET_KEY = _secret_key  # Validated at app startup


class TestingConfig(BaseConfig):
    """Testing configuration."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    CACHE_TYPE = 'NullCache'
    SHOPIFY_MAX_RETRIES = 0
    SHOPIFY_AUTH_DEV_MODE = False


config_map = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig
}


def get_config(config_name: str = 'development'):
    """Get configuration class by name."""
    return config_map.get(config_name, DevelopmentConfig)


def validate_config(config_name: str = 'development') -> None:
    """
    Validate configuration before app startup.

    Args:
        config_name: The configuration environment name

    Raises:
        ConfigurationError: If validation fails in production
    """
    if config_name == 'production':
        ProductionConfig.validate_secret_key()
