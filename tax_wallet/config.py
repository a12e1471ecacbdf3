"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class TaxWalletConfig(BaseSettings):
    """Tax wallet configuration"""

    model_config = SettingsConfigDict(
        env_prefix="TAXWALLET_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage configuration
    storage_backend: str = "memory"  # memory or sqlite
    database_path: str = "tax_wallet.db"

    # Numeric configuration
    balance_bits: int = 256

    # Business rules configuration
    initial_tax_rate: int = 0  # Applied only when wallet state is first created

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stderr

    # Feature flags
    enable_audit_logging: bool = True
    enable_events: bool = True


# Global configuration instance
config = TaxWalletConfig()


def get_config() -> TaxWalletConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> TaxWalletConfig:
    """Reload configuration from environment"""
    global config
    config = TaxWalletConfig()
    return config
