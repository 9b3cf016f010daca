"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class BankingConfig(BaseSettings):
    """Banking core configuration"""

    model_config = SettingsConfigDict(
        env_prefix="BANKING_",
        env_file=".env",
        case_sensitive=False,
    )

    # Storage configuration
    storage_backend: Literal["memory", "sqlite"] = "memory"
    database_path: str = "banking.db"  # Only used by the sqlite backend

    # Logging configuration
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "json"

    # Account opening defaults
    default_savings_rate: float = 2.0
    default_checking_overdraft: int = 500

    # Demo data
    seed_demo_data: bool = False


# Global configuration instance
config = BankingConfig()


def get_config() -> BankingConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> BankingConfig:
    """Reload configuration from environment"""
    global config
    config = BankingConfig()
    return config
