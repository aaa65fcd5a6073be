"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import List


class LoanServicingConfig(BaseSettings):
    """Loan servicing engine configuration"""

    # Business rules configuration
    default_annual_interest_rate: str = "8.5"  # Used when no explicit rate and no category match
    currency: str = "USD"

    # Storage configuration
    storage_backend: str = "sqlite"  # sqlite or memory
    database_path: str = "loan_servicing.db"

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 5006
    cors_allowed_origins: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    # Security configuration
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_expiry_hours: int = 24

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text

    # Realtime configuration
    realtime_queue_size: int = 100  # Undelivered events per session before dropping

    # Client configuration
    server_url: str = "http://localhost:5006"
    client_timeout: float = 5.0

    class Config:
        env_prefix = "LOAN_SERVICING_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = LoanServicingConfig()


def get_config() -> LoanServicingConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> LoanServicingConfig:
    """Reload configuration from environment"""
    global config
    config = LoanServicingConfig()
    return config
