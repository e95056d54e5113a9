"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class OnboardingConfig(BaseSettings):
    """Onboarding provisioning configuration"""
    
    # Remote banking service
    api_base_url: str = "http://localhost:8050"
    request_timeout: float = 15.0  # Applied to every provisioning call
    default_account_type: str = "SAVINGS"
    image_base_path: str = "uploads"  # Public path for uploaded profile images
    
    # Workflow behaviour
    recreate_account_on_retry: bool = False  # Re-create a rolled back account before retrying the card
    
    # Client-side storage
    storage_backend: str = "sqlite"  # sqlite or memory
    storage_path: str = "onboarding.db"
    
    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8060
    
    # Logging configuration
    log_level: str = "INFO"
    log_file: Optional[str] = None  # If None, logs to stdout
    
    # Feature flags
    enable_audit_logging: bool = True
    
    class Config:
        env_prefix = "ONBOARDING_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = OnboardingConfig()


def get_config() -> OnboardingConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> OnboardingConfig:
    """Reload configuration from environment"""
    global config
    config = OnboardingConfig()
    return config
