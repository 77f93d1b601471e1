"""
Settings and environment management module for the ASO metadata engine.

This module provides centralized process configuration using pydantic-settings,
which automatically loads settings from environment variables and .env files.

The scoring behaviour itself is NOT configured here. Every threshold, weight and
keyword list lives in the versioned Formula Registry (see
aso_engine.services.formula_registry). Settings only decide where that registry
is loaded from and how the process logs.

Key Features:
- Environment variable validation and type coercion
- Sensible defaults for development
- Singleton pattern via @lru_cache for efficient access

Environment Variables:
- ASO_ENGINE_REGISTRY_PATH: Path to a registry YAML/JSON document that replaces
  the packaged default registry (optional)
- ASO_ENGINE_LOG_LEVEL: Logging level name (default: INFO)
- ASO_ENGINE_LOG_FORMAT: logging format string

Usage:
    from aso_engine.core.config import get_settings

    settings = get_settings()
    registry_path = settings.registry_path
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Process settings loaded from environment variables.

    The class inherits from pydantic-settings BaseSettings which provides:
    - Automatic loading from environment variables (case-insensitive)
    - Support for .env file loading
    - Type validation and coercion
    - Default values for optional settings

    Attributes:
        registry_path: Optional path to a Formula Registry document. When unset
            the registry shipped inside the package is used.
        log_level: Name of the root logging level used by the CLI.
        log_format: Format string handed to logging.basicConfig.
    """

    model_config = SettingsConfigDict(
        env_prefix='ASO_ENGINE_',
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',  # Ignore extra environment variables not defined in this class
        case_sensitive=False,
    )

    # =========================================================================
    # Registry Source
    # =========================================================================

    # Path to a YAML or JSON registry document.
    # The document must pass validate() before any audit runs.
    registry_path: Optional[str] = None

    # =========================================================================
    # Logging
    # =========================================================================

    log_level: str = 'INFO'

    log_format: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


@lru_cache()
def get_settings() -> Settings:
    """
    Get the process settings singleton.

    Environment variables are only read once during the process lifecycle.

    Returns:
        Settings: The settings instance.

    Note:
        To refresh settings in tests, clear the cache:
        >>> get_settings.cache_clear()
    """
    return Settings()
