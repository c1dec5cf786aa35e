"""
Configuration Management

Simple utility for loading and validating environment configuration.
"""

import os
from typing import Optional
from dotenv import load_dotenv


def load_config(env_path: Optional[str] = None) -> bool:
    """
    Load environment configuration from .env file.

    Args:
        env_path: Optional path to .env file. If None, searches in current directory.

    Returns:
        bool: True if .env file was found and loaded, False otherwise
    """
    if env_path:
        return load_dotenv(env_path)
    return load_dotenv()


def get_database_config() -> dict:
    """
    Get connection settings for the production database.

    Returns:
        dict: Database configuration

    Raises:
        ValueError: If required configuration is missing
    """
    config = {
        "host": os.getenv("PRODUCTIONDB_HOST"),
        "port": os.getenv("PRODUCTIONDB_PORT", "5432"),
        "database": os.getenv("PRODUCTIONDB_NAME"),
        "user": os.getenv("PRODUCTIONDB_USER"),
        "password": os.getenv("PRODUCTIONDB_PASS"),
    }

    # Validate
    missing = [k for k, v in config.items() if not v]
    if missing:
        raise ValueError(
            f"Missing production database configuration: {missing}. "
            f"Please check your .env file."
        )

    return config


def get_app_config() -> dict:
    """
    Get application configuration settings.

    Returns:
        dict: Application settings
    """
    return {
        "timezone": os.getenv("TIMEZONE", "Asia/Jakarta"),
        "small_stop_threshold_sec": int(os.getenv("SMALL_STOP_THRESHOLD_SEC", "300")),
        "pareto_precision": int(os.getenv("PARETO_PRECISION", "2")),
    }


def validate_config() -> list:
    """
    Validate all required configuration is present.

    Returns:
        list: List of missing configuration items (empty if all valid)
    """
    missing = []

    try:
        get_database_config()
    except ValueError as e:
        missing.append(f"PRODUCTION: {str(e)}")

    return missing
