"""
Configuration Management
Loads and validates environment variables
"""
import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    """Application configuration"""

    # Production database
    DB_HOST = os.getenv("PRODUCTIONDB_HOST")
    DB_PORT = int(os.getenv("PRODUCTIONDB_PORT", 5432))
    DB_NAME = os.getenv("PRODUCTIONDB_NAME")
    DB_USER = os.getenv("PRODUCTIONDB_USER")
    DB_PASS = os.getenv("PRODUCTIONDB_PASS")

    # Application Settings
    TIMEZONE = os.getenv("TIMEZONE", "Asia/Jakarta")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Analytics Settings
    SMALL_STOP_THRESHOLD_SEC = int(os.getenv("SMALL_STOP_THRESHOLD_SEC", 300))  # UPDT shorter than this is a small stop
    PARETO_PRECISION = int(os.getenv("PARETO_PRECISION", 2))

    @classmethod
    def validate(cls):
        """Validate required database configuration"""
        required = ['DB_HOST', 'DB_NAME', 'DB_USER', 'DB_PASS']

        missing = [field for field in required if not getattr(cls, field)]

        if missing:
            raise ValueError(f"Missing required configuration: {', '.join(missing)}")

        return True
