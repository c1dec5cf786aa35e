"""
Database Connection Pool Manager

Provides thread-safe PostgreSQL connection pooling with health checks for the
PRODUCTION database (plans, shifts, downtime and rejection events, computed
loss time and OEE records).
"""

import threading
import time
import logging
from contextlib import contextmanager
from typing import Optional, Dict, Any

import psycopg2
from psycopg2 import pool

from config import Config

logger = logging.getLogger(__name__)


class DatabasePool:
    """Thread-safe database connection pool manager."""

    def __init__(self, db_config: Optional[Dict[str, Any]] = None):
        """
        Initialize the database pool.

        Args:
            db_config: psycopg2 connection keywords; taken from Config when omitted

        Raises:
            ValueError: If required configuration is missing
        """
        self.pool: Optional[pool.AbstractConnectionPool] = None
        self.pool_lock = threading.Lock()
        self.stats = {
            "connections_created": 0,
            "connections_used": 0,
            "connections_returned": 0,
            "pool_exhausted": 0,
            "fallback_connections": 0,
            "errors": 0
        }

        if db_config is None:
            Config.validate()
            db_config = {
                "host": Config.DB_HOST,
                "port": Config.DB_PORT,
                "database": Config.DB_NAME,
                "user": Config.DB_USER,
                "password": Config.DB_PASS,
            }

        self.db_config = dict(db_config)
        self.db_config.setdefault("sslmode", "disable")

        self._validate_config()

    def _validate_config(self):
        """Validate that all required configuration is present."""
        required_keys = ["host", "port", "database", "user", "password"]
        missing = [k for k in required_keys if not self.db_config.get(k)]

        if missing:
            raise ValueError(
                f"Missing production database configuration: {missing}. "
                f"Please check your .env file."
            )

    def initialize_pool(self, min_connections: int = 1, max_connections: int = 10) -> bool:
        """
        Initialize the connection pool.

        Args:
            min_connections: Minimum number of connections to maintain
            max_connections: Maximum number of connections allowed

        Returns:
            bool: True if pool was created successfully, False otherwise
        """
        try:
            with self.pool_lock:
                if self.pool is not None:
                    logger.info("Production pool already initialized")
                    return True

                self.pool = psycopg2.pool.ThreadedConnectionPool(
                    min_connections,
                    max_connections,
                    **self.db_config
                )

                self.stats["connections_created"] = min_connections

                # Test the pool with a simple query
                with self.get_connection() as conn:
                    with conn.cursor() as cursor:
                        cursor.execute("SELECT 1")
                        cursor.fetchone()

                logger.info(
                    f"Initialized production pool with "
                    f"{min_connections}-{max_connections} connections"
                )
                return True

        except psycopg2.Error as e:
            logger.error(f"Failed to initialize production pool: {e}")
            self.stats["errors"] += 1
            self.pool = None
            return False

    @contextmanager
    def get_connection(self):
        """
        Get a connection from the pool using context manager.

        Falls back to a direct connection when the pool is exhausted or was
        never initialized.

        Yields:
            psycopg2.connection: Database connection

        Example:
            >>> db = DatabasePool()
            >>> with db.get_connection() as conn:
            ...     cursor = conn.cursor()
            ...     cursor.execute("SELECT * FROM production_plans LIMIT 1")
        """
        connection = None
        pooled = False
        start_time = time.time()

        try:
            if self.pool is not None:
                try:
                    connection = self.pool.getconn()
                    pooled = True
                    self.stats["connections_used"] += 1
                except pool.PoolError:
                    self.stats["pool_exhausted"] += 1
                    logger.warning("Production pool exhausted, using fallback")

            if connection is None:
                self.stats["fallback_connections"] += 1
                connection = psycopg2.connect(**self.db_config)

            yield connection

        except psycopg2.Error as e:
            self.stats["errors"] += 1
            elapsed = time.time() - start_time
            logger.error(f"Production connection error after {elapsed:.2f}s: {e}")
            raise

        finally:
            if connection is not None:
                try:
                    if pooled and self.pool is not None:
                        self.pool.putconn(connection)
                        self.stats["connections_returned"] += 1
                    else:
                        connection.close()
                except (psycopg2.Error, pool.PoolError) as e:
                    logger.warning(f"Error returning connection to pool: {e}")
                    self.stats["errors"] += 1

    def close_pool(self):
        """Close all connections in the pool."""
        with self.pool_lock:
            if self.pool is not None:
                try:
                    self.pool.closeall()
                    logger.info("Closed production connection pool")
                except pool.PoolError as e:
                    logger.warning(f"Error closing production pool: {e}")
                    self.stats["errors"] += 1
                finally:
                    self.pool = None

    def get_stats(self) -> Dict[str, Any]:
        """
        Get connection pool statistics.

        Returns:
            Dictionary with pool statistics
        """
        stats = self.stats.copy()
        stats["pool_initialized"] = self.pool is not None
        if self.pool is not None:
            stats["pool_type"] = type(self.pool).__name__
        return stats

    def health_check(self) -> bool:
        """
        Perform a health check on the pool.

        Returns:
            bool: True if pool is healthy, False otherwise
        """
        try:
            with self.get_connection() as conn:
                with conn.cursor() as cursor:
                    cursor.execute("SELECT 1")
                    result = cursor.fetchone()
                    return result is not None
        except psycopg2.Error as e:
            logger.error(f"Production pool health check failed: {e}")
            return False


# Global pool instance
_production_pool: Optional[DatabasePool] = None
_pool_lock = threading.Lock()


def get_pool() -> DatabasePool:
    """
    Get or create the production database pool.

    Raises:
        ValueError: If the PRODUCTIONDB_* configuration is incomplete
    """
    global _production_pool

    with _pool_lock:
        if _production_pool is None:
            _production_pool = DatabasePool()
            _production_pool.initialize_pool()
        return _production_pool


def close_pool():
    """Close the production pool."""
    global _production_pool

    with _pool_lock:
        if _production_pool is not None:
            _production_pool.close_pool()
            _production_pool = None
