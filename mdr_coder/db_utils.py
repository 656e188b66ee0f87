"""
Database utilities for the MDR organisation coder
Provides connection pooling, set-based statement execution and count helpers
"""

import yaml
import logging
from pathlib import Path
from typing import Dict, Any, Optional, List, Tuple
from contextlib import contextmanager
from urllib.parse import quote_plus
import psycopg2
from psycopg2 import pool
from psycopg2.extensions import ISOLATION_LEVEL_AUTOCOMMIT
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)


class DatabaseConfig:
    """Database configuration loader"""

    def __init__(self, config_path: str):
        self.config_path = Path(config_path)
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load database configuration from YAML"""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        with open(self.config_path, 'r') as f:
            config = yaml.safe_load(f)

        return config['database']

    def get_connection_string(self) -> str:
        """Build PostgreSQL connection string"""
        user = quote_plus(self.config['user'])
        password = quote_plus(self.config['password'])
        host = self.config['host']
        port = self.config['port']
        database = self.config['database']
        return f"postgresql://{user}:{password}@{host}:{port}/{database}"

    def get_psycopg2_params(self) -> Dict[str, Any]:
        """Get parameters for psycopg2 connection"""
        return {
            'host': self.config['host'],
            'port': self.config['port'],
            'database': self.config['database'],
            'user': self.config['user'],
            'password': self.config['password']
        }


class DatabaseManager:
    """
    Manages database connections and operations
    Uses psycopg2 for the coding statements and SQLAlchemy for pandas reads
    """

    def __init__(self, config_path: str):
        self.config = DatabaseConfig(config_path)
        self._engine: Optional[Engine] = None
        self._connection_pool: Optional[pool.SimpleConnectionPool] = None

    def get_engine(self) -> Engine:
        """Get SQLAlchemy engine (lazy initialization)"""
        if self._engine is None:
            connection_string = self.config.get_connection_string()
            self._engine = create_engine(
                connection_string,
                pool_pre_ping=True,
                pool_size=2,
                max_overflow=2,
                echo=False
            )
            logger.info("SQLAlchemy engine initialized")
        return self._engine

    def get_connection_pool(self) -> pool.SimpleConnectionPool:
        """Get psycopg2 connection pool"""
        if self._connection_pool is None:
            params = self.config.get_psycopg2_params()
            self._connection_pool = pool.SimpleConnectionPool(
                minconn=1,
                maxconn=4,
                **params
            )
            logger.info("psycopg2 connection pool initialized")
        return self._connection_pool

    @contextmanager
    def get_connection(self):
        """Context manager for psycopg2 connection from pool"""
        conn_pool = self.get_connection_pool()
        conn = conn_pool.getconn()
        try:
            yield conn
            conn.commit()
        except Exception as e:
            conn.rollback()
            logger.error(f"Database error: {e}")
            raise
        finally:
            conn_pool.putconn(conn)

    @contextmanager
    def get_cursor(self, cursor_factory=None):
        """Context manager for database cursor"""
        with self.get_connection() as conn:
            cursor = conn.cursor(cursor_factory=cursor_factory)
            try:
                yield cursor
            finally:
                cursor.close()

    def execute_query(self, query: str, params: Optional[Any] = None) -> List[tuple]:
        """Execute SELECT query and return results"""
        with self.get_cursor() as cursor:
            cursor.execute(query, params)
            return cursor.fetchall()

    def execute_scalar(self, query: str, params: Optional[Any] = None) -> Any:
        """Execute a query returning a single value (None for no rows)"""
        result = self.execute_query(query, params)
        return result[0][0] if result else None

    def execute_update(self, query: str, params: Optional[Any] = None) -> int:
        """
        Execute INSERT/UPDATE/DELETE/DDL statement(s) in one transaction

        Returns:
            Number of rows affected by the last statement (0 for DDL)
        """
        with self.get_cursor() as cursor:
            cursor.execute(query, params)
            return max(cursor.rowcount, 0)

    def table_exists(self, schema: str, table_name: str) -> bool:
        """Check if table exists"""
        query = """
            SELECT EXISTS (
                SELECT FROM information_schema.tables
                WHERE table_schema = %s AND table_name = %s
            );
        """
        result = self.execute_query(query, (schema, table_name))
        return result[0][0] if result else False

    def get_table_row_count(self, table_name: str) -> int:
        """Get row count for table"""
        query = f"SELECT COUNT(*) FROM {table_name};"
        result = self.execute_query(query)
        return result[0][0] if result else 0

    def get_field_count(self, table_name: str, field_name: str) -> int:
        """Get number of rows in table where field_name is not null"""
        query = f"SELECT COUNT(*) FROM {table_name} WHERE {field_name} IS NOT NULL;"
        result = self.execute_query(query)
        return result[0][0] if result else 0

    def get_id_range(self, table_name: str) -> Tuple[Optional[int], Optional[int]]:
        """
        Get (min(id), max(id)) for table

        Both values are None when the table is empty.
        """
        result = self.execute_query(f"SELECT MIN(id), MAX(id) FROM {table_name};")
        if not result:
            return None, None
        return result[0][0], result[0][1]

    def close(self):
        """Close all connections"""
        if self._connection_pool:
            self._connection_pool.closeall()
            logger.info("Connection pool closed")
        if self._engine:
            self._engine.dispose()
            logger.info("SQLAlchemy engine disposed")


def apply_schema(config_path: str, schema_file: str) -> None:
    """
    Apply database schema from SQL file

    Args:
        config_path: Path to database config YAML
        schema_file: Path to SQL schema file
    """
    schema_path = Path(schema_file)

    if not schema_path.exists():
        raise FileNotFoundError(f"Schema file not found: {schema_file}")

    with open(schema_path, 'r', encoding='utf-8') as f:
        schema_sql = f.read()

    config = DatabaseConfig(config_path)
    params = config.get_psycopg2_params()

    conn = psycopg2.connect(**params)
    conn.set_isolation_level(ISOLATION_LEVEL_AUTOCOMMIT)

    try:
        with conn.cursor() as cur:
            cur.execute(schema_sql)
        logger.info(f"Schema applied from {schema_file}")
    except psycopg2.errors.DuplicateObject as e:
        # Indexes or other objects already exist - this is OK
        logger.warning(f"Some schema objects already exist (this is normal): {e}")
        logger.info(f"Schema validation complete - database is ready")
    except Exception as e:
        logger.error(f"Error applying schema: {e}")
        raise
    finally:
        conn.close()
