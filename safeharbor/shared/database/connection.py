"""PostgreSQL connection pool for the crisis stores.

Escalation, behavior and directory stores run their queries in worker
threads, so the pool is thread-safe and every statement carries a
server-side timeout: a stalled database must not hold an escalation past
its latency objective.
"""
import json
import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import boto3
from psycopg2 import pool

logger = logging.getLogger(__name__)

APPLICATION_NAME = "safeharbor-crisis-engine"


@dataclass(frozen=True)
class DatabaseConfig:
    """Where the crisis stores live and how the pool is sized."""
    host: str
    port: int = 5432
    database: str = "safeharbor"
    username: str = ""
    password: str = ""
    min_connections: int = 2
    max_connections: int = 10
    connect_timeout: int = 5
    statement_timeout_ms: int = 2000
    ssl_mode: str = "require"

    def __post_init__(self):
        if self.min_connections > self.max_connections:
            raise ValueError(
                f"min_connections ({self.min_connections}) exceeds max_connections ({self.max_connections})"
            )
        if self.statement_timeout_ms <= 0:
            raise ValueError(f"statement_timeout_ms must be positive, got {self.statement_timeout_ms}")

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        """Create config from environment variables.

        Environment variables:
            DB_HOST, DB_PORT, DB_NAME, DB_USER, DB_PASSWORD
            DB_MIN_CONN / DB_MAX_CONN: Pool size (default 2 / 10)
            DB_STATEMENT_TIMEOUT_MS: Per-statement limit (default 2000)
            DB_SSL_MODE: SSL mode (default require)
        """
        return cls(
            host=os.getenv("DB_HOST", "localhost"),
            port=int(os.getenv("DB_PORT", "5432")),
            database=os.getenv("DB_NAME", "safeharbor"),
            username=os.getenv("DB_USER", ""),
            password=os.getenv("DB_PASSWORD", ""),
            **_pool_settings_from_env(),
        )

    @classmethod
    def from_secrets_manager(cls, secret_arn: str, region: str = "us-east-1") -> "DatabaseConfig":
        """Read host and credentials from a Secrets Manager secret.

        Pool sizing and timeouts still come from the environment.
        """
        try:
            client = boto3.client("secretsmanager", region_name=region)
            secret = json.loads(client.get_secret_value(SecretId=secret_arn)["SecretString"])
        except Exception as e:
            logger.error(
                "SECRETS_MANAGER_LOAD_FAILED",
                extra={"error": str(e), "secret_arn": secret_arn}
            )
            raise

        return cls(
            host=secret.get("host", os.getenv("DB_HOST", "localhost")),
            port=int(secret.get("port", 5432)),
            database=secret.get("dbname", os.getenv("DB_NAME", "safeharbor")),
            username=secret.get("username", ""),
            password=secret.get("password", ""),
            **_pool_settings_from_env(),
        )

    @classmethod
    def resolve(cls) -> "DatabaseConfig":
        """Secrets Manager when DB_SECRET_ARN is set, plain environment otherwise."""
        secret_arn = os.getenv("DB_SECRET_ARN")
        if secret_arn:
            return cls.from_secrets_manager(secret_arn, os.getenv("AWS_REGION", "us-east-1"))
        return cls.from_env()


def _pool_settings_from_env() -> Dict[str, Any]:
    return {
        "min_connections": int(os.getenv("DB_MIN_CONN", "2")),
        "max_connections": int(os.getenv("DB_MAX_CONN", "10")),
        "statement_timeout_ms": int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "2000")),
        "ssl_mode": os.getenv("DB_SSL_MODE", "require"),
    }


class ConnectionManager:
    """Thread-safe connection pool shared by the PostgreSQL stores.

    The pool opens lazily on first use so that building the engine never
    blocks on the database.
    """

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self._pool: Optional[pool.ThreadedConnectionPool] = None

        logger.info(
            "CONNECTION_MANAGER_CREATED",
            extra={
                "host": config.host,
                "database": config.database,
                "max_connections": config.max_connections,
            }
        )

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    def open(self) -> None:
        if self._pool is not None:
            return

        try:
            self._pool = pool.ThreadedConnectionPool(
                minconn=self.config.min_connections,
                maxconn=self.config.max_connections,
                host=self.config.host,
                port=self.config.port,
                database=self.config.database,
                user=self.config.username,
                password=self.config.password,
                connect_timeout=self.config.connect_timeout,
                sslmode=self.config.ssl_mode,
                application_name=APPLICATION_NAME,
                options=f"-c statement_timeout={self.config.statement_timeout_ms}",
            )
        except Exception as e:
            logger.error(
                "CONNECTION_POOL_OPEN_FAILED",
                extra={"host": self.config.host, "error": str(e)}
            )
            raise

        logger.info("CONNECTION_POOL_OPENED", extra={"host": self.config.host})

    @contextmanager
    def get_connection(self):
        """Borrow a connection; the transaction rolls back if the block raises.

        Usage:
            with manager.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
        """
        self.open()
        conn = self._pool.getconn()
        try:
            yield conn
        except Exception:
            conn.rollback()
            raise
        finally:
            self._pool.putconn(conn)

    def missing_tables(self, tables: Sequence[str]) -> List[str]:
        """Names from ``tables`` that do not exist in the public schema."""
        with self.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "SELECT table_name FROM information_schema.tables "
                    "WHERE table_schema = 'public' AND table_name = ANY(%s)",
                    (list(tables),)
                )
                present = {row[0] for row in cur.fetchall()}
        return [t for t in tables if t not in present]

    def health_check(self, required_tables: Sequence[str] = ()) -> Dict[str, Any]:
        """Report connectivity and, when given, whether the required tables exist."""
        try:
            if required_tables:
                missing = self.missing_tables(required_tables)
            else:
                missing = []
                with self.get_connection() as conn:
                    with conn.cursor() as cur:
                        cur.execute("SELECT 1")
                        cur.fetchone()
        except Exception as e:
            logger.error(
                "DATABASE_HEALTH_CHECK_FAILED",
                extra={"error": str(e)}
            )
            return {"status": "error", "healthy": False, "error": str(e)}

        if missing:
            logger.error("DATABASE_SCHEMA_INCOMPLETE", extra={"missing_tables": missing})
            return {"status": "schema_incomplete", "healthy": False, "missing_tables": missing}

        return {
            "status": "connected",
            "healthy": True,
            "database": self.config.database,
        }

    def close(self) -> None:
        if self._pool is not None:
            self._pool.closeall()
            self._pool = None
            logger.info("CONNECTION_POOL_CLOSED")


_connection_manager: Optional[ConnectionManager] = None


def get_connection_manager() -> ConnectionManager:
    """Process-wide connection manager built from ``DatabaseConfig.resolve``."""
    global _connection_manager

    if _connection_manager is None:
        _connection_manager = ConnectionManager(DatabaseConfig.resolve())

    return _connection_manager
