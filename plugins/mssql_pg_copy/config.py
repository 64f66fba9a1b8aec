"""
Run Configuration

Credentials and copy settings come from environment variables (optionally
loaded from a .env file) or, inside Airflow, from Airflow connections.

Environment variables:
- MSSQL_USER, MSSQL_PASSWORD, MSSQL_DB, MSSQL_HOST, MSSQL_PORT
- POSTGRES_USER, POSTGRES_PASSWORD, POSTGRES_DB, POSTGRES_HOST, POSTGRES_PORT
- TARGET_SCHEMA: PostgreSQL schema receiving the tables (default: public)
- COPY_BATCH_SIZE: rows per multi-row INSERT (default: 1000)
- EXCLUDE_TABLES: comma-separated table patterns to skip (supports wildcards)
"""

from dataclasses import dataclass, field
from typing import List, Mapping, Optional
import logging
import os

from dotenv import load_dotenv

from mssql_pg_copy.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_MSSQL_PORT = 1433
DEFAULT_POSTGRES_PORT = 5432
DEFAULT_BATCH_SIZE = 1000
DEFAULT_TARGET_SCHEMA = 'public'


@dataclass(frozen=True)
class Credentials:
    """Connection credentials for one side of the copy."""

    user: str
    password: str
    database: str
    host: str
    port: int

    def __repr__(self) -> str:
        return (
            f"Credentials(user={self.user!r}, password='***', database={self.database!r}, "
            f"host={self.host!r}, port={self.port})"
        )


@dataclass(frozen=True)
class MigrationConfig:
    """Everything a copy run needs besides the connections themselves."""

    source: Credentials
    target: Credentials
    target_schema: str = DEFAULT_TARGET_SCHEMA
    batch_size: int = DEFAULT_BATCH_SIZE
    exclude_tables: List[str] = field(default_factory=list)


def _parse_int(value: Optional[str], name: str, default: int, minimum: int = 1) -> int:
    if value is None or value.strip() == '':
        return default
    try:
        parsed = int(value)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}", operation="load config") from e
    if parsed < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {parsed}", operation="load config")
    return parsed


def _parse_patterns(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [p.strip() for p in value.split(',') if p.strip()]


def credentials_from_env(prefix: str, default_port: int, environ: Optional[Mapping[str, str]] = None) -> Credentials:
    """
    Build credentials from <PREFIX>_USER, _PASSWORD, _DB, _HOST and _PORT.

    Args:
        prefix: Variable prefix, e.g. 'MSSQL' or 'POSTGRES'
        default_port: Port used when <PREFIX>_PORT is unset
        environ: Mapping to read from (defaults to os.environ)

    Returns:
        Credentials for that side

    Raises:
        ConfigurationError: If the host or database is missing or the port is not a number
    """
    env = os.environ if environ is None else environ

    host = env.get(f'{prefix}_HOST', '')
    database = env.get(f'{prefix}_DB', '')
    missing = [name for name, value in ((f'{prefix}_HOST', host), (f'{prefix}_DB', database)) if not value]
    if missing:
        raise ConfigurationError(f"Missing required settings: {', '.join(missing)}", operation="load config")

    return Credentials(
        user=env.get(f'{prefix}_USER', ''),
        password=env.get(f'{prefix}_PASSWORD', ''),
        database=database,
        host=host,
        port=_parse_int(env.get(f'{prefix}_PORT'), f'{prefix}_PORT', default_port),
    )


def load_config(env_file: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> MigrationConfig:
    """
    Load the run configuration from the environment.

    Args:
        env_file: Optional .env path; when omitted a .env in the working
            directory is used if present. Ignored when environ is given.
        environ: Explicit mapping to read instead of os.environ

    Returns:
        MigrationConfig
    """
    if environ is None:
        load_dotenv(dotenv_path=env_file)
        env = os.environ
    else:
        env = environ

    config = MigrationConfig(
        source=credentials_from_env('MSSQL', DEFAULT_MSSQL_PORT, env),
        target=credentials_from_env('POSTGRES', DEFAULT_POSTGRES_PORT, env),
        target_schema=env.get('TARGET_SCHEMA') or DEFAULT_TARGET_SCHEMA,
        batch_size=_parse_int(env.get('COPY_BATCH_SIZE'), 'COPY_BATCH_SIZE', DEFAULT_BATCH_SIZE),
        exclude_tables=_parse_patterns(env.get('EXCLUDE_TABLES')),
    )

    logger.info(f"Source: {config.source.host}:{config.source.port}/{config.source.database}")
    logger.info(f"Target: {config.target.host}:{config.target.port}/{config.target.database} "
                f"(schema {config.target_schema})")
    return config


def credentials_from_airflow(conn_id: str, default_port: int) -> Credentials:
    """
    Resolve credentials from an Airflow connection.

    The connection's schema field holds the database name, as Airflow's
    MSSQL and Postgres connections do.
    """
    from airflow.hooks.base import BaseHook

    conn = BaseHook.get_connection(conn_id)
    return Credentials(
        user=conn.login or '',
        password=conn.password or '',
        database=conn.schema or '',
        host=conn.host or '',
        port=conn.port or default_port,
    )
