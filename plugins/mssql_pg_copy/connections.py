"""
Source and Target Connection Handles

Thin wrappers over pymssql (SQL Server, read side) and psycopg2
(PostgreSQL, write side). A handle is created explicitly with connect()
and passed to every component that needs it; nothing here caches
connection state between runs.
"""

from typing import Any, Iterator, List, Optional, Sequence, Tuple, Union
import contextlib
import logging

import psycopg2
import pymssql
from psycopg2 import extras as pg_extras
from psycopg2.sql import Composable

from mssql_pg_copy.config import Credentials
from mssql_pg_copy.errors import DatabaseConnectionError

logger = logging.getLogger(__name__)


class SourceConnection:
    """Read-only SQL Server connection (pymssql, %s parameters)."""

    def __init__(self, conn):
        self._conn = conn

    @classmethod
    def connect(cls, credentials: Credentials) -> 'SourceConnection':
        """
        Open a SQL Server connection.

        Raises:
            DatabaseConnectionError: If the server cannot be reached or login fails
        """
        try:
            conn = pymssql.connect(
                server=credentials.host,
                port=credentials.port,
                user=credentials.user,
                password=credentials.password,
                database=credentials.database,
            )
        except pymssql.Error as e:
            raise DatabaseConnectionError(
                str(e), operation="connect", table=f"mssql://{credentials.host}:{credentials.port}"
            ) from e
        logger.info(f"Connected to SQL Server {credentials.host}:{credentials.port}/{credentials.database}")
        return cls(conn)

    @contextlib.contextmanager
    def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> Iterator[Any]:
        """
        Execute a query and yield the open cursor for streaming its rows.

        The cursor is closed when the block exits, on error paths too.
        """
        cursor = self._conn.cursor()
        try:
            if params:
                cursor.execute(sql, tuple(params))
            else:
                cursor.execute(sql)
            yield cursor
        finally:
            cursor.close()

    def query_row(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[Tuple[Any, ...]]:
        """Execute a query and return its first row, or None."""
        with self.query(sql, params) as cursor:
            return cursor.fetchone()

    def query_all(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Tuple[Any, ...]]:
        """Execute a query and return all rows."""
        with self.query(sql, params) as cursor:
            return cursor.fetchall()

    def close(self) -> None:
        self._conn.close()


class Transaction:
    """
    A single PostgreSQL transaction.

    Used as a context manager, it rolls back on exit unless commit() or
    rollback() already ended it.
    """

    def __init__(self, conn):
        self._conn = conn
        self.closed = False

    def execute(self, sql: Union[str, Composable], params: Optional[Sequence[Any]] = None) -> None:
        with self._conn.cursor() as cursor:
            if params:
                cursor.execute(sql, params)
            else:
                cursor.execute(sql)

    def commit(self) -> None:
        self._conn.commit()
        self.closed = True

    def rollback(self) -> None:
        self._conn.rollback()
        self.closed = True

    def __enter__(self) -> 'Transaction':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self.closed:
            try:
                self.rollback()
            except psycopg2.Error:
                logger.exception("Exception occurred during PostgreSQL transaction rollback")


class TargetConnection:
    """PostgreSQL connection (psycopg2). All writes go through begin()."""

    def __init__(self, conn):
        self._conn = conn

    @classmethod
    def connect(cls, credentials: Credentials) -> 'TargetConnection':
        """
        Open a PostgreSQL connection.

        Raises:
            DatabaseConnectionError: If the server cannot be reached or login fails
        """
        try:
            conn = psycopg2.connect(
                host=credentials.host,
                port=credentials.port,
                user=credentials.user,
                password=credentials.password,
                dbname=credentials.database,
            )
        except psycopg2.Error as e:
            raise DatabaseConnectionError(
                str(e), operation="connect", table=f"postgresql://{credentials.host}:{credentials.port}"
            ) from e
        # pymssql returns uniqueidentifier values as uuid.UUID
        pg_extras.register_uuid(conn_or_curs=conn)
        logger.info(f"Connected to PostgreSQL {credentials.host}:{credentials.port}/{credentials.database}")
        return cls(conn)

    def begin(self) -> Transaction:
        """Start a transaction. psycopg2 opens it implicitly on the first statement."""
        self._conn.autocommit = False
        return Transaction(self._conn)

    def query_row(
        self, sql: Union[str, Composable], params: Optional[Sequence[Any]] = None
    ) -> Optional[Tuple[Any, ...]]:
        """Read a single row outside the copy transaction."""
        with self._conn.cursor() as cursor:
            if params:
                cursor.execute(sql, params)
            else:
                cursor.execute(sql)
            row = cursor.fetchone()
        self._conn.rollback()
        return row

    def close(self) -> None:
        self._conn.close()


@contextlib.contextmanager
def open_source(credentials: Credentials) -> Iterator[SourceConnection]:
    source = SourceConnection.connect(credentials)
    try:
        yield source
    finally:
        source.close()


@contextlib.contextmanager
def open_target(credentials: Credentials) -> Iterator[TargetConnection]:
    target = TargetConnection.connect(credentials)
    try:
        yield target
    finally:
        target.close()
