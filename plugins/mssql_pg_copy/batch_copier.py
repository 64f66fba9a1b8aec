"""
Batched Table Copy Module

This module streams rows out of a SQL Server table and writes them to
PostgreSQL as multi-row INSERT statements inside a transaction owned by
the caller. Nothing is committed here.
"""

from typing import Any, List, Optional, Sequence, Tuple
import logging
import time

from psycopg2 import sql

from mssql_pg_copy.errors import CopyError, MigrationError
from mssql_pg_copy.identifiers import source_identifier, source_table, target_columns_sql
from mssql_pg_copy.models import ColumnDescriptor, TableDescriptor
from mssql_pg_copy.progress import CopyProgress, LoggingProgressObserver, ProgressObserver, ProgressTracker
from mssql_pg_copy.schema_introspector import SchemaIntrospector

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 1000

# CLR types are read through a server-side conversion so the driver returns
# a value the mapped PostgreSQL column accepts
SOURCE_PROJECTIONS = {
    "hierarchyid": "{column}.ToString()",  # varchar path, e.g. /1/3/
    "geography": "{column}.STAsBinary()",  # WKB, cast implicitly by PostGIS
    "geometry": "{column}.STAsBinary()",
    "sql_variant": "CAST({column} AS nvarchar(max))",
}


def build_insert_statement(target_table: sql.Composable, columns: Sequence[str], row_count: int) -> sql.Composed:
    """
    Build a multi-row INSERT for row_count rows.

    The statement has row_count x len(columns) positional placeholders,
    bound from a flat parameter list in row-major order.

    Args:
        target_table: Target table identifier from DDLGenerator.target_reference()
        columns: Source column names in ordinal order
        row_count: Number of rows in the batch

    Returns:
        Composed INSERT statement
    """
    row_placeholder = sql.SQL('({})').format(
        sql.SQL(', ').join([sql.Placeholder()] * len(columns))
    )
    return sql.SQL("INSERT INTO {table} ({columns}) VALUES {values}").format(
        table=target_table,
        columns=target_columns_sql(columns),
        values=sql.SQL(', ').join([row_placeholder] * row_count),
    )


def select_expression(column: ColumnDescriptor) -> str:
    """Source expression for one column, aliased back to its own name when projected."""
    quoted = source_identifier(column.name)
    projection = SOURCE_PROJECTIONS.get(column.source_type.lower().strip())
    if projection is None:
        return quoted
    return f"{projection.format(column=quoted)} AS {quoted}"


def build_select_statement(table: TableDescriptor) -> str:
    """SELECT of every introspected column, in ordinal order."""
    expressions = ', '.join(select_expression(col) for col in table.columns)
    return f"SELECT {expressions} FROM {source_table(table.schema, table.name)}"


def _normalize_value(value: Any) -> Any:
    """Adapt driver values psycopg2 cannot bind as-is. NULL stays None."""
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str) and '\x00' in value:
        # PostgreSQL text cannot store NUL characters
        return value.replace('\x00', '')
    return value


class BatchCopier:
    """Copy one table at a time in fixed-size batches."""

    def __init__(
        self,
        introspector: SchemaIntrospector,
        batch_size: int = DEFAULT_BATCH_SIZE,
        observer: Optional[ProgressObserver] = None,
        clock=time.monotonic,
    ):
        """
        Initialize the copier.

        Args:
            introspector: Introspector bound to the source connection
            batch_size: Rows per INSERT statement
            observer: Progress observer, logs progress when omitted
            clock: Monotonic clock used for throughput figures
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.introspector = introspector
        self.batch_size = batch_size
        self.observer = observer or LoggingProgressObserver()
        self._clock = clock

    def copy_table(self, table: TableDescriptor, target_table: sql.Composable, transaction) -> CopyProgress:
        """
        Copy all rows of a source table into the target table.

        Args:
            table: Introspected source table, columns in ordinal order
            target_table: Target identifier from DDLGenerator.target_reference()
            transaction: Open target transaction; receives every INSERT

        Returns:
            Final progress: processed_rows is the number of rows copied,
            total_rows the estimate taken before the copy

        Raises:
            IntrospectionError: If the row count query fails
            CopyError: If reading or inserting fails
        """
        columns = table.column_names
        if not columns:
            raise CopyError("table has no columns", operation="copy", table=table.qualified_name)

        # Estimate only, used for progress percentages
        total_rows = self.introspector.row_count(table.schema, table.name)
        tracker = ProgressTracker(table.qualified_name, total_rows, self.observer, clock=self._clock)

        select_sql = build_select_statement(table)
        batch: List[Tuple[Any, ...]] = []
        rows_copied = 0

        try:
            with self.introspector.source.query(select_sql) as cursor:
                for row in cursor:
                    if len(row) != len(columns):
                        raise CopyError(
                            f"row has {len(row)} values, expected {len(columns)}",
                            operation="copy", table=table.qualified_name,
                        )
                    batch.append(tuple(_normalize_value(value) for value in row))
                    tracker.advance()

                    if len(batch) >= self.batch_size:
                        rows_copied += self._flush(table, target_table, columns, batch, transaction)
                        batch = []

                if batch:
                    rows_copied += self._flush(table, target_table, columns, batch, transaction)
        except MigrationError:
            raise
        except Exception as e:
            logger.error(f"Error copying {table.qualified_name} after {rows_copied:,} rows: {e}")
            raise CopyError(str(e), operation="copy", table=table.qualified_name) from e

        tracker.finish()
        return tracker.progress

    def _flush(
        self,
        table: TableDescriptor,
        target_table: sql.Composable,
        columns: Sequence[str],
        batch: List[Tuple[Any, ...]],
        transaction,
    ) -> int:
        insert_sql = build_insert_statement(target_table, columns, len(batch))
        params = [value for row in batch for value in row]
        try:
            transaction.execute(insert_sql, params)
        except Exception as e:
            logger.error(f"Error inserting batch of {len(batch):,} rows into {table.qualified_name}: {e}")
            raise CopyError(f"batch insert failed: {e}", operation="copy", table=table.qualified_name) from e
        logger.debug(f"Inserted batch of {len(batch):,} rows of {table.qualified_name}")
        return len(batch)
