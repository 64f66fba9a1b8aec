"""
SQL Server Schema Introspection Module

This module reads schema metadata from SQL Server through the
INFORMATION_SCHEMA views and the sys catalog: schemas, base tables,
columns in ordinal order, table sizes and row counts.
"""

from typing import Any, Callable, List, Optional, Sequence, Tuple
import fnmatch
import logging

from mssql_pg_copy.connections import SourceConnection
from mssql_pg_copy.errors import IntrospectionError
from mssql_pg_copy.identifiers import source_table
from mssql_pg_copy.models import ColumnDescriptor, SchemaCollection, TableDescriptor, TableSummary

logger = logging.getLogger(__name__)

# System and fixed database-role schemas, never migrated
SYSTEM_SCHEMAS = frozenset(name.lower() for name in (
    'sys',
    'INFORMATION_SCHEMA',
    'guest',
    'db_owner',
    'db_accessadmin',
    'db_securityadmin',
    'db_ddladmin',
    'db_backupoperator',
    'db_datareader',
    'db_datawriter',
    'db_denydatareader',
    'db_denydatawriter',
))


class SchemaIntrospector:
    """Read schema metadata from a SQL Server source connection."""

    def __init__(self, source: SourceConnection, exclude_patterns: Optional[Sequence[str]] = None):
        """
        Initialize the introspector.

        Args:
            source: Open source connection handle
            exclude_patterns: Table name patterns to skip (supports wildcards),
                matched against both 'table' and 'schema.table'
        """
        self.source = source
        self.exclude_patterns = list(exclude_patterns or [])

    def _run(self, operation: str, table: Optional[str], fn: Callable[[], Any]) -> Any:
        try:
            return fn()
        except IntrospectionError:
            raise
        except Exception as e:
            logger.error(f"Metadata query '{operation}' failed for {table or 'database'}: {e}")
            raise IntrospectionError(str(e), operation=operation, table=table) from e

    def list_schemas(self) -> List[str]:
        """
        Get user schema names, excluding system and role schemas.

        Returns:
            Schema names ordered by name
        """
        query = """
        SELECT SCHEMA_NAME
        FROM INFORMATION_SCHEMA.SCHEMATA
        ORDER BY SCHEMA_NAME
        """
        rows = self._run("list schemas", None, lambda: self.source.query_all(query))
        return [row[0] for row in rows if row[0].lower() not in SYSTEM_SCHEMAS]

    def list_tables(self, schema_name: str) -> List[str]:
        """
        Get base table names in a schema. Views are not included.

        Args:
            schema_name: Source schema name

        Returns:
            Table names ordered by name
        """
        query = """
        SELECT TABLE_NAME
        FROM INFORMATION_SCHEMA.TABLES
        WHERE TABLE_SCHEMA = %s
          AND TABLE_TYPE = 'BASE TABLE'
        ORDER BY TABLE_NAME
        """
        rows = self._run("list tables", schema_name, lambda: self.source.query_all(query, [schema_name]))
        return [row[0] for row in rows]

    def enumerate_tables(self) -> List[Tuple[str, str]]:
        """
        Get every (schema, table) pair to migrate, after exclusion patterns.
        """
        result = []
        for schema_name in self.list_schemas():
            for table_name in self.list_tables(schema_name):
                if self._is_excluded(schema_name, table_name):
                    continue
                result.append((schema_name, table_name))

        logger.info(f"Found {len(result)} tables to migrate")
        return result

    def describe_columns(self, schema_name: str, table_name: str) -> List[ColumnDescriptor]:
        """
        Get the columns of a table in declared ordinal order.

        This order is reused verbatim for the SELECT list and the INSERT
        column list, so it must not be re-sorted.

        Raises:
            IntrospectionError: If the query fails or the table has no columns
        """
        query = """
        SELECT
            COLUMN_NAME,
            DATA_TYPE,
            CHARACTER_MAXIMUM_LENGTH,
            NUMERIC_PRECISION,
            NUMERIC_SCALE
        FROM INFORMATION_SCHEMA.COLUMNS
        WHERE TABLE_SCHEMA = %s
          AND TABLE_NAME = %s
        ORDER BY ORDINAL_POSITION
        """
        qualified = f"{schema_name}.{table_name}"
        rows = self._run(
            "describe columns", qualified,
            lambda: self.source.query_all(query, [schema_name, table_name])
        )

        if not rows:
            raise IntrospectionError("no columns found", operation="describe columns", table=qualified)

        return [
            ColumnDescriptor(
                name=row[0],
                source_type=row[1],
                length=row[2],
                precision=row[3],
                scale=row[4],
            )
            for row in rows
        ]

    def describe_table(self, schema_name: str, table_name: str) -> TableDescriptor:
        columns = self.describe_columns(schema_name, table_name)
        return TableDescriptor(schema=schema_name, name=table_name, columns=tuple(columns))

    def table_size(self, schema_name: str, table_name: str) -> str:
        """
        Get the allocated size of a table, formatted as '<n>.nn MB'.
        """
        query = """
        SELECT
            CAST(ROUND(((SUM(a.total_pages) * 8) / 1024.00), 2) AS DECIMAL(36,2))
        FROM sys.tables t
        INNER JOIN sys.schemas s ON t.schema_id = s.schema_id
        INNER JOIN sys.indexes i ON t.object_id = i.object_id
        INNER JOIN sys.partitions p ON i.object_id = p.object_id AND i.index_id = p.index_id
        INNER JOIN sys.allocation_units a ON p.partition_id = a.container_id
        WHERE t.name = %s AND s.name = %s
        GROUP BY t.name
        """
        row = self._run(
            "table size", f"{schema_name}.{table_name}",
            lambda: self.source.query_row(query, [table_name, schema_name])
        )
        size = float(row[0]) if row and row[0] is not None else 0.0
        return f"{size:.2f} MB"

    def row_count(self, schema_name: str, table_name: str) -> int:
        """Count the rows of a source table."""
        query = f"SELECT COUNT_BIG(*) FROM {source_table(schema_name, table_name)}"
        row = self._run("row count", f"{schema_name}.{table_name}", lambda: self.source.query_row(query))
        return int(row[0] or 0) if row else 0

    def summarize_table(self, schema_name: str, table_name: str) -> TableSummary:
        columns = self.describe_columns(schema_name, table_name)
        return TableSummary(
            schema=schema_name,
            name=table_name,
            size=self.table_size(schema_name, table_name),
            row_count=self.row_count(schema_name, table_name),
            column_count=len(columns),
        )

    def collect_schemas(self) -> List[SchemaCollection]:
        """
        Group every non-excluded base table under its schema.

        Returns:
            One SchemaCollection per user schema, tables fully described
        """
        collections = []
        for schema_name in self.list_schemas():
            collection = SchemaCollection(name=schema_name)
            for table_name in self.list_tables(schema_name):
                if self._is_excluded(schema_name, table_name):
                    continue
                collection.tables.append(self.describe_table(schema_name, table_name))
            collections.append(collection)
        return collections

    def inventory(self) -> List[TableSummary]:
        """Size and dimensions of every table that would be migrated."""
        return [
            self.summarize_table(schema_name, table_name)
            for schema_name, table_name in self.enumerate_tables()
        ]

    def _is_excluded(self, schema_name: str, table_name: str) -> bool:
        for pattern in self.exclude_patterns:
            if self._matches_pattern(table_name, pattern) or \
                    self._matches_pattern(f"{schema_name}.{table_name}", pattern):
                logger.info(f"Excluding table {schema_name}.{table_name} (matches pattern '{pattern}')")
                return True
        return False

    def _matches_pattern(self, name: str, pattern: str) -> bool:
        return fnmatch.fnmatch(name.lower(), pattern.lower())


def log_inventory(summaries: Sequence[TableSummary]) -> None:
    """Log one line per table with its size and dimensions."""
    current_schema = None
    for summary in summaries:
        if summary.schema != current_schema:
            current_schema = summary.schema
            logger.info(f"Schema: {current_schema}")
        logger.info(f"  {summary.name:<30} | {summary.size:>12} | {summary.dimensions}")
    logger.info(f"{len(summaries)} tables, {sum(s.row_count for s in summaries):,} rows total")
