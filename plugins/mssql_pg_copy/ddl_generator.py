"""
PostgreSQL DDL Generation Module

This module generates the DROP/CREATE statements that recreate a source
table in PostgreSQL. Only columns and their types are carried over;
constraints, indexes and foreign keys are not replicated.
"""

from typing import List, Optional, Sequence
import logging

from psycopg2 import sql

from mssql_pg_copy.errors import DDLError
from mssql_pg_copy.identifiers import sanitize_identifier, target_identifier, target_table, target_table_sql
from mssql_pg_copy.models import ColumnDescriptor, TableDescriptor
from mssql_pg_copy.type_mapping import map_column

logger = logging.getLogger(__name__)


class DDLGenerator:
    """Generate PostgreSQL DDL statements from introspected tables."""

    def __init__(self, target_schema: str = 'public'):
        """
        Initialize the DDL generator.

        Args:
            target_schema: PostgreSQL schema that receives the tables
        """
        self.target_schema = target_schema

    def target_table_name(self, table: TableDescriptor) -> str:
        """Sanitized (unquoted) name of the table in PostgreSQL."""
        return sanitize_identifier(table.name)

    def qualified_target(self, table: TableDescriptor) -> str:
        """Quoted "schema"."table" reference used by the generated DDL."""
        return target_table(self.target_schema, table.name)

    def target_reference(self, table: TableDescriptor) -> sql.Identifier:
        """The same target table as a psycopg2 identifier, for composed INSERTs."""
        return target_table_sql(self.target_schema, table.name)

    def generate_create(self, table: TableDescriptor, columns: Optional[Sequence[ColumnDescriptor]] = None) -> str:
        """
        Generate CREATE TABLE statement for PostgreSQL.

        Args:
            table: Introspected source table
            columns: Columns to create, defaults to table.columns

        Returns:
            CREATE TABLE DDL statement

        Raises:
            DDLError: If there are no columns or two columns sanitize to the same name
        """
        columns = list(table.columns if columns is None else columns)
        if not columns:
            raise DDLError("table has no columns", operation="generate create", table=table.qualified_name)

        self._check_column_collisions(table, columns)

        column_definitions = [
            f"{target_identifier(col.name)} {map_column(col)}"
            for col in columns
        ]
        return f"CREATE TABLE {self.qualified_target(table)} ({', '.join(column_definitions)})"

    def generate_drop(self, table: TableDescriptor, cascade: bool = True) -> str:
        """
        Generate DROP TABLE statement, tolerant of the table not existing.

        Args:
            table: Source table whose target counterpart is dropped
            cascade: Whether to use CASCADE option

        Returns:
            DROP TABLE DDL statement
        """
        cascade_clause = " CASCADE" if cascade else ""
        return f"DROP TABLE IF EXISTS {self.qualified_target(table)}{cascade_clause}"

    def generate_create_schema(self) -> str:
        return f"CREATE SCHEMA IF NOT EXISTS {target_identifier(self.target_schema)}"

    def check_table_collisions(self, tables: Sequence[TableDescriptor]) -> None:
        """
        Ensure no two source tables land on the same target table.

        Tables from different source schemas, or names differing only in
        characters that get sanitized, would otherwise overwrite each other.

        Raises:
            DDLError: On the first collision found
        """
        seen = {}
        for table in tables:
            target = self.target_table_name(table)
            if target in seen:
                raise DDLError(
                    f"{seen[target]} and {table.qualified_name} both map to "
                    f"{self.target_schema}.{target}",
                    operation="plan tables",
                    table=table.qualified_name,
                )
            seen[target] = table.qualified_name

    def _check_column_collisions(self, table: TableDescriptor, columns: List[ColumnDescriptor]) -> None:
        seen = {}
        for col in columns:
            target = sanitize_identifier(col.name)
            if target in seen:
                raise DDLError(
                    f"columns '{seen[target]}' and '{col.name}' both map to '{target}'",
                    operation="generate create",
                    table=table.qualified_name,
                )
            seen[target] = col.name
