"""
SQL Server to PostgreSQL Copy Utilities

This package copies the schema and contents of a Microsoft SQL Server
database into a PostgreSQL database in a single transaction.

Modules:
- type_mapping: Map SQL Server types to PostgreSQL
- identifiers: Sanitize and quote identifiers for generated SQL
- schema_introspector: Read schemas, tables, columns, sizes and row counts
- ddl_generator: Generate PostgreSQL DROP/CREATE statements
- progress: Progress accounting and observers
- batch_copier: Copy rows in fixed-size multi-row INSERT batches
- orchestrator: Run the whole copy as one transaction
- connections: SQL Server (pymssql) and PostgreSQL (psycopg2) handles
- config: Credentials and run settings
- validation: Row count validation after a run

Configuration Options:
- COPY_BATCH_SIZE=N: Rows per INSERT statement (default 1000)
- TARGET_SCHEMA=name: PostgreSQL schema receiving the tables (default public)
- EXCLUDE_TABLES=a,b*: Table patterns to skip
"""

__version__ = "1.0.0"

from mssql_pg_copy import type_mapping
from mssql_pg_copy import identifiers
from mssql_pg_copy import schema_introspector
from mssql_pg_copy import ddl_generator
from mssql_pg_copy import progress
from mssql_pg_copy import batch_copier
from mssql_pg_copy import orchestrator
from mssql_pg_copy import validation

__all__ = [
    "type_mapping",
    "identifiers",
    "schema_introspector",
    "ddl_generator",
    "progress",
    "batch_copier",
    "orchestrator",
    "validation",
]
