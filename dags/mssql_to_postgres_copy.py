"""
SQL Server to PostgreSQL Copy DAG

This DAG copies every base table of a SQL Server database into PostgreSQL:
1. Inventory of source schemas and tables (size, rows x columns)
2. Drop/create each target table with mapped column types
3. Copy rows in multi-row INSERT batches
4. Commit once, after the last table
5. Row count validation and reporting

Steps 2-4 run inside one task because they share a single PostgreSQL
transaction; a failure anywhere rolls back every table.
"""

from airflow.sdk import dag, task
from airflow.models.param import Param
from pendulum import datetime
from dataclasses import asdict
from typing import Any, Dict, List
import logging

from mssql_pg_copy.config import (
    DEFAULT_MSSQL_PORT,
    DEFAULT_POSTGRES_PORT,
    MigrationConfig,
    credentials_from_airflow,
)
from mssql_pg_copy.connections import open_source, open_target
from mssql_pg_copy.models import MigrationResult, TableResult
from mssql_pg_copy.orchestrator import copy_database
from mssql_pg_copy.schema_introspector import SchemaIntrospector, log_inventory
from mssql_pg_copy.validation import validate_migration

logger = logging.getLogger(__name__)


def _config_from_params(params: Dict[str, Any]) -> MigrationConfig:
    return MigrationConfig(
        source=credentials_from_airflow(params["source_conn_id"], DEFAULT_MSSQL_PORT),
        target=credentials_from_airflow(params["target_conn_id"], DEFAULT_POSTGRES_PORT),
        target_schema=params["target_schema"],
        batch_size=params["batch_size"],
        exclude_tables=list(params.get("exclude_tables") or []),
    )


@dag(
    start_date=datetime(2025, 1, 1),
    schedule=None,  # Run manually or trigger via API
    catchup=False,
    max_active_runs=1,
    is_paused_upon_creation=False,
    doc_md=__doc__,
    default_args={
        "owner": "data-team",
        "retries": 0,  # the copy is all-or-nothing; rerun the DAG instead
    },
    params={
        "source_conn_id": Param(
            default="mssql_source",
            type="string",
            description="SQL Server connection ID"
        ),
        "target_conn_id": Param(
            default="postgres_target",
            type="string",
            description="PostgreSQL connection ID"
        ),
        "target_schema": Param(
            default="public",
            type="string",
            description="Target schema in PostgreSQL"
        ),
        "batch_size": Param(
            default=1000,
            type="integer",
            minimum=1,
            maximum=100000,
            description="Number of rows per INSERT statement"
        ),
        "exclude_tables": Param(
            default=[],
            type="array",
            description="List of table patterns to exclude (supports wildcards)"
        ),
        "validate": Param(
            default=True,
            type="boolean",
            description="Compare source and target row counts after the copy"
        ),
    },
    tags=["migration", "mssql", "postgres", "full-copy"],
)
def mssql_to_postgres_copy():
    """
    Single-transaction SQL Server to PostgreSQL copy.
    """

    @task
    def inventory_source(**context) -> int:
        """
        Log size and dimensions of every source table.

        Returns:
            Number of tables that will be copied
        """
        config = _config_from_params(context["params"])
        with open_source(config.source) as source:
            summaries = SchemaIntrospector(source, exclude_patterns=config.exclude_tables).inventory()
        log_inventory(summaries)
        return len(summaries)

    @task
    def copy_all_tables(table_count: int, **context) -> List[Dict[str, Any]]:
        """
        Drop, create and copy every table in one transaction.

        Returns:
            Per-table results
        """
        config = _config_from_params(context["params"])
        logger.info(f"Copying {table_count} tables in batches of {config.batch_size:,} rows")

        result = copy_database(config)
        return [asdict(t) for t in result.tables]

    @task
    def validate_copy(table_results: List[Dict[str, Any]], **context) -> str:
        """
        Compare row counts between source and target.

        Returns:
            Validation summary
        """
        params = context["params"]
        if not params.get("validate", True):
            return "Validation skipped"

        config = _config_from_params(params)
        migration_result = MigrationResult(tables=[TableResult(**t) for t in table_results])
        with open_source(config.source) as source, open_target(config.target) as target:
            results = validate_migration(source, target, migration_result)

        if not results['success']:
            raise ValueError(f"Row count mismatch in {len(results['failed_tables'])} tables: "
                             f"{', '.join(results['failed_tables'])}")
        return f"Success: All {results['total_tables']} tables match"

    validate_copy(copy_all_tables(inventory_source()))


# Instantiate
mssql_to_postgres_copy()
