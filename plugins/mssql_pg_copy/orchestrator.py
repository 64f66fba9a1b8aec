"""
Migration Orchestrator

Runs a whole-database copy as one PostgreSQL transaction:

    IDLE -> ENUMERATING_TABLES -> (DROPPING -> CREATING -> COPYING)* -> COMMITTING -> DONE

Any failure moves to ROLLING_BACK -> FAILED and re-raises. The target is
never left half-migrated, at the cost of holding one transaction (and its
locks) for the full run. Tables are copied strictly one after another.
There is no per-query timeout, so a stalled source query stalls the run.
"""

from enum import Enum
from typing import List, Optional
import logging
import time

from mssql_pg_copy.batch_copier import BatchCopier
from mssql_pg_copy.config import MigrationConfig
from mssql_pg_copy.connections import SourceConnection, TargetConnection, open_source, open_target
from mssql_pg_copy.ddl_generator import DDLGenerator
from mssql_pg_copy.errors import CommitError, CopyError, DDLError, MigrationError
from mssql_pg_copy.models import MigrationResult, TableDescriptor, TableResult
from mssql_pg_copy.progress import ProgressObserver
from mssql_pg_copy.schema_introspector import SchemaIntrospector

logger = logging.getLogger(__name__)


class MigrationState(Enum):
    IDLE = "idle"
    ENUMERATING_TABLES = "enumerating_tables"
    DROPPING = "dropping"
    CREATING = "creating"
    COPYING = "copying"
    COMMITTING = "committing"
    DONE = "done"
    ROLLING_BACK = "rolling_back"
    FAILED = "failed"


class MigrationOrchestrator:
    """Sequence introspection, DDL and copy for every table in one transaction."""

    def __init__(self, introspector: SchemaIntrospector, ddl: DDLGenerator, copier: BatchCopier):
        self.introspector = introspector
        self.ddl = ddl
        self.copier = copier
        self.state = MigrationState.IDLE
        self.history: List[MigrationState] = [MigrationState.IDLE]

    @classmethod
    def from_connections(
        cls,
        source: SourceConnection,
        config: MigrationConfig,
        observer: Optional[ProgressObserver] = None,
    ) -> 'MigrationOrchestrator':
        """Wire the components for a run against an open source connection."""
        introspector = SchemaIntrospector(source, exclude_patterns=config.exclude_tables)
        return cls(
            introspector=introspector,
            ddl=DDLGenerator(target_schema=config.target_schema),
            copier=BatchCopier(introspector, batch_size=config.batch_size, observer=observer),
        )

    def _transition(self, state: MigrationState) -> None:
        logger.debug(f"Migration state: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def copy_database(self, source: SourceConnection, target: TargetConnection) -> MigrationResult:
        """
        Copy every non-excluded base table from source to target.

        Args:
            source: Open source connection; must be the one the introspector uses
            target: Open target connection

        Returns:
            MigrationResult for the committed run

        Raises:
            MigrationError: Any failure, after the transaction was rolled back
        """
        if self.introspector.source is not source:
            raise ValueError("copy_database() source must be the connection the introspector reads from")
        if self.state is not MigrationState.IDLE:
            raise RuntimeError(f"orchestrator already used (state {self.state.value})")

        start_time = time.time()
        result = MigrationResult()

        self._transition(MigrationState.ENUMERATING_TABLES)
        try:
            tables = [
                TableDescriptor(schema=schema_name, name=table_name)
                for schema_name, table_name in self.introspector.enumerate_tables()
            ]
            self.ddl.check_table_collisions(tables)
        except MigrationError as e:
            # No transaction is open yet, so there is nothing to roll back
            self._transition(MigrationState.ROLLING_BACK)
            logger.error(f"Migration failed before any DDL: {e}")
            self._transition(MigrationState.FAILED)
            raise

        logger.info(f"Starting migration of {len(tables)} tables into schema {self.ddl.target_schema}")

        with target.begin() as transaction:
            try:
                if self.ddl.target_schema != 'public':
                    self._execute_ddl(transaction, self.ddl.generate_create_schema(), self.ddl.target_schema)

                for table in tables:
                    result.tables.append(self._migrate_table(table, transaction))

                self._transition(MigrationState.COMMITTING)
                try:
                    transaction.commit()
                except Exception as e:
                    raise CommitError(str(e), operation="commit") from e
            except Exception as e:
                self._rollback(transaction, e)
                if isinstance(e, MigrationError):
                    raise
                raise CopyError(str(e), operation="migrate") from e

        result.elapsed_seconds = time.time() - start_time
        self._transition(MigrationState.DONE)
        logger.info(
            f"Migration completed: {len(result.tables)} tables, {result.total_rows:,} rows "
            f"in {result.elapsed_seconds:.2f}s"
        )
        return result

    def _migrate_table(self, table: TableDescriptor, transaction) -> TableResult:
        table_start = time.time()

        # Introspection errors propagate and abort the whole run
        described = self.introspector.describe_table(table.schema, table.name)
        target_ref = self.ddl.target_reference(described)

        self._transition(MigrationState.DROPPING)
        self._execute_ddl(transaction, self.ddl.generate_drop(described), described.qualified_name)

        self._transition(MigrationState.CREATING)
        self._execute_ddl(transaction, self.ddl.generate_create(described), described.qualified_name)

        self._transition(MigrationState.COPYING)
        progress = self.copier.copy_table(described, target_ref, transaction)
        rows_copied = progress.processed_rows

        table_result = TableResult(
            source_schema=described.schema,
            source_table=described.name,
            target_schema=self.ddl.target_schema,
            target_table=self.ddl.target_table_name(described),
            rows_copied=rows_copied,
            total_rows=progress.total_rows,
            elapsed_seconds=time.time() - table_start,
        )
        logger.info(f"✓ {table_result.source} -> {table_result.target}: {rows_copied:,} rows")
        return table_result

    def _execute_ddl(self, transaction, statement: str, table: str) -> None:
        logger.info(f"Executing DDL: {statement[:100]}...")
        try:
            transaction.execute(statement)
        except Exception as e:
            raise DDLError(str(e), operation="execute DDL", table=table) from e

    def _rollback(self, transaction, error: Exception) -> None:
        self._transition(MigrationState.ROLLING_BACK)
        logger.error(f"Migration failed, rolling back: {error}")
        if not transaction.closed:
            try:
                transaction.rollback()
            except Exception:
                logger.exception("Exception occurred during PostgreSQL transaction rollback")
        self._transition(MigrationState.FAILED)


def copy_database(config: MigrationConfig, observer: Optional[ProgressObserver] = None) -> MigrationResult:
    """
    Convenience function to run a full copy with scoped connections.

    Args:
        config: Run configuration
        observer: Optional progress observer

    Returns:
        MigrationResult for the committed run
    """
    with open_source(config.source) as source, open_target(config.target) as target:
        orchestrator = MigrationOrchestrator.from_connections(source, config, observer)
        return orchestrator.copy_database(source, target)
