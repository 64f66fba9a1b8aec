"""
Data Migration Validation Module

Compares row counts between the SQL Server source and the PostgreSQL
target after a copy run has committed.
"""

from typing import Any, Dict, List, Optional, Sequence
from datetime import datetime
import logging

from psycopg2 import sql

from mssql_pg_copy.connections import SourceConnection, TargetConnection
from mssql_pg_copy.identifiers import source_table, target_table_sql
from mssql_pg_copy.models import MigrationResult, TableResult

logger = logging.getLogger(__name__)


class MigrationValidator:
    """Validate data migration from SQL Server to PostgreSQL."""

    def __init__(self, source: SourceConnection, target: TargetConnection):
        """
        Initialize the migration validator.

        Args:
            source: Open SQL Server connection
            target: Open PostgreSQL connection
        """
        self.source = source
        self.target = target

    def validate_row_count(self, table_result: TableResult) -> Dict[str, Any]:
        """
        Compare row counts between source and target tables.

        Args:
            table_result: Result of copying the table

        Returns:
            Validation result dictionary
        """
        source_query = f"SELECT COUNT_BIG(*) FROM {source_table(table_result.source_schema, table_result.source_table)}"
        row = self.source.query_row(source_query)
        source_count = (row[0] if row else 0) or 0

        target_query = sql.SQL("SELECT COUNT(*) FROM {}").format(
            target_table_sql(table_result.target_schema, table_result.target_table)
        )
        row = self.target.query_row(target_query)
        target_count = (row[0] if row else 0) or 0

        row_difference = target_count - source_count
        percentage_difference = (row_difference / source_count * 100) if source_count > 0 else 0

        validation_result = {
            'table_name': table_result.source,
            'target_table': table_result.target,
            'source_count': source_count,
            'target_count': target_count,
            'row_difference': row_difference,
            'percentage_difference': percentage_difference,
            'validation_passed': source_count == target_count,
            'validation_time': datetime.now().isoformat(),
        }

        if validation_result['validation_passed']:
            logger.info(f"✓ Row count validation passed for {table_result.source}: {source_count:,} rows")
        else:
            logger.warning(
                f"✗ Row count mismatch for {table_result.source}: "
                f"Source={source_count:,}, Target={target_count:,}, "
                f"Difference={row_difference:+,} ({percentage_difference:+.2f}%)"
            )

        return validation_result

    def validate_tables(self, table_results: Sequence[TableResult]) -> Dict[str, Any]:
        """
        Validate every table of a run.

        Returns:
            Dictionary with per-table results and pass/fail totals
        """
        results = [self.validate_row_count(t) for t in table_results]
        failed = [r['table_name'] for r in results if not r['validation_passed']]
        return {
            'total_tables': len(results),
            'passed_tables': len(results) - len(failed),
            'failed_tables': failed,
            'row_count_results': results,
            'success': not failed,
        }


def generate_report(validation_results: Dict[str, Any], migration_result: Optional[MigrationResult] = None) -> str:
    """
    Render validation results as a plain-text report.

    Args:
        validation_results: Output of MigrationValidator.validate_tables()
        migration_result: Optional run result for the timing header

    Returns:
        Multi-line report
    """
    report_lines: List[str] = [
        "=" * 80,
        "MIGRATION VALIDATION REPORT",
        "=" * 80,
        f"Tables Checked: {validation_results['total_tables']}",
        f"Passed: {validation_results['passed_tables']}",
        f"Failed: {len(validation_results['failed_tables'])}",
    ]
    if migration_result is not None:
        report_lines.append(
            f"Rows Copied: {migration_result.total_rows:,} in {migration_result.elapsed_seconds:.2f}s"
        )
    report_lines.append("-" * 80)

    for result in validation_results['row_count_results']:
        status = "✓ PASS" if result['validation_passed'] else "✗ FAIL"
        if result['validation_passed']:
            report_lines.append(f"{status} | {result['table_name']:<30} | {result['source_count']:>10,} rows")
        else:
            report_lines.append(
                f"{status} | {result['table_name']:<30} | Source: {result['source_count']:>10,} | "
                f"Target: {result['target_count']:>10,} | Diff: {result['row_difference']:>+10,}"
            )

    report_lines.append("=" * 80)
    return "\n".join(report_lines)


def validate_migration(
    source: SourceConnection,
    target: TargetConnection,
    migration_result: MigrationResult,
) -> Dict[str, Any]:
    """
    Convenience function to validate a committed run and log the report.
    """
    validator = MigrationValidator(source, target)
    validation_results = validator.validate_tables(migration_result.tables)
    report = generate_report(validation_results, migration_result)
    logger.info("\n" + report)
    validation_results['report'] = report
    return validation_results
