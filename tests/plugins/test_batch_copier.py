"""
Tests for Batched Table Copy Module

These tests validate batch boundaries, parameter layout, column ordering,
value normalization and error wrapping of BatchCopier.
"""

import pytest
from unittest.mock import MagicMock, Mock
from psycopg2 import sql
from mssql_pg_copy.batch_copier import BatchCopier, build_insert_statement, build_select_statement
from mssql_pg_copy.connections import SourceConnection
from mssql_pg_copy.ddl_generator import DDLGenerator
from mssql_pg_copy.errors import CopyError, IntrospectionError
from mssql_pg_copy.models import ColumnDescriptor, TableDescriptor
from mssql_pg_copy.progress import RecordingProgressObserver
from mssql_pg_copy.schema_introspector import SchemaIntrospector

from .sql_text import render_sql

TARGET = sql.Identifier('public', 'Users')


def make_table(column_names=('Id', 'Name')):
    return TableDescriptor(
        schema='dbo',
        name='Users',
        columns=tuple(ColumnDescriptor(name, 'int') for name in column_names),
    )


def make_introspector(rows, row_count=None):
    """Introspector whose source streams the given rows for any SELECT."""
    cursor = MagicMock()
    cursor.__iter__.return_value = iter(rows)
    conn = Mock()
    conn.cursor.return_value = cursor

    introspector = Mock(spec=SchemaIntrospector)
    introspector.source = SourceConnection(conn)
    introspector.row_count.return_value = len(rows) if row_count is None else row_count
    return introspector, cursor


class TestBuildInsertStatement:
    """Test multi-row INSERT rendering."""

    def test_placeholder_count(self):
        insert = render_sql(build_insert_statement(TARGET, ['a', 'b', 'c'], 4))
        assert insert.count('%s') == 12
        assert insert.count('(%s, %s, %s)') == 4

    def test_single_row(self):
        insert = build_insert_statement(TARGET, ['Id'], 1)
        assert render_sql(insert) == 'INSERT INTO "public"."Users" ("Id") VALUES (%s)'

    def test_composed_from_identifiers_and_placeholders(self):
        """Names and values stay separate tokens; nothing is spliced into the SQL text."""
        insert = build_insert_statement(TARGET, ['Robert"); DROP TABLE x; --'], 1)

        assert isinstance(insert, sql.Composed)
        identifiers = [part for part in insert.seq if isinstance(part, sql.Identifier)]
        assert identifiers[0] == TARGET
        assert render_sql(insert) == (
            'INSERT INTO "public"."Users" ("Robert____DROP_TABLE_x____") VALUES (%s)'
        )

    def test_column_names_sanitized(self):
        insert = build_insert_statement(TARGET, ['line-no', 'Unit Price'], 1)
        assert '("line_no", "Unit_Price")' in render_sql(insert)


class TestBuildSelectStatement:
    """Test source SELECT rendering."""

    def test_plain_columns(self):
        assert build_select_statement(make_table(('Id', 'Name'))) == 'SELECT [Id], [Name] FROM [dbo].[Users]'

    def test_clr_types_are_projected(self):
        table = TableDescriptor('dbo', 'Org', (
            ColumnDescriptor('Node', 'hierarchyid'),
            ColumnDescriptor('Location', 'geography'),
            ColumnDescriptor('Shape', 'GEOMETRY'),
            ColumnDescriptor('Extra', 'sql_variant'),
            ColumnDescriptor('Id', 'int'),
        ))
        assert build_select_statement(table) == (
            'SELECT [Node].ToString() AS [Node], '
            '[Location].STAsBinary() AS [Location], '
            '[Shape].STAsBinary() AS [Shape], '
            'CAST([Extra] AS nvarchar(max)) AS [Extra], '
            '[Id] FROM [dbo].[Org]'
        )


class TestBatchCopier:
    """Test BatchCopier.copy_table()."""

    @pytest.fixture
    def transaction(self):
        return Mock()

    def test_batches_of_1000(self, transaction):
        """2500 rows with batch size 1000 are written as 1000, 1000 and 500."""
        rows = [(i, f"user{i}") for i in range(2500)]
        introspector, _ = make_introspector(rows)
        copier = BatchCopier(introspector, batch_size=1000, observer=RecordingProgressObserver())

        progress = copier.copy_table(make_table(), TARGET, transaction)

        assert progress.processed_rows == 2500
        assert transaction.execute.call_count == 3
        batch_sizes = [len(call.args[1]) // 2 for call in transaction.execute.call_args_list]
        assert batch_sizes == [1000, 1000, 500]

    def test_params_are_flat_row_major(self, transaction):
        rows = [(1, 'a'), (2, 'b'), (3, 'c')]
        introspector, _ = make_introspector(rows)
        copier = BatchCopier(introspector, batch_size=2, observer=RecordingProgressObserver())

        copier.copy_table(make_table(), TARGET, transaction)

        first, second = transaction.execute.call_args_list
        assert first.args[1] == [1, 'a', 2, 'b']
        assert render_sql(first.args[0]).count('%s') == 4
        assert second.args[1] == [3, 'c']
        assert render_sql(second.args[0]) == 'INSERT INTO "public"."Users" ("Id", "Name") VALUES (%s, %s)'

    def test_select_uses_introspected_column_order(self, transaction):
        introspector, cursor = make_introspector([(1, 2, 3)])
        copier = BatchCopier(introspector, observer=RecordingProgressObserver())

        copier.copy_table(make_table(('c', 'a', 'b')), TARGET, transaction)

        cursor.execute.assert_called_once_with('SELECT [c], [a], [b] FROM [dbo].[Users]')
        insert_sql = render_sql(transaction.execute.call_args.args[0])
        assert insert_sql.startswith('INSERT INTO "public"."Users" ("c", "a", "b")')
        cursor.close.assert_called_once()

    def test_hierarchyid_read_as_text_for_varchar_column(self, transaction):
        """The CREATE, SELECT and INSERT for a hierarchyid column agree on a text value."""
        table = TableDescriptor('dbo', 'Org', (
            ColumnDescriptor('Id', 'int'),
            ColumnDescriptor('Node', 'hierarchyid'),
        ))
        ddl = DDLGenerator()
        # ToString() makes the driver return the path as a string
        introspector, cursor = make_introspector([(1, '/1/3/')])
        copier = BatchCopier(introspector, observer=RecordingProgressObserver())

        copier.copy_table(table, ddl.target_reference(table), transaction)

        assert ddl.generate_create(table) == 'CREATE TABLE "public"."Org" ("Id" integer, "Node" varchar(4000))'
        cursor.execute.assert_called_once_with('SELECT [Id], [Node].ToString() AS [Node] FROM [dbo].[Org]')
        insert, params = transaction.execute.call_args.args
        assert render_sql(insert) == 'INSERT INTO "public"."Org" ("Id", "Node") VALUES (%s, %s)'
        assert params == [1, '/1/3/']
        assert all(not isinstance(value, bytes) for value in params)

    def test_empty_table_issues_no_insert(self, transaction):
        introspector, _ = make_introspector([])
        observer = RecordingProgressObserver()
        copier = BatchCopier(introspector, observer=observer)

        assert copier.copy_table(make_table(), TARGET, transaction).processed_rows == 0
        transaction.execute.assert_not_called()
        assert observer.events == []
        assert observer.completed == [('dbo.Users', 0)]

    def test_exact_multiple_of_batch_size(self, transaction):
        introspector, _ = make_introspector([(i, 'x') for i in range(20)])
        copier = BatchCopier(introspector, batch_size=10, observer=RecordingProgressObserver())

        assert copier.copy_table(make_table(), TARGET, transaction).processed_rows == 20
        assert transaction.execute.call_count == 2

    def test_values_normalized(self, transaction):
        rows = [(bytearray(b'\x01\x02'), 'a\x00b'), (None, None)]
        introspector, _ = make_introspector(rows)
        copier = BatchCopier(introspector, observer=RecordingProgressObserver())

        copier.copy_table(make_table(), TARGET, transaction)

        assert transaction.execute.call_args.args[1] == [b'\x01\x02', 'ab', None, None]

    def test_progress_reported(self, transaction):
        introspector, _ = make_introspector([(i, 'x') for i in range(100)])
        observer = RecordingProgressObserver()
        copier = BatchCopier(introspector, batch_size=30, observer=observer)

        progress = copier.copy_table(make_table(), TARGET, transaction)

        assert observer.percentages == list(range(5, 105, 5))
        assert progress.total_rows == 100
        assert progress.processed_rows == 100

    def test_returns_estimate_separately_from_rows_copied(self, transaction):
        introspector, _ = make_introspector([(i, 'x') for i in range(12)], row_count=10)
        copier = BatchCopier(introspector, observer=RecordingProgressObserver())

        progress = copier.copy_table(make_table(), TARGET, transaction)

        assert progress.total_rows == 10
        assert progress.processed_rows == 12
        assert not hasattr(copier, 'last_progress')

    def test_insert_failure_raises_copy_error(self, transaction):
        transaction.execute.side_effect = RuntimeError("value too long for type character varying(10)")
        introspector, cursor = make_introspector([(1, 'a')])
        copier = BatchCopier(introspector, observer=RecordingProgressObserver())

        with pytest.raises(CopyError) as exc_info:
            copier.copy_table(make_table(), TARGET, transaction)

        assert exc_info.value.table == 'dbo.Users'
        assert 'value too long' in str(exc_info.value)
        cursor.close.assert_called_once()

    def test_source_read_failure_raises_copy_error(self, transaction):
        introspector, cursor = make_introspector([])
        cursor.__iter__.side_effect = RuntimeError("connection reset")
        copier = BatchCopier(introspector, observer=RecordingProgressObserver())

        with pytest.raises(CopyError, match="connection reset"):
            copier.copy_table(make_table(), TARGET, transaction)

    def test_row_arity_mismatch(self, transaction):
        introspector, _ = make_introspector([(1, 'a', 'extra')])
        copier = BatchCopier(introspector, observer=RecordingProgressObserver())

        with pytest.raises(CopyError, match="expected 2"):
            copier.copy_table(make_table(), TARGET, transaction)
        transaction.execute.assert_not_called()

    def test_row_count_failure_propagates(self, transaction):
        introspector, _ = make_introspector([])
        introspector.row_count.side_effect = IntrospectionError("denied", operation="row count", table="dbo.Users")
        copier = BatchCopier(introspector, observer=RecordingProgressObserver())

        with pytest.raises(IntrospectionError):
            copier.copy_table(make_table(), TARGET, transaction)

    def test_table_without_columns(self, transaction):
        introspector, _ = make_introspector([])
        copier = BatchCopier(introspector, observer=RecordingProgressObserver())

        with pytest.raises(CopyError, match="no columns"):
            copier.copy_table(make_table(()), TARGET, transaction)

    def test_invalid_batch_size(self):
        with pytest.raises(ValueError):
            BatchCopier(Mock(spec=SchemaIntrospector), batch_size=0)
