"""
Tests for Identifier Handling and DDL Generation

These tests check that table and column names are rendered identically in
DROP, CREATE and INSERT statements, and that name collisions are caught.
"""

import pytest
from mssql_pg_copy.batch_copier import build_insert_statement, build_select_statement
from mssql_pg_copy.ddl_generator import DDLGenerator
from mssql_pg_copy.errors import DDLError
from mssql_pg_copy.identifiers import (
    quote_identifier,
    sanitize_identifier,
    source_identifier,
    source_table,
    target_identifier,
    target_table,
    target_table_sql,
)
from mssql_pg_copy.models import ColumnDescriptor, TableDescriptor

from .sql_text import render_sql


def make_table(schema='dbo', name='Users', columns=None):
    if columns is None:
        columns = [
            ColumnDescriptor('Id', 'int'),
            ColumnDescriptor('DisplayName', 'nvarchar', length=40),
        ]
    return TableDescriptor(schema=schema, name=name, columns=tuple(columns))


class TestIdentifiers:
    """Test identifier sanitization and quoting."""

    def test_hyphen_becomes_underscore(self):
        assert sanitize_identifier("order-items") == "order_items"

    def test_space_and_punctuation(self):
        assert sanitize_identifier("Unit Price") == "Unit_Price"
        assert sanitize_identifier("Order#ID") == "Order_ID"

    def test_case_preserved(self):
        assert sanitize_identifier("CreationDate") == "CreationDate"

    def test_quote_doubles_embedded_quotes(self):
        assert quote_identifier('a"b') == '"a""b"'

    def test_target_identifier(self):
        assert target_identifier("order-items") == '"order_items"'

    def test_target_table(self):
        assert target_table("public", "order-items") == '"public"."order_items"'

    def test_target_table_sql_matches_ddl_rendering(self):
        identifier = target_table_sql("public", "order-items")
        assert identifier.strings == ("public", "order_items")
        assert render_sql(identifier) == target_table("public", "order-items")

    def test_source_identifier_escapes_brackets(self):
        assert source_identifier("weird]name") == "[weird]]name]"
        assert source_table("dbo", "Users") == "[dbo].[Users]"


class TestDDLGenerator:
    """Test CREATE/DROP statement generation."""

    @pytest.fixture
    def generator(self):
        return DDLGenerator()

    def test_generate_create(self, generator):
        ddl = generator.generate_create(make_table())
        assert ddl == 'CREATE TABLE "public"."Users" ("Id" integer, "DisplayName" varchar(40))'

    def test_generate_create_preserves_column_order(self, generator):
        table = make_table(columns=[
            ColumnDescriptor('Zeta', 'int'),
            ColumnDescriptor('Alpha', 'bit'),
            ColumnDescriptor('Mid', 'money'),
        ])
        ddl = generator.generate_create(table)
        assert ddl.index('"Zeta"') < ddl.index('"Alpha"') < ddl.index('"Mid"')

    def test_generate_create_target_schema(self):
        ddl = DDLGenerator(target_schema='stackoverflow').generate_create(make_table())
        assert ddl.startswith('CREATE TABLE "stackoverflow"."Users" (')

    def test_generate_create_without_columns_fails(self, generator):
        with pytest.raises(DDLError) as exc_info:
            generator.generate_create(make_table(columns=[]))
        assert exc_info.value.table == 'dbo.Users'

    def test_generate_drop(self, generator):
        assert generator.generate_drop(make_table()) == 'DROP TABLE IF EXISTS "public"."Users" CASCADE'

    def test_generate_drop_without_cascade(self, generator):
        assert generator.generate_drop(make_table(), cascade=False) == 'DROP TABLE IF EXISTS "public"."Users"'

    def test_generate_create_schema(self):
        assert DDLGenerator('sales').generate_create_schema() == 'CREATE SCHEMA IF NOT EXISTS "sales"'

    def test_hyphenated_name_identical_in_all_statements(self, generator):
        """DROP, CREATE and INSERT all reference the same target table."""
        table = make_table(name='order-items', columns=[
            ColumnDescriptor('line-no', 'int'),
            ColumnDescriptor('qty', 'int'),
        ])
        expected = '"public"."order_items"'

        drop = generator.generate_drop(table)
        create = generator.generate_create(table)
        insert = render_sql(build_insert_statement(generator.target_reference(table), table.column_names, 1))

        assert expected in drop
        assert expected in create
        assert insert.startswith(f'INSERT INTO {expected} ("line_no", "qty")')
        assert '"line_no" integer' in create

    def test_select_and_insert_column_order_match(self, generator):
        table = make_table(columns=[
            ColumnDescriptor('b', 'int'),
            ColumnDescriptor('a', 'int'),
            ColumnDescriptor('c', 'int'),
        ])
        select = build_select_statement(table)
        insert = render_sql(build_insert_statement(generator.target_reference(table), table.column_names, 2))

        assert select == 'SELECT [b], [a], [c] FROM [dbo].[Users]'
        assert insert == 'INSERT INTO "public"."Users" ("b", "a", "c") VALUES (%s, %s, %s), (%s, %s, %s)'

    def test_column_collision_fails(self, generator):
        table = make_table(columns=[
            ColumnDescriptor('unit-price', 'money'),
            ColumnDescriptor('unit price', 'money'),
        ])
        with pytest.raises(DDLError, match="both map to 'unit_price'"):
            generator.generate_create(table)

    def test_table_collision_across_schemas(self, generator):
        tables = [make_table('dbo', 'Users'), make_table('archive', 'Users')]
        with pytest.raises(DDLError) as exc_info:
            generator.check_table_collisions(tables)
        assert exc_info.value.operation == 'plan tables'
        assert 'dbo.Users' in str(exc_info.value)
        assert 'archive.Users' in str(exc_info.value)

    def test_table_collision_after_sanitizing(self, generator):
        tables = [make_table('dbo', 'order-items'), make_table('dbo', 'order items')]
        with pytest.raises(DDLError):
            generator.check_table_collisions(tables)

    def test_distinct_tables_pass(self, generator):
        generator.check_table_collisions([make_table('dbo', 'Users'), make_table('dbo', 'Posts')])

    def test_target_table_name(self, generator):
        assert generator.target_table_name(make_table(name='order-items')) == 'order_items'
