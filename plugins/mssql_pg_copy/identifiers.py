"""
Identifier handling for generated SQL.

Source and target identifiers are sanitized and quoted here and nowhere
else. DDL text goes through target_identifier() and DML is composed from
target_table_sql()/target_columns_sql(); both sanitize the same way, so a
table name is rendered identically in DROP, CREATE and INSERT statements.
"""

import re
from typing import Iterable

from psycopg2 import sql

_UNSAFE_CHARS = re.compile(r'[^\w]', re.UNICODE)


def sanitize_identifier(name: str) -> str:
    """
    Replace characters that are not valid in an unquoted PostgreSQL identifier.

    Anything other than letters, digits and underscores (hyphens, spaces,
    punctuation) becomes an underscore. Case is preserved since all target
    identifiers are quoted.

    Examples:
        >>> sanitize_identifier("order-items")
        'order_items'
        >>> sanitize_identifier("Unit Price")
        'Unit_Price'
    """
    return _UNSAFE_CHARS.sub('_', name)


def quote_identifier(identifier: str) -> str:
    """
    Quote a PostgreSQL identifier.

    Embedded double quotes are doubled, the result is always wrapped in
    double quotes to keep mixed case and reserved words intact.
    """
    escaped = identifier.replace('"', '""')
    return f'"{escaped}"'


def target_identifier(name: str) -> str:
    """Sanitize then quote a name for use in PostgreSQL statements."""
    return quote_identifier(sanitize_identifier(name))


def target_table(schema: str, table: str) -> str:
    """Qualified, quoted target table reference."""
    return f"{target_identifier(schema)}.{target_identifier(table)}"


def target_table_sql(schema: str, table: str) -> sql.Identifier:
    """Qualified target table as a psycopg2 identifier, for composed DML."""
    return sql.Identifier(sanitize_identifier(schema), sanitize_identifier(table))


def target_columns_sql(columns: Iterable[str]) -> sql.Composed:
    return sql.SQL(', ').join([sql.Identifier(sanitize_identifier(col)) for col in columns])


def source_identifier(name: str) -> str:
    """Bracket-quote a SQL Server identifier, doubling any closing bracket."""
    escaped = name.replace(']', ']]')
    return f"[{escaped}]"


def source_table(schema: str, table: str) -> str:
    return f"{source_identifier(schema)}.{source_identifier(table)}"
