"""
SQL Server to PostgreSQL Type Mapping Module

This module maps SQL Server column types to PostgreSQL type literals.
The mapping is total: every type name yields a literal, and names that are
not in the table below are passed through unchanged with a warning.
"""

from typing import List, Optional
import logging

from mssql_pg_copy.models import ColumnDescriptor

logger = logging.getLogger(__name__)

# Placeholders are filled from the column's length/precision/scale
TYPE_MAPPING = {
    # Exact Numeric Types
    "bit": "boolean",
    "tinyint": "smallint",  # no 1-byte integer in PostgreSQL
    "smallint": "smallint",
    "int": "integer",
    "bigint": "bigint",
    "decimal": "numeric({precision},{scale})",
    "numeric": "numeric({precision},{scale})",
    "money": "numeric(19,4)",
    "smallmoney": "numeric(10,4)",

    # Approximate Numeric Types
    "float": "double precision",
    "real": "real",

    # Character String Types
    "char": "char({length})",
    "varchar": "varchar({length})",
    "text": "text",

    # Unicode Character String Types
    "nchar": "char({length})",
    "nvarchar": "varchar({length})",
    "ntext": "text",

    # Binary String Types
    "binary": "bytea",
    "varbinary": "bytea",
    "image": "bytea",

    # Date and Time Types
    "date": "date",
    "time": "time",
    "datetime": "timestamp",
    "datetime2": "timestamp",
    "smalldatetime": "timestamp",
    "datetimeoffset": "timestamp with time zone",

    # Other Data Types
    "uniqueidentifier": "uuid",
    "xml": "xml",
    "sql_variant": "text",
    "hierarchyid": "varchar(4000)",
    "timestamp": "bytea",  # SQL Server timestamp is a rowversion
    "rowversion": "bytea",
    "sysname": "varchar(128)",
    "geography": "geography",  # requires PostGIS
    "geometry": "geometry",  # requires PostGIS
}

# Types whose MAX variant (length -1) becomes an unbounded type
UNBOUNDED_TYPES = {
    "char": "text",
    "varchar": "text",
    "nchar": "text",
    "nvarchar": "text",
}


def map_type(
    sql_server_type: str,
    length: Optional[int] = None,
    precision: Optional[int] = None,
    scale: Optional[int] = None,
) -> str:
    """
    Map a SQL Server data type to its PostgreSQL equivalent.

    Args:
        sql_server_type: The SQL Server data type name
        length: CHARACTER_MAXIMUM_LENGTH; -1 means MAX
        precision: NUMERIC_PRECISION for exact numerics
        scale: NUMERIC_SCALE for exact numerics

    Returns:
        The PostgreSQL type literal, never empty
    """
    sql_type = sql_server_type.lower().strip()

    if sql_type not in TYPE_MAPPING:
        if not sql_type:
            logger.warning("Empty SQL Server type name, using text as fallback")
            return "text"
        logger.warning(f"Unknown SQL Server type '{sql_server_type}', passing it through unchanged")
        return sql_server_type.strip()

    # MAX sentinel must be handled before any length formatting
    if length is not None and length < 0 and sql_type in UNBOUNDED_TYPES:
        return UNBOUNDED_TYPES[sql_type]

    pg_type = TYPE_MAPPING[sql_type]

    if "{length}" in pg_type:
        if length:
            pg_type = pg_type.replace("{length}", str(length))
        else:
            pg_type = pg_type.replace("({length})", "")

    if "{precision}" in pg_type:
        if precision is not None and scale is not None:
            pg_type = pg_type.replace("{precision}", str(precision)).replace("{scale}", str(scale))
        else:
            pg_type = pg_type.replace("({precision},{scale})", "")

    return pg_type


def map_column(column: ColumnDescriptor) -> str:
    """Map an introspected column to its PostgreSQL type literal."""
    return map_type(column.source_type, column.length, column.precision, column.scale)


def is_known_type(sql_server_type: str) -> bool:
    """
    Check if a SQL Server type has an explicit mapping.

    Args:
        sql_server_type: The SQL Server data type to check

    Returns:
        True if the type is mapped, False if it would be passed through
    """
    return sql_server_type.lower().strip() in TYPE_MAPPING


def supported_types() -> List[str]:
    """Return the SQL Server type names with an explicit mapping."""
    return list(TYPE_MAPPING.keys())
