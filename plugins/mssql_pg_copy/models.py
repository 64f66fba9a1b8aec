"""
Data model shared by the introspection, DDL and copy modules.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class ColumnDescriptor:
    """A source column as read from INFORMATION_SCHEMA.COLUMNS."""

    name: str
    source_type: str
    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None


@dataclass(frozen=True)
class TableDescriptor:
    """A source base table with its columns in ordinal order."""

    schema: str
    name: str
    columns: Tuple[ColumnDescriptor, ...] = ()

    @property
    def qualified_name(self) -> str:
        return f"{self.schema}.{self.name}"

    @property
    def column_names(self) -> List[str]:
        return [col.name for col in self.columns]


@dataclass
class SchemaCollection:
    """Tables grouped by source schema. Used for inventory reporting only."""

    name: str
    tables: List[TableDescriptor] = field(default_factory=list)


@dataclass(frozen=True)
class TableSummary:
    """Size and dimensions of a source table."""

    schema: str
    name: str
    size: str
    row_count: int
    column_count: int

    @property
    def dimensions(self) -> str:
        return f"{self.row_count} rows x {self.column_count} columns"


@dataclass(frozen=True)
class TableResult:
    """Outcome of copying one table."""

    source_schema: str
    source_table: str
    target_schema: str
    target_table: str
    rows_copied: int
    total_rows: int
    elapsed_seconds: float

    @property
    def source(self) -> str:
        return f"{self.source_schema}.{self.source_table}"

    @property
    def target(self) -> str:
        return f"{self.target_schema}.{self.target_table}"


@dataclass
class MigrationResult:
    """Outcome of a committed copy run."""

    tables: List[TableResult] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def total_rows(self) -> int:
        return sum(t.rows_copied for t in self.tables)
