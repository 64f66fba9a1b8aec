"""
Migration Error Types

Every failure in a copy run is raised as a MigrationError subclass that
carries the operation and table it happened in. The run is all-or-nothing,
so none of these are retried; the orchestrator rolls back and re-raises.
"""

from typing import Optional


class MigrationError(Exception):
    """Base class for all copy-run failures."""

    def __init__(self, message: str, operation: Optional[str] = None, table: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.table = table

    def __str__(self) -> str:
        if self.operation and self.table:
            return f"{self.operation} failed for {self.table}: {self.message}"
        if self.operation:
            return f"{self.operation} failed: {self.message}"
        return self.message


class ConfigurationError(MigrationError):
    """Missing or malformed run configuration."""


class DatabaseConnectionError(MigrationError):
    """Could not open a source or target connection. Raised before any DDL/DML."""


class IntrospectionError(MigrationError):
    """A metadata query against the source catalog failed."""


class TypeMappingError(MigrationError):
    """
    Reserved for type mapping failures.

    map_type() is total (unknown types pass through), so this is never
    raised by the package itself.
    """


class DDLError(MigrationError):
    """A DROP/CREATE statement could not be generated or executed."""


class CopyError(MigrationError):
    """Reading source rows or inserting a batch into the target failed."""


class CommitError(MigrationError):
    """The final commit of the run transaction failed."""
