"""
Exception classes for the pgrecord library.

The hierarchy separates failures detected while deriving metadata or building
statements (raised before anything reaches the database) from failures reported
by the database driver during execution.
"""

from __future__ import annotations


# --- Top Level ---
class PgRecordError(Exception):
    """Base class for errors specific to pgrecord internal operation."""

    def suggest(self, *args: object) -> "PgRecordError":
        """
        Regenerate the exception with additional arguments.

        Parameters
        ----------
        *args : object
            Additional arguments to append to the exception.

        Returns
        -------
        PgRecordError
            A new exception of the same type with the additional arguments.
        """
        return self.__class__(*(self.args + args))


# --- Second Level ---
class MetadataError(PgRecordError):
    """Malformed column annotation or an unusable record type."""


class SchemaError(PgRecordError):
    """Invalid table definition: bad table name, unsupported column type, dependency cycle."""


class QueryBuildError(PgRecordError):
    """A statement could not be composed from the supplied configuration."""


class ExecutionError(PgRecordError):
    """The database driver reported a failure while executing a statement."""


class ShapeError(PgRecordError):
    """A destination argument is not a growable sequence of the expected record type."""


# --- Third Level: SchemaErrors ---
class InvalidConstraint(SchemaError):
    """Unsupported ON DELETE action in a foreign key annotation."""


# --- Third Level: QueryBuildErrors ---
class MissingJoinType(QueryBuildError):
    """A join was requested without naming INNER, LEFT, RIGHT or FULL."""


class UnmappedColumn(QueryBuildError):
    """A projected column has no backing field on the record type."""


# --- Third Level: ExecutionErrors ---
class DuplicateError(ExecutionError):
    """An insert or update violated a unique or primary key."""


class IntegrityError(ExecutionError):
    """A foreign key or NOT NULL constraint was violated."""


class MissingTableError(ExecutionError):
    """Statement against a table that does not exist."""


class UnknownColumnError(ExecutionError):
    """Statement referenced a column that does not exist."""


class QuerySyntaxError(ExecutionError):
    """The server rejected the statement text."""


class AccessError(ExecutionError):
    """User access error: insufficient privileges."""


class LostConnectionError(ExecutionError):
    """Loss of server connection."""


class ScanError(ExecutionError):
    """A result value could not be converted to the type of its target field."""
