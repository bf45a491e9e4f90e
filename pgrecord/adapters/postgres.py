"""
PostgreSQL database adapter for pgrecord.

This module provides PostgreSQL-specific implementations for type mapping,
information-schema queries, error translation, and connection management.
"""

from __future__ import annotations

import datetime
import decimal
import re
import uuid
from typing import Any

import numpy as np
import psycopg2 as client
import psycopg2.extras
from psycopg2.extensions import AsIs, register_adapter

from .. import errors
from .base import DatabaseAdapter

MAX_VARCHAR_LENGTH = 255

# Python field types → PostgreSQL column types (str is handled separately)
CORE_TYPE_MAP = {
    int: "INTEGER",
    float: "REAL",
    bool: "BOOLEAN",
    uuid.UUID: "UUID",
    datetime.datetime: "TIMESTAMP",
    datetime.date: "DATE",
    datetime.timedelta: "INTERVAL",
    decimal.Decimal: "NUMERIC",
    bytes: "BYTEA",
}

# Declared type names → information_schema.columns.data_type
SQL_TYPE_NAMES = {
    "VARCHAR": "character varying",
    "TEXT": "text",
    "INTEGER": "integer",
    "REAL": "real",
    "BOOLEAN": "boolean",
    "UUID": "uuid",
    "TIMESTAMP": "timestamp without time zone",
    "DATE": "date",
    "INTERVAL": "interval",
    "NUMERIC": "numeric",
    "BYTEA": "bytea",
}


class PostgreSQLAdapter(DatabaseAdapter):
    """PostgreSQL database adapter implementation."""

    # =========================================================================
    # Connection Management
    # =========================================================================

    def connect(self, host: str, port: int, user: str, password: str | None, **kwargs: Any) -> Any:
        """
        Establish PostgreSQL connection.

        Parameters
        ----------
        host : str
            PostgreSQL server hostname.
        port : int
            PostgreSQL server port.
        user : str
            Username for authentication.
        password : str or None
            Password for authentication.
        **kwargs : Any
            Additional PostgreSQL-specific parameters:
            - dbname: Database name
            - sslmode: SSL mode ('disable', 'allow', 'prefer', 'require')
            - connect_timeout: Connection timeout in seconds

        Returns
        -------
        psycopg2.connection
            PostgreSQL connection object.
        """
        conn = client.connect(
            host=host,
            port=port,
            user=user,
            password=password,
            dbname=kwargs.get("dbname") or "postgres",
            sslmode=kwargs.get("sslmode") or "prefer",
            connect_timeout=kwargs.get("connect_timeout", 10),
        )
        # transactions are opened explicitly by Connection.begin()
        conn.autocommit = True

        psycopg2.extras.register_uuid(conn_or_curs=conn)
        self._register_numpy_adapters()

        return conn

    def _register_numpy_adapters(self) -> None:
        """
        Register psycopg2 adapters for numpy types.

        Record fields holding numpy scalars can then be bound directly.
        """
        register_adapter(np.bool_, lambda x: AsIs(str(bool(x)).upper()))
        for np_type in (np.int8, np.int16, np.int32, np.int64, np.uint8, np.uint16, np.uint32, np.uint64):
            register_adapter(np_type, lambda x: AsIs(int(x)))
        for np_ftype in (np.float16, np.float32, np.float64):
            register_adapter(np_ftype, lambda x: AsIs(repr(float(x))))

    def close(self, connection: Any) -> None:
        """Close the PostgreSQL connection."""
        connection.close()

    def ping(self, connection: Any) -> bool:
        """
        Check if PostgreSQL connection is alive.

        Returns
        -------
        bool
            True if connection is alive.
        """
        if connection is None or connection.closed:
            return False
        try:
            with connection.cursor() as cursor:
                cursor.execute("SELECT 1")
        except client.Error:
            return False
        return True

    @property
    def default_port(self) -> int:
        """PostgreSQL default port 5432."""
        return 5432

    @property
    def backend(self) -> str:
        """Backend identifier: 'postgresql'."""
        return "postgresql"

    # =========================================================================
    # SQL Syntax
    # =========================================================================

    @property
    def parameter_placeholder(self) -> str:
        """PostgreSQL/psycopg2 uses %s placeholders."""
        return "%s"

    # =========================================================================
    # Type Mapping
    # =========================================================================

    def python_type_to_sql(self, python_type: Any, length: int | None = None) -> str:
        """
        Convert a Python field type to a PostgreSQL column type.

        Parameters
        ----------
        python_type : type
            Field type with ``Optional`` already removed.
        length : int, optional
            Declared length of a text column.

        Returns
        -------
        str
            ``VARCHAR(n)`` for text up to 255 characters, ``TEXT`` above that,
            otherwise the entry of ``CORE_TYPE_MAP``.

        Raises
        ------
        SchemaError
            If the type has no PostgreSQL equivalent.
        """
        if python_type is str:
            if length is None:
                return f"VARCHAR({MAX_VARCHAR_LENGTH})"
            return f"VARCHAR({length})" if length <= MAX_VARCHAR_LENGTH else "TEXT"
        try:
            return CORE_TYPE_MAP[python_type]
        except (KeyError, TypeError):
            name = getattr(python_type, "__name__", repr(python_type))
            raise errors.SchemaError(f"Unsupported field type {name}")

    def normalize_sql_type(self, sql_type: str) -> str:
        """
        Spell a declared type the way information_schema reports it.

        Examples
        --------
        >>> PostgreSQLAdapter().normalize_sql_type("VARCHAR(30)")
        'character varying'
        """
        base = re.match(r"\s*([A-Za-z ]+)", sql_type).group(1).strip().upper()
        return SQL_TYPE_NAMES.get(base, base.lower())

    # =========================================================================
    # Introspection
    # =========================================================================

    def database_exists_sql(self) -> str:
        """Query returning one row when database $1 exists on the server."""
        return "SELECT 1 FROM pg_database WHERE datname = $1"

    def table_exists_sql(self) -> str:
        """Query returning one row when table $1 exists in the public schema."""
        return (
            "SELECT 1 FROM information_schema.tables "
            "WHERE table_schema = 'public' AND table_name = $1"
        )

    def list_tables_sql(self) -> str:
        """Query to list base tables in the public schema whose name starts with $1."""
        return (
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = 'public' AND table_type = 'BASE TABLE' "
            "AND starts_with(table_name, $1) "
            "ORDER BY table_name"
        )

    def get_columns_sql(self) -> str:
        """Query to get column definitions of table $1."""
        return (
            "SELECT column_name, data_type, is_nullable, character_maximum_length "
            "FROM information_schema.columns "
            "WHERE table_schema = 'public' AND table_name = $1 "
            "ORDER BY ordinal_position"
        )

    # =========================================================================
    # Error Translation
    # =========================================================================

    def translate_error(self, error: Exception, operation: str = "query") -> Exception:
        """
        Translate PostgreSQL error to pgrecord exception.

        Parameters
        ----------
        error : Exception
            PostgreSQL exception (typically psycopg2 error).
        operation : str, optional
            Logical operation name included in the message.

        Returns
        -------
        Exception
            ExecutionError subclass carrying the driver's message.
        """
        message = f"{operation} failed: {str(error).strip()}"

        # Reference: https://www.postgresql.org/docs/current/errcodes-appendix.html
        match getattr(error, "pgcode", None):
            # Integrity constraint violations
            case "23505":  # unique_violation
                return errors.DuplicateError(message)
            case "23503" | "23502" | "23514":  # foreign_key, not_null, check
                return errors.IntegrityError(message)

            # Syntax errors
            case "42601":  # syntax_error
                return errors.QuerySyntaxError(message)

            # Undefined errors
            case "42P01":  # undefined_table
                return errors.MissingTableError(message)
            case "42703":  # undefined_column
                return errors.UnknownColumnError(message)

            # Connection errors
            case "08006" | "08003" | "08000" | "57P01":
                return errors.LostConnectionError(message)

            # Access errors
            case "42501":  # insufficient_privilege
                return errors.AccessError(message)

            case None if isinstance(error, (client.OperationalError, client.InterfaceError)):
                return errors.LostConnectionError(message)

            case _:
                return errors.ExecutionError(message)
