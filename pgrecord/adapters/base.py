"""
Abstract base class for database backend adapters.

An adapter isolates the SQL dialect details the rest of pgrecord relies on:
connection setup, placeholder style, column types,
information-schema queries and error translation.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Any, Sequence

from ..errors import QueryBuildError

# Statements are composed with numbered placeholders ($1, $2, ...). Quoted
# literals are matched first so their contents are never rewritten.
_placeholder_pattern = re.compile(r"""'(?:[^']|'')*'|"(?:[^"]|"")*"|\$(\d+)|%""")


class DatabaseAdapter(ABC):
    """
    Abstract base class for database backend adapters.
    """

    # =========================================================================
    # Connection Management
    # =========================================================================

    @abstractmethod
    def connect(self, host: str, port: int, user: str, password: str | None, **kwargs: Any) -> Any:
        """
        Establish database connection.

        Parameters
        ----------
        host : str
            Database server hostname.
        port : int
            Database server port.
        user : str
            Username for authentication.
        password : str or None
            Password for authentication.
        **kwargs : Any
            Additional backend-specific connection parameters.

        Returns
        -------
        Any
            Database connection object (backend-specific).
        """
        ...

    @abstractmethod
    def close(self, connection: Any) -> None:
        """Close the database connection."""
        ...

    @abstractmethod
    def ping(self, connection: Any) -> bool:
        """Return True if the connection is alive."""
        ...

    @property
    @abstractmethod
    def default_port(self) -> int:
        ...

    @property
    @abstractmethod
    def backend(self) -> str:
        ...

    # =========================================================================
    # SQL Syntax
    # =========================================================================

    @property
    @abstractmethod
    def parameter_placeholder(self) -> str:
        """Placeholder expected by the driver, e.g. ``%s``."""
        ...

    def format_query(self, query: str, args: Sequence[Any] = ()) -> tuple[str, tuple | None]:
        """
        Translate numbered placeholders into the driver's positional style.

        ``$n`` may appear in any order and more than once; the returned
        arguments follow the order of appearance. A query without numbered
        placeholders is returned unchanged, so raw statements may use the
        driver's own style.

        Parameters
        ----------
        query : str
            SQL with ``$1``, ``$2``, ... placeholders.
        args : Sequence
            Arguments, ``args[0]`` bound to ``$1``.

        Returns
        -------
        tuple[str, tuple | None]
            Driver-ready query and arguments (None when there is nothing to bind).

        Raises
        ------
        QueryBuildError
            If a placeholder refers past the end of ``args``.
        """
        args = tuple(args)
        if not any(match.group(1) for match in _placeholder_pattern.finditer(query)):
            return query, (args or None)

        ordered: list[Any] = []
        placeholder = self.parameter_placeholder

        def substitute(match: re.Match) -> str:
            number = match.group(1)
            if number is None:
                # literal percent signs must be escaped once parameters are bound
                return match.group(0).replace("%", "%%")
            index = int(number) - 1
            if not 0 <= index < len(args):
                raise QueryBuildError(f"Placeholder ${number} has no argument ({len(args)} supplied)")
            ordered.append(args[index])
            return placeholder

        return _placeholder_pattern.sub(substitute, query), tuple(ordered)

    # =========================================================================
    # Type Mapping
    # =========================================================================

    @abstractmethod
    def python_type_to_sql(self, python_type: Any, length: int | None = None) -> str:
        """
        Column type for a Python field type.

        Raises
        ------
        SchemaError
            If the type has no column equivalent.
        """
        ...

    @abstractmethod
    def normalize_sql_type(self, sql_type: str) -> str:
        """Canonical spelling of a declared type, comparable with information_schema output."""
        ...

    # =========================================================================
    # Introspection (queries use numbered placeholders)
    # =========================================================================

    @abstractmethod
    def database_exists_sql(self) -> str:
        ...

    @abstractmethod
    def table_exists_sql(self) -> str:
        ...

    @abstractmethod
    def list_tables_sql(self) -> str:
        ...

    @abstractmethod
    def get_columns_sql(self) -> str:
        ...

    # =========================================================================
    # Transactions
    # =========================================================================

    def start_transaction_sql(self) -> str:
        return "BEGIN"

    def commit_sql(self) -> str:
        return "COMMIT"

    def rollback_sql(self) -> str:
        return "ROLLBACK"

    # =========================================================================
    # Error Translation
    # =========================================================================

    @abstractmethod
    def translate_error(self, error: Exception, operation: str = "query") -> Exception:
        """
        Translate a driver error into a pgrecord exception.

        Parameters
        ----------
        error : Exception
            Exception raised by the driver.
        operation : str
            Logical name of the attempted operation, used in the message in
            place of the SQL text.

        Returns
        -------
        Exception
            An ExecutionError subclass.
        """
        ...
