"""
The Connector: create/read/update/delete, joins and table management for
record types on one connection.
"""

from __future__ import annotations

import collections.abc
import dataclasses
import logging
from typing import Any, Sequence

import pandas

from . import declare as ddl
from .builder import Statement, delete_statement, insert_statement, select_statement, update_statement
from .condition import Condition, validate_identifier
from .connection import Connection, Executor, Transaction
from .errors import PgRecordError, QueryBuildError, ScanError, ShapeError
from .join import JoinSpec, JoinType, join_frame, join_rows, join_statement, resolve_mappings
from .materialize import materialize_row, materialize_rows
from .metadata import describe, table_name
from .query import QueryConfig
from .settings import DEFAULT_TABLE_PREFIX, config

logger = logging.getLogger(__name__.split(".")[0])


class Connector:
    """
    Operations on record types stored in one database.

    Every operation accepts an optional ``transaction``. When given, the
    statements run on it and the caller decides whether to commit or roll back;
    otherwise they run on the connection in autocommit mode.

    Args:
        connection: Open Connection.
        table_prefix: Prefix of every table name derived from a record type.

    Example:
        >>> connector = Connector(pgrecord.conn(), table_prefix="orm_")
        >>> connector.create_tables(User, Company, Permission)
        >>> connector.insert(User(id=uuid.uuid4(), email="a@example.com", name="A"))
        >>> admins = connector.find_all(User, QueryConfig(conditions=[("user_type", "=", "admin")]))
    """

    def __init__(self, connection: Connection, table_prefix: str = DEFAULT_TABLE_PREFIX) -> None:
        self.connection = connection
        self.table_prefix = table_prefix

    @classmethod
    def from_config(cls, settings: Any = None) -> Connector:
        """
        Connect with the database settings and table prefix of ``settings``
        (a PgRecordSettings or ConfigWrapper; defaults to ``pgrecord.config``).
        """
        settings = config if settings is None else settings
        get = settings.__getitem__ if isinstance(settings, collections.abc.Mapping) else _attribute_getter(settings)
        connection = Connection(
            host=get("database.host"),
            user=get("database.user"),
            password=get("database.password"),
            port=get("database.port"),
            dbname=get("database.dbname"),
            sslmode=get("database.sslmode"),
        )
        return cls(connection, table_prefix=get("table_prefix"))

    def __repr__(self) -> str:
        return f"Connector(prefix={self.table_prefix!r}) on {self.connection!r}"

    def _executor(self, transaction: Transaction | None) -> Executor:
        return self.connection if transaction is None else transaction

    def _query(self, statement: Statement, transaction: Transaction | None, operation: str) -> Any:
        return self._executor(transaction).query(statement.sql, statement.args, operation=operation)

    def _execute(self, statement: Statement, transaction: Transaction | None, operation: str) -> int:
        return self._executor(transaction).execute(statement.sql, statement.args, operation=operation)

    def table_name(self, record: Any) -> str:
        """Table of a record type or instance."""
        return table_name(record, self.table_prefix)

    def begin(self) -> Transaction:
        """Open a transaction on the underlying connection."""
        return self.connection.begin()

    # ---------- database management
    def create_database(self, name: str) -> bool:
        """
        Create a database on the server unless it already exists.

        CREATE DATABASE cannot run in a transaction block, so the statement runs
        directly on the autocommit connection.

        Returns
        -------
        bool
            True if the database was created, False if it already existed.

        Raises
        ------
        QueryBuildError
            If ``name`` is not a plain identifier.
        PgRecordError
            If a transaction is open on the connection.
        """
        if "." in validate_identifier(name, "database"):
            raise QueryBuildError(f"Invalid database name {name!r}")
        if self.connection.in_transaction:
            raise PgRecordError(f"Cannot create database {name} inside a transaction")
        cursor = self.connection.query(
            self.connection.adapter.database_exists_sql(), (name,), operation="database exists"
        )
        with cursor:
            if cursor.fetchone() is not None:
                return False
        self.connection.execute(f"CREATE DATABASE {name}", operation=f"create database {name}")
        logger.info(f"Created database {name}")
        return True

    # ---------- table management
    def create_table(self, record_type: type, transaction: Transaction | None = None) -> None:
        """
        Create the table of a record type if it does not exist.

        Raises
        ------
        SchemaError
            If the definition is invalid; nothing is executed in that case.
        """
        schema = ddl.build_schema(record_type, self.table_prefix, self.connection.adapter)
        sql = ddl.declare(schema)
        self._executor(transaction).execute(sql, operation=f"create table {schema.name}")
        logger.info(f"Created table {schema.name}")

    def create_tables(self, *record_types: type, transaction: Transaction | None = None) -> None:
        """Create tables, referenced tables first. All definitions are validated before any DDL runs."""
        schemas = [ddl.build_schema(t, self.table_prefix, self.connection.adapter) for t in record_types]
        statements = [(schema.name, ddl.declare(schema)) for schema in ddl.dependency_order(schemas)]
        for name, sql in statements:
            self._executor(transaction).execute(sql, operation=f"create table {name}")
            logger.info(f"Created table {name}")

    def migrate_table(self, record_type: type, transaction: Transaction | None = None) -> list[str]:
        """
        Create the table of a record type, or add and widen its columns if it exists.

        Columns are never dropped or renamed.

        Returns
        -------
        list[str]
            Statements executed.
        """
        schema = ddl.build_schema(record_type, self.table_prefix, self.connection.adapter)
        if not self.table_exists(schema.name, transaction=transaction):
            sql = ddl.declare(schema)
            self._executor(transaction).execute(sql, operation=f"create table {schema.name}")
            logger.info(f"Created table {schema.name}")
            return [sql]
        statements = ddl.alter(self.list_columns(schema.name, transaction=transaction), schema, self.connection.adapter)
        for sql in statements:
            self._executor(transaction).execute(sql, operation=f"alter table {schema.name}")
        if statements:
            logger.info(f"Altered table {schema.name}: {len(statements)} change(s)")
        return statements

    def migrate_tables(self, *record_types: type, transaction: Transaction | None = None) -> dict[str, list[str]]:
        """Migrate several record types, referenced tables first."""
        schemas = [ddl.build_schema(t, self.table_prefix, self.connection.adapter) for t in record_types]
        by_name = {self.table_name(t): t for t in record_types}
        return {
            schema.name: self.migrate_table(by_name[schema.name], transaction=transaction)
            for schema in ddl.dependency_order(schemas)
        }

    def drop_table(self, record: Any, cascade: bool = False, transaction: Transaction | None = None) -> None:
        """Drop the table of a record type (or a table given by name) if it exists."""
        name = record if isinstance(record, str) else self.table_name(record)
        sql = f"DROP TABLE IF EXISTS {validate_identifier(name, 'table')}{' CASCADE' if cascade else ''}"
        self._executor(transaction).execute(sql, operation=f"drop table {name}")
        logger.info(f"Dropped table {name}")

    def drop_tables(self, *record_types: type, cascade: bool = False, transaction: Transaction | None = None) -> None:
        """Drop tables, referencing tables first."""
        schemas = [ddl.build_schema(t, self.table_prefix, self.connection.adapter) for t in record_types]
        for schema in reversed(ddl.dependency_order(schemas)):
            self.drop_table(schema.name, cascade=cascade, transaction=transaction)

    def table_exists(self, name: str, transaction: Transaction | None = None) -> bool:
        cursor = self._executor(transaction).query(
            self.connection.adapter.table_exists_sql(), (name,), operation="table exists"
        )
        with cursor:
            return cursor.fetchone() is not None

    def list_tables(self, transaction: Transaction | None = None) -> list[str]:
        """Tables carrying this connector's prefix."""
        cursor = self._executor(transaction).query(
            self.connection.adapter.list_tables_sql(), (self.table_prefix,), operation="list tables"
        )
        with cursor:
            return [row[0] for row in cursor.fetchall()]

    def list_columns(self, name: str, transaction: Transaction | None = None) -> list[dict[str, Any]]:
        """information_schema rows describing the columns of a table."""
        cursor = self._executor(transaction).query(
            self.connection.adapter.get_columns_sql(), (name,), operation="list columns"
        )
        with cursor:
            names = [d[0] for d in cursor.description]
            return [dict(zip(names, row)) for row in cursor.fetchall()]

    # ---------- create/read/update/delete
    def insert(self, record: Any, transaction: Transaction | None = None) -> int:
        """
        Insert a record.

        Returns
        -------
        int
            Affected-row count.
        """
        table = self.table_name(record)
        return self._execute(insert_statement(record, table), transaction, f"insert into {table}")

    def find_first(self, record: Any, key: Any, transaction: Transaction | None = None) -> Any:
        """
        Fetch one record by primary key value or by conditions.

        Parameters
        ----------
        record : type or dataclass instance
            Record type, or an instance to fill in place.
        key : Any
            Primary key value, a single condition, or a list or tuple of
            conditions.

        Returns
        -------
        The record, or None when no row matches.
        """
        info = describe(record)
        if isinstance(key, Condition) or (isinstance(key, tuple) and key and isinstance(key[0], str)):
            conditions = [key]
        elif isinstance(key, (list, tuple)):
            conditions = list(key)
        else:
            conditions = [Condition(info.primary_key, "=", key)]
        table = self.table_name(record)
        statement = select_statement(QueryConfig(table=table, conditions=conditions, limit=1))
        operation = f"find first in {table}"
        with self._query(statement, transaction, operation) as cursor:
            columns = [d[0] for d in cursor.description]
            row = cursor.fetchone()
        if row is None:
            return None
        try:
            return materialize_row(columns, row, record)
        except ScanError as error:
            raise error.suggest(operation)

    def find_all(
        self,
        record_type: type,
        query: QueryConfig | None = None,
        into: list | None = None,
        transaction: Transaction | None = None,
    ) -> list:
        """
        Fetch the records matching a query configuration.

        Parameters
        ----------
        record_type : type
            Record type of the rows.
        query : QueryConfig, optional
            Conditions, ordering, paging and search; ``table`` defaults to the
            record type's table.
        into : list, optional
            Destination to append to; it is also returned.

        Returns
        -------
        list
            ``into`` (or a new list) with one fresh record per row appended.

        Raises
        ------
        ShapeError
            If ``into`` is not a list of ``record_type`` records.
        QueryBuildError
            If ``order_by``, ``fields`` or ``search_fields`` name unknown columns.
        """
        if not isinstance(record_type, type):
            raise ShapeError(f"find_all needs a record type, got {record_type!r}")
        info = describe(record_type)
        if into is None:
            into = []
        elif not isinstance(into, collections.abc.MutableSequence) or isinstance(into, (str, bytearray)):
            raise ShapeError(f"Destination must be a list of {record_type.__name__}, got {type(into).__name__}")
        elif any(not isinstance(item, record_type) for item in into):
            raise ShapeError(f"Destination holds records other than {record_type.__name__}")

        query = QueryConfig() if query is None else query
        for name in [query.order_by, *query.fields, *(query.search_fields if query.search_active else ())]:
            if name and name not in info:
                raise QueryBuildError(f"Column {name} is not defined on {record_type.__name__}")
        if not query.table:
            query = dataclasses.replace(query, table=self.table_name(record_type))

        statement = select_statement(query)
        operation = f"find all in {query.table}"
        with self._query(statement, transaction, operation) as cursor:
            columns = [d[0] for d in cursor.description]
            rows = cursor.fetchall()
        try:
            into.extend(materialize_rows(columns, rows, record_type))
        except ScanError as error:
            raise error.suggest(operation)
        return into

    def query(self, record_type: type, query: QueryConfig | None = None, transaction: Transaction | None = None) -> list:
        """Alias of :meth:`find_all` returning a new list."""
        return self.find_all(record_type, query, transaction=transaction)

    def update(self, record: Any, conditions: Sequence[Any] | None = None, transaction: Transaction | None = None) -> int:
        """
        Write every non-key column of a record.

        Without conditions the row with the record's primary key is updated.

        Returns
        -------
        int
            Affected-row count; a matching row counts even when nothing changed.
        """
        statement = update_statement(record, self.table_name(record), conditions)
        return self._execute(statement, transaction, f"update {self.table_name(record)}")

    def delete(
        self, record_type: Any, conditions: Sequence[Any] | None = None, transaction: Transaction | None = None
    ) -> int:
        """
        Delete the rows matching conditions. No conditions deletes every row.

        Returns
        -------
        int
            Affected-row count.
        """
        table = self.table_name(record_type)
        return self._execute(delete_statement(table, conditions), transaction, f"delete from {table}")

    def delete_by_id(self, record_type: Any, key: Any, transaction: Transaction | None = None) -> int:
        """Delete the row with the given primary key value."""
        info = describe(record_type)
        return self.delete(record_type, [Condition(info.primary_key, "=", key)], transaction=transaction)

    # ---------- raw statements
    def custom_query(self, sql: str, *args: Any, transaction: Transaction | None = None) -> list[dict[str, Any]]:
        """
        Run a raw SELECT and return its rows as dicts.

        ``sql`` uses ``$1``-style placeholders bound to ``args``.
        """
        with self._executor(transaction).query(sql, args, operation="custom query") as cursor:
            if cursor.description is None:
                return []
            columns = [d[0] for d in cursor.description]
            return [dict(zip(columns, row)) for row in cursor.fetchall()]

    def custom_mutate(self, sql: str, *args: Any, transaction: Transaction | None = None) -> int:
        """Run a raw statement and return its affected-row count."""
        return self._executor(transaction).execute(sql, args, operation="custom mutate")

    # ---------- joins
    def join(
        self, spec: JoinSpec, transaction: Transaction | None = None, as_frame: bool = False
    ) -> list[dict[str, Any]] | pandas.DataFrame:
        """
        Run a join and return rows keyed by ``"table.column"``.

        Parameters
        ----------
        spec : JoinSpec
            Join description; ``join_type`` is required.
        as_frame : bool
            Return a pandas DataFrame instead of a list of dicts.

        Raises
        ------
        MissingJoinType
            If ``spec.join_type`` is not set; nothing is executed.
        """
        statement = join_statement(spec, self.table_prefix)
        with self._query(statement, transaction, statement.operation) as cursor:
            columns = [d[0] for d in cursor.description]
            rows = cursor.fetchall()
        return join_frame(columns, rows) if as_frame else join_rows(columns, rows)

    def join_into(
        self, spec: JoinSpec, record_type: type, into: list | None = None, transaction: Transaction | None = None
    ) -> list:
        """
        Run a join and materialize each row as a ``record_type`` record.

        Destination fields are filled from ``spec.column_mappings`` first, then
        from same-named columns of the main table, then of the join table.

        Raises
        ------
        ShapeError
            If ``into`` is not a list of ``record_type`` records.
        """
        if not isinstance(record_type, type):
            raise ShapeError(f"join_into needs a record type, got {record_type!r}")
        if into is None:
            into = []
        elif not isinstance(into, collections.abc.MutableSequence) or any(
            not isinstance(item, record_type) for item in into
        ):
            raise ShapeError(f"Destination must be a list of {record_type.__name__}")
        statement = join_statement(spec, self.table_prefix)
        with self._query(statement, transaction, statement.operation) as cursor:
            columns = [d[0] for d in cursor.description]
            rows = cursor.fetchall()
        mapping = resolve_mappings(spec, record_type, self.table_prefix, columns)
        try:
            into.extend(materialize_rows(columns, rows, record_type, column_map=mapping))
        except ScanError as error:
            raise error.suggest(statement.operation)
        return into

    def inner_join(self, spec: JoinSpec, **kwargs: Any) -> Any:
        return self.join(dataclasses.replace(spec, join_type=JoinType.INNER), **kwargs)

    def left_join(self, spec: JoinSpec, **kwargs: Any) -> Any:
        return self.join(dataclasses.replace(spec, join_type=JoinType.LEFT), **kwargs)

    def right_join(self, spec: JoinSpec, **kwargs: Any) -> Any:
        return self.join(dataclasses.replace(spec, join_type=JoinType.RIGHT), **kwargs)

    def full_join(self, spec: JoinSpec, **kwargs: Any) -> Any:
        return self.join(dataclasses.replace(spec, join_type=JoinType.FULL), **kwargs)


def _attribute_getter(settings: Any):
    def get(key: str) -> Any:
        value = settings
        for part in key.split("."):
            value = getattr(value, part)
        return value

    return get
