"""
This module hosts functions to convert record metadata into table definitions
and the DDL text that creates or widens them.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable, Mapping
from typing import Any

import networkx as nx

from .adapters import DatabaseAdapter, get_adapter
from .errors import InvalidConstraint, SchemaError
from .metadata import IMPLICIT_PRIMARY_KEY, describe, table_name

logger = logging.getLogger(__name__.split(".")[0])

ON_DELETE_ACTIONS = ("NO ACTION", "RESTRICT", "CASCADE", "SET NULL", "SET DEFAULT")

default_adapter = get_adapter("postgresql")


@dataclasses.dataclass(frozen=True)
class Column:
    name: str
    sql_type: str
    nullable: bool = False
    unique: bool = False
    primary_key: bool = False


@dataclasses.dataclass(frozen=True)
class ForeignKey:
    column: str
    ref_table: str
    ref_column: str
    on_delete: str | None = None


@dataclasses.dataclass(frozen=True)
class TableSchema:
    """Table definition derived from a record type. Used only to emit DDL."""

    name: str
    columns: tuple[Column, ...]
    foreign_keys: tuple[ForeignKey, ...] = ()

    @property
    def primary_key(self) -> str | None:
        for column in self.columns:
            if column.primary_key:
                return column.name
        return None

    @property
    def references(self) -> set[str]:
        """Names of the tables this table refers to."""
        return {fk.ref_table for fk in self.foreign_keys}


def validate_on_delete(action: str | None, column: str = "") -> str | None:
    """
    Normalize an ON DELETE action.

    Parameters
    ----------
    action : str or None
        Action as written in the annotation; case and inner whitespace are ignored.
    column : str
        Column name for the error message.

    Returns
    -------
    str or None
        Uppercased action, or None when no action was given.

    Raises
    ------
    InvalidConstraint
        If the action is not one of ``ON_DELETE_ACTIONS``.
    """
    if action is None or not action.strip():
        return None
    normalized = " ".join(action.split()).upper()
    if normalized not in ON_DELETE_ACTIONS:
        raise InvalidConstraint(
            f'Invalid ON DELETE action "{action}" on column {column}. Use one of: {", ".join(ON_DELETE_ACTIONS)}'
        )
    return normalized


def build_schema(record: Any, prefix: str, adapter: DatabaseAdapter | None = None) -> TableSchema:
    """
    Derive the table definition of a record type.

    Foreign key targets are prefixed the same way as the table itself.

    Raises
    ------
    SchemaError
        For an unsupported field type, an empty table name or an invalid ON DELETE action.
    """
    adapter = adapter or default_adapter
    info = describe(record)
    columns = []
    foreign_keys = []
    for descriptor in info.descriptors:
        columns.append(
            Column(
                name=descriptor.column_name,
                sql_type=adapter.python_type_to_sql(descriptor.python_type, descriptor.length),
                nullable=descriptor.is_nullable,
                unique=descriptor.is_unique,
                primary_key=descriptor.is_primary_key,
            )
        )
        if descriptor.foreign_key is not None:
            fk = descriptor.foreign_key
            foreign_keys.append(
                ForeignKey(
                    column=descriptor.column_name,
                    ref_table=prefix + fk.table,
                    ref_column=fk.column,
                    on_delete=validate_on_delete(fk.on_delete, descriptor.column_name),
                )
            )
    return TableSchema(name=table_name(info.record_type, prefix), columns=tuple(columns), foreign_keys=tuple(foreign_keys))


def compile_column(column: Column) -> str:
    sql = f"{column.name} {column.sql_type} {'NULL' if column.nullable else 'NOT NULL'}"
    if column.unique:
        sql += " UNIQUE"
    if column.primary_key:
        sql += " PRIMARY KEY"
    return sql


def compile_foreign_key(fk: ForeignKey) -> str:
    sql = f"FOREIGN KEY ({fk.column}) REFERENCES {fk.ref_table}({fk.ref_column})"
    if fk.on_delete:
        sql += f" ON DELETE {fk.on_delete}"
    return sql


def declare(schema: TableSchema) -> str:
    """
    Compose the CREATE TABLE statement of a table definition.

    When no column is the primary key an ``id UUID PRIMARY KEY`` column is prepended,
    generated by the server on insert.

    Parameters
    ----------
    schema : TableSchema
        Output of :func:`build_schema`.

    Returns
    -------
    str
        ``CREATE TABLE IF NOT EXISTS`` statement.

    Raises
    ------
    SchemaError
        If the table name is empty or an ON DELETE action is invalid.
    """
    if not schema.name:
        raise SchemaError("Table name must not be empty")
    clauses = []
    if schema.primary_key is None:
        clauses.append(f"{IMPLICIT_PRIMARY_KEY} UUID PRIMARY KEY DEFAULT gen_random_uuid()")
    clauses.extend(compile_column(column) for column in schema.columns)
    for fk in schema.foreign_keys:
        # schemas built by hand skip build_schema's validation
        fk = dataclasses.replace(fk, on_delete=validate_on_delete(fk.on_delete, fk.column))
        clauses.append(compile_foreign_key(fk))
    return f"CREATE TABLE IF NOT EXISTS {schema.name} ({', '.join(clauses)})"


def alter(
    existing: Iterable[Mapping[str, Any]], schema: TableSchema, adapter: DatabaseAdapter | None = None
) -> list[str]:
    """
    Compose the ALTER TABLE statements that bring a live table up to a definition.

    Only additive or widening changes are made: missing columns are added, and
    type and nullability differences are altered. Columns are never dropped or renamed.

    Parameters
    ----------
    existing : iterable of mappings
        Rows of information_schema.columns with ``column_name``, ``data_type``,
        ``is_nullable`` and optionally ``character_maximum_length``.
    schema : TableSchema
        Desired table definition.

    Returns
    -------
    list[str]
        Statements in column order; empty when the table already matches.
    """
    adapter = adapter or default_adapter
    live = {row["column_name"]: row for row in existing}
    references = {fk.column: fk for fk in schema.foreign_keys}
    statements = []
    for column in schema.columns:
        prefix = f"ALTER TABLE {schema.name}"
        row = live.get(column.name)
        if row is None:
            sql = f"{prefix} ADD COLUMN {column.name} {column.sql_type} {'NULL' if column.nullable else 'NOT NULL'}"
            if column.unique:
                sql += " UNIQUE"
            fk = references.get(column.name)
            if fk is not None:
                sql += f" REFERENCES {fk.ref_table}({fk.ref_column})"
                if fk.on_delete:
                    sql += f" ON DELETE {validate_on_delete(fk.on_delete, fk.column)}"
            statements.append(sql)
            continue
        if _type_differs(row, column, adapter):
            statements.append(f"{prefix} ALTER COLUMN {column.name} TYPE {column.sql_type}")
        live_nullable = str(row["is_nullable"]).upper() == "YES"
        if live_nullable != column.nullable:
            action = "DROP NOT NULL" if column.nullable else "SET NOT NULL"
            statements.append(f"{prefix} ALTER COLUMN {column.name} {action}")
    return statements


def _type_differs(row: Mapping[str, Any], column: Column, adapter: DatabaseAdapter) -> bool:
    if adapter.normalize_sql_type(column.sql_type) != str(row["data_type"]).lower():
        return True
    declared_length = column.sql_type[column.sql_type.find("(") + 1 : -1] if "(" in column.sql_type else None
    live_length = row.get("character_maximum_length")
    return declared_length is not None and live_length is not None and int(declared_length) != int(live_length)


def dependency_order(schemas: Iterable[TableSchema]) -> list[TableSchema]:
    """
    Order table definitions so that referenced tables come first.

    References to tables outside the given set are ignored; a table may refer
    to itself.

    Raises
    ------
    SchemaError
        If the references form a cycle.
    """
    schemas = list(schemas)
    by_name = {schema.name: schema for schema in schemas}
    graph = nx.DiGraph()
    for schema in schemas:
        graph.add_node(schema.name)
        for ref in schema.references:
            if ref in by_name and ref != schema.name:
                graph.add_edge(ref, schema.name)
    try:
        # sort by name within each generation so the order is deterministic
        order = list(nx.lexicographical_topological_sort(graph))
    except nx.NetworkXUnfeasible:
        cycle = nx.find_cycle(graph)
        raise SchemaError(f"Foreign keys form a cycle: {' -> '.join(edge[0] for edge in cycle)}")
    return [by_name[name] for name in order]
