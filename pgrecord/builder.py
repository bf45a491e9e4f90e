"""
Composition of SELECT, INSERT, UPDATE and DELETE statements.

Statements use numbered placeholders (``$1``, ``$2``, ...) and carry their
arguments alongside the text; values never appear in the SQL itself.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any, NamedTuple

from .condition import Condition, make_condition, validate_identifier
from .errors import QueryBuildError, UnmappedColumn
from .metadata import describe
from .query import QueryConfig
from .settings import config

logger = logging.getLogger(__name__.split(".")[0])

JOIN_KEYWORDS = {
    "INNER": "INNER JOIN",
    "LEFT": "LEFT JOIN",
    "RIGHT": "RIGHT JOIN",
    "FULL": "FULL OUTER JOIN",
}


class Statement(NamedTuple):
    """SQL text with its ordered arguments and the logical operation it performs."""

    operation: str
    sql: str
    args: tuple


class QueryBuilder:
    """
    Fluent composer of a single statement.

    Every method returns the builder; :meth:`build` produces the statement.

    Examples
    --------
    >>> (QueryBuilder().select("id", "name").from_("gpo_user")
    ...     .where("user_type", "=", "admin").desc("name").limit(5).build())
    Statement(operation='select', sql='SELECT id, name FROM gpo_user WHERE user_type = $1 ORDER BY name DESC LIMIT $2', args=('admin', 5))
    """

    def __init__(self) -> None:
        self._kind: str | None = None
        self._table: str | None = None
        self._fields: list[str] = []
        self._joins: list[str] = []
        self._conditions: list[Condition] = []
        self._search_fields: list[str] = []
        self._search_text = ""
        self._group_by: list[str] = []
        self._having = ""
        self._order: list[str] = []
        self._limit = 0
        self._offset = 0
        self._default_limit = 0
        self._values: dict[str, Any] = {}
        self._record: Any = None

    def __repr__(self) -> str:
        return f"QueryBuilder({self._kind or 'empty'} {self._table or '?'})"

    def _set_kind(self, kind: str) -> None:
        if self._kind is not None and self._kind != kind:
            raise QueryBuildError(f"Cannot turn a {self._kind.upper()} into a {kind.upper()}")
        self._kind = kind

    # ---------- SELECT
    def select(self, *fields: str | Sequence[str]) -> "QueryBuilder":
        """Project the given SQL expressions; no fields selects ``*``."""
        self._set_kind("select")
        for field in fields:
            self._fields.extend([field] if isinstance(field, str) else field)
        return self

    def from_(self, table: str) -> "QueryBuilder":
        self._table = validate_identifier(table, "table")
        return self

    def join(self, table: str, on: str, kind: str = "INNER") -> "QueryBuilder":
        """
        Add a join. ``on`` is a raw boolean SQL expression over both tables.

        Raises
        ------
        QueryBuildError
            If ``kind`` is not INNER, LEFT, RIGHT or FULL.
        """
        keyword = JOIN_KEYWORDS.get(str(kind).upper())
        if keyword is None:
            raise QueryBuildError(f"Unknown join type {kind!r}; use one of {', '.join(JOIN_KEYWORDS)}")
        self._joins.append(f"{keyword} {validate_identifier(table, 'table')} ON {on}")
        return self

    def left_join(self, table: str, on: str) -> "QueryBuilder":
        return self.join(table, on, "LEFT")

    def right_join(self, table: str, on: str) -> "QueryBuilder":
        return self.join(table, on, "RIGHT")

    def full_join(self, table: str, on: str) -> "QueryBuilder":
        return self.join(table, on, "FULL")

    # ---------- restrictions
    def where(self, field: str | Condition, operator: str | None = None, value: Any = None) -> "QueryBuilder":
        """Add a condition, given as a Condition or as field, operator and value."""
        if isinstance(field, Condition):
            self._conditions.append(field)
        elif operator is None:
            raise QueryBuildError(f"Condition on {field} needs an operator")
        else:
            self._conditions.append(Condition(field, operator, value))
        return self

    def where_in(self, field: str, values: Sequence[Any]) -> "QueryBuilder":
        return self.where(field, "IN", values)

    def where_not_in(self, field: str, values: Sequence[Any]) -> "QueryBuilder":
        return self.where(field, "NOT IN", values)

    def where_like(self, field: str, text: str) -> "QueryBuilder":
        return self.where(field, "LIKE", text)

    def search(self, fields: Sequence[str], text: str) -> "QueryBuilder":
        """Match rows where any of ``fields`` contains ``text``. Empty text disables the search."""
        self._search_fields = [validate_identifier(field) for field in fields]
        self._search_text = text or ""
        return self

    # ---------- grouping, ordering and paging
    def group_by(self, *fields: str) -> "QueryBuilder":
        self._group_by.extend(validate_identifier(field) for field in fields)
        return self

    def having(self, expression: str) -> "QueryBuilder":
        self._having = expression
        return self

    def order_by(self, field: str, direction: str = "ASC") -> "QueryBuilder":
        direction = str(direction).upper()
        if direction not in ("ASC", "DESC"):
            raise QueryBuildError(f"Order direction must be ASC or DESC, got {direction!r}")
        self._order.append(f"{validate_identifier(field)} {direction}")
        return self

    def asc(self, field: str) -> "QueryBuilder":
        return self.order_by(field, "ASC")

    def desc(self, field: str) -> "QueryBuilder":
        return self.order_by(field, "DESC")

    def limit(self, limit: int) -> "QueryBuilder":
        self._limit = _non_negative("limit", limit)
        return self

    def offset(self, offset: int) -> "QueryBuilder":
        self._offset = _non_negative("offset", offset)
        return self

    def paginate(self, default_limit: int | None = None) -> "QueryBuilder":
        """Apply a default page size when no explicit limit is set."""
        self._default_limit = _non_negative(
            "page size", config["default_page_size"] if default_limit is None else default_limit
        )
        return self

    # ---------- INSERT
    def insert(self, values: Mapping[str, Any] | None = None) -> "QueryBuilder":
        """Start an INSERT of ``values``, a mapping of column to value."""
        self._set_kind("insert")
        for column, value in (values or {}).items():
            self._values[validate_identifier(column, "column")] = value
        return self

    def insert_record(self, record: Any, columns: Sequence[str] | None = None) -> "QueryBuilder":
        """
        Start an INSERT of a record's column values.

        Parameters
        ----------
        record : dataclass instance
            Record to read values from.
        columns : sequence of str, optional
            Columns to insert; defaults to every column of the record type.

        Raises
        ------
        UnmappedColumn
            If a column has no backing field on the record type.
        """
        info = describe(record)
        values = {}
        for column in info.columns if columns is None else columns:
            field_name = info.column_map.get(column)
            if field_name is None:
                raise UnmappedColumn(f"Column {column} has no field on {info.record_type.__name__}")
            values[column] = getattr(record, field_name)
        return self.insert(values)

    def into(self, table: str) -> "QueryBuilder":
        return self.from_(table)

    # ---------- UPDATE
    def update(self, table: str) -> "QueryBuilder":
        self._set_kind("update")
        return self.from_(table)

    def set(self, column: str, value: Any) -> "QueryBuilder":
        self._values[validate_identifier(column, "column")] = value
        return self

    def set_record(self, record: Any) -> "QueryBuilder":
        """
        Set every non-key column from a record.

        When the statement has no conditions at build time, the record's
        primary key value restricts it to that record.
        """
        info = describe(record)
        for descriptor in info.descriptors:
            if not descriptor.is_primary_key:
                self.set(descriptor.column_name, getattr(record, descriptor.field_name))
        self._record = record
        return self

    # ---------- DELETE
    def delete_from(self, table: str) -> "QueryBuilder":
        self._set_kind("delete")
        return self.from_(table)

    # ---------- composition
    def _where_clause(self, args: Sequence[Any] = ()) -> tuple[str, list[Any]]:
        clause, args = make_condition(self._conditions, self._search_fields, self._search_text, args)
        return (f" WHERE {clause}" if clause else ""), args

    def build(self) -> Statement:
        """
        Compose the statement.

        Raises
        ------
        QueryBuildError
            If the statement kind or table is missing, or an INSERT/UPDATE has no values.
        """
        if self._kind is None:
            raise QueryBuildError("No statement kind: call select, insert, update or delete_from first")
        if not self._table:
            raise QueryBuildError(f"{self._kind.upper()} statement has no table")
        return getattr(self, f"_build_{self._kind}")()

    def _build_select(self) -> Statement:
        sql = f"SELECT {', '.join(self._fields) or '*'} FROM {self._table}"
        if self._joins:
            sql += " " + " ".join(self._joins)
        where, args = self._where_clause()
        sql += where
        if self._group_by:
            sql += f" GROUP BY {', '.join(self._group_by)}"
        if self._having:
            sql += f" HAVING {self._having}"
        if self._order:
            sql += f" ORDER BY {', '.join(self._order)}"
        if self._limit:
            args.append(self._limit)
            sql += f" LIMIT ${len(args)}"
        elif self._default_limit:
            sql += f" LIMIT {int(self._default_limit)}"
        if self._offset:
            args.append(self._offset)
            sql += f" OFFSET ${len(args)}"
        return Statement("select", sql, tuple(args))

    def _build_insert(self) -> Statement:
        if not self._values:
            raise QueryBuildError(f"INSERT into {self._table} has no values")
        columns = ", ".join(self._values)
        placeholders = ", ".join(f"${i}" for i in range(1, len(self._values) + 1))
        return Statement(
            "insert",
            f"INSERT INTO {self._table} ({columns}) VALUES ({placeholders})",
            tuple(self._values.values()),
        )

    def _build_update(self) -> Statement:
        if not self._values:
            raise QueryBuildError(f"UPDATE of {self._table} sets no columns")
        args = list(self._values.values())
        assignments = ", ".join(f"{column} = ${i}" for i, column in enumerate(self._values, start=1))
        if self._record is not None and not self._conditions:
            self.where(_primary_key_condition(self._record))
        where, args = self._where_clause(args)
        if not where:
            logger.warning(f"UPDATE of {self._table} has no conditions and affects every row")
        return Statement("update", f"UPDATE {self._table} SET {assignments}{where}", tuple(args))

    def _build_delete(self) -> Statement:
        where, args = self._where_clause()
        if not where:
            logger.warning(f"DELETE from {self._table} has no conditions and removes every row")
        return Statement("delete", f"DELETE FROM {self._table}{where}", tuple(args))


def _non_negative(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"The {name} must be an integer")
    if value < 0:
        raise QueryBuildError(f"The {name} must not be negative, got {value}")
    return value


def _primary_key_condition(record: Any) -> Condition:
    info = describe(record)
    key = info.pk_descriptor
    if key is None:
        raise QueryBuildError(
            f"{info.record_type.__name__} has no field for primary key {info.primary_key}; pass explicit conditions"
        )
    return Condition(key.column_name, "=", getattr(record, key.field_name))


def select_statement(query: QueryConfig, default_page_size: int | None = None) -> Statement:
    """
    Compose the SELECT described by a query configuration.

    Parameters
    ----------
    query : QueryConfig
        Table, projection, conditions, ordering, paging and search.
    default_page_size : int, optional
        Limit used when pagination is allowed but no limit is set. Defaults to
        ``config["default_page_size"]``.
    """
    builder = QueryBuilder().select([validate_identifier(field) for field in query.fields]).from_(query.table)
    for condition in query.conditions:
        builder.where(Condition.coerce(condition))
    if query.search_active:
        builder.search(query.search_fields, query.search_text)
    if query.group_by:
        builder.group_by(*query.group_by)
    if query.having:
        builder.having(query.having)
    if query.order_by:
        builder.order_by(query.order_by, "DESC" if query.descending else "ASC")
    if query.limit:
        builder.limit(query.limit)
    elif query.allow_pagination:
        builder.paginate(default_page_size)
    if query.offset:
        builder.offset(query.offset)
    return builder.build()


def insert_statement(record: Any, table: str, columns: Sequence[str] | None = None) -> Statement:
    """INSERT of a record's columns into ``table``."""
    return QueryBuilder().insert_record(record, columns).into(table).build()


def update_statement(record: Any, table: str, conditions: Sequence[Any] | None = None) -> Statement:
    """
    UPDATE of every non-key column of ``record``.

    Without conditions the statement is restricted to the record's primary key.
    """
    builder = QueryBuilder().update(table).set_record(record)
    for condition in conditions or ():
        builder.where(Condition.coerce(condition))
    return builder.build()


def delete_statement(table: str, conditions: Sequence[Any] | None = None) -> Statement:
    """DELETE restricted by ``conditions``; no conditions deletes every row."""
    builder = QueryBuilder().delete_from(table)
    for condition in conditions or ():
        builder.where(Condition.coerce(condition))
    return builder.build()
