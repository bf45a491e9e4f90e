"""
Two-table joins with table-qualified column aliases.

Each requested column is selected as ``table.column AS "table.column"`` so that
columns sharing a name on both sides stay distinguishable in the result.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
from collections.abc import Mapping, Sequence
from typing import Any

import pandas

from .builder import JOIN_KEYWORDS, QueryBuilder, Statement
from .condition import Condition, validate_identifier
from .errors import MissingJoinType, QueryBuildError
from .metadata import describe, table_name

logger = logging.getLogger(__name__.split(".")[0])


class JoinType(enum.Enum):
    INNER = "INNER"
    LEFT = "LEFT"
    RIGHT = "RIGHT"
    FULL = "FULL"

    @property
    def keyword(self) -> str:
        return JOIN_KEYWORDS[self.value]

    @classmethod
    def coerce(cls, join_type: "JoinType | str | None") -> "JoinType":
        """
        Accept a JoinType or its case-insensitive name (``"full outer"`` is FULL).

        Raises
        ------
        MissingJoinType
            If no join type is given.
        QueryBuildError
            If the name is not a join type.
        """
        if join_type is None or join_type == "":
            raise MissingJoinType("A join type is required: INNER, LEFT, RIGHT or FULL")
        if isinstance(join_type, cls):
            return join_type
        name = " ".join(str(join_type).split()).upper().removesuffix(" JOIN").removesuffix(" OUTER")
        try:
            return cls(name)
        except ValueError:
            raise QueryBuildError(f"Unknown join type {join_type!r}; use one of {', '.join(JOIN_KEYWORDS)}")


@dataclasses.dataclass
class JoinSpec:
    """
    Description of a join between two record types.

    Parameters
    ----------
    main, join : type
        Record types of the two tables.
    main_columns, join_columns : list[str]
        Columns selected from each side.
    join_condition : str
        Raw boolean SQL expression over both tables, e.g.
        ``"gpo_user.id = gpo_permission.user_id"``.
    join_type : JoinType or str
        INNER, LEFT, RIGHT or FULL. There is no default.
    where : list
        Conditions on table-qualified columns.
    column_mappings : dict[str, str]
        ``"table.column"`` to destination field (or column) name, consulted
        first when joining into records.
    """

    main: type
    join: type
    main_columns: list[str] = dataclasses.field(default_factory=list)
    join_columns: list[str] = dataclasses.field(default_factory=list)
    join_condition: str = ""
    join_type: JoinType | str | None = None
    where: list[Any] = dataclasses.field(default_factory=list)
    column_mappings: dict[str, str] = dataclasses.field(default_factory=dict)


def _aliased(table: str, columns: Sequence[str], record: type) -> list[str]:
    info = describe(record)
    expressions = []
    for column in columns:
        validate_identifier(column, "column")
        if column not in info:
            raise QueryBuildError(f"Column {column} is not defined on {info.record_type.__name__}")
        expressions.append(f'{table}.{column} AS "{table}.{column}"')
    return expressions


def join_statement(spec: JoinSpec, prefix: str) -> Statement:
    """
    Compose the SELECT of a join.

    Raises
    ------
    MissingJoinType
        If ``spec.join_type`` is not set.
    QueryBuildError
        If a column is unknown, no column is selected, or the join condition is empty.
    """
    join_type = JoinType.coerce(spec.join_type)
    if not spec.join_condition.strip():
        raise QueryBuildError("A join condition is required")
    main_table = table_name(spec.main, prefix)
    join_table = table_name(spec.join, prefix)
    fields = _aliased(main_table, spec.main_columns, spec.main) + _aliased(join_table, spec.join_columns, spec.join)
    if not fields:
        raise QueryBuildError("A join must select at least one column")
    builder = QueryBuilder().select(fields).from_(main_table).join(join_table, spec.join_condition, join_type.value)
    for condition in spec.where:
        builder.where(Condition.coerce(condition))
    return builder.build()._replace(operation=f"{join_type.value.lower()} join")


def join_rows(columns: Sequence[str], rows: Sequence[Sequence[Any]]) -> list[dict[str, Any]]:
    """Result rows as dicts keyed by ``"table.column"``."""
    return [dict(zip(columns, row)) for row in rows]


def join_frame(columns: Sequence[str], rows: Sequence[Sequence[Any]]) -> pandas.DataFrame:
    """
    Result rows as a DataFrame with ``"table.column"`` column labels.

    Columns keep the driver values as objects, so NULL stays None.
    """
    return pandas.DataFrame(list(rows), columns=list(columns), dtype=object)


def resolve_mappings(spec: JoinSpec, record_type: type, prefix: str, columns: Sequence[str]) -> dict[str, str]:
    """
    Map result columns of a join to fields of a destination record type.

    Each destination column is resolved from an explicit ``column_mappings``
    entry, else from the main table if that declares the column, else from the
    join table. Only columns present in the result are mapped.

    Returns
    -------
    dict[str, str]
        Result column alias to destination field name.
    """
    info = describe(record_type)
    available = set(columns)
    mapping: dict[str, str] = {}
    claimed: set[str] = set()

    for alias, target in spec.column_mappings.items():
        field_name = info.column_map.get(target, target)
        if field_name not in {f.name for f in dataclasses.fields(info.record_type)}:
            raise QueryBuildError(f"Mapping target {target} is not a field of {info.record_type.__name__}")
        if alias in available:
            mapping[alias] = field_name
            claimed.add(field_name)
        else:
            logger.warning(f"Mapped column {alias} is not in the join result")

    sides = [(table_name(spec.main, prefix), describe(spec.main)), (table_name(spec.join, prefix), describe(spec.join))]
    for descriptor in info.descriptors:
        if descriptor.field_name in claimed:
            continue
        for table, side in sides:
            alias = f"{table}.{descriptor.column_name}"
            if descriptor.column_name in side and alias in available and alias not in mapping:
                mapping[alias] = descriptor.field_name
                break
    return mapping
