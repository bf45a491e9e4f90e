"""
Conditions and their translation into WHERE clauses with numbered placeholders.

Every value is bound as a positional argument; only validated identifiers and
operators appear in the clause text.
"""

from __future__ import annotations

import dataclasses
import re
from collections.abc import Iterable, Sequence
from typing import Any

from .errors import QueryBuildError
from .values import Value

STANDARD_OPERATORS = frozenset(
    {"=", "!=", "<>", ">", "<", ">=", "<=", "LIKE", "NOT LIKE", "ILIKE", "NOT ILIKE", "IN", "NOT IN"}
)
LIKE_OPERATORS = frozenset({"LIKE", "NOT LIKE", "ILIKE", "NOT ILIKE"})
SET_OPERATORS = frozenset({"IN", "NOT IN"})

# caller-supplied comparison tokens: symbolic operators and a few keyword comparisons
_custom_operator = re.compile(r"[<>=!~*@&|#^?+]{1,3}|IS( NOT)? DISTINCT FROM|(NOT )?SIMILAR TO")
_identifier = re.compile(r"[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?")


def validate_identifier(name: str, kind: str = "field") -> str:
    """
    Check that a field or table name is a plain, optionally table-qualified, identifier.

    Raises
    ------
    QueryBuildError
        If the name could carry anything other than an identifier.
    """
    if not isinstance(name, str) or not _identifier.fullmatch(name):
        raise QueryBuildError(f"Invalid {kind} name {name!r}")
    return name


def normalize_operator(operator: str) -> str:
    """
    Uppercase an operator and collapse its whitespace.

    Raises
    ------
    QueryBuildError
        If the operator is neither a standard operator nor an acceptable comparison token.
    """
    normalized = " ".join(str(operator).split()).upper()
    if normalized in STANDARD_OPERATORS or _custom_operator.fullmatch(normalized):
        return normalized
    raise QueryBuildError(f"Unsupported condition operator {operator!r}")


@dataclasses.dataclass(frozen=True)
class Condition:
    """
    One comparison: ``field operator value``.

    Conditions are combined with AND in the order given. ``IN`` and ``NOT IN``
    require a non-empty sequence; the LIKE operators match the value as a
    substring.

    Parameters
    ----------
    field : str
        Column name, optionally qualified as ``table.column``.
    operator : str
        Comparison operator, case-insensitive.
    value : Any
        Scalar, sequence or :class:`~pgrecord.values.Value`.
    """

    field: str
    operator: str
    value: Any

    def __post_init__(self) -> None:
        validate_identifier(self.field)
        operator = normalize_operator(self.operator)
        value = Value.of(self.value)
        if operator in SET_OPERATORS:
            if not value.is_sequence:
                raise QueryBuildError(f"{operator} on {self.field} requires a sequence, got {self.value!r}")
            if not len(value):
                raise QueryBuildError(f"{operator} on {self.field} requires a non-empty sequence")
        elif value.is_sequence:
            raise QueryBuildError(f"Operator {operator} on {self.field} does not accept a sequence")
        elif value.is_null and operator in LIKE_OPERATORS:
            raise QueryBuildError(f"{operator} on {self.field} requires a pattern, got None")
        object.__setattr__(self, "operator", operator)
        object.__setattr__(self, "value", value)

    @classmethod
    def coerce(cls, condition: Any) -> "Condition":
        """Accept a Condition or a ``(field, operator, value)`` tuple."""
        if isinstance(condition, cls):
            return condition
        if isinstance(condition, str):
            raise QueryBuildError(f"Expected a Condition or a (field, operator, value) tuple, got {condition!r}")
        try:
            field, operator, value = condition
        except (TypeError, ValueError):
            raise QueryBuildError(f"Expected a Condition or a (field, operator, value) tuple, got {condition!r}")
        return cls(field, operator, value)


def make_condition(
    conditions: Iterable[Any] = (),
    search_fields: Sequence[str] = (),
    search_text: str = "",
    args: Sequence[Any] = (),
) -> tuple[str, list[Any]]:
    """
    Translate conditions and an optional text search into a WHERE clause.

    Parameters
    ----------
    conditions : iterable
        Condition objects or ``(field, operator, value)`` tuples, AND-ed in order.
    search_fields : sequence of str
        Fields searched for ``search_text``; the matches are OR-ed together in
        their own parenthesized group.
    search_text : str
        Substring to search for. An empty string disables the search.
    args : sequence
        Arguments already bound by the enclosing statement. Placeholder
        numbering continues after them.

    Returns
    -------
    tuple[str, list]
        The clause without the ``WHERE`` keyword (empty when there is nothing
        to filter) and a new list holding ``args`` followed by the arguments of
        this clause.

    Examples
    --------
    >>> make_condition([("age", ">", 30), ("role", "IN", ["a", "b"])], args=["x"])
    ('age > $2 AND role IN ($3,$4)', ['x', 30, 'a', 'b'])
    """
    args = list(args)
    parts = []

    def bind(value: Any) -> str:
        args.append(value)
        return f"${len(args)}"

    for condition in conditions:
        condition = Condition.coerce(condition)
        field, operator, value = condition.field, condition.operator, condition.value
        if operator in SET_OPERATORS:
            placeholders = ",".join(bind(item.bind()) for item in value)
            parts.append(f"{field} {operator} ({placeholders})")
        elif value.is_null and operator in ("=", "!=", "<>"):
            parts.append(f"{field} IS {'NULL' if operator == '=' else 'NOT NULL'}")
        elif operator in LIKE_OPERATORS:
            parts.append(f"{field} {operator} {bind(f'%{value.bind()}%')}")
        else:
            parts.append(f"{field} {operator} {bind(value.bind())}")

    if search_text and search_fields:
        group = " OR ".join(f"{validate_identifier(field)} LIKE {bind(f'%{search_text}%')}" for field in search_fields)
        parts.append(f"({group})")

    return " AND ".join(parts), args
