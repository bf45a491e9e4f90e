"""
Query configuration consumed by the statement builder, and the adapter that
fills it from HTTP query-string parameters.
"""

from __future__ import annotations

import collections.abc
import dataclasses
from typing import Any
from urllib.parse import parse_qs

from .condition import Condition, validate_identifier
from .errors import QueryBuildError


@dataclasses.dataclass
class QueryConfig:
    """
    Description of one SELECT.

    Parameters
    ----------
    table : str
        Table to read. The connector fills it in from the record type when empty.
    fields : list[str]
        Projected columns; empty selects ``*``.
    conditions : list
        Condition objects or ``(field, operator, value)`` tuples, AND-ed in order.
    order_by : str
        Column to order by; empty for no ordering.
    descending : bool
        Order descending instead of ascending.
    limit, offset : int
        Page size and start; 0 means unset.
    allow_pagination : bool
        When True and no limit is set, the default page size applies.
    allow_search : bool
        Enables the text search over ``search_fields``.
    search_fields : list[str]
        Columns searched for ``search_text``; matches are OR-ed together.
    search_text : str
        Substring to search for.
    group_by : list[str]
        GROUP BY columns.
    having : str
        Raw HAVING expression, used with ``group_by``.

    Examples
    --------
    >>> QueryConfig(conditions=[("user_type", "=", "admin")], order_by="name", limit=5)
    """

    table: str = ""
    fields: list[str] = dataclasses.field(default_factory=list)
    conditions: list[Any] = dataclasses.field(default_factory=list)
    order_by: str = ""
    descending: bool = False
    limit: int = 0
    offset: int = 0
    allow_pagination: bool = False
    allow_search: bool = False
    search_fields: list[str] = dataclasses.field(default_factory=list)
    search_text: str = ""
    group_by: list[str] = dataclasses.field(default_factory=list)
    having: str = ""

    def __post_init__(self) -> None:
        for name in ("limit", "offset"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise TypeError(f"QueryConfig {name} must be an integer")
            if value < 0:
                raise QueryBuildError(f"QueryConfig {name} must not be negative, got {value}")
        if isinstance(self.fields, str) or isinstance(self.search_fields, str) or isinstance(self.group_by, str):
            raise TypeError("QueryConfig fields, search_fields and group_by must be lists of column names")
        if self.order_by:
            validate_identifier(self.order_by)
        self.conditions = [Condition.coerce(c) for c in self.conditions]

    @property
    def search_active(self) -> bool:
        return bool(self.allow_search and self.search_fields and self.search_text)

    @classmethod
    def from_query_params(cls, params: Any, **kwargs: Any) -> "QueryConfig":
        """
        Build a configuration from HTTP query-string parameters.

        Keyword arguments set the remaining fields; pagination is allowed, and
        search is allowed when ``search_fields`` are given.
        """
        kwargs.setdefault("allow_pagination", True)
        kwargs.setdefault("allow_search", bool(kwargs.get("search_fields")))
        return apply_query_params(cls(**kwargs), params)


def _param(params: collections.abc.Mapping, *names: str) -> str | None:
    for name in names:
        value = params.get(name)
        if isinstance(value, (list, tuple)):
            value = value[0] if value else None
        if value is not None:
            return str(value).strip()
    return None


def _non_negative(name: str, text: str | None) -> int:
    if text is None or text == "":
        return 0
    try:
        value = int(text)
    except ValueError:
        raise QueryBuildError(f"Query parameter {name} must be an integer, got {text!r}")
    if value < 0:
        raise QueryBuildError(f"Query parameter {name} must not be negative, got {value}")
    return value


def apply_query_params(config: QueryConfig, params: Any) -> QueryConfig:
    """
    Copy pagination, ordering and search parameters onto a query configuration.

    Recognized parameters: ``limit``, ``offset``, ``order_by`` (or ``orderBy``),
    ``order`` (or ``direction``: ``asc`` or ``desc``) and ``search``. Missing
    values leave the corresponding field as it is (0, i.e. unset, by default).

    Parameters
    ----------
    config : QueryConfig
        Configuration to update. It is not modified; a copy is returned.
    params : Mapping or str
        Query parameters as a mapping of single values or value lists (e.g. from
        :func:`urllib.parse.parse_qs`), or a raw query string.

    Returns
    -------
    QueryConfig
        Updated copy.

    Raises
    ------
    QueryBuildError
        If ``limit`` or ``offset`` is malformed or negative, the direction is
        unknown, or ``order_by`` is not a column name.
    """
    if isinstance(params, (str, bytes)):
        params = parse_qs(params.decode() if isinstance(params, bytes) else params.lstrip("?"))
    if not isinstance(params, collections.abc.Mapping):
        raise TypeError("Query parameters must be a mapping or a query string")

    changes: dict[str, Any] = {}
    for name in ("limit", "offset"):
        text = _param(params, name)
        if text is not None:
            changes[name] = _non_negative(name, text)
    order_by = _param(params, "order_by", "orderBy")
    if order_by:
        changes["order_by"] = validate_identifier(order_by)
    direction = _param(params, "order", "direction")
    if direction:
        if direction.lower() not in ("asc", "desc"):
            raise QueryBuildError(f"Query parameter order must be 'asc' or 'desc', got {direction!r}")
        changes["descending"] = direction.lower() == "desc"
    search = _param(params, "search")
    if search:
        changes["search_text"] = search
    return dataclasses.replace(config, **changes)
