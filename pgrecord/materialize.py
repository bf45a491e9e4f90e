"""
Conversion of result rows into record instances.
"""

from __future__ import annotations

import dataclasses
import datetime
import decimal
import logging
import typing
import uuid
from collections.abc import Mapping, Sequence
from typing import Any, Callable

from .errors import ScanError
from .metadata import RecordInfo, describe, unwrap_optional

logger = logging.getLogger(__name__.split(".")[0])

# scan target of a column that no field claims; the value is read and dropped
DISCARD = None


def scan_targets(columns: Sequence[str], column_map: Mapping[str, str]) -> list[str | None]:
    """
    Field name receiving each result column, or ``DISCARD``.

    Column names are matched exactly first, then case-insensitively, since
    PostgreSQL folds unquoted identifiers to lower case.
    """
    folded = {column.lower(): field for column, field in column_map.items()}
    return [column_map.get(column, folded.get(column.lower(), DISCARD)) for column in columns]


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        raise TypeError("boolean")
    if isinstance(value, int):
        return value
    if isinstance(value, decimal.Decimal) and value == value.to_integral_value():
        return int(value)
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        return int(value)
    raise TypeError(type(value).__name__)


def _to_float(value: Any) -> float:
    if isinstance(value, bool):
        raise TypeError("boolean")
    if isinstance(value, (int, float, decimal.Decimal, str)):
        return float(value)
    raise TypeError(type(value).__name__)


def _to_str(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, uuid.UUID):
        return str(value)
    raise TypeError(type(value).__name__)


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    raise TypeError(type(value).__name__)


def _to_uuid(value: Any) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    if isinstance(value, str):
        return uuid.UUID(value)
    raise TypeError(type(value).__name__)


def _to_datetime(value: Any) -> datetime.datetime:
    if isinstance(value, datetime.datetime):
        return value
    if isinstance(value, str):
        return datetime.datetime.fromisoformat(value)
    raise TypeError(type(value).__name__)


def _to_date(value: Any) -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if isinstance(value, str):
        return datetime.date.fromisoformat(value)
    raise TypeError(type(value).__name__)


def _to_decimal(value: Any) -> decimal.Decimal:
    if isinstance(value, bool):
        raise TypeError("boolean")
    if isinstance(value, (int, str, decimal.Decimal)):
        return decimal.Decimal(value)
    if isinstance(value, float):
        return decimal.Decimal(str(value))
    raise TypeError(type(value).__name__)


def _to_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    raise TypeError(type(value).__name__)


def _to_timedelta(value: Any) -> datetime.timedelta:
    if isinstance(value, datetime.timedelta):
        return value
    raise TypeError(type(value).__name__)


CONVERTERS: dict[Any, Callable[[Any], Any]] = {
    int: _to_int,
    float: _to_float,
    str: _to_str,
    bool: _to_bool,
    uuid.UUID: _to_uuid,
    datetime.datetime: _to_datetime,
    datetime.date: _to_date,
    decimal.Decimal: _to_decimal,
    bytes: _to_bytes,
    datetime.timedelta: _to_timedelta,
}


def convert(value: Any, python_type: Any, column: str = "", field: str = "") -> Any:
    """
    Convert a driver value to a field's type.

    NULL becomes None; types without a converter pass through unchanged.

    Raises
    ------
    ScanError
        If the value cannot be represented as ``python_type``.
    """
    if value is None:
        return None
    converter = CONVERTERS.get(python_type)
    if converter is None:
        return value
    try:
        return converter(value)
    except (TypeError, ValueError, ArithmeticError):
        raise ScanError(f"Cannot scan column {column} into field {field} of type {python_type.__name__}")


def new_record(record_type: type) -> Any:
    """
    Allocate a record without calling its ``__init__``.

    Fields take their defaults, or None when they have none.
    """
    instance = record_type.__new__(record_type)
    for field in dataclasses.fields(record_type):
        if field.default is not dataclasses.MISSING:
            value = field.default
        elif field.default_factory is not dataclasses.MISSING:
            value = field.default_factory()
        else:
            value = None
        # frozen dataclasses refuse plain setattr
        object.__setattr__(instance, field.name, value)
    return instance


def materialize_row(
    columns: Sequence[str],
    row: Sequence[Any],
    record: Any,
    column_map: Mapping[str, str] | None = None,
    targets: Sequence[str | None] | None = None,
) -> Any:
    """
    Fill a record from one result row.

    Parameters
    ----------
    columns : sequence of str
        Result column names, in row order.
    row : sequence
        Values of one row.
    record : type or dataclass instance
        A record type, in which case a fresh instance is allocated, or an
        instance to fill in place.
    column_map : mapping, optional
        Column name to field name; defaults to the record type's metadata.
    targets : sequence, optional
        Precomputed :func:`scan_targets`, reused across the rows of a result.

    Returns
    -------
    The filled record.

    Raises
    ------
    ScanError
        If a value cannot be converted to its field's type.
    """
    info: RecordInfo = describe(record)
    instance = new_record(info.record_type) if isinstance(record, type) else record
    if targets is None:
        targets = scan_targets(columns, info.column_map if column_map is None else column_map)
    hints = {d.field_name: d.python_type for d in info.descriptors}
    for column, field_name, value in zip(columns, targets, row):
        if field_name is DISCARD:
            continue
        python_type = hints.get(field_name)
        if python_type is None:
            python_type = _field_type(info.record_type, field_name)
        object.__setattr__(instance, field_name, convert(value, python_type, column, field_name))
    return instance


def materialize_rows(
    columns: Sequence[str],
    rows: Sequence[Sequence[Any]],
    record_type: type,
    column_map: Mapping[str, str] | None = None,
) -> list[Any]:
    """Allocate one record per row."""
    info = describe(record_type)
    targets = scan_targets(columns, info.column_map if column_map is None else column_map)
    discarded = [column for column, target in zip(columns, targets) if target is DISCARD]
    if discarded:
        logger.debug(f"Discarding columns {discarded} not mapped on {info.record_type.__name__}")
    return [materialize_row(columns, row, record_type, targets=targets) for row in rows]


def _field_type(record_type: type, field_name: str) -> Any:
    # fields without a column annotation can still be join mapping targets
    return unwrap_optional(typing.get_type_hints(record_type).get(field_name, Any))
