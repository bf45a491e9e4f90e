"""
Bound values used in conditions.

A condition value is a closed tagged union so the condition compiler can match
on the kind of value instead of inspecting arbitrary Python objects.
"""

from __future__ import annotations

import datetime
import decimal
import enum
import uuid
from collections.abc import Set
from dataclasses import dataclass
from typing import Any

import numpy as np

from .errors import QueryBuildError


class ValueKind(enum.Enum):
    INTEGER = "integer"
    FLOAT = "float"
    TEXT = "text"
    BOOLEAN = "boolean"
    TIMESTAMP = "timestamp"
    UUID = "uuid"
    NULL = "null"
    SEQUENCE = "sequence"


@dataclass(frozen=True)
class Value:
    """
    A single condition value.

    Parameters
    ----------
    kind : ValueKind
        The tag of the union.
    payload : Any
        The Python object handed to the driver. For ``SEQUENCE`` this is a tuple
        of ``Value`` objects.
    """

    kind: ValueKind
    payload: Any

    @classmethod
    def of(cls, obj: Any) -> "Value":
        """
        Classify a Python object.

        numpy scalars are unwrapped to the equivalent Python scalar and numpy
        arrays become sequences.

        Raises
        ------
        QueryBuildError
            If the object is not one of the supported kinds.
        """
        if isinstance(obj, Value):
            return obj
        if isinstance(obj, np.ndarray):
            obj = obj.tolist()
        elif isinstance(obj, np.generic):
            obj = obj.item()
        if obj is None:
            return cls(ValueKind.NULL, None)
        # bool is a subclass of int
        if isinstance(obj, bool):
            return cls(ValueKind.BOOLEAN, obj)
        if isinstance(obj, int):
            return cls(ValueKind.INTEGER, obj)
        if isinstance(obj, (float, decimal.Decimal)):
            return cls(ValueKind.FLOAT, obj)
        if isinstance(obj, str):
            return cls(ValueKind.TEXT, obj)
        if isinstance(obj, (datetime.datetime, datetime.date)):
            return cls(ValueKind.TIMESTAMP, obj)
        if isinstance(obj, uuid.UUID):
            return cls(ValueKind.UUID, obj)
        if isinstance(obj, (list, tuple, Set)):
            items = tuple(cls.of(item) for item in obj)
            if any(item.kind is ValueKind.SEQUENCE for item in items):
                raise QueryBuildError("Nested sequences are not supported as condition values.")
            return cls(ValueKind.SEQUENCE, items)
        raise QueryBuildError(f"Unsupported condition value of type {type(obj).__name__}: {obj!r}")

    @property
    def is_sequence(self) -> bool:
        return self.kind is ValueKind.SEQUENCE

    @property
    def is_null(self) -> bool:
        return self.kind is ValueKind.NULL

    def bind(self) -> Any:
        """Return the object passed to the driver as a positional argument."""
        if self.kind is ValueKind.SEQUENCE:
            return [item.bind() for item in self.payload]
        return self.payload

    def __len__(self) -> int:
        if self.kind is not ValueKind.SEQUENCE:
            raise TypeError(f"a {self.kind.value} value has no length")
        return len(self.payload)

    def __iter__(self):
        if self.kind is not ValueKind.SEQUENCE:
            raise TypeError(f"a {self.kind.value} value is not iterable")
        return iter(self.payload)
