"""
Column metadata for record types.

Record types are dataclasses whose fields carry a column annotation::

    @pgrecord.record
    class User:
        id: uuid.UUID = pgrecord.column("id,pk")
        email: str = pgrecord.column("email,unique,length(120)")
        team_id: uuid.UUID = pgrecord.column("team_id,fk(team:id,cascade)")
        note: str = ""  # no annotation: not stored

The annotation is a comma-separated list: the column name followed by any of
``pk``, ``unique``, ``nullable``, ``length(n)``, ``fk(table:column)`` or
``fk(table:column,action)``.
"""

from __future__ import annotations

import dataclasses
import functools
import logging
import types
import typing
from typing import Any

import pyparsing as pp

from .errors import MetadataError, SchemaError

logger = logging.getLogger(__name__.split(".")[0])

TAG_KEY = "gpo"
IMPLICIT_PRIMARY_KEY = "id"


def build_tag_parser() -> pp.ParserElement:
    """
    Build a pyparsing parser for column annotations.

    Returns
    -------
    pp.ParserElement
        Parser that extracts ``name`` and a list of ``options``, each with a
        ``key`` and an optional parenthesized ``arg``.
    """
    comma = pp.Literal(",").suppress()
    lparen = pp.Literal("(").suppress()
    rparen = pp.Literal(")").suppress()
    column_name = pp.Word(pp.alphas + "_", pp.alphanums + "_").set_results_name("name")
    option = pp.Group(
        pp.Word(pp.alphas + "_").set_results_name("key")
        + pp.Optional(lparen + pp.SkipTo(")").set_results_name("arg") + rparen)
    )
    return column_name + pp.Group(pp.ZeroOrMore(comma + option)).set_results_name("options")


def build_foreign_key_parser() -> pp.ParserElement:
    """
    Build a pyparsing parser for the argument of ``fk(...)``.

    Returns
    -------
    pp.ParserElement
        Parser that extracts ``table``, ``column`` and an optional ``on_delete``
        from arguments like ``team:id`` or ``team:id,set null``.
    """
    identifier = pp.Word(pp.alphas + "_", pp.alphanums + "_")
    colon = pp.Literal(":").suppress()
    comma = pp.Literal(",").suppress()
    on_delete = pp.Regex(r"[^,]+").set_results_name("on_delete")
    return (
        identifier.set_results_name("table")
        + colon
        + identifier.set_results_name("column")
        + pp.Optional(comma + on_delete)
    )


tag_parser = build_tag_parser()
foreign_key_parser = build_foreign_key_parser()


@dataclasses.dataclass(frozen=True)
class ForeignKeyInfo:
    """Reference from a column to ``table(column)``; ``table`` is unprefixed."""

    table: str
    column: str
    on_delete: str | None = None


@dataclasses.dataclass(frozen=True)
class FieldDescriptor:
    """Derived metadata for one column of a record type."""

    field_name: str
    column_name: str
    python_type: Any
    is_primary_key: bool = False
    is_unique: bool = False
    is_nullable: bool = False
    length: int | None = None
    foreign_key: ForeignKeyInfo | None = None


@dataclasses.dataclass(frozen=True)
class RecordInfo:
    """
    Everything derived from one record type.

    Attributes
    ----------
    record_type : type
        The dataclass the metadata was extracted from.
    descriptors : tuple[FieldDescriptor, ...]
        Column descriptors in field declaration order.
    column_map : dict[str, str]
        Column name to field name.
    primary_key : str
        Primary key column name.
    implicit_pk : bool
        True when no field backs the primary key and the table gets a
        generated ``id UUID`` column.
    """

    record_type: type
    descriptors: tuple[FieldDescriptor, ...]
    column_map: dict[str, str]
    primary_key: str
    implicit_pk: bool

    @property
    def columns(self) -> list[str]:
        return [d.column_name for d in self.descriptors]

    @property
    def pk_descriptor(self) -> FieldDescriptor | None:
        for descriptor in self.descriptors:
            if descriptor.is_primary_key:
                return descriptor
        return None

    def descriptor(self, column: str) -> FieldDescriptor:
        for descriptor in self.descriptors:
            if descriptor.column_name == column:
                return descriptor
        raise KeyError(column)

    def __contains__(self, column: str) -> bool:
        return column in self.column_map or (self.implicit_pk and column == self.primary_key)


def column(tag: str, **kwargs: Any) -> Any:
    """
    Declare a dataclass field stored in a table column.

    Parameters
    ----------
    tag : str
        Column annotation, e.g. ``"email,unique,length(120)"``.
    **kwargs
        Passed to :func:`dataclasses.field` (``default``, ``default_factory``, ...).

    Returns
    -------
    dataclasses.Field
        A field carrying the annotation in its metadata.
    """
    metadata = dict(kwargs.pop("metadata", None) or {})
    metadata[TAG_KEY] = tag
    return dataclasses.field(metadata=metadata, **kwargs)


def unwrap_optional(annotation: Any) -> Any:
    """Return X for ``Optional[X]`` or ``X | None``; other annotations unchanged."""
    origin = typing.get_origin(annotation)
    if origin is typing.Union or origin is types.UnionType:
        args = [arg for arg in typing.get_args(annotation) if arg is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def parse_tag(tag: str, field_name: str, python_type: Any) -> FieldDescriptor:
    """
    Parse one column annotation into a descriptor.

    Raises
    ------
    MetadataError
        If the annotation is malformed.
    """
    try:
        match = tag_parser.parse_string(tag.strip(), parse_all=True)
    except pp.ParseException as err:
        raise MetadataError(f'Invalid column annotation "{tag}" on field {field_name}: {err.msg}')

    kwargs: dict[str, Any] = {}
    for option in match["options"]:
        key = option["key"].lower()
        arg = option.get("arg")
        if key in ("pk", "unique", "nullable"):
            if arg is not None:
                raise MetadataError(f'Option "{key}" takes no argument on field {field_name}')
            kwargs[{"pk": "is_primary_key", "unique": "is_unique", "nullable": "is_nullable"}[key]] = True
        elif key == "length":
            try:
                length = int(arg)
            except (TypeError, ValueError):
                raise MetadataError(f'Invalid length "{arg}" on field {field_name}')
            if length <= 0:
                raise MetadataError(f"Length must be positive on field {field_name}, got {length}")
            if unwrap_optional(python_type) is not str:
                logger.warning(f"Ignoring length({length}) on non-text field {field_name}")
            else:
                kwargs["length"] = length
        elif key == "fk":
            try:
                fk = foreign_key_parser.parse_string((arg or "").strip(), parse_all=True)
            except pp.ParseException:
                raise MetadataError(
                    f'Malformed foreign key "fk({arg or ""})" on field {field_name}; expected fk(table:column[,action])'
                )
            on_delete = fk.get("on_delete")
            kwargs["foreign_key"] = ForeignKeyInfo(
                table=fk["table"], column=fk["column"], on_delete=on_delete.strip() if on_delete else None
            )
        else:
            raise MetadataError(f'Unknown column option "{key}" on field {field_name}')

    if kwargs.get("is_primary_key") and kwargs.get("is_nullable"):
        raise MetadataError(f"Primary key field {field_name} cannot be nullable")
    return FieldDescriptor(field_name=field_name, column_name=match["name"], python_type=python_type, **kwargs)


def _record_type(record: Any) -> type:
    record_type = record if isinstance(record, type) else type(record)
    if not dataclasses.is_dataclass(record_type):
        raise MetadataError(f"{record_type.__name__} is not a dataclass record type")
    return record_type


def describe(record: Any) -> RecordInfo:
    """
    Extract column metadata from a record type or instance.

    Results are cached per type, so repeated calls return the same object.

    Raises
    ------
    MetadataError
        If the type is not a dataclass or an annotation is invalid.
    """
    return _describe(_record_type(record))


@functools.lru_cache(maxsize=None)
def _describe(record_type: type) -> RecordInfo:
    try:
        hints = typing.get_type_hints(record_type)
    except (NameError, TypeError) as err:
        raise MetadataError(f"Cannot resolve field types of {record_type.__name__}: {err}")

    descriptors = []
    for field in dataclasses.fields(record_type):
        tag = field.metadata.get(TAG_KEY)
        if tag is None:
            continue
        descriptors.append(parse_tag(tag, field.name, unwrap_optional(hints.get(field.name, Any))))

    column_map: dict[str, str] = {}
    for descriptor in descriptors:
        if descriptor.column_name in column_map:
            raise MetadataError(
                f"Column {descriptor.column_name} is declared by both {column_map[descriptor.column_name]} "
                f"and {descriptor.field_name} in {record_type.__name__}"
            )
        column_map[descriptor.column_name] = descriptor.field_name

    keys = [d for d in descriptors if d.is_primary_key]
    if len(keys) > 1:
        raise MetadataError(
            f"{record_type.__name__} marks more than one primary key: {', '.join(d.column_name for d in keys)}"
        )
    implicit_pk = False
    if keys:
        primary_key = keys[0].column_name
    elif IMPLICIT_PRIMARY_KEY in column_map:
        # an unmarked "id" column is the key itself
        primary_key = IMPLICIT_PRIMARY_KEY
        descriptors = [
            dataclasses.replace(d, is_primary_key=True, is_nullable=False) if d.column_name == IMPLICIT_PRIMARY_KEY else d
            for d in descriptors
        ]
    else:
        primary_key = IMPLICIT_PRIMARY_KEY
        implicit_pk = True

    logger.debug(f"Extracted {len(descriptors)} columns from {record_type.__name__}")
    return RecordInfo(
        record_type=record_type,
        descriptors=tuple(descriptors),
        column_map=column_map,
        primary_key=primary_key,
        implicit_pk=implicit_pk,
    )


def table_name(record: Any, prefix: str) -> str:
    """
    Table name of a record type: ``__table__`` if set, else prefix + lowercased class name.

    Raises
    ------
    SchemaError
        If the resulting name is empty.
    """
    record_type = _record_type(record)
    name = getattr(record_type, "__table__", None)
    if name is None:
        name = prefix + record_type.__name__.lower()
    if not name:
        raise SchemaError(f"Empty table name for {record_type.__name__}")
    return name


def record(cls: type | None = None, *, table: str | None = None):
    """
    Class decorator for record types.

    Applies :func:`dataclasses.dataclass` when needed, stores an explicit table
    name, and extracts the metadata immediately so annotation errors surface
    when the class is defined.

    Example:
        >>> @record(table="accounts")
        ... class Account:
        ...     id: int = column("id,pk", default=0)
    """

    def wrap(cls: type) -> type:
        if table is not None:
            cls.__table__ = table
        if not dataclasses.is_dataclass(cls):
            cls = dataclasses.dataclass(cls)
        describe(cls)
        return cls

    return wrap if cls is None else wrap(cls)
