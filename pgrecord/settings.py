"""
Settings for pgrecord.

Configuration is held in a pydantic-settings model so that every value can be
overridden from the environment (``PGRECORD_*``). The module-level ``config``
object wraps the model with dot-key access::

    >>> import pgrecord
    >>> pgrecord.config["database.host"]
    'localhost'
    >>> with pgrecord.config(database__host="db", table_prefix="orm_"):
    ...     connector = pgrecord.Connector.from_config()
"""

from __future__ import annotations

import collections.abc
import logging
import pprint
import re
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Literal, Optional

from pydantic import AliasChoices, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import PgRecordError

logger = logging.getLogger(__name__.split(".")[0])

DEFAULT_TABLE_PREFIX = "gpo_"


class DatabaseSettings(BaseSettings):
    """Database connection settings"""

    host: str = "localhost"
    port: Optional[int] = None
    user: Optional[str] = "postgres"
    password: Optional[str] = None
    dbname: str = "postgres"
    sslmode: Optional[str] = None

    model_config = SettingsConfigDict(
        env_prefix="PGRECORD_DATABASE_",
        case_sensitive=False,
        extra="allow",
        validate_assignment=True,
    )


class PgRecordSettings(BaseSettings):
    """Main pgrecord settings"""

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)

    loglevel: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        validation_alias=AliasChoices("loglevel", "PGRECORD_LOG_LEVEL"),
    )
    table_prefix: str = DEFAULT_TABLE_PREFIX
    default_page_size: int = Field(default=10, gt=0)
    query_log_max_length: int = Field(default=300, ge=0)

    model_config = SettingsConfigDict(
        env_prefix="PGRECORD_",
        case_sensitive=False,
        extra="forbid",
        validate_assignment=True,
    )

    @field_validator("loglevel", mode="before")
    @classmethod
    def validate_loglevel(cls, v: Any) -> Any:
        """Normalize the level name and apply it to the package logger"""
        if isinstance(v, str):
            v = v.upper()
            if v in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
                logger.setLevel(v)
        return v

    @field_validator("table_prefix")
    @classmethod
    def validate_table_prefix(cls, v: str) -> str:
        if not re.fullmatch(r"[A-Za-z0-9_]*", v):
            raise ValueError(f"table prefix {v!r} may contain only letters, digits and underscores")
        return v


class ConfigWrapper(collections.abc.MutableMapping):
    """
    Dict-like access to a PgRecordSettings instance with dot notation for nested keys.
    """

    def __init__(self, settings: PgRecordSettings):
        self._settings = settings

    @property
    def settings(self) -> PgRecordSettings:
        return self._settings

    def _get_nested(self, key: str) -> Any:
        obj: Any = self._settings
        for part in key.split("."):
            if not hasattr(obj, part):
                raise KeyError(key)
            obj = getattr(obj, part)
        return obj

    def _set_nested(self, key: str, value: Any) -> None:
        *parents, last = key.split(".")
        obj: Any = self._settings
        for part in parents:
            if not hasattr(obj, part):
                raise KeyError(key)
            obj = getattr(obj, part)
        if last not in type(obj).model_fields:
            raise KeyError(key)
        try:
            setattr(obj, last, value)
        except ValidationError as err:
            raise PgRecordError(f"Invalid value for setting {key!r}: {value!r}").suggest(str(err)) from err

    def __getitem__(self, key: str) -> Any:
        value = self._get_nested(key)
        if isinstance(value, BaseSettings):
            raise KeyError(key)
        return value

    def __setitem__(self, key: str, value: Any) -> None:
        logger.debug(f"Setting {key} to {value}")
        self._set_nested(key, value)

    def __delitem__(self, key: str) -> None:
        raise PgRecordError("Settings cannot be deleted; assign a new value instead.")

    def __iter__(self) -> Iterator[str]:
        return iter(self._get_all_keys())

    def __len__(self) -> int:
        return len(self._get_all_keys())

    def _get_all_keys(self) -> List[str]:
        return list(self._to_dict())

    def _to_dict(self) -> Dict[str, Any]:
        flat: Dict[str, Any] = {}

        def _flatten(obj: BaseSettings, prefix: str = "") -> None:
            for name in type(obj).model_fields:
                value = getattr(obj, name)
                if isinstance(value, BaseSettings):
                    _flatten(value, f"{prefix}{name}.")
                else:
                    flat[f"{prefix}{name}"] = value

        _flatten(self._settings)
        return flat

    def __str__(self) -> str:
        return pprint.pformat(self._to_dict(), indent=4)

    def __repr__(self) -> str:
        return f"ConfigWrapper({self._to_dict()!r})"

    @contextmanager
    def __call__(self, **kwargs: Any) -> Iterator["ConfigWrapper"]:
        """
        Change the configuration temporarily inside a with block.

        Keyword names are config keys with '.' replaced by a double underscore.

        Example:
        >>> with pgrecord.config(database__dbname="scratch") as cfg:
        >>>     ...
        """
        converted = {k.replace("__", "."): v for k, v in kwargs.items()}
        backup = {key: self[key] for key in converted}
        try:
            for key, value in converted.items():
                self[key] = value
            yield self
        finally:
            for key, value in backup.items():
                self[key] = value


config = ConfigWrapper(PgRecordSettings())
