"""
pgrecord maps annotated dataclasses onto PostgreSQL tables.

Column metadata declared with :func:`column` drives table creation and
migration, parameterized SELECT/INSERT/UPDATE/DELETE statements, two-table
joins, and the conversion of result rows back into records. The
:class:`Connector` exposes these operations on one connection, each optionally
inside a caller-managed transaction.
"""

__author__ = "pgrecord contributors"
__all__ = [
    "__author__",
    "__version__",
    "config",
    "conn",
    "Connection",
    "Transaction",
    "Connector",
    "column",
    "record",
    "describe",
    "Condition",
    "QueryConfig",
    "QueryBuilder",
    "Statement",
    "JoinSpec",
    "JoinType",
    "Value",
    "errors",
    "PgRecordError",
    "logger",
]

from . import errors
from .builder import QueryBuilder, Statement
from .condition import Condition
from .connection import Connection, Transaction, conn
from .connector import Connector
from .errors import PgRecordError
from .join import JoinSpec, JoinType
from .logging import logger
from .metadata import column, describe, record
from .query import QueryConfig
from .settings import config
from .values import Value
from .version import __version__
