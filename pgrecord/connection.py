"""
Database connection management for pgrecord.

This module contains the Connection class that executes statements on a
database server, the Transaction handle returned by ``Connection.begin``, and
the ``conn`` function that provides a persistent connection built from
``pgrecord.config``.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Protocol, Sequence, runtime_checkable

from . import errors
from .adapters import get_adapter
from .settings import config
from .version import __version__

if TYPE_CHECKING:
    from collections.abc import Generator


logger = logging.getLogger(__name__.split(".")[0])


@runtime_checkable
class Executor(Protocol):
    """
    Anything statements can run on: a Connection or an open Transaction.

    ``query`` returns a DB-API cursor (column names in ``cursor.description``),
    ``execute`` returns the affected-row count.
    """

    def query(self, query: str, args: Sequence[Any] = (), *, operation: str = "query") -> Any:
        ...

    def execute(self, query: str, args: Sequence[Any] = (), *, operation: str = "execute") -> int:
        ...


def conn(
    host: str | None = None,
    user: str | None = None,
    password: str | None = None,
    *,
    reset: bool = False,
) -> Connection:
    """
    Return a persistent connection object shared by multiple modules.

    Parameters not given are read from ``config["database.*"]``.

    Args:
        host: Hostname, may include port as hostname:port.
        user: Database username.
        password: Database password.
        reset: If True, close the existing connection and open a new one.

    Returns:
        The shared Connection.
    """
    if not hasattr(conn, "connection") or reset:
        if getattr(conn, "connection", None) is not None:
            conn.connection.close()
        conn.connection = Connection(
            host if host is not None else config["database.host"],
            user if user is not None else config["database.user"],
            password if password is not None else config["database.password"],
        )
    return conn.connection


class Connection:
    """
    Manage a connection to a PostgreSQL server.

    The connection runs in autocommit mode; :meth:`begin` and the
    :attr:`transaction` context manager open explicit transactions.

    Args:
        host: Hostname, may include port as hostname:port.
        user: Database username.
        password: Database password.
        port: Port number (overridden if included in host).
        dbname: Database name.
        sslmode: libpq SSL mode.
        backend: Adapter name.

    Attributes:
        conn_info: Dictionary of connection parameters.
        adapter: Dialect adapter used for placeholders and error translation.
    """

    def __init__(
        self,
        host: str,
        user: str | None,
        password: str | None,
        port: int | None = None,
        dbname: str | None = None,
        sslmode: str | None = None,
        backend: str = "postgresql",
    ) -> None:
        if ":" in host:
            # the port in the hostname overrides the port argument
            host, port = host.split(":")
            port = int(port)
        self.adapter = get_adapter(backend)
        if port is None:
            port = config["database.port"] or self.adapter.default_port
        self.conn_info = dict(
            host=host,
            port=port,
            user=user,
            password=password,
            dbname=dbname if dbname is not None else config["database.dbname"],
            sslmode=sslmode if sslmode is not None else config["database.sslmode"],
        )
        self._conn = None
        self._in_transaction = False
        self.connect()
        logger.info(
            "pgrecord {version} connected to {backend}://{user}@{host}:{port}/{dbname}".format(
                version=__version__, backend=self.adapter.backend, **self.conn_info
            )
        )

    def __repr__(self) -> str:
        connected = "connected" if self.is_connected else "disconnected"
        return "pgrecord connection ({connected}) {user}@{host}:{port}/{dbname}".format(connected=connected, **self.conn_info)

    def __enter__(self) -> Connection:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def connect(self) -> None:
        """
        Establish connection to the database server.

        Raises:
            LostConnectionError: If the server cannot be reached.
        """
        try:
            self._conn = self.adapter.connect(**self.conn_info)
        except Exception as err:
            raise errors.LostConnectionError(
                "Connection failed {user}@{host}:{port}".format(**self.conn_info)
            ).suggest(str(err).strip()) from err

    def close(self) -> None:
        """Close the connection to the database server."""
        if self._conn is not None:
            self.adapter.close(self._conn)
            self._conn = None

    def ping(self) -> bool:
        """Return True if the server answers."""
        return self.adapter.ping(self._conn)

    @property
    def is_connected(self) -> bool:
        """Return True if connected to the database server."""
        return self._conn is not None and self.ping()

    def query(self, query: str, args: Sequence[Any] = (), *, operation: str = "query") -> Any:
        """
        Execute an SQL statement and return the cursor with its results.

        Args:
            query: SQL text with ``$n`` placeholders (or the driver's own style
                when it has none).
            args: Arguments bound to the placeholders.
            operation: Logical operation name used in error messages.

        Returns:
            A DB-API cursor.

        Raises:
            LostConnectionError: If the connection is closed.
            ExecutionError: For any failure reported by the driver.
        """
        if self._conn is None:
            raise errors.LostConnectionError(f"{operation} failed: the connection is closed")
        sql, params = self.adapter.format_query(query, args)
        logger.debug("Executing SQL: " + sql[: config["query_log_max_length"]])
        cursor = self._conn.cursor()
        try:
            cursor.execute(sql, params)
        except Exception as err:
            cursor.close()
            raise self.adapter.translate_error(err, operation) from err
        return cursor

    def execute(self, query: str, args: Sequence[Any] = (), *, operation: str = "execute") -> int:
        """
        Execute an SQL statement and return the number of affected rows.
        """
        cursor = self.query(query, args, operation=operation)
        try:
            return cursor.rowcount
        finally:
            cursor.close()

    # ---------- transaction processing
    @property
    def in_transaction(self) -> bool:
        """Return True if there is an open transaction."""
        self._in_transaction = self._in_transaction and self.is_connected
        return self._in_transaction

    def begin(self) -> Transaction:
        """
        Open a transaction and return its handle.

        Raises:
            PgRecordError: If a transaction is already open (nesting is not supported).
        """
        if self.in_transaction:
            raise errors.PgRecordError("Nested transactions are not supported.")
        self.query(self.adapter.start_transaction_sql(), operation="begin")
        self._in_transaction = True
        logger.debug("Transaction started")
        return Transaction(self)

    def _commit(self) -> None:
        self.query(self.adapter.commit_sql(), operation="commit")
        self._in_transaction = False
        logger.debug("Transaction committed and closed.")

    def _rollback(self) -> None:
        self.query(self.adapter.rollback_sql(), operation="rollback")
        self._in_transaction = False
        logger.debug("Transaction cancelled. Rolling back ...")

    # -------- context manager for transactions
    @property
    @contextmanager
    def transaction(self) -> Generator[Transaction, None, None]:
        """
        Context manager for database transactions.

        Commits when the block completes, rolls back if it raises.

        Yields:
            The open Transaction.

        Example:
            >>> with connection.transaction as tx:
            ...     connector.insert(user, transaction=tx)
            ...     connector.insert(permission, transaction=tx)
        """
        tx = self.begin()
        try:
            yield tx
        except BaseException:
            tx.rollback()
            raise
        else:
            tx.commit()


class Transaction:
    """
    Handle of an open transaction.

    Statements run through the handle belong to the transaction until
    :meth:`commit` or :meth:`rollback`. The handle must not be shared by
    concurrent operations.
    """

    def __init__(self, connection: Connection) -> None:
        self.connection = connection
        self._open = True

    def __repr__(self) -> str:
        return f"Transaction({'open' if self._open else 'closed'}) on {self.connection!r}"

    def __enter__(self) -> Transaction:
        return self

    def __exit__(self, exc_type: Any, exc_value: Any, traceback: Any) -> None:
        if not self._open:
            return
        if exc_type is None:
            self.commit()
        else:
            self.rollback()

    @property
    def is_open(self) -> bool:
        return self._open

    def _check_open(self, operation: str) -> None:
        if not self._open:
            raise errors.PgRecordError(f"{operation} on a transaction that is already closed")

    def query(self, query: str, args: Sequence[Any] = (), *, operation: str = "query") -> Any:
        self._check_open(operation)
        return self.connection.query(query, args, operation=operation)

    def execute(self, query: str, args: Sequence[Any] = (), *, operation: str = "execute") -> int:
        self._check_open(operation)
        return self.connection.execute(query, args, operation=operation)

    def commit(self) -> None:
        self._check_open("commit")
        self._open = False
        self.connection._commit()

    def rollback(self) -> None:
        self._check_open("rollback")
        self._open = False
        self.connection._rollback()
