"""
Pytest configuration for pgrecord tests.

Unit tests need no database. Integration tests expect a PostgreSQL server and
are skipped when it cannot be reached:

    docker run -d -p 5432:5432 -e POSTGRES_PASSWORD=password postgres:16

Environment variables (with defaults):
    PGRECORD_DATABASE_HOST=localhost
    PGRECORD_DATABASE_PORT=5432
    PGRECORD_DATABASE_USER=postgres
    PGRECORD_DATABASE_PASSWORD=password
    PGRECORD_DATABASE_DBNAME=postgres
"""

import logging
import os
from typing import Dict

import pytest

import pgrecord
from pgrecord.errors import LostConnectionError

from tests.models import Company, Item, Note, Permission, User

logger = logging.getLogger(__name__)

TABLE_PREFIX = "orm_"


@pytest.fixture(scope="session")
def prefix():
    return os.environ.get("PGRECORD_TEST_TABLE_PREFIX", TABLE_PREFIX)


@pytest.fixture(scope="session")
def db_creds() -> Dict:
    """Database credentials from environment."""
    return dict(
        host=os.environ.get("PGRECORD_DATABASE_HOST", "localhost"),
        port=int(os.environ.get("PGRECORD_DATABASE_PORT", "5432")),
        user=os.environ.get("PGRECORD_DATABASE_USER", "postgres"),
        password=os.environ.get("PGRECORD_DATABASE_PASSWORD", "password"),
        dbname=os.environ.get("PGRECORD_DATABASE_DBNAME", "postgres"),
    )


@pytest.fixture(scope="session")
def connection(db_creds):
    """Session connection; integration tests are skipped without a server."""
    try:
        connection = pgrecord.Connection(**db_creds)
    except LostConnectionError as err:
        pytest.skip(f"PostgreSQL is not reachable: {err}")
    yield connection
    connection.close()


@pytest.fixture
def connector(connection, prefix):
    """Connector with freshly created test tables, dropped afterwards."""
    connector = pgrecord.Connector(connection, table_prefix=prefix)
    connector.drop_tables(User, Company, Permission, Item, Note, cascade=True)
    connector.create_tables(User, Company, Permission, Item, Note)
    yield connector
    if connection.in_transaction:
        connection._rollback()
    connector.drop_tables(User, Company, Permission, Item, Note, cascade=True)


@pytest.fixture
def items(connector):
    """Fifteen items named test0 .. test14 in insertion order."""
    records = [Item(id=i + 1, name=f"test{i}", position=i) for i in range(15)]
    for item in records:
        connector.insert(item)
    return records


@pytest.fixture
def user_with_company(connector):
    """One user, one company and no permissions."""
    user = User(email="user_perm@example.com", name="Perm User", user_type="admin")
    company = Company(company_name="Acme")
    connector.insert(user)
    connector.insert(company)
    return user, company
