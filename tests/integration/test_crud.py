"""
Create/read/update/delete against a PostgreSQL server.
"""

import datetime
import uuid

import pytest

from pgrecord import Condition, QueryConfig
from pgrecord.errors import DuplicateError, IntegrityError, MissingTableError, QuerySyntaxError

from tests.models import Company, Item, Note, Permission, User


def test_insert_and_find_first(connector):
    user = User(email="a@example.com", name="A", user_type="admin")
    assert connector.insert(user) == 1
    found = connector.find_first(User, user.id)
    assert found == user
    assert found is not user


def test_find_first_missing(connector):
    assert connector.find_first(User, uuid.uuid4()) is None


def test_find_first_by_condition(connector, items):
    item = connector.find_first(Item, [("name", "=", "test3")])
    assert (item.id, item.position) == (4, 3)


def test_nullable_and_timestamps(connector):
    created = datetime.datetime(2024, 5, 1, 12, 30)
    connector.insert(Item(id=1, name="dated", created=created))
    connector.insert(Item(id=2, name="undated"))
    assert connector.find_first(Item, 1).created == created
    assert connector.find_first(Item, 2).created is None
    rows = connector.find_all(Item, QueryConfig(conditions=[("created", "=", None)]))
    assert [item.id for item in rows] == [2]


def test_implicit_primary_key(connector):
    connector.insert(Note(title="x" * 300, draft=False))
    notes = connector.find_all(Note)
    assert len(notes) == 1
    assert notes[0].title == "x" * 300 and notes[0].draft is False
    rows = connector.custom_query(f"SELECT id FROM {connector.table_name(Note)}")
    assert isinstance(rows[0]["id"], uuid.UUID)


def test_update_counts_matching_rows(connector):
    user = User(email="b@example.com", name="B")
    connector.insert(user)
    user.name = "Bee"
    assert connector.update(user) == 1
    assert connector.find_first(User, user.id).name == "Bee"
    # an unchanged row still counts as matched
    assert connector.update(user) == 1
    assert connector.update(User(email="nobody@example.com")) == 0


def test_update_with_conditions(connector, items):
    template = Item(name="bulk", position=99)
    assert connector.update(template, [("position", "<", 3)]) == 3
    assert len(connector.find_all(Item, QueryConfig(conditions=[("name", "=", "bulk")]))) == 3


def test_pagination(connector, items):
    pages = []
    for offset in (0, 5, 10):
        query = QueryConfig(order_by="position", limit=5, offset=offset)
        pages.append([item.id for item in connector.find_all(Item, query)])
    assert all(len(page) == 5 for page in pages)
    assert sorted(sum(pages, [])) == list(range(1, 16))
    assert connector.find_all(Item, QueryConfig(order_by="position", limit=5, offset=15)) == []


def test_default_page_size(connector, items):
    query = QueryConfig.from_query_params({}, order_by="position")
    assert len(connector.find_all(Item, query)) == 10


def test_descending_order(connector, items):
    query = QueryConfig(order_by="position", descending=True, limit=3)
    assert [item.position for item in connector.find_all(Item, query)] == [14, 13, 12]


def test_search(connector, items):
    query = QueryConfig.from_query_params({"search": "test5"}, search_fields=["name"])
    assert [item.name for item in connector.find_all(Item, query)] == ["test5"]


def test_search_with_conditions(connector, items):
    query = QueryConfig(
        conditions=[("position", ">=", 10)],
        allow_search=True,
        search_fields=["name"],
        search_text="test1",
        order_by="position",
    )
    assert [item.position for item in connector.find_all(Item, query)] == [10, 11, 12, 13, 14]


def test_in_condition(connector, items):
    query = QueryConfig(conditions=[Condition("id", "IN", [2, 4, 6])], order_by="id")
    assert [item.id for item in connector.find_all(Item, query)] == [2, 4, 6]


def test_projection(connector, items):
    rows = connector.find_all(Item, QueryConfig(fields=["id"], conditions=[("id", "=", 1)]))
    assert rows[0].id == 1 and rows[0].name == ""


def test_delete(connector, items):
    assert connector.delete(Item, [("position", ">=", 10)]) == 5
    assert connector.delete_by_id(Item, 1) == 1
    assert connector.delete_by_id(Item, 1) == 0
    assert len(connector.find_all(Item)) == 9


def test_delete_all(connector, items, caplog):
    assert connector.delete(Item) == 15
    assert connector.find_all(Item) == []
    assert "removes every row" in caplog.text


def test_duplicate(connector):
    connector.insert(User(email="dup@example.com"))
    with pytest.raises(DuplicateError, match="insert into"):
        connector.insert(User(email="dup@example.com"))


def test_foreign_key_violation(connector):
    with pytest.raises(IntegrityError):
        connector.insert(Permission(user_id=uuid.uuid4(), company_id=uuid.uuid4()))


def test_cascade(connector, user_with_company):
    user, company = user_with_company
    connector.insert(Permission(user_id=user.id, company_id=company.id, role="owner"))
    connector.delete_by_id(Company, company.id)
    assert connector.find_all(Permission) == []


def test_custom_query_and_mutate(connector, items):
    table = connector.table_name(Item)
    rows = connector.custom_query(f"SELECT name, position FROM {table} WHERE position BETWEEN $1 AND $2 ORDER BY position", 2, 3)
    assert rows == [{"name": "test2", "position": 2}, {"name": "test3", "position": 3}]
    assert connector.custom_mutate(f"UPDATE {table} SET name = $2 WHERE position < $1", 2, "low") == 2
    assert connector.custom_query(f"SELECT COUNT(*) AS n FROM {table} WHERE name LIKE '%low%'") == [{"n": 2}]


def test_custom_query_errors(connector):
    with pytest.raises(MissingTableError, match="custom query failed"):
        connector.custom_query("SELECT * FROM orm_missing_table")
    with pytest.raises(QuerySyntaxError):
        connector.custom_query("SELEC 1")


def test_transaction_commit(connector, connection):
    with connection.transaction as tx:
        connector.insert(Item(id=1, name="kept"), transaction=tx)
        connector.insert(Item(id=2, name="kept"), transaction=tx)
    assert len(connector.find_all(Item)) == 2


def test_transaction_rollback(connector):
    tx = connector.begin()
    connector.insert(Item(id=1, name="discarded"), transaction=tx)
    assert len(connector.find_all(Item, transaction=tx)) == 1
    tx.rollback()
    assert connector.find_all(Item) == []


def test_transaction_rolls_back_on_error(connector, connection):
    with pytest.raises(DuplicateError):
        with connection.transaction as tx:
            connector.insert(Item(id=1), transaction=tx)
            connector.insert(Item(id=1), transaction=tx)
    assert not connection.in_transaction
    assert connector.find_all(Item) == []
