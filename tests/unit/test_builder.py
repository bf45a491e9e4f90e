"""Unit tests for builder.py - statement composition."""

import dataclasses
import uuid

import pytest

import pgrecord
from pgrecord import Condition, QueryBuilder, QueryConfig, column
from pgrecord.builder import delete_statement, insert_statement, select_statement, update_statement
from pgrecord.errors import QueryBuildError, UnmappedColumn

from tests.models import Item, Note, User


class TestSelect:
    def test_star(self):
        statement = QueryBuilder().select().from_("orm_user").build()
        assert statement == ("select", "SELECT * FROM orm_user", ())

    def test_full(self):
        statement = (
            QueryBuilder()
            .select("id", "name")
            .from_("orm_user")
            .where("user_type", "=", "admin")
            .where_in("id", [1, 2])
            .search(["name", "email"], "ann")
            .order_by("name", "desc")
            .limit(5)
            .offset(10)
            .build()
        )
        assert statement.sql == (
            "SELECT id, name FROM orm_user WHERE user_type = $1 AND id IN ($2,$3) "
            "AND (name LIKE $4 OR email LIKE $5) ORDER BY name DESC LIMIT $6 OFFSET $7"
        )
        assert statement.args == ("admin", 1, 2, "%ann%", "%ann%", 5, 10)

    def test_joins(self):
        sql = (
            QueryBuilder()
            .select("a.x")
            .from_("a")
            .join("b", "a.id = b.a_id")
            .left_join("c", "a.id = c.a_id")
            .right_join("d", "a.id = d.a_id")
            .full_join("e", "a.id = e.a_id")
            .build()
            .sql
        )
        assert sql == (
            "SELECT a.x FROM a INNER JOIN b ON a.id = b.a_id LEFT JOIN c ON a.id = c.a_id "
            "RIGHT JOIN d ON a.id = d.a_id FULL OUTER JOIN e ON a.id = e.a_id"
        )

    def test_unknown_join_kind(self):
        with pytest.raises(QueryBuildError, match="Unknown join type"):
            QueryBuilder().select().from_("a").join("b", "true", "CROSS")

    def test_group_by_having(self):
        sql = QueryBuilder().select("role", "COUNT(*)").from_("p").group_by("role").having("COUNT(*) > 1").asc("role").build().sql
        assert sql == "SELECT role, COUNT(*) FROM p GROUP BY role HAVING COUNT(*) > 1 ORDER BY role ASC"

    def test_where_like(self):
        statement = QueryBuilder().select().from_("t").where_like("name", "bo").where_not_in("id", [9]).build()
        assert statement.sql == "SELECT * FROM t WHERE name LIKE $1 AND id NOT IN ($2)"
        assert statement.args == ("%bo%", 9)

    def test_default_page_size(self):
        assert QueryBuilder().select().from_("t").paginate().build().sql == "SELECT * FROM t LIMIT 10"
        with pgrecord.config(default_page_size=25):
            assert QueryBuilder().select().from_("t").paginate().build().sql == "SELECT * FROM t LIMIT 25"

    def test_explicit_limit_wins(self):
        statement = QueryBuilder().select().from_("t").paginate().limit(3).build()
        assert statement.sql == "SELECT * FROM t LIMIT $1"
        assert statement.args == (3,)

    @pytest.mark.parametrize("value", [-1, "5", 2.5, True])
    def test_bad_limit(self, value):
        with pytest.raises((TypeError, QueryBuildError)):
            QueryBuilder().limit(value)

    def test_bad_direction(self):
        with pytest.raises(QueryBuildError, match="ASC or DESC"):
            QueryBuilder().order_by("name", "sideways")

    def test_missing_table(self):
        with pytest.raises(QueryBuildError, match="has no table"):
            QueryBuilder().select("id").build()

    def test_missing_kind(self):
        with pytest.raises(QueryBuildError, match="No statement kind"):
            QueryBuilder().from_("t").build()

    def test_kind_cannot_change(self):
        with pytest.raises(QueryBuildError, match="Cannot turn"):
            QueryBuilder().select().delete_from("t")

    def test_table_must_be_identifier(self):
        with pytest.raises(QueryBuildError, match="Invalid table name"):
            QueryBuilder().select().from_("t; DROP TABLE x")


class TestSelectStatement:
    def test_query_config(self):
        query = QueryConfig(
            table="orm_item",
            fields=["id", "name"],
            conditions=[("position", ">", 2)],
            order_by="position",
            descending=True,
            limit=5,
            offset=5,
        )
        assert select_statement(query) == (
            "select",
            "SELECT id, name FROM orm_item WHERE position > $1 ORDER BY position DESC LIMIT $2 OFFSET $3",
            (2, 5, 5),
        )

    def test_pagination_default(self):
        statement = select_statement(QueryConfig(table="orm_item", allow_pagination=True))
        assert statement.sql == "SELECT * FROM orm_item LIMIT 10"

    def test_no_pagination_no_limit(self):
        assert select_statement(QueryConfig(table="orm_item")).sql == "SELECT * FROM orm_item"

    def test_search_requires_allow_search(self):
        query = QueryConfig(table="orm_item", search_fields=["name"], search_text="test5")
        assert select_statement(query).sql == "SELECT * FROM orm_item"
        query = dataclasses.replace(query, allow_search=True)
        assert select_statement(query) == ("select", "SELECT * FROM orm_item WHERE (name LIKE $1)", ("%test5%",))

    def test_fields_must_be_identifiers(self):
        with pytest.raises(QueryBuildError):
            select_statement(QueryConfig(table="t", fields=["id, (SELECT 1)"]))


class TestInsert:
    def test_record(self):
        user = User(email="a@example.com", name="A", user_type="admin")
        statement = insert_statement(user, "orm_user")
        assert statement.sql == "INSERT INTO orm_user (id, email, name, user_type) VALUES ($1, $2, $3, $4)"
        assert statement.args == (user.id, "a@example.com", "A", "admin")

    def test_implicit_key_is_not_inserted(self):
        statement = insert_statement(Note(title="hello", draft=False), "gpo_note")
        assert statement.sql == "INSERT INTO gpo_note (title, draft) VALUES ($1, $2)"

    def test_unmapped_column(self):
        with pytest.raises(UnmappedColumn, match="Column id has no field on Note"):
            insert_statement(Note(), "gpo_note", columns=["id", "title"])

    def test_values_mapping(self):
        statement = QueryBuilder().insert({"a": 1, "b": None}).into("t").build()
        assert statement == ("insert", "INSERT INTO t (a, b) VALUES ($1, $2)", (1, None))

    def test_no_values(self):
        with pytest.raises(QueryBuildError, match="has no values"):
            QueryBuilder().insert().into("t").build()


class TestUpdate:
    def test_implicit_primary_key_condition(self):
        item = Item(id=7, name="renamed", position=3)
        statement = update_statement(item, "orm_item")
        assert statement.sql == "UPDATE orm_item SET name = $1, position = $2, created = $3 WHERE id = $4"
        assert statement.args == ("renamed", 3, None, 7)

    def test_explicit_conditions_follow_set_values(self):
        item = Item(id=7, name="renamed", position=3)
        statement = update_statement(item, "orm_item", [("position", "<", 10), ("name", "IN", ["a", "b"])])
        assert statement.sql == (
            "UPDATE orm_item SET name = $1, position = $2, created = $3 WHERE position < $4 AND name IN ($5,$6)"
        )
        assert statement.args == ("renamed", 3, None, 10, "a", "b")

    def test_no_key_field(self):
        with pytest.raises(QueryBuildError, match="no field for primary key id"):
            update_statement(Note(), "gpo_note")

    def test_no_key_field_with_conditions(self):
        statement = update_statement(Note(title="x"), "gpo_note", [Condition("title", "=", "y")])
        assert statement.sql == "UPDATE gpo_note SET title = $1, draft = $2 WHERE title = $3"

    def test_set_columns(self, caplog):
        statement = QueryBuilder().update("t").set("a", 1).build()
        assert statement == ("update", "UPDATE t SET a = $1", (1,))
        assert "affects every row" in caplog.text

    def test_nothing_to_set(self):
        with pytest.raises(QueryBuildError, match="sets no columns"):
            QueryBuilder().update("t").build()

    def test_field_names_differ_from_columns(self):
        @dataclasses.dataclass
        class Account:
            account_id: uuid.UUID = column("id,pk", default=None)
            display: str = column("display_name", default="")

        key = uuid.uuid4()
        statement = update_statement(Account(account_id=key, display="Bo"), "accounts")
        assert statement == ("update", "UPDATE accounts SET display_name = $1 WHERE id = $2", ("Bo", key))


class TestDelete:
    def test_conditions(self):
        assert delete_statement("orm_item", [("id", "=", 3)]) == ("delete", "DELETE FROM orm_item WHERE id = $1", (3,))

    def test_all_rows(self, caplog):
        assert delete_statement("orm_item") == ("delete", "DELETE FROM orm_item", ())
        assert "removes every row" in caplog.text
