"""Unit tests for condition.py - WHERE clauses and placeholder numbering."""

import datetime
import re
import uuid

import numpy as np
import pytest

from pgrecord.condition import Condition, make_condition
from pgrecord.errors import QueryBuildError
from pgrecord.values import Value, ValueKind


def placeholders(clause):
    return [int(n) for n in re.findall(r"\$(\d+)", clause)]


class TestCondition:
    def test_operator_is_normalized(self):
        assert Condition("name", "not   like", "x").operator == "NOT LIKE"

    def test_value_is_classified(self):
        assert Condition("age", ">", 3).value == Value(ValueKind.INTEGER, 3)

    def test_coerce_tuple(self):
        assert Condition.coerce(("age", ">", 3)) == Condition("age", ">", 3)

    @pytest.mark.parametrize("bad", ["age", ("age", ">"), 5])
    def test_coerce_rejects(self, bad):
        with pytest.raises(QueryBuildError):
            Condition.coerce(bad)

    def test_in_requires_sequence(self):
        with pytest.raises(QueryBuildError, match="requires a sequence"):
            Condition("id", "IN", 5)

    def test_in_requires_elements(self):
        with pytest.raises(QueryBuildError, match="non-empty"):
            Condition("id", "NOT IN", [])

    def test_sequence_with_scalar_operator(self):
        with pytest.raises(QueryBuildError, match="does not accept a sequence"):
            Condition("id", "=", [1, 2])

    @pytest.mark.parametrize("operator", ["LIKE", "not like", "ILIKE", "NOT ILIKE"])
    def test_like_rejects_null(self, operator):
        with pytest.raises(QueryBuildError, match="requires a pattern"):
            make_condition([("name", operator, None)])

    @pytest.mark.parametrize("operator", ["; DROP TABLE x", "OR 1=1 --", "--", "UNION"])
    def test_unsafe_operator(self, operator):
        with pytest.raises(QueryBuildError, match="Unsupported condition operator"):
            Condition("name", operator, "x")

    @pytest.mark.parametrize("operator", ["~", "@>", "is distinct from", "similar to"])
    def test_custom_operator(self, operator):
        Condition("name", operator, "x")

    @pytest.mark.parametrize("field", ["name; --", "1name", "a.b.c", "name)"])
    def test_unsafe_field(self, field):
        with pytest.raises(QueryBuildError, match="Invalid field name"):
            Condition(field, "=", 1)

    def test_unsupported_value(self):
        with pytest.raises(QueryBuildError, match="Unsupported condition value"):
            Condition("name", "=", object())


class TestMakeCondition:
    def test_empty(self):
        assert make_condition([]) == ("", [])

    def test_empty_with_prior_args(self):
        clause, args = make_condition([], args=["x"])
        assert clause == ""
        assert args == ["x"]

    def test_and_in_order(self):
        clause, args = make_condition([("user_type", "=", "admin"), ("age", ">=", 18)])
        assert clause == "user_type = $1 AND age >= $2"
        assert args == ["admin", 18]

    def test_in_expansion(self):
        clause, args = make_condition([Condition("id", "IN", [3, 4, 5]), Condition("role", "NOT IN", ("a",))])
        assert clause == "id IN ($1,$2,$3) AND role NOT IN ($4)"
        assert args == [3, 4, 5, "a"]

    def test_like_wraps_value(self):
        clause, args = make_condition([("name", "LIKE", "ann"), ("email", "not like", "spam")])
        assert clause == "name LIKE $1 AND email NOT LIKE $2"
        assert args == ["%ann%", "%spam%"]

    def test_value_never_in_text(self):
        payload = "x'; DROP TABLE users; --"
        clause, args = make_condition([("name", "=", payload)])
        assert payload not in clause
        assert args == [payload]

    def test_null(self):
        clause, args = make_condition([("deleted_at", "=", None), ("owner", "!=", None)])
        assert clause == "deleted_at IS NULL AND owner IS NOT NULL"
        assert args == []

    def test_search_group(self):
        clause, args = make_condition([("user_type", "=", "admin")], ["name", "email"], "ann")
        assert clause == "user_type = $1 AND (name LIKE $2 OR email LIKE $3)"
        assert args == ["admin", "%ann%", "%ann%"]

    def test_search_only(self):
        assert make_condition([], ["name"], "x") == ("(name LIKE $1)", ["%x%"])

    def test_search_without_text(self):
        assert make_condition([], ["name", "email"], "") == ("", [])

    def test_numbering_continues(self):
        prior = ["new name", 7]
        clause, args = make_condition([("id", "=", 1), ("tag", "IN", ["a", "b"])], args=prior)
        assert clause == "id = $3 AND tag IN ($4,$5)"
        assert args == ["new name", 7, 1, "a", "b"]
        assert prior == ["new name", 7]

    def test_qualified_fields(self):
        clause, _ = make_condition([("orm_user.email", "LIKE", "perm")])
        assert clause == "orm_user.email LIKE $1"

    def test_numpy_values(self):
        _, args = make_condition([("n", "=", np.int64(4)), ("ids", "IN", np.array([1, 2]))])
        assert args == [4, 1, 2]
        assert all(type(a) is int for a in args)

    def test_rich_scalars(self):
        when = datetime.datetime(2024, 1, 2, 3, 4)
        key = uuid.uuid4()
        _, args = make_condition([("created", "<", when), ("id", "=", key), ("flag", "=", True)])
        assert args == [when, key, True]

    @pytest.mark.parametrize(
        "conditions, search_fields, search_text",
        [
            ([], [], ""),
            ([("a", "=", 1)], [], ""),
            ([("a", "IN", [1, 2, 3]), ("b", "LIKE", "x"), ("c", "<", 2.5)], [], ""),
            ([("a", "NOT IN", [1]), ("b", "IN", list(range(10)))], ["c", "d"], "q"),
            ([("a", "!=", "x")], ["b", "c", "d"], "text"),
        ],
    )
    def test_placeholder_count(self, conditions, search_fields, search_text):
        prior = ["p1", "p2"]
        clause, args = make_condition(conditions, search_fields, search_text, args=prior)
        conditions = [Condition.coerce(c) for c in conditions]
        expected = sum(len(c.value) if c.operator in ("IN", "NOT IN") else 1 for c in conditions)
        expected += len(search_fields) if search_text else 0
        assert len(args) - len(prior) == expected
        assert placeholders(clause) == list(range(len(prior) + 1, len(prior) + expected + 1))
