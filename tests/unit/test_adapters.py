"""
Unit tests for the database adapter.

These run without a database server.
"""

import datetime
import decimal
import uuid

import psycopg2
import pytest

from pgrecord import errors
from pgrecord.adapters import get_adapter
from pgrecord.adapters.postgres import PostgreSQLAdapter


@pytest.fixture
def adapter():
    return PostgreSQLAdapter()


class DriverError(Exception):
    """Stands in for a driver error carrying an SQLSTATE."""

    def __init__(self, message, pgcode=None):
        super().__init__(message)
        self.pgcode = pgcode


class TestRegistry:
    @pytest.mark.parametrize("name", ["postgresql", "postgres", "PostgreSQL"])
    def test_known(self, name):
        assert isinstance(get_adapter(name), PostgreSQLAdapter)

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown database backend"):
            get_adapter("mysql")

    def test_properties(self, adapter):
        assert adapter.backend == "postgresql"
        assert adapter.default_port == 5432
        assert adapter.parameter_placeholder == "%s"


class TestFormatQuery:
    def test_in_order(self, adapter):
        assert adapter.format_query("SELECT * FROM t WHERE a = $1 AND b = $2", ("x", 2)) == (
            "SELECT * FROM t WHERE a = %s AND b = %s",
            ("x", 2),
        )

    def test_reordered_and_repeated(self, adapter):
        sql, args = adapter.format_query("SELECT $2, $1, $2", ("a", "b"))
        assert sql == "SELECT %s, %s, %s"
        assert args == ("b", "a", "b")

    def test_ten_and_above(self, adapter):
        sql, args = adapter.format_query("SELECT $10, $1", tuple(range(1, 11)))
        assert sql == "SELECT %s, %s"
        assert args == (10, 1)

    def test_percent_is_escaped(self, adapter):
        sql, _ = adapter.format_query("SELECT 5 % 2, $1", (1,))
        assert sql == "SELECT 5 %% 2, %s"

    def test_placeholders_in_literals_untouched(self, adapter):
        sql, args = adapter.format_query("SELECT '$1 50%', \"col$2\" FROM t WHERE a = $1", ("x",))
        assert sql == "SELECT '$1 50%%', \"col$2\" FROM t WHERE a = %s"
        assert args == ("x",)

    def test_without_placeholders(self, adapter):
        assert adapter.format_query("SELECT * FROM t WHERE a LIKE '50%'") == ("SELECT * FROM t WHERE a LIKE '50%'", None)
        assert adapter.format_query("SELECT %s", [4]) == ("SELECT %s", (4,))

    def test_missing_argument(self, adapter):
        with pytest.raises(errors.QueryBuildError, match=r"\$3 has no argument"):
            adapter.format_query("SELECT $1, $3", (1, 2))


class TestTypes:
    @pytest.mark.parametrize(
        "python_type, length, expected",
        [
            (str, None, "VARCHAR(255)"),
            (str, 30, "VARCHAR(30)"),
            (str, 255, "VARCHAR(255)"),
            (str, 256, "TEXT"),
            (int, None, "INTEGER"),
            (float, None, "REAL"),
            (bool, None, "BOOLEAN"),
            (uuid.UUID, None, "UUID"),
            (datetime.datetime, None, "TIMESTAMP"),
            (datetime.date, None, "DATE"),
            (datetime.timedelta, None, "INTERVAL"),
            (decimal.Decimal, None, "NUMERIC"),
            (bytes, None, "BYTEA"),
        ],
    )
    def test_python_type_to_sql(self, adapter, python_type, length, expected):
        assert adapter.python_type_to_sql(python_type, length) == expected

    @pytest.mark.parametrize("python_type", [dict, list[int], complex])
    def test_unsupported(self, adapter, python_type):
        with pytest.raises(errors.SchemaError, match="Unsupported field type"):
            adapter.python_type_to_sql(python_type)

    @pytest.mark.parametrize(
        "declared, reported",
        [
            ("VARCHAR(30)", "character varying"),
            ("TEXT", "text"),
            ("TIMESTAMP", "timestamp without time zone"),
            ("integer", "integer"),
            ("double precision", "double precision"),
        ],
    )
    def test_normalize(self, adapter, declared, reported):
        assert adapter.normalize_sql_type(declared) == reported


class TestTranslateError:
    @pytest.mark.parametrize(
        "pgcode, expected",
        [
            ("23505", errors.DuplicateError),
            ("23503", errors.IntegrityError),
            ("23502", errors.IntegrityError),
            ("42601", errors.QuerySyntaxError),
            ("42P01", errors.MissingTableError),
            ("42703", errors.UnknownColumnError),
            ("08006", errors.LostConnectionError),
            ("42501", errors.AccessError),
            ("22P02", errors.ExecutionError),
        ],
    )
    def test_sqlstate(self, adapter, pgcode, expected):
        translated = adapter.translate_error(DriverError("boom", pgcode), "insert into orm_user")
        assert type(translated) is expected
        assert str(translated) == "insert into orm_user failed: boom"

    def test_operational_without_code(self, adapter):
        translated = adapter.translate_error(psycopg2.OperationalError("server closed the connection"), "select")
        assert isinstance(translated, errors.LostConnectionError)

    def test_everything_is_execution_error(self, adapter):
        for pgcode in ("23505", "42P01", None):
            assert isinstance(adapter.translate_error(DriverError("x", pgcode)), errors.ExecutionError)

    def test_sql_is_not_repeated(self, adapter):
        translated = adapter.translate_error(DriverError("syntax error", "42601"), "custom query")
        assert "SELECT" not in str(translated)
