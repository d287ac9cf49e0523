"""Tests for foreign key resolution and its per-run cache."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from processing.errors import ForeignKeyNotFoundError, ResolverBackendError
from processing.fk_resolver import NOT_FOUND, ForeignKeyResolver, SqlLookupBackend
from processing.mapping import ForeignKeyRule


@pytest.fixture
def backend():
    backend = MagicMock()
    backend.lookup.side_effect = lambda rule, value: {"a@x.com": 7, "b@x.com": 8}.get(value, NOT_FOUND)
    backend.lookup_many.side_effect = lambda rule, values: {
        v: k for v, k in {"a@x.com": 7, "b@x.com": 8}.items() if v in values
    }
    return backend


def test_repeated_value_queries_backend_once(backend, customer_rule):
    resolver = ForeignKeyResolver(backend)

    keys = [resolver.resolve(customer_rule, "a@x.com") for _ in range(5)]

    assert keys == [7] * 5
    backend.lookup.assert_called_once_with(customer_rule, "a@x.com")
    assert resolver.cache_info() == {"entries": 1, "hits": 4, "queries": 1}


def test_misses_are_cached_too(backend, customer_rule):
    resolver = ForeignKeyResolver(backend)

    for _ in range(3):
        with pytest.raises(ForeignKeyNotFoundError) as excinfo:
            resolver.resolve(customer_rule, "ghost@x.com", target_field="customer_id")

    assert backend.lookup.call_count == 1
    assert str(excinfo.value) == "no Customers.Id where Email = 'ghost@x.com' for customer_id"
    assert excinfo.value.raw_value == "ghost@x.com"


def test_empty_value_skips_lookup_unless_required(backend, customer_rule):
    resolver = ForeignKeyResolver(backend)

    assert resolver.resolve(customer_rule, None) is None
    assert resolver.resolve(customer_rule, "  ") is None
    with pytest.raises(ForeignKeyNotFoundError):
        resolver.resolve(customer_rule, "", required=True)
    backend.lookup.assert_not_called()


def test_cache_is_per_rule(backend, customer_rule):
    other_rule = ForeignKeyRule("Customers", "Email", "Name")
    resolver = ForeignKeyResolver(backend)

    resolver.resolve(customer_rule, "a@x.com")
    resolver.resolve(other_rule, "a@x.com")

    assert backend.lookup.call_count == 2


def test_clear_cache_forces_new_lookup(backend, customer_rule):
    resolver = ForeignKeyResolver(backend)
    resolver.resolve(customer_rule, "a@x.com")

    resolver.clear_cache()
    resolver.resolve(customer_rule, "a@x.com")

    assert backend.lookup.call_count == 2


def test_prefetch_sends_distinct_uncached_values(backend, customer_rule):
    resolver = ForeignKeyResolver(backend)
    resolver.resolve(customer_rule, "b@x.com")

    sent = resolver.prefetch(customer_rule, ["a@x.com", None, "a@x.com", "b@x.com", "ghost@x.com"])

    assert sent == 2
    backend.lookup_many.assert_called_once_with(customer_rule, ["a@x.com", "ghost@x.com"])
    assert resolver.resolve(customer_rule, "a@x.com") == 7
    with pytest.raises(ForeignKeyNotFoundError):
        resolver.resolve(customer_rule, "ghost@x.com")

    assert backend.lookup.call_count == 1  # only the b@x.com resolve above
    assert resolver.cache_info()["entries"] == 3


def test_prefetch_with_nothing_to_fetch(backend, customer_rule):
    resolver = ForeignKeyResolver(backend)
    assert resolver.prefetch(customer_rule, [None, ""]) == 0
    backend.lookup_many.assert_not_called()


class TestSqlLookupBackend:
    def test_lookup_and_lookup_many(self, shop_db, customer_rule):
        with shop_db.connect() as conn:
            backend = SqlLookupBackend(conn)
            assert backend.lookup(customer_rule, "a@x.com") == 7
            assert backend.lookup(customer_rule, "ghost@x.com") is NOT_FOUND
            assert backend.lookup_many(customer_rule, ["a@x.com", "b@x.com", "zzz"]) == {
                "a@x.com": 7,
                "b@x.com": 8,
            }

    def test_lookup_many_keys_loose_matches_by_requested_value(self, target_engine):
        with target_engine.begin() as conn:
            conn.execute(text("CREATE TABLE Codes (Id INTEGER PRIMARY KEY, Code TEXT COLLATE NOCASE)"))
            conn.execute(text("INSERT INTO Codes (Id, Code) VALUES (1, 'abc'), (2, 'XYZ')"))

        rule = ForeignKeyRule("Codes", "Code", "Id")
        with target_engine.connect() as conn:
            found = SqlLookupBackend(conn).lookup_many(rule, ["ABC", "XYZ", "nope"])

        assert found == {"ABC": 1, "XYZ": 2}

    def test_unknown_column_is_backend_error(self, shop_db):
        rule = ForeignKeyRule("Customers", "Phone", "Id")
        with shop_db.connect() as conn:
            with pytest.raises(ResolverBackendError, match="'Phone' not found"):
                SqlLookupBackend(conn).lookup(rule, "555")

    def test_database_failure_is_backend_error(self, customer_rule, monkeypatch):
        monkeypatch.setattr("processing.fk_resolver.select", MagicMock())
        conn = MagicMock()
        backend = SqlLookupBackend(conn)
        backend._tables["Customers"] = MagicMock()
        conn.execute.side_effect = OperationalError("SELECT", {}, Exception("database is locked"))

        with pytest.raises(ResolverBackendError, match="database is locked"):
            backend.lookup(customer_rule, "a@x.com")
