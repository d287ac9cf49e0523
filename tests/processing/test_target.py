"""Tests for target table reflection and error classification."""

import pytest
from sqlalchemy.exc import DataError, IntegrityError, OperationalError, ProgrammingError, StatementError

from processing.errors import ImportConfigurationError
from processing.mapping import FieldMapping, ForeignKeyRule, MappingConfiguration
from processing.target import TargetTable, is_row_local_error, reference_problems


@pytest.mark.parametrize(
    "error, row_local",
    [
        (IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed")), True),
        (DataError("INSERT", {}, Exception("value too long")), True),
        (ProgrammingError("INSERT", {}, Exception("unsupported type")), True),
        (StatementError("bind failed", "INSERT", {}, ValueError("bad")), True),
        (OperationalError("INSERT", {}, Exception("disk I/O error")), False),
    ],
)
def test_is_row_local_error(error, row_local):
    assert is_row_local_error(error) is row_local


def test_invalidated_connection_is_fatal():
    error = IntegrityError("INSERT", {}, Exception("gone"), connection_invalidated=True)
    assert is_row_local_error(error) is False


def test_reflect_missing_table(shop_db):
    with shop_db.connect() as conn:
        with pytest.raises(ImportConfigurationError, match="'Invoices' does not exist"):
            TargetTable.reflect(conn, "Invoices")


def test_schema_problems(shop_db):
    config = MappingConfiguration(
        "bad",
        "Orders",
        [FieldMapping("Product", "product", is_required=True), FieldMapping("Colour", "colour")],
    )
    with shop_db.connect() as conn:
        target = TargetTable.reflect(conn, "Orders")
        problems = target.schema_problems(config)

    # Id is an integer primary key and status has a server default
    assert problems == [
        "Target fields not found in table 'Orders': colour",
        "Required columns of 'Orders' have no mapping: customer_id",
    ]


def test_reference_problems(shop_db):
    config = MappingConfiguration(
        "refs",
        "Orders",
        [
            FieldMapping("A", "customer_id", is_required=True, foreign_key=ForeignKeyRule("Customers", "Phone", "Id")),
            FieldMapping("B", "product", foreign_key=ForeignKeyRule("Products", "Name", "Id")),
        ],
    )
    with shop_db.connect() as conn:
        problems = reference_problems(conn, config)

    assert problems == [
        "customer_id: column 'Phone' not found in 'Customers'",
        "product: referenced table 'Products' does not exist",
    ]


def test_failed_insert_rolls_back_only_its_savepoint(shop_db, fetch_orders):
    with shop_db.connect() as conn:
        target = TargetTable.reflect(conn, "Orders")
        conn.rollback()
        with conn.begin():
            target.insert({"customer_id": 7, "product": "Widget"})
            with pytest.raises(IntegrityError):
                target.insert({"customer_id": 7, "product": "Widget"})
            target.insert({"customer_id": 8, "product": "Gadget"})

    assert [row["product"] for row in fetch_orders()] == ["Widget", "Gadget"]
    assert fetch_orders()[0]["status"] == "new"
