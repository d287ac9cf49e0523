"""Pytest configuration and fixtures."""

import sys
from datetime import datetime
from pathlib import Path
from typing import Callable, Sequence
from unittest.mock import MagicMock

import openpyxl
import pytest
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    text,
)

# Add src directory to Python path
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from database.base import create_target_engine
from database.session import engine_session_factory
from processing.data_types import DataType
from processing.mapping import FieldMapping, ForeignKeyRule, MappingConfiguration


# ---------------------------------------------------------------------------
# Database Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def target_engine(tmp_path):
    """File-backed SQLite target database with savepoints enabled."""
    engine = create_target_engine(tmp_path / "target.db")
    yield engine
    engine.dispose()


@pytest.fixture
def shop_tables():
    """Customers (reference data) and Orders (import target)."""
    metadata = MetaData()
    customers = Table(
        "Customers",
        metadata,
        Column("Id", Integer, primary_key=True),
        Column("Email", String(100), nullable=False),
        Column("Name", String(100)),
    )
    orders = Table(
        "Orders",
        metadata,
        Column("Id", Integer, primary_key=True, autoincrement=True),
        Column("customer_id", Integer, nullable=False),
        Column("product", String(100), nullable=False, unique=True),
        Column("quantity", Integer, CheckConstraint("quantity >= 0", name="ck_quantity")),
        Column("price", Float),
        Column("ordered_on", DateTime),
        Column("gift", Boolean),
        Column("status", String(20), nullable=False, server_default=text("'new'")),
    )
    return metadata, customers, orders


@pytest.fixture
def shop_db(target_engine, shop_tables):
    """Target engine with Customers a@x.com -> 7 and b@x.com -> 8."""
    metadata, customers, _ = shop_tables
    metadata.create_all(target_engine)
    with target_engine.begin() as conn:
        conn.execute(
            customers.insert(),
            [
                {"Id": 7, "Email": "a@x.com", "Name": "Ada"},
                {"Id": 8, "Email": "b@x.com", "Name": "Bob"},
            ],
        )
    return target_engine


@pytest.fixture
def fetch_orders(shop_db, shop_tables):
    """Return committed Orders rows as dicts, in insert order."""
    _, _, orders = shop_tables

    def _fetch():
        with shop_db.connect() as conn:
            rows = conn.execute(orders.select().order_by(orders.c.Id)).mappings().all()
        return [dict(row) for row in rows]

    return _fetch


@pytest.fixture
def log_sessions(tmp_path):
    """Session factory for a throwaway import log store."""
    engine = create_target_engine(tmp_path / "import_logs.db")
    yield engine_session_factory(engine)
    engine.dispose()


# ---------------------------------------------------------------------------
# Mapping Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def customer_rule() -> ForeignKeyRule:
    return ForeignKeyRule("Customers", "Email", "Id", rule_id="customer")


@pytest.fixture
def orders_mapping(customer_rule) -> MappingConfiguration:
    """Email -> customer_id (required, via Customers), Product -> product (required)."""
    return MappingConfiguration(
        name="Orders import",
        table_name="Orders",
        field_mappings=(
            FieldMapping("Email", "customer_id", is_required=True, foreign_key=customer_rule),
            FieldMapping("Product", "product", is_required=True),
            FieldMapping("Qty", "quantity", data_type=DataType.INTEGER),
            FieldMapping("Price", "price", data_type=DataType.DECIMAL),
            FieldMapping("Ordered", "ordered_on", data_type=DataType.DATE),
            FieldMapping("Gift", "gift", data_type=DataType.BOOLEAN),
        ),
    )


# ---------------------------------------------------------------------------
# Spreadsheet Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def make_workbook(tmp_path) -> Callable[..., Path]:
    """Write rows to an .xlsx file; the first row is the header."""

    def _make(rows: Sequence[Sequence[object]], name: str = "data.xlsx", sheet_title: str = "Sheet1") -> Path:
        workbook = openpyxl.Workbook()
        worksheet = workbook.active
        worksheet.title = sheet_title
        for row in rows:
            worksheet.append(list(row))
        path = tmp_path / name
        workbook.save(path)
        workbook.close()
        return path

    return _make


@pytest.fixture
def orders_rows():
    """Header plus four order rows; row 3 has an unknown customer."""
    return [
        ("Email", "Product", "Qty", "Price", "Ordered", "Gift"),
        ("a@x.com", "Widget", 2, 9.5, datetime(2024, 1, 15), "yes"),
        ("b@x.com", "Gadget", 1, 20, datetime(2024, 2, 1), None),
        ("ghost@x.com", "Sprocket", 5, 1.25, None, "no"),
        ("a@x.com", "Gizmo", None, None, None, None),
    ]


@pytest.fixture
def mock_progress_callback() -> MagicMock:
    """Create a mock progress callback for testing the executor."""
    return MagicMock()
