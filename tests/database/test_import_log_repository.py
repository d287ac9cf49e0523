"""Tests for ImportLogRepository queries."""

from datetime import datetime

import pytest

from database.repositories import ImportLogRepository
from database.session import session_scope


@pytest.fixture
def seeded(log_sessions):
    with session_scope(log_sessions) as session:
        repo = ImportLogRepository(session)
        repo.upsert(
            "run-1",
            configuration_name="Orders",
            table_name="Orders",
            status="Completed",
            start_time=datetime(2024, 1, 1, 9),
        )
        repo.upsert(
            "run-2",
            configuration_name="Customers",
            table_name="Customers",
            status="Failed",
            start_time=datetime(2024, 1, 5, 9),
            row_errors=[(4, "boom")],
        )
        repo.upsert(
            "run-3",
            configuration_name="Orders",
            table_name="Orders",
            status="Cancelled",
            start_time=datetime(2024, 2, 1, 9),
        )
    return log_sessions


def test_get_logs_newest_first(seeded):
    with session_scope(seeded) as session:
        logs = ImportLogRepository(session).get_logs()
        assert [log.run_id for log in logs] == ["run-3", "run-2", "run-1"]


def test_get_logs_by_date_range_and_status(seeded):
    with session_scope(seeded) as session:
        repo = ImportLogRepository(session)
        january = repo.get_logs(from_date=datetime(2024, 1, 1), to_date=datetime(2024, 1, 31))
        assert [log.run_id for log in january] == ["run-2", "run-1"]
        assert [log.run_id for log in repo.get_logs(status="Failed")] == ["run-2"]


def test_get_by_configuration(seeded):
    with session_scope(seeded) as session:
        logs = ImportLogRepository(session).get_by_configuration("Orders")
        assert [log.run_id for log in logs] == ["run-3", "run-1"]


def test_upsert_replaces_row_errors(seeded):
    with session_scope(seeded) as session:
        repo = ImportLogRepository(session)
        repo.upsert("run-2", row_errors=[(1, "a"), (2, "b")], status="Completed")

    with session_scope(seeded) as session:
        log = ImportLogRepository(session).get_by_run_id("run-2")
        assert log.status == "Completed"
        assert log.configuration_name == "Customers"
        assert [(e.row_index, e.message) for e in log.row_errors] == [(1, "a"), (2, "b")]


def test_delete_by_run_id(seeded):
    with session_scope(seeded) as session:
        repo = ImportLogRepository(session)
        assert repo.delete_by_run_id("run-1") is True
        assert repo.delete_by_run_id("run-1") is False
        assert len(repo.list_all()) == 2
