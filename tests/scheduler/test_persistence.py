"""
Persistence tests.

TriggerStore validation and CRUD, ExecutionLedger append/list, auxiliary stores.
"""

import sqlite3
import typing
from typing import List

import pytest

from homelab.scheduler import (
    Database,
    DedupLedger,
    ExecutionLedger,
    ExecutionRecord,
    ExecutionStatus,
    InvalidScheduleError,
    InvalidTriggerError,
    JobType,
    MetricsStore,
    NotificationStore,
    Trigger,
    TriggerNotFoundError,
    TriggerStore,
    UnknownJobTypeError,
    UploadLogStore,
)
from homelab.scheduler.errors import PersistenceError


class TestTriggerStoreCreate:
    """Creation and validation."""

    def test_create_assigns_id_and_timestamps(self, trigger_store, make_draft):
        trigger = trigger_store.create(make_draft(name="heartbeat", config={"cpuThreshold": 70}))

        assert trigger.id > 0
        assert trigger.name == "heartbeat"
        assert trigger.job_type == JobType.HEALTH_CHECK
        assert trigger.config == {"cpuThreshold": 70}
        assert trigger.enabled is True
        assert trigger.last_run is None
        assert trigger.created_at == trigger.updated_at

    def test_create_strips_name_and_schedule(self, trigger_store, make_draft):
        trigger = trigger_store.create(make_draft(name="  nightly ", schedule=" 0 2 * * * "))

        assert trigger.name == "nightly"
        assert trigger.schedule == "0 2 * * *"

    def test_six_field_schedule_accepted(self, trigger_store, make_draft):
        trigger = trigger_store.create(make_draft(schedule="*/30 * * * * *"))
        assert trigger.schedule == "*/30 * * * * *"

    @pytest.mark.parametrize("schedule", ["not a cron", "* * *", "61 * * * *", ""])
    def test_invalid_schedule_rejected(self, trigger_store, make_draft, schedule):
        with pytest.raises(InvalidScheduleError):
            trigger_store.create(make_draft(schedule=schedule))
        assert trigger_store.count() == 0

    def test_unknown_type_rejected(self, trigger_store, make_draft):
        with pytest.raises(UnknownJobTypeError) as exc_info:
            trigger_store.create(make_draft(job_type="mine-bitcoin"))

        assert "mine-bitcoin" in str(exc_info.value)
        assert "health-check" in exc_info.value.valid_types
        assert trigger_store.count() == 0

    def test_empty_name_rejected(self, trigger_store, make_draft):
        with pytest.raises(InvalidTriggerError):
            trigger_store.create(make_draft(name="   "))

    def test_validation_errors_share_base_class(self):
        assert issubclass(InvalidScheduleError, InvalidTriggerError)
        assert issubclass(UnknownJobTypeError, InvalidTriggerError)


class TestTriggerStoreReadUpdateDelete:

    def test_get_missing_raises(self, trigger_store):
        with pytest.raises(TriggerNotFoundError):
            trigger_store.get(999)
        assert trigger_store.find(999) is None

    def test_list_newest_first(self, trigger_store, make_draft):
        first = trigger_store.create(make_draft(name="first"))
        second = trigger_store.create(make_draft(name="second"))

        ids = [t.id for t in trigger_store.list()]
        assert ids == [second.id, first.id]

    def test_list_enabled(self, trigger_store, make_draft):
        on = trigger_store.create(make_draft(name="on"))
        trigger_store.create(make_draft(name="off", enabled=False))

        assert [t.id for t in trigger_store.list_enabled()] == [on.id]

    def test_partial_update_keeps_other_fields(self, trigger_store, make_draft):
        trigger = trigger_store.create(make_draft(name="old", config={"a": 1}))

        updated = trigger_store.update(trigger.id, name="new")

        assert updated.name == "new"
        assert updated.schedule == trigger.schedule
        assert updated.config == {"a": 1}
        assert updated.updated_at >= trigger.updated_at

    def test_update_with_no_fields_is_noop(self, trigger_store, make_draft):
        trigger = trigger_store.create(make_draft())
        assert trigger_store.update(trigger.id) == trigger

    def test_update_invalid_schedule_leaves_row(self, trigger_store, make_draft):
        trigger = trigger_store.create(make_draft(schedule="0 1 * * *"))

        with pytest.raises(InvalidScheduleError):
            trigger_store.update(trigger.id, schedule="every tuesday")

        assert trigger_store.get(trigger.id).schedule == "0 1 * * *"

    def test_update_missing_raises(self, trigger_store):
        with pytest.raises(TriggerNotFoundError):
            trigger_store.update(42, name="x")

    def test_disable_clears_next_run(self, trigger_store, make_draft):
        trigger = trigger_store.create(make_draft())
        trigger_store.set_next_run(trigger.id, "2026-01-01T00:05:00.000000Z")
        assert trigger_store.get(trigger.id).next_run is not None

        updated = trigger_store.update(trigger.id, enabled=False)

        assert updated.enabled is False
        assert updated.next_run is None

    def test_delete_is_idempotent(self, trigger_store, make_draft):
        trigger = trigger_store.create(make_draft())

        assert trigger_store.delete(trigger.id) is True
        assert trigger_store.delete(trigger.id) is False
        assert trigger_store.find(trigger.id) is None

    def test_set_next_run_on_deleted_row_is_noop(self, trigger_store):
        trigger_store.set_next_run(12345, "2026-01-01T00:00:00.000000Z")

    def test_rows_survive_reopen(self, temp_db_path, make_draft):
        TriggerStore(Database(temp_db_path)).create(make_draft(name="durable"))

        reopened = TriggerStore(Database(temp_db_path))
        assert [t.name for t in reopened.list()] == ["durable"]


class TestExecutionLedger:

    def _record(self, trigger_id, status=ExecutionStatus.SUCCESS, message="ok", executed_at=None):
        kwargs = {"executed_at": executed_at} if executed_at else {}
        return ExecutionRecord(
            trigger_id=trigger_id,
            status=status,
            message=message,
            duration_ms=5,
            **kwargs,
        )

    def test_record_assigns_id_and_stamps_last_run(self, trigger_store, ledger, make_draft):
        trigger = trigger_store.create(make_draft())
        stored = ledger.record(self._record(trigger.id))

        assert stored.id is not None
        assert trigger_store.get(trigger.id).last_run == stored.executed_at

    def test_record_kept_after_trigger_deleted(self, trigger_store, ledger, make_draft):
        trigger = trigger_store.create(make_draft())
        trigger_store.delete(trigger.id)

        ledger.record(self._record(trigger.id))

        assert ledger.count(trigger.id) == 1

    def test_list_newest_first_with_filter_and_limit(self, ledger):
        ledger.record(self._record(1, executed_at="2026-01-01T00:00:00.000000Z", message="a"))
        ledger.record(self._record(2, executed_at="2026-01-01T00:01:00.000000Z", message="b"))
        ledger.record(self._record(1, executed_at="2026-01-01T00:02:00.000000Z", message="c"))

        assert [r.message for r in ledger.list()] == ["c", "b", "a"]
        assert [r.message for r in ledger.list(trigger_id=1)] == ["c", "a"]
        assert [r.message for r in ledger.list(limit=1)] == ["c"]

    def test_roundtrips_error_status(self, ledger):
        ledger.record(self._record(3, status=ExecutionStatus.ERROR, message="boom"))

        (record,) = ledger.list(trigger_id=3)
        assert record.status == ExecutionStatus.ERROR
        assert record.to_dict()["status"] == "error"

    def test_write_failure_raises_persistence_error(self, database, monkeypatch):
        def broken_connection():
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(database, "_get_connection", broken_connection)

        with pytest.raises(PersistenceError):
            ExecutionLedger(database).record(self._record(1))


class TestAuxiliaryStores:

    def test_metrics_since_window(self, database):
        metrics = MetricsStore(database)
        metrics.append(10.0, 20.0, recorded_at="2000-01-01T00:00:00.000000Z")
        metrics.append(30.0, 40.0, temperature=55.0)

        recent = metrics.since(hours=24)

        assert len(recent) == 1
        assert recent[0].cpu_load == 30.0
        assert recent[0].temperature == 55.0

    def test_notifications_newest_first(self, database):
        store = NotificationStore(database)
        store.add("report", "Daily report", "all good")
        store.add("email", "Email: hi", "From: a@b.c")

        rows = store.list()

        assert [row["type"] for row in rows] == ["email", "report"]
        assert rows[0]["read"] is False

    def test_upload_log_newest_first(self, database):
        store = UploadLogStore(database)
        store.record("invoice.xlsx", "file-1", "Tax_Accounting", "tax")
        store.record("photo.png", None, "Images", "image")
        store.record("lease.pdf", "file-3", "Contracts", "contract")

        rows = store.recent(limit=2)

        assert [row["filename"] for row in rows] == ["lease.pdf", "photo.png"]
        assert rows[0]["drive_id"] == "file-3"
        assert rows[0]["uploaded_at"]
        assert rows[1]["drive_id"] is None
        assert len(store.recent()) == 3

    def test_upload_log_is_exportable(self, database):
        UploadLogStore(database).record("invoice.xlsx", "file-1", "Tax_Accounting", "tax")

        (row,) = database.fetch_table("drive_uploads")

        assert row["folder"] == "Tax_Accounting"

    def test_fetch_table_rejects_unknown_table(self, database):
        with pytest.raises(ValueError):
            database.fetch_table("sqlite_master")


class TestStoreAnnotations:
    """Stores with a `list` method must still resolve their return hints."""

    def test_list_enabled_hint(self):
        assert typing.get_type_hints(TriggerStore.list_enabled)["return"] == List[Trigger]

    @pytest.mark.parametrize(
        "method",
        [
            TriggerStore.list,
            TriggerStore.list_enabled,
            ExecutionLedger.list,
            NotificationStore.list,
            DedupLedger.entries,
            MetricsStore.since,
            UploadLogStore.recent,
        ],
    )
    def test_hints_resolve(self, method):
        assert "return" in typing.get_type_hints(method)
