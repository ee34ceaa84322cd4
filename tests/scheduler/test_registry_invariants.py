"""
TriggerRegistry invariant tests.

For every trigger with enabled=true the registry holds exactly one live
timer; for enabled=false, none. Checked after every CRUD mutation and
after restart reconciliation.
"""

import threading
import time
from datetime import datetime, timezone

import pytest

from homelab.scheduler import (
    InvalidScheduleError,
    JobType,
    RegistrationState,
    TriggerNotFoundError,
    TriggerRegistry,
)


def assert_registry_mirrors_store(service, timer_factory):
    """Exactly one live timer per enabled trigger, none for disabled ones."""
    for trigger in service.store.list():
        live = timer_factory.live(trigger.id)
        if trigger.enabled:
            assert len(live) == 1, f"trigger {trigger.id} has {len(live)} live timers"
            assert service.registry.timer(trigger.id) is live[0]
            assert service.registry.state(trigger.id) == RegistrationState.SCHEDULED
        else:
            assert live == [], f"disabled trigger {trigger.id} has a live timer"
            assert not service.registry.is_scheduled(trigger.id)

    stored_enabled = {t.id for t in service.store.list_enabled()}
    assert service.registry.scheduled_ids == stored_enabled


class TestInvariantAfterCrud:

    def test_create_enabled(self, service, timer_factory, make_draft):
        trigger = service.create_trigger(make_draft())

        assert service.is_scheduled(trigger.id)
        assert_registry_mirrors_store(service, timer_factory)

    def test_create_disabled(self, service, timer_factory, make_draft):
        trigger = service.create_trigger(make_draft(enabled=False))

        assert not service.is_scheduled(trigger.id)
        assert service.registry.state(trigger.id) == RegistrationState.DISABLED
        assert_registry_mirrors_store(service, timer_factory)

    def test_update_schedule_replaces_timer(self, service, timer_factory, make_draft):
        trigger = service.create_trigger(make_draft(schedule="*/5 * * * *"))
        (old_timer,) = timer_factory.for_trigger(trigger.id)

        service.update_trigger(trigger.id, schedule="0 * * * *")

        assert old_timer.cancelled
        assert service.registry.timer(trigger.id).expression == "0 * * * *"
        assert_registry_mirrors_store(service, timer_factory)

    def test_disable_then_enable(self, service, timer_factory, make_draft):
        trigger = service.create_trigger(make_draft())

        service.update_trigger(trigger.id, enabled=False)
        assert_registry_mirrors_store(service, timer_factory)

        service.update_trigger(trigger.id, enabled=True)
        assert_registry_mirrors_store(service, timer_factory)
        assert len(timer_factory.for_trigger(trigger.id)) == 2

    def test_update_name_only_still_single_timer(self, service, timer_factory, make_draft):
        trigger = service.create_trigger(make_draft())

        for i in range(3):
            service.update_trigger(trigger.id, name=f"renamed {i}")

        assert_registry_mirrors_store(service, timer_factory)

    def test_invalid_update_leaves_timer_alone(self, service, timer_factory, make_draft):
        trigger = service.create_trigger(make_draft())
        (timer,) = timer_factory.for_trigger(trigger.id)

        with pytest.raises(InvalidScheduleError):
            service.update_trigger(trigger.id, schedule="every day")

        assert timer.is_active
        assert_registry_mirrors_store(service, timer_factory)

    def test_delete_cancels_timer(self, service, timer_factory, make_draft):
        trigger = service.create_trigger(make_draft())
        (timer,) = timer_factory.for_trigger(trigger.id)

        assert service.delete_trigger(trigger.id) is True

        assert timer.cancelled
        assert service.registry.state(trigger.id) == RegistrationState.UNREGISTERED
        assert_registry_mirrors_store(service, timer_factory)

    def test_delete_twice_is_noop(self, service, timer_factory, make_draft, observer):
        trigger = service.create_trigger(make_draft())

        assert service.delete_trigger(trigger.id) is True
        assert service.delete_trigger(trigger.id) is False

        assert len(observer.events("scheduler-remove")) == 1
        assert_registry_mirrors_store(service, timer_factory)

    def test_mixed_sequence(self, service, timer_factory, make_draft):
        a = service.create_trigger(make_draft(name="a"))
        b = service.create_trigger(make_draft(name="b", job_type="backup"))
        c = service.create_trigger(make_draft(name="c", enabled=False))
        assert_registry_mirrors_store(service, timer_factory)

        service.update_trigger(a.id, enabled=False)
        service.update_trigger(c.id, enabled=True)
        service.delete_trigger(b.id)
        assert_registry_mirrors_store(service, timer_factory)


class TestReconciliation:

    def test_restart_schedules_only_enabled(
        self, trigger_store, dispatcher, timer_factory, make_draft
    ):
        enabled = trigger_store.create(make_draft(name="heartbeat", job_type="health-check"))
        disabled = trigger_store.create(make_draft(name="snapshot", job_type="backup"))
        trigger_store.update(disabled.id, enabled=False)

        # Fresh registry, as after a process restart
        registry = TriggerRegistry(trigger_store, dispatcher, timer_factory=timer_factory)
        scheduled = registry.reconcile()

        assert scheduled == 1
        assert registry.scheduled_ids == {enabled.id}
        assert timer_factory.live(disabled.id) == []

    def test_reconcile_is_idempotent(self, registry, trigger_store, timer_factory, make_draft):
        trigger = trigger_store.create(make_draft())

        registry.reconcile()
        registry.reconcile()

        assert len(timer_factory.live(trigger.id)) == 1
        assert len(timer_factory.for_trigger(trigger.id)) == 2

    def test_reconcile_drops_stale_timers(self, registry, trigger_store, timer_factory, make_draft):
        trigger = trigger_store.create(make_draft())
        registry.reconcile()

        # Row removed behind the registry's back
        trigger_store.delete(trigger.id)
        registry.reconcile()

        assert registry.scheduled_ids == set()
        assert timer_factory.live(trigger.id) == []

    def test_reconcile_skips_bad_schedule(self, registry, trigger_store, database, make_draft):
        good = trigger_store.create(make_draft(name="good"))
        bad = trigger_store.create(make_draft(name="bad"))
        with database.transaction() as conn:
            conn.execute("UPDATE triggers SET schedule = 'garbage' WHERE id = ?", (bad.id,))

        assert registry.reconcile() == 1
        assert registry.scheduled_ids == {good.id}

    def test_service_start_seeds_and_reconciles(self, service, timer_factory):
        service.seed_defaults = True

        scheduled = service.start()
        try:
            names = sorted(t.name for t in service.list_triggers())
            assert names == ["System metrics collection", "Temp file cleanup"]
            assert scheduled == 2
            assert_registry_mirrors_store(service, timer_factory)

            with pytest.raises(RuntimeError):
                service.start()
        finally:
            service.stop()

        assert service.registry.scheduled_ids == set()
        assert all(t.cancelled for t in timer_factory.timers)

    def test_seed_skipped_when_table_not_empty(self, service, make_draft):
        service.seed_defaults = True
        service.store.create(make_draft(name="mine"))

        service.start()
        service.stop()

        assert [t.name for t in service.list_triggers()] == ["mine"]


class TestNextRunBookkeeping:

    def test_armed_timer_persists_next_run(self, service, timer_factory, make_draft):
        trigger = service.create_trigger(make_draft())
        (timer,) = timer_factory.for_trigger(trigger.id)

        timer.arm(datetime(2030, 6, 15, 12, 0, 0, tzinfo=timezone.utc))

        assert service.get_trigger(trigger.id).next_run.startswith("2030-06-15T12:00:00")

    def test_replaced_timer_cannot_overwrite_next_run(self, service, timer_factory, make_draft):
        trigger = service.create_trigger(make_draft())
        (old_timer,) = timer_factory.for_trigger(trigger.id)
        service.update_trigger(trigger.id, name="renamed")

        old_timer.arm(datetime(2031, 6, 15, 12, 0, 0, tzinfo=timezone.utc))

        next_run = service.get_trigger(trigger.id).next_run
        assert next_run is None or not next_run.startswith("2031")

    def test_disabled_trigger_has_no_next_run(self, service, timer_factory, make_draft):
        trigger = service.create_trigger(make_draft())
        timer_factory.for_trigger(trigger.id)[0].arm(datetime(2030, 6, 15, 12, 0, 0, tzinfo=timezone.utc))

        updated = service.update_trigger(trigger.id, enabled=False)

        assert updated.next_run is None
        assert service.get_trigger(trigger.id).next_run is None


class TestRunNow:

    def test_run_now_unknown_id(self, service):
        with pytest.raises(TriggerNotFoundError):
            service.run_now(404)

    def test_run_now_on_disabled_trigger(self, service, ledger, make_draft):
        trigger = service.create_trigger(make_draft(enabled=False))

        record = service.run_now(trigger.id)

        assert record.trigger_id == trigger.id
        assert ledger.count(trigger.id) == 1

    def test_in_flight_firing_completes_after_delete(
        self, service, timer_factory, ledger, stub_handlers, make_draft
    ):
        handler = stub_handlers[JobType.HEALTH_CHECK]
        handler.gate = threading.Event()
        trigger = service.create_trigger(make_draft(name="long job"))
        (timer,) = timer_factory.for_trigger(trigger.id)

        firing = threading.Thread(target=timer.fire)
        firing.start()
        for _ in range(500):
            if handler.calls:
                break
            time.sleep(0.01)
        assert handler.calls, "handler never started"

        service.delete_trigger(trigger.id)
        handler.gate.set()
        firing.join(timeout=5)

        assert not firing.is_alive()
        assert timer.cancelled
        assert ledger.count(trigger.id) == 1
