"""
Scheduler Test Fixtures.

Base fixtures:
  - Temporary sqlite database with all stores
  - EventBus with a recording observer
  - Manual timers (fired explicitly, never by the clock)
  - Stub handlers for every job type
"""

import threading
from datetime import datetime
from typing import Callable, Optional

import pytest

from homelab.infra.event_bus import EventBus, MemoryObserver
from homelab.scheduler import (
    Database,
    DedupLedger,
    ExecutionLedger,
    JobDispatcher,
    JobType,
    NotificationStore,
    TriggerDraft,
    TriggerRegistry,
    TriggerStore,
    UploadLogStore,
)
from homelab.scheduler.errors import HandlerError
from homelab.scheduler.service import AutomationService
from homelab.tasks import TaskHandler, TaskRegistry


class ManualTimer:
    """
    CronTimer stand-in that only fires when told to.

    Same constructor as CronTimer so it can be passed as timer_factory.
    """

    def __init__(
        self,
        trigger_id: int,
        expression: str,
        callback: Callable[[], None],
        on_armed: Optional[Callable[[datetime], None]] = None,
    ):
        self.trigger_id = trigger_id
        self.expression = expression
        self.callback = callback
        self.on_armed = on_armed
        self.started = False
        self.cancelled = False

    @property
    def is_active(self) -> bool:
        return self.started and not self.cancelled

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def join(self, timeout: Optional[float] = None) -> None:
        pass

    def arm(self, fire_at: datetime) -> None:
        if self.on_armed is not None:
            self.on_armed(fire_at)

    def fire(self) -> None:
        """Run one firing synchronously on the calling thread."""
        if self.is_active:
            self.callback()


class ManualTimerFactory:
    """Builds ManualTimers and remembers every one it built."""

    def __init__(self):
        self.timers: list[ManualTimer] = []

    def __call__(self, trigger_id, expression, callback, on_armed=None) -> ManualTimer:
        timer = ManualTimer(trigger_id, expression, callback, on_armed)
        self.timers.append(timer)
        return timer

    def for_trigger(self, trigger_id: int) -> list[ManualTimer]:
        return [t for t in self.timers if t.trigger_id == trigger_id]

    def live(self, trigger_id: int) -> list[ManualTimer]:
        return [t for t in self.for_trigger(trigger_id) if t.is_active]


class StubHandler(TaskHandler):
    """
    Controllable handler.

    Returns `outcome`, or raises `error` when set. `gate` (a Barrier or
    Event) lets concurrency tests hold executions open.
    """

    def __init__(self, job_type: JobType, outcome: str = "ok", error: Optional[Exception] = None):
        self.job_type = job_type
        self.outcome = outcome
        self.error = error
        self.gate = None
        self.calls: list[dict] = []
        self._lock = threading.Lock()

    def execute(self, config: dict) -> str:
        with self._lock:
            self.calls.append(config)
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.error is not None:
            raise self.error
        return self.outcome


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def database(temp_db_path) -> Database:
    return Database(temp_db_path)


@pytest.fixture
def trigger_store(database) -> TriggerStore:
    return TriggerStore(database)


@pytest.fixture
def ledger(database) -> ExecutionLedger:
    return ExecutionLedger(database)


@pytest.fixture
def dedup(database) -> DedupLedger:
    return DedupLedger(database, namespace="email", capacity=500)


@pytest.fixture
def notifications(database) -> NotificationStore:
    return NotificationStore(database)


@pytest.fixture
def uploads(database) -> UploadLogStore:
    return UploadLogStore(database)


# =============================================================================
# Event Fixtures
# =============================================================================


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def observer(event_bus) -> MemoryObserver:
    return event_bus.subscribe(MemoryObserver())


# =============================================================================
# Handler / Registry Fixtures
# =============================================================================


@pytest.fixture
def stub_handlers() -> dict[JobType, StubHandler]:
    return {job_type: StubHandler(job_type, outcome=f"{job_type.value} done") for job_type in JobType}


@pytest.fixture
def task_registry(stub_handlers) -> TaskRegistry:
    return TaskRegistry(stub_handlers.values())


@pytest.fixture
def dispatcher(task_registry, ledger, event_bus) -> JobDispatcher:
    return JobDispatcher(task_registry, ledger, event_bus)


@pytest.fixture
def timer_factory() -> ManualTimerFactory:
    return ManualTimerFactory()


@pytest.fixture
def registry(trigger_store, dispatcher, timer_factory) -> TriggerRegistry:
    return TriggerRegistry(trigger_store, dispatcher, timer_factory=timer_factory)


@pytest.fixture
def service(
    database,
    trigger_store,
    ledger,
    notifications,
    event_bus,
    task_registry,
    dispatcher,
    registry,
) -> AutomationService:
    """Service wired with stub handlers and manual timers (not started)."""
    return AutomationService(
        database=database,
        store=trigger_store,
        ledger=ledger,
        notifications=notifications,
        event_bus=event_bus,
        tasks=task_registry,
        dispatcher=dispatcher,
        registry=registry,
        monitor=None,
        seed_defaults=False,
    )


@pytest.fixture
def make_draft():
    def _make(
        name: str = "job",
        schedule: str = "*/5 * * * *",
        job_type: str = "health-check",
        config: Optional[dict] = None,
        enabled: bool = True,
    ) -> TriggerDraft:
        return TriggerDraft(
            name=name,
            schedule=schedule,
            job_type=job_type,
            config=config or {},
            enabled=enabled,
        )
    return _make


@pytest.fixture
def failing_error() -> HandlerError:
    return HandlerError("remote side said no")
