"""
Automation Service - main entry point for the orchestration engine.

This service wires all components:
- Database + stores (TriggerStore, ExecutionLedger, DedupLedger, metrics, notifications, uploads)
- EventBus (live observers)
- TaskRegistry (one handler per job type)
- JobDispatcher (one firing)
- TriggerRegistry (live timers)
- SystemMonitor (live host stats)

Usage:
    service = AutomationService.create()
    service.start()
    # ... timers fire in the background ...
    service.stop()

Every mutation goes store first, then remove-and-re-add in the registry,
so the live timers always mirror the committed rows.
"""

import logging
from pathlib import Path
from typing import Callable, Iterable, Optional

from homelab.infra import data_paths
from homelab.infra.ai_provider import AIService
from homelab.infra.command_runner import CommandResult, run as run_command
from homelab.infra.event_bus import EventBus
from homelab.infra.google_client import DriveClient, GmailClient, GoogleCredentials
from homelab.infra.system_monitor import SystemMonitor, SystemSampler
from homelab.tasks import (
    AIReportHandler,
    BackupHandler,
    CleanupHandler,
    CustomCommandHandler,
    DriveSyncHandler,
    EmailCheckHandler,
    HealthCheckHandler,
    TaskRegistry,
)

from .dispatcher import JobDispatcher
from .entities import ExecutionRecord, PresetTemplate, Trigger, TriggerDraft
from .persistence import (
    Database,
    DedupLedger,
    ExecutionLedger,
    MetricsStore,
    NotificationStore,
    TriggerStore,
    UploadLogStore,
)
from .presets import default_drafts, list_presets
from .registry import TriggerRegistry


logger = logging.getLogger(__name__)

EMAIL_DEDUP_NAMESPACE = "email"


class AutomationService:
    """
    Coordinates the orchestration engine.

    Provides:
    - Component wiring
    - Startup (seeding + reconciliation) and graceful shutdown
    - API-friendly trigger CRUD, run-now, logs, presets, notifications, uploads
    """

    def __init__(
        self,
        database: Database,
        store: TriggerStore,
        ledger: ExecutionLedger,
        notifications: NotificationStore,
        event_bus: EventBus,
        tasks: TaskRegistry,
        dispatcher: JobDispatcher,
        registry: TriggerRegistry,
        monitor: Optional[SystemMonitor] = None,
        uploads: Optional[UploadLogStore] = None,
        seed_defaults: bool = True,
    ):
        """
        Initialize AutomationService with all components.

        Use AutomationService.create() for convenient construction.
        """
        self.database = database
        self.store = store
        self.ledger = ledger
        self.notifications = notifications
        self.event_bus = event_bus
        self.tasks = tasks
        self.dispatcher = dispatcher
        self.registry = registry
        self.monitor = monitor
        self.uploads = uploads or UploadLogStore(database)
        self.seed_defaults = seed_defaults

        self._started = False

    @classmethod
    def create(
        cls,
        db_path: Optional[str | Path] = None,
        event_bus: Optional[EventBus] = None,
        ai: Optional[AIService] = None,
        sampler: Optional[SystemSampler] = None,
        drive: Optional[DriveClient] = None,
        gmail: Optional[GmailClient] = None,
        command_runner: Callable[..., CommandResult] = run_command,
        backup_dir: Optional[str | Path] = None,
        cleanup_dirs: Optional[Iterable[str | Path]] = None,
        dedup_capacity: Optional[int] = None,
        seed_defaults: Optional[bool] = None,
        monitor_enabled: Optional[bool] = None,
    ) -> "AutomationService":
        """
        Create an AutomationService with all components wired together.

        Every argument defaults to the environment-driven configuration in
        homelab.infra.data_paths; tests pass doubles for the collaborators.
        """
        database = Database(db_path or data_paths.get_db_path())
        store = TriggerStore(database)
        ledger = ExecutionLedger(database)
        metrics = MetricsStore(database)
        notifications = NotificationStore(database)
        uploads = UploadLogStore(database)
        dedup = DedupLedger(
            database,
            namespace=EMAIL_DEDUP_NAMESPACE,
            capacity=dedup_capacity or data_paths.get_dedup_capacity(),
        )

        event_bus = event_bus or EventBus()
        ai = ai or AIService()
        sampler = sampler or SystemSampler()

        if drive is None or gmail is None:
            credentials = GoogleCredentials(data_paths.get_google_token_path())
            drive = drive or DriveClient(credentials)
            gmail = gmail or GmailClient(credentials)

        tasks = TaskRegistry([
            HealthCheckHandler(sampler, metrics, event_bus),
            DriveSyncHandler(drive, event_bus),
            BackupHandler(database, backup_dir or data_paths.get_backup_dir()),
            AIReportHandler(metrics, notifications, ai),
            CleanupHandler(
                cleanup_dirs if cleanup_dirs is not None else data_paths.get_cleanup_dirs()
            ),
            EmailCheckHandler(gmail, drive, ai, dedup, notifications, uploads, event_bus),
            CustomCommandHandler(command_runner),
        ])

        dispatcher = JobDispatcher(tasks, ledger, event_bus)
        registry = TriggerRegistry(store, dispatcher)

        if monitor_enabled is None:
            monitor_enabled = data_paths.is_system_monitor_enabled()
        monitor = None
        if monitor_enabled:
            monitor = SystemMonitor(
                event_bus,
                sampler,
                interval=data_paths.get_system_monitor_interval(),
            )

        return cls(
            database=database,
            store=store,
            ledger=ledger,
            notifications=notifications,
            event_bus=event_bus,
            tasks=tasks,
            dispatcher=dispatcher,
            registry=registry,
            monitor=monitor,
            uploads=uploads,
            seed_defaults=(
                data_paths.is_seed_default_jobs_enabled() if seed_defaults is None else seed_defaults
            ),
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> int:
        """
        Seed defaults into an empty table, reconcile timers, start the monitor.

        Returns:
            Number of triggers scheduled
        """
        if self._started:
            raise RuntimeError("Automation service already started")

        logger.info("[Service] Starting automation service...")

        if self.seed_defaults and self.store.count() == 0:
            for draft in default_drafts():
                self.store.create(draft)
            logger.info("[Service] Seeded default triggers")

        scheduled = self.registry.reconcile()

        if self.monitor is not None:
            self.monitor.start()

        self._started = True
        logger.info(f"[Service] Automation service started ({scheduled} trigger(s) scheduled)")
        return scheduled

    def stop(self, timeout: float = 5.0) -> None:
        """
        Cancel all timers and stop the monitor.

        In-flight firings are not interrupted; they finish on their own threads.
        """
        if not self._started:
            return

        logger.info("[Service] Stopping automation service...")
        self.registry.shutdown()
        if self.monitor is not None:
            self.monitor.stop(timeout=timeout)
        self.event_bus.close_all()
        self._started = False
        logger.info("[Service] Automation service stopped")

    @property
    def is_running(self) -> bool:
        return self._started

    # =========================================================================
    # Trigger Operations (API-friendly)
    # =========================================================================

    def create_trigger(self, draft: TriggerDraft) -> Trigger:
        """
        Persist and schedule a new trigger.

        Raises:
            InvalidTriggerError: On a bad name, schedule, type or config
        """
        trigger = self.store.create(draft)
        self.registry.add(trigger)

        self.event_bus.publish("scheduler-add", {
            "id": trigger.id,
            "name": trigger.name,
            "schedule": trigger.schedule,
            "type": trigger.job_type.value,
        })
        logger.info(f"[Service] Created trigger {trigger.id} '{trigger.name}'")
        return trigger

    def update_trigger(
        self,
        trigger_id: int,
        name: Optional[str] = None,
        schedule: Optional[str] = None,
        config: Optional[dict] = None,
        enabled: Optional[bool] = None,
    ) -> Trigger:
        """
        Partially update a trigger and replace its live timer.

        Raises:
            TriggerNotFoundError: If absent
            InvalidTriggerError: On invalid values
        """
        trigger = self.store.update(
            trigger_id,
            name=name,
            schedule=schedule,
            config=config,
            enabled=enabled,
        )
        self.registry.remove(trigger_id)
        self.registry.add(trigger)

        self.event_bus.publish("scheduler-update", {
            "id": trigger.id,
            "name": trigger.name,
            "schedule": trigger.schedule,
            "type": trigger.job_type.value,
            "enabled": trigger.enabled,
        })
        logger.info(f"[Service] Updated trigger {trigger.id} '{trigger.name}'")
        return trigger

    def delete_trigger(self, trigger_id: int) -> bool:
        """
        Cancel the live timer, then delete the row. Idempotent.

        Returns:
            True if a row was deleted
        """
        self.registry.remove(trigger_id)
        deleted = self.store.delete(trigger_id)

        if deleted:
            self.event_bus.publish("scheduler-remove", {"id": trigger_id})
            logger.info(f"[Service] Deleted trigger {trigger_id}")
        return deleted

    def run_now(self, trigger_id: int) -> ExecutionRecord:
        """
        Dispatch a trigger immediately on the calling thread.

        Raises:
            TriggerNotFoundError: If absent
        """
        return self.registry.run_now(trigger_id)

    def get_trigger(self, trigger_id: int) -> Trigger:
        return self.store.get(trigger_id)

    def list_triggers(self) -> list[Trigger]:
        return self.store.list()

    def is_scheduled(self, trigger_id: int) -> bool:
        return self.registry.is_scheduled(trigger_id)

    # =========================================================================
    # Read surfaces
    # =========================================================================

    def list_logs(self, trigger_id: Optional[int] = None, limit: int = 50) -> list[ExecutionRecord]:
        return self.ledger.list(trigger_id=trigger_id, limit=limit)

    def list_presets(self) -> list[PresetTemplate]:
        return list_presets()

    def list_notifications(self, limit: int = 50) -> list[dict]:
        return self.notifications.list(limit=limit)

    def list_uploads(self, limit: int = 30) -> list[dict]:
        return self.uploads.recent(limit=limit)
