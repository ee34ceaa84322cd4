"""
Automation Scheduler Core Module.

- TriggerStore / ExecutionLedger / DedupLedger: durable sqlite stores
- TriggerRegistry: live cron timers reconciled against the store
- JobDispatcher: one firing -> handler -> record -> event

The wired AutomationService lives in homelab.scheduler.service.
"""

from .entities import (
    JobType,
    ExecutionStatus,
    RegistrationState,
    Trigger,
    TriggerDraft,
    ExecutionRecord,
    PresetTemplate,
)
from .errors import (
    SchedulerError,
    InvalidTriggerError,
    InvalidScheduleError,
    UnknownJobTypeError,
    TriggerNotFoundError,
    HandlerError,
    PersistenceError,
)
from .cron import CronTimer, validate_expression, is_valid_expression, next_fire_time
from .persistence import (
    Database,
    TriggerStore,
    ExecutionLedger,
    DedupLedger,
    MetricsStore,
    NotificationStore,
    UploadLogStore,
)
from .dispatcher import JobDispatcher
from .registry import TriggerRegistry
from .presets import PRESETS, list_presets

__all__ = [
    # Entities
    "JobType",
    "ExecutionStatus",
    "RegistrationState",
    "Trigger",
    "TriggerDraft",
    "ExecutionRecord",
    "PresetTemplate",
    # Errors
    "SchedulerError",
    "InvalidTriggerError",
    "InvalidScheduleError",
    "UnknownJobTypeError",
    "TriggerNotFoundError",
    "HandlerError",
    "PersistenceError",
    # Cron
    "CronTimer",
    "validate_expression",
    "is_valid_expression",
    "next_fire_time",
    # Persistence
    "Database",
    "TriggerStore",
    "ExecutionLedger",
    "DedupLedger",
    "MetricsStore",
    "NotificationStore",
    "UploadLogStore",
    # Dispatch
    "JobDispatcher",
    "TriggerRegistry",
    # Presets
    "PRESETS",
    "list_presets",
]
