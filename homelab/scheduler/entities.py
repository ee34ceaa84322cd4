"""
Scheduler Domain Entities.

- JobType: closed enumeration of task handler types
- Trigger: persisted schedule-plus-task definition
- ExecutionRecord: immutable outcome of a single firing
- RegistrationState: per-trigger state inside the TriggerRegistry
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class JobType(str, Enum):
    """Supported job types. Each maps to exactly one task handler."""

    HEALTH_CHECK = "health-check"
    DRIVE_SYNC = "drive-sync"
    BACKUP = "backup"
    AI_REPORT = "ai-report"
    CLEANUP = "cleanup"
    EMAIL_CHECK = "email-check"
    CUSTOM_COMMAND = "custom-command"

    @classmethod
    def values(cls) -> list[str]:
        return [member.value for member in cls]


class ExecutionStatus(str, Enum):
    """
    ExecutionRecord status values.

    RUNNING exists for schema compatibility with older rows; the
    dispatcher only ever writes SUCCESS or ERROR.
    """

    SUCCESS = "success"
    ERROR = "error"
    RUNNING = "running"


class RegistrationState(str, Enum):
    """Registry-side lifecycle of a trigger id."""

    UNREGISTERED = "unregistered"
    SCHEDULED = "scheduled"
    DISABLED = "disabled"


def now_iso() -> str:
    """Get current UTC time as ISO format string."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


@dataclass
class Trigger:
    """
    A persisted job definition.

    `config` is opaque to the orchestration core; only the handler for
    `job_type` interprets it.
    """

    id: int
    name: str
    schedule: str
    job_type: JobType
    config: dict = field(default_factory=dict)
    enabled: bool = True
    last_run: Optional[str] = None
    next_run: Optional[str] = None
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "schedule": self.schedule,
            "type": self.job_type.value,
            "config": self.config,
            "enabled": self.enabled,
            "last_run": self.last_run,
            "next_run": self.next_run,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class TriggerDraft:
    """Fields supplied when creating a trigger; the store assigns the id."""

    name: str
    schedule: str
    job_type: str
    config: dict = field(default_factory=dict)
    enabled: bool = True


@dataclass(frozen=True)
class ExecutionRecord:
    """
    Historical record of a single firing.

    Written exactly once, after the handler returned or raised.
    `trigger_id` is kept after the trigger is deleted, for audit.
    """

    trigger_id: int
    status: ExecutionStatus
    message: str
    duration_ms: int
    executed_at: str = field(default_factory=now_iso)
    id: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "trigger_id": self.trigger_id,
            "status": self.status.value,
            "message": self.message,
            "duration_ms": self.duration_ms,
            "executed_at": self.executed_at,
        }


@dataclass(frozen=True)
class PresetTemplate:
    """Catalog entry offered to the dashboard when creating triggers."""

    name: str
    schedule: str
    job_type: JobType
    description: str
