"""
Scheduler API schemas.

Supports /api/scheduler/* trigger CRUD, run-now, logs and presets.
The dashboard sends the schedule as `cron`; `schedule` is accepted too.
"""

from typing import List, Optional

from pydantic import AliasChoices, BaseModel, Field

from homelab.scheduler.entities import ExecutionRecord, PresetTemplate, Trigger


# =============================================================================
# Trigger Schemas
# =============================================================================


class TriggerCreateRequest(BaseModel):
    """Request to create a new trigger."""

    name: str = Field(..., min_length=1, description="Human-readable name")
    schedule: str = Field(
        ...,
        validation_alias=AliasChoices("schedule", "cron"),
        description="Five-field cron, or six-field with leading seconds",
    )
    type: str = Field(..., description="Job type (health-check, drive-sync, backup, ...)")
    config: dict = Field(default_factory=dict, description="Handler-specific configuration")
    enabled: bool = Field(default=True)


class TriggerUpdateRequest(BaseModel):
    """Partial update; omitted fields are left unchanged."""

    name: Optional[str] = Field(default=None, min_length=1)
    schedule: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("schedule", "cron"),
    )
    config: Optional[dict] = None
    enabled: Optional[bool] = None

    def is_empty(self) -> bool:
        return all(
            value is None for value in (self.name, self.schedule, self.config, self.enabled)
        )


class TriggerResponse(BaseModel):
    """Response representing a Trigger."""

    id: int
    name: str
    schedule: str
    type: str
    config: dict = Field(default_factory=dict)
    enabled: bool
    last_run: Optional[str] = None
    next_run: Optional[str] = None
    created_at: str
    updated_at: str
    is_scheduled: bool = Field(default=False, description="Has a live timer")

    @classmethod
    def from_trigger(cls, trigger: Trigger, is_scheduled: bool = False) -> "TriggerResponse":
        return cls(**trigger.to_dict(), is_scheduled=is_scheduled)


class TriggerListResponse(BaseModel):
    jobs: List[TriggerResponse] = Field(default_factory=list)
    total: int


class TriggerMutationResponse(BaseModel):
    success: bool = True
    job: TriggerResponse


class TriggerDeleteResponse(BaseModel):
    success: bool = True
    deleted: bool = Field(..., description="False when the trigger did not exist")


# =============================================================================
# Execution Schemas
# =============================================================================


class ExecutionRecordResponse(BaseModel):
    id: Optional[int] = None
    trigger_id: int
    status: str
    message: str
    duration_ms: int
    executed_at: str

    @classmethod
    def from_record(cls, record: ExecutionRecord) -> "ExecutionRecordResponse":
        return cls(**record.to_dict())


class RunNowResponse(BaseModel):
    success: bool = True
    result: ExecutionRecordResponse


class ExecutionLogResponse(BaseModel):
    logs: List[ExecutionRecordResponse] = Field(default_factory=list)


# =============================================================================
# Preset Schemas
# =============================================================================


class PresetResponse(BaseModel):
    name: str
    cron: str
    type: str
    description: str

    @classmethod
    def from_preset(cls, preset: PresetTemplate) -> "PresetResponse":
        return cls(
            name=preset.name,
            cron=preset.schedule,
            type=preset.job_type.value,
            description=preset.description,
        )


class PresetListResponse(BaseModel):
    presets: List[PresetResponse] = Field(default_factory=list)
