"""
Per-job-type configuration models.

A trigger's config map is validated against the model for its type when
the handler runs. Keys are accepted in snake_case or the dashboard's
camelCase (e.g. `localPath`, `driveFolderId`).
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


MAX_COMMAND_TIMEOUT_MS = 120_000
DEFAULT_COMMAND_TIMEOUT_MS = 30_000
DEFAULT_MAX_OUTPUT_BYTES = 1024 * 1024


class TaskConfig(BaseModel):
    """Base config: unknown keys are ignored, aliases and field names both accepted."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class HealthCheckConfig(TaskConfig):
    cpu_threshold: float = Field(default=80.0, alias="cpuThreshold")
    memory_threshold: float = Field(default=90.0, alias="memoryThreshold")
    temperature_threshold: float = Field(default=80.0, alias="temperatureThreshold")


class DriveSyncConfig(TaskConfig):
    local_path: str = Field(..., min_length=1, alias="localPath")
    drive_folder_id: str = Field(..., min_length=1, alias="driveFolderId")
    direction: Literal["both", "download", "upload"] = "both"


class BackupConfig(TaskConfig):
    row_limit: int = Field(default=1000, ge=1, alias="rowLimit")
    retention_days: int = Field(default=30, ge=1, alias="retentionDays")


class AIReportConfig(TaskConfig):
    model: Optional[str] = Field(default="gemini", description="claude | gemini | perplexity[:model]")
    hours: float = Field(default=24.0, gt=0)


class CleanupConfig(TaskConfig):
    max_age_days: float = Field(default=7.0, gt=0, alias="maxAgeDays")


class EmailCheckConfig(TaskConfig):
    max_results: int = Field(default=10, ge=1, le=100, alias="maxResults")
    summary_model: Optional[str] = Field(default="gemini", alias="summaryModel")
    classify_model: Optional[str] = Field(default="gemini", alias="classifyModel")


class CustomCommandConfig(TaskConfig):
    command: str = Field(..., min_length=1)
    timeout_ms: int = Field(default=DEFAULT_COMMAND_TIMEOUT_MS, ge=1, alias="timeoutMs")
    max_output_bytes: int = Field(default=DEFAULT_MAX_OUTPUT_BYTES, ge=1, alias="maxOutputBytes")

    @field_validator("timeout_ms")
    @classmethod
    def cap_timeout(cls, value: int) -> int:
        return min(value, MAX_COMMAND_TIMEOUT_MS)

    @field_validator("command")
    @classmethod
    def strip_command(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("command must not be blank")
        return value
