"""
API Schemas package.

Pydantic models for request/response validation.
"""

from .scheduler import (
    TriggerCreateRequest,
    TriggerUpdateRequest,
    TriggerResponse,
    TriggerListResponse,
    TriggerMutationResponse,
    TriggerDeleteResponse,
    ExecutionRecordResponse,
    RunNowResponse,
    ExecutionLogResponse,
    PresetResponse,
    PresetListResponse,
)
from .notifications import (
    NotificationResponse,
    NotificationListResponse,
)
from .email import (
    DriveUploadResponse,
    DriveUploadListResponse,
)

__all__ = [
    "TriggerCreateRequest",
    "TriggerUpdateRequest",
    "TriggerResponse",
    "TriggerListResponse",
    "TriggerMutationResponse",
    "TriggerDeleteResponse",
    "ExecutionRecordResponse",
    "RunNowResponse",
    "ExecutionLogResponse",
    "PresetResponse",
    "PresetListResponse",
    "NotificationResponse",
    "NotificationListResponse",
    "DriveUploadResponse",
    "DriveUploadListResponse",
]
