"""
Notification API schemas.
"""

from typing import List

from pydantic import BaseModel, Field


class NotificationResponse(BaseModel):
    id: int
    type: str = Field(..., description="report | email")
    title: str
    message: str
    read: bool = False
    created_at: str


class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse] = Field(default_factory=list)
