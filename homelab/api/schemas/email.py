"""
Email API schemas.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class DriveUploadResponse(BaseModel):
    id: int
    filename: str
    drive_id: Optional[str] = None
    folder: str
    category: str
    uploaded_at: str


class DriveUploadListResponse(BaseModel):
    uploads: List[DriveUploadResponse] = Field(default_factory=list)
