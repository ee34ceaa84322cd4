"""
Email router.

Audit trail of attachments the email-check handler filed on Drive.
"""

from fastapi import APIRouter, Depends, HTTPException, Query

from homelab.scheduler.service import AutomationService

from ..dependencies.services import get_service
from ..schemas.email import DriveUploadListResponse, DriveUploadResponse


router = APIRouter()


@router.get("/drive-uploads", response_model=DriveUploadListResponse)
def list_drive_uploads(
    limit: int = Query(default=30, ge=1, le=500),
    service: AutomationService = Depends(get_service),
):
    try:
        rows = service.list_uploads(limit=limit)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to list drive uploads: {str(e)}")

    return DriveUploadListResponse(uploads=[DriveUploadResponse(**row) for row in rows])
