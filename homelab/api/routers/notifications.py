"""
Notifications router.

Read-only view over notifications stored by the ai-report and
email-check handlers.
"""

from fastapi import APIRouter, Depends, HTTPException, Query

from homelab.scheduler.service import AutomationService

from ..dependencies.services import get_service
from ..schemas.notifications import NotificationListResponse, NotificationResponse


router = APIRouter()


@router.get("", response_model=NotificationListResponse)
def list_notifications(
    limit: int = Query(default=50, ge=1, le=500),
    service: AutomationService = Depends(get_service),
):
    try:
        rows = service.list_notifications(limit=limit)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to list notifications: {str(e)}")

    return NotificationListResponse(
        notifications=[NotificationResponse(**row) for row in rows]
    )
