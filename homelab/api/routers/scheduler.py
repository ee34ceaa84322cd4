"""
Scheduler router for trigger CRUD, run-now, execution logs and presets.

Endpoints under /api/scheduler/*. Handlers are plain `def` so FastAPI
runs them in its threadpool; run-now blocks for the duration of the
handler it dispatches.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from homelab.scheduler.entities import Trigger, TriggerDraft
from homelab.scheduler.errors import InvalidTriggerError, TriggerNotFoundError
from homelab.scheduler.service import AutomationService

from ..dependencies.services import get_service
from ..schemas.scheduler import (
    ExecutionLogResponse,
    ExecutionRecordResponse,
    PresetListResponse,
    PresetResponse,
    RunNowResponse,
    TriggerCreateRequest,
    TriggerDeleteResponse,
    TriggerListResponse,
    TriggerMutationResponse,
    TriggerResponse,
    TriggerUpdateRequest,
)


router = APIRouter()


def _to_response(service: AutomationService, trigger: Trigger) -> TriggerResponse:
    return TriggerResponse.from_trigger(trigger, is_scheduled=service.is_scheduled(trigger.id))


# =============================================================================
# Trigger CRUD
# =============================================================================


@router.get("/jobs", response_model=TriggerListResponse)
def list_jobs(service: AutomationService = Depends(get_service)):
    """List all triggers, newest first, each with its live-timer flag."""
    try:
        triggers = service.list_triggers()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to list jobs: {str(e)}")

    return TriggerListResponse(
        jobs=[_to_response(service, trigger) for trigger in triggers],
        total=len(triggers),
    )


@router.get("/jobs/{job_id}", response_model=TriggerResponse)
def get_job(job_id: int, service: AutomationService = Depends(get_service)):
    try:
        trigger = service.get_trigger(job_id)
    except TriggerNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get job: {str(e)}")

    return _to_response(service, trigger)


@router.post("/jobs", response_model=TriggerMutationResponse, status_code=201)
def create_job(
    request: TriggerCreateRequest,
    service: AutomationService = Depends(get_service),
):
    """
    Create a trigger and schedule it when enabled.

    Rejects malformed cron expressions and unknown job types with 400.
    """
    draft = TriggerDraft(
        name=request.name,
        schedule=request.schedule,
        job_type=request.type,
        config=request.config,
        enabled=request.enabled,
    )
    try:
        trigger = service.create_trigger(draft)
    except InvalidTriggerError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to create job: {str(e)}")

    return TriggerMutationResponse(job=_to_response(service, trigger))


@router.put("/jobs/{job_id}", response_model=TriggerMutationResponse)
def update_job(
    job_id: int,
    request: TriggerUpdateRequest,
    service: AutomationService = Depends(get_service),
):
    """Partially update a trigger; its live timer is replaced."""
    if request.is_empty():
        raise HTTPException(status_code=400, detail="No fields to update")

    try:
        trigger = service.update_trigger(
            job_id,
            name=request.name,
            schedule=request.schedule,
            config=request.config,
            enabled=request.enabled,
        )
    except TriggerNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTriggerError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to update job: {str(e)}")

    return TriggerMutationResponse(job=_to_response(service, trigger))


@router.delete("/jobs/{job_id}", response_model=TriggerDeleteResponse)
def delete_job(job_id: int, service: AutomationService = Depends(get_service)):
    """Delete a trigger. Deleting an unknown id succeeds with deleted=false."""
    try:
        deleted = service.delete_trigger(job_id)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to delete job: {str(e)}")

    return TriggerDeleteResponse(deleted=deleted)


@router.post("/jobs/{job_id}/run", response_model=RunNowResponse)
def run_job(job_id: int, service: AutomationService = Depends(get_service)):
    """
    Run a trigger immediately and return its execution record.

    Handler failures are not HTTP errors: they come back as a record
    with status "error".
    """
    try:
        record = service.run_now(job_id)
    except TriggerNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to run job: {str(e)}")

    return RunNowResponse(result=ExecutionRecordResponse.from_record(record))


# =============================================================================
# Read surfaces
# =============================================================================


@router.get("/logs", response_model=ExecutionLogResponse)
def list_logs(
    job_id: Optional[int] = Query(default=None, description="Filter by trigger id"),
    limit: int = Query(default=50, ge=1, le=500),
    service: AutomationService = Depends(get_service),
):
    """Execution records, newest first."""
    try:
        records = service.list_logs(trigger_id=job_id, limit=limit)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to list logs: {str(e)}")

    return ExecutionLogResponse(
        logs=[ExecutionRecordResponse.from_record(record) for record in records]
    )


@router.get("/presets", response_model=PresetListResponse)
def list_presets(service: AutomationService = Depends(get_service)):
    return PresetListResponse(
        presets=[PresetResponse.from_preset(preset) for preset in service.list_presets()]
    )
