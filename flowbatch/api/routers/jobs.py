"""
Jobs Router
Implements: Single Responsibility Principle (SRP)

This router handles all job-related endpoints:
- Enqueue (single / bulk / import) and export
- Edit, reset, delete (with renumbering)
- Run / stop
- Live job updates over WebSocket
"""
from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from typing import List, Optional, Dict, Any
from pydantic import BaseModel, Field
from datetime import datetime
from ...core.domain.job import Job, JobPayload
from ...core.exceptions import (
    JobNotFoundError,
    InvalidTransitionError,
    NoSessionsAvailable,
    RunInProgressError
)
from ...core.logger import job_events
from ...core.services.task_service import TaskService
from ..dependencies import get_task_service

import logging
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["jobs"])


# ========== Schemas ==========
class JobCreate(BaseModel):
    """Schema for creating a new job"""
    prompt: str = ""
    video_type: str = "text-to-video"
    aspect_ratio: str = "16:9"
    count: int = 2
    start_image: Optional[str] = None
    end_image: Optional[str] = None
    model_key: Optional[str] = None

    def to_payload(self) -> JobPayload:
        return JobPayload.from_dict(self.model_dump())


class JobUpdate(BaseModel):
    """Partial payload update; omitted fields are kept"""
    prompt: Optional[str] = None
    video_type: Optional[str] = None
    aspect_ratio: Optional[str] = None
    count: Optional[int] = None
    start_image: Optional[str] = None
    end_image: Optional[str] = None
    model_key: Optional[str] = None


class BulkCreate(BaseModel):
    """One job per non-empty line of `text`"""
    text: str
    video_type: str = "text-to-video"
    aspect_ratio: str = "16:9"
    count: int = 2
    model_key: Optional[str] = None


class JobIds(BaseModel):
    job_ids: List[str]


class RunRequest(BaseModel):
    """Empty job_ids = all jobs; empty account_ids = all non-expired accounts"""
    job_ids: Optional[List[str]] = None
    account_ids: Optional[List[str]] = None


class OperationResponse(BaseModel):
    operation_name: str
    scene_id: str
    status: str
    media_url: Optional[str] = None
    error: Optional[str] = None


class JobResponse(BaseModel):
    """Schema for job response"""
    id: str
    order: int
    payload: Dict[str, Any]
    status: str
    status_text: str = ""
    account_id: Optional[str] = None
    operations: List[OperationResponse] = Field(default_factory=list)
    results: List[str] = Field(default_factory=list)
    error: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    @staticmethod
    def from_domain(job: Job) -> "JobResponse":
        """Convert domain Job to API response"""
        payload = job.payload.to_dict()
        # keep list responses small
        for key in ("start_image", "end_image"):
            if payload.get(key):
                payload[key] = payload[key][:64] + "..."
        return JobResponse(
            id=job.id,
            order=job.order,
            payload=payload,
            status=job.status.value,
            status_text=job.status_text,
            account_id=job.account_id,
            operations=[OperationResponse(**op.to_dict()) for op in job.operations],
            results=list(job.results),
            error=job.error,
            created_at=job.created_at,
            updated_at=job.updated_at
        )


def publish_job_update(job: Job):
    """Task store listener: push a snapshot to job WebSocket clients"""
    job_events.publish(JobResponse.from_domain(job).model_dump(mode="json"))


# ========== Endpoints ==========
@router.get("/", response_model=List[JobResponse])
async def list_jobs(service: TaskService = Depends(get_task_service)):
    """List jobs ordered by `order`"""
    jobs = await service.list_jobs()
    return [JobResponse.from_domain(job) for job in jobs]


@router.post("/", response_model=JobResponse)
async def create_job(
    data: JobCreate,
    service: TaskService = Depends(get_task_service)
):
    """
    Enqueue a new job

    Raises:
        HTTPException 400: If payload validation fails
    """
    try:
        job = await service.create_job(data.to_payload())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return JobResponse.from_domain(job)


@router.post("/bulk", response_model=List[JobResponse])
async def bulk_create(
    data: BulkCreate,
    service: TaskService = Depends(get_task_service)
):
    try:
        jobs = await service.bulk_create(
            data.text,
            defaults=data.model_dump(exclude={"text"}),
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return [JobResponse.from_domain(job) for job in jobs]


@router.get("/export")
async def export_jobs(service: TaskService = Depends(get_task_service)):
    return await service.export_jobs()


@router.post("/import", response_model=List[JobResponse])
async def import_jobs(
    items: List[JobCreate],
    service: TaskService = Depends(get_task_service)
):
    try:
        jobs = await service.import_jobs([item.model_dump() for item in items])
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return [JobResponse.from_domain(job) for job in jobs]


@router.post("/run")
async def run_jobs(
    data: RunRequest,
    service: TaskService = Depends(get_task_service)
):
    """
    Start a run in the background

    Raises:
        HTTPException 409: A run is already active
        HTTPException 400: No accounts available
    """
    try:
        return await service.start_run(account_ids=data.account_ids, job_ids=data.job_ids)
    except RunInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except NoSessionsAvailable as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/stop")
async def stop_jobs(service: TaskService = Depends(get_task_service)):
    stopped = await service.stop_run()
    return {"ok": True, "stopped": stopped}


@router.post("/delete")
async def delete_jobs(
    data: JobIds,
    service: TaskService = Depends(get_task_service)
):
    """Delete several jobs; remaining jobs are renumbered 1..N"""
    removed = await service.delete_jobs(data.job_ids)
    return {"ok": True, "removed": removed}


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: str,
    service: TaskService = Depends(get_task_service)
):
    try:
        job = await service.get_job(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobResponse.from_domain(job)


@router.patch("/{job_id}", response_model=JobResponse)
async def update_job(
    job_id: str,
    data: JobUpdate,
    service: TaskService = Depends(get_task_service)
):
    """
    Partial merge of payload fields

    Raises:
        HTTPException 404: If job not found
        HTTPException 409: Job is in flight
        HTTPException 400: Invalid payload
    """
    try:
        job = await service.update_job(job_id, **data.model_dump(exclude_unset=True))
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return JobResponse.from_domain(job)


@router.post("/{job_id}/reset", response_model=JobResponse)
async def reset_job(
    job_id: str,
    service: TaskService = Depends(get_task_service)
):
    try:
        job = await service.reset_job(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return JobResponse.from_domain(job)


@router.delete("/{job_id}")
async def delete_job(
    job_id: str,
    service: TaskService = Depends(get_task_service)
):
    removed = await service.delete_jobs([job_id])
    if not removed:
        raise HTTPException(status_code=404, detail="Job not found")
    return {"ok": True}


@router.websocket("/ws")
async def websocket_jobs(websocket: WebSocket):
    """Stream job snapshots as they change"""
    await websocket.accept()
    job_events.register(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        job_events.unregister(websocket)
    except Exception as e:
        logger.error(f"WebSocket Error: {e}")
        job_events.unregister(websocket)
