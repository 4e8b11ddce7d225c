"""API route handlers and Pydantic response schemas."""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, File, HTTPException, Request, UploadFile
from fastapi.responses import FileResponse
from pydantic import BaseModel

from speedup.config import settings
from speedup.engine import EngineLifecycleManager, NotReady
from speedup.orchestrator import JobInFlight, JobStateMachine, NoAssetSelected
from speedup.schemas import MediaAsset, ResourceHandle, ResourceSlot
from speedup.services.assets import UnsupportedMediaType, ensure_accepted, guess_mime_type
from speedup.services.resources import ResourceLifecycleManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class HandleResponse(BaseModel):
    slot: ResourceSlot
    filename: str
    mime_type: str
    size: int
    url: str


class StatusResponse(BaseModel):
    engine_state: str
    job_status: str
    attempt: Optional[str] = None
    job_id: Optional[str] = None
    progress_percent: int
    message: str
    error: Optional[str] = None
    last_log: Optional[str] = None
    input_preview: Optional[HandleResponse] = None
    output: Optional[HandleResponse] = None


class CancelResponse(BaseModel):
    cancelled: bool


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _machine(request: Request) -> JobStateMachine:
    return request.app.state.machine


def _handle_response(handle: Optional[ResourceHandle]) -> Optional[HandleResponse]:
    if handle is None:
        return None
    return HandleResponse(
        slot=handle.slot,
        filename=handle.filename,
        mime_type=handle.mime_type,
        size=handle.size,
        url=f"/api/resources/{handle.slot.value}",
    )


def _status(request: Request) -> StatusResponse:
    machine = _machine(request)
    manager: EngineLifecycleManager = request.app.state.engine_manager
    resources: ResourceLifecycleManager = request.app.state.resources
    job = machine.job
    return StatusResponse(
        engine_state=manager.state.value,
        job_status=machine.status.value,
        attempt=job.attempt.value if job else None,
        job_id=str(job.id) if job else None,
        progress_percent=machine.progress_percent,
        message=machine.status_message,
        error=job.error.message if job and job.error else None,
        last_log=machine.last_log,
        input_preview=_handle_response(resources.get(ResourceSlot.INPUT_PREVIEW)),
        output=_handle_response(resources.get(ResourceSlot.OUTPUT)),
    )


def _log_job_outcome(task: asyncio.Task) -> None:
    if task.cancelled():
        logger.info("Job task cancelled")
    elif task.exception() is not None:
        logger.error(f"Job task crashed: {task.exception()!r}")


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("/status", response_model=StatusResponse)
async def get_status(request: Request):
    """Engine state, job state, progress and the derived status message."""
    return _status(request)


@router.post("/engine/initialize", response_model=StatusResponse)
async def initialize_engine(request: Request):
    """Load the engine, or retry after a failed load."""
    await request.app.state.engine_manager.initialize()
    return _status(request)


@router.post("/video", response_model=StatusResponse)
async def upload_video(request: Request, file: UploadFile = File(...)):
    """Select a video file for processing."""
    machine = _machine(request)
    filename = file.filename or "video"

    mime_type = file.content_type
    if not mime_type or mime_type == "application/octet-stream":
        mime_type = guess_mime_type(filename)
    try:
        ensure_accepted(mime_type)
    except UnsupportedMediaType as e:
        raise HTTPException(status_code=415, detail=str(e))

    content = await file.read()
    if len(content) > settings.job.max_upload_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"File too large. Maximum size is {settings.job.max_upload_bytes} bytes",
        )

    try:
        machine.select(MediaAsset(name=filename, mime_type=mime_type, data=content))
    except JobInFlight as e:
        raise HTTPException(status_code=409, detail=str(e))

    return _status(request)


@router.post("/process", response_model=StatusResponse)
async def process_video(request: Request, wait: bool = False):
    """Start the speed-up job for the selected file.

    With ``wait=true`` the response is sent once the job is finished.
    """
    machine = _machine(request)
    try:
        task = machine.start()
    except NotReady as e:
        raise HTTPException(status_code=503, detail=str(e))
    except JobInFlight as e:
        raise HTTPException(status_code=409, detail=str(e))
    except NoAssetSelected as e:
        raise HTTPException(status_code=400, detail=str(e))

    task.add_done_callback(_log_job_outcome)
    if wait:
        await machine.wait()
    return _status(request)


@router.post("/cancel", response_model=CancelResponse)
async def cancel_job(request: Request):
    """Cancel the processing job, if any."""
    return CancelResponse(cancelled=_machine(request).cancel())


@router.get("/resources/{slot}")
async def get_resource(request: Request, slot: ResourceSlot):
    """Download the input preview or the speed-up result."""
    handle = request.app.state.resources.get(slot)
    if handle is None:
        raise HTTPException(status_code=404, detail=f"No {slot.value} resource")
    return FileResponse(handle.path, media_type=handle.mime_type, filename=handle.filename)


@router.post("/reset", response_model=StatusResponse)
async def reset(request: Request):
    """Drop the selection and result, revoking all resource handles."""
    try:
        _machine(request).reset()
    except JobInFlight as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _status(request)
