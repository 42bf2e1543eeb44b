"""Job queue API for queued generations."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from viba.api.v1.schemas import (
    AvatarRequest,
    DerivationRequest,
    GenerationRequest,
    JobSubmitResponse,
    SwapRequest,
    TryOnRequest,
)
from viba.auth.supabase_auth import CurrentUser, verify_jwt
from viba.errors import NotFoundError
from viba.history.models import GenerationType
from viba.jobs.models import JobImage, JobRecord, JobStatus

router = APIRouter()

# Set by main.py during lifespan
_dispatcher = None


def set_dispatcher(dispatcher):
    global _dispatcher
    _dispatcher = dispatcher


def _require_dispatcher():
    if _dispatcher is None:
        raise HTTPException(status_code=503, detail="Job dispatcher not initialized")
    return _dispatcher


def _job_view(job: JobRecord) -> dict:
    response = {
        "job_id": job.id,
        "type": job.type.value,
        "status": job.status.value,
        "status_text": job.status_text,
        "input_count": len(job.inputs),
        "parameters": job.parameters,
        "attempts": job.attempts,
        "created_at": job.created_at.isoformat(),
        "started_at": job.started_at.isoformat() if job.started_at else None,
        "completed_at": job.completed_at.isoformat() if job.completed_at else None,
    }

    if job.status == JobStatus.COMPLETED:
        response["results"] = job.results
        response["description"] = job.description
        response["failed_variants"] = job.failed_variants
        response["generation_id"] = job.generation_id
        if job.history_error:
            response["history_error"] = job.history_error

    if job.status == JobStatus.FAILED:
        response["error"] = job.error

    return response


async def _owned_job(job_id: str, user: CurrentUser) -> JobRecord:
    job = await _require_dispatcher().get_status(job_id)
    if job is None or job.user_id != user.id:
        raise NotFoundError(f"Job {job_id} not found")
    return job


async def _submit(request: GenerationRequest, user: CurrentUser) -> JobSubmitResponse:
    dispatcher = _require_dispatcher()
    images, params = request.to_inputs()
    job = JobRecord(
        type=request.kind,
        inputs=[JobImage(data=img.data, media_type=img.media_type) for img in images],
        parameters=params,
        save_to_history=request.save_to_history,
        user_id=user.id,
    )
    job_id = await dispatcher.submit(job)
    return JobSubmitResponse(
        job_id=job_id,
        status=JobStatus.PENDING.value,
        message="Job submitted successfully. Poll GET /api/v1/jobs/{id} for status.",
    )


@router.post("/jobs/derivations", response_model=JobSubmitResponse)
async def submit_derivation_job(request: DerivationRequest, user: CurrentUser = Depends(verify_jwt)):
    return await _submit(request, user)


@router.post("/jobs/avatar", response_model=JobSubmitResponse)
async def submit_avatar_job(request: AvatarRequest, user: CurrentUser = Depends(verify_jwt)):
    return await _submit(request, user)


@router.post("/jobs/try-on", response_model=JobSubmitResponse)
async def submit_try_on_job(request: TryOnRequest, user: CurrentUser = Depends(verify_jwt)):
    return await _submit(request, user)


@router.post("/jobs/swap", response_model=JobSubmitResponse)
async def submit_swap_job(request: SwapRequest, user: CurrentUser = Depends(verify_jwt)):
    return await _submit(request, user)


@router.get("/jobs")
async def list_jobs(type: Optional[GenerationType] = None, user: CurrentUser = Depends(verify_jwt)):
    """Caller's jobs in submission order, optionally of one type."""
    jobs = await _require_dispatcher().list_jobs(user_id=user.id)
    if type is not None:
        jobs = [j for j in jobs if j.type == type]
    return {"jobs": [_job_view(j) for j in jobs], "count": len(jobs)}


@router.get("/jobs/{job_id}")
async def get_job_status(job_id: str, user: CurrentUser = Depends(verify_jwt)):
    """Get the current status and results of a job."""
    return _job_view(await _owned_job(job_id, user))


@router.post("/jobs/{job_id}/retry")
async def retry_job(job_id: str, user: CurrentUser = Depends(verify_jwt)):
    """Re-queue a failed job with its original parameters."""
    await _owned_job(job_id, user)
    job = await _require_dispatcher().retry(job_id)
    return _job_view(job)


@router.delete("/jobs/{job_id}")
async def remove_job(job_id: str, user: CurrentUser = Depends(verify_jwt)):
    await _owned_job(job_id, user)
    await _require_dispatcher().remove(job_id)
    return {"message": "Job removed"}
