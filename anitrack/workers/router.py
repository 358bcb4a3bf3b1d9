"""
Background job API routes.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request, status

from anitrack.middleware.rate_limit import RateLimit
from anitrack.utils.rate_limiter import RATE_LIMIT_CONFIGS
from anitrack.workers.background_jobs import BackgroundJobProcessor
from anitrack.workers.schemas import BackgroundJob, ClearJobsResponse

router = APIRouter(
    prefix="/jobs",
    tags=["jobs"],
    dependencies=[Depends(RateLimit(RATE_LIMIT_CONFIGS["admin"]))],
)


def get_job_processor(request: Request) -> BackgroundJobProcessor:
    return request.app.state.job_processor


@router.get("", response_model=List[BackgroundJob])
async def list_jobs(processor: BackgroundJobProcessor = Depends(get_job_processor)):
    return processor.get_all_jobs()


@router.delete("/completed", response_model=ClearJobsResponse)
async def clear_completed_jobs(
    processor: BackgroundJobProcessor = Depends(get_job_processor),
):
    return ClearJobsResponse(removed=processor.clear_completed_jobs())


@router.get("/{job_id}", response_model=BackgroundJob)
async def get_job(
    job_id: str,
    processor: BackgroundJobProcessor = Depends(get_job_processor),
):
    job = processor.get_job_status(job_id)
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Job {job_id} not found",
        )
    return job
