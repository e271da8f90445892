from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from sqlalchemy.orm import selectinload
from typing import List, Optional
from uuid import UUID

from api.src.db.database import get_db
from api.src.models.pipeline import PipelineRun, PipelineStage, PipelineStep, Repository
from api.src.models.run import ManualTriggerRequest, PipelineRunResponse, RepositoryResponse
from api.src.services.queue import get_run_status, request_cancel
from api.src.services.runs import ACTIVE_STATUSES, process_push_event

router = APIRouter(prefix="/pipelines", tags=["pipelines"])

def _run_query():
    return select(PipelineRun).options(
        selectinload(PipelineRun.stages).selectinload(PipelineStage.steps)
    )

async def _get_run_or_404(db: AsyncSession, run_id: UUID) -> PipelineRun:
    result = await db.execute(_run_query().where(PipelineRun.id == run_id))
    run = result.scalar_one_or_none()

    if not run:
        raise HTTPException(status_code=404, detail="Pipeline run not found")

    return run

@router.post("/trigger")
async def trigger_pipeline(request: ManualTriggerRequest, db: AsyncSession = Depends(get_db)):
    """Manually trigger a pipeline run for a repository branch."""
    repo_url = request.repository_url.rstrip("/")
    full_name = "/".join(repo_url.removesuffix(".git").split("/")[-2:])

    webhook_data = {
        "repo_name": full_name.split("/")[-1],
        "repo_full_name": full_name,
        "clone_url": request.repository_url,
        "commit_sha": request.commit_sha or "",
        "branch": request.branch,
        "commit_message": "",
        "pusher": "manual",
        "deleted": False,
    }
    return await process_push_event(webhook_data, db, require_commit=False)

@router.get("/runs", response_model=List[PipelineRunResponse])
async def list_runs(
    limit: int = 20,
    offset: int = 0,
    status: Optional[str] = None,
    branch: Optional[str] = None,
    db: AsyncSession = Depends(get_db)
):
    """List all pipeline runs."""
    query = _run_query().order_by(PipelineRun.created_at.desc())

    if status:
        query = query.where(PipelineRun.status == status)
    if branch:
        query = query.where(PipelineRun.branch == branch)

    query = query.limit(limit).offset(offset)

    result = await db.execute(query)
    return result.scalars().all()

@router.get("/runs/{run_id}", response_model=PipelineRunResponse)
async def get_run(run_id: UUID, db: AsyncSession = Depends(get_db)):
    """Get a specific pipeline run."""
    return await _get_run_or_404(db, run_id)

@router.get("/runs/{run_id}/status")
async def get_run_status_endpoint(run_id: UUID, db: AsyncSession = Depends(get_db)):
    """Get real-time status of a pipeline run."""
    run = await _get_run_or_404(db, run_id)

    # Get live status from Redis
    redis_status = await get_run_status(str(run_id))

    return {
        "run_id": str(run_id),
        "db_status": run.status,
        "live_status": redis_status,
        "message": run.message,
        "stages": [
            {
                "name": stage.name,
                "status": stage.status,
                "reason": stage.reason,
                "order": stage.stage_order,
                "steps": [
                    {"name": step.name, "status": step.status, "order": step.step_order}
                    for step in stage.steps
                ],
            }
            for stage in run.stages
        ]
    }

@router.get("/runs/{run_id}/logs")
async def get_run_logs(run_id: UUID, db: AsyncSession = Depends(get_db)):
    """Get logs for all steps in a pipeline run."""
    query = (
        select(PipelineStep)
        .where(PipelineStep.run_id == run_id)
        .order_by(PipelineStep.stage_order, PipelineStep.step_order)
    )
    result = await db.execute(query)
    steps = result.scalars().all()

    if not steps:
        raise HTTPException(status_code=404, detail="Pipeline run not found")

    return {
        "run_id": str(run_id),
        "steps": [
            {
                "stage_order": step.stage_order,
                "name": step.name,
                "status": step.status,
                "exit_code": step.exit_code,
                "logs": step.logs,
                "started_at": step.started_at,
                "finished_at": step.finished_at,
            }
            for step in steps
        ]
    }

@router.post("/runs/{run_id}/cancel")
async def cancel_run(run_id: UUID, db: AsyncSession = Depends(get_db)):
    """Request cancellation of a queued or running pipeline run."""
    run = await _get_run_or_404(db, run_id)

    if run.status not in ACTIVE_STATUSES:
        raise HTTPException(status_code=409, detail=f"Pipeline run already {run.status}")

    await request_cancel(str(run_id))
    return {"run_id": str(run_id), "status": "cancelling"}

@router.get("/repositories", response_model=List[RepositoryResponse])
async def list_repositories(db: AsyncSession = Depends(get_db)):
    """List all registered repositories."""
    query = select(Repository).order_by(Repository.created_at.desc())
    result = await db.execute(query)
    return result.scalars().all()

@router.get("/stats")
async def get_pipeline_stats(db: AsyncSession = Depends(get_db)):
    """Get pipeline statistics."""
    # Count runs by status
    status_query = (
        select(PipelineRun.status, func.count(PipelineRun.id))
        .group_by(PipelineRun.status)
    )
    result = await db.execute(status_query)
    status_counts = {row[0]: row[1] for row in result.all()}

    # Count total repositories
    repo_count_query = select(func.count(Repository.id))
    result = await db.execute(repo_count_query)
    repo_count = result.scalar()

    return {
        "repositories": repo_count,
        "runs": status_counts,
        "total_runs": sum(status_counts.values()),
    }
