"""
Create, queue and cancel pipeline runs.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.src.config import get_settings
from api.src.models.pipeline import PipelineRun, PipelineStage, PipelineStep, Repository
from api.src.services.github import (
    RepositoryError,
    cleanup_repo,
    clone_repository,
    fetch_pipeline_config,
)
from api.src.services.pipeline_parser import PipelineConfigError, parse_pipeline_dict, should_trigger
from api.src.services.queue import enqueue_pipeline_run, request_cancel

logger = logging.getLogger(__name__)
settings = get_settings()

ACTIVE_STATUSES = ("pending", "queued", "running")

async def get_or_create_repository(db: AsyncSession, webhook_data: Dict[str, Any]) -> Repository:
    repo_query = select(Repository).where(
        Repository.full_name == webhook_data["repo_full_name"]
    )
    result = await db.execute(repo_query)
    repository = result.scalar_one_or_none()

    if not repository:
        repository = Repository(
            name=webhook_data["repo_name"],
            full_name=webhook_data["repo_full_name"],
            clone_url=webhook_data["clone_url"],
        )
        db.add(repository)
        await db.flush()

    return repository

async def load_pipeline(webhook_data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Clone the pushed commit and return its validated pipeline, or None."""
    repo_path = None
    try:
        repo_path = await clone_repository(
            webhook_data["clone_url"],
            webhook_data["commit_sha"],
            webhook_data["branch"],
        )
        pipeline_config = await fetch_pipeline_config(repo_path)
    finally:
        if repo_path:
            cleanup_repo(repo_path)

    if not pipeline_config:
        return None

    return parse_pipeline_dict(pipeline_config, settings.trigger_branches)

async def cancel_superseded(db: AsyncSession, repository: Repository, branch: str) -> int:
    """Request cancellation of older active runs for the same repository and branch."""
    query = (
        select(PipelineRun)
        .where(PipelineRun.repository_id == repository.id)
        .where(PipelineRun.branch == branch)
        .where(PipelineRun.status.in_(ACTIVE_STATUSES))
    )
    result = await db.execute(query)
    runs = result.scalars().all()

    for run in runs:
        await request_cancel(str(run.id))
        logger.info(f"Requested cancellation of superseded run {run.id}")
    return len(runs)

async def create_pipeline_run(
    db: AsyncSession,
    repository: Repository,
    webhook_data: Dict[str, Any],
    validated_config: Dict[str, Any],
) -> PipelineRun:
    """Persist a queued run with pending stage and step rows."""
    pipeline_run = PipelineRun(
        repository_id=repository.id,
        commit_sha=webhook_data["commit_sha"],
        branch=webhook_data["branch"],
        status="queued",
        triggered_by=webhook_data["pusher"],
        config=validated_config,
    )
    db.add(pipeline_run)
    await db.flush()

    for stage_order, stage_config in enumerate(validated_config["stages"]):
        stage = PipelineStage(
            run_id=pipeline_run.id,
            name=stage_config["name"],
            branches=stage_config["branches"],
            status="pending",
            stage_order=stage_order,
        )
        db.add(stage)
        await db.flush()

        for step_order, step_config in enumerate(stage_config["steps"]):
            db.add(PipelineStep(
                run_id=pipeline_run.id,
                stage_id=stage.id,
                name=step_config["name"],
                action=step_config["uses"],
                commands=step_config["run"],
                status="pending",
                stage_order=stage_order,
                step_order=step_order,
            ))

    await db.commit()
    return pipeline_run

async def process_push_event(
    webhook_data: Dict[str, Any],
    db: AsyncSession,
    require_commit: bool = True,
) -> Dict[str, Any]:
    """
    Turn a parsed push into a queued pipeline run, or explain why not.
    With `require_commit` off an empty commit SHA builds the branch head.
    """
    if webhook_data.get("deleted"):
        return {"status": "skipped", "reason": "Branch deleted"}

    if require_commit and not webhook_data["commit_sha"]:
        logger.warning("No commit SHA or branch in push event")
        return {"status": "skipped", "reason": "No commit SHA"}

    try:
        validated_config = await load_pipeline(webhook_data)
    except PipelineConfigError as e:
        logger.error(f"Invalid pipeline config: {e}")
        return {"status": "error", "reason": str(e)}
    except RepositoryError as e:
        logger.error(f"Failed to process repository: {e}")
        return {"status": "error", "reason": str(e)}

    if not validated_config:
        logger.info(f"No pipeline config found in {webhook_data['repo_full_name']}")
        return {"status": "skipped", "reason": "No pipeline configuration found"}

    branch = webhook_data["branch"]
    if not should_trigger(validated_config, branch):
        logger.info(f"Branch {branch} does not match trigger branches {validated_config['trigger_branches']}")
        return {"status": "skipped", "reason": f"Branch {branch} not configured"}

    repository = await get_or_create_repository(db, webhook_data)

    if settings.cancel_superseded_runs:
        await cancel_superseded(db, repository, branch)

    pipeline_run = await create_pipeline_run(db, repository, webhook_data, validated_config)

    await enqueue_pipeline_run(
        run_id=str(pipeline_run.id),
        config=validated_config,
        repo_info=webhook_data,
    )

    logger.info(f"Pipeline run {pipeline_run.id} created and queued")

    return {
        "status": "queued",
        "run_id": str(pipeline_run.id),
        "stages": len(validated_config["stages"]),
    }
