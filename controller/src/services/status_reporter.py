"""
Report pipeline, stage and step status to the database.
"""

import logging
from datetime import datetime
from functools import lru_cache
from sqlalchemy import create_engine, update
from sqlalchemy.orm import sessionmaker

from controller.src.config import get_settings
from controller.src.models.step import PipelineRunResult, StageResult, StepResult
from controller.src.services.queue import set_live_status

logger = logging.getLogger(__name__)

class StatusReporter:
    """Receives every state change of a run. The base class ignores them."""

    def run_started(self, result: PipelineRunResult):
        pass

    def run_finished(self, result: PipelineRunResult):
        pass

    def stage_update(self, run_id: str, stage: StageResult):
        pass

    def step_update(self, run_id: str, step: StepResult):
        pass

@lru_cache()
def get_session_factory() -> sessionmaker:
    # Sync database connection for controller
    engine = create_engine(get_settings().database_url)
    return sessionmaker(bind=engine)

class DatabaseStatusReporter(StatusReporter):
    """Writes run/stage/step rows created by the API and mirrors run status to Redis."""

    def __init__(self, session_factory: sessionmaker = None):
        self._session_factory = session_factory

    def _session(self):
        factory = self._session_factory or get_session_factory()
        return factory()

    def run_started(self, result: PipelineRunResult):
        self.update_run_status(result.run_id, result.status.value, started_at=result.started_at)

    def run_finished(self, result: PipelineRunResult):
        self.update_run_status(
            result.run_id,
            result.status.value,
            finished_at=result.finished_at,
            message=result.message,
        )

    def stage_update(self, run_id: str, stage: StageResult):
        from controller.src.models.db import PipelineStage

        values = {"status": stage.status.value, "updated_at": datetime.utcnow()}
        if stage.reason is not None:
            values["reason"] = stage.reason
        if stage.started_at:
            values["started_at"] = stage.started_at
        if stage.finished_at:
            values["finished_at"] = stage.finished_at

        with self._session() as session:
            session.execute(
                update(PipelineStage)
                .where(PipelineStage.run_id == run_id)
                .where(PipelineStage.stage_order == stage.stage_order)
                .values(**values)
            )
            session.commit()
        logger.debug(f"Updated stage {stage.stage_order} of run {run_id} to {stage.status.value}")

    def step_update(self, run_id: str, step: StepResult):
        from controller.src.models.db import PipelineStep

        values = {"status": step.status.value, "updated_at": datetime.utcnow()}
        if step.logs is not None:
            values["logs"] = step.logs
        if step.exit_code is not None:
            values["exit_code"] = step.exit_code
        if step.started_at:
            values["started_at"] = step.started_at
        if step.finished_at:
            values["finished_at"] = step.finished_at

        with self._session() as session:
            session.execute(
                update(PipelineStep)
                .where(PipelineStep.run_id == run_id)
                .where(PipelineStep.stage_order == step.stage_order)
                .where(PipelineStep.step_order == step.step_order)
                .values(**values)
            )
            session.commit()
        logger.debug(
            f"Updated step {step.stage_order}.{step.step_order} of run {run_id} to {step.status.value}"
        )

    def update_run_status(
        self,
        run_id: str,
        status: str,
        started_at: datetime = None,
        finished_at: datetime = None,
        message: str = None,
    ):
        """Update pipeline run status in database and Redis."""
        from controller.src.models.db import PipelineRun

        values = {"status": status, "updated_at": datetime.utcnow()}
        if started_at:
            values["started_at"] = started_at
        if finished_at:
            values["finished_at"] = finished_at
        if message is not None:
            values["message"] = message

        with self._session() as session:
            session.execute(
                update(PipelineRun)
                .where(PipelineRun.id == run_id)
                .values(**values)
            )
            session.commit()

        set_live_status(run_id, status)
        logger.info(f"Updated run {run_id} status to {status}")
