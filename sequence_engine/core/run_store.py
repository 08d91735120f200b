"""Persistence of run records, task records and run logs."""

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.core import NodeInstance, RunLog, RunLogType, RunRecord, RunStatus, TaskRecord, TaskStatus
from ..storage.database import session_scope
from ..storage.models import RunLogModel, RunTaskModel, WorkflowRunModel
from .error_recovery import storage_write_retry, with_retry
from .exceptions import RunNotFoundError, StorageError
from .logging import get_logger
from .run_lifecycle import check_transition

logger = get_logger(__name__)

_WRITE_RETRY = storage_write_retry()


class RunStore:
    """Stores runs so that every status snapshot is a prefix of the next one."""

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        """Initialize the RunStore.

        Args:
            session_factory: Optional session factory; defaults to the module session maker.
        """
        self._session_factory = session_factory

    def _load(self, db: Session, run_id: str) -> WorkflowRunModel:
        run_model = db.query(WorkflowRunModel).filter(WorkflowRunModel.id == run_id).first()
        if not run_model:
            raise RunNotFoundError(f"Run {run_id} not found", run_id=run_id)
        return run_model

    @with_retry(_WRITE_RETRY)
    def create_run(self, run_id: str, workflow_id: str, initial_input: Optional[Dict[str, Any]] = None) -> RunRecord:
        """Create a queued run."""
        with session_scope(self._session_factory) as db:
            try:
                run_model = WorkflowRunModel(
                    id=run_id,
                    workflow_id=workflow_id,
                    status=RunStatus.QUEUED.value,
                    initial_input=initial_input or {},
                    started_at=datetime.utcnow(),
                )
                db.add(run_model)
                db.commit()
                logger.info(f"Created run {run_id} for workflow {workflow_id}")
                return self._to_record(run_model)
            except SQLAlchemyError as e:
                db.rollback()
                raise StorageError(f"Failed to create run {run_id}: {str(e)}", operation="create_run",
                                   table="workflow_runs")

    @with_retry(_WRITE_RETRY)
    def transition(self, run_id: str, status: RunStatus, error_message: Optional[str] = None) -> RunRecord:
        """Move a run to ``status``.

        Raises:
            RunStateError: If the move is not a legal lifecycle transition
            RunNotFoundError: If the run does not exist
        """
        status = RunStatus(status)
        with session_scope(self._session_factory) as db:
            try:
                run_model = self._load(db, run_id)
                check_transition(RunStatus(run_model.status), status, run_id)
                run_model.status = status.value
                if status.is_terminal:
                    run_model.finished_at = datetime.utcnow()
                if error_message:
                    run_model.error_message = error_message
                db.commit()
                logger.info(f"Run {run_id} is now {status.value}")
                return self._to_record(run_model)
            except SQLAlchemyError as e:
                db.rollback()
                raise StorageError(f"Failed to update run {run_id}: {str(e)}", operation="transition",
                                   table="workflow_runs")

    @with_retry(_WRITE_RETRY)
    def append_logs(self, run_id: str, logs: List[RunLog]) -> None:
        """Append logs after every entry already stored for the run."""
        if not logs:
            return
        with session_scope(self._session_factory) as db:
            try:
                self._load(db, run_id)
                last = db.query(func.max(RunLogModel.sequence)).filter(RunLogModel.run_id == run_id).scalar()
                sequence = last or 0
                for log in logs:
                    sequence += 1
                    db.add(RunLogModel(
                        run_id=run_id,
                        sequence=sequence,
                        log_id=log.id,
                        type=RunLogType(log.type).value,
                        message=log.message,
                        node_id=log.node_id,
                        data=log.data,
                        timestamp=log.timestamp,
                    ))
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise StorageError(f"Failed to append logs to run {run_id}: {str(e)}", operation="append_logs",
                                   table="run_logs")

    def log(self, run_id: str, log_type: RunLogType, message: str, node_id: Optional[str] = None) -> None:
        """Append a single info, error or system entry."""
        self.append_logs(run_id, [RunLog(type=log_type, message=message, node_id=node_id)])

    @with_retry(_WRITE_RETRY)
    def record_task(self, run_id: str, node: NodeInstance, status: TaskStatus, error: Optional[str] = None) -> None:
        """Create or update the task record of ``node`` within the run."""
        status = TaskStatus(status)
        now = datetime.utcnow()
        with session_scope(self._session_factory) as db:
            try:
                task = (
                    db.query(RunTaskModel)
                    .filter(RunTaskModel.run_id == run_id, RunTaskModel.node_id == node.id)
                    .first()
                )
                if task is None:
                    task = RunTaskModel(run_id=run_id, node_id=node.id, node_type=node.kind.value,
                                        status=status.value)
                    db.add(task)
                task.status = status.value
                if status == TaskStatus.RUNNING:
                    task.started_at = now
                elif status in (TaskStatus.COMPLETED, TaskStatus.FAILED):
                    task.completed_at = now
                if error:
                    task.error = error
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise StorageError(f"Failed to record task {node.id} of run {run_id}: {str(e)}",
                                   operation="record_task", table="run_tasks")

    def get_run(self, run_id: str) -> RunRecord:
        """Return the full snapshot of a run.

        Raises:
            RunNotFoundError: If the run does not exist
        """
        with session_scope(self._session_factory) as db:
            try:
                return self._to_record(self._load(db, run_id))
            except SQLAlchemyError as e:
                raise StorageError(f"Failed to read run {run_id}: {str(e)}", operation="get_run",
                                   table="workflow_runs")

    def list_runs(self, workflow_id: str) -> List[RunRecord]:
        """Runs of a workflow, newest first, without tasks and logs."""
        with session_scope(self._session_factory) as db:
            try:
                run_models = (
                    db.query(WorkflowRunModel)
                    .filter(WorkflowRunModel.workflow_id == workflow_id)
                    .order_by(WorkflowRunModel.started_at.desc())
                    .all()
                )
                return [self._to_record(model, include_details=False) for model in run_models]
            except SQLAlchemyError as e:
                raise StorageError(f"Failed to list runs: {str(e)}", operation="list_runs",
                                   table="workflow_runs")

    @staticmethod
    def _to_record(run_model: WorkflowRunModel, include_details: bool = True) -> RunRecord:
        tasks: List[TaskRecord] = []
        logs: List[RunLog] = []
        if include_details:
            tasks = [
                TaskRecord(
                    node_id=task.node_id,
                    node_type=task.node_type,
                    status=task.status,
                    started_at=task.started_at,
                    completed_at=task.completed_at,
                    error=task.error,
                )
                for task in run_model.tasks
            ]
            logs = [
                RunLog(
                    id=log.log_id,
                    sequence=log.sequence,
                    type=log.type,
                    message=log.message,
                    timestamp=log.timestamp,
                    node_id=log.node_id,
                    data=log.data,
                )
                for log in run_model.logs
            ]
        return RunRecord(
            id=run_model.id,
            workflow_id=run_model.workflow_id,
            status=run_model.status,
            started_at=run_model.started_at,
            finished_at=run_model.finished_at,
            tasks=tasks,
            logs=logs,
            error_message=run_model.error_message,
        )
