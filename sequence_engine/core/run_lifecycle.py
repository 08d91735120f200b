"""Run lifecycle: the status state machine and the polling contract.

A run is submitted, returns an id immediately and executes elsewhere. Callers
observe it by polling full snapshots at a fixed interval with a bounded
number of attempts. Each snapshot replaces the caller's view wholesale.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import requests

from ..models.core import RunRecord, RunStatus
from .exceptions import RunStateError, SequenceEngineError
from .logging import get_logger

logger = get_logger(__name__)

_TRANSITIONS = {
    RunStatus.QUEUED: {RunStatus.RUNNING, RunStatus.FAILED},
    RunStatus.RUNNING: {RunStatus.SUCCEEDED, RunStatus.FAILED},
    RunStatus.SUCCEEDED: set(),
    RunStatus.FAILED: set(),
}

_RANK = {
    RunStatus.QUEUED: 0,
    RunStatus.RUNNING: 1,
    RunStatus.SUCCEEDED: 2,
    RunStatus.FAILED: 2,
}


def status_rank(status: RunStatus) -> int:
    """Position of ``status`` along the lifecycle; terminal states share the top rank."""
    return _RANK[RunStatus(status)]


def can_transition(current: RunStatus, requested: RunStatus) -> bool:
    return RunStatus(requested) in _TRANSITIONS[RunStatus(current)]


def check_transition(current: RunStatus, requested: RunStatus, run_id: Optional[str] = None) -> None:
    """Raise RunStateError unless ``current -> requested`` is a legal move."""
    if not can_transition(current, requested):
        raise RunStateError(
            f"Run {run_id} cannot move from {RunStatus(current).value} to {RunStatus(requested).value}",
            run_id=run_id,
            current_status=RunStatus(current).value,
            requested_status=RunStatus(requested).value,
        )


def advance(record: RunRecord, status: RunStatus, error_message: Optional[str] = None,
            now: Optional[datetime] = None) -> RunRecord:
    """Return a copy of ``record`` moved to ``status``; terminal moves stamp ``finished_at``."""
    check_transition(record.status, status, record.id)
    status = RunStatus(status)
    update: Dict[str, Any] = {"status": status}
    if status.is_terminal:
        update["finished_at"] = now or datetime.utcnow()
    if error_message:
        update["error_message"] = error_message
    return record.model_copy(update=update)


class ExecutionClient:
    """Request/response contract of a run executor, local or remote."""

    def start_run(self, workflow_id: str, initial_input: Optional[Dict[str, Any]] = None) -> str:
        raise NotImplementedError

    def run_status(self, workflow_id: str, run_id: str) -> RunRecord:
        raise NotImplementedError


@dataclass
class PollResult:
    """Outcome of a polling session.

    ``timed_out`` is a client-side condition: the run may still be executing.
    """
    record: Optional[RunRecord]
    attempts: int
    timed_out: bool = False
    stopped: bool = False
    errors: List[str] = field(default_factory=list)

    @property
    def finished(self) -> bool:
        return self.record is not None and self.record.status.is_terminal


class RunPoller:
    """Polls an ExecutionClient until a run reaches a terminal status."""

    def __init__(self, client: ExecutionClient, interval: float = 2.0, max_attempts: int = 30,
                 sleep: Callable[[float], None] = time.sleep):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.client = client
        self.interval = interval
        self.max_attempts = max_attempts
        self._sleep = sleep
        self._stopped = False

    def stop(self) -> None:
        """Stop polling after the current attempt. The run itself keeps going."""
        self._stopped = True

    def submit_and_poll(self, workflow_id: str, initial_input: Optional[Dict[str, Any]] = None,
                        on_snapshot: Optional[Callable[[RunRecord], None]] = None) -> PollResult:
        """Start a run and poll it to completion."""
        run_id = self.client.start_run(workflow_id, initial_input)
        logger.info(f"Submitted run {run_id} for workflow {workflow_id}")
        return self.poll(workflow_id, run_id, on_snapshot)

    def poll(self, workflow_id: str, run_id: str,
             on_snapshot: Optional[Callable[[RunRecord], None]] = None) -> PollResult:
        """
        Poll a run until it is terminal, the attempt budget runs out or ``stop`` is called.

        Args:
            workflow_id: Workflow the run belongs to
            run_id: Run to observe
            on_snapshot: Called with the current authoritative record after every successful poll

        Returns:
            PollResult holding the last accepted snapshot
        """
        self._stopped = False
        record: Optional[RunRecord] = None
        errors: List[str] = []
        attempts = 0

        while attempts < self.max_attempts and not self._stopped:
            attempts += 1
            try:
                snapshot = self.client.run_status(workflow_id, run_id)
            except (SequenceEngineError, requests.RequestException) as e:
                # a failed poll only consumes an attempt
                errors.append(str(e))
                logger.warning(f"Poll {attempts}/{self.max_attempts} for run {run_id} failed: {str(e)}")
            else:
                record = self._accept(record, snapshot)
                if on_snapshot:
                    on_snapshot(record)
                if record.status.is_terminal:
                    logger.info(f"Run {run_id} finished with status {record.status.value} after {attempts} poll(s)")
                    return PollResult(record=record, attempts=attempts, errors=errors)

            if attempts < self.max_attempts and not self._stopped:
                self._sleep(self.interval)

        if self._stopped:
            logger.info(f"Stopped polling run {run_id} after {attempts} poll(s)")
            return PollResult(record=record, attempts=attempts, stopped=True, errors=errors)

        logger.warning(f"Gave up polling run {run_id} after {attempts} attempt(s); it may still be running")
        return PollResult(record=record, attempts=attempts, timed_out=True, errors=errors)

    @staticmethod
    def _accept(current: Optional[RunRecord], snapshot: RunRecord) -> RunRecord:
        """Pick the authoritative record: the new snapshot unless it is older than what we hold."""
        if current is None:
            return snapshot
        if status_rank(snapshot.status) < status_rank(current.status):
            logger.debug(f"Ignoring stale snapshot of run {snapshot.id}: "
                         f"{snapshot.status.value} after {current.status.value}")
            return current
        if status_rank(snapshot.status) == status_rank(current.status) and len(snapshot.logs) < len(current.logs):
            return current
        return snapshot
