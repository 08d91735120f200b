"""Background executor of workflow runs.

Runs are accepted immediately and executed on a thread pool. Every state
change, task record and log line is written to the run store as it happens,
so pollers always read an authoritative snapshot.
"""

import threading
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional

from ..models.core import NodeInstance, RunLog, RunLogType, RunRecord, RunStatus, TaskStatus, WorkflowGraph
from .exceptions import ErrorCategory, RunNotFoundError, SequenceEngineError, WorkflowNotFoundError
from .graph_validator import ensure_runnable
from .interpreter import ExecutionHooks, GraphInterpreter
from .logging import clear_logging_context, get_logger, set_logging_context
from .node_registry import NodeExecution
from .repository import WorkflowRepository
from .run_store import RunStore
from .transport import ApiTransport

logger = get_logger(__name__)


class _RunRecorder(ExecutionHooks):
    """Writes task state and node logs of one run to the store."""

    def __init__(self, run_id: str, run_store: RunStore, delay_scale: float, sleep: Callable[[float], None]):
        self.run_id = run_id
        self.run_store = run_store
        self.delay_scale = delay_scale
        self._sleep = sleep

    def on_node_start(self, node: NodeInstance, payload: Dict[str, Any]) -> None:
        self.run_store.record_task(self.run_id, node, TaskStatus.RUNNING)

    def on_node_complete(self, node: NodeInstance, execution: NodeExecution) -> None:
        self.run_store.append_logs(self.run_id, [RunLog.from_execution_log(log) for log in execution.logs])
        if execution.delay_seconds:
            # the node stays running while suspended
            self._sleep(execution.delay_seconds * self.delay_scale)
        self.run_store.record_task(self.run_id, node, TaskStatus.COMPLETED)

    def on_node_error(self, node: NodeInstance, error: Exception) -> None:
        self.run_store.record_task(self.run_id, node, TaskStatus.FAILED, error=str(error))


class WorkflowRunner:
    """Executes workflow runs in the background and reports their status."""

    def __init__(
        self,
        repository: WorkflowRepository,
        run_store: RunStore,
        transport: Optional[ApiTransport] = None,
        max_concurrent_runs: int = 10,
        delay_scale: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the runner.

        Args:
            repository: Source of workflow graphs
            run_store: Store receiving run state, tasks and logs
            transport: Transport for API-call nodes (simulated when omitted)
            max_concurrent_runs: Number of runs executing at once; extra runs stay queued
            delay_scale: Factor applied to delay node durations
            sleep: Function used to suspend a run on delay nodes
        """
        self.repository = repository
        self.run_store = run_store
        self.transport = transport
        self.delay_scale = delay_scale
        self._sleep = sleep

        self._executor = ThreadPoolExecutor(max_workers=max_concurrent_runs, thread_name_prefix="sequence-run")
        self._active_runs: Dict[str, Future] = {}
        self._lock = threading.RLock()

        logger.info(f"WorkflowRunner initialized with max_concurrent_runs={max_concurrent_runs}, "
                    f"delay_scale={delay_scale}")

    def submit_run(self, workflow_id: str, initial_input: Optional[Dict[str, Any]] = None) -> str:
        """
        Start a run of a stored workflow without waiting for it.

        Args:
            workflow_id: ID of the workflow to run
            initial_input: Payload for the entry nodes; their held values are used when omitted

        Returns:
            ID of the queued run

        Raises:
            WorkflowNotFoundError: If the workflow does not exist
            GraphValidationError: If the workflow is not runnable
        """
        graph = self.repository.get(workflow_id)
        if graph is None:
            raise WorkflowNotFoundError(f"Workflow with ID '{workflow_id}' not found", workflow_id=workflow_id)
        return self.submit_graph(graph, initial_input)

    def submit_graph(self, graph: WorkflowGraph, initial_input: Optional[Dict[str, Any]] = None) -> str:
        """Start a run of ``graph`` without waiting for it."""
        ensure_runnable(graph)

        run_id = str(uuid.uuid4())
        self.run_store.create_run(run_id, graph.id, initial_input)
        self.run_store.log(run_id, RunLogType.SYSTEM, f"Run queued for workflow '{graph.name}'")

        with self._lock:
            try:
                future = self._executor.submit(self._execute_run, run_id, graph, initial_input)
            except RuntimeError as e:
                self._fail(run_id, f"Run could not be started: {str(e)}")
                raise SequenceEngineError(
                    f"Runner is not accepting runs: {str(e)}",
                    category=ErrorCategory.LIFECYCLE,
                ).add_context(run_id=run_id)
            self._active_runs[run_id] = future
        future.add_done_callback(lambda _: self._forget(run_id))

        logger.info(f"Queued run {run_id} for workflow {graph.id}")
        return run_id

    def run_status(self, workflow_id: str, run_id: str) -> RunRecord:
        """
        Full snapshot of a run.

        Raises:
            RunNotFoundError: If the run does not exist or belongs to another workflow
        """
        record = self.run_store.get_run(run_id)
        if record.workflow_id != workflow_id:
            raise RunNotFoundError(f"Run {run_id} not found for workflow {workflow_id}", run_id=run_id)
        return record

    def get_active_runs(self) -> List[str]:
        """IDs of runs queued or executing in this runner."""
        with self._lock:
            return list(self._active_runs.keys())

    def is_run_active(self, run_id: str) -> bool:
        with self._lock:
            return run_id in self._active_runs

    def wait(self, run_id: str, timeout: Optional[float] = None) -> None:
        """Block until the run finishes in this runner. Returns at once for unknown runs."""
        with self._lock:
            future = self._active_runs.get(run_id)
        if future is not None:
            future.result(timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting runs; runs that never started are marked failed."""
        with self._lock:
            # cancel() runs the done callback, which removes the run from _active_runs
            queued = list(self._active_runs.items())
            pending = [run_id for run_id, future in queued if future.cancel()]
        for run_id in pending:
            self._fail(run_id, "Runner shut down before the run started")
        self._executor.shutdown(wait=wait)
        logger.info("WorkflowRunner shutdown completed")

    def _forget(self, run_id: str) -> None:
        with self._lock:
            self._active_runs.pop(run_id, None)

    def _execute_run(self, run_id: str, graph: WorkflowGraph, initial_input: Optional[Dict[str, Any]]) -> None:
        set_logging_context(run_id=run_id, workflow_id=graph.id)
        try:
            self.run_store.transition(run_id, RunStatus.RUNNING)
            self.run_store.log(run_id, RunLogType.SYSTEM, "Run started")

            interpreter = GraphInterpreter(
                transport=self.transport,
                hooks=_RunRecorder(run_id, self.run_store, self.delay_scale, self._sleep),
            )
            logs = interpreter.run(graph, initial_input or None)

            self.run_store.log(run_id, RunLogType.SYSTEM, f"Run completed with {len(logs)} node log(s)")
            self.run_store.transition(run_id, RunStatus.SUCCEEDED)
            logger.info(f"Run {run_id} succeeded")
        except Exception as e:
            logger.error(f"Run {run_id} failed: {str(e)}")
            self._fail(run_id, str(e), node_id=getattr(e, "context", {}).get("node_id"))
        finally:
            clear_logging_context()

    def _fail(self, run_id: str, error_message: str, node_id: Optional[str] = None) -> None:
        try:
            self.run_store.log(run_id, RunLogType.ERROR, error_message, node_id=node_id)
            self.run_store.transition(run_id, RunStatus.FAILED, error_message=error_message)
        except SequenceEngineError as finalize_error:
            logger.error(f"Failed to finalize run {run_id}: {str(finalize_error)}")
