"""Execution clients: the contract the run poller talks to."""

from typing import Any, Dict, Optional
from urllib.parse import quote

import requests

from ..models.core import RunRecord
from .exceptions import RemoteExecutionError
from .http_client import JsonHttpClient
from .logging import get_logger
from .run_lifecycle import ExecutionClient
from .runner import WorkflowRunner

logger = get_logger(__name__)


class RemoteExecutionClient(ExecutionClient):
    """Starts and observes runs on a remote sequence engine service."""

    def __init__(self, base_url: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.client = JsonHttpClient(base_url, timeout=timeout, session=session)

    def start_run(self, workflow_id: str, initial_input: Optional[Dict[str, Any]] = None) -> str:
        """
        Submit a run.

        Returns:
            ID of the new run

        Raises:
            RemoteExecutionError: If the service refuses the run or cannot be reached
        """
        path = f"/workflows/{quote(workflow_id, safe='')}/runs"
        body = self.client.request("POST", path, json={"input": initial_input or {}})
        run_id = (body or {}).get("runId")
        if not run_id:
            raise RemoteExecutionError("Run submission returned no runId", endpoint=path)
        return run_id

    def run_status(self, workflow_id: str, run_id: str) -> RunRecord:
        """Fetch the authoritative snapshot of a run."""
        path = f"/workflows/{quote(workflow_id, safe='')}/runs/{quote(run_id, safe='')}"
        return RunRecord.model_validate(self.client.request("GET", path))


class LocalExecutionClient(ExecutionClient):
    """Adapts an in-process WorkflowRunner to the execution client contract."""

    def __init__(self, runner: WorkflowRunner):
        self.runner = runner

    def start_run(self, workflow_id: str, initial_input: Optional[Dict[str, Any]] = None) -> str:
        return self.runner.submit_run(workflow_id, initial_input)

    def run_status(self, workflow_id: str, run_id: str) -> RunRecord:
        return self.runner.run_status(workflow_id, run_id)
