"""Workflow persistence collaborators.

The engine treats storage as an opaque store of workflow graphs; nothing in
the execution core depends on which implementation is used.
"""

import uuid
from datetime import datetime
from typing import Callable, List, Optional
from urllib.parse import quote

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.core import WorkflowGraph, WorkflowSummary
from ..storage.database import session_scope
from ..storage.models import WorkflowModel
from .exceptions import RemoteExecutionError, StorageError, WorkflowNotFoundError
from .http_client import JsonHttpClient
from .logging import get_logger

logger = get_logger(__name__)


class WorkflowRepository:
    """Interface of a workflow store."""

    def list(self) -> List[WorkflowSummary]:
        raise NotImplementedError

    def get(self, workflow_id: str) -> Optional[WorkflowGraph]:
        raise NotImplementedError

    def create(self, name: str, graph: WorkflowGraph) -> WorkflowGraph:
        raise NotImplementedError

    def update(self, graph: WorkflowGraph) -> WorkflowGraph:
        raise NotImplementedError

    def delete(self, workflow_id: str) -> bool:
        raise NotImplementedError


def _definition(graph: WorkflowGraph) -> dict:
    """Nodes and edges as stored."""
    dumped = graph.model_dump(by_alias=True, mode="json")
    return {"nodes": dumped["nodes"], "edges": dumped["edges"]}


class SqlWorkflowRepository(WorkflowRepository):
    """Stores workflows in the ``workflows`` table."""

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        """Initialize with an optional session factory."""
        self._session_factory = session_factory

    @staticmethod
    def _to_graph(model: WorkflowModel) -> WorkflowGraph:
        return WorkflowGraph.model_validate({
            **model.definition,
            "id": model.id,
            "name": model.name,
            "createdAt": model.created_at,
            "updatedAt": model.updated_at,
        })

    def list(self) -> List[WorkflowSummary]:
        """
        List all stored workflows, most recently updated first.

        Raises:
            StorageError: If storage operation fails
        """
        with session_scope(self._session_factory) as db:
            try:
                models = db.query(WorkflowModel).order_by(WorkflowModel.updated_at.desc()).all()
                summaries = [
                    WorkflowSummary(
                        id=model.id,
                        name=model.name,
                        node_count=len((model.definition or {}).get("nodes", [])),
                        created_at=model.created_at,
                        updated_at=model.updated_at,
                    )
                    for model in models
                ]
                logger.debug(f"Retrieved {len(summaries)} workflow summaries")
                return summaries
            except SQLAlchemyError as e:
                logger.error(f"Database error while listing workflows: {str(e)}")
                raise StorageError(f"Failed to list workflows: {str(e)}", operation="list", table="workflows")

    def get(self, workflow_id: str) -> Optional[WorkflowGraph]:
        """Return the workflow, or None when it does not exist."""
        with session_scope(self._session_factory) as db:
            try:
                model = db.query(WorkflowModel).filter(WorkflowModel.id == workflow_id).first()
                return self._to_graph(model) if model else None
            except SQLAlchemyError as e:
                logger.error(f"Database error while retrieving workflow: {str(e)}")
                raise StorageError(f"Failed to retrieve workflow: {str(e)}", operation="get", table="workflows")

    def create(self, name: str, graph: WorkflowGraph) -> WorkflowGraph:
        """Store ``graph`` under a new id and ``name``."""
        workflow_id = str(uuid.uuid4())
        now = datetime.utcnow()
        with session_scope(self._session_factory) as db:
            try:
                model = WorkflowModel(
                    id=workflow_id,
                    name=name,
                    definition=_definition(graph),
                    created_at=now,
                    updated_at=now,
                )
                db.add(model)
                db.commit()
                logger.info(f"Created workflow '{name}' with ID: {workflow_id}")
                return self._to_graph(model)
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Database error while creating workflow: {str(e)}")
                raise StorageError(f"Failed to store workflow: {str(e)}", operation="create", table="workflows")

    def update(self, graph: WorkflowGraph) -> WorkflowGraph:
        """Replace the stored nodes, edges and name of ``graph.id``.

        Raises:
            WorkflowNotFoundError: If the workflow does not exist
        """
        with session_scope(self._session_factory) as db:
            try:
                model = db.query(WorkflowModel).filter(WorkflowModel.id == graph.id).first()
                if not model:
                    raise WorkflowNotFoundError(f"Workflow with ID '{graph.id}' not found", workflow_id=graph.id)
                model.name = graph.name
                model.definition = _definition(graph)
                model.updated_at = datetime.utcnow()
                db.commit()
                logger.info(f"Updated workflow {graph.id}")
                return self._to_graph(model)
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Database error while updating workflow: {str(e)}")
                raise StorageError(f"Failed to update workflow: {str(e)}", operation="update", table="workflows")

    def delete(self, workflow_id: str) -> bool:
        """Delete a workflow; returns False when it did not exist."""
        with session_scope(self._session_factory) as db:
            try:
                model = db.query(WorkflowModel).filter(WorkflowModel.id == workflow_id).first()
                if not model:
                    logger.warning(f"Workflow with ID '{workflow_id}' not found for deletion")
                    return False
                db.delete(model)
                db.commit()
                logger.info(f"Deleted workflow {workflow_id}")
                return True
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Database error while deleting workflow: {str(e)}")
                raise StorageError(f"Failed to delete workflow: {str(e)}", operation="delete", table="workflows")


class HttpWorkflowRepository(WorkflowRepository):
    """Workflow store behind a ``/workflows`` REST resource."""

    def __init__(self, client: JsonHttpClient):
        self.client = client

    def list(self) -> List[WorkflowSummary]:
        return [WorkflowSummary.model_validate(item) for item in self.client.request("GET", "/workflows")]

    def get(self, workflow_id: str) -> Optional[WorkflowGraph]:
        try:
            body = self.client.request("GET", f"/workflows/{quote(workflow_id, safe='')}")
        except RemoteExecutionError as e:
            if e.status_code == 404:
                return None
            raise
        return WorkflowGraph.model_validate(body)

    def create(self, name: str, graph: WorkflowGraph) -> WorkflowGraph:
        body = self.client.request("POST", "/workflows", json={"name": name, "workflow": _definition(graph)})
        return WorkflowGraph.model_validate(body)

    def update(self, graph: WorkflowGraph) -> WorkflowGraph:
        body = self.client.request(
            "PUT",
            f"/workflows/{quote(graph.id, safe='')}",
            json=graph.model_dump(by_alias=True, mode="json"),
        )
        return WorkflowGraph.model_validate(body)

    def delete(self, workflow_id: str) -> bool:
        try:
            self.client.request("DELETE", f"/workflows/{quote(workflow_id, safe='')}")
        except RemoteExecutionError as e:
            if e.status_code == 404:
                return False
            raise
        return True
