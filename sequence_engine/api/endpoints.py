"""FastAPI REST endpoints for the sequence engine."""

from datetime import datetime
from typing import Dict, List, Any, Optional
from fastapi import APIRouter, HTTPException, Depends, Response, status
from pydantic import Field

from ..core.exceptions import (
    GraphValidationError,
    SequenceEngineError,
    WorkflowNotFoundError,
    create_error_response,
)
from ..core.graph_validator import ensure_runnable, validate_workflow
from ..core.interpreter import execute_graph
from ..core.logic import evaluate
from ..core.middleware import status_code_for_error
from ..core.node_registry import create_default, list_node_kinds, propagate_graph_schemas
from ..core.repository import WorkflowRepository
from ..core.rules import compile_rules, parse_rule_config
from ..core.run_store import RunStore
from ..core.runner import WorkflowRunner
from ..core.logging import get_logger
from ..models.core import (
    ExecutionLog,
    NodeInstance,
    Position,
    RunRecord,
    ValidationResult,
    WorkflowGraph,
    WorkflowSummary,
)
from ..models.rules import CamelModel, RuleOutcome

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1", tags=["sequences"])

# Global instances (initialized in main.py)
_repository: Optional[WorkflowRepository] = None
_runner: Optional[WorkflowRunner] = None
_run_store: Optional[RunStore] = None


def init_dependencies(repository: WorkflowRepository, runner: WorkflowRunner, run_store: RunStore):
    """Initialize the global dependencies."""
    global _repository, _runner, _run_store
    _repository = repository
    _runner = runner
    _run_store = run_store


def get_repository() -> WorkflowRepository:
    """Dependency to get the workflow repository."""
    if _repository is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Workflow repository not initialized"
        )
    return _repository


def get_runner() -> WorkflowRunner:
    """Dependency to get the workflow runner."""
    if _runner is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Workflow runner not initialized"
        )
    return _runner


def get_run_store() -> RunStore:
    """Dependency to get the run store."""
    if _run_store is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Run store not initialized"
        )
    return _run_store


# Request/Response models
class CreateWorkflowRequest(CamelModel):
    """Request model for creating a workflow."""
    name: str = Field(..., min_length=1, description="Workflow name")
    workflow: Optional[WorkflowGraph] = Field(None, description="Initial nodes and edges")


class RunRequest(CamelModel):
    """Request model for previewing or running a workflow."""
    input: Optional[Dict[str, Any]] = Field(None, description="Payload handed to the entry nodes")


class RunSubmittedResponse(CamelModel):
    run_id: str


class PreviewResponse(CamelModel):
    logs: List[ExecutionLog] = Field(default_factory=list)


class CompileRulesRequest(CamelModel):
    config: Optional[Dict[str, Any]] = Field(None, description="Serialized rule configuration")


class CompileRulesResponse(CamelModel):
    logic: Optional[Dict[str, Any]] = None


class EvaluateRulesRequest(CamelModel):
    config: Optional[Dict[str, Any]] = Field(None, description="Serialized rule configuration")
    value: Any = None


class CreateNodeRequest(CamelModel):
    name: Optional[str] = None
    position: Optional[Position] = None


def _raise_http(error: SequenceEngineError) -> None:
    detail = create_error_response(error)
    if isinstance(error, GraphValidationError):
        detail["errors"] = error.validation_errors
    raise HTTPException(status_code=status_code_for_error(error), detail=detail)


def _unexpected(action: str, error: Exception) -> HTTPException:
    logger.error(f"Unexpected error while {action}: {str(error)}", exc_info=True)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "InternalError",
            "message": f"An unexpected error occurred while {action}",
            "details": {"original_error": str(error)},
            "timestamp": datetime.utcnow().isoformat()
        }
    )


def _load(repository: WorkflowRepository, workflow_id: str) -> WorkflowGraph:
    graph = repository.get(workflow_id)
    if graph is None:
        raise WorkflowNotFoundError(f"Workflow with ID '{workflow_id}' not found", workflow_id=workflow_id)
    return graph


# Workflows

@router.get(
    "/workflows",
    response_model=List[WorkflowSummary],
    summary="List workflows"
)
async def list_workflows(repository: WorkflowRepository = Depends(get_repository)) -> List[WorkflowSummary]:
    try:
        return repository.list()
    except SequenceEngineError as e:
        _raise_http(e)
    except Exception as e:
        raise _unexpected("listing workflows", e)


@router.post(
    "/workflows",
    response_model=WorkflowGraph,
    status_code=status.HTTP_201_CREATED,
    summary="Create a workflow",
    description="Store a new workflow. A workflow with nodes must pass authoring validation."
)
async def create_workflow(
    request: CreateWorkflowRequest,
    repository: WorkflowRepository = Depends(get_repository)
) -> WorkflowGraph:
    """
    Create a new workflow.

    An empty workflow is accepted as a draft; once nodes are present the
    graph is validated and refused with the list of errors when invalid.
    """
    try:
        graph = request.workflow or WorkflowGraph(name=request.name)
        graph = propagate_graph_schemas(graph)
        if graph.nodes:
            ensure_runnable(graph)
        created = repository.create(request.name, graph)
        logger.info(f"Created workflow '{request.name}' with ID: {created.id}")
        return created
    except SequenceEngineError as e:
        logger.warning(f"Workflow creation refused: {str(e)}")
        _raise_http(e)
    except Exception as e:
        raise _unexpected("creating the workflow", e)


@router.get(
    "/workflows/{workflow_id}",
    response_model=WorkflowGraph,
    summary="Get a workflow"
)
async def get_workflow(
    workflow_id: str,
    repository: WorkflowRepository = Depends(get_repository)
) -> WorkflowGraph:
    try:
        return _load(repository, workflow_id)
    except SequenceEngineError as e:
        _raise_http(e)
    except Exception as e:
        raise _unexpected("retrieving the workflow", e)


@router.put(
    "/workflows/{workflow_id}",
    response_model=WorkflowGraph,
    summary="Save a workflow",
    description="Replace the nodes, edges and name of a workflow after authoring validation."
)
async def update_workflow(
    workflow_id: str,
    graph: WorkflowGraph,
    repository: WorkflowRepository = Depends(get_repository)
) -> WorkflowGraph:
    try:
        graph = propagate_graph_schemas(graph.model_copy(update={"id": workflow_id}))
        ensure_runnable(graph)
        return repository.update(graph)
    except SequenceEngineError as e:
        logger.warning(f"Saving workflow {workflow_id} refused: {str(e)}")
        _raise_http(e)
    except Exception as e:
        raise _unexpected("saving the workflow", e)


@router.delete(
    "/workflows/{workflow_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a workflow"
)
async def delete_workflow(
    workflow_id: str,
    repository: WorkflowRepository = Depends(get_repository)
) -> Response:
    try:
        if not repository.delete(workflow_id):
            raise WorkflowNotFoundError(f"Workflow with ID '{workflow_id}' not found", workflow_id=workflow_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except SequenceEngineError as e:
        _raise_http(e)
    except Exception as e:
        raise _unexpected("deleting the workflow", e)


@router.post(
    "/workflows/{workflow_id}/validate",
    response_model=ValidationResult,
    summary="Validate a stored workflow"
)
async def validate_stored_workflow(
    workflow_id: str,
    repository: WorkflowRepository = Depends(get_repository)
) -> ValidationResult:
    try:
        return validate_workflow(_load(repository, workflow_id))
    except SequenceEngineError as e:
        _raise_http(e)
    except Exception as e:
        raise _unexpected("validating the workflow", e)


@router.post(
    "/workflows/{workflow_id}/preview",
    response_model=PreviewResponse,
    summary="Preview a workflow",
    description="Interpret the workflow in-process with simulated API calls and no delays."
)
async def preview_workflow(
    workflow_id: str,
    request: Optional[RunRequest] = None,
    repository: WorkflowRepository = Depends(get_repository)
) -> PreviewResponse:
    try:
        graph = _load(repository, workflow_id)
        ensure_runnable(graph)
        logs = execute_graph(graph, request.input if request else None)
        return PreviewResponse(logs=logs)
    except SequenceEngineError as e:
        _raise_http(e)
    except Exception as e:
        raise _unexpected("previewing the workflow", e)


# Runs

@router.post(
    "/workflows/{workflow_id}/runs",
    response_model=RunSubmittedResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start a run",
    description="Queue a run of the workflow and return its ID without waiting for it."
)
async def start_run(
    workflow_id: str,
    request: Optional[RunRequest] = None,
    runner: WorkflowRunner = Depends(get_runner)
) -> RunSubmittedResponse:
    try:
        run_id = runner.submit_run(workflow_id, request.input if request else None)
        return RunSubmittedResponse(run_id=run_id)
    except SequenceEngineError as e:
        logger.warning(f"Run of workflow {workflow_id} refused: {str(e)}")
        _raise_http(e)
    except Exception as e:
        raise _unexpected("starting the run", e)


@router.get(
    "/workflows/{workflow_id}/runs",
    response_model=List[RunRecord],
    summary="List runs of a workflow"
)
async def list_runs(
    workflow_id: str,
    run_store: RunStore = Depends(get_run_store)
) -> List[RunRecord]:
    try:
        return run_store.list_runs(workflow_id)
    except SequenceEngineError as e:
        _raise_http(e)
    except Exception as e:
        raise _unexpected("listing runs", e)


@router.get(
    "/workflows/{workflow_id}/runs/{run_id}",
    response_model=RunRecord,
    summary="Get run status",
    description="Full snapshot of a run: status, timestamps, tasks and logs."
)
async def get_run_status(
    workflow_id: str,
    run_id: str,
    runner: WorkflowRunner = Depends(get_runner)
) -> RunRecord:
    try:
        return runner.run_status(workflow_id, run_id)
    except SequenceEngineError as e:
        _raise_http(e)
    except Exception as e:
        raise _unexpected("retrieving run status", e)


# Rules

@router.post(
    "/rules/compile",
    response_model=CompileRulesResponse,
    summary="Compile a rule configuration to JSON-Logic"
)
async def compile_rule_config(request: CompileRulesRequest) -> CompileRulesResponse:
    try:
        config = parse_rule_config(request.config) if request.config is not None else None
        return CompileRulesResponse(logic=compile_rules(config))
    except SequenceEngineError as e:
        _raise_http(e)


@router.post(
    "/rules/evaluate",
    response_model=RuleOutcome,
    summary="Evaluate a rule configuration against a value"
)
async def evaluate_rule_config(request: EvaluateRulesRequest) -> RuleOutcome:
    try:
        config = parse_rule_config(request.config) if request.config is not None else None
        return evaluate(compile_rules(config), request.value)
    except SequenceEngineError as e:
        _raise_http(e)


# Nodes

@router.get("/nodes", summary="List node kinds")
async def get_node_kinds() -> List[Dict[str, str]]:
    return list_node_kinds()


@router.post(
    "/nodes/{kind}",
    response_model=NodeInstance,
    status_code=status.HTTP_201_CREATED,
    summary="Create a node of a kind with its default configuration"
)
async def create_node(kind: str, request: Optional[CreateNodeRequest] = None) -> NodeInstance:
    try:
        return create_default(
            kind,
            position=request.position if request else None,
            name=request.name if request else None,
        )
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "UnknownNodeKind", "message": f"Unknown node kind '{kind}'"}
        )
