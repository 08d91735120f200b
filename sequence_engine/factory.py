"""Application factory for creating FastAPI instances."""

from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from .config import AppConfig, get_config
from .core.exceptions import ConfigurationError
from .core.http_client import JsonHttpClient
from .core.logging import setup_logging, get_logger
from .core.middleware import ErrorHandlingMiddleware
from .core.remote_client import LocalExecutionClient, RemoteExecutionClient
from .core.repository import HttpWorkflowRepository, SqlWorkflowRepository
from .core.run_lifecycle import ExecutionClient, RunPoller
from .core.run_store import RunStore
from .core.runner import WorkflowRunner
from .core.transport import HttpTransport, SimulatedTransport
from .storage.database import configure_database, session_scope
from .api.endpoints import router, init_dependencies


class ApplicationState:
    """Container for application state and components."""

    def __init__(self):
        self.config: Optional[AppConfig] = None
        self.repository: Optional[SqlWorkflowRepository] = None
        self.run_store: Optional[RunStore] = None
        self.runner: Optional[WorkflowRunner] = None
        self.execution_client: Optional[ExecutionClient] = None
        self.poller: Optional[RunPoller] = None


# Global application state
app_state = ApplicationState()


def initialize_core_components(config: AppConfig, logger) -> tuple:
    """Initialize the repository, run store and runner."""
    repository = SqlWorkflowRepository()
    run_store = RunStore()
    transport = HttpTransport() if config.live_api_calls else SimulatedTransport()
    runner = WorkflowRunner(
        repository=repository,
        run_store=run_store,
        transport=transport,
        max_concurrent_runs=config.max_concurrent_runs,
        delay_scale=config.delay_scale,
    )
    logger.info("Core components initialized")
    return repository, run_store, runner


def build_execution_client(config: AppConfig, runner: Optional[WorkflowRunner] = None) -> ExecutionClient:
    """Client for starting and observing runs: the remote service when configured, else the local runner."""
    if config.remote_base_url:
        return RemoteExecutionClient(config.remote_base_url, timeout=config.http_timeout)
    if runner is None:
        raise ConfigurationError(
            "remote_base_url must be set when no local runner is available",
            config_key="remote_base_url",
        )
    return LocalExecutionClient(runner)


def build_poller(config: AppConfig, client: ExecutionClient) -> RunPoller:
    return RunPoller(client, interval=config.poll_interval, max_attempts=config.poll_max_attempts)


def build_remote_repository(config: AppConfig) -> HttpWorkflowRepository:
    """Workflow store of the remote service at ``remote_base_url``."""
    if not config.remote_base_url:
        raise ConfigurationError("remote_base_url is not configured", config_key="remote_base_url")
    return HttpWorkflowRepository(JsonHttpClient(config.remote_base_url, timeout=config.http_timeout))


def build_lifespan(config: AppConfig):
    """Create the application lifespan handler for ``config``."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(
            level=config.log_level.value,
            log_file=config.log_file,
            log_format=config.log_format,
            structured=config.log_structured,
        )
        logger = get_logger(__name__)
        logger.info(f"Starting {config.app_name} v{config.app_version}")

        configure_database(config.database_url, echo=config.database_echo)
        logger.info("Database tables created")

        repository, run_store, runner = initialize_core_components(config, logger)
        app_state.config = config
        app_state.repository = repository
        app_state.run_store = run_store
        app_state.runner = runner
        app_state.execution_client = build_execution_client(config, runner)
        app_state.poller = build_poller(config, app_state.execution_client)
        init_dependencies(repository=repository, runner=runner, run_store=run_store)

        logger.info("Application startup completed successfully")

        yield

        logger.info(f"Shutting down {config.app_name}")
        try:
            runner.shutdown()
        except Exception as e:
            logger.error(f"Error during runner shutdown: {str(e)}")

    return lifespan


def create_app(config: Optional[AppConfig] = None) -> FastAPI:
    """Create and configure FastAPI application instance."""
    if config is None:
        config = get_config()

    app = FastAPI(
        title=config.app_name,
        description="Workflow sequence engine: author, validate and run decision graphs",
        version=config.app_version,
        debug=config.debug,
        lifespan=build_lifespan(config)
    )

    if config.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "DELETE"],
            allow_headers=["*"],
        )
    app.add_middleware(ErrorHandlingMiddleware)

    app.include_router(router)
    add_health_endpoints(app, config)

    return app


def add_health_endpoints(app: FastAPI, config: AppConfig) -> None:
    """Add health check endpoints to the application."""

    @app.get("/")
    async def root():
        """Root endpoint for basic health check."""
        return {"message": f"{config.app_name} is running", "version": config.app_version}

    @app.get("/health")
    async def health_check():
        """Health check including database connectivity and runner load."""
        database = "healthy"
        try:
            with session_scope() as db:
                db.execute(text("SELECT 1"))
        except Exception as e:
            get_logger(__name__).error(f"Database health check failed: {str(e)}")
            database = "unhealthy"

        return {
            "status": "healthy" if database == "healthy" else "degraded",
            "service": config.app_name.lower().replace(" ", "-"),
            "version": config.app_version,
            "database": database,
            "active_runs": len(app_state.runner.get_active_runs()) if app_state.runner else 0,
        }
