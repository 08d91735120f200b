"""Database models and storage layer."""

from .database import Base, session_scope, create_tables, drop_tables, configure_database
from .models import WorkflowModel, WorkflowRunModel, RunTaskModel, RunLogModel

__all__ = [
    "Base",
    "session_scope",
    "create_tables",
    "drop_tables",
    "configure_database",
    "WorkflowModel",
    "WorkflowRunModel",
    "RunTaskModel",
    "RunLogModel",
]
