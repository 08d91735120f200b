"""SQLAlchemy database models for the sequence engine."""

from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text, JSON, Integer, ForeignKey
from sqlalchemy.orm import relationship
from .database import Base


class WorkflowModel(Base):
    """Database model for persisted workflow graphs."""
    __tablename__ = "workflows"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    definition = Column(JSON, nullable=False)  # nodes and edges as serialized on the wire
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class WorkflowRunModel(Base):
    """Database model for workflow runs."""
    __tablename__ = "workflow_runs"

    id = Column(String, primary_key=True)
    workflow_id = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False)  # queued, running, succeeded, failed
    initial_input = Column(JSON)
    error_message = Column(Text)
    started_at = Column(DateTime, default=datetime.utcnow)
    finished_at = Column(DateTime)

    tasks = relationship("RunTaskModel", back_populates="run", order_by="RunTaskModel.id",
                         cascade="all, delete-orphan")
    logs = relationship("RunLogModel", back_populates="run", order_by="RunLogModel.sequence",
                        cascade="all, delete-orphan")


class RunTaskModel(Base):
    """Database model for the execution record of one node inside a run."""
    __tablename__ = "run_tasks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(String, ForeignKey("workflow_runs.id"), nullable=False, index=True)
    node_id = Column(String, nullable=False)
    node_type = Column(String, nullable=False)
    status = Column(String, nullable=False)  # pending, running, completed, failed
    started_at = Column(DateTime)
    completed_at = Column(DateTime)
    error = Column(Text)

    run = relationship("WorkflowRunModel", back_populates="tasks")


class RunLogModel(Base):
    """Database model for run log entries."""
    __tablename__ = "run_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(String, ForeignKey("workflow_runs.id"), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)
    log_id = Column(String, nullable=False)
    type = Column(String, nullable=False)  # info, error, node-output, system
    message = Column(Text, nullable=False)
    node_id = Column(String)
    data = Column(JSON)
    timestamp = Column(DateTime, default=datetime.utcnow)

    run = relationship("WorkflowRunModel", back_populates="logs")
