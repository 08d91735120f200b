"""Pytest configuration and fixtures."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from sequence_engine.core.repository import SqlWorkflowRepository
from sequence_engine.core.run_store import RunStore
from sequence_engine.core.runner import WorkflowRunner
from sequence_engine.storage import Base


@pytest.fixture
def session_factory(tmp_path):
    """File database private to one test."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'sequences.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def repository(session_factory):
    return SqlWorkflowRepository(session_factory=session_factory)


@pytest.fixture
def run_store(session_factory):
    return RunStore(session_factory=session_factory)


@pytest.fixture
def sleeps():
    """Records requested suspensions instead of sleeping."""
    return []


@pytest.fixture
def runner(repository, run_store, sleeps):
    workflow_runner = WorkflowRunner(
        repository=repository,
        run_store=run_store,
        max_concurrent_runs=2,
        delay_scale=1.0,
        sleep=sleeps.append,
    )
    yield workflow_runner
    workflow_runner.shutdown()

