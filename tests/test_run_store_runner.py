"""Tests for run persistence and the background runner."""

import threading

import pytest

from sequence_engine.core.exceptions import (
    GraphValidationError,
    RunNotFoundError,
    RunStateError,
    SequenceEngineError,
    WorkflowNotFoundError,
)
from sequence_engine.core.remote_client import LocalExecutionClient
from sequence_engine.core.run_lifecycle import RunPoller
from sequence_engine.core.runner import WorkflowRunner
from sequence_engine.core.transport import ApiTransport
from sequence_engine.models.core import (
    NodeInstance,
    RunLog,
    RunLogType,
    RunStatus,
    TaskStatus,
    WorkflowGraph,
)
from sequence_engine.models.nodes import NodeKind

from factories import city_workflow, edge, input_node, notification_node


class ExplodingTransport(ApiTransport):
    def send(self, request, payload):
        raise RuntimeError("connection reset")


def api_workflow():
    return WorkflowGraph(
        name="Lookup",
        nodes=[
            input_node(),
            NodeInstance(id="api", kind=NodeKind.API_CALL, name="Lookup",
                         config={"url": "https://api.example.com/{{city}}"}),
        ],
        edges=[edge("input", "api")],
    )


class TestRunStore:

    def test_create_run_is_queued(self, run_store):
        record = run_store.create_run("run-1", "wf-1", {"city": "NYC"})

        assert record.status == RunStatus.QUEUED
        assert record.workflow_id == "wf-1"
        assert record.finished_at is None
        assert run_store.get_run("run-1").status == RunStatus.QUEUED

    def test_terminal_transition_stamps_finish_time(self, run_store):
        run_store.create_run("run-1", "wf-1")
        run_store.transition("run-1", RunStatus.RUNNING)
        record = run_store.transition("run-1", RunStatus.FAILED, error_message="boom")

        assert record.status == RunStatus.FAILED
        assert record.finished_at is not None
        assert record.error_message == "boom"

    def test_illegal_transition_is_refused(self, run_store):
        run_store.create_run("run-1", "wf-1")
        run_store.transition("run-1", RunStatus.RUNNING)
        run_store.transition("run-1", RunStatus.SUCCEEDED)

        with pytest.raises(RunStateError):
            run_store.transition("run-1", RunStatus.RUNNING)
        assert run_store.get_run("run-1").status == RunStatus.SUCCEEDED

    def test_logs_are_numbered_in_append_order(self, run_store):
        run_store.create_run("run-1", "wf-1")
        run_store.log("run-1", RunLogType.SYSTEM, "first")
        run_store.append_logs("run-1", [
            RunLog(type=RunLogType.INFO, message="second"),
            RunLog(type=RunLogType.ERROR, message="third", node_id="n1"),
        ])

        logs = run_store.get_run("run-1").logs
        assert [log.sequence for log in logs] == [1, 2, 3]
        assert [log.message for log in logs] == ["first", "second", "third"]
        assert logs[2].node_id == "n1"

    def test_record_task_updates_existing_entry(self, run_store):
        node = input_node()
        run_store.create_run("run-1", "wf-1")
        run_store.record_task("run-1", node, TaskStatus.RUNNING)
        run_store.record_task("run-1", node, TaskStatus.COMPLETED)

        tasks = run_store.get_run("run-1").tasks
        assert len(tasks) == 1
        assert tasks[0].status == TaskStatus.COMPLETED
        assert tasks[0].node_type == NodeKind.INPUT_TEXT
        assert tasks[0].started_at is not None
        assert tasks[0].completed_at is not None

    def test_unknown_run(self, run_store):
        with pytest.raises(RunNotFoundError):
            run_store.get_run("missing")
        with pytest.raises(RunNotFoundError):
            run_store.transition("missing", RunStatus.RUNNING)

    def test_list_runs_is_scoped_to_workflow(self, run_store):
        run_store.create_run("run-1", "wf-1")
        run_store.create_run("run-2", "wf-1")
        run_store.create_run("run-3", "wf-2")
        run_store.log("run-1", RunLogType.SYSTEM, "hello")

        runs = run_store.list_runs("wf-1")
        assert {run.id for run in runs} == {"run-1", "run-2"}
        assert all(run.logs == [] for run in runs)


class TestWorkflowRunner:

    def test_successful_run(self, runner, repository, run_store):
        workflow = repository.create("City greeting", city_workflow())

        run_id = runner.submit_run(workflow.id, {"city": "NYC"})
        runner.wait(run_id, timeout=10)

        record = run_store.get_run(run_id)
        assert record.status == RunStatus.SUCCEEDED
        assert record.finished_at is not None
        assert [task.node_id for task in record.tasks] == ["input", "decision", "notify"]
        assert all(task.status == TaskStatus.COMPLETED for task in record.tasks)

        types = [log.type for log in record.logs]
        assert types[:2] == [RunLogType.SYSTEM, RunLogType.SYSTEM]
        assert types[-1] == RunLogType.SYSTEM
        assert set(types[2:-1]) == {RunLogType.NODE_OUTPUT}
        notification = record.logs[-2]
        assert notification.message == "Welcome NYC"
        assert notification.node_id == "notify"
        assert notification.data == {"kind": "notification", "name": "Notify"}
        assert [log.sequence for log in record.logs] == list(range(1, len(record.logs) + 1))

    def test_delay_node_suspends_the_run(self, runner, repository, run_store, sleeps):
        graph = WorkflowGraph(
            name="Wait",
            nodes=[
                input_node(),
                NodeInstance(id="wait", kind=NodeKind.DELAY, name="Wait",
                             config={"delayType": "seconds", "delayValue": 5}),
                notification_node("notify", "Done"),
            ],
            edges=[edge("input", "wait"), edge("wait", "notify")],
        )
        workflow = repository.create("Wait", graph)

        run_id = runner.submit_run(workflow.id, {"city": "NYC"})
        runner.wait(run_id, timeout=10)

        assert sleeps == [5.0]
        assert run_store.get_run(run_id).status == RunStatus.SUCCEEDED

    def test_invalid_workflow_is_refused_without_a_run(self, runner, repository, run_store):
        graph = WorkflowGraph(name="Orphan", nodes=[notification_node("notify", "Hi")])
        workflow = repository.create("Orphan", graph)

        with pytest.raises(GraphValidationError) as exc_info:
            runner.submit_run(workflow.id)

        assert exc_info.value.validation_errors
        assert run_store.list_runs(workflow.id) == []

    def test_unknown_workflow(self, runner):
        with pytest.raises(WorkflowNotFoundError):
            runner.submit_run("missing")

    def test_node_failure_fails_the_run(self, repository, run_store, runner):
        runner.transport = ExplodingTransport()
        workflow = repository.create("Lookup", api_workflow())

        run_id = runner.submit_run(workflow.id, {"city": "NYC"})
        runner.wait(run_id, timeout=10)

        record = run_store.get_run(run_id)
        assert record.status == RunStatus.FAILED
        assert "connection reset" in record.error_message
        assert record.logs[-1].type == RunLogType.ERROR
        assert record.logs[-1].node_id == "api"
        api_task = [task for task in record.tasks if task.node_id == "api"][0]
        assert api_task.status == TaskStatus.FAILED
        assert "connection reset" in api_task.error

    def test_run_status_checks_workflow(self, runner, repository):
        workflow = repository.create("City greeting", city_workflow())
        run_id = runner.submit_run(workflow.id, {"city": "NYC"})
        runner.wait(run_id, timeout=10)

        assert runner.run_status(workflow.id, run_id).id == run_id
        with pytest.raises(RunNotFoundError):
            runner.run_status("another-workflow", run_id)

    def test_polled_logs_only_grow(self, runner, repository):
        workflow = repository.create("City greeting", city_workflow())
        snapshots = []
        poller = RunPoller(LocalExecutionClient(runner), interval=0.01, max_attempts=1000)

        result = poller.submit_and_poll(workflow.id, {"city": "NYC"}, on_snapshot=snapshots.append)

        assert result.finished
        assert result.record.status == RunStatus.SUCCEEDED
        for previous, current in zip(snapshots, snapshots[1:]):
            previous_ids = [log.id for log in previous.logs]
            assert [log.id for log in current.logs][:len(previous_ids)] == previous_ids

    def test_submit_after_shutdown(self, runner, repository, run_store):
        workflow = repository.create("City greeting", city_workflow())
        runner.shutdown()

        with pytest.raises(SequenceEngineError):
            runner.submit_run(workflow.id, {"city": "NYC"})

        runs = run_store.list_runs(workflow.id)
        assert len(runs) == 1
        assert runs[0].status == RunStatus.FAILED

    def test_shutdown_fails_queued_runs(self, repository, run_store):
        entered = threading.Event()
        release = threading.Event()

        def gated_sleep(seconds):
            entered.set()
            release.wait(10)

        graph = WorkflowGraph(
            name="Wait",
            nodes=[
                input_node(),
                NodeInstance(id="wait", kind=NodeKind.DELAY, name="Wait",
                             config={"delayType": "seconds", "delayValue": 5}),
            ],
            edges=[edge("input", "wait")],
        )
        workflow = repository.create("Wait", graph)
        single = WorkflowRunner(repository, run_store, max_concurrent_runs=1, sleep=gated_sleep)

        executing = single.submit_run(workflow.id, {"city": "NYC"})
        assert entered.wait(10)
        queued = single.submit_run(workflow.id, {"city": "LA"})

        single.shutdown(wait=False)
        release.set()
        single.wait(executing, timeout=10)

        assert run_store.get_run(queued).status == RunStatus.FAILED
        assert run_store.get_run(queued).error_message == "Runner shut down before the run started"
        assert run_store.get_run(executing).status == RunStatus.SUCCEEDED
        assert not single.is_run_active(queued)
