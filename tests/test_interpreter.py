"""Tests for in-process graph interpretation."""

import pytest

from sequence_engine.core.exceptions import NodeExecutionError
from sequence_engine.core.interpreter import ExecutionHooks, GraphInterpreter, execute_graph, find_entry_nodes
from sequence_engine.models.core import ExecutionLogKind, NodeInstance, WorkflowGraph
from sequence_engine.models.nodes import NodeKind

from factories import city_workflow, decision_node, edge, input_node, notification_node, text_rules


class CountingHooks(ExecutionHooks):
    def __init__(self):
        self.started = []
        self.completed = []
        self.failed = []

    def on_node_start(self, node, payload):
        self.started.append(node.id)

    def on_node_complete(self, node, execution):
        self.completed.append(node.id)

    def on_node_error(self, node, error):
        self.failed.append((node.id, error))


class TestCityScenario:

    def test_matching_city_reaches_notification(self):
        logs = execute_graph(city_workflow(), {"city": "NYC"})
        kinds = [log.kind for log in logs]

        assert kinds == [ExecutionLogKind.INPUT, ExecutionLogKind.DECISION, ExecutionLogKind.NOTIFICATION]
        assert "Matched 1 outcome(s)" in logs[1].message
        assert logs[2].message == "Welcome NYC"

    def test_other_city_stops_at_decision(self):
        logs = execute_graph(city_workflow(), {"city": "LA"})

        assert [log.kind for log in logs] == [ExecutionLogKind.INPUT, ExecutionLogKind.DECISION]
        assert not any(log.kind == ExecutionLogKind.NOTIFICATION for log in logs)

    def test_logs_carry_node_identity(self):
        logs = execute_graph(city_workflow(), {"city": "NYC"})
        assert [(log.node_id, log.name) for log in logs] == [
            ("input", "Input"), ("decision", "Decision"), ("notify", "Notify")
        ]


class TestTraversal:

    def test_node_with_many_inbound_edges_runs_once(self):
        graph = WorkflowGraph(
            nodes=[
                input_node(),
                notification_node("a", "A"),
                notification_node("b", "B"),
                notification_node("join", "Join"),
            ],
            edges=[
                edge("input", "a"), edge("input", "b"),
                edge("a", "join"), edge("b", "join"), edge("input", "join"),
            ],
        )
        hooks = CountingHooks()
        logs = execute_graph(graph, {"city": "x"}, hooks=hooks)

        assert sorted(hooks.started) == ["a", "b", "input", "join"]
        assert [log.message for log in logs].count("Join") == 1

    def test_depth_first_order(self):
        graph = WorkflowGraph(
            nodes=[
                input_node(),
                notification_node("a", "A"),
                notification_node("a2", "A2"),
                notification_node("b", "B"),
            ],
            edges=[edge("input", "a"), edge("a", "a2"), edge("input", "b")],
        )
        messages = [log.message for log in execute_graph(graph, {})][1:]

        assert messages == ["A", "A2", "B"]

    def test_cycle_is_not_looped(self):
        graph = WorkflowGraph(
            nodes=[input_node(), notification_node("a", "A"), notification_node("b", "B")],
            edges=[edge("input", "a"), edge("a", "b"), edge("b", "a")],
        )
        messages = [log.message for log in execute_graph(graph, {})]

        assert messages.count("A") == 1
        assert messages.count("B") == 1

    def test_self_loop_runs_node_once(self):
        graph = WorkflowGraph(
            nodes=[input_node(), notification_node("a", "A")],
            edges=[edge("input", "a"), edge("a", "a")],
        )
        messages = [log.message for log in execute_graph(graph, {})]

        assert messages.count("A") == 1

    def test_non_exclusive_branches(self):
        graph = WorkflowGraph(
            nodes=[
                input_node(),
                decision_node("d", [
                    {"id": "one", "predicates": [{"targetField": "city",
                                                  "validationConfig": text_rules({"type": "match", "pattern": "N"})}]},
                    {"id": "two", "predicates": [{"targetField": "city",
                                                  "validationConfig": text_rules({"type": "match", "pattern": "Y"})}]},
                ]),
                notification_node("n1", "first"),
                notification_node("n2", "second"),
            ],
            edges=[edge("input", "d"), edge("d", "n1", "out-one"), edge("d", "n2", "out-two")],
        )
        messages = [log.message for log in execute_graph(graph, {"city": "NYC"})]

        assert "first" in messages
        assert "second" in messages

    def test_returned_payload_replaces_current(self):
        graph = WorkflowGraph(
            nodes=[
                input_node(),
                NodeInstance(id="api", kind=NodeKind.API_CALL, name="API",
                             config={"url": "https://example.com/{{city}}"}),
                notification_node("n", "{{status}} {{data.input.city}} [{{city}}]"),
            ],
            edges=[edge("input", "api"), edge("api", "n")],
        )
        logs = execute_graph(graph, {"city": "NYC"})

        assert logs[-1].message == "200 NYC []"

    def test_entry_values_default_to_held_values(self):
        graph = WorkflowGraph(
            nodes=[
                input_node(fields=[
                    {"key": "city", "kind": "text", "defaultValue": "BOS"},
                    {"key": "name", "kind": "text", "defaultValue": "Ann"},
                ], values={"city": "NYC"}),
                notification_node("n", "{{name}} in {{city}}"),
            ],
            edges=[edge("input", "n")],
        )

        assert execute_graph(graph)[-1].message == "Ann in NYC"

    def test_only_unfed_input_nodes_are_entries(self):
        graph = WorkflowGraph(
            nodes=[input_node("first"), input_node("second"), notification_node("n", "x")],
            edges=[edge("first", "second"), edge("second", "n")],
        )
        assert [node.id for node in find_entry_nodes(graph)] == ["first"]

    def test_graph_without_entry_produces_nothing(self):
        graph = WorkflowGraph(nodes=[notification_node("n", "x")])
        assert execute_graph(graph, {"a": 1}) == []

    def test_graph_is_not_modified(self):
        graph = city_workflow()
        before = graph.model_dump()
        execute_graph(graph, {"city": "NYC"})

        assert graph.model_dump() == before


class TestHooks:

    def test_hooks_see_every_visited_node(self):
        hooks = CountingHooks()
        GraphInterpreter(hooks=hooks).run(city_workflow(), {"city": "NYC"})

        assert hooks.started == ["input", "decision", "notify"]
        assert hooks.completed == ["input", "decision", "notify"]
        assert hooks.failed == []

    def test_failure_is_reported_and_raised(self):
        graph = city_workflow()
        broken = graph.get_node("notify")
        broken.config["template"] = {"not": "a string"}
        hooks = CountingHooks()

        with pytest.raises(NodeExecutionError):
            GraphInterpreter(hooks=hooks).run(graph, {"city": "NYC"})

        assert hooks.failed[0][0] == "notify"
        assert hooks.completed == ["input", "decision"]
