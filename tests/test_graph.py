"""Tests for the workflow graph."""

from conftest import make_workflow

from leadflow.services.execution import Edge, EdgeKind, WorkflowGraph


def test_entry_prefers_start_node():
    graph = WorkflowGraph(make_workflow(
        [
            {"id": "a", "type": "action", "provider": "webhook"},
            {"id": "start", "type": "trigger", "nextNodes": ["a"]},
        ],
        trigger_next=["a"],
    ))
    assert graph.node(graph.entry()).id == "start"


def test_entry_uses_list_order_of_trigger_targets():
    graph = WorkflowGraph(make_workflow(
        [
            {"id": "x", "type": "action", "provider": "webhook"},
            {"id": "b", "type": "action", "provider": "webhook"},
            {"id": "a", "type": "action", "provider": "webhook"},
        ],
        trigger_next=["a", "b"],
    ))
    assert graph.node(graph.entry()).id == "b"


def test_no_entry():
    graph = WorkflowGraph(make_workflow([{"id": "a", "type": "action"}]))
    assert graph.entry() is None


def test_condition_edges():
    graph = WorkflowGraph(make_workflow([
        {"id": "start", "type": "condition", "nextNodes": ["yes", "no"], "failureNodes": ["oops"]},
        {"id": "yes", "type": "action"},
        {"id": "no", "type": "action"},
        {"id": "oops", "type": "action"},
    ]))
    assert graph.edges(0) == [
        Edge(EdgeKind.TRUE, 1),
        Edge(EdgeKind.FALSE, 2),
        Edge(EdgeKind.ON_FAILURE, 3),
    ]
    assert graph.next_after(0, True) == 1
    assert graph.next_after(0, False) == 2
    assert graph.follow(0, EdgeKind.ON_FAILURE) == 3


def test_action_follows_first_successor_only():
    graph = WorkflowGraph(make_workflow([
        {"id": "start", "type": "action", "nextNodes": ["b", "c"]},
        {"id": "b", "type": "action"},
        {"id": "c", "type": "action"},
    ]))
    assert graph.next_after(0, False) == 1
    assert graph.next_after(1, True) is None


def test_dangling_reference_resolves_to_no_edge():
    graph = WorkflowGraph(make_workflow([
        {"id": "start", "type": "condition", "nextNodes": ["ghost", "b"]},
        {"id": "b", "type": "action"},
    ]))
    assert graph.next_after(0, True) is None
    assert graph.next_after(0, False) == 1


def test_duplicate_ids_first_occurrence_wins():
    graph = WorkflowGraph(make_workflow([
        {"id": "start", "type": "action", "name": "first"},
        {"id": "start", "type": "action", "name": "second"},
    ]))
    assert graph.get("start").name == "first"


def test_validate_reports_dangling_references():
    graph = WorkflowGraph(make_workflow(
        [
            {"id": "a", "type": "action", "nextNodes": ["missing"], "failureNodes": ["lost"]},
        ],
        trigger_next=["a", "nowhere"],
    ))
    warnings = graph.validate()
    assert {(w.node_id, w.field, w.target) for w in warnings} == {
        ("a", "next_nodes", "missing"),
        ("a", "failure_nodes", "lost"),
        ("trigger", "next_nodes", "nowhere"),
    }
    assert "unknown node missing" in str(warnings[0])
