"""Workflow graph: node arena with typed edges.

Nodes live in a list with an id -> index map. Successor links are resolved
into `Edge`s whose kind says which outcome follows them:

    action / delay / trigger:  NEXT        -> next_nodes[0]
    condition:                 TRUE/FALSE  -> next_nodes[0] / next_nodes[1]
    any node:                  ON_FAILURE  -> failure_nodes[0]

A reference to a node id that is not in the workflow resolves to no edge,
which ends the run at that point.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from leadflow.constants import NodeType
from leadflow.models.nodes import NodeSpec, WorkflowDefinition

START_NODE_ID = "start"


class EdgeKind(str, Enum):
    NEXT = "next"
    TRUE = "true"
    FALSE = "false"
    ON_FAILURE = "on_failure"


@dataclass(frozen=True)
class Edge:
    kind: EdgeKind
    target: int  # index into WorkflowGraph.nodes


@dataclass(frozen=True)
class GraphWarning:
    node_id: str
    field: str
    target: str

    def __str__(self) -> str:
        return f"Node {self.node_id} references unknown node {self.target} in {self.field}"


class WorkflowGraph:
    """Read-only graph view of a workflow definition."""

    def __init__(self, workflow: WorkflowDefinition):
        self.workflow = workflow
        self.nodes: List[NodeSpec] = list(workflow.nodes)
        self._index: Dict[str, int] = {}
        for position, node in enumerate(self.nodes):
            # First occurrence wins for duplicate ids
            self._index.setdefault(node.id, position)

    def __len__(self) -> int:
        return len(self.nodes)

    def index_of(self, node_id: Optional[str]) -> Optional[int]:
        if node_id is None:
            return None
        return self._index.get(node_id)

    def node(self, index: int) -> NodeSpec:
        return self.nodes[index]

    def get(self, node_id: str) -> Optional[NodeSpec]:
        index = self.index_of(node_id)
        return self.nodes[index] if index is not None else None

    def entry(self) -> Optional[int]:
        """Index of the entry node.

        The node with id "start", else the first node in list order whose id
        is one of the trigger's next_nodes.
        """
        start = self.index_of(START_NODE_ID)
        if start is not None:
            return start
        targets = set(self.workflow.trigger.next_nodes)
        for position, node in enumerate(self.nodes):
            if node.id in targets:
                return position
        return None

    def edges(self, index: int) -> List[Edge]:
        """All resolvable outgoing edges of a node."""
        node = self.nodes[index]
        if node.type == NodeType.CONDITION.value:
            kinds = [EdgeKind.TRUE, EdgeKind.FALSE]
        else:
            kinds = [EdgeKind.NEXT]

        edges = []
        for position, kind in enumerate(kinds):
            if position < len(node.next_nodes):
                target = self.index_of(node.next_nodes[position])
                if target is not None:
                    edges.append(Edge(kind, target))
        if node.failure_nodes:
            target = self.index_of(node.failure_nodes[0])
            if target is not None:
                edges.append(Edge(EdgeKind.ON_FAILURE, target))
        return edges

    def follow(self, index: int, kind: EdgeKind) -> Optional[int]:
        """Target index of the edge of `kind` leaving `index`, if any."""
        for edge in self.edges(index):
            if edge.kind == kind:
                return edge.target
        return None

    def next_after(self, index: int, result: object) -> Optional[int]:
        """Successor after a node completed with `result`."""
        node = self.nodes[index]
        if node.type == NodeType.CONDITION.value:
            return self.follow(index, EdgeKind.TRUE if result else EdgeKind.FALSE)
        return self.follow(index, EdgeKind.NEXT)

    def validate(self) -> List[GraphWarning]:
        """Dangling successor references. Reported, never rejected."""
        warnings = []
        for node in self.nodes:
            for field_name in ("next_nodes", "failure_nodes"):
                for target in getattr(node, field_name):
                    if target not in self._index:
                        warnings.append(GraphWarning(node.id, field_name, target))
        for target in self.workflow.trigger.next_nodes:
            if target not in self._index:
                warnings.append(GraphWarning("trigger", "next_nodes", target))
        return warnings
