"""Workflow execution engine package.

- Sequential graph walker with condition branching and failure paths
- GDPR compliance gate before action nodes
- Step-by-step audit log persisted while the run progresses
- Supervised concurrent dispatch of every workflow matching a trigger
- Sweeper that closes runs abandoned by a crashed process
"""

from .models import (
    ExecutionState,
    ExecutionLog,
    StepRecord,
    VariableEvent,
    HistoryEntry,
)
from .graph import (
    WorkflowGraph,
    Edge,
    EdgeKind,
    GraphWarning,
    START_NODE_ID,
)
from .conditions import (
    evaluate_condition,
    resolve_field,
    get_nested_value,
    OPERATORS,
)
from .executor import WorkflowExecutor
from .dispatcher import TriggerDispatcher, DispatchReport, RunOutcome
from .recovery import (
    StaleRunSweeper,
    get_stale_run_sweeper,
    set_stale_run_sweeper,
)

__all__ = [
    # Models
    "ExecutionState",
    "ExecutionLog",
    "StepRecord",
    "VariableEvent",
    "HistoryEntry",
    # Graph
    "WorkflowGraph",
    "Edge",
    "EdgeKind",
    "GraphWarning",
    "START_NODE_ID",
    # Conditions
    "evaluate_condition",
    "resolve_field",
    "get_nested_value",
    "OPERATORS",
    # Executor
    "WorkflowExecutor",
    # Dispatcher
    "TriggerDispatcher",
    "DispatchReport",
    "RunOutcome",
    # Recovery
    "StaleRunSweeper",
    "get_stale_run_sweeper",
    "set_stale_run_sweeper",
]
