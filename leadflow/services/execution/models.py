"""Execution engine state models.

One `ExecutionState` and one `ExecutionLog` exist per workflow run. Neither
is shared between runs; the log is the persisted audit trail, the state is
discarded when the run ends.
"""

import copy
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from leadflow.constants import RunStatus, StepStatus
from leadflow.models.database import utcnow


@dataclass
class VariableEvent:
    """A single write to the run's variable bag."""
    key: str
    value: Any
    node_id: Optional[str]
    at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "value": self.value, "node_id": self.node_id, "at": self.at}


def lead_id_of(payload: Dict[str, Any]) -> Optional[str]:
    """Lead id of a trigger payload; ingestion documents may carry it as `_id`."""
    return payload.get("id") or payload.get("_id")


@dataclass
class HistoryEntry:
    node_id: str
    success: bool


@dataclass
class ExecutionState:
    """Mutable per-run state threaded through every handler.

    `payload` is the triggering lead and may be mutated by handlers.
    Variables are only written through `set_variable` so every write lands
    in `variable_events`.
    """
    organization_id: str
    payload: Dict[str, Any]
    variables: Dict[str, Any] = field(default_factory=dict)
    variable_events: List[VariableEvent] = field(default_factory=list)
    history: List[HistoryEntry] = field(default_factory=list)
    # Node the walker is currently executing
    current_node_id: Optional[str] = None

    def __post_init__(self):
        # Handlers read and write the lead by `id`
        if not self.payload.get("id") and self.payload.get("_id"):
            self.payload["id"] = self.payload["_id"]

    @property
    def lead_id(self) -> Optional[str]:
        return lead_id_of(self.payload)

    def set_variable(self, key: str, value: Any, node_id: Optional[str] = None) -> None:
        """Set a run variable, attributing the write to `node_id` or the current node."""
        self.variables[key] = value
        self.variable_events.append(VariableEvent(
            key=key, value=value, node_id=node_id or self.current_node_id
        ))

    def get_variable(self, key: str, default: Any = None) -> Any:
        return self.variables.get(key, default)

    def record(self, node_id: str, success: bool) -> None:
        self.history.append(HistoryEntry(node_id=node_id, success=success))


@dataclass
class StepRecord:
    """Audit record for one node execution."""
    node_id: Optional[str]
    node_name: Optional[str]
    node_type: Optional[str]
    start_time: datetime = field(default_factory=utcnow)
    end_time: Optional[datetime] = None
    status: Optional[StepStatus] = None
    output: Any = None
    error: Optional[str] = None

    def complete(self, output: Any) -> None:
        self.status = StepStatus.COMPLETED
        self.output = output
        self.end_time = utcnow()

    def skip(self, output: Any = False) -> None:
        self.status = StepStatus.SKIPPED
        self.output = output
        self.end_time = utcnow()

    def fail(self, error: str) -> None:
        self.status = StepStatus.FAILED
        self.error = error
        self.end_time = utcnow()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "node_id": self.node_id,
            "node_name": self.node_name,
            "node_type": self.node_type,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "status": self.status.value if self.status else None,
            "output": self.output,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StepRecord":
        """Create from a persisted step document."""
        return cls(
            node_id=data.get("node_id"),
            node_name=data.get("node_name"),
            node_type=data.get("node_type"),
            start_time=datetime.fromisoformat(data["start_time"]) if data.get("start_time") else None,
            end_time=datetime.fromisoformat(data["end_time"]) if data.get("end_time") else None,
            status=StepStatus(data["status"]) if data.get("status") else None,
            output=data.get("output"),
            error=data.get("error"),
        )


@dataclass
class ExecutionLog:
    """Persisted audit log of a workflow run.

    State transitions:
        RUNNING -> SUCCESS
        RUNNING -> PARTIAL (a node failed, a failure path was followed)
        RUNNING -> FAILED  (a node failed with no failure path)

    PARTIAL is sticky: finalization only promotes RUNNING to SUCCESS.
    """
    organization_id: str
    workflow_id: str
    lead_id: Optional[str]
    trigger_data: Dict[str, Any]
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: RunStatus = RunStatus.RUNNING
    steps: List[StepRecord] = field(default_factory=list)
    total_duration_ms: Optional[int] = None
    created_at: datetime = field(default_factory=utcnow)

    @classmethod
    def start(cls, organization_id: str, workflow_id: str,
              payload: Dict[str, Any]) -> "ExecutionLog":
        """New running log with a deep snapshot of the trigger payload."""
        return cls(
            organization_id=organization_id,
            workflow_id=workflow_id,
            lead_id=lead_id_of(payload),
            trigger_data=copy.deepcopy(payload),
        )

    def add_step(self, step: StepRecord) -> None:
        self.steps.append(step)

    def finalize(self) -> None:
        """Close the run. RUNNING becomes SUCCESS; other states are kept."""
        if self.status == RunStatus.RUNNING:
            self.status = RunStatus.SUCCESS
        elapsed = utcnow() - self.created_at
        self.total_duration_ms = int(elapsed.total_seconds() * 1000)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "workflow_id": self.workflow_id,
            "lead_id": self.lead_id,
            "status": self.status.value,
            "steps": [step.to_dict() for step in self.steps],
            "trigger_data": self.trigger_data,
            "total_duration_ms": self.total_duration_ms,
            "created_at": self.created_at.isoformat(),
        }
