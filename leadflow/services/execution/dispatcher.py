"""Trigger dispatcher: fans a lead event out to every matching workflow.

Each matching workflow runs as its own supervised task. A run that crashes
is reported in the `DispatchReport`; it never affects sibling runs and
never propagates to the caller.

Concurrent runs for the same lead may update the same lead fields
(`assigned_to`, `score`, ...); the last write wins.
"""

import asyncio
import copy
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from leadflow.core.database import Database
from leadflow.core.logging import get_logger, log_execution_time
from leadflow.models.nodes import WorkflowDefinition

from .executor import WorkflowExecutor
from .models import ExecutionLog

logger = get_logger(__name__)


@dataclass
class RunOutcome:
    """Result of one workflow run inside a dispatch."""
    workflow_id: str
    log: Optional[ExecutionLog] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workflow_id": self.workflow_id,
            "log_id": self.log.id if self.log else None,
            "status": self.log.status.value if self.log else None,
            "error": self.error,
        }


@dataclass
class DispatchReport:
    organization_id: str
    trigger_type: str
    outcomes: List[RunOutcome] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def workflow_count(self) -> int:
        return len(self.outcomes)

    @property
    def failed_runs(self) -> List[RunOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.ok]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "organization_id": self.organization_id,
            "trigger_type": self.trigger_type,
            "workflow_count": self.workflow_count,
            "runs": [outcome.to_dict() for outcome in self.outcomes],
            "error": self.error,
        }


class TriggerDispatcher:
    """Entry point for automation events."""

    def __init__(self, database: Database, executor: WorkflowExecutor):
        self.database = database
        self.executor = executor
        # Strong references to fire-and-forget dispatches
        self._background: Set[asyncio.Task] = set()

    async def dispatch(self, organization_id: str, trigger_type: str,
                       payload: Dict[str, Any]) -> DispatchReport:
        """Run every active workflow of the tenant listening on `trigger_type`.

        Never raises. Each run gets its own copy of `payload`.
        """
        start_time = time.time()
        report = DispatchReport(organization_id=organization_id, trigger_type=trigger_type)

        try:
            workflows = await self.database.get_active_workflows(organization_id, trigger_type)
        except Exception as e:
            logger.error("Failed to load workflows for trigger",
                         organization_id=organization_id,
                         trigger_type=trigger_type,
                         error=str(e))
            report.error = str(e)
            return report

        logger.info("Dispatching trigger",
                    organization_id=organization_id,
                    trigger_type=trigger_type,
                    workflow_count=len(workflows))

        if workflows:
            report.outcomes = list(await asyncio.gather(
                *(self._supervised_run(workflow, payload) for workflow in workflows)
            ))

        log_execution_time(logger, "dispatch", start_time, time.time(),
                           trigger_type=trigger_type,
                           workflow_count=report.workflow_count,
                           failed_runs=len(report.failed_runs))
        return report

    async def _supervised_run(self, workflow: WorkflowDefinition,
                              payload: Dict[str, Any]) -> RunOutcome:
        try:
            log = await self.executor.run(workflow, copy.deepcopy(payload))
            return RunOutcome(workflow_id=workflow.id, log=log)
        except Exception as e:
            logger.error("Workflow run crashed",
                         workflow_id=workflow.id,
                         error=str(e),
                         exc_info=True)
            return RunOutcome(workflow_id=workflow.id, error=str(e) or type(e).__name__)

    def dispatch_background(self, organization_id: str, trigger_type: str,
                            payload: Dict[str, Any]) -> asyncio.Task:
        """Schedule `dispatch` without waiting for it.

        The task is referenced until it finishes so it cannot be collected
        mid-run.
        """
        task = asyncio.create_task(self.dispatch(organization_id, trigger_type, payload))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    @property
    def pending_dispatches(self) -> int:
        return len(self._background)

    async def drain(self) -> None:
        """Wait for all background dispatches to finish."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
