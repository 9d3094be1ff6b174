"""Workflow executor: walks a workflow graph node by node for one lead.

Implements:
- Entry node resolution ("start" node, else the trigger's first successor)
- GDPR compliance gate in front of every action node
- Type dispatch (action / condition / delay / trigger)
- Condition branching and failure-path routing
- Step-by-step audit log, persisted after every node
- Cycle guard and per-handler timeout
"""

import asyncio
import time
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, TYPE_CHECKING

import pytz

from leadflow.constants import EventType, NodeType, RunStatus
from leadflow.core.config import Settings
from leadflow.core.database import Database
from leadflow.core.exceptions import (
    HandlerTimeoutError,
    MissingIntegrationError,
    UnknownNodeTypeError,
)
from leadflow.core.logging import get_logger, log_execution_time
from leadflow.models.database import Organization
from leadflow.models.nodes import ConditionConfig, DelayConfig, NodeSpec, WorkflowDefinition, decode_config
from leadflow.services.bi import BIService
from leadflow.services.scheduling import next_available_time

from .conditions import evaluate_condition
from .graph import EdgeKind, WorkflowGraph
from .models import ExecutionLog, ExecutionState, StepRecord

if TYPE_CHECKING:
    from leadflow.services.handlers import HandlerRegistry

logger = get_logger(__name__)


class WorkflowExecutor:
    """Sequential graph walker. One call to `run` is one workflow run.

    Runs share nothing but the executor's collaborators, so any number of
    them can be awaited concurrently.
    """

    def __init__(self, settings: Settings, database: Database,
                 handlers: "HandlerRegistry", bi_service: BIService,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
                 clock: Optional[Callable[[], datetime]] = None):
        """Initialize executor.

        Args:
            settings: Engine settings (timeouts, business hours, step limit)
            database: Persistence for logs, organizations and integrations
            handlers: Provider handler registry
            bi_service: Analytics event sink
            sleep: Awaitable used by delay nodes
            clock: Returns the current aware datetime; used by delay nodes
        """
        self.settings = settings
        self.database = database
        self.handlers = handlers
        self.bi_service = bi_service
        self._sleep = sleep
        self._clock = clock or (lambda: datetime.now(pytz.utc))

    # =========================================================================
    # RUN
    # =========================================================================

    async def run(self, workflow: WorkflowDefinition, payload: dict) -> ExecutionLog:
        """Execute `workflow` for `payload` and return the finalized log.

        Node failures never raise out of here; they are recorded in the log.
        Any other error (organization lookup, persistence) closes the log as
        failed before it propagates.
        """
        start_time = time.time()
        graph = WorkflowGraph(workflow)
        log = ExecutionLog.start(workflow.organization_id, workflow.id, payload)
        state = ExecutionState(organization_id=workflow.organization_id, payload=payload)
        await self.database.save_workflow_log(log)

        logger.info("Starting workflow run",
                    workflow_id=workflow.id,
                    workflow_name=workflow.name,
                    log_id=log.id,
                    lead_id=state.lead_id,
                    node_count=len(graph))

        await self.bi_service.track_event(
            workflow.organization_id,
            state.lead_id,
            EventType.WORKFLOW_TRIGGERED,
            metadata={"workflowName": workflow.name, "workflowId": workflow.id},
            campaign=payload.get("campaign"),
        )

        try:
            await self._walk(workflow, graph, state, log)
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.error("Workflow run aborted", workflow_id=workflow.id, log_id=log.id,
                         node_id=state.current_node_id, error=error)
            step = StepRecord(node_id=state.current_node_id, node_name=None, node_type=None)
            step.fail(f"Run aborted: {error}")
            log.add_step(step)
            log.status = RunStatus.FAILED
            log.finalize()
            await self.database.save_workflow_log(log)
            raise

        log.finalize()
        await self.database.save_workflow_log(log)
        await self.database.record_workflow_run(workflow.id, log.status == RunStatus.SUCCESS)

        log_execution_time(logger, "workflow_run", start_time, time.time(),
                           workflow_id=workflow.id,
                           log_id=log.id,
                           status=log.status.value,
                           steps=len(log.steps))
        return log

    async def _walk(self, workflow: WorkflowDefinition, graph: WorkflowGraph,
                    state: ExecutionState, log: ExecutionLog) -> None:
        organization = await self.database.get_organization(workflow.organization_id)

        current = graph.entry()
        if current is None:
            logger.warning("Workflow has no entry node", workflow_id=workflow.id)

        steps_taken = 0
        while current is not None:
            node = graph.node(current)

            if steps_taken >= self.settings.max_steps_per_run:
                step = StepRecord(node_id=node.id, node_name=node.display_name, node_type=node.type)
                step.fail(f"Step limit of {self.settings.max_steps_per_run} exceeded, "
                          f"possible cycle at node {node.id}")
                log.add_step(step)
                log.status = RunStatus.FAILED
                logger.error("Workflow run exceeded step limit",
                             workflow_id=workflow.id, log_id=log.id, node_id=node.id)
                return
            steps_taken += 1

            current = await self._step(graph, current, state, organization, log)
            await self.database.save_workflow_log(log)

    async def _step(self, graph: WorkflowGraph, index: int, state: ExecutionState,
                    organization: Optional[Organization], log: ExecutionLog) -> Optional[int]:
        """Execute one node, record it and return the next node index."""
        node = graph.node(index)
        step = StepRecord(node_id=node.id, node_name=node.display_name, node_type=node.type)
        log.add_step(step)
        state.current_node_id = node.id

        if self._blocked_by_compliance(node, state, organization):
            logger.warning("Compliance block, node skipped for missing GDPR consent",
                           node_id=node.id, lead_id=state.lead_id)
            step.skip(False)
            state.record(node.id, True)
            return graph.next_after(index, False)

        try:
            result = await self.execute_node(node, state, organization)
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.error("Node execution failed", node_id=node.id, node_type=node.type,
                         error=error)
            step.fail(error)
            state.record(node.id, False)
            log.status = RunStatus.PARTIAL

            if not node.failure_nodes:
                log.status = RunStatus.FAILED
                return None
            # A dangling failure target ends the run as partial
            return graph.follow(index, EdgeKind.ON_FAILURE)

        step.complete(result)
        state.record(node.id, True)
        return graph.next_after(index, result)

    @staticmethod
    def _blocked_by_compliance(node: NodeSpec, state: ExecutionState,
                               organization: Optional[Organization]) -> bool:
        return (
            organization is not None
            and organization.is_gdpr
            and node.type == NodeType.ACTION.value
            and not state.payload.get("gdpr_consent")
        )

    # =========================================================================
    # NODE DISPATCH
    # =========================================================================

    async def execute_node(self, node: NodeSpec, state: ExecutionState,
                           organization: Optional[Organization] = None) -> Any:
        """Execute a single node by type.

        Raises:
            UnknownNodeTypeError: node type is not recognized
            ConfigurationError: provider, integration or config problem
            HandlerTimeoutError: action handler exceeded its time budget
        """
        if node.type == NodeType.ACTION.value:
            return await self.run_action(node, state)

        if node.type == NodeType.CONDITION.value:
            config = decode_config(node, ConditionConfig)
            return evaluate_condition(config, state)

        if node.type == NodeType.DELAY.value:
            return await self.run_delay(node, organization)

        if node.type == NodeType.TRIGGER.value:
            return True

        raise UnknownNodeTypeError(node.type)

    async def run_action(self, node: NodeSpec, state: ExecutionState) -> Any:
        """Resolve handler, integration and config, then invoke the handler."""
        handler = self.handlers.get(node.provider)

        integration = None
        if not handler.is_internal:
            integration = await self.database.find_active_integration(
                state.organization_id, handler.integration_providers
            )
            if integration is None:
                raise MissingIntegrationError(node.provider)

        config = decode_config(node, handler.config_model)
        timeout = self.settings.handler_timeout_seconds
        try:
            return await asyncio.wait_for(
                handler.execute(node.action_type, config, state, integration),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            raise HandlerTimeoutError(node.provider, timeout) from None

    async def run_delay(self, node: NodeSpec, organization: Optional[Organization]) -> bool:
        """Hold the run until the tenant's business hours open, up to the node's cap."""
        config = decode_config(node, DelayConfig)
        timezone_name = organization.timezone if organization else None

        now = self._clock()
        target = next_available_time(
            timezone_name,
            start_hour=self.settings.business_hours_start,
            end_hour=self.settings.business_hours_end,
            now=now,
            default_timezone=self.settings.default_timezone,
        )
        delay_ms = (target - now).total_seconds() * 1000
        if delay_ms > 0:
            wait_ms = min(delay_ms, config.duration_ms or self.settings.default_delay_ms)
            logger.info("Delay active until business hours",
                        node_id=node.id, wait_ms=int(wait_ms), timezone=timezone_name)
            await self._sleep(wait_ms / 1000)
        return True
