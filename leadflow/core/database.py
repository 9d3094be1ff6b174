"""Async database service with SQLModel and SQLAlchemy 2.0."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple, TYPE_CHECKING

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel, select

from leadflow.constants import CONVERTED_LEAD_STATUS
from leadflow.core.config import Settings
from leadflow.core.logging import get_logger
from leadflow.models.database import (
    Agent,
    AnalyticsEvent,
    Integration,
    Lead,
    Organization,
    Workflow,
    WorkflowLog,
    utcnow,
)
from leadflow.models.nodes import WorkflowDefinition

if TYPE_CHECKING:
    from leadflow.services.execution.models import ExecutionLog

logger = get_logger(__name__)

# Lead columns workflow handlers may write. Everything else is owned by
# ingestion and the CRM UI.
LEAD_WRITABLE_FIELDS = frozenset(["ai_analysis", "score", "assigned_to"])


class Database:
    """Async database service with SQLModel."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine = None
        self.async_session = None

    async def startup(self):
        """Initialize database connection and create tables."""
        try:
            logging.getLogger("aiosqlite").setLevel(logging.WARNING)
            logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
            logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)

            engine_kwargs: Dict[str, Any] = {"echo": self.settings.database_echo}
            if not self.settings.is_sqlite:
                engine_kwargs["pool_size"] = self.settings.database_pool_size
                engine_kwargs["max_overflow"] = self.settings.database_max_overflow

            self.engine = create_async_engine(self.settings.database_url, **engine_kwargs)

            self.async_session = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False
            )

            async with self.engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)

            logger.info("Database initialized successfully")

        except Exception as e:
            logger.error("Database startup failed", error=str(e))
            raise

    async def shutdown(self):
        """Close database connections."""
        if self.engine:
            await self.engine.dispose()
            logger.info("Database connections closed")

    @asynccontextmanager
    async def get_session(self):
        """Get async database session."""
        if not self.async_session:
            raise RuntimeError("Database not initialized")

        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def _add(self, row: SQLModel) -> SQLModel:
        async with self.get_session() as session:
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return row

    # ============================================================================
    # Organizations
    # ============================================================================

    async def save_organization(self, organization: Organization) -> Organization:
        return await self._add(organization)

    async def get_organization(self, organization_id: str) -> Optional[Organization]:
        async with self.get_session() as session:
            return await session.get(Organization, organization_id)

    # ============================================================================
    # Integrations
    # ============================================================================

    async def save_integration(self, integration: Integration) -> Integration:
        return await self._add(integration)

    async def find_active_integration(self, organization_id: str,
                                      providers: Sequence[str]) -> Optional[Integration]:
        """First active integration of the tenant matching any of `providers`.

        Preference follows the order of `providers`.
        """
        async with self.get_session() as session:
            stmt = select(Integration).where(
                Integration.organization_id == organization_id,
                Integration.provider.in_(list(providers)),
                Integration.is_active == True,  # noqa: E712
            ).order_by(Integration.created_at)
            result = await session.execute(stmt)
            candidates = result.scalars().all()

        for provider in providers:
            for integration in candidates:
                if integration.provider == provider:
                    return integration
        return None

    async def get_integration(self, organization_id: str,
                              integration_id: str) -> Optional[Integration]:
        """Integration by id, only if it belongs to the tenant."""
        async with self.get_session() as session:
            stmt = select(Integration).where(
                Integration.id == integration_id,
                Integration.organization_id == organization_id,
            )
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    # ============================================================================
    # Leads & agents
    # ============================================================================

    async def save_lead(self, lead: Lead) -> Lead:
        return await self._add(lead)

    async def save_agent(self, agent: Agent) -> Agent:
        return await self._add(agent)

    async def get_lead(self, lead_id: str) -> Optional[Lead]:
        async with self.get_session() as session:
            return await session.get(Lead, lead_id)

    async def update_lead(self, lead_id: str, fields: Dict[str, Any]) -> bool:
        """Partial update of workflow-writable lead fields.

        Returns False when the lead does not exist.
        """
        unknown = set(fields) - LEAD_WRITABLE_FIELDS
        if unknown:
            raise ValueError(f"Lead fields not writable by workflows: {sorted(unknown)}")

        async with self.get_session() as session:
            lead = await session.get(Lead, lead_id)
            if lead is None:
                logger.warning("Lead not found for update", lead_id=lead_id)
                return False
            for key, value in fields.items():
                setattr(lead, key, value)
            lead.updated_at = utcnow()
            await session.commit()
            return True

    async def list_converted_assigned_leads(self, organization_id: str) -> List[Lead]:
        async with self.get_session() as session:
            stmt = select(Lead).where(
                Lead.organization_id == organization_id,
                Lead.assigned_to.is_not(None),
                Lead.status == CONVERTED_LEAD_STATUS,
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def list_agents(self, organization_id: str, roles: Sequence[str]) -> List[Agent]:
        async with self.get_session() as session:
            stmt = select(Agent).where(
                Agent.organization_id == organization_id,
                Agent.role.in_(list(roles)),
            ).order_by(Agent.id)
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def count_open_leads_by_agent(self, organization_id: str) -> Dict[str, int]:
        """Unconverted assigned lead count per agent id."""
        async with self.get_session() as session:
            stmt = select(Lead.assigned_to, func.count(Lead.id)).where(
                Lead.organization_id == organization_id,
                Lead.assigned_to.is_not(None),
                Lead.status != CONVERTED_LEAD_STATUS,
            ).group_by(Lead.assigned_to)
            result = await session.execute(stmt)
            return {agent_id: count for agent_id, count in result.all()}

    # ============================================================================
    # Workflows
    # ============================================================================

    async def save_workflow(self, workflow: Workflow) -> Workflow:
        """Insert or replace a workflow definition.

        Dangling node references are logged as warnings; the workflow is
        saved regardless.
        """
        from leadflow.services.execution.graph import WorkflowGraph

        workflow.trigger_type = (workflow.trigger or {}).get("type") or workflow.trigger_type
        workflow.updated_at = utcnow()
        for warning in WorkflowGraph(WorkflowDefinition.from_row(workflow)).validate():
            logger.warning("Workflow references unknown node",
                           workflow_id=workflow.id, detail=str(warning))

        async with self.get_session() as session:
            merged = await session.merge(workflow)
            await session.commit()
            await session.refresh(merged)
            return merged

    async def get_workflow(self, organization_id: str, workflow_id: str) -> Optional[Workflow]:
        async with self.get_session() as session:
            stmt = select(Workflow).where(
                Workflow.id == workflow_id,
                Workflow.organization_id == organization_id,
            )
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def get_active_workflows(self, organization_id: str,
                                   trigger_type: str) -> List[WorkflowDefinition]:
        """Active workflows of the tenant listening on `trigger_type`."""
        async with self.get_session() as session:
            stmt = select(Workflow).where(
                Workflow.organization_id == organization_id,
                Workflow.is_active == True,  # noqa: E712
                Workflow.trigger_type == trigger_type,
            ).order_by(Workflow.created_at)
            result = await session.execute(stmt)
            rows = result.scalars().all()
        return [WorkflowDefinition.from_row(row) for row in rows]

    async def record_workflow_run(self, workflow_id: str, succeeded: bool) -> None:
        """Bump run statistics after a run finalizes."""
        async with self.get_session() as session:
            workflow = await session.get(Workflow, workflow_id)
            if workflow is None:
                return
            previous_successes = workflow.success_rate / 100.0 * workflow.total_executions
            workflow.total_executions += 1
            successes = previous_successes + (1 if succeeded else 0)
            workflow.success_rate = round(successes / workflow.total_executions * 100.0, 2)
            await session.commit()

    # ============================================================================
    # Workflow logs
    # ============================================================================

    async def save_workflow_log(self, log: "ExecutionLog") -> None:
        """Create or overwrite the persisted copy of a run log."""
        data = log.to_dict()
        async with self.get_session() as session:
            row = await session.get(WorkflowLog, data["id"])
            if row is None:
                row = WorkflowLog(
                    id=data["id"],
                    organization_id=data["organization_id"],
                    workflow_id=data["workflow_id"],
                    lead_id=data["lead_id"],
                    trigger_data=data["trigger_data"],
                    created_at=log.created_at,
                )
                session.add(row)
            row.status = data["status"]
            row.steps = data["steps"]
            row.total_duration_ms = data["total_duration_ms"]
            row.updated_at = utcnow()
            await session.commit()

    async def get_workflow_log(self, organization_id: str, log_id: str) -> Optional[WorkflowLog]:
        async with self.get_session() as session:
            stmt = select(WorkflowLog).where(
                WorkflowLog.id == log_id,
                WorkflowLog.organization_id == organization_id,
            )
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def list_workflow_logs(self, organization_id: str,
                                 workflow_id: Optional[str] = None,
                                 lead_id: Optional[str] = None,
                                 status: Optional[str] = None,
                                 page: int = 1,
                                 limit: int = 20) -> Tuple[List[WorkflowLog], int]:
        """Newest-first page of run logs plus the total match count."""
        filters = [WorkflowLog.organization_id == organization_id]
        if workflow_id:
            filters.append(WorkflowLog.workflow_id == workflow_id)
        if lead_id:
            filters.append(WorkflowLog.lead_id == lead_id)
        if status:
            filters.append(WorkflowLog.status == status)

        async with self.get_session() as session:
            total = (await session.execute(
                select(func.count()).select_from(WorkflowLog).where(*filters)
            )).scalar_one()
            stmt = (
                select(WorkflowLog)
                .where(*filters)
                .order_by(WorkflowLog.created_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all()), total

    async def fail_stale_running_logs(self, cutoff: datetime, reason: str) -> List[str]:
        """Mark `running` logs not updated since `cutoff` as failed.

        Returns the ids of the logs that were closed.
        """
        async with self.get_session() as session:
            stmt = select(WorkflowLog).where(
                WorkflowLog.status == "running",
                WorkflowLog.updated_at < cutoff,
            )
            result = await session.execute(stmt)
            stale = result.scalars().all()
            for row in stale:
                row.status = "failed"
                row.steps = [*(row.steps or []), {
                    "node_id": None,
                    "node_name": None,
                    "node_type": None,
                    "status": "failed",
                    "start_time": None,
                    "end_time": utcnow().isoformat(),
                    "output": None,
                    "error": reason,
                }]
                row.updated_at = utcnow()
            await session.commit()
            return [row.id for row in stale]

    # ============================================================================
    # Analytics
    # ============================================================================

    async def add_analytics_event(self, event: AnalyticsEvent) -> AnalyticsEvent:
        return await self._add(event)

    async def list_analytics_events(self, organization_id: str,
                                    with_campaign: bool = False,
                                    event_types: Optional[Sequence[str]] = None) -> List[AnalyticsEvent]:
        async with self.get_session() as session:
            stmt = select(AnalyticsEvent).where(AnalyticsEvent.organization_id == organization_id)
            if with_campaign:
                stmt = stmt.where(AnalyticsEvent.campaign.is_not(None))
            if event_types:
                stmt = stmt.where(AnalyticsEvent.type.in_(list(event_types)))
            result = await session.execute(stmt.order_by(AnalyticsEvent.timestamp))
            return list(result.scalars().all())
