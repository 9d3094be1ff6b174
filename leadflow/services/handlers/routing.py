"""Predictive routing action handler."""

from typing import Any, Dict, Optional

from leadflow.constants import ACTION_PREDICTIVE_ASSIGNMENT, EventType, Provider
from leadflow.core.database import Database
from leadflow.core.logging import get_logger
from leadflow.models.database import Integration
from leadflow.models.nodes import EmptyConfig
from leadflow.services.bi import BIService
from leadflow.services.routing import RoutingService

from ..execution.models import ExecutionState
from .base import ProviderHandler

logger = get_logger(__name__)


class PredictiveRouteHandler(ProviderHandler):
    provider = Provider.PREDICTIVE_ROUTE

    def __init__(self, database: Database, routing: RoutingService, bi_service: BIService):
        self.database = database
        self.routing = routing
        self.bi_service = bi_service

    async def execute(self, action_type: Optional[str], config: EmptyConfig,
                      state: ExecutionState, integration: Optional[Integration]) -> Dict[str, Any]:
        lead = state.payload
        agent_id = await self.routing.predict_best_agent(state.organization_id, lead)

        if agent_id:
            lead["assigned_to"] = agent_id
            if lead.get("id"):
                await self.database.update_lead(lead["id"], {"assigned_to": agent_id})
            logger.info("Lead routed", lead_id=lead.get("id"), agent_id=agent_id)

            await self.bi_service.track_event(
                state.organization_id,
                lead.get("id"),
                EventType.WORKFLOW_TRIGGERED,
                metadata={"action": ACTION_PREDICTIVE_ASSIGNMENT, "agentId": agent_id},
            )

        return {"assigned_to": agent_id}
