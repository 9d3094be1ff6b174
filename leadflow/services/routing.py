"""Predictive lead routing."""

from typing import Any, Dict, Optional

from leadflow.constants import ROUTABLE_AGENT_ROLES
from leadflow.core.database import Database
from leadflow.core.logging import get_logger
from leadflow.services.bi import BIService

logger = get_logger(__name__)


class RoutingService:
    """Assigns a lead to the agent with the best track record for it."""

    def __init__(self, database: Database, bi_service: BIService):
        self.database = database
        self.bi_service = bi_service

    async def predict_best_agent(self, organization_id: str,
                                 lead: Dict[str, Any]) -> Optional[str]:
        """Best agent id for `lead`, or None when the tenant has no agents.

        Preference order: strongest agent for the lead's (country, intent),
        then strongest for its country, then the least loaded agent.
        """
        country = lead.get("country")
        intent = (lead.get("ai_analysis") or {}).get("intent") or "unknown"

        logger.info("Predicting best agent", lead_id=lead.get("id"),
                    country=country, intent=intent)
        try:
            matrix = await self.bi_service.get_predictive_expertise_matrix(organization_id)

            for row in matrix:
                if row.country == country and row.intent == intent:
                    logger.info("Routing match on country and intent", agent_id=row.agent_id)
                    return row.agent_id

            for row in matrix:
                if row.country == country:
                    logger.info("Routing match on country", agent_id=row.agent_id)
                    return row.agent_id

        except Exception as e:
            logger.error("Predictive routing failed", error=str(e))

        return await self.get_lowest_load_agent(organization_id)

    async def get_lowest_load_agent(self, organization_id: str) -> Optional[str]:
        """Routable agent holding the fewest unconverted leads."""
        agents = await self.database.list_agents(organization_id, sorted(ROUTABLE_AGENT_ROLES))
        if not agents:
            logger.warning("No routable agents", organization_id=organization_id)
            return None

        load = await self.database.count_open_leads_by_agent(organization_id)
        best = min(agents, key=lambda agent: load.get(agent.id, 0))
        logger.info("Routing by load", agent_id=best.id, open_leads=load.get(best.id, 0))
        return best.id
