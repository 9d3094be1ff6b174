"""AI lead analysis action handler."""

from typing import Any, Dict, Optional, Union

from leadflow.constants import EventType, Provider
from leadflow.core.database import Database
from leadflow.core.logging import get_logger
from leadflow.models.database import Integration
from leadflow.models.nodes import EmptyConfig
from leadflow.services.ai import LeadIntelligenceService
from leadflow.services.bi import BIService

from ..execution.models import ExecutionState
from .base import ProviderHandler

logger = get_logger(__name__)


class AIAgentHandler(ProviderHandler):
    """Scores the lead and exposes the result to later nodes.

    On success sets the `ai_score` and `ai_intent` variables, writes the
    analysis onto the payload and the stored lead, and returns it. Returns
    False when analysis is unavailable.
    """

    provider = Provider.AI_AGENT

    def __init__(self, database: Database, intelligence: LeadIntelligenceService,
                 bi_service: BIService):
        self.database = database
        self.intelligence = intelligence
        self.bi_service = bi_service

    async def execute(self, action_type: Optional[str], config: EmptyConfig,
                      state: ExecutionState,
                      integration: Optional[Integration]) -> Union[Dict[str, Any], bool]:
        lead = state.payload
        logger.info("AI analysis triggered", lead_id=lead.get("id"))

        analysis = await self.intelligence.analyze_lead(state.organization_id, lead)
        if not analysis:
            return False

        state.set_variable("ai_score", analysis.get("score"))
        state.set_variable("ai_intent", analysis.get("intent"))

        # Later nodes (conditions, routing) read the enriched payload
        lead["ai_analysis"] = analysis
        if analysis.get("score") is not None:
            lead["score"] = analysis["score"]

        if lead.get("id"):
            fields = {"ai_analysis": analysis}
            if analysis.get("score") is not None:
                fields["score"] = analysis["score"]
            await self.database.update_lead(lead["id"], fields)

        await self.bi_service.track_event(
            state.organization_id,
            lead.get("id"),
            EventType.AI_ANALYZED,
            metadata={"score": analysis.get("score"), "intent": analysis.get("intent")},
            campaign=lead.get("campaign"),
        )
        return analysis
