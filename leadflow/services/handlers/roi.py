"""ROI guard action handler."""

from typing import Any, Dict, Optional

from leadflow.constants import (
    ACTION_ROI_GUARD_TRIGGERED,
    ROI_HEALTHY_THRESHOLD,
    ROI_MIN_LEADS,
    EventType,
    Provider,
)
from leadflow.core.logging import get_logger
from leadflow.models.database import Integration
from leadflow.models.nodes import EmptyConfig
from leadflow.services.bi import BIService

from ..execution.models import ExecutionState
from .base import ProviderHandler

logger = get_logger(__name__)


class ROIGuardHandler(ProviderHandler):
    """Flags leads from campaigns that are losing money.

    A campaign is unsafe once it has more than ROI_MIN_LEADS ingested leads
    and an ROI below ROI_HEALTHY_THRESHOLD. Campaigns with no data are safe.
    Follow with a condition on `status` to act on the verdict.
    """

    provider = Provider.ROI_GUARD

    def __init__(self, bi_service: BIService):
        self.bi_service = bi_service

    async def execute(self, action_type: Optional[str], config: EmptyConfig,
                      state: ExecutionState, integration: Optional[Integration]) -> Dict[str, Any]:
        lead = state.payload
        campaign = (lead.get("raw_data") or {}).get("campaign_name") or lead.get("campaign")
        logger.info("ROI guard check", campaign=campaign)

        report = await self.bi_service.get_campaign_roi_health(state.organization_id)
        stats = next((c for c in report if c.campaign == campaign), None)

        if stats and stats.roi < ROI_HEALTHY_THRESHOLD and stats.leads > ROI_MIN_LEADS:
            logger.error("ROI alert, campaign below threshold", campaign=campaign, roi=stats.roi)
            await self.bi_service.track_event(
                state.organization_id,
                lead.get("id"),
                EventType.WORKFLOW_TRIGGERED,
                metadata={
                    "action": ACTION_ROI_GUARD_TRIGGERED,
                    "status": "UNHEALTHY",
                    "roi": stats.roi,
                },
                campaign=campaign,
            )
            return {"status": "unsafe", "roi": stats.roi}

        return {"status": "safe", "roi": (stats.roi if stats else 0) or ROI_HEALTHY_THRESHOLD}
