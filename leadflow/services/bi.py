"""BI event tracking and aggregation."""

from collections import defaultdict
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional, Union

from leadflow.constants import COST_PER_LEAD, EventType
from leadflow.core.database import Database
from leadflow.core.logging import get_logger
from leadflow.models.database import AnalyticsEvent

logger = get_logger(__name__)


@dataclass
class CampaignHealth:
    campaign: str
    leads: int = 0
    conversions: int = 0
    revenue: float = 0.0
    total_cost: float = 0.0
    roi: float = 0.0
    conversion_rate: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ExpertiseRow:
    agent_id: str
    country: Optional[str]
    intent: Optional[str]
    success_count: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class BIService:
    """Records analytics events and computes the aggregates engine handlers read."""

    def __init__(self, database: Database):
        self.database = database

    async def track_event(self, organization_id: str, lead_id: Optional[str],
                          event_type: Union[EventType, str],
                          metadata: Optional[Dict[str, Any]] = None,
                          campaign: Optional[str] = None,
                          value: Optional[float] = None,
                          source: Optional[str] = None) -> None:
        """Record a BI event. Errors are logged, never raised."""
        type_value = event_type.value if isinstance(event_type, EventType) else str(event_type)
        try:
            await self.database.add_analytics_event(AnalyticsEvent(
                organization_id=organization_id,
                lead_id=lead_id,
                type=type_value,
                source=source,
                campaign=campaign,
                value=value,
                metadata_json=dict(metadata) if metadata else None,
            ))
        except Exception as e:
            logger.error("BI tracking error", event_type=type_value,
                         organization_id=organization_id, error=str(e))

    async def get_campaign_roi_health(self, organization_id: str) -> List[CampaignHealth]:
        """Per-campaign ROI, highest first.

        Cost is a flat COST_PER_LEAD per ingested lead; ROI is revenue over
        cost as a percentage, 0 when there is no cost.
        """
        events = await self.database.list_analytics_events(organization_id, with_campaign=True)

        campaigns: Dict[str, CampaignHealth] = {}
        for event in events:
            health = campaigns.setdefault(event.campaign, CampaignHealth(campaign=event.campaign))
            if event.type == EventType.LEAD_INGESTED.value:
                health.leads += 1
                health.total_cost += COST_PER_LEAD
            elif event.type == EventType.SALE_COMPLETED.value:
                health.conversions += 1
            elif event.type == EventType.REVENUE_GENERATED.value:
                health.revenue += event.value or 0.0

        for health in campaigns.values():
            if health.total_cost > 0:
                health.roi = health.revenue / health.total_cost * 100
            if health.leads > 0:
                health.conversion_rate = health.conversions / health.leads * 100

        return sorted(campaigns.values(), key=lambda h: h.roi, reverse=True)

    async def get_predictive_expertise_matrix(self, organization_id: str) -> List[ExpertiseRow]:
        """Converted-lead counts per (agent, country, intent).

        Sorted by success count descending, then agent id.
        """
        leads = await self.database.list_converted_assigned_leads(organization_id)

        counts: Dict[tuple, int] = defaultdict(int)
        for lead in leads:
            intent = (lead.ai_analysis or {}).get("intent")
            counts[(lead.assigned_to, lead.country, intent)] += 1

        rows = [
            ExpertiseRow(agent_id=agent_id, country=country, intent=intent, success_count=count)
            for (agent_id, country, intent), count in counts.items()
        ]
        rows.sort(key=lambda r: (-r.success_count, r.agent_id))
        return rows
