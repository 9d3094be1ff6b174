"""CRM sync action handler with per-country integration overrides."""

from typing import Any, Dict, Optional

from leadflow.constants import EventType, Provider
from leadflow.core.database import Database
from leadflow.core.logging import get_logger
from leadflow.models.database import Integration
from leadflow.models.nodes import CrmConfig
from leadflow.services.bi import BIService
from leadflow.services.crm import CRMService

from ..execution.models import ExecutionState
from .base import ProviderHandler

logger = get_logger(__name__)


class CRMHandler(ProviderHandler):
    """Syncs the lead to the tenant CRM.

    `regional_overrides` maps a lead country to an integration id. An
    override is only honoured if that integration belongs to the same
    tenant; otherwise the default integration is used. Sync errors raise.
    """

    provider = Provider.CRM

    def __init__(self, database: Database, crm_service: CRMService, bi_service: BIService):
        self.database = database
        self.crm_service = crm_service
        self.bi_service = bi_service

    async def resolve_target(self, config: CrmConfig, state: ExecutionState,
                             integration: Integration) -> Integration:
        country = state.payload.get("country")
        override_id = config.regional_overrides.get(country) if country else None
        if not override_id:
            return integration

        override = await self.database.get_integration(state.organization_id, override_id)
        if override is None:
            logger.warning("Regional CRM override not found for tenant",
                           country=country, integration_id=override_id)
            return integration

        logger.info("Regional CRM override", country=country,
                    integration=override.name, provider=override.provider)
        return override

    async def execute(self, action_type: Optional[str], config: CrmConfig,
                      state: ExecutionState, integration: Optional[Integration]) -> Dict[str, Any]:
        lead = state.payload
        target = await self.resolve_target(config, state, integration)

        response = await self.crm_service.sync_lead(lead, target)

        await self.bi_service.track_event(
            state.organization_id,
            lead.get("id"),
            EventType.CRM_SYNC,
            metadata={"provider": target.provider, "integration_id": target.id},
            campaign=lead.get("campaign"),
        )
        return {**response, "integration_id": target.id, "provider": target.provider}
