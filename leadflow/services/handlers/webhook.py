"""Outbound webhook action handler."""

from typing import Optional

from leadflow.constants import Provider
from leadflow.core.logging import get_logger, log_api_call
from leadflow.models.database import Integration
from leadflow.models.nodes import WebhookConfig
from leadflow.services.outbound import OutboundService

from ..execution.models import ExecutionState
from .base import ProviderHandler

logger = get_logger(__name__)


class WebhookHandler(ProviderHandler):
    """POSTs the full lead payload to the configured URL.

    Returns True on a 2xx response. Transport and HTTP errors are logged and
    returned as False so the run continues.
    """

    provider = Provider.WEBHOOK

    def __init__(self, outbound: OutboundService):
        self.outbound = outbound

    async def execute(self, action_type: Optional[str], config: WebhookConfig,
                      state: ExecutionState, integration: Optional[Integration]) -> bool:
        logger.info("Webhook outbound", url=config.url, lead_id=state.lead_id)
        try:
            async with self.outbound.http() as client:
                response = await client.post(config.url, json=state.payload, headers=config.headers)
                response.raise_for_status()
        except Exception as e:
            logger.error("Webhook node failed", url=config.url, error=str(e))
            log_api_call(logger, "webhook", "post", False, url=config.url, error=str(e))
            return False

        log_api_call(logger, "webhook", "post", True, url=config.url,
                     status=response.status_code)
        return True
