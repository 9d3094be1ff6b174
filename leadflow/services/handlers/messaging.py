"""WhatsApp, email and SMS action handlers."""

from typing import Any, Dict, Optional

from leadflow.constants import EventType, Provider
from leadflow.core.logging import get_logger
from leadflow.models.database import Integration
from leadflow.models.nodes import MessagingConfig
from leadflow.services.bi import BIService
from leadflow.services.messaging import EmailService, SMSService, WhatsAppService

from ..execution.models import ExecutionState
from .base import ProviderHandler
from .locale import detect_locale, translate_config

logger = get_logger(__name__)


class MessagingHandler(ProviderHandler):
    """Localizes the node's content, sends it and records MESSAGE_SENT.

    Send failures come back as `{"status": "failed", ...}`; they do not
    raise and do not trigger failure routing.
    """

    def __init__(self, bi_service: BIService, default_locale: str = "en-US"):
        self.bi_service = bi_service
        self.default_locale = default_locale

    async def send(self, lead: Dict[str, Any], config: MessagingConfig,
                   credentials: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    async def execute(self, action_type: Optional[str], config: MessagingConfig,
                      state: ExecutionState, integration: Optional[Integration]) -> Dict[str, Any]:
        lead = state.payload
        locale = detect_locale(lead, self.default_locale)
        localized = translate_config(config, locale)

        logger.info("Sending message", channel=self.provider.value,
                    lead_id=lead.get("id"), locale=locale)
        response = await self.send(lead, localized, integration.credentials or {})

        await self.bi_service.track_event(
            state.organization_id,
            lead.get("id"),
            EventType.MESSAGE_SENT,
            metadata={"channel": self.provider.value, "node": state.current_node_id},
            campaign=lead.get("campaign"),
        )
        return response


class WhatsAppHandler(MessagingHandler):
    provider = Provider.WHATSAPP

    def __init__(self, service: WhatsAppService, bi_service: BIService, default_locale: str = "en-US"):
        super().__init__(bi_service, default_locale)
        self.service = service

    async def send(self, lead, config, credentials):
        return await self.service.send_message(lead, config, credentials)


class EmailHandler(MessagingHandler):
    provider = Provider.EMAIL

    def __init__(self, service: EmailService, bi_service: BIService, default_locale: str = "en-US"):
        super().__init__(bi_service, default_locale)
        self.service = service

    async def send(self, lead, config, credentials):
        return await self.service.send_email(lead, config, credentials)


class SMSHandler(MessagingHandler):
    provider = Provider.SMS

    def __init__(self, service: SMSService, bi_service: BIService, default_locale: str = "en-US"):
        super().__init__(bi_service, default_locale)
        self.service = service

    async def send(self, lead, config, credentials):
        return await self.service.send_sms(lead, config, credentials)
