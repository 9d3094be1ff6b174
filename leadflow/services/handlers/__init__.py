"""Action node handlers, one per provider.

- messaging.py: WhatsApp, email, SMS (with locale detection from locale.py)
- crm.py: CRM sync with regional integration overrides
- webhook.py: outbound webhook
- ai.py: AI lead analysis
- routing.py: predictive agent assignment
- roi.py: campaign ROI guard
- ab_test.py: A/B variant split
"""

from leadflow.core.config import Settings
from leadflow.core.database import Database
from leadflow.services.ai import LeadIntelligenceService
from leadflow.services.bi import BIService
from leadflow.services.crm import CRMService
from leadflow.services.messaging import EmailService, SMSService, WhatsAppService
from leadflow.services.outbound import OutboundService
from leadflow.services.routing import RoutingService
from leadflow.services.testing import TestingService

from .ab_test import ABTestHandler
from .ai import AIAgentHandler
from .base import HandlerRegistry, ProviderHandler
from .crm import CRMHandler
from .locale import detect_locale, translate_config
from .messaging import EmailHandler, MessagingHandler, SMSHandler, WhatsAppHandler
from .roi import ROIGuardHandler
from .routing import PredictiveRouteHandler
from .webhook import WebhookHandler


def build_handler_registry(settings: Settings,
                           database: Database,
                           bi_service: BIService,
                           routing: RoutingService,
                           testing: TestingService,
                           intelligence: LeadIntelligenceService,
                           whatsapp: WhatsAppService,
                           email: EmailService,
                           sms: SMSService,
                           crm: CRMService,
                           outbound: OutboundService) -> HandlerRegistry:
    """Registry with a handler for every provider."""
    locale = settings.default_locale
    return HandlerRegistry([
        WhatsAppHandler(whatsapp, bi_service, locale),
        EmailHandler(email, bi_service, locale),
        SMSHandler(sms, bi_service, locale),
        CRMHandler(database, crm, bi_service),
        WebhookHandler(outbound),
        AIAgentHandler(database, intelligence, bi_service),
        PredictiveRouteHandler(database, routing, bi_service),
        ROIGuardHandler(bi_service),
        ABTestHandler(testing),
    ])


__all__ = [
    "ProviderHandler",
    "HandlerRegistry",
    "build_handler_registry",
    "MessagingHandler",
    "WhatsAppHandler",
    "EmailHandler",
    "SMSHandler",
    "CRMHandler",
    "WebhookHandler",
    "AIAgentHandler",
    "PredictiveRouteHandler",
    "ROIGuardHandler",
    "ABTestHandler",
    "detect_locale",
    "translate_config",
]
