"""Tests for provider handlers."""

import json
from unittest.mock import MagicMock

import httpx
import pytest
from conftest import ORG_ID, webhook_integration
from langchain_core.messages import AIMessage

from leadflow.constants import EventType, Provider
from leadflow.core.exceptions import ProviderError, UnknownProviderError
from leadflow.models.database import Agent, Integration, Lead
from leadflow.models.nodes import ABTestConfig, CrmConfig, EmptyConfig, MessagingConfig, WebhookConfig
from leadflow.services.ai import LeadIntelligenceService
from leadflow.services.crm import CRMService
from leadflow.services.execution import ExecutionState
from leadflow.services.handlers import (
    ABTestHandler,
    AIAgentHandler,
    CRMHandler,
    EmailHandler,
    PredictiveRouteHandler,
    ROIGuardHandler,
    SMSHandler,
    WebhookHandler,
    WhatsAppHandler,
    build_handler_registry,
    detect_locale,
    translate_config,
)
from leadflow.services.messaging import EmailService, SMSService, WhatsAppService
from leadflow.services.outbound import OutboundService
from leadflow.services.routing import RoutingService
from leadflow.services.testing import TestingService, bucket_for, pick_variant


class Recorder:
    """httpx.MockTransport handler that records requests."""

    def __init__(self, status_code=200, body=None, headers=None):
        self.status_code = status_code
        self.body = body if body is not None else {}
        self.headers = headers or {}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json=self.body, headers=self.headers)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


def state_for(payload, node_id="node-1", organization_id=ORG_ID):
    state = ExecutionState(organization_id=organization_id, payload=payload)
    state.current_node_id = node_id
    return state


# =============================================================================
# Locale
# =============================================================================

class TestLocale:
    def test_explicit_locale_wins(self):
        lead = {"locale": "de-DE", "raw_data": {"locale": "fr-FR"}, "phone": "+919999"}
        assert detect_locale(lead) == "de-DE"

    def test_form_locale(self):
        assert detect_locale({"raw_data": {"locale": "fr-FR"}, "phone": "+91999"}) == "fr-FR"

    @pytest.mark.parametrize("phone,expected", [
        ("+919876543210", "hi-IN"),
        ("+34600111222", "es-ES"),
        ("+33612345678", "fr-FR"),
        ("+14155550100", "en-US"),
        (None, "en-US"),
    ])
    def test_phone_prefix(self, phone, expected):
        assert detect_locale({"phone": phone}) == expected

    def test_custom_default(self):
        assert detect_locale({}, default="pt-BR") == "pt-BR"

    def test_translation_override(self):
        config = MessagingConfig.model_validate({
            "message": "Hello",
            "subject": "Welcome",
            "translations": {"es-ES": {"message": "Hola"}},
        })
        localized = translate_config(config, "es-ES")
        assert localized.message == "Hola"
        assert localized.subject == "Welcome"
        assert config.message == "Hello"

    def test_no_translation_keeps_default(self):
        config = MessagingConfig(message="Hello")
        assert translate_config(config, "hi-IN").message == "Hello"


# =============================================================================
# Messaging
# =============================================================================

class TestMessaging:
    @pytest.mark.asyncio
    async def test_email_localized_and_tracked(self, settings, bi_service, database):
        recorder = Recorder(status_code=202, headers={"x-message-id": "msg-1"})
        handler = EmailHandler(EmailService(settings, client=recorder.client()), bi_service)
        config = MessagingConfig.model_validate({
            "message": "Hello",
            "subject": "Welcome",
            "translations": {"es-ES": {"message": "Hola", "subject": "Bienvenido"}},
        })
        integration = Integration(organization_id=ORG_ID, provider="sendgrid", name="SendGrid",
                                  credentials={"api_key": "SG.key"})
        lead = {"id": "lead-1", "email": "ana@example.es", "phone": "+34600111222", "campaign": "Spring"}

        result = await handler.execute(None, config, state_for(lead, "welcome"), integration)

        assert result == {"status": "sent", "message_id": "msg-1"}
        request = recorder.requests[0]
        assert request.url.path == "/v3/mail/send"
        assert request.headers["Authorization"] == "Bearer SG.key"
        body = json.loads(request.content)
        assert body["subject"] == "Bienvenido"
        assert body["content"][0]["value"] == "Hola"
        assert body["from"] == {"email": "noreply@leadflow.test"}

        events = await database.list_analytics_events(ORG_ID, event_types=["MESSAGE_SENT"])
        assert events[0].metadata_json == {"channel": "email", "node": "welcome"}
        assert events[0].campaign == "Spring"

    @pytest.mark.asyncio
    async def test_email_sender_from_config(self, settings, bi_service):
        recorder = Recorder(status_code=202)
        service = EmailService(settings, client=recorder.client())
        config = MessagingConfig.model_validate({"message": "Hi", "from": "sales@acme.test"})

        await service.send_email({"email": "a@b.test"}, config, {"api_key": "SG.key"})

        assert json.loads(recorder.requests[0].content)["from"] == {"email": "sales@acme.test"}

    @pytest.mark.asyncio
    async def test_whatsapp_text_message(self, settings, bi_service):
        recorder = Recorder(body={"messages": [{"id": "wamid.1"}]})
        handler = WhatsAppHandler(WhatsAppService(settings, client=recorder.client()), bi_service)
        integration = Integration(organization_id=ORG_ID, provider="meta", name="Meta",
                                  credentials={"access_token": "EAAG",
                                               "metadata": {"phone_number_id": "1055"}})
        lead = {"id": "lead-1", "phone": "+919876543210"}
        config = MessagingConfig.model_validate({
            "message": "Hello", "translations": {"hi-IN": {"message": "Namaste"}},
        })

        result = await handler.execute(None, config, state_for(lead), integration)

        assert result == {"status": "sent", "message_id": "wamid.1"}
        request = recorder.requests[0]
        assert request.url.path.endswith("/1055/messages")
        body = json.loads(request.content)
        assert body["to"] == "+919876543210"
        assert body["text"] == {"body": "Namaste"}

    @pytest.mark.asyncio
    async def test_send_failure_is_returned_not_raised(self, settings, bi_service):
        recorder = Recorder(status_code=500, body={"error": "down"})
        handler = WhatsAppHandler(WhatsAppService(settings, client=recorder.client()), bi_service)
        integration = Integration(organization_id=ORG_ID, provider="meta", name="Meta",
                                  credentials={"access_token": "EAAG",
                                               "metadata": {"phone_number_id": "1055"}})

        result = await handler.execute(None, MessagingConfig(message="Hi"),
                                       state_for({"id": "lead-1", "phone": "+1555"}), integration)

        assert result["status"] == "failed"
        assert "HTTP 500" in result["error"]

    @pytest.mark.asyncio
    async def test_incomplete_credentials(self, settings, bi_service):
        recorder = Recorder()
        service = SMSService(settings, client=recorder.client())

        result = await service.send_sms({"phone": "+1555"}, MessagingConfig(message="Hi"), {})

        assert result == {"status": "failed", "error": "Twilio credentials incomplete"}
        assert recorder.requests == []

    @pytest.mark.asyncio
    async def test_sms(self, settings, bi_service):
        recorder = Recorder(status_code=201, body={"sid": "SM1"})
        handler = SMSHandler(SMSService(settings, client=recorder.client()), bi_service)
        integration = Integration(organization_id=ORG_ID, provider="twilio", name="Twilio",
                                  credentials={"api_key": "AC1", "access_token": "secret",
                                               "metadata": {"from_number": "+15550000"}})

        result = await handler.execute(None, MessagingConfig(message="Hi"),
                                       state_for({"id": "lead-1", "phone": "+15551111"}), integration)

        assert result == {"status": "sent", "message_id": "SM1"}
        request = recorder.requests[0]
        assert request.url.path == "/2010-04-01/Accounts/AC1/Messages.json"
        assert b"Body=Hi" in request.content
        assert request.headers["Authorization"].startswith("Basic ")


# =============================================================================
# Webhook
# =============================================================================

class TestWebhook:
    @pytest.mark.asyncio
    async def test_posts_payload(self, settings):
        recorder = Recorder()
        handler = WebhookHandler(OutboundService(settings, client=recorder.client()))
        config = WebhookConfig(url="https://hooks.test/in", headers={"X-Token": "abc"})
        lead = {"id": "lead-1", "name": "Ana"}

        assert await handler.execute(None, config, state_for(lead), None) is True

        request = recorder.requests[0]
        assert str(request.url) == "https://hooks.test/in"
        assert request.headers["X-Token"] == "abc"
        assert json.loads(request.content) == lead

    @pytest.mark.asyncio
    async def test_error_returns_false(self, settings):
        recorder = Recorder(status_code=503)
        handler = WebhookHandler(OutboundService(settings, client=recorder.client()))
        config = WebhookConfig(url="https://hooks.test/in")

        assert await handler.execute(None, config, state_for({"id": "lead-1"}), None) is False


# =============================================================================
# CRM
# =============================================================================

class TestCRM:
    @pytest.mark.asyncio
    async def test_regional_override(self, settings, database, bi_service):
        default = await database.save_integration(webhook_integration(name="Global CRM"))
        india = await database.save_integration(webhook_integration(
            name="India CRM", region="IN",
            credentials={"metadata": {"webhook_url": "https://crm-in.test/leads"}},
        ))
        recorder = Recorder()
        handler = CRMHandler(database, CRMService(settings, client=recorder.client()), bi_service)
        config = CrmConfig.model_validate({"regionalOverrides": {"IN": india.id}})
        lead = {"id": "lead-1", "country": "IN", "campaign": "Spring"}

        result = await handler.execute(None, config, state_for(lead), default)

        assert str(recorder.requests[0].url) == "https://crm-in.test/leads"
        assert result == {"success": True, "crm_id": None,
                          "integration_id": india.id, "provider": "webhook"}
        events = await database.list_analytics_events(ORG_ID, event_types=["CRM_SYNC"])
        assert events[0].metadata_json["integration_id"] == india.id

    @pytest.mark.asyncio
    async def test_no_override_uses_default(self, settings, database, bi_service):
        default = await database.save_integration(webhook_integration())
        recorder = Recorder()
        handler = CRMHandler(database, CRMService(settings, client=recorder.client()), bi_service)
        config = CrmConfig.model_validate({"regionalOverrides": {"IN": "other"}})

        result = await handler.execute(None, config, state_for({"id": "lead-1", "country": "US"}), default)

        assert str(recorder.requests[0].url) == "https://hooks.test/crm"
        assert result["integration_id"] == default.id

    @pytest.mark.asyncio
    async def test_override_from_other_tenant_ignored(self, settings, database, bi_service):
        default = await database.save_integration(webhook_integration())
        foreign = await database.save_integration(webhook_integration(
            organization_id="org-2",
            credentials={"metadata": {"webhook_url": "https://foreign.test/leads"}},
        ))
        recorder = Recorder()
        handler = CRMHandler(database, CRMService(settings, client=recorder.client()), bi_service)
        config = CrmConfig.model_validate({"regionalOverrides": {"IN": foreign.id}})

        result = await handler.execute(None, config, state_for({"id": "lead-1", "country": "IN"}), default)

        assert str(recorder.requests[0].url) == "https://hooks.test/crm"
        assert result["integration_id"] == default.id

    @pytest.mark.asyncio
    async def test_hubspot(self, settings):
        recorder = Recorder(status_code=201, body={"id": "hs-42"})
        service = CRMService(settings, client=recorder.client())
        integration = Integration(organization_id=ORG_ID, provider="hubspot", name="HubSpot",
                                  credentials={"access_token": "pat-1"})

        result = await service.sync_lead({"name": "Ana Lopez", "email": "ana@example.es"}, integration)

        assert result == {"success": True, "crm_id": "hs-42"}
        body = json.loads(recorder.requests[0].content)
        assert body["properties"]["firstname"] == "Ana"
        assert body["properties"]["lastname"] == "Lopez"

    @pytest.mark.asyncio
    async def test_sync_errors_raise(self, settings):
        service = CRMService(settings, client=Recorder(status_code=401).client())
        hubspot = Integration(organization_id=ORG_ID, provider="hubspot", name="HubSpot",
                              credentials={"access_token": "pat-1"})
        with pytest.raises(ProviderError, match="HTTP 401"):
            await service.sync_lead({"name": "Ana"}, hubspot)

        pipedrive = Integration(organization_id=ORG_ID, provider="pipedrive", name="Pipedrive")
        with pytest.raises(ProviderError, match="Unsupported CRM provider"):
            await service.sync_lead({"name": "Ana"}, pipedrive)

        salesforce = Integration(organization_id=ORG_ID, provider="salesforce", name="SF",
                                 credentials={"access_token": "tok"})
        with pytest.raises(ProviderError, match="instance_url"):
            await service.sync_lead({"name": "Ana"}, salesforce)


# =============================================================================
# AI agent
# =============================================================================

class FakeChatModel:
    def __init__(self, content):
        self.content = content
        self.messages = None

    async def ainvoke(self, messages):
        self.messages = messages
        return AIMessage(content=self.content)


class TestAIAgent:
    @pytest.mark.asyncio
    async def test_analysis_enriches_lead(self, settings, database, bi_service):
        await database.save_integration(Integration(
            organization_id=ORG_ID, provider="openai", name="OpenAI", credentials={"api_key": "sk-tenant"},
        ))
        await database.save_lead(Lead(id="lead-1", organization_id=ORG_ID, name="Ana"))
        model = FakeChatModel(json.dumps({"score": "87", "intent": "high_intent", "summary": "Wants a demo"}))
        keys = []

        def factory(api_key, model_name, timeout):
            keys.append(api_key)
            return model

        handler = AIAgentHandler(database, LeadIntelligenceService(settings, database, factory), bi_service)
        state = state_for({"id": "lead-1", "name": "Ana"})

        result = await handler.execute(None, EmptyConfig(), state, None)

        assert keys == ["sk-tenant"]
        assert result["score"] == 87
        assert state.get_variable("ai_score") == 87
        assert state.get_variable("ai_intent") == "high_intent"
        assert [event.node_id for event in state.variable_events] == ["node-1", "node-1"]
        assert state.payload["ai_analysis"]["intent"] == "high_intent"
        assert state.payload["score"] == 87
        stored = await database.get_lead("lead-1")
        assert stored.score == 87
        assert stored.ai_analysis["summary"] == "Wants a demo"
        assert "Ana" in model.messages[1].content

    @pytest.mark.asyncio
    async def test_unparseable_response_returns_false(self, settings, database, bi_service):
        settings.openai_api_key = "sk-env"
        service = LeadIntelligenceService(settings, database, lambda *args: FakeChatModel("not json"))
        handler = AIAgentHandler(database, service, bi_service)
        state = state_for({"id": "lead-1"})

        assert await handler.execute(None, EmptyConfig(), state, None) is False
        assert state.variables == {}

    @pytest.mark.asyncio
    async def test_no_api_key_skips_analysis(self, settings, database, bi_service):
        factory = MagicMock()
        handler = AIAgentHandler(database, LeadIntelligenceService(settings, database, factory), bi_service)

        assert await handler.execute(None, EmptyConfig(), state_for({"id": "lead-1"}), None) is False
        factory.assert_not_called()


# =============================================================================
# Routing, ROI, A/B
# =============================================================================

class TestPredictiveRoute:
    @pytest.mark.asyncio
    async def test_assigns_lowest_load_agent(self, database, bi_service):
        await database.save_agent(Agent(id="agent-a", organization_id=ORG_ID, name="A"))
        await database.save_agent(Agent(id="agent-b", organization_id=ORG_ID, name="B"))
        await database.save_lead(Lead(id="busy", organization_id=ORG_ID, name="X", assigned_to="agent-a"))
        await database.save_lead(Lead(id="lead-1", organization_id=ORG_ID, name="Ana", country="IN"))
        handler = PredictiveRouteHandler(database, RoutingService(database, bi_service), bi_service)
        state = state_for({"id": "lead-1", "country": "IN"})

        result = await handler.execute(None, EmptyConfig(), state, None)

        assert result == {"assigned_to": "agent-b"}
        assert state.payload["assigned_to"] == "agent-b"
        assert (await database.get_lead("lead-1")).assigned_to == "agent-b"
        events = await database.list_analytics_events(ORG_ID, event_types=["WORKFLOW_TRIGGERED"])
        assert events[0].metadata_json == {"action": "PREDICTIVE_ASSIGNMENT", "agentId": "agent-b"}

    @pytest.mark.asyncio
    async def test_no_agents(self, database, bi_service):
        handler = PredictiveRouteHandler(database, RoutingService(database, bi_service), bi_service)
        result = await handler.execute(None, EmptyConfig(), state_for({"id": "lead-1"}), None)
        assert result == {"assigned_to": None}


class TestROIGuard:
    @pytest.mark.asyncio
    async def test_unhealthy_campaign(self, database, bi_service):
        for _ in range(11):
            await bi_service.track_event(ORG_ID, None, EventType.LEAD_INGESTED, campaign="Spring")
        await bi_service.track_event(ORG_ID, None, EventType.REVENUE_GENERATED, campaign="Spring", value=55)
        handler = ROIGuardHandler(bi_service)

        result = await handler.execute(None, EmptyConfig(), state_for({"id": "lead-1", "campaign": "Spring"}), None)

        assert result == {"status": "unsafe", "roi": 50.0}
        events = await database.list_analytics_events(ORG_ID, event_types=["WORKFLOW_TRIGGERED"])
        assert events[0].metadata_json == {"action": "ROI_GUARD_TRIGGERED", "status": "UNHEALTHY", "roi": 50.0}

    @pytest.mark.asyncio
    async def test_small_campaign_is_safe(self, bi_service):
        for _ in range(3):
            await bi_service.track_event(ORG_ID, None, EventType.LEAD_INGESTED, campaign="Spring")
        handler = ROIGuardHandler(bi_service)
        lead = {"id": "lead-1", "raw_data": {"campaign_name": "Spring"}}

        assert await handler.execute(None, EmptyConfig(), state_for(lead), None) == {"status": "safe", "roi": 100.0}

    @pytest.mark.asyncio
    async def test_unknown_campaign_is_safe(self, bi_service):
        handler = ROIGuardHandler(bi_service)
        result = await handler.execute(None, EmptyConfig(), state_for({"campaign": "Nope"}), None)
        assert result["status"] == "safe"


class TestABTest:
    @pytest.mark.asyncio
    async def test_sets_variant_variable(self, database, bi_service):
        config = ABTestConfig.model_validate({
            "testId": "subject-line",
            "variants": [{"id": "A", "weight": 50}, {"id": "B", "weight": 50}],
        })
        handler = ABTestHandler(TestingService(database, bi_service))
        state = state_for({"id": "lead-1", "email": "ana@example.es"})

        result = await handler.execute(None, config, state, None)

        expected = pick_variant(bucket_for("ana@example.es"), config.variants)
        assert result == {"selected_variant": expected}
        assert state.get_variable("ab_variant") == expected


# =============================================================================
# Registry
# =============================================================================

def test_registry_covers_every_provider(settings):
    mock = MagicMock()
    registry = build_handler_registry(settings, mock, mock, mock, mock, mock, mock, mock, mock, mock, mock)

    assert all(provider.value in registry for provider in Provider)
    assert "crm" in registry and "fax" not in registry
    assert registry.get("roi_guard").is_internal
    assert registry.get("crm").integration_providers[0] == "hubspot"
    with pytest.raises(UnknownProviderError):
        registry.get("fax")
