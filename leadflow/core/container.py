"""Dependency injection container for the application."""

from dependency_injector import containers, providers

from leadflow.core.config import Settings
from leadflow.core.database import Database
from leadflow.services.ai import LeadIntelligenceService
from leadflow.services.bi import BIService
from leadflow.services.crm import CRMService
from leadflow.services.execution import StaleRunSweeper, TriggerDispatcher, WorkflowExecutor
from leadflow.services.handlers import build_handler_registry
from leadflow.services.messaging import EmailService, SMSService, WhatsAppService
from leadflow.services.outbound import OutboundService
from leadflow.services.routing import RoutingService
from leadflow.services.testing import TestingService


class Container(containers.DeclarativeContainer):
    """Application dependency injection container."""

    # Settings
    settings = providers.Singleton(
        Settings,
    )

    # Database
    database = providers.Singleton(
        Database,
        settings=settings
    )

    # Analytics and decision services
    bi_service = providers.Singleton(
        BIService,
        database=database
    )

    routing_service = providers.Singleton(
        RoutingService,
        database=database,
        bi_service=bi_service
    )

    testing_service = providers.Singleton(
        TestingService,
        database=database,
        bi_service=bi_service
    )

    intelligence_service = providers.Singleton(
        LeadIntelligenceService,
        settings=settings,
        database=database
    )

    # Outbound provider clients
    outbound = providers.Singleton(
        OutboundService,
        settings=settings
    )

    whatsapp_service = providers.Singleton(
        WhatsAppService,
        settings=settings
    )

    email_service = providers.Singleton(
        EmailService,
        settings=settings
    )

    sms_service = providers.Singleton(
        SMSService,
        settings=settings
    )

    crm_service = providers.Singleton(
        CRMService,
        settings=settings
    )

    # Execution engine
    handler_registry = providers.Singleton(
        build_handler_registry,
        settings=settings,
        database=database,
        bi_service=bi_service,
        routing=routing_service,
        testing=testing_service,
        intelligence=intelligence_service,
        whatsapp=whatsapp_service,
        email=email_service,
        sms=sms_service,
        crm=crm_service,
        outbound=outbound
    )

    workflow_executor = providers.Singleton(
        WorkflowExecutor,
        settings=settings,
        database=database,
        handlers=handler_registry,
        bi_service=bi_service
    )

    trigger_dispatcher = providers.Singleton(
        TriggerDispatcher,
        database=database,
        executor=workflow_executor
    )

    stale_run_sweeper = providers.Singleton(
        StaleRunSweeper,
        database=database,
        ttl_seconds=settings.provided.stale_run_ttl_seconds,
        sweep_interval=settings.provided.stale_run_sweep_interval
    )


# Global container instance
container = Container()
