"""Shared fixtures: temp SQLite database, real BI service, fake handlers."""

import asyncio
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio

from leadflow.constants import Provider
from leadflow.core.config import Settings
from leadflow.core.database import Database
from leadflow.models.database import Integration, Organization
from leadflow.models.nodes import WorkflowDefinition
from leadflow.services.bi import BIService
from leadflow.services.execution import ExecutionState, WorkflowExecutor
from leadflow.services.handlers import HandlerRegistry, ProviderHandler

ORG_ID = "org-1"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'leadflow.db'}",
        handler_timeout_seconds=1.0,
        default_delay_ms=3_600_000,
        max_steps_per_run=50,
        log_format="console",
        openai_api_key=None,
        email_from="noreply@leadflow.test",
    )


@pytest_asyncio.fixture
async def database(settings):
    db = Database(settings)
    await db.startup()
    yield db
    await db.shutdown()


@pytest.fixture
def bi_service(database):
    return BIService(database)


@pytest_asyncio.fixture
async def organization(database):
    return await database.save_organization(Organization(
        id=ORG_ID,
        name="Acme Realty",
        settings={"timezone": "UTC", "locale": "en-US"},
        compliance={"is_gdpr": False},
    ))


@pytest_asyncio.fixture
async def gdpr_organization(database):
    return await database.save_organization(Organization(
        id="org-gdpr",
        name="Acme Europe",
        settings={"timezone": "Europe/Paris"},
        compliance={"is_gdpr": True},
    ))


class FakeHandler(ProviderHandler):
    """Handler that records its calls and returns or raises a fixed outcome."""

    def __init__(self, provider: Provider, result: Any = True,
                 error: Optional[Exception] = None, delay: float = 0):
        self.provider = provider
        self.result = result
        self.error = error
        self.delay = delay
        self.calls: List[Dict[str, Any]] = []

    async def execute(self, action_type, config, state: ExecutionState, integration):
        self.calls.append({
            "action_type": action_type,
            "config": config,
            "node_id": state.current_node_id,
            "integration": integration,
            "payload": dict(state.payload),
        })
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def make_executor(settings, database, bi_service):
    def _make(*handlers: ProviderHandler, **kwargs) -> WorkflowExecutor:
        return WorkflowExecutor(settings, database, HandlerRegistry(handlers), bi_service, **kwargs)
    return _make


def make_workflow(nodes: List[Dict[str, Any]], trigger_next: Optional[List[str]] = None,
                  organization_id: str = ORG_ID, workflow_id: str = "wf-1",
                  trigger_type: str = "lead_created", name: str = "Lead intake") -> WorkflowDefinition:
    return WorkflowDefinition(
        id=workflow_id,
        organization_id=organization_id,
        name=name,
        trigger={"type": trigger_type, "nextNodes": trigger_next or []},
        nodes=nodes,
    )


def webhook_integration(organization_id: str = ORG_ID, **kwargs) -> Integration:
    return Integration(
        organization_id=organization_id,
        provider="webhook",
        name=kwargs.pop("name", "Outbound hook"),
        credentials=kwargs.pop("credentials", {"metadata": {"webhook_url": "https://hooks.test/crm"}}),
        **kwargs,
    )


def step_statuses(log) -> List[tuple]:
    return [(step.node_id, step.status.value if step.status else None) for step in log.steps]
