"""Workflow trigger and execution log routes."""

import math
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from leadflow.constants import RunStatus
from leadflow.core.container import container
from leadflow.core.database import Database
from leadflow.core.logging import get_logger
from leadflow.models.database import WorkflowLog
from leadflow.services.execution import TriggerDispatcher
from leadflow.services.testing import TestingService

logger = get_logger(__name__)
router = APIRouter(prefix="/api/workflows", tags=["workflows"])


class TriggerRequest(BaseModel):
    organization_id: str
    trigger_type: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    wait: bool = True


def _log_to_dict(row: WorkflowLog) -> Dict[str, Any]:
    return {
        "id": row.id,
        "organization_id": row.organization_id,
        "workflow_id": row.workflow_id,
        "lead_id": row.lead_id,
        "status": row.status,
        "steps": row.steps or [],
        "trigger_data": row.trigger_data,
        "total_duration_ms": row.total_duration_ms,
        "created_at": row.created_at.isoformat() if row.created_at else None,
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }


@router.post("/trigger")
async def trigger_workflows(
    request: TriggerRequest,
    dispatcher: TriggerDispatcher = Depends(lambda: container.trigger_dispatcher())
):
    """Dispatch a trigger event to every matching active workflow.

    With `wait=false` the dispatch runs in the background and the response
    only acknowledges it.
    """
    if not request.wait:
        dispatcher.dispatch_background(request.organization_id, request.trigger_type, request.payload)
        return {"success": True, "queued": True}

    report = await dispatcher.dispatch(request.organization_id, request.trigger_type, request.payload)
    return {"success": report.error is None, **report.to_dict()}


@router.get("/logs")
async def list_workflow_logs(
    organization_id: str,
    workflow_id: Optional[str] = None,
    lead_id: Optional[str] = None,
    status: Optional[RunStatus] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=200),
    database: Database = Depends(lambda: container.database())
):
    """Newest-first execution logs of a tenant."""
    rows, total = await database.list_workflow_logs(
        organization_id,
        workflow_id=workflow_id,
        lead_id=lead_id,
        status=status.value if status else None,
        page=page,
        limit=limit,
    )
    return {
        "logs": [_log_to_dict(row) for row in rows],
        "total": total,
        "page": page,
        "total_pages": math.ceil(total / limit) if total else 0,
    }


@router.get("/logs/{log_id}")
async def get_workflow_log(
    log_id: str,
    organization_id: str,
    database: Database = Depends(lambda: container.database())
):
    row = await database.get_workflow_log(organization_id, log_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Workflow log not found")
    return _log_to_dict(row)


@router.get("/ab-tests/{test_id}/results")
async def get_ab_test_results(
    test_id: str,
    organization_id: str,
    testing: TestingService = Depends(lambda: container.testing_service())
):
    """Per-variant leads, conversions and conversion rate of an A/B test."""
    return {"test_id": test_id, "variants": await testing.get_test_results(organization_id, test_id)}
