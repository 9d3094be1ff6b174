"""SQLModel database models and tables."""

import uuid
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List
from sqlmodel import SQLModel, Field, Column, DateTime, JSON
from sqlalchemy import func


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Organization(SQLModel, table=True):
    """Tenant. Holds timezone and compliance flags read by the engine."""

    __tablename__ = "organizations"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=64)
    name: str = Field(unique=True, max_length=255)
    # {"timezone": "UTC", "locale": "en-US", "currency": "USD", "region": "US"}
    settings: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    # {"is_gdpr": False, "is_ccpa": False, "data_retention_days": 730}
    compliance: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )

    @property
    def timezone(self) -> Optional[str]:
        return (self.settings or {}).get("timezone")

    @property
    def is_gdpr(self) -> bool:
        return bool((self.compliance or {}).get("is_gdpr"))


class Integration(SQLModel, table=True):
    """Tenant credentials for an external provider. Read-only to the engine."""

    __tablename__ = "integrations"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=64)
    organization_id: str = Field(index=True, max_length=64)
    provider: str = Field(index=True, max_length=50)
    name: str = Field(max_length=255)
    region: str = Field(default="Global", max_length=50)
    is_active: bool = Field(default=True)
    auth_type: str = Field(default="api_key", max_length=20)
    # {"api_key", "access_token", "refresh_token", "metadata": {...}}
    credentials: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )


class Lead(SQLModel, table=True):
    """Inbound sales lead. The payload most workflows are triggered with."""

    __tablename__ = "leads"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=64)
    organization_id: str = Field(index=True, max_length=64)
    name: str = Field(max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=50)
    country: Optional[str] = Field(default=None, max_length=10)
    campaign: Optional[str] = Field(default=None, max_length=255)
    status: str = Field(default="New", max_length=20)
    score: int = Field(default=0)
    ai_analysis: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    assigned_to: Optional[str] = Field(default=None, index=True, max_length=64)
    raw_data: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    gdpr_consent: bool = Field(default=False)
    locale: Optional[str] = Field(default=None, max_length=20)
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), onupdate=func.now())
    )

    def to_payload(self) -> Dict[str, Any]:
        """Lead as a workflow trigger payload."""
        return self.model_dump(exclude={"created_at", "updated_at"})


class Agent(SQLModel, table=True):
    """Sales team member leads can be routed to."""

    __tablename__ = "agents"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=64)
    organization_id: str = Field(index=True, max_length=64)
    name: str = Field(max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)
    role: str = Field(default="sales", max_length=20)


class Workflow(SQLModel, table=True):
    """Workflow definitions. `nodes` and `trigger` are stored as documents."""

    __tablename__ = "workflows"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=64)
    organization_id: str = Field(index=True, max_length=64)
    name: str = Field(max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)
    is_active: bool = Field(default=True, index=True)
    # Denormalized from trigger["type"] for the dispatcher lookup
    trigger_type: str = Field(index=True, max_length=50)
    trigger: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    nodes: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    total_executions: int = Field(default=0)
    success_rate: float = Field(default=100.0)
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), server_default=func.now())
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), onupdate=func.now())
    )


class WorkflowLog(SQLModel, table=True):
    """One row per workflow run, appended to while the run progresses."""

    __tablename__ = "workflow_logs"

    id: str = Field(primary_key=True, max_length=64)
    organization_id: str = Field(index=True, max_length=64)
    workflow_id: str = Field(index=True, max_length=64)
    lead_id: Optional[str] = Field(default=None, index=True, max_length=64)
    status: str = Field(default="running", index=True, max_length=20)
    steps: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    trigger_data: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    total_duration_ms: Optional[int] = Field(default=None)
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), index=True)
    )
    # Bumped on every step write; the stale-run sweeper keys off it
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), index=True)
    )


class AnalyticsEvent(SQLModel, table=True):
    """BI event stream."""

    __tablename__ = "analytics_events"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=64)
    organization_id: str = Field(index=True, max_length=64)
    lead_id: Optional[str] = Field(default=None, index=True, max_length=64)
    type: str = Field(index=True, max_length=50)
    source: Optional[str] = Field(default=None, max_length=50)
    campaign: Optional[str] = Field(default=None, index=True, max_length=255)
    value: Optional[float] = Field(default=None)
    metadata_json: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    timestamp: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), index=True)
    )
