"""Pydantic models for workflow definitions and per-provider node configs.

Workflow documents are stored as free-form JSON (camelCase keys from the
builder UI, snake_case from the API). They are decoded into these models at
load time; node configs are decoded into the provider's typed config when
the node executes, so a malformed config fails that node as a configuration
error instead of failing somewhere inside a handler.
"""

from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, Field, ValidationError

from leadflow.constants import Provider
from leadflow.core.exceptions import InvalidNodeConfigError


# =============================================================================
# WORKFLOW DOCUMENTS
# =============================================================================

class _Document(BaseModel):
    model_config = {"extra": "allow", "populate_by_name": True}


class TriggerSpec(_Document):
    """Workflow trigger. `type` is the dispatcher's lookup key."""
    type: str
    source_id: Optional[str] = Field(default=None, alias="sourceId")
    config: Dict[str, Any] = Field(default_factory=dict)
    next_nodes: List[str] = Field(default_factory=list, alias="nextNodes")


class NodeSpec(_Document):
    """A single workflow node as stored.

    `type` stays a plain string so an unknown type survives loading and is
    reported when the node is reached.
    """
    id: str
    type: str
    provider: Optional[str] = None
    action_type: Optional[str] = Field(default=None, alias="actionType")
    name: Optional[str] = None
    config: Dict[str, Any] = Field(default_factory=dict)
    next_nodes: List[str] = Field(default_factory=list, alias="nextNodes")
    failure_nodes: List[str] = Field(default_factory=list, alias="failureNodes")

    @property
    def display_name(self) -> str:
        return self.name or self.id


class WorkflowDefinition(_Document):
    """Immutable view of a workflow used for one or more runs."""
    id: str
    organization_id: str = Field(alias="organizationId")
    name: str
    description: Optional[str] = None
    is_active: bool = Field(default=True, alias="isActive")
    trigger: TriggerSpec
    nodes: List[NodeSpec] = Field(default_factory=list)

    model_config = {"extra": "allow", "populate_by_name": True, "frozen": True}

    @classmethod
    def from_row(cls, row: Any) -> "WorkflowDefinition":
        """Build from a `models.database.Workflow` row."""
        return cls(
            id=row.id,
            organization_id=row.organization_id,
            name=row.name,
            description=row.description,
            is_active=row.is_active,
            trigger=row.trigger or {"type": row.trigger_type},
            nodes=row.nodes or [],
        )


# =============================================================================
# NODE CONFIGS
# =============================================================================

class BaseNodeConfig(BaseModel):
    """Base class for node configs."""
    model_config = {"extra": "allow", "populate_by_name": True}


class EmptyConfig(BaseNodeConfig):
    """Providers that need no configuration."""


class ConditionConfig(BaseNodeConfig):
    field: str
    operator: str
    value: Any = None


class DelayConfig(BaseNodeConfig):
    duration_ms: Optional[int] = Field(default=None, alias="durationMs", ge=0)


class MessageTranslation(BaseNodeConfig):
    message: Optional[str] = None
    subject: Optional[str] = None


class MessagingConfig(BaseNodeConfig):
    """WhatsApp / email / SMS content with per-locale overrides."""
    message: str = ""
    subject: Optional[str] = None
    from_address: Optional[str] = Field(default=None, alias="from")
    template_name: Optional[str] = Field(default=None, alias="templateName")
    translations: Dict[str, MessageTranslation] = Field(default_factory=dict)


class CrmConfig(BaseNodeConfig):
    # country code -> integration id
    regional_overrides: Dict[str, str] = Field(default_factory=dict, alias="regionalOverrides")


class WebhookConfig(BaseNodeConfig):
    url: str = Field(min_length=1)
    headers: Dict[str, str] = Field(default_factory=dict)


class ABVariant(BaseNodeConfig):
    id: str
    weight: float = Field(ge=0)


class ABTestConfig(BaseNodeConfig):
    test_id: str = Field(alias="testId")
    variants: List[ABVariant] = Field(min_length=1)


PROVIDER_CONFIGS: Dict[Provider, Type[BaseNodeConfig]] = {
    Provider.WHATSAPP: MessagingConfig,
    Provider.EMAIL: MessagingConfig,
    Provider.SMS: MessagingConfig,
    Provider.CRM: CrmConfig,
    Provider.WEBHOOK: WebhookConfig,
    Provider.AI_AGENT: EmptyConfig,
    Provider.PREDICTIVE_ROUTE: EmptyConfig,
    Provider.ROI_GUARD: EmptyConfig,
    Provider.AB_TEST: ABTestConfig,
}


def decode_config(node: NodeSpec, model: Type[BaseNodeConfig]) -> BaseNodeConfig:
    """Decode a node's stored config into `model`.

    Raises:
        InvalidNodeConfigError: config does not validate
    """
    try:
        return model.model_validate(node.config or {})
    except ValidationError as e:
        errors = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
            for err in e.errors()
        )
        raise InvalidNodeConfigError(node.id, errors) from e
