"""Centralized constants for node types, providers and analytics events.

Single source of truth for the string identifiers stored in workflow
documents and analytics events.
"""

from enum import Enum
from typing import Dict, FrozenSet, List, Tuple


# =============================================================================
# NODE TYPES
# =============================================================================

class NodeType(str, Enum):
    """Node kinds a workflow graph may contain."""
    ACTION = "action"
    CONDITION = "condition"
    DELAY = "delay"
    TRIGGER = "trigger"


# =============================================================================
# PROVIDERS
# =============================================================================

class Provider(str, Enum):
    """Action node providers. Each maps to exactly one handler."""
    WHATSAPP = "whatsapp"
    EMAIL = "email"
    SMS = "sms"
    CRM = "crm"
    WEBHOOK = "webhook"
    AI_AGENT = "ai_agent"
    PREDICTIVE_ROUTE = "predictive_route"
    ROI_GUARD = "roi_guard"
    AB_TEST = "ab_test"


# Internal providers run against in-process services and never need
# tenant credentials.
INTERNAL_PROVIDERS: FrozenSet[Provider] = frozenset([
    Provider.AI_AGENT,
    Provider.PREDICTIVE_ROUTE,
    Provider.ROI_GUARD,
    Provider.AB_TEST,
])

# Integration records are stored under the credential vendor's name.
# A provider may accept several vendors; the first active one wins.
INTEGRATION_PROVIDERS: Dict[Provider, Tuple[str, ...]] = {
    Provider.WHATSAPP: ("meta", "whatsapp"),
    Provider.EMAIL: ("sendgrid", "email"),
    Provider.SMS: ("twilio", "sms"),
    Provider.CRM: ("hubspot", "salesforce", "zoho", "webhook", "crm"),
    Provider.WEBHOOK: ("webhook",),
}


# =============================================================================
# RUN / STEP STATUS
# =============================================================================

class RunStatus(str, Enum):
    """Workflow log states. RUNNING is the only non-terminal state."""
    RUNNING = "running"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class StepStatus(str, Enum):
    """Outcome of a single node execution."""
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


# =============================================================================
# ANALYTICS EVENTS
# =============================================================================

class EventType(str, Enum):
    """Analytics event types recorded for BI."""
    LEAD_INGESTED = "LEAD_INGESTED"
    AI_ANALYZED = "AI_ANALYZED"
    WORKFLOW_TRIGGERED = "WORKFLOW_TRIGGERED"
    MESSAGE_SENT = "MESSAGE_SENT"
    LINK_CLICKED = "LINK_CLICKED"
    STATUS_CHANGE = "STATUS_CHANGE"
    CRM_SYNC = "CRM_SYNC"
    REVENUE_GENERATED = "REVENUE_GENERATED"
    SALE_COMPLETED = "SALE_COMPLETED"


# Sub-actions carried in WORKFLOW_TRIGGERED metadata
ACTION_PREDICTIVE_ASSIGNMENT = "PREDICTIVE_ASSIGNMENT"
ACTION_ROI_GUARD_TRIGGERED = "ROI_GUARD_TRIGGERED"
ACTION_AB_TEST_ASSIGNMENT = "AB_TEST_ASSIGNMENT"


# =============================================================================
# LOCALES & REGIONS
# =============================================================================

DEFAULT_LOCALE = "en-US"

# Checked in order; first matching prefix wins.
PHONE_PREFIX_LOCALES: List[Tuple[str, str]] = [
    ("+91", "hi-IN"),
    ("+34", "es-ES"),
    ("+33", "fr-FR"),
]

REGIONS: Dict[str, FrozenSet[str]] = {
    "EU": frozenset(["FR", "DE", "IT", "ES"]),
    "AS": frozenset(["IN", "SG", "AE"]),
}

UNKNOWN_COUNTRY = "Unknown"


# =============================================================================
# ROUTING / ROI
# =============================================================================

ROUTABLE_AGENT_ROLES: FrozenSet[str] = frozenset(["admin", "sales"])
CONVERTED_LEAD_STATUS = "Converted"

ROI_HEALTHY_THRESHOLD = 100.0
ROI_MIN_LEADS = 10
# Flat ad spend assumed per ingested lead when computing campaign ROI
COST_PER_LEAD = 10.0
