"""A/B split testing."""

from collections import OrderedDict
from typing import Any, Dict, List, Optional, Sequence

from leadflow.constants import ACTION_AB_TEST_ASSIGNMENT, EventType
from leadflow.core.database import Database
from leadflow.core.logging import get_logger
from leadflow.models.nodes import ABTestConfig, ABVariant
from leadflow.services.bi import BIService

logger = get_logger(__name__)


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def seed_hash(seed: str) -> int:
    """Rolling hash `h = c + ((h << 5) - h)` over the characters of `seed`.

    Only the shifted operand is wrapped to a signed 32-bit integer, the
    subtraction and addition are not. This keeps assignments identical to
    the ones the builder UI previews.
    """
    h = 0
    for char in seed:
        shifted = _to_int32(_to_int32(h) << 5)
        h = ord(char) + (shifted - h)
    return h


def bucket_for(seed: str) -> int:
    """Stable bucket in [0, 100) for a seed.

    Truncated remainder (sign follows the dividend), then absolute value.
    """
    return abs(seed_hash(seed)) % 100


def pick_variant(bucket: int, variants: Sequence[ABVariant]) -> str:
    """Walk variants by cumulative weight; the first variant is the default."""
    cumulative = 0.0
    for variant in variants:
        cumulative += variant.weight
        if bucket < cumulative:
            return variant.id
    return variants[0].id


def lead_seed(lead: Dict[str, Any]) -> str:
    return str(lead.get("email") or lead.get("phone") or lead.get("id") or "")


class TestingService:
    """Deterministic variant assignment and per-variant results."""

    __test__ = False

    def __init__(self, database: Database, bi_service: BIService):
        self.database = database
        self.bi_service = bi_service

    async def split(self, organization_id: str, lead: Dict[str, Any],
                    config: ABTestConfig) -> str:
        """Assign `lead` to a variant of the test and record the assignment.

        The same seed always lands in the same variant for a given config.
        """
        variant = pick_variant(bucket_for(lead_seed(lead)), config.variants)

        logger.info("A/B variant assigned", test_id=config.test_id,
                    lead_id=lead.get("id"), variant=variant)

        await self.bi_service.track_event(
            organization_id,
            lead.get("id"),
            EventType.WORKFLOW_TRIGGERED,
            metadata={
                "action": ACTION_AB_TEST_ASSIGNMENT,
                "testId": config.test_id,
                "variant": variant,
            },
        )
        return variant

    async def get_test_results(self, organization_id: str,
                               test_id: str) -> List[Dict[str, Any]]:
        """Leads, conversions and conversion rate per variant of a test.

        Counts every analytics event tagged with the test id; conversions are
        the SALE_COMPLETED ones.
        """
        events = await self.database.list_analytics_events(organization_id)

        results: "OrderedDict[Optional[str], Dict[str, Any]]" = OrderedDict()
        for event in events:
            metadata = event.metadata_json or {}
            if metadata.get("testId") != test_id:
                continue
            variant = metadata.get("variant")
            row = results.setdefault(variant, {"variant": variant, "leads": 0, "conversions": 0})
            row["leads"] += 1
            if event.type == EventType.SALE_COMPLETED.value:
                row["conversions"] += 1

        for row in results.values():
            row["conversion_rate"] = (
                row["conversions"] / row["leads"] * 100 if row["leads"] > 0 else 0
            )
        return list(results.values())
