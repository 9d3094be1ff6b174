"""Condition evaluation for condition nodes.

A condition node compares one payload field against a configured value and
the walker follows `next_nodes[0]` when it holds, `next_nodes[1]` otherwise.

Supported operators:
- equals: case-insensitive string equality
- not_equals: negation of equals
- contains: case-insensitive substring
- greater_than: numeric comparison, False when either side is not a number
- is_in_region: country code belongs to a region (EU, AS)

Evaluation never raises; anything it cannot evaluate is False.
"""

import math
from typing import Any, Callable, Dict, Optional

from leadflow.constants import REGIONS, UNKNOWN_COUNTRY
from leadflow.core.logging import get_logger
from leadflow.models.nodes import ConditionConfig

from .models import ExecutionState

logger = get_logger(__name__)


def get_nested_value(data: Dict[str, Any], field_path: str) -> Any:
    """Get a value from a dictionary, following dot notation for nested dicts.

    A literal key containing dots wins over the nested lookup.

    Examples:
        >>> get_nested_value({"raw_data": {"city": "Pune"}}, "raw_data.city")
        'Pune'
    """
    if not data or not field_path:
        return None
    if field_path in data:
        return data[field_path]

    current: Any = data
    for part in field_path.split('.'):
        if isinstance(current, dict):
            current = current.get(part)
        else:
            return None
    return current


def resolve_field(payload: Dict[str, Any], field: str) -> Any:
    """Field value used by conditions, with the country fallback chain.

    An empty `country` falls back to `raw_data.country_code`, then
    `ip_country`, then "Unknown".
    """
    value = get_nested_value(payload, field)
    if field == "country" and not value:
        raw_data = payload.get("raw_data") or {}
        value = raw_data.get("country_code") or payload.get("ip_country") or UNKNOWN_COUNTRY
    return value


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value).lower()


def _number(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


def _greater_than(actual: Any, target: Any) -> bool:
    left, right = _number(actual), _number(target)
    if left is None or right is None:
        return False
    return left > right


def _is_in_region(actual: Any, target: Any) -> bool:
    region = REGIONS.get(target) if isinstance(target, str) else None
    return bool(region) and actual in region


OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "equals": lambda actual, target: _text(actual) == _text(target),
    "not_equals": lambda actual, target: _text(actual) != _text(target),
    "contains": lambda actual, target: _text(target) in _text(actual),
    "greater_than": _greater_than,
    "is_in_region": _is_in_region,
}


def evaluate_condition(config: ConditionConfig, state: ExecutionState) -> bool:
    """Evaluate a condition node against the run's payload.

    Args:
        config: Decoded condition config (field, operator, value)
        state: Current execution state

    Returns:
        True if the condition holds, False otherwise
    """
    operator = OPERATORS.get(config.operator)
    if operator is None:
        logger.warning("Unknown operator", operator=config.operator)
        return False

    actual = resolve_field(state.payload, config.field)
    try:
        result = bool(operator(actual, config.value))
    except Exception as e:
        logger.warning("Condition evaluation error",
                       field=config.field,
                       operator=config.operator,
                       error=str(e))
        return False

    logger.debug("Condition evaluated",
                 field=config.field,
                 operator=config.operator,
                 target=config.value,
                 actual=actual,
                 result=result)
    return result
