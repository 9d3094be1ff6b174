"""Tests for condition evaluation."""

import pytest

from leadflow.models.nodes import ConditionConfig
from leadflow.services.execution import ExecutionState, evaluate_condition, get_nested_value, resolve_field


def evaluate(payload, field, operator, value):
    state = ExecutionState(organization_id="org-1", payload=payload)
    return evaluate_condition(ConditionConfig(field=field, operator=operator, value=value), state)


class TestGetNestedValue:
    def test_dotted_path(self):
        assert get_nested_value({"raw_data": {"city": "Pune"}}, "raw_data.city") == "Pune"

    def test_literal_key_wins(self):
        data = {"raw_data.city": "literal", "raw_data": {"city": "nested"}}
        assert get_nested_value(data, "raw_data.city") == "literal"

    def test_missing_path(self):
        assert get_nested_value({"raw_data": "flat"}, "raw_data.city") is None
        assert get_nested_value({}, "score") is None


class TestCountryFallback:
    def test_country_present(self):
        assert resolve_field({"country": "IN"}, "country") == "IN"

    def test_raw_data_country_code(self):
        payload = {"country": "", "raw_data": {"country_code": "FR"}, "ip_country": "DE"}
        assert resolve_field(payload, "country") == "FR"

    def test_ip_country(self):
        assert resolve_field({"ip_country": "DE"}, "country") == "DE"

    def test_unknown(self):
        assert resolve_field({}, "country") == "Unknown"

    def test_equals_unknown_country(self):
        assert evaluate({}, "country", "equals", "unknown") is True


class TestOperators:
    def test_equals_case_insensitive(self):
        assert evaluate({"country": "in"}, "country", "equals", "IN") is True
        assert evaluate({"country": "US"}, "country", "equals", "IN") is False

    def test_not_equals(self):
        assert evaluate({"status": "New"}, "status", "not_equals", "converted") is True
        assert evaluate({"status": "New"}, "status", "not_equals", "NEW") is False

    def test_contains(self):
        assert evaluate({"campaign": "Summer Sale 2024"}, "campaign", "contains", "sale") is True
        assert evaluate({"campaign": "Summer"}, "campaign", "contains", "winter") is False

    def test_missing_field_compares_as_empty(self):
        assert evaluate({}, "email", "equals", "") is True
        assert evaluate({}, "email", "contains", "@") is False

    @pytest.mark.parametrize("payload,expected", [
        ({"score": 75}, True),
        ({"score": 30}, False),
        ({"score": 50}, False),
        ({}, False),
        ({"score": "80"}, True),
        ({"score": "high"}, False),
    ])
    def test_greater_than(self, payload, expected):
        assert evaluate(payload, "score", "greater_than", 50) is expected

    def test_greater_than_non_numeric_target(self):
        assert evaluate({"score": 75}, "score", "greater_than", "abc") is False

    def test_is_in_region(self):
        assert evaluate({"country": "FR"}, "country", "is_in_region", "EU") is True
        assert evaluate({"country": "IN"}, "country", "is_in_region", "AS") is True
        assert evaluate({"country": "US"}, "country", "is_in_region", "EU") is False

    def test_is_in_region_unknown_region(self):
        assert evaluate({"country": "FR"}, "country", "is_in_region", "NA") is False

    def test_unknown_operator_is_false(self):
        assert evaluate({"country": "IN"}, "country", "starts_with", "I") is False

    def test_nested_field(self):
        payload = {"ai_analysis": {"intent": "High_Intent"}}
        assert evaluate(payload, "ai_analysis.intent", "equals", "high_intent") is True
