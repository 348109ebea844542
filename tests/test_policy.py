"""
Policy table and access evaluator tests.
"""

import json

import pytest

from docvault.core.policy import (
    DEFAULT_POLICY,
    MASTER_DOCUMENT,
    PolicyTable,
    evaluate,
    evaluate_document,
    load_document_definition,
)
from docvault.core.schema import (
    AccessDecision,
    AccessRule,
    DENY_RULE,
    DocumentField,
    MaskKind,
    Role,
    Sensitivity,
)


@pytest.fixture
def scenario_policy():
    return PolicyTable({
        Role.ENGINEER: {"risks": DENY_RULE, "revenue": AccessRule(True, MaskKind.PARTIAL)},
        Role.MARKETING: {"risks": AccessRule(True, MaskKind.SEMANTIC)},
    })


class TestEvaluate:

    def test_denied_and_semantic_scenario(self, scenario_policy):
        assert evaluate(Role.ENGINEER, "risks", scenario_policy) == AccessDecision.DENIED
        assert evaluate(Role.MARKETING, "risks", scenario_policy) == AccessDecision.SEMANTIC
        assert evaluate(Role.ENGINEER, "revenue", scenario_policy) == AccessDecision.PARTIAL

    @pytest.mark.parametrize("role", list(Role))
    def test_unmapped_field_is_denied(self, role, scenario_policy):
        assert evaluate(role, "no_such_field", scenario_policy) == AccessDecision.DENIED

    def test_unmapped_role_is_denied(self, scenario_policy):
        assert evaluate(Role.FOUNDER, "risks", scenario_policy) == AccessDecision.DENIED

    def test_no_role_is_denied(self):
        assert evaluate(None, "revenue") == AccessDecision.DENIED

    def test_denial_overrides_mask_kind(self):
        policy = PolicyTable({Role.ENGINEER: {"f": AccessRule(can_view=False, mask_kind=MaskKind.SEMANTIC)}})
        assert evaluate(Role.ENGINEER, "f", policy) == AccessDecision.DENIED

    def test_full_when_no_mask(self):
        policy = PolicyTable({Role.ENGINEER: {"f": AccessRule(can_view=True)}})
        assert evaluate(Role.ENGINEER, "f", policy) == AccessDecision.FULL

    def test_accepts_document_field(self):
        field = DocumentField("risks", "Risks", "Lawsuit Pending", Sensitivity.CRITICAL)
        assert evaluate(Role.MARKETING, field) == AccessDecision.SEMANTIC

    def test_repeated_evaluation_is_stable(self, scenario_policy):
        first = evaluate(Role.MARKETING, "risks", scenario_policy)
        second = evaluate(Role.MARKETING, "risks", scenario_policy)
        assert first == second

    def test_decision_messages(self):
        assert AccessDecision.DENIED.message == "Access Denied - Insufficient permissions"
        assert AccessDecision.FULL.message == "Full access granted"


class TestDefaultPolicy:

    @pytest.mark.parametrize("role", [Role.OWNER, Role.FOUNDER])
    def test_founder_tier_sees_everything(self, role):
        decisions = evaluate_document(role, MASTER_DOCUMENT)
        assert set(decisions.values()) == {AccessDecision.FULL}

    def test_engineer(self):
        decisions = evaluate_document(Role.ENGINEER, MASTER_DOCUMENT)
        assert decisions == {
            "revenue": AccessDecision.PARTIAL,
            "risks": AccessDecision.DENIED,
            "roadmap": AccessDecision.FULL,
            "marketSize": AccessDecision.FULL,
        }

    def test_marketing(self):
        decisions = evaluate_document(Role.MARKETING, MASTER_DOCUMENT)
        assert decisions["revenue"] == AccessDecision.PARTIAL
        assert decisions["risks"] == AccessDecision.SEMANTIC


class TestEvaluateDocument:

    def test_keeps_document_order(self):
        decisions = evaluate_document(Role.ENGINEER, MASTER_DOCUMENT)
        assert list(decisions) == [f.id for f in MASTER_DOCUMENT]

    def test_fields_are_independent(self):
        alone = evaluate_document(Role.MARKETING, ["risks"])
        together = evaluate_document(Role.MARKETING, ["revenue", "unknown", "risks"])
        assert alone["risks"] == together["risks"]
        assert together["unknown"] == AccessDecision.DENIED

    def test_empty_document(self):
        assert evaluate_document(Role.FOUNDER, []) == {}


class TestPolicyTableConfig:

    def test_round_trip_through_dict(self):
        table = PolicyTable.from_dict(DEFAULT_POLICY.to_dict())
        for role in Role:
            for field in MASTER_DOCUMENT:
                assert evaluate(role, field, table) == evaluate(role, field, DEFAULT_POLICY)

    def test_denied_mask_type_reads_as_cannot_view(self):
        table = PolicyTable.from_dict({"engineer": {"f": {"can_view": True, "mask_type": "denied"}}})
        assert evaluate(Role.ENGINEER, "f", table) == AccessDecision.DENIED

    def test_unknown_role_rejected(self):
        with pytest.raises(ValueError, match="Unknown role"):
            PolicyTable.from_dict({"intern": {}})

    def test_unknown_mask_type_rejected(self):
        with pytest.raises(ValueError, match="Unknown mask_type"):
            PolicyTable.from_dict({"engineer": {"f": {"can_view": True, "mask_type": "blur"}}})

    def test_default_rules_for_new_field(self):
        table = DEFAULT_POLICY.with_default_rules("headcount")
        assert evaluate(Role.OWNER, "headcount", table) == AccessDecision.FULL
        assert evaluate(Role.FOUNDER, "headcount", table) == AccessDecision.FULL
        assert evaluate(Role.ENGINEER, "headcount", table) == AccessDecision.DENIED
        assert evaluate(Role.MARKETING, "headcount", table) == AccessDecision.DENIED
        # Original table is untouched
        assert evaluate(Role.FOUNDER, "headcount", DEFAULT_POLICY) == AccessDecision.DENIED

    def test_load_builtin_definition(self):
        fields, policy = load_document_definition(None)
        assert [f.id for f in fields] == ["revenue", "risks", "roadmap", "marketSize"]
        assert policy is DEFAULT_POLICY

    def test_load_definition_from_json(self, tmp_path):
        path = tmp_path / "document.json"
        path.write_text(json.dumps({
            "fields": [
                {"id": "salary", "name": "Salary", "value": "$120k", "sensitivity": "critical"},
                {"id": "team", "name": "Team", "value": "Platform"},
            ],
            "policy": {
                "engineer": {
                    "salary": {"can_view": True, "mask_type": "partial"},
                    "team": {"can_view": True, "mask_type": "none"},
                },
            },
        }))

        fields, policy = load_document_definition(str(path))

        assert fields[0] == DocumentField("salary", "Salary", "$120k", Sensitivity.CRITICAL)
        assert fields[1].sensitivity == Sensitivity.PUBLIC
        assert evaluate(Role.ENGINEER, "salary", policy) == AccessDecision.PARTIAL
        assert evaluate(Role.MARKETING, "team", policy) == AccessDecision.DENIED

    def test_duplicate_field_ids_rejected(self, tmp_path):
        path = tmp_path / "document.json"
        path.write_text(json.dumps({"fields": [{"id": "a"}, {"id": "a"}], "policy": {}}))
        with pytest.raises(ValueError, match="Duplicate"):
            load_document_definition(str(path))

    def test_fields_missing_from_policy_get_default_rules(self, tmp_path):
        path = tmp_path / "document.json"
        path.write_text(json.dumps({
            "fields": [{"id": "salary", "value": "$120k"}, {"id": "headcount", "value": "42"}],
            "policy": {"engineer": {"salary": {"can_view": True, "mask_type": "none"}}},
        }))

        fields, policy = load_document_definition(str(path))

        assert evaluate(Role.FOUNDER, "headcount", policy) == AccessDecision.FULL
        assert evaluate(Role.ENGINEER, "headcount", policy) == AccessDecision.DENIED
        assert evaluate(Role.ENGINEER, "salary", policy) == AccessDecision.FULL
