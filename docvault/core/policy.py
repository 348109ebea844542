"""
Policy table and access evaluator.

The policy table maps (role, field id) to an access rule. Evaluation is a pure
function of that table: nothing is persisted and unmapped pairs are denied.
"""

import json
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .schema import (
    AccessDecision,
    AccessRule,
    DENY_RULE,
    DocumentField,
    MaskKind,
    Role,
    Sensitivity,
)
from util.logging import logger


class PolicyTable:
    """Static role x field table of access rules. Missing entries deny."""

    def __init__(self, rules: Mapping[Role, Mapping[str, AccessRule]] = None):
        self._rules: Dict[Role, Dict[str, AccessRule]] = {
            role: dict(field_rules) for role, field_rules in (rules or {}).items()
        }

    def rule_for(self, role: Optional[Role], field_id: str) -> AccessRule:
        if role is None:
            return DENY_RULE
        return self._rules.get(role, {}).get(field_id, DENY_RULE)

    def field_ids(self) -> List[str]:
        seen = []
        for field_rules in self._rules.values():
            for field_id in field_rules:
                if field_id not in seen:
                    seen.append(field_id)
        return seen

    def with_default_rules(self, field_id: str) -> 'PolicyTable':
        """
        Return a copy with rules for a newly added field: owner and founder see it
        in full, every other role is denied.
        """
        rules = {role: dict(field_rules) for role, field_rules in self._rules.items()}
        for role in Role:
            full = role in (Role.OWNER, Role.FOUNDER)
            rules.setdefault(role, {})[field_id] = AccessRule(can_view=full) if full else DENY_RULE
        return PolicyTable(rules)

    def to_dict(self) -> Dict:
        return {
            role.value: {
                field_id: {"can_view": rule.can_view, "mask_type": rule.mask_kind.value}
                for field_id, rule in field_rules.items()
            }
            for role, field_rules in self._rules.items()
        }

    @classmethod
    def from_dict(cls, data: Mapping) -> 'PolicyTable':
        """
        Build a table from {role: {field_id: {"can_view": bool, "mask_type": str}}}.
        A mask_type of "denied" is read as can_view false.
        """
        rules = {}
        for role_name, field_rules in data.items():
            role = Role.from_string(role_name)
            if role is None:
                raise ValueError(f"Unknown role in policy table: {role_name}")
            rules[role] = {
                field_id: _rule_from_dict(field_id, raw) for field_id, raw in field_rules.items()
            }
        return cls(rules)


def _rule_from_dict(field_id: str, raw: Mapping) -> AccessRule:
    mask_type = str(raw.get("mask_type", "none")).lower()
    if mask_type == "denied":
        return DENY_RULE
    try:
        mask_kind = MaskKind(mask_type)
    except ValueError:
        raise ValueError(f"Unknown mask_type {mask_type!r} for field {field_id}")
    return AccessRule(can_view=bool(raw.get("can_view", False)), mask_kind=mask_kind)


def evaluate(role: Optional[Role], field: Union[DocumentField, str],
             policy: PolicyTable = None) -> AccessDecision:
    """
    Decide how a role may see a field.

    Precedence is fixed: a rule that cannot view is denied whatever its mask
    kind, and a semantic mask wins over a partial one.
    """
    policy = policy or DEFAULT_POLICY
    field_id = field.id if isinstance(field, DocumentField) else field
    rule = policy.rule_for(role, field_id)

    if not rule.can_view:
        return AccessDecision.DENIED
    if rule.mask_kind == MaskKind.SEMANTIC:
        return AccessDecision.SEMANTIC
    if rule.mask_kind == MaskKind.PARTIAL:
        return AccessDecision.PARTIAL
    return AccessDecision.FULL


def evaluate_document(role: Optional[Role], fields: Iterable[Union[DocumentField, str]],
                      policy: PolicyTable = None) -> Dict[str, AccessDecision]:
    """Evaluate every field independently, keeping the document's field order."""
    decisions = {}
    for field in fields:
        field_id = field.id if isinstance(field, DocumentField) else field
        decisions[field_id] = evaluate(role, field_id, policy)
    return decisions


# Built-in document and policy used when no DOCUMENT_CONFIG_PATH is set
MASTER_DOCUMENT: List[DocumentField] = [
    DocumentField("revenue", "Revenue", "$5.2M", Sensitivity.CRITICAL),
    DocumentField("risks", "Risks", "Lawsuit Pending", Sensitivity.CRITICAL),
    DocumentField("roadmap", "Roadmap",
                  "Launching V2 with AI capabilities, expanding to 15 countries",
                  Sensitivity.SENSITIVE),
    DocumentField("marketSize", "Market Size", "$2.8B TAM", Sensitivity.SENSITIVE),
]

_FULL = AccessRule(can_view=True)
_PARTIAL = AccessRule(can_view=True, mask_kind=MaskKind.PARTIAL)
_SEMANTIC = AccessRule(can_view=True, mask_kind=MaskKind.SEMANTIC)

_FOUNDER_RULES = {
    "revenue": _FULL,
    "risks": _FULL,
    "roadmap": _FULL,
    "marketSize": _FULL,
}

DEFAULT_POLICY = PolicyTable({
    Role.OWNER: _FOUNDER_RULES,
    Role.FOUNDER: _FOUNDER_RULES,
    Role.ENGINEER: {
        "revenue": _PARTIAL,
        "risks": DENY_RULE,
        "roadmap": _FULL,
        "marketSize": _FULL,
    },
    Role.MARKETING: {
        "revenue": _PARTIAL,
        "risks": _SEMANTIC,
        "roadmap": _FULL,
        "marketSize": _FULL,
    },
})


def load_document_definition(path: Optional[str] = None) -> Tuple[List[DocumentField], PolicyTable]:
    """
    Load the document fields and policy table from a JSON file, or return the
    built-in ones when no path is given.
    """
    if not path:
        return list(MASTER_DOCUMENT), DEFAULT_POLICY

    with open(Path(path), encoding="utf-8") as handle:
        data = json.load(handle)

    fields = []
    for raw in data.get("fields", []):
        fields.append(DocumentField(
            id=raw["id"],
            name=raw.get("name", raw["id"]),
            value=str(raw.get("value", "")),
            sensitivity=Sensitivity(raw.get("sensitivity", "public")),
        ))

    ids = [f.id for f in fields]
    if len(ids) != len(set(ids)):
        raise ValueError("Duplicate field id in document definition")

    policy = PolicyTable.from_dict(data.get("policy", {}))
    covered = policy.field_ids()
    for field_id in ids:
        if field_id not in covered:
            # Fields the policy never mentions are visible to owner and founder only
            policy = policy.with_default_rules(field_id)

    unknown = [field_id for field_id in covered if field_id not in ids]
    if unknown:
        logger.warning(f"Policy rules for unknown fields ignored: {unknown}")
    return fields, policy
