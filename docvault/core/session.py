"""
Wallet sessions and owner-gated entry points.

VaultService ties the role store, the request workflow and the document
definition together. Role-management calls check the actor is the owner
before anything reaches the store.
"""

from dataclasses import dataclass
from typing import List, Optional

from . import config
from .access_requests import AccessRequestWorkflow
from .errors import PermissionDeniedError
from .policy import PolicyTable, evaluate, evaluate_document, load_document_definition
from .renderer import FieldView, UnmaskController, render_document
from .roles import RoleStore
from .schema import (
    AccessDecision,
    AccessRequest,
    DocumentField,
    Role,
    WalletRoleRecord,
    normalize_address,
)
from util.logging import logger


@dataclass
class WalletSession:
    address: str
    role: Optional[Role]
    is_owner: bool
    claimed_ownership: bool = False
    name: Optional[str] = None

    @property
    def has_access(self) -> bool:
        return self.role is not None


class VaultService:

    def __init__(self, store: RoleStore = None, fields: List[DocumentField] = None,
                 policy: PolicyTable = None):
        self.store = store or RoleStore()
        self.workflow = AccessRequestWorkflow(self.store)
        if fields is None or policy is None:
            default_fields, default_policy = load_document_definition(config.get_document_config_path())
            fields = default_fields if fields is None else fields
            policy = default_policy if policy is None else policy
        self.fields = list(fields)
        self.policy = policy

    def connect(self, address: str) -> WalletSession:
        """
        Look up a connecting wallet. The first wallet to connect to a system
        with no owner claims ownership; a wallet that loses that race falls
        back to a normal lookup.
        """
        address = normalize_address(address)
        claimed = False
        if not self.store.system_has_owner():
            claimed = self.store.claim_ownership(address)

        record = self.store.get_record(address)
        session = WalletSession(
            address=address,
            role=record.effective_role if record else None,
            is_owner=bool(record and record.is_owner),
            claimed_ownership=claimed,
            name=record.name if record else None,
        )
        logger.log_operation("wallet.connect", "connected", {
            "address": address,
            "role": session.role.value if session.role else None,
            "is_owner": session.is_owner,
            "claimed_ownership": claimed,
        })
        return session

    # ============ DOCUMENT ============

    def decisions_for(self, address: str) -> dict:
        role = self.store.get_role(address)
        decisions = evaluate_document(role, self.fields, self.policy)
        logger.log_access_decision(normalize_address(address), role.value if role else None, {
            field_id: decision.value for field_id, decision in decisions.items()
        })
        return decisions

    def view_document(self, address: str, controller: UnmaskController = None) -> List[FieldView]:
        role = self.store.get_role(address)
        return render_document(role, self.fields, self.policy, controller)

    def get_field(self, field_id: str) -> Optional[DocumentField]:
        for field in self.fields:
            if field.id == field_id:
                return field
        return None

    def can_rewrite(self, role: Optional[Role], field_id: str) -> bool:
        field = self.get_field(field_id)
        if field is None:
            return False
        return evaluate(role, field, self.policy) == AccessDecision.SEMANTIC

    # ============ ACCESS REQUESTS ============

    def request_access(self, address: str, name: str, requested_role: Role) -> Optional[AccessRequest]:
        """Submit a request. Wallets that already hold a role get None."""
        if self.store.get_role(address) is not None:
            logger.log_access_request("-", "submit_ignored", normalize_address(address), "has_role")
            return None
        return self.workflow.submit(address, name, requested_role)

    def request_status(self, address: str) -> Optional[AccessRequest]:
        return self.workflow.latest_request(address)

    def list_pending(self, actor: str) -> List[AccessRequest]:
        self._require_owner(actor, "list access requests")
        return self.workflow.list_pending()

    def approve(self, actor: str, request_id: str, override_role: Role = None) -> bool:
        return self.workflow.approve(request_id, actor, override_role)

    def decline(self, actor: str, request_id: str) -> bool:
        return self.workflow.decline(request_id, actor)

    # ============ ROLE MANAGEMENT ============

    def _require_owner(self, actor: str, operation: str):
        if not self.store.is_owner_wallet(actor):
            logger.log_role_change(operation, normalize_address(actor), status="permission_denied")
            raise PermissionDeniedError(normalize_address(actor), operation)

    def assign_role(self, actor: str, address: str, role: Role, name: str = None) -> bool:
        self._require_owner(actor, "assign roles")
        return self.store.assign_role(address, role, name)

    def remove_role(self, actor: str, address: str) -> bool:
        self._require_owner(actor, "remove roles")
        return self.store.remove_role(address)

    def list_assigned(self, actor: str) -> List[WalletRoleRecord]:
        self._require_owner(actor, "list role assignments")
        return self.store.list_assigned()
