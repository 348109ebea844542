"""
Access request workflow - a wallet without a role asks for one and the owner
approves or declines.

States per wallet: none -> pending -> approved | declined. A new submission
always supersedes the wallet's pending request; reviewed requests are never
modified again.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from .errors import PermissionDeniedError
from .roles import RoleStore
from .schema import AccessRequest, RequestStatus, Role, normalize_address
from util.logging import logger

REQUESTABLE_ROLES = (Role.FOUNDER, Role.ENGINEER, Role.MARKETING)


def _requestable(role) -> Role:
    role = Role(role)
    if role not in REQUESTABLE_ROLES:
        raise ValueError(f"Role cannot be requested or granted through a request: {role.value}")
    return role


class AccessRequestWorkflow:
    """Request state machine on top of the role store."""

    def __init__(self, store: RoleStore):
        self.store = store

    def submit(self, address: str, name: str, requested_role: Role) -> Optional[AccessRequest]:
        """
        Create a pending request, replacing any pending one for the same wallet.

        Whether the wallet already holds a role is checked by the caller.
        Returns None if the store could not save the request.
        """
        if not name or not name.strip():
            raise ValueError("name cannot be empty")

        request = AccessRequest(
            id=str(uuid.uuid4()),
            wallet_address=normalize_address(address),
            name=name.strip(),
            requested_role=_requestable(requested_role),
            status=RequestStatus.PENDING,
            created_at=datetime.now(),
        )

        if not self.store.replace_pending_request(request):
            return None

        logger.log_access_request(request.id, "submitted", request.wallet_address, request.requested_role.value)
        return request

    def _require_owner(self, actor: str, operation: str):
        if not self.store.is_owner_wallet(actor):
            logger.log_access_request("-", "permission_denied", normalize_address(actor), operation)
            raise PermissionDeniedError(normalize_address(actor), operation)

    def approve(self, request_id: str, approver: str, override_role: Role = None) -> bool:
        """
        Grant override_role (or the requested role) to the requester and mark the
        request approved. Returns False, leaving the request pending, when the
        role store refuses the assignment or the request is not pending.
        """
        self._require_owner(approver, "approve access requests")

        request = self.store.get_request(request_id)
        if request is None or request.status != RequestStatus.PENDING:
            logger.log_access_request(request_id, "approve_rejected", approver, "not_pending")
            return False

        granted = _requestable(override_role) if override_role is not None else request.requested_role

        if not self.store.commit_approval(request_id, granted, datetime.now()):
            logger.log_access_request(request_id, "approve_failed", request.wallet_address, granted.value)
            return False

        logger.log_access_request(request_id, "approved", request.wallet_address, granted.value)
        return True

    def decline(self, request_id: str, approver: str) -> bool:
        """Mark a pending request declined. The role store is not touched."""
        self._require_owner(approver, "decline access requests")

        if not self.store.mark_declined(request_id, datetime.now()):
            logger.log_access_request(request_id, "decline_rejected", approver, "not_pending")
            return False

        logger.log_access_request(request_id, "declined", approver)
        return True

    def list_pending(self) -> List[AccessRequest]:
        """All pending requests, newest first."""
        return self.store.list_requests(RequestStatus.PENDING)

    def get_request(self, request_id: str) -> Optional[AccessRequest]:
        return self.store.get_request(request_id)

    def latest_request(self, address: str) -> Optional[AccessRequest]:
        return self.store.latest_request(address)

    def has_pending_request(self, address: str) -> bool:
        request = self.store.latest_request(address)
        return request is not None and request.status == RequestStatus.PENDING
