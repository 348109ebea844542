"""
Domain types shared by the policy engine, the role store and the request workflow.
"""

from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from typing import Dict, Optional


class Role(str, Enum):
    """Permission tier assigned to a wallet."""
    OWNER = "owner"
    FOUNDER = "founder"
    ENGINEER = "engineer"
    MARKETING = "marketing"

    @classmethod
    def from_string(cls, value: str) -> Optional['Role']:
        """Convert a stored string to a Role; unknown values give None."""
        if value is None:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class Sensitivity(str, Enum):
    PUBLIC = "public"
    SENSITIVE = "sensitive"
    CRITICAL = "critical"


class MaskKind(str, Enum):
    NONE = "none"
    PARTIAL = "partial"
    SEMANTIC = "semantic"


class AccessDecision(str, Enum):
    """Outcome of evaluating a (role, field) pair."""
    FULL = "full"
    PARTIAL = "partial"
    SEMANTIC = "semantic"
    DENIED = "denied"

    @property
    def message(self) -> str:
        return _DECISION_MESSAGES[self]


_DECISION_MESSAGES = {
    AccessDecision.FULL: "Full access granted",
    AccessDecision.PARTIAL: "Content partially masked for security",
    AccessDecision.SEMANTIC: "Content will be semantically masked by AI",
    AccessDecision.DENIED: "Access Denied - Insufficient permissions",
}


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"


@dataclass(frozen=True)
class DocumentField:
    id: str
    name: str
    value: str
    sensitivity: Sensitivity = Sensitivity.PUBLIC


@dataclass(frozen=True)
class AccessRule:
    can_view: bool
    mask_kind: MaskKind = MaskKind.NONE


DENY_RULE = AccessRule(can_view=False)


@dataclass
class WalletRoleRecord:
    address: str
    role: Role
    is_owner: bool = False
    name: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def effective_role(self) -> Role:
        """The owner record is stored as founder but evaluates under the owner row."""
        return Role.OWNER if self.is_owner else self.role

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['role'] = self.role.value
        data['created_at'] = self.created_at.isoformat() if self.created_at else None
        return data


@dataclass
class AccessRequest:
    id: str
    wallet_address: str
    name: str
    requested_role: Role
    status: RequestStatus
    created_at: datetime
    reviewed_at: Optional[datetime] = None

    def to_dict(self) -> Dict:
        """Convert to dictionary for storage and transport."""
        data = asdict(self)
        data['requested_role'] = self.requested_role.value
        data['status'] = self.status.value
        data['created_at'] = self.created_at.isoformat()
        data['reviewed_at'] = self.reviewed_at.isoformat() if self.reviewed_at else None
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'AccessRequest':
        """Create from dictionary (for loading from storage)."""
        data = dict(data)
        data['requested_role'] = Role(data['requested_role'])
        data['status'] = RequestStatus(data['status'])
        data['created_at'] = datetime.fromisoformat(data['created_at'])
        if data.get('reviewed_at'):
            data['reviewed_at'] = datetime.fromisoformat(data['reviewed_at'])
        else:
            data['reviewed_at'] = None
        return cls(**data)


def normalize_address(address: str) -> str:
    """Canonical lowercase form of a wallet address."""
    if address is None or not address.strip():
        raise ValueError("wallet address cannot be empty")
    return address.strip().lower()
