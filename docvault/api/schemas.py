"""
Request/response models for the docvault HTTP API.
"""

from pydantic import BaseModel, field_validator
from typing import Optional, List, Dict
from datetime import datetime

from ..core.schema import Role


class MaskContentRequest(BaseModel):
    content: str
    role: str

    @field_validator('content')
    @classmethod
    def content_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('content cannot be empty')
        return v

    @field_validator('content')
    @classmethod
    def content_must_be_reasonable_length(cls, v):
        if len(v) > 4000:
            raise ValueError('content must be less than 4000 characters')
        return v

    @field_validator('role')
    @classmethod
    def role_must_be_valid(cls, v):
        if Role.from_string(v) is None:
            raise ValueError(f'role must be one of: {[r.value for r in Role]}')
        return v.strip().lower()


class MaskContentResponse(BaseModel):
    original: str
    masked: str
    role: str
    timestamp: datetime


class ConnectRequest(BaseModel):
    address: str

    @field_validator('address')
    @classmethod
    def address_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('address cannot be empty')
        return v


class SessionResponse(BaseModel):
    address: str
    role: Optional[Role] = None
    is_owner: bool
    claimed_ownership: bool = False
    name: Optional[str] = None


class FieldViewResponse(BaseModel):
    id: str
    name: str
    sensitivity: str
    decision: str
    display_value: str
    message: str


class DocumentResponse(BaseModel):
    address: str
    role: Optional[Role] = None
    fields: List[FieldViewResponse]


class WalletRoleResponse(BaseModel):
    address: str
    role: Role
    is_owner: bool
    name: Optional[str] = None


class WalletListResponse(BaseModel):
    wallets: List[WalletRoleResponse]


class AssignRoleRequest(BaseModel):
    role: Role
    name: Optional[str] = None


class AccessRequestCreate(BaseModel):
    address: str
    name: str
    requested_role: Role

    @field_validator('address')
    @classmethod
    def address_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('address cannot be empty')
        return v

    @field_validator('name')
    @classmethod
    def name_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('name cannot be empty')
        return v

    @field_validator('requested_role')
    @classmethod
    def role_must_be_requestable(cls, v):
        if v == Role.OWNER:
            raise ValueError('owner cannot be requested')
        return v


class AccessRequestResponse(BaseModel):
    id: str
    wallet_address: str
    name: str
    requested_role: Role
    status: str
    created_at: datetime
    reviewed_at: Optional[datetime] = None


class AccessRequestListResponse(BaseModel):
    requests: List[AccessRequestResponse]


class ApproveRequest(BaseModel):
    role: Optional[Role] = None

    @field_validator('role')
    @classmethod
    def role_must_be_grantable(cls, v):
        if v == Role.OWNER:
            raise ValueError('owner cannot be granted through a request')
        return v


class OperationResponse(BaseModel):
    success: bool
    message: str


class HealthResponse(BaseModel):
    status: str
    version: str
    db_health: bool
    rewrite_configured: bool
    rewrite_healthy: bool = False
    config_issues: List[str] = []


class ErrorResponse(BaseModel):
    error_type: str
    message: str
    timestamp: datetime = None
    details: Optional[Dict[str, str]] = None

    def __init__(self, **data):
        super().__init__(timestamp=datetime.now(), **data)
