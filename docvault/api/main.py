"""
HTTP surface for the document access viewer: the semantic rewrite route and
the wallet / document / access request endpoints used by viewer clients.
"""

from datetime import datetime
from functools import lru_cache
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .schemas import (
    AccessRequestCreate,
    AccessRequestListResponse,
    AccessRequestResponse,
    ApproveRequest,
    AssignRoleRequest,
    ConnectRequest,
    DocumentResponse,
    ErrorResponse,
    FieldViewResponse,
    HealthResponse,
    MaskContentRequest,
    MaskContentResponse,
    OperationResponse,
    SessionResponse,
    WalletListResponse,
    WalletRoleResponse,
)
from ..agents.rewriter import BaseRewriter, check_rewrite_health, get_rewriter
from ..core import config
from ..core.db import health_check
from ..core.errors import (
    PermissionDeniedError,
    RewriteError,
    RewriteTimeoutError,
    RewriteUnavailableError,
    StoreError,
)
from ..core.masking import semantic_mask
from ..core.roles import RoleStore
from ..core.schema import AccessRequest
from ..core.session import VaultService
from util.logging import audit_event, logger

app = FastAPI(
    title="DocVault API",
    version=config.VERSION,
    description="Role-based document access viewer with wallet roles and owner-approved access requests",
    docs_url="/docs" if config.debug_enabled() else None,
    redoc_url="/redoc" if config.debug_enabled() else None
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache(maxsize=1)
def get_service() -> VaultService:
    return VaultService(RoleStore(config.DB_PATH))


def get_rewrite_service() -> BaseRewriter:
    return get_rewriter()


@app.exception_handler(PermissionDeniedError)
async def permission_denied_handler(request: Request, exc: PermissionDeniedError):
    return JSONResponse(
        status_code=403,
        content=ErrorResponse(error_type="PERMISSION_DENIED", message=str(exc)).model_dump(mode="json")
    )


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.error(f"Store failure on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(error_type="STORE_ERROR", message="Role store unavailable").model_dump(mode="json")
    )


@app.exception_handler(ValueError)
async def invalid_value_handler(request: Request, exc: ValueError):
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(error_type="INVALID_INPUT", message=str(exc)).model_dump(mode="json")
    )


def _request_response(request: AccessRequest) -> AccessRequestResponse:
    return AccessRequestResponse(
        id=request.id,
        wallet_address=request.wallet_address,
        name=request.name,
        requested_role=request.requested_role,
        status=request.status.value,
        created_at=request.created_at,
        reviewed_at=request.reviewed_at,
    )


@app.get("/health", response_model=HealthResponse)
def health_check_endpoint():
    """Check system health."""
    db_health = health_check(config.DB_PATH)
    return HealthResponse(
        status="healthy" if db_health else "unhealthy",
        version=config.VERSION,
        db_health=db_health,
        rewrite_configured=config.is_rewrite_configured(),
        rewrite_healthy=check_rewrite_health(),
        config_issues=config.validate_config(),
    )


@app.post("/mask-content", response_model=MaskContentResponse)
def mask_content(req: MaskContentRequest, rewriter: BaseRewriter = Depends(get_rewrite_service)):
    """Return a de-identified paraphrase of content for a role."""
    audit_event(
        event_type="masking.semantic_request",
        identifiers={"role": req.role},
        payload={"content": req.content, "length": len(req.content)}
    )
    try:
        masked = semantic_mask(req.content, req.role, rewriter)
    except RewriteUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except RewriteTimeoutError as e:
        raise HTTPException(status_code=504, detail=str(e))
    except RewriteError as e:
        raise HTTPException(status_code=502, detail=f"Failed to mask content: {e}")

    return MaskContentResponse(
        original=req.content,
        masked=masked,
        role=req.role,
        timestamp=datetime.now(),
    )


# ============ WALLETS ============

@app.post("/wallets/connect", response_model=SessionResponse)
def connect_wallet(req: ConnectRequest, service: VaultService = Depends(get_service)):
    session = service.connect(req.address)
    return SessionResponse(
        address=session.address,
        role=session.role,
        is_owner=session.is_owner,
        claimed_ownership=session.claimed_ownership,
        name=session.name,
    )


@app.get("/wallets/{address}/document", response_model=DocumentResponse)
def get_document(address: str, service: VaultService = Depends(get_service)):
    """Render the document for a wallet. Semantic fields come back as placeholders."""
    views = service.view_document(address)
    return DocumentResponse(
        address=address.strip().lower(),
        role=service.store.get_role(address),
        fields=[
            FieldViewResponse(
                id=view.field_id,
                name=view.name,
                sensitivity=view.sensitivity.value,
                decision=view.decision.value,
                display_value=view.display_value,
                message=view.message,
            )
            for view in views
        ],
    )


@app.get("/wallets", response_model=WalletListResponse)
def list_wallets(x_wallet_address: str = Header(...), service: VaultService = Depends(get_service)):
    records = service.list_assigned(x_wallet_address)
    return WalletListResponse(wallets=[
        WalletRoleResponse(address=r.address, role=r.effective_role, is_owner=r.is_owner, name=r.name)
        for r in records
    ])


@app.put("/wallets/{address}", response_model=OperationResponse)
def assign_wallet_role(address: str, req: AssignRoleRequest, x_wallet_address: str = Header(...),
                       service: VaultService = Depends(get_service)):
    if not service.assign_role(x_wallet_address, address, req.role, req.name):
        raise HTTPException(status_code=409, detail=f"Role for {address} was not changed")
    return OperationResponse(success=True, message=f"Assigned {req.role.value} to {address}")


@app.delete("/wallets/{address}", response_model=OperationResponse)
def remove_wallet_role(address: str, x_wallet_address: str = Header(...),
                       service: VaultService = Depends(get_service)):
    if not service.remove_role(x_wallet_address, address):
        raise HTTPException(status_code=409, detail=f"Role for {address} was not removed")
    return OperationResponse(success=True, message=f"Removed role from {address}")


# ============ ACCESS REQUESTS ============

# Define /requests/pending before /requests/{request_id} to avoid path parameter conflict
@app.get("/requests/pending", response_model=AccessRequestListResponse)
def list_pending_requests(x_wallet_address: str = Header(...), service: VaultService = Depends(get_service)):
    return AccessRequestListResponse(
        requests=[_request_response(r) for r in service.list_pending(x_wallet_address)]
    )


@app.post("/requests", response_model=AccessRequestResponse)
def submit_request(req: AccessRequestCreate, service: VaultService = Depends(get_service)):
    request = service.request_access(req.address, req.name, req.requested_role)
    if request is None:
        raise HTTPException(status_code=409, detail="Wallet already has a role or the request could not be saved")
    return _request_response(request)


@app.get("/requests/status/{address}", response_model=Optional[AccessRequestResponse])
def request_status(address: str, service: VaultService = Depends(get_service)):
    request = service.request_status(address)
    return _request_response(request) if request else None


@app.get("/requests/{request_id}", response_model=AccessRequestResponse)
def get_request(request_id: str, service: VaultService = Depends(get_service)):
    request = service.workflow.get_request(request_id)
    if request is None:
        raise HTTPException(status_code=404, detail=f"Access request {request_id} not found")
    return _request_response(request)


@app.post("/requests/{request_id}/approve", response_model=OperationResponse)
def approve_request(request_id: str, req: ApproveRequest = None, x_wallet_address: str = Header(...),
                    service: VaultService = Depends(get_service)):
    override = req.role if req else None
    if not service.approve(x_wallet_address, request_id, override):
        if service.workflow.get_request(request_id) is None:
            raise HTTPException(status_code=404, detail=f"Access request {request_id} not found")
        raise HTTPException(status_code=409, detail=f"Access request {request_id} was not approved")
    return OperationResponse(success=True, message=f"Approved access request {request_id}")


@app.post("/requests/{request_id}/decline", response_model=OperationResponse)
def decline_request(request_id: str, x_wallet_address: str = Header(...),
                    service: VaultService = Depends(get_service)):
    if not service.decline(x_wallet_address, request_id):
        if service.workflow.get_request(request_id) is None:
            raise HTTPException(status_code=404, detail=f"Access request {request_id} not found")
        raise HTTPException(status_code=409, detail=f"Access request {request_id} was not declined")
    return OperationResponse(success=True, message=f"Declined access request {request_id}")
