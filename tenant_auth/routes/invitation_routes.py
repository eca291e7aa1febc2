from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from tenant_auth.cache import CacheBackend, get_cache
from tenant_auth.database import get_db
from tenant_auth.dependencies import require_permission
from tenant_auth.models.auth_context import AuthContext
from tenant_auth.models.invitation import InvitationStatus
from tenant_auth.schemas.invitation_schemas import (
    InvitationAccept,
    InvitationAcceptedResponse,
    InvitationCreate,
    InvitationCreatedResponse,
    InvitationListResponse,
    InvitationResponse,
)
from tenant_auth.services.invitation_service import InvitationService

router = APIRouter()


@router.post("", response_model=InvitationCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_invitation(
    invite_data: InvitationCreate,
    context: AuthContext = Depends(require_permission("users", "create")),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """
    Invite an email address to the organization.

    - Any earlier pending invitation for the email is revoked
    - Roles must belong to the organization
    - The token is returned since email delivery is not part of this service
    """
    service = InvitationService(db, cache)
    return service.create(context, invite_data)


@router.get("", response_model=InvitationListResponse)
async def list_invitations(
    status_filter: Optional[InvitationStatus] = Query(None, alias="status"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    context: AuthContext = Depends(require_permission("users", "view")),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    service = InvitationService(db, cache)
    items, total = service.list_invitations(context, status_filter, limit, offset)
    return {"items": items, "total": total, "limit": limit, "offset": offset}


@router.post("/accept", response_model=InvitationAcceptedResponse, status_code=status.HTTP_201_CREATED)
async def accept_invitation(
    accept_data: InvitationAccept,
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """Accept an invitation and create the account (no authentication required)."""
    service = InvitationService(db, cache)
    user = service.accept(accept_data)
    return {
        "user_id": user.id,
        "tenant_id": user.tenant_id,
        "email": user.email,
        "message": "Invitation accepted. You can now log in.",
    }


@router.get("/{invitation_id}", response_model=InvitationResponse)
async def get_invitation(
    invitation_id: int,
    context: AuthContext = Depends(require_permission("users", "view")),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    service = InvitationService(db, cache)
    return service.get(context, invitation_id)


@router.delete("/{invitation_id}", response_model=InvitationResponse)
async def revoke_invitation(
    invitation_id: int,
    context: AuthContext = Depends(require_permission("users", "create")),
    db: Session = Depends(get_db),
    cache: CacheBackend = Depends(get_cache),
):
    """Revoke a pending invitation."""
    service = InvitationService(db, cache)
    return service.revoke(context, invitation_id)
