from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from app.dependencies import get_current_admin, get_verification_service
from app.models import User
from app.services.verification_service import VerificationService

router = APIRouter(prefix="/api/admin/verifications", tags=["admin"])


class DenyVerificationBody(BaseModel):
    reason: str | None = None


@router.get("")
def list_verifications(
    status: str = Query(default=""),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    admin: User = Depends(get_current_admin),
    service: VerificationService = Depends(get_verification_service),
):
    return service.list_verifications(status=status or None, limit=limit, offset=offset)


@router.get("/stats")
def verification_stats(
    admin: User = Depends(get_current_admin),
    service: VerificationService = Depends(get_verification_service),
):
    return service.verification_stats()


@router.post("/{request_id}/approve")
def approve_verification(
    request_id: int,
    admin: User = Depends(get_current_admin),
    service: VerificationService = Depends(get_verification_service),
):
    return service.resolve_admin_review(request_id, approve=True, admin_id=admin.id)


@router.post("/{request_id}/deny")
def deny_verification(
    request_id: int,
    body: DenyVerificationBody | None = None,
    admin: User = Depends(get_current_admin),
    service: VerificationService = Depends(get_verification_service),
):
    reason = body.reason if body else None
    return service.resolve_admin_review(request_id, approve=False, admin_id=admin.id, denial_reason=reason)
