from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from app.dependencies import get_current_user, get_verification_service
from app.models import User
from app.services.verification_service import VerificationService

router = APIRouter(prefix="/api/artist/verification", tags=["verification"])


class SubmitVerificationBody(BaseModel):
    claim_code: str = Field(..., examples=["SEDA-ABC12345"])
    target_url: str = Field(..., examples=["https://artist.bandcamp.com"])


@router.post("/request")
def request_verification(
    user: User = Depends(get_current_user),
    service: VerificationService = Depends(get_verification_service),
):
    return service.request_verification(user.id)


@router.post("/submit")
def submit_verification(
    body: SubmitVerificationBody,
    user: User = Depends(get_current_user),
    service: VerificationService = Depends(get_verification_service),
):
    return service.submit_verification(user.id, body.claim_code, body.target_url)


@router.get("/status/{request_id}")
def verification_status(
    request_id: int,
    user: User = Depends(get_current_user),
    service: VerificationService = Depends(get_verification_service),
):
    return service.get_verification_status(user.id, request_id)


@router.get("/my-requests")
def my_verifications(
    user: User = Depends(get_current_user),
    service: VerificationService = Depends(get_verification_service),
):
    return service.get_user_verifications(user.id)
