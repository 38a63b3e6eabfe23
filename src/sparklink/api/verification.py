"""Verification badge API — users submit, admins review.

- POST /verification/requests → submit evidence for a badge
- GET /verification/requests/me → own requests, newest first
- GET /verification/requests → review queue (admin)
- GET /verification/requests/:id/history → audit events (admin)
- PATCH /verification/requests/:id → approve / reject / revoke (admin)
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from sparklink.auth.dependencies import (
    CurrentIdentity,
    get_current_user,
    require_admin,
)
from sparklink.db.engine import get_db
from sparklink.db.models import User, VerificationStatus, VerificationType
from sparklink.errors import VerificationRequestNotFoundError
from sparklink.schemas.verification import (
    VerificationEventRead,
    VerificationRequestRead,
    VerificationReview,
    VerificationSubmit,
)
from sparklink.services.verification_service import VerificationService

router = APIRouter(prefix="/verification")


def _get_service(db: AsyncSession = Depends(get_db)) -> VerificationService:
    return VerificationService(db)


# ─── Submit (user) ──────────────────────────────────────


@router.post("/requests", response_model=VerificationRequestRead, status_code=201)
async def submit_request(
    body: VerificationSubmit,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: VerificationService = Depends(_get_service),
):
    """Open a verification request. Only one may be pending at a time."""
    return await svc.submit(identity.user_id, body.type, body.evidence)


@router.get("/requests/me", response_model=list[VerificationRequestRead])
async def list_my_requests(
    identity: CurrentIdentity = Depends(get_current_user),
    svc: VerificationService = Depends(_get_service),
):
    return await svc.list_for_user(identity.user_id)


# ─── Review queue (admin) ───────────────────────────────


@router.get("/requests", response_model=list[VerificationRequestRead])
async def list_requests(
    status: Optional[VerificationStatus] = Query(None, description="Filter by status"),
    type: Optional[VerificationType] = Query(None, description="Filter by type"),
    limit: int = Query(50, ge=1, le=200),
    admin: User = Depends(require_admin),
    svc: VerificationService = Depends(_get_service),
):
    return await svc.list_requests(status=status, type=type, limit=limit)


@router.get(
    "/requests/{request_id}/history",
    response_model=list[VerificationEventRead],
)
async def request_history(
    request_id: str,
    admin: User = Depends(require_admin),
    svc: VerificationService = Depends(_get_service),
):
    if await svc.get_request(request_id) is None:
        raise VerificationRequestNotFoundError()
    return await svc.history(request_id)


@router.patch("/requests/{request_id}", response_model=VerificationRequestRead)
async def review_request(
    request_id: str,
    body: VerificationReview,
    admin: User = Depends(require_admin),
    svc: VerificationService = Depends(_get_service),
):
    """Approve or reject a pending request, or revoke an approved one."""
    return await svc.review(
        request_id,
        body.decision,
        reviewer_id=admin.id,
        notes=body.notes,
    )
