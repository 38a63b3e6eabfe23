"""Verification service — badge requests and admin review.

State machine over VerificationRequest.status:

    PENDING ──approve──▶ APPROVED ──revoke──▶ REVOKED
       │
       └────reject────▶ REJECTED

A user has at most one PENDING request at a time, across all types.
The user's own verification_status mirrors the latest request, and
has_verified_badge is true exactly while that request is APPROVED.

Each transition is a conditional UPDATE ... WHERE status = <expected>,
so two admins reviewing the same request concurrently cannot both win.
The one-pending rule is backed by a partial unique index.
Authorization (admin only for review) is the caller's job.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional, Union

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sparklink.db.models import (
    User,
    VerificationRequest,
    VerificationStatus,
    VerificationType,
)
from sparklink.errors import (
    DuplicatePendingRequestError,
    InvalidTransitionError,
    UserNotFoundError,
    VerificationRequestNotFoundError,
)
from sparklink.events.store import EventStore
from sparklink.events.types import (
    VERIFICATION_APPROVED,
    VERIFICATION_REJECTED,
    VERIFICATION_REVOKED,
    VERIFICATION_SUBMITTED,
)
from sparklink.schemas.verification import Evidence, ReviewDecision

logger = structlog.get_logger()

Id = Union[str, uuid.UUID]


# ═══════════════════════════════════════════════════════════
# State Machine
# ═══════════════════════════════════════════════════════════

# decision → (required current status, resulting status)
REVIEW_TRANSITIONS: dict[ReviewDecision, tuple[VerificationStatus, VerificationStatus]] = {
    ReviewDecision.APPROVE: (VerificationStatus.PENDING, VerificationStatus.APPROVED),
    ReviewDecision.REJECT: (VerificationStatus.PENDING, VerificationStatus.REJECTED),
    ReviewDecision.REVOKE: (VerificationStatus.APPROVED, VerificationStatus.REVOKED),
}

REVIEW_EVENTS = {
    ReviewDecision.APPROVE: VERIFICATION_APPROVED,
    ReviewDecision.REJECT: VERIFICATION_REJECTED,
    ReviewDecision.REVOKE: VERIFICATION_REVOKED,
}


def _to_uuid(value: Id) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


# ═══════════════════════════════════════════════════════════
# Service
# ═══════════════════════════════════════════════════════════


class VerificationService:
    """Submission and review of verification badge requests."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.events = EventStore(db)

    # ─── Submit ──────────────────────────────────────────

    async def submit(
        self,
        user_id: Id,
        type: VerificationType,
        evidence: Evidence,
    ) -> VerificationRequest:
        """Open a new PENDING request for the user.

        Raises UserNotFoundError for an unknown user,
        DuplicatePendingRequestError if one is already pending,
        InvalidTransitionError if the user already holds a badge.
        """
        user_id = _to_uuid(user_id)
        user = await self.db.get(User, user_id)
        if user is None:
            raise UserNotFoundError()

        if await self._pending_for(user_id) is not None:
            raise DuplicatePendingRequestError()
        if user.has_verified_badge:
            raise InvalidTransitionError("User is already verified")

        req = VerificationRequest(
            user_id=user_id,
            type=VerificationType(type).value,
            status=VerificationStatus.PENDING.value,
            evidence=evidence.model_dump(mode="json"),
            submitted_at=_now(),
        )
        self.db.add(req)
        user.verification_status = VerificationStatus.PENDING.value
        try:
            await self.db.flush()
            await self.events.append(
                stream_id=f"verification:{req.id}",
                event_type=VERIFICATION_SUBMITTED,
                data={"user_id": str(user_id), "type": req.type},
            )
            await self.db.commit()
        except IntegrityError:
            # Lost a race against another submission for the same user.
            await self.db.rollback()
            raise DuplicatePendingRequestError()

        await self.db.refresh(req)
        logger.info(
            "verification.submitted",
            request_id=str(req.id),
            user_id=str(user_id),
            type=req.type,
        )
        return req

    # ─── Review ──────────────────────────────────────────

    async def review(
        self,
        request_id: Id,
        decision: ReviewDecision,
        reviewer_id: Id,
        notes: Optional[str] = None,
    ) -> VerificationRequest:
        """Apply an admin decision to a request.

        APPROVE/REJECT need a PENDING request, REVOKE an APPROVED one;
        anything else raises InvalidTransitionError.
        """
        req = await self.get_request(request_id)
        if req is None:
            raise VerificationRequestNotFoundError()

        decision = ReviewDecision(decision)
        from_status, to_status = REVIEW_TRANSITIONS[decision]
        if req.status != from_status.value:
            raise InvalidTransitionError(
                f"Cannot {decision.value.lower()} a request that is {req.status}"
            )

        now = _now()
        result = await self.db.execute(
            update(VerificationRequest)
            .where(VerificationRequest.id == req.id)
            .where(VerificationRequest.status == from_status.value)
            .values(
                status=to_status.value,
                reviewed_at=now,
                reviewed_by=_to_uuid(reviewer_id),
                review_notes=notes,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            raise InvalidTransitionError(
                f"Request {req.id} was reviewed concurrently"
            )

        user = await self.db.get(User, req.user_id)
        user.verification_status = to_status.value
        if decision is ReviewDecision.APPROVE:
            user.has_verified_badge = True
            user.verified_at = now
            user.verification_notes = notes
        elif decision is ReviewDecision.REJECT:
            user.verification_notes = notes
        else:
            user.has_verified_badge = False
            user.verified_at = None
            user.verification_notes = notes

        await self.events.append(
            stream_id=f"verification:{req.id}",
            event_type=REVIEW_EVENTS[decision],
            data={
                "from": from_status.value,
                "to": to_status.value,
                "reviewer_id": str(reviewer_id),
                "notes": notes,
            },
        )
        await self.db.commit()
        await self.db.refresh(req)

        logger.info(
            "verification.reviewed",
            request_id=str(req.id),
            decision=decision.value,
            reviewer_id=str(reviewer_id),
        )
        return req

    # ─── Queries ─────────────────────────────────────────

    async def get_request(self, request_id: Id) -> Optional[VerificationRequest]:
        try:
            return await self.db.get(VerificationRequest, _to_uuid(request_id))
        except ValueError:
            return None

    async def list_for_user(self, user_id: Id) -> list[VerificationRequest]:
        q = (
            select(VerificationRequest)
            .where(VerificationRequest.user_id == _to_uuid(user_id))
            .order_by(VerificationRequest.submitted_at.desc())
        )
        result = await self.db.execute(q)
        return list(result.scalars().all())

    async def list_requests(
        self,
        *,
        status: Optional[VerificationStatus] = None,
        type: Optional[VerificationType] = None,
        limit: int = 50,
    ) -> list[VerificationRequest]:
        """Admin queue, oldest first so reviews go in submission order."""
        q = (
            select(VerificationRequest)
            .order_by(VerificationRequest.submitted_at.asc())
            .limit(limit)
        )
        if status:
            q = q.where(VerificationRequest.status == VerificationStatus(status).value)
        if type:
            q = q.where(VerificationRequest.type == VerificationType(type).value)
        result = await self.db.execute(q)
        return list(result.scalars().all())

    async def history(self, request_id: Id) -> list:
        return await self.events.read_stream(f"verification:{_to_uuid(request_id)}")

    async def _pending_for(self, user_id: uuid.UUID) -> Optional[VerificationRequest]:
        q = (
            select(VerificationRequest)
            .where(VerificationRequest.user_id == user_id)
            .where(VerificationRequest.status == VerificationStatus.PENDING.value)
            .limit(1)
        )
        result = await self.db.execute(q)
        return result.scalars().first()


def _now() -> datetime:
    return datetime.now(timezone.utc)
