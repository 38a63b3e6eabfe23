"""Pydantic schemas for verification badge requests.

Evidence is a discriminated union on `type`: each verification type has
its own model, so an IDENTITY request cannot be submitted with business
registration fields and vice versa. Clients may omit `evidence.type`;
it is filled in from the request's `type` before validation.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, EmailStr, Field, model_validator

from sparklink.db.models import VerificationStatus, VerificationType


# ─── Evidence variants ──────────────────────────────────


class IdentityEvidence(BaseModel):
    type: Literal["IDENTITY"] = "IDENTITY"
    full_name: str = Field(..., min_length=1, max_length=200)
    document_type: Literal["passport", "drivers_license", "national_id"]
    document_url: str = Field(..., description="Uploaded scan of the document")
    selfie_url: Optional[str] = None


class BusinessEvidence(BaseModel):
    type: Literal["BUSINESS"] = "BUSINESS"
    business_name: str = Field(..., min_length=1, max_length=200)
    registration_number: Optional[str] = None
    website: Optional[str] = None
    document_url: Optional[str] = None


class SocialEvidence(BaseModel):
    type: Literal["SOCIAL"] = "SOCIAL"
    platform: str = Field(..., description="e.g. instagram, tiktok, youtube")
    handle: str = Field(..., min_length=1, max_length=100)
    profile_url: str
    follower_count: Optional[int] = Field(None, ge=0)


class CelebrityEvidence(BaseModel):
    type: Literal["CELEBRITY"] = "CELEBRITY"
    known_for: str = Field(..., min_length=1, max_length=500)
    press_links: list[str] = Field(..., min_length=1)
    wikipedia_url: Optional[str] = None


class OrganizationEvidence(BaseModel):
    type: Literal["ORGANIZATION"] = "ORGANIZATION"
    organization_name: str = Field(..., min_length=1, max_length=200)
    website: str
    contact_email: EmailStr
    registration_number: Optional[str] = None


Evidence = Annotated[
    Union[
        IdentityEvidence,
        BusinessEvidence,
        SocialEvidence,
        CelebrityEvidence,
        OrganizationEvidence,
    ],
    Field(discriminator="type"),
]


# ─── Submit (user → platform) ──────────────────────────


class VerificationSubmit(BaseModel):
    """User asks for a badge."""
    type: VerificationType
    evidence: Evidence

    @model_validator(mode="before")
    @classmethod
    def tag_evidence(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("evidence"), dict):
            evidence = dict(data["evidence"])
            evidence.setdefault("type", data.get("type"))
            data = {**data, "evidence": evidence}
        return data

    @model_validator(mode="after")
    def evidence_matches_type(self) -> "VerificationSubmit":
        if self.evidence.type != self.type.value:
            raise ValueError("evidence.type must match the request type")
        return self


# ─── Review (admin → platform) ─────────────────────────


class ReviewDecision(str, Enum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    REVOKE = "REVOKE"


class VerificationReview(BaseModel):
    decision: ReviewDecision
    notes: Optional[str] = Field(None, max_length=2000)


# ─── Read (platform → client) ──────────────────────────


class VerificationRequestRead(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    type: VerificationType
    status: VerificationStatus
    evidence: dict[str, Any]
    submitted_at: datetime
    reviewed_at: Optional[datetime]
    reviewed_by: Optional[uuid.UUID]
    review_notes: Optional[str]

    model_config = {"from_attributes": True}


class VerificationEventRead(BaseModel):
    id: int
    type: str
    data: dict[str, Any]
    created_at: datetime

    model_config = {"from_attributes": True}
